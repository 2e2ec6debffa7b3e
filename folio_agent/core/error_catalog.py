"""
Error Catalog — classify raw provider failures into a closed taxonomy.

Every classified failure maps to exactly one ErrorCode, a fixed user-facing
message, a recovery hint, and a recoverable/fatal flag the agent loop and its
callers can inspect. The raw failure is kept only for diagnostics.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, Optional

import httpx


# ── Error codes ─────────────────────────────────────────────────────

class ErrorCode(str, Enum):
    TOKEN_LIMIT = "token_limit"
    RATE_LIMIT = "rate_limit"
    AUTH_ERROR = "auth_error"
    NETWORK_ERROR = "network_error"
    SERVER_ERROR = "server_error"
    UNKNOWN = "unknown"


DEFAULT_RETRY_AFTER_MS = 60_000


# ── AgentError dataclass ────────────────────────────────────────────

@dataclass
class AgentError:
    """A classified provider failure."""
    code: ErrorCode
    message: str
    raw: Any = None
    retry_after_ms: Optional[int] = None

    @property
    def recovery_hint(self) -> str:
        return _CATALOG[self.code]["hint"]

    @property
    def is_recoverable(self) -> bool:
        return _CATALOG[self.code]["recoverable"]

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.message}"


# ── Static catalog of messages + recovery hints ─────────────────────

_CATALOG: Dict[ErrorCode, dict] = {
    ErrorCode.TOKEN_LIMIT: {
        "message": "Conversation is too long for this model. Try clearing history.",
        "hint": "History is compacted automatically once; if that fails, start a new conversation.",
        "recoverable": True,
    },
    ErrorCode.RATE_LIMIT: {
        "message": "Rate limit reached. Waiting for cooldown...",
        "hint": "Wait retry_after_ms before sending another request.",
        "recoverable": True,
    },
    ErrorCode.AUTH_ERROR: {
        "message": "API key is invalid. Check your settings.",
        "hint": "Update the provider API key (e.g. FOLIO_LLM_API_KEY).",
        "recoverable": False,
    },
    ErrorCode.NETWORK_ERROR: {
        "message": "Can't reach the LLM provider. Check your connection.",
        "hint": "Check the base_url and network connectivity, then retry the run.",
        "recoverable": False,
    },
    ErrorCode.SERVER_ERROR: {
        "message": "The LLM provider is having issues. Try again shortly.",
        "hint": "Transient provider failure. Retry the run after a short wait.",
        "recoverable": False,
    },
    ErrorCode.UNKNOWN: {
        "message": "Something went wrong. Please try again.",
        "hint": "Inspect AgentError.raw for details.",
        "recoverable": False,
    },
}


# ── Vocabulary ──────────────────────────────────────────────────────

_NETWORK_RE = re.compile(r"failed to fetch|network|econnrefused|dns", re.IGNORECASE)
_STATUS_RE = re.compile(r"API error \((\d+)\)")
_RATE_LIMIT_RE = re.compile(r"rate.?limit", re.IGNORECASE)
_RETRY_SECONDS_RE = re.compile(r"try again in (\d+(?:\.\d+)?)s", re.IGNORECASE)
_RETRY_MINUTES_RE = re.compile(r"try again in (\d+)m(\d+(?:\.\d+)?)s", re.IGNORECASE)
_TOKEN_LIMIT_RE = re.compile(
    r"too large|context.?length.?exceeded|maximum context length|token",
    re.IGNORECASE,
)

_TRANSPORT_ERRORS = (httpx.TransportError, ConnectionError, TimeoutError)


def error_text(raw: Any) -> str:
    """Best-effort message text for any failure value. Never raises."""
    try:
        if isinstance(raw, BaseException):
            return str(raw) or raw.__class__.__name__
        if isinstance(raw, dict):
            for key in ("message", "error", "detail"):
                if key in raw:
                    return str(raw[key])
        return "" if raw is None else str(raw)
    except Exception:
        try:
            return repr(raw)
        except Exception:
            return ""


def _status_of(raw: Any, msg: str) -> int:
    """HTTP status carried by the failure, or 0 when none can be found."""
    for attr in ("status_code", "status"):
        try:
            value = getattr(raw, attr, None)
        except Exception:
            value = None
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    if isinstance(raw, dict):
        value = raw.get("status_code", raw.get("status"))
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    match = _STATUS_RE.search(msg)
    return int(match.group(1)) if match else 0


def _is_transport_failure(raw: Any) -> bool:
    from .providers.base import ProviderConnectionError
    return isinstance(raw, (ProviderConnectionError,) + _TRANSPORT_ERRORS)


def parse_retry_after_ms(msg: str) -> Optional[int]:
    """Parse "try again in 12.5s" or "try again in 1m20.556s" into whole milliseconds."""
    try:
        match = _RETRY_MINUTES_RE.search(msg)
        if match:
            seconds = Decimal(match.group(1)) * 60 + Decimal(match.group(2))
            return math.ceil(seconds * 1000)
        match = _RETRY_SECONDS_RE.search(msg)
        if match:
            return math.ceil(Decimal(match.group(1)) * 1000)
    except InvalidOperation:
        pass
    return None


def _build(code: ErrorCode, raw: Any, retry_after_ms: Optional[int] = None) -> AgentError:
    return AgentError(
        code=code,
        message=_CATALOG[code]["message"],
        raw=raw,
        retry_after_ms=retry_after_ms,
    )


# ── Classifier ──────────────────────────────────────────────────────

def classify_error(raw: Any) -> AgentError:
    """
    Map any failure value to an AgentError. Pure and total: the same input
    always yields the same code, and nothing raised here escapes.

    First match wins:
      1. transport failure / network vocabulary  → network_error
      2. status 401 or 403                        → auth_error
      3. status 429 / rate-limit vocabulary       → rate_limit (+ retry_after_ms)
      4. status 413 / context-length vocabulary   → token_limit
      5. status >= 500                            → server_error
      6. anything else                            → unknown
    """
    msg = error_text(raw)

    if _is_transport_failure(raw) or _NETWORK_RE.search(msg):
        return _build(ErrorCode.NETWORK_ERROR, raw)

    status = _status_of(raw, msg)

    if status in (401, 403):
        return _build(ErrorCode.AUTH_ERROR, raw)

    if status == 429 or _RATE_LIMIT_RE.search(msg):
        retry_after = parse_retry_after_ms(msg) or DEFAULT_RETRY_AFTER_MS
        return _build(ErrorCode.RATE_LIMIT, raw, retry_after_ms=retry_after)

    if status == 413 or _TOKEN_LIMIT_RE.search(msg):
        return _build(ErrorCode.TOKEN_LIMIT, raw)

    if status >= 500:
        return _build(ErrorCode.SERVER_ERROR, raw)

    return _build(ErrorCode.UNKNOWN, raw)


def user_message(code: ErrorCode) -> str:
    """The fixed, non-technical message shown to end users for a code."""
    return _CATALOG[code]["message"]
