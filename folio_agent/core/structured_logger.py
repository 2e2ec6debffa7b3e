"""
Structured Logger — run-scoped log lines.

Every line written through a StructuredLogger carries the run_id and
provider_name of the agent run that produced it, plus any keyword fields
passed at the call site. Two output modes:

- **JSON mode** (`FOLIO_LOG_FORMAT=json`): one JSON object per line.
- **Human mode** (default): the usual text format with a `[run_id]` prefix.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional


_CONTEXT_FIELDS = ("run_id", "provider_name")


@dataclass(frozen=True)
class LogContext:
    run_id: str = ""
    provider_name: str = ""


class StructuredFormatter(logging.Formatter):
    """Emits each log record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name in _CONTEXT_FIELDS:
            value = getattr(record, name, "")
            if value:
                entry[name] = value

        fields = getattr(record, "log_extra", None)
        if fields:
            entry["extra"] = fields
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class HumanFormatter(logging.Formatter):
    def __init__(self, fmt: Optional[str] = None, datefmt: Optional[str] = None):
        super().__init__(
            fmt=fmt or "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt=datefmt or "%H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        run_id = getattr(record, "run_id", "")
        if run_id:
            # Copy, other handlers see the record unchanged
            record = logging.makeLogRecord(record.__dict__)
            record.msg = f"[{run_id}] {record.msg}"
        return super().format(record)


class RunContextFilter(logging.Filter):
    """Records from plain ``logging`` calls get the context fields too, defaulted."""

    def __init__(self, context: Optional[LogContext] = None):
        super().__init__()
        self.context = context or LogContext()

    def filter(self, record: logging.LogRecord) -> bool:
        for name in _CONTEXT_FIELDS:
            setattr(record, name, getattr(record, name, "") or getattr(self.context, name))
        return True


class StructuredLogger:
    """
    Wraps a stdlib logger and stamps the run context onto every call.

    Usage::

        log = StructuredLogger(__name__).with_context(run_id=run.id, provider_name="groq")
        log.info("Run finished", steps=3)
    """

    def __init__(self, name: str, context: Optional[LogContext] = None):
        self._logger = logging.getLogger(name)
        self.context = context or LogContext()

    def with_context(self, **fields: str) -> "StructuredLogger":
        return StructuredLogger(self._logger.name, context=replace(self.context, **fields))

    def debug(self, msg: str, **fields: Any) -> None:
        self._log(logging.DEBUG, msg, fields)

    def info(self, msg: str, **fields: Any) -> None:
        self._log(logging.INFO, msg, fields)

    def warning(self, msg: str, **fields: Any) -> None:
        self._log(logging.WARNING, msg, fields)

    def error(self, msg: str, **fields: Any) -> None:
        self._log(logging.ERROR, msg, fields)

    def _log(self, level: int, msg: str, fields: Dict[str, Any]) -> None:
        extra: Dict[str, Any] = {
            "run_id": self.context.run_id,
            "provider_name": self.context.provider_name,
        }
        if fields:
            extra["log_extra"] = fields
        self._logger.log(level, msg, extra=extra)


def setup_structured_logging(json_mode: Optional[bool] = None, level: str = "WARNING") -> None:
    """
    Configure the root logger with one stream handler.

    ``json_mode=None`` reads ``FOLIO_LOG_FORMAT`` (``"json"`` enables JSON lines).
    """
    if json_mode is None:
        json_mode = os.getenv("FOLIO_LOG_FORMAT", "").lower() == "json"

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.WARNING))
    root.handlers.clear()

    handler = logging.StreamHandler()
    if json_mode:
        handler.setFormatter(StructuredFormatter(datefmt="%Y-%m-%dT%H:%M:%S"))
    else:
        handler.setFormatter(HumanFormatter())
    handler.addFilter(RunContextFilter())
    root.addHandler(handler)
