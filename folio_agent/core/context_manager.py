"""
Context Manager — shrink an oversized conversation to fit a token budget.

Used only after a provider rejects a request as too long. Token cost is a
character estimate (~4 chars per token, message content only). The target is
80% of the reported budget so the model has room to answer.

Strategy, applied in order and stopping as soon as the target is met:
  Phase 1: Truncate tool-role content to 500 chars (split across its results)
  Phase 2: Truncate tool-role content to 200 chars (split across its results)
  Phase 3: Replace tool-role content with a placeholder
  Phase 4: Keep system + everything from the second-to-last user turn
  Phase 5: Keep system + everything from the last user turn
"""

from __future__ import annotations
import logging
import math
import re
from dataclasses import replace
from typing import Any, Optional

from .models import Message, ToolResult

logger = logging.getLogger(__name__)


_LIMIT_PATTERNS = (
    re.compile(r"Limit\s+(\d+)", re.IGNORECASE),                       # Groq
    re.compile(r"maximum context length is (\d+)", re.IGNORECASE),     # OpenAI
    re.compile(r"(\d{3,6})\s*tokens", re.IGNORECASE),
)


def extract_token_limit(raw: Any) -> Optional[int]:
    """Pull the model's token limit out of a failure message, if it states one."""
    from .error_catalog import error_text
    msg = error_text(raw)
    for pattern in _LIMIT_PATTERNS:
        match = pattern.search(msg)
        if match:
            return int(match.group(1))
    return None


class ContextManager:
    """
    Budget-driven compaction of one run's message history.

    Never mutates its input: every phase works on copies, so the caller's
    list stays intact if compaction turns out to be impossible.
    """

    CHARS_PER_TOKEN = 4
    TARGET_RATIO = 0.8
    TRUNCATE_LONG = 500
    TRUNCATE_SHORT = 200
    ELLIPSIS = "..."
    OMITTED = "[data omitted]"

    @classmethod
    def estimate_tokens(cls, text: str) -> int:
        return math.ceil(len(text or "") / cls.CHARS_PER_TOKEN)

    @classmethod
    def estimate_messages_tokens(cls, messages: list[Message]) -> int:
        return sum(cls.estimate_tokens(m.content) for m in messages)

    def compact(self, messages: list[Message], token_budget: int) -> Optional[list[Message]]:
        """
        Return a compacted copy under 80% of ``token_budget``, or None when
        the budget cannot be met (including when the system message alone is too big).
        """
        target = math.floor(token_budget * self.TARGET_RATIO)

        system_msg = messages[0] if messages and messages[0].role == "system" else None
        if system_msg is not None and self.estimate_tokens(system_msg.content) > target:
            logger.warning(
                f"System prompt alone ({self.estimate_tokens(system_msg.content)} tokens) "
                f"exceeds compaction target of {target}"
            )
            return None

        working = [replace(m) for m in messages]
        before = self.estimate_messages_tokens(working)

        phases = (
            ("truncate tool results to 500 chars", lambda ms: self._truncate_tool_messages(ms, self.TRUNCATE_LONG)),
            ("truncate tool results to 200 chars", lambda ms: self._truncate_tool_messages(ms, self.TRUNCATE_SHORT)),
            ("omit tool results", self._omit_tool_messages),
            ("keep last 2 exchanges", lambda ms: self._keep_last_exchanges(ms, 2)),
            ("keep last exchange", lambda ms: self._keep_last_exchanges(ms, 1)),
        )

        for label, phase in phases:
            if self.estimate_messages_tokens(working) <= target:
                break
            working = phase(working)
            logger.debug(
                f"Compaction phase '{label}': {self.estimate_messages_tokens(working)} tokens"
            )

        after = self.estimate_messages_tokens(working)
        if after > target:
            logger.warning(f"Compaction failed: {after} tokens still exceeds target of {target}")
            return None

        logger.info(
            f"Compacted context from {before} to {after} tokens "
            f"({len(messages)} → {len(working)} messages, target {target})"
        )
        return working

    # ── Phases ───────────────────────────────────────────────

    def _truncate_tool_messages(self, messages: list[Message], max_len: int) -> list[Message]:
        result = []
        for m in messages:
            if m.role == "tool" and len(m.content) > max_len:
                if m.tool_results:
                    # Results share the message budget; content mirrors what the adapters send
                    share = max(max_len // len(m.tool_results), 1)
                    results = self._shrink_results(m.tool_results, share)
                    m = replace(
                        m,
                        content="\n".join(tr.to_text() for tr in results),
                        tool_results=results,
                    )
                else:
                    m = replace(m, content=m.content[:max_len] + self.ELLIPSIS)
            result.append(m)
        return result

    def _omit_tool_messages(self, messages: list[Message]) -> list[Message]:
        return [
            replace(
                m,
                content=self.OMITTED,
                tool_results=self._shrink_results(m.tool_results, None),
            )
            if m.role == "tool" else m
            for m in messages
        ]

    def _shrink_results(
        self, results: Optional[list[ToolResult]], max_len: Optional[int]
    ) -> Optional[list[ToolResult]]:
        """
        Keep each result in step with its message's content, since the wire
        adapters serialize tool results rather than content. Pairing by
        tool_call_id is preserved. Shrunk results carry plain text, so
        ``to_text`` does not JSON-encode them a second time.
        """
        if results is None:
            return None
        shrunk = []
        for tr in results:
            if max_len is None:
                text = self.OMITTED
            else:
                text = tr.result if not tr.error and isinstance(tr.result, str) else tr.to_text()
                if len(text) > max_len:
                    text = text[:max_len] + self.ELLIPSIS
            if tr.error:
                shrunk.append(replace(tr, error=text))
            else:
                shrunk.append(replace(tr, result=text, compacted=True))
        return shrunk

    @staticmethod
    def _keep_last_exchanges(messages: list[Message], count: int) -> list[Message]:
        system_msg = messages[0] if messages and messages[0].role == "system" else None
        non_system = messages[1:] if system_msg is not None else messages

        user_indices: list[int] = []
        for i in range(len(non_system) - 1, -1, -1):
            if non_system[i].role == "user":
                user_indices.insert(0, i)
                if len(user_indices) >= count:
                    break

        if not user_indices:
            return messages

        kept = non_system[user_indices[0]:]
        return [system_msg, *kept] if system_msg is not None else list(kept)


def compact_messages(messages: list[Message], token_budget: int) -> Optional[list[Message]]:
    """Module-level shortcut for ``ContextManager().compact(...)``."""
    return ContextManager().compact(messages, token_budget)
