"""
Loop Detector — flags a tool-call pattern that keeps repeating.

One fingerprint is recorded per step: every call rendered as
``name(<canonical JSON args>)``, sorted, joined with ``|``. Matching is exact.
"""

from __future__ import annotations
import json
import logging

from .models import ToolCall

logger = logging.getLogger(__name__)


class LoopDetector:
    """Tracks per-step tool-call fingerprints for one run."""

    # Earlier occurrences of the latest pattern needed to call it a loop
    REPEAT_THRESHOLD = 2

    def __init__(self):
        self._patterns: list[str] = []

    @property
    def patterns(self) -> tuple[str, ...]:
        return tuple(self._patterns)

    @staticmethod
    def fingerprint(tool_calls: list[ToolCall]) -> str:
        return "|".join(sorted(
            f"{tc.name}({json.dumps(tc.arguments, sort_keys=True, default=str)})"
            for tc in tool_calls
        ))

    def record_calls(self, tool_calls: list[ToolCall]) -> None:
        self._patterns.append(self.fingerprint(tool_calls))

    def is_looping(self) -> bool:
        """True once the latest pattern has been seen 3+ times in total."""
        if len(self._patterns) < 2:
            return False
        latest = self._patterns[-1]
        repeats = self._patterns[:-1].count(latest)
        if repeats >= self.REPEAT_THRESHOLD:
            logger.debug(f"Loop detected: pattern {latest!r} seen {repeats + 1} times")
            return True
        return False

    def reset(self) -> None:
        self._patterns.clear()
