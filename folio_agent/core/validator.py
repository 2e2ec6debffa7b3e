"""
Step Validator — inspects one step's tool results and produces refinement hints.
"""

from __future__ import annotations
from collections.abc import Mapping
from typing import Any

from .loop_detector import LoopDetector
from .models import ToolResult, ValidationResult


ALL_ERRORS_ISSUE = "All tool calls returned errors. Try different tools or parameters."
ALL_EMPTY_ISSUE = "All tool calls returned empty results. Consider using different tools or queries."
LOOP_ISSUE = (
    "Detected repeated tool call pattern. Break the loop by trying a different "
    "approach or summarizing what you have."
)


def is_empty_result(result: Any) -> bool:
    if result is None:
        return True
    if isinstance(result, str):
        return result.strip() == ""
    if isinstance(result, (list, tuple, set, frozenset)):
        return len(result) == 0
    if isinstance(result, Mapping):
        return len(result) == 0
    return False


def validate_step_results(tool_results: list[ToolResult], loop_detector: LoopDetector) -> ValidationResult:
    issues: list[str] = []

    if tool_results and all(tr.error for tr in tool_results):
        issues.append(ALL_ERRORS_ISSUE)

    empty = [tr for tr in tool_results if not tr.error and is_empty_result(tr.result)]
    if tool_results and len(empty) == len(tool_results):
        issues.append(ALL_EMPTY_ISSUE)

    if loop_detector.is_looping():
        issues.append(LOOP_ISSUE)

    return ValidationResult(is_valid=not issues, issues=issues)
