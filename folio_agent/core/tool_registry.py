"""
Tool Registry — name → tool lookup and dispatch.
Handles registration, definition retrieval for prompts, and execution by name.
"""

from __future__ import annotations
import asyncio
import inspect
import logging
import time
from typing import Any, Optional

from .models import ToolCall, ToolDefinition, ToolResult

logger = logging.getLogger(__name__)


class ToolNotFoundError(KeyError):
    """No tool is registered under the requested name."""

    def __init__(self, name: str, available: list[str]):
        super().__init__(name)
        self.name = name
        self.available = available

    def __str__(self) -> str:
        return f"Tool not found: {self.name}"


class ToolRegistry:
    """Central registry for all agent tools.

    The name → tool map is only mutated at setup time; during a run it is
    read-only, so one registry can be shared by concurrent runs.
    """

    def __init__(self):
        self._tools: dict = {}  # name -> tool (anything with .definition and .execute)

    def register(self, tool) -> None:
        """Register a tool instance. A later tool with the same name replaces the earlier one."""
        name = tool.definition.name
        if name in self._tools:
            logger.debug(f"Replacing registered tool: {name}")
        self._tools[name] = tool

    def lookup(self, name: str):
        """Get a tool by name, or None."""
        return self._tools.get(name)

    def get_tool_definitions(self) -> list[ToolDefinition]:
        """Return all tool definitions in registration order."""
        return [tool.definition for tool in self._tools.values()]

    def get_tool_names(self) -> list[str]:
        return list(self._tools.keys())

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    async def execute(self, name: str, args: dict[str, Any]) -> Any:
        """Dispatch to the named tool. Raises ToolNotFoundError for unknown names."""
        tool = self._tools.get(name)
        if tool is None:
            raise ToolNotFoundError(name, self.get_tool_names())
        result = tool.execute(args)
        if inspect.isawaitable(result):
            result = await result
        return result

    async def execute_tool(self, call: ToolCall) -> ToolResult:
        """Execute a single tool call. Failures are captured in ToolResult.error, never raised."""
        t0 = time.perf_counter()
        try:
            result = await self.execute(call.name, call.arguments)
            return ToolResult(
                tool_call_id=call.id,
                name=call.name,
                result=result,
                duration_ms=(time.perf_counter() - t0) * 1000,
            )
        except Exception as e:
            logger.info(f"Tool '{call.name}' failed: {e}")
            return ToolResult(
                tool_call_id=call.id,
                name=call.name,
                result=None,
                error=str(e) or e.__class__.__name__,
                duration_ms=(time.perf_counter() - t0) * 1000,
            )

    async def execute_sequential(self, calls: list[ToolCall]) -> list[ToolResult]:
        """Execute calls one after another, each fully awaited before the next."""
        results: list[ToolResult] = []
        for call in calls:
            results.append(await self.execute_tool(call))
        return results

    async def execute_parallel(self, calls: list[ToolCall]) -> list[ToolResult]:
        """Execute calls concurrently. Results come back in call order, not completion order."""
        return list(await asyncio.gather(*(self.execute_tool(call) for call in calls)))
