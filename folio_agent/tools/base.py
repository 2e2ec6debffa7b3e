"""
Tool contract helpers.

Anything with a ``definition`` (ToolDefinition) and an ``execute(args)`` method
satisfies the contract — the registry never checks for a base class. These helpers
cover the two common ways to write one:

  - ``BaseTool``: subclass and declare name/description/parameters as class attributes.
  - ``FunctionTool``: wrap an existing sync or async callable.
"""

from __future__ import annotations
import inspect
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Optional, Protocol, Sequence, Union, runtime_checkable

from ..core.models import ToolDefinition, ToolParameter


class ToolError(Exception):
    """Raised by a tool when its arguments are invalid or its data is unavailable."""


@runtime_checkable
class Tool(Protocol):
    """Structural contract every registered tool satisfies."""

    @property
    def definition(self) -> ToolDefinition: ...

    def execute(self, args: dict[str, Any]) -> Union[Any, Awaitable[Any]]: ...


class BaseTool(ABC):
    """Abstract base class for class-declared tools."""

    name: str = ""
    description: str = ""
    parameters: Sequence[ToolParameter] = ()

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name=self.name,
            description=self.description,
            parameters=tuple(self.parameters),
        )

    @abstractmethod
    async def execute(self, args: dict[str, Any]) -> Any:
        """
        Run the tool and return any JSON-friendly value.
        Raise ToolError for invalid or unavailable arguments.
        """
        pass

    def _require(self, args: dict[str, Any], key: str) -> Any:
        """Fetch a required argument or fail with ToolError."""
        if key not in args or args[key] is None:
            raise ToolError(f"Missing required argument: {key}")
        return args[key]


class FunctionTool:
    """Adapts a plain callable (sync or async) into a tool."""

    def __init__(
        self,
        name: str,
        description: str,
        fn: Callable[[dict[str, Any]], Any],
        parameters: Optional[Sequence[ToolParameter]] = None,
    ):
        self._definition = ToolDefinition(
            name=name,
            description=description,
            parameters=tuple(parameters or ()),
        )
        self._fn = fn

    @property
    def definition(self) -> ToolDefinition:
        return self._definition

    async def execute(self, args: dict[str, Any]) -> Any:
        result = self._fn(args)
        if inspect.isawaitable(result):
            result = await result
        return result

    def __repr__(self) -> str:
        return f"FunctionTool(name={self._definition.name!r})"
