"""Tool contract helpers for embedding applications."""

from .base import BaseTool, FunctionTool, Tool, ToolError

__all__ = ["BaseTool", "FunctionTool", "Tool", "ToolError"]
