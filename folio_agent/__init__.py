"""
folio-agent — a tool-using LLM agent runtime for portfolio research.

The runtime has no UI or storage dependencies: give it a provider, a tool
registry and a question, and it returns a structured run trace.
"""

from .core.agent import Agent, RunCancelledError, build_system_prompt, run_agent
from .core.context_manager import ContextManager, compact_messages, extract_token_limit
from .core.error_catalog import AgentError, ErrorCode, classify_error
from .core.loop_detector import LoopDetector
from .core.models import (
    DEFAULT_SYSTEM_PROMPT,
    AgentCallbacks,
    AgentConfig,
    AgentRun,
    AgentStatus,
    AgentStep,
    LLMResponse,
    Message,
    ToolCall,
    ToolDefinition,
    ToolParameter,
    ToolResult,
    ValidationResult,
)
from .core.providers import (
    PROVIDER_PRESETS,
    AnthropicProvider,
    BaseLLMProvider,
    OpenAICompatibleProvider,
    ProviderConnectionError,
    ProviderError,
    ProviderFactory,
    ProviderPreset,
    create_llm_provider,
)
from .core.tool_registry import ToolNotFoundError, ToolRegistry
from .core.validator import validate_step_results
from .tools import BaseTool, FunctionTool, Tool, ToolError

__version__ = "0.1.0"

__all__ = [
    "Agent",
    "AgentCallbacks",
    "AgentConfig",
    "AgentError",
    "AgentRun",
    "AgentStatus",
    "AgentStep",
    "AnthropicProvider",
    "BaseLLMProvider",
    "BaseTool",
    "ContextManager",
    "DEFAULT_SYSTEM_PROMPT",
    "ErrorCode",
    "FunctionTool",
    "LLMResponse",
    "LoopDetector",
    "Message",
    "OpenAICompatibleProvider",
    "PROVIDER_PRESETS",
    "ProviderConnectionError",
    "ProviderError",
    "ProviderFactory",
    "ProviderPreset",
    "RunCancelledError",
    "Tool",
    "ToolCall",
    "ToolDefinition",
    "ToolError",
    "ToolNotFoundError",
    "ToolParameter",
    "ToolRegistry",
    "ToolResult",
    "ValidationResult",
    "build_system_prompt",
    "classify_error",
    "compact_messages",
    "create_llm_provider",
    "extract_token_limit",
    "run_agent",
    "validate_step_results",
]
