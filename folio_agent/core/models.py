"""
Universal data models for the agent runtime.
These are provider-agnostic — each provider converts to/from its native wire format.
"""

from __future__ import annotations
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Callable, Literal, Optional
import json
import random
import string
import time
import uuid


ParamType = Literal["string", "number", "boolean"]
Role = Literal["system", "user", "assistant", "tool"]


class AgentStatus(str, Enum):
    IDLE = "idle"
    PLANNING = "planning"
    EXECUTING_TOOLS = "executing_tools"
    VALIDATING = "validating"
    COMPACTING = "compacting"
    COMPLETE = "complete"
    ERROR = "error"
    MAX_STEPS_REACHED = "max_steps_reached"


@dataclass(frozen=True)
class ToolParameter:
    """One declared parameter of a tool."""
    name: str
    type: ParamType
    description: str
    required: bool = False
    enum: Optional[list[str]] = None


@dataclass(frozen=True)
class ToolDefinition:
    """Tool schema as declared by the tool author."""
    name: str
    description: str
    parameters: tuple[ToolParameter, ...] = ()

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": [
                {
                    "name": p.name,
                    "type": p.type,
                    "description": p.description,
                    "required": p.required,
                    **({"enum": list(p.enum)} if p.enum else {}),
                }
                for p in self.parameters
            ],
        }


@dataclass
class ToolCall:
    """A single tool invocation requested by the LLM."""
    id: str
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)

    @staticmethod
    def generate_id() -> str:
        return f"call_{uuid.uuid4().hex[:12]}"


@dataclass
class ToolResult:
    """Result from executing one tool call, paired to it by ``tool_call_id``."""
    tool_call_id: str
    name: str
    result: Any = None
    error: Optional[str] = None
    duration_ms: float = 0.0
    compacted: bool = False

    @property
    def success(self) -> bool:
        return self.error is None

    def to_text(self) -> str:
        """Text form sent back to the model: the error, or the serialized result."""
        if self.error:
            return self.error
        if self.compacted:
            return str(self.result)
        return serialize_result(self.result)


@dataclass
class Message:
    """A single message in the conversation. Order is the prompt."""
    role: Role
    content: str
    tool_calls: Optional[list[ToolCall]] = None
    tool_results: Optional[list[ToolResult]] = None


@dataclass
class LLMResponse:
    """Normalized provider response: text plus zero or more tool calls."""
    content: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)

    @property
    def has_tool_calls(self) -> bool:
        return len(self.tool_calls) > 0


@dataclass
class ValidationResult:
    is_valid: bool
    issues: list[str] = field(default_factory=list)

    @property
    def needs_refinement(self) -> bool:
        return len(self.issues) > 0


@dataclass
class AgentStep:
    """One provider round-trip plus any tool execution and validation it triggered."""
    step_number: int
    status: AgentStatus
    tool_calls: list[ToolCall] = field(default_factory=list)
    tool_results: list[ToolResult] = field(default_factory=list)
    validation: Optional[ValidationResult] = None
    response: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "step_number": self.step_number,
            "status": self.status.value,
            "tool_calls": [
                {"id": tc.id, "name": tc.name, "arguments": tc.arguments}
                for tc in self.tool_calls
            ],
            "tool_results": [
                {
                    "tool_call_id": tr.tool_call_id,
                    "name": tr.name,
                    "result": tr.result,
                    "error": tr.error,
                    "duration_ms": tr.duration_ms,
                }
                for tr in self.tool_results
            ],
            "validation": (
                {
                    "is_valid": self.validation.is_valid,
                    "issues": list(self.validation.issues),
                    "needs_refinement": self.validation.needs_refinement,
                }
                if self.validation else None
            ),
            "response": self.response,
        }


@dataclass
class AgentRun:
    """Trace of one complete invocation of the agent loop."""
    id: str
    query: str
    steps: list[AgentStep] = field(default_factory=list)
    final_response: Optional[str] = None
    status: AgentStatus = AgentStatus.IDLE
    total_duration_ms: float = 0.0

    @staticmethod
    def generate_id() -> str:
        suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=7))
        return f"{int(time.time() * 1000)}-{suffix}"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "query": self.query,
            "steps": [s.to_dict() for s in self.steps],
            "final_response": self.final_response,
            "status": self.status.value,
            "total_duration_ms": self.total_duration_ms,
        }


@dataclass
class AgentCallbacks:
    """Optional observation hooks. Return values are ignored."""
    on_status_change: Optional[Callable[[AgentStatus], Any]] = None
    on_step_update: Optional[Callable[[AgentStep], Any]] = None
    on_error: Optional[Callable[[Any], Any]] = None  # receives an AgentError
    on_compaction: Optional[Callable[[], Any]] = None


DEFAULT_SYSTEM_PROMPT = """You are a portfolio research assistant. You help users understand their investment portfolio by analyzing their holdings, news, strategy alignment, and market data.

You have access to tools that provide real portfolio data. Always use these tools to ground your answers in facts — never make up numbers or holdings.

When answering:
- Be concise and specific
- Reference actual portfolio data (ticker symbols, dollar amounts, percentages)
- Highlight risks and opportunities
- If the user asks about something outside your tools' capabilities, say so clearly

Think step by step:
1. Identify what data you need to answer the question
2. Call the appropriate tools to gather that data
3. Synthesize the results into a clear, actionable answer"""


@dataclass
class AgentConfig:
    """Per-run settings. Defaults are applied where ``run_agent`` is called."""
    max_steps: int = 10
    max_tool_calls_per_step: int = 3
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    temperature: float = 0.3
    callbacks: Optional[AgentCallbacks] = None
    parallel_tool_calls: bool = False
    # Used when a token_limit failure does not say what the limit is
    default_token_budget: int = 6000

    def validate(self) -> None:
        if self.max_steps < 0:
            raise ValueError(f"max_steps must be >= 0, got {self.max_steps}")
        if self.max_tool_calls_per_step < 1:
            raise ValueError(
                f"max_tool_calls_per_step must be >= 1, got {self.max_tool_calls_per_step}"
            )
        if self.default_token_budget < 1:
            raise ValueError(
                f"default_token_budget must be >= 1, got {self.default_token_budget}"
            )

    @classmethod
    def from_dict(cls, data: Optional[dict], callbacks: Optional[AgentCallbacks] = None) -> "AgentConfig":
        """Build a config from a mapping such as the ``agent`` section of the YAML config."""
        known = {f.name for f in fields(cls)} - {"callbacks"}
        kwargs = {k: v for k, v in (data or {}).items() if k in known and v is not None}
        return cls(callbacks=callbacks, **kwargs)


def serialize_result(value: Any) -> str:
    """JSON-serialize a tool result for the model; non-JSON values fall back to str()."""
    try:
        return json.dumps(value, default=str)
    except (TypeError, ValueError):
        return str(value)
