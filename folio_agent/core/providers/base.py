"""
Abstract base class for LLM providers.
Every wire-protocol adapter implements the same ``chat()`` contract, so the
agent loop never branches on which provider it is talking to.
"""

from __future__ import annotations
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from ..models import LLMResponse, Message, ToolDefinition

logger = logging.getLogger(__name__)


class ProviderError(Exception):
    """The provider call did not succeed. Carries what the error classifier needs."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class ProviderConnectionError(ProviderError):
    """No response at all: DNS, refused connection, TLS, timeout."""


class BaseLLMProvider(ABC):
    """Abstract LLM provider interface."""

    # Prefix used in "<label> API error (<status>): <body>" messages
    error_label = "LLM"

    def __init__(
        self,
        model: str,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 120.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        **kwargs,
    ):
        self.model = model
        self.base_url = base_url.rstrip("/")
        self._api_key = api_key
        self.timeout = timeout
        self.max_tokens = kwargs.get("max_tokens", 4096)
        # Injected in tests (httpx.MockTransport); None means a real network transport
        self._transport = transport

    @property
    def api_key(self) -> Optional[str]:
        """Access the API key (property to avoid accidental logging)."""
        return self._api_key

    def __repr__(self) -> str:
        """Mask API key in repr to prevent accidental logging."""
        masked = f"***{self._api_key[-4:]}" if self._api_key and len(self._api_key) > 4 else "***"
        return (
            f"{self.__class__.__name__}(model={self.model!r}, "
            f"base_url={self.base_url!r}, api_key={masked!r})"
        )

    @property
    def provider_name(self) -> str:
        return self.__class__.__name__

    @abstractmethod
    async def chat(
        self,
        messages: list[Message],
        tools: list[ToolDefinition],
        temperature: float,
    ) -> LLMResponse:
        """
        Send the conversation to the LLM and return normalized text + tool calls.

        Args:
            messages: Full conversation, system message first
            tools: Tool definitions to offer (empty list offers none)
            temperature: Sampling temperature

        Raises:
            ProviderError: on any non-success outcome
        """
        pass

    async def _post_json(self, url: str, headers: dict[str, str], body: dict[str, Any]) -> dict:
        """POST a JSON body and return the decoded JSON response, or raise ProviderError."""
        logger.debug(f"{self.provider_name} POST {url} model={self.model}")
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(url, headers=headers, json=body)
        except httpx.TransportError as e:
            raise ProviderConnectionError(
                f"Network error: cannot reach {self.base_url} ({e.__class__.__name__}: {e})"
            ) from e

        if response.is_error:
            text = response.text
            logger.debug(f"{self.provider_name} error body: {text[:500]}")
            raise ProviderError(
                f"{self.error_label} API error ({response.status_code}): {text}",
                status_code=response.status_code,
                body=text,
            )

        try:
            return response.json()
        except ValueError as e:
            raise ProviderError(
                f"Invalid JSON from {self.provider_name}: {e}",
                status_code=response.status_code,
                body=response.text,
            ) from e

    @staticmethod
    def _parameters_schema(tool: ToolDefinition) -> dict:
        """JSON-schema object for a tool's declared parameter list."""
        properties = {}
        for p in tool.parameters:
            prop: dict[str, Any] = {"type": p.type, "description": p.description}
            if p.enum:
                prop["enum"] = list(p.enum)
            properties[p.name] = prop
        return {
            "type": "object",
            "properties": properties,
            "required": [p.name for p in tool.parameters if p.required],
        }


# ── Presets & factory ───────────────────────────────────────────────

@dataclass(frozen=True)
class ProviderPreset:
    provider: str
    label: str
    default_model: str
    default_base_url: str
    requires_api_key: bool


PROVIDER_PRESETS: dict[str, ProviderPreset] = {
    "ollama": ProviderPreset(
        provider="ollama",
        label="Ollama (Local)",
        default_model="llama3.1:8b",
        default_base_url="http://localhost:11434",
        requires_api_key=False,
    ),
    "groq": ProviderPreset(
        provider="groq",
        label="Groq",
        default_model="llama-3.1-70b-versatile",
        default_base_url="https://api.groq.com/openai",
        requires_api_key=True,
    ),
    "openai": ProviderPreset(
        provider="openai",
        label="OpenAI",
        default_model="gpt-4o-mini",
        default_base_url="https://api.openai.com",
        requires_api_key=True,
    ),
    "together": ProviderPreset(
        provider="together",
        label="Together AI",
        default_model="meta-llama/Llama-3.1-70B-Instruct-Turbo",
        default_base_url="https://api.together.xyz",
        requires_api_key=True,
    ),
    "anthropic": ProviderPreset(
        provider="anthropic",
        label="Anthropic",
        default_model="claude-sonnet-4-5-20250929",
        default_base_url="https://api.anthropic.com",
        requires_api_key=True,
    ),
}


class ProviderFactory:
    """Create an LLM provider from a preset name or a loaded config."""

    _providers: dict[str, type[BaseLLMProvider]] = {}

    @classmethod
    def register(cls, name: str, provider_class: type[BaseLLMProvider]):
        cls._providers[name] = provider_class

    @classmethod
    def available(cls) -> list[str]:
        return list(cls._providers.keys())

    @classmethod
    def build(
        cls,
        provider: str,
        model: Optional[str] = None,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        **kwargs,
    ) -> BaseLLMProvider:
        if provider not in cls._providers or provider not in PROVIDER_PRESETS:
            raise ValueError(
                f"Unknown provider: {provider}. "
                f"Available: {cls.available()}"
            )
        preset = PROVIDER_PRESETS[provider]
        if provider == "anthropic" and not api_key:
            raise ValueError("Anthropic provider requires an API key")
        if preset.requires_api_key and not api_key:
            logger.warning(f"Provider '{provider}' usually requires an API key; none configured")

        provider_class = cls._providers[provider]
        return provider_class(
            model=model or preset.default_model,
            base_url=base_url or preset.default_base_url,
            api_key=api_key,
            **kwargs,
        )

    @classmethod
    def create(cls, config: dict) -> BaseLLMProvider:
        """
        Create provider from config dict.

        Config structure:
            llm:
              provider: "ollama"
              model: "llama3.1:8b"
              api_key: null
              base_url: null
              timeout: 120
              max_tokens: 4096
        """
        llm_config = config.get("llm", {}) or {}
        extra = {
            key: llm_config[key]
            for key in ("timeout", "max_tokens")
            if llm_config.get(key) is not None
        }
        return cls.build(
            llm_config.get("provider", "ollama"),
            model=llm_config.get("model"),
            api_key=llm_config.get("api_key"),
            base_url=llm_config.get("base_url"),
            **extra,
        )


def create_llm_provider(
    provider: str,
    model: Optional[str] = None,
    api_key: Optional[str] = None,
    base_url: Optional[str] = None,
    **kwargs,
) -> BaseLLMProvider:
    """Build a provider for a preset name, filling model/base_url from the preset."""
    return ProviderFactory.build(provider, model=model, api_key=api_key, base_url=base_url, **kwargs)
