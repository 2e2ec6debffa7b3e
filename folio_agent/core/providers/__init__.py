"""
LLM provider adapters. Importing this package registers every adapter with
ProviderFactory under its preset names.
"""

from .base import (
    PROVIDER_PRESETS,
    BaseLLMProvider,
    ProviderConnectionError,
    ProviderError,
    ProviderFactory,
    ProviderPreset,
    create_llm_provider,
)
from .openai_provider import OpenAICompatibleProvider
from .anthropic_provider import AnthropicProvider

__all__ = [
    "PROVIDER_PRESETS",
    "AnthropicProvider",
    "BaseLLMProvider",
    "OpenAICompatibleProvider",
    "ProviderConnectionError",
    "ProviderError",
    "ProviderFactory",
    "ProviderPreset",
    "create_llm_provider",
]
