"""
Anthropic LLM Provider — Messages API with native tool_use blocks.
"""

from __future__ import annotations
import json
import logging
from typing import Any, Optional

from .base import BaseLLMProvider, ProviderError, ProviderFactory
from ..models import LLMResponse, Message, ToolCall, ToolDefinition

logger = logging.getLogger(__name__)


class AnthropicProvider(BaseLLMProvider):
    """Anthropic provider with native tool_use support."""

    error_label = "Anthropic"
    API_VERSION = "2023-06-01"

    def __init__(
        self,
        model: str = "claude-sonnet-4-5-20250929",
        base_url: str = "https://api.anthropic.com",
        api_key: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(model=model, base_url=base_url, api_key=api_key, **kwargs)

    @property
    def provider_name(self) -> str:
        return "anthropic"

    async def chat(
        self,
        messages: list[Message],
        tools: list[ToolDefinition],
        temperature: float,
    ) -> LLMResponse:
        system, anthropic_messages = self._convert_messages(messages)

        body: dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "temperature": temperature,
            "messages": anthropic_messages,
        }
        if system:
            body["system"] = system
        if tools:
            body["tools"] = self._convert_tools(tools)

        headers = {
            "Content-Type": "application/json",
            "x-api-key": self.api_key or "",
            "anthropic-version": self.API_VERSION,
        }
        data = await self._post_json(f"{self.base_url}/v1/messages", headers, body)
        return self._parse_response(data)

    def _convert_tools(self, tools: list[ToolDefinition]) -> list[dict]:
        """Convert to Anthropic tools format."""
        return [
            {
                "name": t.name,
                "description": t.description,
                "input_schema": self._parameters_schema(t),
            }
            for t in tools
        ]

    def _convert_messages(self, messages: list[Message]) -> tuple[str, list[dict]]:
        """Convert internal messages to Anthropic format. The system message travels out-of-band."""
        system = ""
        result = []
        for msg in messages:
            if msg.role == "system":
                system = msg.content
            elif msg.role == "user":
                result.append({"role": "user", "content": msg.content})
            elif msg.role == "assistant":
                blocks: list[dict] = []
                if msg.content:
                    blocks.append({"type": "text", "text": msg.content})
                for tc in msg.tool_calls or []:
                    blocks.append({
                        "type": "tool_use",
                        "id": tc.id,
                        "name": tc.name,
                        "input": tc.arguments,
                    })
                if len(blocks) == 1 and blocks[0]["type"] == "text":
                    content: Any = blocks[0]["text"]
                elif blocks:
                    content = blocks
                else:
                    content = msg.content
                result.append({"role": "assistant", "content": content})
            elif msg.role == "tool" and msg.tool_results:
                result.append({
                    "role": "user",
                    "content": [
                        {
                            "type": "tool_result",
                            "tool_use_id": tr.tool_call_id,
                            "content": tr.to_text(),
                        }
                        for tr in msg.tool_results
                    ],
                })
        return system, result

    def _parse_response(self, data: dict) -> LLMResponse:
        if not isinstance(data, dict) or not isinstance(data.get("content") or [], list):
            raise self._shape_error(data)
        logger.debug(f"Anthropic stop_reason={data.get('stop_reason')}")

        content = ""
        tool_calls = []
        for block in data.get("content") or []:
            if not isinstance(block, dict):
                raise self._shape_error(data)
            if block.get("type") == "text":
                text = block.get("text")
                content += text if isinstance(text, str) else ""
            elif block.get("type") == "tool_use":
                arguments = block.get("input")
                tool_calls.append(ToolCall(
                    id=block.get("id") or ToolCall.generate_id(),
                    name=block.get("name") or "",
                    arguments=arguments if isinstance(arguments, dict) else {},
                ))
        return LLMResponse(content=content, tool_calls=tool_calls)

    @staticmethod
    def _shape_error(data: Any) -> ProviderError:
        return ProviderError(
            "Unexpected response shape from Anthropic",
            status_code=200,
            body=json.dumps(data, default=str)[:1000],
        )


ProviderFactory.register("anthropic", AnthropicProvider)
