"""
OpenAI-compatible chat-completions provider.

Speaks the ``/v1/chat/completions`` wire protocol directly over httpx, so the
same adapter serves OpenAI, Groq, Together and Ollama.
"""

from __future__ import annotations
import json
import logging
from typing import Any, Optional

from .base import BaseLLMProvider, ProviderError, ProviderFactory
from ..models import LLMResponse, Message, ToolCall, ToolDefinition

logger = logging.getLogger(__name__)


class OpenAICompatibleProvider(BaseLLMProvider):
    """Provider for any OpenAI-compatible endpoint, with native tool calling."""

    def __init__(self, model: str, base_url: str, api_key: Optional[str] = None, **kwargs):
        super().__init__(model=model, base_url=base_url, api_key=api_key, **kwargs)

    @property
    def provider_name(self) -> str:
        return "openai-compatible"

    async def chat(
        self,
        messages: list[Message],
        tools: list[ToolDefinition],
        temperature: float,
    ) -> LLMResponse:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        body: dict[str, Any] = {
            "model": self.model,
            "messages": self._convert_messages(messages),
            "temperature": temperature,
        }
        if tools:
            body["tools"] = self._convert_tools(tools)
            body["tool_choice"] = "auto"

        data = await self._post_json(f"{self.base_url}/v1/chat/completions", headers, body)
        return self._parse_response(data)

    def _convert_tools(self, tools: list[ToolDefinition]) -> list[dict]:
        """Convert to OpenAI tools format."""
        return [
            {
                "type": "function",
                "function": {
                    "name": t.name,
                    "description": t.description,
                    "parameters": self._parameters_schema(t),
                },
            }
            for t in tools
        ]

    def _convert_messages(self, messages: list[Message]) -> list[dict]:
        """Convert internal messages to OpenAI format."""
        result = []
        for msg in messages:
            if msg.role == "assistant" and msg.tool_calls:
                result.append({
                    "role": "assistant",
                    "content": msg.content or None,
                    "tool_calls": [
                        {
                            "id": tc.id,
                            "type": "function",
                            "function": {
                                "name": tc.name,
                                "arguments": json.dumps(tc.arguments),
                            },
                        }
                        for tc in msg.tool_calls
                    ],
                })
            elif msg.role == "tool" and msg.tool_results:
                # One role=tool message per result, each tied to its call
                for tr in msg.tool_results:
                    result.append({
                        "role": "tool",
                        "content": tr.to_text(),
                        "tool_call_id": tr.tool_call_id,
                    })
            else:
                result.append({
                    "role": msg.role,
                    "content": msg.content,
                })
        return result

    def _parse_response(self, data: dict) -> LLMResponse:
        choices = (data.get("choices") if isinstance(data, dict) else None) or []
        if not choices:
            raise ProviderError("No response from LLM", status_code=200, body=json.dumps(data)[:1000])

        choice = choices[0] if isinstance(choices, list) else None
        message = choice.get("message") if isinstance(choice, dict) else None
        if not isinstance(message, dict):
            raise self._shape_error(data)

        tool_calls = []
        for tc in message.get("tool_calls") or []:
            function = tc.get("function") if isinstance(tc, dict) else None
            if not isinstance(function, dict):
                raise self._shape_error(data)
            tool_calls.append(ToolCall(
                id=tc.get("id") or ToolCall.generate_id(),
                name=function.get("name") or "",
                arguments=self._parse_arguments(function.get("arguments")),
            ))

        content = message.get("content")
        return LLMResponse(content=content if isinstance(content, str) else "", tool_calls=tool_calls)

    @staticmethod
    def _shape_error(data: Any) -> ProviderError:
        return ProviderError(
            "Unexpected response shape from LLM",
            status_code=200,
            body=json.dumps(data, default=str)[:1000],
        )

    @staticmethod
    def _parse_arguments(raw: Any) -> dict:
        """Malformed argument text degrades to an empty map instead of failing the call."""
        if isinstance(raw, dict):
            return raw
        if not raw:
            return {}
        try:
            parsed = json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            logger.warning(f"Malformed tool call arguments, using empty map: {str(raw)[:200]}")
            return {}
        return parsed if isinstance(parsed, dict) else {}


for _name in ("ollama", "groq", "openai", "together"):
    ProviderFactory.register(_name, OpenAICompatibleProvider)
