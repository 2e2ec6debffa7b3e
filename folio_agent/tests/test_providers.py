"""
Provider adapter tests — wire shapes for both protocols, error mapping,
presets and factory. Uses httpx.MockTransport, no network.
"""

import json

import httpx
import pytest

from folio_agent.core.models import (
    LLMResponse, Message, ToolCall, ToolDefinition, ToolParameter, ToolResult,
)
from folio_agent.core.providers import (
    PROVIDER_PRESETS,
    AnthropicProvider,
    BaseLLMProvider,
    OpenAICompatibleProvider,
    ProviderConnectionError,
    ProviderError,
    ProviderFactory,
    create_llm_provider,
)


# ──────────────────────────────────────────────────
# Helpers
# ──────────────────────────────────────────────────

HOLDINGS = ToolDefinition(
    name="get_holdings",
    description="List holdings",
    parameters=(
        ToolParameter(name="account", type="string", description="Account id", required=True),
        ToolParameter(name="sort", type="string", description="Sort key", enum=["value", "ticker"]),
    ),
)


class Recorder:
    """MockTransport handler that records requests and replays one response."""

    def __init__(self, status=200, payload=None, text=None):
        self.requests = []
        self._status = status
        self._payload = payload
        self._text = text

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self._text is not None:
            return httpx.Response(self._status, text=self._text)
        return httpx.Response(self._status, json=self._payload)

    @property
    def body(self) -> dict:
        return json.loads(self.requests[-1].content)


def openai_provider(handler, api_key="sk-test"):
    return OpenAICompatibleProvider(
        model="gpt-4o-mini", base_url="https://api.example.com/", api_key=api_key,
        transport=httpx.MockTransport(handler),
    )


def anthropic_provider(handler):
    return AnthropicProvider(
        model="claude-test", api_key="ak-test", transport=httpx.MockTransport(handler),
    )


def conversation():
    return [
        Message(role="system", content="You are Folio."),
        Message(role="user", content="What do I hold?"),
        Message(
            role="assistant", content="",
            tool_calls=[ToolCall(id="c1", name="get_holdings", arguments={"account": "main"})],
        ),
        Message(
            role="tool", content="...",
            tool_results=[
                ToolResult(tool_call_id="c1", name="get_holdings", result=[{"ticker": "AAPL"}]),
            ],
        ),
    ]


# ──────────────────────────────────────────────────
# Protocol A
# ──────────────────────────────────────────────────

class TestOpenAICompatibleProvider:

    @pytest.mark.asyncio
    async def test_request_shape(self):
        rec = Recorder(payload={"choices": [{"message": {"content": "You hold AAPL."}}]})
        provider = openai_provider(rec)

        response = await provider.chat(conversation(), [HOLDINGS], 0.3)

        assert response == LLMResponse(content="You hold AAPL.")
        req = rec.requests[0]
        assert str(req.url) == "https://api.example.com/v1/chat/completions"
        assert req.headers["authorization"] == "Bearer sk-test"
        body = rec.body
        assert body["model"] == "gpt-4o-mini"
        assert body["temperature"] == 0.3
        assert body["tool_choice"] == "auto"
        assert body["tools"] == [{
            "type": "function",
            "function": {
                "name": "get_holdings",
                "description": "List holdings",
                "parameters": {
                    "type": "object",
                    "properties": {
                        "account": {"type": "string", "description": "Account id"},
                        "sort": {"type": "string", "description": "Sort key", "enum": ["value", "ticker"]},
                    },
                    "required": ["account"],
                },
            },
        }]
        msgs = body["messages"]
        assert msgs[0] == {"role": "system", "content": "You are Folio."}
        assert msgs[2] == {
            "role": "assistant",
            "content": None,
            "tool_calls": [{
                "id": "c1", "type": "function",
                "function": {"name": "get_holdings", "arguments": '{"account": "main"}'},
            }],
        }
        assert msgs[3] == {"role": "tool", "content": '[{"ticker": "AAPL"}]', "tool_call_id": "c1"}

    @pytest.mark.asyncio
    async def test_tool_messages_exploded_per_result(self):
        rec = Recorder(payload={"choices": [{"message": {"content": "ok"}}]})
        msgs = [
            Message(role="user", content="q"),
            Message(role="tool", content="a\nb", tool_results=[
                ToolResult(tool_call_id="x", name="t", result="a"),
                ToolResult(tool_call_id="y", name="t", error="failed"),
            ]),
        ]
        await openai_provider(rec).chat(msgs, [], 0.1)
        sent = rec.body["messages"]
        assert sent[1:] == [
            {"role": "tool", "content": '"a"', "tool_call_id": "x"},
            {"role": "tool", "content": "failed", "tool_call_id": "y"},
        ]

    @pytest.mark.asyncio
    async def test_no_tools_no_auth(self):
        rec = Recorder(payload={"choices": [{"message": {"content": "hi"}}]})
        await openai_provider(rec, api_key=None).chat([Message(role="user", content="q")], [], 0.3)
        assert "tools" not in rec.body
        assert "tool_choice" not in rec.body
        assert "authorization" not in rec.requests[0].headers

    @pytest.mark.asyncio
    async def test_parses_tool_calls_and_tolerates_bad_arguments(self):
        rec = Recorder(payload={"choices": [{"message": {
            "content": None,
            "tool_calls": [
                {"id": "t1", "type": "function", "function": {"name": "get_holdings", "arguments": '{"account": "main"}'}},
                {"id": "t2", "type": "function", "function": {"name": "get_news", "arguments": "{not json"}},
                {"type": "function", "function": {"name": "get_prices"}},
            ],
        }}]})

        response = await openai_provider(rec).chat([Message(role="user", content="q")], [HOLDINGS], 0.3)

        assert response.content == ""
        assert [tc.name for tc in response.tool_calls] == ["get_holdings", "get_news", "get_prices"]
        assert response.tool_calls[0].arguments == {"account": "main"}
        assert response.tool_calls[1].arguments == {}
        assert response.tool_calls[2].arguments == {}
        assert response.tool_calls[2].id.startswith("call_")

    @pytest.mark.asyncio
    async def test_missing_choices(self):
        rec = Recorder(payload={"choices": []})
        with pytest.raises(ProviderError, match="No response from LLM"):
            await openai_provider(rec).chat([Message(role="user", content="q")], [], 0.3)

    @pytest.mark.asyncio
    async def test_error_status(self):
        rec = Recorder(status=429, text='{"error": "Rate limit reached"}')
        with pytest.raises(ProviderError) as exc_info:
            await openai_provider(rec).chat([Message(role="user", content="q")], [], 0.3)
        err = exc_info.value
        assert err.status_code == 429
        assert str(err) == 'LLM API error (429): {"error": "Rate limit reached"}'
        assert err.body == '{"error": "Rate limit reached"}'

    @pytest.mark.asyncio
    async def test_transport_failure(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(ProviderConnectionError, match="Network error"):
            await openai_provider(refuse).chat([Message(role="user", content="q")], [], 0.3)

    @pytest.mark.asyncio
    async def test_invalid_json_body(self):
        rec = Recorder(status=200, text="<html>gateway</html>")
        with pytest.raises(ProviderError, match="Invalid JSON"):
            await openai_provider(rec).chat([Message(role="user", content="q")], [], 0.3)

    @pytest.mark.asyncio
    async def test_undecodable_body(self):
        def handler(request):
            return httpx.Response(200, content=b"\x80\x81 not utf-8", headers={"content-type": "application/json"})

        with pytest.raises(ProviderError, match="Invalid JSON") as exc_info:
            await openai_provider(handler).chat([Message(role="user", content="q")], [], 0.3)
        assert exc_info.value.status_code == 200

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [
        {"choices": [None]},
        {"choices": [{"message": "text"}]},
        {"choices": {"0": {"message": {}}}},
        {"choices": [{"message": {"tool_calls": ["bad"]}}]},
        {"choices": [{"message": {"tool_calls": [{"id": "t1", "function": None}]}}]},
    ])
    async def test_unexpected_shape_is_typed(self, payload):
        with pytest.raises(ProviderError, match="Unexpected response shape") as exc_info:
            await openai_provider(Recorder(payload=payload)).chat([Message(role="user", content="q")], [], 0.3)
        assert exc_info.value.status_code == 200
        assert exc_info.value.body

    @pytest.mark.asyncio
    async def test_non_string_content_becomes_empty(self):
        rec = Recorder(payload={"choices": [{"message": {"content": ["parts"]}}]})
        response = await openai_provider(rec).chat([Message(role="user", content="q")], [], 0.3)
        assert response == LLMResponse(content="")


# ──────────────────────────────────────────────────
# Protocol B
# ──────────────────────────────────────────────────

class TestAnthropicProvider:

    @pytest.mark.asyncio
    async def test_request_shape(self):
        rec = Recorder(payload={"content": [{"type": "text", "text": "You hold AAPL."}]})
        provider = anthropic_provider(rec)

        response = await provider.chat(conversation(), [HOLDINGS], 0.2)

        assert response == LLMResponse(content="You hold AAPL.")
        req = rec.requests[0]
        assert str(req.url) == "https://api.anthropic.com/v1/messages"
        assert req.headers["x-api-key"] == "ak-test"
        assert req.headers["anthropic-version"] == "2023-06-01"
        body = rec.body
        assert body["system"] == "You are Folio."
        assert body["max_tokens"] == 4096
        assert body["temperature"] == 0.2
        assert body["tools"][0] == {
            "name": "get_holdings",
            "description": "List holdings",
            "input_schema": {
                "type": "object",
                "properties": {
                    "account": {"type": "string", "description": "Account id"},
                    "sort": {"type": "string", "description": "Sort key", "enum": ["value", "ticker"]},
                },
                "required": ["account"],
            },
        }
        assert body["messages"] == [
            {"role": "user", "content": "What do I hold?"},
            {"role": "assistant", "content": [
                {"type": "tool_use", "id": "c1", "name": "get_holdings", "input": {"account": "main"}},
            ]},
            {"role": "user", "content": [
                {"type": "tool_result", "tool_use_id": "c1", "content": '[{"ticker": "AAPL"}]'},
            ]},
        ]

    @pytest.mark.asyncio
    async def test_text_only_assistant_is_unwrapped(self):
        rec = Recorder(payload={"content": []})
        msgs = [
            Message(role="user", content="q"),
            Message(role="assistant", content="plain answer"),
            Message(role="assistant", content="thinking", tool_calls=[ToolCall(id="c", name="t")]),
            Message(role="user", content="next"),
        ]
        await anthropic_provider(rec).chat(msgs, [], 0.3)
        sent = rec.body["messages"]
        assert sent[1] == {"role": "assistant", "content": "plain answer"}
        assert sent[2]["content"][0] == {"type": "text", "text": "thinking"}
        assert sent[2]["content"][1]["type"] == "tool_use"

    @pytest.mark.asyncio
    async def test_omits_empty_system_and_tools(self):
        rec = Recorder(payload={"content": [{"type": "text", "text": "hi"}]})
        await anthropic_provider(rec).chat([Message(role="user", content="q")], [], 0.3)
        assert "system" not in rec.body
        assert "tools" not in rec.body

    @pytest.mark.asyncio
    async def test_parses_blocks(self):
        rec = Recorder(payload={"content": [
            {"type": "text", "text": "Let me "},
            {"type": "tool_use", "id": "tu1", "name": "get_news"},
            {"type": "text", "text": "check."},
        ]})
        response = await anthropic_provider(rec).chat([Message(role="user", content="q")], [], 0.3)
        assert response.content == "Let me check."
        assert response.tool_calls == [ToolCall(id="tu1", name="get_news", arguments={})]

    @pytest.mark.asyncio
    async def test_error_label(self):
        rec = Recorder(status=401, text="invalid x-api-key")
        with pytest.raises(ProviderError) as exc_info:
            await anthropic_provider(rec).chat([Message(role="user", content="q")], [], 0.3)
        assert str(exc_info.value) == "Anthropic API error (401): invalid x-api-key"
        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_null_text_and_input_are_tolerated(self):
        rec = Recorder(payload={"content": [
            {"type": "text", "text": None},
            {"type": "tool_use", "id": "tu1", "name": "get_news", "input": "oops"},
        ]})
        response = await anthropic_provider(rec).chat([Message(role="user", content="q")], [], 0.3)
        assert response.content == ""
        assert response.tool_calls == [ToolCall(id="tu1", name="get_news", arguments={})]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [
        ["not", "an", "object"],
        {"content": "oops"},
        {"content": ["oops"]},
        {"content": [{"type": "text", "text": "ok"}, None]},
    ])
    async def test_unexpected_shape_is_typed(self, payload):
        with pytest.raises(ProviderError, match="Unexpected response shape from Anthropic") as exc_info:
            await anthropic_provider(Recorder(payload=payload)).chat([Message(role="user", content="q")], [], 0.3)
        assert exc_info.value.status_code == 200


# ──────────────────────────────────────────────────
# Presets + factory
# ──────────────────────────────────────────────────

class TestProviderFactory:

    def test_presets(self):
        assert set(PROVIDER_PRESETS) == {"ollama", "groq", "openai", "together", "anthropic"}
        assert PROVIDER_PRESETS["ollama"].requires_api_key is False
        assert PROVIDER_PRESETS["groq"].default_base_url == "https://api.groq.com/openai"

    @pytest.mark.parametrize("name", ["ollama", "groq", "openai", "together"])
    def test_openai_compatible_presets(self, name):
        provider = create_llm_provider(name, api_key="k")
        assert isinstance(provider, OpenAICompatibleProvider)
        assert provider.model == PROVIDER_PRESETS[name].default_model
        assert provider.base_url == PROVIDER_PRESETS[name].default_base_url

    def test_overrides(self):
        provider = create_llm_provider("ollama", model="qwen2.5:7b", base_url="http://gpu-box:11434/")
        assert provider.model == "qwen2.5:7b"
        assert provider.base_url == "http://gpu-box:11434"

    def test_anthropic_requires_key(self):
        with pytest.raises(ValueError, match="API key"):
            create_llm_provider("anthropic")
        assert isinstance(create_llm_provider("anthropic", api_key="k"), AnthropicProvider)

    def test_unknown_provider(self):
        with pytest.raises(ValueError, match="Unknown provider"):
            create_llm_provider("mystery")

    def test_create_from_config(self):
        provider = ProviderFactory.create({"llm": {
            "provider": "anthropic", "api_key": "k", "model": None,
            "base_url": None, "timeout": 30, "max_tokens": 1024,
        }})
        assert isinstance(provider, AnthropicProvider)
        assert provider.timeout == 30
        assert provider.max_tokens == 1024
        assert provider.model == PROVIDER_PRESETS["anthropic"].default_model

    def test_repr_masks_key(self):
        provider = create_llm_provider("openai", api_key="sk-secret-1234")
        assert "secret" not in repr(provider)
        assert "***1234" in repr(provider)

    def test_base_class_is_abstract(self):
        with pytest.raises(TypeError):
            BaseLLMProvider(model="m", base_url="http://x")
