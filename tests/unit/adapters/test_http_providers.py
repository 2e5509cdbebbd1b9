"""
Tests for the httpx-based Anthropic and Gemini adapters.
"""
import json

import httpx
import pytest

from agent_engine.adapters.anthropic_adapter import AnthropicAdapter
from agent_engine.adapters.gemini_adapter import GeminiAdapter
from agent_engine.domains.execution import ConversationTurn, ToolCallRequest
from agent_engine.domains.tools import ToolDescriptor, ToolTarget
from agent_engine.exceptions import ProviderError, ProviderUnavailable

CALCULATOR = ToolDescriptor(
    name="calculator",
    description="Perform mathematical calculations",
    parameters={"type": "object", "properties": {"expression": {"type": "string"}}},
    target=ToolTarget.local("calculator"),
)

TOOL_TRANSCRIPT = [
    ConversationTurn.user("What is 2+2 and 3+3?"),
    ConversationTurn.assistant(
        "Calculating",
        [
            ToolCallRequest(id="t1", name="calculator", arguments={"expression": "2+2"}),
            ToolCallRequest(id="t2", name="calculator", arguments={"expression": "3+3"}),
        ],
    ),
    ConversationTurn.tool("t1", "calculator", '{"success": true, "result": 4}'),
    ConversationTurn.tool("t2", "calculator", '{"success": true, "result": 6}'),
]


class Recorder:
    """MockTransport handler that records requests and replays a response."""

    def __init__(self, response: httpx.Response):
        self.response = response
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.response

    @property
    def body(self):
        return json.loads(self.requests[-1].content)


def sse(*events):
    return "".join(f"data: {json.dumps(event)}\n\n" for event in events)


def make(adapter_cls, response, **kwargs):
    recorder = Recorder(response)
    client = httpx.AsyncClient(
        transport=httpx.MockTransport(recorder), base_url=adapter_cls.default_base_url
    )
    adapter = adapter_cls(api_key="test-key", http_client=client, **kwargs)
    return adapter, recorder


class TestAnthropicAdapter:
    def test_missing_key(self):
        with pytest.raises(ProviderUnavailable):
            AnthropicAdapter(api_key="")

    def test_headers(self):
        headers = AnthropicAdapter(api_key="k")._default_headers()
        assert headers["x-api-key"] == "k"
        assert headers["anthropic-version"] == "2023-06-01"

    def test_tool_results_merge_into_one_user_message(self):
        messages = AnthropicAdapter(api_key="k")._convert_turns(TOOL_TRANSCRIPT)
        assert [m["role"] for m in messages] == ["user", "assistant", "user"]
        assert [b["type"] for b in messages[1]["content"]] == ["text", "tool_use", "tool_use"]
        assert messages[1]["content"][1]["input"] == {"expression": "2+2"}
        assert [b["tool_use_id"] for b in messages[2]["content"]] == ["t1", "t2"]

    @pytest.mark.asyncio
    async def test_complete_with_tool_use(self):
        adapter, recorder = make(
            AnthropicAdapter,
            httpx.Response(
                200,
                json={
                    "model": "claude-3-5-sonnet-20241022",
                    "content": [
                        {"type": "text", "text": "Let me check."},
                        {
                            "type": "tool_use",
                            "id": "toolu_1",
                            "name": "calculator",
                            "input": {"expression": "2+2"},
                        },
                    ],
                    "stop_reason": "tool_use",
                    "usage": {"input_tokens": 20, "output_tokens": 7},
                },
            ),
        )
        reply = await adapter.complete(
            "Be helpful", [ConversationTurn.user("2+2?")], tools=[CALCULATOR]
        )

        assert reply.turn.content == "Let me check."
        assert reply.turn.tool_calls[0].id == "toolu_1"
        assert reply.turn.tool_calls[0].arguments == {"expression": "2+2"}
        assert reply.usage.total_tokens == 27
        request = recorder.requests[0]
        assert request.url.path == "/v1/messages"
        body = recorder.body
        assert body["system"] == "Be helpful"
        assert body["max_tokens"] == 1000
        assert body["tools"][0]["input_schema"] == CALCULATOR.parameters

    @pytest.mark.asyncio
    async def test_auth_failure_is_unavailable(self):
        adapter, _ = make(AnthropicAdapter, httpx.Response(401, json={"error": "bad key"}))
        with pytest.raises(ProviderUnavailable):
            await adapter.complete("", [ConversationTurn.user("hi")])

    @pytest.mark.asyncio
    async def test_server_error_is_provider_error(self):
        adapter, _ = make(AnthropicAdapter, httpx.Response(529, text="overloaded"))
        with pytest.raises(ProviderError, match="529"):
            await adapter.complete("", [ConversationTurn.user("hi")])

    @pytest.mark.asyncio
    async def test_stream(self):
        body = sse(
            {"type": "message_start", "message": {"usage": {"input_tokens": 9}}},
            {"type": "content_block_start", "content_block": {"type": "text", "text": ""}},
            {"type": "content_block_delta", "delta": {"type": "text_delta", "text": "Hi "}},
            {
                "type": "content_block_start",
                "content_block": {"type": "tool_use", "id": "toolu_9", "name": "calculator"},
            },
            {
                "type": "content_block_delta",
                "delta": {"type": "input_json_delta", "partial_json": '{"expression": "1"}'},
            },
            {"type": "message_delta", "delta": {"stop_reason": "tool_use"}, "usage": {"output_tokens": 4}},
            {"type": "message_stop"},
        )
        adapter, recorder = make(AnthropicAdapter, httpx.Response(200, text=body))
        events = [e async for e in adapter.complete_stream("", [ConversationTurn.user("hi")])]

        assert events[0] == {"type": "content", "delta": "Hi "}
        assert events[1]["id"] == "toolu_9"
        assert events[2]["arguments_delta"] == '{"expression": "1"}'
        assert events[2]["index"] == 0
        assert events[3] == {
            "type": "usage",
            "prompt_tokens": 9,
            "completion_tokens": 4,
            "total_tokens": 13,
        }
        assert events[4] == {"type": "message_end", "finish_reason": "tool_use"}
        assert recorder.body["stream"] is True

    @pytest.mark.asyncio
    async def test_stream_http_error_becomes_error_event(self):
        adapter, _ = make(AnthropicAdapter, httpx.Response(403, text="forbidden"))
        events = [e async for e in adapter.complete_stream("", [ConversationTurn.user("hi")])]
        assert len(events) == 1
        assert events[0]["type"] == "error"
        assert events[0]["kind"] == "ProviderUnavailable"

    @pytest.mark.asyncio
    async def test_connection_error(self):
        def refuse(request):
            raise httpx.ConnectError("refused", request=request)

        client = httpx.AsyncClient(
            transport=httpx.MockTransport(refuse), base_url="https://api.anthropic.com"
        )
        adapter = AnthropicAdapter(api_key="k", http_client=client)
        with pytest.raises(ProviderUnavailable, match="Cannot reach Anthropic"):
            await adapter.complete("", [ConversationTurn.user("hi")])


class TestGeminiAdapter:
    def test_payload(self):
        adapter = GeminiAdapter(api_key="k")
        payload = adapter._build_payload("Be brief", TOOL_TRANSCRIPT, 0.2, 256, [CALCULATOR])

        roles = [c["role"] for c in payload["contents"]]
        assert roles == ["user", "model", "function"]
        assert payload["contents"][1]["parts"][1] == {
            "functionCall": {"name": "calculator", "args": {"expression": "2+2"}}
        }
        assert len(payload["contents"][2]["parts"]) == 2
        assert payload["contents"][2]["parts"][0]["functionResponse"]["response"] == {
            "success": True,
            "result": 4,
        }
        assert payload["systemInstruction"] == {"parts": [{"text": "Be brief"}]}
        assert payload["generationConfig"] == {"temperature": 0.2, "maxOutputTokens": 256}
        assert payload["tools"][0]["functionDeclarations"][0]["name"] == "calculator"

    @pytest.mark.asyncio
    async def test_complete(self):
        adapter, recorder = make(
            GeminiAdapter,
            httpx.Response(
                200,
                json={
                    "candidates": [
                        {
                            "content": {
                                "parts": [
                                    {"functionCall": {"name": "calculator", "args": {"expression": "3*3"}}}
                                ]
                            },
                            "finishReason": "STOP",
                        }
                    ],
                    "usageMetadata": {
                        "promptTokenCount": 11,
                        "candidatesTokenCount": 3,
                        "totalTokenCount": 14,
                    },
                },
            ),
        )
        reply = await adapter.complete("", [ConversationTurn.user("3*3?")], model="gemini-1.5-pro")

        assert reply.turn.tool_calls[0].id == "call_0"
        assert reply.turn.tool_calls[0].arguments == {"expression": "3*3"}
        assert reply.usage.total_tokens == 14
        request = recorder.requests[0]
        assert request.url.path == "/v1beta/models/gemini-1.5-pro:generateContent"
        assert request.url.params["key"] == "test-key"

    @pytest.mark.asyncio
    async def test_no_candidates(self):
        adapter, _ = make(GeminiAdapter, httpx.Response(200, json={"candidates": []}))
        with pytest.raises(ProviderError, match="no candidates"):
            await adapter.complete("", [ConversationTurn.user("hi")])

    @pytest.mark.asyncio
    async def test_stream(self):
        body = sse(
            {"candidates": [{"content": {"parts": [{"text": "Nine"}]}}]},
            {
                "candidates": [{"content": {"parts": [{"text": "."}]}, "finishReason": "STOP"}],
                "usageMetadata": {"promptTokenCount": 2, "candidatesTokenCount": 2, "totalTokenCount": 4},
            },
        )
        adapter, recorder = make(GeminiAdapter, httpx.Response(200, text=body))
        events = [e async for e in adapter.complete_stream("", [ConversationTurn.user("3*3")])]

        assert [e["delta"] for e in events if e["type"] == "content"] == ["Nine", "."]
        assert events[-2]["total_tokens"] == 4
        assert events[-1] == {"type": "message_end", "finish_reason": "STOP"}
        assert recorder.requests[0].url.params["alt"] == "sse"
