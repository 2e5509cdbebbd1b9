"""
Tests for the execution engine's bounded tool loop.
"""
import asyncio
import json

import pytest
from conftest import ScriptedProvider, text_reply, tool_reply

from agent_engine.domains.agent import Agent, AgentConfig
from agent_engine.domains.execution import ExecutionStatus, ToolCallRequest, TurnRole
from agent_engine.exceptions import ProviderError, ProviderUnavailable, ToolNotFound
from agent_engine.plugins.registry import ToolRegistry
from agent_engine.plugins.tools import CalculatorTool, FunctionTool
from agent_engine.services.execution import ExecutionEngine
from agent_engine.services.providers import ProviderRegistry
from agent_engine.services.tool_resolver import ToolResolver

CALC = ToolCallRequest(id="call_1", name="calculator", arguments={"expression": "15 * 23"})


def make_engine(provider, **kwargs):
    tool_registry = ToolRegistry()
    tool_registry.register_tool(CalculatorTool())
    providers = ProviderRegistry()
    providers.register_instance(provider)
    return ExecutionEngine(providers, ToolResolver(tool_registry), **kwargs)


def make_agent(**kwargs):
    kwargs.setdefault("provider", "scripted")
    kwargs.setdefault("model", "scripted-model")
    kwargs.setdefault("tools", ["calculator"])
    return Agent(AgentConfig(**kwargs))


class TestExecutionLoop:
    @pytest.mark.asyncio
    async def test_plain_answer_completes_in_one_round(self):
        provider = ScriptedProvider([text_reply("Hello!")])
        record = await make_engine(provider).execute(make_agent(tools=[]), "Hi")

        assert record.status == ExecutionStatus.COMPLETED
        assert record.final_answer == "Hello!"
        assert record.rounds == 1
        assert record.tool_calls == []
        assert record.ended_at is not None
        assert provider.calls[0]["tools"] is None

    @pytest.mark.asyncio
    async def test_tool_round_then_answer(self):
        provider = ScriptedProvider([tool_reply(CALC), text_reply("15 * 23 = 345")])
        record = await make_engine(provider).execute(
            make_agent(max_tool_rounds=3), "What is 15 * 23?"
        )

        assert record.status == ExecutionStatus.COMPLETED
        assert record.rounds == 2
        assert record.final_answer == "15 * 23 = 345"
        assert len(record.tool_results) == 1
        assert record.tool_results[0].success
        assert record.tool_results[0].result == {"result": 345}
        assert [turn.role for turn in record.turns] == [
            TurnRole.USER,
            TurnRole.ASSISTANT,
            TurnRole.TOOL,
            TurnRole.ASSISTANT,
        ]
        tool_turn = record.turns[2]
        assert tool_turn.tool_call_id == "call_1"
        assert json.loads(tool_turn.content) == {"success": True, "result": {"result": 345}}

    @pytest.mark.asyncio
    async def test_second_round_sees_tool_result(self):
        provider = ScriptedProvider([tool_reply(CALC), text_reply("345")])
        await make_engine(provider).execute(make_agent(), "What is 15 * 23?")
        second_turns = provider.calls[1]["turns"]
        assert second_turns[-1].role == TurnRole.TOOL
        assert len(provider.calls[0]["turns"]) == 1

    @pytest.mark.asyncio
    async def test_single_round_budget_stops_after_tools(self):
        provider = ScriptedProvider([tool_reply(CALC)])
        record = await make_engine(provider).execute(
            make_agent(max_tool_rounds=1), "What is 15 * 23?"
        )

        assert record.status == ExecutionStatus.MAX_ROUNDS_REACHED
        assert record.final_answer is None
        assert record.response == "No response generated"
        assert record.rounds == 1
        assert len(record.tool_results) == 1
        assert provider.call_count == 1

    @pytest.mark.parametrize("budget", [1, 2, 5])
    @pytest.mark.asyncio
    async def test_always_calling_tools_exhausts_budget(self, budget):
        provider = ScriptedProvider([tool_reply(CALC)])
        record = await make_engine(provider).execute(
            make_agent(max_tool_rounds=budget), "Loop"
        )

        assert record.status == ExecutionStatus.MAX_ROUNDS_REACHED
        assert record.rounds == budget
        assert provider.call_count == budget
        assert len(record.tool_results) == budget

    @pytest.mark.asyncio
    async def test_unknown_tool_fails_before_provider_call(self):
        provider = ScriptedProvider([text_reply("unused")])
        with pytest.raises(ToolNotFound) as exc_info:
            await make_engine(provider).execute(
                make_agent(tools=["calculator", "nonexistent_tool"]), "Hi"
            )
        assert exc_info.value.tool_names == ["nonexistent_tool"]
        assert provider.call_count == 0

    @pytest.mark.asyncio
    async def test_tool_failure_is_fed_back(self):
        bad_call = ToolCallRequest(id="c1", name="calculator", arguments={"expression": "1/0"})
        provider = ScriptedProvider([tool_reply(bad_call), text_reply("Cannot divide by zero")])
        record = await make_engine(provider).execute(make_agent(), "1/0?")

        assert record.status == ExecutionStatus.COMPLETED
        assert not record.tool_results[0].success
        payload = json.loads(record.turns[2].content)
        assert payload["success"] is False
        assert "division" in payload["error"]

    @pytest.mark.asyncio
    async def test_ungranted_tool_request_is_fed_back(self):
        call = ToolCallRequest(id="c1", name="web_search", arguments={"query": "x"})
        provider = ScriptedProvider([tool_reply(call), text_reply("ok")])
        record = await make_engine(provider).execute(make_agent(), "search")

        assert record.status == ExecutionStatus.COMPLETED
        assert record.tool_results[0].error == "Tool 'web_search' is not available to this agent"

    @pytest.mark.asyncio
    async def test_usage_accumulates(self):
        provider = ScriptedProvider([tool_reply(CALC), text_reply("345")])
        record = await make_engine(provider).execute(make_agent(), "15 * 23")
        assert record.usage.total_tokens == 30
        assert record.usage.prompt_tokens == 20

    @pytest.mark.asyncio
    async def test_system_prompt_lists_tools(self):
        provider = ScriptedProvider([text_reply("ok")])
        record = await make_engine(provider).execute(make_agent(system="Be exact."), "Hi")
        assert record.system_prompt.startswith("Be exact.")
        assert "- calculator: Perform mathematical calculations" in record.system_prompt
        assert provider.calls[0]["system_prompt"] == record.system_prompt
        assert [t.name for t in provider.calls[0]["tools"]] == ["calculator"]


class TestProviderFailures:
    @pytest.mark.asyncio
    async def test_provider_error_fails_run(self):
        provider = ScriptedProvider([tool_reply(CALC), ProviderError("rate limited")])
        record = await make_engine(provider).execute(make_agent(), "Hi")

        assert record.status == ExecutionStatus.FAILED
        assert record.error.kind == "ProviderError"
        assert record.error.message == "rate limited"
        assert record.rounds == 2
        assert len(record.tool_results) == 1
        with pytest.raises(ProviderError):
            record.raise_for_status()

    @pytest.mark.asyncio
    async def test_unexpected_exception_wrapped(self):
        provider = ScriptedProvider([RuntimeError("socket exploded")])
        record = await make_engine(provider).execute(make_agent(), "Hi")
        assert record.status == ExecutionStatus.FAILED
        assert record.error.kind == "ProviderError"
        assert "socket exploded" in record.error.message

    @pytest.mark.asyncio
    async def test_unconstructible_provider_fails_without_rounds(self):
        providers = ProviderRegistry()

        def factory():
            raise ProviderUnavailable("OpenAI API key is not configured")

        providers.register("openai", factory)
        engine = ExecutionEngine(providers, ToolResolver(ToolRegistry()))
        record = await engine.execute(make_agent(provider="openai", tools=[]), "Hi")

        assert record.status == ExecutionStatus.FAILED
        assert record.rounds == 0
        assert record.error.kind == "ProviderUnavailable"


class TestToolDispatch:
    @pytest.mark.parametrize("parallel", [True, False])
    @pytest.mark.asyncio
    async def test_results_keep_request_order(self, parallel):
        async def slow(value: str) -> str:
            await asyncio.sleep(0.02)
            return value

        async def fast(value: str) -> str:
            return value

        tool_registry = ToolRegistry()
        tool_registry.register_tool(FunctionTool(slow))
        tool_registry.register_tool(FunctionTool(fast))
        provider = ScriptedProvider(
            [
                tool_reply(
                    ToolCallRequest(id="a", name="slow", arguments={"value": "first"}),
                    ToolCallRequest(id="b", name="fast", arguments={"value": "second"}),
                ),
                text_reply("done"),
            ]
        )
        providers = ProviderRegistry()
        providers.register_instance(provider)
        engine = ExecutionEngine(
            providers, ToolResolver(tool_registry), parallel_tool_calls=parallel
        )

        record = await engine.execute(make_agent(tools=["slow", "fast"]), "go")
        assert [r.call_id for r in record.tool_results] == ["a", "b"]
        assert [t.tool_call_id for t in record.turns if t.role == TurnRole.TOOL] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_events_emitted_in_order(self):
        provider = ScriptedProvider([tool_reply(CALC), text_reply("345")])
        events = []
        await make_engine(provider).execute(make_agent(), "15 * 23", emit=events.append)
        assert [e.type for e in events] == ["progress", "tool_call", "tool_result", "progress"]
        assert events[1].arguments == {"expression": "15 * 23"}
        assert events[2].result == {"success": True, "result": {"result": 345}}
        assert events[3].message == "Round 2/10"


class TestStreamingProvider:
    @pytest.mark.asyncio
    async def test_stream_deltas_are_aggregated(self):
        provider = ScriptedProvider(
            [
                [
                    {"type": "tool_call_delta", "id": "call_9", "index": 0, "name": "calculator", "arguments_delta": '{"expr'},
                    {"type": "tool_call_delta", "id": None, "index": 0, "name": None, "arguments_delta": 'ession": "2+3"}'},
                    {"type": "usage", "prompt_tokens": 3, "completion_tokens": 2, "total_tokens": 5},
                    {"type": "message_end", "finish_reason": "tool_calls"},
                ],
                [
                    {"type": "content", "delta": "The answer "},
                    {"type": "content", "delta": "is 5"},
                    {"type": "message_end", "finish_reason": "stop"},
                ],
            ]
        )
        events = []
        record = await make_engine(provider, use_streaming=True).execute(
            make_agent(), "2+3", emit=events.append
        )

        assert record.status == ExecutionStatus.COMPLETED
        assert record.final_answer == "The answer is 5"
        assert record.tool_calls[0].id == "call_9"
        assert record.tool_calls[0].arguments == {"expression": "2+3"}
        assert record.tool_results[0].result == {"result": 5}
        assert record.usage.total_tokens == 5
        assert [e.message for e in events if e.type == "delta"] == ["The answer ", "is 5"]

    @pytest.mark.parametrize(
        "kind,expected",
        [("ProviderUnavailable", "ProviderUnavailable"), ("ProviderError", "ProviderError")],
    )
    @pytest.mark.asyncio
    async def test_stream_error_fails_run(self, kind, expected):
        provider = ScriptedProvider([[{"type": "error", "error": "bad key", "kind": kind}]])
        record = await make_engine(provider, use_streaming=True).execute(make_agent(), "hi")
        assert record.status == ExecutionStatus.FAILED
        assert record.error.kind == expected
        assert record.error.message == "bad key"
