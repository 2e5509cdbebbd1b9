"""
Tests for tool descriptors and execution domain models.
"""
from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from agent_engine.domains.execution import (
    ConversationTurn,
    ExecutionError,
    ExecutionEvent,
    ExecutionRecord,
    ExecutionStatus,
    ToolInvocationResult,
    TurnRole,
    UsageInfo,
)
from agent_engine.domains.tools import ToolDescriptor, ToolLocation, ToolTarget
from agent_engine.exceptions import (
    AgentEngineError,
    ProviderUnavailable,
    ServerUnavailable,
    ToolNotFound,
)


class TestToolDescriptor:
    def test_local_descriptor(self):
        tool = ToolDescriptor(name="calculator", target=ToolTarget.local("calc"))
        assert tool.is_local
        assert not tool.is_remote
        assert tool.parameters == {"type": "object", "properties": {}}

    def test_remote_target_requires_server(self):
        with pytest.raises(ValidationError):
            ToolTarget(kind=ToolLocation.REMOTE)

    def test_blank_name_rejected(self):
        with pytest.raises(ValidationError):
            ToolDescriptor(name=" ", target=ToolTarget.local("x"))

    def test_function_schema(self):
        tool = ToolDescriptor(
            name="search",
            description="Search docs",
            parameters={"type": "object", "properties": {"q": {"type": "string"}}},
            target=ToolTarget.remote("docs"),
        )
        schema = tool.to_function_schema()
        assert schema["type"] == "function"
        assert schema["function"]["name"] == "search"
        assert schema["function"]["parameters"]["properties"]["q"]["type"] == "string"


class TestExecutionModels:
    def test_turn_constructors(self):
        assert ConversationTurn.user("hi").role == TurnRole.USER
        assistant = ConversationTurn.assistant("done", [])
        assert assistant.tool_calls is None
        assert not assistant.has_tool_calls
        tool = ConversationTurn.tool("call_1", "calculator", "{}")
        assert tool.tool_call_id == "call_1"
        assert tool.name == "calculator"

    def test_turns_are_immutable(self):
        turn = ConversationTurn.user("hi")
        with pytest.raises(ValidationError):
            turn.content = "changed"

    def test_usage_adds_up(self):
        total = UsageInfo(prompt_tokens=1, completion_tokens=2, total_tokens=3) + UsageInfo(
            prompt_tokens=10, completion_tokens=20, total_tokens=30
        )
        assert (total.prompt_tokens, total.completion_tokens, total.total_tokens) == (11, 22, 33)

    def test_result_payload(self):
        ok = ToolInvocationResult(call_id="1", tool_name="t", success=True, result=4)
        failed = ToolInvocationResult(call_id="1", tool_name="t", success=False, error="boom")
        assert ok.payload() == {"success": True, "result": 4}
        assert failed.payload() == {"success": False, "error": "boom"}

    def test_error_from_exception(self):
        error = ExecutionError.from_exception(ToolNotFound(["a", "b"]))
        assert error.kind == "ToolNotFound"
        assert error.message == "Tool not found: a, b"

    def test_status_terminality(self):
        assert not ExecutionStatus.RUNNING.is_terminal
        assert ExecutionStatus.MAX_ROUNDS_REACHED.is_terminal

    def test_terminal_events(self):
        assert ExecutionEvent(type="complete").is_terminal
        assert ExecutionEvent(type="error").is_terminal
        assert not ExecutionEvent(type="tool_call").is_terminal


def make_record(**kwargs) -> ExecutionRecord:
    return ExecutionRecord(
        execution_id="exec_1",
        agent_id="agent_1",
        prompt="hi",
        started_at=datetime.now(timezone.utc),
        **kwargs,
    )


class TestExecutionRecord:
    def test_response_fallback(self):
        assert make_record().response == "No response generated"
        assert make_record(final_answer="4").response == "4"

    def test_raise_for_status_passes_completed(self):
        record = make_record(status=ExecutionStatus.COMPLETED, final_answer="ok")
        assert record.raise_for_status() is record

    def test_raise_for_status_reraises_typed_error(self):
        record = make_record(
            status=ExecutionStatus.FAILED,
            error=ExecutionError(kind="ProviderUnavailable", message="no key"),
        )
        with pytest.raises(ProviderUnavailable, match="no key"):
            record.raise_for_status()

    def test_raise_for_status_unknown_kind_uses_base_error(self):
        record = make_record(
            status=ExecutionStatus.FAILED,
            error=ExecutionError(kind="Mystery", message="odd"),
        )
        with pytest.raises(AgentEngineError, match="odd"):
            record.raise_for_status()


class TestExceptions:
    def test_server_unavailable_message(self):
        error = ServerUnavailable("docs", "connection refused")
        assert error.server_name == "docs"
        assert error.message == "Remote tool server unavailable: docs (connection refused)"

    def test_tool_not_found_lists_names(self):
        error = ToolNotFound(["x", "y"])
        assert error.tool_names == ["x", "y"]
        assert str(error) == "Tool not found: x, y"
