"""
Tests for the AgentEngine client facade.
"""
import json
from unittest.mock import MagicMock

import pytest
from conftest import ScriptedProvider, text_reply, tool_reply

from agent_engine import AgentEngine
from agent_engine.client.agent_engine import load_config_file
from agent_engine.domains.execution import ExecutionStatus, ToolCallRequest
from agent_engine.plugins.tools import FunctionTool


@pytest.fixture
def config():
    return {
        "tools": {"builtin": ["calculator"]},
        "agents": [
            {
                "id": "math",
                "name": "Math Agent",
                "provider": "scripted",
                "model": "m",
                "tools": ["calculator"],
                "max_tool_rounds": 3,
            }
        ],
    }


def with_provider(engine, provider):
    engine.directory.engine.provider_registry.register_instance(provider)
    return engine


class TestConfigLoading:
    def test_requires_config(self):
        with pytest.raises(ValueError):
            AgentEngine()

    def test_json_file(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"tools": {"builtin": []}}))
        assert load_config_file(str(path)) == {"tools": {"builtin": []}}

    def test_python_file(self, tmp_path):
        path = tmp_path / "config.py"
        path.write_text('config = {"execution": {"use_streaming": True}}\n')
        engine = AgentEngine(config_path=str(path))
        assert engine.directory.engine.use_streaming is True

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            AgentEngine(config_path=str(tmp_path / "absent.json"))


class TestAgentEngine:
    @pytest.mark.asyncio
    async def test_configured_agent_runs_tools(self, config):
        engine = AgentEngine(config=config)
        call = ToolCallRequest(id="c", name="calculator", arguments={"expression": "15 * 23"})
        with_provider(engine, ScriptedProvider([tool_reply(call), text_reply("345")]))

        async with engine:
            assert [a.id for a in engine.list_agents()] == ["math"]
            record = await engine.run("math", "What is 15 * 23?")
            assert record.status == ExecutionStatus.COMPLETED
            assert record.rounds == 2
            assert (await engine.get_execution(record.execution_id)) == record
            assert [r.execution_id for r in await engine.list_executions("math")] == [
                record.execution_id
            ]

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self, config):
        engine = with_provider(AgentEngine(config=config), ScriptedProvider([text_reply("x")]))
        await engine.start()
        await engine.start()
        assert len(engine.list_agents()) == 1
        await engine.shutdown()

    @pytest.mark.asyncio
    async def test_create_delete_and_custom_tool(self, config):
        engine = with_provider(AgentEngine(config=config), ScriptedProvider([text_reply("pong")]))
        async with engine:
            def ping() -> str:
                """Reply with pong."""
                return "pong"

            assert engine.register_tool(FunctionTool(ping))
            assert "ping" in [t.name for t in engine.list_tools()]

            agent_id = await engine.create_agent(
                {"provider": "scripted", "model": "m", "tools": ["ping"]}
            )
            assert engine.get_agent(agent_id).tools == ["ping"]
            assert await engine.delete_agent(agent_id)

    @pytest.mark.asyncio
    async def test_run_stream(self, config):
        engine = with_provider(AgentEngine(config=config), ScriptedProvider([text_reply("hi")]))
        async with engine:
            stream = await engine.run_stream("math", "hello")
            events = [event async for event in stream]
            assert events[-1].type == "complete"
            assert events[-1].message == "hi"

    @pytest.mark.asyncio
    async def test_servers_and_models(self, config):
        engine = with_provider(AgentEngine(config=config), ScriptedProvider([text_reply("x")]))
        assert engine.list_servers() == []
        assert engine.list_models()["scripted"] == ["scripted-model"]

        gateway = MagicMock()
        gateway.list_servers.return_value = ["status"]
        engine.directory.remote_gateway = gateway
        assert engine.list_servers() == ["status"]
