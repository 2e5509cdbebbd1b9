"""
Tests for tool resolution and dispatch across local and remote tools.
"""
from unittest.mock import AsyncMock

import pytest
from conftest import FakeTransport, remote_tool

from agent_engine.domains.execution import ToolCallRequest
from agent_engine.domains.mcp import McpContent, McpToolResult
from agent_engine.domains.tools import ToolDescriptor, ToolTarget
from agent_engine.exceptions import ServerUnavailable, ToolNotFound
from agent_engine.plugins.registry import ToolRegistry
from agent_engine.plugins.tools import CalculatorTool, FunctionTool
from agent_engine.repositories.remote_servers import RemoteServerConfigRepository
from agent_engine.services.remote_tools import RemoteToolGateway
from agent_engine.services.tool_resolver import ToolResolver


def build_gateway(transports):
    repository = RemoteServerConfigRepository.from_dict(
        {
            "servers": {
                name: {"transport": "http", "endpoint": f"http://{name}.test"}
                for name in transports
            }
        }
    )
    return RemoteToolGateway(
        config_repository=repository,
        transport_factory=lambda config, timeout: transports[config.name],
        retry_delay=0,
    )


@pytest.fixture
def tool_registry():
    registry = ToolRegistry()
    registry.register_tool(CalculatorTool())
    return registry


class TestResolve:
    def test_local_only(self, tool_registry):
        resolver = ToolResolver(tool_registry)
        assert resolver.resolve("calculator").is_local
        assert resolver.resolve("missing") is None

    @pytest.mark.asyncio
    async def test_local_shadows_remote(self, tool_registry):
        gateway = build_gateway(
            {"docs": FakeTransport([remote_tool("calculator"), remote_tool("search")])}
        )
        await gateway.initialize()
        resolver = ToolResolver(tool_registry, gateway)

        assert resolver.resolve("calculator").is_local
        assert resolver.resolve("search").target.server_name == "docs"
        names = [tool.name for tool in resolver.list_tools()]
        assert names == ["calculator", "search"]

    def test_resolve_all_reports_every_missing_name(self, tool_registry):
        resolver = ToolResolver(tool_registry)
        with pytest.raises(ToolNotFound) as exc_info:
            resolver.resolve_all(["calculator", "a", "b"])
        assert exc_info.value.tool_names == ["a", "b"]

    def test_resolve_all_keeps_order(self, tool_registry):
        tool_registry.register_tool(FunctionTool(lambda: 1, name="one"))
        resolver = ToolResolver(tool_registry)
        assert [t.name for t in resolver.resolve_all(["one", "calculator"])] == [
            "one",
            "calculator",
        ]

    @pytest.mark.asyncio
    async def test_resolve_all_disconnected_server(self, tool_registry):
        transport = FakeTransport([remote_tool("search")])
        gateway = build_gateway({"docs": transport})
        await gateway.initialize()
        transport.connected = False

        with pytest.raises(ServerUnavailable) as exc_info:
            ToolResolver(tool_registry, gateway).resolve_all(["search"])
        assert exc_info.value.server_name == "docs"


class TestDispatch:
    @pytest.mark.asyncio
    async def test_local_success(self, tool_registry, calculator_call):
        resolver = ToolResolver(tool_registry)
        granted = {"calculator": resolver.resolve("calculator")}
        result = await resolver.dispatch(calculator_call, granted)
        assert result.success
        assert result.result == {"result": 4}
        assert result.call_id == "call_1"

    @pytest.mark.asyncio
    async def test_tool_not_granted(self, tool_registry, calculator_call):
        result = await ToolResolver(tool_registry).dispatch(calculator_call, {})
        assert not result.success
        assert result.error == "Tool 'calculator' is not available to this agent"

    @pytest.mark.asyncio
    async def test_malformed_arguments(self, tool_registry):
        resolver = ToolResolver(tool_registry)
        call = ToolCallRequest(id="c", name="calculator", arguments="{not json")
        result = await resolver.dispatch(call, {"calculator": resolver.resolve("calculator")})
        assert not result.success
        assert result.error.startswith("Invalid JSON arguments")

    @pytest.mark.asyncio
    async def test_local_exception_becomes_error_result(self, tool_registry):
        resolver = ToolResolver(tool_registry)
        call = ToolCallRequest(id="c", name="calculator", arguments={"expression": "1/0"})
        result = await resolver.dispatch(call, {"calculator": resolver.resolve("calculator")})
        assert not result.success
        assert "division" in result.error

    @pytest.mark.asyncio
    async def test_remote_success(self, tool_registry):
        transport = FakeTransport([remote_tool("search")])
        gateway = build_gateway({"docs": transport})
        await gateway.initialize()
        resolver = ToolResolver(tool_registry, gateway)

        call = ToolCallRequest(id="r1", name="search", arguments={"q": "mcp"})
        result = await resolver.dispatch(call, {"search": resolver.resolve("search")})
        assert result.success
        assert result.result == "search ok"
        assert transport.calls == [{"name": "search", "arguments": {"q": "mcp"}}]

    @pytest.mark.asyncio
    async def test_remote_error_result(self, tool_registry):
        transport = FakeTransport(
            [remote_tool("search")],
            results={
                "search": McpToolResult(
                    content=[McpContent(type="text", text="index offline")], is_error=True
                )
            },
        )
        gateway = build_gateway({"docs": transport})
        await gateway.initialize()
        resolver = ToolResolver(tool_registry, gateway)

        call = ToolCallRequest(id="r1", name="search", arguments={})
        result = await resolver.dispatch(call, {"search": resolver.resolve("search")})
        assert not result.success
        assert result.error == "index offline"

    @pytest.mark.asyncio
    async def test_remote_gateway_failure_becomes_error_result(self, tool_registry):
        gateway = AsyncMock()
        gateway.get_descriptor = lambda name: None
        gateway.call_tool.side_effect = ServerUnavailable("docs")
        resolver = ToolResolver(tool_registry, gateway)

        descriptor = ToolDescriptor(name="search", target=ToolTarget.remote("docs"))
        result = await resolver.invoke(descriptor, {}, call_id="x")
        assert not result.success
        assert result.error == "Remote tool server unavailable: docs"
