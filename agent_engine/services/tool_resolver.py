"""
Tool resolution.

Maps a tool name to where it runs and dispatches invocations there. Local
tools take precedence over remote tools of the same name.
"""
import logging
from typing import Any, Dict, List, Optional

from agent_engine.domains.execution import ToolCallRequest, ToolInvocationResult
from agent_engine.domains.tools import ToolDescriptor
from agent_engine.exceptions import (
    AgentEngineError,
    ServerUnavailable,
    ToolNotFound,
)
from agent_engine.interfaces.plugins.plugins import ToolRegistry
from agent_engine.interfaces.services.remote_tools import RemoteToolGateway

logger = logging.getLogger(__name__)


class ToolResolver:
    """Resolves tool names against the local registry and the remote gateway."""

    def __init__(
        self,
        tool_registry: ToolRegistry,
        remote_gateway: Optional[RemoteToolGateway] = None,
    ):
        self.tool_registry = tool_registry
        self.remote_gateway = remote_gateway

    def resolve(self, name: str) -> Optional[ToolDescriptor]:
        """Local registry first, then the gateway's cached index."""
        descriptor = self.tool_registry.get_descriptor(name)
        if descriptor is not None:
            return descriptor
        if self.remote_gateway is not None:
            return self.remote_gateway.get_descriptor(name)
        return None

    def resolve_all(self, names: List[str]) -> List[ToolDescriptor]:
        """Resolve every name, keeping the given order.

        Raises:
            ToolNotFound: Listing every name that resolves nowhere
            ServerUnavailable: A name belongs to a disconnected server
        """
        resolved: List[ToolDescriptor] = []
        missing: List[str] = []
        for name in names:
            descriptor = self.resolve(name)
            if descriptor is None:
                missing.append(name)
            else:
                resolved.append(descriptor)

        if missing:
            raise ToolNotFound(missing)

        for descriptor in resolved:
            if descriptor.is_remote and not self.remote_gateway.is_server_connected(
                descriptor.target.server_name
            ):
                raise ServerUnavailable(descriptor.target.server_name)

        return resolved

    def list_tools(self) -> List[ToolDescriptor]:
        """Local tools, then remote tools not shadowed by a local one."""
        tools = self.tool_registry.list_descriptors()
        if self.remote_gateway is None:
            return tools
        local_names = {tool.name for tool in tools}
        return tools + [
            tool
            for tool in self.remote_gateway.list_descriptors()
            if tool.name not in local_names
        ]

    async def dispatch(
        self, call: ToolCallRequest, granted: Dict[str, ToolDescriptor]
    ) -> ToolInvocationResult:
        """Run a model-requested call against the tools granted to the agent."""
        tool = granted.get(call.name)
        if tool is None:
            logger.warning(f"Model requested tool '{call.name}' which the agent does not have")
            return self._failure(call, f"Tool '{call.name}' is not available to this agent")

        if not isinstance(call.arguments, dict):
            logger.warning(f"Malformed arguments for tool '{call.name}': {call.arguments!r}")
            return self._failure(call, f"Invalid JSON arguments: {call.arguments}")

        return await self.invoke(tool, call.arguments, call_id=call.id)

    async def invoke(
        self, tool: ToolDescriptor, arguments: Dict[str, Any], call_id: str = ""
    ) -> ToolInvocationResult:
        """Invoke a resolved tool. Failures come back as error results."""
        call = ToolCallRequest(id=call_id, name=tool.name, arguments=arguments)
        if tool.is_local:
            return await self._invoke_local(call)
        return await self._invoke_remote(call)

    async def _invoke_local(self, call: ToolCallRequest) -> ToolInvocationResult:
        handler = self.tool_registry.get_tool(call.name)
        if handler is None:
            return self._failure(call, f"Tool '{call.name}' is no longer registered")

        try:
            logger.info(f"Executing local tool: {call.name}")
            result = await handler.execute(**call.arguments)
        except Exception as e:
            logger.warning(f"Local tool '{call.name}' failed: {e}")
            return self._failure(call, str(e) or type(e).__name__)

        return ToolInvocationResult(
            call_id=call.id, tool_name=call.name, success=True, result=result
        )

    async def _invoke_remote(self, call: ToolCallRequest) -> ToolInvocationResult:
        if self.remote_gateway is None:
            return self._failure(call, "No remote tool gateway configured")

        try:
            result = await self.remote_gateway.call_tool(call.name, call.arguments)
        except AgentEngineError as e:
            logger.warning(f"Remote tool '{call.name}' failed: {e}")
            return self._failure(call, e.message)
        except Exception as e:
            logger.exception(f"Unexpected error from remote tool '{call.name}'")
            return self._failure(call, str(e) or type(e).__name__)

        if result.is_error:
            return self._failure(call, result.text or "Remote tool reported an error")

        return ToolInvocationResult(
            call_id=call.id, tool_name=call.name, success=True, result=result.to_value()
        )

    @staticmethod
    def _failure(call: ToolCallRequest, error: str) -> ToolInvocationResult:
        return ToolInvocationResult(
            call_id=call.id, tool_name=call.name, success=False, error=error
        )
