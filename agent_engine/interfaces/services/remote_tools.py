from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from agent_engine.domains.mcp import (
    GatewayStats,
    McpToolResult,
    RemoteServerConfig,
    ServerStatus,
)
from agent_engine.domains.tools import ToolDescriptor


class RemoteToolGateway(ABC):
    """Interface for the gateway owning remote tool server connections."""

    @abstractmethod
    async def initialize(self) -> None:
        """Connect to every enabled server and build the tool index."""
        pass

    @abstractmethod
    async def refresh_tools(self) -> None:
        """Rebuild the tool index from the live connections."""
        pass

    @abstractmethod
    async def reload(self) -> None:
        """Reload configuration and reconnect all servers."""
        pass

    @abstractmethod
    async def call_tool(self, tool_name: str, arguments: Dict[str, Any]) -> McpToolResult:
        """Forward a tool call to the server that advertises it."""
        pass

    @abstractmethod
    async def add_server(self, config: RemoteServerConfig) -> bool:
        """Connect a new server and index its tools."""
        pass

    @abstractmethod
    async def remove_server(self, server_name: str) -> bool:
        """Disconnect a server and drop its tools from the index."""
        pass

    @abstractmethod
    async def reconnect(self, server_name: str) -> bool:
        """Reconnect a single server."""
        pass

    @abstractmethod
    async def shutdown(self) -> None:
        """Disconnect every server."""
        pass

    @abstractmethod
    def lookup(self, tool_name: str) -> Optional[str]:
        """Return the server name owning a tool, from the cached index."""
        pass

    def has_tool(self, tool_name: str) -> bool:
        return self.lookup(tool_name) is not None

    @abstractmethod
    def is_server_connected(self, server_name: str) -> bool:
        pass

    @abstractmethod
    def get_descriptor(self, tool_name: str) -> Optional[ToolDescriptor]:
        pass

    @abstractmethod
    def list_descriptors(self) -> List[ToolDescriptor]:
        pass

    @abstractmethod
    def list_servers(self) -> List[ServerStatus]:
        pass

    @abstractmethod
    def get_stats(self) -> GatewayStats:
        pass
