"""MCP transport interface.

Defines the abstract base class for all MCP transport implementations.
Transports handle the low-level communication with remote tool servers.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from agent_engine.domains.mcp import McpServerInfo, McpToolDefinition, McpToolResult


class McpTransportError(Exception):
    """Base exception for MCP transport errors."""

    def __init__(self, message: str, cause: Optional[Exception] = None):
        super().__init__(message)
        self.cause = cause


class McpConnectionError(McpTransportError):
    """Error establishing or maintaining connection to an MCP server."""

    pass


class McpProtocolError(McpTransportError):
    """Error in MCP protocol communication (invalid messages, error replies)."""

    pass


class McpTimeoutError(McpTransportError):
    """Timeout waiting for an MCP server response."""

    pass


class McpTransport(ABC):
    """Abstract base class for MCP transport implementations.

    Usage:
        transport = HttpTransport(server_url="http://localhost:9000")
        await transport.connect()
        try:
            tools = await transport.list_tools()
            result = await transport.call_tool("my_tool", {"arg": "value"})
        finally:
            await transport.disconnect()
    """

    @abstractmethod
    async def connect(self) -> McpServerInfo:
        """Open the channel and perform the initialize handshake.

        Raises:
            McpConnectionError: If connection cannot be established
            McpProtocolError: If initialization handshake fails
            McpTimeoutError: If server does not respond in time
        """
        ...

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the channel. Idempotent."""
        ...

    @abstractmethod
    async def list_tools(self) -> List[McpToolDefinition]:
        """Send 'tools/list' and parse the advertised tools."""
        ...

    @abstractmethod
    async def call_tool(
        self,
        tool_name: str,
        arguments: Dict[str, Any],
        timeout: Optional[float] = None,
    ) -> McpToolResult:
        """Send 'tools/call' and wait for the result."""
        ...

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        ...

    @property
    @abstractmethod
    def server_info(self) -> Optional[McpServerInfo]:
        ...

    async def __aenter__(self) -> "McpTransport":
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.disconnect()
