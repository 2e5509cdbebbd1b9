"""
Remote tool gateway.

Owns one connection per configured remote tool server, keeps an index of
the tools each server advertises, and forwards tool calls to the owning
server. A failing server never prevents the others from being used.
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from agent_engine.adapters.mcp.transport_factory import create_transport
from agent_engine.domains.mcp import (
    ConnectionState,
    GatewaySettings,
    GatewayStats,
    McpServerInfo,
    McpToolDefinition,
    McpToolResult,
    RemoteServerConfig,
    ServerStatus,
)
from agent_engine.domains.tools import ToolDescriptor, ToolTarget
from agent_engine.exceptions import ServerUnavailable, ToolExecutionError, ToolNotFound
from agent_engine.interfaces.providers.mcp_transport import (
    McpConnectionError,
    McpTransport,
    McpTransportError,
)
from agent_engine.interfaces.services.remote_tools import (
    RemoteToolGateway as RemoteToolGatewayInterface,
)
from agent_engine.repositories.remote_servers import RemoteServerConfigRepository

logger = logging.getLogger(__name__)

TransportFactory = Callable[[RemoteServerConfig, float], McpTransport]


class RemoteServerConnection:
    """Connection state of one remote tool server."""

    def __init__(
        self,
        config: RemoteServerConfig,
        transport_factory: TransportFactory = create_transport,
    ):
        self.config = config
        self.transport_factory = transport_factory
        self.transport: Optional[McpTransport] = None
        self.state = ConnectionState.PENDING
        self.tools: List[McpToolDefinition] = []
        self.last_error: Optional[str] = None
        self.connected_at: Optional[datetime] = None
        self.server_info: Optional[McpServerInfo] = None

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def is_connected(self) -> bool:
        return (
            self.state == ConnectionState.CONNECTED
            and self.transport is not None
            and self.transport.is_connected
        )

    async def connect(self, settings: GatewaySettings, retry_delay: float = 1.0) -> bool:
        """Connect with up to ``settings.max_retries`` attempts."""
        await self.disconnect()

        for attempt in range(1, settings.max_retries + 1):
            try:
                transport = self.transport_factory(self.config, settings.timeout)
                self.server_info = await transport.connect()
                self.transport = transport
                self.state = ConnectionState.CONNECTED
                self.connected_at = datetime.now(timezone.utc)
                self.last_error = None
                logger.info(
                    f"Connected to remote server '{self.name}' "
                    f"({self.server_info.name} v{self.server_info.version})"
                )
                return True
            except (McpTransportError, ValueError, OSError) as e:
                self.last_error = str(e)
                logger.warning(
                    f"Connection attempt {attempt}/{settings.max_retries} to "
                    f"'{self.name}' failed: {e}"
                )
                if attempt < settings.max_retries and retry_delay:
                    await asyncio.sleep(retry_delay * attempt)

        self.state = ConnectionState.FAILED
        logger.error(f"Failed to connect to remote server '{self.name}': {self.last_error}")
        return False

    async def load_tools(self) -> List[McpToolDefinition]:
        if not self.is_connected:
            raise McpConnectionError(f"Server '{self.name}' is not connected")
        tools = await self.transport.list_tools()
        self.tools = [tool for tool in tools if tool.name]
        logger.info(f"Loaded {len(self.tools)} tools from '{self.name}'")
        return self.tools

    def mark_disconnected(self, error: Optional[Exception] = None) -> None:
        self.state = ConnectionState.DISCONNECTED
        if error is not None:
            self.last_error = str(error)
        logger.warning(f"Remote server '{self.name}' disconnected: {self.last_error}")

    async def disconnect(self) -> None:
        transport, self.transport = self.transport, None
        if transport is not None:
            try:
                await transport.disconnect()
            except Exception as e:
                logger.warning(f"Error disconnecting from '{self.name}': {e}")
        if self.state == ConnectionState.CONNECTED:
            self.state = ConnectionState.DISCONNECTED

    def status(self) -> ServerStatus:
        state = self.state
        if state == ConnectionState.CONNECTED and not self.is_connected:
            state = ConnectionState.DISCONNECTED
        return ServerStatus(
            name=self.name,
            transport=self.config.transport,
            state=state,
            tool_count=len(self.tools),
            last_error=self.last_error,
            connected_at=self.connected_at,
        )

    def __repr__(self) -> str:
        return f"<RemoteServerConnection({self.name}) [{self.state.value}]>"


class RemoteToolGateway(RemoteToolGatewayInterface):
    """Gateway to every configured remote tool server."""

    def __init__(
        self,
        config_repository: Optional[RemoteServerConfigRepository] = None,
        transport_factory: TransportFactory = create_transport,
        retry_delay: float = 1.0,
    ):
        self.config_repository = config_repository or RemoteServerConfigRepository()
        self.transport_factory = transport_factory
        self.retry_delay = retry_delay
        self._connections: Dict[str, RemoteServerConnection] = {}
        self._index: Dict[str, ToolDescriptor] = {}
        self._lock = asyncio.Lock()

    @property
    def settings(self) -> GatewaySettings:
        return self.config_repository.settings

    async def initialize(self) -> None:
        """Connect every enabled server concurrently, then index their tools."""
        async with self._lock:
            servers = self.config_repository.get_enabled_servers()
            for name, reason in self.config_repository.invalid_servers().items():
                logger.warning(f"Skipping invalid remote server '{name}': {reason}")

            connections = {
                server.name: RemoteServerConnection(server, self.transport_factory)
                for server in servers
            }
            self._connections = connections
            logger.info(f"Connecting to {len(connections)} remote tool servers")

            await asyncio.gather(
                *(
                    conn.connect(self.settings, self.retry_delay)
                    for conn in connections.values()
                )
            )

        await self.refresh_tools()
        stats = self.get_stats()
        logger.info(
            f"Remote tool gateway ready: {stats.connected_servers}/{stats.total_servers} "
            f"servers, {stats.total_tools} tools"
        )

    async def _load_tools(self, conn: RemoteServerConnection) -> None:
        if not conn.is_connected:
            return
        try:
            await conn.load_tools()
        except McpConnectionError as e:
            conn.mark_disconnected(e)
            if not self.settings.auto_reconnect:
                return
            logger.info(f"Reconnecting to '{conn.name}'")
            if await conn.connect(self.settings, self.retry_delay):
                try:
                    await conn.load_tools()
                except Exception as retry_error:
                    conn.mark_disconnected(retry_error)
        except McpTransportError as e:
            conn.last_error = str(e)
            logger.error(f"Failed to list tools of '{conn.name}': {e}")
        except Exception as e:
            conn.mark_disconnected(e)
            logger.exception(f"Unexpected error listing tools of '{conn.name}'")

    async def refresh_tools(self) -> None:
        """Re-list tools on every live connection and swap in a new index."""
        connections = list(self._connections.values())
        await asyncio.gather(*(self._load_tools(conn) for conn in connections))
        self._rebuild_index()

    def _rebuild_index(self) -> None:
        index: Dict[str, ToolDescriptor] = {}
        for conn in self._connections.values():
            if not conn.is_connected:
                continue
            for tool in conn.tools:
                existing = index.get(tool.name)
                if existing is not None:
                    logger.warning(
                        f"Tool '{tool.name}' from '{conn.name}' is shadowed by "
                        f"'{existing.target.server_name}'"
                    )
                    continue
                index[tool.name] = ToolDescriptor(
                    name=tool.name,
                    description=tool.description,
                    parameters=tool.input_schema,
                    target=ToolTarget.remote(conn.name),
                )
        self._index = index
        logger.debug(f"Remote tool index rebuilt with {len(index)} tools")

    async def call_tool(self, tool_name: str, arguments: Dict[str, Any]) -> McpToolResult:
        """Forward a call to the owning server.

        Raises:
            ToolNotFound: No server advertises the tool
            ServerUnavailable: The owning server is not connected, or the
                connection was lost during the call
            ToolExecutionError: Timeout or protocol failure during the call
        """
        descriptor = self._index.get(tool_name)
        if descriptor is None:
            raise ToolNotFound([tool_name])

        server_name = descriptor.target.server_name
        conn = self._connections.get(server_name)
        if conn is None or not conn.is_connected:
            raise ServerUnavailable(server_name, conn.last_error if conn else "not configured")

        logger.info(f"Calling remote tool '{tool_name}' on '{server_name}'")
        try:
            return await conn.transport.call_tool(
                tool_name, arguments, timeout=self.settings.timeout
            )
        except McpConnectionError as e:
            conn.mark_disconnected(e)
            raise ServerUnavailable(server_name, str(e), e) from e
        except McpTransportError as e:
            raise ToolExecutionError(f"Remote tool '{tool_name}' failed: {e}", e) from e
        except Exception as e:
            logger.exception(f"Unexpected error calling remote tool '{tool_name}'")
            raise ToolExecutionError(f"Remote tool '{tool_name}' failed: {e}", e) from e

    async def reload(self) -> None:
        """Reload configuration, disconnect everything, and initialize again."""
        logger.info("Reloading remote tool servers")
        self.config_repository.reload()
        await self.shutdown()
        await self.initialize()

    async def add_server(self, config: RemoteServerConfig) -> bool:
        async with self._lock:
            previous = self._connections.get(config.name)
            if previous is not None:
                await previous.disconnect()

            conn = RemoteServerConnection(config, self.transport_factory)
            self._connections = {**self._connections, config.name: conn}
            connected = await conn.connect(self.settings, self.retry_delay)
            await self._load_tools(conn)
            self._rebuild_index()
        logger.info(f"Added remote server '{config.name}' (connected={connected})")
        return connected

    async def remove_server(self, server_name: str) -> bool:
        async with self._lock:
            conn = self._connections.get(server_name)
            if conn is None:
                return False
            self._connections = {
                name: c for name, c in self._connections.items() if name != server_name
            }
            self._rebuild_index()
            await conn.disconnect()
        logger.info(f"Removed remote server '{server_name}'")
        return True

    async def reconnect(self, server_name: str) -> bool:
        async with self._lock:
            conn = self._connections.get(server_name)
            if conn is None:
                return False
            connected = await conn.connect(self.settings, self.retry_delay)
            await self._load_tools(conn)
            self._rebuild_index()
        return connected

    async def shutdown(self) -> None:
        async with self._lock:
            connections = list(self._connections.values())
            self._index = {}
            await asyncio.gather(*(conn.disconnect() for conn in connections))
            self._connections = {}
        logger.info("Remote tool gateway shut down")

    def lookup(self, tool_name: str) -> Optional[str]:
        descriptor = self._index.get(tool_name)
        return descriptor.target.server_name if descriptor else None

    def has_tool(self, tool_name: str) -> bool:
        return tool_name in self._index

    def is_server_connected(self, server_name: str) -> bool:
        conn = self._connections.get(server_name)
        return conn is not None and conn.is_connected

    def get_descriptor(self, tool_name: str) -> Optional[ToolDescriptor]:
        return self._index.get(tool_name)

    def list_descriptors(self) -> List[ToolDescriptor]:
        return list(self._index.values())

    def list_servers(self) -> List[ServerStatus]:
        return [conn.status() for conn in self._connections.values()]

    def get_connection(self, server_name: str) -> Optional[RemoteServerConnection]:
        return self._connections.get(server_name)

    def get_stats(self) -> GatewayStats:
        server_tools: Dict[str, int] = {}
        for descriptor in self._index.values():
            server = descriptor.target.server_name
            server_tools[server] = server_tools.get(server, 0) + 1

        connections = list(self._connections.values())
        return GatewayStats(
            total_servers=len(connections),
            connected_servers=sum(1 for conn in connections if conn.is_connected),
            total_tools=len(self._index),
            server_tools=server_tools,
            unavailable_servers=[conn.name for conn in connections if not conn.is_connected],
        )
