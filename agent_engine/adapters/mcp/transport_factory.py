"""MCP transport factory.

Builds an unconnected transport for a remote server configuration.
"""

import logging
import shlex

from agent_engine.adapters.mcp.http_transport import HttpTransport
from agent_engine.adapters.mcp.sse_transport import SseTransport
from agent_engine.adapters.mcp.stdio_transport import StdioTransport
from agent_engine.domains.mcp import RemoteServerConfig, TransportKind
from agent_engine.interfaces.providers.mcp_transport import McpTransport

logger = logging.getLogger(__name__)


def create_transport(config: RemoteServerConfig, timeout: float = 30.0) -> McpTransport:
    """Create a new transport instance for a server.

    Raises:
        ValueError: If the transport type is not supported or the endpoint
            cannot be used with it
    """
    headers = config.auth.headers() if config.auth else {}

    if config.transport == TransportKind.STDIO:
        command = shlex.split(config.endpoint)
        if not command:
            raise ValueError(f"Server '{config.name}' has an empty stdio command")
        logger.debug(f"Creating StdioTransport for {config.name}: {command[0]}")
        return StdioTransport(command=command, timeout=timeout)

    if config.transport == TransportKind.HTTP:
        logger.debug(
            f"Creating HttpTransport for {config.endpoint} with headers: {list(headers.keys())}"
        )
        return HttpTransport(server_url=config.endpoint, timeout=timeout, headers=headers)

    if config.transport == TransportKind.SSE:
        logger.debug(
            f"Creating SseTransport for {config.endpoint} with headers: {list(headers.keys())}"
        )
        return SseTransport(server_url=config.endpoint, timeout=timeout, headers=headers)

    raise ValueError(f"Unsupported transport type: {config.transport}")
