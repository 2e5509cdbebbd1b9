"""
MCP transports for remote tool servers.
"""

from agent_engine.adapters.mcp.http_transport import HttpTransport
from agent_engine.adapters.mcp.sse_transport import SseTransport
from agent_engine.adapters.mcp.stdio_transport import StdioTransport
from agent_engine.adapters.mcp.transport_factory import create_transport

__all__ = ["HttpTransport", "SseTransport", "StdioTransport", "create_transport"]
