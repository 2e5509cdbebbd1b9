"""
Domain models for remote tool servers.

Covers the declarative server configuration (transport, endpoint,
credentials, tags), gateway settings, and the MCP protocol payloads
exchanged with a server (server info, tool definitions, tool results).
"""
import base64
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator


class TransportKind(str, Enum):
    """Transport used to reach a remote tool server."""

    SSE = "sse"
    HTTP = "http"
    STDIO = "stdio"

    @classmethod
    def parse(cls, value: Union[str, "TransportKind"]) -> "TransportKind":
        if isinstance(value, TransportKind):
            return value
        normalized = value.strip().lower()
        aliases = {
            "sse": cls.SSE,
            "server-sent-events": cls.SSE,
            "http": cls.HTTP,
            "streamable-http": cls.HTTP,
            "stdio": cls.STDIO,
            "child-process": cls.STDIO,
        }
        if normalized not in aliases:
            raise ValueError(f"Unsupported transport type: {value}")
        return aliases[normalized]


class AuthConfig(BaseModel):
    """Opaque credential carried to a remote tool server."""

    type: Literal["none", "api_key", "bearer", "basic"] = "none"
    key: Optional[str] = None
    header: str = "X-API-Key"
    token: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None

    def headers(self) -> Dict[str, str]:
        """Render the credential as HTTP headers."""
        if self.type == "api_key" and self.key:
            return {self.header: self.key}
        if self.type == "bearer" and self.token:
            return {"Authorization": f"Bearer {self.token}"}
        if self.type == "basic" and self.username is not None:
            raw = f"{self.username}:{self.password or ''}".encode("utf-8")
            return {"Authorization": f"Basic {base64.b64encode(raw).decode('ascii')}"}
        return {}


class RemoteServerConfig(BaseModel):
    """One entry of the remote tool server configuration."""

    name: str
    transport: TransportKind = TransportKind.SSE
    endpoint: str
    auth: Optional[AuthConfig] = None
    enabled: bool = True
    description: Optional[str] = None
    tags: List[str] = Field(default_factory=list)

    @field_validator("transport", mode="before")
    @classmethod
    def parse_transport(cls, v: Any) -> TransportKind:
        return TransportKind.parse(v)

    @field_validator("name", "endpoint")
    @classmethod
    def not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Field cannot be empty")
        return v


class GatewaySettings(BaseModel):
    """Global settings of the remote tool gateway."""

    timeout: float = 30.0
    auto_reconnect: bool = True
    max_retries: int = 3

    @field_validator("max_retries")
    @classmethod
    def retries_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_retries must be at least 1")
        return v


class RemoteServersFile(BaseModel):
    """On-disk layout of the remote server configuration file."""

    servers: Dict[str, RemoteServerConfig] = Field(default_factory=dict)
    settings: GatewaySettings = Field(default_factory=GatewaySettings, alias="global")

    model_config = {"populate_by_name": True}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "servers": {
                name: server.model_dump(mode="json", exclude_none=True)
                for name, server in self.servers.items()
            },
            "global": self.settings.model_dump(mode="json"),
        }


class ConfigStats(BaseModel):
    total_servers: int = 0
    enabled_servers: int = 0
    disabled_servers: int = 0
    invalid_servers: int = 0
    servers_by_transport: Dict[str, int] = Field(default_factory=dict)


class McpServerInfo(BaseModel):
    """Identity reported by a server during the initialize handshake."""

    name: str = "Unknown"
    version: str = "0.0.0"
    protocol_version: str = "2024-11-05"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "McpServerInfo":
        info = data.get("serverInfo", {}) or {}
        return cls(
            name=info.get("name", "Unknown"),
            version=info.get("version", "0.0.0"),
            protocol_version=data.get("protocolVersion", "2024-11-05"),
        )


class McpToolDefinition(BaseModel):
    """Tool advertised by a remote server."""

    name: str
    description: str = ""
    input_schema: Dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "McpToolDefinition":
        return cls(
            name=data.get("name", ""),
            description=data.get("description") or "",
            input_schema=data.get("inputSchema")
            or {"type": "object", "properties": {}},
        )


class McpContent(BaseModel):
    type: str = "text"
    text: Optional[str] = None
    data: Optional[str] = None
    mime_type: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class McpToolResult(BaseModel):
    """Result of a remote tool call."""

    content: List[McpContent] = Field(default_factory=list)
    is_error: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "McpToolResult":
        return cls(
            content=[
                McpContent(
                    type=item.get("type", "text"),
                    text=item.get("text"),
                    data=item.get("data"),
                    mime_type=item.get("mimeType"),
                )
                for item in data.get("content", []) or []
            ],
            is_error=bool(data.get("isError", False)),
        )

    @property
    def text(self) -> str:
        return "\n".join(c.text for c in self.content if c.text)

    def to_value(self) -> Any:
        """Collapse the content into a value suitable for a tool turn."""
        if len(self.content) == 1 and self.content[0].type == "text":
            return self.content[0].text
        return [c.to_dict() for c in self.content]


class ConnectionState(str, Enum):
    PENDING = "pending"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    FAILED = "failed"


class ServerStatus(BaseModel):
    name: str
    transport: TransportKind
    state: ConnectionState
    tool_count: int = 0
    last_error: Optional[str] = None
    connected_at: Optional[datetime] = None


class GatewayStats(BaseModel):
    total_servers: int = 0
    connected_servers: int = 0
    total_tools: int = 0
    server_tools: Dict[str, int] = Field(default_factory=dict)
    unavailable_servers: List[str] = Field(default_factory=list)
