"""
Domain models for tools.

A ToolDescriptor says what a tool is (name, description, parameter schema)
and where it runs: a local handler or a remote tool server.
"""
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class ToolLocation(str, Enum):
    """Where a tool invocation is dispatched."""

    LOCAL = "local"
    REMOTE = "remote"


class ToolTarget(BaseModel):
    """Invocation target of a tool."""

    model_config = {"frozen": True}

    kind: ToolLocation
    handler: Optional[str] = Field(None, description="Local handler identifier")
    server_name: Optional[str] = Field(None, description="Remote server name")

    @model_validator(mode="after")
    def check_location(self) -> "ToolTarget":
        if self.kind == ToolLocation.REMOTE and not self.server_name:
            raise ValueError("Remote tools require a server_name")
        return self

    @classmethod
    def local(cls, handler: str) -> "ToolTarget":
        return cls(kind=ToolLocation.LOCAL, handler=handler)

    @classmethod
    def remote(cls, server_name: str) -> "ToolTarget":
        return cls(kind=ToolLocation.REMOTE, server_name=server_name)


class ToolDescriptor(BaseModel):
    """Executable description of a tool."""

    model_config = {"frozen": True}

    name: str = Field(..., description="Tool name, unique within a registry")
    description: str = Field("", description="Human readable description")
    parameters: Dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}},
        description="JSON-Schema-shaped parameter spec",
    )
    target: ToolTarget

    @field_validator("name")
    @classmethod
    def name_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Tool name cannot be empty")
        return v

    @property
    def is_local(self) -> bool:
        return self.target.kind == ToolLocation.LOCAL

    @property
    def is_remote(self) -> bool:
        return self.target.kind == ToolLocation.REMOTE

    def to_function_schema(self) -> Dict[str, Any]:
        """Render the descriptor in the OpenAI function-calling format."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters or {"type": "object", "properties": {}},
            },
        }
