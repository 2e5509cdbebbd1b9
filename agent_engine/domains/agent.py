"""
Domain models for agents.

This module defines the validated agent configuration, the summary view
returned by listings, and the Agent wrapper that builds system prompts.
"""
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel, Field, field_validator

from agent_engine.domains.tools import ToolDescriptor

MIN_TEMPERATURE = 0.0
MAX_TEMPERATURE = 2.0

TOOLS_HEADER = "\n\nYou have access to the following tools:\n"
TOOLS_FOOTER = (
    "\nUse these tools when needed to help answer the user's request. "
    "Continue using tools until you have sufficient information to provide "
    "a complete answer."
)


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class AgentConfig(BaseModel):
    """Agent configuration bound to a provider, a model and a tool set."""

    id: str = Field(
        default_factory=lambda: f"agent_{uuid.uuid4().hex[:12]}",
        description="Unique agent identifier",
    )
    name: str = Field("New Agent", description="Display name")
    description: str = Field(
        "AI agent with default configuration", description="Agent description"
    )
    provider: str = Field("openrouter", description="Provider selector")
    model: str = Field("openai/gpt-3.5-turbo", description="Model identifier")
    system: str = Field(
        "You are a helpful AI assistant.", description="System prompt text"
    )
    temperature: Optional[float] = Field(0.7, description="Sampling temperature")
    max_tokens: Optional[int] = Field(2000, description="Max output tokens")
    tools: List[str] = Field(
        default_factory=list, description="Ordered tool names the agent may use"
    )
    max_tool_rounds: int = Field(10, description="Round budget per run")
    created_at: datetime = Field(default_factory=_utcnow)
    last_used: Optional[datetime] = None
    metadata: Optional[Dict[str, Any]] = None

    @field_validator("id", "provider", "model")
    @classmethod
    def not_empty(cls, v: str) -> str:
        """Validate that identifying fields are not empty."""
        if not v.strip():
            raise ValueError("Field cannot be empty")
        return v

    @field_validator("temperature")
    @classmethod
    def temperature_in_range(cls, v: Optional[float]) -> Optional[float]:
        """Validate that temperature is between 0.0 and 2.0."""
        if v is not None and not MIN_TEMPERATURE <= v <= MAX_TEMPERATURE:
            raise ValueError("Temperature must be between 0.0 and 2.0")
        return v

    @field_validator("max_tokens")
    @classmethod
    def max_tokens_positive(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v < 1:
            raise ValueError("max_tokens must be at least 1")
        return v

    @field_validator("max_tool_rounds")
    @classmethod
    def rounds_positive(cls, v: int) -> int:
        """Validate that the round budget is at least 1."""
        if v < 1:
            raise ValueError("max_tool_rounds must be at least 1")
        return v

    @field_validator("tools")
    @classmethod
    def unique_tools(cls, v: List[str]) -> List[str]:
        """Drop duplicate tool names, keeping the first occurrence."""
        seen = set()
        ordered = []
        for name in v:
            if not name.strip():
                raise ValueError("Tool names cannot be empty")
            if name not in seen:
                seen.add(name)
                ordered.append(name)
        return ordered


class AgentSummary(BaseModel):
    """Listing view of an agent."""

    id: str
    name: str
    description: str
    provider: str
    model: str
    created_at: datetime
    last_used: Optional[datetime] = None
    tool_count: int = 0

    @classmethod
    def from_config(cls, config: AgentConfig) -> "AgentSummary":
        return cls(
            id=config.id,
            name=config.name,
            description=config.description,
            provider=config.provider,
            model=config.model,
            created_at=config.created_at,
            last_used=config.last_used,
            tool_count=len(config.tools),
        )


class Agent:
    """A validated agent configuration that knows how to prompt its model."""

    def __init__(self, config: AgentConfig):
        self.config = config

    @property
    def id(self) -> str:
        return self.config.id

    def build_system_prompt(self, tools: Sequence[ToolDescriptor]) -> str:
        """Append each tool's name and description, in the given order.

        Args:
            tools: Tool descriptors in the agent's declared order

        Returns:
            System prompt text
        """
        system_prompt = self.config.system
        if not tools:
            return system_prompt

        system_prompt += TOOLS_HEADER
        for tool in tools:
            system_prompt += f"\n- {tool.name}: {tool.description}\n"
        system_prompt += TOOLS_FOOTER
        return system_prompt

    def touch(self) -> "Agent":
        """Return a copy of this agent with last_used set to now."""
        return Agent(self.config.model_copy(update={"last_used": _utcnow()}))

    def __repr__(self) -> str:
        return f"<Agent {self.config.id} ({self.config.provider}/{self.config.model})>"
