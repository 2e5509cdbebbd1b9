"""
Domain models for agent execution.

This module defines conversation turns, tool invocation requests and
results, usage accounting, the ExecutionRecord returned by a run, and the
lifecycle events emitted by a streaming run.
"""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field

from agent_engine.exceptions import ERRORS_BY_KIND, AgentEngineError


class TurnRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class ToolCallRequest(BaseModel):
    """A tool invocation requested by the model."""

    model_config = {"frozen": True}

    id: str = Field(..., description="Call id assigned by the model or provider")
    name: str = Field(..., description="Requested tool name")
    arguments: Union[Dict[str, Any], str] = Field(
        default_factory=dict,
        description="Structured arguments, or the raw text if it did not parse",
    )


class ToolInvocationResult(BaseModel):
    """Outcome of one tool invocation."""

    model_config = {"frozen": True}

    call_id: str
    tool_name: str
    success: bool
    result: Any = None
    error: Optional[str] = None

    def payload(self) -> Dict[str, Any]:
        """Content fed back to the model for this result."""
        if self.success:
            return {"success": True, "result": self.result}
        return {"success": False, "error": self.error}


class ConversationTurn(BaseModel):
    """One turn of a run's transcript. Never mutated once appended."""

    model_config = {"frozen": True}

    role: TurnRole
    content: str = ""
    tool_calls: Optional[List[ToolCallRequest]] = None
    tool_call_id: Optional[str] = None
    name: Optional[str] = None

    @classmethod
    def user(cls, content: str) -> "ConversationTurn":
        return cls(role=TurnRole.USER, content=content)

    @classmethod
    def assistant(
        cls, content: str, tool_calls: Optional[List[ToolCallRequest]] = None
    ) -> "ConversationTurn":
        return cls(role=TurnRole.ASSISTANT, content=content, tool_calls=tool_calls or None)

    @classmethod
    def tool(cls, call_id: str, name: str, content: str) -> "ConversationTurn":
        return cls(role=TurnRole.TOOL, content=content, tool_call_id=call_id, name=name)

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)


class UsageInfo(BaseModel):
    """Token accounting reported by a provider."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def __add__(self, other: "UsageInfo") -> "UsageInfo":
        return UsageInfo(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )


class ProviderReply(BaseModel):
    """Assistant turn returned by a provider, with optional usage."""

    turn: ConversationTurn
    usage: Optional[UsageInfo] = None
    model: Optional[str] = None
    finish_reason: Optional[str] = None


class ExecutionStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    MAX_ROUNDS_REACHED = "max_rounds_reached"

    @property
    def is_terminal(self) -> bool:
        return self != ExecutionStatus.RUNNING


class ExecutionError(BaseModel):
    """Error that terminated a failed run."""

    kind: str
    message: str

    @classmethod
    def from_exception(cls, exc: Exception) -> "ExecutionError":
        message = getattr(exc, "message", None) or str(exc)
        return cls(kind=type(exc).__name__, message=message)


class ExecutionRecord(BaseModel):
    """Finished (or failed) run of an agent."""

    model_config = {"frozen": True}

    execution_id: str
    agent_id: str
    prompt: str
    system_prompt: str = ""
    turns: List[ConversationTurn] = Field(default_factory=list)
    tool_calls: List[ToolCallRequest] = Field(default_factory=list)
    tool_results: List[ToolInvocationResult] = Field(default_factory=list)
    rounds: int = 0
    max_rounds: int = 1
    status: ExecutionStatus = ExecutionStatus.RUNNING
    started_at: datetime
    ended_at: Optional[datetime] = None
    final_answer: Optional[str] = None
    usage: Optional[UsageInfo] = None
    error: Optional[ExecutionError] = None

    @property
    def response(self) -> str:
        return self.final_answer if self.final_answer is not None else "No response generated"

    def raise_for_status(self) -> "ExecutionRecord":
        """Re-raise the typed error of a failed run; return self otherwise."""
        if self.status == ExecutionStatus.FAILED and self.error is not None:
            error_cls = ERRORS_BY_KIND.get(self.error.kind, AgentEngineError)
            raise error_cls(self.error.message)
        return self


class ExecutionEvent(BaseModel):
    """Lifecycle event emitted on the streaming side channel."""

    type: Literal["progress", "delta", "tool_call", "tool_result", "complete", "error"]
    execution_id: Optional[str] = None
    round: Optional[int] = None
    message: Optional[str] = None
    tool_name: Optional[str] = None
    arguments: Any = None
    result: Optional[Dict[str, Any]] = None
    record: Optional[ExecutionRecord] = None

    @property
    def is_terminal(self) -> bool:
        return self.type in ("complete", "error")
