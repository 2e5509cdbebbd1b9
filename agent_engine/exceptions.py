"""
Error taxonomy for the Agent Engine.

Configuration and resolution errors are raised immediately to the caller.
Provider errors raised during a run are recorded on the ExecutionRecord,
and tool errors are fed back to the model as tool results.
"""
from typing import List, Optional


class AgentEngineError(Exception):
    """Base class for all Agent Engine errors."""

    def __init__(self, message: str, cause: Optional[Exception] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause


class InvalidConfig(AgentEngineError):
    """Agent configuration violates an invariant."""


class AgentNotFound(AgentEngineError):
    """No agent is registered under the requested id."""

    def __init__(self, agent_id: str):
        super().__init__(f"Agent not found: {agent_id}")
        self.agent_id = agent_id


class ToolNotFound(AgentEngineError):
    """One or more tool names resolve neither locally nor remotely."""

    def __init__(self, tool_names: List[str]):
        super().__init__(f"Tool not found: {', '.join(tool_names)}")
        self.tool_names = tool_names


class ServerUnavailable(AgentEngineError):
    """The remote tool server owning a tool is not connected."""

    def __init__(
        self, server_name: str, reason: str = "", cause: Optional[Exception] = None
    ):
        message = f"Remote tool server unavailable: {server_name}"
        if reason:
            message += f" ({reason})"
        super().__init__(message, cause)
        self.server_name = server_name


class ProviderUnavailable(AgentEngineError):
    """Provider cannot be reached or authenticated, or is not configured."""


class ProviderError(AgentEngineError):
    """Provider was reached but the call failed."""


class ToolExecutionError(AgentEngineError):
    """A tool ran but failed. Recoverable: reported back to the model."""


ERRORS_BY_KIND = {
    cls.__name__: cls
    for cls in (
        InvalidConfig,
        ProviderUnavailable,
        ProviderError,
        ToolExecutionError,
    )
}
