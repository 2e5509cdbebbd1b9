from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Union

from agent_engine.domains.agent import AgentConfig, AgentSummary
from agent_engine.domains.execution import ExecutionRecord
from agent_engine.domains.tools import ToolDescriptor
from agent_engine.interfaces.plugins.plugins import Tool


class AgentDirectory(ABC):
    """Interface for the store of named agents and their tools."""

    @abstractmethod
    async def create_agent(self, config: Union[AgentConfig, Dict[str, Any]]) -> str:
        """Validate and store an agent, returning its id."""
        pass

    @abstractmethod
    def get_agent(self, agent_id: str) -> Optional[AgentConfig]:
        """Get an agent configuration by id."""
        pass

    @abstractmethod
    async def delete_agent(self, agent_id: str) -> bool:
        """Delete an agent."""
        pass

    @abstractmethod
    def list_agents(self) -> List[AgentSummary]:
        """List all agents."""
        pass

    @abstractmethod
    def register_tool(self, tool: Tool) -> bool:
        """Register a local tool."""
        pass

    @abstractmethod
    def list_tools(self) -> List[ToolDescriptor]:
        """List every tool an agent could declare."""
        pass

    @abstractmethod
    async def run(self, agent_id: str, prompt: str) -> ExecutionRecord:
        """Run an agent against a prompt."""
        pass
