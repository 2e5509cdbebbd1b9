from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Union

from agent_engine.domains.agent import AgentConfig, AgentSummary
from agent_engine.domains.execution import ExecutionRecord
from agent_engine.domains.tools import ToolDescriptor
from agent_engine.interfaces.plugins.plugins import Tool


class AgentEngine(ABC):
    """Interface for the Agent Engine client."""

    @abstractmethod
    async def start(self) -> None:
        """Load configured agents and connect remote tool servers."""
        pass

    @abstractmethod
    async def shutdown(self) -> None:
        """Disconnect remote tool servers."""
        pass

    @abstractmethod
    async def create_agent(self, config: Union[AgentConfig, Dict[str, Any]]) -> str:
        """Create an agent and return its id."""
        pass

    @abstractmethod
    def list_agents(self) -> List[AgentSummary]:
        """List all agents."""
        pass

    @abstractmethod
    async def run(self, agent_id: str, prompt: str) -> ExecutionRecord:
        """Run an agent against a prompt."""
        pass

    @abstractmethod
    def register_tool(self, tool: Tool) -> bool:
        """Register a local tool."""
        pass

    @abstractmethod
    def list_tools(self) -> List[ToolDescriptor]:
        """List every tool agents can declare."""
        pass

    @abstractmethod
    async def get_execution(self, execution_id: str) -> Optional[ExecutionRecord]:
        """Get a stored execution record."""
        pass
