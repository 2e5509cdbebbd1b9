from abc import ABC, abstractmethod
from typing import List, Optional

from agent_engine.domains.execution import ExecutionRecord


class ExecutionStore(ABC):
    """Interface for the store that receives finished executions."""

    @abstractmethod
    async def save_execution(self, record: ExecutionRecord) -> None:
        """Persist a finished execution record."""
        pass

    @abstractmethod
    async def get_execution(self, execution_id: str) -> Optional[ExecutionRecord]:
        """Get an execution record by id."""
        pass

    @abstractmethod
    async def list_executions(
        self, agent_id: Optional[str] = None, limit: int = 0
    ) -> List[ExecutionRecord]:
        """List execution records, newest first."""
        pass
