import logging
from typing import Dict, List, Optional

from agent_engine.domains.execution import ExecutionRecord
from agent_engine.interfaces.repositories.execution import ExecutionStore

logger = logging.getLogger(__name__)


class InMemoryExecutionStore(ExecutionStore):
    """Keeps finished execution records in process memory."""

    def __init__(self, max_records: int = 1000):
        self.max_records = max_records
        self._records: Dict[str, ExecutionRecord] = {}

    async def save_execution(self, record: ExecutionRecord) -> None:
        records = dict(self._records)
        records[record.execution_id] = record
        while self.max_records and len(records) > self.max_records:
            oldest = next(iter(records))
            del records[oldest]
        self._records = records
        logger.debug(f"Stored execution {record.execution_id} ({record.status.value})")

    async def get_execution(self, execution_id: str) -> Optional[ExecutionRecord]:
        return self._records.get(execution_id)

    async def list_executions(
        self, agent_id: Optional[str] = None, limit: int = 0
    ) -> List[ExecutionRecord]:
        records = [
            record
            for record in self._records.values()
            if agent_id is None or record.agent_id == agent_id
        ]
        records.reverse()
        return records[:limit] if limit else records
