"""In-memory store for development and testing."""

from __future__ import annotations

import asyncio

from ..engine.execution import Entry, Execution
from ..engine.execution_result import ExecutionStatus
from .store import Store, status_value


class InMemoryStore(Store):
    """Dict-backed store guarded by an asyncio.Lock.

    Records are deep-copied on the way in and out, so callers never share
    mutable structures with the store.
    """

    def __init__(self) -> None:
        self._executions: dict[str, Execution] = {}
        self._entries: dict[str, list[Entry]] = {}
        self._lock = asyncio.Lock()

    async def save(self, execution: Execution) -> Execution:
        async with self._lock:
            self._executions[execution.id] = execution.model_copy(deep=True)
            return execution

    async def load(self, execution_id: str) -> Execution | None:
        async with self._lock:
            execution = self._executions.get(execution_id)
            return execution.model_copy(deep=True) if execution else None

    async def record(self, entry: Entry) -> Entry:
        async with self._lock:
            self._entries.setdefault(entry.execution_id, []).append(entry.model_copy(deep=True))
            return entry

    async def entries(self, execution_id: str) -> list[Entry]:
        async with self._lock:
            return [entry.model_copy(deep=True) for entry in self._entries.get(execution_id, [])]

    async def find(
        self,
        workflow_id: str | None = None,
        status: ExecutionStatus | str | None = None,
        limit: int = 100,
    ) -> list[Execution]:
        wanted_status = status_value(status)
        async with self._lock:
            executions = list(self._executions.values())

        if workflow_id is not None:
            executions = [e for e in executions if e.workflow_id == workflow_id]
        if wanted_status is not None:
            executions = [e for e in executions if e.status.value == wanted_status]

        executions.sort(key=lambda e: e.created_at, reverse=True)
        return [e.model_copy(deep=True) for e in executions[:limit]]

    async def delete(self, execution_id: str) -> bool:
        async with self._lock:
            self._entries.pop(execution_id, None)
            return self._executions.pop(execution_id, None) is not None

    async def execution_ids(self, workflow_id: str | None = None, limit: int = 1000) -> list[str]:
        return [e.id for e in await self.find(workflow_id=workflow_id, limit=limit)]


__all__ = ["InMemoryStore"]
