"""Durable store contract.

The engine's hard dependencies are save/load/record. find/delete/execution_ids
exist for external tooling (dashboards, cleanup jobs, pollers).

Implementations must make save/load/record safe for concurrent use with
distinct execution ids; the engine performs no locking of its own and always
overwrites the full Execution record on every step transition.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from ..engine.execution import Entry, Execution
from ..engine.execution_result import ExecutionStatus


class Store(ABC):
    """Abstract base class for execution storage."""

    @abstractmethod
    async def save(self, execution: Execution) -> Execution:
        """Insert or overwrite ``execution`` (keyed by id) and return it."""
        ...

    @abstractmethod
    async def load(self, execution_id: str) -> Execution | None:
        """Load an execution by id, return None if not found."""
        ...

    @abstractmethod
    async def record(self, entry: Entry) -> Entry:
        """Append an audit entry and return it."""
        ...

    @abstractmethod
    async def entries(self, execution_id: str) -> list[Entry]:
        """Audit entries of an execution, in recording order."""
        ...

    @abstractmethod
    async def find(
        self,
        workflow_id: str | None = None,
        status: ExecutionStatus | str | None = None,
        limit: int = 100,
    ) -> list[Execution]:
        """Executions matching the filters, most recently created first."""
        ...

    @abstractmethod
    async def delete(self, execution_id: str) -> bool:
        """Delete an execution and its entries, return True if it existed."""
        ...

    @abstractmethod
    async def execution_ids(self, workflow_id: str | None = None, limit: int = 1000) -> list[str]:
        """Ids of stored executions, most recently created first."""
        ...


def status_value(status: ExecutionStatus | str | None) -> str | None:
    if status is None:
        return None
    return status.value if isinstance(status, ExecutionStatus) else str(status)


__all__ = ["Store", "status_value"]
