"""SQLite-backed durable store.

Architecture:
    - executions table: one row per execution, full record as JSON plus
      indexed columns for queries (workflow_id, status, created_at)
    - entries table: append-only audit log, ordered by insertion
    - WAL mode so several processes can share one database file
    - A short-lived connection per operation, run in the default thread pool
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from collections.abc import Callable
from pathlib import Path
from typing import TypeVar

from ..engine.execution import Entry, Execution
from ..engine.execution_result import ExecutionStatus
from .state_config import StateConfig
from .store import Store, status_value

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SqliteStore(Store):
    """Durable store persisting executions and audit entries in SQLite.

    Example:
        store = SqliteStore("state.db")
        engine = Engine(workflow, store=store)

    The schema is created on first use; ``init()`` may be awaited up front to
    surface configuration problems early.
    """

    def __init__(self, db_path: str | Path | None = None) -> None:
        self._db_path = Path(db_path) if db_path is not None else StateConfig.get_db_path()
        self._initialized = False

    @property
    def db_path(self) -> Path:
        return self._db_path

    async def init(self) -> None:
        """Create tables and indexes if they don't exist."""
        await self._run_in_executor(self._init_db)
        self._initialized = True
        logger.info(f"SqliteStore initialized: db={self._db_path}")

    def _init_db(self) -> None:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self._db_path)
        try:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=NORMAL")

            conn.execute("""
                CREATE TABLE IF NOT EXISTS executions (
                    id TEXT PRIMARY KEY,
                    workflow_id TEXT NOT NULL,
                    status TEXT NOT NULL,
                    created_at REAL NOT NULL,
                    updated_at REAL NOT NULL,
                    data TEXT NOT NULL
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_exec_workflow ON executions(workflow_id)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_exec_status ON executions(status)")
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_exec_created ON executions(created_at DESC)"
            )

            conn.execute("""
                CREATE TABLE IF NOT EXISTS entries (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    id TEXT NOT NULL,
                    execution_id TEXT NOT NULL,
                    step_id TEXT NOT NULL,
                    action TEXT NOT NULL,
                    data TEXT NOT NULL
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_entry_exec ON entries(execution_id)")
            conn.commit()
        finally:
            conn.close()

        logger.debug("Database schema initialized with WAL mode")

    async def _ensure_init(self) -> None:
        if not self._initialized:
            await self.init()

    async def save(self, execution: Execution) -> Execution:
        await self._ensure_init()
        payload = execution.model_dump_json()

        def _write() -> None:
            conn = sqlite3.connect(self._db_path)
            try:
                conn.execute(
                    "INSERT OR REPLACE INTO executions VALUES (?, ?, ?, ?, ?, ?)",
                    (
                        execution.id,
                        execution.workflow_id,
                        execution.status.value,
                        execution.created_at.timestamp(),
                        execution.updated_at.timestamp(),
                        payload,
                    ),
                )
                conn.commit()
            finally:
                conn.close()

        await self._run_in_executor(_write)
        return execution

    async def load(self, execution_id: str) -> Execution | None:
        await self._ensure_init()

        def _read() -> str | None:
            conn = sqlite3.connect(self._db_path)
            try:
                row = conn.execute(
                    "SELECT data FROM executions WHERE id = ?", (execution_id,)
                ).fetchone()
            finally:
                conn.close()
            return row[0] if row else None

        data = await self._run_in_executor(_read)
        return Execution.model_validate_json(data) if data is not None else None

    async def record(self, entry: Entry) -> Entry:
        await self._ensure_init()
        payload = entry.model_dump_json()

        def _write() -> None:
            conn = sqlite3.connect(self._db_path)
            try:
                conn.execute(
                    "INSERT INTO entries (id, execution_id, step_id, action, data) "
                    "VALUES (?, ?, ?, ?, ?)",
                    (entry.id, entry.execution_id, entry.step_id, entry.action.value, payload),
                )
                conn.commit()
            finally:
                conn.close()

        await self._run_in_executor(_write)
        return entry

    async def entries(self, execution_id: str) -> list[Entry]:
        await self._ensure_init()

        def _query() -> list[str]:
            conn = sqlite3.connect(self._db_path)
            try:
                cursor = conn.execute(
                    "SELECT data FROM entries WHERE execution_id = ? ORDER BY seq",
                    (execution_id,),
                )
                return [row[0] for row in cursor.fetchall()]
            finally:
                conn.close()

        rows = await self._run_in_executor(_query)
        return [Entry.model_validate_json(row) for row in rows]

    async def find(
        self,
        workflow_id: str | None = None,
        status: ExecutionStatus | str | None = None,
        limit: int = 100,
    ) -> list[Execution]:
        rows = await self._select("data", workflow_id, status_value(status), limit)
        return [Execution.model_validate_json(row) for row in rows]

    async def execution_ids(self, workflow_id: str | None = None, limit: int = 1000) -> list[str]:
        return await self._select("id", workflow_id, None, limit)

    async def _select(
        self, column: str, workflow_id: str | None, status: str | None, limit: int
    ) -> list[str]:
        await self._ensure_init()

        clauses: list[str] = []
        params: list[object] = []
        if workflow_id is not None:
            clauses.append("workflow_id = ?")
            params.append(workflow_id)
        if status is not None:
            clauses.append("status = ?")
            params.append(status)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        params.append(limit)

        def _query() -> list[str]:
            conn = sqlite3.connect(self._db_path)
            try:
                cursor = conn.execute(
                    f"SELECT {column} FROM executions {where} "
                    "ORDER BY created_at DESC LIMIT ?",
                    params,
                )
                return [row[0] for row in cursor.fetchall()]
            finally:
                conn.close()

        return await self._run_in_executor(_query)

    async def delete(self, execution_id: str) -> bool:
        await self._ensure_init()

        def _delete() -> bool:
            conn = sqlite3.connect(self._db_path)
            try:
                cursor = conn.execute("DELETE FROM executions WHERE id = ?", (execution_id,))
                conn.execute("DELETE FROM entries WHERE execution_id = ?", (execution_id,))
                conn.commit()
                return cursor.rowcount > 0
            finally:
                conn.close()

        return await self._run_in_executor(_delete)

    async def _run_in_executor(self, func: Callable[[], T]) -> T:
        """Run a blocking function in the default thread pool."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, func)


__all__ = ["SqliteStore"]
