"""Blocking runner wrapper."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from ..engine.engine import Engine
from ..engine.exceptions import ConfigError
from ..engine.execution_result import ExecutionResult, HaltResult
from ..engine.schema import WorkflowDef
from ..storage.store import Store

logger = logging.getLogger(__name__)


class SyncRunner:
    """
    Run and resume a workflow from synchronous code.

    Each call drives the engine with ``asyncio.run``, so a SyncRunner must not
    be used from inside a running event loop (use Engine directly there).

    Example:
        runner = SyncRunner(workflow, store=SqliteStore("state.db"))
        result = runner.run_until_complete({"amount": 42}, handler=lambda halt: "yes")
    """

    def __init__(self, workflow: WorkflowDef, store: Store | None = None, **engine_options: Any):
        if store is None:
            raise ConfigError("No store configured")
        self.workflow = workflow
        self.store = store
        self.engine = Engine(workflow, store=store, **engine_options)

    def run(
        self, input: dict[str, Any] | None = None, execution_id: str | None = None
    ) -> ExecutionResult:
        """Run the workflow, blocking until it completes, halts or fails."""
        return asyncio.run(self.engine.run(input, execution_id=execution_id))

    def resume(
        self, execution_id: str, response: Any = None, approved: bool | None = None
    ) -> ExecutionResult:
        """Resume a halted execution, blocking until it completes, halts or fails."""
        return asyncio.run(self.engine.resume(execution_id, response=response, approved=approved))

    def run_until_complete(
        self,
        input: dict[str, Any] | None = None,
        execution_id: str | None = None,
        handler: Callable[[HaltResult], Any] | None = None,
    ) -> ExecutionResult:
        """
        Run the workflow, answering every halt with ``handler(halt)``.

        Without a handler the first halted result is returned as is.
        """
        result = self.run(input, execution_id=execution_id)

        while result.halted and handler is not None and result.halt is not None:
            response = handler(result.halt)
            logger.debug(f"Resuming execution {result.execution_id} with handler response")
            result = self.resume(result.execution_id, response=response)

        return result


__all__ = ["SyncRunner"]
