"""
Enqueue-and-poll runner wrapper.

``AsyncRunner.run`` persists a ``pending`` Execution, hands a Job to an
adapter and returns the execution id immediately; callers poll with
``wait``/``status``. The store is the only channel between the caller and
whatever executes the job.

Adapters:
- InlineAdapter: performs the job immediately in the caller's task (tests, dev)
- QueueAdapter: asyncio worker pool consuming an in-process queue
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from abc import ABC, abstractmethod
from typing import Any, Literal

from pydantic import BaseModel, Field

from ..engine.engine import Engine
from ..engine.exceptions import ConfigError, ExecutionError
from ..engine.execution import Execution
from ..engine.execution_result import ExecutionResult, ExecutionStatus
from ..engine.registry import WorkflowRegistry
from ..engine.schema import WorkflowDef
from ..engine.utils import deep_normalize
from ..storage.store import Store

logger = logging.getLogger(__name__)


class Job(BaseModel):
    """One unit of work handed to an adapter."""

    action: Literal["start", "resume"]
    workflow_id: str
    execution_id: str
    input: dict[str, Any] = Field(default_factory=dict)
    response: Any = None
    approved: bool | None = None


class Adapter(ABC):
    """
    Executes Jobs against a store.

    Workflows are looked up by id in ``workflow_registry``; ``engine_options``
    are passed through to every Engine the adapter builds.
    """

    def __init__(
        self,
        store: Store,
        workflow_registry: WorkflowRegistry | None = None,
        **engine_options: Any,
    ):
        self.store = store
        self.workflow_registry = workflow_registry or WorkflowRegistry()
        self.engine_options = engine_options

    @abstractmethod
    async def enqueue(self, job: Job) -> None:
        """Schedule ``job`` for execution."""
        ...

    async def perform(self, job: Job) -> ExecutionResult:
        workflow = self.workflow_registry.get(job.workflow_id)
        if workflow is None:
            raise ExecutionError(f"Workflow not found: {job.workflow_id}")

        engine = Engine(
            workflow,
            store=self.store,
            workflow_registry=self.workflow_registry,
            **self.engine_options,
        )
        if job.action == "start":
            return await engine.run(job.input, execution_id=job.execution_id)
        return await engine.resume(job.execution_id, response=job.response, approved=job.approved)


class InlineAdapter(Adapter):
    """Performs each job immediately; step failures propagate to the enqueuer."""

    async def enqueue(self, job: Job) -> None:
        await self.perform(job)


class QueueAdapter(Adapter):
    """
    Worker pool consuming Jobs from an asyncio.Queue.

    Usage:
        adapter = QueueAdapter(store, registry, num_workers=3)
        await adapter.start()
        runner = AsyncRunner(workflow, store=store, adapter=adapter)
        execution_id = await runner.run({"n": 1})
        result = await runner.wait(execution_id)
        await adapter.stop()
    """

    def __init__(
        self,
        store: Store,
        workflow_registry: WorkflowRegistry | None = None,
        num_workers: int = 3,
        **engine_options: Any,
    ):
        super().__init__(store, workflow_registry, **engine_options)
        self._num_workers = num_workers
        self._queue: asyncio.Queue[Job] = asyncio.Queue()
        self._workers: list[asyncio.Task[None]] = []
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            logger.warning("QueueAdapter already running")
            return

        self._running = True
        self._workers = [
            asyncio.create_task(self._worker(worker_id=i)) for i in range(self._num_workers)
        ]
        logger.info(f"QueueAdapter started with {self._num_workers} workers")

    async def stop(self, wait_for_completion: bool = True) -> None:
        """
        Stop the worker pool.

        Args:
            wait_for_completion: If True, drain queued jobs first
        """
        if not self._running:
            return

        if wait_for_completion:
            await self._queue.join()
        self._running = False

        for worker in self._workers:
            worker.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        logger.info("QueueAdapter stopped")

    async def __aenter__(self) -> QueueAdapter:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.stop()

    async def enqueue(self, job: Job) -> None:
        """
        Raises:
            RuntimeError: If the worker pool is not started
        """
        if not self._running:
            raise RuntimeError("QueueAdapter not started. Call start() first.")
        await self._queue.put(job)
        logger.info(f"Job queued: {job.action} {job.workflow_id} (execution {job.execution_id})")

    async def _worker(self, worker_id: int) -> None:
        logger.debug(f"QueueAdapter worker {worker_id} started")

        while True:
            job = await self._queue.get()
            try:
                result = await self.perform(job)
                logger.info(
                    f"Worker {worker_id} finished {job.action} of execution {job.execution_id}: "
                    f"{result.status.value}"
                )
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(
                    f"Worker {worker_id} failed job for execution {job.execution_id}: {e}",
                    exc_info=True,
                )
                await self._mark_failed(job, f"{type(e).__name__}: {e}")
            finally:
                self._queue.task_done()

    async def _mark_failed(self, job: Job, error: str) -> None:
        # The engine persists step failures itself; this covers jobs that never reached it
        execution = await self.store.load(job.execution_id)
        if execution is None or execution.status is ExecutionStatus.FAILED:
            return
        if execution.status in (ExecutionStatus.PENDING, ExecutionStatus.RUNNING):
            await self.store.save(
                execution.model_copy(update={"status": ExecutionStatus.FAILED, "error": error})
            )


class AsyncRunner:
    """
    Enqueue runs and resumes, then poll the store for the outcome.

    Example:
        runner = AsyncRunner(workflow, store=store)
        execution_id = await runner.run({"n": 3})
        result = await runner.wait(execution_id, timeout=10)
    """

    def __init__(
        self,
        workflow: WorkflowDef,
        store: Store | None = None,
        adapter: Adapter | None = None,
        workflow_registry: WorkflowRegistry | None = None,
        **engine_options: Any,
    ):
        if store is None:
            raise ConfigError("No store configured")

        self.workflow = workflow
        self.store = store
        if adapter is None:
            adapter = InlineAdapter(store, workflow_registry, **engine_options)
        self.adapter = adapter

        if not self.adapter.workflow_registry.exists(workflow.id):
            self.adapter.workflow_registry.register(workflow)

    async def run(
        self, input: dict[str, Any] | None = None, execution_id: str | None = None
    ) -> str:
        """Persist a pending execution, enqueue it and return its id."""
        execution_id = execution_id or str(uuid.uuid4())
        input = deep_normalize(input or {})

        await self.store.save(
            Execution(
                id=execution_id,
                workflow_id=self.workflow.id,
                status=ExecutionStatus.PENDING,
                input=input,
            )
        )
        await self.adapter.enqueue(
            Job(
                action="start",
                workflow_id=self.workflow.id,
                execution_id=execution_id,
                input=input,
            )
        )
        return execution_id

    async def resume(
        self, execution_id: str, response: Any = None, approved: bool | None = None
    ) -> str:
        """Enqueue a resume of ``execution_id`` and return the id."""
        await self.adapter.enqueue(
            Job(
                action="resume",
                workflow_id=self.workflow.id,
                execution_id=execution_id,
                response=response,
                approved=approved,
            )
        )
        return execution_id

    async def wait(
        self, execution_id: str, timeout: float = 30.0, interval: float = 0.1
    ) -> ExecutionResult | None:
        """
        Poll until the execution is completed, halted or failed.

        Returns:
            The ExecutionResult, or None if ``timeout`` elapsed first
        """
        deadline = time.monotonic() + timeout

        while time.monotonic() < deadline:
            execution = await self.store.load(execution_id)
            if execution is not None and execution.status.terminal:
                return execution.to_result()
            await asyncio.sleep(interval)

        logger.debug(f"Timed out after {timeout}s waiting for execution {execution_id}")
        return None

    async def status(self, execution_id: str) -> ExecutionStatus | None:
        """Current status, or None for unknown executions."""
        execution = await self.store.load(execution_id)
        return execution.status if execution else None


__all__ = ["Adapter", "AsyncRunner", "InlineAdapter", "Job", "QueueAdapter"]
