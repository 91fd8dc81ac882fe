"""
Workflow engine - the step-dispatch loop and halt/resume state machine.

Responsibilities:
- Persist an Execution record before the first step and after every transition
- Dispatch each step to its registered executor (one step at a time)
- Record one audit Entry per step attempt
- Route failures to ``on_error`` handlers, otherwise persist ``failed`` and re-raise
- Stop on halt (the durable record is the only carried state) and resume later,
  possibly from another process

Lifecycle:
    running -> completed | halted | failed
    halted  -> running (via resume)
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Any

from .config import EngineSettings
from .exceptions import ConfigError, ExecutionError
from .execution import Entry, EntryAction, Execution
from .execution_context import ExecutionContext, ServiceResolver
from .execution_result import (
    ContinueResult,
    ExecutionResult,
    ExecutionStatus,
    HaltResult,
    StepOutcome,
)
from .executor_base import ExecutorRegistry, create_default_registry
from .registry import WorkflowRegistry
from .schema import FINISHED, StepDef, WorkflowDef
from .state import State
from .utils import deep_normalize

if TYPE_CHECKING:
    from ..storage.store import Store

logger = logging.getLogger(__name__)

LAST_ERROR_KEY = "_last_error"


class Engine:
    """
    Executes one workflow definition against a durable store.

    An Engine holds no per-execution state, so one instance can run and resume
    any number of executions concurrently.

    Example:
        engine = Engine(workflow, store=InMemoryStore())
        result = await engine.run({"amount": 42})
        if result.halted:
            result = await engine.resume(result.execution_id, approved=True)
    """

    def __init__(
        self,
        workflow: WorkflowDef,
        store: Store | None = None,
        *,
        executor_registry: ExecutorRegistry | None = None,
        workflow_registry: WorkflowRegistry | None = None,
        service_resolver: ServiceResolver | dict[str, Any] | None = None,
        settings: EngineSettings | None = None,
        context: ExecutionContext | None = None,
    ):
        """
        Args:
            workflow: Workflow to execute
            store: Durable store (required unless ``context`` is given)
            executor_registry: Step types (default: built-in types)
            workflow_registry: Workflows available to sub-workflow steps
                (default: a registry holding only ``workflow``)
            service_resolver: Callable or mapping resolving call-step service names
                (default: dotted-path import)
            settings: Engine tunables (default: EngineSettings.from_env())
            context: Pre-built context; used for sub-workflow engines

        Raises:
            ConfigError: If no store is available
        """
        self.workflow = workflow

        if context is not None:
            self.context = context
            return

        if store is None:
            raise ConfigError("No store configured: pass store=InMemoryStore() or SqliteStore(...)")

        if workflow_registry is None:
            workflow_registry = WorkflowRegistry()
        if not workflow_registry.exists(workflow.id):
            workflow_registry.register(workflow)

        if isinstance(service_resolver, dict):
            service_resolver = service_resolver.get

        self.context = ExecutionContext(
            workflow=workflow,
            store=store,
            executor_registry=executor_registry or create_default_registry(),
            workflow_registry=workflow_registry,
            service_resolver=service_resolver,
            settings=settings or EngineSettings.from_env(),
        )

    @property
    def store(self) -> Store:
        return self.context.store

    @property
    def executor_registry(self) -> ExecutorRegistry:
        return self.context.executor_registry

    @property
    def workflow_registry(self) -> WorkflowRegistry:
        return self.context.workflow_registry

    # ------------------------------------------------------------------
    # Public API

    async def run(
        self, input: dict[str, Any] | None = None, execution_id: str | None = None
    ) -> ExecutionResult:
        """
        Start a new execution.

        Args:
            input: Workflow input (keys normalized to strings)
            execution_id: Id to use (default: a new UUID); an existing ``pending``
                record with this id (e.g. enqueued by AsyncRunner) is taken over

        Returns:
            ExecutionResult (completed, halted, or failed on workflow timeout)

        Raises:
            Exception: Any step failure not handled by ``on_error``
        """
        execution_id = execution_id or str(uuid.uuid4())
        first = self.workflow.first_step
        if first is None:
            raise ExecutionError(f"Workflow '{self.workflow.id}' has no steps")

        existing = await self.store.load(execution_id)
        created_at = existing.created_at if existing else None

        state = State(
            execution_id=execution_id,
            workflow_id=self.workflow.id,
            input=deep_normalize(input or {}),
        )
        created_at = await self._save_execution(
            state, ExecutionResult.running(execution_id), created_at
        )

        logger.info(f"Workflow '{self.workflow.id}' started (execution {execution_id})")
        return await self._execute_with_deadline(state, first.id, created_at)

    async def resume(
        self,
        execution_id: str,
        response: Any = None,
        approved: bool | None = None,
    ) -> ExecutionResult:
        """
        Resume a halted execution from durable storage.

        ``response`` is merged into ctx as ``response`` and ``approved`` as
        ``approved``. Dispatch restarts at the halt's resume step, or at the last
        dispatched step for executions interrupted while running.

        Raises:
            ExecutionError: If the execution doesn't exist, belongs to another
                workflow, or already completed or failed
        """
        execution = await self.store.load(execution_id)
        if execution is None:
            raise ExecutionError(f"Execution not found: {execution_id}")
        if execution.workflow_id != self.workflow.id:
            raise ExecutionError(
                f"Execution {execution_id} belongs to workflow '{execution.workflow_id}', "
                f"not '{self.workflow.id}'"
            )
        if execution.status in (ExecutionStatus.COMPLETED, ExecutionStatus.FAILED):
            raise ExecutionError(
                f"Execution {execution_id} is {execution.status.value} and cannot be resumed"
            )

        state = execution.to_state().with_(
            resume_data=execution.halt_data, resume_checkpoint=execution.checkpoint
        )
        if response is not None:
            state = state.with_ctx({"response": response})
        if approved is not None:
            state = state.with_ctx({"approved": approved})

        resume_step = execution.recover_to or execution.current_step
        if resume_step is None:
            first = self.workflow.first_step
            resume_step = first.id if first else FINISHED

        logger.info(
            f"Workflow '{self.workflow.id}' resumed at '{resume_step}' (execution {execution_id})"
        )
        return await self._execute_with_deadline(state, resume_step, execution.created_at)

    async def execute_step(self, state: State, step: StepDef) -> StepOutcome:
        """
        Execute a single step with timing, audit entry and error routing.

        Override point for observers (see StreamingEngine): subclasses can
        interpose before and after each step by wrapping ``super().execute_step``.
        """
        start = time.monotonic()
        logger.debug(f"Executing step '{step.id}' ({step.type})")

        try:
            executor = self.executor_registry.create(step, self.context)
            outcome = await executor.call(state)
        except Exception as e:
            error = f"{type(e).__name__}: {e}"
            await self.store.record(
                Entry(
                    execution_id=state.execution_id,
                    step_id=step.id,
                    step_type=step.type,
                    action=EntryAction.FAILED,
                    duration_ms=_elapsed_ms(start),
                    input=state.ctx,
                    error=error,
                )
            )

            if step.on_error:
                logger.warning(f"Step '{step.id}' failed, routing to '{step.on_error}': {error}")
                error_state = state.with_ctx(
                    {LAST_ERROR_KEY: {"step": step.id, "message": str(e), "class": type(e).__name__}}
                )
                return StepOutcome(state=error_state, result=ContinueResult(next_step=step.on_error))

            logger.error(f"Step '{step.id}' failed: {error}")
            raise

        await self.store.record(
            Entry(
                execution_id=state.execution_id,
                step_id=step.id,
                step_type=step.type,
                action=EntryAction.HALTED if outcome.halted else EntryAction.COMPLETED,
                duration_ms=_elapsed_ms(start),
                input=state.ctx,
                output=outcome.result.output,
            )
        )
        return outcome

    @staticmethod
    def _redirected_on_error(step: StepDef, outcome: StepOutcome) -> bool:
        """True when ``outcome`` is the on_error redirect built by execute_step."""
        error = outcome.state.ctx.get(LAST_ERROR_KEY)
        return (
            step.on_error is not None
            and not outcome.halted
            and outcome.result.next_step == step.on_error
            and isinstance(error, dict)
            and error.get("step") == step.id
        )

    # ------------------------------------------------------------------
    # Dispatch loop

    async def _execute_with_deadline(
        self, state: State, step_id: str, created_at: datetime | None
    ) -> ExecutionResult:
        timeout = self.workflow.timeout
        if timeout is None:
            return await self._execute_from(state, step_id, created_at)

        try:
            async with asyncio.timeout(timeout) as deadline:
                return await self._execute_from(state, step_id, created_at)
        except TimeoutError:
            if not deadline.expired():
                raise

        error = f"Workflow timeout after {timeout}s"
        logger.warning(f"Workflow '{self.workflow.id}' {error} (execution {state.execution_id})")

        latest = await self.store.load(state.execution_id)
        if latest is not None:
            state = latest.to_state()
        result = ExecutionResult.failure(state.execution_id, error)
        await self._save_execution(state, result, created_at)
        return result

    async def _execute_from(
        self, state: State, step_id: str | None, created_at: datetime | None
    ) -> ExecutionResult:
        while step_id and step_id != FINISHED:
            state = state.with_current_step(step_id)
            await self._save_execution(
                state, ExecutionResult.running(state.execution_id), created_at
            )

            handling_error = LAST_ERROR_KEY in state.ctx
            try:
                step = self.workflow.find_step(step_id)
                if step is None:
                    raise ExecutionError(f"Step not found: {step_id}")
                outcome = await self.execute_step(state, step)
            except Exception as e:
                failure = ExecutionResult.failure(state.execution_id, f"{type(e).__name__}: {e}")
                await self._save_execution(state, failure, created_at)
                raise

            state = outcome.state.with_(resume_data=None, resume_checkpoint=None)
            if handling_error and not self._redirected_on_error(step, outcome):
                state = state.without_ctx(LAST_ERROR_KEY)

            if isinstance(outcome.result, HaltResult):
                return await self._handle_halt(state, outcome.result, created_at)
            step_id = outcome.result.next_step

        result = ExecutionResult.success(state.execution_id, state.ctx.get("result"))
        await self._save_execution(state, result, created_at)
        logger.info(f"Workflow '{self.workflow.id}' completed (execution {state.execution_id})")
        return result

    async def _handle_halt(
        self, state: State, halt: HaltResult, created_at: datetime | None
    ) -> ExecutionResult:
        result = ExecutionResult.paused(state.execution_id, halt, output=state.ctx.get("result"))
        await self._save_execution(state, result, created_at)
        logger.info(
            f"Workflow '{self.workflow.id}' halted at '{state.current_step}' "
            f"(execution {state.execution_id}, resume at '{halt.resume_step}')"
        )
        return result

    async def _save_execution(
        self, state: State, result: ExecutionResult, created_at: datetime | None
    ) -> datetime:
        execution = Execution.from_state(state, result, created_at=created_at)
        await self.store.save(execution)
        return execution.created_at


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


__all__ = ["Engine"]
