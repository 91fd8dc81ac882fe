"""Base executor architecture.

Executors implement the runtime behavior of one step type. Key principles:
- One executor instance per step dispatch, built from the step's StepDef
- ``call(state)`` returns a StepOutcome (new State + Continue/Halt result)
- Exceptions indicate step failure (the engine routes them to ``on_error``)
- Typed configs: each executor declares a pydantic ``config_type``
- State is never mutated; helpers return new State values
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import Any, ClassVar, TypeVar

from pydantic import BaseModel, PrivateAttr
from pydantic import ValidationError as PydanticValidationError

from .exceptions import ExecutionError, ValidationError
from .execution import Entry, EntryAction
from .execution_context import ExecutionContext
from .execution_result import ContinueResult, HaltResult, StepOutcome
from .resolver import Resolver
from .schema import StepConfig, StepDef
from .state import State

logger = logging.getLogger(__name__)

T = TypeVar("T")


class StepExecutor(ABC):
    """Base class for workflow step executors.

    Subclasses must:
    1. Set class attributes (type_name, config_type)
    2. Implement call()

    Example:
        class EchoExecutor(StepExecutor):
            type_name = "echo"
            config_type = EchoConfig

            async def call(self, state: State) -> StepOutcome:
                message = self.resolve(state, self.config.message)
                state = self.store(state, self.config.output, message)
                return self.continue_(state, output=message)
    """

    type_name: ClassVar[str]
    config_type: ClassVar[type[StepConfig]] = StepConfig

    def __init__(self, step: StepDef, context: ExecutionContext):
        self.step = step
        self.context = context
        self.config: Any = self.coerce_config(step)

    @classmethod
    def coerce_config(cls, step: StepDef) -> StepConfig:
        """Return ``step.config`` as an instance of ``config_type``."""
        if isinstance(step.config, cls.config_type):
            return step.config
        raw = step.config if step.config is not None else {}
        if isinstance(raw, BaseModel):
            raw = raw.model_dump(by_alias=True)
        try:
            return cls.config_type.model_validate(raw)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid config for step '{step.id}': {e}") from e

    @abstractmethod
    async def call(self, state: State) -> StepOutcome:
        """Execute the step against ``state``.

        Returns:
            StepOutcome with the new State and a ContinueResult or HaltResult

        Raises:
            Exception: Any exception indicates step failure
        """

    # ------------------------------------------------------------------
    # Shared helpers

    @property
    def next_step(self) -> str | None:
        return self.step.next_step

    def resolve(self, state: State, value: Any) -> Any:
        return Resolver.resolve(state, value)

    def store(self, state: State, key: str | None, value: Any) -> State:
        """Return ``state`` with ``ctx[key] = value``; unchanged when ``key`` is None."""
        if not key:
            return state
        return state.with_ctx({key: value})

    def continue_(
        self, state: State, next_step: str | None = None, output: Any = None
    ) -> StepOutcome:
        return StepOutcome(
            state=state,
            result=ContinueResult(next_step=next_step or self.next_step, output=output),
        )

    def halt(
        self,
        state: State,
        data: dict[str, Any] | None = None,
        resume_step: str | None = None,
        prompt: str | None = None,
        checkpoint: dict[str, Any] | None = None,
    ) -> StepOutcome:
        return StepOutcome(
            state=state,
            result=HaltResult(
                data=data or {},
                resume_step=resume_step or self.next_step,
                prompt=prompt,
                checkpoint=checkpoint,
            ),
        )

    async def with_timeout(
        self, seconds: float | None, func: Callable[[], Awaitable[T]]
    ) -> T:
        """Await ``func()``, raising ExecutionError if it exceeds ``seconds``.

        The timeout is a cooperative deadline: work running in a worker thread
        keeps running after the caller has received the timeout error.
        """
        if seconds is None:
            return await func()

        try:
            async with asyncio.timeout(seconds) as deadline:
                return await func()
        except TimeoutError:
            if deadline.expired():
                raise ExecutionError(
                    f"Step '{self.step.id}' timed out after {seconds}s"
                ) from None
            raise

    async def with_retry(
        self,
        func: Callable[[], Awaitable[T]],
        max_retries: int = 0,
        delay: float = 1.0,
        backoff: float = 2.0,
    ) -> T:
        """Await ``func()``, retrying up to ``max_retries`` more times on failure.

        Sleeps ``delay * backoff ** (attempt - 1)`` between attempts and re-raises
        the last exception once retries are exhausted.
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                return await func()
            except Exception as e:
                if attempt > max_retries:
                    raise
                sleep_time = delay * (backoff ** (attempt - 1))
                logger.warning(
                    f"Step '{self.step.id}' ({self.type_name}): retry {attempt}/{max_retries} "
                    f"after {sleep_time}s: {e}"
                )
                await asyncio.sleep(sleep_time)

    async def run_nested(self, state: State, step_def: StepDef) -> StepOutcome:
        """Execute a nested step (loop body, parallel branch) with entry recording.

        Entries are namespaced as ``<this step id>:<nested step id>``.
        """
        executor = self.context.executor_registry.create(step_def, self.context)
        entry_id = f"{self.step.id}:{step_def.id}"
        start = time.monotonic()

        try:
            outcome = await executor.call(state)
        except Exception as e:
            await self.context.record(
                Entry(
                    execution_id=state.execution_id,
                    step_id=entry_id,
                    step_type=step_def.type,
                    action=EntryAction.FAILED,
                    duration_ms=int((time.monotonic() - start) * 1000),
                    error=f"{type(e).__name__}: {e}",
                )
            )
            raise

        await self.context.record(
            Entry(
                execution_id=state.execution_id,
                step_id=entry_id,
                step_type=step_def.type,
                action=EntryAction.HALTED if outcome.halted else EntryAction.COMPLETED,
                duration_ms=int((time.monotonic() - start) * 1000),
                output=outcome.result.output,
            )
        )
        return outcome


class ExecutorRegistry(BaseModel):
    """
    Registry of executors.

    Maps step type strings to executor classes. This is the sole extension
    point: registered types are indistinguishable from built-ins to the
    engine, loader and validator. Re-registering a type replaces it.
    """

    model_config = {"arbitrary_types_allowed": True}

    _executors: dict[str, type[StepExecutor]] = PrivateAttr(default_factory=dict)

    def register(self, type_name: str, executor: type[StepExecutor]) -> None:
        """Register ``executor`` for ``type_name`` (last writer wins)."""
        if type_name in self._executors:
            logger.debug(f"Replacing executor for step type '{type_name}'")
        self._executors[type_name] = executor

    def lookup(self, type_name: str) -> type[StepExecutor] | None:
        return self._executors.get(type_name)

    def has(self, type_name: str) -> bool:
        return type_name in self._executors

    def types(self) -> list[str]:
        return list(self._executors.keys())

    def create(self, step: StepDef, context: ExecutionContext) -> StepExecutor:
        """Instantiate the executor for ``step``.

        Raises:
            ExecutionError: If the step type is not registered
        """
        executor = self.lookup(step.type)
        if executor is None:
            raise ExecutionError(f"No executor for step type '{step.type}' (step '{step.id}')")
        return executor(step, context)

    def discover_entry_points(self, group: str = "durable_workflow.executors") -> int:
        """Discover and register executors from entry points.

        Third-party packages provide custom step types by declaring entry points
        in their pyproject.toml; the entry point name is the step type:

            [project.entry-points."durable_workflow.executors"]
            agent = "my_package.executors:AgentExecutor"

        Returns:
            Number of executors discovered and registered
        """
        from importlib.metadata import entry_points

        discovered = 0
        for entry_point in entry_points(group=group):
            try:
                executor_class = entry_point.load()
            except Exception as e:
                logger.warning(f"Failed to load executor entry point '{entry_point.name}': {e}")
                continue

            if not (inspect.isclass(executor_class) and issubclass(executor_class, StepExecutor)):
                logger.warning(
                    f"Entry point '{entry_point.name}' is not a StepExecutor subclass, skipping"
                )
                continue

            self.register(entry_point.name, executor_class)
            discovered += 1

        return discovered


def create_default_registry() -> ExecutorRegistry:
    """Create ExecutorRegistry with all built-in step types registered.

    Each call returns a fresh registry, so tests can register custom step types
    without affecting each other.

    Example:
        registry = create_default_registry()
        registry.register("echo", EchoExecutor)
        engine = Engine(workflow, store=store, executor_registry=registry)
    """
    from .executors_call import CallExecutor
    from .executors_core import (
        AssignExecutor,
        EndExecutor,
        HaltExecutor,
        RouterExecutor,
        StartExecutor,
    )
    from .executors_interactive import ApprovalExecutor
    from .executors_loop import LoopExecutor
    from .executors_parallel import ParallelExecutor
    from .executors_transform import TransformExecutor
    from .executors_workflow import WorkflowExecutor

    registry = ExecutorRegistry()
    for executor in (
        StartExecutor,
        EndExecutor,
        AssignExecutor,
        CallExecutor,
        RouterExecutor,
        LoopExecutor,
        ParallelExecutor,
        TransformExecutor,
        HaltExecutor,
        ApprovalExecutor,
        WorkflowExecutor,
    ):
        registry.register(executor.type_name, executor)

    return registry


__all__ = ["ExecutorRegistry", "StepExecutor", "create_default_registry"]
