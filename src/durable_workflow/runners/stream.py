"""
Event-streaming runner wrapper.

StreamRunner emits workflow-level events around run/resume, and its
StreamingEngine emits step-level events around every ``execute_step`` call
(including the on_error fallback path), without touching engine internals.

Events:
    workflow.started  workflow.resumed  workflow.completed  workflow.halted  workflow.failed
    step.started      step.completed    step.halted         step.failed
"""

from __future__ import annotations

import inspect
import json
import logging
from collections.abc import Awaitable, Callable, Iterable
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field

from ..engine.engine import Engine
from ..engine.exceptions import ConfigError
from ..engine.execution_result import ExecutionResult, StepOutcome
from ..engine.schema import StepDef, WorkflowDef
from ..engine.state import State
from ..storage.store import Store

logger = logging.getLogger(__name__)

EVENTS = (
    "workflow.started",
    "workflow.resumed",
    "workflow.completed",
    "workflow.halted",
    "workflow.failed",
    "step.started",
    "step.completed",
    "step.halted",
    "step.failed",
)

Handler = Callable[["Event"], Any]
Emitter = Callable[..., Awaitable[None]]


class Event(BaseModel):
    """One streamed event."""

    type: str
    data: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "data": self.data, "timestamp": self.timestamp.isoformat()}

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str, ensure_ascii=False)

    def to_sse(self) -> str:
        """Server-Sent Events frame."""
        return f"event: {self.type}\ndata: {self.to_json()}\n\n"


class StreamingEngine(Engine):
    """Engine that reports each step's start and outcome to ``emitter``."""

    def __init__(self, workflow: WorkflowDef, store: Store, emitter: Emitter, **engine_options: Any):
        super().__init__(workflow, store=store, **engine_options)
        self._emitter = emitter

    async def execute_step(self, state: State, step: StepDef) -> StepOutcome:
        await self._emitter("step.started", step_id=step.id, step_type=step.type)
        try:
            outcome = await super().execute_step(state, step)
        except Exception as e:
            await self._emitter("step.failed", step_id=step.id, error=str(e))
            raise

        event = "step.halted" if outcome.halted else "step.completed"
        await self._emitter(event, step_id=step.id, output=outcome.result.output)
        return outcome


class StreamRunner:
    """
    Run and resume a workflow while streaming events to subscribers.

    Handlers may be plain callables or coroutine functions; handler errors
    propagate to the caller.

    Example:
        runner = StreamRunner(workflow, store=store)
        runner.subscribe(lambda event: print(event.to_sse()), events=["step.completed"])
        result = await runner.run({"n": 1})
    """

    def __init__(self, workflow: WorkflowDef, store: Store | None = None, **engine_options: Any):
        if store is None:
            raise ConfigError("No store configured")
        self.workflow = workflow
        self.store = store
        self.engine = StreamingEngine(workflow, store, self.emit, **engine_options)
        self._subscribers: list[tuple[frozenset[str] | None, Handler]] = []

    def subscribe(self, handler: Handler, events: Iterable[str] | None = None) -> StreamRunner:
        """
        Register ``handler`` for ``events`` (all events when None).

        Raises:
            ValueError: If an event name is unknown
        """
        wanted = frozenset(events) if events is not None else None
        unknown = sorted((wanted or frozenset()) - set(EVENTS))
        if unknown:
            raise ValueError(f"Unknown event types: {', '.join(unknown)}")
        self._subscribers.append((wanted, handler))
        return self

    async def run(
        self, input: dict[str, Any] | None = None, execution_id: str | None = None
    ) -> ExecutionResult:
        await self.emit("workflow.started", workflow_id=self.workflow.id, input=input or {})
        try:
            result = await self.engine.run(input, execution_id=execution_id)
        except Exception as e:
            await self.emit("workflow.failed", workflow_id=self.workflow.id, error=str(e))
            raise
        await self._emit_outcome(result)
        return result

    async def resume(
        self, execution_id: str, response: Any = None, approved: bool | None = None
    ) -> ExecutionResult:
        await self.emit("workflow.resumed", execution_id=execution_id)
        try:
            result = await self.engine.resume(execution_id, response=response, approved=approved)
        except Exception as e:
            await self.emit("workflow.failed", execution_id=execution_id, error=str(e))
            raise
        await self._emit_outcome(result)
        return result

    async def emit(self, type: str, **data: Any) -> None:
        event = Event(type=type, data=data)
        for wanted, handler in self._subscribers:
            if wanted is not None and type not in wanted:
                continue
            outcome = handler(event)
            if inspect.isawaitable(outcome):
                await outcome

    async def _emit_outcome(self, result: ExecutionResult) -> None:
        if result.completed:
            await self.emit(
                "workflow.completed", execution_id=result.execution_id, output=result.output
            )
        elif result.halted:
            await self.emit(
                "workflow.halted",
                execution_id=result.execution_id,
                halt=result.halt.data if result.halt else None,
                prompt=result.halt.prompt if result.halt else None,
            )
        else:
            await self.emit("workflow.failed", execution_id=result.execution_id, error=result.error)


__all__ = ["EVENTS", "Event", "StreamRunner", "StreamingEngine"]
