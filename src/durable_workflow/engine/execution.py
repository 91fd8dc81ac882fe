"""Durable, storage-facing records: Execution and Entry.

The engine works with State internally. Stores persist Execution (status,
checkpoint and outcome of one run) and append Entry audit records; State is
never persisted directly.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from .execution_result import ExecutionResult, ExecutionStatus, HaltResult
from .state import State


def _now() -> datetime:
    return datetime.now(UTC)


class Execution(BaseModel):
    """
    Durable projection of a State plus outcome.

    Created when a run starts (status=running), overwritten after every step
    transition and finalized on completion, halt or failure.

    Attributes:
        id: Execution id
        workflow_id: Workflow being executed
        status: Lifecycle status
        input: Input snapshot
        ctx: Workflow variables
        current_step: Step being dispatched when last saved
        history: Visited step ids
        result: Final output (completed only)
        recover_to: Step to resume from (halted only)
        halt_data: Payload surfaced to the caller (halted only)
        halt_prompt: Human-readable prompt of the halt (halted only)
        checkpoint: Progress of the halted composite step (halted only)
        error: Error message (failed only)
    """

    id: str
    workflow_id: str
    status: ExecutionStatus = ExecutionStatus.PENDING
    input: dict[str, Any] = Field(default_factory=dict)
    ctx: dict[str, Any] = Field(default_factory=dict)
    current_step: str | None = None
    history: list[str] = Field(default_factory=list)
    result: Any = None
    recover_to: str | None = None
    halt_data: dict[str, Any] | None = None
    halt_prompt: str | None = None
    checkpoint: dict[str, Any] | None = None
    error: str | None = None
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)

    def to_state(self) -> State:
        """Rebuild the runtime State this record was saved from."""
        return State(
            execution_id=self.id,
            workflow_id=self.workflow_id,
            input=self.input,
            ctx=self.ctx,
            current_step=self.current_step,
            history=self.history,
        )

    @classmethod
    def from_state(
        cls,
        state: State,
        result: ExecutionResult,
        created_at: datetime | None = None,
    ) -> Execution:
        """Build the record for ``state`` with the outcome fields of ``result``."""
        halt = result.halt
        return cls(
            id=state.execution_id,
            workflow_id=state.workflow_id,
            status=result.status,
            input=state.input,
            ctx=state.ctx,
            current_step=state.current_step,
            history=state.history,
            result=result.output,
            recover_to=halt.resume_step if halt else None,
            halt_data=halt.data if halt else None,
            halt_prompt=halt.prompt if halt else None,
            checkpoint=halt.checkpoint if halt else None,
            error=result.error,
            created_at=created_at or _now(),
            updated_at=_now(),
        )

    def to_result(self) -> ExecutionResult:
        """Caller-facing view of this record (used by pollers)."""
        halt = None
        if self.status is ExecutionStatus.HALTED:
            halt = HaltResult(
                data=self.halt_data or {},
                resume_step=self.recover_to,
                prompt=self.halt_prompt,
                checkpoint=self.checkpoint,
            )
        return ExecutionResult(
            status=self.status,
            execution_id=self.id,
            output=self.result,
            halt=halt,
            error=self.error,
        )


class EntryAction(str, Enum):
    """Outcome recorded for one step attempt."""

    COMPLETED = "completed"
    HALTED = "halted"
    FAILED = "failed"


class Entry(BaseModel):
    """Append-only audit record of one step attempt.

    Nested loop/parallel sub-steps are recorded with ``step_id`` namespaced as
    ``parent_id:child_id``.
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    execution_id: str
    step_id: str
    step_type: str
    action: EntryAction
    duration_ms: int | None = None
    input: Any = None
    output: Any = None
    error: str | None = None
    timestamp: datetime = Field(default_factory=_now)


__all__ = ["Entry", "EntryAction", "Execution"]
