"""
Step and workflow result types.

- ContinueResult / HaltResult: the two outcomes an executor can produce
- StepOutcome: new State + exactly one result variant (returned by every executor)
- ExecutionResult: what Engine.run/resume hands back to the caller

Design Principles:
- Executors never mutate state; the outcome carries the new State
- HaltResult.output is its data map so callers can treat outputs uniformly
- Factory methods on ExecutionResult ensure valid status/field combinations
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from .state import State


class ExecutionStatus(str, Enum):
    """Lifecycle status of an execution."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    HALTED = "halted"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (ExecutionStatus.COMPLETED, ExecutionStatus.HALTED, ExecutionStatus.FAILED)


class ContinueResult(BaseModel):
    """Step finished; dispatch continues at ``next_step``."""

    model_config = {"frozen": True}

    next_step: str | None = None
    output: Any = None


class HaltResult(BaseModel):
    """Step suspended the workflow; resume later at ``resume_step``."""

    model_config = {"frozen": True}

    data: dict[str, Any]
    resume_step: str | None = None
    prompt: str | None = None
    checkpoint: dict[str, Any] | None = None

    @property
    def output(self) -> dict[str, Any]:
        return self.data


class StepOutcome(BaseModel):
    """Return value of every executor call."""

    model_config = {"frozen": True}

    state: State
    result: HaltResult | ContinueResult

    @property
    def halted(self) -> bool:
        return isinstance(self.result, HaltResult)


class ExecutionResult(BaseModel):
    """
    Result of Engine.run / Engine.resume.

    Example Usage:
        result = await engine.run({"n": 3})
        if result.halted:
            result = await engine.resume(result.execution_id, approved=True)
        assert result.completed
    """

    status: ExecutionStatus
    execution_id: str
    output: Any = None
    halt: HaltResult | None = None
    error: str | None = None

    @classmethod
    def running(cls, execution_id: str) -> ExecutionResult:
        return cls(status=ExecutionStatus.RUNNING, execution_id=execution_id)

    @classmethod
    def success(cls, execution_id: str, output: Any) -> ExecutionResult:
        return cls(status=ExecutionStatus.COMPLETED, execution_id=execution_id, output=output)

    @classmethod
    def paused(cls, execution_id: str, halt: HaltResult, output: Any = None) -> ExecutionResult:
        return cls(
            status=ExecutionStatus.HALTED, execution_id=execution_id, halt=halt, output=output
        )

    @classmethod
    def failure(cls, execution_id: str, error: str) -> ExecutionResult:
        return cls(status=ExecutionStatus.FAILED, execution_id=execution_id, error=error)

    @property
    def completed(self) -> bool:
        return self.status is ExecutionStatus.COMPLETED

    @property
    def halted(self) -> bool:
        return self.status is ExecutionStatus.HALTED

    @property
    def failed(self) -> bool:
        return self.status is ExecutionStatus.FAILED

    def to_response(self) -> dict[str, Any]:
        """Minimal dict for callers that expose results over an API."""
        response: dict[str, Any] = {
            "status": self.status.value,
            "execution_id": self.execution_id,
        }
        if self.completed:
            response["output"] = self.output
        elif self.failed:
            response["error"] = self.error
        elif self.halted and self.halt is not None:
            response["halt"] = self.halt.data
            if self.halt.prompt:
                response["prompt"] = self.halt.prompt
        return response


__all__ = [
    "ContinueResult",
    "ExecutionResult",
    "ExecutionStatus",
    "HaltResult",
    "StepOutcome",
]
