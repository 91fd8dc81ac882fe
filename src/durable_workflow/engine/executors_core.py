"""Core step executors: start, end, assign, halt, router."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any, ClassVar

from pydantic import Field

from .condition import ConditionEvaluator
from .exceptions import ExecutionError, ValidationError
from .execution_result import StepOutcome
from .executor_base import StepExecutor
from .schema import FINISHED, Route, StepConfig
from .state import State

logger = logging.getLogger(__name__)


# ============================================================================
# Start
# ============================================================================


class StartConfig(StepConfig):
    """Start step config (no options)."""


class StartExecutor(StepExecutor):
    """Validate workflow inputs, apply declared defaults and snapshot input into ctx."""

    type_name: ClassVar[str] = "start"
    config_type: ClassVar[type[StepConfig]] = StartConfig

    async def call(self, state: State) -> StepOutcome:
        inputs = self.context.workflow.inputs
        defaults: dict[str, Any] = {}

        for input_def in inputs:
            value = state.input.get(input_def.name)
            if value is None:
                if input_def.default is not None:
                    defaults[input_def.name] = input_def.default
                elif input_def.required:
                    raise ValidationError(f"Missing required input: {input_def.name}")
                continue

            if input_def.type is not None and not input_def.type.matches(value):
                raise ValidationError(
                    f"Input '{input_def.name}' must be {input_def.type.value}, "
                    f"got {type(value).__name__}"
                )

        if defaults:
            state = state.with_(input={**state.input, **defaults})

        state = self.store(state, "input", state.input)
        return self.continue_(state)


# ============================================================================
# End
# ============================================================================


class EndConfig(StepConfig):
    """End step config.

    ``result`` is resolved against state; when omitted the whole ctx is the result.
    """

    result: Any = None


class EndExecutor(StepExecutor):
    """Resolve the workflow result, store it as ``ctx.result`` and finish."""

    type_name: ClassVar[str] = "end"
    config_type: ClassVar[type[StepConfig]] = EndConfig

    async def call(self, state: State) -> StepOutcome:
        raw = self.config.result if self.config.result is not None else dict(state.ctx)
        result = self.resolve(state, raw)
        state = self.store(state, "result", result)
        return self.continue_(state, next_step=FINISHED, output=result)


# ============================================================================
# Assign
# ============================================================================


class AssignConfig(StepConfig):
    """Assign step config: ordered ``key -> value expression`` map."""

    set: dict[str, Any] = Field(default_factory=dict)


class AssignExecutor(StepExecutor):
    """Resolve and store each assignment in declared order.

    Later assignments see earlier ones from the same step.
    """

    type_name: ClassVar[str] = "assign"
    config_type: ClassVar[type[StepConfig]] = AssignConfig

    async def call(self, state: State) -> StepOutcome:
        for key, expression in self.config.set.items():
            state = self.store(state, key, self.resolve(state, expression))
        return self.continue_(state)


# ============================================================================
# Halt
# ============================================================================


class HaltConfig(StepConfig):
    reason: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)
    resume_step: str | None = None


class HaltExecutor(StepExecutor):
    """Always suspend the workflow, surfacing ``reason`` and extra data to the caller."""

    type_name: ClassVar[str] = "halt"
    config_type: ClassVar[type[StepConfig]] = HaltConfig

    async def call(self, state: State) -> StepOutcome:
        reason = self.resolve(state, self.config.reason)
        extra = self.resolve(state, self.config.data) or {}

        data = {
            "reason": reason or "Halted",
            "halted_at": datetime.now(UTC).isoformat(),
            **extra,
        }
        return self.halt(
            state,
            data=data,
            resume_step=self.config.resume_step,
            prompt=reason,
        )


# ============================================================================
# Router
# ============================================================================


class RouterConfig(StepConfig):
    routes: list[Route] = Field(default_factory=list)
    default: str | None = None


class RouterExecutor(StepExecutor):
    """Route to the first matching target, else the default."""

    type_name: ClassVar[str] = "router"
    config_type: ClassVar[type[StepConfig]] = RouterConfig

    async def call(self, state: State) -> StepOutcome:
        route = ConditionEvaluator.find_route(state, self.config.routes)

        if route is not None:
            logger.debug(f"Router '{self.step.id}' matched {route.field} {route.op} -> {route.target}")
            return self.continue_(state, next_step=route.target)
        if self.config.default:
            return self.continue_(state, next_step=self.config.default)

        raise ExecutionError(f"No matching route and no default for router step '{self.step.id}'")


__all__ = [
    "AssignConfig",
    "AssignExecutor",
    "EndConfig",
    "EndExecutor",
    "HaltConfig",
    "HaltExecutor",
    "RouterConfig",
    "RouterExecutor",
    "StartConfig",
    "StartExecutor",
]
