"""Loop executor: bounded foreach and while iteration over a nested step sequence."""

from __future__ import annotations

import logging
from typing import Any, ClassVar

from pydantic import BaseModel, Field, model_validator

from .condition import ConditionEvaluator
from .exceptions import ExecutionError
from .execution_result import ContinueResult, HaltResult, StepOutcome
from .executor_base import StepExecutor
from .schema import FINISHED, Condition, StepConfig, StepDef
from .state import State

logger = logging.getLogger(__name__)

ITERATION_KEY = "iteration"
BREAK_KEY = "break_loop"


class LoopConfig(StepConfig):
    """
    Loop step config.

    Exactly one mode must be configured:
    - foreach: ``over`` (collection expression) with ``as``/``index_as`` variable names
    - while: ``while`` condition, re-evaluated before every pass

    ``do`` is the body, executed in declared order on every iteration.
    """

    model_config = {"extra": "forbid", "frozen": True, "populate_by_name": True}

    over: Any = None
    item_var: str = Field(default="item", alias="as")
    index_var: str = Field(default="index", alias="index_as")
    condition: Condition | None = Field(default=None, alias="while")
    do: list[StepDef] = Field(default_factory=list)
    output: str | None = None
    max: int | None = Field(default=None, ge=1)
    on_exhausted: str | None = None

    @model_validator(mode="after")
    def _check_mode(self) -> LoopConfig:
        if (self.over is None) == (self.condition is None):
            raise ValueError("loop requires exactly one of 'over' or 'while'")
        return self

    @property
    def foreach(self) -> bool:
        return self.over is not None


class LoopCheckpoint(BaseModel):
    """
    Progress of a loop halted by one of its body steps.

    Saved with the halt so that resuming continues the interrupted iteration
    at ``position`` instead of starting the loop over.
    """

    model_config = {"frozen": True}

    step_id: str
    index: int = 0
    items: list[Any] | None = None
    results: list[Any] = Field(default_factory=list)
    position: int = 0
    body_output: Any = None
    body_resume_data: dict[str, Any] | None = None
    body_checkpoint: dict[str, Any] | None = None


class LoopExecutor(StepExecutor):
    """
    Execute the body once per collection item (foreach) or while a condition holds.

    Iteration is bounded by ``max`` (default from EngineSettings.default_loop_max):
    an oversized foreach collection is rejected before the first iteration; a
    while loop that would exceed the bound routes to ``on_exhausted`` or fails.

    A halt from any body step halts the loop with the same data. Unless the body
    step names a resume step of the enclosing workflow, the loop is the resume
    point: its position (iteration, collected outputs, next body step) is saved
    as a LoopCheckpoint and resuming continues from the halted body step.

    On completion the loop variables are removed from ctx and the per-iteration
    outputs (the last body step's output) are stored under ``output``.
    """

    type_name: ClassVar[str] = "loop"
    config_type: ClassVar[type[StepConfig]] = LoopConfig

    @property
    def max_iterations(self) -> int:
        return self.config.max or self.context.settings.default_loop_max

    async def call(self, state: State) -> StepOutcome:
        checkpoint = self._restore(state)
        state = state.with_(resume_data=None, resume_checkpoint=None)
        if self.config.foreach:
            return await self._foreach(state, checkpoint)
        return await self._while(state, checkpoint)

    def _restore(self, state: State) -> LoopCheckpoint | None:
        raw = state.resume_checkpoint
        if not raw or raw.get("step_id") != self.step.id:
            return None
        checkpoint = LoopCheckpoint.model_validate(raw)
        logger.info(
            f"Loop step '{self.step.id}' resuming iteration {checkpoint.index} "
            f"at body position {checkpoint.position}"
        )
        return checkpoint

    async def _foreach(self, state: State, checkpoint: LoopCheckpoint | None) -> StepOutcome:
        config: LoopConfig = self.config
        if checkpoint is not None:
            collection = checkpoint.items or []
            start, results = checkpoint.index, list(checkpoint.results)
        else:
            collection = self._resolve_collection(state)
            start, results = 0, []

        for index in range(start, len(collection)):
            state = self.store(state, config.item_var, collection[index])
            state = self.store(state, config.index_var, index)

            outcome, position, last_output = await self._execute_body(
                state, checkpoint if index == start else None
            )
            if outcome.halted:
                return self._propagate_halt(
                    outcome, index, results, position, last_output, items=collection
                )

            state = outcome.state
            results.append(outcome.result.output)

        state = state.without_ctx(config.item_var, config.index_var)
        state = self.store(state, config.output, results)
        return self.continue_(state, output=results)

    def _resolve_collection(self, state: State) -> list[Any]:
        collection = self.resolve(state, self.config.over)
        if not isinstance(collection, list):
            raise ExecutionError(
                f"Loop step '{self.step.id}': 'over' must resolve to an array, "
                f"got {type(collection).__name__}"
            )
        if len(collection) > self.max_iterations:
            raise ExecutionError(
                f"Loop step '{self.step.id}': collection size {len(collection)} "
                f"exceeds max ({self.max_iterations})"
            )
        return collection

    async def _while(self, state: State, checkpoint: LoopCheckpoint | None) -> StepOutcome:
        config: LoopConfig = self.config
        results: list[Any] = []
        iteration = 0

        if checkpoint is not None:
            results, iteration = list(checkpoint.results), checkpoint.index
            outcome, position, last_output = await self._execute_body(state, checkpoint)
            if outcome.halted:
                return self._propagate_halt(outcome, iteration, results, position, last_output)
            state = outcome.state
            results.append(outcome.result.output)
            if state.ctx.get(BREAK_KEY):
                return self._finish_while(state, results)

        while ConditionEvaluator.match(state, config.condition):
            iteration += 1
            if iteration > self.max_iterations:
                if config.on_exhausted:
                    logger.info(
                        f"Loop step '{self.step.id}' exhausted after {self.max_iterations} "
                        f"iterations, routing to '{config.on_exhausted}'"
                    )
                    return self._finish_while(state, results, next_step=config.on_exhausted)
                raise ExecutionError(
                    f"Loop step '{self.step.id}' exceeded max iterations ({self.max_iterations}) "
                    f"and has no 'on_exhausted' handler"
                )

            state = self.store(state, ITERATION_KEY, iteration)
            outcome, position, last_output = await self._execute_body(state)
            if outcome.halted:
                return self._propagate_halt(outcome, iteration, results, position, last_output)

            state = outcome.state
            results.append(outcome.result.output)
            if state.ctx.get(BREAK_KEY):
                break

        return self._finish_while(state, results)

    def _finish_while(
        self, state: State, results: list[Any], next_step: str | None = None
    ) -> StepOutcome:
        state = state.without_ctx(ITERATION_KEY, BREAK_KEY)
        state = self.store(state, self.config.output, results)
        return self.continue_(state, next_step=next_step, output=results)

    async def _execute_body(
        self, state: State, checkpoint: LoopCheckpoint | None = None
    ) -> tuple[StepOutcome, int, Any]:
        """
        Run the body in declared order.

        With a checkpoint, start at its position and hand the saved halt data to
        that first step. Returns the outcome, the position of the last step run
        and the output of the step before it.
        """
        start = 0
        result: ContinueResult | HaltResult = ContinueResult()
        if checkpoint is not None:
            start = checkpoint.position
            result = ContinueResult(output=checkpoint.body_output)
            state = state.with_(
                resume_data=checkpoint.body_resume_data,
                resume_checkpoint=checkpoint.body_checkpoint,
            )

        for position in range(start, len(self.config.do)):
            outcome = await self.run_nested(state, self.config.do[position])
            if outcome.halted:
                return outcome, position, result.output
            state = outcome.state.with_(resume_data=None, resume_checkpoint=None)
            result = outcome.result
        return StepOutcome(state=state, result=result), len(self.config.do), result.output

    def _propagate_halt(
        self,
        outcome: StepOutcome,
        index: int,
        results: list[Any],
        position: int,
        last_output: Any,
        items: list[Any] | None = None,
    ) -> StepOutcome:
        halt: HaltResult = outcome.result
        state = outcome.state.with_(resume_data=None, resume_checkpoint=None)
        body_ids = [step_def.id for step_def in self.config.do]
        resume_step = halt.resume_step

        if resume_step == FINISHED or (
            resume_step not in body_ids
            and resume_step is not None
            and self.context.workflow.find_step(resume_step) is not None
        ):
            logger.info(f"Loop step '{self.step.id}' halted by body step; resume at '{resume_step}'")
            return self.halt(state, data=halt.data, resume_step=resume_step, prompt=halt.prompt)

        resume_position = body_ids.index(resume_step) if resume_step in body_ids else position + 1
        checkpoint = LoopCheckpoint(
            step_id=self.step.id,
            index=index,
            items=items,
            results=results,
            position=resume_position,
            body_output=last_output if resume_position > position else None,
            body_resume_data=halt.data,
            body_checkpoint=halt.checkpoint,
        )
        logger.info(
            f"Loop step '{self.step.id}' halted by body step '{body_ids[position]}' "
            f"in iteration {index}"
        )
        return self.halt(
            state,
            data=halt.data,
            resume_step=self.step.id,
            prompt=halt.prompt,
            checkpoint=checkpoint.model_dump(),
        )


__all__ = ["LoopCheckpoint", "LoopConfig", "LoopExecutor"]
