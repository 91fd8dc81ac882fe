"""Parallel executor: fork-join over independent branch steps."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, ClassVar, Literal

from pydantic import Field

from .exceptions import ExecutionError
from .execution_result import StepOutcome
from .executor_base import StepExecutor
from .schema import StepConfig, StepDef
from .state import State

logger = logging.getLogger(__name__)


class ParallelConfig(StepConfig):
    """Parallel step config.

    ``wait`` is ``"all"``, ``"any"`` or the number of branches that must complete.
    """

    branches: list[StepDef] = Field(default_factory=list)
    wait: Literal["all", "any"] | int = "all"
    output: str | None = None

    def required(self) -> int:
        if self.wait == "all":
            return len(self.branches)
        if self.wait == "any":
            return min(1, len(self.branches))
        return max(0, min(int(self.wait), len(self.branches)))


class ParallelExecutor(StepExecutor):
    """
    Run every branch concurrently against the same input state and join per ``wait``.

    Each branch is an asyncio task; once the required number of branches has
    completed the rest are cancelled. Completed branches' ctx values are merged
    into the parent in completion order, so on overlapping keys the branch that
    finished last wins. Branch outputs are collected in declared branch order,
    with ``None`` for branches that errored or did not finish. A branch that
    halts counts as completed and contributes its halt data as output; the
    parallel step itself never halts.
    """

    type_name: ClassVar[str] = "parallel"
    config_type: ClassVar[type[StepConfig]] = ParallelConfig

    async def call(self, state: State) -> StepOutcome:
        config: ParallelConfig = self.config
        branches = config.branches
        if not branches:
            return self.continue_(state)

        required = config.required()
        tasks: dict[asyncio.Task[StepOutcome], int] = {
            asyncio.create_task(
                self.run_nested(state, branch), name=f"{self.step.id}:{branch.id}"
            ): index
            for index, branch in enumerate(branches)
        }

        outcomes: list[StepOutcome | None] = [None] * len(branches)
        completion_order: list[int] = []
        errors: list[dict[str, str]] = []
        pending = set(tasks)

        try:
            while pending and len(completion_order) < required:
                done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                for task in done:
                    index = tasks[task]
                    error = task.exception()
                    if error is not None:
                        branch_id = branches[index].id
                        logger.warning(
                            f"Parallel step '{self.step.id}': branch '{branch_id}' failed: {error}"
                        )
                        errors.append({"branch": branch_id, "error": str(error)})
                        continue
                    outcomes[index] = task.result()
                    completion_order.append(index)
        finally:
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        if config.wait == "all" and errors:
            details = "; ".join(f"{e['branch']}: {e['error']}" for e in errors)
            raise ExecutionError(
                f"Parallel step '{self.step.id}' failed: {len(errors)} branch error(s) ({details})"
            )
        if len(completion_order) < required:
            raise ExecutionError(
                f"Parallel step '{self.step.id}': {len(completion_order)} of {required} "
                f"required branches completed"
            )

        ctx: dict[str, Any] = dict(state.ctx)
        for index in completion_order:
            outcome = outcomes[index]
            if outcome is not None:
                ctx.update(outcome.state.ctx)

        results = [outcome.result.output if outcome else None for outcome in outcomes]
        state = state.with_(ctx=ctx)
        state = self.store(state, config.output, results)
        return self.continue_(state, output=results)


__all__ = ["ParallelConfig", "ParallelExecutor"]
