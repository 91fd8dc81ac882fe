"""
Sub-workflow executor for workflow composition.

Runs another registered workflow as a single step, through a child Engine
sharing the parent's store and registries. Recursion is bounded by the
context's max_recursion_depth.
"""

from __future__ import annotations

import logging
from typing import Any, ClassVar

from pydantic import Field

from .exceptions import ExecutionError
from .execution_result import ExecutionResult, StepOutcome
from .executor_base import StepExecutor
from .schema import StepConfig
from .state import State

logger = logging.getLogger(__name__)

CHILD_EXECUTION_KEY = "child_execution_id"


class WorkflowConfig(StepConfig):
    """Sub-workflow step config."""

    workflow_id: str = Field(description="Id of the workflow to run (from the workflow registry)")
    input: Any = Field(default=None, description="Child input, resolved in the parent state")
    output: str | None = None
    timeout: float | None = Field(default=None, gt=0)


class WorkflowExecutor(StepExecutor):
    """
    Run a child workflow and surface its outcome as this step's outcome.

    - Child completes: its output is stored under ``output``
    - Child halts: this step halts with the child's data plus ``child_execution_id``
      and resumes at itself; resuming forwards ``response``/``approved`` to the
      halted child execution instead of starting a new one
    - Child fails: ExecutionError naming the child workflow
    """

    type_name: ClassVar[str] = "workflow"
    config_type: ClassVar[type[StepConfig]] = WorkflowConfig

    async def call(self, state: State) -> StepOutcome:
        from .engine import Engine

        config: WorkflowConfig = self.config
        child_workflow = self.context.get_workflow(config.workflow_id)
        if child_workflow is None:
            raise ExecutionError(
                f"Workflow not found: {config.workflow_id} (step '{self.step.id}')"
            )

        child_context = self.context.create_child_context(child_workflow)
        engine = Engine(child_workflow, context=child_context)

        child_execution_id = (state.resume_data or {}).get(CHILD_EXECUTION_KEY)
        if child_execution_id:
            response = state.ctx.get("response")
            approved = state.ctx.get("approved")
            state = state.without_ctx("approved")
            logger.info(
                f"Step '{self.step.id}': resuming child workflow '{config.workflow_id}' "
                f"(execution {child_execution_id})"
            )

            async def start() -> ExecutionResult:
                return await engine.resume(child_execution_id, response=response, approved=approved)

        else:
            child_input = self.resolve(state, config.input) or {}
            if not isinstance(child_input, dict):
                raise ExecutionError(
                    f"Step '{self.step.id}': sub-workflow input must be an object, "
                    f"got {type(child_input).__name__}"
                )

            async def start() -> ExecutionResult:
                return await engine.run(child_input)

        try:
            result = await self.with_timeout(config.timeout, start)
        except ExecutionError:
            raise
        except Exception as e:
            raise ExecutionError(
                f"Sub-workflow '{config.workflow_id}' failed: {type(e).__name__}: {e}"
            ) from e

        if result.completed:
            state = self.store(state, config.output, result.output)
            return self.continue_(state, output=result.output)

        if result.halted and result.halt is not None:
            return self.halt(
                state,
                data={**result.halt.data, CHILD_EXECUTION_KEY: result.execution_id},
                resume_step=self.step.id,
                prompt=result.halt.prompt,
            )

        raise ExecutionError(f"Sub-workflow '{config.workflow_id}' failed: {result.error}")


__all__ = ["WorkflowConfig", "WorkflowExecutor"]
