"""Interactive executors - pause the workflow until a human decision arrives.

Flow:
- First dispatch halts with an approval payload and ``resume_step`` set to the
  approval step itself
- The caller resumes with ``Engine.resume(execution_id, approved=True|False)``
- On re-entry the ``approved`` ctx flag is consumed and routes the workflow
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any, ClassVar

from pydantic import Field

from .exceptions import ExecutionError
from .execution_result import StepOutcome
from .executor_base import StepExecutor
from .schema import StepConfig
from .state import State

logger = logging.getLogger(__name__)

APPROVED_KEY = "approved"


class ApprovalConfig(StepConfig):
    """Approval step config."""

    prompt: str = Field(description="Question shown to the approvers (may contain $refs)")
    context: Any = Field(default=None, description="Extra data shown with the prompt")
    approvers: list[str] | None = None
    timeout: float | None = Field(
        default=None, gt=0, description="Seconds after the request before the approval expires"
    )
    on_timeout: str | None = None
    on_reject: str | None = None


class ApprovalExecutor(StepExecutor):
    """
    Request approval by halting, then route on the ``approved`` ctx flag.

    Example YAML:
        - id: manager_approval
          type: approval
          prompt: "Refund $input.amount to $input.customer?"
          approvers: [finance]
          timeout: 86400
          on_timeout: escalate
          on_reject: notify_rejected
          next: issue_refund

    Resuming after ``timeout`` seconds routes to ``on_timeout`` regardless of
    the decision; rejection routes to ``on_reject``. Missing handlers raise.
    """

    type_name: ClassVar[str] = "approval"
    config_type: ClassVar[type[StepConfig]] = ApprovalConfig

    async def call(self, state: State) -> StepOutcome:
        config: ApprovalConfig = self.config

        if self._timed_out(state):
            state = state.without_ctx(APPROVED_KEY)
            if config.on_timeout:
                logger.info(f"Approval step '{self.step.id}' timed out, routing to '{config.on_timeout}'")
                return self.continue_(state, next_step=config.on_timeout)
            raise ExecutionError(
                f"Approval step '{self.step.id}' timed out after {config.timeout}s "
                f"and has no 'on_timeout' handler"
            )

        if APPROVED_KEY in state.ctx:
            approved = bool(state.ctx[APPROVED_KEY])
            state = state.without_ctx(APPROVED_KEY)
            if approved:
                return self.continue_(state, output={"approved": True})
            if config.on_reject:
                return self.continue_(state, next_step=config.on_reject, output={"approved": False})
            raise ExecutionError(
                f"Approval step '{self.step.id}' was rejected and has no 'on_reject' handler"
            )

        prompt = self.resolve(state, config.prompt)
        return self.halt(
            state,
            data={
                "type": "approval",
                "prompt": prompt,
                "context": self.resolve(state, config.context),
                "approvers": config.approvers,
                "timeout": config.timeout,
                "requested_at": datetime.now(UTC).isoformat(),
            },
            resume_step=self.step.id,
            prompt=prompt,
        )

    def _timed_out(self, state: State) -> bool:
        timeout = self.config.timeout
        resume_data = state.resume_data or {}
        if timeout is None or resume_data.get("type") != "approval":
            return False

        requested_at = resume_data.get("requested_at")
        if not requested_at:
            return False
        try:
            requested = datetime.fromisoformat(str(requested_at))
        except ValueError:
            logger.warning(f"Approval step '{self.step.id}': invalid requested_at {requested_at!r}")
            return False
        if requested.tzinfo is None:
            requested = requested.replace(tzinfo=UTC)

        return (datetime.now(UTC) - requested).total_seconds() > timeout


__all__ = ["ApprovalConfig", "ApprovalExecutor"]
