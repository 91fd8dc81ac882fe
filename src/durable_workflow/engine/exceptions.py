"""Workflow engine exceptions.

Taxonomy:
- ConfigError: engine misconfiguration (fatal, raised at construction)
- ValidationError: workflow-shape or input-shape violations (never retried)
- ExecutionError: runtime step failures (unknown step/type, timeout, unmet route,
  rejected approval, sub-workflow failure)
"""

from __future__ import annotations


class DurableWorkflowError(Exception):
    """Base class for every error raised by the engine."""


class ConfigError(DurableWorkflowError):
    """Engine misconfiguration (e.g. no store supplied)."""


class ValidationError(DurableWorkflowError):
    """Workflow definition or workflow input failed validation."""


class ExecutionError(DurableWorkflowError):
    """A step failed at runtime."""


class RecursionDepthExceededError(ExecutionError):
    """
    Sub-workflow recursion depth limit exceeded.

    Raised when a workflow step calls workflows (itself, or a chain of workflows
    leading back to itself) deeper than the configured maximum recursion depth.

    The maximum recursion depth is controlled by the
    DURABLE_WORKFLOW_MAX_RECURSION_DEPTH environment variable (default: 50).

    Attributes:
        workflow_id: Id of the workflow that exceeded the limit
        current_depth: Recursion depth when the limit was exceeded
        max_depth: Configured maximum recursion depth
        workflow_stack: Workflow call stack showing the recursion chain
    """

    def __init__(
        self,
        workflow_id: str,
        current_depth: int,
        max_depth: int,
        workflow_stack: list[str],
    ):
        self.workflow_id = workflow_id
        self.current_depth = current_depth
        self.max_depth = max_depth
        self.workflow_stack = workflow_stack

        call_chain = " → ".join(workflow_stack + [workflow_id])
        super().__init__(
            f"Recursion depth limit exceeded for workflow '{workflow_id}' "
            f"(depth: {current_depth}, limit: {max_depth}). "
            f"Call chain: {call_chain}"
        )

    def __repr__(self) -> str:
        return (
            f"RecursionDepthExceededError(workflow={self.workflow_id!r}, "
            f"depth={self.current_depth}, limit={self.max_depth})"
        )


__all__ = [
    "ConfigError",
    "DurableWorkflowError",
    "ExecutionError",
    "RecursionDepthExceededError",
    "ValidationError",
]
