"""Immutable runtime state threaded through the dispatch loop."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, Field

from .utils import deep_normalize


class State(BaseModel):
    """
    Runtime working memory for one in-flight execution.

    State is immutable: every update returns a new State and the engine always
    threads the latest value forward. ``ctx`` holds workflow variables only;
    bookkeeping lives in dedicated fields.

    Attributes:
        execution_id: Id of the execution this state belongs to
        workflow_id: Id of the running workflow
        input: Input snapshot captured at start (read-only)
        ctx: Workflow variables visible to ``$refs``
        current_step: Step currently being dispatched
        history: Visited step ids, in dispatch order (for ``$history`` only)
        resume_data: Halt payload of the execution being resumed; set only for
            the first step dispatched by ``Engine.resume``
        resume_checkpoint: Progress a composite step saved with its halt; set
            alongside ``resume_data``
    """

    model_config = {"frozen": True}

    execution_id: str
    workflow_id: str
    input: dict[str, Any] = Field(default_factory=dict)
    ctx: dict[str, Any] = Field(default_factory=dict)
    current_step: str | None = None
    history: list[str] = Field(default_factory=list)
    resume_data: dict[str, Any] | None = None
    resume_checkpoint: dict[str, Any] | None = None

    def with_(self, **updates: Any) -> State:
        """Copy with the given fields replaced."""
        return self.model_copy(update=updates)

    def with_ctx(self, updates: Mapping[str, Any]) -> State:
        """Copy with ``updates`` merged into ctx (values deep-normalized)."""
        ctx = dict(self.ctx)
        for key, value in updates.items():
            ctx[str(key)] = deep_normalize(value)
        return self.model_copy(update={"ctx": ctx})

    def without_ctx(self, *keys: str) -> State:
        """Copy with ``keys`` removed from ctx."""
        if not any(key in self.ctx for key in keys):
            return self
        ctx = {k: v for k, v in self.ctx.items() if k not in keys}
        return self.model_copy(update={"ctx": ctx})

    def with_current_step(self, step_id: str) -> State:
        """Copy positioned at ``step_id``, appending it to history."""
        return self.model_copy(
            update={"current_step": step_id, "history": [*self.history, step_id]}
        )


__all__ = ["State"]
