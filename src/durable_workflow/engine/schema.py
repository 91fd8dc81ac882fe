"""
Workflow definition models (pydantic v2).

This module defines the immutable, parse-time structure of a workflow:
- InputDef: declared workflow input (name, type, required, default)
- Condition / Route: field/op/value predicates used by router and loop steps
- StepConfig: base class for the typed, per-step-type config payloads
- StepDef: one node of the workflow graph (id, type, config, next/error edges)
- WorkflowDef: the whole workflow (metadata, inputs, ordered steps)

Step types are open strings, checked against the ExecutorRegistry rather than
a closed enum, so new step types can be registered without touching this module.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

FINISHED = "__FINISHED__"
"""Sentinel next-step id marking the end of a workflow."""


class InputType(str, Enum):
    """Types accepted for declared workflow inputs."""

    STRING = "string"
    INTEGER = "integer"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ARRAY = "array"
    OBJECT = "object"

    def matches(self, value: Any) -> bool:
        """Check whether ``value`` is an instance of this input type."""
        if self is InputType.STRING:
            return isinstance(value, str)
        if self is InputType.INTEGER:
            return isinstance(value, int) and not isinstance(value, bool)
        if self is InputType.NUMBER:
            return isinstance(value, (int, float)) and not isinstance(value, bool)
        if self is InputType.BOOLEAN:
            return isinstance(value, bool)
        if self is InputType.ARRAY:
            return isinstance(value, list)
        return isinstance(value, dict)


class InputDef(BaseModel):
    """Declared workflow input."""

    model_config = {"frozen": True}

    name: str
    type: InputType | None = None
    required: bool = True
    default: Any = None
    description: str | None = None


class Condition(BaseModel):
    """Predicate over workflow state: resolve ``$field``, compare with ``value`` using ``op``."""

    model_config = {"frozen": True}

    field: str
    op: str = "eq"
    value: Any = None


class Route(Condition):
    """Conditional edge of a router step."""

    target: str


class StepConfig(BaseModel):
    """Base class for typed step configs.

    Each executor declares its own subclass as ``config_type``. Unknown keys are
    rejected so authoring typos surface at parse time.
    """

    model_config = {"extra": "forbid", "frozen": True}


class StepDef(BaseModel):
    """One step of a workflow graph. Immutable once parsed."""

    model_config = {"frozen": True}

    id: str = Field(min_length=1)
    type: str = Field(min_length=1)
    config: Any = None
    next_step: str | None = None
    on_error: str | None = None

    @property
    def terminal(self) -> bool:
        return self.type == "end"


class WorkflowDef(BaseModel):
    """
    Immutable workflow definition.

    Built once by the loader, held in a WorkflowRegistry keyed by ``id`` and
    read-only thereafter. Step ids are assumed unique (checked by the validator).
    """

    model_config = {"frozen": True}

    id: str = Field(min_length=1)
    name: str
    version: str = "1.0"
    description: str | None = None
    timeout: float | None = Field(default=None, gt=0)
    inputs: list[InputDef] = Field(default_factory=list)
    steps: list[StepDef] = Field(default_factory=list)

    def find_step(self, step_id: str) -> StepDef | None:
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

    @property
    def first_step(self) -> StepDef | None:
        return self.steps[0] if self.steps else None

    @property
    def step_ids(self) -> list[str]:
        return [step.id for step in self.steps]


__all__ = [
    "FINISHED",
    "Condition",
    "InputDef",
    "InputType",
    "Route",
    "StepConfig",
    "StepDef",
    "WorkflowDef",
]
