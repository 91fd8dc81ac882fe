"""Static validation of workflow definitions.

Checks run before a workflow is registered so the engine can execute it
without further checking:

1. Step ids are unique
2. Every step type (including loop bodies and parallel branches) is registered
3. Every step reference (next, on_error, route targets, default, on_exhausted,
   resume_step, on_reject, on_timeout) names a step or FINISHED
4. Every ``$ref`` root is set on every path reaching the step
5. References into a schema'd call output only use declared properties
6. Every step is reachable from the first step

All problems are collected and reported together in one ValidationError.
"""

from __future__ import annotations

import logging
from collections import Counter, deque
from collections.abc import Iterable
from typing import Any

from pydantic import BaseModel

from .exceptions import ValidationError
from .executor_base import ExecutorRegistry, create_default_registry
from .resolver import PATTERN
from .schema import FINISHED, StepDef, WorkflowDef
from .utils import fetch

logger = logging.getLogger(__name__)

ALWAYS_AVAILABLE = frozenset({"input", "now", "history"})
RESUME_KEYS = frozenset({"response", "approved"})
WHILE_KEYS = ("iteration", "break_loop")
NESTED_FIELDS = {"loop": "do", "parallel": "branches"}


def _get(config: Any, name: str) -> Any:
    if isinstance(config, BaseModel):
        return getattr(config, name, None)
    if isinstance(config, dict):
        return config.get(name)
    return None


def _dump(config: Any, exclude: str | None = None) -> Any:
    """Config as plain data, without nested steps and output schemas."""
    if isinstance(config, BaseModel):
        data = config.model_dump(by_alias=True, exclude={exclude} if exclude else None)
    elif isinstance(config, dict):
        data = {k: v for k, v in config.items() if k != exclude}
    else:
        return config
    if isinstance(data.get("output"), dict):
        data.pop("output")
    return data


def _output_key(config: Any) -> str | None:
    output = _get(config, "output")
    if isinstance(output, str):
        return output
    key = _get(output, "key")
    return str(key) if key else None


def _output_schema(config: Any) -> dict[str, Any] | None:
    output = _get(config, "output")
    if isinstance(output, BaseModel):
        return getattr(output, "output_schema", None)
    if isinstance(output, dict):
        return output.get("schema")
    return None


def extract_refs(value: Any) -> list[str]:
    """Return every ``$ref`` path (without ``$``) found in strings inside ``value``."""
    refs: list[str] = []
    if isinstance(value, str):
        refs.extend(PATTERN.findall(value))
    elif isinstance(value, dict):
        for item in value.values():
            refs.extend(extract_refs(item))
    elif isinstance(value, (list, tuple)):
        for item in value:
            refs.extend(extract_refs(item))
    elif isinstance(value, BaseModel):
        refs.extend(extract_refs(value.model_dump(by_alias=True)))
    return refs


class WorkflowValidator:
    """Collects every problem in a workflow definition."""

    def __init__(self, workflow: WorkflowDef, executor_registry: ExecutorRegistry):
        self.workflow = workflow
        self.registry = executor_registry
        self.errors: list[str] = []
        self.step_index = {step.id: step for step in workflow.steps}
        self.schemas: dict[str, dict[str, Any]] = {}

    def validate(self) -> None:
        self.check_unique_ids()
        self.check_step_types()
        self.check_references()
        self.check_variable_reachability()
        self.check_schema_compatibility()
        self.check_reachability()

        if self.errors:
            raise ValidationError(self.format_errors())

    # ------------------------------------------------------------------
    # Structure

    def all_steps(self) -> Iterable[StepDef]:
        """Top-level steps followed by nested loop bodies and parallel branches."""
        queue = deque(self.workflow.steps)
        while queue:
            step = queue.popleft()
            yield step
            nested = NESTED_FIELDS.get(step.type)
            if nested:
                queue.extend(_get(step.config, nested) or [])

    def check_unique_ids(self) -> None:
        counts = Counter(step.id for step in self.workflow.steps)
        duplicates = [step_id for step_id, count in counts.items() if count > 1]
        if duplicates:
            self.errors.append(f"Duplicate step IDs: {', '.join(duplicates)}")

    def check_step_types(self) -> None:
        for step in self.all_steps():
            if not self.registry.has(step.type):
                self.errors.append(f"Unknown step type '{step.type}' in step '{step.id}'")

    def successors(self, step: StepDef) -> list[str]:
        """Step ids control can move to after ``step`` (excluding nested steps)."""
        config = step.config
        targets = [step.next_step, step.on_error]

        if step.type == "router":
            targets.extend(_get(route, "target") for route in _get(config, "routes") or [])
            targets.append(_get(config, "default"))
        elif step.type == "loop":
            targets.append(_get(config, "on_exhausted"))
        elif step.type == "halt":
            targets.append(_get(config, "resume_step"))
        elif step.type == "approval":
            targets.extend([_get(config, "on_reject"), _get(config, "on_timeout")])

        seen: list[str] = []
        for target in targets:
            if target and target not in seen:
                seen.append(target)
        return seen

    def check_references(self) -> None:
        valid_ids = set(self.step_index) | {FINISHED}
        for step in self.workflow.steps:
            for target in self.successors(step):
                if target not in valid_ids:
                    self.errors.append(f"Step '{step.id}': references unknown step '{target}'")

    def check_reachability(self) -> None:
        first = self.workflow.first_step
        if first is None:
            self.errors.append("Workflow has no steps")
            return

        reachable: set[str] = set()
        queue = deque([first.id])
        while queue:
            step_id = queue.popleft()
            if step_id in reachable or step_id == FINISHED:
                continue
            reachable.add(step_id)
            step = self.step_index.get(step_id)
            if step is not None:
                queue.extend(self.successors(step))

        unreachable = [step_id for step_id in self.workflow.step_ids if step_id not in reachable]
        if unreachable:
            self.errors.append(f"Unreachable steps: {', '.join(unreachable)}")

    # ------------------------------------------------------------------
    # Variables

    def check_variable_reachability(self) -> None:
        first = self.workflow.first_step
        if first is None:
            return

        initial = set(ALWAYS_AVAILABLE) | {input_def.name for input_def in self.workflow.inputs}
        explored: set[tuple[str, frozenset[str]]] = set()
        stack: list[tuple[str, frozenset[str]]] = [(first.id, frozenset(initial))]

        # Each distinct (step, available-set) pair is walked once; a ref is
        # reported if any path reaches the step without its root being set.
        while stack:
            step_id, available = stack.pop()
            if (step_id, available) in explored:
                continue
            explored.add((step_id, available))

            step = self.step_index.get(step_id)
            if step is None:
                continue

            after = self.walk_step(step, set(available))
            for target in self.successors(step):
                produced = set(after)
                if target == step.on_error:
                    produced = set(available) | {"_last_error"}
                stack.append((target, frozenset(produced)))

    def walk_step(self, step: StepDef, available: set[str]) -> set[str]:
        """Check ``step``'s refs against ``available``; return the set after it runs."""
        nested_field = NESTED_FIELDS.get(step.type)
        assigned = _get(step.config, "set")
        if step.type == "assign" and isinstance(assigned, dict):
            # Later assignments may reference earlier ones from the same step
            visible = set(available)
            for key, expression in assigned.items():
                self.check_refs(step, expression, visible)
                visible.add(str(key))
        else:
            self.check_refs(step, _dump(step.config, exclude=nested_field), available)

        after = set(available)
        if step.type == "loop":
            is_while = _get(step.config, "condition") is not None or bool(_get(step.config, "while"))
            loop_vars = set(WHILE_KEYS)
            if not is_while:
                loop_vars = {
                    _get(step.config, "item_var") or _get(step.config, "as") or "item",
                    _get(step.config, "index_var") or _get(step.config, "index_as") or "index",
                }
            body_available = set(available) | loop_vars
            for body_step in _get(step.config, "do") or []:
                body_available = self.walk_step(body_step, body_available)
            after |= body_available - loop_vars
        elif step.type == "parallel":
            for branch in _get(step.config, "branches") or []:
                after |= self.walk_step(branch, set(available))

        if isinstance(assigned, dict):
            after |= {str(key) for key in assigned}

        output_key = _output_key(step.config)
        if output_key:
            after.add(output_key)
            schema = _output_schema(step.config)
            if schema:
                self.schemas[output_key] = schema

        if step.type == "start":
            after.add("input")
        elif step.type == "end":
            after.add("result")
        elif step.type in ("halt", "approval", "workflow"):
            after |= RESUME_KEYS

        return after

    def check_refs(self, step: StepDef, config: Any, available: set[str]) -> None:
        for ref in extract_refs(config):
            root = ref.split(".")[0]
            if root in available:
                continue
            message = f"Step '{step.id}': references '${ref}' but '{root}' not set by preceding step"
            if message not in self.errors:
                self.errors.append(message)

    # ------------------------------------------------------------------
    # Schemas

    def check_schema_compatibility(self) -> None:
        if not self.schemas:
            return

        for step in self.all_steps():
            nested_field = NESTED_FIELDS.get(step.type)
            for ref in extract_refs(_dump(step.config, exclude=nested_field)):
                root, *path = ref.split(".")
                if root in self.schemas and path:
                    self.check_schema_path(step.id, ref, self.schemas[root], path)

    def check_schema_path(
        self, step_id: str, ref: str, schema: dict[str, Any], path: list[str]
    ) -> None:
        current: Any = schema
        for segment in path:
            if segment.isdigit() and isinstance(fetch(current, "items"), dict):
                current = fetch(current, "items")
                continue

            properties = fetch(current, "properties")
            if not isinstance(properties, dict):
                self.errors.append(f"Step '{step_id}': '${ref}' - schema has no properties")
                return

            prop = fetch(properties, segment)
            if prop is None:
                available = ", ".join(str(k) for k in properties)
                self.errors.append(
                    f"Step '{step_id}': '${ref}' - '{segment}' not in schema "
                    f"(available: {available})"
                )
                return
            current = prop

    def format_errors(self) -> str:
        lines = [f"Workflow '{self.workflow.id}' validation failed:"]
        lines.extend(f"  - {error}" for error in self.errors)
        return "\n".join(lines)


def validate_workflow(
    workflow: WorkflowDef, executor_registry: ExecutorRegistry | None = None
) -> None:
    """
    Validate ``workflow`` against the registered step types.

    Raises:
        ValidationError: Listing every problem found
    """
    WorkflowValidator(workflow, executor_registry or create_default_registry()).validate()


def is_valid_workflow(
    workflow: WorkflowDef, executor_registry: ExecutorRegistry | None = None
) -> bool:
    try:
        validate_workflow(workflow, executor_registry)
    except ValidationError as e:
        logger.debug(str(e))
        return False
    return True


__all__ = ["WorkflowValidator", "extract_refs", "is_valid_workflow", "validate_workflow"]
