"""
YAML workflow loader.

Builds immutable WorkflowDefs from YAML files, YAML strings or plain mappings.

Step format:
    - id: fetch_order          # required
      type: call               # required, must be a registered step type
      next: check              # optional next step id
      on_error: recover        # optional error handler step id
      service: shop.orders:OrderService
      method: fetch            # every other key is the step's config

Step configs are validated against the registered executor's ``config_type``,
so authoring mistakes surface at load time rather than mid-run.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError as PydanticValidationError

from .exceptions import ValidationError
from .executor_base import ExecutorRegistry, create_default_registry
from .load_result import LoadResult
from .schema import InputDef, StepDef, WorkflowDef
from .utils import deep_normalize

logger = logging.getLogger(__name__)

STEP_KEYS = ("id", "type", "next", "on_error")


def parse_workflow(
    source: Mapping[str, Any] | str | Path,
    executor_registry: ExecutorRegistry | None = None,
) -> WorkflowDef:
    """
    Parse a workflow definition without graph validation.

    Args:
        source: Mapping, YAML string (must contain a newline) or path to a YAML file
        executor_registry: Registry providing per-type config models
            (default: built-in step types)

    Returns:
        Parsed WorkflowDef

    Raises:
        ValidationError: If the YAML or any step config is malformed
    """
    registry = executor_registry or create_default_registry()
    data = _load_source(source)

    for key in ("id", "steps"):
        if key not in data:
            raise ValidationError(f"Workflow is missing required key '{key}'")
    if not isinstance(data["steps"], list):
        raise ValidationError("Workflow 'steps' must be a list")

    try:
        return WorkflowDef(
            id=str(data["id"]),
            name=str(data.get("name") or data["id"]),
            version=str(data.get("version") or "1.0"),
            description=data.get("description"),
            timeout=data.get("timeout"),
            inputs=_parse_inputs(data.get("inputs")),
            steps=[_parse_step(step, registry) for step in data["steps"]],
        )
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid workflow '{data['id']}': {e}") from e


def load_workflow(
    source: Mapping[str, Any] | str | Path,
    executor_registry: ExecutorRegistry | None = None,
) -> WorkflowDef:
    """Parse and validate a workflow, raising ValidationError listing every problem."""
    from .validation import validate_workflow

    registry = executor_registry or create_default_registry()
    workflow = parse_workflow(source, registry)
    validate_workflow(workflow, registry)
    return workflow


def load_workflow_from_file(
    file_path: str | Path,
    executor_registry: ExecutorRegistry | None = None,
) -> LoadResult[WorkflowDef]:
    """
    Load and validate a workflow from a YAML file without raising.

    Returns:
        LoadResult.success(WorkflowDef) if valid
        LoadResult.failure(error_message) otherwise

    Example:
        result = load_workflow_from_file("workflows/refund.yaml")
        if result.is_success:
            engine = Engine(result.value, store=store)
    """
    path = Path(file_path)
    if not path.exists():
        return LoadResult.failure(f"Workflow file not found: {file_path}")
    if not path.is_file():
        return LoadResult.failure(f"Path is not a file: {file_path}")

    try:
        workflow = load_workflow(path, executor_registry)
    except ValidationError as e:
        return LoadResult.failure(f"Workflow validation failed in {file_path}: {e}")
    except OSError as e:
        return LoadResult.failure(f"Failed to read file '{file_path}': {e}")

    return LoadResult.success(workflow, metadata={"source": str(path)})


def _load_source(source: Mapping[str, Any] | str | Path) -> dict[str, Any]:
    if isinstance(source, Mapping):
        raw: Any = source
    elif isinstance(source, Path) or (isinstance(source, str) and "\n" not in source):
        with open(source, encoding="utf-8") as f:
            raw = _safe_load(f.read(), str(source))
    elif isinstance(source, str):
        raw = _safe_load(source, "<string>")
    else:
        raise ValidationError(f"Invalid workflow source: {type(source).__name__}")

    if not isinstance(raw, Mapping):
        raise ValidationError(f"Workflow must be a YAML mapping, got {type(raw).__name__}")
    return deep_normalize(raw)


def _safe_load(content: str, source: str) -> Any:
    try:
        return yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ValidationError(f"Invalid YAML syntax in {source}: {e}") from e


def _parse_inputs(inputs: Any) -> list[InputDef]:
    if not inputs:
        return []

    if isinstance(inputs, Mapping):
        items = [{"name": name, **(cfg or {})} for name, cfg in inputs.items()]
    elif isinstance(inputs, list):
        items = inputs
    else:
        raise ValidationError("Workflow 'inputs' must be a mapping or a list")

    try:
        return [InputDef.model_validate(item) for item in items]
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid workflow inputs: {e}") from e


def _parse_step(raw: Any, registry: ExecutorRegistry) -> StepDef:
    if not isinstance(raw, Mapping):
        raise ValidationError(f"Step must be a mapping, got {type(raw).__name__}")
    if "id" not in raw or "type" not in raw:
        raise ValidationError(f"Step is missing 'id' or 'type': {dict(raw)}")

    step_id = str(raw["id"])
    step_type = str(raw["type"])
    config = _build_config(step_id, step_type, _extract_config(raw, registry), registry)

    return StepDef(
        id=step_id,
        type=step_type,
        config=config,
        next_step=raw.get("next"),
        on_error=raw.get("on_error"),
    )


def _extract_config(raw: Mapping[str, Any], registry: ExecutorRegistry) -> dict[str, Any]:
    config = {k: v for k, v in raw.items() if k not in STEP_KEYS}
    step_type = raw["type"]

    if step_type == "router" and config.get("routes"):
        config["routes"] = [_parse_route(route) for route in config["routes"]]
    elif step_type == "loop" and config.get("do"):
        config["do"] = [_parse_step(step, registry) for step in config["do"]]
    elif step_type == "parallel" and config.get("branches"):
        config["branches"] = [_parse_step(step, registry) for step in config["branches"]]

    return config


def _parse_route(route: Any) -> Any:
    # Authoring form is {when: {field, op, value}, then: target}; flat routes pass through
    if isinstance(route, Mapping) and "when" in route:
        when = route.get("when") or {}
        return {**when, "target": route.get("then")}
    return route


def _build_config(
    step_id: str, step_type: str, config: dict[str, Any], registry: ExecutorRegistry
) -> Any:
    executor = registry.lookup(step_type)
    if executor is None:
        # Unregistered types are reported by the validator
        return config

    try:
        return executor.config_type.model_validate(config)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid config for step '{step_id}' ({step_type}): {e}") from e


__all__ = ["load_workflow", "load_workflow_from_file", "parse_workflow"]
