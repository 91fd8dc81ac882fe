"""Runtime JSON Schema validation of step outputs."""

from __future__ import annotations

import json
from typing import Any

import jsonschema

from .exceptions import ValidationError
from .utils import deep_normalize


def validate_output(value: Any, schema: dict[str, Any] | None, context: str) -> None:
    """Validate ``value`` against a JSON Schema.

    Every violation is reported, joined with ``; `` and prefixed with ``context``.

    Raises:
        ValidationError: If the value does not conform, or the schema itself is invalid
    """
    if schema is None:
        return

    schema = deep_normalize(schema)
    instance = json.loads(json.dumps(deep_normalize(value), default=str))

    validator_class = jsonschema.validators.validator_for(schema)
    try:
        validator_class.check_schema(schema)
    except jsonschema.SchemaError as e:
        raise ValidationError(f"{context}: invalid schema: {e.message}") from e

    errors = sorted(validator_class(schema).iter_errors(instance), key=lambda e: [str(p) for p in e.path])
    if not errors:
        return

    messages = "; ".join(_format_error(error) for error in errors)
    raise ValidationError(f"{context}: {messages}")


def _format_error(error: jsonschema.ValidationError) -> str:
    if error.path:
        location = ".".join(str(part) for part in error.path)
        return f"{location}: {error.message}"
    return error.message


__all__ = ["validate_output"]
