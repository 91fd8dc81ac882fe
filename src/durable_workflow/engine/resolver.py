"""
Reference resolver for ``$path`` expressions.

The reference language is deliberately tiny: a reference is ``$root`` followed by
dot-separated segments. There is no arithmetic, no method calls and no
filters, which keeps it sandboxable.

Roots:
    input    -> state.input
    now      -> current wall-clock time (evaluated on every call)
    history  -> state.history
    <other>  -> state.ctx[<other>]

Resolution rules:
    "$ref"              -> typed value (not stringified)
    "total: $a.b items" -> each reference interpolated as a string
    dict / list         -> resolved recursively
    anything else       -> returned unchanged

Example:
    Resolver.resolve(state, "$input.user.name")      # -> "Ada"
    Resolver.resolve(state, "Hello $input.user.name") # -> "Hello Ada"
    Resolver.resolve(state, {"ids": "$items.0.id"})   # -> {"ids": 7}
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from .state import State
from .utils import fetch

PATTERN = re.compile(r"\$([a-zA-Z_][a-zA-Z0-9_]*(?:\.[a-zA-Z0-9_]+)*)")


class Resolver:
    """Stateless resolver; every method takes the state explicitly."""

    @classmethod
    def resolve(cls, state: State, value: Any) -> Any:
        if isinstance(value, str):
            return cls._resolve_string(state, value)
        if isinstance(value, Mapping):
            return {k: cls.resolve(state, v) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return [cls.resolve(state, v) for v in value]
        return value

    @classmethod
    def resolve_ref(cls, state: State, ref: str) -> Any:
        """Resolve a reference path without the leading ``$``."""
        root, *path = ref.split(".")

        if root == "input":
            base: Any = state.input
        elif root == "now":
            base = datetime.now(UTC)
        elif root == "history":
            base = state.history
        else:
            base = state.ctx.get(root)

        return cls._dig(base, path)

    @classmethod
    def _resolve_string(cls, state: State, text: str) -> Any:
        whole = PATTERN.fullmatch(text)
        if whole:
            return cls.resolve_ref(state, whole.group(1))

        return PATTERN.sub(lambda m: _stringify(cls.resolve_ref(state, m.group(1))), text)

    @staticmethod
    def _dig(value: Any, path: list[str]) -> Any:
        for segment in path:
            if value is None:
                return None
            if isinstance(value, Mapping):
                value = fetch(value, segment)
            elif isinstance(value, (list, tuple)):
                value = value[int(segment)] if segment.isdigit() and int(segment) < len(value) else None
            elif not segment.startswith("_"):
                # Structured field access on typed values (pydantic models, dataclasses, datetimes)
                value = getattr(value, segment, None)
                if callable(value):
                    return None
            else:
                return None
        return value


def _stringify(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


__all__ = ["PATTERN", "Resolver"]
