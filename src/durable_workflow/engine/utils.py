"""Value helpers shared by the resolver, executors and storage layer."""

from __future__ import annotations

import re
from collections.abc import Mapping
from datetime import date
from typing import Any


def deep_normalize(value: Any) -> Any:
    """Normalize a value for storage in workflow state.

    Mapping keys become strings, tuples become lists and dates become ISO 8601
    strings, recursively, so that values read back from durable storage compare
    equal to what was stored.
    """
    if isinstance(value, Mapping):
        return {str(k): deep_normalize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [deep_normalize(v) for v in value]
    if isinstance(value, date):
        return value.isoformat()
    return value


def to_float(value: Any) -> float:
    """Lenient numeric coercion: leading numeric prefix of strings, 0.0 otherwise."""
    if value is None:
        return 0.0
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        return float(value)
    match = re.match(r"\s*[-+]?(\d+\.?\d*|\.\d+)([eE][-+]?\d+)?", str(value))
    return float(match.group(0)) if match else 0.0


def fetch(mapping: Any, key: Any, default: Any = None) -> Any:
    """Look up ``key`` in a mapping, accepting string or integer keys.

    Returns ``default`` when ``mapping`` is not a mapping or the key is absent.
    """
    if not isinstance(mapping, Mapping):
        return default
    if key in mapping:
        return mapping[key]
    skey = str(key)
    if skey in mapping:
        return mapping[skey]
    if isinstance(key, str) and key.lstrip("-").isdigit() and int(key) in mapping:
        return mapping[int(key)]
    return default


__all__ = ["deep_normalize", "fetch", "to_float"]
