"""Condition evaluation for router routes and while-loops.

Conditions never raise into control flow: unknown operators and evaluation
errors (e.g. a malformed regex) are treated as a non-match.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable, Sized
from typing import Any, TypeVar

from .resolver import Resolver
from .schema import Condition
from .state import State
from .utils import to_float

logger = logging.getLogger(__name__)

C = TypeVar("C", bound=Condition)


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    if isinstance(value, (tuple, set, frozenset)):
        return list(value)
    return [value]


def _to_str(value: Any) -> str:
    return "" if value is None else str(value)


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, Sized):
        return len(value) == 0
    return False


OPS: dict[str, Callable[[Any, Any], bool]] = {
    "eq": lambda v, e: v == e,
    "neq": lambda v, e: v != e,
    "gt": lambda v, e: to_float(v) > to_float(e),
    "gte": lambda v, e: to_float(v) >= to_float(e),
    "lt": lambda v, e: to_float(v) < to_float(e),
    "lte": lambda v, e: to_float(v) <= to_float(e),
    "in": lambda v, e: v in _as_list(e),
    "not_in": lambda v, e: v not in _as_list(e),
    "contains": lambda v, e: _to_str(e) in _to_str(v),
    "starts_with": lambda v, e: _to_str(v).startswith(_to_str(e)),
    "ends_with": lambda v, e: _to_str(v).endswith(_to_str(e)),
    "matches": lambda v, e: re.search(_to_str(e), _to_str(v)) is not None,
    "exists": lambda v, _: v is not None,
    "empty": lambda v, _: _is_empty(v),
    "truthy": lambda v, _: bool(v),
    "falsy": lambda v, _: not v,
}

OPERATORS = frozenset(OPS)


class ConditionEvaluator:
    """Stateless field/op/value predicate evaluator."""

    @staticmethod
    def match(state: State, condition: Condition) -> bool:
        try:
            actual = Resolver.resolve(state, f"${condition.field}")
            expected = Resolver.resolve(state, condition.value)
            op = OPS.get(condition.op)
            if op is None:
                return False
            return bool(op(actual, expected))
        except Exception as e:
            logger.warning(
                f"Condition failed: {e} (field={condition.field!r}, op={condition.op!r})"
            )
            return False

    @classmethod
    def find_route(cls, state: State, routes: Iterable[C]) -> C | None:
        """Return the first route whose condition matches, in declared order."""
        for route in routes:
            if cls.match(state, route):
                return route
        return None


__all__ = ["OPERATORS", "OPS", "ConditionEvaluator"]
