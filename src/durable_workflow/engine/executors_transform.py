"""Transform executor: a left-to-right pipeline of collection operations.

Operations never fail on type-mismatched data; they return their input unchanged
(``keys``/``values`` return an empty list and ``count`` returns 1 for non-collections).
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sized
from typing import Any, ClassVar

from pydantic import Field, field_validator

from .execution_result import StepOutcome
from .executor_base import StepExecutor
from .schema import StepConfig
from .state import State
from .utils import fetch, to_float


def _dig(obj: Any, path: Any) -> Any:
    for key in str(path).split("."):
        if not isinstance(obj, Mapping):
            return None
        obj = fetch(obj, key)
    return obj


def _matches(obj: Any, conditions: Mapping[str, Any]) -> bool:
    return all(_dig(obj, key) == expected for key, expected in conditions.items())


def _names(arg: Any) -> list[str]:
    if arg is None:
        return []
    if isinstance(arg, (list, tuple)):
        return [str(a) for a in arg]
    return [str(arg)]


def _flatten(items: list[Any], depth: int) -> list[Any]:
    flat: list[Any] = []
    for item in items:
        if isinstance(item, list) and depth > 0:
            flat.extend(_flatten(item, depth - 1))
        else:
            flat.append(item)
    return flat


def _uniq(items: list[Any]) -> list[Any]:
    seen: list[Any] = []
    for item in items:
        if item not in seen:
            seen.append(item)
    return seen


def _sort(items: list[Any], key: Any) -> list[Any]:
    try:
        if key is None:
            return sorted(items)
        return sorted(items, key=lambda item: _dig(item, key))
    except TypeError:
        return items


def _first(items: list[Any], n: Any) -> list[Any]:
    return items[: int(n or 1)]


def _last(items: list[Any], n: Any) -> list[Any]:
    count = int(n or 1)
    return items[-count:] if count > 0 else []


def _sum(items: list[Any], key: Any) -> float:
    if key is None:
        return sum(to_float(item) for item in items)
    return sum(to_float(_dig(item, key)) for item in items)


def _list_op(func: Callable[[list[Any], Any], Any]) -> Callable[[Any, Any], Any]:
    return lambda data, arg: func(data, arg) if isinstance(data, list) else data


def _dict_op(func: Callable[[dict[str, Any], Any], Any]) -> Callable[[Any, Any], Any]:
    return lambda data, arg: func(data, arg) if isinstance(data, dict) else data


OPS: dict[str, Callable[[Any, Any], Any]] = {
    "map": _list_op(lambda d, a: [_dig(i, a) if isinstance(a, str) else i for i in d]),
    "select": _list_op(
        lambda d, a: [i for i in d if _matches(i, a)] if isinstance(a, Mapping) else d
    ),
    "reject": _list_op(
        lambda d, a: [i for i in d if not _matches(i, a)] if isinstance(a, Mapping) else d
    ),
    "pluck": _list_op(lambda d, a: [_dig(i, a) for i in d]),
    "first": _list_op(_first),
    "last": _list_op(_last),
    "flatten": _list_op(lambda d, a: _flatten(d, int(a or 1))),
    "compact": _list_op(lambda d, _: [i for i in d if i is not None]),
    "uniq": _list_op(lambda d, _: _uniq(d)),
    "reverse": _list_op(lambda d, _: list(reversed(d))),
    "sort": _list_op(_sort),
    "count": lambda d, _: len(d) if isinstance(d, Sized) else 1,
    "sum": _list_op(_sum),
    "keys": lambda d, _: list(d.keys()) if isinstance(d, dict) else [],
    "values": lambda d, _: list(d.values()) if isinstance(d, dict) else [],
    "pick": _dict_op(lambda d, a: {k: d[k] for k in _names(a) if k in d}),
    "omit": _dict_op(lambda d, a: {k: v for k, v in d.items() if k not in _names(a)}),
    "merge": _dict_op(lambda d, a: {**d, **a} if isinstance(a, dict) else d),
}

OPERATIONS = frozenset(OPS)


class TransformConfig(StepConfig):
    """Transform step config.

    ``expression`` is either an ordered mapping of ``operation: argument`` or a
    list of single-entry mappings (which allows repeating an operation).
    """

    input: str | None = Field(
        default=None, description="Reference path (without '$') to transform; defaults to ctx"
    )
    expression: list[tuple[str, Any]]
    output: str

    @field_validator("expression", mode="before")
    @classmethod
    def _normalize_expression(cls, value: Any) -> Any:
        if isinstance(value, Mapping):
            return [(str(op), arg) for op, arg in value.items()]
        if isinstance(value, list):
            pairs = []
            for item in value:
                if isinstance(item, Mapping):
                    if len(item) != 1:
                        raise ValueError("each expression item must have exactly one operation")
                    pairs.extend((str(op), arg) for op, arg in item.items())
                else:
                    pairs.append(item)
            return pairs
        return value


class TransformExecutor(StepExecutor):
    """Apply ``expression`` operations in order and store the final value under ``output``."""

    type_name: ClassVar[str] = "transform"
    config_type: ClassVar[type[StepConfig]] = TransformConfig

    async def call(self, state: State) -> StepOutcome:
        config: TransformConfig = self.config
        data = self.resolve(state, f"${config.input}") if config.input else dict(state.ctx)

        for op, arg in config.expression:
            func = OPS.get(op)
            if func is not None:
                data = func(data, self.resolve(state, arg))

        state = self.store(state, config.output, data)
        return self.continue_(state, output=data)


__all__ = ["OPERATIONS", "TransformConfig", "TransformExecutor"]
