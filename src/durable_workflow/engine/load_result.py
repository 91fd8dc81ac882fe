"""LoadResult for workflow file loading and directory scanning.

Used only by the loader and WorkflowRegistry, where one bad file must not stop
a whole directory from loading. Execution paths raise exceptions instead.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class LoadStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"


@dataclass
class LoadResult(Generic[T]):  # noqa: UP046
    """
    Success-or-failure result of a load operation.

    Usage:
        result = load_workflow_from_file("workflows/refund.yaml", registry)
        if result.is_success:
            workflow_registry.register(result.value)
        else:
            logger.warning(f"Load error: {result.error}")
    """

    status: LoadStatus
    value: T | None = None
    error: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.status == LoadStatus.SUCCESS and self.value is None:
            raise ValueError("Success result must have a value")
        if self.status == LoadStatus.FAILED and not self.error:
            raise ValueError("Failed result must have an error message")

    @property
    def is_success(self) -> bool:
        return self.status == LoadStatus.SUCCESS

    @property
    def is_failure(self) -> bool:
        return self.status == LoadStatus.FAILED

    @classmethod
    def success(cls, value: T, metadata: dict[str, Any] | None = None) -> "LoadResult[T]":
        return cls(status=LoadStatus.SUCCESS, value=value, metadata=metadata or {})

    @classmethod
    def failure(cls, error: str, metadata: dict[str, Any] | None = None) -> "LoadResult[T]":
        return cls(status=LoadStatus.FAILED, error=error, metadata=metadata or {})

    def __bool__(self) -> bool:
        return self.is_success

    def unwrap(self) -> T:
        """Return the value, raising ValueError if the load failed."""
        if not self.is_success or self.value is None:
            raise ValueError(f"Cannot unwrap failed result: {self.error}")
        return self.value

    def unwrap_or(self, default: T) -> T:
        if self.is_success and self.value is not None:
            return self.value
        return default
