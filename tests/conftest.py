"""Shared test configuration for durable_workflow tests.

Provides:
- A fresh InMemoryStore per test
- In-memory services resolved by name through the engine's service resolver
- A ``make_engine`` factory that loads (and validates) a workflow definition
"""

import asyncio
import time
from collections.abc import Callable
from typing import Any

import pytest

from durable_workflow.engine import Engine, WorkflowRegistry, load_workflow
from durable_workflow.storage import InMemoryStore


class MathService:
    """Deterministic arithmetic service recording every call."""

    def __init__(self) -> None:
        self.calls: list[Any] = []

    def double(self, n):
        self.calls.append(n)
        return n * 2

    async def add(self, *, a, b):
        self.calls.append((a, b))
        return a + b

    def ping(self):
        return "pong"


class FlakyService:
    """Fails ``failures`` times, then succeeds."""

    def __init__(self, failures: int = 2) -> None:
        self.failures = failures
        self.calls = 0

    def fetch(self, payload):
        self.calls += 1
        if self.calls <= self.failures:
            raise ConnectionError(f"attempt {self.calls} failed")
        return {"ok": True, "payload": payload}


class SlowService:
    async def wait(self, seconds):
        await asyncio.sleep(seconds)
        return seconds

    def block(self, seconds):
        time.sleep(seconds)
        return seconds


class Greeter:
    """Class-style service: instantiated per call unless the method is static."""

    def hello(self, name):
        return f"Hello {name}"

    @staticmethod
    def shout(text):
        return str(text).upper()


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def math_service() -> MathService:
    return MathService()


@pytest.fixture
def flaky_service() -> FlakyService:
    return FlakyService()


@pytest.fixture
def services(math_service: MathService, flaky_service: FlakyService) -> dict[str, Any]:
    return {
        "math": math_service,
        "flaky": flaky_service,
        "slow": SlowService(),
        "Greeter": Greeter,
    }


@pytest.fixture
def workflow_registry() -> WorkflowRegistry:
    return WorkflowRegistry()


@pytest.fixture
def make_engine(
    store: InMemoryStore, services: dict[str, Any], workflow_registry: WorkflowRegistry
) -> Callable[..., Engine]:
    """Load ``definition`` and build an Engine sharing the test's store and registries."""

    def _make(definition: dict[str, Any] | str, **options: Any) -> Engine:
        workflow = load_workflow(definition)
        options.setdefault("service_resolver", services)
        options.setdefault("workflow_registry", workflow_registry)
        return Engine(workflow, store=store, **options)

    return _make


def linear(workflow_id: str, *steps: dict[str, Any], **extra: Any) -> dict[str, Any]:
    """Workflow definition whose steps run in declared order (``next`` filled in)."""
    chained = []
    for index, step in enumerate(steps):
        step = dict(step)
        if "next" not in step and step["type"] != "end" and index + 1 < len(steps):
            step["next"] = steps[index + 1]["id"]
        chained.append(step)
    return {"id": workflow_id, "steps": chained, **extra}
