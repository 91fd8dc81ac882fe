"""Call executor: invoke an external service method with retry, timeout and output validation."""

from __future__ import annotations

import asyncio
import inspect
import logging
import pkgutil
from typing import Any, ClassVar

from pydantic import BaseModel, Field

from .exceptions import ExecutionError
from .execution_result import StepOutcome
from .executor_base import StepExecutor
from .schema import StepConfig
from .schema_validator import validate_output
from .state import State

logger = logging.getLogger(__name__)


class OutputConfig(BaseModel):
    """Output key with an optional JSON Schema the value must satisfy."""

    model_config = {"frozen": True, "extra": "forbid", "populate_by_name": True}

    key: str
    output_schema: dict[str, Any] | None = Field(default=None, alias="schema")


class CallConfig(StepConfig):
    """Call step config."""

    service: str = Field(description="Service name, resolved through the service resolver")
    method: str = Field(description="Method invoked on the service (or on a new instance of it)")
    input: Any = Field(default=None, description="Input expression, resolved against state")
    output: str | OutputConfig | None = Field(
        default=None, description="ctx key for the result, or {key, schema}"
    )
    timeout: float | None = Field(default=None, gt=0, description="Per-attempt timeout in seconds")
    retries: int = Field(default=0, ge=0, description="Additional attempts after a failure")
    retry_delay: float = Field(default=1.0, ge=0, description="Delay before the first retry")
    retry_backoff: float = Field(default=2.0, ge=1.0, description="Delay multiplier per attempt")

    @property
    def output_key(self) -> str | None:
        if isinstance(self.output, OutputConfig):
            return self.output.key
        return self.output

    @property
    def output_schema(self) -> dict[str, Any] | None:
        if isinstance(self.output, OutputConfig):
            return self.output.output_schema
        return None


def default_service_resolver(name: str) -> Any:
    """Resolve a dotted name such as ``"myapp.services:Mailer"`` or ``"myapp.services.Mailer"``."""
    try:
        return pkgutil.resolve_name(name)
    except (ImportError, AttributeError, ValueError) as e:
        raise ExecutionError(f"Service not found: {name} ({e})") from e


class CallExecutor(StepExecutor):
    """
    Invoke ``service.method(input)`` and store the result.

    The service is resolved by name through the context's service resolver
    (default: dotted-path import). Keyword arguments are used when the method
    declares keyword-only or ``**kwargs`` parameters and the input is a mapping;
    zero-parameter methods are called without arguments; otherwise the input is
    passed as a single positional argument.

    Synchronous methods run in a worker thread so the step timeout can fire
    while the call is still blocked; the thread itself is not interrupted.
    """

    type_name: ClassVar[str] = "call"
    config_type: ClassVar[type[StepConfig]] = CallConfig

    async def call(self, state: State) -> StepOutcome:
        config: CallConfig = self.config
        service = self._resolve_service(config.service)
        method = self._bind_method(service, config.method)
        payload = self.resolve(state, config.input)

        async def attempt() -> Any:
            return await self.with_timeout(config.timeout, lambda: self._invoke(method, payload))

        result = await self.with_retry(
            attempt,
            max_retries=config.retries,
            delay=config.retry_delay,
            backoff=config.retry_backoff,
        )

        if config.output_schema is not None:
            validate_output(result, config.output_schema, context=f"Step '{self.step.id}' output")

        state = self.store(state, config.output_key, result)
        return self.continue_(state, output=result)

    def _resolve_service(self, name: str) -> Any:
        resolver = self.context.service_resolver or default_service_resolver
        service = resolver(name)
        if service is None:
            raise ExecutionError(f"Service not found: {name}")
        return service

    def _bind_method(self, service: Any, method_name: str) -> Any:
        if inspect.isclass(service):
            attr = inspect.getattr_static(service, method_name, None)
            if not isinstance(attr, (staticmethod, classmethod)):
                service = service()

        method = getattr(service, method_name, None)
        if method is None or not callable(method):
            raise ExecutionError(
                f"Service {type(service).__name__} has no method '{method_name}' "
                f"(step '{self.step.id}')"
            )
        return method

    async def _invoke(self, method: Any, payload: Any) -> Any:
        args, kwargs = _call_arguments(method, payload)

        if inspect.iscoroutinefunction(method):
            return await method(*args, **kwargs)

        result = await asyncio.to_thread(method, *args, **kwargs)
        if inspect.isawaitable(result):
            result = await result
        return result


def _call_arguments(method: Any, payload: Any) -> tuple[tuple[Any, ...], dict[str, Any]]:
    try:
        params = list(inspect.signature(method).parameters.values())
    except (TypeError, ValueError):
        return (payload,), {}

    takes_kwargs = any(
        p.kind in (inspect.Parameter.KEYWORD_ONLY, inspect.Parameter.VAR_KEYWORD) for p in params
    )
    if takes_kwargs and isinstance(payload, dict):
        return (), {str(k): v for k, v in payload.items()}
    if not params:
        return (), {}
    return (payload,), {}


__all__ = ["CallConfig", "CallExecutor", "OutputConfig", "default_service_resolver"]
