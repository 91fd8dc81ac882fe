"""Call step: service resolution, argument shapes, retry, timeout and output schemas."""

import time

import pytest
from conftest import linear

from durable_workflow.engine import ExecutionError, ValidationError


def call_workflow(call: dict, result: str = "$out", **extra):
    step = {"id": "invoke", "type": "call", "output": "out", **call}
    return linear(
        "call-flow",
        {"id": "start", "type": "start"},
        step,
        {"id": "finish", "type": "end", "result": result},
        **extra,
    )


@pytest.mark.asyncio
async def test_positional_argument(make_engine, math_service):
    engine = make_engine(call_workflow({"service": "math", "method": "double", "input": "$input.n"}))

    result = await engine.run({"n": 21})

    assert result.output == 42
    assert math_service.calls == [21]


@pytest.mark.asyncio
async def test_keyword_arguments_for_async_method(make_engine):
    engine = make_engine(
        call_workflow({"service": "math", "method": "add", "input": {"a": 2, "b": "$input.b"}})
    )

    result = await engine.run({"b": 3})

    assert result.output == 5


@pytest.mark.asyncio
async def test_method_without_parameters(make_engine):
    engine = make_engine(call_workflow({"service": "math", "method": "ping", "input": "ignored"}))

    result = await engine.run()

    assert result.output == "pong"


@pytest.mark.asyncio
async def test_class_service_is_instantiated(make_engine):
    engine = make_engine(
        call_workflow({"service": "Greeter", "method": "hello", "input": "$input.name"})
    )

    result = await engine.run({"name": "Ada"})

    assert result.output == "Hello Ada"


@pytest.mark.asyncio
async def test_static_method_on_class_service(make_engine):
    engine = make_engine(call_workflow({"service": "Greeter", "method": "shout", "input": "hey"}))

    result = await engine.run()

    assert result.output == "HEY"


@pytest.mark.asyncio
async def test_default_resolver_imports_dotted_names(make_engine):
    engine = make_engine(
        call_workflow({"service": "math", "method": "sqrt", "input": 16}),
        service_resolver=None,
    )

    result = await engine.run()

    assert result.output == 4.0


@pytest.mark.asyncio
async def test_unknown_service(make_engine):
    engine = make_engine(call_workflow({"service": "nope", "method": "run"}))

    with pytest.raises(ExecutionError, match="Service not found: nope"):
        await engine.run()


@pytest.mark.asyncio
async def test_unknown_method(make_engine):
    engine = make_engine(call_workflow({"service": "math", "method": "triple", "input": 1}))

    with pytest.raises(ExecutionError, match="has no method 'triple'"):
        await engine.run()


# =============================================================================
# Retry and timeout
# =============================================================================


@pytest.mark.asyncio
async def test_retries_until_success(make_engine, flaky_service):
    engine = make_engine(
        call_workflow(
            {
                "service": "flaky",
                "method": "fetch",
                "input": {"id": 7},
                "retries": 2,
                "retry_delay": 0.01,
                "retry_backoff": 2.0,
            },
            result="$out.payload.id",
        )
    )

    result = await engine.run()

    assert result.completed
    assert result.output == 7
    assert flaky_service.calls == 3


@pytest.mark.asyncio
async def test_retries_exhausted_reraises_service_error(make_engine, flaky_service, store):
    flaky_service.failures = 10
    engine = make_engine(
        call_workflow(
            {
                "service": "flaky",
                "method": "fetch",
                "input": {},
                "retries": 1,
                "retry_delay": 0.001,
            }
        )
    )

    with pytest.raises(ConnectionError, match="attempt 2 failed"):
        await engine.run(execution_id="flaky-run")

    assert flaky_service.calls == 2
    execution = await store.load("flaky-run")
    assert execution.error == "ConnectionError: attempt 2 failed"


@pytest.mark.asyncio
async def test_blocking_call_times_out_promptly(make_engine):
    engine = make_engine(
        call_workflow({"service": "slow", "method": "block", "input": 0.5, "timeout": 0.05})
    )

    started = time.monotonic()
    with pytest.raises(ExecutionError, match="timed out"):
        await engine.run()

    assert time.monotonic() - started < 0.45


# =============================================================================
# Output schema
# =============================================================================


SCHEMA = {
    "type": "object",
    "required": ["ok"],
    "properties": {"ok": {"type": "boolean"}, "payload": {"type": "object"}},
}


@pytest.mark.asyncio
async def test_output_matching_schema(make_engine, flaky_service):
    flaky_service.failures = 0
    engine = make_engine(
        call_workflow(
            {
                "service": "flaky",
                "method": "fetch",
                "input": {"id": 1},
                "output": {"key": "out", "schema": SCHEMA},
            },
            result="$out.ok",
        )
    )

    result = await engine.run()

    assert result.output is True


@pytest.mark.asyncio
async def test_output_violating_schema(make_engine, flaky_service):
    flaky_service.failures = 0
    schema = {"type": "object", "properties": {"ok": {"type": "string"}}}
    engine = make_engine(
        call_workflow(
            {
                "service": "flaky",
                "method": "fetch",
                "input": {"id": 1},
                "output": {"key": "out", "schema": schema},
            },
        )
    )

    with pytest.raises(ValidationError, match="Step 'invoke' output"):
        await engine.run()
