"""Runner wrappers: blocking, enqueue-and-poll and event streaming."""

import pytest
from conftest import linear

from durable_workflow.engine import ConfigError, ExecutionStatus, load_workflow
from durable_workflow.runners import (
    AsyncRunner,
    Event,
    InlineAdapter,
    QueueAdapter,
    StreamRunner,
    SyncRunner,
)
from durable_workflow.storage import InMemoryStore

START = {"id": "start", "type": "start"}

DOUBLE = load_workflow(
    linear(
        "double",
        START,
        {"id": "calc", "type": "call", "service": "math", "method": "double", "input": "$input.n", "output": "value"},
        {"id": "finish", "type": "end", "result": "$value"},
    )
)

QUESTIONS = load_workflow(
    linear(
        "questions",
        START,
        {"id": "ask_name", "type": "halt", "reason": "name?"},
        {"id": "keep_name", "type": "assign", "set": {"name": "$response"}},
        {"id": "ask_age", "type": "halt", "reason": "age?"},
        {"id": "finish", "type": "end", "result": {"name": "$name", "age": "$response"}},
    )
)

FAILING = load_workflow(
    linear(
        "failing",
        START,
        {"id": "fetch", "type": "call", "service": "flaky", "method": "fetch", "input": {}},
        {"id": "finish", "type": "end"},
    )
)


@pytest.mark.parametrize("runner_class", [SyncRunner, AsyncRunner, StreamRunner])
def test_runners_require_a_store(runner_class):
    with pytest.raises(ConfigError):
        runner_class(DOUBLE)


# ----------------------------------------------------------------------------
# SyncRunner


def test_sync_run(store, services):
    runner = SyncRunner(DOUBLE, store=store, service_resolver=services)

    result = runner.run({"n": 21})

    assert result.completed
    assert result.output == 42


def test_sync_run_until_complete_answers_each_halt(store):
    answers = {"name?": "Ada", "age?": 36}
    prompts = []

    def handler(halt):
        prompts.append(halt.prompt)
        return answers[halt.prompt]

    result = SyncRunner(QUESTIONS, store=store).run_until_complete(handler=handler)

    assert prompts == ["name?", "age?"]
    assert result.output == {"name": "Ada", "age": 36}


def test_sync_run_until_complete_without_handler_returns_halt(store):
    result = SyncRunner(QUESTIONS, store=store).run_until_complete()

    assert result.halted
    assert result.halt.data["reason"] == "name?"


# ----------------------------------------------------------------------------
# AsyncRunner


@pytest.mark.asyncio
async def test_async_inline_run_and_wait(store, services):
    runner = AsyncRunner(DOUBLE, store=store, service_resolver=services)

    execution_id = await runner.run({"n": 4})

    assert await runner.status(execution_id) is ExecutionStatus.COMPLETED
    result = await runner.wait(execution_id, timeout=1)
    assert result.output == 8


@pytest.mark.asyncio
async def test_async_resume(store):
    runner = AsyncRunner(QUESTIONS, store=store)
    execution_id = await runner.run()

    await runner.resume(execution_id, response="Ada")
    halted = await runner.wait(execution_id, timeout=1)
    assert halted.halted
    assert halted.halt.data["reason"] == "age?"

    await runner.resume(execution_id, response=36)
    result = await runner.wait(execution_id, timeout=1)
    assert result.output == {"name": "Ada", "age": 36}


@pytest.mark.asyncio
async def test_async_status_unknown(store):
    runner = AsyncRunner(DOUBLE, store=store)

    assert await runner.status("nope") is None
    assert await runner.wait("nope", timeout=0.05, interval=0.01) is None


@pytest.mark.asyncio
async def test_inline_adapter_propagates_failures(store, services, flaky_service):
    flaky_service.failures = 5
    runner = AsyncRunner(FAILING, store=store, adapter=InlineAdapter(store, service_resolver=services))

    with pytest.raises(ConnectionError):
        await runner.run()

    [execution] = await store.find(workflow_id="failing")
    assert execution.status is ExecutionStatus.FAILED


@pytest.mark.asyncio
async def test_queue_adapter_runs_jobs(services):
    store = InMemoryStore()
    adapter = QueueAdapter(store, num_workers=2, service_resolver=services)

    async with adapter:
        runner = AsyncRunner(DOUBLE, store=store, adapter=adapter)
        ids = [await runner.run({"n": n}) for n in range(5)]
        results = [await runner.wait(execution_id, timeout=5) for execution_id in ids]

    assert not adapter.running
    assert [r.output for r in results] == [0, 2, 4, 6, 8]


@pytest.mark.asyncio
async def test_queue_adapter_requires_start(store):
    adapter = QueueAdapter(store)
    runner = AsyncRunner(DOUBLE, store=store, adapter=adapter)

    with pytest.raises(RuntimeError, match="not started"):
        await runner.run({"n": 1})


@pytest.mark.asyncio
async def test_queue_adapter_failed_job_updates_pending_execution(store):
    adapter = QueueAdapter(store, num_workers=1)
    runner = AsyncRunner(DOUBLE, store=store, adapter=adapter)
    adapter.workflow_registry.unregister("double")

    async with adapter:
        execution_id = await runner.run({"n": 1})

    execution = await store.load(execution_id)
    assert execution.status is ExecutionStatus.FAILED
    assert execution.error == "ExecutionError: Workflow not found: double"


# ----------------------------------------------------------------------------
# StreamRunner


@pytest.mark.asyncio
async def test_stream_event_sequence(store, services):
    events = []
    runner = StreamRunner(DOUBLE, store=store, service_resolver=services).subscribe(events.append)

    await runner.run({"n": 2})

    assert [(e.type, e.data.get("step_id")) for e in events] == [
        ("workflow.started", None),
        ("step.started", "start"),
        ("step.completed", "start"),
        ("step.started", "calc"),
        ("step.completed", "calc"),
        ("step.started", "finish"),
        ("step.completed", "finish"),
        ("workflow.completed", None),
    ]
    assert events[4].data["output"] == 4
    assert events[-1].data["output"] == 4


@pytest.mark.asyncio
async def test_stream_filtering_and_async_handlers(store):
    seen = []

    async def handler(event):
        seen.append(event.type)

    runner = StreamRunner(QUESTIONS, store=store)
    runner.subscribe(handler, events=["workflow.halted", "workflow.resumed", "step.halted"])

    halted = await runner.run()
    await runner.resume(halted.execution_id, response="Ada")

    assert seen == [
        "step.halted",
        "workflow.halted",
        "workflow.resumed",
        "step.halted",
        "workflow.halted",
    ]


@pytest.mark.asyncio
async def test_stream_failure_events(store, services, flaky_service):
    flaky_service.failures = 5
    events = []
    runner = StreamRunner(FAILING, store=store, service_resolver=services)
    runner.subscribe(events.append, events=["step.failed", "workflow.failed"])

    with pytest.raises(ConnectionError):
        await runner.run()

    assert [e.type for e in events] == ["step.failed", "workflow.failed"]
    assert events[0].data == {"step_id": "fetch", "error": "attempt 1 failed"}


def test_stream_rejects_unknown_events(store):
    runner = StreamRunner(DOUBLE, store=store)

    with pytest.raises(ValueError, match="Unknown event types: step.exploded"):
        runner.subscribe(print, events=["step.started", "step.exploded"])


def test_event_serialization():
    event = Event(type="step.completed", data={"step_id": "calc", "output": {"n": 1}})

    frame = event.to_sse()

    assert frame.startswith("event: step.completed\ndata: {")
    assert frame.endswith("}\n\n")
    assert '"step_id": "calc"' in event.to_json()
    assert event.to_dict()["timestamp"] == event.timestamp.isoformat()
