"""Approval step: halt for a decision, then route on it."""

import asyncio

import pytest

from durable_workflow.engine import ExecutionError


def approval_workflow(**approval):
    steps = [
        {"id": "start", "type": "start", "next": "review"},
        {
            "id": "review",
            "type": "approval",
            "prompt": "Refund $input.amount?",
            "context": {"amount": "$input.amount"},
            "approvers": ["finance"],
            "next": "approved",
            **approval,
        },
        {"id": "approved", "type": "end", "result": "approved"},
    ]
    for handler in ("on_reject", "on_timeout"):
        if handler in approval:
            steps.append({"id": approval[handler], "type": "end", "result": approval[handler]})
    return {"id": "refund", "steps": steps}


@pytest.mark.asyncio
async def test_requests_approval(make_engine, store):
    engine = make_engine(approval_workflow())

    result = await engine.run({"amount": 42})

    assert result.halted
    data = result.halt.data
    assert data["type"] == "approval"
    assert data["prompt"] == "Refund 42?"
    assert data["context"] == {"amount": 42}
    assert data["approvers"] == ["finance"]
    assert "requested_at" in data
    assert result.halt.prompt == "Refund 42?"

    execution = await store.load(result.execution_id)
    assert execution.recover_to == "review"


@pytest.mark.asyncio
async def test_approved_continues(make_engine, store):
    engine = make_engine(approval_workflow())
    halted = await engine.run({"amount": 42})

    result = await engine.resume(halted.execution_id, approved=True)

    assert result.completed
    assert result.output == "approved"
    execution = await store.load(result.execution_id)
    assert "approved" not in execution.ctx


@pytest.mark.asyncio
async def test_rejection_routes_to_handler(make_engine):
    engine = make_engine(approval_workflow(on_reject="rejected"))
    halted = await engine.run({"amount": 42})

    result = await engine.resume(halted.execution_id, approved=False)

    assert result.output == "rejected"


@pytest.mark.asyncio
async def test_rejection_without_handler_fails(make_engine, store):
    engine = make_engine(approval_workflow())
    halted = await engine.run({"amount": 42})

    with pytest.raises(ExecutionError, match="was rejected and has no 'on_reject' handler"):
        await engine.resume(halted.execution_id, approved=False)

    execution = await store.load(halted.execution_id)
    assert execution.status.value == "failed"


@pytest.mark.asyncio
async def test_resume_without_decision_asks_again(make_engine):
    engine = make_engine(approval_workflow())
    halted = await engine.run({"amount": 42})

    result = await engine.resume(halted.execution_id)

    assert result.halted
    assert result.halt.data["type"] == "approval"


@pytest.mark.asyncio
async def test_expired_approval_routes_to_timeout_handler(make_engine):
    engine = make_engine(approval_workflow(timeout=0.01, on_timeout="expired"))
    halted = await engine.run({"amount": 42})
    await asyncio.sleep(0.05)

    result = await engine.resume(halted.execution_id, approved=True)

    assert result.output == "expired"


@pytest.mark.asyncio
async def test_expired_approval_without_handler_fails(make_engine):
    engine = make_engine(approval_workflow(timeout=0.01))
    halted = await engine.run({"amount": 42})
    await asyncio.sleep(0.05)

    with pytest.raises(ExecutionError, match="timed out"):
        await engine.resume(halted.execution_id, approved=True)


@pytest.mark.asyncio
async def test_decision_within_timeout(make_engine):
    engine = make_engine(approval_workflow(timeout=60, on_timeout="expired"))
    halted = await engine.run({"amount": 42})

    result = await engine.resume(halted.execution_id, approved=True)

    assert result.output == "approved"
