"""Loop step: foreach and while modes, bounds, halts and nested entries."""

import pytest
from conftest import linear

from durable_workflow.engine import EngineSettings, EntryAction, ExecutionError


def foreach_workflow(**loop):
    return linear(
        "foreach-flow",
        {"id": "start", "type": "start"},
        {
            "id": "each",
            "type": "loop",
            "over": "$input.items",
            "do": [
                {"id": "double", "type": "call", "service": "math", "method": "double", "input": "$item"}
            ],
            "output": "doubled",
            **loop,
        },
        {"id": "finish", "type": "end", "result": "$doubled"},
    )


@pytest.mark.asyncio
async def test_foreach_collects_results(make_engine, math_service):
    engine = make_engine(foreach_workflow())

    result = await engine.run({"items": [1, 2, 3]})

    assert result.output == [2, 4, 6]
    assert math_service.calls == [1, 2, 3]


@pytest.mark.asyncio
async def test_foreach_over_max_fails_before_first_iteration(make_engine, math_service):
    engine = make_engine(foreach_workflow(max=2))

    with pytest.raises(ExecutionError, match="collection size 3 exceeds max \\(2\\)"):
        await engine.run({"items": [1, 2, 3]})

    assert math_service.calls == []


@pytest.mark.asyncio
async def test_default_bound_comes_from_settings(make_engine, math_service):
    engine = make_engine(foreach_workflow(), settings=EngineSettings(default_loop_max=2))

    with pytest.raises(ExecutionError, match="exceeds max"):
        await engine.run({"items": [1, 2, 3]})

    assert math_service.calls == []


@pytest.mark.asyncio
async def test_foreach_requires_array(make_engine):
    engine = make_engine(foreach_workflow())

    with pytest.raises(ExecutionError, match="must resolve to an array"):
        await engine.run({"items": "nope"})


@pytest.mark.asyncio
async def test_foreach_empty_collection(make_engine):
    engine = make_engine(foreach_workflow())

    result = await engine.run({"items": []})

    assert result.output == []


@pytest.mark.asyncio
async def test_custom_loop_variables_are_cleaned_up(make_engine, store):
    engine = make_engine(
        linear(
            "named-vars",
            {"id": "start", "type": "start"},
            {
                "id": "each",
                "type": "loop",
                "over": "$input.items",
                "as": "order",
                "index_as": "pos",
                "do": [{"id": "remember", "type": "assign", "set": {"last": "$order", "at": "$pos"}}],
            },
            {"id": "finish", "type": "end", "result": {"last": "$last", "at": "$at"}},
        )
    )

    result = await engine.run({"items": ["a", "b"]})

    assert result.output == {"last": "b", "at": 1}
    execution = await store.load(result.execution_id)
    assert "order" not in execution.ctx
    assert "pos" not in execution.ctx


@pytest.mark.asyncio
async def test_body_entries_are_namespaced(make_engine, store):
    engine = make_engine(foreach_workflow())

    result = await engine.run({"items": [1, 2]})
    entries = await store.entries(result.execution_id)

    nested = [e for e in entries if e.step_id == "each:double"]
    assert len(nested) == 2
    assert [e.output for e in nested] == [2, 4]
    assert all(e.action is EntryAction.COMPLETED for e in nested)


# =============================================================================
# While
# =============================================================================


def while_workflow(condition, body, result="$counter", **loop):
    return {
        "id": "while-flow",
        "steps": [
            {"id": "start", "type": "start", "next": "repeat"},
            {
                "id": "repeat",
                "type": "loop",
                "while": condition,
                "do": body,
                "next": "finish",
                **loop,
            },
            {"id": "finish", "type": "end", "result": result},
            {"id": "gave_up", "type": "end", "result": "exhausted"},
        ],
    }


COUNT_BODY = [{"id": "count", "type": "assign", "set": {"counter": "$iteration"}}]


@pytest.mark.asyncio
async def test_while_runs_until_condition_fails(make_engine, store):
    engine = make_engine(
        while_workflow(
            {"field": "counter", "op": "lt", "value": 3},
            COUNT_BODY,
            on_exhausted="gave_up",
        )
    )

    result = await engine.run()

    assert result.output == 3
    execution = await store.load(result.execution_id)
    assert "iteration" not in execution.ctx


@pytest.mark.asyncio
async def test_while_exhausted_routes_to_handler(make_engine):
    engine = make_engine(
        while_workflow(
            {"field": "input.forever", "op": "truthy"},
            COUNT_BODY,
            max=2,
            on_exhausted="gave_up",
        )
    )

    result = await engine.run({"forever": True})

    assert result.output == "exhausted"


@pytest.mark.asyncio
async def test_while_exhausted_without_handler(make_engine):
    engine = make_engine(
        {
            "id": "no-handler",
            "steps": [
                {"id": "start", "type": "start", "next": "repeat"},
                {
                    "id": "repeat",
                    "type": "loop",
                    "while": {"field": "input.forever", "op": "truthy"},
                    "do": COUNT_BODY,
                    "max": 2,
                    "next": "finish",
                },
                {"id": "finish", "type": "end"},
            ],
        }
    )

    with pytest.raises(ExecutionError, match="exceeded max iterations \\(2\\)"):
        await engine.run({"forever": True})


@pytest.mark.asyncio
async def test_break_loop_stops_iteration(make_engine):
    engine = make_engine(
        while_workflow(
            {"field": "input.forever", "op": "truthy"},
            [
                {"id": "count", "type": "assign", "set": {"counter": "$iteration", "break_loop": True}},
            ],
            max=5,
            on_exhausted="gave_up",
        )
    )

    result = await engine.run({"forever": True})

    assert result.output == 1


# =============================================================================
# Halts inside loops
# =============================================================================


@pytest.mark.asyncio
async def test_halt_in_foreach_body_halts_loop(make_engine, store):
    engine = make_engine(
        linear(
            "halting-loop",
            {"id": "start", "type": "start"},
            {
                "id": "each",
                "type": "loop",
                "over": "$input.items",
                "do": [{"id": "pause", "type": "halt", "reason": "check $item"}],
            },
            {"id": "finish", "type": "end"},
        )
    )

    result = await engine.run({"items": [1, 2]})

    assert result.halted
    assert result.halt.data["reason"] == "check 1"
    assert result.halt.prompt == "check 1"
    execution = await store.load(result.execution_id)
    assert execution.recover_to == "each"


@pytest.mark.asyncio
async def test_halt_in_while_body_halts_loop(make_engine):
    engine = make_engine(
        while_workflow(
            {"field": "input.forever", "op": "truthy"},
            [{"id": "pause", "type": "halt", "reason": "iteration $iteration"}],
            result="done",
            on_exhausted="gave_up",
        )
    )

    result = await engine.run({"forever": True})

    assert result.halted
    assert result.halt.data["reason"] == "iteration 1"


@pytest.mark.asyncio
async def test_halt_in_body_keeps_workflow_resume_step(make_engine, store):
    engine = make_engine(
        linear(
            "resume-target",
            {"id": "start", "type": "start"},
            {
                "id": "each",
                "type": "loop",
                "over": "$input.items",
                "do": [{"id": "pause", "type": "halt", "resume_step": "finish"}],
            },
            {"id": "finish", "type": "end", "result": "done"},
        )
    )

    halted = await engine.run({"items": [1]})
    execution = await store.load(halted.execution_id)
    assert execution.recover_to == "finish"

    result = await engine.resume(halted.execution_id)
    assert result.output == "done"


@pytest.mark.asyncio
async def test_resumed_foreach_continues_at_halted_item(make_engine, store, math_service):
    engine = make_engine(
        foreach_workflow(
            do=[
                {"id": "pause", "type": "halt", "reason": "check $item"},
                {"id": "double", "type": "call", "service": "math", "method": "double", "input": "$item"},
            ]
        )
    )

    result = await engine.run({"items": [1, 2, 3]})
    reasons = []
    while result.halted:
        reasons.append(result.halt.data["reason"])
        result = await engine.resume(result.execution_id)

    assert reasons == ["check 1", "check 2", "check 3"]
    assert result.output == [2, 4, 6]
    assert math_service.calls == [1, 2, 3]
    execution = await store.load(result.execution_id)
    assert "item" not in execution.ctx
    assert execution.checkpoint is None


@pytest.mark.asyncio
async def test_halted_loop_saves_its_position(make_engine, store):
    engine = make_engine(
        foreach_workflow(
            do=[
                {"id": "double", "type": "call", "service": "math", "method": "double", "input": "$item"},
                {"id": "pause", "type": "halt"},
            ]
        )
    )

    halted = await engine.run({"items": [5, 6]})
    resumed = await engine.resume(halted.execution_id)

    execution = await store.load(resumed.execution_id)
    assert execution.recover_to == "each"
    assert execution.checkpoint["step_id"] == "each"
    assert execution.checkpoint["index"] == 1
    assert execution.checkpoint["results"] == [10]
    assert execution.checkpoint["position"] == 2

    result = await engine.resume(resumed.execution_id)
    assert result.output == [10, 12]


@pytest.mark.asyncio
async def test_approval_in_foreach_body_asks_once_per_item(make_engine, math_service):
    engine = make_engine(
        foreach_workflow(
            do=[
                {"id": "review", "type": "approval", "prompt": "Ship $item?"},
                {"id": "double", "type": "call", "service": "math", "method": "double", "input": "$item"},
            ]
        )
    )

    result = await engine.run({"items": [1, 2]})
    prompts = []
    while result.halted:
        prompts.append(result.halt.prompt)
        result = await engine.resume(result.execution_id, approved=True)

    assert prompts == ["Ship 1?", "Ship 2?"]
    assert result.output == [2, 4]
    assert math_service.calls == [1, 2]


@pytest.mark.asyncio
async def test_resumed_while_loop_runs_to_completion(make_engine, store):
    engine = make_engine(
        while_workflow(
            {"field": "counter", "op": "lt", "value": 3},
            [*COUNT_BODY, {"id": "pause", "type": "halt", "reason": "iteration $iteration"}],
            on_exhausted="gave_up",
        )
    )

    result = await engine.run()
    reasons = []
    while result.halted:
        reasons.append(result.halt.data["reason"])
        result = await engine.resume(result.execution_id)

    assert reasons == ["iteration 1", "iteration 2", "iteration 3"]
    assert result.output == 3
    execution = await store.load(result.execution_id)
    assert "iteration" not in execution.ctx


@pytest.mark.asyncio
async def test_resumed_loop_from_fresh_engine(make_engine, math_service):
    definition = foreach_workflow(
        do=[
            {"id": "pause", "type": "halt"},
            {"id": "double", "type": "call", "service": "math", "method": "double", "input": "$item"},
        ]
    )

    halted = await make_engine(definition).run({"items": [1, 2]})
    halted = await make_engine(definition).resume(halted.execution_id)
    result = await make_engine(definition).resume(halted.execution_id)

    assert result.output == [2, 4]


@pytest.mark.asyncio
async def test_halt_in_nested_loop_resumes_both_levels(make_engine, math_service):
    engine = make_engine(
        linear(
            "grid",
            {"id": "start", "type": "start"},
            {
                "id": "rows",
                "type": "loop",
                "over": "$input.rows",
                "as": "row",
                "do": [
                    {
                        "id": "cells",
                        "type": "loop",
                        "over": "$row",
                        "as": "n",
                        "do": [
                            {"id": "pause", "type": "halt", "reason": "cell $n"},
                            {"id": "double", "type": "call", "service": "math", "method": "double", "input": "$n"},
                        ],
                    }
                ],
                "output": "grid",
            },
            {"id": "finish", "type": "end", "result": "$grid"},
        )
    )

    result = await engine.run({"rows": [[1, 2], [3]]})
    reasons = []
    while result.halted:
        reasons.append(result.halt.data["reason"])
        result = await engine.resume(result.execution_id)

    assert reasons == ["cell 1", "cell 2", "cell 3"]
    assert result.output == [[2, 4], [6]]
    assert math_service.calls == [1, 2, 3]
