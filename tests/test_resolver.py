"""Reference resolution against workflow state."""

from datetime import datetime

import pytest

from durable_workflow.engine import Resolver, State


@pytest.fixture
def state():
    return State(
        execution_id="exec-1",
        workflow_id="wf",
        input={"user": {"name": "Ada", "tags": ["a", "b"]}, "count": 3},
        ctx={"items": [{"id": 7}, {"id": 8}], "flag": True, "empty": None},
        history=["start", "load"],
    )


def test_whole_reference_keeps_type(state):
    assert Resolver.resolve(state, "$input.count") == 3
    assert Resolver.resolve(state, "$items.1.id") == 8
    assert Resolver.resolve(state, "$flag") is True


def test_interpolation_stringifies(state):
    assert Resolver.resolve(state, "Hello $input.user.name ($input.count)") == "Hello Ada (3)"
    assert Resolver.resolve(state, "flag=$flag, none=$empty.") == "flag=true, none=."


def test_nested_structures(state):
    value = {"ids": ["$items.0.id", "$items.1.id"], "name": "$input.user.name", "n": 1}

    assert Resolver.resolve(state, value) == {"ids": [7, 8], "name": "Ada", "n": 1}


def test_missing_paths_resolve_to_none(state):
    assert Resolver.resolve(state, "$nothing") is None
    assert Resolver.resolve(state, "$input.user.age") is None
    assert Resolver.resolve(state, "$items.9.id") is None
    assert Resolver.resolve(state, "$input.count.digits") is None


def test_history_and_now(state):
    assert Resolver.resolve(state, "$history") == ["start", "load"]
    assert isinstance(Resolver.resolve(state, "$now"), datetime)
    assert isinstance(Resolver.resolve(state, "$now.year"), int)


def test_private_and_callable_attributes_are_hidden(state):
    assert Resolver.resolve(state, "$now.isoformat") is None
    assert Resolver.resolve(state, "$now._private") is None


def test_non_references_unchanged(state):
    assert Resolver.resolve(state, "costs 5$") == "costs 5$"
    assert Resolver.resolve(state, 12) == 12
