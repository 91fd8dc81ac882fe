"""Value helpers: normalization, lenient numbers and key lookup."""

from datetime import UTC, date, datetime

import pytest

from durable_workflow.engine.utils import deep_normalize, fetch, to_float


def test_deep_normalize_stringifies_keys_and_lists_tuples():
    assert deep_normalize({1: (2, {3: "x"})}) == {"1": [2, {"3": "x"}]}


def test_deep_normalize_leaves_scalars():
    assert deep_normalize("text") == "text"
    assert deep_normalize(None) is None


def test_deep_normalize_writes_dates_as_iso_strings():
    moment = datetime(2026, 3, 4, 5, 6, 7, tzinfo=UTC)

    assert deep_normalize({"at": moment, "on": [date(2026, 3, 4)]}) == {
        "at": "2026-03-04T05:06:07+00:00",
        "on": ["2026-03-04"],
    }


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (None, 0.0),
        (True, 1.0),
        (False, 0.0),
        (3, 3.0),
        (2.5, 2.5),
        ("42", 42.0),
        (" -1.5e2kg", -150.0),
        ("12abc", 12.0),
        (".5", 0.5),
        ("abc", 0.0),
        ([1], 0.0),
    ],
)
def test_to_float(value, expected):
    assert to_float(value) == expected


def test_fetch_accepts_string_and_integer_keys():
    assert fetch({"1": "a"}, 1) == "a"
    assert fetch({1: "b"}, "1") == "b"
    assert fetch({"k": "c"}, "k") == "c"


def test_fetch_default():
    assert fetch({}, "missing", "fallback") == "fallback"
    assert fetch(["not", "a", "mapping"], 0) is None
