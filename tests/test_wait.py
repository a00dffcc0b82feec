from __future__ import annotations
import pytest
from retryflow import ConfigurationError, Tag, constant_backoff, wait


def test_false_until_exhausted_uses_on_exhausted(sleeps):
    calls = []

    def op():
        calls.append(1)
        return False

    out = wait(constant_backoff(5).take(2), op, on_exhausted=lambda v: ("still waiting", v))
    assert out == ("still waiting", False)
    assert len(calls) == 3
    assert sleeps == [5, 5]


def test_default_results_are_tagged(sleeps):
    assert wait([1, 1], lambda: None) == (Tag.ERROR, None)
    assert wait([1, 1], lambda: "there") == (Tag.OK, "there")
    assert wait([1], lambda: None) == ("error", None)


def test_truthy_first_attempt_skips_remaining_delays(sleeps):
    out = wait(constant_backoff(1_000), lambda: {"arrived": True}, on_success=lambda v: v["arrived"])
    assert out is True
    assert sleeps == []


def test_zero_and_empty_values_end_the_wait(sleeps):
    assert wait([1], lambda: 0) == (Tag.OK, 0)
    assert wait([1], lambda: []) == (Tag.OK, [])


def test_polls_until_truthy(sleeps):
    values = iter([None, False, "ready"])
    assert wait([1, 2, 3, 4], lambda: next(values)) == (Tag.OK, "ready")
    assert sleeps == [1, 2]


def test_errors_propagate(sleeps):
    def op():
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        wait([1, 1], op)
    assert sleeps == []


def test_non_iterable_delays_rejected():
    with pytest.raises(ConfigurationError):
        wait(5, lambda: True)
