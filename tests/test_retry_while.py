from __future__ import annotations
import pytest
from retryflow import (
    ConfigurationError,
    Cont,
    Halt,
    InvalidStepError,
    RetryOptions,
    constant_backoff,
    retry_while,
)


def test_accumulator_threads_until_halt(sleeps):
    attempts = []

    def step(acc):
        attempts.append(acc)
        return Cont(acc + 1) if acc < 3 else Halt(acc)

    out = retry_while({"with": constant_backoff(0).take(10)}, step, acc=0)
    assert out == 3
    assert attempts == [0, 1, 2, 3]


def test_accumulator_given_in_options(sleeps):
    out = retry_while({"acc": 10, "with": [1, 1]}, lambda acc: Cont(acc * 2))
    # three attempts: 10 -> 20 -> 40 -> 80
    assert out == 80
    assert sleeps == [1, 1]


def test_without_accumulator_returns_last_value(sleeps):
    calls = []

    def op():
        calls.append(1)
        return Cont("not finishing")

    assert retry_while({"with": [1, 1, 1, 1, 1]}, op) == "not finishing"
    assert len(calls) == 6


def test_halt_returns_immediately(sleeps):
    assert retry_while({"with": [1, 1]}, lambda: Halt("awesome")) == "awesome"
    assert sleeps == []


def test_retry_options_instance_is_accepted(sleeps):
    opts = RetryOptions(delays=[3, 4])
    assert retry_while(opts, lambda n: Cont(n + 1), acc=0) == 3
    assert sleeps == [3, 4]


def test_errors_are_not_caught(sleeps):
    def op():
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        retry_while({"with": [1, 1]}, op)
    assert sleeps == []


def test_invalid_step_is_rejected(sleeps):
    with pytest.raises(InvalidStepError):
        retry_while({"with": [1]}, lambda: ("cont", 1))


@pytest.mark.parametrize(
    "options, kwargs",
    [
        ({"with": [1], "atoms": ["error"]}, {}),
        ({"acc": 0}, {}),
        ({"with": [1], "acc": 0}, {"acc": 1}),
        ([1, 2], {}),
    ],
)
def test_bad_options_fail_before_any_attempt(options, kwargs):
    calls = []
    with pytest.raises(ConfigurationError):
        retry_while(options, lambda *a: calls.append(a) or Halt(1), **kwargs)
    assert calls == []
