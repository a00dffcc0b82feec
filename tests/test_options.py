from __future__ import annotations
import pytest
from retryflow import ConfigurationError, RetryOptions, Tag, retry
from retryflow.options import DEFAULT_RESCUE_ONLY


def _never_called():
    raise AssertionError("operation must not run")


@pytest.mark.parametrize(
    "options",
    [
        {},
        {"atoms": ["error"]},
        {"with": [1], "max_retries": 3},
        {"with": [1], "atoms": ["a"], "retry_on": ["b"]},
        {"with": [1], "rescue_only": [KeyboardInterrupt]},
        {"with": [1], "rescue_only": ["RuntimeError"]},
        {"with": 3},
        [("with", [1])],
        None,
    ],
)
def test_invalid_options_fail_before_any_attempt(options):
    with pytest.raises(ConfigurationError):
        retry(options, _never_called)


@pytest.mark.parametrize(
    "clauses",
    [
        {"operation": None},
        {"operation": "not callable"},
        {"operation": _never_called, "on_success": 1},
        {"operation": _never_called, "on_exhausted": "x"},
    ],
)
def test_invalid_clauses_fail_before_any_attempt(clauses):
    with pytest.raises(ConfigurationError):
        retry({"with": [1]}, **clauses)


def test_defaults():
    opts = RetryOptions.parse({"with": [1, 2]})
    assert opts.atoms == (Tag.ERROR,)
    assert opts.rescue_only == DEFAULT_RESCUE_ONLY == (RuntimeError,)
    assert list(opts.delays) == [1, 2]


def test_single_values_are_wrapped():
    opts = RetryOptions(delays=[1], atoms="timeout", rescue_only=KeyError)
    assert opts.atoms == ("timeout",)
    assert opts.rescue_only == (KeyError,)


def test_parse_passes_instances_through():
    opts = RetryOptions(delays=[1])
    assert RetryOptions.parse(opts) is opts


def test_configuration_error_is_a_value_error():
    with pytest.raises(ValueError):
        RetryOptions.parse({})
