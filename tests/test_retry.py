from __future__ import annotations
import itertools
import logging
import time
import pytest
from retryflow import Tag, cap, constant_backoff, linear_backoff, retry


class Boom(RuntimeError):
    pass


class Fatal(Exception):
    pass


def test_retries_then_succeeds():
    calls = itertools.count()

    def sometimes():
        i = next(calls)
        if i < 2:
            raise Boom("boom")
        return 21

    start = time.monotonic()
    out = retry({"with": [20, 30, 40]}, sometimes, lambda v: v * 2)
    elapsed = time.monotonic() - start

    assert out == 42
    assert next(calls) == 3
    assert elapsed >= 0.045


def test_success_stops_consuming_delays(sleeps):
    assert retry({"with": [5, 6, 7]}, lambda: "done") == "done"
    assert sleeps == []


def test_first_attempt_is_immediate_then_stream_order(sleeps):
    def always():
        return Tag.ERROR

    assert retry({"with": linear_backoff(10, 5).take(3)}, always) == Tag.ERROR
    assert sleeps == [10, 15, 20]


def test_non_retryable_error_propagates_on_first_attempt():
    attempts = []
    exhausted = []

    def op():
        attempts.append(1)
        raise Fatal("not transient")

    start = time.monotonic()
    with pytest.raises(Fatal):
        retry({"with": constant_backoff(1_000).take(5)}, op, on_exhausted=exhausted.append)

    assert time.monotonic() - start < 0.5
    assert len(attempts) == 1
    assert exhausted == []


def test_sentinel_tuple_retried_until_exhausted(sleeps):
    attempts = []
    seen = []

    def op():
        attempts.append(1)
        return ("error", "still broken")

    out = retry({"with": [1, 2, 3]}, op, on_exhausted=lambda v: seen.append(v) or "gave up")

    assert out == "gave up"
    assert len(attempts) == 4
    assert seen == [("error", "still broken")]


def test_exhausted_sentinel_returned_as_is_by_default(sleeps):
    assert retry({"with": [1, 1]}, lambda: "error") == "error"
    assert retry({"with": [1, 1]}, lambda: (Tag.ERROR, 3)) == (Tag.ERROR, 3)


def test_exhausted_error_is_reraised_unchanged(sleeps):
    raised = []

    def op():
        exc = Boom(f"boom {len(raised)}")
        raised.append(exc)
        raise exc

    with pytest.raises(Boom) as excinfo:
        retry({"with": [1, 1, 1]}, op)

    assert len(raised) == 4
    assert excinfo.value is raised[-1]


def test_on_exhausted_receives_last_error(sleeps):
    def op():
        raise Boom("nope")

    out = retry({"with": [1]}, op, on_exhausted=lambda e: {"failed": str(e)})
    assert out == {"failed": "nope"}


def test_other_tags_are_successes(sleeps):
    assert retry({"with": [1]}, lambda: ("ok", 1)) == ("ok", 1)
    assert retry({"with": [1]}, lambda: ("error", 1, 2)) == ("error", 1, 2)
    assert sleeps == []


def test_custom_atoms_and_predicates(sleeps):
    results = iter([None, "timeout", 0, "later"])
    out = retry(
        {"with": [1, 1, 1, 1], "atoms": ["timeout", lambda v: v is None, False]},
        lambda: next(results),
    )
    # 0 is not False, so the third attempt succeeds
    assert out == 0
    assert sleeps == [1, 1]


def test_rescue_only_predicate(sleeps):
    errors = iter([ValueError("transient glitch"), ValueError("bad input")])

    def op():
        raise next(errors)

    with pytest.raises(ValueError, match="bad input"):
        retry({"with": [1, 1, 1], "rescue_only": [lambda e: "transient" in str(e)]}, op)
    assert sleeps == [1]


def test_aliases_for_atoms_and_rescue_only(sleeps):
    calls = itertools.count()

    def op():
        if next(calls) == 0:
            raise KeyError("k")
        return "retry-me"

    out = retry(
        {"with": [1, 1], "retryable_errors": (KeyError,), "retry_on": ("retry-me",)},
        op,
        on_exhausted=lambda v: f"exhausted:{v}",
    )
    assert out == "exhausted:retry-me"


def test_base_exceptions_are_never_rescued(sleeps):
    class Stop(BaseException):
        pass

    def op():
        raise Stop()

    with pytest.raises(Stop):
        retry({"with": [1, 1], "rescue_only": [lambda e: True]}, op)
    assert sleeps == []


@pytest.mark.slow
def test_linear_delays_add_up_to_elapsed_time():
    def op():
        raise Boom("always")

    start = time.monotonic()
    with pytest.raises(Boom):
        retry({"with": linear_backoff(20, 10).take(3)}, op)
    assert time.monotonic() - start >= 0.085


def test_negative_delays_do_not_reach_sleep():
    calls = []

    def op():
        calls.append(1)
        return Tag.ERROR

    assert retry({"with": [-5, -1]}, op) is Tag.ERROR
    assert len(calls) == 3


def test_capped_negative_delays_are_waited_as_zero(sleeps):
    assert retry({"with": cap([-5, 7], 10)}, lambda: "error") == "error"
    assert sleeps == [7]


def test_debug_log_names_each_delay_and_attempt(sleeps, caplog):
    caplog.set_level(logging.DEBUG, logger="retryflow")
    retry({"with": [25, 40]}, lambda: "error")

    messages = [r.getMessage() for r in caplog.records]
    assert "sleeping 25ms before attempt 2" in messages
    assert "sleeping 40ms before attempt 3" in messages
    assert sleeps == [25, 40]
