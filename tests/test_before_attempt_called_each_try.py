from __future__ import annotations
import itertools
import pytest
from retryflow import retry, retry_async, wait


class Boom(RuntimeError):
    pass


def test_before_attempt_invoked_per_attempt(sleeps):
    calls = itertools.count()
    pre_calls = []

    def op():
        if next(calls) < 2:
            raise Boom("boom")
        return "ok"

    assert retry({"with": [1, 1, 1]}, op, before_attempt=pre_calls.append) == "ok"
    # 3 attempts total -> before_attempt called 3 times, 1-based
    assert pre_calls == [1, 2, 3]


@pytest.mark.asyncio
async def test_async_before_attempt_is_awaited(sleeps):
    pre_calls = []

    async def before_attempt(n):
        pre_calls.append(n)

    assert await retry_async({"with": [1, 1]}, lambda: "error", before_attempt=before_attempt) == "error"
    assert pre_calls == [1, 2, 3]


def test_wait_before_attempt(sleeps):
    pre_calls = []
    wait([1, 1], lambda: None, before_attempt=pre_calls.append)
    assert pre_calls == [1, 2, 3]
