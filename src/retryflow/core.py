from __future__ import annotations
import asyncio
import inspect
import itertools
import logging
import time
from contextlib import nullcontext
from typing import Any, Callable, Iterable, Iterator, Optional

from .classify import (
    Outcome,
    RetryableError,
    Success,
    classify_result,
    is_falsy_sentinel,
    matches_error,
)
from .delays import DelayStream
from .errors import ConfigurationError, InvalidStepError
from .options import MISSING, RetryOptions, check_clauses, parse_while_options
from .types import (
    AttemptScope,
    AttemptScopeAsync,
    BeforeAttemptFn,
    Cont,
    Halt,
    OnExhaustedFn,
    OnSuccessFn,
    Tag,
)

logger = logging.getLogger(__name__)


def _sleep(ms: int) -> None:
    time.sleep(max(0, ms) / 1000)


async def _sleep_async(ms: int) -> None:
    await asyncio.sleep(max(0, ms) / 1000)


async def _resolve(value: Any) -> Any:
    return await value if inspect.isawaitable(value) else value


class _NullAsync:
    async def __aenter__(self):
        return None

    async def __aexit__(self, *a):
        return False


def _delays_from(delays: Iterable[Any]) -> Iterator[tuple[int, Any]]:
    # The first attempt runs immediately.
    return enumerate(itertools.chain((0,), delays), start=1)


def _unpack_step(step: Any) -> tuple[Any, bool]:
    if isinstance(step, Halt):
        return step.value, True
    if isinstance(step, Cont):
        return step.value, False
    raise InvalidStepError(f"retry_while operations must return Cont(...) or Halt(...), got {step!r}")


def _log_pause(attempt: int, delay: Any) -> None:
    logger.debug("sleeping %sms before attempt %d", max(0, delay), attempt)


def _log_retryable(attempt: int, outcome: Outcome) -> None:
    if isinstance(outcome, RetryableError):
        logger.debug("attempt %d raised retryable %r", attempt, outcome.error)
    else:
        logger.debug("attempt %d returned retryable %r", attempt, outcome.value)


def _exhausted(outcome: Outcome, on_exhausted: Optional[OnExhaustedFn]) -> Any:
    logger.debug("delays exhausted, giving up with %r", outcome)
    if isinstance(outcome, RetryableError):
        if on_exhausted is None:
            raise outcome.error
        return on_exhausted(outcome.error)
    return on_exhausted(outcome.value) if on_exhausted else outcome.value


# --- Blocking ----------------------------------------------------------------


def retry(
    options: Any,
    operation: Callable[[], Any],
    on_success: Optional[OnSuccessFn] = None,
    on_exhausted: Optional[OnExhaustedFn] = None,
    *,
    before_attempt: Optional[BeforeAttemptFn] = None,
    attempt_scope: Optional[AttemptScope] = None,
) -> Any:
    """Call `operation` until it succeeds or the delay stream runs out.

    Raised errors matching ``rescue_only`` and returned values matching
    ``atoms`` are retried after the next delay; any other error propagates
    untouched. A success goes through `on_success` (identity by default).
    When the delays are exhausted the last failure goes through
    `on_exhausted`; by default a caught error is re-raised and a failing
    value is returned as-is.
    """
    opts = RetryOptions.parse(options)
    check_clauses(
        operation=operation,
        on_success=on_success,
        on_exhausted=on_exhausted,
        before_attempt=before_attempt,
        attempt_scope=attempt_scope,
    )

    outcome: Optional[Outcome] = None
    for attempt, delay in _delays_from(opts.delays):
        if delay:
            _log_pause(attempt, delay)
            _sleep(delay)
        if before_attempt:
            before_attempt(attempt)
        try:
            with attempt_scope() if attempt_scope else nullcontext():
                value = operation()
        except Exception as exc:
            if not matches_error(exc, opts.rescue_only):
                raise
            outcome = RetryableError(exc)
        else:
            outcome = classify_result(value, opts.atoms)
            if isinstance(outcome, Success):
                return on_success(outcome.value) if on_success else outcome.value
        _log_retryable(attempt, outcome)

    return _exhausted(outcome, on_exhausted)


def retry_while(options: Any, operation: Callable[..., Any], acc: Any = MISSING) -> Any:
    """Call `operation` until it returns ``Halt(value)`` or the delays run out.

    With an accumulator (``acc=`` or ``{"acc": ...}``) the operation
    receives the current value and returns ``Cont(next_acc)`` or
    ``Halt(result)``. Errors are never caught.
    """
    delays, acc = parse_while_options(options, acc)
    check_clauses(operation=operation)
    threaded = acc is not MISSING

    result = acc if threaded else None
    for attempt, delay in _delays_from(delays):
        if delay:
            _log_pause(attempt, delay)
            _sleep(delay)
        step = operation(result) if threaded else operation()
        result, halted = _unpack_step(step)
        if halted:
            return result
        logger.debug("attempt %d asked to continue", attempt)
    return result


def wait(
    delays: Iterable[Any],
    operation: Callable[[], Any],
    on_success: Optional[OnSuccessFn] = None,
    on_exhausted: Optional[OnExhaustedFn] = None,
    *,
    before_attempt: Optional[BeforeAttemptFn] = None,
) -> Any:
    """Poll `operation` until it returns something other than False/None.

    Defaults: ``(Tag.OK, value)`` on success, ``(Tag.ERROR, last)`` when
    the delays run out.
    """
    stream = DelayStream.of(delays)
    check_clauses(
        operation=operation,
        on_success=on_success,
        on_exhausted=on_exhausted,
        before_attempt=before_attempt,
    )

    value = None
    for attempt, delay in _delays_from(stream):
        if delay:
            _log_pause(attempt, delay)
            _sleep(delay)
        if before_attempt:
            before_attempt(attempt)
        value = operation()
        if not is_falsy_sentinel(value):
            return on_success(value) if on_success else (Tag.OK, value)
        logger.debug("attempt %d still waiting (%r)", attempt, value)

    logger.debug("delays exhausted while waiting")
    return on_exhausted(value) if on_exhausted else (Tag.ERROR, value)


# --- asyncio -----------------------------------------------------------------


async def retry_async(
    options: Any,
    operation: Callable[[], Any],
    on_success: Optional[OnSuccessFn] = None,
    on_exhausted: Optional[OnExhaustedFn] = None,
    *,
    before_attempt: Optional[BeforeAttemptFn] = None,
    attempt_scope: Optional[AttemptScope] = None,
    attempt_scope_async: Optional[AttemptScopeAsync] = None,
) -> Any:
    """asyncio twin of `retry`; waits with ``asyncio.sleep``.

    The operation, hooks and continuations may be plain callables or
    return awaitables.
    """
    opts = RetryOptions.parse(options)
    check_clauses(
        operation=operation,
        on_success=on_success,
        on_exhausted=on_exhausted,
        before_attempt=before_attempt,
        attempt_scope=attempt_scope,
        attempt_scope_async=attempt_scope_async,
    )
    if attempt_scope and attempt_scope_async:
        raise ConfigurationError("pass either attempt_scope or attempt_scope_async, not both")

    async def _once():
        if attempt_scope_async:
            async with attempt_scope_async():
                return await _resolve(operation())
        with attempt_scope() if attempt_scope else nullcontext():
            return await _resolve(operation())

    outcome: Optional[Outcome] = None
    for attempt, delay in _delays_from(opts.delays):
        if delay:
            _log_pause(attempt, delay)
            await _sleep_async(delay)
        if before_attempt:
            await _resolve(before_attempt(attempt))
        try:
            value = await _once()
        except Exception as exc:
            if not matches_error(exc, opts.rescue_only):
                raise
            outcome = RetryableError(exc)
        else:
            outcome = classify_result(value, opts.atoms)
            if isinstance(outcome, Success):
                return await _resolve(on_success(outcome.value)) if on_success else outcome.value
        _log_retryable(attempt, outcome)

    return await _resolve(_exhausted(outcome, on_exhausted))


async def retry_while_async(options: Any, operation: Callable[..., Any], acc: Any = MISSING) -> Any:
    delays, acc = parse_while_options(options, acc)
    check_clauses(operation=operation)
    threaded = acc is not MISSING

    result = acc if threaded else None
    for attempt, delay in _delays_from(delays):
        if delay:
            _log_pause(attempt, delay)
            await _sleep_async(delay)
        step = await _resolve(operation(result) if threaded else operation())
        result, halted = _unpack_step(step)
        if halted:
            return result
        logger.debug("attempt %d asked to continue", attempt)
    return result


async def wait_async(
    delays: Iterable[Any],
    operation: Callable[[], Any],
    on_success: Optional[OnSuccessFn] = None,
    on_exhausted: Optional[OnExhaustedFn] = None,
    *,
    before_attempt: Optional[BeforeAttemptFn] = None,
) -> Any:
    stream = DelayStream.of(delays)
    check_clauses(
        operation=operation,
        on_success=on_success,
        on_exhausted=on_exhausted,
        before_attempt=before_attempt,
    )

    value = None
    for attempt, delay in _delays_from(stream):
        if delay:
            _log_pause(attempt, delay)
            await _sleep_async(delay)
        if before_attempt:
            await _resolve(before_attempt(attempt))
        value = await _resolve(operation())
        if not is_falsy_sentinel(value):
            return await _resolve(on_success(value)) if on_success else (Tag.OK, value)
        logger.debug("attempt %d still waiting (%r)", attempt, value)

    logger.debug("delays exhausted while waiting")
    return await _resolve(on_exhausted(value)) if on_exhausted else (Tag.ERROR, value)
