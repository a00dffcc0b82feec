from __future__ import annotations
import dataclasses
import functools
import inspect
import logging
from typing import Any, Callable, Optional

from .core import retry, retry_async
from .delays import DelayStream
from .errors import ConfigurationError
from .options import DEFAULT_ATOMS, DEFAULT_RESCUE_ONLY, RetryOptions
from .types import OnExhaustedFn

logger = logging.getLogger(__name__)


def retrying(
    *,
    with_: Any,
    atoms: Any = DEFAULT_ATOMS,
    rescue_only: Any = DEFAULT_RESCUE_ONLY,
    on_exhausted: Optional[OnExhaustedFn] = None,
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Wrap a function so every call goes through `retry`.

    `with_` is a re-iterable delay stream (a `DelayStream`, a list, ...)
    or a zero-argument factory returning one; it is iterated afresh on
    each call so budgets such as `expiry` can be rebuilt per call by
    passing a factory. Options are validated once, at decoration time.

        @retrying(with_=lambda: exponential_backoff().cap(1_000).expiry(5_000))
        def fetch(url, timeout=3): ...

    Coroutine functions are wrapped with `retry_async`. Signature,
    defaults and metadata of the wrapped function are preserved.
    """
    if isinstance(with_, DelayStream) or not callable(with_):
        try:
            one_shot = iter(with_) is with_
        except TypeError:
            raise ConfigurationError(f"with_ must be a delay stream or a factory, got {with_!r}") from None
        if one_shot:
            raise ConfigurationError(
                "with_ is a one-shot iterator; pass a DelayStream, a list or a factory instead"
            )
        factory = None
        base = RetryOptions(delays=with_, atoms=atoms, rescue_only=rescue_only)
    else:
        factory = with_
        base = RetryOptions(delays=(), atoms=atoms, rescue_only=rescue_only)
    if on_exhausted is not None and not callable(on_exhausted):
        raise ConfigurationError(f'clause "on_exhausted" must be callable, got {on_exhausted!r}')

    def _options() -> RetryOptions:
        return dataclasses.replace(base, delays=factory()) if factory else base

    def decorate(fn: Callable[..., Any]) -> Callable[..., Any]:
        logger.debug("wrapping %s with %r", getattr(fn, "__qualname__", fn), base)

        if inspect.iscoroutinefunction(fn):

            @functools.wraps(fn)
            async def async_wrapper(*args, **kwargs):
                return await retry_async(
                    _options(), lambda: fn(*args, **kwargs), on_exhausted=on_exhausted
                )

            return async_wrapper

        @functools.wraps(fn)
        def wrapper(*args, **kwargs):
            return retry(_options(), lambda: fn(*args, **kwargs), on_exhausted=on_exhausted)

        return wrapper

    return decorate
