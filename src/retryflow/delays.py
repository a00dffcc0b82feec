"""
Delay streams: lazy sequences of waits (in milliseconds) that drive the
retry loop.

Constructors produce infinite streams; combinators transform or bound
them. Everything here is pure apart from `jitter`/`randomize` (which use
the `random` module) and `expiry` (which reads a monotonic clock).

    exponential_backoff().randomize().cap(1_000).expiry(10_000)
    linear_backoff(10, 2).cap(1_000).take(10)
    cycle([500]).take(10)

Any plain iterable of numbers is accepted wherever a stream is expected.
"""
from __future__ import annotations

import itertools
import math
import random
import sys
import time
import warnings
from typing import Any, Callable, Iterable, Iterator, Optional

from .errors import ConfigurationError


def _now_ms() -> int:
    return time.monotonic_ns() // 1_000_000


def _as_delay(d: Any) -> Any:
    # Internal state stays exact; only the emitted value is rounded.
    if isinstance(d, int) or not math.isfinite(d):
        return d
    return round(d)


def _require(name: str, value: Any, *, positive: bool = False) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigurationError(f"{name} must be a number, got {value!r}")
    if positive and not value > 0:
        raise ConfigurationError(f"{name} must be > 0, got {value!r}")
    if value < 0:
        raise ConfigurationError(f"{name} must be >= 0, got {value!r}")


class DelayStream:
    """Re-iterable delay sequence built from an iterator factory.

    Every ``iter()`` starts a fresh pass over the sequence. State that is
    fixed at construction time (the deadline of `expiry`) is shared by all
    passes.
    """

    __slots__ = ("_factory", "_label")

    def __init__(self, factory: Callable[[], Iterator[Any]], label: Optional[str] = None):
        if not callable(factory):
            raise ConfigurationError(f"DelayStream needs an iterator factory, got {factory!r}")
        self._factory = factory
        self._label = label or "DelayStream"

    @classmethod
    def of(cls, delays: Iterable[Any]) -> "DelayStream":
        if isinstance(delays, DelayStream):
            return delays
        try:
            iter(delays)
        except TypeError:
            raise ConfigurationError(f"delays must be iterable, got {delays!r}") from None
        return cls(lambda: iter(delays), label=type(delays).__name__)

    def __iter__(self) -> Iterator[Any]:
        return iter(self._factory())

    def __repr__(self) -> str:
        return f"<DelayStream {self._label}>"

    # Fluent forms of the module-level combinators

    def jitter(self) -> "DelayStream":
        return jitter(self)

    def randomize(self, proportion: float = 0.1) -> "DelayStream":
        return randomize(self, proportion)

    def cap(self, max_delay: int) -> "DelayStream":
        return cap(self, max_delay)

    def expiry(self, time_budget: int, min_delay: int = 0) -> "DelayStream":
        return expiry(self, time_budget, min_delay)

    def take(self, n: int) -> "DelayStream":
        return take(self, n)

    def stop_when(self, condition: Callable[[], Any]) -> "DelayStream":
        return stop_when(self, condition)


def _derive(source: DelayStream, factory: Callable[[], Iterator[Any]], step: str) -> DelayStream:
    return DelayStream(factory, label=f"{source._label} | {step}")


# --- Constructors ------------------------------------------------------------


def constant_backoff(delay: int = 100) -> DelayStream:
    """Every element is `delay`."""
    _require("delay", delay)
    return DelayStream(lambda: itertools.repeat(delay), label=f"constant_backoff({delay})")


def linear_backoff(initial_delay: int, factor: int) -> DelayStream:
    """Element i is ``initial_delay + i * factor``."""
    _require("initial_delay", initial_delay)
    _require("factor", factor)

    def gen() -> Iterator[Any]:
        for i in itertools.count():
            yield _as_delay(initial_delay + i * factor)

    return DelayStream(gen, label=f"linear_backoff({initial_delay}, {factor})")


def exponential_backoff(initial_delay: int = 10, factor: float = 2) -> DelayStream:
    """Element i is ``initial_delay * factor ** i``.

    Each element is derived from the previous one by a single
    multiplication, so integer inputs stay exact for any length.
    """
    _require("initial_delay", initial_delay)
    _require("factor", factor, positive=True)

    if isinstance(initial_delay, int) and isinstance(factor, float) and factor.is_integer():
        factor = int(factor)

    def gen() -> Iterator[Any]:
        d = initial_delay
        while True:
            yield _as_delay(d)
            d = d * factor

    return DelayStream(gen, label=f"exponential_backoff({initial_delay}, {factor})")


def cycle(values: Iterable[int]) -> DelayStream:
    """Repeat `values` forever (empty input gives an empty stream)."""
    frozen = tuple(values)
    for v in frozen:
        _require("delay", v)
    return DelayStream(lambda: itertools.cycle(frozen), label=f"cycle({list(frozen)})")


# --- Combinators -------------------------------------------------------------


def jitter(delays: Iterable[int]) -> DelayStream:
    """Replace each delay d by a random integer in ``[1, floor(d)]`` (0 if d < 1)."""
    source = DelayStream.of(delays)

    def gen() -> Iterator[int]:
        for d in source:
            if isinstance(d, float) and math.isinf(d):
                d = sys.float_info.max if d > 0 else 0
            upper = math.floor(d)
            yield random.randint(1, upper) if upper >= 1 else 0

    return _derive(source, gen, "jitter")


def randomize(delays: Iterable[int], proportion: float = 0.1) -> DelayStream:
    """Shift each delay by at most ``round(d * proportion)`` either way, never below 0."""
    _require("proportion", proportion)
    source = DelayStream.of(delays)

    def gen() -> Iterator[Any]:
        for d in source:
            if isinstance(d, float) and not math.isfinite(d):
                yield d if d > 0 else 0
                continue
            delta = abs(round(d * proportion))
            shifted = d + random.randint(-delta, delta) if delta else d
            yield max(0, shifted)

    return _derive(source, gen, f"randomize({proportion})")


def cap(delays: Iterable[int], max_delay: int) -> DelayStream:
    """Clamp every delay into ``[0, max_delay]``."""
    _require("max_delay", max_delay)
    source = DelayStream.of(delays)

    def gen() -> Iterator[Any]:
        for d in source:
            yield max(0, min(d, max_delay))

    return _derive(source, gen, f"cap({max_delay})")


def expiry(delays: Iterable[int], time_budget: int, min_delay: int = 0) -> DelayStream:
    """Bound the life span of `delays` to `time_budget` ms from now.

    The deadline is fixed when this function is called. Each element is
    checked against the time left: once a delay would reach or exceed it
    (or only `min_delay` is left), the remaining time is emitted as the
    last element and the stream ends. The retried operation is never
    interrupted, so total elapsed time can overrun by one attempt.
    """
    _require("time_budget", time_budget)
    _require("min_delay", min_delay)
    source = DelayStream.of(delays)
    deadline = _now_ms() + time_budget

    def gen() -> Iterator[Any]:
        for d in source:
            remaining = max(deadline - _now_ms(), min_delay)
            if d >= remaining or remaining == min_delay:
                yield remaining
                return
            yield max(0, d)

    return _derive(source, gen, f"expiry({time_budget}, {min_delay})")


def take(delays: Iterable[int], n: int) -> DelayStream:
    """First `n` elements of `delays`."""
    if isinstance(n, bool) or not isinstance(n, int) or n < 0:
        raise ConfigurationError(f"n must be a non-negative int, got {n!r}")
    source = DelayStream.of(delays)
    return _derive(source, lambda: itertools.islice(source, n), f"take({n})")


def stop_when(delays: Iterable[int], condition: Callable[[], Any]) -> DelayStream:
    """End the stream as soon as ``condition()`` is truthy.

    Checked before every element, e.g. ``stop_when(stream, event.is_set)``
    to make a retry loop respond to an external cancellation signal.
    """
    if not callable(condition):
        raise ConfigurationError(f"condition must be callable, got {condition!r}")
    source = DelayStream.of(delays)

    def gen() -> Iterator[Any]:
        for d in source:
            if condition():
                return
            yield d

    return _derive(source, gen, "stop_when")


# --- Deprecated --------------------------------------------------------------


def exp_backoff(initial_delay: int = 10) -> DelayStream:
    """Deprecated: use exponential_backoff(). Element i is ``initial_delay * 2 ** (i + 1)``."""
    warnings.warn(
        "exp_backoff() is deprecated, use exponential_backoff() instead",
        DeprecationWarning,
        stacklevel=2,
    )
    _require("initial_delay", initial_delay)

    def gen() -> Iterator[int]:
        for failures in itertools.count(1):
            yield round(initial_delay * math.pow(2, failures))

    return DelayStream(gen, label=f"exp_backoff({initial_delay})")


def lin_backoff(initial_delay: int, factor: float) -> DelayStream:
    """Deprecated: use linear_backoff(). Element i is ``initial_delay * factor ** (i + 1)``."""
    warnings.warn(
        "lin_backoff() is deprecated, use linear_backoff() instead",
        DeprecationWarning,
        stacklevel=2,
    )
    _require("initial_delay", initial_delay)
    _require("factor", factor)

    def gen() -> Iterator[Any]:
        d = initial_delay
        while True:
            d = d * factor
            yield _as_delay(d)

    return DelayStream(gen, label=f"lin_backoff({initial_delay}, {factor})")
