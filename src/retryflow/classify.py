from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Iterable, Union


@dataclass(frozen=True)
class Success:
    value: Any


@dataclass(frozen=True)
class RetryableResult:
    value: Any


@dataclass(frozen=True)
class RetryableError:
    error: BaseException


# Fatal errors are never materialised: they propagate from the attempt.
Outcome = Union[Success, RetryableResult, RetryableError]


def is_predicate(entry: Any) -> bool:
    return callable(entry) and not isinstance(entry, type)


def _same(value: Any, sentinel: Any) -> bool:
    # bools compare by identity so that 0/1 never match False/True
    if isinstance(value, bool) or isinstance(sentinel, bool):
        return value is sentinel
    try:
        return bool(value == sentinel)
    except (TypeError, ValueError):
        # e.g. array-likes with ambiguous truth values
        return False


def matches_sentinel(value: Any, atoms: Iterable[Any]) -> bool:
    """First matching atom wins; no match means the value is a success.

    An atom is either a predicate ``(value) -> bool`` or a sentinel that
    matches the value itself or the tag of a ``(tag, payload)`` pair.
    """
    for atom in atoms:
        if is_predicate(atom):
            if atom(value):
                return True
        elif _same(value, atom):
            return True
        elif isinstance(value, tuple) and len(value) == 2 and _same(value[0], atom):
            return True
    return False


def matches_error(exc: BaseException, rescue_only: Iterable[Any]) -> bool:
    for entry in rescue_only:
        if isinstance(entry, type):
            if isinstance(exc, entry):
                return True
        elif entry(exc):
            return True
    return False


def classify_result(value: Any, atoms: Iterable[Any]) -> Outcome:
    return RetryableResult(value) if matches_sentinel(value, atoms) else Success(value)


def is_falsy_sentinel(value: Any) -> bool:
    """What `wait` keeps polling on: only False and None, not 0 or empty containers."""
    return value is False or value is None
