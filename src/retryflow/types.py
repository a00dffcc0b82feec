from __future__ import annotations
from contextlib import AbstractAsyncContextManager, AbstractContextManager
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Generic, Protocol, TypeVar, Union

T = TypeVar("T")


class Tag(str, Enum):
    OK = "ok"
    ERROR = "error"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Cont(Generic[T]):
    """Keep going; `value` is the new accumulator (or last result)."""

    value: T


@dataclass(frozen=True)
class Halt(Generic[T]):
    """Stop retrying; `value` becomes the result."""

    value: T


Step = Union[Cont[Any], Halt[Any]]


class AttemptScope(Protocol):
    def __call__(self) -> AbstractContextManager[None]: ...


class AttemptScopeAsync(Protocol):
    def __call__(self) -> AbstractAsyncContextManager[None]: ...


# Called before each attempt with the 1-based attempt number
BeforeAttemptFn = Callable[[int], Any]

# Decide if a raised exception is retryable
ErrorPredicate = Callable[[BaseException], bool]

# Decide if a returned value is retryable
ResultPredicate = Callable[[Any], bool]

OnSuccessFn = Callable[[Any], Any]
OnExhaustedFn = Callable[[Any], Any]
