from __future__ import annotations
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional, Tuple

from .classify import is_predicate
from .delays import DelayStream
from .errors import ConfigurationError
from .types import Tag

DEFAULT_ATOMS: Tuple[Any, ...] = (Tag.ERROR,)
DEFAULT_RESCUE_ONLY: Tuple[Any, ...] = (RuntimeError,)

# mapping key -> RetryOptions field; aliases share a field
_RETRY_KEYS = {
    "with": "delays",
    "atoms": "atoms",
    "retry_on": "atoms",
    "rescue_only": "rescue_only",
    "retryable_errors": "rescue_only",
}
_RETRY_WHILE_KEYS = ("with", "acc")

MISSING: Any = object()


def _as_tuple(value: Any) -> Tuple[Any, ...]:
    if isinstance(value, (str, bytes)) or not isinstance(value, Iterable):
        return (value,)
    return tuple(value)


def _check_rescue_entry(entry: Any) -> None:
    if isinstance(entry, type):
        if not issubclass(entry, Exception):
            raise ConfigurationError(
                f"rescue_only entries must be Exception subclasses, got {entry.__name__}"
            )
    elif not is_predicate(entry):
        raise ConfigurationError(
            f"rescue_only entries must be exception classes or predicates, got {entry!r}"
        )


@dataclass(frozen=True)
class RetryOptions:
    """Validated configuration for `retry`.

    `delays` is the stream spacing the attempts, `atoms` the sentinel
    values/predicates marking a returned value as retryable and
    `rescue_only` the exception classes/predicates marking a raised
    error as retryable.
    """

    delays: Any
    atoms: Tuple[Any, ...] = field(default=DEFAULT_ATOMS)
    rescue_only: Tuple[Any, ...] = field(default=DEFAULT_RESCUE_ONLY)

    def __post_init__(self) -> None:
        object.__setattr__(self, "delays", DelayStream.of(self.delays))
        object.__setattr__(self, "atoms", _as_tuple(self.atoms))
        rescue_only = _as_tuple(self.rescue_only)
        for entry in rescue_only:
            _check_rescue_entry(entry)
        object.__setattr__(self, "rescue_only", rescue_only)

    @classmethod
    def parse(cls, options: Any) -> "RetryOptions":
        """Build from a `RetryOptions` or a mapping such as ``{"with": stream}``."""
        if isinstance(options, RetryOptions):
            return options
        if not isinstance(options, Mapping):
            raise ConfigurationError(
                f'options must be a mapping like {{"with": delays}}, got {options!r}'
            )
        kwargs: dict[str, Any] = {}
        for key, value in options.items():
            target = _RETRY_KEYS.get(key)
            if target is None:
                raise ConfigurationError(f'option "{key}" is not supported')
            if target in kwargs:
                raise ConfigurationError(f'option "{key}" given more than once (aliases clash)')
            kwargs[target] = value
        if "delays" not in kwargs:
            raise ConfigurationError('you must provide the "with" option')
        return cls(**kwargs)


def parse_while_options(options: Any, acc: Any = MISSING) -> Tuple[DelayStream, Any]:
    """Return (delays, initial accumulator or MISSING) for `retry_while`."""
    if isinstance(options, RetryOptions):
        return options.delays, acc
    if not isinstance(options, Mapping):
        raise ConfigurationError(
            f'options must be a mapping like {{"with": delays}}, got {options!r}'
        )
    for key in options:
        if key not in _RETRY_WHILE_KEYS:
            raise ConfigurationError(f'option "{key}" is not supported')
    if "with" not in options:
        raise ConfigurationError('you must provide the "with" option')
    if "acc" in options:
        if acc is not MISSING:
            raise ConfigurationError('"acc" given both as option and as argument')
        acc = options["acc"]
    return DelayStream.of(options["with"]), acc


def check_clauses(**clauses: Optional[Any]) -> None:
    """Every given clause must be callable; `operation` is required."""
    if clauses.get("operation") is None and "operation" in clauses:
        raise ConfigurationError('you must provide an "operation"')
    for name, fn in clauses.items():
        if fn is not None and not callable(fn):
            raise ConfigurationError(f'clause "{name}" must be callable, got {fn!r}')
