import logging

from .core import retry, retry_async, retry_while, retry_while_async, wait, wait_async
from .decorator import retrying
from .delays import (
    DelayStream,
    cap,
    constant_backoff,
    cycle,
    exp_backoff,
    expiry,
    exponential_backoff,
    jitter,
    lin_backoff,
    linear_backoff,
    randomize,
    stop_when,
    take,
)
from .errors import ConfigurationError, InvalidStepError, RetryFlowError
from .options import RetryOptions
from .otel_runtime import retry_async_traced_optional, retry_traced_optional
from .types import Cont, Halt, Tag

__all__ = [
    # Delay streams
    "DelayStream",
    "constant_backoff",
    "linear_backoff",
    "exponential_backoff",
    "jitter",
    "randomize",
    "cap",
    "expiry",
    "take",
    "cycle",
    "stop_when",
    "exp_backoff",
    "lin_backoff",
    # Engine
    "retry",
    "retry_while",
    "wait",
    "retry_async",
    "retry_while_async",
    "wait_async",
    "retrying",
    "RetryOptions",
    "Tag",
    "Cont",
    "Halt",
    # Errors
    "RetryFlowError",
    "ConfigurationError",
    "InvalidStepError",
    # Tracing (no-op unless opentelemetry is installed and enabled)
    "retry_traced_optional",
    "retry_async_traced_optional",
]

logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = "0.1.0"
