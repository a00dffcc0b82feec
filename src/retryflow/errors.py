from __future__ import annotations


class RetryFlowError(Exception):
    """Base class for errors raised by retryflow itself."""


class ConfigurationError(RetryFlowError, ValueError):
    """Invalid options, clauses or delay-stream arguments.

    Always raised before the first attempt runs; never retried.
    """


class InvalidStepError(RetryFlowError, TypeError):
    """A retry_while operation returned something other than Cont/Halt."""
