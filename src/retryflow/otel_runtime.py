from __future__ import annotations

import os
import time
from contextlib import asynccontextmanager, contextmanager, nullcontext
from typing import Any, Callable, Dict, Optional

from . import otel_setup
from .core import _resolve, retry, retry_async
from .errors import ConfigurationError
from .options import RetryOptions, check_clauses
from .types import AttemptScope, AttemptScopeAsync, BeforeAttemptFn, OnExhaustedFn, OnSuccessFn


# --- Helpers for env flags ----------------------------------------------------

_TRUTHY = {"1", "true", "yes", "on"}


def _otel_enabled(explicit: Optional[bool]) -> bool:
    if explicit is not None:
        return explicit
    return os.getenv("RETRYFLOW_OTEL_ENABLED", "").lower() in _TRUTHY


def _metrics_enabled() -> bool:
    return os.getenv("RETRYFLOW_OTEL_METRICS_ENABLED", "").lower() in _TRUTHY


# --- Metrics plumbing (lazy / optional) --------------------------------------


class _Instruments:
    def __init__(self, meter):
        self.operations = meter.create_counter(
            "retryflow_operations_total",
            description="Total number of retried operations.",
        )
        self.attempts = meter.create_counter(
            "retryflow_attempts_total",
            description="Total number of attempts (first tries included).",
        )
        self.duration = meter.create_histogram(
            "retryflow_operation_duration_seconds",
            description="Wall-clock time of a retried operation, delays included.",
            unit="s",
        )


# one set of instruments per meter provider
_instrument_cache: Dict[Any, _Instruments] = {}


def _instruments(meter_provider: Any) -> Optional[_Instruments]:
    if not _metrics_enabled():
        return None
    provider = otel_setup.resolve_meter_provider(meter_provider)
    if provider is None:
        return None
    inst = _instrument_cache.get(provider)
    if inst is None:
        inst = _instrument_cache[provider] = _Instruments(otel_setup.get_meter(__name__, provider))
    return inst


# --- Traced execution ---------------------------------------------------------


class _Telemetry:
    """Spans and metrics for one retry run; hooks into the engine's attempt hooks."""

    def __init__(self, tracer, root, span_name: str, instruments: Optional[_Instruments]):
        self._tracer = tracer
        self.root = root
        self.span_name = span_name
        self.instruments = instruments
        self.attempt = 0
        self.metric_attrs = {"retryflow.span_name": span_name}
        self.succeeded = False
        self.start = time.perf_counter()

    def before_attempt(self, attempt: int, user_hook: Optional[BeforeAttemptFn]) -> Any:
        if self.instruments is not None:
            self.instruments.attempts.add(1, attributes=self.metric_attrs)
        self.root.add_event("retryflow.attempt", {"retryflow.attempt.number": attempt})
        self.attempt = attempt
        return user_hook(attempt) if user_hook else None

    @contextmanager
    def _attempt_span(self):
        from opentelemetry.trace import SpanKind, Status, StatusCode

        with self._tracer.start_as_current_span(
            f"{self.span_name}.attempt",
            kind=SpanKind.INTERNAL,
            record_exception=False,
            set_status_on_exception=False,
        ) as s:
            s.set_attribute("retryflow.attempt.number", self.attempt)
            try:
                yield
                s.set_attribute("retryflow.attempt.outcome", "returned")
            except BaseException as exc:
                s.record_exception(exc)
                s.set_attribute("retryflow.attempt.outcome", "error")
                s.set_status(Status(StatusCode.ERROR))
                raise

    def scope(self, user_scope: Optional[AttemptScope]):
        @contextmanager
        def cm():
            with self._attempt_span():
                with user_scope() if user_scope else nullcontext():
                    yield

        return cm

    def scope_async(self, user_scope_async: AttemptScopeAsync):
        # the user's async scope runs inside the attempt span
        @asynccontextmanager
        async def cm():
            with self._attempt_span():
                async with user_scope_async():
                    yield

        return cm

    def wrap_success(self, on_success: Optional[OnSuccessFn]) -> OnSuccessFn:
        def _on_success(value):
            self.succeeded = True
            return on_success(value) if on_success else value

        return _on_success

    def finish(self, exc: Optional[BaseException]) -> None:
        from opentelemetry.trace import Status, StatusCode

        if exc is not None:
            outcome = "error"
            self.root.record_exception(exc)
            self.root.set_status(Status(StatusCode.ERROR))
        else:
            outcome = "success" if self.succeeded else "exhausted"
        self.root.set_attribute("retryflow.outcome", outcome)
        self.root.set_attribute("retryflow.attempts", self.attempt)

        if self.instruments is not None:
            metric_attrs = {**self.metric_attrs, "retryflow.outcome": outcome}
            self.instruments.operations.add(1, attributes=metric_attrs)
            self.instruments.duration.record(time.perf_counter() - self.start, attributes=metric_attrs)


def _span_attrs(opts: RetryOptions, base_attrs: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    attrs: Dict[str, Any] = {
        "retryflow.delays": repr(opts.delays),
        "retryflow.atoms": [repr(a) for a in opts.atoms],
        "retryflow.rescue_only": [getattr(r, "__name__", repr(r)) for r in opts.rescue_only],
    }
    if base_attrs:
        attrs.update({k: v for k, v in base_attrs.items() if v is not None})
    return attrs


def _tracer(otel_enabled: Optional[bool], tracer_provider: Any):
    if not _otel_enabled(otel_enabled):
        return None
    return otel_setup.get_tracer(__name__, tracer_provider)


def retry_traced_optional(
    options: Any,
    operation: Callable[[], Any],
    on_success: Optional[OnSuccessFn] = None,
    on_exhausted: Optional[OnExhaustedFn] = None,
    *,
    before_attempt: Optional[BeforeAttemptFn] = None,
    attempt_scope: Optional[AttemptScope] = None,
    # tracing knobs (all optional)
    otel_enabled: Optional[bool] = None,  # None -> read env RETRYFLOW_OTEL_ENABLED
    span_name: str = "retryflow.retry",
    base_attrs: Optional[Dict[str, Any]] = None,
    tracer_provider: Any = None,
    meter_provider: Any = None,
) -> Any:
    """
    `retry` with tracing *if* OpenTelemetry is installed and enabled.
    Otherwise, falls back to plain `retry()` with zero overhead.

    Emits a root span plus one ``<span_name>.attempt`` child per attempt.
    Providers are looked up through `otel_setup` (explicit argument, then
    `init_tracer`/`init_metrics`, then the global ones).
    When RETRYFLOW_OTEL_METRICS_ENABLED=1 this also emits:
      - retryflow_operations_total
      - retryflow_attempts_total
      - retryflow_operation_duration_seconds
    """
    tracer = _tracer(otel_enabled, tracer_provider)
    if tracer is None:
        return retry(
            options,
            operation,
            on_success,
            on_exhausted,
            before_attempt=before_attempt,
            attempt_scope=attempt_scope,
        )

    opts = RetryOptions.parse(options)
    check_clauses(before_attempt=before_attempt, attempt_scope=attempt_scope)

    with tracer.start_as_current_span(
        span_name, record_exception=False, set_status_on_exception=False
    ) as root:
        for k, v in _span_attrs(opts, base_attrs).items():
            root.set_attribute(k, v)
        tel = _Telemetry(tracer, root, span_name, _instruments(meter_provider))
        try:
            result = retry(
                opts,
                operation,
                tel.wrap_success(on_success),
                on_exhausted,
                before_attempt=lambda n: tel.before_attempt(n, before_attempt),
                attempt_scope=tel.scope(attempt_scope),
            )
        except BaseException as exc:
            tel.finish(exc)
            raise
        tel.finish(None)
        return result


async def retry_async_traced_optional(
    options: Any,
    operation: Callable[[], Any],
    on_success: Optional[OnSuccessFn] = None,
    on_exhausted: Optional[OnExhaustedFn] = None,
    *,
    before_attempt: Optional[BeforeAttemptFn] = None,
    attempt_scope: Optional[AttemptScope] = None,
    attempt_scope_async: Optional[AttemptScopeAsync] = None,
    otel_enabled: Optional[bool] = None,
    span_name: str = "retryflow.retry",
    base_attrs: Optional[Dict[str, Any]] = None,
    tracer_provider: Any = None,
    meter_provider: Any = None,
) -> Any:
    """asyncio twin of `retry_traced_optional`."""
    tracer = _tracer(otel_enabled, tracer_provider)
    if tracer is None:
        return await retry_async(
            options,
            operation,
            on_success,
            on_exhausted,
            before_attempt=before_attempt,
            attempt_scope=attempt_scope,
            attempt_scope_async=attempt_scope_async,
        )

    opts = RetryOptions.parse(options)
    check_clauses(
        before_attempt=before_attempt,
        attempt_scope=attempt_scope,
        attempt_scope_async=attempt_scope_async,
    )
    if attempt_scope and attempt_scope_async:
        raise ConfigurationError("pass either attempt_scope or attempt_scope_async, not both")

    with tracer.start_as_current_span(
        span_name, record_exception=False, set_status_on_exception=False
    ) as root:
        for k, v in _span_attrs(opts, base_attrs).items():
            root.set_attribute(k, v)
        tel = _Telemetry(tracer, root, span_name, _instruments(meter_provider))

        async def _before(n):
            return await _resolve(tel.before_attempt(n, before_attempt))

        if attempt_scope_async:
            scopes = {"attempt_scope_async": tel.scope_async(attempt_scope_async)}
        else:
            scopes = {"attempt_scope": tel.scope(attempt_scope)}

        try:
            result = await retry_async(
                opts,
                operation,
                tel.wrap_success(on_success),
                on_exhausted,
                before_attempt=_before,
                **scopes,
            )
        except BaseException as exc:
            tel.finish(exc)
            raise
        tel.finish(None)
        return result
