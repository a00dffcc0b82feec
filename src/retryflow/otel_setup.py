"""OpenTelemetry bootstrap for the traced retry entry points.

`init_tracer` / `init_metrics` build SDK providers that ship to an OTLP
collector (or to any exporter/reader passed in, e.g. the SDK's in-memory
ones in tests). `get_tracer` / `get_meter` are what `otel_runtime` uses to
find a provider: an explicit one wins, then the one built here, then the
process-global provider.

Everything degrades to a no-op when opentelemetry is not installed.
"""
from __future__ import annotations

import logging
import os
from typing import Any, Optional, Sequence

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

try:
    from opentelemetry import metrics, trace

    _API_AVAILABLE = True
except ImportError:  # pragma: no cover - opentelemetry-api missing
    _API_AVAILABLE = False

try:
    from opentelemetry.sdk.metrics import MeterProvider
    from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
    from opentelemetry.sdk.metrics.view import ExplicitBucketHistogramAggregation, View
    from opentelemetry.sdk.resources import Resource
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import BatchSpanProcessor

    _SDK_AVAILABLE = True
except ImportError:  # pragma: no cover - opentelemetry-sdk missing
    _SDK_AVAILABLE = False

PROTOCOLS = ("http", "grpc")

# Retried operations range from a few ms (one fast attempt) to minutes
# (an exhausted expiry budget); the SDK defaults top out at 10s.
DURATION_BUCKETS_S: Sequence[float] = (
    0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10, 30, 60, 120, 300,
)

_tracer_provider: Optional[Any] = None
_meter_provider: Optional[Any] = None


def _resource(service_name: str) -> "Resource":
    from . import __version__

    return Resource.create(
        {
            "service.name": service_name,
            "service.version": os.getenv("RETRYFLOW_SERVICE_VERSION", "dev"),
            "retryflow.version": __version__,
        }
    )


def _otlp_exporter(signal: str, protocol: str):
    # Exporter packages are heavy; import only the one asked for.
    protocol = protocol.lower()
    if protocol not in PROTOCOLS:
        raise ConfigurationError(f"exporter must be one of {PROTOCOLS}, got {protocol!r}")
    if signal == "traces":
        if protocol == "grpc":
            from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
        else:
            from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
        return OTLPSpanExporter()
    if protocol == "grpc":
        from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
    else:
        from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter
    return OTLPMetricExporter()


def init_tracer(
    service_name: str = "retryflow",
    exporter: str = "http",
    *,
    span_exporter: Any = None,
    set_global: bool = True,
):
    """Build the TracerProvider used by the traced retry helpers.

    Spans go to an OTLP exporter over `exporter` ("http" or "grpc") unless
    `span_exporter` is given. Calling it again returns the provider from
    the first call. Returns None without the SDK.
    """
    global _tracer_provider

    if not _SDK_AVAILABLE:
        logger.debug("opentelemetry-sdk not installed; init_tracer is a no-op")
        return None
    if _tracer_provider is not None:
        return _tracer_provider

    provider = TracerProvider(resource=_resource(service_name))
    provider.add_span_processor(
        BatchSpanProcessor(span_exporter if span_exporter is not None else _otlp_exporter("traces", exporter))
    )
    if set_global:
        trace.set_tracer_provider(provider)
    _tracer_provider = provider
    logger.debug("tracer provider ready for %s", service_name)
    return provider


def init_metrics(
    service_name: str = "retryflow",
    exporter: str = "http",
    *,
    metric_reader: Any = None,
    export_interval_ms: Optional[int] = None,
    set_global: bool = True,
):
    """Build the MeterProvider used by the traced retry helpers.

    The operation-duration histogram gets buckets sized for retry loops
    (5 ms to 5 min). Returns None without the SDK.
    """
    global _meter_provider

    if not _SDK_AVAILABLE:
        logger.debug("opentelemetry-sdk not installed; init_metrics is a no-op")
        return None
    if _meter_provider is not None:
        return _meter_provider

    if metric_reader is None:
        metric_reader = PeriodicExportingMetricReader(
            _otlp_exporter("metrics", exporter), export_interval_millis=export_interval_ms
        )
    provider = MeterProvider(
        resource=_resource(service_name),
        metric_readers=[metric_reader],
        views=[
            View(
                instrument_name="retryflow_operation_duration_seconds",
                aggregation=ExplicitBucketHistogramAggregation(boundaries=DURATION_BUCKETS_S),
            )
        ],
    )
    if set_global:
        metrics.set_meter_provider(provider)
    _meter_provider = provider
    logger.debug("meter provider ready for %s", service_name)
    return provider


def shutdown() -> None:
    """Flush and drop the providers built here (end of process, tests)."""
    global _tracer_provider, _meter_provider

    for provider in (_tracer_provider, _meter_provider):
        if provider is not None:
            provider.shutdown()
    _tracer_provider = _meter_provider = None


def resolve_tracer_provider(tracer_provider: Any = None):
    if not _API_AVAILABLE:
        return None
    if tracer_provider is not None:
        return tracer_provider
    return _tracer_provider if _tracer_provider is not None else trace.get_tracer_provider()


def resolve_meter_provider(meter_provider: Any = None):
    if not _API_AVAILABLE:
        return None
    if meter_provider is not None:
        return meter_provider
    return _meter_provider if _meter_provider is not None else metrics.get_meter_provider()


def get_tracer(instrumentation_name: str = "retryflow", tracer_provider: Any = None):
    """Tracer from the first available provider; None without opentelemetry."""
    provider = resolve_tracer_provider(tracer_provider)
    return provider.get_tracer(instrumentation_name) if provider is not None else None


def get_meter(instrumentation_name: str = "retryflow", meter_provider: Any = None):
    """Meter from the first available provider; None without opentelemetry."""
    provider = resolve_meter_provider(meter_provider)
    return provider.get_meter(instrumentation_name) if provider is not None else None
