import asyncio
import os
import random

from retryflow import exponential_backoff
from retryflow.otel_runtime import retry_async_traced_optional
from retryflow.otel_setup import init_metrics, init_tracer, shutdown

# Enable tracing / metrics via env (can still be disabled by user)
os.environ.setdefault("RETRYFLOW_OTEL_ENABLED", "1")
os.environ.setdefault("RETRYFLOW_OTEL_METRICS_ENABLED", "1")

# Defaults for local collector
os.environ.setdefault("OTEL_EXPORTER_OTLP_ENDPOINT", "http://127.0.0.1:4317")


async def flaky_op(ctx: dict) -> str:
    """
    Simple demo op:
    - fails randomly with RuntimeError (to trigger retries)
    - sleeps a bit to generate non-zero latency
    """
    if random.random() < ctx["fail_prob"]:
        raise RuntimeError("transient boom in retryflow smoke demo")

    await asyncio.sleep(random.uniform(0.02, 0.15))
    return "ok"


async def main() -> None:
    # RETRYFLOW_OTEL_EXPORTER=http (default) or grpc
    exporter = os.getenv("RETRYFLOW_OTEL_EXPORTER", "http").lower()
    if exporter not in ("http", "grpc"):
        print(f"[retryflow] Unknown RETRYFLOW_OTEL_EXPORTER={exporter!r}, falling back to 'http'")
        exporter = "http"

    service_name = "retryflow-otel-smoke"
    init_tracer(service_name=service_name, exporter=exporter)
    init_metrics(service_name=service_name, exporter=exporter)

    n_ops = int(os.getenv("RETRYFLOW_SMOKE_OPS", "50"))
    fail_prob = float(os.getenv("RETRYFLOW_SMOKE_FAIL_PROB", "0.5"))

    print(f"[retryflow] running smoke: n_ops={n_ops}, fail_prob={fail_prob}, exporter={exporter}")

    for i in range(n_ops):
        ctx = {"fail_prob": fail_prob}

        try:
            result = await retry_async_traced_optional(
                {"with": exponential_backoff(50).randomize().cap(100).take(2)},
                lambda: flaky_op(ctx),
                otel_enabled=True,
                span_name="retryflow.smoke",
                base_attrs={"retryflow.demo_op_index": i},
            )
            print(f"[retryflow] op #{i} -> {result}")
        except RuntimeError as exc:
            # If all retries fail, spans + metrics are still recorded
            print(f"[retryflow] op #{i} failed after retries: {exc!r}")

    shutdown()
    print("[retryflow] smoke run complete")


if __name__ == "__main__":
    asyncio.run(main())
