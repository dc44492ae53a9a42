"""Prometheus metrics for document operations, bridged to OpenTelemetry meters."""

from __future__ import annotations

from contextlib import contextmanager
import time
from typing import TYPE_CHECKING, Any

from opentelemetry import metrics as otel_metrics
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, Counter, Histogram, generate_latest


if TYPE_CHECKING:
    from collections.abc import Generator


_meter_holder: dict[str, Any] = {"meter": None}


def _get_meter():
    meter = _meter_holder.get("meter")
    if meter is None:
        meter = otel_metrics.get_meter(__name__)
        _meter_holder["meter"] = meter
    return meter


class _BoundMetric:
    def __init__(self, bridge: MetricBridge, labels: dict[str, str]) -> None:
        self._bridge = bridge
        self._labels = labels

    def inc(self, amount: float = 1.0) -> None:
        self._bridge.inc(self._labels, amount)

    def observe(self, value: float) -> None:
        self._bridge.observe(self._labels, value)


class MetricBridge:
    """Record into a Prometheus metric and the matching OTel instrument."""

    def __init__(self, prom_metric: Counter | Histogram, *, otel_name: str, description: str, kind: str) -> None:
        if kind not in {"counter", "histogram"}:
            raise ValueError(f"Unknown metric kind: {kind}")
        self._prom_metric = prom_metric
        self._name = otel_name
        self._description = description
        self._kind = kind
        self._otel_instrument = None

    def labels(self, **labels: str) -> _BoundMetric:
        return _BoundMetric(self, labels)

    def _instrument(self):
        if self._otel_instrument is None:
            meter = _get_meter()
            if self._kind == "counter":
                self._otel_instrument = meter.create_counter(self._name, description=self._description)
            else:
                self._otel_instrument = meter.create_histogram(self._name, description=self._description)
        return self._otel_instrument

    def inc(self, labels: dict[str, str], amount: float) -> None:
        self._prom_metric.labels(**labels).inc(amount)
        self._instrument().add(amount, labels)

    def observe(self, labels: dict[str, str], value: float) -> None:
        self._prom_metric.labels(**labels).observe(value)
        self._instrument().record(value, labels)


OPERATION_COUNT = MetricBridge(
    Counter(
        "docstore_operations_total",
        "Document service operations",
        ["collection", "operation", "status"],
    ),
    otel_name="docstore_operations_total",
    description="Document service operations",
    kind="counter",
)

OPERATION_LATENCY = MetricBridge(
    Histogram(
        "docstore_operation_latency_seconds",
        "Document service operation latency in seconds",
        ["collection", "operation"],
        buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
    ),
    otel_name="docstore_operation_latency_seconds",
    description="Document service operation latency in seconds",
    kind="histogram",
)

TRANSACTION_COUNT = MetricBridge(
    Counter("docstore_transactions_total", "Coordinator-managed transactions", ["status"]),
    otel_name="docstore_transactions_total",
    description="Coordinator-managed transactions",
    kind="counter",
)

OUTBOX_EVENTS = MetricBridge(
    Counter("docstore_outbox_events_total", "Outbox events written", ["collection", "type"]),
    otel_name="docstore_outbox_events_total",
    description="Outbox events written",
    kind="counter",
)


@contextmanager
def track_operation(collection: str, operation: str) -> Generator[None, None, None]:
    """Count an operation and time it; failures are counted with status="error"."""
    start = time.perf_counter()
    status = "success"
    try:
        yield
    except Exception:
        status = "error"
        raise
    finally:
        OPERATION_LATENCY.labels(collection=collection, operation=operation).observe(time.perf_counter() - start)
        OPERATION_COUNT.labels(collection=collection, operation=operation, status=status).inc()


def get_metrics() -> bytes:
    return generate_latest(REGISTRY)


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
