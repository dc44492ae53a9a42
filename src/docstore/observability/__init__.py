"""Observability: structured logging, tracing and metrics for document services."""

from docstore.observability.context import get_trace_context, set_trace_context, trace_context
from docstore.observability.logging import JsonFormatter, configure_logging, redact_uri
from docstore.observability.metrics import (
    OPERATION_COUNT,
    OPERATION_LATENCY,
    OUTBOX_EVENTS,
    TRANSACTION_COUNT,
    get_metrics,
    get_metrics_content_type,
    track_operation,
)
from docstore.observability.tracing import create_span, get_tracer, init_tracing


__all__ = [
    "OPERATION_COUNT",
    "OPERATION_LATENCY",
    "OUTBOX_EVENTS",
    "TRANSACTION_COUNT",
    "JsonFormatter",
    "configure_logging",
    "create_span",
    "get_metrics",
    "get_metrics_content_type",
    "get_trace_context",
    "get_tracer",
    "init_tracing",
    "redact_uri",
    "set_trace_context",
    "trace_context",
    "track_operation",
]
