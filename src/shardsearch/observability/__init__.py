"""Observability module: structured logging, OpenTelemetry tracing, Prometheus metrics."""

from shardsearch.observability.context import bound_context, get_log_context
from shardsearch.observability.logging import JsonFormatter, configure_logging
from shardsearch.observability.metrics import (
    COMMANDS_DISPATCHED,
    DISPATCH_LATENCY,
    DOCUMENTS_ANALYZED,
    POSTINGS_GENERATED,
    STREAM_RESULTS,
    STREAMS_IGNORED,
    get_metrics,
    get_metrics_content_type,
    track_latency,
)
from shardsearch.observability.tracing import configure_trace_exporter, create_span, get_tracer, init_tracing


__all__ = [
    "COMMANDS_DISPATCHED",
    "DISPATCH_LATENCY",
    "DOCUMENTS_ANALYZED",
    "POSTINGS_GENERATED",
    "STREAMS_IGNORED",
    "STREAM_RESULTS",
    "JsonFormatter",
    "bound_context",
    "configure_logging",
    "configure_trace_exporter",
    "create_span",
    "get_log_context",
    "get_metrics",
    "get_metrics_content_type",
    "get_tracer",
    "init_tracing",
]
