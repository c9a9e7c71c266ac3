"""Logging, Prometheus/OpenTelemetry metrics and tracing for the index."""

from folklore.observability.context import LogContext, bound_context, current_context
from folklore.observability.logging import JsonFormatter, configure_from_settings, configure_logging
from folklore.observability.metrics import (
    INDEX_DOC_COUNT,
    INDEX_TERM_COUNT,
    INGEST_COUNT,
    INGEST_LATENCY,
    SEARCH_LATENCY,
    get_metrics,
    get_metrics_content_type,
    init_metrics,
    track_latency,
)
from folklore.observability.tracing import create_span, get_tracer, init_tracing


__all__ = [
    "INDEX_DOC_COUNT",
    "INDEX_TERM_COUNT",
    "INGEST_COUNT",
    "INGEST_LATENCY",
    "SEARCH_LATENCY",
    "JsonFormatter",
    "LogContext",
    "bound_context",
    "configure_from_settings",
    "configure_logging",
    "create_span",
    "current_context",
    "get_metrics",
    "get_metrics_content_type",
    "get_tracer",
    "init_metrics",
    "init_tracing",
    "track_latency",
]
