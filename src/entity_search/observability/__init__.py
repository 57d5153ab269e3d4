"""Logging, metrics and tracing for the search subsystem."""

from entity_search.observability.context import bound_fields, current_context, set_trace_ids
from entity_search.observability.logging import JsonFormatter, configure_logging, configure_logging_from_settings
from entity_search.observability.metrics import (
    CACHE_ERRORS,
    INDEX_BUILD_DURATION,
    INDEX_BUILDS,
    INDEX_DOC_COUNT,
    SEARCH_LATENCY,
    SEARCH_REQUESTS,
    MetricBridge,
    get_metrics,
    get_metrics_content_type,
    init_metrics,
    track_latency,
)
from entity_search.observability.tracing import create_span, get_tracer, init_tracing


__all__ = [
    "CACHE_ERRORS",
    "INDEX_BUILDS",
    "INDEX_BUILD_DURATION",
    "INDEX_DOC_COUNT",
    "SEARCH_LATENCY",
    "SEARCH_REQUESTS",
    "JsonFormatter",
    "MetricBridge",
    "bound_fields",
    "configure_logging",
    "configure_logging_from_settings",
    "create_span",
    "current_context",
    "get_metrics",
    "get_metrics_content_type",
    "get_tracer",
    "init_metrics",
    "init_tracing",
    "set_trace_ids",
    "track_latency",
]
