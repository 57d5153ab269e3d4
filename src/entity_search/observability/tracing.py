"""OpenTelemetry spans around index builds and search queries."""

from __future__ import annotations

from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
import logging
from typing import Any

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import SpanProcessor, TracerProvider
from opentelemetry.trace import Span, SpanKind, Status, StatusCode, Tracer

from entity_search.exceptions import EntitySearchError
from entity_search.observability.context import span_scope


logger = logging.getLogger(__name__)

TRACER_NAME = "entity_search"

_state: dict[str, Any] = {"tracer": None, "provider": None}


def init_tracing(
    service_name: str = "entity-search",
    resource_attributes: Mapping[str, str] | None = None,
    span_processors: Sequence[SpanProcessor] = (),
) -> TracerProvider:
    """Create a TracerProvider and make it the source of this package's spans.

    The provider is also offered as the global one; OpenTelemetry keeps the
    first global provider, so later calls only rebind the local tracer.
    """
    resource = Resource.create({"service.name": service_name, **(resource_attributes or {})})
    provider = TracerProvider(resource=resource)
    for processor in span_processors:
        provider.add_span_processor(processor)
    trace.set_tracer_provider(provider)
    _state["provider"] = provider
    _state["tracer"] = provider.get_tracer(TRACER_NAME)
    logger.info("Tracing initialized for %s with %d span processors", service_name, len(span_processors))
    return provider


def get_tracer() -> Tracer:
    """Tracer from ``init_tracing``, or one from the global provider."""
    tracer = _state["tracer"]
    if tracer is None:
        tracer = _state["tracer"] = trace.get_tracer(TRACER_NAME)
    return tracer


@contextmanager
def create_span(
    name: str,
    kind: SpanKind = SpanKind.INTERNAL,
    attributes: Mapping[str, Any] | None = None,
) -> Iterator[Span]:
    """Run the block inside a span and point log correlation at it.

    Exceptions mark the span as failed; subsystem errors also record
    whether the caller may retry.
    """
    with get_tracer().start_as_current_span(
        name,
        kind=kind,
        attributes=dict(attributes or {}),
        record_exception=False,
        set_status_on_exception=False,
    ) as span, span_scope(format(span.get_span_context().span_id, "016x")):
        try:
            yield span
        except Exception as exc:
            span.record_exception(exc)
            span.set_status(Status(StatusCode.ERROR, f"{type(exc).__name__}: {exc}"))
            if isinstance(exc, EntitySearchError):
                span.set_attribute("error.retryable", exc.retryable)
            raise
