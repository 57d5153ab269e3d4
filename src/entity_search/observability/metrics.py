"""Search and indexing metrics.

Every metric is a prometheus_client instrument (scraped via ``get_metrics``)
mirrored to an OpenTelemetry instrument created on first use, so hosts that
export through an OTel MeterProvider see the same series.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from contextlib import contextmanager
import time
from typing import Any

from opentelemetry import metrics as otel_metrics
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import MetricReader
from opentelemetry.sdk.resources import Resource
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest


_PROM_TYPES: dict[str, type] = {"counter": Counter, "histogram": Histogram, "gauge": Gauge}

_meter_state: dict[str, Any] = {"provider": None, "meter": None}


def init_metrics(
    service_name: str = "entity-search",
    metric_readers: Sequence[MetricReader] = (),
) -> MeterProvider:
    """Create (once) the MeterProvider backing the OTel side of each metric."""
    provider = _meter_state["provider"]
    if provider is None:
        provider = MeterProvider(
            resource=Resource.create({"service.name": service_name}),
            metric_readers=list(metric_readers),
        )
        otel_metrics.set_meter_provider(provider)
        _meter_state["provider"] = provider
        _meter_state["meter"] = provider.get_meter("entity_search")
    return provider


def _meter():
    if _meter_state["meter"] is None:
        init_metrics()
    return _meter_state["meter"]


class MetricBridge:
    """A Prometheus metric plus its lazily created OTel twin."""

    def __init__(
        self,
        kind: str,
        name: str,
        description: str,
        labelnames: Sequence[str] = (),
        *,
        buckets: Sequence[float] | None = None,
    ) -> None:
        if kind not in _PROM_TYPES:
            raise ValueError(f"Unknown metric kind: {kind}")
        extra = {"buckets": tuple(buckets)} if buckets is not None else {}
        self.kind = kind
        self.name = name
        self.description = description
        self.labelnames = tuple(labelnames)
        self.prometheus = _PROM_TYPES[kind](name, description, self.labelnames, **extra)
        self._otel: Any = None
        self._gauge_values: dict[tuple[tuple[str, str], ...], float] = {}

    def labels(self, **labels: str) -> _LabelledMetric:
        return _LabelledMetric(self, labels)

    def _otel_instrument(self):
        if self._otel is None:
            meter = _meter()
            create = {
                "counter": meter.create_counter,
                "histogram": meter.create_histogram,
                # Gauges are absolute; the OTel side receives deltas.
                "gauge": meter.create_up_down_counter,
            }[self.kind]
            self._otel = create(self.name, description=self.description)
        return self._otel

    def _series(self, labels: dict[str, str]):
        return self.prometheus.labels(**labels) if self.labelnames else self.prometheus

    def record(self, labels: dict[str, str], value: float) -> None:
        series = self._series(labels)
        if self.kind == "counter":
            series.inc(value)
            self._otel_instrument().add(value, labels)
        elif self.kind == "histogram":
            series.observe(value)
            self._otel_instrument().record(value, labels)
        else:
            series.set(value)
            key = tuple(sorted(labels.items()))
            delta = value - self._gauge_values.get(key, 0.0)
            self._gauge_values[key] = value
            if delta:
                self._otel_instrument().add(delta, labels)


class _LabelledMetric:
    def __init__(self, bridge: MetricBridge, labels: dict[str, str]) -> None:
        self._bridge = bridge
        self._labels = labels

    def inc(self, amount: float = 1.0) -> None:
        self._bridge.record(self._labels, amount)

    def observe(self, value: float) -> None:
        self._bridge.record(self._labels, value)

    def set(self, value: float) -> None:
        self._bridge.record(self._labels, value)


SEARCH_REQUESTS = MetricBridge(
    "counter",
    "entity_search_requests_total",
    "Search requests by outcome",
    ["status"],
)
SEARCH_LATENCY = MetricBridge(
    "histogram",
    "entity_search_latency_seconds",
    "Search query latency",
    ["cache"],
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5),
)
INDEX_BUILDS = MetricBridge(
    "counter",
    "entity_search_index_builds_total",
    "Index builds by outcome",
    ["status"],
)
INDEX_BUILD_DURATION = MetricBridge(
    "histogram",
    "entity_search_index_build_seconds",
    "Index build duration, failed builds included",
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)
INDEX_DOC_COUNT = MetricBridge(
    "gauge",
    "entity_search_index_documents",
    "Documents in the active index snapshot",
    ["entity_type"],
)
CACHE_ERRORS = MetricBridge(
    "counter",
    "entity_search_cache_errors_total",
    "Swallowed cache-layer failures",
    ["operation"],
)


@contextmanager
def track_latency(histogram: MetricBridge, **labels: str) -> Iterator[None]:
    """Observe the block's wall time on ``histogram``, even when it raises."""
    start = time.perf_counter()
    try:
        yield
    finally:
        histogram.labels(**labels).observe(time.perf_counter() - start)


def get_metrics() -> bytes:
    """Prometheus text exposition of the default registry."""
    return generate_latest()


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
