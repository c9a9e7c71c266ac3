"""Index metrics, exported through Prometheus and mirrored to OpenTelemetry.

Each metric owns a ``prometheus_client`` collector registered on import and
an OpenTelemetry instrument created on first use. Without ``init_metrics``
the instruments come from the global meter provider, which is a no-op
until the host application installs one.
"""

from __future__ import annotations

from contextlib import contextmanager
import threading
import time
from typing import TYPE_CHECKING, Any

from opentelemetry import metrics as otel_metrics
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import MetricReader
from opentelemetry.sdk.resources import Resource
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, CollectorRegistry, Counter, Gauge, Histogram, generate_latest


if TYPE_CHECKING:
    from collections.abc import Generator, Sequence


_otel_state: dict[str, Any] = {"provider": None, "meter": None}


def init_metrics(
    service_name: str = "folklore",
    *,
    resource_attributes: dict[str, str] | None = None,
    metric_readers: Sequence[MetricReader] = (),
) -> MeterProvider:
    """Install an SDK meter provider once; later calls return the same one."""
    if _otel_state["provider"] is not None:
        return _otel_state["provider"]
    resource = Resource.create({"service.name": service_name, **(resource_attributes or {})})
    provider = MeterProvider(resource=resource, metric_readers=list(metric_readers))
    otel_metrics.set_meter_provider(provider)
    _otel_state["provider"] = provider
    _otel_state["meter"] = provider.get_meter("folklore")
    return provider


def _meter():
    if _otel_state["meter"] is None:
        _otel_state["meter"] = otel_metrics.get_meter("folklore")
    return _otel_state["meter"]


class _Labeled:
    __slots__ = ("_labels", "_metric")

    def __init__(self, metric: Any, labels: dict[str, str]) -> None:
        self._metric = metric
        self._labels = labels

    def inc(self, amount: float = 1.0) -> None:
        self._metric.inc(self._labels, amount)

    def observe(self, value: float) -> None:
        self._metric.observe(self._labels, value)

    def set(self, value: float) -> None:
        self._metric.set(self._labels, value)


class _Metric:
    prom_type: type

    def __init__(self, name: str, documentation: str, labelnames: Sequence[str], **prom_options: Any) -> None:
        self.name = name
        self.documentation = documentation
        self.prom = self.prom_type(name, documentation, list(labelnames), **prom_options)
        self._instrument = None

    def labels(self, **labels: str) -> _Labeled:
        return _Labeled(self, labels)

    def _otel(self):
        if self._instrument is None:
            self._instrument = self._create_instrument(_meter())
        return self._instrument

    def _create_instrument(self, meter):
        raise NotImplementedError


class CounterMetric(_Metric):
    prom_type = Counter

    def _create_instrument(self, meter):
        return meter.create_counter(self.name, description=self.documentation)

    def inc(self, labels: dict[str, str], amount: float = 1.0) -> None:
        self.prom.labels(**labels).inc(amount)
        self._otel().add(amount, labels)


class HistogramMetric(_Metric):
    prom_type = Histogram

    def _create_instrument(self, meter):
        return meter.create_histogram(self.name, unit="s", description=self.documentation)

    def observe(self, labels: dict[str, str], value: float) -> None:
        self.prom.labels(**labels).observe(value)
        self._otel().record(value, labels)

    @contextmanager
    def time(self, **labels: str) -> Generator[None, None, None]:
        """Observe the duration of the block, including when it raises."""
        start = time.perf_counter()
        try:
            yield
        finally:
            self.observe(labels, time.perf_counter() - start)


class GaugeMetric(_Metric):
    """Absolute values in Prometheus; deltas on an OTel up-down counter."""

    prom_type = Gauge

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._lock = threading.Lock()
        self._last: dict[tuple[tuple[str, str], ...], float] = {}

    def _create_instrument(self, meter):
        return meter.create_up_down_counter(self.name, description=self.documentation)

    def set(self, labels: dict[str, str], value: float) -> None:
        key = tuple(sorted(labels.items()))
        with self._lock:
            self.prom.labels(**labels).set(value)
            delta = value - self._last.get(key, 0.0)
            self._last[key] = value
        if delta:
            self._otel().add(delta, labels)


SEARCH_LATENCY = HistogramMetric(
    "folklore_search_latency_seconds",
    "Time to rank one page of search results",
    ["match_mode"],
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5),
)

INGEST_LATENCY = HistogramMetric(
    "folklore_ingest_latency_seconds",
    "Time spent applying a write to the index",
    ["operation"],
    buckets=(0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0),
)

INGEST_COUNT = CounterMetric(
    "folklore_ingest_total",
    "Pages handled by the indexer, by outcome",
    ["status"],
)

INDEX_DOC_COUNT = GaugeMetric(
    "folklore_index_documents",
    "Documents in the published snapshot",
    ["index"],
)

INDEX_TERM_COUNT = GaugeMetric(
    "folklore_index_terms",
    "Distinct terms in the published snapshot",
    ["index"],
)


def track_latency(histogram: HistogramMetric, **labels: str):
    """Context manager observing the block's duration on ``histogram``."""
    return histogram.time(**labels)


def get_metrics(registry: CollectorRegistry = REGISTRY) -> bytes:
    """Prometheus text exposition, for an HTTP wrapper's /metrics route."""
    return generate_latest(registry)


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
