"""Prometheus exposition of the metric registry using prometheus_client."""
from typing import Iterator
import logging

from prometheus_client import (
    Counter, Gauge, Histogram,
    CollectorRegistry, generate_latest, CONTENT_TYPE_LATEST
)
from prometheus_client.core import (
    CounterMetricFamily,
    GaugeMetricFamily,
    HistogramMetricFamily,
    Metric,
)
from prometheus_client.registry import Collector
from prometheus_client.utils import floatToGoString

from runner_exporter.config import ExporterConfig
from runner_exporter.registry import MetricRegistry
from runner_exporter.series import COUNTER, GAUGE, FamilySnapshot

logger = logging.getLogger(__name__)


def _to_prometheus(family: FamilySnapshot) -> Metric:
    """Convert one family snapshot into a prometheus_client metric family."""
    labels = list(family.label_names)

    if family.kind == GAUGE:
        metric = GaugeMetricFamily(family.name, family.help, labels=labels)
        for sample in family.samples:
            metric.add_metric(list(sample.label_values), sample.value)
        return metric

    if family.kind == COUNTER:
        metric = CounterMetricFamily(family.name, family.help, labels=labels)
        for sample in family.samples:
            metric.add_metric(list(sample.label_values), sample.value)
        return metric

    metric = HistogramMetricFamily(family.name, family.help, labels=labels)
    for sample in family.samples:
        buckets = [
            (floatToGoString(bound), count)
            for bound, count in zip(family.buckets, sample.bucket_counts)
        ]
        buckets.append(("+Inf", sample.count))
        metric.add_metric(list(sample.label_values), buckets, sample.sum)
    return metric


class RegistryCollector(Collector):
    """Collector that projects MetricRegistry snapshots on every scrape."""

    def __init__(self, registry: MetricRegistry):
        self.registry = registry

    def collect(self) -> Iterator[Metric]:
        for family in self.registry.snapshot():
            yield _to_prometheus(family)


class PrometheusExporter:
    """Owns the CollectorRegistry served on /metrics."""

    def __init__(self, registry: MetricRegistry, config: ExporterConfig = None):
        self.config = config or ExporterConfig()
        # Use a custom registry to avoid exporting default Python/process metrics
        self.collector_registry = CollectorRegistry()
        self.collector_registry.register(RegistryCollector(registry))

        self.self_metrics = None
        if self.config.self_metrics:
            self.self_metrics = SelfMetrics(
                registry=self.collector_registry,
                prefix=self.config.prefix
            )

        logger.info("Prometheus exporter initialized")

    def render(self) -> bytes:
        """Render the current exposition text."""
        return generate_latest(self.collector_registry)

    @property
    def content_type(self) -> str:
        return CONTENT_TYPE_LATEST


class SelfMetrics:
    """Self-monitoring metrics for the updater."""

    def __init__(self, registry=None, prefix=""):
        if registry is None:
            registry = CollectorRegistry()

        self.ticks_total = Counter(
            f"{prefix}exporter_ticks_total",
            "Total number of updater ticks",
            registry=registry
        )

        self.tick_duration_seconds = Histogram(
            f"{prefix}exporter_tick_duration_seconds",
            "Duration of each updater tick in seconds",
            buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0],
            registry=registry
        )

        self.events_applied_total = Counter(
            f"{prefix}exporter_events_applied_total",
            "Total number of job events applied to the registry",
            ["kind"],
            registry=registry
        )

        self.feed_errors_total = Counter(
            f"{prefix}exporter_feed_errors_total",
            "Total number of job events that could not be read",
            registry=registry
        )

        self.feed_depth = Gauge(
            f"{prefix}exporter_feed_depth",
            "Number of job events waiting in the feed",
            registry=registry
        )

    def record_tick(self, duration: float):
        """Record a completed tick."""
        self.ticks_total.inc()
        self.tick_duration_seconds.observe(duration)

    def record_event(self, kind: str):
        """Record an applied event."""
        self.events_applied_total.labels(kind=kind).inc()

    def record_feed_error(self):
        """Record an unreadable event."""
        self.feed_errors_total.inc()

    def set_feed_depth(self, depth: int):
        """Set feed backlog."""
        self.feed_depth.set(depth)
