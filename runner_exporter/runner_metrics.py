"""Runner metric families, their initial values and job event translation."""
from collections import deque
from typing import Deque, Dict, Tuple
import logging

from runner_exporter.config import RUNNER_VERSION, RunnerConfig
from runner_exporter.events import CacheLookup, JobEvent, JobFinished
from runner_exporter.registry import MetricRegistry
from runner_exporter.series import COUNTER, GAUGE, HISTOGRAM

logger = logging.getLogger(__name__)

RUNNER_LABELS = ("runner_name", "runner_type")


def exponential_buckets(start: float, factor: float, count: int) -> Tuple[float, ...]:
    """Bucket bounds start, start*factor, ... with count entries."""
    if start <= 0 or factor <= 1 or count < 1:
        raise ValueError(
            f"Invalid exponential buckets: start={start}, factor={factor}, count={count}"
        )
    return tuple(start * factor ** i for i in range(count))


# 10s to ~85min
JOB_DURATION_BUCKETS = exponential_buckets(10, 2, 10)

# (base name, kind, help, extra labels, buckets)
RUNNER_FAMILIES = [
    ("runner_status", GAUGE, "Runner online status (1=online, 0=offline)", (), None),
    ("runner_uptime_seconds", GAUGE, "Runner uptime in seconds", (), None),
    ("runner_info", GAUGE, "Runner metadata", ("version",), None),
    ("jobs_total", COUNTER, "Total jobs executed by status", ("status",), None),
    ("job_duration_seconds", HISTOGRAM, "Job duration in seconds", ("status",), JOB_DURATION_BUCKETS),
    ("cache_hit_rate", GAUGE, "Cache hit rate (0.0 to 1.0)", ("cache_type",), None),
]


class RunnerMetrics:
    """Runner-specific view over a MetricRegistry.

    Declares the runner families, seeds their startup values and turns job
    events into registry writes. Every series carries the runner's name and
    type as its first two labels.
    """

    def __init__(
        self,
        registry: MetricRegistry,
        runner: RunnerConfig,
        prefix: str = "",
        cache_window: int = 100
    ):
        self.registry = registry
        self.runner = runner
        self.prefix = prefix
        self.cache_window = cache_window

        # Recent lookup outcomes per cache type, for the rolling hit rate
        self._cache_lookups: Dict[str, Deque[bool]] = {}

    def name(self, base_name: str) -> str:
        """Full exposed name of a runner family."""
        return f"{self.prefix}{base_name}"

    @property
    def identity(self) -> Tuple[str, str]:
        return (self.runner.name, self.runner.type)

    def declare(self):
        """Declare every runner family in the registry."""
        for base_name, kind, help, extra_labels, buckets in RUNNER_FAMILIES:
            self.registry.declare_family(
                self.name(base_name),
                kind,
                help,
                RUNNER_LABELS + extra_labels,
                buckets
            )

    def seed(self):
        """Write the startup values: online, info carrier and zero uptime."""
        self.registry.set(self.name("runner_status"), self.identity, 1)
        self.registry.set(
            self.name("runner_info"),
            self.identity + (RUNNER_VERSION,),
            1
        )
        self.registry.set(self.name("runner_uptime_seconds"), self.identity, 0)
        logger.info(
            f"Seeded runner metrics for {self.runner.name} "
            f"(type: {self.runner.type}, version: {RUNNER_VERSION})"
        )

    def mark_offline(self):
        """Report the runner as offline."""
        self.registry.set(self.name("runner_status"), self.identity, 0)

    def set_uptime(self, uptime_s: float):
        self.registry.set(self.name("runner_uptime_seconds"), self.identity, uptime_s)

    def record_job(self, status: str, duration_s: float):
        """Count a finished job and observe its duration."""
        labels = self.identity + (status,)
        self.registry.increment(self.name("jobs_total"), labels, 1)
        self.registry.observe(self.name("job_duration_seconds"), labels, duration_s)

    def record_cache_lookup(self, cache_type: str, hit: bool) -> float:
        """Add a lookup outcome and publish the rolling hit rate."""
        window = self._cache_lookups.get(cache_type)
        if window is None:
            window = deque(maxlen=self.cache_window)
            self._cache_lookups[cache_type] = window
        window.append(hit)

        rate = sum(window) / len(window)
        self.registry.set(self.name("cache_hit_rate"), self.identity + (cache_type,), rate)
        return rate

    def apply(self, event: JobEvent):
        """Translate one job event into registry writes."""
        if isinstance(event, JobFinished):
            self.record_job(event.status, event.duration_s)
        elif isinstance(event, CacheLookup):
            self.record_cache_lookup(event.cache_type, event.hit)
        else:
            raise TypeError(f"Unsupported event: {event!r}")
