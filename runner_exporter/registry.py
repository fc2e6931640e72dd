"""In-process metric registry shared by the updater and scrape handlers."""
from typing import Dict, List, Optional, Sequence, Tuple
import logging
import math
import threading

from runner_exporter.exceptions import (
    DuplicateFamilyError,
    InvalidDeltaError,
    MetricKindError,
    UnknownFamilyError,
)
from runner_exporter.labels import (
    LabelValues,
    resolve_label_values,
    validate_label_names,
    validate_metric_name,
)
from runner_exporter.series import (
    COUNTER,
    GAUGE,
    HISTOGRAM,
    METRIC_KINDS,
    FamilySnapshot,
    HistogramSample,
    SeriesSample,
)

logger = logging.getLogger(__name__)


class _HistogramState:
    """Mutable histogram series state. Only touched under the family lock."""

    __slots__ = ("bucket_counts", "sum", "count")

    def __init__(self, num_buckets: int):
        self.bucket_counts: List[int] = [0] * num_buckets
        self.sum = 0.0
        self.count = 0


class MetricFamily:
    """A declared metric and all of its series."""

    def __init__(
        self,
        name: str,
        kind: str,
        help: str,
        label_names: Tuple[str, ...],
        buckets: Optional[Tuple[float, ...]] = None
    ):
        self.name = name
        self.kind = kind
        self.help = help
        self.label_names = label_names
        self.buckets = buckets

        # Guards series creation, value updates and snapshot copies
        self.lock = threading.Lock()
        self.series: Dict[Tuple[str, ...], object] = {}

    def snapshot(self) -> FamilySnapshot:
        with self.lock:
            if self.kind == HISTOGRAM:
                samples = tuple(
                    HistogramSample(key, tuple(state.bucket_counts), state.sum, state.count)
                    for key, state in self.series.items()
                )
            else:
                samples = tuple(
                    SeriesSample(key, value) for key, value in self.series.items()
                )

        return FamilySnapshot(
            name=self.name,
            kind=self.kind,
            help=self.help,
            label_names=self.label_names,
            buckets=self.buckets,
            samples=samples
        )


def _normalize_buckets(name: str, buckets: Sequence[float]) -> Tuple[float, ...]:
    """Validate histogram bucket bounds, dropping an explicit +Inf."""
    bounds = [float(b) for b in buckets if not (math.isinf(b) and b > 0)]

    if not bounds:
        raise ValueError(f"Histogram '{name}' needs at least one finite bucket")

    for b in bounds:
        if math.isnan(b) or math.isinf(b):
            raise ValueError(f"Histogram '{name}' has a non-finite bucket bound: {b}")

    for lower, upper in zip(bounds, bounds[1:]):
        if upper <= lower:
            raise ValueError(f"Histogram '{name}' buckets must be strictly increasing: {bounds}")

    return tuple(bounds)


class MetricRegistry:
    """Typed, labeled measurements keyed by family name and label values.

    Families are declared once up front. Series inside a family are created
    on first write and kept for the lifetime of the registry. Every write
    and every snapshot of a family happens under that family's lock, so a
    reader never sees a partially applied update.
    """

    def __init__(self):
        self._families: Dict[str, MetricFamily] = {}
        self._declare_lock = threading.Lock()

    def declare_family(
        self,
        name: str,
        kind: str,
        help: str,
        label_names: Sequence[str],
        buckets: Optional[Sequence[float]] = None
    ) -> MetricFamily:
        """Register a metric family."""
        if kind not in METRIC_KINDS:
            raise ValueError(f"Unknown metric kind '{kind}' for '{name}'")

        if not validate_metric_name(name):
            raise ValueError(f"Invalid metric name: '{name}'")

        label_names = tuple(label_names)
        if not validate_label_names(label_names):
            raise ValueError(f"Invalid label names for '{name}': {list(label_names)}")

        if kind == HISTOGRAM:
            if "le" in label_names:
                raise ValueError(f"Histogram '{name}' cannot use the reserved label 'le'")
            bounds = _normalize_buckets(name, buckets or ())
        elif buckets is not None:
            raise ValueError(f"Buckets are only valid for histograms, '{name}' is a {kind}")
        else:
            bounds = None

        family = MetricFamily(name, kind, help, label_names, bounds)

        with self._declare_lock:
            if name in self._families:
                raise DuplicateFamilyError(name)
            # Copy-on-write so readers iterate a dict that never changes size
            families = dict(self._families)
            families[name] = family
            self._families = families

        logger.info(f"Declared {kind} metric: {name} with labels {list(label_names)}")
        return family

    def _family(self, name: str, kind: str) -> MetricFamily:
        family = self._families.get(name)
        if family is None:
            raise UnknownFamilyError(name)
        if family.kind != kind:
            raise MetricKindError(
                f"Metric '{name}' is a {family.kind}, not a {kind}"
            )
        return family

    def set(self, name: str, label_values: LabelValues, value: float):
        """Set the current value of a gauge series."""
        family = self._family(name, GAUGE)
        key = resolve_label_values(name, family.label_names, label_values)
        value = float(value)

        with family.lock:
            family.series[key] = value

    def increment(self, name: str, label_values: LabelValues, delta: float = 1.0):
        """Add a non-negative delta to a counter series."""
        family = self._family(name, COUNTER)
        key = resolve_label_values(name, family.label_names, label_values)
        delta = float(delta)

        if math.isnan(delta) or delta < 0:
            raise InvalidDeltaError(
                f"Counter '{name}' can only increase, got delta {delta}"
            )

        with family.lock:
            family.series[key] = family.series.get(key, 0.0) + delta

    def observe(self, name: str, label_values: LabelValues, sample: float):
        """Record one observation in a histogram series."""
        family = self._family(name, HISTOGRAM)
        key = resolve_label_values(name, family.label_names, label_values)
        sample = float(sample)

        with family.lock:
            state = family.series.get(key)
            if state is None:
                state = _HistogramState(len(family.buckets))
                family.series[key] = state

            for i, bound in enumerate(family.buckets):
                if sample <= bound:
                    state.bucket_counts[i] += 1
            state.sum += sample
            state.count += 1

    def get_value(self, name: str, label_values: LabelValues) -> Optional[float]:
        """Current value of a gauge or counter series, None if never written."""
        family = self._families.get(name)
        if family is None:
            raise UnknownFamilyError(name)
        if family.kind == HISTOGRAM:
            raise MetricKindError(f"Metric '{name}' is a histogram, use snapshot()")

        key = resolve_label_values(name, family.label_names, label_values)
        with family.lock:
            return family.series.get(key)

    def families(self) -> List[str]:
        """Declared family names in declaration order."""
        return list(self._families.keys())

    def snapshot(self) -> Tuple[FamilySnapshot, ...]:
        """Copy every family, each one consistent at the moment it was read."""
        return tuple(family.snapshot() for family in self._families.values())
