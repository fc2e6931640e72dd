"""Point-in-time views of metric families and their series."""
from dataclasses import dataclass
from typing import Optional, Tuple, Union

COUNTER = "counter"
GAUGE = "gauge"
HISTOGRAM = "histogram"

METRIC_KINDS = (COUNTER, GAUGE, HISTOGRAM)


@dataclass(frozen=True)
class SeriesSample:
    """Current value of a gauge or counter series."""
    label_values: Tuple[str, ...]
    value: float


@dataclass(frozen=True)
class HistogramSample:
    """Current state of a histogram series.

    ``bucket_counts`` is cumulative and aligned with the family's bucket
    bounds; the implicit +Inf bucket equals ``count``.
    """
    label_values: Tuple[str, ...]
    bucket_counts: Tuple[int, ...]
    sum: float
    count: int


@dataclass(frozen=True)
class FamilySnapshot:
    """Immutable copy of a metric family taken under its lock."""
    name: str
    kind: str
    help: str
    label_names: Tuple[str, ...]
    buckets: Optional[Tuple[float, ...]]
    samples: Tuple[Union[SeriesSample, HistogramSample], ...]

    def get(self, label_values: Tuple[str, ...]) -> Optional[Union[SeriesSample, HistogramSample]]:
        """Find the sample for an exact label value tuple."""
        for sample in self.samples:
            if sample.label_values == tuple(label_values):
                return sample
        return None
