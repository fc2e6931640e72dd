"""Label schema validation and label value resolution."""
from typing import Mapping, Sequence, Tuple, Union
import re

from runner_exporter.exceptions import LabelMismatchError

METRIC_NAME_RE = re.compile(r'^[a-zA-Z_:][a-zA-Z0-9_:]*$')
LABEL_NAME_RE = re.compile(r'^[a-zA-Z_][a-zA-Z0-9_]*$')

LabelValues = Union[Sequence[str], Mapping[str, str]]


def validate_metric_name(name: str) -> bool:
    """
    Validate a metric name is Prometheus-safe.

    Metric names must match [a-zA-Z_:][a-zA-Z0-9_:]*
    """
    return bool(METRIC_NAME_RE.match(name))


def validate_label_names(label_names: Sequence[str]) -> bool:
    """
    Validate label names are Prometheus-safe.

    Label names must match [a-zA-Z_][a-zA-Z0-9_]*, must not use the
    reserved "__" prefix and must not repeat.
    """
    if len(set(label_names)) != len(label_names):
        return False

    for name in label_names:
        if not LABEL_NAME_RE.match(name) or name.startswith("__"):
            return False

    return True


def resolve_label_values(
    metric_name: str,
    label_names: Tuple[str, ...],
    label_values: LabelValues
) -> Tuple[str, ...]:
    """
    Turn caller-supplied label values into the family's ordered key.

    Args:
        metric_name: Family name, used in error messages
        label_names: The family's label schema
        label_values: Either values in schema order, or a mapping of
            label name to value

    Returns:
        Tuple of string label values in schema order
    """
    if isinstance(label_values, Mapping):
        if set(label_values.keys()) != set(label_names):
            raise LabelMismatchError(
                f"Metric '{metric_name}' expects labels {list(label_names)}, "
                f"got {sorted(label_values.keys())}"
            )
        return tuple(str(label_values[name]) for name in label_names)

    if isinstance(label_values, str):
        # A bare string is a sequence of characters, never a label set
        raise LabelMismatchError(
            f"Metric '{metric_name}' expects {len(label_names)} label values, got a string"
        )

    values = tuple(str(v) for v in label_values)
    if len(values) != len(label_names):
        raise LabelMismatchError(
            f"Metric '{metric_name}' expects {len(label_names)} label values "
            f"{list(label_names)}, got {len(values)}"
        )
    return values


def label_key(label_names: Sequence[str], label_values: Sequence[str]) -> str:
    """Generate a readable key from labels, for logging."""
    return ",".join(f"{k}={v}" for k, v in zip(label_names, label_values))
