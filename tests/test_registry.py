"""Tests for the in-process metric registry."""
import math
import threading

import pytest

from runner_exporter.exceptions import (
    DuplicateFamilyError,
    InvalidDeltaError,
    LabelMismatchError,
    MetricKindError,
    RegistryError,
    UnknownFamilyError,
)
from runner_exporter.registry import MetricRegistry
from runner_exporter.series import HistogramSample, SeriesSample


def test_declare_duplicate_family_fails(registry):
    registry.declare_family("jobs_total", "counter", "Jobs", ["status"])

    with pytest.raises(DuplicateFamilyError):
        registry.declare_family("jobs_total", "gauge", "Jobs again", ["status"])

    assert registry.families() == ["jobs_total"]


def test_write_to_undeclared_family_fails(registry):
    with pytest.raises(UnknownFamilyError):
        registry.set("missing", ("a",), 1)
    with pytest.raises(UnknownFamilyError):
        registry.increment("missing", ("a",), 1)
    with pytest.raises(UnknownFamilyError):
        registry.observe("missing", ("a",), 1)


def test_registry_errors_share_a_base_class():
    for error in (DuplicateFamilyError, UnknownFamilyError, LabelMismatchError,
                  InvalidDeltaError, MetricKindError):
        assert issubclass(error, RegistryError)


@pytest.mark.parametrize("kwargs", [
    dict(name="bad-name", kind="gauge", help="", label_names=[]),
    dict(name="ok", kind="summary", help="", label_names=[]),
    dict(name="ok", kind="gauge", help="", label_names=["1bad"]),
    dict(name="ok", kind="gauge", help="", label_names=["__reserved"]),
    dict(name="ok", kind="gauge", help="", label_names=["a", "a"]),
    dict(name="ok", kind="gauge", help="", label_names=[], buckets=[1, 2]),
    dict(name="ok", kind="histogram", help="", label_names=[], buckets=[]),
    dict(name="ok", kind="histogram", help="", label_names=[], buckets=[2, 1]),
    dict(name="ok", kind="histogram", help="", label_names=[], buckets=[1, 1]),
    dict(name="ok", kind="histogram", help="", label_names=["le"], buckets=[1]),
])
def test_declare_rejects_invalid_schema(registry, kwargs):
    with pytest.raises(ValueError):
        registry.declare_family(**kwargs)
    assert registry.families() == []


def test_histogram_drops_explicit_inf_bucket(registry):
    family = registry.declare_family("h", "histogram", "", [], buckets=[1, 5, float("inf")])
    assert family.buckets == (1.0, 5.0)


def test_gauge_keeps_most_recent_write(registry):
    registry.declare_family("temp", "gauge", "Temperature", ["zone"])

    registry.set("temp", ("a",), 10)
    registry.set("temp", ("a",), -3.5)
    registry.set("temp", {"zone": "b"}, 7)

    assert registry.get_value("temp", ("a",)) == -3.5
    assert registry.get_value("temp", ("b",)) == 7.0
    assert registry.get_value("temp", ("c",)) is None


def test_label_arity_mismatch(registry):
    registry.declare_family("temp", "gauge", "Temperature", ["zone", "rack"])

    with pytest.raises(LabelMismatchError):
        registry.set("temp", ("a",), 1)
    with pytest.raises(LabelMismatchError):
        registry.set("temp", ("a", "b", "c"), 1)
    with pytest.raises(LabelMismatchError):
        registry.set("temp", {"zone": "a"}, 1)
    with pytest.raises(LabelMismatchError):
        registry.set("temp", {"zone": "a", "row": "b"}, 1)

    assert registry.snapshot()[0].samples == ()


def test_mapping_labels_follow_schema_order(registry):
    registry.declare_family("temp", "gauge", "Temperature", ["zone", "rack"])

    registry.set("temp", {"rack": "r1", "zone": "z1"}, 1)

    assert registry.snapshot()[0].samples == (SeriesSample(("z1", "r1"), 1.0),)


def test_operations_check_family_kind(registry):
    registry.declare_family("g", "gauge", "", [])
    registry.declare_family("c", "counter", "", [])
    registry.declare_family("h", "histogram", "", [], buckets=[1])

    with pytest.raises(MetricKindError):
        registry.set("c", (), 1)
    with pytest.raises(MetricKindError):
        registry.increment("g", (), 1)
    with pytest.raises(MetricKindError):
        registry.observe("g", (), 1)
    with pytest.raises(MetricKindError):
        registry.get_value("h", ())


def test_counter_equals_sum_of_deltas(registry):
    registry.declare_family("jobs_total", "counter", "Jobs", ["status"])
    deltas = [0, 1, 2.5, 0, 10, 0.25]

    seen = []
    for delta in deltas:
        registry.increment("jobs_total", ("success",), delta)
        seen.append(registry.get_value("jobs_total", ("success",)))

    assert seen[-1] == sum(deltas)
    assert seen == sorted(seen)


def test_counter_starts_at_zero_and_default_delta_is_one(registry):
    registry.declare_family("jobs_total", "counter", "Jobs", ["status"])

    registry.increment("jobs_total", ("failure",))

    assert registry.get_value("jobs_total", ("failure",)) == 1.0


@pytest.mark.parametrize("delta", [-1, -0.001, float("nan")])
def test_invalid_delta_leaves_counter_unchanged(registry, delta):
    registry.declare_family("jobs_total", "counter", "Jobs", ["status"])
    registry.increment("jobs_total", ("success",), 3)

    with pytest.raises(InvalidDeltaError):
        registry.increment("jobs_total", ("success",), delta)

    assert registry.get_value("jobs_total", ("success",)) == 3.0


def test_invalid_delta_does_not_create_series(registry):
    registry.declare_family("jobs_total", "counter", "Jobs", ["status"])

    with pytest.raises(InvalidDeltaError):
        registry.increment("jobs_total", ("success",), -1)

    assert registry.snapshot()[0].samples == ()


def _histogram_sample(registry, name, labels) -> HistogramSample:
    for family in registry.snapshot():
        if family.name == name:
            return family.get(labels)
    raise AssertionError(f"{name} not in snapshot")


def test_observe_increments_buckets_at_or_above_sample(registry):
    bounds = [10, 20, 40, 80, 160]
    registry.declare_family("duration", "histogram", "", ["status"], buckets=bounds)

    for sample in [5, 20, 42, 1000]:
        before = _histogram_sample(registry, "duration", ("ok",))
        registry.observe("duration", ("ok",), sample)
        after = _histogram_sample(registry, "duration", ("ok",))

        before_counts = before.bucket_counts if before else (0,) * len(bounds)
        for bound, old, new in zip(bounds, before_counts, after.bucket_counts):
            if bound >= sample:
                assert new == old + 1
            else:
                assert new == old

    final = _histogram_sample(registry, "duration", ("ok",))
    assert final.bucket_counts == (1, 2, 2, 3, 3)
    assert final.count == 4
    assert final.sum == 5 + 20 + 42 + 1000


def test_histogram_buckets_are_cumulative(registry):
    registry.declare_family("duration", "histogram", "", [], buckets=[1, 2, 4, 8])

    for sample in [0.5, 1.5, 3, 3, 7, 9, 100]:
        registry.observe("duration", (), sample)

    sample = _histogram_sample(registry, "duration", ())
    assert list(sample.bucket_counts) == sorted(sample.bucket_counts)
    assert sample.bucket_counts[-1] <= sample.count
    assert sample.count == 7


def test_series_are_created_lazily(registry):
    registry.declare_family("jobs_total", "counter", "Jobs", ["status"])
    assert registry.snapshot()[0].samples == ()

    registry.increment("jobs_total", ("success",), 1)
    registry.increment("jobs_total", ("failure",), 1)

    labels = {s.label_values for s in registry.snapshot()[0].samples}
    assert labels == {("success",), ("failure",)}


def test_snapshot_is_a_copy(registry):
    registry.declare_family("duration", "histogram", "", [], buckets=[1])
    registry.observe("duration", (), 0.5)

    snapshot = registry.snapshot()
    registry.observe("duration", (), 0.5)

    assert snapshot[0].samples[0].count == 1
    assert _histogram_sample(registry, "duration", ()).count == 2


def test_snapshot_preserves_declaration_order(registry):
    for name in ["b", "a", "c"]:
        registry.declare_family(name, "gauge", "", [])

    assert [f.name for f in registry.snapshot()] == ["b", "a", "c"]


def test_snapshot_never_sees_partial_histogram_update(registry):
    registry.declare_family("duration", "histogram", "", ["status"], buckets=[1, 2, 5])
    stop = threading.Event()
    errors = []

    def writer():
        while not stop.is_set():
            registry.observe("duration", ("ok",), 1.0)

    def reader():
        for _ in range(2000):
            sample = registry.snapshot()[0].get(("ok",))
            if sample is None:
                continue
            # Every observation lands in every bucket, so all fields move together
            if not (sample.bucket_counts == (sample.count,) * 3
                    and sample.sum == float(sample.count)):
                errors.append(sample)

    writers = [threading.Thread(target=writer) for _ in range(2)]
    readers = [threading.Thread(target=reader) for _ in range(3)]
    for t in writers + readers:
        t.start()
    for t in readers:
        t.join()
    stop.set()
    for t in writers:
        t.join()

    assert errors == []


def test_concurrent_increments_are_not_lost(registry):
    registry.declare_family("jobs_total", "counter", "Jobs", ["status"])

    def worker():
        for _ in range(1000):
            registry.increment("jobs_total", ("success",), 1)

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert registry.get_value("jobs_total", ("success",)) == 4000.0


def test_gauge_accepts_special_floats(registry):
    registry.declare_family("g", "gauge", "", [])

    registry.set("g", (), float("inf"))
    assert math.isinf(registry.get_value("g", ()))
