"""Tests for label validation and resolution."""
import pytest

from runner_exporter.exceptions import LabelMismatchError
from runner_exporter.labels import (
    label_key,
    resolve_label_values,
    validate_label_names,
    validate_metric_name,
)


def test_metric_name_validation():
    assert validate_metric_name("runner_status")
    assert validate_metric_name("ns:runner_status")
    assert not validate_metric_name("1runner")
    assert not validate_metric_name("runner-status")
    assert not validate_metric_name("")


def test_label_name_validation():
    assert validate_label_names(["runner_name", "runner_type"])
    assert validate_label_names([])
    assert not validate_label_names(["runner:name"])
    assert not validate_label_names(["__name__"])
    assert not validate_label_names(["status", "status"])


def test_resolve_sequence_stringifies_values():
    assert resolve_label_values("m", ("a", "b"), ["x", 2]) == ("x", "2")


def test_resolve_mapping_uses_schema_order():
    values = resolve_label_values("m", ("a", "b"), {"b": "2", "a": "1"})
    assert values == ("1", "2")


def test_resolve_rejects_bare_string():
    with pytest.raises(LabelMismatchError):
        resolve_label_values("m", ("a", "b"), "ab")


def test_resolve_reports_expected_labels():
    with pytest.raises(LabelMismatchError, match="runner_name"):
        resolve_label_values("m", ("runner_name",), ())


def test_label_key():
    assert label_key(("a", "b"), ("1", "2")) == "a=1,b=2"
