"""Shared fixtures for exporter tests."""
import pytest

from runner_exporter.config import RunnerConfig
from runner_exporter.registry import MetricRegistry
from runner_exporter.runner_metrics import RunnerMetrics


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the caller's environment out of configuration loading."""
    for key in ("RUNNER_NAME", "RUNNER_TYPE", "LOG_LEVEL"):
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def registry():
    return MetricRegistry()


@pytest.fixture
def runner():
    return RunnerConfig(name="ci-1", type="gpu")


@pytest.fixture
def runner_metrics(registry, runner):
    metrics = RunnerMetrics(registry, runner, cache_window=4)
    metrics.declare()
    metrics.seed()
    return metrics


@pytest.fixture
def clock():
    return FakeClock()
