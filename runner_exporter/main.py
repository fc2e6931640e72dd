"""Main entry point for the CI runner metrics exporter."""
import argparse
import logging
import sys
import time
from typing import Optional

from runner_exporter.config import Config, load_config
from runner_exporter.events import QueueEventFeed
from runner_exporter.exceptions import ListenError
from runner_exporter.http_api import MetricsAPI
from runner_exporter.prom_exporter import PrometheusExporter
from runner_exporter.registry import MetricRegistry
from runner_exporter.runner_metrics import RunnerMetrics
from runner_exporter.updater import MetricsUpdater


def setup_logging(log_level: str, log_format: str):
    """Setup logging configuration."""
    level = getattr(logging, log_level.upper(), logging.INFO)

    # Both formats render as structured text
    fmt = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

    logging.basicConfig(
        level=level,
        format=fmt,
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    # Reduce noise from some libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


class Exporter:
    """Owns the registry and wires it to the updater and the HTTP API."""

    def __init__(self, config: Config, start_time: Optional[float] = None):
        self.config = config
        self.registry = MetricRegistry()

        self.runner_metrics = RunnerMetrics(
            self.registry,
            config.runner,
            prefix=config.exporter.prefix,
            cache_window=config.updater.cache_window
        )
        self.runner_metrics.declare()
        self.runner_metrics.seed()

        self.prom_exporter = PrometheusExporter(self.registry, config.exporter)
        self.feed = QueueEventFeed(maxsize=config.updater.feed_maxsize)

        self.updater = MetricsUpdater(
            self.runner_metrics,
            feed=self.feed,
            interval_s=config.updater.interval_s,
            max_events_per_tick=config.updater.max_events_per_tick,
            self_metrics=self.prom_exporter.self_metrics,
            start_time=start_time
        )

        self.api = MetricsAPI(
            self.prom_exporter,
            runner=config.runner,
            updater=self.updater,
            feed=self.feed,
            control_enabled=config.control.enabled
        )

    def serve(self):
        """Start the updater and serve HTTP until shutdown."""
        self.updater.start()
        try:
            self.api.run(
                host=self.config.server.bind_address,
                port=self.config.server.port
            )
        finally:
            self.runner_metrics.mark_offline()
            self.updater.stop()


def main(argv=None):
    """Main function."""
    start_time = time.monotonic()

    parser = argparse.ArgumentParser(
        description="CI Runner Metrics Exporter - Expose runner metrics for Prometheus"
    )
    parser.add_argument(
        "--config",
        "-c",
        default=None,
        help="Path to configuration YAML file (optional)"
    )

    args = parser.parse_args(argv)

    # Load configuration
    try:
        config = load_config(args.config)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error loading configuration: {e}", file=sys.stderr)
        return 1

    # Setup logging
    setup_logging(config.global_.log_level, config.global_.log_format)
    logger = logging.getLogger(__name__)

    logger.info(
        f"Starting metrics exporter for runner: {config.runner.name} "
        f"(type: {config.runner.type})"
    )
    if args.config:
        logger.info(f"Configuration loaded from: {args.config}")
    logger.info(f"Update interval: {config.updater.interval_s}s")

    exporter = Exporter(config, start_time=start_time)

    try:
        exporter.serve()
    except ListenError as e:
        logger.error(f"Failed to start metrics server: {e}")
        return 1

    logger.info("Metrics exporter shut down")
    return 0


if __name__ == "__main__":
    sys.exit(main())
