"""Background updater that refreshes derived runner metrics on a fixed interval."""
from enum import Enum
from typing import Callable, Optional
import logging
import threading
import time

from runner_exporter.events import EventFeed, parse_event
from runner_exporter.exceptions import FeedReadError, RegistryError
from runner_exporter.prom_exporter import SelfMetrics
from runner_exporter.runner_metrics import RunnerMetrics

logger = logging.getLogger(__name__)


class UpdaterState(str, Enum):
    RUNNING = "running"
    STOPPED = "stopped"


class MetricsUpdater:
    """Sole writer of runner metrics after startup seeding.

    Each tick writes the uptime first and then drains a bounded number of
    job events from the feed, so a backed-up feed never delays the uptime
    update.
    """

    def __init__(
        self,
        runner_metrics: RunnerMetrics,
        feed: Optional[EventFeed] = None,
        interval_s: float = 5.0,
        max_events_per_tick: int = 1000,
        self_metrics: Optional[SelfMetrics] = None,
        clock: Callable[[], float] = time.monotonic,
        start_time: Optional[float] = None
    ):
        self.runner_metrics = runner_metrics
        self.feed = feed
        self.interval_s = interval_s
        self.max_events_per_tick = max_events_per_tick
        self.self_metrics = self_metrics
        self.clock = clock
        self.start_time = clock() if start_time is None else start_time
        self.tick_count = 0

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def state(self) -> UpdaterState:
        if self._thread is not None and self._thread.is_alive():
            return UpdaterState.RUNNING
        return UpdaterState.STOPPED

    def uptime(self) -> float:
        return max(0.0, self.clock() - self.start_time)

    def tick(self):
        """Execute one update cycle."""
        tick_start = time.monotonic()

        self.runner_metrics.set_uptime(self.uptime())

        applied = 0
        failed = 0
        if self.feed is not None:
            for raw in self.feed.drain(self.max_events_per_tick):
                try:
                    event = parse_event(raw)
                except FeedReadError as e:
                    failed += 1
                    logger.warning(f"Skipping unreadable job event: {e}")
                    if self.self_metrics:
                        self.self_metrics.record_feed_error()
                    continue

                try:
                    self.runner_metrics.apply(event)
                except RegistryError as e:
                    failed += 1
                    logger.error(f"Failed to apply {event.kind} event: {e}", exc_info=True)
                    continue

                applied += 1
                if self.self_metrics:
                    self.self_metrics.record_event(event.kind)

            if self.self_metrics:
                self.self_metrics.set_feed_depth(self.feed.depth())

        tick_duration = time.monotonic() - tick_start
        if self.self_metrics:
            self.self_metrics.record_tick(tick_duration)

        self.tick_count += 1
        logger.debug(
            f"Tick {self.tick_count}: applied {applied} events, "
            f"{failed} failed, in {tick_duration:.3f}s"
        )

        if self.tick_count % 60 == 0:  # Log every 60 ticks
            logger.info(
                f"Tick {self.tick_count}: uptime {self.uptime():.0f}s, "
                f"applied {applied} events in {tick_duration:.3f}s"
            )

    def run(self, stop_event: Optional[threading.Event] = None):
        """Tick until stop_event is set. Blocks the calling thread."""
        if stop_event is None:
            stop_event = self._stop_event

        logger.info(f"Starting metrics updater (interval {self.interval_s}s)")

        # Wait first, then tick, so a stop right after start returns at once
        next_tick = time.monotonic() + self.interval_s
        while not stop_event.wait(max(0.0, next_tick - time.monotonic())):
            try:
                self.tick()
            except Exception as e:
                logger.error(f"Error in tick: {e}", exc_info=True)

            next_tick += self.interval_s
            now = time.monotonic()
            if next_tick < now:
                logger.warning(
                    f"Tick ran past its {self.interval_s}s interval, skipping ahead"
                )
                next_tick = now + self.interval_s

        logger.info("Metrics updater stopped")

    def start(self) -> bool:
        """Start the updater in a background thread.

        Returns False when a previous loop thread is still alive, whether it
        is running or still finishing its last tick after stop().
        """
        if self._thread is not None and self._thread.is_alive():
            if self._stop_event.is_set():
                logger.warning("Previous metrics updater is still stopping, not starting")
            else:
                logger.warning("Metrics updater already running")
            return False

        # Each loop owns its stop event
        self._stop_event = threading.Event()
        self._thread = threading.Thread(
            target=self.run,
            args=(self._stop_event,),
            daemon=True,
            name="MetricsUpdater"
        )
        self._thread.start()
        return True

    def stop(self, timeout: float = 5.0) -> bool:
        """Signal the loop to stop and wait for the current tick to finish.

        Returns False if the loop thread is still alive after timeout; the
        updater keeps reporting RUNNING until a later stop() joins it.
        """
        logger.info("Stopping metrics updater")
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                logger.warning(f"Metrics updater did not stop within {timeout}s")
                return False
            self._thread = None
        return True
