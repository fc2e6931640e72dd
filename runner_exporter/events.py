"""Job execution events and the feed that carries them to the updater."""
from abc import ABC, abstractmethod
from typing import Any, List, Literal, Union
import logging
import queue

from pydantic import BaseModel, Field, ValidationError

from runner_exporter.exceptions import FeedReadError

logger = logging.getLogger(__name__)


class JobFinished(BaseModel):
    """A job completed with a final status."""
    kind: Literal["job"] = "job"
    status: str = Field(min_length=1)
    duration_s: float = Field(ge=0, allow_inf_nan=False)


class CacheLookup(BaseModel):
    """A cache was consulted by a job step."""
    kind: Literal["cache"] = "cache"
    cache_type: str = Field(min_length=1)
    hit: bool


JobEvent = Union[JobFinished, CacheLookup]

_EVENT_MODELS = {
    "job": JobFinished,
    "cache": CacheLookup,
}


def parse_event(raw: Any) -> JobEvent:
    """
    Turn a raw feed item into a typed event.

    Args:
        raw: An event model, or a dict with a "kind" of "job" or "cache"

    Returns:
        JobFinished or CacheLookup

    Raises:
        FeedReadError: if the item is not a recognizable, valid event
    """
    if isinstance(raw, (JobFinished, CacheLookup)):
        return raw

    if not isinstance(raw, dict):
        raise FeedReadError(f"Unsupported event type: {type(raw).__name__}")

    kind = raw.get("kind")
    model = _EVENT_MODELS.get(kind) if isinstance(kind, str) else None
    if model is None:
        raise FeedReadError(f"Unknown event kind: {kind!r}")

    try:
        return model(**raw)
    except (ValidationError, TypeError) as e:
        raise FeedReadError(f"Invalid {kind} event: {e}") from e


class EventFeed(ABC):
    """Source of job events consumed by the updater."""

    @abstractmethod
    def drain(self, max_items: int) -> List[Any]:
        """Return up to max_items pending raw events without blocking."""
        pass

    def depth(self) -> int:
        """Number of events waiting, if known."""
        return 0


class QueueEventFeed(EventFeed):
    """Bounded in-memory feed. Publishing never blocks the producer."""

    def __init__(self, maxsize: int = 10000):
        self._queue: "queue.Queue[Any]" = queue.Queue(maxsize=maxsize)

    def publish(self, item: Any) -> bool:
        """Enqueue an event. Returns False when the feed is full."""
        try:
            self._queue.put_nowait(item)
        except queue.Full:
            logger.warning(f"Event feed full ({self._queue.maxsize}), dropping event")
            return False
        return True

    def drain(self, max_items: int) -> List[Any]:
        items = []
        while len(items) < max_items:
            try:
                items.append(self._queue.get_nowait())
            except queue.Empty:
                break
        return items

    def depth(self) -> int:
        return self._queue.qsize()
