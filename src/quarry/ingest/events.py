"""Indexing progress events and the publish/subscribe bus that carries them.

Events are transient: nothing reads them back from storage. Delivery is
synchronous and in publish order, to the subscribers registered at publish
time. There is no acknowledgement or retry; a subscriber that raises is
logged and skipped, and publishing with no subscribers is a no-op.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from quarry.db.models import IndexStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IndexingProgress:
    """One step of the indexer for one source.

    Attributes:
        source_id: Source being indexed.
        status: Index status at this step.
        step: ``extracting`` | ``chunking`` | ``embedding`` | ``complete`` (optional).
        message: Error message for ``error`` events.
        updated_at: Epoch milliseconds when the event was created.
    """

    source_id: str
    status: IndexStatus
    step: str | None = None
    message: str | None = None
    updated_at: int = field(default_factory=lambda: int(time.time() * 1000))


Subscriber = Callable[[IndexingProgress], None]


class ProgressBus:
    """Fan-out of IndexingProgress events to any number of subscribers."""

    def __init__(self) -> None:
        self._subscribers: list[Subscriber] = []
        self._lock = threading.Lock()

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register *callback*. Returns a function that unregisters it."""
        with self._lock:
            self._subscribers.append(callback)

        def _unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return _unsubscribe

    def publish(self, event: IndexingProgress) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(event)
            except Exception:
                logger.warning("Progress subscriber %r failed", callback, exc_info=True)
