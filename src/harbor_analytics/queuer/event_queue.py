"""In-memory event queue for the Harbor client.

This module provides the ordered buffer that holds tracked events until the
batching engine cuts them off for delivery. Order is preserved across failed
deliveries: a failed batch goes back to the head of the queue.

The queue is unbounded. Under a persistent transport failure it keeps
growing; nothing is silently evicted.
"""

from __future__ import annotations

import threading
from collections import deque
from typing import Iterable

from loguru import logger

from ..core.events import Event


class EventQueue:
    """Thread-safe FIFO queue of tracked events."""

    def __init__(self) -> None:
        self._queue: deque[Event] = deque()
        self._lock = threading.RLock()

        # Statistics
        self._total_enqueued = 0
        self._total_dequeued = 0
        self._total_requeued = 0

    def enqueue(self, event: Event) -> int:
        """Append an event to the tail.

        Returns:
            Queue size after the append
        """
        with self._lock:
            self._queue.append(event)
            self._total_enqueued += 1
            size = len(self._queue)

        logger.debug(f"Queued {event.cargo_id} event, queue size: {size}")
        return size

    def cut_batch(self, max_size: int) -> list[Event]:
        """Remove and return the first ``min(max_size, size)`` events."""
        with self._lock:
            count = min(max_size, len(self._queue))
            batch = [self._queue.popleft() for _ in range(count)]
            self._total_dequeued += count

        if batch:
            logger.debug(f"Cut batch of {len(batch)} events, queue size: {len(self._queue)}")
        return batch

    def requeue_front(self, batch: Iterable[Event]) -> int:
        """Put a failed batch back at the head, keeping its internal order.

        Returns:
            Queue size after the reinsert
        """
        events = list(batch)
        with self._lock:
            self._queue.extendleft(reversed(events))
            self._total_requeued += len(events)
            size = len(self._queue)

        logger.debug(f"Requeued {len(events)} events at queue head, queue size: {size}")
        return size

    def drain(self) -> list[Event]:
        """Remove and return every queued event."""
        with self._lock:
            events = list(self._queue)
            self._queue.clear()
            self._total_dequeued += len(events)
            return events

    def snapshot(self) -> list[Event]:
        """Return a copy of the queue contents without removing them."""
        with self._lock:
            return list(self._queue)

    def size(self) -> int:
        with self._lock:
            return len(self._queue)

    def is_empty(self) -> bool:
        with self._lock:
            return len(self._queue) == 0

    def __len__(self) -> int:
        return self.size()

    def get_stats(self) -> dict:
        """Get queue statistics."""
        with self._lock:
            return {
                "current_size": len(self._queue),
                "total_enqueued": self._total_enqueued,
                "total_dequeued": self._total_dequeued,
                "total_requeued": self._total_requeued,
            }
