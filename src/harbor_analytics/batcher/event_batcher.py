"""Batching engine: decides when to cut a batch and hands it to the transport.

The engine owns the event queue, the single flush timer and the delivery
bookkeeping. Three triggers compete for the queue:

- size: an enqueue that brings the queue to ``batch_size`` flushes at once
- interval: the first event into an idle engine arms a timer
- teardown: the whole remaining queue goes out in one unobserved dispatch

States:

- IDLE: queue empty, no timer armed, nothing in flight
- PENDING: events waiting, timer armed
- FLUSHING: at least one delivery outstanding

Flushes are not serialized. A size-triggered flush may start while an earlier
delivery is still unresolved, since the batch is cut from the queue before
the transport is invoked and no in-flight flag is consulted. Two independent
batches can therefore be in flight at once.

A failed batch is reinserted at the head of the queue, ahead of anything
enqueued during the attempt, with its internal order intact.
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Protocol

from loguru import logger

from ..config import HarborConfig
from ..core.events import Event
from ..queuer import EventQueue
from ..sender import SendResult, Transport
from .timers import Scheduler, ThreadingScheduler, TimerHandle


class BatcherState(str, Enum):
    """Observable state of the batching engine."""

    IDLE = "idle"
    PENDING = "pending"
    FLUSHING = "flushing"


class FlushReason(str, Enum):
    SIZE = "size"
    INTERVAL = "interval"
    MANUAL = "manual"
    RETRY = "retry"


class Dispatcher(Protocol):
    """Runs a delivery off the caller's thread (``ThreadPoolExecutor`` shape)."""

    def submit(self, fn: Callable[..., Any], *args: Any) -> Any: ...


@dataclass(frozen=True)
class BatcherConfig:
    """Configuration for the batching engine."""

    batch_size: int = 100  # Events per batch; reaching it flushes immediately
    batch_interval_seconds: float = 5.0  # Maximum wait for a partial batch
    max_workers: int = 4  # Concurrent deliveries

    def __post_init__(self) -> None:
        if self.batch_size <= 0:
            raise ValueError("batch_size must be positive")
        if self.batch_interval_seconds <= 0:
            raise ValueError("batch_interval_seconds must be positive")

    @classmethod
    def from_config(cls, config: HarborConfig) -> "BatcherConfig":
        return cls(batch_size=config.batch_size, batch_interval_seconds=config.batch_interval_seconds)


class BatchingEngine:
    """Owns the queue and flush timer for one client session."""

    def __init__(
        self,
        config: BatcherConfig,
        transport: Transport,
        queue: Optional[EventQueue] = None,
        scheduler: Optional[Scheduler] = None,
        dispatcher: Optional[Dispatcher] = None,
    ):
        """Initialize the batching engine.

        Args:
            config: Batching configuration
            transport: Delivery operations for batches and the teardown dispatch
            queue: Event queue (a new empty one by default)
            scheduler: Timer capability (daemon timer threads by default)
            dispatcher: Executor for deliveries (a small thread pool by default)
        """
        self.config = config
        self.transport = transport
        self.queue = queue if queue is not None else EventQueue()
        self.scheduler: Scheduler = scheduler if scheduler is not None else ThreadingScheduler()

        self._owns_dispatcher = dispatcher is None
        self.dispatcher: Dispatcher = dispatcher if dispatcher is not None else ThreadPoolExecutor(max_workers=config.max_workers, thread_name_prefix="harbor-sender")

        self._lock = threading.RLock()
        self._timer: Optional[TimerHandle] = None
        self._timer_generation = 0
        self._in_flight = 0
        self._closed = False

        # Statistics
        self._total_flushes: Dict[str, int] = {reason.value: 0 for reason in FlushReason}
        self._total_batches_delivered = 0
        self._total_batches_failed = 0
        self._total_events_requeued = 0
        self._max_in_flight = 0

    @property
    def state(self) -> BatcherState:
        with self._lock:
            if self._in_flight > 0:
                return BatcherState.FLUSHING
            if self._timer is not None:
                return BatcherState.PENDING
            return BatcherState.IDLE

    @property
    def in_flight(self) -> int:
        with self._lock:
            return self._in_flight

    @property
    def timer_armed(self) -> bool:
        with self._lock:
            return self._timer is not None

    @property
    def closed(self) -> bool:
        return self._closed

    def enqueue(self, event: Event) -> bool:
        """Append an event and evaluate the size and interval triggers.

        Returns:
            False if the engine has been torn down and the event was dropped
        """
        with self._lock:
            if self._closed:
                logger.debug(f"Engine torn down, dropping {event.cargo_id} event")
                return False

            size = self.queue.enqueue(event)
            if size >= self.config.batch_size:
                self._flush_locked(FlushReason.SIZE)
            elif self._timer is None:
                self._arm_timer_locked()
            return True

    def flush(self) -> bool:
        """Cut and dispatch one batch now, regardless of triggers.

        Returns:
            True if a batch was dispatched, False if the queue was empty
        """
        with self._lock:
            if self._closed:
                return False
            return self._flush_locked(FlushReason.MANUAL)

    def teardown(self) -> int:
        """Send everything still queued in one unobserved dispatch.

        Only the first call has an effect. Later ``enqueue`` calls are dropped.

        Returns:
            Number of events handed to the teardown dispatch
        """
        with self._lock:
            if self._closed:
                return 0
            self._closed = True
            self._cancel_timer_locked()
            events = self.queue.drain()

        if events:
            logger.debug(f"Teardown dispatch of {len(events)} remaining events")
            try:
                self.transport.send_beacon(events)
            except Exception as e:  # noqa: BLE001
                logger.debug(f"Teardown dispatch raised: {e}")

        if self._owns_dispatcher and isinstance(self.dispatcher, ThreadPoolExecutor):
            self.dispatcher.shutdown(wait=False)

        return len(events)

    def get_stats(self) -> Dict[str, Any]:
        """Get engine statistics."""
        with self._lock:
            return {
                "state": self.state.value,
                "queue_size": self.queue.size(),
                "in_flight": self._in_flight,
                "max_in_flight": self._max_in_flight,
                "timer_armed": self._timer is not None,
                "flushes": dict(self._total_flushes),
                "total_batches_delivered": self._total_batches_delivered,
                "total_batches_failed": self._total_batches_failed,
                "total_events_requeued": self._total_events_requeued,
                "closed": self._closed,
                "config": {
                    "batch_size": self.config.batch_size,
                    "batch_interval_seconds": self.config.batch_interval_seconds,
                },
            }

    def _flush_locked(self, reason: FlushReason) -> bool:
        """Cut a batch and dispatch it. Caller holds the lock."""
        self._cancel_timer_locked()

        batch = self.queue.cut_batch(self.config.batch_size)
        if not batch:
            return False

        self._in_flight += 1
        self._max_in_flight = max(self._max_in_flight, self._in_flight)
        self._total_flushes[reason.value] += 1
        enqueued_mark = self.queue.get_stats()["total_enqueued"]

        # Leftovers wait for the next interval
        if not self.queue.is_empty():
            self._arm_timer_locked()

        logger.debug(f"Flushing {len(batch)} events ({reason.value}), in flight: {self._in_flight}")

        try:
            self.dispatcher.submit(self._deliver, batch, enqueued_mark)
        except RuntimeError as e:
            # Dispatcher already shut down
            logger.warning(f"Could not dispatch batch: {e}")
            self._in_flight -= 1
            self._total_flushes[reason.value] -= 1
            self._recover_locked(batch)
            if self._timer is None:
                self._arm_timer_locked()
            return False
        return True

    def _deliver(self, batch: List[Event], enqueued_mark: int) -> None:
        """Run one delivery attempt and report the outcome."""
        try:
            result = self.transport.send_batch(batch)
        except Exception as e:  # noqa: BLE001
            result = SendResult(success=False, error=f"Transport raised: {e}")
        self._on_delivery_complete(batch, result, enqueued_mark)

    def _on_delivery_complete(self, batch: List[Event], result: SendResult, enqueued_mark: int) -> None:
        with self._lock:
            self._in_flight -= 1

            if result.success:
                self._total_batches_delivered += 1
                logger.debug(f"Delivered batch of {len(batch)} events")
            else:
                self._total_batches_failed += 1
                if self._closed:
                    logger.debug(f"Dropping failed batch of {len(batch)} events after teardown")
                    return
                logger.debug(f"Delivery failed ({result.error}), requeueing {len(batch)} events")
                self._recover_locked(batch)

            if self._closed:
                return

            size = self.queue.size()
            arrived_during_attempt = self.queue.get_stats()["total_enqueued"] > enqueued_mark
            if size >= self.config.batch_size and (result.success or arrived_during_attempt):
                self._flush_locked(FlushReason.RETRY)
            elif size > 0 and self._timer is None:
                # An armed timer already covers events that arrived mid-delivery
                self._arm_timer_locked()

    def _recover_locked(self, batch: List[Event]) -> None:
        """Restore a failed batch to the head of the queue."""
        self.queue.requeue_front(batch)
        self._total_events_requeued += len(batch)

    def _arm_timer_locked(self) -> None:
        """(Re)arm the flush timer; any previous timer is cancelled first."""
        self._cancel_timer_locked()
        self._timer_generation += 1
        generation = self._timer_generation
        self._timer = self.scheduler.after(self.config.batch_interval_seconds, lambda: self._on_timer(generation))

    def _cancel_timer_locked(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_timer(self, generation: int) -> None:
        with self._lock:
            # A cancelled timer thread may still fire; ignore stale generations
            if generation != self._timer_generation or self._timer is None or self._closed:
                return
            self._timer = None
            self._flush_locked(FlushReason.INTERVAL)
