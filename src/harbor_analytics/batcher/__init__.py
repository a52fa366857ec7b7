"""Batching module: flush triggers, timers and failure recovery."""

from .event_batcher import BatcherConfig, BatcherState, BatchingEngine, Dispatcher, FlushReason
from .timers import Scheduler, ThreadingScheduler, TimerHandle

__all__ = ["BatchingEngine", "BatcherConfig", "BatcherState", "FlushReason", "Dispatcher", "Scheduler", "ThreadingScheduler", "TimerHandle"]
