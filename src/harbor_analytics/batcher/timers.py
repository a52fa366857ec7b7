"""Deferred-callback scheduling for the batching engine.

The engine only needs ``after(delay, callback) -> handle`` and
``handle.cancel()``. The default implementation runs callbacks on daemon
timer threads; tests substitute a manually advanced clock.
"""

from __future__ import annotations

import threading
from typing import Callable, Protocol


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Capability to run a callback once after a delay."""

    def after(self, delay_seconds: float, callback: Callable[[], None]) -> TimerHandle: ...


class ThreadingScheduler:
    """Runs each callback on its own daemon ``threading.Timer``."""

    def __init__(self, name: str = "harbor-flush-timer"):
        self.name = name

    def after(self, delay_seconds: float, callback: Callable[[], None]) -> TimerHandle:
        timer = threading.Timer(delay_seconds, callback)
        timer.daemon = True  # Never keep the host process alive
        timer.name = self.name
        timer.start()
        return timer
