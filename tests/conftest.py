"""Deterministic fakes for the batching engine and client tests."""

from __future__ import annotations

from typing import Any, Callable, List, Optional

import pytest

from harbor_analytics.core.events import Event
from harbor_analytics.identity import EnvironmentTraits, MemorySessionStore
from harbor_analytics.sender import SendResult


class ManualTimer:
    def __init__(self, due: float, callback: Callable[[], None]):
        self.due = due
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Scheduler driven by an explicit clock (seconds)."""

    def __init__(self) -> None:
        self.now = 0.0
        self.timers: List[ManualTimer] = []

    def after(self, delay_seconds: float, callback: Callable[[], None]) -> ManualTimer:
        timer = ManualTimer(self.now + delay_seconds, callback)
        self.timers.append(timer)
        return timer

    @property
    def pending(self) -> List[ManualTimer]:
        return [t for t in self.timers if not t.cancelled and not t.fired]

    def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while True:
            due = sorted((t for t in self.pending if t.due <= target), key=lambda t: t.due)
            if not due:
                break
            timer = due[0]
            self.now = timer.due
            timer.fired = True
            timer.callback()
        self.now = target


class InlineDispatcher:
    """Runs deliveries synchronously inside ``submit``."""

    def submit(self, fn: Callable[..., Any], *args: Any) -> None:
        fn(*args)


class DeferredDispatcher:
    """Holds deliveries until the test resolves them."""

    def __init__(self) -> None:
        self.pending: List[tuple] = []

    def submit(self, fn: Callable[..., Any], *args: Any) -> None:
        self.pending.append((fn, args))

    def run_next(self) -> None:
        fn, args = self.pending.pop(0)
        fn(*args)

    def run_pending(self) -> None:
        while self.pending:
            self.run_next()


class RecordingTransport:
    """Records deliveries; ``outcomes`` scripts success/failure per attempt."""

    def __init__(self, outcomes: Optional[List[bool]] = None, default: bool = True):
        self.outcomes = list(outcomes or [])
        self.default = default
        self.batches: List[List[Event]] = []
        self.beacons: List[List[Event]] = []

    def send_batch(self, events: List[Event]) -> SendResult:
        self.batches.append(list(events))
        success = self.outcomes.pop(0) if self.outcomes else self.default
        if success:
            return SendResult(success=True, status=200)
        return SendResult(success=False, error="HTTP error: 503 Service Unavailable", status=503)

    def send_beacon(self, events: List[Event]) -> None:
        self.beacons.append(list(events))

    @property
    def batch_names(self) -> List[List[str]]:
        return [[e.cargo_id for e in batch] for batch in self.batches]


def make_event(name: str, value: float = 1) -> Event:
    return Event(ship_id="sid_fp", cargo_id=name, value=value)


def names(events: List[Event]) -> List[str]:
    return [e.cargo_id for e in events]


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep host opt-outs and HARBOR_* settings out of the tests."""
    for var in ["DO_NOT_TRACK", "HARBOR_ID", "HARBOR_API_KEY", "HARBOR_ENDPOINT", "HARBOR_BATCH_SIZE", "HARBOR_BATCH_INTERVAL_MS", "HARBOR_DEBUG", "HARBOR_RESPECT_DNT"]:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def traits() -> EnvironmentTraits:
    return EnvironmentTraits(
        language="en-US",
        timezone_offset_minutes=-60,
        screen_width=1920,
        screen_height=1080,
        color_depth=24,
        concurrency=8,
        memory_gb=8,
        platform="Linux",
        indexed_storage=True,
        session_storage=True,
        max_touch_points=0,
    )


@pytest.fixture
def session_store() -> MemorySessionStore:
    return MemorySessionStore()
