"""Tests for the batching engine's flush triggers and failure recovery."""

from __future__ import annotations

import pytest

from harbor_analytics.batcher import BatcherConfig, BatcherState, BatchingEngine

from .conftest import DeferredDispatcher, InlineDispatcher, RecordingTransport, make_event, names


def build_engine(scheduler, transport, dispatcher=None, batch_size=100, interval=5.0) -> BatchingEngine:
    return BatchingEngine(
        BatcherConfig(batch_size=batch_size, batch_interval_seconds=interval),
        transport=transport,
        scheduler=scheduler,
        dispatcher=dispatcher or InlineDispatcher(),
    )


def test_events_below_batch_size_flush_once_after_interval(scheduler):
    transport = RecordingTransport()
    engine = build_engine(scheduler, transport, batch_size=10)

    for name in ["a", "b", "c"]:
        engine.enqueue(make_event(name))
        scheduler.advance(1.0)

    assert transport.batches == []
    assert engine.state == BatcherState.PENDING

    scheduler.advance(2.5)

    assert transport.batch_names == [["a", "b", "c"]]
    assert engine.queue.is_empty()
    assert engine.state == BatcherState.IDLE


@pytest.mark.parametrize("batch_size", [1, 2, 5])
def test_reaching_batch_size_flushes_without_waiting(scheduler, batch_size):
    transport = RecordingTransport()
    engine = build_engine(scheduler, transport, batch_size=batch_size)

    for i in range(batch_size):
        engine.enqueue(make_event(f"e{i}"))

    assert transport.batch_names == [[f"e{i}" for i in range(batch_size)]]
    assert scheduler.now == 0.0
    assert scheduler.pending == []


def test_size_and_interval_scenario(scheduler):
    transport = RecordingTransport()
    engine = build_engine(scheduler, transport, batch_size=2, interval=5.0)

    engine.enqueue(make_event("a"))
    scheduler.advance(0.010)
    engine.enqueue(make_event("b"))

    assert transport.batch_names == [["a", "b"]]
    assert engine.queue.is_empty()

    scheduler.advance(0.010)
    engine.enqueue(make_event("c"))
    assert engine.timer_armed

    scheduler.advance(4.9)
    assert transport.batch_names == [["a", "b"]]

    scheduler.advance(0.2)
    assert transport.batch_names == [["a", "b"], ["c"]]
    assert engine.state == BatcherState.IDLE


def test_at_most_one_timer_pending(scheduler):
    engine = build_engine(scheduler, RecordingTransport(), batch_size=50)

    for i in range(10):
        engine.enqueue(make_event(f"e{i}"))
        scheduler.advance(0.1)

    assert len(scheduler.pending) == 1


def test_size_flush_cancels_armed_timer(scheduler):
    transport = RecordingTransport()
    engine = build_engine(scheduler, transport, batch_size=2)

    engine.enqueue(make_event("a"))
    timer = scheduler.pending[0]
    engine.enqueue(make_event("b"))

    assert timer.cancelled
    assert scheduler.pending == []

    scheduler.advance(10.0)
    assert transport.batch_names == [["a", "b"]]


def test_failed_batch_restored_ahead_of_new_events(scheduler):
    transport = RecordingTransport(outcomes=[False])
    dispatcher = DeferredDispatcher()
    engine = build_engine(scheduler, transport, dispatcher=dispatcher, batch_size=10)

    engine.enqueue(make_event("a"))
    engine.enqueue(make_event("b"))
    assert engine.flush()
    assert engine.queue.is_empty()
    assert engine.state == BatcherState.FLUSHING

    engine.enqueue(make_event("c"))
    engine.enqueue(make_event("d"))
    dispatcher.run_pending()

    assert names(engine.queue.snapshot()) == ["a", "b", "c", "d"]
    assert engine.get_stats()["total_events_requeued"] == 2


def test_failure_with_arrivals_retriggers_immediately(scheduler):
    transport = RecordingTransport(outcomes=[False, True])
    dispatcher = DeferredDispatcher()
    engine = build_engine(scheduler, transport, dispatcher=dispatcher, batch_size=2)

    engine.enqueue(make_event("a"))
    engine.enqueue(make_event("b"))
    engine.enqueue(make_event("c"))  # arrives mid-attempt

    dispatcher.run_next()

    # Post-failure queue was [a, b, c]; the retry went out without a timer wait
    assert len(dispatcher.pending) == 1
    assert names(engine.queue.snapshot()) == ["c"]
    assert scheduler.now == 0.0

    dispatcher.run_pending()
    assert transport.batch_names == [["a", "b"], ["a", "b"]]
    assert engine.get_stats()["flushes"]["retry"] == 1


def test_failure_without_arrivals_waits_for_interval(scheduler):
    transport = RecordingTransport(outcomes=[False, True])
    engine = build_engine(scheduler, transport, batch_size=2)

    engine.enqueue(make_event("a"))
    engine.enqueue(make_event("b"))

    assert transport.batch_names == [["a", "b"]]
    assert names(engine.queue.snapshot()) == ["a", "b"]
    assert engine.state == BatcherState.PENDING

    scheduler.advance(5.0)

    assert transport.batch_names == [["a", "b"], ["a", "b"]]
    assert engine.queue.is_empty()


def test_next_enqueue_after_failure_triggers_flush(scheduler):
    transport = RecordingTransport(outcomes=[False])
    engine = build_engine(scheduler, transport, batch_size=2)

    engine.enqueue(make_event("a"))
    engine.enqueue(make_event("b"))
    engine.enqueue(make_event("c"))

    assert transport.batch_names == [["a", "b"], ["a", "b"]]
    assert names(engine.queue.snapshot()) == ["c"]


def test_queue_grows_under_persistent_failure(scheduler):
    transport = RecordingTransport(default=False)
    engine = build_engine(scheduler, transport, batch_size=3)

    for i in range(10):
        engine.enqueue(make_event(f"e{i}"))

    assert names(engine.queue.snapshot()) == [f"e{i}" for i in range(10)]

    scheduler.advance(5.0)
    assert engine.queue.size() == 10
    assert all(batch == ["e0", "e1", "e2"] for batch in transport.batch_names)


def test_overlapping_flushes_are_allowed(scheduler):
    transport = RecordingTransport()
    dispatcher = DeferredDispatcher()
    engine = build_engine(scheduler, transport, dispatcher=dispatcher, batch_size=2)

    for name in ["a", "b", "c", "d"]:
        engine.enqueue(make_event(name))

    # Second size-triggered flush started while the first was unresolved
    assert engine.in_flight == 2
    assert engine.state == BatcherState.FLUSHING

    dispatcher.run_pending()

    assert transport.batch_names == [["a", "b"], ["c", "d"]]
    assert engine.get_stats()["max_in_flight"] == 2
    assert engine.state == BatcherState.IDLE


def test_cut_leaving_remainder_arms_timer(scheduler):
    transport = RecordingTransport()
    engine = build_engine(scheduler, transport, batch_size=2)

    engine.queue.enqueue(make_event("a"))
    engine.queue.enqueue(make_event("b"))
    engine.queue.enqueue(make_event("c"))
    engine.flush()

    assert transport.batch_names == [["a", "b"]]
    assert engine.timer_armed

    scheduler.advance(5.0)
    assert transport.batch_names == [["a", "b"], ["c"]]


def test_manual_flush_on_empty_queue(scheduler):
    engine = build_engine(scheduler, RecordingTransport())
    assert engine.flush() is False
    assert engine.state == BatcherState.IDLE


def test_teardown_dispatches_entire_queue_once(scheduler):
    transport = RecordingTransport()
    engine = build_engine(scheduler, transport, batch_size=3)
    engine.queue.enqueue(make_event("x"))
    for name in ["a", "b", "c", "d", "e"]:
        engine.queue.enqueue(make_event(name))

    assert engine.teardown() == 6
    assert engine.teardown() == 0

    assert [names(b) for b in transport.beacons] == [["x", "a", "b", "c", "d", "e"]]
    assert transport.batches == []
    assert engine.queue.is_empty()
    assert engine.enqueue(make_event("late")) is False


def test_teardown_cancels_timer_and_ignores_beacon_errors(scheduler):
    class ExplodingTransport(RecordingTransport):
        def send_beacon(self, events):
            raise OSError("connection reset")

    engine = build_engine(scheduler, ExplodingTransport())
    engine.enqueue(make_event("a"))

    assert engine.teardown() == 1
    assert scheduler.pending == []


def test_failure_after_teardown_is_not_requeued(scheduler):
    transport = RecordingTransport(outcomes=[False])
    dispatcher = DeferredDispatcher()
    engine = build_engine(scheduler, transport, dispatcher=dispatcher, batch_size=1)

    engine.enqueue(make_event("a"))
    engine.teardown()
    dispatcher.run_pending()

    assert engine.queue.is_empty()
    assert transport.beacons == []


def test_transport_exception_counts_as_failure(scheduler):
    class RaisingTransport(RecordingTransport):
        def send_batch(self, events):
            raise RuntimeError("boom")

    engine = build_engine(scheduler, RaisingTransport(), batch_size=1)
    engine.enqueue(make_event("a"))

    assert names(engine.queue.snapshot()) == ["a"]
    assert engine.get_stats()["total_batches_failed"] == 1


def test_stale_timer_callback_is_ignored(scheduler):
    transport = RecordingTransport()
    engine = build_engine(scheduler, transport, batch_size=10)

    engine.enqueue(make_event("a"))
    stale = scheduler.pending[0]
    engine.flush()

    # Cancelled timer thread that fires anyway
    stale.callback()
    assert transport.batch_names == [["a"]]


def test_batcher_config_rejects_non_positive_values():
    with pytest.raises(ValueError):
        BatcherConfig(batch_size=0)
    with pytest.raises(ValueError):
        BatcherConfig(batch_interval_seconds=0)


def test_delivery_completion_keeps_pending_timer(scheduler):
    transport = RecordingTransport()
    dispatcher = DeferredDispatcher()
    engine = build_engine(scheduler, transport, dispatcher=dispatcher, batch_size=2, interval=5.0)

    scheduler.advance(0.010)
    engine.enqueue(make_event("a"))
    engine.enqueue(make_event("b"))
    scheduler.advance(0.010)
    engine.enqueue(make_event("c"))
    timer = scheduler.pending[0]
    assert timer.due == pytest.approx(5.020)

    scheduler.advance(2.980)
    dispatcher.run_pending()

    assert scheduler.pending == [timer]

    scheduler.advance(2.1)
    dispatcher.run_pending()
    assert transport.batch_names == [["a", "b"], ["c"]]
    assert engine.state == BatcherState.IDLE


def test_rejected_dispatch_requeues_and_reports_no_flush(scheduler):
    class ClosedDispatcher:
        def submit(self, fn, *args):
            raise RuntimeError("cannot schedule new futures after shutdown")

    transport = RecordingTransport()
    engine = build_engine(scheduler, transport, dispatcher=ClosedDispatcher(), batch_size=10)
    engine.queue.enqueue(make_event("a"))

    assert engine.flush() is False
    assert names(engine.queue.snapshot()) == ["a"]
    assert engine.in_flight == 0
    assert engine.timer_armed
    assert engine.get_stats()["flushes"]["manual"] == 0
