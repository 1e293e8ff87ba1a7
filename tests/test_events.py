"""
Tests for the bounded event log and its subscribers.
"""
import threading

import pytest

from osc_router.codec import OscArg, OscMessage
from osc_router.events import EventLog, EventOutcome, RouterEvent, make_event


def _event(n: int) -> RouterEvent:
    return make_event("10.0.0.1:5000", EventOutcome.FORWARDED, message=f"event {n}")


class TestEventLog:
    """Newest-first ring buffer."""

    def test_newest_first(self):
        log = EventLog()
        for n in range(3):
            log.append(_event(n))
        assert [e.message for e in log.snapshot()] == ["event 2", "event 1", "event 0"]

    def test_bounded_to_capacity(self):
        """150 appends to a 100-entry log keep the 100 most recent."""
        log = EventLog(capacity=100)
        for n in range(150):
            log.append(_event(n))

        snapshot = log.snapshot()
        assert len(snapshot) == 100
        assert snapshot[0].message == "event 149"
        assert snapshot[-1].message == "event 50"

    def test_default_capacity(self):
        assert EventLog().capacity == 100

    def test_invalid_capacity(self):
        with pytest.raises(ValueError):
            EventLog(capacity=0)

    def test_snapshot_is_a_copy(self):
        log = EventLog()
        log.append(_event(0))
        snapshot = log.snapshot()
        log.append(_event(1))
        assert len(snapshot) == 1
        assert len(log) == 2

    def test_clear(self):
        log = EventLog()
        log.append(_event(0))
        log.clear()
        assert log.snapshot() == []

    def test_concurrent_append_and_read(self):
        log = EventLog(capacity=50)
        errors = []

        def writer():
            for n in range(500):
                log.append(_event(n))

        def reader():
            try:
                for _ in range(500):
                    snapshot = log.snapshot()
                    assert len(snapshot) <= 50
                    assert all(isinstance(e, RouterEvent) for e in snapshot)
            except Exception as exc:
                errors.append(exc)

        threads = [threading.Thread(target=writer) for _ in range(3)]
        threads += [threading.Thread(target=reader) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert len(log) == 50


class TestSubscribers:
    """Every event reaches every current subscriber."""

    def test_all_subscribers_notified(self):
        log = EventLog()
        first, second = [], []
        log.subscribe(first.append)
        log.subscribe(second.append)

        event = _event(0)
        log.append(event)

        assert first == [event]
        assert second == [event]

    def test_subscribe_twice_delivers_once(self):
        log = EventLog()
        seen = []
        log.subscribe(seen.append)
        log.subscribe(seen.append)
        log.append(_event(0))
        assert len(seen) == 1

    def test_unsubscribe(self):
        log = EventLog()
        seen = []
        log.subscribe(seen.append)
        log.unsubscribe(seen.append)
        log.append(_event(0))
        assert seen == []

    def test_clear_notifies(self):
        log = EventLog()
        cleared = []
        log.subscribe(lambda event: None, on_clear=lambda: cleared.append(True))
        log.clear()
        assert cleared == [True]

    def test_failing_listener_does_not_break_append(self):
        log = EventLog()
        seen = []

        def broken(event):
            raise RuntimeError("boom")

        log.subscribe(broken)
        log.subscribe(seen.append)
        log.append(_event(0))

        assert len(seen) == 1
        assert len(log) == 1


class TestRouterEvent:
    """Event record helpers."""

    def test_to_dict(self):
        sent = OscMessage("/score", (OscArg.of_float(100.0),))
        event = make_event(
            "10.0.0.1:5000",
            EventOutcome.FORWARDED,
            address="/plinko/score",
            args=(OscArg.of_float(100.0),),
            station="plinko",
            destination="10.0.0.5:58008",
            sent=sent,
        )
        data = event.to_dict()
        assert data["status"] == "forwarded"
        assert data["args"] == [100.0]
        assert data["sent"] == {"address": "/score", "args": [100.0]}
        assert data["timestamp"].endswith("+00:00")

    def test_waiting_outcome_value(self):
        assert EventOutcome.WAITING.value == "waiting-for-more-parts"

    def test_is_error(self):
        assert make_event("x:1", EventOutcome.ERROR, error="boom").is_error
        assert not _event(0).is_error
