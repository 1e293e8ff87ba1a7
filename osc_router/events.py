"""
Router Events - Audit trail of every received datagram

One RouterEvent per inbound datagram, whatever the outcome. The EventLog
keeps the most recent N (newest first) for the admin "recent events" view
and fans each event out to subscribers (live log panels, score hooks).
"""

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple

from .codec import OscArg, OscMessage

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 100


class EventOutcome(Enum):
    FORWARDED = "forwarded"
    WAITING = "waiting-for-more-parts"
    ERROR = "error"


@dataclass(frozen=True)
class RouterEvent:
    """Immutable record of one inbound datagram and what happened to it."""
    timestamp: float
    source: str
    outcome: EventOutcome
    address: Optional[str] = None
    args: Tuple[OscArg, ...] = ()
    station: Optional[str] = None
    destination: Optional[str] = None
    error: Optional[str] = None
    sent: Optional[OscMessage] = None
    message: str = ""

    @property
    def iso_time(self) -> str:
        return datetime.fromtimestamp(self.timestamp, tz=timezone.utc).isoformat()

    @property
    def is_error(self) -> bool:
        return self.outcome is EventOutcome.ERROR

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.iso_time,
            "source": self.source,
            "status": self.outcome.value,
            "address": self.address,
            "args": [arg.value for arg in self.args],
            "station": self.station,
            "destination": self.destination,
            "error": self.error,
            "sent": None if self.sent is None else {
                "address": self.sent.address,
                "args": self.sent.values,
            },
            "message": self.message,
        }


EventListener = Callable[[RouterEvent], None]
ClearListener = Callable[[], None]


def make_event(source: str, outcome: EventOutcome, **fields: Any) -> RouterEvent:
    return RouterEvent(timestamp=time.time(), source=source, outcome=outcome, **fields)


class EventLog:
    """
    Bounded newest-first event buffer with subscriber fan-out.

    Usage:
        log = EventLog(capacity=100)
        log.subscribe(lambda event: print(event.message))
        log.append(event)
        recent = log.snapshot()
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        if capacity < 1:
            raise ValueError("EventLog capacity must be at least 1")
        self._events: Deque[RouterEvent] = deque(maxlen=capacity)
        self._lock = threading.Lock()
        self._listeners: List[Tuple[EventListener, Optional[ClearListener]]] = []
        self._listeners_lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._events.maxlen

    def append(self, event: RouterEvent) -> None:
        """Insert at the front; the oldest entry drops once full."""
        with self._lock:
            self._events.appendleft(event)
        for on_event, _ in self._current_listeners():
            try:
                on_event(event)
            except Exception as exc:
                logger.error(f"Event listener error: {exc}")

    def snapshot(self) -> List[RouterEvent]:
        """Copy of the buffer, newest first."""
        with self._lock:
            return list(self._events)

    def clear(self) -> None:
        with self._lock:
            self._events.clear()
        for _, on_clear in self._current_listeners():
            if on_clear is None:
                continue
            try:
                on_clear()
            except Exception as exc:
                logger.error(f"Clear listener error: {exc}")

    def subscribe(self, on_event: EventListener, on_clear: Optional[ClearListener] = None) -> None:
        with self._listeners_lock:
            if all(existing != on_event for existing, _ in self._listeners):
                self._listeners.append((on_event, on_clear))

    def unsubscribe(self, on_event: EventListener) -> None:
        with self._listeners_lock:
            self._listeners = [entry for entry in self._listeners if entry[0] != on_event]

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)

    def _current_listeners(self) -> Tuple[Tuple[EventListener, Optional[ClearListener]], ...]:
        with self._listeners_lock:
            return tuple(self._listeners)
