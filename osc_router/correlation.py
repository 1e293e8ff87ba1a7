"""
Correlation Store - Pairs split score messages from quiz stations

The Mastermind hole sends two independent messages per answer:
a numeric "correct?" signal and a string "which answer" signal
(e.g. 1.0 and "True100"). They are combined into one outbound message.

Policy: latest value of each type wins, paired as soon as both halves are
present. A second numeric before any string replaces the first. Pending
halves never expire; the next full pair overwrites stale state.
"""

import threading
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from .codec import OscArg


@dataclass(frozen=True)
class CompletedPair:
    numeric: OscArg
    text: OscArg

    def as_args(self) -> Tuple[OscArg, OscArg]:
        """Outbound argument order: numeric first, then string."""
        return (self.numeric, self.text)


@dataclass
class _PendingPair:
    numeric: Optional[OscArg] = None
    text: Optional[OscArg] = None


class CorrelationStore:
    """At most one pending pair per station id. Thread-safe."""

    def __init__(self):
        self._pending: Dict[str, _PendingPair] = {}
        self._lock = threading.Lock()

    def deposit_numeric(self, station_id: str, value: OscArg) -> Optional[CompletedPair]:
        """Store the numeric half. Returns the completed pair, or None while waiting."""
        with self._lock:
            pending = self._pending.setdefault(station_id, _PendingPair())
            pending.numeric = value
            return self._take_if_complete(pending)

    def deposit_string(self, station_id: str, value: OscArg) -> Optional[CompletedPair]:
        """Store the string half. Returns the completed pair, or None while waiting."""
        with self._lock:
            pending = self._pending.setdefault(station_id, _PendingPair())
            pending.text = value
            return self._take_if_complete(pending)

    def deposit(self, station_id: str, value: OscArg) -> Optional[CompletedPair]:
        """Route a half to its slot by the argument's decoded type."""
        if value.is_numeric:
            return self.deposit_numeric(station_id, value)
        return self.deposit_string(station_id, value)

    def peek(self, station_id: str) -> Tuple[Optional[OscArg], Optional[OscArg]]:
        """Pending (numeric, string) halves for a station."""
        with self._lock:
            pending = self._pending.get(station_id)
            if pending is None:
                return (None, None)
            return (pending.numeric, pending.text)

    def clear(self) -> None:
        with self._lock:
            self._pending.clear()

    @staticmethod
    def _take_if_complete(pending: _PendingPair) -> Optional[CompletedPair]:
        if pending.numeric is None or pending.text is None:
            return None
        pair = CompletedPair(pending.numeric, pending.text)
        pending.numeric = None
        pending.text = None
        return pair
