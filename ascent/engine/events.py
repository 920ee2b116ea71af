"""
ascent.engine.events — ProgressionEvent and the append-only EventLog
=====================================================================

Every state change the engine (or the optimistic reducer) makes is
announced as an immutable :class:`ProgressionEvent`.  Events are derived,
never authoritative: they drive dashboard toasts and the audit trail, and
losing one never corrupts progression state.
"""

from __future__ import annotations

import enum
import itertools
import logging
import threading
from collections import deque
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from types import MappingProxyType
from typing import Any

from ascent.constants import EVENT_BUFFER_CAPACITY

logger = logging.getLogger(__name__)

__all__ = [
    "EventLog",
    "EventType",
    "ProgressionEvent",
    "parse_timestamp",
    "to_iso",
    "utcnow",
]


# ---------------------------------------------------------------------------
# Timestamp helpers: documents store ISO-8601 strings, code uses aware UTC
# ---------------------------------------------------------------------------
def utcnow() -> datetime:
    return datetime.now(UTC)


def to_iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.isoformat()


def parse_timestamp(value: datetime | str | None) -> datetime | None:
    """Accept a datetime or ISO string and return an aware datetime.

    Naive values are assumed to be UTC (SQLite drops tzinfo on the way back).
    """
    if value is None or value == "":
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value


# ---------------------------------------------------------------------------
# Event types
# ---------------------------------------------------------------------------
class EventType(enum.StrEnum):
    ACHIEVEMENT_UNLOCKED = "achievement_unlocked"
    CHALLENGE_COMPLETED = "challenge_completed"
    CHALLENGE_FAILED = "challenge_failed"
    QUEST_PROGRESS = "quest_progress"
    QUEST_COMPLETED = "quest_completed"
    QUEST_FAILED = "quest_failed"
    LEVEL_UP = "level_up"


@dataclass(frozen=True, slots=True)
class ProgressionEvent:
    """Immutable record of one progression change.

    ``payload`` is frozen into a read-only mapping on construction so an
    event handed to a notification consumer cannot be edited in place.
    """

    type: EventType
    user_id: str
    payload: Mapping[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        object.__setattr__(self, "payload", MappingProxyType(dict(self.payload)))

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "user_id": self.user_id,
            "timestamp": to_iso(self.timestamp),
            "payload": dict(self.payload),
        }


# ---------------------------------------------------------------------------
# EventLog: insertion-ordered buffer with one-shot drain
# ---------------------------------------------------------------------------
class EventLog:
    """Thread-safe event ring buffer.

    Ordering is insertion order; two events with the same timestamp keep
    the order in which they were appended.  :meth:`drain` hands each event
    out exactly once.  At most *capacity* undrained events are kept; when
    full, the oldest is evicted to make room.
    """

    def __init__(self, capacity: int = EVENT_BUFFER_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError(f"EventLog capacity must be positive, got {capacity}")
        self.capacity = capacity
        self.dropped = 0
        self._entries: deque[tuple[int, ProgressionEvent]] = deque(maxlen=capacity)
        self._lock = threading.Lock()
        self._seq = itertools.count(1)

    def append(self, event: ProgressionEvent) -> int:
        """Buffer *event* and return its sequence number."""
        evicted: ProgressionEvent | None = None
        with self._lock:
            seq = next(self._seq)
            if len(self._entries) == self.capacity:
                evicted = self._entries[0][1]
                self.dropped += 1
            self._entries.append((seq, event))
            dropped = self.dropped

        if evicted is not None:
            log = logger.warning if dropped == 1 else logger.debug
            log(
                "Event buffer full (%d); dropped undrained %s event for user %s (%d dropped so far)",
                self.capacity, evicted.type, evicted.user_id, dropped,
            )
        return seq

    def drain(self, user_id: str | None = None) -> list[ProgressionEvent]:
        """Return and remove buffered events, oldest first.

        With *user_id*, only that user's events are removed; everyone
        else's stay buffered for their own drain.
        """
        with self._lock:
            if user_id is None:
                everything = [event for _, event in self._entries]
                self._entries.clear()
                return everything

            drained: list[ProgressionEvent] = []
            kept: deque[tuple[int, ProgressionEvent]] = deque(maxlen=self.capacity)
            for seq, event in self._entries:
                if event.user_id == user_id:
                    drained.append(event)
                else:
                    kept.append((seq, event))
            self._entries = kept
            return drained

    def snapshot(self) -> list[ProgressionEvent]:
        """Read buffered events without consuming them."""
        with self._lock:
            return [event for _, event in self._entries]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
