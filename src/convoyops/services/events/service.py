"""Operation events: id assignment, network effects and the in-memory log."""

from __future__ import annotations

import threading
import time
from collections import deque
from datetime import datetime, timezone
from typing import Dict, List, Optional

from ...config import settings
from ...models.domain import (
    EventPayload,
    EventSeverity,
    EventType,
    OperationEvent,
    RoadSegment,
    SegmentStatus,
)
from ..network.service import RoadNetwork

BLOCKING_EVENTS = frozenset({EventType.BLOCK_ROAD, EventType.LANDSLIDE})

RISK_INCREMENTS: Dict[EventType, Dict[EventSeverity, float]] = {
    EventType.RAINFALL: {
        EventSeverity.LOW: 0.1,
        EventSeverity.MEDIUM: 0.2,
        EventSeverity.HIGH: 0.35,
    },
    EventType.CONGESTION: {
        EventSeverity.LOW: 0.05,
        EventSeverity.MEDIUM: 0.1,
        EventSeverity.HIGH: 0.2,
    },
}

DEFAULT_NOTES = "Simulated event"


def apply_event_to_network(network: RoadNetwork, event: OperationEvent) -> Optional[RoadSegment]:
    """Translate an event into a segment condition change; None when it has no road effect."""
    segment_id = event.payload.affected_segment_id
    if not segment_id:
        return None
    if event.type in BLOCKING_EVENTS:
        return network.update_segment_status(segment_id, SegmentStatus.BLOCKED)
    increments = RISK_INCREMENTS.get(event.type)
    if increments:
        return network.adjust_risk(segment_id, increments[event.payload.severity])
    return None


class EventLog:
    """Bounded, thread-safe history of operation events."""

    def __init__(self, limit: int | None = None) -> None:
        self._events: deque[OperationEvent] = deque(maxlen=limit or settings.event_log_limit)
        self._lock = threading.Lock()
        self._last_stamp = 0

    def _next_stamp(self) -> int:
        stamp = int(time.time() * 1000)
        if stamp <= self._last_stamp:
            stamp = self._last_stamp + 1
        self._last_stamp = stamp
        return stamp

    def record(
        self,
        event_type: EventType,
        severity: EventSeverity,
        *,
        convoy_id: Optional[str] = None,
        segment_id: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> OperationEvent:
        """Create an event with a server-assigned ``EVT-<millis>`` id and append it."""
        with self._lock:
            event = OperationEvent(
                id=f"EVT-{self._next_stamp()}",
                type=event_type,
                triggered_at=datetime.now(timezone.utc),
                convoy_id=convoy_id,
                payload=EventPayload(
                    severity=severity,
                    affected_segment_id=segment_id,
                    notes=notes or DEFAULT_NOTES,
                ),
            )
            self._events.append(event)
        return event

    def extend(self, events: List[OperationEvent]) -> None:
        """Append previously recorded events (oldest first), e.g. restored from disk."""
        with self._lock:
            for event in events:
                _, _, suffix = event.id.partition("-")
                if suffix.isdigit():
                    self._last_stamp = max(self._last_stamp, int(suffix))
                self._events.append(event)

    def recent(self, limit: Optional[int] = None) -> List[OperationEvent]:
        """Newest first."""
        with self._lock:
            events = list(reversed(self._events))
        return events[:limit] if limit else events

    def count(self, severity: Optional[EventSeverity] = None) -> int:
        with self._lock:
            if severity is None:
                return len(self._events)
            return sum(1 for event in self._events if event.payload.severity is severity)
