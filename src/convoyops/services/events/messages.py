"""Notification messages pushed to dashboard and mobile clients.

Each message type carries exactly one payload shape and a fixed ``name`` used
as the channel/topic by publishers.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _jsonable(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {key: _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    return value


@dataclass(slots=True)
class Message:
    name: ClassVar[str] = "message"

    def to_payload(self) -> Dict[str, Any]:
        return {"event": self.name, "data": _jsonable(asdict(self))}


@dataclass(slots=True)
class ConvoyCreated(Message):
    name: ClassVar[str] = "convoy.created"
    convoy_id: str
    priority: str
    timestamp: datetime = field(default_factory=_utcnow)


@dataclass(slots=True)
class ConvoyRerouted(Message):
    name: ClassVar[str] = "convoy.reroute"
    convoy_id: str
    route_id: str
    eta_hours: float
    distance_km: float
    risk_score: float
    timestamp: datetime = field(default_factory=_utcnow)


@dataclass(slots=True)
class ConvoyStatusChanged(Message):
    name: ClassVar[str] = "convoy.status.update"
    convoy_id: str
    status: str
    timestamp: datetime = field(default_factory=_utcnow)


@dataclass(slots=True)
class CheckpointCleared(Message):
    name: ClassVar[str] = "convoy.checkpoint.cleared"
    convoy_id: str
    checkpoint_id: str
    location: Dict[str, float]
    timestamp: datetime = field(default_factory=_utcnow)


@dataclass(slots=True)
class EventTriggered(Message):
    name: ClassVar[str] = "event.triggered"
    event_id: str
    event_type: str
    severity: str
    affected_convoy_ids: List[str]
    segment_id: Optional[str] = None
    timestamp: datetime = field(default_factory=_utcnow)


@dataclass(slots=True)
class SegmentUpdated(Message):
    name: ClassVar[str] = "segment.updated"
    segment_id: str
    status: str
    risk_level: float
    stale_convoy_ids: List[str]
    timestamp: datetime = field(default_factory=_utcnow)


@dataclass(slots=True)
class ConflictsDetected(Message):
    name: ClassVar[str] = "conflict.detected"
    conflict_ids: List[str]
    timestamp: datetime = field(default_factory=_utcnow)


@dataclass(slots=True)
class RiskAlert(Message):
    name: ClassVar[str] = "risk.alert"
    convoy_id: str
    risk_score: float
    message: str
    timestamp: datetime = field(default_factory=_utcnow)
