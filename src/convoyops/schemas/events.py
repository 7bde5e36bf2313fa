"""Operation event and checkpoint log schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from ..models.domain import EventSeverity, EventType
from .base import CamelModel
from .convoys import LocationModel


class EventRequest(CamelModel):
    convoy_id: Optional[str] = None
    type: EventType
    severity: EventSeverity
    notes: Optional[str] = None
    affected_segment_id: Optional[str] = None


class EventPayloadModel(CamelModel):
    severity: EventSeverity
    affected_segment_id: Optional[str] = None
    notes: Optional[str] = None


class OperationEventModel(CamelModel):
    id: str
    type: EventType
    triggered_at: datetime
    convoy_id: Optional[str] = None
    payload: EventPayloadModel


class CheckpointLogRequest(CamelModel):
    convoy_id: str
    checkpoint_id: str
    location: LocationModel


class CheckpointLogResponse(CamelModel):
    ok: bool
    checkpoint_id: str
    newly_cleared: bool
