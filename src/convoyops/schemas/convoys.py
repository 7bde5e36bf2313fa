"""Convoy request/response schemas."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Tuple

from pydantic import Field

from ..models.domain import CheckpointStatus, ConvoyStatus, Priority
from .base import CamelModel
from .network import RouteSegmentModel


class LocationModel(CamelModel):
    lat: float = Field(..., ge=-90.0, le=90.0)
    lng: float = Field(..., ge=-180.0, le=180.0)
    name: Optional[str] = None


class CheckpointModel(CamelModel):
    id: str
    name: str
    status: CheckpointStatus = CheckpointStatus.PENDING
    eta: datetime
    logged_at: Optional[datetime] = None


class RouteModel(CamelModel):
    id: str
    name: str
    polyline: List[Tuple[float, float]] = Field(..., description="Map polyline as [lng, lat] pairs.")
    eta_hours: float = Field(..., ge=0.0)
    distance_km: float = Field(..., ge=0.0)
    risk_score: float = Field(..., ge=0.0, le=100.0)
    segments: List[RouteSegmentModel] = Field(default_factory=list)
    checkpoints: List[CheckpointModel] = Field(default_factory=list)


class MergeSuggestionModel(CamelModel):
    with_convoy_id: str
    payload_savings_tons: float
    confidence: float = Field(..., ge=0.0, le=1.0)


class ConvoyModel(CamelModel):
    id: str
    name: str
    origin: LocationModel
    destination: LocationModel
    assigned_route: Optional[RouteModel] = None
    speed_kmph: float
    priority: Priority
    vehicle_count: int
    status: ConvoyStatus
    last_updated: datetime
    eta_hours: Optional[float] = None
    departure_at: Optional[datetime] = None
    merge_suggestion: Optional[MergeSuggestionModel] = None
    route_stale: bool = False


class ConvoyCreateRequest(CamelModel):
    """Partial convoy fields; anything omitted takes the service default."""

    id: Optional[str] = None
    name: Optional[str] = None
    origin: Optional[LocationModel] = None
    destination: Optional[LocationModel] = None
    speed_kmph: Optional[float] = None
    priority: Optional[Priority] = None
    vehicle_count: Optional[int] = None
    status: Optional[ConvoyStatus] = None
    eta_hours: Optional[float] = None
    departure_at: Optional[datetime] = None
    assigned_route: Optional[RouteModel] = None


class ConvoyStatusUpdate(CamelModel):
    status: ConvoyStatus


class RouteAssignmentRequest(CamelModel):
    route: RouteModel
    destination: Optional[LocationModel] = Field(
        default=None,
        description="New destination when the route was computed against an override.",
    )
