"""Road network request/response schemas."""

from __future__ import annotations

from typing import List, Optional, Tuple

from pydantic import Field

from ..models.domain import Difficulty, SegmentStatus, Terrain
from .base import CamelModel


class RoadSegmentModel(CamelModel):
    id: str
    coordinates: List[Tuple[float, float]] = Field(..., description="[lng, lat] pairs in road order.")
    terrain: Terrain
    difficulty: Difficulty
    recommended_speed_kmph: float
    risk_level: float = Field(..., ge=0.0, le=1.0)
    status: SegmentStatus
    capacity: int = 1
    length_km: float = 0.0


class RouteSegmentModel(CamelModel):
    id: str
    coordinates: List[Tuple[float, float]]
    terrain: Terrain
    difficulty: Difficulty
    recommended_speed_kmph: float
    risk_level: float = Field(..., ge=0.0, le=1.0)
    status: SegmentStatus
    length_km: float = 0.0


class SegmentUpdateRequest(CamelModel):
    status: SegmentStatus
    risk_level: Optional[float] = Field(default=None, description="New risk level in [0, 1].")


class SegmentNeighborsResponse(CamelModel):
    segment_id: str
    neighbors: List[str]
