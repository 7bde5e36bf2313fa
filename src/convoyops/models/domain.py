"""Domain models for road segments, routes, convoys and conflicts."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple

# (longitude, latitude), the order used by map polylines.
LngLat = Tuple[float, float]


class Terrain(str, Enum):
    URBAN = "URBAN"
    MOUNTAIN = "MOUNTAIN"
    DESERT = "DESERT"
    FOREST = "FOREST"
    COASTAL = "COASTAL"


class Difficulty(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class SegmentStatus(str, Enum):
    CLEAR = "CLEAR"
    HIGH_RISK = "HIGH_RISK"
    BLOCKED = "BLOCKED"


class CheckpointStatus(str, Enum):
    PENDING = "PENDING"
    CLEARED = "CLEARED"


class Priority(str, Enum):
    ALPHA = "ALPHA"
    BRAVO = "BRAVO"
    CHARLIE = "CHARLIE"

    @property
    def rank(self) -> int:
        """Ordinal where 0 is the most urgent."""
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {Priority.ALPHA: 0, Priority.BRAVO: 1, Priority.CHARLIE: 2}


class ConvoyStatus(str, Enum):
    PLANNED = "PLANNED"
    EN_ROUTE = "EN_ROUTE"
    COMPLETED = "COMPLETED"
    DELAYED = "DELAYED"


class EventType(str, Enum):
    BLOCK_ROAD = "BLOCK_ROAD"
    RAINFALL = "RAINFALL"
    LANDSLIDE = "LANDSLIDE"
    CONGESTION = "CONGESTION"
    CHECKPOINT = "CHECKPOINT"


class EventSeverity(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class ConflictSeverity(int, Enum):
    CAPACITY_OVERLAP = 1
    HIGH_RISK = 2
    BLOCKED = 3


@dataclass(slots=True)
class Location:
    lat: float
    lng: float
    name: Optional[str] = None

    def as_lnglat(self) -> LngLat:
        return (self.lng, self.lat)


@dataclass(slots=True)
class RoadSegment:
    """A stretch of road and its current condition.

    ``status`` is derived: a manual block wins, otherwise the risk level decides
    between CLEAR and HIGH_RISK.
    """

    id: str
    coordinates: List[LngLat]
    terrain: Terrain
    difficulty: Difficulty
    recommended_speed_kmph: float
    risk_level: float
    capacity: int = 1
    blocked: bool = False
    high_risk_threshold: float = 0.7
    baseline_risk: Optional[float] = None

    def __post_init__(self) -> None:
        if self.baseline_risk is None:
            self.baseline_risk = self.risk_level

    @property
    def status(self) -> SegmentStatus:
        if self.blocked:
            return SegmentStatus.BLOCKED
        if self.risk_level >= self.high_risk_threshold:
            return SegmentStatus.HIGH_RISK
        return SegmentStatus.CLEAR


@dataclass(slots=True)
class RouteSegment:
    """Snapshot of a segment as traversed by a route, oriented in travel order."""

    id: str
    coordinates: List[LngLat]
    terrain: Terrain
    difficulty: Difficulty
    recommended_speed_kmph: float
    risk_level: float
    status: SegmentStatus
    length_km: float = 0.0


@dataclass(slots=True)
class Checkpoint:
    id: str
    name: str
    eta: datetime
    status: CheckpointStatus = CheckpointStatus.PENDING
    logged_at: Optional[datetime] = None


@dataclass(slots=True)
class Route:
    id: str
    name: str
    polyline: List[LngLat]
    eta_hours: float
    distance_km: float
    risk_score: float
    segments: List[RouteSegment] = field(default_factory=list)
    checkpoints: List[Checkpoint] = field(default_factory=list)

    def segment_ids(self) -> List[str]:
        return [segment.id for segment in self.segments]


@dataclass(slots=True)
class MergeSuggestion:
    with_convoy_id: str
    payload_savings_tons: float
    confidence: float


@dataclass(slots=True)
class Convoy:
    id: str
    name: str
    origin: Location
    destination: Location
    speed_kmph: float
    priority: Priority
    vehicle_count: int
    status: ConvoyStatus
    last_updated: datetime
    assigned_route: Optional[Route] = None
    eta_hours: Optional[float] = None
    departure_at: Optional[datetime] = None
    merge_suggestion: Optional[MergeSuggestion] = None
    route_stale: bool = False

    @property
    def time_reference(self) -> datetime:
        """Moment the convoy's route timeline starts from."""
        return self.departure_at or self.last_updated


@dataclass(slots=True)
class ConvoySpec:
    """Partial convoy fields accepted on creation."""

    origin: Location
    destination: Location
    id: Optional[str] = None
    name: Optional[str] = None
    speed_kmph: Optional[float] = None
    priority: Optional[Priority] = None
    vehicle_count: Optional[int] = None
    status: Optional[ConvoyStatus] = None
    eta_hours: Optional[float] = None
    departure_at: Optional[datetime] = None
    assigned_route: Optional[Route] = None


@dataclass(slots=True)
class ConflictRecord:
    id: str
    convoy_ids: List[str]
    segment_ids: List[str]
    window_start: datetime
    window_end: datetime
    severity: ConflictSeverity
    risk_score: float
    blocked_segment_count: int


@dataclass(slots=True)
class EventPayload:
    severity: EventSeverity
    affected_segment_id: Optional[str] = None
    notes: Optional[str] = None


@dataclass(slots=True)
class OperationEvent:
    id: str
    type: EventType
    triggered_at: datetime
    payload: EventPayload
    convoy_id: Optional[str] = None
