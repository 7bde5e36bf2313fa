"""Conversions between domain records and the camelCase wire models."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable, List, Optional

from ...models.domain import (
    Checkpoint,
    ConflictRecord,
    Convoy,
    ConvoySpec,
    EventPayload,
    Location,
    MergeSuggestion,
    OperationEvent,
    RoadSegment,
    Route,
    RouteSegment,
)
from ...schemas.conflicts import ConflictModel
from ...schemas.convoys import (
    CheckpointModel,
    ConvoyCreateRequest,
    ConvoyModel,
    LocationModel,
    MergeSuggestionModel,
    RouteModel,
)
from ...schemas.events import EventPayloadModel, OperationEventModel
from ...schemas.network import RoadSegmentModel, RouteSegmentModel


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Naive timestamps are taken to be UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# -- domain -> wire ---------------------------------------------------


def location_to_model(location: Location) -> LocationModel:
    return LocationModel(lat=location.lat, lng=location.lng, name=location.name)


def segment_to_model(segment: RoadSegment, length_km: float = 0.0) -> RoadSegmentModel:
    return RoadSegmentModel(
        id=segment.id,
        coordinates=[tuple(point) for point in segment.coordinates],
        terrain=segment.terrain,
        difficulty=segment.difficulty,
        recommended_speed_kmph=segment.recommended_speed_kmph,
        risk_level=segment.risk_level,
        status=segment.status,
        capacity=segment.capacity,
        length_km=round(length_km, 3),
    )


def route_segment_to_model(segment: RouteSegment) -> RouteSegmentModel:
    return RouteSegmentModel(
        id=segment.id,
        coordinates=[tuple(point) for point in segment.coordinates],
        terrain=segment.terrain,
        difficulty=segment.difficulty,
        recommended_speed_kmph=segment.recommended_speed_kmph,
        risk_level=segment.risk_level,
        status=segment.status,
        length_km=segment.length_km,
    )


def checkpoint_to_model(checkpoint: Checkpoint) -> CheckpointModel:
    return CheckpointModel(
        id=checkpoint.id,
        name=checkpoint.name,
        status=checkpoint.status,
        eta=as_utc(checkpoint.eta),
        logged_at=as_utc(checkpoint.logged_at),
    )


def route_to_model(route: Route) -> RouteModel:
    return RouteModel(
        id=route.id,
        name=route.name,
        polyline=[tuple(point) for point in route.polyline],
        eta_hours=route.eta_hours,
        distance_km=route.distance_km,
        risk_score=route.risk_score,
        segments=[route_segment_to_model(segment) for segment in route.segments],
        checkpoints=[checkpoint_to_model(checkpoint) for checkpoint in route.checkpoints],
    )


def merge_suggestion_to_model(suggestion: Optional[MergeSuggestion]) -> Optional[MergeSuggestionModel]:
    if suggestion is None:
        return None
    return MergeSuggestionModel(
        with_convoy_id=suggestion.with_convoy_id,
        payload_savings_tons=suggestion.payload_savings_tons,
        confidence=suggestion.confidence,
    )


def convoy_to_model(convoy: Convoy) -> ConvoyModel:
    return ConvoyModel(
        id=convoy.id,
        name=convoy.name,
        origin=location_to_model(convoy.origin),
        destination=location_to_model(convoy.destination),
        assigned_route=route_to_model(convoy.assigned_route) if convoy.assigned_route else None,
        speed_kmph=convoy.speed_kmph,
        priority=convoy.priority,
        vehicle_count=convoy.vehicle_count,
        status=convoy.status,
        last_updated=as_utc(convoy.last_updated),
        eta_hours=convoy.eta_hours,
        departure_at=as_utc(convoy.departure_at),
        merge_suggestion=merge_suggestion_to_model(convoy.merge_suggestion),
        route_stale=convoy.route_stale,
    )


def conflict_to_model(record: ConflictRecord, acknowledged: bool = False) -> ConflictModel:
    return ConflictModel(
        id=record.id,
        convoy_ids=list(record.convoy_ids),
        segment_ids=list(record.segment_ids),
        window_start=as_utc(record.window_start),
        window_end=as_utc(record.window_end),
        severity=record.severity.name,
        risk_score=record.risk_score,
        blocked_segment_count=record.blocked_segment_count,
        acknowledged=acknowledged,
    )


def event_to_model(event: OperationEvent) -> OperationEventModel:
    return OperationEventModel(
        id=event.id,
        type=event.type,
        triggered_at=as_utc(event.triggered_at),
        convoy_id=event.convoy_id,
        payload=EventPayloadModel(
            severity=event.payload.severity,
            affected_segment_id=event.payload.affected_segment_id,
            notes=event.payload.notes,
        ),
    )


def events_to_models(events: Iterable[OperationEvent]) -> List[OperationEventModel]:
    return [event_to_model(event) for event in events]


# -- wire -> domain ---------------------------------------------------


def location_from_model(model: LocationModel) -> Location:
    return Location(lat=model.lat, lng=model.lng, name=model.name)


def route_from_model(model: RouteModel) -> Route:
    return Route(
        id=model.id,
        name=model.name,
        polyline=[(float(lng), float(lat)) for lng, lat in model.polyline],
        eta_hours=model.eta_hours,
        distance_km=model.distance_km,
        risk_score=model.risk_score,
        segments=[
            RouteSegment(
                id=segment.id,
                coordinates=[(float(lng), float(lat)) for lng, lat in segment.coordinates],
                terrain=segment.terrain,
                difficulty=segment.difficulty,
                recommended_speed_kmph=segment.recommended_speed_kmph,
                risk_level=segment.risk_level,
                status=segment.status,
                length_km=segment.length_km,
            )
            for segment in model.segments
        ],
        checkpoints=[
            Checkpoint(
                id=checkpoint.id,
                name=checkpoint.name,
                eta=as_utc(checkpoint.eta),
                status=checkpoint.status,
                logged_at=as_utc(checkpoint.logged_at),
            )
            for checkpoint in model.checkpoints
        ],
    )


def spec_from_request(request: ConvoyCreateRequest) -> ConvoySpec:
    """Build a creation spec; a missing origin or destination defaults to (0, 0)."""
    origin = location_from_model(request.origin) if request.origin else Location(lat=0.0, lng=0.0)
    destination = location_from_model(request.destination) if request.destination else Location(lat=0.0, lng=0.0)
    return ConvoySpec(
        origin=origin,
        destination=destination,
        id=request.id,
        name=request.name,
        speed_kmph=request.speed_kmph,
        priority=request.priority,
        vehicle_count=request.vehicle_count,
        status=request.status,
        eta_hours=request.eta_hours,
        departure_at=as_utc(request.departure_at),
        assigned_route=route_from_model(request.assigned_route) if request.assigned_route else None,
    )


def event_from_model(model: OperationEventModel) -> OperationEvent:
    return OperationEvent(
        id=model.id,
        type=model.type,
        triggered_at=as_utc(model.triggered_at),
        convoy_id=model.convoy_id,
        payload=EventPayload(
            severity=model.payload.severity,
            affected_segment_id=model.payload.affected_segment_id,
            notes=model.payload.notes,
        ),
    )
