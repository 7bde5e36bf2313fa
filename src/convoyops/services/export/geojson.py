"""GeoJSON export of the road network and assigned convoy routes."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Iterable, List

from shapely.geometry import LineString, mapping

from ...models.domain import Convoy, RoadSegment

STATUS_COLORS = {
    "CLEAR": "#38e000",
    "HIGH_RISK": "#e0af00",
    "BLOCKED": "#e0003e",
}

PRIORITY_COLORS = {
    "ALPHA": "#0000c1",
    "BRAVO": "#13aae0",
    "CHARLIE": "#611cc7",
}


def segment_feature(segment: RoadSegment, length_km: float | None = None) -> Dict[str, Any]:
    line = LineString(segment.coordinates)
    return {
        "type": "Feature",
        "id": segment.id,
        "geometry": mapping(line),
        "properties": {
            "kind": "segment",
            "terrain": segment.terrain.value,
            "difficulty": segment.difficulty.value,
            "recommendedSpeedKmph": segment.recommended_speed_kmph,
            "riskLevel": segment.risk_level,
            "status": segment.status.value,
            "capacity": segment.capacity,
            "lengthKm": round(length_km, 3) if length_km is not None else None,
            "color": STATUS_COLORS[segment.status.value],
        },
    }


def route_feature(convoy: Convoy) -> Dict[str, Any] | None:
    """Polyline of the convoy's assigned route; None when it has no usable route."""
    route = convoy.assigned_route
    if route is None or len(route.polyline) < 2:
        return None
    return {
        "type": "Feature",
        "id": route.id,
        "geometry": mapping(LineString(route.polyline)),
        "properties": {
            "kind": "route",
            "convoyId": convoy.id,
            "name": route.name,
            "priority": convoy.priority.value,
            "etaHours": route.eta_hours,
            "distanceKm": route.distance_km,
            "riskScore": route.risk_score,
            "stale": convoy.route_stale,
            "color": PRIORITY_COLORS[convoy.priority.value],
        },
    }


def network_feature_collection(
    segments: Iterable[RoadSegment],
    convoys: Iterable[Convoy] = (),
    lengths: Dict[str, float] | None = None,
) -> Dict[str, Any]:
    lengths = lengths or {}
    features: List[Dict[str, Any]] = [segment_feature(segment, lengths.get(segment.id)) for segment in segments]
    for convoy in convoys:
        feature = route_feature(convoy)
        if feature is not None:
            features.append(feature)
    return {"type": "FeatureCollection", "features": features}


def save_geojson(collection: Dict[str, Any], output_path: Path) -> None:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with output_path.open("w", encoding="utf-8") as f:
        json.dump(collection, f, indent=2, ensure_ascii=False)
