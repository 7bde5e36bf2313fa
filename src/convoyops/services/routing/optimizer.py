"""Route optimizer: turns a convoy request into a risk-scored Route."""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Dict, List, Optional

from ...config import settings
from ...models.domain import (
    Checkpoint,
    CheckpointStatus,
    Convoy,
    LngLat,
    Location,
    RoadSegment,
    Route,
    RouteSegment,
    SegmentStatus,
)
from ...models.errors import NoPathExists, StaleNetworkState
from ..conflicts.detector import ConflictDetector
from ..conflicts.windows import SegmentWindow
from ..convoys.store import ConvoyStore
from ..geospatial import lnglat_distance_km, polyline_length_km
from ..network.service import RoadNetwork
from .risk import Exposure, aggregate_risk_score
from .search import EdgeCost, SearchResult, find_path

logger = logging.getLogger(__name__)

_JOIN_TOLERANCE_KM = 1e-3


@dataclass(slots=True)
class OptimizationResult:
    route: Route
    notes: List[str]
    network_version: int
    destination: Location
    conflicted_segment_ids: List[str] = field(default_factory=list)


def _windows_overlap(start: float, end: float, window: SegmentWindow, reference) -> bool:
    entry = reference + timedelta(hours=start)
    exit_ = reference + timedelta(hours=end)
    return entry < window.exit and window.entry < exit_


class RouteOptimizer:
    """Weighted shortest-path search with risk and conflict penalties.

    Reads the network, the convoy store and the conflict detector; never writes
    to any of them.
    """

    def __init__(
        self,
        network: RoadNetwork,
        store: ConvoyStore,
        detector: ConflictDetector | None = None,
        *,
        max_expansions: int | None = None,
        time_budget_seconds: float | None = None,
        conflict_penalty_factor: float | None = None,
        conflict_risk_penalty: float | None = None,
        snap_radius_km: float | None = None,
    ) -> None:
        self.network = network
        self.store = store
        self.detector = detector or ConflictDetector(network)
        self.max_expansions = max_expansions if max_expansions is not None else settings.optimizer_max_expansions
        self.time_budget_seconds = (
            time_budget_seconds if time_budget_seconds is not None else settings.optimizer_time_budget_seconds
        )
        self.conflict_penalty_factor = (
            conflict_penalty_factor if conflict_penalty_factor is not None else settings.conflict_penalty_factor
        )
        self.conflict_risk_penalty = (
            conflict_risk_penalty if conflict_risk_penalty is not None else settings.conflict_risk_penalty
        )
        self.snap_radius_km = snap_radius_km if snap_radius_km is not None else settings.snap_radius_km

    def _snap(self, location: Location, role: str):
        node, distance = self.network.nearest_node(location.as_lnglat())
        if node is None:
            raise NoPathExists("Road network is empty.", ["No road segments are loaded."])
        if distance > self.snap_radius_km:
            raise NoPathExists(
                f"The {role} is not near the road network.",
                [f"Nearest network node to the {role} is {distance:.1f} km away (limit {self.snap_radius_km:.1f} km)."],
            )
        return node, distance

    def _competing_windows(self, convoy: Convoy) -> Dict[str, List[SegmentWindow]]:
        others = [
            other
            for other in self.store.snapshot()
            if other.id != convoy.id and other.priority.rank <= convoy.priority.rank
        ]
        return self.detector.occupancy(others)

    def optimize(self, convoy_id: str, destination_override: Optional[Location] = None) -> OptimizationResult:
        """Compute a route for the convoy without committing it.

        Raises ``ConvoyNotFound``, ``NoPathExists`` (or ``SearchBudgetExceeded``),
        and ``StaleNetworkState`` when the network changed during the search.
        """
        convoy = self.store.get(convoy_id)
        version = self.network.version
        destination = copy.deepcopy(destination_override) if destination_override else convoy.destination
        notes: List[str] = []
        if destination_override is not None:
            label = destination.name or f"{destination.lat:.4f}, {destination.lng:.4f}"
            notes.append(f"Destination override applied: {label}.")

        origin_node, origin_gap = self._snap(convoy.origin, "origin")
        goal_node, goal_gap = self._snap(destination, "destination")
        if origin_node == goal_node:
            raise NoPathExists(
                "Origin and destination resolve to the same network node.",
                ["Origin and destination are closer together than the network resolution."],
            )

        competing = self._competing_windows(convoy)
        reference = convoy.time_reference
        convoy_speed = convoy.speed_kmph

        def edge_cost(segment: RoadSegment, elapsed: float) -> EdgeCost:
            length = self.network.segment_length_km(segment.id)
            traverse = length / min(segment.recommended_speed_kmph, convoy_speed)
            weight = (length / segment.recommended_speed_kmph) * (1.0 + segment.risk_level)
            conflicted = any(
                _windows_overlap(elapsed, elapsed + traverse, window, reference)
                for window in competing.get(segment.id, [])
            )
            if conflicted:
                weight *= self.conflict_penalty_factor
            return EdgeCost(weight=weight, hours=traverse, conflicted=conflicted)

        result = find_path(
            self.network,
            origin_node,
            goal_node,
            edge_cost,
            start_hours=origin_gap / convoy_speed,
            max_expansions=self.max_expansions,
            time_budget_seconds=self.time_budget_seconds,
        )
        route = self._build_route(convoy, destination, result, origin_gap, goal_gap)

        if result.avoided_segment_ids:
            notes.append(f"Avoided blocked segments: {', '.join(result.avoided_segment_ids)}.")
        high_risk = [segment.id for segment in route.segments if segment.status is SegmentStatus.HIGH_RISK]
        if high_risk:
            notes.append(f"Route traverses high-risk segments: {', '.join(high_risk)}.")
        if result.conflicted_segment_ids:
            notes.append(
                "Conflict penalty applied on segments shared with equal or higher priority convoys: "
                f"{', '.join(result.conflicted_segment_ids)}."
            )
        if route.checkpoints:
            notes.append(f"Carried over {len(route.checkpoints)} checkpoints from the previous route.")
        notes.append(f"Explored {result.expansions} network nodes.")

        if self.network.changed_since(version):
            raise StaleNetworkState(f"Network changed while routing convoy '{convoy_id}'.")
        logger.info(
            f"Optimized convoy {convoy_id}: {len(route.segments)} segments, "
            f"{route.distance_km:.1f} km, {route.eta_hours:.2f} h, risk {route.risk_score:.1f}"
        )
        return OptimizationResult(
            route=route,
            notes=notes,
            network_version=version,
            destination=destination,
            conflicted_segment_ids=result.conflicted_segment_ids,
        )

    def _build_route(
        self,
        convoy: Convoy,
        destination: Location,
        result: SearchResult,
        origin_gap: float,
        goal_gap: float,
    ) -> Route:
        polyline: List[LngLat] = [convoy.origin.as_lnglat()]
        segments: List[RouteSegment] = []
        hours = (origin_gap + goal_gap) / convoy.speed_kmph
        exposures: List[Exposure] = []

        for segment_id, from_node in zip(result.segment_ids, result.nodes):
            segment = self.network.get_segment(segment_id)
            coordinates = self.network.oriented_coordinates(segment_id, from_node)
            length = self.network.segment_length_km(segment_id)
            for point in coordinates:
                if lnglat_distance_km(polyline[-1], point) > _JOIN_TOLERANCE_KM:
                    polyline.append(point)
            segments.append(
                RouteSegment(
                    id=segment.id,
                    coordinates=coordinates,
                    terrain=segment.terrain,
                    difficulty=segment.difficulty,
                    recommended_speed_kmph=segment.recommended_speed_kmph,
                    risk_level=segment.risk_level,
                    status=segment.status,
                    length_km=round(length, 3),
                )
            )
            hours += length / min(segment.recommended_speed_kmph, convoy.speed_kmph)
            exposures.append((segment.risk_level, length))

        end = destination.as_lnglat()
        if lnglat_distance_km(polyline[-1], end) > _JOIN_TOLERANCE_KM:
            polyline.append(end)
        else:
            polyline[-1] = end

        eta_hours = round(hours, 2)
        origin_label = convoy.origin.name or "Origin"
        destination_label = destination.name or "Destination"
        return Route(
            id=f"RTE-{convoy.id}",
            name=f"{origin_label} to {destination_label}",
            polyline=polyline,
            eta_hours=eta_hours,
            distance_km=round(polyline_length_km(polyline), 1),
            risk_score=aggregate_risk_score(
                exposures,
                len(result.conflicted_segment_ids),
                self.conflict_risk_penalty,
            ),
            segments=segments,
            checkpoints=self._carry_checkpoints(convoy, eta_hours),
        )

    @staticmethod
    def _carry_checkpoints(convoy: Convoy, eta_hours: float) -> List[Checkpoint]:
        """Reuse the previous route's checkpoints, rescaling pending ETAs to the new duration."""
        previous = convoy.assigned_route
        if previous is None or not previous.checkpoints:
            return []
        scale = eta_hours / previous.eta_hours if previous.eta_hours > 0 else 1.0
        reference = convoy.time_reference
        carried: List[Checkpoint] = []
        seen: set[str] = set()
        for checkpoint in previous.checkpoints:
            if checkpoint.name in seen:
                continue
            seen.add(checkpoint.name)
            if checkpoint.status is CheckpointStatus.CLEARED:
                carried.append(copy.deepcopy(checkpoint))
                continue
            carried.append(
                Checkpoint(
                    id=checkpoint.id,
                    name=checkpoint.name,
                    eta=reference + (checkpoint.eta - reference) * scale,
                )
            )
        return carried
