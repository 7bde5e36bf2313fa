"""Bounded A* search over the road network."""

from __future__ import annotations

import heapq
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, List, Tuple

from ...models.domain import RoadSegment, SegmentStatus
from ...models.errors import NoPathExists, SearchBudgetExceeded
from ..geospatial import lnglat_distance_km
from ..network.service import NodeKey, RoadNetwork
from .risk import Exposure, aggregate_risk_score

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class EdgeCost:
    weight: float
    hours: float
    conflicted: bool = False


# (segment, elapsed hours on arrival at the segment) -> cost of traversing it
EdgeCostFn = Callable[[RoadSegment, float], EdgeCost]


@dataclass(slots=True)
class SearchResult:
    segment_ids: List[str]
    nodes: List[NodeKey]
    weight: float
    hours: float
    expansions: int
    conflicted_segment_ids: List[str] = field(default_factory=list)
    avoided_segment_ids: List[str] = field(default_factory=list)


def _tie_key(value: float) -> float:
    return round(value, 9)


def find_path(
    network: RoadNetwork,
    start: NodeKey,
    goal: NodeKey,
    edge_cost: EdgeCostFn,
    *,
    start_hours: float = 0.0,
    max_expansions: int,
    time_budget_seconds: float,
) -> SearchResult:
    """Cheapest path from ``start`` to ``goal`` avoiding blocked segments.

    Equal-weight candidates are ordered by the aggregated risk score of the
    path so far and then by the segment-id sequence, so the result is fully
    deterministic. Raises ``SearchBudgetExceeded`` when the expansion or time
    budget runs out.
    """
    max_speed = network.max_recommended_speed()
    goal_coordinate = network.node_coordinate(goal)

    def heuristic(node: NodeKey) -> float:
        return lnglat_distance_km(network.node_coordinate(node), goal_coordinate) / max_speed

    started = time.monotonic()
    # (f, risk score, path, node, g, elapsed hours, conflicted, exposures)
    frontier: list[
        Tuple[float, float, Tuple[str, ...], NodeKey, float, float, Tuple[str, ...], Tuple[Exposure, ...]]
    ] = [(_tie_key(heuristic(start)), 0.0, (), start, 0.0, start_hours, (), ())]
    settled: set[NodeKey] = set()
    avoided: set[str] = set()
    expansions = 0

    while frontier:
        _, _, path, node, g, elapsed, conflicted, exposures = heapq.heappop(frontier)
        if node in settled:
            continue
        settled.add(node)
        expansions += 1
        if expansions > max_expansions:
            raise SearchBudgetExceeded(
                f"Path search exceeded {max_expansions} expansions.",
                [f"Search stopped after {max_expansions} node expansions."],
            )
        if time.monotonic() - started > time_budget_seconds:
            raise SearchBudgetExceeded(
                f"Path search exceeded {time_budget_seconds:.1f}s.",
                [f"Search stopped after {time_budget_seconds:.1f} seconds."],
            )

        if node == goal:
            nodes = [start]
            current = start
            for segment_id in path:
                a, b = network.endpoints(segment_id)
                current = b if a == current else a
                nodes.append(current)
            logger.debug(f"Path found with {len(path)} segments after {expansions} expansions")
            return SearchResult(
                segment_ids=list(path),
                nodes=nodes,
                weight=g,
                hours=elapsed - start_hours,
                expansions=expansions,
                conflicted_segment_ids=list(conflicted),
                avoided_segment_ids=sorted(avoided),
            )

        for segment_id, other in network.incident(node):
            if other == node or other in settled:
                continue
            segment = network.get_segment(segment_id)
            if segment.status is SegmentStatus.BLOCKED:
                avoided.add(segment_id)
                continue
            cost = edge_cost(segment, elapsed)
            next_g = g + cost.weight
            next_exposures = exposures + ((segment.risk_level, network.segment_length_km(segment_id)),)
            heapq.heappush(
                frontier,
                (
                    _tie_key(next_g + heuristic(other)),
                    aggregate_risk_score(next_exposures),
                    path + (segment_id,),
                    other,
                    next_g,
                    elapsed + cost.hours,
                    conflicted + (segment_id,) if cost.conflicted else conflicted,
                    next_exposures,
                ),
            )

    notes = ["No connected sequence of open segments links origin and destination."]
    if avoided:
        notes.append(f"Blocked segments excluded: {', '.join(sorted(avoided))}.")
    raise NoPathExists("No feasible route between origin and destination.", notes)
