"""Road network model: segment registry, adjacency graph and condition updates."""

from __future__ import annotations

import dataclasses
import logging
import threading
from typing import Callable, Iterable, List, Optional, Tuple

import networkx as nx

from ...config import settings
from ...models.domain import LngLat, RoadSegment, SegmentStatus
from ...models.errors import InvalidSpec, SegmentNotFound
from ..geospatial import lnglat_distance_km, polyline_length_km

logger = logging.getLogger(__name__)

NodeKey = Tuple[float, float]
SegmentListener = Callable[[str], None]


def _copy_segment(segment: RoadSegment) -> RoadSegment:
    return dataclasses.replace(segment, coordinates=list(segment.coordinates))


class RoadNetwork:
    """Read-mostly graph of road segments.

    Segment endpoints that agree to ``node_precision`` decimal places are the same
    graph node. Condition updates lock only the segment being changed, and every
    update bumps a version counter that callers use to detect stale results.
    """

    def __init__(
        self,
        segments: Iterable[RoadSegment] = (),
        *,
        node_precision: int | None = None,
        high_risk_threshold: float | None = None,
    ) -> None:
        self.node_precision = node_precision if node_precision is not None else settings.node_precision
        self.high_risk_threshold = (
            high_risk_threshold if high_risk_threshold is not None else settings.high_risk_threshold
        )
        self._graph = nx.MultiGraph()
        self._segments: dict[str, RoadSegment] = {}
        self._segment_locks: dict[str, threading.Lock] = {}
        self._lengths: dict[str, float] = {}
        self._segment_versions: dict[str, int] = {}
        self._version = 0
        self._version_lock = threading.Lock()
        self._structure_lock = threading.Lock()
        self._listeners: list[SegmentListener] = []
        for segment in segments:
            self.add_segment(segment)

    # -- construction -------------------------------------------------

    def node_key(self, point: LngLat) -> NodeKey:
        return (round(point[0], self.node_precision), round(point[1], self.node_precision))

    def add_segment(self, segment: RoadSegment) -> None:
        if len(segment.coordinates) < 2:
            raise InvalidSpec(f"Segment '{segment.id}' needs at least two coordinates.")
        if segment.recommended_speed_kmph <= 0:
            raise InvalidSpec(f"Segment '{segment.id}' must have a positive recommended speed.")
        if not 0.0 <= segment.risk_level <= 1.0:
            raise InvalidSpec(f"Segment '{segment.id}' risk level must be within [0, 1].")
        if segment.capacity < 1:
            raise InvalidSpec(f"Segment '{segment.id}' capacity must be at least 1.")

        with self._structure_lock:
            if segment.id in self._segments:
                raise InvalidSpec(f"Duplicate segment id '{segment.id}'.")
            record = _copy_segment(segment)
            record.high_risk_threshold = self.high_risk_threshold
            start = self.node_key(record.coordinates[0])
            end = self.node_key(record.coordinates[-1])
            for key, coordinate in ((start, record.coordinates[0]), (end, record.coordinates[-1])):
                if key not in self._graph:
                    self._graph.add_node(key, coordinate=tuple(coordinate))
            self._graph.add_edge(start, end, key=record.id, start=start, end=end)
            self._segments[record.id] = record
            self._segment_locks[record.id] = threading.Lock()
            self._lengths[record.id] = polyline_length_km(record.coordinates)
            self._segment_versions[record.id] = 0

    # -- queries ------------------------------------------------------

    def __len__(self) -> int:
        return len(self._segments)

    def __contains__(self, segment_id: object) -> bool:
        return segment_id in self._segments

    @property
    def version(self) -> int:
        with self._version_lock:
            return self._version

    def get_segment(self, segment_id: str) -> RoadSegment:
        lock = self._segment_locks.get(segment_id)
        if lock is None:
            raise SegmentNotFound(segment_id)
        with lock:
            return _copy_segment(self._segments[segment_id])

    def segments(self) -> List[RoadSegment]:
        return [self.get_segment(segment_id) for segment_id in sorted(self._segments)]

    def segment_length_km(self, segment_id: str) -> float:
        try:
            return self._lengths[segment_id]
        except KeyError:
            raise SegmentNotFound(segment_id) from None

    def endpoints(self, segment_id: str) -> Tuple[NodeKey, NodeKey]:
        segment = self._segments.get(segment_id)
        if segment is None:
            raise SegmentNotFound(segment_id)
        return self.node_key(segment.coordinates[0]), self.node_key(segment.coordinates[-1])

    def neighbors(self, segment_id: str) -> List[str]:
        """Segments sharing an endpoint with ``segment_id``, ordered by id."""
        adjacent: set[str] = set()
        for node in set(self.endpoints(segment_id)):
            for _, _, key in self._graph.edges(node, keys=True):
                if key != segment_id:
                    adjacent.add(key)
        return sorted(adjacent)

    def incident(self, node: NodeKey) -> List[Tuple[str, NodeKey]]:
        """(segment id, far node) pairs for every segment touching ``node``."""
        if node not in self._graph:
            return []
        pairs = []
        for _, other, key in self._graph.edges(node, keys=True):
            pairs.append((key, other))
        return sorted(pairs)

    def node_coordinate(self, node: NodeKey) -> LngLat:
        return self._graph.nodes[node]["coordinate"]

    def nearest_node(self, point: LngLat) -> Tuple[Optional[NodeKey], float]:
        best: Optional[NodeKey] = None
        best_distance = float("inf")
        for node in sorted(self._graph.nodes):
            distance = lnglat_distance_km(point, self.node_coordinate(node))
            if distance < best_distance:
                best, best_distance = node, distance
        return best, best_distance

    def oriented_coordinates(self, segment_id: str, from_node: NodeKey) -> List[LngLat]:
        """Segment coordinates ordered so they start at ``from_node``."""
        segment = self.get_segment(segment_id)
        if self.node_key(segment.coordinates[0]) == from_node:
            return list(segment.coordinates)
        return list(reversed(segment.coordinates))

    def max_recommended_speed(self) -> float:
        speeds = [segment.recommended_speed_kmph for segment in self._segments.values()]
        return max(speeds) if speeds else 1.0

    def changed_since(self, version: int, segment_ids: Iterable[str] | None = None) -> bool:
        """True if any listed segment (or any segment at all) changed after ``version``."""
        with self._version_lock:
            if segment_ids is None:
                return self._version > version
            return any(self._segment_versions.get(segment_id, 0) > version for segment_id in segment_ids)

    # -- updates ------------------------------------------------------

    def subscribe(self, listener: SegmentListener) -> None:
        """Register a callback invoked with the segment id after each condition change."""
        with self._version_lock:
            self._listeners.append(listener)

    def update_segment_status(
        self,
        segment_id: str,
        status: SegmentStatus,
        risk_level: float | None = None,
    ) -> RoadSegment:
        """Apply an externally reported condition change.

        BLOCKED sets the manual block flag. Any other status lifts the block;
        HIGH_RISK raises the risk to at least the high-risk threshold, CLEAR
        without an explicit risk returns the segment to its baseline risk kept
        below the threshold.
        """
        if risk_level is not None and not 0.0 <= risk_level <= 1.0:
            raise InvalidSpec("riskLevel must be within [0, 1].")

        def mutate(segment: RoadSegment) -> None:
            new_risk = segment.risk_level if risk_level is None else risk_level
            if status is SegmentStatus.HIGH_RISK:
                new_risk = max(new_risk, self.high_risk_threshold)
            elif status is SegmentStatus.CLEAR:
                if risk_level is None:
                    new_risk = max(0.0, min(segment.baseline_risk, self.high_risk_threshold - 0.01))
                elif risk_level >= self.high_risk_threshold:
                    raise InvalidSpec(
                        f"riskLevel {risk_level} is at or above the high-risk threshold; status cannot be CLEAR."
                    )
            segment.blocked = status is SegmentStatus.BLOCKED
            segment.risk_level = round(new_risk, 4)

        return self._mutate(segment_id, mutate)

    def adjust_risk(self, segment_id: str, delta: float) -> RoadSegment:
        """Shift a segment's risk level by ``delta`` within [0, 1], keeping any block."""

        def mutate(segment: RoadSegment) -> None:
            segment.risk_level = round(min(1.0, max(0.0, segment.risk_level + delta)), 4)

        return self._mutate(segment_id, mutate)

    def _mutate(self, segment_id: str, mutate: Callable[[RoadSegment], None]) -> RoadSegment:
        lock = self._segment_locks.get(segment_id)
        if lock is None:
            raise SegmentNotFound(segment_id)
        with lock:
            segment = self._segments[segment_id]
            mutate(segment)
            snapshot = _copy_segment(segment)
        with self._version_lock:
            self._version += 1
            self._segment_versions[segment_id] = self._version
            listeners = list(self._listeners)
        logger.info(
            f"Segment {segment_id} updated: status={snapshot.status.value} risk={snapshot.risk_level:.2f}"
        )
        for listener in listeners:
            listener(segment_id)
        return snapshot
