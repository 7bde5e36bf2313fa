"""Corridor saturation and blocked-segment conflict detection."""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from ...config import settings
from ...models.domain import ConflictRecord, ConflictSeverity, Convoy, SegmentStatus
from ...models.errors import SegmentNotFound
from ..network.service import RoadNetwork
from .windows import SegmentWindow, occupancy_by_segment

logger = logging.getLogger(__name__)


def conflict_id(convoy_ids: Sequence[str]) -> str:
    """Stable identifier for a conflict between the given convoys."""
    digest = hashlib.sha1("|".join(sorted(convoy_ids)).encode("utf-8")).hexdigest()
    return f"CFL-{digest[:10].upper()}"


@dataclass(slots=True)
class _Fragment:
    convoy_ids: Tuple[str, ...]
    segment_id: str
    start: datetime
    end: datetime
    blocked: bool


@dataclass(slots=True)
class _Accumulator:
    segment_ids: List[str] = field(default_factory=list)
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    blocked_count: int = 0

    def add(self, fragment: _Fragment) -> None:
        if fragment.segment_id not in self.segment_ids:
            self.segment_ids.append(fragment.segment_id)
            if fragment.blocked:
                self.blocked_count += 1
        self.start = fragment.start if self.start is None else min(self.start, fragment.start)
        self.end = fragment.end if self.end is None else max(self.end, fragment.end)


def _overlap_clusters(windows: Sequence[SegmentWindow]) -> List[List[SegmentWindow]]:
    """Group windows (sorted by entry) into runs of mutually chained overlaps."""
    clusters: List[List[SegmentWindow]] = []
    current: List[SegmentWindow] = []
    current_end: Optional[datetime] = None
    for window in windows:
        if current and current_end is not None and window.entry < current_end:
            current.append(window)
            current_end = max(current_end, window.exit)
            continue
        if current:
            clusters.append(current)
        current = [window]
        current_end = window.exit
    if current:
        clusters.append(current)
    return clusters


def _excess_span(cluster: Sequence[SegmentWindow], capacity: int) -> Optional[Tuple[datetime, datetime]]:
    """First and last instant at which more than ``capacity`` convoys occupy the segment."""
    events = []
    for window in cluster:
        events.append((window.entry, 1))
        events.append((window.exit, -1))
    # Exits sort before entries at the same instant, so touching windows never overlap.
    events.sort(key=lambda item: (item[0], item[1]))
    occupied = 0
    span_start: Optional[datetime] = None
    span_end: Optional[datetime] = None
    for moment, delta in events:
        before = occupied
        occupied += delta
        if occupied > capacity and before <= capacity and span_start is None:
            span_start = moment
        if before > capacity and occupied <= capacity:
            span_end = moment
    if span_start is None or span_end is None:
        return None
    return span_start, span_end


class ConflictDetector:
    """Recomputes the complete conflict set from a convoy snapshot.

    Nothing is cached between calls; identical inputs give the identical ordered
    output.
    """

    def __init__(self, network: RoadNetwork | None = None, *, risk_score_threshold: float | None = None) -> None:
        self.network = network
        self.risk_score_threshold = (
            risk_score_threshold if risk_score_threshold is not None else settings.risk_score_alert_threshold
        )

    def _segment_condition(self, segment_id: str, windows: Sequence[SegmentWindow], convoys: Dict[str, Convoy]) -> Tuple[bool, int]:
        if self.network is not None:
            try:
                segment = self.network.get_segment(segment_id)
                return segment.status is SegmentStatus.BLOCKED, segment.capacity
            except SegmentNotFound:
                pass
        # Unknown to the network: fall back to the status captured on the route.
        for window in windows:
            route = convoys[window.convoy_id].assigned_route
            for segment in route.segments if route else []:
                if segment.id == segment_id:
                    return segment.status is SegmentStatus.BLOCKED, 1
        return False, 1

    def _fragments(self, convoys: Sequence[Convoy]) -> List[_Fragment]:
        by_id = {convoy.id: convoy for convoy in convoys}
        fragments: List[_Fragment] = []
        for segment_id, windows in sorted(occupancy_by_segment(convoys).items()):
            blocked, capacity = self._segment_condition(segment_id, windows, by_id)
            if blocked:
                fragments.append(
                    _Fragment(
                        convoy_ids=tuple(sorted({window.convoy_id for window in windows})),
                        segment_id=segment_id,
                        start=min(window.entry for window in windows),
                        end=max(window.exit for window in windows),
                        blocked=True,
                    )
                )
                continue
            for cluster in _overlap_clusters(windows):
                if len(cluster) <= capacity:
                    continue
                span = _excess_span(cluster, capacity)
                if span is None:
                    continue
                start, end = span
                involved = sorted({window.convoy_id for window in cluster if window.entry < end and window.exit > start})
                fragments.append(
                    _Fragment(
                        convoy_ids=tuple(involved),
                        segment_id=segment_id,
                        start=start,
                        end=end,
                        blocked=False,
                    )
                )
        return fragments

    def occupancy(self, convoys: Sequence[Convoy]) -> Dict[str, List[SegmentWindow]]:
        """Per-segment occupancy windows of the given convoys."""
        return occupancy_by_segment(convoys)

    def detect(self, convoys: Sequence[Convoy]) -> List[ConflictRecord]:
        """Current conflicts, most severe first, then by convoy ids."""
        by_id = {convoy.id: convoy for convoy in convoys}
        grouped: Dict[Tuple[str, ...], _Accumulator] = {}
        for fragment in self._fragments(convoys):
            grouped.setdefault(fragment.convoy_ids, _Accumulator()).add(fragment)

        records: List[ConflictRecord] = []
        for convoy_ids, accumulator in grouped.items():
            risk_score = max(
                (
                    by_id[convoy_id].assigned_route.risk_score
                    for convoy_id in convoy_ids
                    if by_id[convoy_id].assigned_route is not None
                ),
                default=0.0,
            )
            if accumulator.blocked_count:
                severity = ConflictSeverity.BLOCKED
            elif risk_score > self.risk_score_threshold:
                severity = ConflictSeverity.HIGH_RISK
            else:
                severity = ConflictSeverity.CAPACITY_OVERLAP
            records.append(
                ConflictRecord(
                    id=conflict_id(convoy_ids),
                    convoy_ids=list(convoy_ids),
                    segment_ids=sorted(accumulator.segment_ids),
                    window_start=accumulator.start,
                    window_end=accumulator.end,
                    severity=severity,
                    risk_score=round(risk_score, 1),
                    blocked_segment_count=accumulator.blocked_count,
                )
            )
        records.sort(key=lambda record: (-record.severity.value, record.convoy_ids))
        logger.debug(f"Detected {len(records)} conflicts across {len(convoys)} convoys")
        return records
