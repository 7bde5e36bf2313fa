"""Segment occupancy windows derived from assigned routes."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Iterable, List

from ...models.domain import Convoy, Priority, RouteSegment
from ..geospatial import polyline_length_km


@dataclass(slots=True, frozen=True)
class SegmentWindow:
    convoy_id: str
    priority: Priority
    segment_id: str
    entry: datetime
    exit: datetime

    def overlap_hours(self, other: "SegmentWindow") -> float:
        start = max(self.entry, other.entry)
        end = min(self.exit, other.exit)
        return max(0.0, (end - start).total_seconds() / 3600.0)

    @property
    def duration_hours(self) -> float:
        return (self.exit - self.entry).total_seconds() / 3600.0


def segment_length_km(segment: RouteSegment) -> float:
    return segment.length_km or polyline_length_km(segment.coordinates)


def route_windows(convoy: Convoy) -> List[SegmentWindow]:
    """Entry/exit time of the convoy on each segment of its route.

    The route ETA is spread over the segments in proportion to each segment's
    share of the total segment distance.
    """
    route = convoy.assigned_route
    if route is None or not route.segments:
        return []
    lengths = [segment_length_km(segment) for segment in route.segments]
    total_km = sum(lengths)
    if total_km <= 0:
        return []
    start = convoy.time_reference
    eta = timedelta(hours=route.eta_hours)
    windows = []
    travelled = 0.0
    for segment, length in zip(route.segments, lengths):
        entry = start + eta * (travelled / total_km)
        travelled += length
        exit_ = start + eta * (travelled / total_km)
        windows.append(
            SegmentWindow(
                convoy_id=convoy.id,
                priority=convoy.priority,
                segment_id=segment.id,
                entry=entry,
                exit=exit_,
            )
        )
    return windows


def occupancy_by_segment(convoys: Iterable[Convoy]) -> Dict[str, List[SegmentWindow]]:
    """Windows grouped by segment id, each list ordered by entry time then convoy id."""
    occupancy: Dict[str, List[SegmentWindow]] = {}
    for convoy in convoys:
        for window in route_windows(convoy):
            occupancy.setdefault(window.segment_id, []).append(window)
    for windows in occupancy.values():
        windows.sort(key=lambda window: (window.entry, window.convoy_id))
    return occupancy
