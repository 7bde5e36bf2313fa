"""Merge advisor: suggests consolidating convoys that share a corridor."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from ...config import settings
from ...models.domain import Convoy, MergeSuggestion
from ..conflicts.windows import SegmentWindow, route_windows, segment_length_km

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class MergeCandidate:
    convoy_id: str
    partner_id: str
    savings_tons: float
    confidence: float


def _overlap_fraction(a: SegmentWindow, b: SegmentWindow) -> float:
    shortest = min(a.duration_hours, b.duration_hours)
    if shortest <= 0:
        return 0.0
    return a.overlap_hours(b) / shortest


def _route_length_km(convoy: Convoy) -> float:
    route = convoy.assigned_route
    if route is None:
        return 0.0
    return sum(segment_length_km(segment) for segment in route.segments)


class MergeAdvisor:
    def __init__(
        self,
        *,
        min_overlap_fraction: float | None = None,
        max_combined_vehicles: int | None = None,
        tons_per_vehicle: float | None = None,
    ) -> None:
        self.min_overlap_fraction = (
            min_overlap_fraction if min_overlap_fraction is not None else settings.merge_min_overlap_fraction
        )
        self.max_combined_vehicles = (
            max_combined_vehicles if max_combined_vehicles is not None else settings.merge_max_combined_vehicles
        )
        self.tons_per_vehicle = tons_per_vehicle if tons_per_vehicle is not None else settings.merge_tons_per_vehicle

    def evaluate_pair(self, first: Convoy, second: Convoy) -> Optional[MergeCandidate]:
        """Score ``second`` as a merge partner for ``first``; None when not a candidate.

        Savings grow linearly with the combined vehicle count and the shared share
        of the shorter route. Confidence falls as entry times on the shared
        segments drift apart.
        """
        if first.vehicle_count + second.vehicle_count > self.max_combined_vehicles:
            return None
        first_windows = {window.segment_id: window for window in route_windows(first)}
        second_windows = {window.segment_id: window for window in route_windows(second)}
        shared = sorted(set(first_windows) & set(second_windows))
        if not shared:
            return None

        aligned = [
            segment_id
            for segment_id in shared
            if _overlap_fraction(first_windows[segment_id], second_windows[segment_id]) > self.min_overlap_fraction
        ]
        if not aligned:
            return None

        lengths = {
            segment.id: segment_length_km(segment)
            for segment in first.assigned_route.segments
            if segment.id in first_windows
        }
        shorter = min(_route_length_km(first), _route_length_km(second))
        shared_km = sum(lengths.get(segment_id, 0.0) for segment_id in shared)
        shared_fraction = min(1.0, shared_km / shorter) if shorter > 0 else 0.0

        offsets = [
            (first_windows[segment_id].entry - second_windows[segment_id].entry).total_seconds() / 3600.0
            for segment_id in aligned
        ]
        mean_square = sum(offset * offset for offset in offsets) / len(offsets)

        savings = self.tons_per_vehicle * (first.vehicle_count + second.vehicle_count) * shared_fraction
        return MergeCandidate(
            convoy_id=first.id,
            partner_id=second.id,
            savings_tons=round(savings, 1),
            confidence=round(1.0 / (1.0 + mean_square), 2),
        )

    def suggest_merges(self, convoys: Sequence[Convoy]) -> Dict[str, Optional[MergeSuggestion]]:
        """At most one suggestion per convoy: the highest-savings partner, lower id on ties."""
        routed = [convoy for convoy in convoys if convoy.assigned_route is not None]
        suggestions: Dict[str, Optional[MergeSuggestion]] = {convoy.id: None for convoy in convoys}
        for convoy in routed:
            candidates: List[MergeCandidate] = []
            for partner in routed:
                if partner.id == convoy.id:
                    continue
                candidate = self.evaluate_pair(convoy, partner)
                if candidate is not None:
                    candidates.append(candidate)
            if not candidates:
                continue
            best = min(candidates, key=lambda item: (-item.savings_tons, item.partner_id))
            suggestions[convoy.id] = MergeSuggestion(
                with_convoy_id=best.partner_id,
                payload_savings_tons=best.savings_tons,
                confidence=best.confidence,
            )
        logger.debug(f"Merge advisor produced {sum(1 for item in suggestions.values() if item)} suggestions")
        return suggestions
