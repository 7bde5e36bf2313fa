"""Fleet-level figures for the analytics panel."""

from __future__ import annotations

from typing import AbstractSet, Sequence

from ..models.domain import ConflictRecord, Convoy, ConvoyStatus, RoadSegment, SegmentStatus


def summarize(
    convoys: Sequence[Convoy],
    conflicts: Sequence[ConflictRecord],
    acknowledged: AbstractSet[str],
    segments: Sequence[RoadSegment],
    high_severity_events: int,
) -> dict:
    total = len(convoys)
    by_status = {status: 0 for status in ConvoyStatus}
    for convoy in convoys:
        by_status[convoy.status] += 1
    active = by_status[ConvoyStatus.EN_ROUTE]

    risks = [convoy.assigned_route.risk_score for convoy in convoys if convoy.assigned_route is not None]
    return {
        "total_convoys": total,
        "active_missions": active,
        "delayed_convoys": by_status[ConvoyStatus.DELAYED],
        "planned_convoys": by_status[ConvoyStatus.PLANNED],
        "completed_convoys": by_status[ConvoyStatus.COMPLETED],
        "fleet_efficiency_percent": round(active / total * 100) if total else 0,
        "conflicts_prevented": high_severity_events,
        "active_conflicts": len(conflicts),
        "awaiting_acknowledgement": sum(1 for record in conflicts if record.id not in acknowledged),
        "blocked_segments": sum(1 for segment in segments if segment.status is SegmentStatus.BLOCKED),
        "mean_route_risk": round(sum(risks) / len(risks), 1) if risks else None,
    }
