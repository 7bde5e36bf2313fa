from datetime import datetime, timedelta, timezone
from typing import List, Tuple

from src.convoyops.models.domain import (
    Convoy,
    ConvoyStatus,
    Difficulty,
    Location,
    Priority,
    Route,
    RouteSegment,
    SegmentStatus,
    Terrain,
)
from src.convoyops.services.merging.advisor import MergeAdvisor

T0 = datetime(2026, 1, 15, 4, 0, tzinfo=timezone.utc)
SRINAGAR = Location(lat=34.0837, lng=74.7973, name="Srinagar")
LEH = Location(lat=34.1526, lng=77.5771, name="Leh")


def _convoy(
    convoy_id: str,
    segments: List[Tuple[str, float]],
    *,
    vehicles: int = 10,
    departure: datetime = T0,
    eta_hours: float = 2.0,
) -> Convoy:
    route = Route(
        id=f"RTE-{convoy_id}",
        name="Srinagar to Leh",
        polyline=[SRINAGAR.as_lnglat(), LEH.as_lnglat()],
        eta_hours=eta_hours,
        distance_km=sum(length for _, length in segments),
        risk_score=30.0,
        segments=[
            RouteSegment(
                id=segment_id,
                coordinates=[(75.0, 34.0), (75.1, 34.0)],
                terrain=Terrain.MOUNTAIN,
                difficulty=Difficulty.MEDIUM,
                recommended_speed_kmph=35.0,
                risk_level=0.3,
                status=SegmentStatus.CLEAR,
                length_km=length,
            )
            for segment_id, length in segments
        ],
    )
    return Convoy(
        id=convoy_id,
        name=convoy_id,
        origin=SRINAGAR,
        destination=LEH,
        speed_kmph=40.0,
        priority=Priority.BRAVO,
        vehicle_count=vehicles,
        status=ConvoyStatus.PLANNED,
        last_updated=T0,
        assigned_route=route,
        departure_at=departure,
    )


def test_convoys_on_same_corridor_get_mutual_suggestions() -> None:
    first = _convoy("CVY-001", [("SEG-1", 20.0)], vehicles=12)
    second = _convoy("CVY-002", [("SEG-1", 20.0)], vehicles=18)

    suggestions = MergeAdvisor().suggest_merges([first, second])

    assert suggestions["CVY-001"].with_convoy_id == "CVY-002"
    assert suggestions["CVY-002"].with_convoy_id == "CVY-001"
    assert suggestions["CVY-001"].payload_savings_tons == 75.0
    assert suggestions["CVY-001"].confidence == 1.0


def test_confidence_drops_with_entry_offset() -> None:
    first = _convoy("CVY-001", [("SEG-1", 20.0)])
    second = _convoy("CVY-002", [("SEG-1", 20.0)], departure=T0 + timedelta(minutes=30))

    candidate = MergeAdvisor().evaluate_pair(first, second)

    assert candidate is not None
    assert candidate.confidence == 0.8


def test_vehicle_quota_blocks_merge() -> None:
    first = _convoy("CVY-001", [("SEG-1", 20.0)], vehicles=25)
    second = _convoy("CVY-002", [("SEG-1", 20.0)], vehicles=20)

    assert MergeAdvisor().suggest_merges([first, second]) == {"CVY-001": None, "CVY-002": None}


def test_small_time_overlap_is_not_a_candidate() -> None:
    first = _convoy("CVY-001", [("SEG-1", 20.0)])
    second = _convoy("CVY-002", [("SEG-1", 20.0)], departure=T0 + timedelta(hours=1, minutes=30))

    assert MergeAdvisor().evaluate_pair(first, second) is None


def test_savings_scale_with_shared_share_of_shorter_route() -> None:
    long_haul = _convoy("CVY-001", [("SEG-1", 10.0), ("SEG-2", 30.0)], eta_hours=4.0)
    feeder = _convoy("CVY-002", [("SEG-1", 10.0), ("SEG-9", 10.0)])

    candidate = MergeAdvisor().evaluate_pair(long_haul, feeder)

    # shared 10 km of the 20 km feeder route
    assert candidate.savings_tons == 25.0


def test_best_partner_wins_with_id_tie_break() -> None:
    hub = _convoy("CVY-001", [("SEG-1", 20.0)])
    partner_b = _convoy("CVY-003", [("SEG-1", 20.0)])
    partner_a = _convoy("CVY-002", [("SEG-1", 20.0)])

    suggestions = MergeAdvisor().suggest_merges([hub, partner_b, partner_a])

    assert suggestions["CVY-001"].with_convoy_id == "CVY-002"


def test_unrouted_convoys_get_no_suggestion() -> None:
    routed = _convoy("CVY-001", [("SEG-1", 20.0)])
    idle = _convoy("CVY-002", [("SEG-1", 20.0)])
    idle.assigned_route = None

    assert MergeAdvisor().suggest_merges([routed, idle]) == {"CVY-001": None, "CVY-002": None}
