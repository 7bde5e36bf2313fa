from datetime import datetime, timedelta, timezone
from typing import List, Tuple

import pytest

from src.convoyops.models.domain import (
    ConflictSeverity,
    Convoy,
    ConvoyStatus,
    Difficulty,
    Location,
    Priority,
    RoadSegment,
    Route,
    RouteSegment,
    SegmentStatus,
    Terrain,
)
from src.convoyops.services.conflicts.detector import ConflictDetector, conflict_id
from src.convoyops.services.conflicts.windows import route_windows
from src.convoyops.services.network.service import RoadNetwork

T0 = datetime(2026, 1, 15, 4, 0, tzinfo=timezone.utc)
SRINAGAR = Location(lat=34.0837, lng=74.7973, name="Srinagar")
LEH = Location(lat=34.1526, lng=77.5771, name="Leh")


def _route_segment(segment_id: str, length_km: float, status: SegmentStatus = SegmentStatus.CLEAR) -> RouteSegment:
    return RouteSegment(
        id=segment_id,
        coordinates=[(75.0, 34.0), (75.1, 34.0)],
        terrain=Terrain.MOUNTAIN,
        difficulty=Difficulty.MEDIUM,
        recommended_speed_kmph=35.0,
        risk_level=0.3,
        status=status,
        length_km=length_km,
    )


def _convoy(
    convoy_id: str,
    segments: List[Tuple[str, float]],
    *,
    departure: datetime = T0,
    eta_hours: float = 2.0,
    risk_score: float = 30.0,
    priority: Priority = Priority.BRAVO,
    vehicles: int = 10,
) -> Convoy:
    route = Route(
        id=f"RTE-{convoy_id}",
        name="Srinagar to Leh",
        polyline=[SRINAGAR.as_lnglat(), LEH.as_lnglat()],
        eta_hours=eta_hours,
        distance_km=sum(length for _, length in segments),
        risk_score=risk_score,
        segments=[_route_segment(segment_id, length) for segment_id, length in segments],
    )
    return Convoy(
        id=convoy_id,
        name=convoy_id,
        origin=SRINAGAR,
        destination=LEH,
        speed_kmph=40.0,
        priority=priority,
        vehicle_count=vehicles,
        status=ConvoyStatus.EN_ROUTE,
        last_updated=T0,
        assigned_route=route,
        departure_at=departure,
    )


def _network(capacity: int = 1) -> RoadNetwork:
    return RoadNetwork(
        [
            RoadSegment(
                id="SEG-1",
                coordinates=[(75.0, 34.0), (75.1, 34.0)],
                terrain=Terrain.MOUNTAIN,
                difficulty=Difficulty.MEDIUM,
                recommended_speed_kmph=35.0,
                risk_level=0.3,
                capacity=capacity,
            ),
            RoadSegment(
                id="SEG-2",
                coordinates=[(75.1, 34.0), (75.2, 34.0)],
                terrain=Terrain.MOUNTAIN,
                difficulty=Difficulty.MEDIUM,
                recommended_speed_kmph=35.0,
                risk_level=0.3,
            ),
        ]
    )


def test_route_windows_split_eta_by_length() -> None:
    convoy = _convoy("CVY-001", [("SEG-1", 10.0), ("SEG-2", 30.0)], eta_hours=4.0)

    windows = route_windows(convoy)

    assert [(w.segment_id, w.entry, w.exit) for w in windows] == [
        ("SEG-1", T0, T0 + timedelta(hours=1)),
        ("SEG-2", T0 + timedelta(hours=1), T0 + timedelta(hours=4)),
    ]


def test_overlapping_convoys_on_single_lane_segment() -> None:
    alpha = _convoy("CVY-001", [("SEG-1", 20.0)], priority=Priority.ALPHA)
    bravo = _convoy("CVY-002", [("SEG-1", 20.0)], departure=T0 + timedelta(minutes=30))
    detector = ConflictDetector(_network())

    conflicts = detector.detect([alpha, bravo])

    assert len(conflicts) == 1
    record = conflicts[0]
    assert record.convoy_ids == ["CVY-001", "CVY-002"]
    assert record.segment_ids == ["SEG-1"]
    assert record.window_start == T0 + timedelta(minutes=30)
    assert record.window_end == T0 + timedelta(hours=2)
    assert record.severity is ConflictSeverity.CAPACITY_OVERLAP
    assert record.blocked_segment_count == 0
    assert record.id == conflict_id(["CVY-002", "CVY-001"])


def test_touching_windows_do_not_conflict() -> None:
    first = _convoy("CVY-001", [("SEG-1", 20.0)])
    second = _convoy("CVY-002", [("SEG-1", 20.0)], departure=T0 + timedelta(hours=2))

    assert ConflictDetector(_network()).detect([first, second]) == []


def test_capacity_allows_parallel_convoys() -> None:
    first = _convoy("CVY-001", [("SEG-1", 20.0)])
    second = _convoy("CVY-002", [("SEG-1", 20.0)])

    assert ConflictDetector(_network(capacity=2)).detect([first, second]) == []


def test_blocked_segment_on_route_is_reported_for_single_convoy() -> None:
    network = _network()
    network.update_segment_status("SEG-2", SegmentStatus.BLOCKED)
    convoy = _convoy("CVY-001", [("SEG-1", 10.0), ("SEG-2", 10.0)])

    conflicts = ConflictDetector(network).detect([convoy])

    assert len(conflicts) == 1
    assert conflicts[0].severity is ConflictSeverity.BLOCKED
    assert conflicts[0].convoy_ids == ["CVY-001"]
    assert conflicts[0].blocked_segment_count == 1
    assert conflicts[0].window_start == T0 + timedelta(hours=1)


def test_high_route_risk_escalates_severity() -> None:
    first = _convoy("CVY-001", [("SEG-1", 20.0)], risk_score=62.0)
    second = _convoy("CVY-002", [("SEG-1", 20.0)])

    [record] = ConflictDetector(_network()).detect([first, second])

    assert record.severity is ConflictSeverity.HIGH_RISK
    assert record.risk_score == 62.0


def test_records_sorted_by_severity_then_convoys() -> None:
    network = _network()
    network.update_segment_status("SEG-2", SegmentStatus.BLOCKED)
    overlap_a = _convoy("CVY-001", [("SEG-1", 20.0)])
    overlap_b = _convoy("CVY-002", [("SEG-1", 20.0)])
    blocked = _convoy("CVY-003", [("SEG-2", 20.0)], departure=T0 + timedelta(days=1))

    conflicts = ConflictDetector(network).detect([overlap_a, overlap_b, blocked])

    assert [record.severity for record in conflicts] == [
        ConflictSeverity.BLOCKED,
        ConflictSeverity.CAPACITY_OVERLAP,
    ]
    assert conflicts[0].convoy_ids == ["CVY-003"]


def test_detection_is_deterministic_and_order_independent() -> None:
    convoys = [
        _convoy("CVY-001", [("SEG-1", 20.0), ("SEG-2", 20.0)], eta_hours=4.0),
        _convoy("CVY-002", [("SEG-1", 20.0)], departure=T0 + timedelta(minutes=15)),
        _convoy("CVY-003", [("SEG-2", 20.0)], departure=T0 + timedelta(hours=2, minutes=30)),
    ]
    detector = ConflictDetector(_network())

    forward = detector.detect(convoys)
    backward = detector.detect(list(reversed(convoys)))

    assert forward == backward
    assert [record.convoy_ids for record in forward] == [["CVY-001", "CVY-002"], ["CVY-001", "CVY-003"]]


def test_segments_unknown_to_network_use_route_snapshot() -> None:
    convoy = _convoy("CVY-001", [("SEG-X", 20.0)])
    convoy.assigned_route.segments[0].status = SegmentStatus.BLOCKED

    [record] = ConflictDetector(_network()).detect([convoy])

    assert record.severity is ConflictSeverity.BLOCKED


@pytest.mark.parametrize("ids", [["CVY-001", "CVY-002"], ["CVY-002", "CVY-001"]])
def test_conflict_id_ignores_order(ids) -> None:
    assert conflict_id(ids) == conflict_id(["CVY-001", "CVY-002"])
    assert conflict_id(ids).startswith("CFL-")
