import pytest

from src.convoyops.models.domain import Difficulty, RoadSegment, SegmentStatus, Terrain
from src.convoyops.models.errors import InvalidSpec, SegmentNotFound
from src.convoyops.services.network.service import RoadNetwork

A = (70.0, 30.0)
B = (70.1, 30.0)
C = (70.2, 30.0)
D = (70.1, 30.1)


def _segment(segment_id: str, start, end, risk: float = 0.1, capacity: int = 1) -> RoadSegment:
    return RoadSegment(
        id=segment_id,
        coordinates=[start, end],
        terrain=Terrain.MOUNTAIN,
        difficulty=Difficulty.MEDIUM,
        recommended_speed_kmph=50.0,
        risk_level=risk,
        capacity=capacity,
    )


def _network() -> RoadNetwork:
    return RoadNetwork(
        [
            _segment("S-AB", A, B),
            _segment("S-BC", B, C),
            _segment("S-AD", A, D),
            _segment("S-DC", D, C),
        ],
        high_risk_threshold=0.7,
    )


def test_neighbors_share_an_endpoint() -> None:
    network = _network()

    assert network.neighbors("S-AB") == ["S-AD", "S-BC"]
    assert network.neighbors("S-DC") == ["S-AD", "S-BC"]


def test_endpoints_join_at_node_precision() -> None:
    network = _network()
    network.add_segment(_segment("S-CX", (70.20001, 30.00002), (70.3, 30.0)))

    assert "S-CX" in network.neighbors("S-BC")


def test_unknown_segment_raises() -> None:
    network = _network()

    with pytest.raises(SegmentNotFound):
        network.get_segment("S-ZZ")
    with pytest.raises(SegmentNotFound):
        network.neighbors("S-ZZ")


@pytest.mark.parametrize(
    "segment",
    [
        _segment("S-AB", A, B),
        RoadSegment("S-1", [A], Terrain.URBAN, Difficulty.LOW, 50.0, 0.1),
        RoadSegment("S-2", [A, B], Terrain.URBAN, Difficulty.LOW, 0.0, 0.1),
        RoadSegment("S-3", [A, B], Terrain.URBAN, Difficulty.LOW, 50.0, 1.5),
    ],
)
def test_add_segment_rejects_invalid_definitions(segment: RoadSegment) -> None:
    network = _network()

    with pytest.raises(InvalidSpec):
        network.add_segment(segment)


def test_blocking_a_segment_bumps_version_and_notifies() -> None:
    network = _network()
    seen = []
    network.subscribe(seen.append)
    version = network.version

    updated = network.update_segment_status("S-BC", SegmentStatus.BLOCKED)

    assert updated.status is SegmentStatus.BLOCKED
    assert network.get_segment("S-BC").status is SegmentStatus.BLOCKED
    assert network.version == version + 1
    assert seen == ["S-BC"]
    assert network.changed_since(version)
    assert network.changed_since(version, ["S-BC"])
    assert not network.changed_since(version, ["S-AB", "S-AD"])


def test_high_risk_status_raises_risk_to_threshold() -> None:
    network = _network()

    updated = network.update_segment_status("S-AB", SegmentStatus.HIGH_RISK)

    assert updated.status is SegmentStatus.HIGH_RISK
    assert updated.risk_level == pytest.approx(0.7)


def test_clear_status_restores_baseline_risk() -> None:
    network = _network()
    network.update_segment_status("S-AB", SegmentStatus.HIGH_RISK, risk_level=0.9)

    cleared = network.update_segment_status("S-AB", SegmentStatus.CLEAR)

    assert cleared.status is SegmentStatus.CLEAR
    assert cleared.risk_level == pytest.approx(0.1)


def test_clear_with_risk_above_threshold_is_rejected_without_mutation() -> None:
    network = _network()
    network.update_segment_status("S-AB", SegmentStatus.BLOCKED)
    version = network.version

    with pytest.raises(InvalidSpec):
        network.update_segment_status("S-AB", SegmentStatus.CLEAR, risk_level=0.8)

    assert network.get_segment("S-AB").status is SegmentStatus.BLOCKED
    assert network.version == version


def test_adjust_risk_clamps_and_keeps_block() -> None:
    network = _network()
    network.update_segment_status("S-AD", SegmentStatus.BLOCKED)

    updated = network.adjust_risk("S-AD", 2.0)

    assert updated.risk_level == 1.0
    assert updated.status is SegmentStatus.BLOCKED


def test_nearest_node_and_orientation() -> None:
    network = _network()

    node, distance = network.nearest_node((70.2001, 30.0001))
    assert node == network.node_key(C)
    assert distance < 0.1

    assert network.oriented_coordinates("S-BC", network.node_key(C)) == [C, B]
    assert network.segment_length_km("S-AB") == pytest.approx(9.63, abs=0.01)
