from datetime import datetime, timedelta, timezone

import pytest

from src.convoyops.models.domain import (
    Checkpoint,
    ConflictSeverity,
    ConvoySpec,
    ConvoyStatus,
    Difficulty,
    EventSeverity,
    EventType,
    Location,
    Priority,
    RoadSegment,
    SegmentStatus,
    Terrain,
)
from src.convoyops.models.errors import ConflictNotFound, ConvoyNotFound, SegmentNotFound, StaleNetworkState
from src.convoyops.services.dispatch import DispatchService
from src.convoyops.services.network.service import RoadNetwork

T0 = datetime(2026, 1, 15, 4, 0, tzinfo=timezone.utc)
A = (70.0, 30.0)
B = (70.1, 30.0)
C = (70.2, 30.0)
D = (70.1, 30.1)
BASE = Location(lat=30.0, lng=70.0, name="Base Camp")
POST = Location(lat=30.0, lng=70.2, name="Forward Post")


class RecordingPublisher:
    def __init__(self) -> None:
        self.messages = []

    def publish(self, message) -> None:
        self.messages.append(message)

    def names(self):
        return [message.name for message in self.messages]


def _segment(segment_id: str, start, end, risk: float = 0.1) -> RoadSegment:
    return RoadSegment(
        id=segment_id,
        coordinates=[start, end],
        terrain=Terrain.MOUNTAIN,
        difficulty=Difficulty.MEDIUM,
        recommended_speed_kmph=50.0,
        risk_level=risk,
    )


def _dispatch() -> DispatchService:
    network = RoadNetwork(
        [
            _segment("S-AB", A, B),
            _segment("S-BC", B, C),
            _segment("S-AD", A, D),
            _segment("S-DC", D, C),
        ]
    )
    return DispatchService(network, publisher=RecordingPublisher())


def _spec(convoy_id: str, priority: Priority = Priority.ALPHA, **overrides) -> ConvoySpec:
    fields = dict(
        origin=BASE,
        destination=POST,
        id=convoy_id,
        speed_kmph=40.0,
        priority=priority,
        vehicle_count=12,
        departure_at=T0,
    )
    fields.update(overrides)
    return ConvoySpec(**fields)


def _routed_pair(dispatch: DispatchService) -> None:
    for convoy_id in ("CVY-001", "CVY-002"):
        dispatch.create_convoy(_spec(convoy_id))
        dispatch.request_route(convoy_id, apply=True)


def test_create_convoy_publishes_and_recomputes() -> None:
    dispatch = _dispatch()

    convoy = dispatch.create_convoy(_spec("CVY-001"))

    assert convoy.id == "CVY-001"
    assert dispatch.publisher.names() == ["convoy.created"]
    assert dispatch.conflicts() == []


def test_request_route_does_not_commit_unless_applied() -> None:
    dispatch = _dispatch()
    dispatch.create_convoy(_spec("CVY-001"))

    result, convoy = dispatch.request_route("CVY-001")
    assert convoy is None
    assert dispatch.get_convoy("CVY-001").assigned_route is None

    result, convoy = dispatch.request_route("CVY-001", apply=True)
    assert convoy.assigned_route.segment_ids() == result.route.segment_ids()
    assert "convoy.reroute" in dispatch.publisher.names()


def test_applied_override_moves_destination() -> None:
    dispatch = _dispatch()
    dispatch.create_convoy(_spec("CVY-001"))
    ridge = Location(lat=30.1, lng=70.1, name="Ridge")

    _, convoy = dispatch.request_route("CVY-001", ridge, apply=True)

    assert convoy.destination.name == "Ridge"
    assert convoy.assigned_route.polyline[-1] == ridge.as_lnglat()


def test_shared_corridor_produces_conflict_and_merge_suggestion() -> None:
    dispatch = _dispatch()
    _routed_pair(dispatch)

    [view] = dispatch.conflicts()
    assert view.record.convoy_ids == ["CVY-001", "CVY-002"]
    assert view.record.segment_ids == ["S-AB", "S-BC"]
    assert view.record.severity is ConflictSeverity.CAPACITY_OVERLAP
    assert view.acknowledged is False
    assert "conflict.detected" in dispatch.publisher.names()

    merges = dispatch.merge_suggestions()
    assert merges["CVY-001"].with_convoy_id == "CVY-002"
    assert dispatch.get_convoy("CVY-001").merge_suggestion.with_convoy_id == "CVY-002"


def test_acknowledgement_survives_recompute() -> None:
    dispatch = _dispatch()
    _routed_pair(dispatch)
    [view] = dispatch.conflicts()

    dispatch.acknowledge(view.record.id)
    dispatch.update_status("CVY-001", ConvoyStatus.EN_ROUTE)

    [again] = dispatch.conflicts()
    assert again.record.id == view.record.id
    assert again.acknowledged is True

    with pytest.raises(ConflictNotFound):
        dispatch.acknowledge("CFL-UNKNOWN")


def test_segment_update_marks_routes_stale() -> None:
    dispatch = _dispatch()
    _routed_pair(dispatch)

    segment = dispatch.update_segment("S-BC", SegmentStatus.BLOCKED)

    assert segment.status is SegmentStatus.BLOCKED
    assert dispatch.get_convoy("CVY-001").route_stale is True
    update = [message for message in dispatch.publisher.messages if message.name == "segment.updated"][-1]
    assert update.stale_convoy_ids == ["CVY-001", "CVY-002"]
    assert dispatch.conflicts()[0].record.severity is ConflictSeverity.BLOCKED

    _, convoy = dispatch.request_route("CVY-001", apply=True)
    assert convoy.route_stale is False
    assert convoy.assigned_route.segment_ids() == ["S-AD", "S-DC"]


def test_high_severity_event_delays_convoy() -> None:
    dispatch = _dispatch()
    dispatch.create_convoy(_spec("CVY-001"))

    event = dispatch.trigger_event(EventType.LANDSLIDE, EventSeverity.HIGH, convoy_id="CVY-001", segment_id="S-AB")

    assert event.id.startswith("EVT-")
    assert dispatch.get_convoy("CVY-001").status is ConvoyStatus.DELAYED
    assert dispatch.network.get_segment("S-AB").status is SegmentStatus.BLOCKED
    assert dispatch.recent_events(1)[0].id == event.id
    assert "event.triggered" in dispatch.publisher.names()


def test_event_with_unknown_references_records_nothing() -> None:
    dispatch = _dispatch()
    dispatch.create_convoy(_spec("CVY-001"))

    with pytest.raises(SegmentNotFound):
        dispatch.trigger_event(EventType.BLOCK_ROAD, EventSeverity.LOW, segment_id="S-ZZ")
    with pytest.raises(ConvoyNotFound):
        dispatch.trigger_event(EventType.RAINFALL, EventSeverity.LOW, convoy_id="CVY-999")

    assert dispatch.recent_events() == []


def test_checkpoint_logging_is_idempotent() -> None:
    dispatch = _dispatch()
    dispatch.create_convoy(_spec("CVY-001"))
    result, _ = dispatch.request_route("CVY-001")
    route = result.route
    route.checkpoints = [Checkpoint(id="CP-1", name="Bridge", eta=T0 + timedelta(minutes=15))]
    dispatch.assign_route("CVY-001", route)

    first, cleared = dispatch.log_checkpoint("CVY-001", "CP-1", Location(lat=30.0, lng=70.1))
    second, cleared_again = dispatch.log_checkpoint("CVY-001", "CP-1", Location(lat=30.0, lng=70.1))

    assert cleared is True
    assert cleared_again is False
    assert first.logged_at == second.logged_at
    assert dispatch.publisher.names().count("convoy.checkpoint.cleared") == 1
    assert len([event for event in dispatch.recent_events() if event.type is EventType.CHECKPOINT]) == 1


def test_stale_network_is_retried_once(monkeypatch) -> None:
    dispatch = _dispatch()
    dispatch.create_convoy(_spec("CVY-001"))
    real_optimize = dispatch.optimizer.optimize
    attempts = []

    def flaky(convoy_id, destination_override=None):
        attempts.append(convoy_id)
        if len(attempts) == 1:
            raise StaleNetworkState("changed")
        return real_optimize(convoy_id, destination_override)

    monkeypatch.setattr(dispatch.optimizer, "optimize", flaky)

    result, _ = dispatch.request_route("CVY-001")

    assert len(attempts) == 2
    assert result.route.segment_ids() == ["S-AB", "S-BC"]


def test_stale_network_surfaces_after_second_failure(monkeypatch) -> None:
    dispatch = _dispatch()
    dispatch.create_convoy(_spec("CVY-001"))

    def always_stale(convoy_id, destination_override=None):
        raise StaleNetworkState("changed")

    monkeypatch.setattr(dispatch.optimizer, "optimize", always_stale)

    with pytest.raises(StaleNetworkState):
        dispatch.request_route("CVY-001")


def test_segment_change_between_search_and_commit_reroutes(monkeypatch) -> None:
    dispatch = _dispatch()
    dispatch.create_convoy(_spec("CVY-001"))
    real_optimize = dispatch.optimizer.optimize
    attempts = []

    def optimize_then_block(convoy_id, destination_override=None):
        result = real_optimize(convoy_id, destination_override)
        attempts.append(result.route.segment_ids())
        if len(attempts) == 1:
            dispatch.update_segment("S-AB", SegmentStatus.BLOCKED)
        return result

    monkeypatch.setattr(dispatch.optimizer, "optimize", optimize_then_block)

    _, convoy = dispatch.request_route("CVY-001", apply=True)

    assert attempts == [["S-AB", "S-BC"], ["S-AD", "S-DC"]]
    assert convoy.assigned_route.segment_ids() == ["S-AD", "S-DC"]
    assert convoy.route_stale is False


def test_route_changed_before_every_commit_is_never_installed(monkeypatch) -> None:
    dispatch = _dispatch()
    dispatch.create_convoy(_spec("CVY-001"))
    real_optimize = dispatch.optimizer.optimize

    def optimize_then_degrade(convoy_id, destination_override=None):
        result = real_optimize(convoy_id, destination_override)
        dispatch.network.adjust_risk(result.route.segment_ids()[0], 0.05)
        return result

    monkeypatch.setattr(dispatch.optimizer, "optimize", optimize_then_degrade)

    with pytest.raises(StaleNetworkState):
        dispatch.request_route("CVY-001", apply=True)

    assert dispatch.get_convoy("CVY-001").assigned_route is None

def test_risk_alert_for_high_risk_route() -> None:
    network = RoadNetwork([_segment("S-AB", A, B, risk=0.8)])
    dispatch = DispatchService(network, publisher=RecordingPublisher())
    dispatch.create_convoy(_spec("CVY-001", destination=Location(lat=30.0, lng=70.1, name="Bridge")))

    dispatch.request_route("CVY-001", apply=True)

    alerts = [message for message in dispatch.publisher.messages if message.name == "risk.alert"]
    assert len(alerts) == 1
    assert alerts[0].risk_score > 55


def test_seed_routes_convoys_in_priority_order() -> None:
    dispatch = _dispatch()

    created = dispatch.seed(
        [
            _spec("CVY-002", Priority.CHARLIE),
            _spec("CVY-001", Priority.ALPHA),
            _spec("CVY-003", Priority.BRAVO, origin=Location(lat=10.0, lng=10.0)),
        ]
    )

    assert [convoy.id for convoy in created] == ["CVY-001", "CVY-003", "CVY-002"]
    assert dispatch.get_convoy("CVY-001").assigned_route is not None
    assert dispatch.get_convoy("CVY-003").assigned_route is None


def test_summary_counts() -> None:
    dispatch = _dispatch()
    _routed_pair(dispatch)
    dispatch.update_status("CVY-001", ConvoyStatus.EN_ROUTE)
    dispatch.trigger_event(EventType.CONGESTION, EventSeverity.HIGH, convoy_id="CVY-002")

    summary = dispatch.summary()

    assert summary["total_convoys"] == 2
    assert summary["active_missions"] == 1
    assert summary["delayed_convoys"] == 1
    assert summary["fleet_efficiency_percent"] == 50
    assert summary["conflicts_prevented"] == 1
    assert summary["active_conflicts"] == 1
    assert summary["awaiting_acknowledgement"] == 1
    assert summary["blocked_segments"] == 0
