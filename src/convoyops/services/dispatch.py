"""Dispatch service: the single write path over network, convoys and conflicts.

Every mutation goes through here so that conflicts and merge suggestions are
recomputed after it and the matching notification is published.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from pydantic import ValidationError

from ..config import settings
from ..models.domain import (
    Checkpoint,
    ConflictRecord,
    Convoy,
    ConvoySpec,
    ConvoyStatus,
    EventSeverity,
    EventType,
    Location,
    MergeSuggestion,
    OperationEvent,
    Priority,
    RoadSegment,
    Route,
    SegmentStatus,
)
from ..models.errors import ConflictNotFound, InvalidSpec, NoPathExists, StaleNetworkState
from ..persistence.filesystem import FileStorage
from ..schemas.events import OperationEventModel
from .analytics import summarize
from .conflicts.detector import ConflictDetector
from .convoys.store import ConvoyStore
from .events import messages
from .events.publisher import Publisher, build_publisher
from .events.service import EventLog, apply_event_to_network
from .merging.advisor import MergeAdvisor
from .network.service import RoadNetwork
from .outputs.formatter import event_from_model, event_to_model
from .routing.optimizer import OptimizationResult, RouteOptimizer

logger = logging.getLogger(__name__)

_ACKNOWLEDGEMENTS = "acknowledgements"
_EVENTS = "events"


@dataclass(slots=True)
class ConflictView:
    record: ConflictRecord
    acknowledged: bool


class DispatchService:
    def __init__(
        self,
        network: RoadNetwork,
        store: ConvoyStore | None = None,
        *,
        detector: ConflictDetector | None = None,
        optimizer: RouteOptimizer | None = None,
        advisor: MergeAdvisor | None = None,
        events: EventLog | None = None,
        publisher: Publisher | None = None,
        storage: FileStorage | None = None,
    ) -> None:
        self.network = network
        self.store = store or ConvoyStore()
        self.detector = detector or ConflictDetector(network)
        self.optimizer = optimizer or RouteOptimizer(network, self.store, self.detector)
        self.advisor = advisor or MergeAdvisor()
        self.events = events or EventLog()
        self.publisher = publisher or build_publisher()
        self.storage = storage

        self._generation = 0
        self._generation_lock = threading.Lock()
        self._install_lock = threading.Lock()
        self._installed_generation = 0
        self._conflicts: List[ConflictRecord] = []
        self._merges: Dict[str, Optional[MergeSuggestion]] = {}
        self._acknowledged: set[str] = set()
        self._ack_lock = threading.Lock()

        self.network.subscribe(self._on_segment_changed)
        self._restore_state()

    def close(self) -> None:
        """Stop background notification delivery, flushing what is queued."""
        close = getattr(self.publisher, "close", None)
        if close is not None:
            close(timeout=settings.webhook_timeout_seconds)

    # -- state persistence --------------------------------------------

    def _restore_state(self) -> None:
        if self.storage is None:
            return
        acknowledged = self.storage.read_json(self.storage.state_path(_ACKNOWLEDGEMENTS), default=[])
        self._acknowledged.update(str(item) for item in acknowledged)
        restored: List[OperationEvent] = []
        for row in self.storage.read_json(self.storage.state_path(_EVENTS), default=[]):
            try:
                restored.append(event_from_model(OperationEventModel.model_validate(row)))
            except ValidationError as exc:
                logger.warning(f"Skipping unreadable stored event: {exc.error_count()} validation errors")
        # Stored newest first.
        self.events.extend(list(reversed(restored)))
        logger.info(f"Restored {len(self._acknowledged)} acknowledgements and {len(restored)} events")

    def _persist_acknowledgements(self) -> None:
        if self.storage is None:
            return
        with self._ack_lock:
            acknowledged = sorted(self._acknowledged)
        self.storage.write_json(self.storage.state_path(_ACKNOWLEDGEMENTS), acknowledged)

    def _persist_events(self) -> None:
        if self.storage is None:
            return
        rows = [
            event_to_model(event).model_dump(mode="json", by_alias=True)
            for event in self.events.recent()
        ]
        self.storage.write_json(self.storage.state_path(_EVENTS), rows)

    # -- recompute ----------------------------------------------------

    def _on_segment_changed(self, segment_id: str) -> None:
        stale = self.store.mark_stale(segment_id)
        if stale:
            logger.info(f"Routes of {', '.join(stale)} marked stale after change on {segment_id}")

    def recompute(self) -> List[ConflictRecord]:
        """Rebuild conflicts and merge suggestions from a fresh convoy snapshot.

        A result is installed only if no later recompute got there first.
        """
        with self._generation_lock:
            self._generation += 1
            generation = self._generation
        convoys = self.store.snapshot()
        conflicts = self.detector.detect(convoys)
        merges = self.advisor.suggest_merges(convoys)

        with self._install_lock:
            if generation < self._installed_generation:
                logger.debug(f"Discarding recompute {generation}; {self._installed_generation} already installed")
                return list(self._conflicts)
            previous = {record.id for record in self._conflicts}
            self._installed_generation = generation
            self._conflicts = conflicts
            self._merges = merges
            self.store.set_merge_suggestions(merges)

        new_ids = [record.id for record in conflicts if record.id not in previous]
        if new_ids:
            self.publisher.publish(messages.ConflictsDetected(conflict_ids=new_ids))
        return list(conflicts)

    def _alert_on_risk(self, convoy: Convoy) -> None:
        route = convoy.assigned_route
        if route is None or route.risk_score <= settings.risk_score_alert_threshold:
            return
        self.publisher.publish(
            messages.RiskAlert(
                convoy_id=convoy.id,
                risk_score=route.risk_score,
                message=f"Route {route.id} risk score {route.risk_score:.1f} exceeds {settings.risk_score_alert_threshold:.0f}.",
            )
        )

    # -- convoys ------------------------------------------------------

    def create_convoy(self, spec: ConvoySpec) -> Convoy:
        convoy = self.store.create(spec)
        self.publisher.publish(messages.ConvoyCreated(convoy_id=convoy.id, priority=convoy.priority.value))
        self._alert_on_risk(convoy)
        self.recompute()
        return self.store.get(convoy.id)

    def get_convoy(self, convoy_id: str) -> Convoy:
        return self.store.get(convoy_id)

    def list_convoys(
        self,
        *,
        priority: Optional[Priority] = None,
        status: Optional[ConvoyStatus] = None,
    ) -> List[Convoy]:
        return self.store.list(priority=priority, status=status)

    def request_route(
        self,
        convoy_id: str,
        destination_override: Optional[Location] = None,
        *,
        apply: bool = False,
    ) -> Tuple[OptimizationResult, Optional[Convoy]]:
        """Optimize (and optionally commit) a route, retrying once if the network moved underneath it."""
        try:
            return self._route_once(convoy_id, destination_override, apply)
        except StaleNetworkState:
            logger.warning(f"Network changed while routing {convoy_id}; retrying once")
            return self._route_once(convoy_id, destination_override, apply)

    def _route_once(
        self,
        convoy_id: str,
        destination_override: Optional[Location],
        apply: bool,
    ) -> Tuple[OptimizationResult, Optional[Convoy]]:
        result = self.optimizer.optimize(convoy_id, destination_override)
        if not apply:
            return result, None

        def network_unchanged() -> None:
            if self.network.changed_since(result.network_version, result.route.segment_ids()):
                raise StaleNetworkState(f"Segments of route {result.route.id} changed before it was committed.")

        convoy = self.assign_route(
            convoy_id,
            result.route,
            destination=result.destination if destination_override is not None else None,
            precondition=network_unchanged,
        )
        return result, convoy

    def assign_route(
        self,
        convoy_id: str,
        route: Route,
        *,
        destination: Optional[Location] = None,
        precondition: Optional[Callable[[], None]] = None,
    ) -> Convoy:
        convoy = self.store.assign_route(convoy_id, route, destination=destination, precondition=precondition)
        self.publisher.publish(
            messages.ConvoyRerouted(
                convoy_id=convoy.id,
                route_id=route.id,
                eta_hours=route.eta_hours,
                distance_km=route.distance_km,
                risk_score=route.risk_score,
            )
        )
        self._alert_on_risk(convoy)
        self.recompute()
        return self.store.get(convoy_id)

    def update_status(self, convoy_id: str, status: ConvoyStatus) -> Convoy:
        convoy = self.store.update_status(convoy_id, status)
        logger.info(f"Convoy {convoy_id} status set to {status.value}")
        self.publisher.publish(messages.ConvoyStatusChanged(convoy_id=convoy_id, status=status.value))
        self.recompute()
        return self.store.get(convoy.id)

    def log_checkpoint(
        self,
        convoy_id: str,
        checkpoint_id: str,
        location: Optional[Location] = None,
    ) -> Tuple[Checkpoint, bool]:
        """Clear a checkpoint. Repeating the call changes nothing and notifies no one."""
        checkpoint, newly_cleared = self.store.clear_checkpoint(convoy_id, checkpoint_id)
        if not newly_cleared:
            return checkpoint, False
        where = {"lat": location.lat, "lng": location.lng} if location else {}
        self.publisher.publish(
            messages.CheckpointCleared(convoy_id=convoy_id, checkpoint_id=checkpoint_id, location=where)
        )
        self.events.record(
            EventType.CHECKPOINT,
            EventSeverity.LOW,
            convoy_id=convoy_id,
            notes=f"Checkpoint {checkpoint.name} cleared",
        )
        self._persist_events()
        self.recompute()
        return checkpoint, True

    def seed(self, specs: Iterable[ConvoySpec], *, plan_routes: bool = True) -> List[Convoy]:
        """Load initial convoys, routing the ones that arrive without a route.

        Convoys are created in priority order so higher priority routes are in
        place when lower priority convoys are routed around them.
        """
        ordered = sorted(specs, key=lambda spec: (spec.priority or Priority.BRAVO).rank)
        created: List[Convoy] = []
        for spec in ordered:
            try:
                convoy = self.store.create(spec)
            except InvalidSpec as exc:
                logger.warning(f"Skipping seed convoy {spec.id or spec.name}: {exc}")
                continue
            if plan_routes and convoy.assigned_route is None:
                try:
                    result = self.optimizer.optimize(convoy.id)
                    convoy = self.store.assign_route(convoy.id, result.route)
                except NoPathExists as exc:
                    logger.warning(f"No initial route for seed convoy {convoy.id}: {exc}")
            created.append(convoy)
        self.recompute()
        logger.info(f"Seeded {len(created)} convoys")
        return created

    # -- network ------------------------------------------------------

    def update_segment(
        self,
        segment_id: str,
        status: SegmentStatus,
        risk_level: Optional[float] = None,
    ) -> RoadSegment:
        segment = self.network.update_segment_status(segment_id, status, risk_level)
        self._publish_segment(segment)
        self.recompute()
        return segment

    def _publish_segment(self, segment: RoadSegment) -> None:
        stale = [
            convoy.id
            for convoy in self.store.snapshot()
            if convoy.route_stale and convoy.assigned_route and segment.id in convoy.assigned_route.segment_ids()
        ]
        self.publisher.publish(
            messages.SegmentUpdated(
                segment_id=segment.id,
                status=segment.status.value,
                risk_level=segment.risk_level,
                stale_convoy_ids=stale,
            )
        )

    # -- events -------------------------------------------------------

    def trigger_event(
        self,
        event_type: EventType,
        severity: EventSeverity,
        *,
        convoy_id: Optional[str] = None,
        segment_id: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> OperationEvent:
        """Record an operation event and apply its effects.

        Unknown convoy or segment ids are rejected before anything is recorded.
        """
        if convoy_id:
            self.store.get(convoy_id)
        if segment_id:
            self.network.get_segment(segment_id)

        event = self.events.record(
            event_type,
            severity,
            convoy_id=convoy_id,
            segment_id=segment_id,
            notes=notes,
        )
        logger.info(f"Event {event.id} {event_type.value}/{severity.value} convoy={convoy_id} segment={segment_id}")

        segment = apply_event_to_network(self.network, event)
        if segment is not None:
            self._publish_segment(segment)

        affected = [convoy_id] if convoy_id else []
        if convoy_id and severity is EventSeverity.HIGH:
            self.store.update_status(convoy_id, ConvoyStatus.DELAYED)
            self.publisher.publish(
                messages.ConvoyStatusChanged(convoy_id=convoy_id, status=ConvoyStatus.DELAYED.value)
            )
        if segment_id:
            for convoy in self.store.snapshot():
                if convoy.id not in affected and convoy.assigned_route and segment_id in convoy.assigned_route.segment_ids():
                    affected.append(convoy.id)

        self.publisher.publish(
            messages.EventTriggered(
                event_id=event.id,
                event_type=event_type.value,
                severity=severity.value,
                affected_convoy_ids=affected,
                segment_id=segment_id,
            )
        )
        self._persist_events()
        self.recompute()
        return event

    def recent_events(self, limit: Optional[int] = None) -> List[OperationEvent]:
        return self.events.recent(limit)

    # -- conflicts and merges -----------------------------------------

    def conflicts(self) -> List[ConflictView]:
        with self._install_lock:
            records = list(self._conflicts)
        with self._ack_lock:
            acknowledged = set(self._acknowledged)
        return [ConflictView(record=record, acknowledged=record.id in acknowledged) for record in records]

    def acknowledge(self, conflict_id: str) -> ConflictView:
        """Mark a current conflict as seen; repeated acknowledgement is harmless."""
        with self._install_lock:
            record = next((item for item in self._conflicts if item.id == conflict_id), None)
        if record is None:
            raise ConflictNotFound(conflict_id)
        with self._ack_lock:
            self._acknowledged.add(conflict_id)
        self._persist_acknowledgements()
        logger.info(f"Conflict {conflict_id} acknowledged")
        return ConflictView(record=record, acknowledged=True)

    def merge_suggestions(self) -> Dict[str, Optional[MergeSuggestion]]:
        with self._install_lock:
            return dict(self._merges)

    def summary(self) -> dict:
        views = self.conflicts()
        return summarize(
            self.store.snapshot(),
            [view.record for view in views],
            {view.record.id for view in views if view.acknowledged},
            self.network.segments(),
            self.events.count(EventSeverity.HIGH),
        )
