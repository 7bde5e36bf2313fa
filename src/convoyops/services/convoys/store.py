"""In-memory convoy registry with per-convoy serialization."""

from __future__ import annotations

import copy
import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Callable, Iterator, List, Mapping, Optional, Tuple

from ...config import settings
from ...models.domain import (
    Checkpoint,
    CheckpointStatus,
    Convoy,
    ConvoySpec,
    ConvoyStatus,
    Location,
    MergeSuggestion,
    Priority,
    Route,
)
from ...models.errors import CheckpointNotFound, ConvoyNotFound, InvalidSpec, RouteMismatch
from ..geospatial import same_point

logger = logging.getLogger(__name__)

DEFAULT_NAME = "New Convoy"
DEFAULT_SPEED_KMPH = 50.0
DEFAULT_VEHICLE_COUNT = 10
DEFAULT_ETA_HOURS = 12.0


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ConvoyStore:
    """Single source of truth for convoy records.

    Each convoy id has its own lock; mutations of one convoy never wait on
    another. Readers always receive deep copies.
    """

    def __init__(self, *, endpoint_tolerance_km: float | None = None) -> None:
        self.endpoint_tolerance_km = (
            endpoint_tolerance_km if endpoint_tolerance_km is not None else settings.endpoint_tolerance_km
        )
        self._convoys: dict[str, Convoy] = {}
        self._locks: dict[str, threading.RLock] = {}
        self._registry_lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._convoys)

    @contextmanager
    def lock(self, convoy_id: str) -> Iterator[Convoy]:
        """Hold the convoy's mutual-exclusion scope and yield the live record."""
        with self._registry_lock:
            lock = self._locks.get(convoy_id)
        if lock is None:
            raise ConvoyNotFound(convoy_id)
        with lock:
            yield self._convoys[convoy_id]

    def _next_id(self) -> str:
        sequence = len(self._convoys) + 1
        while True:
            candidate = f"CVY-{sequence:03d}"
            if candidate not in self._convoys:
                return candidate
            sequence += 1

    def create(self, spec: ConvoySpec) -> Convoy:
        vehicle_count = spec.vehicle_count if spec.vehicle_count is not None else DEFAULT_VEHICLE_COUNT
        if vehicle_count <= 0:
            raise InvalidSpec("vehicleCount must be greater than zero.")
        speed = spec.speed_kmph if spec.speed_kmph is not None else DEFAULT_SPEED_KMPH
        if speed <= 0:
            raise InvalidSpec("speedKmph must be greater than zero.")
        if same_point(spec.origin.as_lnglat(), spec.destination.as_lnglat(), 1e-6):
            raise InvalidSpec("origin and destination must differ.")

        with self._registry_lock:
            if spec.id and spec.id in self._convoys:
                raise InvalidSpec(f"Convoy '{spec.id}' already exists.")
            convoy = Convoy(
                id=spec.id or self._next_id(),
                name=spec.name or DEFAULT_NAME,
                origin=copy.deepcopy(spec.origin),
                destination=copy.deepcopy(spec.destination),
                speed_kmph=speed,
                priority=spec.priority or Priority.BRAVO,
                vehicle_count=vehicle_count,
                status=spec.status or ConvoyStatus.PLANNED,
                last_updated=_utcnow(),
                eta_hours=spec.eta_hours if spec.eta_hours is not None else DEFAULT_ETA_HOURS,
                departure_at=spec.departure_at,
            )
            if spec.assigned_route is not None:
                self._check_endpoints(convoy, spec.assigned_route, convoy.destination)
                convoy.assigned_route = copy.deepcopy(spec.assigned_route)
                convoy.eta_hours = spec.assigned_route.eta_hours
            self._convoys[convoy.id] = convoy
            self._locks[convoy.id] = threading.RLock()
        logger.info(f"Convoy {convoy.id} created ({convoy.priority.value}, {convoy.vehicle_count} vehicles)")
        return copy.deepcopy(convoy)

    def get(self, convoy_id: str) -> Convoy:
        with self.lock(convoy_id) as convoy:
            return copy.deepcopy(convoy)

    def list(
        self,
        *,
        priority: Optional[Priority] = None,
        status: Optional[ConvoyStatus] = None,
    ) -> List[Convoy]:
        """Convoys ordered by priority (ALPHA first) then id."""
        convoys = self.snapshot()
        if priority is not None:
            convoys = [convoy for convoy in convoys if convoy.priority is priority]
        if status is not None:
            convoys = [convoy for convoy in convoys if convoy.status is status]
        return convoys

    def snapshot(self) -> List[Convoy]:
        with self._registry_lock:
            ids = list(self._convoys)
        convoys = []
        for convoy_id in ids:
            try:
                convoys.append(self.get(convoy_id))
            except ConvoyNotFound:
                continue
        return sorted(convoys, key=lambda convoy: (convoy.priority.rank, convoy.id))

    def _check_endpoints(self, convoy: Convoy, route: Route, destination: Location) -> None:
        if not route.polyline:
            raise RouteMismatch(f"Route '{route.id}' has an empty polyline.")
        tolerance = self.endpoint_tolerance_km
        if not same_point(route.polyline[0], convoy.origin.as_lnglat(), tolerance):
            raise RouteMismatch(f"Route '{route.id}' does not start at the origin of convoy '{convoy.id}'.")
        if not same_point(route.polyline[-1], destination.as_lnglat(), tolerance):
            raise RouteMismatch(f"Route '{route.id}' does not end at the destination of convoy '{convoy.id}'.")

    def assign_route(
        self,
        convoy_id: str,
        route: Route,
        *,
        destination: Optional[Location] = None,
        precondition: Optional[Callable[[], None]] = None,
    ) -> Convoy:
        """Atomically swap in ``route``, optionally moving the convoy's destination with it.

        ``precondition`` runs while the convoy is locked and may raise to abort
        the swap, e.g. when the route was computed against an outdated network.
        """
        with self.lock(convoy_id) as convoy:
            if precondition is not None:
                precondition()
            target = destination or convoy.destination
            self._check_endpoints(convoy, route, target)
            convoy.destination = copy.deepcopy(target)
            convoy.assigned_route = copy.deepcopy(route)
            convoy.eta_hours = route.eta_hours
            convoy.route_stale = False
            convoy.last_updated = _utcnow()
            logger.info(f"Route {route.id} assigned to convoy {convoy_id} (risk {route.risk_score:.1f})")
            return copy.deepcopy(convoy)

    def update_status(self, convoy_id: str, status: ConvoyStatus) -> Convoy:
        with self.lock(convoy_id) as convoy:
            convoy.status = status
            convoy.last_updated = _utcnow()
            return copy.deepcopy(convoy)

    def clear_checkpoint(
        self,
        convoy_id: str,
        checkpoint_id: str,
        *,
        logged_at: Optional[datetime] = None,
    ) -> Tuple[Checkpoint, bool]:
        """Mark a checkpoint cleared. Returns the checkpoint and whether this call cleared it.

        Clearing an already cleared checkpoint is a no-op.
        """
        with self.lock(convoy_id) as convoy:
            route = convoy.assigned_route
            checkpoints = route.checkpoints if route else []
            checkpoint = next((item for item in checkpoints if item.id == checkpoint_id), None)
            if checkpoint is None:
                raise CheckpointNotFound(checkpoint_id)
            if checkpoint.status is CheckpointStatus.CLEARED:
                return copy.deepcopy(checkpoint), False
            checkpoint.status = CheckpointStatus.CLEARED
            checkpoint.logged_at = logged_at or _utcnow()
            convoy.last_updated = _utcnow()
            logger.info(f"Checkpoint {checkpoint_id} cleared by convoy {convoy_id}")
            return copy.deepcopy(checkpoint), True

    def set_merge_suggestions(self, suggestions: Mapping[str, Optional[MergeSuggestion]]) -> None:
        for convoy_id, suggestion in suggestions.items():
            try:
                with self.lock(convoy_id) as convoy:
                    convoy.merge_suggestion = copy.deepcopy(suggestion)
            except ConvoyNotFound:
                continue

    def mark_stale(self, segment_id: str) -> List[str]:
        """Flag every convoy whose assigned route uses ``segment_id``."""
        affected = []
        for convoy in self.snapshot():
            if convoy.assigned_route and segment_id in convoy.assigned_route.segment_ids():
                with self.lock(convoy.id) as live:
                    live.route_stale = True
                affected.append(convoy.id)
        return affected
