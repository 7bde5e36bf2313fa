"""Error taxonomy shared by the convoy routing services."""

from __future__ import annotations

from typing import Sequence


class ConvoyOpsError(Exception):
    """Base class for every failure raised by the routing core."""


class NotFound(ConvoyOpsError, LookupError):
    """An identifier does not resolve to a known record."""

    kind = "record"

    def __init__(self, identifier: str) -> None:
        self.identifier = identifier
        super().__init__(f"Unknown {self.kind} '{identifier}'.")


class ConvoyNotFound(NotFound):
    kind = "convoy"


class SegmentNotFound(NotFound):
    kind = "segment"


class CheckpointNotFound(NotFound):
    kind = "checkpoint"


class ConflictNotFound(NotFound):
    kind = "conflict"


class InvalidSpec(ConvoyOpsError, ValueError):
    """A creation or update payload is malformed."""


class NoPathExists(ConvoyOpsError):
    """The optimizer found no feasible route."""

    def __init__(self, message: str, notes: Sequence[str] | None = None) -> None:
        super().__init__(message)
        self.notes = list(notes or [])


class SearchBudgetExceeded(NoPathExists):
    """The path search ran out of expansions or wall-clock time."""


class RouteMismatch(ConvoyOpsError):
    """A route's endpoints do not match the convoy it is assigned to."""


class StaleNetworkState(ConvoyOpsError):
    """Network conditions changed while a route was being computed."""
