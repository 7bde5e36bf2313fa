"""Route group exports."""

from . import analytics, checkpoints, conflicts, convoys, events, health, merges, network, optimizer

__all__ = [
    "analytics",
    "checkpoints",
    "conflicts",
    "convoys",
    "events",
    "health",
    "merges",
    "network",
    "optimizer",
]
