"""Road network loader reading segment definitions from a JSON file."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List

from ..config import settings
from ..models.domain import Difficulty, RoadSegment, SegmentStatus, Terrain
from ..models.errors import InvalidSpec
from ..services.network.service import RoadNetwork

logger = logging.getLogger(__name__)


def _parse_segment(row: Dict[str, Any]) -> RoadSegment:
    coordinates = [(float(lng), float(lat)) for lng, lat in row["coordinates"]]
    status = SegmentStatus(row.get("status", SegmentStatus.CLEAR.value))
    return RoadSegment(
        id=str(row["id"]).strip(),
        coordinates=coordinates,
        terrain=Terrain(row["terrain"]),
        difficulty=Difficulty(row["difficulty"]),
        recommended_speed_kmph=float(row["recommendedSpeedKmph"]),
        risk_level=float(row["riskLevel"]),
        capacity=int(row.get("capacity", 1)),
        blocked=status is SegmentStatus.BLOCKED,
    )


def _read_rows(source: Path) -> List[Dict[str, Any]]:
    with source.open("r", encoding="utf-8") as handle:
        payload = json.load(handle)
    if isinstance(payload, dict):
        payload = payload.get("segments", [])
    if not isinstance(payload, list):
        raise ValueError(f"Network file '{source}' must contain a list of segments.")
    return payload


def load_segments(source: Path | None = None) -> tuple[RoadSegment, ...]:
    """Parse every well-formed segment in the network file; malformed rows are skipped."""
    network_path = source or settings.network_file
    if not network_path.exists():
        raise FileNotFoundError(f"Road network file not found: {network_path}")

    segments: list[RoadSegment] = []
    for row in _read_rows(network_path):
        try:
            segments.append(_parse_segment(row))
        except (KeyError, ValueError, TypeError) as exc:
            logger.warning(f"Skipping invalid segment row {row.get('id', '?') if isinstance(row, dict) else row!r}: {exc}")
    return tuple(segments)


def build_network(segments: Iterable[RoadSegment]) -> RoadNetwork:
    network = RoadNetwork()
    for segment in segments:
        try:
            network.add_segment(segment)
        except InvalidSpec as exc:
            logger.warning(f"Skipping segment {segment.id}: {exc}")
    return network


def get_network(source: Path | None = None) -> RoadNetwork:
    """Load the road network; an absent file yields an empty network."""
    try:
        segments = load_segments(source)
    except FileNotFoundError as exc:
        logger.warning(f"{exc}; starting with an empty road network")
        return RoadNetwork()
    network = build_network(segments)
    logger.info(f"Loaded {len(network)} road segments")
    return network
