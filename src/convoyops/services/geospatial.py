"""Geospatial helper functions."""

from __future__ import annotations

import math
from typing import Sequence

from ..models.domain import LngLat

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Compute distance between two coordinates using the Haversine formula."""

    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def lnglat_distance_km(a: LngLat, b: LngLat) -> float:
    """Haversine distance between two (lng, lat) pairs."""
    return haversine_km(a[1], a[0], b[1], b[0])


def polyline_length_km(coordinates: Sequence[LngLat]) -> float:
    return sum(lnglat_distance_km(start, end) for start, end in zip(coordinates, coordinates[1:]))


def same_point(a: LngLat, b: LngLat, tolerance_km: float) -> bool:
    return lnglat_distance_km(a, b) <= tolerance_km
