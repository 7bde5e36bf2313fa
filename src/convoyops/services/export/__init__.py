"""Export services."""

from .geojson import (
    network_feature_collection,
    route_feature,
    save_geojson,
    segment_feature,
)

__all__ = [
    "network_feature_collection",
    "route_feature",
    "segment_feature",
    "save_geojson",
]
