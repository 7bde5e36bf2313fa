"""Road network endpoints."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Query, status

from ...schemas.network import RoadSegmentModel, SegmentNeighborsResponse, SegmentUpdateRequest
from ...services.dispatch import DispatchService
from ...services.export import network_feature_collection
from ...services.outputs.formatter import segment_to_model
from ..dependencies import get_dispatch, service_errors

router = APIRouter(prefix="/network", tags=["network"])


@router.get("/segments", response_model=List[RoadSegmentModel], status_code=status.HTTP_200_OK)
def list_segments(dispatch: DispatchService = Depends(get_dispatch)) -> List[RoadSegmentModel]:
    network = dispatch.network
    return [segment_to_model(segment, network.segment_length_km(segment.id)) for segment in network.segments()]


@router.get("/segments/{segment_id}", response_model=RoadSegmentModel, status_code=status.HTTP_200_OK)
def get_segment(segment_id: str, dispatch: DispatchService = Depends(get_dispatch)) -> RoadSegmentModel:
    with service_errors("load segment"):
        segment = dispatch.network.get_segment(segment_id)
        length = dispatch.network.segment_length_km(segment_id)
    return segment_to_model(segment, length)


@router.get("/segments/{segment_id}/neighbors", response_model=SegmentNeighborsResponse, status_code=status.HTTP_200_OK)
def get_segment_neighbors(segment_id: str, dispatch: DispatchService = Depends(get_dispatch)) -> SegmentNeighborsResponse:
    with service_errors("load segment neighbors"):
        neighbors = dispatch.network.neighbors(segment_id)
    return SegmentNeighborsResponse(segment_id=segment_id, neighbors=neighbors)


@router.patch("/segments/{segment_id}", response_model=RoadSegmentModel, status_code=status.HTTP_200_OK)
def update_segment(
    segment_id: str,
    payload: SegmentUpdateRequest,
    dispatch: DispatchService = Depends(get_dispatch),
) -> RoadSegmentModel:
    """Report a condition change; convoys routed over the segment are flagged stale."""
    with service_errors("update segment"):
        segment = dispatch.update_segment(segment_id, payload.status, payload.risk_level)
        length = dispatch.network.segment_length_km(segment_id)
    return segment_to_model(segment, length)


@router.get("/geojson", status_code=status.HTTP_200_OK)
def export_geojson(
    include_routes: bool = Query(default=True, alias="includeRoutes", description="Add assigned convoy routes"),
    dispatch: DispatchService = Depends(get_dispatch),
) -> dict:
    network = dispatch.network
    segments = network.segments()
    convoys = dispatch.list_convoys() if include_routes else []
    lengths = {segment.id: network.segment_length_km(segment.id) for segment in segments}
    return network_feature_collection(segments, convoys, lengths)
