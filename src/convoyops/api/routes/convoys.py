"""Convoy registry endpoints."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Query, status

from ...models.domain import ConvoyStatus, Priority
from ...schemas.convoys import ConvoyCreateRequest, ConvoyModel, ConvoyStatusUpdate, RouteAssignmentRequest
from ...services.dispatch import DispatchService
from ...services.outputs.formatter import (
    convoy_to_model,
    location_from_model,
    route_from_model,
    spec_from_request,
)
from ..dependencies import get_dispatch, service_errors

router = APIRouter(prefix="/convoys", tags=["convoys"])


@router.get("", response_model=List[ConvoyModel], status_code=status.HTTP_200_OK)
def list_convoys(
    priority: Priority | None = Query(default=None, description="Optional priority filter"),
    convoy_status: ConvoyStatus | None = Query(default=None, alias="status", description="Optional status filter"),
    dispatch: DispatchService = Depends(get_dispatch),
) -> List[ConvoyModel]:
    """All convoys, ALPHA first, then by id."""
    with service_errors("list convoys"):
        convoys = dispatch.list_convoys(priority=priority, status=convoy_status)
    return [convoy_to_model(convoy) for convoy in convoys]


@router.post("", response_model=ConvoyModel, status_code=status.HTTP_201_CREATED)
def create_convoy(payload: ConvoyCreateRequest, dispatch: DispatchService = Depends(get_dispatch)) -> ConvoyModel:
    with service_errors("create convoy"):
        convoy = dispatch.create_convoy(spec_from_request(payload))
    return convoy_to_model(convoy)


@router.get("/{convoy_id}", response_model=ConvoyModel, status_code=status.HTTP_200_OK)
def get_convoy(convoy_id: str, dispatch: DispatchService = Depends(get_dispatch)) -> ConvoyModel:
    with service_errors("load convoy"):
        convoy = dispatch.get_convoy(convoy_id)
    return convoy_to_model(convoy)


@router.patch("/{convoy_id}/status", response_model=ConvoyModel, status_code=status.HTTP_200_OK)
def update_convoy_status(
    convoy_id: str,
    payload: ConvoyStatusUpdate,
    dispatch: DispatchService = Depends(get_dispatch),
) -> ConvoyModel:
    with service_errors("update convoy status"):
        convoy = dispatch.update_status(convoy_id, payload.status)
    return convoy_to_model(convoy)


@router.put("/{convoy_id}/route", response_model=ConvoyModel, status_code=status.HTTP_200_OK)
def assign_route(
    convoy_id: str,
    payload: RouteAssignmentRequest,
    dispatch: DispatchService = Depends(get_dispatch),
) -> ConvoyModel:
    """Commit an approved route, replacing whatever the convoy had."""
    with service_errors("assign route"):
        convoy = dispatch.assign_route(
            convoy_id,
            route_from_model(payload.route),
            destination=location_from_model(payload.destination) if payload.destination else None,
        )
    return convoy_to_model(convoy)
