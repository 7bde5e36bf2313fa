"""Route optimizer endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from ...schemas.routing import OptimizerRequest, OptimizerResponse
from ...services.dispatch import DispatchService
from ...services.outputs.formatter import convoy_to_model, location_from_model, route_to_model
from ..dependencies import get_dispatch, service_errors

router = APIRouter(prefix="/optimizer", tags=["optimizer"])


@router.post("/route", response_model=OptimizerResponse, status_code=status.HTTP_200_OK)
def optimize_route(payload: OptimizerRequest, dispatch: DispatchService = Depends(get_dispatch)) -> OptimizerResponse:
    """Compute a risk-scored route for a convoy; committed only when ``apply`` is set."""
    override = location_from_model(payload.destination_override) if payload.destination_override else None
    with service_errors("optimize route"):
        result, convoy = dispatch.request_route(payload.convoy_id, override, apply=payload.apply)
    return OptimizerResponse(
        route=route_to_model(result.route),
        notes=result.notes,
        convoy=convoy_to_model(convoy) if convoy else None,
    )
