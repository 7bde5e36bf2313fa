"""Checkpoint logging endpoint used by the mobile client."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from ...schemas.events import CheckpointLogRequest, CheckpointLogResponse
from ...services.dispatch import DispatchService
from ...services.outputs.formatter import location_from_model
from ..dependencies import get_dispatch, service_errors

router = APIRouter(prefix="/checkpoints", tags=["checkpoints"])


@router.post("", response_model=CheckpointLogResponse, status_code=status.HTTP_200_OK)
def log_checkpoint(payload: CheckpointLogRequest, dispatch: DispatchService = Depends(get_dispatch)) -> CheckpointLogResponse:
    with service_errors("log checkpoint"):
        checkpoint, newly_cleared = dispatch.log_checkpoint(
            payload.convoy_id,
            payload.checkpoint_id,
            location_from_model(payload.location),
        )
    return CheckpointLogResponse(ok=True, checkpoint_id=checkpoint.id, newly_cleared=newly_cleared)
