"""Conflict desk endpoints."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, status

from ...schemas.conflicts import ConflictModel
from ...services.dispatch import DispatchService
from ...services.outputs.formatter import conflict_to_model
from ..dependencies import get_dispatch, service_errors

router = APIRouter(prefix="/conflicts", tags=["conflicts"])


@router.get("", response_model=List[ConflictModel], status_code=status.HTTP_200_OK)
def list_conflicts(dispatch: DispatchService = Depends(get_dispatch)) -> List[ConflictModel]:
    """Current conflicts, most severe first."""
    return [conflict_to_model(view.record, view.acknowledged) for view in dispatch.conflicts()]


@router.post("/{conflict_id}/acknowledge", response_model=ConflictModel, status_code=status.HTTP_200_OK)
def acknowledge_conflict(conflict_id: str, dispatch: DispatchService = Depends(get_dispatch)) -> ConflictModel:
    with service_errors("acknowledge conflict"):
        view = dispatch.acknowledge(conflict_id)
    return conflict_to_model(view.record, view.acknowledged)
