"""Operation event endpoints."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Query, status

from ...schemas.events import EventRequest, OperationEventModel
from ...services.dispatch import DispatchService
from ...services.outputs.formatter import event_to_model, events_to_models
from ..dependencies import get_dispatch, service_errors

router = APIRouter(prefix="/events", tags=["events"])


@router.post("", response_model=OperationEventModel, status_code=status.HTTP_201_CREATED)
def trigger_event(payload: EventRequest, dispatch: DispatchService = Depends(get_dispatch)) -> OperationEventModel:
    with service_errors("trigger event"):
        event = dispatch.trigger_event(
            payload.type,
            payload.severity,
            convoy_id=payload.convoy_id,
            segment_id=payload.affected_segment_id,
            notes=payload.notes,
        )
    return event_to_model(event)


@router.get("", response_model=List[OperationEventModel], status_code=status.HTTP_200_OK)
def list_events(
    limit: int = Query(default=50, ge=1, le=500, description="Maximum number of events, newest first"),
    dispatch: DispatchService = Depends(get_dispatch),
) -> List[OperationEventModel]:
    return events_to_models(dispatch.recent_events(limit))
