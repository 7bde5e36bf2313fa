"""Analytics endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from ...schemas.conflicts import AnalyticsSummary
from ...services.dispatch import DispatchService
from ..dependencies import get_dispatch

router = APIRouter(prefix="/analytics", tags=["analytics"])


@router.get("/summary", response_model=AnalyticsSummary, status_code=status.HTTP_200_OK)
def get_summary(dispatch: DispatchService = Depends(get_dispatch)) -> AnalyticsSummary:
    return AnalyticsSummary(**dispatch.summary())
