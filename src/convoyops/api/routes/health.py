"""Health endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from ...services.dispatch import DispatchService
from ..dependencies import get_dispatch

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
def health_root(dispatch: DispatchService = Depends(get_dispatch)) -> dict:
    return {
        "status": "ok",
        "segments": len(dispatch.network),
        "convoys": len(dispatch.store),
        "networkVersion": dispatch.network.version,
    }
