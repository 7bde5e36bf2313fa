"""Merge advisory endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from ...schemas.conflicts import MergeSuggestionsResponse
from ...services.dispatch import DispatchService
from ...services.outputs.formatter import merge_suggestion_to_model
from ..dependencies import get_dispatch

router = APIRouter(prefix="/merges", tags=["merges"])


@router.get("", response_model=MergeSuggestionsResponse, status_code=status.HTTP_200_OK)
def list_merge_suggestions(dispatch: DispatchService = Depends(get_dispatch)) -> MergeSuggestionsResponse:
    suggestions = dispatch.merge_suggestions()
    return MergeSuggestionsResponse(
        suggestions={
            convoy_id: merge_suggestion_to_model(suggestion)
            for convoy_id, suggestion in sorted(suggestions.items())
        }
    )
