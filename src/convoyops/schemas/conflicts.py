"""Conflict desk, merge advisory and analytics schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from .base import CamelModel
from .convoys import MergeSuggestionModel


class ConflictModel(CamelModel):
    id: str
    convoy_ids: List[str]
    segment_ids: List[str]
    window_start: datetime
    window_end: datetime
    severity: str
    risk_score: float
    blocked_segment_count: int
    acknowledged: bool = False


class MergeSuggestionsResponse(CamelModel):
    suggestions: Dict[str, Optional[MergeSuggestionModel]]


class AnalyticsSummary(CamelModel):
    total_convoys: int
    active_missions: int
    delayed_convoys: int
    planned_convoys: int
    completed_convoys: int
    fleet_efficiency_percent: int
    conflicts_prevented: int
    active_conflicts: int
    awaiting_acknowledgement: int
    blocked_segments: int
    mean_route_risk: Optional[float] = None
