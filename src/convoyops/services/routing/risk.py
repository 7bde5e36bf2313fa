"""Route risk scoring shared by the path search and route assembly."""

from __future__ import annotations

from typing import Sequence, Tuple

# (segment risk level, segment length km)
Exposure = Tuple[float, float]


def aggregate_risk_score(
    exposures: Sequence[Exposure],
    conflicted_segments: int = 0,
    conflict_penalty: float = 0.0,
) -> float:
    """Route risk on a 0-100 scale from (risk level, length km) pairs.

    Starts from the riskiest segment and adds the length-weighted mean exposure
    in proportion to the remaining headroom, plus a fixed penalty per
    conflicting segment. Never below the riskiest segment, never above 100.
    """
    if not exposures:
        return min(100.0, round(conflicted_segments * conflict_penalty, 1))
    peak = max(risk for risk, _ in exposures) * 100.0
    total_km = sum(length for _, length in exposures)
    if total_km > 0:
        mean_exposure = sum(risk * length for risk, length in exposures) / total_km
    else:
        mean_exposure = sum(risk for risk, _ in exposures) / len(exposures)
    score = peak + (100.0 - peak) * mean_exposure + conflicted_segments * conflict_penalty
    # Rounded before clamping so the one-decimal score never drops below the peak.
    return min(100.0, max(peak, round(score, 1)))
