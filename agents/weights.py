"""Pillar weights, churn-risk thresholds and the weighted-score combiner.

Absent pillars (None) do not penalize the client: only the pillars that
produced a score take part in the weighted average.
"""
import math
from typing import Optional

PILLAR_WEIGHTS = {
    "financial": 0.35,
    "proximity": 0.30,
    "outcome": 0.25,
    "nps": 0.10,
}

LOW_RISK_THRESHOLD = 70
MEDIUM_RISK_THRESHOLD = 40
NEUTRAL_SCORE = 50


def round_half_up(value: float) -> int:
    """Round .5 up, unlike the builtin round() which rounds to even."""
    return int(math.floor(value + 0.5))


def calc_weighted_score(
    financial: Optional[float] = None,
    proximity: Optional[float] = None,
    outcome: Optional[float] = None,
    nps: Optional[float] = None,
) -> int:
    """Weighted average of the present pillars, 50 when none is present."""
    pairs = (
        (financial, PILLAR_WEIGHTS["financial"]),
        (proximity, PILLAR_WEIGHTS["proximity"]),
        (outcome, PILLAR_WEIGHTS["outcome"]),
        (nps, PILLAR_WEIGHTS["nps"]),
    )
    weighted_sum = 0.0
    total_weight = 0.0
    for score, weight in pairs:
        if score is None:
            continue
        weighted_sum += score * weight
        total_weight += weight

    if total_weight == 0:
        return NEUTRAL_SCORE
    return round_half_up(weighted_sum / total_weight)


def calc_churn_risk(score: float) -> str:
    """Map a 0-100 score to 'low' (>=70), 'medium' (>=40) or 'high'."""
    if score >= LOW_RISK_THRESHOLD:
        return "low"
    if score >= MEDIUM_RISK_THRESHOLD:
        return "medium"
    return "high"
