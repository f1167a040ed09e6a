"""Risk score and risk level, recomputed from an assessment on demand."""
from typing import Optional

from machine.shared.models import RiskAssessment, RiskLevel
from .config import (
    PROBABILITY_SCORES,
    PROBABILITY_WEIGHT,
    SEVERITY_SCORES,
    SEVERITY_WEIGHT,
    RiskThresholds,
)


def calculate_risk_score(assessment: RiskAssessment) -> int:
    """Calculate the 0-100 risk score. Higher means more urgent.

    round(prob * 0.4 + sev * 0.6), rounding halves up.
    """
    prob_score = PROBABILITY_SCORES[assessment.estimate.probability]
    sev_score = SEVERITY_SCORES[assessment.estimate.severity]
    weighted = prob_score * PROBABILITY_WEIGHT + sev_score * SEVERITY_WEIGHT
    return (weighted + 5) // 10


def get_risk_level(
    score: int,
    thresholds: Optional[RiskThresholds] = None,
) -> RiskLevel:
    thresholds = thresholds or RiskThresholds()
    if score >= thresholds.CRITICAL_MIN:
        return RiskLevel.CRITICAL
    elif score >= thresholds.HIGH_MIN:
        return RiskLevel.HIGH
    elif score >= thresholds.MEDIUM_MIN:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW
