"""Assessment Engine configuration and scoring tables."""
from dataclasses import dataclass
from typing import Dict

from machine.shared.models import Probability, Severity


@dataclass(frozen=True)
class RiskThresholds:
    """Minimum risk score (0-100) for each risk level."""
    CRITICAL_MIN: int = 80
    HIGH_MIN: int = 60
    MEDIUM_MIN: int = 40


@dataclass(frozen=True)
class AssessmentConfig:
    """Configuration for the assessment service."""

    # Prefix of generated assessment ids: <prefix>-<epoch ms>-<random>
    id_prefix: str = "assess"

    # Default page size for GET /assessments
    default_list_limit: int = 50


PROBABILITY_SCORES: Dict[Probability, int] = {
    Probability.VERY_LOW: 10,
    Probability.LOW: 25,
    Probability.MEDIUM: 50,
    Probability.HIGH: 75,
    Probability.VERY_HIGH: 90,
}

SEVERITY_SCORES: Dict[Severity, int] = {
    Severity.MINOR: 10,
    Severity.MODERATE: 30,
    Severity.SERIOUS: 50,
    Severity.SEVERE: 75,
    Severity.CRITICAL: 95,
}

# Severity weighs more than probability; weights in tenths
PROBABILITY_WEIGHT = 4
SEVERITY_WEIGHT = 6
