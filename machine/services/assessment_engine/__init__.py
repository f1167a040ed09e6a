"""Assessment Engine: structured threat evaluation.

Turns a threat identification into a probability/severity estimate, a
small set of intervention options (each constraint-checked), flags, and a
recommendation that never violates a constraint.

Components:
- engine.py: AssessmentEngine
- scoring.py: Risk score (0-100) and risk level
- store.py: In-memory store owning the approval lifecycle
- http_handler.py: Flask HTTP endpoints (/assessments...)
"""

from .engine import AssessmentEngine, create_assessment
from .scoring import calculate_risk_score, get_risk_level
from .config import AssessmentConfig, RiskThresholds
from .store import (
    AssessmentStore,
    AssessmentStoreError,
    AssessmentNotFoundError,
    InvalidTransitionError,
)

__all__ = [
    "AssessmentEngine",
    "create_assessment",
    "calculate_risk_score",
    "get_risk_level",
    "AssessmentConfig",
    "RiskThresholds",
    "AssessmentStore",
    "AssessmentStoreError",
    "AssessmentNotFoundError",
    "InvalidTransitionError",
]
