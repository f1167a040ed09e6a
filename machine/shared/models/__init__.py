"""Shared domain models for the Machine services."""
from .constraint import (
    ConstraintLevel,
    Constraint,
    ConstraintViolation,
    ConstraintCheckResult,
    ReportedViolation,
    ConstraintReport,
)
from .assessment import (
    InvalidInputError,
    HarmType,
    TimeFrame,
    Probability,
    Severity,
    Confidence,
    DataQuality,
    OptionId,
    CollateralImpact,
    LegalStatus,
    FlagType,
    FlagSeverity,
    AssessmentStatus,
    RiskLevel,
    ThreatIdentification,
    ThreatEstimate,
    InterventionOption,
    AssessmentFlag,
    RiskAssessment,
    parse_enum,
)

__all__ = [
    "ConstraintLevel",
    "Constraint",
    "ConstraintViolation",
    "ConstraintCheckResult",
    "ReportedViolation",
    "ConstraintReport",
    "InvalidInputError",
    "HarmType",
    "TimeFrame",
    "Probability",
    "Severity",
    "Confidence",
    "DataQuality",
    "OptionId",
    "CollateralImpact",
    "LegalStatus",
    "FlagType",
    "FlagSeverity",
    "AssessmentStatus",
    "RiskLevel",
    "ThreatIdentification",
    "ThreatEstimate",
    "InterventionOption",
    "AssessmentFlag",
    "RiskAssessment",
    "parse_enum",
]
