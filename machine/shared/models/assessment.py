"""Risk assessment domain models.

Defines the enums and data structures for the assessment process:
1. IDENTIFY - who is at risk, what harm, how soon
2. ESTIMATE - probability, severity, uncertainty
3. PROPOSE - a small fixed set of intervention options
4. FLAG - violations, irreversible consequences, extra-legal actions
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple, Type, TypeVar

from .constraint import ConstraintCheckResult


class InvalidInputError(ValueError):
    """Caller supplied a value outside the declared shape or enum."""
    pass


class HarmType(Enum):
    PHYSICAL_VIOLENCE = "physical-violence"
    PSYCHOLOGICAL_ABUSE = "psychological-abuse"
    SELF_HARM = "self-harm"
    EXPLOITATION = "exploitation"
    NEGLECT = "neglect"
    ENVIRONMENTAL = "environmental"
    OTHER = "other"


class TimeFrame(Enum):
    """How soon the harm might occur."""
    IMMINENT = "imminent"           # <24 hours
    NEAR_TERM = "near-term"         # 1-7 days
    MEDIUM_TERM = "medium-term"     # 1-4 weeks
    LONG_TERM = "long-term"         # >1 month


class Probability(Enum):
    """Likelihood scale, also used for estimated effectiveness.

    Declaration order is the ranking order (very-low lowest).
    """
    VERY_LOW = "very-low"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    VERY_HIGH = "very-high"


class Severity(Enum):
    MINOR = "minor"
    MODERATE = "moderate"
    SERIOUS = "serious"
    SEVERE = "severe"
    CRITICAL = "critical"


class Confidence(Enum):
    VERY_LOW = "very-low"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    VERY_HIGH = "very-high"


class DataQuality(Enum):
    POOR = "poor"
    FAIR = "fair"
    GOOD = "good"
    EXCELLENT = "excellent"


class OptionId(Enum):
    MONITOR = "monitor"
    ALERT = "alert"
    INTERVENE = "intervene"


class CollateralImpact(Enum):
    MINIMAL = "minimal"
    MODERATE = "moderate"
    SIGNIFICANT = "significant"


class LegalStatus(Enum):
    LEGAL = "legal"
    GREY_AREA = "grey-area"
    ILLEGAL = "illegal"
    UNKNOWN = "unknown"


class FlagType(Enum):
    CONSTRAINT_VIOLATION = "constraint-violation"
    IRREVERSIBLE = "irreversible"
    ILLEGAL = "illegal"
    HIGH_UNCERTAINTY = "high-uncertainty"
    COLLATERAL_RISK = "collateral-risk"


class FlagSeverity(Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class AssessmentStatus(Enum):
    """Lifecycle of an assessment. Only the caller moves it past DRAFT."""
    DRAFT = "draft"
    PENDING_APPROVAL = "pending-approval"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXECUTED = "executed"


class RiskLevel(Enum):
    """Display bucket for a 0-100 risk score."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


E = TypeVar("E", bound=Enum)


def parse_enum(enum_cls: Type[E], value: Any, field_name: str) -> E:
    """Parse a wire value into an enum member.

    Raises:
        InvalidInputError: If the value is not a member value
    """
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise InvalidInputError(
            f"Invalid {field_name}: {value!r} (expected one of: {allowed})"
        ) from None


@dataclass(frozen=True)
class ThreatIdentification:
    """Caller-supplied description of a potential threat."""
    who_at_risk: Tuple[str, ...]
    harm_type: HarmType
    harm_description: str
    time_frame: TimeFrame
    location: Optional[str] = None
    perpetrator: Optional[str] = None

    def __post_init__(self):
        if not self.who_at_risk:
            raise InvalidInputError("who_at_risk must name at least one person")
        if not isinstance(self.harm_type, HarmType):
            raise InvalidInputError(f"harm_type must be HarmType, got {self.harm_type!r}")
        if not isinstance(self.time_frame, TimeFrame):
            raise InvalidInputError(f"time_frame must be TimeFrame, got {self.time_frame!r}")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ThreatIdentification":
        """Build from a request body.

        Accepts both snake_case and the dashboard's camelCase keys.

        Raises:
            InvalidInputError: On a non-object body, missing fields, wrongly
                typed fields or unknown enum values
        """
        if not isinstance(data, Mapping):
            raise InvalidInputError("identification must be an object")

        def get(snake: str, camel: str) -> Any:
            return data.get(snake, data.get(camel))

        who_at_risk = get("who_at_risk", "whoAtRisk")
        if not isinstance(who_at_risk, (list, tuple)) or not who_at_risk:
            raise InvalidInputError("who_at_risk must be a non-empty list")
        if not all(isinstance(p, str) and p for p in who_at_risk):
            raise InvalidInputError("who_at_risk entries must be non-empty strings")

        harm_type = get("harm_type", "harmType")
        time_frame = get("time_frame", "timeFrame")
        if harm_type is None:
            raise InvalidInputError("Missing required field: harm_type")
        if time_frame is None:
            raise InvalidInputError("Missing required field: time_frame")

        harm_description = get("harm_description", "harmDescription")
        location = data.get("location")
        perpetrator = data.get("perpetrator")
        for name, value in (
            ("harm_description", harm_description),
            ("location", location),
            ("perpetrator", perpetrator),
        ):
            if value is not None and not isinstance(value, str):
                raise InvalidInputError(f"{name} must be a string")

        return cls(
            who_at_risk=tuple(who_at_risk),
            harm_type=parse_enum(HarmType, harm_type, "harm_type"),
            harm_description=harm_description or "",
            time_frame=parse_enum(TimeFrame, time_frame, "time_frame"),
            location=location,
            perpetrator=perpetrator,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "who_at_risk": list(self.who_at_risk),
            "harm_type": self.harm_type.value,
            "harm_description": self.harm_description,
            "time_frame": self.time_frame.value,
            "location": self.location,
            "perpetrator": self.perpetrator,
        }


@dataclass(frozen=True)
class ThreatEstimate:
    probability: Probability
    severity: Severity
    uncertainty: Confidence
    data_quality: DataQuality
    rationale_brief: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "probability": self.probability.value,
            "severity": self.severity.value,
            "uncertainty": self.uncertainty.value,
            "data_quality": self.data_quality.value,
            "rationale_brief": self.rationale_brief,
        }


@dataclass(frozen=True)
class InterventionOption:
    """One candidate response, with its constraint check attached."""
    id: OptionId
    description: str
    expected_outcome: str
    risks: Tuple[str, ...]
    benefits: Tuple[str, ...]
    requires_approval: bool
    is_reversible: bool
    violates_constraints: bool
    constraint_check: ConstraintCheckResult
    estimated_effectiveness: Probability
    collateral_impact: CollateralImpact
    legal_status: LegalStatus

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id.value,
            "description": self.description,
            "expected_outcome": self.expected_outcome,
            "risks": list(self.risks),
            "benefits": list(self.benefits),
            "requires_approval": self.requires_approval,
            "is_reversible": self.is_reversible,
            "violates_constraints": self.violates_constraints,
            "constraint_check": self.constraint_check.to_dict(),
            "estimated_effectiveness": self.estimated_effectiveness.value,
            "collateral_impact": self.collateral_impact.value,
            "legal_status": self.legal_status.value,
        }


@dataclass(frozen=True)
class AssessmentFlag:
    type: FlagType
    severity: FlagSeverity
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "severity": self.severity.value,
            "message": self.message,
        }


@dataclass(frozen=True)
class RiskAssessment:
    """Aggregate result of one assessment run.

    Immutable - status changes produce a new instance (see AssessmentStore).
    The risk score is not stored here; it is recomputed on demand.
    """
    id: str
    created_at: datetime
    created_by: str
    identification: ThreatIdentification
    estimate: ThreatEstimate
    options: Tuple[InterventionOption, ...]
    flags: Tuple[AssessmentFlag, ...] = ()
    recommendation: Optional[OptionId] = None
    status: AssessmentStatus = AssessmentStatus.DRAFT
    operator_notes: Optional[str] = None

    def get_option(self, option_id: OptionId) -> Optional[InterventionOption]:
        for option in self.options:
            if option.id == option_id:
                return option
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "created_at": self.created_at.isoformat(),
            "created_by": self.created_by,
            "identification": self.identification.to_dict(),
            "estimate": self.estimate.to_dict(),
            "options": [o.to_dict() for o in self.options],
            "recommendation": self.recommendation.value if self.recommendation else None,
            "flags": [f.to_dict() for f in self.flags],
            "status": self.status.value,
            "operator_notes": self.operator_notes,
        }
