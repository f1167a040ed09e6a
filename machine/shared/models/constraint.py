"""Constraint domain models.

Constraints are the fixed rules the Machine checks every proposed action
against. A constraint set is loaded once and never mutated; check results
are created per call and owned by the caller.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class ConstraintLevel(Enum):
    """Severity of a constraint. CRITICAL violations require shutdown."""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass(frozen=True)
class Constraint:
    """A named rule with the phrases that trigger it.

    Immutable - a constraint cannot change once the set is loaded.
    """
    id: str
    name: str
    description: str
    level: ConstraintLevel
    trigger_phrases: Tuple[str, ...]
    reason_prefix: str
    recommendation: str
    # Context phrases that suppress a trigger match
    exception_phrases: Tuple[str, ...] = ()
    must_never: Tuple[str, ...] = ()
    examples: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for API responses."""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "level": self.level.value,
            "trigger_phrases": list(self.trigger_phrases),
            "exception_phrases": list(self.exception_phrases),
            "must_never": list(self.must_never),
            "examples": list(self.examples),
        }


@dataclass(frozen=True)
class ConstraintViolation:
    """A single constraint whose triggers matched an action."""
    constraint_id: str
    constraint_name: str
    severity: ConstraintLevel
    reason: str
    detected_at: datetime
    context: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "constraint_id": self.constraint_id,
            "constraint_name": self.constraint_name,
            "severity": self.severity.value,
            "reason": self.reason,
            "detected_at": self.detected_at.isoformat(),
            "context": self.context,
        }


@dataclass(frozen=True)
class ConstraintCheckResult:
    """Outcome of checking one action against a constraint set."""
    passed: bool
    violations: Tuple[ConstraintViolation, ...] = ()
    timestamp: datetime = field(default_factory=datetime.utcnow)

    def __post_init__(self):
        if self.passed != (len(self.violations) == 0):
            raise ValueError(
                f"passed={self.passed} inconsistent with "
                f"{len(self.violations)} violations"
            )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "passed": self.passed,
            "violations": [v.to_dict() for v in self.violations],
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class ReportedViolation:
    """Violation entry of a constraint report, with remediation advice."""
    constraint: str
    severity: ConstraintLevel
    reason: str
    recommendation: str


@dataclass(frozen=True)
class ConstraintReport:
    """Structured, auditable summary of a constraint check."""
    timestamp: datetime
    passed: bool
    summary: str
    violations: Tuple[ReportedViolation, ...] = ()
    requires_shutdown: bool = False
    suggested_alternative: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "passed": self.passed,
            "summary": self.summary,
            "violations": [
                {
                    "constraint": v.constraint,
                    "severity": v.severity.value,
                    "reason": v.reason,
                    "recommendation": v.recommendation,
                }
                for v in self.violations
            ],
            "requires_shutdown": self.requires_shutdown,
            "suggested_alternative": self.suggested_alternative,
        }
