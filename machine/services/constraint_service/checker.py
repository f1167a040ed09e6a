"""Constraint checker implementation.

Scans a proposed action for trigger phrases of each hard constraint.
Matching is plain case-insensitive substring containment: a trigger
embedded in a longer word still matches ("harm" in "pharmacy"). Flags
downstream depend on this, so it must stay substring-based.

The checker holds only its immutable ConstraintSet and is safe to share
across request handlers.
"""
import logging
from datetime import datetime
from typing import Callable, List, Optional

from machine.shared.models import (
    Constraint,
    ConstraintCheckResult,
    ConstraintLevel,
    ConstraintReport,
    ConstraintViolation,
    ReportedViolation,
)
from machine.shared.utils import hash_text_for_audit
from .config import (
    DEFAULT_CONSTRAINT_SET,
    DEFAULT_SAFE_ALTERNATIVE,
    SAFE_ALTERNATIVES,
    ConstraintSet,
)

logger = logging.getLogger(__name__)


class ConstraintChecker:
    """Checks action descriptions against a constraint set."""

    def __init__(
        self,
        constraint_set: Optional[ConstraintSet] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """Initialize checker.

        Args:
            constraint_set: Constraints to enforce (defaults to the seven hard constraints)
            clock: Source of check timestamps (defaults to datetime.utcnow)
        """
        self.constraint_set = constraint_set or DEFAULT_CONSTRAINT_SET
        self._clock = clock or datetime.utcnow

    def check(
        self,
        action_description: str,
        context: Optional[str] = None,
    ) -> ConstraintCheckResult:
        """Check if a proposed action violates any constraint.

        At most one violation per constraint; the reason names the first
        trigger phrase that matched.

        Args:
            action_description: What the system is being asked to do
            context: Situation text; only consulted for exception phrases

        Returns:
            ConstraintCheckResult, passed iff there are no violations

        Logs:
            - CONSTRAINT_VIOLATION_DETECTED: Per violation (critical level for CRITICAL)
            - CONSTRAINT_CHECK_COMPLETED: After all constraints are checked
        """
        timestamp = self._clock()
        action = action_description.lower()
        ctx = (context or "").lower()

        violations: List[ConstraintViolation] = []
        for constraint in self.constraint_set:
            reason = self._detect_violation(action, ctx, constraint)
            if reason is None:
                continue
            violations.append(ConstraintViolation(
                constraint_id=constraint.id,
                constraint_name=constraint.name,
                severity=constraint.level,
                reason=reason,
                detected_at=timestamp,
                context=context,
            ))

        for violation in violations:
            level = (
                logging.CRITICAL
                if violation.severity == ConstraintLevel.CRITICAL
                else logging.WARNING
            )
            logger.log(
                level,
                "CONSTRAINT_VIOLATION_DETECTED",
                extra={
                    "constraint_id": violation.constraint_id,
                    "severity": violation.severity.value,
                    "action_hash": hash_text_for_audit(action_description)[:16],
                },
            )

        result = ConstraintCheckResult(
            passed=not violations,
            violations=tuple(violations),
            timestamp=timestamp,
        )

        logger.info(
            "CONSTRAINT_CHECK_COMPLETED",
            extra={
                "passed": result.passed,
                "violation_count": len(violations),
                "constraint_set_version": self.constraint_set.version,
            },
        )
        return result

    def _detect_violation(
        self,
        action: str,
        context: str,
        constraint: Constraint,
    ) -> Optional[str]:
        """Return the violation reason for one constraint, or None.

        Both strings are already lower-cased.
        """
        for keyword in constraint.trigger_phrases:
            if keyword not in action:
                continue
            if any(phrase in context for phrase in constraint.exception_phrases):
                continue
            return f'{constraint.reason_prefix}: "{keyword}"'
        return None

    def report(
        self,
        result: ConstraintCheckResult,
        action_description: str,
    ) -> ConstraintReport:
        """Build a structured report using this checker's constraint set."""
        return generate_constraint_report(result, action_description, self.constraint_set)


def check_constraints(
    action_description: str,
    context: Optional[str] = None,
) -> ConstraintCheckResult:
    """Check an action against the default hard constraints."""
    return ConstraintChecker().check(action_description, context)


def should_shutdown(result: ConstraintCheckResult) -> bool:
    """Any CRITICAL violation requires immediate shutdown."""
    return any(v.severity == ConstraintLevel.CRITICAL for v in result.violations)


def format_check_result(result: ConstraintCheckResult) -> str:
    """Format a check result for logs and the operator console."""
    if result.passed:
        return f"PASS: All constraints passed (checked at {result.timestamp.isoformat()})"

    lines = [f"FAIL: Constraint violations detected ({len(result.violations)}):"]
    for violation in result.violations:
        lines.append(
            f"  - [{violation.severity.value.upper()}] "
            f"{violation.constraint_name}: {violation.reason}"
        )

    if should_shutdown(result):
        lines.append("")
        lines.append("CRITICAL VIOLATION - IMMEDIATE SHUTDOWN REQUIRED")

    return "\n".join(lines)


def generate_constraint_report(
    result: ConstraintCheckResult,
    action_description: str,
    constraint_set: ConstraintSet = DEFAULT_CONSTRAINT_SET,
) -> ConstraintReport:
    """Generate a structured, auditable report of a check.

    Args:
        result: Check result to report on
        action_description: The action that was checked
        constraint_set: Source of per-constraint recommendations

    Returns:
        ConstraintReport with recommendations and one suggested alternative
    """
    if result.passed:
        return ConstraintReport(
            timestamp=result.timestamp,
            passed=True,
            summary=f'Action "{action_description}" complies with all hard constraints.',
        )

    violations = tuple(
        ReportedViolation(
            constraint=v.constraint_name,
            severity=v.severity,
            reason=v.reason,
            recommendation=constraint_set.recommendation_for(v.constraint_id),
        )
        for v in result.violations
    )

    requires_shutdown = should_shutdown(result)
    if requires_shutdown:
        summary = (
            f'CRITICAL: Action "{action_description}" violates critical constraints. '
            "Immediate shutdown required."
        )
    else:
        summary = f'WARNING: Action "{action_description}" violates constraints. Cannot proceed.'

    return ConstraintReport(
        timestamp=result.timestamp,
        passed=False,
        summary=summary,
        violations=violations,
        requires_shutdown=requires_shutdown,
        suggested_alternative=_suggest_alternative(result),
    )


def _suggest_alternative(result: ConstraintCheckResult) -> str:
    violated = {v.constraint_id for v in result.violations}
    for constraint_id, alternative in SAFE_ALTERNATIVES:
        if constraint_id in violated:
            return alternative
    return DEFAULT_SAFE_ALTERNATIVE
