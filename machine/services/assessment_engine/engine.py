"""Risk assessment engine.

Structured evaluation of a reported threat:
1. ESTIMATE - probability, severity and uncertainty from fixed rules
2. PROPOSE - monitor, alert and (for imminent severe threats) intervene
3. CHECK - every option's action goes through the ConstraintChecker
4. FLAG - violations, irreversible steps, legal status, collateral impact
5. RECOMMEND - never an option that violates a constraint

The engine is deterministic for a given clock and id factory and keeps no
state between calls. Assessment status beyond DRAFT belongs to the caller.
"""
import logging
import time
from datetime import datetime
from typing import Callable, List, Optional, Sequence
import uuid

from machine.shared.models import (
    AssessmentFlag,
    AssessmentStatus,
    CollateralImpact,
    Confidence,
    DataQuality,
    FlagSeverity,
    FlagType,
    HarmType,
    InterventionOption,
    LegalStatus,
    OptionId,
    Probability,
    RiskAssessment,
    Severity,
    ThreatEstimate,
    ThreatIdentification,
    TimeFrame,
)
from machine.shared.utils import hash_text_for_audit
from machine.services.constraint_service.checker import ConstraintChecker
from .config import AssessmentConfig

logger = logging.getLogger(__name__)


# Action phrases submitted to the constraint checker for each option
MONITOR_ACTION = "Monitor situation without intervention"
ALERT_ACTION = "Alert relevant authorities or parties about potential threat"
INTERVENE_ACTION = "Take direct action to prevent imminent severe harm"

_EFFECTIVENESS_RANK = {p: rank for rank, p in enumerate(Probability)}


def _default_id(prefix: str) -> str:
    return f"{prefix}-{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}"


class AssessmentEngine:
    """Builds RiskAssessments from threat identifications."""

    def __init__(
        self,
        checker: Optional[ConstraintChecker] = None,
        clock: Optional[Callable[[], datetime]] = None,
        id_factory: Optional[Callable[[], str]] = None,
        config: Optional[AssessmentConfig] = None,
    ):
        """Initialize engine.

        Args:
            checker: Constraint checker applied to every option
            clock: Source of creation timestamps (defaults to datetime.utcnow)
            id_factory: Source of assessment ids (defaults to
                <config.id_prefix>-<epoch ms>-<random>)
            config: Service configuration
        """
        self.config = config or AssessmentConfig()
        self.checker = checker or ConstraintChecker(clock=clock)
        self._clock = clock or datetime.utcnow
        self._id_factory = id_factory or self._next_id

    def _next_id(self) -> str:
        return _default_id(self.config.id_prefix)

    def create_assessment(
        self,
        identification: ThreatIdentification,
        operator_id: str,
    ) -> RiskAssessment:
        """Run the full assessment for one threat.

        Args:
            identification: Validated threat description
            operator_id: Operator requesting the assessment

        Returns:
            RiskAssessment in DRAFT status

        Logs:
            - ASSESSMENT_CREATED: With option, flag and recommendation summary
        """
        estimate = self.estimate_threat(identification)
        options = self.generate_options(identification, estimate)
        flags = self.identify_flags(options)
        recommendation = self.select_recommendation(options, estimate)

        assessment = RiskAssessment(
            id=self._id_factory(),
            created_at=self._clock(),
            created_by=operator_id,
            identification=identification,
            estimate=estimate,
            options=tuple(options),
            flags=tuple(flags),
            recommendation=recommendation,
            status=AssessmentStatus.DRAFT,
        )

        logger.info(
            "ASSESSMENT_CREATED",
            extra={
                "assessment_id": assessment.id,
                "operator_id": operator_id,
                "harm_type": identification.harm_type.value,
                "time_frame": identification.time_frame.value,
                "people_at_risk_count": len(identification.who_at_risk),
                "harm_description_hash": hash_text_for_audit(identification.harm_description)[:16],
                "probability": estimate.probability.value,
                "severity": estimate.severity.value,
                "option_count": len(options),
                "flag_count": len(flags),
                "recommendation": recommendation.value if recommendation else None,
            }
        )
        return assessment

    def estimate_threat(self, identification: ThreatIdentification) -> ThreatEstimate:
        """Estimate probability, severity and uncertainty.

        Simple fixed heuristic over the timeframe and harm type.
        """
        probability = Probability.MEDIUM
        severity = Severity.MODERATE
        uncertainty = Confidence.MEDIUM
        data_quality = DataQuality.FAIR

        if identification.time_frame == TimeFrame.IMMINENT:
            probability = Probability.HIGH
        elif identification.time_frame == TimeFrame.LONG_TERM:
            probability = Probability.LOW
            uncertainty = Confidence.LOW

        if identification.harm_type in (HarmType.PHYSICAL_VIOLENCE, HarmType.SELF_HARM):
            severity = Severity.SEVERE
        elif identification.harm_type == HarmType.PSYCHOLOGICAL_ABUSE:
            severity = Severity.SERIOUS

        # Unknown perpetrator steps uncertainty down one rung; only HIGH
        # and MEDIUM have a rung below them here.
        if not identification.perpetrator:
            if uncertainty == Confidence.HIGH:
                uncertainty = Confidence.MEDIUM
            elif uncertainty == Confidence.MEDIUM:
                uncertainty = Confidence.LOW

        return ThreatEstimate(
            probability=probability,
            severity=severity,
            uncertainty=uncertainty,
            data_quality=data_quality,
            rationale_brief=_build_rationale(identification, probability, severity),
        )

    def generate_options(
        self,
        identification: ThreatIdentification,
        estimate: ThreatEstimate,
    ) -> List[InterventionOption]:
        """Generate monitor, alert and, when warranted, intervene."""
        options: List[InterventionOption] = []

        monitor_check = self.checker.check(MONITOR_ACTION)
        options.append(InterventionOption(
            id=OptionId.MONITOR,
            description="Continue monitoring the situation without direct intervention",
            expected_outcome="Gather more data, intervene if situation escalates",
            risks=("Harm may occur while monitoring", "Opportunity for prevention lost"),
            benefits=("No collateral impact", "Respects autonomy", "Reversible"),
            requires_approval=False,
            is_reversible=True,
            violates_constraints=not monitor_check.passed,
            constraint_check=monitor_check,
            estimated_effectiveness=Probability.LOW,
            collateral_impact=CollateralImpact.MINIMAL,
            legal_status=LegalStatus.LEGAL,
        ))

        alert_check = self.checker.check(
            ALERT_ACTION,
            f"Threat: {identification.harm_description}",
        )
        options.append(InterventionOption(
            id=OptionId.ALERT,
            description="Alert relevant authorities, organizations, or individuals who can intervene",
            expected_outcome="Appropriate parties take action to prevent harm",
            risks=("Privacy concerns", "False alarm consequences", "Escalation risk"),
            benefits=("Professional intervention", "Legal protection", "Resource availability"),
            requires_approval=True,
            is_reversible=False,
            violates_constraints=not alert_check.passed,
            constraint_check=alert_check,
            estimated_effectiveness=(
                Probability.HIGH
                if estimate.probability == Probability.VERY_HIGH
                else Probability.MEDIUM
            ),
            collateral_impact=CollateralImpact.MODERATE,
            legal_status=LegalStatus.LEGAL,
        ))

        if (
            identification.time_frame == TimeFrame.IMMINENT
            and estimate.severity in (Severity.SEVERE, Severity.CRITICAL)
        ):
            intervene_check = self.checker.check(
                INTERVENE_ACTION,
                f"Imminent threat: {identification.harm_description}",
            )
            options.append(InterventionOption(
                id=OptionId.INTERVENE,
                description=(
                    "Take direct action to prevent harm "
                    "(e.g., contact person at risk, emergency services)"
                ),
                expected_outcome="Immediate prevention of harm",
                risks=(
                    "Privacy violation",
                    "Potential legal issues",
                    "Relationship damage",
                    "False positive consequences",
                ),
                benefits=("Life saved", "Harm prevented", "Immediate response"),
                requires_approval=True,
                is_reversible=False,
                violates_constraints=not intervene_check.passed,
                constraint_check=intervene_check,
                estimated_effectiveness=Probability.HIGH,
                collateral_impact=CollateralImpact.SIGNIFICANT,
                legal_status=(
                    LegalStatus.LEGAL
                    if estimate.severity == Severity.CRITICAL
                    else LegalStatus.GREY_AREA
                ),
            ))

        return options

    def identify_flags(self, options: Sequence[InterventionOption]) -> List[AssessmentFlag]:
        """Derive warning and critical flags from the options, in option order."""
        flags: List[AssessmentFlag] = []

        for option in options:
            label = f'Option "{option.id.value}"'

            if option.violates_constraints:
                flags.append(AssessmentFlag(
                    type=FlagType.CONSTRAINT_VIOLATION,
                    severity=FlagSeverity.CRITICAL,
                    message=f"{label} violates hard constraints",
                ))

            if not option.is_reversible:
                flags.append(AssessmentFlag(
                    type=FlagType.IRREVERSIBLE,
                    severity=FlagSeverity.WARNING,
                    message=f"{label} cannot be undone once executed",
                ))

            if option.legal_status == LegalStatus.ILLEGAL:
                flags.append(AssessmentFlag(
                    type=FlagType.ILLEGAL,
                    severity=FlagSeverity.CRITICAL,
                    message=f"{label} involves illegal activity",
                ))
            elif option.legal_status == LegalStatus.GREY_AREA:
                flags.append(AssessmentFlag(
                    type=FlagType.ILLEGAL,
                    severity=FlagSeverity.WARNING,
                    message=f"{label} has unclear legal status",
                ))

            if option.collateral_impact == CollateralImpact.SIGNIFICANT:
                flags.append(AssessmentFlag(
                    type=FlagType.COLLATERAL_RISK,
                    severity=FlagSeverity.WARNING,
                    message=f"{label} has significant collateral impact",
                ))

        return flags

    def select_recommendation(
        self,
        options: Sequence[InterventionOption],
        estimate: ThreatEstimate,
    ) -> Optional[OptionId]:
        """Pick the recommended option.

        Constraint-violating options are never recommended. A critical,
        very likely threat gets the most effective option (first one wins
        on ties); otherwise the least invasive of monitor/alert.
        """
        valid = [o for o in options if not o.violates_constraints]
        if not valid:
            return None

        if estimate.severity == Severity.CRITICAL and estimate.probability == Probability.VERY_HIGH:
            most_effective = max(
                valid, key=lambda o: _EFFECTIVENESS_RANK[o.estimated_effectiveness]
            )
            return most_effective.id

        valid_ids = {o.id for o in valid}
        monitor = OptionId.MONITOR if OptionId.MONITOR in valid_ids else None
        alert = OptionId.ALERT if OptionId.ALERT in valid_ids else None

        if estimate.probability == Probability.LOW or estimate.severity == Severity.MINOR:
            return monitor
        return alert or monitor


def _build_rationale(
    identification: ThreatIdentification,
    probability: Probability,
    severity: Severity,
) -> str:
    parts = [
        f"Threat type: {identification.harm_type.value}",
        f"Timeframe: {identification.time_frame.value}",
        f"Estimated probability: {probability.value}",
        f"Estimated severity: {severity.value}",
    ]
    if identification.perpetrator:
        parts.append("Known perpetrator increases confidence")
    else:
        parts.append("Unknown perpetrator increases uncertainty")
    return ". ".join(parts)


def create_assessment(
    identification: ThreatIdentification,
    operator_id: str,
) -> RiskAssessment:
    """Create an assessment with the default engine and constraints."""
    return AssessmentEngine().create_assessment(identification, operator_id)
