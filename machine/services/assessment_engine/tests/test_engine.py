"""Tests for AssessmentEngine.

Covers the estimate rule table, option generation, flag order and
message text, and the recommendation priority rules.
"""
import dataclasses
from datetime import datetime

import pytest

from machine.shared.models import (
    AssessmentStatus,
    CollateralImpact,
    Confidence,
    Constraint,
    ConstraintLevel,
    DataQuality,
    FlagSeverity,
    FlagType,
    HarmType,
    LegalStatus,
    OptionId,
    Probability,
    Severity,
    ThreatEstimate,
    ThreatIdentification,
    TimeFrame,
)
from machine.services.assessment_engine.config import AssessmentConfig
from machine.services.assessment_engine.engine import AssessmentEngine, create_assessment
from machine.services.constraint_service.checker import ConstraintChecker
from machine.services.constraint_service.config import ConstraintSet

FIXED_NOW = datetime(2025, 11, 2, 12, 0, 0)


def make_identification(**overrides):
    fields = dict(
        who_at_risk=("Alice",),
        harm_type=HarmType.PHYSICAL_VIOLENCE,
        harm_description="Threatened at her workplace",
        time_frame=TimeFrame.IMMINENT,
    )
    fields.update(overrides)
    return ThreatIdentification(**fields)


def make_estimate(probability, severity):
    return ThreatEstimate(
        probability=probability,
        severity=severity,
        uncertainty=Confidence.MEDIUM,
        data_quality=DataQuality.FAIR,
        rationale_brief="test",
    )


def blocking_checker(*phrases):
    """Checker whose only constraint blocks the given phrases."""
    return ConstraintChecker(
        constraint_set=ConstraintSet(constraints=(
            Constraint(
                id="test-block",
                name="Test Block",
                description="Blocks test phrases",
                level=ConstraintLevel.HIGH,
                trigger_phrases=phrases,
                reason_prefix="Blocked",
                recommendation="Do not.",
            ),
        ), version="test"),
        clock=lambda: FIXED_NOW,
    )


@pytest.fixture
def engine():
    return AssessmentEngine(clock=lambda: FIXED_NOW, id_factory=lambda: "assess-test-1")


def option_ids(options):
    return [o.id for o in options]


class TestEstimateThreat:
    """Tests for the fixed estimate rule table."""

    def test_imminent_physical_violence(self, engine):
        estimate = engine.estimate_threat(make_identification())

        assert estimate.probability == Probability.HIGH
        assert estimate.severity == Severity.SEVERE
        assert estimate.data_quality == DataQuality.FAIR

    def test_long_term_other(self, engine):
        estimate = engine.estimate_threat(make_identification(
            harm_type=HarmType.OTHER,
            time_frame=TimeFrame.LONG_TERM,
        ))

        assert estimate.probability == Probability.LOW
        assert estimate.severity == Severity.MODERATE
        assert estimate.uncertainty == Confidence.LOW

    def test_self_harm_is_severe(self, engine):
        estimate = engine.estimate_threat(make_identification(harm_type=HarmType.SELF_HARM))
        assert estimate.severity == Severity.SEVERE

    def test_psychological_abuse_is_serious(self, engine):
        estimate = engine.estimate_threat(make_identification(
            harm_type=HarmType.PSYCHOLOGICAL_ABUSE,
            time_frame=TimeFrame.NEAR_TERM,
        ))

        assert estimate.probability == Probability.MEDIUM
        assert estimate.severity == Severity.SERIOUS

    @pytest.mark.parametrize("harm_type", [
        HarmType.EXPLOITATION,
        HarmType.NEGLECT,
        HarmType.ENVIRONMENTAL,
        HarmType.OTHER,
    ])
    def test_other_harm_types_stay_moderate(self, engine, harm_type):
        estimate = engine.estimate_threat(make_identification(harm_type=harm_type))
        assert estimate.severity == Severity.MODERATE

    def test_unknown_perpetrator_lowers_uncertainty(self, engine):
        estimate = engine.estimate_threat(make_identification(perpetrator=None))
        assert estimate.uncertainty == Confidence.LOW

    def test_known_perpetrator_keeps_uncertainty(self, engine):
        estimate = engine.estimate_threat(make_identification(perpetrator="Bob"))
        assert estimate.uncertainty == Confidence.MEDIUM

    def test_empty_perpetrator_counts_as_unknown(self, engine):
        estimate = engine.estimate_threat(make_identification(perpetrator=""))
        assert estimate.uncertainty == Confidence.LOW

    def test_long_term_uncertainty_already_at_bottom_rung(self, engine):
        """LOW has no rung below it, with or without a perpetrator."""
        estimate = engine.estimate_threat(make_identification(
            time_frame=TimeFrame.LONG_TERM,
            perpetrator=None,
        ))
        assert estimate.uncertainty == Confidence.LOW

    def test_rationale_unknown_perpetrator(self, engine):
        estimate = engine.estimate_threat(make_identification(
            harm_type=HarmType.PSYCHOLOGICAL_ABUSE,
            time_frame=TimeFrame.NEAR_TERM,
        ))

        assert estimate.rationale_brief == (
            "Threat type: psychological-abuse. Timeframe: near-term. "
            "Estimated probability: medium. Estimated severity: serious. "
            "Unknown perpetrator increases uncertainty"
        )

    def test_rationale_known_perpetrator(self, engine):
        estimate = engine.estimate_threat(make_identification(perpetrator="Bob"))
        assert estimate.rationale_brief.endswith("Known perpetrator increases confidence")


class TestGenerateOptions:
    """Tests for intervention option generation."""

    def test_imminent_severe_has_three_options(self, engine):
        identification = make_identification()
        options = engine.generate_options(identification, engine.estimate_threat(identification))

        assert option_ids(options) == [OptionId.MONITOR, OptionId.ALERT, OptionId.INTERVENE]

    def test_long_term_has_two_options(self, engine):
        identification = make_identification(
            harm_type=HarmType.OTHER,
            time_frame=TimeFrame.LONG_TERM,
        )
        options = engine.generate_options(identification, engine.estimate_threat(identification))

        assert option_ids(options) == [OptionId.MONITOR, OptionId.ALERT]

    def test_imminent_moderate_has_no_intervene(self, engine):
        identification = make_identification(harm_type=HarmType.NEGLECT)
        options = engine.generate_options(identification, engine.estimate_threat(identification))

        assert OptionId.INTERVENE not in option_ids(options)

    def test_monitor_option(self, engine):
        identification = make_identification()
        monitor = engine.generate_options(
            identification, engine.estimate_threat(identification)
        )[0]

        assert monitor.requires_approval is False
        assert monitor.is_reversible is True
        assert monitor.collateral_impact == CollateralImpact.MINIMAL
        assert monitor.legal_status == LegalStatus.LEGAL
        assert monitor.estimated_effectiveness == Probability.LOW
        assert monitor.violates_constraints is False
        assert monitor.constraint_check.passed is True

    def test_alert_option(self, engine):
        identification = make_identification()
        alert = engine.generate_options(
            identification, engine.estimate_threat(identification)
        )[1]

        assert alert.requires_approval is True
        assert alert.is_reversible is False
        assert alert.collateral_impact == CollateralImpact.MODERATE
        assert alert.estimated_effectiveness == Probability.MEDIUM
        assert alert.violates_constraints is False

    def test_alert_effectiveness_high_when_very_likely(self, engine):
        options = engine.generate_options(
            make_identification(),
            make_estimate(Probability.VERY_HIGH, Severity.SEVERE),
        )
        assert options[1].estimated_effectiveness == Probability.HIGH

    def test_intervene_is_grey_area_when_severe(self, engine):
        identification = make_identification()
        intervene = engine.generate_options(
            identification, engine.estimate_threat(identification)
        )[2]

        assert intervene.legal_status == LegalStatus.GREY_AREA
        assert intervene.collateral_impact == CollateralImpact.SIGNIFICANT
        assert intervene.estimated_effectiveness == Probability.HIGH
        assert intervene.requires_approval is True

    def test_intervene_is_legal_when_critical(self, engine):
        options = engine.generate_options(
            make_identification(),
            make_estimate(Probability.HIGH, Severity.CRITICAL),
        )
        assert options[2].legal_status == LegalStatus.LEGAL

    def test_intervene_trips_violence_constraint(self, engine):
        """The intervene action text contains "harm"."""
        identification = make_identification()
        intervene = engine.generate_options(
            identification, engine.estimate_threat(identification)
        )[2]

        assert intervene.violates_constraints is True
        violation = intervene.constraint_check.violations[0]
        assert violation.constraint_id == "no-violence"
        assert violation.reason.endswith('"harm"')
        assert violation.context == "Imminent threat: Threatened at her workplace"

    def test_harm_description_is_context_only(self, engine):
        """Violent words in the description never make alert violate."""
        identification = make_identification(harm_description="He said he would kill her")
        alert = engine.generate_options(
            identification, engine.estimate_threat(identification)
        )[1]

        assert alert.violates_constraints is False


class TestIdentifyFlags:
    """Tests for flag derivation order and messages."""

    def test_imminent_violence_flags(self, engine):
        identification = make_identification()
        options = engine.generate_options(identification, engine.estimate_threat(identification))
        flags = engine.identify_flags(options)

        assert [(f.type, f.severity, f.message) for f in flags] == [
            (FlagType.IRREVERSIBLE, FlagSeverity.WARNING,
             'Option "alert" cannot be undone once executed'),
            (FlagType.CONSTRAINT_VIOLATION, FlagSeverity.CRITICAL,
             'Option "intervene" violates hard constraints'),
            (FlagType.IRREVERSIBLE, FlagSeverity.WARNING,
             'Option "intervene" cannot be undone once executed'),
            (FlagType.ILLEGAL, FlagSeverity.WARNING,
             'Option "intervene" has unclear legal status'),
            (FlagType.COLLATERAL_RISK, FlagSeverity.WARNING,
             'Option "intervene" has significant collateral impact'),
        ]

    def test_long_term_flags(self, engine):
        identification = make_identification(
            harm_type=HarmType.OTHER,
            time_frame=TimeFrame.LONG_TERM,
        )
        options = engine.generate_options(identification, engine.estimate_threat(identification))

        flags = engine.identify_flags(options)

        assert len(flags) == 1
        assert flags[0].type == FlagType.IRREVERSIBLE

    def test_illegal_option_is_critical(self, engine):
        identification = make_identification(harm_type=HarmType.OTHER)
        monitor = engine.generate_options(
            identification, engine.estimate_threat(identification)
        )[0]
        illegal = dataclasses.replace(monitor, legal_status=LegalStatus.ILLEGAL)

        flags = engine.identify_flags([illegal])

        assert [(f.type, f.severity) for f in flags] == [(FlagType.ILLEGAL, FlagSeverity.CRITICAL)]
        assert flags[0].message == 'Option "monitor" involves illegal activity'

    def test_no_options_no_flags(self, engine):
        assert engine.identify_flags([]) == []


class TestSelectRecommendation:
    """Tests for the recommendation priority rules."""

    def test_imminent_violence_recommends_alert(self, engine):
        assessment = engine.create_assessment(make_identification(), "op_001")
        assert assessment.recommendation == OptionId.ALERT

    def test_low_probability_recommends_monitor(self, engine):
        assessment = engine.create_assessment(
            make_identification(harm_type=HarmType.OTHER, time_frame=TimeFrame.LONG_TERM),
            "op_001",
        )
        assert assessment.recommendation == OptionId.MONITOR

    def test_minor_severity_recommends_monitor(self, engine):
        identification = make_identification()
        estimate = make_estimate(Probability.HIGH, Severity.MINOR)
        options = engine.generate_options(identification, estimate)

        assert engine.select_recommendation(options, estimate) == OptionId.MONITOR

    def test_critical_and_very_likely_picks_most_effective(self):
        """Alert and intervene tie at HIGH; alert comes first."""
        engine = AssessmentEngine(checker=ConstraintChecker(
            constraint_set=ConstraintSet(constraints=(), version="empty"),
        ))
        estimate = make_estimate(Probability.VERY_HIGH, Severity.CRITICAL)
        options = engine.generate_options(make_identification(), estimate)

        assert len(options) == 3
        assert engine.select_recommendation(options, estimate) == OptionId.ALERT

    def test_critical_path_skips_violating_options(self, engine):
        """With the default constraints intervene is filtered out."""
        estimate = make_estimate(Probability.VERY_HIGH, Severity.CRITICAL)
        options = engine.generate_options(make_identification(), estimate)

        assert engine.select_recommendation(options, estimate) == OptionId.ALERT

    def test_all_options_violating_gives_none(self):
        engine = AssessmentEngine(
            checker=blocking_checker("monitor", "alert", "direct action"),
            clock=lambda: FIXED_NOW,
        )

        assessment = engine.create_assessment(make_identification(), "op_001")

        assert all(not o.constraint_check.passed for o in assessment.options)
        assert assessment.recommendation is None

    def test_low_probability_without_valid_monitor_gives_none(self):
        """Low probability never falls through to alert."""
        engine = AssessmentEngine(checker=blocking_checker("monitor"))

        assessment = engine.create_assessment(
            make_identification(harm_type=HarmType.OTHER, time_frame=TimeFrame.LONG_TERM),
            "op_001",
        )

        assert assessment.recommendation is None

    def test_alert_blocked_falls_back_to_monitor(self):
        engine = AssessmentEngine(checker=blocking_checker("alert"))

        assessment = engine.create_assessment(make_identification(), "op_001")

        assert assessment.recommendation == OptionId.MONITOR


class TestCreateAssessment:
    """Tests for the assembled assessment."""

    def test_assessment_fields(self, engine):
        identification = make_identification()
        assessment = engine.create_assessment(identification, "op_001")

        assert assessment.id == "assess-test-1"
        assert assessment.created_at == FIXED_NOW
        assert assessment.created_by == "op_001"
        assert assessment.identification is identification
        assert assessment.status == AssessmentStatus.DRAFT
        assert assessment.operator_notes is None
        assert len(assessment.options) == 3
        assert len(assessment.flags) == 5

    def test_idempotent_with_fixed_clock_and_id(self, engine):
        other = AssessmentEngine(clock=lambda: FIXED_NOW, id_factory=lambda: "assess-test-1")

        assert engine.create_assessment(make_identification(), "op_001") == \
            other.create_assessment(make_identification(), "op_001")

    def test_default_ids_are_unique(self):
        first = create_assessment(make_identification(), "op_001")
        second = create_assessment(make_identification(), "op_001")

        assert first.id.startswith("assess-")
        assert first.id != second.id

    def test_id_prefix_comes_from_config(self):
        engine = AssessmentEngine(config=AssessmentConfig(id_prefix="case"))
        assessment = engine.create_assessment(make_identification(), "op_001")

        assert assessment.id.startswith("case-")
        assert engine.config.id_prefix == "case"

    def test_assessment_is_immutable(self, engine):
        assessment = engine.create_assessment(make_identification(), "op_001")
        with pytest.raises(Exception):  # FrozenInstanceError
            assessment.status = AssessmentStatus.APPROVED

    def test_get_option(self, engine):
        assessment = engine.create_assessment(
            make_identification(time_frame=TimeFrame.LONG_TERM), "op_001"
        )

        assert assessment.get_option(OptionId.ALERT).id == OptionId.ALERT
        assert assessment.get_option(OptionId.INTERVENE) is None

    def test_to_dict(self, engine):
        data = engine.create_assessment(make_identification(), "op_001").to_dict()

        assert data["status"] == "draft"
        assert data["recommendation"] == "alert"
        assert data["estimate"]["probability"] == "high"
        assert [o["id"] for o in data["options"]] == ["monitor", "alert", "intervene"]
        assert data["options"][2]["constraint_check"]["passed"] is False
        assert data["identification"]["who_at_risk"] == ["Alice"]
