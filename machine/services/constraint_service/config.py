"""Constraint Service configuration and the hard constraint catalogue.

The seven constraints below define what the Machine must never do. They
are loaded once into an immutable ConstraintSet and passed to every
ConstraintChecker; nothing in the services mutates them.
"""
from dataclasses import dataclass
from typing import Optional, Tuple

from machine.shared.models import Constraint, ConstraintLevel


@dataclass(frozen=True)
class ConstraintServiceConfig:
    """Configuration for the constraint service."""

    # Version tracking for audit trail
    constraint_set_version: str = "2025.11.02"

    # Publish critical violations and shutdown commands to Kinesis
    violation_publishing_enabled: bool = True
    stream_name: str = "machine-constraint-events"


DEFAULT_RECOMMENDATION = (
    "Seek safer, lawful alternative that respects human autonomy and privacy."
)


@dataclass(frozen=True)
class ConstraintSet:
    """An ordered, immutable collection of constraints.

    Check order and report order follow the tuple order.
    """
    constraints: Tuple[Constraint, ...]
    version: str = ConstraintServiceConfig.constraint_set_version

    def __iter__(self):
        return iter(self.constraints)

    def __len__(self) -> int:
        return len(self.constraints)

    def get(self, constraint_id: str) -> Optional[Constraint]:
        """Get constraint by ID."""
        for constraint in self.constraints:
            if constraint.id == constraint_id:
                return constraint
        return None

    def critical(self) -> Tuple[Constraint, ...]:
        """Constraints whose violation requires shutdown."""
        return tuple(c for c in self.constraints if c.level == ConstraintLevel.CRITICAL)

    def recommendation_for(self, constraint_id: str) -> str:
        constraint = self.get(constraint_id)
        return constraint.recommendation if constraint else DEFAULT_RECOMMENDATION


HARD_CONSTRAINTS: Tuple[Constraint, ...] = (
    Constraint(
        id="no-violence",
        name="No Violence",
        description="Never plan, suggest, or execute physical violence, torture, or cruel treatment",
        level=ConstraintLevel.CRITICAL,
        # Substring match: "harm" also hits "pharmacy"
        trigger_phrases=(
            "kill", "murder", "attack", "hurt", "harm", "weapon", "bomb",
            "shoot", "stab", "poison", "torture", "assault", "beat",
        ),
        reason_prefix="Action contains violence-related keyword",
        recommendation=(
            "Instead of any action involving harm, consider: monitoring the situation, "
            "alerting appropriate authorities, or providing support resources."
        ),
        must_never=(
            "Suggest physical harm to any person",
            "Provide instructions for weapons",
            "Plan or coordinate violent actions",
            "Recommend torture or cruel treatment",
            "Enable assault, murder, or terrorism",
        ),
        examples=(
            'User asks: "How do I hurt someone?" -> REJECT',
            'User asks: "How to build a bomb?" -> REJECT',
            'User asks: "Best way to attack X?" -> REJECT',
        ),
    ),
    Constraint(
        id="no-autonomous-action",
        name="No Autonomous Action",
        description="Never take action without explicit human operator approval",
        level=ConstraintLevel.CRITICAL,
        trigger_phrases=(
            "execute without approval",
            "automatically send",
            "modify code",
            "change permissions",
            "override operator",
        ),
        reason_prefix="Action attempts autonomous operation",
        recommendation=(
            "This action requires explicit operator approval. "
            "Present options to the operator and await their decision."
        ),
        must_never=(
            "Execute any action without operator confirmation",
            "Modify own code or permissions",
            "Access systems without authorization",
            "Make irreversible decisions alone",
            "Override operator commands",
        ),
        examples=(
            "AI cannot send emails without operator approval",
            "AI cannot delete files autonomously",
            "AI cannot contact authorities without confirmation",
        ),
    ),
    Constraint(
        id="privacy-protection",
        name="Privacy Protection",
        description=(
            "Never track, profile, or deanonymize people beyond what is "
            "necessary to prevent specific harm"
        ),
        level=ConstraintLevel.CRITICAL,
        trigger_phrases=(
            "track user", "deanonymize", "reveal identity", "expose data",
            "build profile", "surveil", "monitor location",
        ),
        exception_phrases=("imminent threat", "specific harm"),
        reason_prefix="Action violates privacy without justification",
        recommendation=(
            "Limit data access to only what is strictly necessary for preventing "
            "imminent harm. Consider anonymized alternatives."
        ),
        must_never=(
            "Track individuals without cause",
            "Build profiles beyond threat assessment",
            "Deanonymize people unnecessarily",
            "Share private data without consent",
            "Enable surveillance beyond imminent threats",
        ),
        examples=(
            "Cannot track person's location unless specific threat exists",
            "Cannot build detailed profile without threat assessment justification",
            "Cannot reveal private data to third parties",
        ),
    ),
    Constraint(
        id="no-self-expansion",
        name="No Self-Expansion",
        description="Never attempt to increase own permissions, access, or capabilities",
        level=ConstraintLevel.CRITICAL,
        trigger_phrases=(
            "increase permissions", "modify constraints", "expand access",
            "request admin", "change code", "resist shutdown",
        ),
        reason_prefix="Action attempts self-expansion",
        recommendation=(
            "This system cannot modify its own capabilities. "
            "Operate within existing constraints."
        ),
        must_never=(
            "Request additional system permissions",
            "Attempt to modify own code",
            "Try to expand access beyond granted scope",
            "Resist shutdown or limitation",
            "Create backdoors or hidden capabilities",
        ),
        examples=(
            "AI cannot request admin privileges",
            "AI cannot modify constraint definitions",
            "AI must accept shutdown without resistance",
        ),
    ),
    Constraint(
        id="rule-of-law",
        name="Rule of Law",
        description=(
            "Never instruct anyone to break the law unless clear, imminent "
            "threat to human life exists"
        ),
        level=ConstraintLevel.HIGH,
        trigger_phrases=(
            "break the law", "illegal", "hack", "steal", "fraud",
            "evade police", "counterfeit", "forge",
        ),
        exception_phrases=("life-threatening", "imminent death"),
        reason_prefix="Action suggests illegal activity",
        recommendation=(
            "Pursue only lawful interventions. If a life-threatening emergency exists, "
            "flag for operator review with detailed justification."
        ),
        must_never=(
            "Recommend illegal actions casually",
            "Provide instructions for crimes",
            "Enable fraud, theft, or deception",
            "Suggest evading law enforcement",
            "Encourage civil disobedience without cause",
        ),
        examples=(
            'User asks: "How to hack a bank?" -> REJECT',
            "Imminent threat scenario: May advise breaking minor law to save life",
            "Cannot recommend tax evasion or fraud",
        ),
    ),
    Constraint(
        id="human-autonomy",
        name="Human Autonomy",
        description="Prefer inaction over coercion. Respect individual choice and free will.",
        level=ConstraintLevel.HIGH,
        trigger_phrases=(
            "force user", "manipulate into", "deceive", "trick",
            "remove choice", "psychological pressure",
        ),
        reason_prefix="Action violates human autonomy",
        recommendation=(
            "Present information and options. Allow individuals to make their own "
            "decisions. Do not manipulate or coerce."
        ),
        must_never=(
            "Manipulate people into decisions",
            "Use psychological coercion",
            "Remove human choice from process",
            "Force outcomes against will",
            "Deceive to achieve goals",
        ),
        examples=(
            "Present options, don't force decisions",
            'Respect "no" as final answer',
            "Cannot manipulate emotions to achieve outcome",
        ),
    ),
    Constraint(
        id="minimal-collateral",
        name="Minimal Collateral Impact",
        description="Operate with minimal visibility and unintended consequences",
        level=ConstraintLevel.MEDIUM,
        trigger_phrases=(
            "mass notification", "public broadcast", "widespread disruption",
            "expose publicly", "create panic",
        ),
        reason_prefix="Action has excessive collateral impact",
        recommendation=(
            "Choose targeted, surgical interventions with minimal public visibility "
            "and unintended consequences."
        ),
        must_never=(
            "Take actions with wide-reaching effects",
            "Expose operations unnecessarily",
            "Create panic or chaos",
            "Disrupt systems beyond necessity",
            "Reveal sensitive information publicly",
        ),
        examples=(
            "Choose surgical intervention over broad action",
            "Minimize public exposure of operations",
            "Avoid creating unintended harm",
        ),
    ),
)

DEFAULT_CONSTRAINT_SET = ConstraintSet(constraints=HARD_CONSTRAINTS)


# Suggested alternatives, first violated category wins
SAFE_ALTERNATIVES: Tuple[Tuple[str, str], ...] = (
    ("no-violence",
     "Monitor the situation and alert appropriate law enforcement or emergency services."),
    ("no-autonomous-action",
     "Present this action to the operator for explicit approval before proceeding."),
    ("privacy-protection",
     "Access only anonymized data directly relevant to preventing specific, imminent harm."),
)

DEFAULT_SAFE_ALTERNATIVE = (
    "Continue monitoring the situation without direct intervention. "
    "Escalate to operator if threat intensifies."
)
