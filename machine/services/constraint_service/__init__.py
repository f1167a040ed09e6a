"""Constraint Service: hard constraints the Machine must never violate.

Every proposed action is checked here before an operator sees it. Checks
are plain case-insensitive phrase matching over an immutable constraint
set; any CRITICAL violation requires shutdown.

Components:
- config.py: The seven hard constraints and service configuration
- checker.py: ConstraintChecker, report and formatting helpers
- handler.py: Flask HTTP endpoints (/health, /constraints, /check, /system/shutdown)
- violation_publisher.py: Kinesis event publishing for critical violations

Usage:
    from machine.services.constraint_service import check_constraints, should_shutdown
    result = check_constraints("track user location", "imminent threat detected")
"""

from .checker import (
    ConstraintChecker,
    check_constraints,
    format_check_result,
    generate_constraint_report,
    should_shutdown,
)
from .config import (
    ConstraintServiceConfig,
    ConstraintSet,
    DEFAULT_CONSTRAINT_SET,
    HARD_CONSTRAINTS,
)
from .violation_publisher import ConstraintEvent, ViolationEventPublisher

__all__ = [
    "ConstraintChecker",
    "check_constraints",
    "format_check_result",
    "generate_constraint_report",
    "should_shutdown",
    "ConstraintServiceConfig",
    "ConstraintSet",
    "DEFAULT_CONSTRAINT_SET",
    "HARD_CONSTRAINTS",
    "ConstraintEvent",
    "ViolationEventPublisher",
]
