"""Audit Service: reviewable trail of Machine operations.

Every assessment, constraint check, operator action and shutdown is
recorded with a justification. Entries are hash-chained so an auditor
can verify the trail with verify_chain(). Entries holding personal data
wait for an operator to authorize retention, anonymize or discard them.

Usage:
    from machine.services.audit_service import AuditLogger
    audit = AuditLogger()
    entry = audit.log_shutdown("Maintenance window", operator_id="op_001")
    audit.mark_reviewed(entry.entry_id, "op_002")

The HTTP surface lives in handler.py.
"""

from .audit_logger import (
    REDACTED,
    AuditLogger,
    AuditCategory,
    AuditSeverity,
    AuditEntry,
    RetentionStatus,
)

__all__ = [
    "REDACTED",
    "AuditLogger",
    "AuditCategory",
    "AuditSeverity",
    "AuditEntry",
    "RetentionStatus",
]
