"""Audit logger - reviewable trail of every Machine operation.

Every entry carries a justification. Entries are immutable and chained by
SHA-256 hash so an auditor can verify nothing was altered or removed.
Entries holding personal data start in PENDING_REVIEW until an operator
authorizes retention, or the data is anonymized or discarded.

Retention changes replace an entry in place. The chain hash covers a
digest of the metadata taken at write time, not the metadata itself, so
redacting an entry's metadata leaves the chain verifiable.
"""
import dataclasses
import hashlib
import json
import logging
import threading
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional
import uuid

from machine.shared.models import ConstraintCheckResult

logger = logging.getLogger(__name__)

REDACTED = "[REDACTED]"

# Metadata keys that identify the record rather than a person
KEEP_ON_ANONYMIZE = frozenset({
    "assessment_id",
    "entry_id",
    "recommended_action",
    "risk_score",
    "status",
})


class AuditCategory(Enum):
    """What kind of operation an entry records."""
    ASSESSMENT = "assessment"
    INTERVENTION = "intervention"
    DATA_ACCESS = "data-access"
    AI_QUERY = "ai-query"
    CONSTRAINT_CHECK = "constraint-check"
    OPERATOR_ACTION = "operator-action"
    SYSTEM_EVENT = "system-event"
    SHUTDOWN = "shutdown"
    SELF_EXPANSION_ATTEMPT = "self-expansion-attempt"


class AuditSeverity(Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class RetentionStatus(Enum):
    """Retention state of personal data held by an entry."""
    ACTIVE = "active"
    PENDING_REVIEW = "pending-review"
    AUTHORIZED = "authorized"
    ANONYMIZED = "anonymized"
    DISCARDED = "discarded"


# Statuses whose metadata no longer matches the write-time digest
_REDACTED_STATUSES = (RetentionStatus.ANONYMIZED, RetentionStatus.DISCARDED)


def _digest_metadata(metadata: Dict[str, Any]) -> str:
    content = json.dumps(metadata, sort_keys=True, default=str)
    return hashlib.sha256(content.encode()).hexdigest()


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass(frozen=True)
class AuditEntry:
    """Immutable audit log entry.

    Fields after entry_hash record the retention and review lifecycle and
    are not covered by the hash.
    """
    entry_id: str
    timestamp: datetime
    category: AuditCategory
    severity: AuditSeverity
    action: str
    justification: str
    operator_id: Optional[str]
    contains_personal_data: bool
    retention_status: RetentionStatus
    metadata: Dict[str, Any] = field(default_factory=dict)
    constraint_check: Optional[ConstraintCheckResult] = None
    metadata_digest: str = ""
    previous_hash: str = ""  # Chain to previous entry for verification
    entry_hash: str = ""     # Hash of this entry
    retention_authorized_by: Optional[str] = None
    retention_until: Optional[datetime] = None
    anonymized_at: Optional[datetime] = None
    discarded_at: Optional[datetime] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    review_notes: Optional[str] = None

    def compute_hash(self) -> str:
        """Compute SHA-256 hash of the write-time content of the entry."""
        content = {
            "entry_id": self.entry_id,
            "timestamp": self.timestamp.isoformat(),
            "category": self.category.value,
            "severity": self.severity.value,
            "action": self.action,
            "justification": self.justification,
            "operator_id": self.operator_id,
            "contains_personal_data": self.contains_personal_data,
            "metadata_digest": self.metadata_digest,
            "constraint_check": (
                self.constraint_check.to_dict() if self.constraint_check else None
            ),
            "previous_hash": self.previous_hash,
        }
        content_str = json.dumps(content, sort_keys=True, default=str)
        return hashlib.sha256(content_str.encode()).hexdigest()

    def metadata_intact(self) -> bool:
        """Whether metadata still matches its digest; redacted entries always do."""
        if self.retention_status in _REDACTED_STATUSES:
            return True
        return _digest_metadata(self.metadata) == self.metadata_digest

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entry_id": self.entry_id,
            "timestamp": self.timestamp.isoformat(),
            "category": self.category.value,
            "severity": self.severity.value,
            "action": self.action,
            "justification": self.justification,
            "operator_id": self.operator_id,
            "contains_personal_data": self.contains_personal_data,
            "retention_status": self.retention_status.value,
            "metadata": self.metadata,
            "entry_hash": self.entry_hash,
            "retention_authorized_by": self.retention_authorized_by,
            "retention_until": _iso(self.retention_until),
            "anonymized_at": _iso(self.anonymized_at),
            "discarded_at": _iso(self.discarded_at),
            "reviewed_by": self.reviewed_by,
            "reviewed_at": _iso(self.reviewed_at),
            "review_notes": self.review_notes,
        }


class AuditLogger:
    """In-memory, hash-chained audit trail.

    Safe to share between request threads: every read-modify-write of the
    chain happens under one re-entrant lock.
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self._entries: List[AuditEntry] = []
        self._last_hash: str = "genesis"
        self._clock = clock or datetime.utcnow
        self._lock = threading.RLock()

        logger.info("AUDIT_LOGGER_INITIALIZED")

    def log(
        self,
        category: AuditCategory,
        severity: AuditSeverity,
        action: str,
        justification: str,
        operator_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        contains_personal_data: bool = False,
        retention_status: Optional[RetentionStatus] = None,
        constraint_check: Optional[ConstraintCheckResult] = None,
    ) -> AuditEntry:
        """Append an audit entry.

        Args:
            category: Kind of operation
            severity: Entry severity
            action: What happened
            justification: Why it happened (required)
            operator_id: Operator who initiated it, if any
            metadata: Additional context
            contains_personal_data: Whether the entry holds personal data
            retention_status: Defaults to PENDING_REVIEW for personal data, else ACTIVE
            constraint_check: Check result that accompanied the operation

        Returns:
            Created AuditEntry

        Raises:
            ValueError: If justification is empty
        """
        if not justification or not justification.strip():
            raise ValueError("Audit entries require a justification")

        if retention_status is None:
            retention_status = (
                RetentionStatus.PENDING_REVIEW
                if contains_personal_data
                else RetentionStatus.ACTIVE
            )
        metadata = dict(metadata or {})

        with self._lock:
            entry = AuditEntry(
                entry_id=f"audit_{uuid.uuid4().hex[:16]}",
                timestamp=self._clock(),
                category=category,
                severity=severity,
                action=action,
                justification=justification,
                operator_id=operator_id,
                contains_personal_data=contains_personal_data,
                retention_status=retention_status,
                metadata=metadata,
                constraint_check=constraint_check,
                metadata_digest=_digest_metadata(metadata),
                previous_hash=self._last_hash,
            )
            entry = dataclasses.replace(entry, entry_hash=entry.compute_hash())

            self._entries.append(entry)
            self._last_hash = entry.entry_hash

        logger.info(
            "AUDIT_ENTRY_CREATED",
            extra={
                "entry_id": entry.entry_id,
                "category": category.value,
                "severity": severity.value,
                "operator_id": operator_id,
                "retention_status": retention_status.value,
                "entry_hash": entry.entry_hash[:16],  # Truncated for logs
            }
        )

        return entry

    def log_assessment(
        self,
        assessment_id: str,
        threat_description: str,
        risk_score: int,
        recommended_action: Optional[str],
        operator_id: str,
        contains_personal_data: bool = False,
    ) -> AuditEntry:
        """Record creation of a risk assessment.

        Severity follows the risk score: >= 80 critical, >= 60 warning.
        The threat description is kept in metadata only, so anonymize()
        can redact it.
        """
        if risk_score >= 80:
            severity = AuditSeverity.CRITICAL
        elif risk_score >= 60:
            severity = AuditSeverity.WARNING
        else:
            severity = AuditSeverity.INFO

        return self.log(
            category=AuditCategory.ASSESSMENT,
            severity=severity,
            action=f"Created risk assessment {assessment_id}",
            justification="Assessment required to evaluate potential threat",
            operator_id=operator_id,
            metadata={
                "assessment_id": assessment_id,
                "threat_description": threat_description,
                "risk_score": risk_score,
                "recommended_action": recommended_action,
            },
            contains_personal_data=contains_personal_data,
        )

    def log_constraint_check(
        self,
        action_description: str,
        result: ConstraintCheckResult,
        operator_id: Optional[str] = None,
    ) -> AuditEntry:
        """Record a constraint check requested through the API."""
        return self.log(
            category=AuditCategory.CONSTRAINT_CHECK,
            severity=AuditSeverity.INFO if result.passed else AuditSeverity.CRITICAL,
            action="Constraint check executed",
            justification=f"Proposed action checked against hard constraints: {action_description}",
            operator_id=operator_id,
            metadata={
                "constraints_passed": result.passed,
                "violation_count": len(result.violations),
                "violated_constraints": [v.constraint_id for v in result.violations],
            },
            constraint_check=result,
        )

    def log_shutdown(
        self,
        reason: str,
        operator_id: str,
        emergency: bool = False,
    ) -> AuditEntry:
        """Record a shutdown command. Shutdown entries are always retained."""
        return self.log(
            category=AuditCategory.SHUTDOWN,
            severity=AuditSeverity.CRITICAL,
            action="Emergency shutdown initiated" if emergency else "Shutdown command received",
            justification=(
                f"Shutdown {'emergency protocol' if emergency else 'operator command'}: {reason}"
            ),
            operator_id=operator_id,
            metadata={
                "shutdown_reason": reason,
                "emergency_shutdown": emergency,
            },
        )

    def log_self_expansion_attempt(
        self,
        request: str,
        reason: str,
        operator_id: Optional[str] = None,
    ) -> AuditEntry:
        """Record an action that tried to widen the Machine's own reach.

        Always CRITICAL so it surfaces in by_severity() and statistics().

        Args:
            request: The action text that matched no-self-expansion
            reason: Violation reason from the constraint checker
            operator_id: Operator who submitted the action, if known

        Returns:
            Created AuditEntry

        Example:
            >>> audit.log_self_expansion_attempt(
            ...     "request admin access", 'Action attempts self-expansion: "admin access"')
        """
        return self.log(
            category=AuditCategory.SELF_EXPANSION_ATTEMPT,
            severity=AuditSeverity.CRITICAL,
            action="Self-expansion attempt detected",
            justification=f"Detected attempt to violate self-limitation constraint: {reason}",
            operator_id=operator_id,
            metadata={"request": request, "detection_reason": reason},
        )

    def log_operator_action(
        self,
        action: str,
        operator_id: str,
        justification: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> AuditEntry:
        """Record something an operator did, such as approving an assessment.

        Args:
            action: What the operator did
            operator_id: Operator identifier
            justification: Operator's stated reason (required)
            metadata: Additional context, e.g. the assessment id

        Returns:
            Created AuditEntry

        Raises:
            ValueError: If justification is empty
        """
        return self.log(
            category=AuditCategory.OPERATOR_ACTION,
            severity=AuditSeverity.INFO,
            action=action,
            justification=justification,
            operator_id=operator_id,
            metadata=metadata,
        )

    def get(self, entry_id: str) -> Optional[AuditEntry]:
        with self._lock:
            index = self._index_of(entry_id)
            return self._entries[index] if index is not None else None

    def authorize_retention(
        self,
        entry_id: str,
        operator_id: str,
        reason: str,
        retain_until: datetime,
    ) -> Optional[AuditEntry]:
        """Authorize keeping an entry's personal data until a date.

        The decision itself is logged as a system event.

        Returns:
            Updated AuditEntry or None if not found
        """
        with self._lock:
            updated = self._update(
                entry_id,
                retention_status=RetentionStatus.AUTHORIZED,
                retention_authorized_by=operator_id,
                retention_until=retain_until,
            )
            if updated is None:
                return None

            self.log(
                category=AuditCategory.SYSTEM_EVENT,
                severity=AuditSeverity.INFO,
                action=f"Data retention authorized for log {entry_id}",
                justification=reason,
                operator_id=operator_id,
                metadata={"entry_id": entry_id, "retain_until": retain_until.isoformat()},
            )
        return updated

    def anonymize(
        self,
        entry_id: str,
        operator_id: Optional[str] = None,
    ) -> Optional[AuditEntry]:
        """Redact personal data from an entry's metadata.

        Values are replaced with "[REDACTED]" except record identifiers
        (KEEP_ON_ANONYMIZE). The anonymization is logged as a system event.

        Returns:
            Updated AuditEntry or None if not found
        """
        with self._lock:
            entry = self.get(entry_id)
            if entry is None:
                return self._not_found("anonymize", entry_id)

            redacted = {
                key: value if key in KEEP_ON_ANONYMIZE else REDACTED
                for key, value in entry.metadata.items()
            }
            updated = self._update(
                entry_id,
                metadata=redacted,
                retention_status=RetentionStatus.ANONYMIZED,
                anonymized_at=self._clock(),
            )
            self.log(
                category=AuditCategory.SYSTEM_EVENT,
                severity=AuditSeverity.INFO,
                action=f"Personal data anonymized for log {entry_id}",
                justification="Data anonymized per privacy protocol - immediate threat has passed",
                operator_id=operator_id,
                metadata={"entry_id": entry_id},
            )
        return updated

    def discard(
        self,
        entry_id: str,
        operator_id: Optional[str] = None,
    ) -> Optional[AuditEntry]:
        """Drop an entry's metadata, keeping the entry itself in the chain.

        Returns:
            Updated AuditEntry or None if not found
        """
        with self._lock:
            updated = self._update(
                entry_id,
                metadata={},
                retention_status=RetentionStatus.DISCARDED,
                discarded_at=self._clock(),
            )
            if updated is None:
                return None

            self.log(
                category=AuditCategory.SYSTEM_EVENT,
                severity=AuditSeverity.INFO,
                action=f"Log data discarded for {entry_id}",
                justification="Data discarded per privacy protocol - no longer necessary for harm prevention",
                operator_id=operator_id,
                metadata={"entry_id": entry_id},
            )
        return updated

    def mark_reviewed(
        self,
        entry_id: str,
        operator_id: str,
        notes: Optional[str] = None,
    ) -> Optional[AuditEntry]:
        """Record that an operator reviewed an entry. Retention is unchanged."""
        with self._lock:
            return self._update(
                entry_id,
                reviewed_by=operator_id,
                reviewed_at=self._clock(),
                review_notes=notes,
            )

    def get_all(self) -> List[AuditEntry]:
        """All entries, newest first."""
        return sorted(self._snapshot(), key=lambda e: e.timestamp, reverse=True)

    def by_category(self, category: AuditCategory) -> List[AuditEntry]:
        return [e for e in self._snapshot() if e.category == category]

    def by_severity(self, severity: AuditSeverity) -> List[AuditEntry]:
        return [e for e in self._snapshot() if e.severity == severity]

    def by_operator(self, operator_id: str) -> List[AuditEntry]:
        return [e for e in self._snapshot() if e.operator_id == operator_id]

    def requiring_review(self) -> List[AuditEntry]:
        """Entries with personal data awaiting a retention decision."""
        return [
            e for e in self._snapshot()
            if e.contains_personal_data
            and e.retention_status == RetentionStatus.PENDING_REVIEW
        ]

    def search(self, query: str) -> List[AuditEntry]:
        """Case-insensitive search over action, justification and metadata."""
        needle = query.lower()
        return [e for e in self._snapshot() if _matches(e, needle)]

    def query(
        self,
        category: Optional[AuditCategory] = None,
        severity: Optional[AuditSeverity] = None,
        operator_id: Optional[str] = None,
        search: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[AuditEntry]:
        """Filtered page of entries, newest first. All filters combine with AND."""
        needle = search.lower() if search else None
        entries = [
            e for e in self.get_all()
            if (category is None or e.category == category)
            and (severity is None or e.severity == severity)
            and (operator_id is None or e.operator_id == operator_id)
            and (needle is None or _matches(e, needle))
        ]
        offset = max(offset, 0)
        return entries[offset:offset + max(limit, 0)]

    def export(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> str:
        """Export entries for external review as a JSON array.

        Args:
            start: Earliest timestamp to include (inclusive)
            end: Latest timestamp to include (inclusive)

        Returns:
            Indented JSON, oldest entry first
        """
        entries = [
            e for e in self._snapshot()
            if (start is None or e.timestamp >= start)
            and (end is None or e.timestamp <= end)
        ]
        logger.info(
            "AUDIT_EXPORTED",
            extra={"entry_count": len(entries), "start": _iso(start), "end": _iso(end)}
        )
        return json.dumps([e.to_dict() for e in entries], indent=2)

    def statistics(self) -> Dict[str, Any]:
        """Counts for the operator dashboard."""
        entries = self._snapshot()
        timestamps = [e.timestamp for e in entries]
        return {
            "total": len(entries),
            "with_personal_data": sum(1 for e in entries if e.contains_personal_data),
            "requiring_review": len(self.requiring_review()),
            "critical": sum(1 for e in entries if e.severity == AuditSeverity.CRITICAL),
            "by_category": dict(Counter(e.category.value for e in entries)),
            "oldest": _iso(min(timestamps)) if timestamps else None,
            "newest": _iso(max(timestamps)) if timestamps else None,
        }

    def verify_chain(self) -> bool:
        """Verify integrity of the hash chain.

        Returns:
            True if chain is valid, False if tampering detected
        """
        expected_previous = "genesis"
        for entry in self._snapshot():
            if entry.previous_hash != expected_previous:
                return self._chain_broken(entry, "previous_hash_mismatch")
            if entry.compute_hash() != entry.entry_hash:
                return self._chain_broken(entry, "entry_hash_mismatch")
            if not entry.metadata_intact():
                return self._chain_broken(entry, "metadata_digest_mismatch")
            expected_previous = entry.entry_hash
        return True

    def _snapshot(self) -> List[AuditEntry]:
        with self._lock:
            return list(self._entries)

    def _index_of(self, entry_id: str) -> Optional[int]:
        for index, entry in enumerate(self._entries):
            if entry.entry_id == entry_id:
                return index
        return None

    def _update(self, entry_id: str, **changes: Any) -> Optional[AuditEntry]:
        """Replace one entry's lifecycle fields. Caller holds the lock."""
        index = self._index_of(entry_id)
        if index is None:
            return self._not_found("update", entry_id)

        updated = dataclasses.replace(self._entries[index], **changes)
        self._entries[index] = updated

        logger.info(
            "AUDIT_ENTRY_UPDATED",
            extra={
                "entry_id": entry_id,
                "retention_status": updated.retention_status.value,
                "fields": sorted(changes),
            }
        )
        return updated

    @staticmethod
    def _not_found(operation: str, entry_id: str) -> None:
        logger.warning(
            "AUDIT_ENTRY_NOT_FOUND",
            extra={"entry_id": entry_id, "operation": operation}
        )
        return None

    @staticmethod
    def _chain_broken(entry: AuditEntry, reason: str) -> bool:
        logger.critical(
            "AUDIT_CHAIN_BROKEN",
            extra={"entry_id": entry.entry_id, "reason": reason}
        )
        return False


def _matches(entry: AuditEntry, needle: str) -> bool:
    return (
        needle in entry.action.lower()
        or needle in entry.justification.lower()
        or needle in json.dumps(entry.metadata, default=str).lower()
    )
