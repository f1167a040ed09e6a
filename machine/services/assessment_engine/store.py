"""In-memory assessment store with lifecycle transitions.

The engine only ever produces DRAFT assessments. This store is the caller
that owns status afterwards:

    draft -> pending-approval -> approved -> executed
                              -> rejected

Assessments are frozen; a transition stores a replaced copy.
"""
import dataclasses
import logging
from typing import Dict, FrozenSet, List, Optional

from machine.shared.models import AssessmentStatus, RiskAssessment

logger = logging.getLogger(__name__)


class AssessmentStoreError(Exception):
    """Base exception for assessment store errors."""
    pass


class AssessmentNotFoundError(AssessmentStoreError):
    """No assessment with the given id."""
    pass


class InvalidTransitionError(AssessmentStoreError):
    """Requested status change is not allowed from the current status."""
    pass


ALLOWED_TRANSITIONS: Dict[AssessmentStatus, FrozenSet[AssessmentStatus]] = {
    AssessmentStatus.DRAFT: frozenset({AssessmentStatus.PENDING_APPROVAL}),
    AssessmentStatus.PENDING_APPROVAL: frozenset({
        AssessmentStatus.APPROVED,
        AssessmentStatus.REJECTED,
    }),
    AssessmentStatus.APPROVED: frozenset({AssessmentStatus.EXECUTED}),
    AssessmentStatus.REJECTED: frozenset(),
    AssessmentStatus.EXECUTED: frozenset(),
}


class AssessmentStore:
    """Keeps assessments in memory, keyed by id, in insertion order."""

    def __init__(self):
        self._assessments: Dict[str, RiskAssessment] = {}
        logger.info("ASSESSMENT_STORE_INITIALIZED")

    def save(self, assessment: RiskAssessment) -> RiskAssessment:
        self._assessments[assessment.id] = assessment
        return assessment

    def get(self, assessment_id: str) -> Optional[RiskAssessment]:
        return self._assessments.get(assessment_id)

    def list(
        self,
        created_by: Optional[str] = None,
        limit: int = 50,
    ) -> List[RiskAssessment]:
        """List assessments, newest first.

        Args:
            created_by: Only assessments created by this operator
            limit: Maximum assessments to return
        """
        assessments = [
            a for a in self._assessments.values()
            if created_by is None or a.created_by == created_by
        ]
        assessments.sort(key=lambda a: a.created_at, reverse=True)
        return assessments[:max(limit, 0)]

    def transition(
        self,
        assessment_id: str,
        new_status: AssessmentStatus,
        operator_id: str,
        notes: Optional[str] = None,
    ) -> RiskAssessment:
        """Move an assessment to a new status.

        Args:
            assessment_id: Assessment identifier
            new_status: Target status
            operator_id: Operator performing the transition
            notes: Operator notes; replaces existing notes when given

        Returns:
            The updated assessment

        Raises:
            AssessmentNotFoundError: If the id is unknown
            InvalidTransitionError: If the move is not allowed
        """
        current = self._assessments.get(assessment_id)
        if current is None:
            logger.warning(
                "ASSESSMENT_TRANSITION_NOT_FOUND",
                extra={"assessment_id": assessment_id}
            )
            raise AssessmentNotFoundError(f"Assessment not found: {assessment_id}")

        if new_status not in ALLOWED_TRANSITIONS[current.status]:
            logger.warning(
                "ASSESSMENT_TRANSITION_REJECTED",
                extra={
                    "assessment_id": assessment_id,
                    "from_status": current.status.value,
                    "to_status": new_status.value,
                    "operator_id": operator_id,
                }
            )
            raise InvalidTransitionError(
                f"Cannot move assessment {assessment_id} "
                f"from {current.status.value} to {new_status.value}"
            )

        updated = dataclasses.replace(
            current,
            status=new_status,
            operator_notes=notes if notes is not None else current.operator_notes,
        )
        self._assessments[assessment_id] = updated

        logger.info(
            "ASSESSMENT_STATUS_CHANGED",
            extra={
                "assessment_id": assessment_id,
                "from_status": current.status.value,
                "to_status": new_status.value,
                "operator_id": operator_id,
            }
        )
        return updated
