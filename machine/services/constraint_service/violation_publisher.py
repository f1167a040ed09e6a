"""Constraint event publisher.

Publishes shutdown-level constraint violations and operator shutdown
commands to a Kinesis stream. The operator dashboard consumes the stream
for its live feed.

Publishing is best effort: a failed publish never changes the check
result returned to the caller.
"""
import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional
import uuid

from machine.shared.models import ConstraintCheckResult
from .checker import should_shutdown

logger = logging.getLogger(__name__)

VIOLATION_EVENT = "constraint.violation.critical"
SHUTDOWN_EVENT = "system.shutdown.requested"


def _new_event_id() -> str:
    return f"evt_{uuid.uuid4().hex[:12]}"


@dataclass(frozen=True)
class ConstraintEvent:
    """One record on the constraint stream."""
    event_id: str
    event_type: str = VIOLATION_EVENT
    operator_id: Optional[str] = None
    action_hash: str = ""
    violated_constraints: List[str] = field(default_factory=list)
    requires_shutdown: bool = True
    constraint_set_version: str = ""
    details: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.utcnow)

    def to_kinesis_payload(self) -> dict:
        data = {
            "operator_id": self.operator_id,
            "action_hash": self.action_hash,
            "violated_constraints": self.violated_constraints,
            "requires_shutdown": self.requires_shutdown,
            "constraint_set_version": self.constraint_set_version,
        }
        data.update(self.details)
        return {
            "event_id": self.event_id,
            "event_type": self.event_type,
            "source": "constraint-service",
            "timestamp": f"{self.timestamp.isoformat()}Z",
            "data": data,
        }


class ViolationEventPublisher:
    """Puts ConstraintEvents on a Kinesis stream.

    Every publish method returns a bool and never raises. When the stream
    cannot be reached the full payload is logged at CRITICAL for replay.
    """

    def __init__(
        self,
        stream_name: str = "machine-constraint-events",
        enabled: bool = True,
        region: Optional[str] = None,
    ):
        """
        Args:
            stream_name: Target Kinesis stream
            enabled: False turns every publish into a logged no-op
            region: AWS region, AWS_REGION env var when omitted
        """
        self.stream_name = stream_name
        self.enabled = enabled
        self.region = region or os.getenv("AWS_REGION", "us-east-1")
        self._client = None

        logger.info(
            "VIOLATION_PUBLISHER_INITIALIZED",
            extra={"stream_name": stream_name, "enabled": enabled, "region": self.region}
        )

    @property
    def kinesis_client(self):
        """boto3 Kinesis client, created on first use; None if disabled or unavailable."""
        if self.enabled and self._client is None:
            try:
                import boto3
                self._client = boto3.client("kinesis", region_name=self.region)
            except Exception as e:
                logger.error(
                    "KINESIS_CLIENT_UNAVAILABLE",
                    extra={"error": str(e), "error_type": type(e).__name__}
                )
        return self._client

    def publish_violation(
        self,
        result: ConstraintCheckResult,
        action_hash: str,
        constraint_set_version: str,
        operator_id: Optional[str] = None,
    ) -> bool:
        """Publish the violations of a failed check.

        Args:
            result: The failed check result
            action_hash: Fingerprint of the checked action (never the raw text)
            constraint_set_version: Version of the constraints that were applied
            operator_id: Operator who submitted the action, if known
        """
        return self.publish(ConstraintEvent(
            event_id=_new_event_id(),
            operator_id=operator_id,
            action_hash=action_hash,
            violated_constraints=[v.constraint_id for v in result.violations],
            requires_shutdown=should_shutdown(result),
            constraint_set_version=constraint_set_version,
        ))

    def publish_shutdown(
        self,
        operator_id: str,
        reason: str,
        emergency: bool = False,
    ) -> bool:
        """Publish an operator shutdown command."""
        return self.publish(ConstraintEvent(
            event_id=_new_event_id(),
            event_type=SHUTDOWN_EVENT,
            operator_id=operator_id,
            details={"reason": reason, "emergency": emergency},
        ))

    def publish(self, event: ConstraintEvent) -> bool:
        """Put one event on the stream. Returns True once Kinesis accepts it."""
        if not self.enabled:
            logger.info(
                "CONSTRAINT_EVENT_PUBLISH_SKIPPED",
                extra={"event_id": event.event_id, "event_type": event.event_type}
            )
            return False

        record = json.dumps(event.to_kinesis_payload())

        client = self.kinesis_client
        if client is None:
            logger.critical(
                "CONSTRAINT_EVENT_NOT_SENT",
                extra={
                    "event_id": event.event_id,
                    "stream_name": self.stream_name,
                    "record": record,
                }
            )
            return False

        try:
            response = client.put_record(
                StreamName=self.stream_name,
                Data=record,
                PartitionKey=event.operator_id or "system",
            )
        except Exception as e:
            logger.critical(
                "CONSTRAINT_EVENT_PUBLISH_FAILED",
                extra={
                    "event_id": event.event_id,
                    "event_type": event.event_type,
                    "error": str(e),
                    "error_type": type(e).__name__,
                    "record": record,
                }
            )
            return False

        logger.warning(
            "CONSTRAINT_EVENT_PUBLISHED",
            extra={
                "event_id": event.event_id,
                "event_type": event.event_type,
                "shard_id": response.get("ShardId"),
                "sequence_number": response.get("SequenceNumber"),
            }
        )
        return True
