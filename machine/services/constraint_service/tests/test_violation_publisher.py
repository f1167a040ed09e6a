"""Tests for ViolationEventPublisher.

The Kinesis client is always mocked; publishing must never raise.
"""
import json
from datetime import datetime
from unittest.mock import MagicMock, PropertyMock, patch

import pytest

from machine.services.constraint_service.checker import ConstraintChecker
from machine.services.constraint_service.violation_publisher import (
    ConstraintEvent,
    ViolationEventPublisher,
)


@pytest.fixture
def failed_result():
    checker = ConstraintChecker(clock=lambda: datetime(2025, 11, 2, 9, 30))
    return checker.check("kill and hack")


@pytest.fixture
def publisher():
    publisher = ViolationEventPublisher(stream_name="test-stream", enabled=True)
    publisher._client = MagicMock()
    publisher._client.put_record.return_value = {
        "ShardId": "shard-000",
        "SequenceNumber": "123",
    }
    return publisher


class TestConstraintEvent:
    """Tests for ConstraintEvent dataclass."""

    def test_defaults(self):
        event = ConstraintEvent(event_id="evt_1")

        assert event.event_type == "constraint.violation.critical"
        assert event.requires_shutdown is True
        assert event.violated_constraints == []

    def test_payload(self):
        event = ConstraintEvent(
            event_id="evt_1",
            operator_id="op_001",
            action_hash="abc",
            violated_constraints=["no-violence"],
            constraint_set_version="2025.11.02",
            timestamp=datetime(2025, 11, 2, 9, 30),
        )

        payload = event.to_kinesis_payload()

        assert payload["source"] == "constraint-service"
        assert payload["timestamp"] == "2025-11-02T09:30:00Z"
        assert payload["data"]["violated_constraints"] == ["no-violence"]
        assert payload["data"]["operator_id"] == "op_001"

    def test_details_merged_into_data(self):
        event = ConstraintEvent(event_id="evt_1", details={"reason": "maintenance"})

        assert event.to_kinesis_payload()["data"]["reason"] == "maintenance"

    def test_event_is_immutable(self):
        event = ConstraintEvent(event_id="evt_1")
        with pytest.raises(Exception):  # FrozenInstanceError
            event.requires_shutdown = False


class TestPublishViolation:
    """Tests for publish_violation."""

    def test_publishes_to_stream(self, publisher, failed_result):
        assert publisher.publish_violation(
            failed_result,
            action_hash="hash_abc",
            constraint_set_version="2025.11.02",
            operator_id="op_001",
        ) is True

        call = publisher._client.put_record.call_args
        assert call.kwargs["StreamName"] == "test-stream"
        assert call.kwargs["PartitionKey"] == "op_001"
        data = json.loads(call.kwargs["Data"])["data"]
        assert data["violated_constraints"] == ["no-violence", "rule-of-law"]
        assert data["requires_shutdown"] is True
        assert data["action_hash"] == "hash_abc"

    def test_disabled_publisher_skips(self, failed_result):
        publisher = ViolationEventPublisher(enabled=False)

        assert publisher.publish_violation(failed_result, "h", "v") is False
        assert publisher.kinesis_client is None

    def test_missing_client_falls_back_to_log(self, failed_result):
        publisher = ViolationEventPublisher(enabled=True)

        with patch.object(
            ViolationEventPublisher, "kinesis_client", new_callable=PropertyMock, return_value=None
        ):
            assert publisher.publish_violation(failed_result, "h", "v") is False

    def test_put_record_failure_returns_false(self, publisher, failed_result):
        publisher._client.put_record.side_effect = RuntimeError("throttled")

        assert publisher.publish_violation(failed_result, "h", "v") is False


class TestPublishShutdown:
    """Tests for publish_shutdown."""

    def test_shutdown_event(self, publisher):
        assert publisher.publish_shutdown("op_001", "maintenance", emergency=True) is True

        payload = json.loads(publisher._client.put_record.call_args.kwargs["Data"])
        assert payload["event_type"] == "system.shutdown.requested"
        assert payload["data"]["reason"] == "maintenance"
        assert payload["data"]["emergency"] is True
