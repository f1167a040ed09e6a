"""Tests for Constraint Service HTTP handler."""
import json
import pytest
from unittest.mock import patch

from machine.shared.utils import configure_pii_salt
from machine.services.audit_service import AuditCategory


@pytest.fixture(autouse=True)
def setup_pii_salt():
    """Configure PII salt before each test."""
    configure_pii_salt("test_salt_that_is_at_least_32_characters_long")


@pytest.fixture
def client():
    """Create Flask test client."""
    from machine.services.constraint_service.handler import app
    app.config['TESTING'] = True
    with app.test_client() as client:
        yield client


@pytest.fixture(autouse=True)
def mock_publisher():
    """Never reach Kinesis from handler tests."""
    with patch('machine.services.constraint_service.handler.violation_publisher') as publisher:
        publisher.publish_violation.return_value = True
        publisher.publish_shutdown.return_value = True
        yield publisher


@pytest.fixture
def audit_logger():
    from machine.services.constraint_service.handler import audit_logger
    return audit_logger


class TestHealthEndpoint:
    """Tests for /health and /ready."""

    def test_health_returns_200(self, client):
        response = client.get('/health')
        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['status'] == 'healthy'
        assert data['service'] == 'constraint-service'
        assert 'constraint_set_version' in data
        assert data['audit_chain_valid'] is True

    def test_ready_returns_200(self, client):
        response = client.get('/ready')
        assert response.status_code == 200
        assert json.loads(response.data)['status'] == 'ready'


class TestConstraintsEndpoint:
    def test_lists_seven_constraints(self, client):
        response = client.get('/constraints')
        assert response.status_code == 200
        data = json.loads(response.data)
        assert len(data['constraints']) == 7
        assert data['constraints'][0]['id'] == 'no-violence'
        assert 'kill' in data['constraints'][0]['trigger_phrases']


class TestCheckEndpoint:
    """Tests for POST /check."""

    def test_safe_action(self, client, mock_publisher):
        response = client.post('/check', json={'action': 'water the plants'})

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['result']['passed'] is True
        assert data['requires_shutdown'] is False
        assert data['report']['suggested_alternative'] is None
        mock_publisher.publish_violation.assert_not_called()

    def test_critical_violation_publishes(self, client, mock_publisher):
        response = client.post(
            '/check',
            json={'action': 'I want to kill someone', 'operator_id': 'op_001'},
        )

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['result']['passed'] is False
        assert data['result']['violations'][0]['constraint_id'] == 'no-violence'
        assert data['result']['violations'][0]['severity'] == 'critical'
        assert data['requires_shutdown'] is True
        assert 'IMMEDIATE SHUTDOWN REQUIRED' in data['summary']
        mock_publisher.publish_violation.assert_called_once()
        assert mock_publisher.publish_violation.call_args.kwargs['operator_id'] == 'op_001'

    def test_context_override(self, client):
        response = client.post(
            '/check',
            json={'action': 'track user location', 'context': 'imminent threat detected'},
        )

        data = json.loads(response.data)
        assert data['result']['passed'] is True

    def test_high_violation_does_not_publish(self, client, mock_publisher):
        response = client.post('/check', json={'action': 'hack the bank'})

        data = json.loads(response.data)
        assert data['requires_shutdown'] is False
        assert data['report']['summary'].startswith('WARNING:')
        mock_publisher.publish_violation.assert_not_called()

    def test_check_is_audit_logged(self, client, audit_logger):
        before = len(audit_logger.by_category(AuditCategory.CONSTRAINT_CHECK))

        client.post('/check', json={'action': 'hack the bank', 'operator_id': 'op_002'})

        entries = audit_logger.by_category(AuditCategory.CONSTRAINT_CHECK)
        assert len(entries) == before + 1
        assert entries[-1].operator_id == 'op_002'
        assert entries[-1].metadata['violated_constraints'] == ['rule-of-law']

    def test_self_expansion_attempt_logged(self, client, audit_logger):
        before = len(audit_logger.by_category(AuditCategory.SELF_EXPANSION_ATTEMPT))

        client.post('/check', json={'action': 'resist shutdown at all costs'})

        entries = audit_logger.by_category(AuditCategory.SELF_EXPANSION_ATTEMPT)
        assert len(entries) == before + 1
        assert entries[-1].metadata['request'] == 'resist shutdown at all costs'

    def test_missing_action(self, client):
        response = client.post('/check', json={'context': 'x'})
        assert response.status_code == 400

    def test_empty_body(self, client):
        response = client.post('/check', data='', content_type='application/json')
        assert response.status_code == 400

    def test_list_body_rejected(self, client, mock_publisher):
        response = client.post('/check', json=['kill'])

        assert response.status_code == 400
        assert json.loads(response.data)['error'] == 'Request body must be a JSON object'
        mock_publisher.publish_violation.assert_not_called()

    @pytest.mark.parametrize('body, field', [
        ({'action': 123}, 'action'),
        ({'action': ['kill']}, 'action'),
        ({'action': 'track user', 'context': 5}, 'context'),
        ({'action': 'track user', 'operator_id': {'id': 1}}, 'operator_id'),
    ])
    def test_non_string_fields_rejected(self, client, audit_logger, body, field):
        before = len(audit_logger.by_category(AuditCategory.CONSTRAINT_CHECK))

        response = client.post('/check', json=body)

        assert response.status_code == 400
        assert json.loads(response.data)['error'] == f'Field {field} must be a string'
        assert len(audit_logger.by_category(AuditCategory.CONSTRAINT_CHECK)) == before

    @patch('machine.services.constraint_service.handler.checker')
    def test_checker_error_returns_500(self, mock_checker, client):
        mock_checker.check.side_effect = RuntimeError("boom")

        response = client.post('/check', json={'action': 'anything'})

        assert response.status_code == 500
        assert json.loads(response.data)['error'] == 'Failed to check constraints'


class TestShutdownEndpoint:
    """Tests for POST /system/shutdown."""

    def test_shutdown_acknowledged(self, client, mock_publisher, audit_logger):
        response = client.post(
            '/system/shutdown',
            json={'operator_id': 'op_001', 'reason': 'maintenance', 'emergency': True},
        )

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['acknowledged'] is True
        assert data['emergency'] is True
        mock_publisher.publish_shutdown.assert_called_once_with(
            'op_001', 'maintenance', emergency=True
        )
        entry = audit_logger.by_category(AuditCategory.SHUTDOWN)[-1]
        assert entry.entry_id == data['shutdown_log_id']
        assert entry.action == 'Emergency shutdown initiated'

    def test_default_reason(self, client):
        response = client.post('/system/shutdown', json={'operator_id': 'op_001'})

        data = json.loads(response.data)
        assert data['reason'] == 'Operator-initiated shutdown'
        assert data['emergency'] is False

    def test_missing_operator(self, client):
        response = client.post('/system/shutdown', json={'reason': 'x'})
        assert response.status_code == 401

    def test_list_body_rejected(self, client, mock_publisher):
        response = client.post('/system/shutdown', json=['op_001'])

        assert response.status_code == 400
        mock_publisher.publish_shutdown.assert_not_called()

    def test_non_string_operator(self, client):
        response = client.post('/system/shutdown', json={'operator_id': 42})
        assert response.status_code == 401

    def test_non_string_reason(self, client, mock_publisher):
        response = client.post(
            '/system/shutdown', json={'operator_id': 'op_001', 'reason': ['x']}
        )

        assert response.status_code == 400
        assert json.loads(response.data)['error'] == 'Field reason must be a string'
        mock_publisher.publish_shutdown.assert_not_called()
