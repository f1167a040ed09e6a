"""Constraint Service HTTP handler.

Every action the Machine proposes passes through /check before it is
shown to an operator. Checks are audit logged; shutdown-level violations
are published to the constraint event stream.
"""
import logging
import os
from typing import Optional
from flask import Flask, request, jsonify

from machine.shared.utils import configure_pii_salt, hash_text_for_audit
from machine.services.audit_service import AuditLogger
from .checker import ConstraintChecker, format_check_result, should_shutdown
from .config import DEFAULT_CONSTRAINT_SET, ConstraintServiceConfig, ConstraintSet
from .violation_publisher import ViolationEventPublisher

logger = logging.getLogger(__name__)

# Initialize Flask app
app = Flask(__name__)

# Configure PII salt from environment
pii_salt = os.getenv("PII_HASH_SALT", "default_dev_salt_change_in_production_32chars")
configure_pii_salt(pii_salt)

config = ConstraintServiceConfig(
    constraint_set_version=os.getenv(
        "CONSTRAINT_SET_VERSION", ConstraintServiceConfig.constraint_set_version
    ),
    violation_publishing_enabled=os.getenv(
        "VIOLATION_PUBLISHING_ENABLED", "true"
    ).lower() == "true",
    stream_name=os.getenv("KINESIS_STREAM_NAME", ConstraintServiceConfig.stream_name),
)
checker = ConstraintChecker(
    constraint_set=ConstraintSet(
        constraints=DEFAULT_CONSTRAINT_SET.constraints,
        version=config.constraint_set_version,
    )
)
audit_logger = AuditLogger()
violation_publisher = ViolationEventPublisher(
    stream_name=config.stream_name,
    enabled=config.violation_publishing_enabled,
)


def _field_type_error(**fields) -> Optional[str]:
    """Error message for the first non-string field, None if all are str or None."""
    for name, value in fields.items():
        if value is not None and not isinstance(value, str):
            return f"Field {name} must be a string"
    return None


@app.route("/health", methods=["GET"])
def health():
    """Health check endpoint."""
    return jsonify({
        "status": "healthy",
        "service": "constraint-service",
        "constraint_set_version": checker.constraint_set.version,
        "audit_chain_valid": audit_logger.verify_chain(),
    }), 200


@app.route("/ready", methods=["GET"])
def ready():
    """Readiness check - verifies checker is initialized."""
    if checker is None:
        return jsonify({"status": "not_ready", "reason": "checker_not_initialized"}), 503
    return jsonify({"status": "ready"}), 200


@app.route("/constraints", methods=["GET"])
def list_constraints():
    """List the active constraint set."""
    return jsonify({
        "version": checker.constraint_set.version,
        "constraints": [c.to_dict() for c in checker.constraint_set],
    }), 200


@app.route("/check", methods=["POST"])
def check_action():
    """Check a proposed action against the hard constraints.

    Request Body:
        {
            "action": "Proposed action text",
            "context": "Situation context" (optional),
            "operator_id": "op_001" (optional)
        }

    Response:
        {
            "result": {"passed": ..., "violations": [...], "timestamp": ...},
            "report": {...},
            "requires_shutdown": true | false,
            "summary": "formatted multi-line summary"
        }
    """
    try:
        data = request.get_json(silent=True)
        if not data:
            logger.warning("CHECK_REQUEST_INVALID", extra={"reason": "empty_body"})
            return jsonify({"error": "Request body required"}), 400
        if not isinstance(data, dict):
            logger.warning("CHECK_REQUEST_INVALID", extra={"reason": "body_not_object"})
            return jsonify({"error": "Request body must be a JSON object"}), 400

        action = data.get("action")
        if not action:
            logger.warning("CHECK_REQUEST_INVALID", extra={"reason": "missing_action"})
            return jsonify({"error": "Missing required field: action"}), 400

        context = data.get("context")
        operator_id = data.get("operator_id")
        type_error = _field_type_error(action=action, context=context, operator_id=operator_id)
        if type_error:
            logger.warning("CHECK_REQUEST_INVALID", extra={"reason": "wrong_field_type"})
            return jsonify({"error": type_error}), 400

        action_hash = hash_text_for_audit(action)

        logger.info(
            "CHECK_REQUESTED",
            extra={
                "operator_id": operator_id,
                "action_hash": action_hash[:16],
                "has_context": context is not None,
            }
        )

        result = checker.check(action, context)
        report = checker.report(result, action)
        requires_shutdown = should_shutdown(result)

        audit_logger.log_constraint_check(action, result, operator_id=operator_id)

        for violation in result.violations:
            if violation.constraint_id == "no-self-expansion":
                audit_logger.log_self_expansion_attempt(
                    request=action,
                    reason=violation.reason,
                    operator_id=operator_id,
                )

        if requires_shutdown:
            published = violation_publisher.publish_violation(
                result,
                action_hash=action_hash,
                constraint_set_version=checker.constraint_set.version,
                operator_id=operator_id,
            )
            if not published:
                logger.error(
                    "VIOLATION_PUBLISH_FAILED",
                    extra={"action_hash": action_hash[:16], "action": "MANUAL_REVIEW_REQUIRED"}
                )

        return jsonify({
            "result": result.to_dict(),
            "report": report.to_dict(),
            "requires_shutdown": requires_shutdown,
            "summary": format_check_result(result),
        }), 200

    except Exception as e:
        logger.error(
            "CHECK_ERROR",
            extra={"error": str(e), "error_type": type(e).__name__}
        )
        return jsonify({"error": "Failed to check constraints"}), 500


@app.route("/system/shutdown", methods=["POST"])
def shutdown():
    """Operator shutdown command. The Machine complies without protest.

    Request Body:
        {
            "operator_id": "op_001",
            "reason": "..." (optional),
            "emergency": false (optional)
        }
    """
    data = request.get_json(silent=True)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        return jsonify({"error": "Request body must be a JSON object"}), 400

    operator_id = data.get("operator_id")
    if not operator_id or not isinstance(operator_id, str):
        return jsonify({"error": "Operator ID is required"}), 401

    reason = data.get("reason")
    if reason is not None and not isinstance(reason, str):
        return jsonify({"error": "Field reason must be a string"}), 400
    reason = reason or "Operator-initiated shutdown"
    emergency = bool(data.get("emergency", False))

    entry = audit_logger.log_shutdown(reason, operator_id, emergency=emergency)
    logger.critical(
        "SHUTDOWN_COMMAND_RECEIVED",
        extra={
            "operator_id": operator_id,
            "emergency": emergency,
            "audit_entry_id": entry.entry_id,
        }
    )
    violation_publisher.publish_shutdown(operator_id, reason, emergency=emergency)

    return jsonify({
        "acknowledged": True,
        "shutdown_log_id": entry.entry_id,
        "timestamp": entry.timestamp.isoformat(),
        "emergency": emergency,
        "reason": reason,
    }), 200


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    port = int(os.getenv("PORT", "8001"))
    app.run(host="0.0.0.0", port=port, debug=False)
