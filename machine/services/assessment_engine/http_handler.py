"""Assessment Engine HTTP handler - risk assessment endpoints.

Creates assessments, lists them, and moves them through the operator
approval lifecycle. Every creation and status change is audit logged.
Names of people at risk never reach application logs unhashed.
"""
import logging
import os
from flask import Flask, request, jsonify

from machine.shared.models import (
    AssessmentStatus,
    InvalidInputError,
    RiskAssessment,
    ThreatIdentification,
)
from machine.shared.utils import configure_pii_salt, hash_people
from machine.services.audit_service import AuditLogger
from .config import AssessmentConfig
from .engine import AssessmentEngine
from .scoring import calculate_risk_score, get_risk_level
from .store import AssessmentNotFoundError, AssessmentStore, InvalidTransitionError

logger = logging.getLogger(__name__)

# Initialize Flask app
app = Flask(__name__)

# Configure PII salt from environment
pii_salt = os.getenv("PII_HASH_SALT", "default_dev_salt_change_in_production_32chars")
configure_pii_salt(pii_salt)

config = AssessmentConfig(
    id_prefix=os.getenv("ASSESSMENT_ID_PREFIX", AssessmentConfig.id_prefix),
    default_list_limit=int(os.getenv("ASSESSMENT_LIST_LIMIT", "50")),
)
engine = AssessmentEngine(config=config)
store = AssessmentStore()
audit_logger = AuditLogger()

# action name in the URL -> (target status, audit wording)
TRANSITIONS = {
    "submit": (AssessmentStatus.PENDING_APPROVAL, "submitted for approval"),
    "approve": (AssessmentStatus.APPROVED, "approved"),
    "reject": (AssessmentStatus.REJECTED, "rejected"),
    "execute": (AssessmentStatus.EXECUTED, "executed"),
}


def _serialize(assessment: RiskAssessment) -> dict:
    score = calculate_risk_score(assessment)
    data = assessment.to_dict()
    data["risk_score"] = score
    data["risk_level"] = get_risk_level(score).value
    return data


@app.route("/health", methods=["GET"])
def health():
    """Health check endpoint."""
    return jsonify({
        "status": "healthy",
        "service": "assessment-engine",
        "constraint_set_version": engine.checker.constraint_set.version,
    }), 200


@app.route("/ready", methods=["GET"])
def ready():
    """Readiness check."""
    if engine is None:
        return jsonify({"status": "not_ready", "reason": "engine_not_initialized"}), 503
    return jsonify({"status": "ready"}), 200


@app.route("/assessments", methods=["POST"])
def create_assessment():
    """Create a new risk assessment.

    Request Body:
        {
            "identification": {
                "who_at_risk": ["..."],
                "harm_type": "physical-violence",
                "harm_description": "...",
                "time_frame": "imminent",
                "location": "..." (optional),
                "perpetrator": "..." (optional)
            },
            "operator_id": "op_001"
        }

    Response (201):
        The assessment with "risk_score" and "risk_level" added.
    """
    try:
        data = request.get_json(silent=True)
        if not data:
            logger.warning("ASSESSMENT_REQUEST_INVALID", extra={"reason": "empty_body"})
            return jsonify({"error": "Request body required"}), 400
        if not isinstance(data, dict):
            logger.warning("ASSESSMENT_REQUEST_INVALID", extra={"reason": "body_not_object"})
            return jsonify({"error": "Request body must be a JSON object"}), 400

        raw_identification = data.get("identification")
        if not raw_identification:
            logger.warning("ASSESSMENT_REQUEST_INVALID", extra={"reason": "missing_identification"})
            return jsonify({"error": "Missing identification data"}), 400

        operator_id = data.get("operator_id") or data.get("operatorId")
        if not operator_id or not isinstance(operator_id, str):
            logger.warning("ASSESSMENT_REQUEST_INVALID", extra={"reason": "missing_operator"})
            return jsonify({"error": "Missing operator ID"}), 400

        try:
            identification = ThreatIdentification.from_dict(raw_identification)
        except InvalidInputError as e:
            logger.warning(
                "ASSESSMENT_REQUEST_INVALID",
                extra={"reason": "invalid_identification", "error": str(e)}
            )
            return jsonify({"error": str(e)}), 400

        logger.info(
            "ASSESSMENT_REQUESTED",
            extra={
                "operator_id": operator_id,
                "who_at_risk_hashes": hash_people(identification.who_at_risk),
                "harm_type": identification.harm_type.value,
            }
        )

        assessment = store.save(engine.create_assessment(identification, operator_id))
        risk_score = calculate_risk_score(assessment)

        audit_logger.log_assessment(
            assessment_id=assessment.id,
            threat_description=identification.harm_description,
            risk_score=risk_score,
            recommended_action=(
                assessment.recommendation.value if assessment.recommendation else None
            ),
            operator_id=operator_id,
            contains_personal_data=True,  # who_at_risk is never empty
        )

        return jsonify(_serialize(assessment)), 201

    except Exception as e:
        logger.error(
            "ASSESSMENT_CREATE_ERROR",
            extra={"error": str(e), "error_type": type(e).__name__}
        )
        return jsonify({"error": "Failed to create assessment"}), 500


@app.route("/assessments", methods=["GET"])
def list_assessments():
    """List assessments, newest first.

    Query Parameters:
        created_by: Operator filter (optional)
        limit: Maximum results (default 50)
    """
    try:
        limit = int(request.args.get("limit", config.default_list_limit))
    except ValueError:
        return jsonify({"error": "limit must be an integer"}), 400

    created_by = request.args.get("created_by") or None
    assessments = store.list(created_by=created_by, limit=limit)

    return jsonify({
        "assessments": [_serialize(a) for a in assessments],
        "count": len(assessments),
    }), 200


@app.route("/assessments/<assessment_id>", methods=["GET"])
def get_assessment(assessment_id: str):
    assessment = store.get(assessment_id)
    if assessment is None:
        return jsonify({"error": "Assessment not found"}), 404
    return jsonify(_serialize(assessment)), 200


@app.route("/assessments/<assessment_id>/<action>", methods=["POST"])
def transition_assessment(assessment_id: str, action: str):
    """Move an assessment through the approval lifecycle.

    Actions: submit, approve, reject, execute

    Request Body:
        {
            "operator_id": "op_001",
            "notes": "..." (optional)
        }
    """
    if action not in TRANSITIONS:
        return jsonify({"error": f"Unknown action: {action}"}), 404

    data = request.get_json(silent=True)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        return jsonify({"error": "Request body must be a JSON object"}), 400

    operator_id = data.get("operator_id")
    if not operator_id or not isinstance(operator_id, str):
        return jsonify({"error": "Missing operator ID"}), 400

    notes = data.get("notes")
    if notes is not None and not isinstance(notes, str):
        return jsonify({"error": "notes must be a string"}), 400

    new_status, wording = TRANSITIONS[action]
    try:
        assessment = store.transition(
            assessment_id,
            new_status,
            operator_id=operator_id,
            notes=notes,
        )
    except AssessmentNotFoundError:
        return jsonify({"error": "Assessment not found"}), 404
    except InvalidTransitionError as e:
        return jsonify({"error": str(e)}), 409

    audit_logger.log_operator_action(
        action=f"Assessment {assessment_id} {wording}",
        operator_id=operator_id,
        justification=notes or f"Operator {wording} assessment",
        metadata={"assessment_id": assessment_id, "status": new_status.value},
    )

    return jsonify(_serialize(assessment)), 200


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    port = int(os.getenv("PORT", "8002"))
    app.run(host="0.0.0.0", port=port, debug=False)
