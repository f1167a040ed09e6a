"""Audit Service HTTP handler - audit trail endpoints.

Operators list and export the trail here, and make the retention
decisions for entries holding personal data. Every export is itself
audit logged.
"""
import logging
import os
from datetime import datetime, timezone
from typing import Optional
from flask import Flask, Response, request, jsonify

from machine.shared.utils import configure_pii_salt
from .audit_logger import AuditCategory, AuditLogger, AuditSeverity

logger = logging.getLogger(__name__)

# Initialize Flask app
app = Flask(__name__)

# Configure PII salt
pii_salt = os.getenv("PII_HASH_SALT", "default_dev_salt_change_in_production_32chars")
configure_pii_salt(pii_salt)

# Initialize audit logger
audit_logger = AuditLogger()

DEFAULT_PAGE_SIZE = 50


def _parse_date(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO date into naive UTC, matching entry timestamps.

    Raises:
        ValueError: If the value is not an ISO 8601 string
    """
    if not value:
        return None
    if not isinstance(value, str):
        raise ValueError(f"Expected an ISO 8601 string, got {type(value).__name__}")
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _json_body() -> Optional[dict]:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else None


@app.route("/health", methods=["GET"])
def health():
    """Health check endpoint."""
    return jsonify({
        "status": "healthy",
        "service": "audit-service",
        "chain_valid": audit_logger.verify_chain(),
    }), 200


@app.route("/ready", methods=["GET"])
def ready():
    """Readiness check."""
    if audit_logger is None:
        return jsonify({"status": "not_ready"}), 503
    return jsonify({"status": "ready"}), 200


@app.route("/audit/logs", methods=["POST"])
def create_entry():
    """Append an audit entry.

    Request Body:
        {
            "category": "operator-action",
            "severity": "info",
            "action": "Reviewed case file",
            "justification": "Weekly review",
            "operator_id": "op_001",
            "metadata": {...} (optional),
            "contains_personal_data": false (optional)
        }
    """
    data = _json_body()
    if data is None:
        return jsonify({"error": "Request body must be a JSON object"}), 400

    required = ("category", "severity", "action", "justification", "operator_id")
    if not all(isinstance(data.get(name), str) and data.get(name) for name in required):
        return jsonify({"error": "Missing required fields"}), 400

    metadata = data.get("metadata")
    if metadata is not None and not isinstance(metadata, dict):
        return jsonify({"error": "metadata must be an object"}), 400

    try:
        category = AuditCategory(data["category"])
        severity = AuditSeverity(data["severity"])
    except ValueError as e:
        return jsonify({"error": f"Invalid enum value: {str(e)}"}), 400

    try:
        entry = audit_logger.log(
            category=category,
            severity=severity,
            action=data["action"],
            justification=data["justification"],
            operator_id=data["operator_id"],
            metadata=metadata,
            contains_personal_data=bool(data.get("contains_personal_data", False)),
        )
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify(entry.to_dict()), 201


@app.route("/audit/logs", methods=["GET"])
def list_entries():
    """List entries, newest first.

    Query Params:
        category, severity, operator, search: Filters (optional)
        limit: Page size (default 50)
        offset: Entries to skip (default 0)
    """
    try:
        limit = int(request.args.get("limit", DEFAULT_PAGE_SIZE))
        offset = int(request.args.get("offset", 0))
    except ValueError:
        return jsonify({"error": "limit and offset must be integers"}), 400

    try:
        category_str = request.args.get("category")
        severity_str = request.args.get("severity")
        category = AuditCategory(category_str) if category_str else None
        severity = AuditSeverity(severity_str) if severity_str else None
    except ValueError as e:
        return jsonify({"error": f"Invalid enum value: {str(e)}"}), 400

    entries = audit_logger.query(
        category=category,
        severity=severity,
        operator_id=request.args.get("operator") or None,
        search=request.args.get("search") or None,
        limit=limit,
        offset=offset,
    )
    return jsonify({
        "count": len(entries),
        "entries": [e.to_dict() for e in entries],
    }), 200


@app.route("/audit/logs/<entry_id>", methods=["GET"])
def get_entry(entry_id: str):
    entry = audit_logger.get(entry_id)
    if entry is None:
        return jsonify({"error": "Audit entry not found"}), 404
    return jsonify(entry.to_dict()), 200


@app.route("/audit/logs/<entry_id>/<decision>", methods=["POST"])
def retention_decision(entry_id: str, decision: str):
    """Apply a retention or review decision to one entry.

    Decisions: authorize, anonymize, discard, review

    Request Body:
        {
            "operator_id": "op_001",
            "reason": "..." (authorize),
            "retain_until": "2026-01-01T00:00:00Z" (authorize),
            "notes": "..." (review, optional)
        }
    """
    if decision not in ("authorize", "anonymize", "discard", "review"):
        return jsonify({"error": f"Unknown decision: {decision}"}), 404

    data = _json_body()
    if data is None:
        return jsonify({"error": "Request body must be a JSON object"}), 400

    operator_id = data.get("operator_id")
    if not operator_id or not isinstance(operator_id, str):
        return jsonify({"error": "Operator ID is required"}), 401

    if decision == "authorize":
        reason = data.get("reason")
        if not reason or not isinstance(reason, str):
            return jsonify({"error": "Missing required field: reason"}), 400
        try:
            retain_until = _parse_date(data.get("retain_until"))
        except ValueError:
            return jsonify({"error": "retain_until must be an ISO 8601 date"}), 400
        if retain_until is None:
            return jsonify({"error": "Missing required field: retain_until"}), 400
        entry = audit_logger.authorize_retention(entry_id, operator_id, reason, retain_until)
    elif decision == "anonymize":
        entry = audit_logger.anonymize(entry_id, operator_id=operator_id)
    elif decision == "discard":
        entry = audit_logger.discard(entry_id, operator_id=operator_id)
    else:
        notes = data.get("notes")
        if notes is not None and not isinstance(notes, str):
            return jsonify({"error": "notes must be a string"}), 400
        entry = audit_logger.mark_reviewed(entry_id, operator_id, notes)

    if entry is None:
        return jsonify({"error": "Audit entry not found"}), 404

    logger.info(
        "AUDIT_RETENTION_DECISION",
        extra={"entry_id": entry_id, "decision": decision, "operator_id": operator_id}
    )
    return jsonify(entry.to_dict()), 200


@app.route("/audit/export", methods=["GET"])
def export_entries():
    """Download the trail as JSON for external review.

    Query Params:
        operator_id: Requesting operator (required)
        start_date, end_date: ISO 8601 bounds, inclusive (optional)
    """
    operator_id = request.args.get("operator_id")
    if not operator_id:
        return jsonify({"error": "Operator ID is required"}), 401

    try:
        start = _parse_date(request.args.get("start_date"))
        end = _parse_date(request.args.get("end_date"))
    except ValueError:
        return jsonify({"error": "Dates must be ISO 8601"}), 400

    body = audit_logger.export(start, end)

    audit_logger.log_operator_action(
        action="Exported audit logs",
        operator_id=operator_id,
        justification="Operator requested audit log export",
        metadata={
            "start_date": start.isoformat() if start else None,
            "end_date": end.isoformat() if end else None,
        },
    )

    filename = f"audit-logs-{datetime.utcnow().strftime('%Y%m%dT%H%M%S')}.json"
    return Response(
        body,
        status=200,
        mimetype="application/json",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.route("/audit/statistics", methods=["GET"])
def statistics():
    return jsonify(audit_logger.statistics()), 200


@app.route("/audit/verify", methods=["GET"])
def verify_chain():
    """Verify integrity of audit chain."""
    is_valid = audit_logger.verify_chain()
    return jsonify({
        "chain_valid": is_valid,
        "message": "Audit chain integrity verified" if is_valid else "CHAIN INTEGRITY COMPROMISED",
    }), 200 if is_valid else 500


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    port = int(os.getenv("PORT", "8004"))
    app.run(host="0.0.0.0", port=port, debug=False)
