"""API routes for programmatic reportability evaluation."""

import logging
from functools import wraps

from flask import Blueprint, jsonify, request, current_app

from reportability_src.models import PatientRecord

logger = logging.getLogger(__name__)

api_bp = Blueprint("api", __name__)


def check_api_key(f):
    """Decorator to check API key for protected endpoints."""
    @wraps(f)
    def decorated(*args, **kwargs):
        api_key = current_app.config.get("DASHBOARD_API_KEY")

        # If no API key configured, allow all requests (dev mode)
        if not api_key:
            return f(*args, **kwargs)

        # Check key from query param or header
        provided_key = request.args.get("key") or request.headers.get("X-API-Key")

        if provided_key != api_key:
            return jsonify({"error": "Invalid or missing API key"}), 401

        return f(*args, **kwargs)

    return decorated


@api_bp.route("/health", methods=["GET"])
def health():
    """Liveness check with the number of loaded conditions."""
    return jsonify({
        "status": "ok",
        "conditions": current_app.catalog.condition_count,
    })


@api_bp.route("/reportability/conditions", methods=["GET"])
@check_api_key
def list_conditions():
    """Summary of the loaded rule catalog."""
    return jsonify(current_app.catalog.to_dict())


@api_bp.route("/reportability/evaluate", methods=["POST"])
@check_api_key
def evaluate_record():
    """Evaluate a patient record (value sets already resolved).

    Returns the evaluation result plus a one-line summary. Clients that
    re-evaluate on every edit should apply only the response to their most
    recent request.
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"error": "Request body must be a JSON object"}), 400

    record = PatientRecord.from_dict(data)
    result = current_app.evaluator.evaluate(record)
    logger.debug(f"Evaluated record {record.demographics.patient_id}: {result.summary()}")

    payload = result.to_dict()
    payload["summary"] = result.summary()
    return jsonify(payload)
