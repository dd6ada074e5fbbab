# Overview: Shared JSON error responses for the billing blueprints.

from flask import current_app, jsonify

from ..services.errors import BillingError


def error_response(exc: BillingError):
    """Translate a service error into {"error", "details"} with its status code."""
    if exc.status_code >= 500:
        current_app.logger.error("Billing request failed: %s", exc)
    return jsonify({"error": exc.public_message, "details": exc.details}), exc.status_code


def internal_error(message: str):
    current_app.logger.exception(message)
    return jsonify({"error": "Internal server error"}), 500
