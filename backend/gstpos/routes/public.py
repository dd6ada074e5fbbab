# Overview: Public receipt lookup by non-guessable public id; no internal ids exposed.

from flask import Blueprint, jsonify

from ..services import bill_service
from ..services.errors import BillingError
from .responses import error_response


public_bp = Blueprint("public", __name__, url_prefix="/api/public")


@public_bp.get("/bills/<public_id>")
def public_receipt_route(public_id: str):
    try:
        receipt = bill_service.get_bill_by_public_id(public_id)
        return jsonify({"receipt": receipt}), 200
    except BillingError as e:
        return error_response(e)
