# Overview: Flask API routes for bills; parses input and returns JSON responses.

# backend/gstpos/routes/bills.py
"""Bill API routes: checkout, lookup, listing and cancellation."""

from flask import Blueprint, current_app, jsonify, request

from ..services import bill_service
from ..services.errors import BillingError
from gstpos.time_utils import parse_iso_datetime
from .responses import error_response, internal_error


bills_bp = Blueprint("bills", __name__, url_prefix="/api/bills")


def _optional_int(value, field: str):
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError(f"{field} must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValueError(f"{field} must be an integer")


def _optional_flag(value, field: str):
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    raise ValueError(f"{field} must be a boolean")


@bills_bp.post("")
def create_bill_route():
    """
    Complete a checkout.

    Body: store_id, cashier_user_id (optional) and the cart: items,
    payment_mode, payments (split), customer, discounts, loyalty points.
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"error": "Invalid JSON payload"}), 400

    try:
        store_id = _optional_int(data.get("store_id"), "store_id")
        cashier_user_id = _optional_int(data.get("cashier_user_id"), "cashier_user_id")
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    if not store_id:
        return jsonify({"error": "store_id required"}), 400

    try:
        bill = bill_service.create_bill(store_id, data, cashier_user_id=cashier_user_id)
        return jsonify({"bill": bill.to_dict(include_lines=True)}), 201

    except BillingError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to create bill")


@bills_bp.get("")
def list_bills_route():
    """
    List bills for a store, newest first.

    Query params:
    - store_id: required
    - status: completed / cancelled / ...
    - start, end: ISO-8601 datetimes (inclusive)
    - limit: default 50, capped by BILL_LIST_MAX_LIMIT
    - offset: default 0
    """
    store_id = request.args.get("store_id", type=int)
    if not store_id:
        return jsonify({"error": "store_id required"}), 400

    limit = request.args.get("limit", 50, type=int)
    offset = request.args.get("offset", 0, type=int)
    limit = min(limit, current_app.config["BILL_LIST_MAX_LIMIT"])

    try:
        start = parse_iso_datetime(request.args.get("start"))
        end = parse_iso_datetime(request.args.get("end"))
    except ValueError:
        return jsonify({"error": "start/end must be ISO-8601 datetimes"}), 400

    try:
        bills = bill_service.list_bills(
            store_id,
            status=request.args.get("status") or None,
            start=start,
            end=end,
            limit=limit,
            offset=offset,
        )
        return jsonify({
            "bills": [bill.to_dict() for bill in bills],
            "limit": limit,
            "offset": offset,
        }), 200

    except BillingError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to list bills")


@bills_bp.get("/<int:bill_id>")
def get_bill_route(bill_id: int):
    try:
        bill = bill_service.get_bill(bill_id)
        return jsonify({"bill": bill.to_dict(include_lines=True)}), 200
    except BillingError as e:
        return error_response(e)


@bills_bp.post("/<int:bill_id>/cancel")
def cancel_bill_route(bill_id: int):
    """
    Cancel a completed bill.

    Body: reason (required), user_id, restock, reverse_loyalty. Omitted flags
    fall back to the store's billing settings.
    """
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return jsonify({"error": "Invalid JSON payload"}), 400

    reason = data.get("reason")
    if not reason:
        return jsonify({"error": "reason required"}), 400

    try:
        user_id = _optional_int(data.get("user_id"), "user_id")
        restock = _optional_flag(data.get("restock"), "restock")
        reverse_loyalty = _optional_flag(data.get("reverse_loyalty"), "reverse_loyalty")
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    try:
        bill = bill_service.cancel_bill(
            bill_id,
            user_id,
            reason,
            restock=restock,
            reverse_loyalty=reverse_loyalty,
        )
        return jsonify({"bill": bill.to_dict()}), 200

    except BillingError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to cancel bill")
