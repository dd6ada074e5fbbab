# Overview: Flask API routes for held bills; park, list, resume and discard carts.

from flask import Blueprint, jsonify, request

from ..services import held_bill_service
from ..services.errors import BillingError
from .responses import error_response, internal_error


held_bills_bp = Blueprint("held_bills", __name__, url_prefix="/api/bills")


@held_bills_bp.get("/held")
def list_held_bills_route():
    """Active holds for a store (not resumed, not expired)."""
    store_id = request.args.get("store_id", type=int)
    if not store_id:
        return jsonify({"error": "store_id required"}), 400

    held = held_bill_service.list_active_held_bills(store_id)
    return jsonify({"held_bills": [h.to_dict() for h in held]}), 200


@held_bills_bp.post("/hold")
def hold_bill_route():
    """
    Park a cart.

    Body: store_id, cart ({"items": [{product_id, quantity}, ...], ...}),
    customer_name, notes, cashier_user_id.
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"error": "Invalid JSON payload"}), 400

    try:
        store_id = int(data.get("store_id") or 0)
        cashier_user_id = data.get("cashier_user_id")
        if cashier_user_id is not None:
            cashier_user_id = int(cashier_user_id)
    except (TypeError, ValueError):
        return jsonify({"error": "store_id and cashier_user_id must be integers"}), 400
    if not store_id:
        return jsonify({"error": "store_id required"}), 400
    if "cart" not in data:
        return jsonify({"error": "cart required"}), 400

    try:
        held = held_bill_service.hold_bill(
            store_id,
            data["cart"],
            customer_name=data.get("customer_name"),
            notes=data.get("notes"),
            cashier_user_id=cashier_user_id,
        )
        return jsonify({"held_bill": held.to_dict(include_payload=True)}), 201

    except BillingError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to hold bill")


@held_bills_bp.get("/hold/<hold_reference>")
def get_held_bill_route(hold_reference: str):
    """Explicit fetch; expired holds are still returned."""
    try:
        held = held_bill_service.get_held_bill(hold_reference)
        return jsonify({"held_bill": held.to_dict(include_payload=True)}), 200
    except BillingError as e:
        return error_response(e)


@held_bills_bp.post("/hold/<hold_reference>/resume")
def resume_held_bill_route(hold_reference: str):
    try:
        cart = held_bill_service.resume_held_bill(hold_reference)
        return jsonify({"hold_reference": hold_reference, "cart": cart}), 200

    except BillingError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to resume held bill")


@held_bills_bp.delete("/hold/<hold_reference>")
def delete_held_bill_route(hold_reference: str):
    try:
        held_bill_service.delete_held_bill(hold_reference)
        return "", 204

    except BillingError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to delete held bill")
