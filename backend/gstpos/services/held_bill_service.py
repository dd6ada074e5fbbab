# Overview: Held-bill manager; parks, lists, resumes and expires carts mid-checkout.

from __future__ import annotations

from datetime import datetime

from flask import current_app

from ..extensions import db
from ..models import HeldBill, Product, Store
from ..validation import MAX_NOTES_LENGTH, _coerce_int, parse_cart_lines
from gstpos.time_utils import hours_from, utcnow
from .errors import ConflictError, NotFoundError, ProductNotFoundError, ValidationError
from .settings_service import get_store_settings


def _snapshot_subtotal(store_id: int, payload: dict) -> tuple[int, int]:
    lines = parse_cart_lines(payload.get("items"))
    product_ids = {line.product_id for line in lines}
    products = {
        p.id: p
        for p in db.session.query(Product)
        .filter(Product.id.in_(product_ids), Product.store_id == store_id)
        .all()
    }
    subtotal = 0
    for line in lines:
        product = products.get(line.product_id)
        if product is None:
            raise ProductNotFoundError(line.product_id)
        subtotal += product.selling_price_cents * line.quantity
    return subtotal, sum(line.quantity for line in lines)


def hold_bill(
    store_id: int,
    cart_payload: dict,
    customer_name: str | None = None,
    notes: str | None = None,
    cashier_user_id: int | None = None,
) -> HeldBill:
    """
    Park a cart for later.

    Stock and loyalty are untouched. The subtotal stored with the hold is an
    indicative snapshot at current selling prices; the bill is re-priced on
    completion.
    """
    if not isinstance(cart_payload, dict):
        raise ValidationError("cart must be an object")
    if notes is not None and len(notes) > MAX_NOTES_LENGTH:
        raise ValidationError(f"notes exceeds max length {MAX_NOTES_LENGTH}")

    store = db.session.get(Store, store_id)
    if not store:
        raise NotFoundError(f"Store {store_id} not found", details={"store_id": store_id})

    subtotal, item_count = _snapshot_subtotal(store_id, cart_payload)
    customer_id = cart_payload.get("customer_id")
    if customer_id is not None:
        customer_id = _coerce_int(customer_id, "customer_id")

    settings = get_store_settings(store_id)
    now = utcnow()

    held = HeldBill(
        store_id=store_id,
        cashier_user_id=cashier_user_id,
        customer_id=customer_id,
        customer_name=customer_name or cart_payload.get("customer_name"),
        notes=notes,
        cart_payload=cart_payload,
        subtotal_cents=subtotal,
        item_count=item_count,
        held_at=now,
        expires_at=hours_from(now, settings.held_bill_ttl_hours),
    )
    db.session.add(held)
    db.session.commit()

    current_app.logger.info(
        "Held bill %s for store %s (%s items)", held.hold_reference, store_id, item_count
    )
    return held


def list_active_held_bills(store_id: int, now: datetime | None = None) -> list[HeldBill]:
    """Holds not yet resumed and not expired, oldest first."""
    now = now or utcnow()
    return (
        db.session.query(HeldBill)
        .filter(
            HeldBill.store_id == store_id,
            HeldBill.resumed_at.is_(None),
            HeldBill.expires_at > now,
        )
        .order_by(HeldBill.held_at.asc(), HeldBill.id.asc())
        .all()
    )


def get_held_bill(hold_reference: str) -> HeldBill:
    held = db.session.query(HeldBill).filter_by(hold_reference=hold_reference).first()
    if not held:
        raise NotFoundError("Held bill not found", details={"hold_reference": hold_reference})
    return held


def resume_held_bill(hold_reference: str) -> dict:
    """
    Mark a hold resumed and hand back its cart.

    Expired holds can still be resumed by reference; they only drop out of
    the active list. The returned payload is the cart as it was held.
    """
    held = get_held_bill(hold_reference)
    if held.resumed_at is not None:
        raise ConflictError(
            "Held bill already resumed",
            details={"hold_reference": hold_reference},
        )

    held.resumed_at = utcnow()
    payload = held.cart_payload
    db.session.commit()
    return payload


def delete_held_bill(hold_reference: str) -> None:
    held = get_held_bill(hold_reference)
    db.session.delete(held)
    db.session.commit()


def purge_expired_held_bills(store_id: int | None = None, now: datetime | None = None) -> int:
    """Delete expired holds; returns the count."""
    now = now or utcnow()
    query = db.session.query(HeldBill).filter(HeldBill.expires_at <= now)
    if store_id is not None:
        query = query.filter(HeldBill.store_id == store_id)
    removed = query.delete(synchronize_session=False)
    db.session.commit()
    return removed
