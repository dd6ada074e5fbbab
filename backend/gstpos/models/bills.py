from __future__ import annotations

import uuid

from ..extensions import db
from gstpos.time_utils import to_utc_z


BILL_STATUS_DRAFT = "draft"
BILL_STATUS_COMPLETED = "completed"
BILL_STATUS_CANCELLED = "cancelled"
BILL_STATUS_HOLD = "hold"
BILL_STATUS_REFUNDED = "refunded"

BILL_STATUSES = (
    BILL_STATUS_DRAFT,
    BILL_STATUS_COMPLETED,
    BILL_STATUS_CANCELLED,
    BILL_STATUS_HOLD,
    BILL_STATUS_REFUNDED,
)


def _new_public_id() -> str:
    return uuid.uuid4().hex


class Bill(db.Model):
    """
    Bill (tax invoice) header.

    WHY: A completed bill is an immutable financial record. It is written in one
    transaction together with its items, payments, stock decrements and the
    customer's loyalty update (see bill_service.create_bill).

    IDENTIFIERS:
    - bill_number: human-readable, allocated from document_sequences per store
    - public_id: random, non-sequential; used for shareable receipt links so
      the internal id cannot be enumerated

    AMOUNTS: all *_cents columns are paise. grand_total_cents already includes
    round_off_cents:
        grand_total = subtotal - item_discount - bill_discount - loyalty_discount
                      + tax_total + round_off
    """
    __tablename__ = "bills"
    __table_args__ = (
        db.UniqueConstraint("store_id", "bill_number", name="uq_bills_store_number"),
        db.UniqueConstraint("public_id", name="uq_bills_public_id"),
        db.Index("ix_bills_store_status_created", "store_id", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)

    bill_number = db.Column(db.String(64), nullable=False)
    public_id = db.Column(db.String(32), nullable=False, default=_new_public_id)

    status = db.Column(db.String(16), nullable=False, default=BILL_STATUS_DRAFT, index=True)

    # Customer (optional; walk-in bills keep only name/phone)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    customer_name = db.Column(db.String(255), nullable=True)
    customer_phone = db.Column(db.String(32), nullable=True)

    cashier_user_id = db.Column(db.Integer, nullable=True, index=True)

    is_inter_state = db.Column(db.Boolean, nullable=False, default=False)

    # Totals (paise)
    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    item_discount_cents = db.Column(db.Integer, nullable=False, default=0)
    bill_discount_cents = db.Column(db.Integer, nullable=False, default=0)
    bill_discount_bps = db.Column(db.Integer, nullable=False, default=0)
    taxable_cents = db.Column(db.Integer, nullable=False, default=0)
    cgst_cents = db.Column(db.Integer, nullable=False, default=0)
    sgst_cents = db.Column(db.Integer, nullable=False, default=0)
    igst_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_total_cents = db.Column(db.Integer, nullable=False, default=0)
    round_off_cents = db.Column(db.Integer, nullable=False, default=0)
    grand_total_cents = db.Column(db.Integer, nullable=False, default=0)

    # Loyalty
    loyalty_points_redeemed = db.Column(db.Integer, nullable=False, default=0)
    loyalty_discount_cents = db.Column(db.Integer, nullable=False, default=0)
    loyalty_points_earned = db.Column(db.Integer, nullable=False, default=0)

    payment_mode = db.Column(db.String(16), nullable=False)
    notes = db.Column(db.Text, nullable=True)

    # Timestamps
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Cancellation audit trail
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_by_user_id = db.Column(db.Integer, nullable=True)
    cancellation_reason = db.Column(db.String(255), nullable=True)
    restocked_on_cancel = db.Column(db.Boolean, nullable=False, default=False)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    store = db.relationship("Store", backref=db.backref("bills", lazy=True))
    customer = db.relationship("Customer", backref=db.backref("bills", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_lines: bool = False) -> dict:
        data = {
            "id": self.id,
            "store_id": self.store_id,
            "bill_number": self.bill_number,
            "public_id": self.public_id,
            "status": self.status,
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "cashier_user_id": self.cashier_user_id,
            "is_inter_state": self.is_inter_state,
            "subtotal_cents": self.subtotal_cents,
            "item_discount_cents": self.item_discount_cents,
            "bill_discount_cents": self.bill_discount_cents,
            "bill_discount_bps": self.bill_discount_bps,
            "taxable_cents": self.taxable_cents,
            "cgst_cents": self.cgst_cents,
            "sgst_cents": self.sgst_cents,
            "igst_cents": self.igst_cents,
            "tax_total_cents": self.tax_total_cents,
            "round_off_cents": self.round_off_cents,
            "grand_total_cents": self.grand_total_cents,
            "loyalty_points_redeemed": self.loyalty_points_redeemed,
            "loyalty_discount_cents": self.loyalty_discount_cents,
            "loyalty_points_earned": self.loyalty_points_earned,
            "payment_mode": self.payment_mode,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "completed_at": to_utc_z(self.completed_at) if self.completed_at else None,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "cancelled_by_user_id": self.cancelled_by_user_id,
            "cancellation_reason": self.cancellation_reason,
            "restocked_on_cancel": self.restocked_on_cancel,
            "version_id": self.version_id,
        }
        if include_lines:
            data["items"] = [item.to_dict() for item in self.items]
            data["payments"] = [payment.to_dict() for payment in self.payments]
        return data

    def to_receipt_dict(self) -> dict:
        """
        Customer-facing receipt view.

        Omits the internal id, cashier, customer id and product ids; the
        public_id is the only handle.
        """
        store = self.store
        return {
            "public_id": self.public_id,
            "bill_number": self.bill_number,
            "status": self.status,
            "store": {
                "name": store.name if store else None,
                "gstin": store.gstin if store else None,
                "address": store.address if store else None,
            },
            "customer_name": self.customer_name,
            "is_inter_state": self.is_inter_state,
            "completed_at": to_utc_z(self.completed_at) if self.completed_at else None,
            "items": [item.to_receipt_dict() for item in self.items],
            "payments": [
                {"mode": p.mode, "amount_cents": p.amount_cents, "change_cents": p.change_cents}
                for p in self.payments
            ],
            "subtotal_cents": self.subtotal_cents,
            "item_discount_cents": self.item_discount_cents,
            "bill_discount_cents": self.bill_discount_cents,
            "loyalty_discount_cents": self.loyalty_discount_cents,
            "taxable_cents": self.taxable_cents,
            "cgst_cents": self.cgst_cents,
            "sgst_cents": self.sgst_cents,
            "igst_cents": self.igst_cents,
            "tax_total_cents": self.tax_total_cents,
            "round_off_cents": self.round_off_cents,
            "grand_total_cents": self.grand_total_cents,
        }


class BillItem(db.Model):
    """
    Line item of a bill.

    SNAPSHOT: product_name/product_sku/hsn_code/unit/mrp/selling price are
    copied from the product when the bill is created. product_id is kept for
    reporting only; historical display never joins back to products.
    """
    __tablename__ = "bill_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    bill_id = db.Column(db.Integer, db.ForeignKey("bills.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    line_number = db.Column(db.Integer, nullable=False)

    # Product snapshot
    product_name = db.Column(db.String(255), nullable=False)
    product_sku = db.Column(db.String(64), nullable=False)
    hsn_code = db.Column(db.String(16), nullable=True)
    unit = db.Column(db.String(16), nullable=False)
    mrp_cents = db.Column(db.Integer, nullable=True)
    selling_price_cents = db.Column(db.Integer, nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    discount_bps = db.Column(db.Integer, nullable=False, default=0)
    gst_rate_bps = db.Column(db.Integer, nullable=False, default=0)

    # Calculated amounts (paise); each column sums to the bill header
    line_total_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    taxable_cents = db.Column(db.Integer, nullable=False)
    cgst_cents = db.Column(db.Integer, nullable=False, default=0)
    sgst_cents = db.Column(db.Integer, nullable=False, default=0)
    igst_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False)

    # Share of bill-level + loyalty discount and round-off, and what the line finally costs
    apportioned_discount_cents = db.Column(db.Integer, nullable=False, default=0)
    net_total_cents = db.Column(db.Integer, nullable=False)

    bill = db.relationship(
        "Bill",
        backref=db.backref("items", lazy=True, order_by="BillItem.line_number"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "bill_id": self.bill_id,
            "product_id": self.product_id,
            "line_number": self.line_number,
            "product_name": self.product_name,
            "product_sku": self.product_sku,
            "hsn_code": self.hsn_code,
            "unit": self.unit,
            "mrp_cents": self.mrp_cents,
            "selling_price_cents": self.selling_price_cents,
            "quantity": self.quantity,
            "discount_bps": self.discount_bps,
            "gst_rate_bps": self.gst_rate_bps,
            "line_total_cents": self.line_total_cents,
            "discount_cents": self.discount_cents,
            "taxable_cents": self.taxable_cents,
            "cgst_cents": self.cgst_cents,
            "sgst_cents": self.sgst_cents,
            "igst_cents": self.igst_cents,
            "total_cents": self.total_cents,
            "apportioned_discount_cents": self.apportioned_discount_cents,
            "net_total_cents": self.net_total_cents,
        }

    def to_receipt_dict(self) -> dict:
        data = self.to_dict()
        for key in ("id", "bill_id", "product_id"):
            data.pop(key)
        return data


class BillPayment(db.Model):
    """
    Payment leg of a bill.

    Single-mode bills (cash/upi/card/wallet) get one row for the grand total;
    split bills get one row per leg. Cash legs may record the amount tendered
    and the change handed back.
    """
    __tablename__ = "bill_payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    bill_id = db.Column(db.Integer, db.ForeignKey("bills.id"), nullable=False, index=True)

    mode = db.Column(db.String(16), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    tendered_cents = db.Column(db.Integer, nullable=True)
    change_cents = db.Column(db.Integer, nullable=False, default=0)
    reference_number = db.Column(db.String(128), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    bill = db.relationship("Bill", backref=db.backref("payments", lazy=True, order_by="BillPayment.id"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "bill_id": self.bill_id,
            "mode": self.mode,
            "amount_cents": self.amount_cents,
            "tendered_cents": self.tendered_cents,
            "change_cents": self.change_cents,
            "reference_number": self.reference_number,
            "created_at": to_utc_z(self.created_at),
        }


class HeldBill(db.Model):
    """
    A cart parked mid-checkout.

    Holding never touches stock or loyalty; those only happen when a bill is
    completed. Active holds are those not resumed and not past expires_at.
    """
    __tablename__ = "held_bills"
    __table_args__ = (
        db.UniqueConstraint("hold_reference", name="uq_held_bills_reference"),
        db.Index("ix_held_bills_store_active", "store_id", "resumed_at", "expires_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    hold_reference = db.Column(db.String(32), nullable=False, default=_new_public_id)

    cashier_user_id = db.Column(db.Integer, nullable=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True)
    customer_name = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    cart_payload = db.Column(db.JSON, nullable=False)
    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    item_count = db.Column(db.Integer, nullable=False, default=0)

    held_at = db.Column(db.DateTime(timezone=True), nullable=False)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    resumed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    store = db.relationship("Store", backref=db.backref("held_bills", lazy=True))

    def to_dict(self, include_payload: bool = False) -> dict:
        data = {
            "hold_reference": self.hold_reference,
            "store_id": self.store_id,
            "cashier_user_id": self.cashier_user_id,
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "notes": self.notes,
            "subtotal_cents": self.subtotal_cents,
            "item_count": self.item_count,
            "held_at": to_utc_z(self.held_at),
            "expires_at": to_utc_z(self.expires_at),
            "resumed_at": to_utc_z(self.resumed_at) if self.resumed_at else None,
        }
        if include_payload:
            data["cart"] = self.cart_payload
        return data
