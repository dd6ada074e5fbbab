# Overview: Service-layer operations for bills; the checkout transaction and bill lifecycle.

"""
Bill Service - cart in, tax invoice out

WHY: A bill touches stock, payments and customer loyalty. All of it is written
in ONE transaction so that readers never see a bill without its items, stock
that was decremented for a bill that failed, or loyalty moved for nothing.

FLOW (create_bill):
1. parse_cart()        request validation, before any write
2. BEGIN (IMMEDIATE)   writer lock on SQLite, row locks elsewhere
3. products            re-fetched, stock guard re-run on summed quantities
4. tax + totals        tax_service per line, bill_totals for the bill
5. writes              header, item snapshots, atomic stock decrements,
                       payments, customer stats + loyalty ledger
6. COMMIT              or full rollback

Bill creation is never retried automatically: without an idempotency key a
retried financial write could double-bill.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Bill, BillItem, BillPayment, Product, Store
from ..models.bills import BILL_STATUS_CANCELLED, BILL_STATUS_COMPLETED, BILL_STATUSES
from ..validation import Cart, SinglePayment, SplitPayment, PAYMENT_CASH, parse_cart
from gstpos.time_utils import utcnow
from . import loyalty_service, stock_service
from .bill_totals import BillTotals, aggregate_bill, apportion
from .concurrency import begin_write_transaction, lock_for_update, run_with_retry
from .document_service import next_bill_number
from .errors import (
    BillingError,
    ConflictError,
    NotFoundError,
    ProductNotFoundError,
    SplitMismatchError,
    TransactionError,
    ValidationError,
)
from .settings_service import StoreSettings, get_store_settings
from .tax_service import LineTax, bps_to_percent, calculate_line_tax, percent_to_bps, round_cents


# Split legs may differ from the grand total by at most one paisa
SPLIT_TOLERANCE_CENTS = 1


@dataclass(frozen=True)
class PricedLine:
    product: Product
    quantity: int
    discount_percent: Decimal
    tax: LineTax


def _load_products(store_id: int, cart: Cart) -> dict[int, Product]:
    product_ids = sorted({line.product_id for line in cart.items})
    query = (
        db.session.query(Product)
        .filter(Product.id.in_(product_ids), Product.store_id == store_id)
        .populate_existing()
    )
    products = lock_for_update(query).all()
    by_id = {p.id: p for p in products}
    for product_id in product_ids:
        product = by_id.get(product_id)
        if product is None or not product.is_active:
            raise ProductNotFoundError(product_id)
    return by_id


def _guard_stock(cart: Cart, products: dict[int, Product]) -> None:
    requested: dict[int, int] = {}
    for line in cart.items:
        requested[line.product_id] = requested.get(line.product_id, 0) + line.quantity
    for product_id, quantity in requested.items():
        stock_service.check_stock(products[product_id], quantity)


def price_cart(cart: Cart, products: dict[int, Product]) -> list[PricedLine]:
    """Run the tax calculator for every cart line, in paise."""
    priced = []
    for line in cart.items:
        product = products[line.product_id]
        tax = calculate_line_tax(
            product.selling_price_cents,
            line.quantity,
            line.discount_percent,
            bps_to_percent(product.gst_rate_bps),
            inter_state=cart.is_inter_state,
        )
        priced.append(PricedLine(product, line.quantity, line.discount_percent, tax))
    return priced


def _check_payment(cart: Cart, grand_total_cents: int) -> None:
    payment = cart.payment
    if isinstance(payment, SplitPayment):
        if abs(payment.total_cents - grand_total_cents) > SPLIT_TOLERANCE_CENTS:
            raise SplitMismatchError(
                "Split payments do not add up to the bill total",
                details={
                    "grand_total_cents": grand_total_cents,
                    "payments_total_cents": payment.total_cents,
                    "difference_cents": payment.total_cents - grand_total_cents,
                },
            )
    elif payment.tendered_cents is not None and payment.tendered_cents < grand_total_cents:
        raise ValidationError(
            "Cash tendered is less than the bill total",
            details={
                "grand_total_cents": grand_total_cents,
                "tendered_cents": payment.tendered_cents,
            },
        )


def _add_payments(bill: Bill, cart: Cart) -> None:
    payment = cart.payment
    if isinstance(payment, SinglePayment):
        change = 0
        if payment.mode == PAYMENT_CASH and payment.tendered_cents is not None:
            change = payment.tendered_cents - bill.grand_total_cents
        db.session.add(BillPayment(
            bill_id=bill.id,
            mode=payment.mode,
            amount_cents=bill.grand_total_cents,
            tendered_cents=payment.tendered_cents,
            change_cents=change,
            reference_number=payment.reference,
        ))
        return

    for leg in payment.legs:
        db.session.add(BillPayment(
            bill_id=bill.id,
            mode=leg.mode,
            amount_cents=leg.amount_cents,
            reference_number=leg.reference,
        ))


def _add_items(bill: Bill, priced: list[PricedLine]) -> None:
    """
    Write item snapshots whose columns foot to the bill header.

    Header figures are split over the full-precision line amounts by largest
    remainder, so item taxable/GST columns sum to the header columns and
    item net totals sum to the grand total. apportioned_discount_cents is
    total minus net and goes negative when round-off adds to a line.
    """
    taxable = apportion(bill.taxable_cents, [p.tax.taxable_amount for p in priced])
    cgst = apportion(bill.cgst_cents, [p.tax.cgst for p in priced])
    sgst = apportion(bill.sgst_cents, [p.tax.sgst for p in priced])
    igst = apportion(bill.igst_cents, [p.tax.igst for p in priced])
    net = apportion(bill.grand_total_cents, [p.tax.total_amount for p in priced])

    for index, line in enumerate(priced):
        product = line.product
        line_total_cents = round_cents(line.tax.base_amount)
        total_cents = taxable[index] + cgst[index] + sgst[index] + igst[index]
        db.session.add(BillItem(
            bill_id=bill.id,
            product_id=product.id,
            line_number=index + 1,
            product_name=product.name,
            product_sku=product.sku,
            hsn_code=product.hsn_code,
            unit=product.unit,
            mrp_cents=product.mrp_cents,
            selling_price_cents=product.selling_price_cents,
            quantity=line.quantity,
            discount_bps=percent_to_bps(line.discount_percent),
            gst_rate_bps=product.gst_rate_bps,
            line_total_cents=line_total_cents,
            discount_cents=line_total_cents - taxable[index],
            taxable_cents=taxable[index],
            cgst_cents=cgst[index],
            sgst_cents=sgst[index],
            igst_cents=igst[index],
            total_cents=total_cents,
            apportioned_discount_cents=total_cents - net[index],
            net_total_cents=net[index],
        ))


def _build_bill(
    store_id: int,
    cart: Cart,
    totals: BillTotals,
    settings: StoreSettings,
    cashier_user_id: int | None,
    customer_name: str | None,
) -> Bill:
    now = utcnow()
    subtotal_cents = round_cents(totals.subtotal)
    taxable_cents = round_cents(totals.taxable_total)
    cgst_cents = round_cents(totals.cgst_total)
    sgst_cents = round_cents(totals.sgst_total)
    igst_cents = round_cents(totals.igst_total)
    tax_total_cents = cgst_cents + sgst_cents + igst_cents
    bill_discount_cents = round_cents(totals.bill_discount)
    loyalty_discount_cents = round_cents(totals.loyalty_discount)
    # Printed columns foot: taxable + tax - discounts + round_off = grand total
    round_off_cents = totals.grand_total_cents - (
        taxable_cents + tax_total_cents - bill_discount_cents - loyalty_discount_cents
    )
    return Bill(
        store_id=store_id,
        bill_number=next_bill_number(store_id=store_id, prefix=settings.bill_prefix),
        status=BILL_STATUS_COMPLETED,
        customer_id=cart.customer_id,
        customer_name=customer_name,
        customer_phone=cart.customer_phone,
        cashier_user_id=cashier_user_id,
        is_inter_state=cart.is_inter_state,
        subtotal_cents=subtotal_cents,
        item_discount_cents=subtotal_cents - taxable_cents,
        bill_discount_cents=bill_discount_cents,
        bill_discount_bps=percent_to_bps(totals.bill_discount_percent),
        taxable_cents=taxable_cents,
        cgst_cents=cgst_cents,
        sgst_cents=sgst_cents,
        igst_cents=igst_cents,
        tax_total_cents=tax_total_cents,
        round_off_cents=round_off_cents,
        grand_total_cents=totals.grand_total_cents,
        loyalty_points_redeemed=cart.loyalty_points_redeemed,
        loyalty_discount_cents=loyalty_discount_cents,
        payment_mode=cart.payment_mode,
        notes=cart.notes,
        created_at=now,
        completed_at=now,
    )


def _create_bill_locked(store_id: int, cart: Cart, cashier_user_id: int | None) -> Bill:
    store = db.session.get(Store, store_id)
    if not store:
        raise NotFoundError(f"Store {store_id} not found", details={"store_id": store_id})
    settings = get_store_settings(store_id)

    products = _load_products(store_id, cart)
    _guard_stock(cart, products)

    customer = None
    customer_name = cart.customer_name
    if cart.customer_id is not None:
        customer = loyalty_service.get_customer(cart.customer_id, store_id=store_id)
        loyalty_service.check_redeemable(customer, cart.loyalty_points_redeemed)
        customer_name = customer_name or customer.name

    priced = price_cart(cart, products)
    totals = aggregate_bill(
        [p.tax for p in priced],
        bill_discount_cents=cart.bill_discount_cents,
        bill_discount_percent=cart.bill_discount_percent,
        loyalty_discount_cents=cart.loyalty_points_redeemed * settings.loyalty_point_value_cents,
        rounding_unit_cents=settings.rounding_unit_cents,
    )
    if totals.discount_exceeds_total and not settings.allow_excess_discount:
        raise ValidationError(
            "Discounts exceed the bill total",
            details={
                "payable_before_discount_cents": round_cents(
                    totals.subtotal - totals.item_discount_total + totals.tax_total
                ),
                "bill_discount_cents": round_cents(totals.bill_discount),
                "loyalty_discount_cents": round_cents(totals.loyalty_discount),
            },
        )
    _check_payment(cart, totals.grand_total_cents)

    bill = _build_bill(store_id, cart, totals, settings, cashier_user_id, customer_name)
    if customer is not None:
        bill.loyalty_points_earned = loyalty_service.points_earned(
            bill.grand_total_cents, settings.loyalty_earn_points_per_100
        )
    db.session.add(bill)
    db.session.flush()

    _add_items(bill, priced)

    for line in cart.items:
        stock_service.decrement_stock(products[line.product_id], line.quantity)

    _add_payments(bill, cart)

    if customer is not None:
        loyalty_service.apply_bill_to_customer(
            customer_id=customer.id,
            bill_id=bill.id,
            grand_total_cents=bill.grand_total_cents,
            points_redeemed=cart.loyalty_points_redeemed,
            points_earned_count=bill.loyalty_points_earned,
            user_id=cashier_user_id,
        )

    db.session.flush()
    return bill


def create_bill(store_id: int, cart: Cart | dict, cashier_user_id: int | None = None) -> Bill:
    """
    Turn a cart into a completed bill, atomically.

    Accepts a parsed Cart or the raw request dict. Raises ValidationError,
    NotFoundError/ProductNotFoundError, InsufficientStockError,
    SplitMismatchError (all with details, nothing written) or TransactionError
    when the database fails (rolled back, logged).
    """
    if not isinstance(cart, Cart):
        cart = parse_cart(cart)

    try:
        begin_write_transaction()
        bill = _create_bill_locked(store_id, cart, cashier_user_id)
        db.session.commit()
    except BillingError:
        db.session.rollback()
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Bill commit failed for store %s", store_id)
        raise TransactionError("Bill transaction failed") from exc

    current_app.logger.info(
        "Bill %s completed: store=%s total_cents=%s items=%s",
        bill.bill_number, store_id, bill.grand_total_cents, len(cart.items),
    )
    return bill


def get_bill(bill_id: int, store_id: int | None = None) -> Bill:
    query = db.session.query(Bill).filter_by(id=bill_id)
    if store_id is not None:
        query = query.filter_by(store_id=store_id)
    bill = query.first()
    if not bill:
        raise NotFoundError("Bill not found", details={"bill_id": bill_id})
    return bill


def get_bill_by_public_id(public_id: str) -> dict:
    """Receipt view for shareable links; see Bill.to_receipt_dict."""
    bill = None
    if public_id:
        bill = db.session.query(Bill).filter_by(public_id=public_id).first()
    if not bill:
        raise NotFoundError("Bill not found")
    return bill.to_receipt_dict()


def list_bills(
    store_id: int,
    *,
    status: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[Bill]:
    if status is not None and status not in BILL_STATUSES:
        raise ValidationError(f"Invalid status: {status}. Must be one of {list(BILL_STATUSES)}")
    if limit <= 0 or offset < 0:
        raise ValidationError("limit must be > 0 and offset >= 0")

    query = db.session.query(Bill).filter(Bill.store_id == store_id)
    if status:
        query = query.filter(Bill.status == status)
    if start:
        query = query.filter(Bill.created_at >= start)
    if end:
        query = query.filter(Bill.created_at <= end)
    return (
        query.order_by(Bill.created_at.desc(), Bill.id.desc())
        .limit(limit)
        .offset(offset)
        .all()
    )


def cancel_bill(
    bill_id: int,
    user_id: int | None,
    reason: str,
    *,
    restock: bool | None = None,
    reverse_loyalty: bool | None = None,
) -> Bill:
    """
    Cancel a completed bill.

    Status-only by default: items, payments and stock stay as they were.
    restock / reverse_loyalty default to the store settings
    billing.restock_on_cancel / billing.reverse_loyalty_on_cancel.
    """
    if not reason or not str(reason).strip():
        raise ValidationError("reason required")
    reason = str(reason).strip()[:255]

    def _op():
        begin_write_transaction()
        bill = lock_for_update(db.session.query(Bill).filter_by(id=bill_id)).first()
        if not bill:
            raise NotFoundError("Bill not found", details={"bill_id": bill_id})
        if bill.status == BILL_STATUS_CANCELLED:
            raise ConflictError("Bill already cancelled")
        if bill.status != BILL_STATUS_COMPLETED:
            raise ConflictError(f"Cannot cancel bill with status {bill.status}")

        settings = get_store_settings(bill.store_id)
        do_restock = settings.restock_on_cancel if restock is None else restock
        do_reverse = settings.reverse_loyalty_on_cancel if reverse_loyalty is None else reverse_loyalty

        if do_restock:
            for item in bill.items:
                stock_service.restock(item.product_id, item.quantity)

        if do_reverse and bill.customer_id:
            loyalty_service.reverse_bill_for_customer(
                customer_id=bill.customer_id,
                bill_id=bill.id,
                grand_total_cents=bill.grand_total_cents,
                points_redeemed=bill.loyalty_points_redeemed,
                points_earned_count=bill.loyalty_points_earned,
                user_id=user_id,
                reason=reason,
            )

        bill.status = BILL_STATUS_CANCELLED
        bill.cancelled_at = utcnow()
        bill.cancelled_by_user_id = user_id
        bill.cancellation_reason = reason
        bill.restocked_on_cancel = bool(do_restock)

        db.session.commit()
        return bill

    try:
        bill = run_with_retry(_op)
    except BillingError:
        db.session.rollback()
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Bill cancel failed for bill %s", bill_id)
        raise TransactionError("Bill cancellation failed") from exc

    current_app.logger.info("Bill %s cancelled by user=%s", bill.bill_number, user_id)
    return bill
