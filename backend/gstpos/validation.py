from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Union

from .services.errors import ValidationError


# Maximum price / amount: Rs 99,99,999.99 (999,999,999 paise)
MAX_AMOUNT_CENTS = 999_999_999
MAX_LINE_QUANTITY = 100_000
MAX_NOTES_LENGTH = 1000

PAYMENT_CASH = "cash"
PAYMENT_UPI = "upi"
PAYMENT_CARD = "card"
PAYMENT_WALLET = "wallet"
PAYMENT_SPLIT = "split"

TENDER_MODES = (PAYMENT_CASH, PAYMENT_UPI, PAYMENT_CARD, PAYMENT_WALLET)
PAYMENT_MODES = TENDER_MODES + (PAYMENT_SPLIT,)


@dataclass(frozen=True)
class CartLine:
    product_id: int
    quantity: int
    discount_percent: Decimal = Decimal("0")


@dataclass(frozen=True)
class SinglePayment:
    """Whole bill paid with one tender (cash/upi/card/wallet)."""
    mode: str
    reference: str | None = None
    tendered_cents: int | None = None


@dataclass(frozen=True)
class PaymentLeg:
    mode: str
    amount_cents: int
    reference: str | None = None


@dataclass(frozen=True)
class SplitPayment:
    """Bill paid across several tenders; legs must sum to the grand total."""
    legs: tuple[PaymentLeg, ...]

    mode = PAYMENT_SPLIT

    @property
    def total_cents(self) -> int:
        return sum(leg.amount_cents for leg in self.legs)


Payment = Union[SinglePayment, SplitPayment]


@dataclass(frozen=True)
class Cart:
    items: tuple[CartLine, ...]
    payment: Payment
    customer_id: int | None = None
    customer_name: str | None = None
    customer_phone: str | None = None
    bill_discount_cents: int | None = None
    bill_discount_percent: Decimal | None = None
    loyalty_points_redeemed: int = 0
    is_inter_state: bool = False
    notes: str | None = None

    @property
    def payment_mode(self) -> str:
        return self.payment.mode


def _coerce_int(value: Any, field: str) -> int:
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        if 'e' in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        if '.' in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    raise ValidationError(f"{field} must be an integer")


def _coerce_decimal(value: Any, field: str) -> Decimal:
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be a number")
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number")
    if not result.is_finite():
        raise ValidationError(f"{field} must be a number")
    return result


def _coerce_bool(value: Any, field: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    raise ValidationError(f"{field} must be a boolean")


def _optional_str(payload: dict, field: str, max_length: int) -> str | None:
    value = payload.get(field)
    if value is None:
        return None
    value = str(value).strip()
    if not value:
        return None
    if len(value) > max_length:
        raise ValidationError(f"{field} exceeds max length {max_length}")
    return value


def _amount_cents(value: Any, field: str) -> int:
    cents = _coerce_int(value, field)
    if cents < 0:
        raise ValidationError(f"{field} must be >= 0")
    if cents > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{field} cannot exceed {MAX_AMOUNT_CENTS}")
    return cents


def parse_cart_lines(raw_items: Any) -> tuple[CartLine, ...]:
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("items must be a non-empty list")

    lines = []
    for index, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{index}] must be an object")
        if raw.get("product_id") is None:
            raise ValidationError(f"items[{index}].product_id is required")
        if raw.get("quantity") is None:
            raise ValidationError(f"items[{index}].quantity is required")

        product_id = _coerce_int(raw["product_id"], f"items[{index}].product_id")
        quantity = _coerce_int(raw["quantity"], f"items[{index}].quantity")
        if quantity <= 0:
            raise ValidationError(
                f"items[{index}].quantity must be > 0",
                details={"product_id": product_id, "quantity": quantity},
            )
        if quantity > MAX_LINE_QUANTITY:
            raise ValidationError(f"items[{index}].quantity cannot exceed {MAX_LINE_QUANTITY}")

        discount = Decimal("0")
        if raw.get("discount_percent") is not None:
            discount = _coerce_decimal(raw["discount_percent"], f"items[{index}].discount_percent")
            if discount < 0 or discount > 100:
                raise ValidationError(f"items[{index}].discount_percent must be between 0 and 100")

        lines.append(CartLine(product_id=product_id, quantity=quantity, discount_percent=discount))
    return tuple(lines)


def parse_payment(payload: dict) -> Payment:
    mode = payload.get("payment_mode")
    if not mode:
        raise ValidationError("payment_mode is required")
    mode = str(mode).strip().lower()
    if mode not in PAYMENT_MODES:
        raise ValidationError(f"Invalid payment_mode: {mode}. Must be one of {list(PAYMENT_MODES)}")

    if mode != PAYMENT_SPLIT:
        tendered = payload.get("tendered_cents")
        if tendered is not None:
            if mode != PAYMENT_CASH:
                raise ValidationError("tendered_cents is only accepted for cash payments")
            tendered = _amount_cents(tendered, "tendered_cents")
        return SinglePayment(
            mode=mode,
            reference=_optional_str(payload, "payment_reference", 128),
            tendered_cents=tendered,
        )

    raw_legs = payload.get("payments")
    if not isinstance(raw_legs, list) or not raw_legs:
        raise ValidationError("payments are required for split payment_mode")

    legs = []
    for index, raw in enumerate(raw_legs):
        if not isinstance(raw, dict):
            raise ValidationError(f"payments[{index}] must be an object")
        leg_mode = str(raw.get("mode") or "").strip().lower()
        if leg_mode not in TENDER_MODES:
            raise ValidationError(
                f"payments[{index}].mode must be one of {list(TENDER_MODES)}"
            )
        if raw.get("amount_cents") is None:
            raise ValidationError(f"payments[{index}].amount_cents is required")
        amount = _amount_cents(raw["amount_cents"], f"payments[{index}].amount_cents")
        if amount == 0:
            raise ValidationError(f"payments[{index}].amount_cents must be > 0")
        legs.append(
            PaymentLeg(
                mode=leg_mode,
                amount_cents=amount,
                reference=_optional_str(raw, "reference", 128),
            )
        )
    return SplitPayment(legs=tuple(legs))


def parse_cart(payload: Any) -> Cart:
    """
    Validate + normalize a checkout request body into a Cart.

    Everything here runs before any database write; the bill service only
    re-checks what depends on live data (products, stock, loyalty balance).
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    items = parse_cart_lines(payload.get("items"))
    payment = parse_payment(payload)

    customer_id = None
    if payload.get("customer_id") is not None:
        customer_id = _coerce_int(payload["customer_id"], "customer_id")

    bill_discount_cents = None
    if payload.get("bill_discount_cents") is not None:
        bill_discount_cents = _amount_cents(payload["bill_discount_cents"], "bill_discount_cents")

    bill_discount_percent = None
    if payload.get("bill_discount_percent") is not None:
        bill_discount_percent = _coerce_decimal(payload["bill_discount_percent"], "bill_discount_percent")
        if bill_discount_percent < 0 or bill_discount_percent > 100:
            raise ValidationError("bill_discount_percent must be between 0 and 100")

    points = 0
    if payload.get("loyalty_points_redeemed") is not None:
        points = _coerce_int(payload["loyalty_points_redeemed"], "loyalty_points_redeemed")
        if points < 0:
            raise ValidationError("loyalty_points_redeemed must be >= 0")
        if points and customer_id is None:
            raise ValidationError("loyalty_points_redeemed requires customer_id")

    is_inter_state = False
    if payload.get("is_inter_state") is not None:
        is_inter_state = _coerce_bool(payload["is_inter_state"], "is_inter_state")

    return Cart(
        items=items,
        payment=payment,
        customer_id=customer_id,
        customer_name=_optional_str(payload, "customer_name", 255),
        customer_phone=_optional_str(payload, "customer_phone", 32),
        bill_discount_cents=bill_discount_cents,
        bill_discount_percent=bill_discount_percent,
        loyalty_points_redeemed=points,
        is_inter_state=is_inter_state,
        notes=_optional_str(payload, "notes", MAX_NOTES_LENGTH),
    )
