# Overview: Pure GST calculation for one bill line.

"""
GST line calculator.

Intra-state supply is taxed as CGST + SGST (half the rate each); inter-state
supply as IGST (full rate). Results are NOT rounded: the bill aggregator rounds
once at bill level, and amounts are quantized to paise only when persisted.

The calculator is unit-agnostic: pass rupees and get rupees, pass paise and get
paise.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from .errors import ValidationError


VALID_GST_RATES = (0, 5, 12, 18, 28)

HUNDRED = Decimal("100")
PAISA = Decimal("1")


def to_decimal(value, field: str = "value") -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be a number")
    try:
        # str() keeps 0.1 as 0.1 instead of the binary float expansion
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number")


def round_cents(value: Decimal) -> int:
    """Quantize a full-precision paise amount to whole paise (half-up)."""
    return int(value.quantize(PAISA, rounding=ROUND_HALF_UP))


def bps_to_percent(bps: int) -> Decimal:
    return Decimal(bps) / HUNDRED


def percent_to_bps(percent: Decimal) -> int:
    return int((percent * HUNDRED).quantize(PAISA, rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class LineTax:
    base_amount: Decimal
    discount_amount: Decimal
    taxable_amount: Decimal
    cgst: Decimal
    sgst: Decimal
    igst: Decimal
    total_tax: Decimal
    total_amount: Decimal


def calculate_line_tax(
    price,
    quantity,
    discount_percent=0,
    gst_rate=0,
    *,
    inter_state: bool = False,
) -> LineTax:
    """
    Compute discount, taxable value and the GST split for one line.

        base     = price * quantity
        discount = base * discount% / 100
        taxable  = base - discount
        intra:  cgst = sgst = taxable * (rate / 2) / 100
        inter:  igst = taxable * rate / 100

    Raises ValidationError for non-positive quantity, negative price,
    discount outside 0..100 or a negative rate.
    """
    price = to_decimal(price, "price")
    quantity = to_decimal(quantity, "quantity")
    discount_percent = to_decimal(discount_percent, "discount_percent")
    gst_rate = to_decimal(gst_rate, "gst_rate")

    if quantity <= 0:
        raise ValidationError("quantity must be > 0")
    if price < 0:
        raise ValidationError("price must be >= 0")
    if discount_percent < 0 or discount_percent > HUNDRED:
        raise ValidationError("discount_percent must be between 0 and 100")
    if gst_rate < 0:
        raise ValidationError("gst_rate must be >= 0")

    base_amount = price * quantity
    discount_amount = base_amount * discount_percent / HUNDRED
    taxable_amount = base_amount - discount_amount

    zero = Decimal("0")
    if inter_state:
        igst = taxable_amount * gst_rate / HUNDRED
        cgst = sgst = zero
    else:
        cgst = taxable_amount * (gst_rate / 2) / HUNDRED
        sgst = cgst
        igst = zero

    total_tax = cgst + sgst + igst
    return LineTax(
        base_amount=base_amount,
        discount_amount=discount_amount,
        taxable_amount=taxable_amount,
        cgst=cgst,
        sgst=sgst,
        igst=igst,
        total_tax=total_tax,
        total_amount=taxable_amount + total_tax,
    )
