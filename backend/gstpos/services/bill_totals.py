# Overview: Bill aggregator; folds line calculations into bill totals and round-off.

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Sequence

from .errors import ValidationError
from .tax_service import LineTax, HUNDRED, round_cents, to_decimal


ZERO = Decimal("0")


@dataclass(frozen=True)
class BillTotals:
    """
    Bill-level totals in paise.

    Everything except grand_total is full precision; grand_total is rounded to
    the store's rounding unit and round_off is the signed difference.
    """
    subtotal: Decimal
    item_discount_total: Decimal
    taxable_total: Decimal
    cgst_total: Decimal
    sgst_total: Decimal
    igst_total: Decimal
    tax_total: Decimal
    bill_discount: Decimal
    bill_discount_percent: Decimal
    loyalty_discount: Decimal
    grand_to_round: Decimal
    grand_total: Decimal
    round_off: Decimal
    discount_exceeds_total: bool = False

    @property
    def grand_total_cents(self) -> int:
        return round_cents(self.grand_total)

    @property
    def round_off_cents(self) -> int:
        return round_cents(self.round_off)


def round_to_unit(amount: Decimal, unit_cents: int) -> Decimal:
    """Round half-up to a multiple of unit_cents (100 = whole rupee, 1 = paisa)."""
    unit = Decimal(unit_cents)
    return (amount / unit).quantize(Decimal("1"), rounding=ROUND_HALF_UP) * unit


def _resolve_bill_discount(subtotal: Decimal, amount, percent) -> tuple[Decimal, Decimal]:
    if amount is not None:
        amount = to_decimal(amount, "bill_discount_cents")
        if amount < 0:
            raise ValidationError("bill_discount_cents must be >= 0")
    if percent is not None:
        percent = to_decimal(percent, "bill_discount_percent")
        if percent < 0 or percent > HUNDRED:
            raise ValidationError("bill_discount_percent must be between 0 and 100")

    if percent is not None and percent > 0:
        from_percent = subtotal * percent / HUNDRED
        if amount is not None and amount > 0 and abs(amount - from_percent) > 1:
            raise ValidationError(
                "bill_discount_cents does not match bill_discount_percent",
                details={
                    "bill_discount_cents": str(amount),
                    "expected_cents": str(round_cents(from_percent)),
                },
            )
        return from_percent, percent

    amount = amount or ZERO
    if amount and subtotal:
        return amount, amount * HUNDRED / subtotal
    return amount, ZERO


def aggregate_bill(
    lines: Sequence[LineTax],
    *,
    bill_discount_cents=None,
    bill_discount_percent=None,
    loyalty_discount_cents=0,
    rounding_unit_cents: int = 100,
) -> BillTotals:
    """
    Fold computed lines into bill totals.

        grand_to_round = subtotal - item_discounts - bill_discount
                         - loyalty_discount + tax_total
        grand_total    = round_half_up(grand_to_round, rounding unit)
        round_off      = grand_total - grand_to_round

    A percent bill discount is taken on the subtotal. If discounts exceed the
    payable amount the grand total floors at zero, round_off absorbs the
    excess and discount_exceeds_total is set; callers decide whether that is
    acceptable.
    """
    if rounding_unit_cents <= 0:
        raise ValidationError("rounding unit must be a positive number of paise")

    subtotal = sum((line.base_amount for line in lines), ZERO)
    item_discount_total = sum((line.discount_amount for line in lines), ZERO)
    taxable_total = sum((line.taxable_amount for line in lines), ZERO)
    cgst_total = sum((line.cgst for line in lines), ZERO)
    sgst_total = sum((line.sgst for line in lines), ZERO)
    igst_total = sum((line.igst for line in lines), ZERO)
    tax_total = cgst_total + sgst_total + igst_total

    bill_discount, bill_discount_percent = _resolve_bill_discount(
        subtotal, bill_discount_cents, bill_discount_percent
    )

    loyalty_discount = to_decimal(loyalty_discount_cents or 0, "loyalty_discount_cents")
    if loyalty_discount < 0:
        raise ValidationError("loyalty discount must be >= 0")

    grand_to_round = (
        subtotal - item_discount_total - bill_discount - loyalty_discount + tax_total
    )

    if grand_to_round < 0:
        return BillTotals(
            subtotal=subtotal,
            item_discount_total=item_discount_total,
            taxable_total=taxable_total,
            cgst_total=cgst_total,
            sgst_total=sgst_total,
            igst_total=igst_total,
            tax_total=tax_total,
            bill_discount=bill_discount,
            bill_discount_percent=bill_discount_percent,
            loyalty_discount=loyalty_discount,
            grand_to_round=grand_to_round,
            grand_total=ZERO,
            round_off=-grand_to_round,
            discount_exceeds_total=True,
        )

    grand_total = round_to_unit(grand_to_round, rounding_unit_cents)
    return BillTotals(
        subtotal=subtotal,
        item_discount_total=item_discount_total,
        taxable_total=taxable_total,
        cgst_total=cgst_total,
        sgst_total=sgst_total,
        igst_total=igst_total,
        tax_total=tax_total,
        bill_discount=bill_discount,
        bill_discount_percent=bill_discount_percent,
        loyalty_discount=loyalty_discount,
        grand_to_round=grand_to_round,
        grand_total=grand_total,
        round_off=grand_total - grand_to_round,
    )


def apportion(amount_cents: int, weights: Sequence[int | Decimal]) -> list[int]:
    """
    Split amount_cents across lines proportionally to weights.

    Weights may be full-precision Decimal line amounts.

    Largest-remainder method: shares are integers and always sum to
    amount_cents exactly.
    """
    if not weights:
        return []
    total_weight = sum(weights)
    if amount_cents == 0:
        return [0] * len(weights)
    if total_weight <= 0:
        return [amount_cents] + [0] * (len(weights) - 1)

    raw = [Decimal(amount_cents) * Decimal(w) / Decimal(total_weight) for w in weights]
    shares = [int(r) for r in raw]  # truncates toward zero; amounts are >= 0
    remainder = amount_cents - sum(shares)
    by_fraction = sorted(range(len(raw)), key=lambda i: raw[i] - shares[i], reverse=True)
    for i in by_fraction[:remainder]:
        shares[i] += 1
    return shares
