# Overview: Customer purchase stats and loyalty points; mutated only inside bill transactions.

from __future__ import annotations

from decimal import Decimal, ROUND_FLOOR

from sqlalchemy import update

from ..extensions import db
from ..models import Customer, LoyaltyTransaction
from gstpos.time_utils import utcnow
from .errors import NotFoundError, ValidationError


TXN_EARN = "EARN"
TXN_REDEEM = "REDEEM"
TXN_REVERSAL = "REVERSAL"


def get_customer(customer_id: int, store_id: int | None = None) -> Customer:
    query = db.session.query(Customer).filter_by(id=customer_id)
    if store_id is not None:
        query = query.filter_by(store_id=store_id)
    customer = query.first()
    if not customer:
        raise NotFoundError(f"Customer {customer_id} not found", details={"customer_id": customer_id})
    return customer


def check_redeemable(customer: Customer, points: int) -> None:
    if points > customer.loyalty_points:
        raise ValidationError(
            "Insufficient loyalty points",
            details={
                "customer_id": customer.id,
                "requested_points": points,
                "available_points": customer.loyalty_points,
            },
        )


def points_earned(grand_total_cents: int, points_per_100: int) -> int:
    """Whole points earned: floor(rupees * points_per_100 / 100)."""
    if points_per_100 <= 0 or grand_total_cents <= 0:
        return 0
    rupees = Decimal(grand_total_cents) / Decimal(100)
    earned = rupees * Decimal(points_per_100) / Decimal(100)
    return int(earned.to_integral_value(rounding=ROUND_FLOOR))


def apply_bill_to_customer(
    *,
    customer_id: int,
    bill_id: int,
    grand_total_cents: int,
    points_redeemed: int,
    points_earned_count: int,
    user_id: int | None = None,
) -> None:
    """
    Record one completed bill against the customer.

    One UPDATE with in-database arithmetic: purchase total += grand total,
    visits += 1, points -= redeemed + earned. The redeem guard lives in the
    WHERE clause so a concurrent redemption cannot overdraw the balance.
    Does not commit.
    """
    now = utcnow()
    stmt = (
        update(Customer)
        .where(Customer.id == customer_id, Customer.loyalty_points >= points_redeemed)
        .values(
            total_purchase_cents=Customer.total_purchase_cents + grand_total_cents,
            visit_count=Customer.visit_count + 1,
            loyalty_points=Customer.loyalty_points - points_redeemed + points_earned_count,
            last_visit_at=now,
            version_id=Customer.version_id + 1,
        )
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if result.rowcount != 1:
        raise ValidationError(
            "Insufficient loyalty points",
            details={"customer_id": customer_id, "requested_points": points_redeemed},
        )

    if points_redeemed:
        db.session.add(LoyaltyTransaction(
            customer_id=customer_id,
            bill_id=bill_id,
            transaction_type=TXN_REDEEM,
            points=-points_redeemed,
            user_id=user_id,
            occurred_at=now,
        ))
    if points_earned_count:
        db.session.add(LoyaltyTransaction(
            customer_id=customer_id,
            bill_id=bill_id,
            transaction_type=TXN_EARN,
            points=points_earned_count,
            user_id=user_id,
            occurred_at=now,
        ))


def reverse_bill_for_customer(
    *,
    customer_id: int,
    bill_id: int,
    grand_total_cents: int,
    points_redeemed: int,
    points_earned_count: int,
    user_id: int | None = None,
    reason: str | None = None,
) -> None:
    """
    Undo apply_bill_to_customer for a cancelled bill.

    Earned points that were already spent are clawed back only down to zero.
    Does not commit.
    """
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        return

    delta = points_redeemed - min(points_earned_count, customer.loyalty_points + points_redeemed)
    stmt = (
        update(Customer)
        .where(Customer.id == customer_id)
        .values(
            total_purchase_cents=Customer.total_purchase_cents - grand_total_cents,
            visit_count=Customer.visit_count - 1,
            loyalty_points=Customer.loyalty_points + delta,
            version_id=Customer.version_id + 1,
        )
        .execution_options(synchronize_session=False)
    )
    db.session.execute(stmt)

    if delta:
        db.session.add(LoyaltyTransaction(
            customer_id=customer_id,
            bill_id=bill_id,
            transaction_type=TXN_REVERSAL,
            points=delta,
            reason=reason,
            user_id=user_id,
            occurred_at=utcnow(),
        ))
