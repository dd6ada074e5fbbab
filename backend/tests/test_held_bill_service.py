from datetime import timedelta

import pytest

from gstpos.extensions import db
from gstpos.models import Bill, HeldBill, Product
from gstpos.services import held_bill_service
from gstpos.services.errors import ConflictError, NotFoundError, ProductNotFoundError, ValidationError
from gstpos.services.settings_service import set_store_setting
from gstpos.time_utils import utcnow


def _cart(*lines):
    return {
        "items": [{"product_id": p.id, "quantity": q} for p, q in lines],
        "payment_mode": "cash",
    }


def test_hold_bill_snapshots_subtotal_without_touching_stock(store, make_product):
    tea = make_product(price_cents=25000, stock=4)
    mug = make_product(price_cents=15000, stock=2)

    held = held_bill_service.hold_bill(
        store.id, _cart((tea, 2), (mug, 1)), customer_name="Ravi", notes="Back in 5", cashier_user_id=3
    )

    assert len(held.hold_reference) == 32
    assert held.subtotal_cents == 65000
    assert held.item_count == 3
    assert held.customer_name == "Ravi"
    assert held.cashier_user_id == 3
    assert held.expires_at - held.held_at == timedelta(hours=24)
    assert db.session.query(Product.stock_quantity).filter_by(id=tea.id).scalar() == 4
    assert db.session.query(Bill).count() == 0


def test_hold_ttl_comes_from_store_settings(store, make_product):
    set_store_setting(store.id, "held_bill_ttl_hours", 2)
    product = make_product()

    held = held_bill_service.hold_bill(store.id, _cart((product, 1)))

    assert held.expires_at - held.held_at == timedelta(hours=2)


@pytest.mark.parametrize("payload", [{}, {"items": []}, {"items": [{"product_id": 1}]}, ["not", "a", "cart"]])
def test_hold_requires_items(store, payload):
    with pytest.raises(ValidationError):
        held_bill_service.hold_bill(store.id, payload)


def test_hold_unknown_product(store):
    with pytest.raises(ProductNotFoundError):
        held_bill_service.hold_bill(store.id, {"items": [{"product_id": 31337, "quantity": 1}]})


def test_active_list_excludes_resumed_and_expired(store, make_product):
    product = make_product()
    active = held_bill_service.hold_bill(store.id, _cart((product, 1)))
    resumed = held_bill_service.hold_bill(store.id, _cart((product, 2)))
    expired = held_bill_service.hold_bill(store.id, _cart((product, 3)))
    active_ref, expired_ref = active.hold_reference, expired.hold_reference

    held_bill_service.resume_held_bill(resumed.hold_reference)
    expired = db.session.query(HeldBill).filter_by(hold_reference=expired_ref).one()
    expired.expires_at = utcnow() - timedelta(minutes=1)
    db.session.commit()

    listed = held_bill_service.list_active_held_bills(store.id)
    assert [h.hold_reference for h in listed] == [active_ref]


def test_expired_hold_can_still_be_fetched_and_resumed(store, make_product):
    product = make_product()
    held = held_bill_service.hold_bill(store.id, _cart((product, 2)))
    reference = held.hold_reference

    later = utcnow() + timedelta(hours=25)
    assert held_bill_service.list_active_held_bills(store.id, now=later) == []

    fetched = held_bill_service.get_held_bill(reference)
    assert fetched.hold_reference == reference

    payload = held_bill_service.resume_held_bill(reference)
    assert payload["items"] == [{"product_id": product.id, "quantity": 2}]
    assert held_bill_service.get_held_bill(reference).resumed_at is not None


def test_resume_twice_conflicts(store, make_product):
    product = make_product()
    held = held_bill_service.hold_bill(store.id, _cart((product, 1)))
    reference = held.hold_reference

    held_bill_service.resume_held_bill(reference)
    with pytest.raises(ConflictError):
        held_bill_service.resume_held_bill(reference)


def test_delete_held_bill(store, make_product):
    product = make_product()
    held = held_bill_service.hold_bill(store.id, _cart((product, 1)))
    reference = held.hold_reference

    held_bill_service.delete_held_bill(reference)

    with pytest.raises(NotFoundError):
        held_bill_service.get_held_bill(reference)
    with pytest.raises(NotFoundError):
        held_bill_service.delete_held_bill(reference)


def test_purge_expired_held_bills(store, make_product):
    product = make_product()
    first = held_bill_service.hold_bill(store.id, _cart((product, 1)))
    first_ref = first.hold_reference
    held_bill_service.hold_bill(store.id, _cart((product, 1)))

    removed = held_bill_service.purge_expired_held_bills(now=utcnow() + timedelta(hours=25))
    assert removed == 2

    assert held_bill_service.purge_expired_held_bills(store_id=store.id) == 0
    with pytest.raises(NotFoundError):
        held_bill_service.get_held_bill(first_ref)
