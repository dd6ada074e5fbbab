# API Tests - Bills, Held Bills & Public Receipts
#
# Tests for:
# - Checkout (POST /api/bills) and error mapping
# - Bill lookup, listing and cancellation
# - Holding, resuming and discarding carts
# - Public receipt view
#
# Requests go through httpx against the WSGI app; no server is started.

import httpx
import pytest

from conftest import TestFailure, assert_response
from gstpos import create_app
from gstpos.extensions import db
from gstpos.models import Product, Store


@pytest.fixture
def api(tmp_path):
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'api.db'}",
        "LOG_LEVEL": "WARNING",
    })
    with app.app_context():
        db.create_all()
        store = Store(name="Api Store", code="API", gstin="27ABCDE1234F1Z5")
        db.session.add(store)
        db.session.commit()
        shirt = Product(
            store_id=store.id, sku="SHIRT", name="Shirt", hsn_code="6205",
            selling_price_cents=10000, gst_rate_bps=1800, stock_quantity=10,
        )
        rice = Product(
            store_id=store.id, sku="RICE", name="Rice 5kg",
            selling_price_cents=35040, gst_rate_bps=0, stock_quantity=1,
        )
        db.session.add_all([shirt, rice])
        db.session.commit()
        ids = {"store_id": store.id, "shirt": shirt.id, "rice": rice.id}
        db.session.remove()

    client = httpx.Client(transport=httpx.WSGITransport(app=app), base_url="http://testserver")
    yield client, ids
    client.close()
    with app.app_context():
        db.session.remove()
        db.engine.dispose()


def _checkout(client, ids, **extra):
    body = {
        "store_id": ids["store_id"],
        "items": [{"product_id": ids["shirt"], "quantity": 3, "discount_percent": 10}],
        "payment_mode": "cash",
    }
    body.update(extra)
    return client.post("/api/bills", json=body)


class TestCheckout:

    @pytest.mark.smoke
    @pytest.mark.bills
    def test_create_bill(self, api):
        """
        SCENARIO: Cash checkout of 3 shirts at Rs 100, 10% off, 18% GST
        EXPECTED: HTTP 201, grand total Rs 319.00 with +0.40 round-off
        """
        client, ids = api
        response = _checkout(client, ids, cashier_user_id=5)

        assert_response(
            response, 201,
            scenario="Create bill",
            code_location="backend/gstpos/routes/bills.py:create_bill_route"
        )

        bill = response.json()["bill"]
        if bill["grand_total_cents"] != 31900 or bill["round_off_cents"] != 40:
            raise TestFailure(
                scenario="Bill totals should include GST and rupee rounding",
                expected="grand_total_cents = 31900, round_off_cents = 40",
                actual=f"grand_total_cents = {bill['grand_total_cents']}, round_off_cents = {bill['round_off_cents']}",
                likely_cause="Tax or rounding changed in tax_service / bill_totals",
                code_location="backend/gstpos/services/bill_totals.py:aggregate_bill",
                response=response
            )
        assert bill["status"] == "completed"
        assert bill["cgst_cents"] == 2430
        assert bill["items"][0]["product_name"] == "Shirt"
        assert bill["payments"][0]["amount_cents"] == 31900
        assert bill["created_at"].endswith("Z")

    @pytest.mark.bills
    def test_missing_store(self, api):
        client, ids = api
        response = client.post("/api/bills", json={"items": [], "payment_mode": "cash"})

        assert_response(
            response, 400,
            scenario="Create bill without store_id",
            code_location="backend/gstpos/routes/bills.py:create_bill_route",
            expected_body_contains="store_id required"
        )

    @pytest.mark.bills
    def test_empty_cart(self, api):
        client, ids = api
        response = _checkout(client, ids, items=[])

        assert_response(
            response, 400,
            scenario="Create bill with empty cart",
            code_location="backend/gstpos/validation.py:parse_cart_lines",
            expected_body_contains="items must be a non-empty list"
        )

    @pytest.mark.bills
    def test_insufficient_stock_is_409_with_details(self, api):
        client, ids = api
        response = _checkout(client, ids, items=[{"product_id": ids["rice"], "quantity": 2}])

        assert_response(
            response, 409,
            scenario="Sell more than stock",
            code_location="backend/gstpos/services/stock_service.py:check_stock"
        )
        body = response.json()
        assert body["error"] == "Insufficient stock for Rice 5kg"
        assert body["details"]["available_quantity"] == 1
        assert body["details"]["requested_quantity"] == 2

    @pytest.mark.bills
    def test_unknown_product_is_404(self, api):
        client, ids = api
        response = _checkout(client, ids, items=[{"product_id": 9999, "quantity": 1}])

        assert_response(
            response, 404,
            scenario="Sell an unknown product",
            code_location="backend/gstpos/services/bill_service.py:_load_products",
            expected_body_contains="Product 9999 not found"
        )

    @pytest.mark.bills
    def test_split_mismatch_is_400(self, api):
        client, ids = api
        response = _checkout(
            client, ids,
            items=[{"product_id": ids["rice"], "quantity": 1}],
            payment_mode="split",
            payments=[{"mode": "cash", "amount_cents": 20000}, {"mode": "card", "amount_cents": 10000}],
        )

        assert_response(
            response, 400,
            scenario="Split legs short of the total",
            code_location="backend/gstpos/services/bill_service.py:_check_payment",
            expected_body_contains="Split payments do not add up"
        )
        assert response.json()["details"]["grand_total_cents"] == 35000


class TestBillLifecycle:

    @pytest.mark.bills
    def test_get_list_and_cancel(self, api):
        client, ids = api
        created = _checkout(client, ids).json()["bill"]

        response = client.get(f"/api/bills/{created['id']}")
        assert_response(response, 200, "Get bill", "backend/gstpos/routes/bills.py:get_bill_route")
        assert response.json()["bill"]["bill_number"] == created["bill_number"]

        response = client.get("/api/bills", params={"store_id": ids["store_id"], "status": "completed"})
        assert_response(response, 200, "List bills", "backend/gstpos/routes/bills.py:list_bills_route")
        assert [b["id"] for b in response.json()["bills"]] == [created["id"]]

        response = client.post(f"/api/bills/{created['id']}/cancel", json={})
        assert_response(
            response, 400, "Cancel without reason", "backend/gstpos/routes/bills.py:cancel_bill_route",
            expected_body_contains="reason required"
        )

        response = client.post(
            f"/api/bills/{created['id']}/cancel",
            json={"reason": "Customer walked out", "user_id": 9, "restock": True},
        )
        assert_response(response, 200, "Cancel bill", "backend/gstpos/routes/bills.py:cancel_bill_route")
        assert response.json()["bill"]["status"] == "cancelled"
        assert response.json()["bill"]["restocked_on_cancel"] is True

        response = client.post(f"/api/bills/{created['id']}/cancel", json={"reason": "again"})
        assert_response(response, 409, "Cancel twice", "backend/gstpos/services/bill_service.py:cancel_bill")

    @pytest.mark.bills
    def test_get_missing_bill(self, api):
        client, ids = api
        response = client.get("/api/bills/424242")

        assert_response(response, 404, "Get missing bill", "backend/gstpos/routes/bills.py:get_bill_route")

    @pytest.mark.bills
    def test_list_requires_store_and_valid_dates(self, api):
        client, ids = api

        response = client.get("/api/bills")
        assert_response(response, 400, "List without store", "backend/gstpos/routes/bills.py:list_bills_route")

        response = client.get("/api/bills", params={"store_id": ids["store_id"], "start": "yesterday"})
        assert_response(response, 400, "List with bad date", "backend/gstpos/routes/bills.py:list_bills_route")

    @pytest.mark.bills
    def test_public_receipt_hides_internal_ids(self, api):
        client, ids = api
        created = _checkout(client, ids, cashier_user_id=5).json()["bill"]

        response = client.get(f"/api/public/bills/{created['public_id']}")
        assert_response(response, 200, "Public receipt", "backend/gstpos/routes/public.py:public_receipt_route")

        receipt = response.json()["receipt"]
        assert receipt["bill_number"] == created["bill_number"]
        assert receipt["store"]["gstin"] == "27ABCDE1234F1Z5"
        for hidden in ("id", "cashier_user_id", "customer_id", "store_id"):
            assert hidden not in receipt
        assert "product_id" not in receipt["items"][0]

        response = client.get(f"/api/public/bills/{created['id']}")
        assert_response(response, 404, "Receipt by internal id", "backend/gstpos/routes/public.py:public_receipt_route")


class TestHeldBills:

    @pytest.mark.held
    def test_hold_list_resume_delete(self, api):
        client, ids = api
        cart = {"items": [{"product_id": ids["shirt"], "quantity": 2}], "payment_mode": "cash"}

        response = client.post("/api/bills/hold", json={
            "store_id": ids["store_id"], "cart": cart, "customer_name": "Meera",
        })
        assert_response(response, 201, "Hold bill", "backend/gstpos/routes/held_bills.py:hold_bill_route")
        held = response.json()["held_bill"]
        reference = held["hold_reference"]
        assert held["subtotal_cents"] == 20000
        assert held["cart"] == cart

        response = client.get("/api/bills/held", params={"store_id": ids["store_id"]})
        assert_response(response, 200, "List holds", "backend/gstpos/routes/held_bills.py:list_held_bills_route")
        assert [h["hold_reference"] for h in response.json()["held_bills"]] == [reference]

        response = client.get(f"/api/bills/hold/{reference}")
        assert_response(response, 200, "Get hold", "backend/gstpos/routes/held_bills.py:get_held_bill_route")

        response = client.post(f"/api/bills/hold/{reference}/resume")
        assert_response(response, 200, "Resume hold", "backend/gstpos/routes/held_bills.py:resume_held_bill_route")
        assert response.json()["cart"] == cart

        response = client.post(f"/api/bills/hold/{reference}/resume")
        assert_response(response, 409, "Resume twice", "backend/gstpos/services/held_bill_service.py:resume_held_bill")

        response = client.get("/api/bills/held", params={"store_id": ids["store_id"]})
        assert response.json()["held_bills"] == []

        response = client.delete(f"/api/bills/hold/{reference}")
        assert_response(response, 204, "Delete hold", "backend/gstpos/routes/held_bills.py:delete_held_bill_route")

        response = client.get(f"/api/bills/hold/{reference}")
        assert_response(response, 404, "Get deleted hold", "backend/gstpos/routes/held_bills.py:get_held_bill_route")

    @pytest.mark.held
    def test_hold_validation(self, api):
        client, ids = api

        response = client.post("/api/bills/hold", json={"store_id": ids["store_id"]})
        assert_response(response, 400, "Hold without cart", "backend/gstpos/routes/held_bills.py:hold_bill_route")

        response = client.post("/api/bills/hold", json={"store_id": ids["store_id"], "cart": {"items": []}})
        assert_response(response, 400, "Hold empty cart", "backend/gstpos/services/held_bill_service.py:hold_bill")


def test_health(api):
    client, ids = api
    response = client.get("/health")

    assert_response(response, 200, "Health check", "backend/gstpos/routes/system.py:health")
    assert response.json()["checks"]["database"]["details"]["stores"] == 1
