"""
Pytest fixtures for the billing backend tests.

Provides the app on an in-memory database, a per-test table wipe and small
factories for stores, products and customers.
"""

from typing import Any, Dict, Optional

import httpx
import pytest

from gstpos import create_app
from gstpos.extensions import db
from gstpos.models import Customer, Product, Store


TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    'LOG_LEVEL': 'WARNING',
}


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "smoke: Quick checks of the main checkout flow")
    config.addinivalue_line("markers", "bills: Bill API tests")
    config.addinivalue_line("markers", "held: Held bill API tests")


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TEST_CONFIG)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def store(db_session):
    store = Store(name="Main Store", code="MAIN", gstin="29ABCDE1234F1Z5", state_code="29")
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def make_product(db_session, store):
    """Factory: make_product(price_cents=10000, gst_rate_bps=1800, stock=10, **overrides)."""
    counter = {"n": 0}

    def _make(price_cents: int = 10000, gst_rate_bps: int = 1800, stock: int = 10, **overrides) -> Product:
        counter["n"] += 1
        fields = {
            "store_id": store.id,
            "sku": f"SKU-{counter['n']:03d}",
            "name": f"Product {counter['n']}",
            "hsn_code": "6109",
            "mrp_cents": price_cents,
            "selling_price_cents": price_cents,
            "gst_rate_bps": gst_rate_bps,
            "stock_quantity": stock,
        }
        fields.update(overrides)
        product = Product(**fields)
        db_session.add(product)
        db_session.commit()
        return product

    return _make


@pytest.fixture(scope='function')
def customer(db_session, store):
    customer = Customer(store_id=store.id, name="Asha Rao", phone="9800000001", loyalty_points=50)
    db_session.add(customer)
    db_session.commit()
    return customer


def cart(items, payment_mode: str = "cash", **extra) -> Dict[str, Any]:
    """Checkout payload helper: cart([(product, qty), (product, qty, discount)])."""
    lines = []
    for item in items:
        product, quantity = item[0], item[1]
        line = {"product_id": product.id, "quantity": quantity}
        if len(item) > 2:
            line["discount_percent"] = item[2]
        lines.append(line)
    payload = {"items": lines, "payment_mode": payment_mode}
    payload.update(extra)
    return payload


# =============================================================================
# FAILURE MESSAGES
# =============================================================================

class TestFailure(Exception):
    """
    Custom exception with detailed, human-readable failure messages.

    Structure:
    1. Scenario: What was being tested
    2. Expected: What should have happened
    3. Actual: What actually happened
    4. Likely Cause: Most probable reason for failure
    5. Code Location: Where to look in the codebase
    """
    __test__ = False

    def __init__(
        self,
        scenario: str,
        expected: str,
        actual: str,
        likely_cause: str,
        code_location: str,
        response: Optional[httpx.Response] = None,
        extra_context: Optional[Dict[str, Any]] = None
    ):
        self.scenario = scenario
        self.expected = expected
        self.actual = actual
        self.likely_cause = likely_cause
        self.code_location = code_location
        self.response = response
        self.extra_context = extra_context or {}
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        lines = [
            "",
            "=" * 80,
            "TEST FAILURE DETAILS",
            "=" * 80,
            f"SCENARIO: {self.scenario}",
            "-" * 80,
            f"EXPECTED: {self.expected}",
            f"ACTUAL: {self.actual}",
            "-" * 80,
            f"LIKELY CAUSE: {self.likely_cause}",
            f"CODE LOCATION: {self.code_location}",
        ]

        if self.response is not None:
            lines.extend([
                "-" * 80,
                f"HTTP STATUS: {self.response.status_code}",
                f"RESPONSE BODY: {self.response.text[:1000]}",
            ])

        if self.extra_context:
            lines.append("-" * 80)
            lines.append("EXTRA CONTEXT:")
            for key, value in self.extra_context.items():
                lines.append(f"  {key}: {value}")

        lines.append("=" * 80)
        return "\n".join(lines)


def assert_response(
    response: httpx.Response,
    expected_status: int,
    scenario: str,
    code_location: str,
    expected_body_contains: Optional[str] = None
):
    """
    Assert HTTP response status and optionally body content.
    Raises TestFailure with detailed message on failure.
    """
    if response.status_code != expected_status:
        raise TestFailure(
            scenario=scenario,
            expected=f"HTTP {expected_status}",
            actual=f"HTTP {response.status_code}",
            likely_cause=_infer_cause(response),
            code_location=code_location,
            response=response
        )

    if expected_body_contains and expected_body_contains not in response.text:
        raise TestFailure(
            scenario=scenario,
            expected=f"Response body contains: {expected_body_contains}",
            actual=f"Response body: {response.text[:500]}",
            likely_cause="Response format changed or wrong endpoint hit",
            code_location=code_location,
            response=response
        )


def _infer_cause(response: httpx.Response) -> str:
    """Infer likely cause from response status/body."""
    if response.status_code == 404:
        return "Resource not found - wrong ID, wrong store, or deleted hold"
    elif response.status_code == 400:
        return "Invalid request - missing required field or validation failed"
    elif response.status_code == 409:
        return "Conflict - insufficient stock or bill/hold already in that state"
    elif response.status_code == 500:
        return "Server error - check backend logs for stack trace"
    else:
        return f"Unexpected status code {response.status_code}"
