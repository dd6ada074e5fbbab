# Overview: Exception taxonomy shared by the billing services and mapped to HTTP by the routes.

from __future__ import annotations


class BillingError(Exception):
    """Base for billing errors; carries a user-facing message and details."""
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}

    @property
    def public_message(self) -> str:
        return str(self)


class ValidationError(BillingError):
    """Malformed or incomplete request (empty cart, bad quantity, bad mode)."""
    status_code = 400


class NotFoundError(BillingError):
    """Unknown product, customer, bill or held bill."""
    status_code = 404


class ProductNotFoundError(NotFoundError):
    def __init__(self, product_id, details: dict | None = None):
        super().__init__(
            f"Product {product_id} not found",
            details={"product_id": product_id, **(details or {})},
        )
        self.product_id = product_id


class ConflictError(BillingError):
    """State conflict (cancel a cancelled bill, resume a resumed hold)."""
    status_code = 409


class InsufficientStockError(BillingError):
    """Requested quantity exceeds stock and negative stock is not allowed."""
    status_code = 409

    def __init__(self, product_name: str, requested: int, available: int | None, product_id: int | None = None):
        super().__init__(
            f"Insufficient stock for {product_name}",
            details={
                "product_id": product_id,
                "product_name": product_name,
                "requested_quantity": requested,
                "available_quantity": available,
            },
        )
        self.product_id = product_id


class SplitMismatchError(BillingError):
    """Split payment legs do not add up to the grand total."""
    status_code = 400


class TransactionError(BillingError):
    """
    Data-store failure while committing a bill.

    The transaction has been rolled back. public_message never carries driver
    text; the underlying exception is logged and kept on __cause__.
    """
    status_code = 500

    @property
    def public_message(self) -> str:
        return "Could not save the bill, please try again"
