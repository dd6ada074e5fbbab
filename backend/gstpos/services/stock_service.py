# Overview: Stock guard; advisory availability checks and atomic stock movements.

from __future__ import annotations

from sqlalchemy import or_, update

from ..extensions import db
from ..models import Product
from .errors import InsufficientStockError


def check_stock(product: Product, quantity: int) -> None:
    """
    Advisory availability check (read-only).

    Passes when the product is not inventory-tracked, when negative stock is
    allowed, or when stock covers the requested quantity.
    """
    if not product.is_track_inventory or product.allow_negative_stock:
        return
    if product.stock_quantity < quantity:
        raise InsufficientStockError(
            product.name,
            requested=quantity,
            available=product.stock_quantity,
            product_id=product.id,
        )


def decrement_stock(product: Product, quantity: int) -> None:
    """
    Atomically take quantity out of stock.

    Single conditional UPDATE, so two cashiers selling the last unit cannot
    both succeed:

        UPDATE products SET stock_quantity = stock_quantity - :q
        WHERE id = :id AND (allow_negative_stock OR stock_quantity >= :q)

    Raises InsufficientStockError when no row matched. Does not commit; the
    caller's transaction decides.
    """
    if not product.is_track_inventory:
        return

    stmt = (
        update(Product)
        .where(
            Product.id == product.id,
            or_(Product.allow_negative_stock.is_(True), Product.stock_quantity >= quantity),
        )
        .values(
            stock_quantity=Product.stock_quantity - quantity,
            version_id=Product.version_id + 1,
        )
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if result.rowcount != 1:
        available = (
            db.session.query(Product.stock_quantity).filter_by(id=product.id).scalar()
        )
        raise InsufficientStockError(
            product.name,
            requested=quantity,
            available=available,
            product_id=product.id,
        )


def restock(product_id: int, quantity: int) -> bool:
    """
    Atomically put quantity back (bill cancellation with restock).

    Returns False when the product is gone or not inventory-tracked.
    """
    stmt = (
        update(Product)
        .where(Product.id == product_id, Product.is_track_inventory.is_(True))
        .values(
            stock_quantity=Product.stock_quantity + quantity,
            version_id=Product.version_id + 1,
        )
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    return result.rowcount == 1
