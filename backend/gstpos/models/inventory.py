from __future__ import annotations

from ..extensions import db
from gstpos.time_utils import to_utc_z

class Product(db.Model):
    """
    Product master data.

    Products are scoped to stores via store_id; SKUs are unique within a store.

    PRICING: All prices are stored in paise (*_cents). gst_rate_bps holds the
    GST slab in basis points (0, 500, 1200, 1800, 2800).

    STOCK: stock_quantity is only ever decremented by bill creation through an
    atomic conditional UPDATE (see stock_service.decrement_stock). Products with
    is_track_inventory=False (services, loose items) are exempt from stock checks.

    HISTORY: Bill items copy name/SKU/HSN/MRP/price at sale time, so editing a
    product never rewrites an old bill.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("store_id", "sku", name="uq_products_store_sku"),
        db.Index("ix_products_store_name", "store_id", "name"),
        db.Index("ix_products_store_active", "store_id", "is_active"),
        db.CheckConstraint(
            "gst_rate_bps IN (0, 500, 1200, 1800, 2800)",
            name="ck_products_gst_rate_bps",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)

    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    unit = db.Column(db.String(16), nullable=False, default="PCS")
    hsn_code = db.Column(db.String(16), nullable=True)

    mrp_cents = db.Column(db.Integer, nullable=True)
    purchase_price_cents = db.Column(db.Integer, nullable=True)
    selling_price_cents = db.Column(db.Integer, nullable=False)
    gst_rate_bps = db.Column(db.Integer, nullable=False, default=0)

    stock_quantity = db.Column(db.Integer, nullable=False, default=0)
    min_stock_level = db.Column(db.Integer, nullable=False, default=0)
    is_track_inventory = db.Column(db.Boolean, nullable=False, default=True)
    allow_negative_stock = db.Column(db.Boolean, nullable=False, default=False)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    store = db.relationship("Store", backref=db.backref("products", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r} store_id={self.store_id}>"

    @property
    def is_low_stock(self) -> bool:
        return self.is_track_inventory and self.stock_quantity <= self.min_stock_level

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "sku": self.sku,
            "name": self.name,
            "unit": self.unit,
            "hsn_code": self.hsn_code,
            "mrp_cents": self.mrp_cents,
            "purchase_price_cents": self.purchase_price_cents,
            "selling_price_cents": self.selling_price_cents,
            "gst_rate_bps": self.gst_rate_bps,
            "stock_quantity": self.stock_quantity,
            "min_stock_level": self.min_stock_level,
            "is_track_inventory": self.is_track_inventory,
            "allow_negative_stock": self.allow_negative_stock,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
