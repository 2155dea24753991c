from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, to_iso_date


PRODUCT_CATEGORIES = {
    "ELECTRONICS",
    "CLOTHING",
    "FOOD",
    "MEDICINE",
    "FURNITURE",
    "TOYS",
    "BOOKS",
    "ESSENTIAL",
    "EMERGENCY",
    "OTHER",
}

TRANSACTION_TYPES = {"STOCK_IN", "STOCK_OUT", "RETURN", "ADJUSTMENT", "DAMAGED", "EXPIRED"}


class Product(db.Model):
    """
    Product master data, keyed by a globally unique SKU.

    quantity is the current on-hand count. It is only ever moved by
    InventoryTransaction rows (see inventory_service.apply_transaction_inner) or by
    a direct product update, and never goes below zero.

    version_id guards quantity against lost updates: a concurrent write
    raises StaleDataError at flush and the operation is retried.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("sku", name="uq_products_sku"),
        db.CheckConstraint("quantity >= 0", name="ck_products_quantity_non_negative"),
        db.Index("ix_products_category", "category"),
        db.Index("ix_products_expiry_date", "expiry_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    sku = db.Column(db.String(20), nullable=False)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.String(500), nullable=True)
    category = db.Column(db.String(32), nullable=True)

    damaged = db.Column(db.Boolean, nullable=False, default=False)
    perishable = db.Column(db.Boolean, nullable=False, default=False)
    expiry_date = db.Column(db.Date, nullable=True)

    quantity = db.Column(db.Integer, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} quantity={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "damaged": self.damaged,
            "perishable": self.perishable,
            "expiry_date": to_iso_date(self.expiry_date),
            "quantity": self.quantity,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class InventoryTransaction(db.Model):
    """Append-only ledger entry. Rows are never updated or deleted."""
    __tablename__ = "inventory_transactions"
    __table_args__ = (
        db.Index("ix_invtx_product_timestamp", "product_id", "timestamp"),
        db.Index("ix_invtx_type_timestamp", "type", "timestamp"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    # Copied from the product when the entry is written
    sku = db.Column(db.String(20), nullable=False, index=True)

    type = db.Column(db.String(16), nullable=False)

    # Positive for every type except ADJUSTMENT, where it is the signed delta
    quantity = db.Column(db.Integer, nullable=False)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    delivery_id = db.Column(db.Integer, db.ForeignKey("deliveries.id"), nullable=True, index=True)

    notes = db.Column(db.String(255), nullable=True)

    timestamp = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    product = db.relationship("Product", backref=db.backref("transactions", lazy="dynamic"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "sku": self.sku,
            "type": self.type,
            "quantity": self.quantity,
            "user_id": self.user_id,
            "delivery_id": self.delivery_id,
            "notes": self.notes,
            "timestamp": to_utc_z(self.timestamp),
        }
