from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, to_iso_date


DELIVERY_STATUSES = {
    "PENDING",              # Assigned but not yet started
    "IN_TRANSIT",           # Delivery in progress
    "DELIVERED",            # Successfully delivered
    "DOOR_LOCK",            # Customer not available, will be retried
    "RETURNED",             # Returned to warehouse
    "PARTIALLY_DELIVERED",  # Some items delivered, some returned
    "DAMAGED",              # Items damaged during delivery
}

DELIVERY_PRIORITIES = {"LOW", "NORMAL", "HIGH", "URGENT", "PERISHABLE"}


class Delivery(db.Model):
    __tablename__ = "deliveries"
    __table_args__ = (
        db.Index("ix_deliveries_agent_status", "delivery_agent_id", "status"),
        db.Index("ix_deliveries_agent_scheduled", "delivery_agent_id", "scheduled_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # User with the DLTEAM role
    delivery_agent_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    customer_name = db.Column(db.String(100), nullable=True)
    customer_address = db.Column(db.String(255), nullable=True)
    customer_phone = db.Column(db.String(16), nullable=True)

    status = db.Column(db.String(24), nullable=False, default="PENDING", index=True)
    priority = db.Column(db.String(16), nullable=False, default="NORMAL")

    scheduled_date = db.Column(db.Date, nullable=True, index=True)
    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Base64 encoded image
    customer_signature = db.Column(db.Text, nullable=True)
    notes = db.Column(db.String(500), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    agent = db.relationship("User", backref=db.backref("deliveries", lazy="dynamic"))
    items = db.relationship(
        "DeliveryItem",
        back_populates="delivery",
        cascade="all, delete-orphan",
        order_by="DeliveryItem.id",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Delivery id={self.id} agent={self.delivery_agent_id} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "delivery_agent_id": self.delivery_agent_id,
            "items": [item.to_dict() for item in self.items],
            "customer_name": self.customer_name,
            "customer_address": self.customer_address,
            "customer_phone": self.customer_phone,
            "status": self.status,
            "priority": self.priority,
            "scheduled_date": to_iso_date(self.scheduled_date),
            "delivered_at": to_utc_z(self.delivered_at) if self.delivered_at else None,
            "customer_signature": self.customer_signature,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class DeliveryItem(db.Model):
    """A line of a delivery. sku and product_name are copied from the product at assignment."""
    __tablename__ = "delivery_items"
    __table_args__ = (
        db.Index("ix_delivery_items_sku", "sku"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    delivery_id = db.Column(db.Integer, db.ForeignKey("deliveries.id"), nullable=False, index=True)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    sku = db.Column(db.String(20), nullable=False)
    product_name = db.Column(db.String(100), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)

    # Whether the item was damaged during delivery
    damaged = db.Column(db.Boolean, nullable=False, default=False)
    # Whether the item was brought back to the warehouse
    returned = db.Column(db.Boolean, nullable=False, default=False)

    delivery = db.relationship("Delivery", back_populates="items")

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "sku": self.sku,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "damaged": self.damaged,
            "returned": self.returned,
        }
