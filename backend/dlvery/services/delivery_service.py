# Overview: Service-layer operations for deliveries; assignment, status lifecycle and restocking.

"""
Delivery Service

Assignment:
- The inventory team assigns a delivery to an enabled DLTEAM user.
- Each item names a product by sku or product_id; sku and product name are
  copied onto the item.
- One STOCK_OUT ledger entry is written per item. The delivery, its items
  and the stock moves commit together; any failure (unknown product,
  insufficient stock) rolls the whole assignment back.

Lifecycle (anything not listed is rejected with ConflictError):

    PENDING    -> IN_TRANSIT
    IN_TRANSIT -> DELIVERED | DOOR_LOCK | RETURNED | PARTIALLY_DELIVERED | DAMAGED
    DOOR_LOCK  -> IN_TRANSIT | RETURNED

DELIVERED, RETURNED, PARTIALLY_DELIVERED and DAMAGED are terminal.

Only the assigned agent may move a delivery (AccessDeniedError otherwise).

Restocking:
- Entering RETURNED, DAMAGED or PARTIALLY_DELIVERED writes one ledger entry
  per item flagged returned or damaged: DAMAGED for damaged items (which
  also flags the product), RETURN otherwise.
"""

from __future__ import annotations

from datetime import date

from flask import current_app

from ..errors import AccessDeniedError, ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Delivery, DeliveryItem, DELIVERY_STATUSES, User
from ..permissions import ROLE_DLTEAM
from ..time_utils import today, utcnow
from ..validation import (
    ModelValidationPolicy,
    enforce_rules_delivery,
    validate_delivery_items,
    validate_payload,
)
from .concurrency import run_with_retry
from .inventory_service import apply_transaction_inner
from .products_service import get_product, get_product_by_sku

ALLOWED_TRANSITIONS = {
    "PENDING": {"IN_TRANSIT"},
    "IN_TRANSIT": {"DELIVERED", "DOOR_LOCK", "RETURNED", "PARTIALLY_DELIVERED", "DAMAGED"},
    "DOOR_LOCK": {"IN_TRANSIT", "RETURNED"},
}

TERMINAL_STATUSES = {"DELIVERED", "RETURNED", "PARTIALLY_DELIVERED", "DAMAGED"}

# Statuses whose entry brings flagged items back into stock
RESTOCK_STATUSES = {"RETURNED", "DAMAGED", "PARTIALLY_DELIVERED"}

DELIVERY_POLICY = ModelValidationPolicy(
    writable_fields={
        "delivery_agent_id",
        "customer_name",
        "customer_address",
        "customer_phone",
        "priority",
        "scheduled_date",
        "notes",
        "status",
    },
    required_on_create={"delivery_agent_id"},
)


def can_transition(current: str, new: str) -> bool:
    return new in ALLOWED_TRANSITIONS.get(current, set())


def get_delivery(delivery_id: int) -> Delivery:
    delivery = db.session.get(Delivery, delivery_id)
    if delivery is None:
        raise NotFoundError("Delivery", "id", delivery_id)
    return delivery


def require_owner(delivery: Delivery, agent: User) -> None:
    if delivery.delivery_agent_id != agent.id:
        raise AccessDeniedError("You are not authorized to access this delivery")


def get_delivery_for_agent(delivery_id: int, agent: User) -> dict:
    delivery = get_delivery(delivery_id)
    require_owner(delivery, agent)
    return delivery.to_dict()


def _require_agent(agent_id: int) -> User:
    agent = db.session.get(User, agent_id)
    if agent is None:
        raise NotFoundError("User", "id", agent_id)
    if agent.role != ROLE_DLTEAM:
        raise ValidationError(
            "Validation failed",
            {"delivery_agent_id": "Deliveries can only be assigned to DLTEAM users"},
        )
    if not agent.enabled:
        raise ValidationError("Validation failed", {"delivery_agent_id": "Delivery agent is disabled"})
    return agent


def assign_delivery(payload: dict) -> dict:
    """
    Create a delivery with its items and take the items out of stock.

    Raises:
        ValidationError: bad payload, non-PENDING status, agent not DLTEAM or disabled
        NotFoundError: unknown agent or product
        InsufficientStockError: an item exceeds available stock
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    fields = {k: v for k, v in payload.items() if k != "items"}
    patch = validate_payload(model=Delivery, payload=fields, policy=DELIVERY_POLICY, partial=False)
    enforce_rules_delivery(patch)
    items = validate_delivery_items(payload.get("items"))

    status = patch.pop("status", None) or "PENDING"
    if status != "PENDING":
        raise ValidationError("Validation failed", {"status": "New deliveries must be PENDING"})

    def _op():
        _require_agent(patch["delivery_agent_id"])

        delivery = Delivery(status="PENDING", priority="NORMAL")
        for k, v in patch.items():
            setattr(delivery, k, v)
        if delivery.priority is None:
            delivery.priority = "NORMAL"

        resolved = []
        for i, item in enumerate(items):
            if item["product_id"] is not None:
                product = get_product(item["product_id"], lock=True)
            else:
                product = get_product_by_sku(item["sku"], lock=True)
            if any(p.id == product.id for p, _ in resolved):
                raise ValidationError(
                    "Validation failed",
                    {f"items[{i}].sku": f"Duplicate product {product.sku}"},
                )
            delivery.items.append(DeliveryItem(
                product_id=product.id,
                sku=product.sku,
                product_name=product.name,
                quantity=item["quantity"],
                damaged=item["damaged"],
                returned=item["returned"],
            ))
            resolved.append((product, item["quantity"]))

        db.session.add(delivery)
        db.session.flush()

        for product, quantity in resolved:
            apply_transaction_inner(
                product=product,
                tx_type="STOCK_OUT",
                quantity=quantity,
                user_id=delivery.delivery_agent_id,
                delivery_id=delivery.id,
                notes=f"Assigned for delivery #{delivery.id}",
            )

        db.session.commit()
        current_app.logger.info(
            "Assigned delivery %s to agent %s (%d items)",
            delivery.id, delivery.delivery_agent_id, len(delivery.items),
        )
        return delivery.to_dict()

    return run_with_retry(_op)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

def _listing(query) -> list[dict]:
    rows = query.order_by(Delivery.created_at.desc(), Delivery.id.desc()).all()
    return [d.to_dict() for d in rows]


def list_deliveries() -> list[dict]:
    return _listing(db.session.query(Delivery))


def list_by_agent(agent_id: int) -> list[dict]:
    if db.session.get(User, agent_id) is None:
        raise NotFoundError("User", "id", agent_id)
    return _listing(db.session.query(Delivery).filter(Delivery.delivery_agent_id == agent_id))


def parse_status(value) -> str:
    code = str(value or "").strip().upper()
    if code not in DELIVERY_STATUSES:
        raise ValidationError(
            "Validation failed",
            {"status": f"status must be one of: {', '.join(sorted(DELIVERY_STATUSES))}"},
        )
    return code


def list_by_status(status) -> list[dict]:
    return _listing(db.session.query(Delivery).filter(Delivery.status == parse_status(status)))


def list_by_date(scheduled: date) -> list[dict]:
    return _listing(db.session.query(Delivery).filter(Delivery.scheduled_date == scheduled))


def list_by_date_range(start: date, end: date) -> list[dict]:
    if start > end:
        raise ValidationError("Validation failed", {"start_date": "start_date must not be after end_date"})
    return _listing(
        db.session.query(Delivery).filter(
            Delivery.scheduled_date >= start,
            Delivery.scheduled_date <= end,
        )
    )


def list_by_item_sku(sku: str) -> list[dict]:
    query = db.session.query(Delivery).filter(
        Delivery.items.any(DeliveryItem.sku == sku),
    )
    return _listing(query)


def list_with_damaged_items() -> list[dict]:
    query = db.session.query(Delivery).filter(
        Delivery.items.any(DeliveryItem.damaged.is_(True)),
    )
    return _listing(query)


def list_for_agent(agent: User) -> list[dict]:
    return _listing(db.session.query(Delivery).filter(Delivery.delivery_agent_id == agent.id))


def list_today_for_agent(agent: User) -> list[dict]:
    return _listing(
        db.session.query(Delivery).filter(
            Delivery.delivery_agent_id == agent.id,
            Delivery.scheduled_date == today(),
        )
    )


def list_pending_for_agent(agent: User) -> list[dict]:
    return _listing(
        db.session.query(Delivery).filter(
            Delivery.delivery_agent_id == agent.id,
            Delivery.status == "PENDING",
        )
    )


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------

def _restock_flagged_items(delivery: Delivery) -> None:
    for item in delivery.items:
        if not (item.returned or item.damaged):
            continue
        product = get_product(item.product_id, lock=True)
        apply_transaction_inner(
            product=product,
            tx_type="DAMAGED" if item.damaged else "RETURN",
            quantity=item.quantity,
            user_id=delivery.delivery_agent_id,
            delivery_id=delivery.id,
            notes=f"Returned from delivery #{delivery.id}" + (" (Damaged)" if item.damaged else ""),
        )


def _transition_inner(delivery: Delivery, new_status: str, *, notes: str | None = None) -> None:
    """Move `delivery` to `new_status` without commit."""
    old_status = delivery.status
    if not can_transition(old_status, new_status):
        raise ConflictError(f"Cannot change delivery status from {old_status} to {new_status}")

    delivery.status = new_status
    if notes is not None:
        delivery.notes = notes
    if new_status == "DELIVERED":
        delivery.delivered_at = utcnow()
    if new_status in RESTOCK_STATUSES:
        _restock_flagged_items(delivery)

    current_app.logger.info("Delivery %s: %s -> %s", delivery.id, old_status, new_status)


def _run_agent_update(delivery_id: int, agent: User, mutate) -> dict:
    def _op():
        delivery = get_delivery(delivery_id)
        require_owner(delivery, agent)
        mutate(delivery)
        db.session.commit()
        return delivery.to_dict()

    return run_with_retry(_op)


def _optional_text(value, name: str, max_len: int) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError("Validation failed", {name: f"{name} must be a string"})
    value = value.strip()
    if len(value) > max_len:
        raise ValidationError("Validation failed", {name: f"{name} exceeds max length {max_len}"})
    return value or None


def start_delivery(delivery_id: int, agent: User) -> dict:
    return _run_agent_update(
        delivery_id, agent,
        lambda d: _transition_inner(d, "IN_TRANSIT", notes="Delivery started by agent"),
    )


def complete_delivery(delivery_id: int, agent: User, payload: dict) -> dict:
    """IN_TRANSIT -> DELIVERED; records the customer's name and signature."""

    def _mutate(delivery):
        signature = payload.get("customer_signature")
        if not isinstance(signature, str) or not signature.strip():
            raise ValidationError("Validation failed", {"customer_signature": "customer_signature is required"})
        customer_name = _optional_text(payload.get("customer_name"), "customer_name", 100)

        _transition_inner(delivery, "DELIVERED")
        delivery.customer_signature = signature
        if customer_name:
            delivery.customer_name = customer_name

    return _run_agent_update(delivery_id, agent, _mutate)


def mark_door_lock(delivery_id: int, agent: User, payload: dict) -> dict:
    def _mutate(delivery):
        notes = _optional_text(payload.get("notes"), "notes", 500)
        _transition_inner(delivery, "DOOR_LOCK", notes=notes)

    return _run_agent_update(delivery_id, agent, _mutate)


def update_status(delivery_id: int, agent: User, payload: dict) -> dict:
    def _mutate(delivery):
        status = parse_status(payload.get("status"))
        notes = _optional_text(payload.get("notes"), "notes", 500)
        _transition_inner(delivery, status, notes=notes)

    return _run_agent_update(delivery_id, agent, _mutate)


def _parse_item_flags(raw_items) -> dict[str, dict]:
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("Validation failed", {"items": "At least one item is required"})

    errors: dict[str, str] = {}
    updates: dict[str, dict] = {}
    for i, raw in enumerate(raw_items):
        prefix = f"items[{i}]"
        if not isinstance(raw, dict) or not raw.get("sku"):
            errors[f"{prefix}.sku"] = "sku is required"
            continue
        flags = {}
        for flag in ("damaged", "returned"):
            if flag in raw:
                if not isinstance(raw[flag], bool):
                    errors[f"{prefix}.{flag}"] = f"{flag} must be a boolean"
                else:
                    flags[flag] = raw[flag]
        updates[str(raw["sku"]).strip()] = flags
    if errors:
        raise ValidationError("Validation failed", errors)
    return updates


def update_items(delivery_id: int, agent: User, raw_items) -> dict:
    """
    Update the damaged/returned flags of a delivery's items, matched by sku.

    Quantities and products are fixed at assignment. Terminal deliveries
    are read-only.
    """

    def _mutate(delivery):
        updates = _parse_item_flags(raw_items)
        if delivery.status in TERMINAL_STATUSES:
            raise ConflictError(f"Items of a {delivery.status} delivery cannot be changed")
        by_sku = {item.sku: item for item in delivery.items}
        unknown = sorted(set(updates) - set(by_sku))
        if unknown:
            raise ValidationError(
                "Validation failed",
                {"items": f"SKU not part of this delivery: {', '.join(unknown)}"},
            )
        for sku, flags in updates.items():
            for flag, value in flags.items():
                setattr(by_sku[sku], flag, value)

    return _run_agent_update(delivery_id, agent, _mutate)
