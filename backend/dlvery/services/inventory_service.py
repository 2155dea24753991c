# Overview: Service-layer operations for the inventory ledger; every quantity move is a transaction row.

"""
Inventory ledger invariants

Ledger:
- InventoryTransaction rows are append-only; they are never updated or deleted.
- Each row moves its product's quantity by a signed delta:
    STOCK_IN, RETURN, DAMAGED -> +quantity
    STOCK_OUT, EXPIRED        -> -quantity
    ADJUSTMENT                -> quantity as given (signed, non-zero)
- DAMAGED also flags the product as damaged: it records damaged goods coming
  back into the warehouse (see delivery_service restocking).

Business invariants:
- Product.quantity may never go negative. A transaction that would do so
  raises InsufficientStockError and nothing is written.
- The quantity update and the ledger row are committed together.

Concurrency:
- The product row is read with SELECT ... FOR UPDATE where supported, and
  Product.version_id catches lost updates everywhere else; the whole
  operation is retried by run_with_retry.

Time semantics:
- timestamp is server-assigned (UTC-naive); date-range filters are inclusive.
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app

from ..errors import InsufficientStockError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Delivery, InventoryTransaction, Product, TRANSACTION_TYPES
from ..time_utils import utcnow
from .concurrency import run_with_retry
from .products_service import get_product, get_product_by_sku

# DAMAGED re-stocks and flags the product; it does not write the goods off
QUANTITY_SIGN = {
    "STOCK_IN": 1,
    "RETURN": 1,
    "DAMAGED": 1,
    "STOCK_OUT": -1,
    "EXPIRED": -1,
}


def quantity_delta(tx_type: str, quantity: int) -> int:
    """Signed change to Product.quantity for a ledger entry of `tx_type`."""
    if tx_type == "ADJUSTMENT":
        return quantity
    return QUANTITY_SIGN[tx_type] * quantity


def apply_transaction_inner(
    *,
    product: Product,
    tx_type: str,
    quantity: int,
    user_id: int | None,
    delivery_id: int | None = None,
    notes: str | None = None,
) -> InventoryTransaction:
    """Core ledger logic without locking, retry or commit.

    Called by the public entry points here and by delivery_service, which
    writes several entries inside one transaction.
    """
    delta = quantity_delta(tx_type, quantity)
    new_quantity = product.quantity + delta
    if new_quantity < 0:
        raise InsufficientStockError(product.sku, product.quantity, delta)

    product.quantity = new_quantity
    if tx_type == "DAMAGED":
        product.damaged = True

    tx = InventoryTransaction(
        product_id=product.id,
        sku=product.sku,
        type=tx_type,
        quantity=quantity,
        user_id=user_id,
        delivery_id=delivery_id,
        notes=notes,
        timestamp=utcnow(),
    )
    db.session.add(tx)
    db.session.flush()
    return tx


def create_transaction(*, patch: dict, user_id: int) -> dict:
    """
    Record a ledger entry and apply it to the product.

    `patch` is validated input: type, quantity, and product_id or sku; optional
    delivery_id and notes. The acting user is recorded as user_id.

    Raises:
        ValidationError: no product reference
        NotFoundError: unknown product or delivery
        InsufficientStockError: quantity would go below zero
    """
    product_id = patch.get("product_id")
    sku = patch.get("sku")
    if product_id is None and not sku:
        raise ValidationError("Validation failed", {"product_id": "product_id or sku is required"})

    delivery_id = patch.get("delivery_id")

    def _op():
        if product_id is not None:
            product = get_product(product_id, lock=True)
            if sku and sku != product.sku:
                raise ValidationError("Validation failed", {"sku": "sku does not match product_id"})
        else:
            product = get_product_by_sku(sku, lock=True)

        if delivery_id is not None and db.session.get(Delivery, delivery_id) is None:
            raise NotFoundError("Delivery", "id", delivery_id)

        tx = apply_transaction_inner(
            product=product,
            tx_type=patch["type"],
            quantity=patch["quantity"],
            user_id=user_id,
            delivery_id=delivery_id,
            notes=patch.get("notes"),
        )
        db.session.commit()
        current_app.logger.info(
            "Inventory %s of %s for %s (tx=%s, quantity now %s)",
            tx.type, tx.quantity, tx.sku, tx.id, product.quantity,
        )
        return tx.to_dict()

    return run_with_retry(_op)


def adjust_product_quantity(*, product_id: int, quantity_change: int, user_id: int) -> dict:
    """Apply a signed quantity change to a product as an ADJUSTMENT entry; returns the product."""
    if quantity_change == 0:
        raise ValidationError("Validation failed", {"quantity_change": "quantity_change must be non-zero"})

    def _op():
        product = get_product(product_id, lock=True)
        apply_transaction_inner(
            product=product,
            tx_type="ADJUSTMENT",
            quantity=quantity_change,
            user_id=user_id,
            notes="Manual quantity adjustment",
        )
        db.session.commit()
        return product.to_dict()

    return run_with_retry(_op)


def get_transaction(transaction_id: int) -> dict:
    tx = db.session.get(InventoryTransaction, transaction_id)
    if tx is None:
        raise NotFoundError("Transaction", "id", transaction_id)
    return tx.to_dict()


def _listing(*filters) -> list[dict]:
    rows = (
        db.session.query(InventoryTransaction)
        .filter(*filters)
        .order_by(InventoryTransaction.timestamp.desc(), InventoryTransaction.id.desc())
        .all()
    )
    return [tx.to_dict() for tx in rows]


def list_transactions() -> list[dict]:
    return _listing()


def list_by_product(product_id: int) -> list[dict]:
    get_product(product_id)
    return _listing(InventoryTransaction.product_id == product_id)


def list_by_sku(sku: str) -> list[dict]:
    return _listing(InventoryTransaction.sku == sku)


def list_by_type(tx_type: str) -> list[dict]:
    code = (tx_type or "").strip().upper()
    if code not in TRANSACTION_TYPES:
        raise ValidationError(
            "Validation failed",
            {"type": f"type must be one of: {', '.join(sorted(TRANSACTION_TYPES))}"},
        )
    return _listing(InventoryTransaction.type == code)


def list_by_user(user_id: int) -> list[dict]:
    return _listing(InventoryTransaction.user_id == user_id)


def list_by_delivery(delivery_id: int) -> list[dict]:
    return _listing(InventoryTransaction.delivery_id == delivery_id)


def _check_range(start: datetime, end: datetime) -> None:
    if start > end:
        raise ValidationError("Validation failed", {"start_time": "start_time must not be after end_time"})


def list_by_date_range(start: datetime, end: datetime) -> list[dict]:
    _check_range(start, end)
    return _listing(
        InventoryTransaction.timestamp >= start,
        InventoryTransaction.timestamp <= end,
    )


def list_by_product_and_date_range(product_id: int, start: datetime, end: datetime) -> list[dict]:
    _check_range(start, end)
    get_product(product_id)
    return _listing(
        InventoryTransaction.product_id == product_id,
        InventoryTransaction.timestamp >= start,
        InventoryTransaction.timestamp <= end,
    )
