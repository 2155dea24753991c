# Overview: Service-layer operations for products; catalog CRUD and stock queries.

"""
Products Service

SKUs are globally unique (checked before write, backed by uq_products_sku).
Listings are ordered by name, then id. Quantity changes made through
update_product run under optimistic locking (Product.version_id) with retry;
ledgered quantity moves belong to inventory_service.
"""

from __future__ import annotations

from datetime import date

from flask import current_app

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import DeliveryItem, InventoryTransaction, Product, PRODUCT_CATEGORIES
from ..responses import paginated
from .concurrency import lock_for_update, run_with_retry

PRODUCT_MUTABLE_FIELDS = {
    "sku",
    "name",
    "description",
    "category",
    "damaged",
    "perishable",
    "expiry_date",
    "quantity",
}


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def _ordered(query):
    return query.order_by(Product.name.asc(), Product.id.asc())


def _ensure_sku_available(sku: str, *, exclude_product_id: int | None = None) -> None:
    q = db.session.query(Product.id).filter(Product.sku == sku)
    if exclude_product_id is not None:
        q = q.filter(Product.id != exclude_product_id)
    if q.first():
        raise ConflictError(f"Product with SKU '{sku}' already exists")


def list_products(page: int | None = None, per_page: int | None = None) -> dict:
    """
    Product listing with optional pagination.

    Args:
        page: Page number (1-indexed). If None, returns all items.
        per_page: Items per page (default 20, max 100)
    """
    base_query = _ordered(db.session.query(Product))

    if page is None:
        products = base_query.all()
        return {"items": [p.to_dict() for p in products], "count": len(products)}

    per_page = min(per_page or 20, 100)
    page = max(page, 1)

    total = base_query.count()
    products = base_query.offset((page - 1) * per_page).limit(per_page).all()
    return paginated([p.to_dict() for p in products], page=page, per_page=per_page, total=total)


def get_product(product_id: int, *, lock: bool = False) -> Product:
    query = db.session.query(Product).filter(Product.id == product_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if product is None:
        raise NotFoundError("Product", "id", product_id)
    return product


def get_product_by_sku(sku: str, *, lock: bool = False) -> Product:
    query = db.session.query(Product).filter(Product.sku == sku)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if product is None:
        raise NotFoundError("Product", "sku", sku)
    return product


def create_product(*, patch: dict) -> dict:
    """
    Create product using a validated patch dict.

    Raises:
        ConflictError: If SKU already exists
    """
    _ensure_sku_available(patch["sku"])

    p = Product(quantity=0, damaged=False, perishable=False)
    apply_product_patch(p, patch)

    db.session.add(p)
    db.session.commit()
    current_app.logger.info("Created product %s (id=%s, quantity=%s)", p.sku, p.id, p.quantity)
    return p.to_dict()


def update_product(*, product_id: int, patch: dict) -> dict:
    """
    Update a product.

    Raises:
        NotFoundError: unknown product
        ConflictError: If new SKU already exists
    """
    def _op():
        p = get_product(product_id, lock=True)

        if "sku" in patch and patch["sku"] != p.sku:
            _ensure_sku_available(patch["sku"], exclude_product_id=p.id)

        apply_product_patch(p, patch)
        db.session.commit()
        return p.to_dict()

    return run_with_retry(_op)


def delete_product(*, product_id: int) -> None:
    """
    Hard-delete a product.

    Products referenced by ledger entries or delivery items are refused so
    that history stays intact.
    """
    p = get_product(product_id)

    has_ledger = db.session.query(InventoryTransaction.id).filter(InventoryTransaction.product_id == p.id).first()
    has_items = db.session.query(DeliveryItem.id).filter(DeliveryItem.product_id == p.id).first()
    if has_ledger or has_items:
        raise ConflictError("Product has inventory or delivery history and cannot be deleted")

    db.session.delete(p)
    db.session.commit()
    current_app.logger.info("Deleted product %s (id=%s)", p.sku, product_id)


def list_by_category(category: str) -> list[dict]:
    code = (category or "").strip().upper()
    if code not in PRODUCT_CATEGORIES:
        raise ValidationError(
            "Validation failed",
            {"category": f"category must be one of: {', '.join(sorted(PRODUCT_CATEGORIES))}"},
        )
    products = _ordered(db.session.query(Product).filter(Product.category == code)).all()
    return [p.to_dict() for p in products]


def list_damaged() -> list[dict]:
    products = _ordered(db.session.query(Product).filter(Product.damaged.is_(True))).all()
    return [p.to_dict() for p in products]


def list_perishable() -> list[dict]:
    products = _ordered(db.session.query(Product).filter(Product.perishable.is_(True))).all()
    return [p.to_dict() for p in products]


def list_expiring_before(cutoff: date) -> list[dict]:
    """Products whose expiry_date is strictly before `cutoff`."""
    products = _ordered(
        db.session.query(Product).filter(
            Product.expiry_date.isnot(None),
            Product.expiry_date < cutoff,
        )
    ).all()
    return [p.to_dict() for p in products]


def list_expiring_between(start: date, end: date) -> list[dict]:
    """Products whose expiry_date falls in [start, end]."""
    if start > end:
        raise ValidationError("Validation failed", {"start_date": "start_date must not be after end_date"})
    products = _ordered(
        db.session.query(Product).filter(
            Product.expiry_date.isnot(None),
            Product.expiry_date >= start,
            Product.expiry_date <= end,
        )
    ).all()
    return [p.to_dict() for p in products]
