# Overview: Flask API routes for products operations; parses input and returns JSON responses.

# backend/dlvery/routes/products.py
"""
Product management routes.

SECURITY: All routes require authentication.
- Read operations: INVTEAM or DLTEAM
- Write operations (create, update, delete, quantity adjust): INVTEAM
"""
from flask import Blueprint, request, g

from ..decorators import require_auth, require_role
from ..models import Product
from ..permissions import ROLE_DLTEAM, ROLE_INVTEAM
from ..responses import success
from ..services import inventory_service
from ..services import products_service
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_product,
    parse_date_arg,
    ValidationError,
)

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "sku",
        "name",
        "description",
        "category",
        "damaged",
        "perishable",
        "expiry_date",
        "quantity",
    },
    required_on_create={"sku", "name"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
@require_role(ROLE_INVTEAM, ROLE_DLTEAM)
def list_products():
    """
    List all products with optional pagination.

    Query params:
    - page: int (optional) - page number (1-indexed). If omitted, returns all items.
    - per_page: int (optional) - items per page (default 20, max 100)
    """
    page = request.args.get("page", type=int)
    per_page = request.args.get("per_page", type=int)
    return success(products_service.list_products(page=page, per_page=per_page))


@products_bp.post("")
@require_auth
@require_role(ROLE_INVTEAM)
def create_product_route():
    payload = request.get_json(silent=True) or {}

    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
    enforce_rules_product(patch)

    created = products_service.create_product(patch=patch)
    return success(created, "Product created successfully", 201)


@products_bp.get("/<int:product_id>")
@require_auth
@require_role(ROLE_INVTEAM, ROLE_DLTEAM)
def get_product_route(product_id: int):
    return success(products_service.get_product(product_id).to_dict())


@products_bp.put("/<int:product_id>")
@require_auth
@require_role(ROLE_INVTEAM)
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}

    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
    enforce_rules_product(patch)

    updated = products_service.update_product(product_id=product_id, patch=patch)
    return success(updated, "Product updated successfully")


@products_bp.delete("/<int:product_id>")
@require_auth
@require_role(ROLE_INVTEAM)
def delete_product_route(product_id: int):
    products_service.delete_product(product_id=product_id)
    return success(None, "Product deleted successfully")


@products_bp.patch("/<int:product_id>/quantity")
@require_auth
@require_role(ROLE_INVTEAM)
def adjust_quantity_route(product_id: int):
    """Apply ?quantity_change=<signed int> as an ADJUSTMENT ledger entry."""
    quantity_change = request.args.get("quantity_change", type=int)
    if quantity_change is None:
        raise ValidationError(
            "Validation failed",
            {"quantity_change": "quantity_change must be an integer"},
        )

    updated = inventory_service.adjust_product_quantity(
        product_id=product_id,
        quantity_change=quantity_change,
        user_id=g.current_user.id,
    )
    return success(updated, "Product quantity updated successfully")


@products_bp.get("/sku/<sku>")
@require_auth
@require_role(ROLE_INVTEAM, ROLE_DLTEAM)
def get_product_by_sku_route(sku: str):
    return success(products_service.get_product_by_sku(sku).to_dict())


@products_bp.get("/category/<category>")
@require_auth
@require_role(ROLE_INVTEAM, ROLE_DLTEAM)
def list_by_category_route(category: str):
    return success(products_service.list_by_category(category))


@products_bp.get("/damaged")
@require_auth
@require_role(ROLE_INVTEAM, ROLE_DLTEAM)
def list_damaged_route():
    return success(products_service.list_damaged())


@products_bp.get("/perishable")
@require_auth
@require_role(ROLE_INVTEAM, ROLE_DLTEAM)
def list_perishable_route():
    return success(products_service.list_perishable())


@products_bp.get("/expiring-before")
@require_auth
@require_role(ROLE_INVTEAM, ROLE_DLTEAM)
def list_expiring_before_route():
    cutoff = parse_date_arg(request.args.get("date"), "date")
    return success(products_service.list_expiring_before(cutoff))


@products_bp.get("/expiring-between")
@require_auth
@require_role(ROLE_INVTEAM, ROLE_DLTEAM)
def list_expiring_between_route():
    start = parse_date_arg(request.args.get("start_date"), "start_date")
    end = parse_date_arg(request.args.get("end_date"), "end_date")
    return success(products_service.list_expiring_between(start, end))
