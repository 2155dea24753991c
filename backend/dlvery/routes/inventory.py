# backend/dlvery/routes/inventory.py
"""
Inventory ledger routes.

SECURITY: All routes require authentication and the INVTEAM role.

Time semantics:
- API accepts ISO-8601 datetimes with Z/offsets; backend normalizes to UTC-naive internally.
- Date-range filtering is inclusive on both ends.
"""
from flask import Blueprint, request, g

from ..decorators import require_auth, require_role
from ..models import InventoryTransaction
from ..permissions import ROLE_INVTEAM
from ..responses import success
from ..services import inventory_service
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_transaction,
    parse_datetime_arg,
)


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory/transactions")

TRANSACTION_POLICY = ModelValidationPolicy(
    writable_fields={"product_id", "sku", "type", "quantity", "delivery_id", "notes"},
    required_on_create={"type", "quantity"},
)


def _time_range():
    start = parse_datetime_arg(request.args.get("start_time"), "start_time")
    end = parse_datetime_arg(request.args.get("end_time"), "end_time")
    return start, end


@inventory_bp.post("")
@require_auth
@require_role(ROLE_INVTEAM)
def create_transaction_route():
    """
    Record an inventory transaction and apply it to the product.

    Body: {"type", "quantity", "product_id" | "sku", "delivery_id"?, "notes"?}
    The authenticated user is recorded on the entry.
    """
    payload = request.get_json(silent=True) or {}

    patch = validate_payload(
        model=InventoryTransaction,
        payload=payload,
        policy=TRANSACTION_POLICY,
        partial=False,
    )
    enforce_rules_transaction(patch)

    created = inventory_service.create_transaction(patch=patch, user_id=g.current_user.id)
    return success(created, "Transaction created successfully", 201)


@inventory_bp.get("")
@require_auth
@require_role(ROLE_INVTEAM)
def list_transactions_route():
    return success(inventory_service.list_transactions())


@inventory_bp.get("/<int:transaction_id>")
@require_auth
@require_role(ROLE_INVTEAM)
def get_transaction_route(transaction_id: int):
    return success(inventory_service.get_transaction(transaction_id))


@inventory_bp.get("/product/<int:product_id>")
@require_auth
@require_role(ROLE_INVTEAM)
def list_by_product_route(product_id: int):
    return success(inventory_service.list_by_product(product_id))


@inventory_bp.get("/sku/<sku>")
@require_auth
@require_role(ROLE_INVTEAM)
def list_by_sku_route(sku: str):
    return success(inventory_service.list_by_sku(sku))


@inventory_bp.get("/type/<tx_type>")
@require_auth
@require_role(ROLE_INVTEAM)
def list_by_type_route(tx_type: str):
    return success(inventory_service.list_by_type(tx_type))


@inventory_bp.get("/user/<int:user_id>")
@require_auth
@require_role(ROLE_INVTEAM)
def list_by_user_route(user_id: int):
    return success(inventory_service.list_by_user(user_id))


@inventory_bp.get("/delivery/<int:delivery_id>")
@require_auth
@require_role(ROLE_INVTEAM)
def list_by_delivery_route(delivery_id: int):
    return success(inventory_service.list_by_delivery(delivery_id))


@inventory_bp.get("/date-range")
@require_auth
@require_role(ROLE_INVTEAM)
def list_by_date_range_route():
    start, end = _time_range()
    return success(inventory_service.list_by_date_range(start, end))


@inventory_bp.get("/product/<int:product_id>/date-range")
@require_auth
@require_role(ROLE_INVTEAM)
def list_by_product_and_date_range_route(product_id: int):
    start, end = _time_range()
    return success(inventory_service.list_by_product_and_date_range(product_id, start, end))
