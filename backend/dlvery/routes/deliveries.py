# Overview: Flask API routes for deliveries; inventory-team assignment and delivery-team updates.

# backend/dlvery/routes/deliveries.py
"""
Delivery routes.

Two blueprints:
- /api/invteam/deliveries (INVTEAM): assign deliveries and query all of them
- /api/dlteam/deliveries (DLTEAM): an agent's own deliveries and status updates

SECURITY: Delivery-team routes only ever touch deliveries assigned to the
authenticated agent; anything else is 403.

Update endpoints read their fields from the JSON body, falling back to
query parameters (customer_name, customer_signature, notes, status).
"""
from flask import Blueprint, request, g

from ..decorators import require_auth, require_role
from ..permissions import ROLE_DLTEAM, ROLE_INVTEAM
from ..responses import success
from ..services import delivery_service
from ..validation import parse_date_arg


invteam_bp = Blueprint("invteam_deliveries", __name__, url_prefix="/api/invteam/deliveries")
dlteam_bp = Blueprint("dlteam_deliveries", __name__, url_prefix="/api/dlteam/deliveries")


def _update_params() -> dict:
    params = request.args.to_dict()
    body = request.get_json(silent=True)
    if isinstance(body, dict):
        params.update(body)
    return params


# ---------------------------------------------------------------------------
# Inventory team
# ---------------------------------------------------------------------------

@invteam_bp.post("")
@require_auth
@require_role(ROLE_INVTEAM)
def assign_delivery_route():
    """
    Assign a delivery to a delivery agent.

    Body: {"delivery_agent_id", "items": [{"sku" | "product_id", "quantity"}],
           "customer_name"?, "customer_address"?, "customer_phone"?,
           "priority"?, "scheduled_date"?, "notes"?}

    Every item is taken out of stock (STOCK_OUT) in the same transaction.
    """
    payload = request.get_json(silent=True) or {}
    created = delivery_service.assign_delivery(payload)
    return success(created, "Delivery assigned successfully", 201)


@invteam_bp.get("")
@require_auth
@require_role(ROLE_INVTEAM)
def list_deliveries_route():
    return success(delivery_service.list_deliveries())


@invteam_bp.get("/<int:delivery_id>")
@require_auth
@require_role(ROLE_INVTEAM)
def get_delivery_route(delivery_id: int):
    return success(delivery_service.get_delivery(delivery_id).to_dict())


@invteam_bp.get("/agent/<int:agent_id>")
@require_auth
@require_role(ROLE_INVTEAM)
def list_by_agent_route(agent_id: int):
    return success(delivery_service.list_by_agent(agent_id))


@invteam_bp.get("/status/<status>")
@require_auth
@require_role(ROLE_INVTEAM)
def list_by_status_route(status: str):
    return success(delivery_service.list_by_status(status))


@invteam_bp.get("/date/<scheduled>")
@require_auth
@require_role(ROLE_INVTEAM)
def list_by_date_route(scheduled: str):
    return success(delivery_service.list_by_date(parse_date_arg(scheduled, "date")))


@invteam_bp.get("/date-range")
@require_auth
@require_role(ROLE_INVTEAM)
def list_by_date_range_route():
    start = parse_date_arg(request.args.get("start_date"), "start_date")
    end = parse_date_arg(request.args.get("end_date"), "end_date")
    return success(delivery_service.list_by_date_range(start, end))


@invteam_bp.get("/sku/<sku>")
@require_auth
@require_role(ROLE_INVTEAM)
def list_by_sku_route(sku: str):
    return success(delivery_service.list_by_item_sku(sku))


@invteam_bp.get("/damaged")
@require_auth
@require_role(ROLE_INVTEAM)
def list_damaged_route():
    return success(delivery_service.list_with_damaged_items())


# ---------------------------------------------------------------------------
# Delivery team
# ---------------------------------------------------------------------------

@dlteam_bp.get("/my")
@require_auth
@require_role(ROLE_DLTEAM)
def my_deliveries_route():
    return success(delivery_service.list_for_agent(g.current_user))


@dlteam_bp.get("/my/today")
@require_auth
@require_role(ROLE_DLTEAM)
def my_today_route():
    return success(delivery_service.list_today_for_agent(g.current_user))


@dlteam_bp.get("/my/pending")
@require_auth
@require_role(ROLE_DLTEAM)
def my_pending_route():
    return success(delivery_service.list_pending_for_agent(g.current_user))


@dlteam_bp.get("/<int:delivery_id>")
@require_auth
@require_role(ROLE_DLTEAM)
def my_delivery_route(delivery_id: int):
    return success(delivery_service.get_delivery_for_agent(delivery_id, g.current_user))


@dlteam_bp.put("/<int:delivery_id>/start")
@require_auth
@require_role(ROLE_DLTEAM)
def start_delivery_route(delivery_id: int):
    updated = delivery_service.start_delivery(delivery_id, g.current_user)
    return success(updated, "Delivery status updated to IN_TRANSIT")


@dlteam_bp.put("/<int:delivery_id>/complete")
@require_auth
@require_role(ROLE_DLTEAM)
def complete_delivery_route(delivery_id: int):
    updated = delivery_service.complete_delivery(delivery_id, g.current_user, _update_params())
    return success(updated, "Delivery completed successfully")


@dlteam_bp.put("/<int:delivery_id>/door-lock")
@require_auth
@require_role(ROLE_DLTEAM)
def door_lock_route(delivery_id: int):
    updated = delivery_service.mark_door_lock(delivery_id, g.current_user, _update_params())
    return success(updated, "Delivery marked as door lock")


@dlteam_bp.put("/<int:delivery_id>/status")
@require_auth
@require_role(ROLE_DLTEAM)
def update_status_route(delivery_id: int):
    updated = delivery_service.update_status(delivery_id, g.current_user, _update_params())
    return success(updated, "Delivery status updated successfully")


@dlteam_bp.put("/<int:delivery_id>/items")
@require_auth
@require_role(ROLE_DLTEAM)
def update_items_route(delivery_id: int):
    """Body: a list of {"sku", "damaged"?, "returned"?} (or {"items": [...]})."""
    body = request.get_json(silent=True)
    if isinstance(body, dict):
        body = body.get("items")

    updated = delivery_service.update_items(delivery_id, g.current_user, body)
    return success(updated, "Delivery items updated successfully")
