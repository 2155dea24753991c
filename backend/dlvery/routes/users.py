# Overview: Flask API routes for user administration and self-service profiles.

# backend/dlvery/routes/users.py
"""
User routes.

- /api/admin/users (ADMIN): list, look up, enable/disable, change role, delete
- /api/users/profile (any authenticated user): read and update own profile

An admin cannot disable, delete or change the role of their own account.
"""
from flask import Blueprint, request, g

from ..decorators import require_auth, require_role
from ..permissions import ROLE_ADMIN
from ..responses import success
from ..services import user_service


admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin/users")
profile_bp = Blueprint("profile", __name__, url_prefix="/api/users")


@admin_bp.get("")
@require_auth
@require_role(ROLE_ADMIN)
def list_users():
    """
    List users.

    Query params:
    - page: int (optional, 1-indexed). If omitted, returns all users.
    - per_page: int (optional, default 10, max 100)
    - sort_by: id | username | email | full_name | role | created_at (default username)
    - direction: asc | desc (default asc)
    """
    result = user_service.list_users(
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
        sort_by=request.args.get("sort_by", "username"),
        direction=request.args.get("direction", "asc"),
    )
    return success(result)


@admin_bp.get("/<int:user_id>")
@require_auth
@require_role(ROLE_ADMIN)
def get_user(user_id: int):
    return success(user_service.get_user_payload(user_id))


@admin_bp.get("/username/<username>")
@require_auth
@require_role(ROLE_ADMIN)
def get_user_by_username(username: str):
    return success(user_service.get_user_payload_by_username(username))


@admin_bp.get("/role/<role>")
@require_auth
@require_role(ROLE_ADMIN)
def list_users_by_role(role: str):
    return success(user_service.list_users_by_role(role))


@admin_bp.put("/<int:user_id>/disable")
@require_auth
@require_role(ROLE_ADMIN)
def disable_user(user_id: int):
    user = user_service.set_enabled(user_id, False, acting_user=g.current_user)
    return success(user.to_dict(), "User disabled successfully")


@admin_bp.put("/<int:user_id>/enable")
@require_auth
@require_role(ROLE_ADMIN)
def enable_user(user_id: int):
    user = user_service.set_enabled(user_id, True, acting_user=g.current_user)
    return success(user.to_dict(), "User enabled successfully")


@admin_bp.put("/<int:user_id>/role")
@require_auth
@require_role(ROLE_ADMIN)
def update_user_role(user_id: int):
    """Role from JSON body {"role": ...} or ?role= query parameter."""
    body = request.get_json(silent=True) or {}
    role = body.get("role") if isinstance(body, dict) else None
    if role is None:
        role = request.args.get("role")

    user = user_service.update_role(user_id, role, acting_user=g.current_user)
    return success(user.to_dict(), "User role updated successfully")


@admin_bp.delete("/<int:user_id>")
@require_auth
@require_role(ROLE_ADMIN)
def delete_user(user_id: int):
    user_service.delete_user(user_id, acting_user=g.current_user)
    return success(None, "User deleted successfully")


@profile_bp.get("/profile")
@require_auth
def get_profile():
    return success(g.current_user.to_dict())


@profile_bp.put("/profile")
@require_auth
def update_profile():
    payload = request.get_json(silent=True) or {}
    user = user_service.update_profile(g.current_user, payload)
    return success(user.to_dict(), "Profile updated successfully")
