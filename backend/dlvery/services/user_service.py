# Overview: Service-layer operations for user administration and self-service profiles.

"""
User lookups by id, username and role are cached (Flask-Caching) as
serialized dicts. Every mutation of a user goes through
invalidate_user_cache(), which drops the user's keys and all role lists.
Paginated listings are not cached.
"""

from __future__ import annotations

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import cache, db
from ..models import Delivery, InventoryTransaction, User
from ..permissions import VALID_ROLES, normalize_role
from ..responses import paginated
from ..validation import validate_profile_update

SORTABLE_FIELDS = {
    "id": User.id,
    "username": User.username,
    "email": User.email,
    "full_name": User.full_name,
    "role": User.role,
    "created_at": User.created_at,
}


def _id_key(user_id) -> str:
    return f"users:id:{user_id}"


def _username_key(username: str) -> str:
    return f"users:username:{username}"


def _role_key(role: str) -> str:
    return f"users:role:{role}"


def invalidate_user_cache(user: User) -> None:
    keys = [_id_key(user.id), _username_key(user.username)]
    keys.extend(_role_key(role) for role in VALID_ROLES)
    cache.delete_many(*keys)


def ensure_unique_identity(username: str | None, email: str | None, *, exclude_user_id: int | None = None) -> None:
    """Raise ConflictError if another user already holds `username` or `email`."""
    if username is not None:
        q = db.session.query(User.id).filter(User.username == username)
        if exclude_user_id is not None:
            q = q.filter(User.id != exclude_user_id)
        if q.first():
            raise ConflictError("Username is already taken")

    if email is not None:
        q = db.session.query(User.id).filter(db.func.lower(User.email) == email.lower())
        if exclude_user_id is not None:
            q = q.filter(User.id != exclude_user_id)
        if q.first():
            raise ConflictError("Email is already in use")


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User", "id", user_id)
    return user


def get_user_payload(user_id: int) -> dict:
    key = _id_key(user_id)
    payload = cache.get(key)
    if payload is None:
        payload = get_user(user_id).to_dict()
        cache.set(key, payload)
    return payload


def get_user_payload_by_username(username: str) -> dict:
    key = _username_key(username)
    payload = cache.get(key)
    if payload is None:
        user = db.session.query(User).filter(User.username == username).first()
        if user is None:
            raise NotFoundError("User", "username", username)
        payload = user.to_dict()
        cache.set(key, payload)
    return payload


def parse_role(value) -> str:
    role = normalize_role(value)
    if role is None:
        raise ValidationError(f"Invalid role: {value}", {"role": f"Invalid role: {value}"})
    return role


def list_users(
    *,
    page: int | None = None,
    per_page: int | None = None,
    sort_by: str = "username",
    direction: str = "asc",
    role: str | None = None,
) -> dict:
    """
    List users, optionally filtered by role.

    page is 1-indexed; without it every user is returned. per_page defaults
    to 10 (max 100). Unknown sort fields are rejected.
    """
    column = SORTABLE_FIELDS.get(sort_by)
    if column is None:
        raise ValidationError(
            "Validation failed",
            {"sort_by": f"sort_by must be one of: {', '.join(sorted(SORTABLE_FIELDS))}"},
        )
    order = column.desc() if (direction or "").lower() == "desc" else column.asc()

    query = db.session.query(User)
    if role is not None:
        query = query.filter(User.role == parse_role(role))
    query = query.order_by(order, User.id.asc())

    if page is None:
        users = query.all()
        return {"items": [u.to_dict() for u in users], "count": len(users)}

    per_page = min(per_page or 10, 100)
    page = max(page, 1)
    total = query.count()
    users = query.offset((page - 1) * per_page).limit(per_page).all()
    return paginated([u.to_dict() for u in users], page=page, per_page=per_page, total=total)


def list_users_by_role(role) -> list[dict]:
    role = parse_role(role)
    key = _role_key(role)
    payload = cache.get(key)
    if payload is None:
        users = db.session.query(User).filter(User.role == role).order_by(User.username.asc()).all()
        payload = [u.to_dict() for u in users]
        cache.set(key, payload)
    return payload


def set_enabled(user_id: int, enabled: bool, *, acting_user: User) -> User:
    user = get_user(user_id)
    if not enabled and user.id == acting_user.id:
        raise ConflictError("You cannot disable your own account")
    user.enabled = enabled
    db.session.commit()
    invalidate_user_cache(user)
    return user


def update_role(user_id: int, role, *, acting_user: User) -> User:
    role = parse_role(role)
    user = get_user(user_id)
    if user.id == acting_user.id and role != user.role:
        raise ConflictError("You cannot change your own role")
    user.role = role
    db.session.commit()
    invalidate_user_cache(user)
    return user


def delete_user(user_id: int, *, acting_user: User) -> None:
    """
    Hard-delete a user.

    Users referenced by deliveries or ledger entries keep their history and
    are refused; disable them instead.
    """
    user = get_user(user_id)
    if user.id == acting_user.id:
        raise ConflictError("You cannot delete your own account")

    has_deliveries = db.session.query(Delivery.id).filter(Delivery.delivery_agent_id == user.id).first()
    has_ledger = db.session.query(InventoryTransaction.id).filter(InventoryTransaction.user_id == user.id).first()
    if has_deliveries or has_ledger:
        raise ConflictError("User has delivery or inventory history; disable the account instead")

    invalidate_user_cache(user)
    db.session.delete(user)
    db.session.commit()


def update_profile(user: User, payload: dict) -> User:
    data = validate_profile_update(payload)
    ensure_unique_identity(None, data["email"], exclude_user_id=user.id)

    user.full_name = data["full_name"]
    user.email = data["email"]
    user.phone_number = data["phone_number"]
    db.session.commit()
    invalidate_user_cache(user)
    return user
