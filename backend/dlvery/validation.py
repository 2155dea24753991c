from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

from sqlalchemy import Boolean, Date, DateTime, Integer, String, Text
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError, ConflictError  # noqa: F401  (re-exported)
from .models import PRODUCT_CATEGORIES, TRANSACTION_TYPES, DELIVERY_PRIORITIES, DELIVERY_STATUSES
from .permissions import normalize_role
from .time_utils import parse_iso_date, parse_iso_datetime


EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
PHONE_RE = re.compile(r"^\+?[0-9]{10,15}$")

# Minimum lengths; maximums come from the String(n) column metadata
MIN_LENGTHS = {
    "username": 3,
    "sku": 3,
    "name": 2,
}
PASSWORD_MIN_LENGTH = 6


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped or 'e' in stripped.lower() or '.' in stripped:
                raise ValidationError(f"{col.key} must be an integer")
            try:
                return int(stripped)
            except ValueError:
                raise ValidationError(f"{col.key} must be an integer")
        raise ValidationError(f"{col.key} must be an integer")

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in ("true", "false"):
            return value.strip().lower() == "true"
        raise ValidationError(f"{col.key} must be a boolean")

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    if isinstance(coltype, Date):
        if isinstance(value, date) and not isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                d = parse_iso_date(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be a date (YYYY-MM-DD)")
            if d is None:
                raise ValidationError(f"{col.key} must be a date (YYYY-MM-DD)")
            return d
        raise ValidationError(f"{col.key} must be a date (YYYY-MM-DD)")

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    Every problem is collected; the raised ValidationError carries one
    message per offending field.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    errors: dict[str, str] = {}

    required = policy.required_on_create or set()
    if not partial:
        for f in sorted(required):
            if f not in payload:
                errors[f] = f"{f} is required"

    cols = _columns_by_key(model)
    patch: dict = {}

    for k, raw in payload.items():
        if k not in policy.writable_fields or k not in cols:
            errors[k] = f"Field not allowed: {k}"
            continue
        col = cols[k]

        if raw is None:
            if not col.nullable:
                errors[k] = f"{k} cannot be null"
            else:
                patch[k] = None
            continue

        try:
            val = _coerce_value(col, raw)
        except ValidationError as e:
            errors[k] = e.message
            continue

        if isinstance(col.type, (String, Text)) and isinstance(val, str):
            if not col.nullable and val == "":
                errors[k] = f"{k} cannot be blank"
                continue
            if isinstance(col.type, String) and col.type.length and len(val) > col.type.length:
                errors[k] = f"{k} exceeds max length {col.type.length}"
                continue
            min_len = MIN_LENGTHS.get(k)
            if min_len and len(val) < min_len:
                errors[k] = f"{k} must be at least {min_len} characters"
                continue

        patch[k] = val

    if errors:
        raise ValidationError("Validation failed", errors)
    return patch


def _check_enum(patch: dict, key: str, allowed: set[str], errors: dict) -> None:
    if key in patch and patch[key] is not None:
        value = str(patch[key]).upper()
        if value not in allowed:
            errors[key] = f"{key} must be one of: {', '.join(sorted(allowed))}"
        else:
            patch[key] = value


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    errors: dict[str, str] = {}
    _check_enum(patch, "category", PRODUCT_CATEGORIES, errors)
    if "quantity" in patch and patch["quantity"] is not None and patch["quantity"] < 0:
        errors["quantity"] = "Quantity cannot be negative"
    if errors:
        raise ValidationError("Validation failed", errors)


def enforce_rules_transaction(patch: dict) -> None:
    # ADJUSTMENT carries a signed delta; every other type a positive quantity
    errors: dict[str, str] = {}
    _check_enum(patch, "type", TRANSACTION_TYPES, errors)
    qty = patch.get("quantity")
    if "type" not in errors and qty is not None:
        if patch.get("type") == "ADJUSTMENT":
            if qty == 0:
                errors["quantity"] = "quantity must be non-zero for ADJUSTMENT"
        elif qty <= 0:
            errors["quantity"] = "quantity must be > 0"
    if errors:
        raise ValidationError("Validation failed", errors)


def enforce_rules_delivery(patch: dict) -> None:
    errors: dict[str, str] = {}
    _check_enum(patch, "priority", DELIVERY_PRIORITIES, errors)
    _check_enum(patch, "status", DELIVERY_STATUSES, errors)
    phone = patch.get("customer_phone")
    if phone and not PHONE_RE.match(phone):
        errors["customer_phone"] = "Phone number must be between 10 and 15 digits"
    if errors:
        raise ValidationError("Validation failed", errors)


def validate_delivery_items(raw_items) -> list[dict]:
    """
    Normalize the items of a new delivery.

    Each item names its product by "sku" or "product_id" and carries a
    positive integer "quantity". A product may appear only once per
    delivery. Errors are keyed "items[<index>].<field>".
    """
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("Validation failed", {"items": "At least one item is required"})

    errors: dict[str, str] = {}
    items: list[dict] = []
    seen_skus: set[str] = set()
    seen_ids: set = set()
    for i, raw in enumerate(raw_items):
        prefix = f"items[{i}]"
        if not isinstance(raw, dict):
            errors[prefix] = "Item must be an object"
            continue
        sku = str(raw["sku"]).strip() if raw.get("sku") else None
        product_id = raw.get("product_id")
        if not sku and product_id is None:
            errors[f"{prefix}.sku"] = "sku or product_id is required"
        elif product_id is not None:
            if isinstance(product_id, bool) or not isinstance(product_id, int):
                errors[f"{prefix}.product_id"] = "product_id must be an integer"
            elif product_id in seen_ids:
                errors[f"{prefix}.product_id"] = f"Duplicate product_id {product_id}"
            else:
                seen_ids.add(product_id)
        elif sku in seen_skus:
            errors[f"{prefix}.sku"] = f"Duplicate sku {sku}"
        if sku and product_id is None:
            seen_skus.add(sku)
        qty = raw.get("quantity")
        if isinstance(qty, bool) or not isinstance(qty, int) or qty <= 0:
            errors[f"{prefix}.quantity"] = "quantity must be a positive integer"
        flags = {}
        for flag in ("damaged", "returned"):
            value = raw.get(flag, False)
            if not isinstance(value, bool):
                errors[f"{prefix}.{flag}"] = f"{flag} must be a boolean"
            flags[flag] = value is True
        items.append({"sku": sku, "product_id": product_id, "quantity": qty, **flags})

    if errors:
        raise ValidationError("Validation failed", errors)
    return items


def _string_field(payload: dict, key: str, errors: dict, *, required: bool, max_len: int | None = None,
                  min_len: int | None = None) -> str | None:
    raw = payload.get(key)
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        if required:
            errors[key] = f"{key} is required"
        return None
    if not isinstance(raw, str):
        errors[key] = f"{key} must be a string"
        return None
    value = raw.strip()
    if min_len and len(value) < min_len:
        errors[key] = f"{key} must be at least {min_len} characters"
    elif max_len and len(value) > max_len:
        errors[key] = f"{key} must be at most {max_len} characters"
    return value


def validate_registration(payload: dict) -> dict:
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    errors: dict[str, str] = {}
    username = _string_field(payload, "username", errors, required=True, min_len=3, max_len=20)
    email = _string_field(payload, "email", errors, required=True, max_len=255)
    full_name = _string_field(payload, "full_name", errors, required=False, max_len=100)
    phone_number = _string_field(payload, "phone_number", errors, required=False, max_len=16)

    password = payload.get("password")
    if not isinstance(password, str) or not password:
        errors["password"] = "password is required"
    elif len(password) < PASSWORD_MIN_LENGTH:
        errors["password"] = f"Password must be at least {PASSWORD_MIN_LENGTH} characters"

    if email and "email" not in errors and not EMAIL_RE.match(email):
        errors["email"] = "Invalid email format"
    if phone_number and "phone_number" not in errors and not PHONE_RE.match(phone_number):
        errors["phone_number"] = "Phone number must be between 10 and 15 digits"

    role = None
    if payload.get("role") is not None:
        role = normalize_role(payload.get("role"))
        if role is None:
            errors["role"] = f"Invalid role: {payload.get('role')}"

    if errors:
        raise ValidationError("Validation failed", errors)

    return {
        "username": username,
        "email": email.lower(),
        "password": password,
        "full_name": full_name,
        "phone_number": phone_number,
        "role": role,
    }


def validate_profile_update(payload: dict) -> dict:
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    errors: dict[str, str] = {}
    full_name = _string_field(payload, "full_name", errors, required=True, max_len=100)
    email = _string_field(payload, "email", errors, required=True, max_len=255)
    phone_number = _string_field(payload, "phone_number", errors, required=False, max_len=16)

    if full_name is None and "full_name" in errors:
        errors["full_name"] = "Full name is required"
    if email is None and "email" in errors:
        errors["email"] = "Email is required"
    elif email and not EMAIL_RE.match(email):
        errors["email"] = "Invalid email format"
    if phone_number and "phone_number" not in errors and not PHONE_RE.match(phone_number):
        errors["phone_number"] = "Phone number must be between 10 and 15 digits"

    if errors:
        raise ValidationError("Validation failed", errors)

    return {"full_name": full_name, "email": email.lower(), "phone_number": phone_number}


def parse_date_arg(value: str | None, name: str) -> date:
    """Required YYYY-MM-DD query/path argument."""
    try:
        d = parse_iso_date(value)
    except ValueError:
        d = None
    if d is None:
        raise ValidationError("Validation failed", {name: f"{name} must be a date (YYYY-MM-DD)"})
    return d


def parse_datetime_arg(value: str | None, name: str) -> datetime:
    """Required ISO-8601 datetime query argument."""
    try:
        dt = parse_iso_datetime(value)
    except ValueError:
        dt = None
    if dt is None:
        raise ValidationError("Validation failed", {name: f"{name} must be an ISO-8601 datetime"})
    return dt
