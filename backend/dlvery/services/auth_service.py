# Overview: Service-layer operations for auth; password hashing, registration and login.

"""
Authentication Service

Uses bcrypt for password hashing (cost factor BCRYPT_ROUNDS, default 12).
Usernames and emails are globally unique; uniqueness is checked before
insert and backed by unique constraints.

Self-registration may pick INVTEAM or DLTEAM (DLTEAM when omitted). ADMIN
accounts are created with `flask users create` or promoted by an admin.
"""

import bcrypt
from flask import current_app

from ..errors import BadCredentialsError, ValidationError
from ..extensions import db
from ..models import User
from ..permissions import ROLE_DLTEAM, SELF_REGISTRATION_ROLES, VALID_ROLES
from ..time_utils import utcnow, to_utc_z
from ..validation import validate_registration
from . import session_service
from .user_service import ensure_unique_identity, invalidate_user_cache


def hash_password(password: str) -> str:
    salt = bcrypt.gensalt(rounds=current_app.config.get("BCRYPT_ROUNDS", 12))
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    bcrypt.checkpw() compares in constant time. A malformed stored hash
    never authenticates.
    """
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def create_user(
    username: str,
    email: str,
    password: str,
    role: str,
    full_name: str | None = None,
    phone_number: str | None = None,
) -> User:
    """
    Create a user with a bcrypt password hash.

    Raises:
        ValidationError: unknown role
        ConflictError: username or email already exists
    """
    if role not in VALID_ROLES:
        raise ValidationError("Validation failed", {"role": f"Invalid role: {role}"})

    ensure_unique_identity(username, email)

    user = User(
        username=username,
        email=email,
        password_hash=hash_password(password),
        full_name=full_name,
        role=role,
        phone_number=phone_number,
        enabled=True,
    )

    db.session.add(user)
    db.session.commit()
    invalidate_user_cache(user)
    return user


def register_user(payload: dict) -> User:
    data = validate_registration(payload)

    role = data["role"] or ROLE_DLTEAM
    if role not in SELF_REGISTRATION_ROLES:
        raise ValidationError(
            "Validation failed",
            {"role": f"Role {role} cannot be chosen at registration"},
        )

    user = create_user(
        username=data["username"],
        email=data["email"],
        password=data["password"],
        role=role,
        full_name=data["full_name"],
        phone_number=data["phone_number"],
    )
    current_app.logger.info("Registered user %s (id=%s, role=%s)", user.username, user.id, user.role)
    return user


def authenticate(username: str, password: str) -> User:
    """
    Authenticate with username (or email) and password.

    Updates last_login_at on success.

    Raises:
        BadCredentialsError: unknown user, wrong password or disabled account
    """
    user = db.session.query(User).filter(
        db.or_(User.username == username, db.func.lower(User.email) == username.lower()),
    ).first()

    if not user or not verify_password(password, user.password_hash):
        raise BadCredentialsError()

    if not user.enabled:
        raise BadCredentialsError("Account is disabled")

    record_login(user)
    return user


def record_login(user: User) -> None:
    user.last_login_at = utcnow()
    db.session.commit()
    invalidate_user_cache(user)


def login_response(user: User) -> dict:
    token, expires_at = session_service.issue_token(user)
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "full_name": user.full_name,
        "role": user.role,
        "token": token,
        "token_type": "Bearer",
        "expires_at": to_utc_z(expires_at),
    }
