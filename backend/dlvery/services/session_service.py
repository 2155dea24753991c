# Overview: JWT bearer token issuance and validation.

"""
Session tokens are stateless JWTs signed with JWT_SECRET_KEY.

Claims:
- sub: user id (string)
- username, role: informational copies for clients
- iat / exp: issue and expiry times (JWT_EXPIRATION_MINUTES)

Validation always reloads the user, so a disabled or deleted account loses
access immediately even while its token is unexpired, and role changes take
effect on the next request.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app

from ..extensions import db
from ..models import User


@dataclass
class SessionContext:
    """Authenticated identity for one request."""
    user: User
    claims: dict


def issue_token(user: User) -> tuple[str, datetime]:
    """Return (token, expires_at) for `user`."""
    now = datetime.now(timezone.utc)
    expires_at = now + timedelta(minutes=current_app.config["JWT_EXPIRATION_MINUTES"])
    payload = {
        "sub": str(user.id),
        "username": user.username,
        "role": user.role,
        "iat": now,
        "exp": expires_at,
    }
    token = jwt.encode(
        payload,
        current_app.config["JWT_SECRET_KEY"],
        algorithm=current_app.config["JWT_ALGORITHM"],
    )
    return token, expires_at.replace(tzinfo=None)


def decode_token(token: str) -> dict | None:
    """Return the verified claims, or None if the token is malformed, forged or expired."""
    try:
        return jwt.decode(
            token,
            current_app.config["JWT_SECRET_KEY"],
            algorithms=[current_app.config["JWT_ALGORITHM"]],
            options={"require": ["sub", "exp"]},
        )
    except jwt.InvalidTokenError:
        return None


def validate_session(token: str) -> SessionContext | None:
    claims = decode_token(token)
    if claims is None:
        return None

    try:
        user_id = int(claims["sub"])
    except (TypeError, ValueError):
        return None

    user = db.session.get(User, user_id)
    if user is None or not user.enabled:
        return None

    return SessionContext(user=user, claims=claims)
