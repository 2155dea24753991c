# Overview: Google sign-in via the OAuth authorization code flow.

"""
Google OAuth Service

The frontend sends the authorization code it received from Google. The code
is exchanged for an ID token at GOOGLE_TOKEN_URL, and the ID token is
verified against GOOGLE_TOKENINFO_URL. The verified email identifies the
account:

- existing user with that email (case-insensitive) -> signed in
- otherwise a new DLTEAM user is created with username = email and a random
  password (the account can only sign in through Google until the password
  is changed out of band)

Every failure surfaces as BadCredentialsError (401); the upstream detail is
logged, not returned.
"""

from __future__ import annotations

import secrets

import httpx
from flask import current_app

from ..errors import BadCredentialsError
from ..extensions import db
from ..models import User
from ..permissions import DEFAULT_OAUTH_ROLE
from .auth_service import create_user, record_login


def _http_client() -> httpx.Client:
    return httpx.Client(timeout=current_app.config["GOOGLE_HTTP_TIMEOUT"])


def _json_object(response: httpx.Response, what: str) -> dict:
    try:
        body = response.json()
    except ValueError as exc:
        current_app.logger.warning("Google %s response is not JSON", what)
        raise BadCredentialsError("Google sign-in failed") from exc
    if not isinstance(body, dict):
        current_app.logger.warning("Google %s response is not a JSON object", what)
        raise BadCredentialsError("Google sign-in failed")
    return body


def exchange_code(code: str) -> str:
    """Trade an authorization code for Google's ID token."""
    cfg = current_app.config
    form = {
        "code": code,
        "client_id": cfg["GOOGLE_CLIENT_ID"],
        "client_secret": cfg["GOOGLE_CLIENT_SECRET"],
        "redirect_uri": cfg["GOOGLE_REDIRECT_URI"],
        "grant_type": "authorization_code",
    }
    try:
        with _http_client() as client:
            response = client.post(cfg["GOOGLE_TOKEN_URL"], data=form)
    except httpx.HTTPError as exc:
        current_app.logger.warning("Google token exchange failed: %s", exc)
        raise BadCredentialsError("Google sign-in failed") from exc

    if response.status_code != 200:
        current_app.logger.warning(
            "Google token exchange rejected (%s): %s", response.status_code, response.text[:200],
        )
        raise BadCredentialsError("Google sign-in failed")

    id_token = _json_object(response, "token").get("id_token")
    if not id_token:
        current_app.logger.warning("Google token response carried no id_token")
        raise BadCredentialsError("Google sign-in failed")
    return id_token


def verify_id_token(id_token: str) -> dict:
    """Return the token's claims once Google confirms it was issued for this client."""
    cfg = current_app.config
    try:
        with _http_client() as client:
            response = client.get(cfg["GOOGLE_TOKENINFO_URL"], params={"id_token": id_token})
    except httpx.HTTPError as exc:
        current_app.logger.warning("Google tokeninfo request failed: %s", exc)
        raise BadCredentialsError("Google sign-in failed") from exc

    if response.status_code != 200:
        current_app.logger.warning("Google rejected id_token (%s)", response.status_code)
        raise BadCredentialsError("Google sign-in failed")

    claims = _json_object(response, "tokeninfo")

    client_id = cfg.get("GOOGLE_CLIENT_ID")
    if client_id and claims.get("aud") != client_id:
        current_app.logger.warning("Google id_token audience mismatch: %s", claims.get("aud"))
        raise BadCredentialsError("Google sign-in failed")

    # tokeninfo returns booleans as strings
    if str(claims.get("email_verified", "")).lower() != "true":
        raise BadCredentialsError("Google account email is not verified")

    if not claims.get("email"):
        raise BadCredentialsError("Google account has no email")

    return claims


def login_with_google(code: str) -> User:
    if not code:
        raise BadCredentialsError("Authorization code is required")

    claims = verify_id_token(exchange_code(code))
    email = claims["email"].strip().lower()

    user = db.session.query(User).filter(db.func.lower(User.email) == email).first()
    if user is None:
        user = create_user(
            username=email,
            email=email,
            password=secrets.token_urlsafe(32),
            role=DEFAULT_OAUTH_ROLE,
            full_name=(claims.get("name") or "")[:100] or None,
        )
        current_app.logger.info("Created user %s (id=%s) from Google sign-in", user.username, user.id)

    if not user.enabled:
        raise BadCredentialsError("Account is disabled")

    record_login(user)
    return user
