# Overview: Flask API routes for auth operations; registration, login and Google sign-in.

# backend/dlvery/routes/auth.py
"""
Authentication API routes

- POST /register: self-registration (INVTEAM or DLTEAM, default DLTEAM)
- POST /login: username (or email) + password -> bearer token
- GET /google/callback?code=: Google authorization code -> bearer token
- GET /me: the authenticated user
"""

from flask import Blueprint, request, g

from ..decorators import require_auth
from ..errors import BadCredentialsError
from ..responses import success
from ..services import auth_service
from ..services import google_oauth_service


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/register")
def register_route():
    payload = request.get_json(silent=True) or {}
    user = auth_service.register_user(payload)
    return success(user.to_dict(), "User registered successfully", 201)


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and issue a bearer token.

    Token must be included in Authorization header for protected routes.
    """
    data = request.get_json(silent=True) or {}
    username = data.get("username") or data.get("email")
    password = data.get("password")

    if not isinstance(username, str) or not isinstance(password, str) or not username or not password:
        raise BadCredentialsError("username and password are required")

    user = auth_service.authenticate(username.strip(), password)
    return success(auth_service.login_response(user), "Login successful")


@auth_bp.get("/google/callback")
def google_callback_route():
    code = request.args.get("code", "").strip()
    user = google_oauth_service.login_with_google(code)
    return success(auth_service.login_response(user), "Login successful")


@auth_bp.get("/me")
@require_auth
def me_route():
    return success(g.current_user.to_dict())
