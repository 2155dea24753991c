# Overview: Request authentication and role decorators for API routes.

from functools import wraps

from flask import request, g

from .errors import AccessDeniedError, BadCredentialsError
from .permissions import has_any_role
from .services import session_service


def _is_authenticated() -> bool:
    return hasattr(g, 'current_user')


def require_auth(f):
    """
    Require a valid bearer token.

    Sets the following Flask g attributes:
    - g.current_user: The authenticated User object
    - g.session_context: The full SessionContext object

    Raises BadCredentialsError (401) if:
    - No Authorization header
    - Invalid or expired token
    - User deleted or disabled
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            raise BadCredentialsError("Authentication required")

        token = auth_header.split(" ", 1)[1].strip()

        context = session_service.validate_session(token)
        if not context:
            raise BadCredentialsError("Invalid or expired token")

        g.current_user = context.user
        g.session_context = context

        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """Require the authenticated user to hold one of `roles`. Use below @require_auth."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                raise BadCredentialsError("Authentication required")

            if not has_any_role(g.current_user, roles):
                raise AccessDeniedError()

            return f(*args, **kwargs)

        return decorated_function
    return decorator
