"""
Role definitions.

Every user holds exactly one role. Route access is granted per role with
@require_role(...); ADMIN does not implicitly inherit team routes.
"""

ROLE_ADMIN = "ADMIN"
ROLE_INVTEAM = "INVTEAM"
ROLE_DLTEAM = "DLTEAM"

# (code, description)
ROLE_DEFINITIONS = [
    (ROLE_ADMIN, "User administration: roles, enable/disable, delete"),
    (ROLE_INVTEAM, "Inventory team: products, ledger, delivery assignment"),
    (ROLE_DLTEAM, "Delivery team: works assigned deliveries"),
]

VALID_ROLES = {code for code, _ in ROLE_DEFINITIONS}

# Roles a user may pick for themself at registration
SELF_REGISTRATION_ROLES = {ROLE_INVTEAM, ROLE_DLTEAM}

# New accounts created through Google sign-in
DEFAULT_OAUTH_ROLE = ROLE_DLTEAM


def normalize_role(value) -> str | None:
    """Return the canonical role code for `value`, or None if it isn't one."""
    if not isinstance(value, str):
        return None
    code = value.strip().upper()
    return code if code in VALID_ROLES else None


def has_any_role(user, roles) -> bool:
    return user is not None and user.role in set(roles)
