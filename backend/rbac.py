"""
backend/rbac.py

Role-Based Access Control (RBAC) for portfolio ownership.

Two roles exist: "client" (default for every mirrored user) and "admin"
(assigned by operators). A portfolio, and every property beneath it, is
accessible to its owner and to admins only.

Pure Python logic - no FastAPI imports, no database access.
"""

from typing import Optional

from backend.errors import AccessDeniedError
from backend.models import AuthenticatedUser, UserRole


class Role:
    """Role constants for RBAC."""
    CLIENT = UserRole.client.value
    ADMIN = UserRole.admin.value


def _role_of(user: AuthenticatedUser) -> str:
    role = user.role
    return role.value if isinstance(role, UserRole) else str(role or Role.CLIENT)


def is_admin(user: Optional[AuthenticatedUser]) -> bool:
    return user is not None and _role_of(user).lower() == Role.ADMIN


def can_access_portfolio(user: Optional[AuthenticatedUser], owner_id: Optional[str]) -> bool:
    """
    Check whether user may read or write a portfolio owned by owner_id.

    Returns:
        True for admins, or when the user owns the portfolio.
        False for anonymous callers and ownerless rows.
    """
    if user is None:
        return False
    if is_admin(user):
        return True
    return bool(owner_id) and user.id == owner_id


def require_portfolio_access(user: Optional[AuthenticatedUser], owner_id: Optional[str], label: str = "") -> None:
    """
    Raise AccessDeniedError unless can_access_portfolio() allows it.
    """
    if not can_access_portfolio(user, owner_id):
        print(f"[SECURITY] Portfolio access denied{f' in {label}' if label else ''}: "
              f"user_id={user.id if user else None}, owner_id={owner_id}")
        raise AccessDeniedError()
