"""
backend/auth_context.py

Shared authentication primitives for FastAPI dependency injection.
This module breaks the circular import between main.py and dependencies.py.

Contains:
- verify_token: local JWT verification (when AUTH_JWT_SECRET is configured)
- authenticate: token -> AuthenticatedUser (identity provider + user mirror)
- get_optional_user / require_auth_context: FastAPI dependencies

This module MUST NOT import backend.main to avoid circular dependencies.
"""

from __future__ import annotations

from typing import Optional

import jwt
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from backend.config import ALGORITHM, IS_DEV, Settings
from backend.db import Store
from backend.errors import AuthError
from backend.identity import IdentityProvider
from backend.models import AuthenticatedUser, UserRole
from backend.users import ensure_user_profile

# Security scheme; missing header is handled here so the cookie can be tried
security = HTTPBearer(auto_error=False)


# ---------------------------------------------------------
# JWT Token Verification
# ---------------------------------------------------------
def verify_token(token: str, settings: Settings) -> dict:
    """
    Verify an access token signed by the identity provider.

    Raises:
        AuthError: If token is expired, invalid or has no subject
    """
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[ALGORITHM],
            audience=settings.jwt_audience,
        )
    except jwt.ExpiredSignatureError:
        if IS_DEV:
            print("[AUTH] Token expired")
        raise AuthError("Token expired")
    except jwt.InvalidTokenError as e:
        if IS_DEV:
            print(f"[AUTH] Invalid token: {type(e).__name__}")
        raise AuthError("Invalid token")

    if not payload.get("sub"):
        print("[AUTH] Missing user_id in token payload")
        raise AuthError("Invalid token payload")
    return payload


def authenticate(
    token: Optional[str],
    settings: Settings,
    store: Store,
    identity: IdentityProvider,
) -> AuthenticatedUser:
    """
    Resolve the presented token to an AuthenticatedUser.

    Process:
    1. Verify the token locally (JWT secret) or through the identity provider
    2. Mirror the user into the users table (created on first access)
    3. Take the role from the mirror (operators assign it; default client)

    Raises:
        AuthError: no token, token rejected, or identity provider unreachable
    """
    if not token:
        raise AuthError("No session")

    if settings.jwt_secret:
        payload = verify_token(token, settings)
        user_id = str(payload["sub"])
        email = payload.get("email") or None
        name = (payload.get("user_metadata") or {}).get("name")
    else:
        resolved = identity.fetch_user(token)
        user_id = resolved["id"]
        email = resolved["email"]
        name = None

    profile = ensure_user_profile(store, user_id, email, name)
    role = profile.get("role") or UserRole.client.value

    user = AuthenticatedUser(id=user_id, email=profile.get("email") or email, role=role)
    if IS_DEV:
        print(f"[AUTH] Authenticated: user_id={user.id}, role={user.role.value}")
    return user


def extract_token(request: Request, credentials: Optional[HTTPAuthorizationCredentials], settings: Settings) -> Optional[str]:
    """Bearer header first, then the session cookie."""
    if credentials and credentials.credentials:
        return credentials.credentials
    return request.cookies.get(settings.session_cookie_name) or None


def get_optional_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[AuthenticatedUser]:
    """
    Authenticated user, or None when no credentials were presented.
    A presented-but-invalid token still raises AuthError.
    """
    settings: Settings = request.app.state.settings
    token = extract_token(request, credentials, settings)
    if not token:
        return None
    return authenticate(token, settings, request.app.state.store, request.app.state.identity)


def require_auth_context(
    user: Optional[AuthenticatedUser] = Depends(get_optional_user),
) -> AuthenticatedUser:
    """
    Auth dependency for protected routes.

    Usage:
        @router.get("/protected")
        def protected_route(user: AuthenticatedUser = Depends(require_auth_context)):
            ...

    Raises:
        AuthError: answered as 401 {"error": "Unauthorized"}
    """
    if user is None:
        raise AuthError("No session")
    return user
