"""
backend/dependencies.py

Reusable FastAPI dependencies: injected collaborators (settings, store,
identity provider), scoped storage access and the writer identity used by
routes that honour AUTH_MODE.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, Request

from backend.auth_context import get_optional_user, require_auth_context
from backend.config import DEV_USER_EMAIL, DEV_USER_ID, IS_DEV, Settings
from backend.db import Store
from backend.errors import AuthError
from backend.identity import IdentityProvider
from backend.models import AuthenticatedUser, UserRole
from backend.tenant import ElevatedAccess, ScopedAccess
from backend.users import ensure_user_profile


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_store(request: Request) -> Store:
    return request.app.state.store


def get_identity(request: Request) -> IdentityProvider:
    return request.app.state.identity


def get_scoped_access(
    user: AuthenticatedUser = Depends(require_auth_context),
    store: Store = Depends(get_store),
    settings: Settings = Depends(get_settings),
) -> ScopedAccess:
    """
    Storage access bound to the authenticated caller's row policy.
    The ownership guardrail fails fast unless the injected settings are dev.
    """
    return ScopedAccess(store, user, fail_fast=not settings.is_dev)


def get_elevated_access(store: Store = Depends(get_store)) -> ElevatedAccess:
    return ElevatedAccess(store)


def dev_identity() -> AuthenticatedUser:
    """Fixed identity used for writes when AUTH_MODE=bypass."""
    return AuthenticatedUser(id=DEV_USER_ID, email=DEV_USER_EMAIL, role=UserRole.admin)


def resolve_writer(
    user: Optional[AuthenticatedUser],
    settings: Settings,
    store: Store,
) -> AuthenticatedUser:
    """
    Identity for portfolio/property writes.

    - AUTH_MODE=enforced: the authenticated caller (401 otherwise)
    - AUTH_MODE=bypass (dev only): the caller if a session was presented,
      else the fixed development identity

    Raises:
        AuthError: no session in enforced mode
    """
    if user is not None:
        return user

    if settings.auth_bypassed:
        writer = dev_identity()
        ensure_user_profile(store, writer.id, writer.email, "Development User")
        if IS_DEV:
            print(f"[AUTH] Auth bypass active, writing as dev identity user_id={writer.id}")
        return writer

    raise AuthError("No session")


def require_writer_context(
    user: Optional[AuthenticatedUser] = Depends(get_optional_user),
    settings: Settings = Depends(get_settings),
    store: Store = Depends(get_store),
) -> AuthenticatedUser:
    return resolve_writer(user, settings, store)
