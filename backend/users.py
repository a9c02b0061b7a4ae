"""
backend/users.py

Local mirror of identity-provider users (the `users` table).

The identity provider owns accounts; this table only mirrors id, email,
display name and role so ownership checks and operator tooling can work
against local storage. Rows are created lazily on first authenticated access.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError

from backend.config import IS_DEV
from backend.db import Store
from backend.errors import NotFoundError, StorageError, ValidationError
from backend.models import UserRole


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def get_user_profile(store: Store, user_id: str) -> Optional[Dict[str, Any]]:
    return store.fetch_one(
        "fetch user profile",
        "SELECT id, email, name, role, created_at, updated_at FROM users WHERE id = :id",
        {"id": user_id},
    )


def get_user_by_email(store: Store, email: str) -> Optional[Dict[str, Any]]:
    return store.fetch_one(
        "fetch user profile",
        "SELECT id, email, name, role, created_at, updated_at FROM users WHERE email = :email",
        {"email": email},
    )


def ensure_user_profile(
    store: Store,
    user_id: str,
    email: Optional[str],
    name: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Return the mirror row for user_id, creating it if needed.

    If the identity provider re-issued the account under a new id, the old row
    (matched by email) is re-keyed to the new id; when the re-key itself
    conflicts, the old row is dropped and a fresh one inserted.
    """
    existing = get_user_profile(store, user_id)
    if existing:
        return existing

    if email:
        by_email = get_user_by_email(store, email)
        if by_email and by_email["id"] != user_id:
            print(f"[AUTH] Re-keying user profile for email={email!r}: {by_email['id']} -> {user_id}")
            try:
                store.execute(
                    "update user profile",
                    "UPDATE users SET id = :new_id, updated_at = :now WHERE email = :email",
                    {"new_id": user_id, "now": now_iso(), "email": email},
                )
                return get_user_profile(store, user_id) or _raise_missing(user_id)
            except IntegrityError:
                print(f"[AUTH] Re-key conflict for user_id={user_id}, recreating profile")
                store.execute(
                    "delete user profile",
                    "DELETE FROM users WHERE email = :email",
                    {"email": email},
                )

    return _create_fresh_profile(store, user_id, email, name)


def _create_fresh_profile(store: Store, user_id: str, email: Optional[str], name: Optional[str]) -> Dict[str, Any]:
    now = now_iso()
    display_name = name or (email.split("@")[0] if email else None)
    try:
        store.execute(
            "create user profile",
            """
            INSERT INTO users (id, email, name, role, created_at, updated_at)
            VALUES (:id, :email, :name, :role, :now, :now)
            """,
            {"id": user_id, "email": email, "name": display_name, "role": UserRole.client.value, "now": now},
        )
    except IntegrityError as e:
        # A concurrent request mirrored the same user first
        existing = get_user_profile(store, user_id)
        if existing:
            if IS_DEV:
                print(f"[AUTH] User profile already exists: user_id={user_id}")
            return existing
        raise StorageError("create user profile", str(e.orig).splitlines()[0] if e.orig else "constraint violation") from e

    if IS_DEV:
        print(f"[AUTH] User profile created: user_id={user_id}")
    return get_user_profile(store, user_id) or _raise_missing(user_id)


def _raise_missing(user_id: str) -> Dict[str, Any]:
    raise StorageError("fetch user profile", f"profile {user_id} not found after write")


def set_user_role(store: Store, user_id: str, role: str) -> Dict[str, Any]:
    """Operator-only role assignment."""
    try:
        role_enum = UserRole(role)
    except ValueError:
        valid_roles = [r.value for r in UserRole]
        raise ValidationError(f"Invalid role name. Valid options: {valid_roles}")

    updated = store.execute(
        "update user role",
        "UPDATE users SET role = :role, updated_at = :now WHERE id = :id",
        {"role": role_enum.value, "now": now_iso(), "id": user_id},
    )
    if updated == 0:
        raise NotFoundError("User not found")

    print(f"[ADMIN] Set user {user_id} role to {role_enum.value}")
    return get_user_profile(store, user_id) or _raise_missing(user_id)


def delete_users_by_email(store: Store, email: str) -> List[Dict[str, Any]]:
    """
    Delete every mirror row with this email along with their portfolios
    (properties cascade). Returns the deleted `{id, email}` pairs.
    """
    users = store.fetch_all(
        "fetch users",
        "SELECT id, email FROM users WHERE email = :email",
        {"email": email},
    )

    with store.transaction("delete users") as conn:
        for user in users:
            conn.execute(
                text("DELETE FROM properties WHERE portfolio_id IN (SELECT id FROM portfolios WHERE user_id = :uid)"),
                {"uid": user["id"]},
            )
            conn.execute(text("DELETE FROM portfolios WHERE user_id = :uid"), {"uid": user["id"]})
            conn.execute(text("DELETE FROM users WHERE id = :uid"), {"uid": user["id"]})
            print(f"[ADMIN] Deleted user {user['id']} ({email})")

    return [{"id": u["id"], "email": u["email"]} for u in users]
