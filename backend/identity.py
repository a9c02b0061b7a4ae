"""
backend/identity.py

Client for the hosted identity provider (token issuer).

Only two endpoints are used:
- GET /auth/v1/user          resolve an access token to its user (anon key)
- GET /auth/v1/admin/users   list users (service key, operator tooling only)

Keys and tokens are never logged.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import requests

from backend.config import IS_DEV, Settings
from backend.errors import AuthError


class IdentityProviderError(Exception):
    """Identity provider unreachable or misconfigured (operator-facing)."""


class IdentityProvider:
    def __init__(self, settings: Settings):
        self.base_url = settings.auth_provider_url
        self.anon_key = settings.auth_anon_key
        self.service_key = settings.auth_service_key
        self.timeout = settings.identity_timeout_seconds

    def fetch_user(self, token: str) -> Dict[str, Any]:
        """
        Resolve an access token to `{"id", "email"}`.

        Raises:
            AuthError: provider not configured, unreachable, or token rejected
        """
        if not self.base_url:
            print("[AUTH] Identity provider URL not configured")
            raise AuthError("Authentication failed")

        try:
            resp = requests.get(
                f"{self.base_url}/auth/v1/user",
                headers={
                    "apikey": self.anon_key,
                    "Authorization": f"Bearer {token}",
                    "Accept": "application/json",
                },
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout:
            print(f"[AUTH] Identity provider timed out after {self.timeout}s")
            raise AuthError("Authentication failed")
        except requests.exceptions.RequestException as e:
            print(f"[AUTH] Identity provider unreachable: {type(e).__name__}")
            raise AuthError("Authentication failed")

        if resp.status_code != 200:
            if IS_DEV:
                print(f"[AUTH] Identity provider rejected token: status={resp.status_code}")
            raise AuthError("Authentication failed")

        try:
            body = resp.json()
        except ValueError:
            print("[AUTH] Identity provider returned a non-JSON body")
            raise AuthError("Authentication failed")

        user_id = body.get("id")
        if not user_id:
            raise AuthError("Authentication failed")
        return {"id": str(user_id), "email": body.get("email") or None}

    def list_users(self) -> List[Dict[str, Any]]:
        """All users known to the provider (privileged; requires the service key)."""
        if not self.base_url or not self.service_key:
            raise IdentityProviderError("AUTH_PROVIDER_URL and AUTH_SERVICE_KEY are required")

        try:
            resp = requests.get(
                f"{self.base_url}/auth/v1/admin/users",
                headers={
                    "apikey": self.service_key,
                    "Authorization": f"Bearer {self.service_key}",
                    "Accept": "application/json",
                },
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise IdentityProviderError(f"Identity provider unreachable: {type(e).__name__}") from e

        if resp.status_code != 200:
            raise IdentityProviderError(f"Failed to list users: status={resp.status_code}")

        body = resp.json()
        # The admin endpoint wraps the list as {"users": [...]}
        if isinstance(body, dict):
            return list(body.get("users") or [])
        return list(body or [])

    def find_user_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        wanted = email.strip().lower()
        for user in self.list_users():
            if (user.get("email") or "").lower() == wanted:
                return user
        return None
