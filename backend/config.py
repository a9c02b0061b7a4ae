# backend/config.py
# Environment-aware configuration for the portfolio forecaster backend

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Literal, Tuple

# Environment detection
ENV: Literal["dev", "staging", "prod"] = os.environ.get("ENV", "dev")  # type: ignore
IS_DEV = (ENV == "dev")
IS_STAGING = (ENV == "staging")
IS_PROD = (ENV == "prod")

# Auth mode: "enforced" requires a session on every write,
# "bypass" writes as the fixed development identity (dev only)
AUTH_MODE: Literal["enforced", "bypass"] = os.environ.get("AUTH_MODE", "enforced")  # type: ignore

DEV_USER_ID = "00000000-0000-0000-0000-000000000000"
DEV_USER_EMAIL = "dev@example.com"

# Hosted identity provider
AUTH_PROVIDER_URL = os.environ.get("AUTH_PROVIDER_URL", "").strip().rstrip("/")
AUTH_ANON_KEY = os.environ.get("AUTH_ANON_KEY", "")
AUTH_SERVICE_KEY = os.environ.get("AUTH_SERVICE_KEY", "")

# JWT verification (local verification when the signing secret is known)
AUTH_JWT_SECRET = os.environ.get("AUTH_JWT_SECRET", "")
AUTH_JWT_AUDIENCE = os.environ.get("AUTH_JWT_AUDIENCE", "authenticated")
ALGORITHM = "HS256"
SESSION_COOKIE_NAME = os.environ.get("SESSION_COOKIE_NAME", "sb-access-token")

# Database configuration
# DATABASE_URL takes precedence (managed Postgres)
# Falls back to SQLite for local development
DATABASE_URL = os.environ.get("DATABASE_URL", "").strip()
DATABASE_PATH = os.environ.get("DATABASE_PATH", "forecaster.db")

# Timeouts (seconds)
STORAGE_TIMEOUT_SECONDS = float(os.environ.get("STORAGE_TIMEOUT_SECONDS", "5"))
IDENTITY_TIMEOUT_SECONDS = float(os.environ.get("IDENTITY_TIMEOUT_SECONDS", "5"))

# CORS origins (expand for staging/prod)
CORS_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]

if IS_STAGING or IS_PROD:
    extra_origins = os.environ.get("CORS_ORIGINS", "")
    if extra_origins:
        CORS_ORIGINS.extend(o.strip() for o in extra_origins.split(",") if o.strip())


@dataclass(frozen=True)
class Settings:
    """
    Snapshot of the configuration handed to create_app().

    Module-level constants above are the defaults; tests build their own
    Settings instead of patching the environment.
    """
    env: str = ENV
    auth_mode: str = AUTH_MODE
    auth_provider_url: str = AUTH_PROVIDER_URL
    auth_anon_key: str = AUTH_ANON_KEY
    auth_service_key: str = AUTH_SERVICE_KEY
    jwt_secret: str = AUTH_JWT_SECRET
    jwt_audience: str = AUTH_JWT_AUDIENCE
    session_cookie_name: str = SESSION_COOKIE_NAME
    database_url: str = DATABASE_URL
    database_path: str = DATABASE_PATH
    storage_timeout_seconds: float = STORAGE_TIMEOUT_SECONDS
    identity_timeout_seconds: float = IDENTITY_TIMEOUT_SECONDS
    cors_origins: Tuple[str, ...] = tuple(CORS_ORIGINS)

    @classmethod
    def from_env(cls) -> "Settings":
        return cls()

    @property
    def is_dev(self) -> bool:
        return self.env == "dev"

    @property
    def is_prod(self) -> bool:
        return self.env == "prod"

    @property
    def auth_bypassed(self) -> bool:
        return self.auth_mode == "bypass"

    @property
    def storage_url(self) -> str:
        """SQLAlchemy URL for the configured database."""
        if self.database_url:
            # SQLAlchemy only accepts the postgresql:// scheme
            if self.database_url.startswith("postgres://"):
                return "postgresql://" + self.database_url[len("postgres://"):]
            return self.database_url
        return f"sqlite:///{self.database_path}"

    def validate(self) -> None:
        """Reject configurations that must never reach a running server."""
        if self.env not in ("dev", "staging", "prod"):
            raise RuntimeError(f"Unknown ENV: {self.env!r}")
        if self.auth_mode not in ("enforced", "bypass"):
            raise RuntimeError(f"Unknown AUTH_MODE: {self.auth_mode!r}")
        if self.auth_bypassed and not self.is_dev:
            raise RuntimeError("AUTH_MODE=bypass is only allowed when ENV=dev")

    def describe(self) -> None:
        print(f"[CONFIG] Environment: {self.env}")
        print(f"[CONFIG] Auth mode: {self.auth_mode}")
        print(f"[CONFIG] Token verification: {'local JWT' if self.jwt_secret else 'identity provider'}")
        print(f"[CONFIG] Database: {'PostgreSQL' if self.storage_url.startswith('postgresql') else 'SQLite (local dev)'}")
        print(f"[CONFIG] Storage timeout: {self.storage_timeout_seconds}s")
