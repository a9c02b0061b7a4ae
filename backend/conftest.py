"""
Shared pytest fixtures: a throwaway SQLite store per test, an app wired to
it, and helpers to mint access tokens the way the identity provider does.
"""

import uuid
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import jwt
import pytest
from fastapi.testclient import TestClient

from backend.config import Settings
from backend.db import Store
from backend.main import create_app
from backend.users import ensure_user_profile, set_user_role

TEST_JWT_SECRET = "test-jwt-secret-for-local-verification"


@pytest.fixture
def settings(tmp_path):
    return Settings(
        env="dev",
        auth_mode="enforced",
        auth_provider_url="",
        auth_anon_key="",
        auth_service_key="",
        jwt_secret=TEST_JWT_SECRET,
        jwt_audience="authenticated",
        database_url="",
        database_path=str(tmp_path / "forecaster_test.db"),
        storage_timeout_seconds=5.0,
        identity_timeout_seconds=1.0,
    )


@pytest.fixture
def store(settings):
    s = Store.from_settings(settings)
    s.init_schema()
    yield s
    s.dispose()


@pytest.fixture
def make_client(store):
    """Build a TestClient for the given settings (sharing the test store)."""
    def _make(app_settings, **kwargs):
        return TestClient(create_app(settings=app_settings, store=store), **kwargs)
    return _make


@pytest.fixture
def client(settings, make_client):
    return make_client(settings)


@pytest.fixture
def make_token():
    def _make(user_id, email, expires_in=3600, secret=TEST_JWT_SECRET, audience="authenticated"):
        payload = {
            "sub": user_id,
            "email": email,
            "aud": audience,
            "role": "authenticated",
            "exp": datetime.now(timezone.utc) + timedelta(seconds=expires_in),
        }
        return jwt.encode(payload, secret, algorithm="HS256")
    return _make


@pytest.fixture
def make_user(store, make_token):
    """Mirror a user (optionally as admin) and return its id, email and auth headers."""
    def _make(email=None, role="client"):
        user_id = str(uuid.uuid4())
        email = email or f"user_{user_id[:8]}@test.com"
        ensure_user_profile(store, user_id, email)
        if role != "client":
            set_user_role(store, user_id, role)
        token = make_token(user_id, email)
        return {
            "id": user_id,
            "email": email,
            "token": token,
            "headers": {"Authorization": f"Bearer {token}"},
        }
    return _make


@pytest.fixture
def bypass_settings(settings):
    return replace(settings, auth_mode="bypass")


@pytest.fixture
def count_rows(store):
    def _count(table):
        return store.fetch_one("count rows", f"SELECT COUNT(*) AS n FROM {table}")["n"]
    return _count
