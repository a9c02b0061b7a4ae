"""
Storage failure handling: error mapping in the store, and how failures reach
the client (detail in dev, redacted elsewhere).

Run: pytest backend/test_storage.py -v
"""

import sqlite3
from dataclasses import replace
from unittest.mock import patch

import pytest
from sqlalchemy.exc import IntegrityError

from backend.db import Store
from backend.errors import ProvisionError, StorageError, StorageUnavailable


class TestErrorMessages:
    def test_storage_error_redaction(self):
        err = StorageError("fetch portfolios", "relation \"portfolios\" does not exist")
        assert err.client_message(expose_detail=True) == 'Failed to fetch portfolios: relation "portfolios" does not exist'
        assert err.client_message(expose_detail=False) == "Failed to fetch portfolios"

    def test_provision_error_redaction(self):
        err = ProvisionError(ProvisionError.STORAGE_UNAVAILABLE, "timeout expired")
        assert "timeout expired" in err.client_message(expose_detail=True)
        assert err.client_message(expose_detail=False) == "Failed to provision portfolio"

    def test_invalid_user_is_client_error(self):
        err = ProvisionError(ProvisionError.INVALID_USER, "user id is required")
        assert err.status_code == 400
        assert "invalid_user" in err.client_message(expose_detail=False)


class TestStoreErrorMapping:
    def test_unreachable_database_is_unavailable(self):
        store = Store("sqlite:////nonexistent-dir/forecaster.db", timeout_seconds=0.1)
        try:
            with pytest.raises(StorageUnavailable) as exc_info:
                store.fetch_one("fetch portfolio", "SELECT 1")
            assert exc_info.value.operation == "fetch portfolio"
        finally:
            store.dispose()

    def test_locked_database_times_out(self, settings, store):
        blocker = sqlite3.connect(settings.database_path, isolation_level=None)
        blocker.execute("BEGIN EXCLUSIVE")
        impatient = Store(settings.storage_url, timeout_seconds=0.1)
        try:
            with pytest.raises(StorageUnavailable):
                impatient.fetch_one("fetch portfolios", "SELECT COUNT(*) AS n FROM portfolios")
        finally:
            blocker.execute("ROLLBACK")
            blocker.close()
            impatient.dispose()

    def test_bad_sql_is_storage_error(self, store):
        with pytest.raises(StorageError):
            store.fetch_all("fetch things", "SELECT * FROM no_such_table")

    def test_integrity_error_is_not_mapped(self, store):
        store.execute(
            "create user",
            "INSERT INTO users (id, email, name, role, created_at, updated_at) "
            "VALUES ('u1', 'dup@test.com', 'dup', 'client', 'now', 'now')",
        )
        with pytest.raises(IntegrityError):
            store.execute(
                "create user",
                "INSERT INTO users (id, email, name, role, created_at, updated_at) "
                "VALUES ('u2', 'dup@test.com', 'dup', 'client', 'now', 'now')",
            )

    def test_properties_cascade_with_portfolio(self, store, count_rows):
        store.execute_many("seed", [
            "INSERT INTO portfolios (id, user_id, name, globals, start_year, is_primary, created_at, updated_at) "
            "VALUES ('pf1', 'u1', 'P', '{}', 2024, 0, 'now', 'now')",
            "INSERT INTO properties (id, portfolio_id, data, created_at, updated_at) "
            "VALUES ('pr1', 'pf1', '{}', 'now', 'now')",
        ])
        store.execute("delete portfolio", "DELETE FROM portfolios WHERE id = 'pf1'")
        assert count_rows("properties") == 0


class TestFailureResponses:
    UNAVAILABLE = StorageUnavailable("fetch portfolios", "could not connect to server")

    def test_dev_includes_upstream_detail(self, client, make_user):
        user = make_user()
        with patch("backend.tenant.ScopedAccess.list_portfolios", side_effect=self.UNAVAILABLE):
            response = client.get("/api/portfolios", headers=user["headers"])

        assert response.status_code == 500
        assert response.json() == {"error": "Failed to fetch portfolios: could not connect to server"}

    def test_prod_redacts_detail(self, settings, make_client, make_user):
        client = make_client(replace(settings, env="prod"))
        user = make_user()
        with patch("backend.tenant.ScopedAccess.list_portfolios", side_effect=self.UNAVAILABLE):
            response = client.get("/api/portfolios", headers=user["headers"])

        assert response.status_code == 500
        assert response.json() == {"error": "Failed to fetch portfolios"}

    def test_provisioning_failure_is_500(self, settings, make_client, make_user):
        client = make_client(replace(settings, env="prod"))
        user = make_user()
        failure = ProvisionError(ProvisionError.STORAGE_UNAVAILABLE, "timeout expired")
        with patch("backend.routes_portfolios.ensure_user_has_portfolio", side_effect=failure):
            response = client.get("/api/portfolios", headers=user["headers"])

        assert response.status_code == 500
        assert response.json() == {"error": "Failed to provision portfolio"}

    def test_unexpected_error_is_generic_500(self, settings, make_client, make_user):
        client = make_client(settings, raise_server_exceptions=False)
        user = make_user()
        with patch("backend.tenant.ScopedAccess.list_portfolios", side_effect=RuntimeError("boom")):
            response = client.get("/api/portfolios", headers=user["headers"])

        assert response.status_code == 500
        assert response.json() == {"error": "Internal server error"}

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}
