"""
Multi-tenant security isolation tests.

Tests that verify:
1. User B cannot read or modify User A's portfolios and properties
2. Scoped reads hide foreign rows (404); writes into a foreign portfolio are refused (403)
3. Admins can reach every portfolio
4. The tenant guardrail fails fast outside dev

Run: pytest backend/test_multitenant_security.py -v
"""

from dataclasses import replace
from unittest.mock import patch

import pytest

from backend.errors import StorageError
from backend.tenant import assert_rows_owned

PROPERTY = {"name": "TEST_A House", "type": "residential_house", "current_value": 700000}
LOAN = {
    "type": "principal_interest",
    "principal_amount": 500000,
    "interest_rate": 0.06,
    "term_years": 30,
    "start_date": "2024-01-01",
}


@pytest.fixture
def tenants(client, make_user):
    """
    Two isolated users; A owns a portfolio with one property.
    """
    user_a = make_user("test_a@test.com")
    user_b = make_user("test_b@test.com")

    portfolio_a = client.get("/api/portfolios", headers=user_a["headers"]).json()["portfolios"][0]
    client.get("/api/portfolios", headers=user_b["headers"])
    created = client.post(
        "/api/properties",
        json={"portfolioId": portfolio_a["id"], "propertyData": PROPERTY},
        headers=user_a["headers"],
    )
    assert created.status_code == 201

    return {
        "a": user_a,
        "b": user_b,
        "portfolio_a": portfolio_a,
        "property_a": created.json()["property"],
    }


class TestPortfolioIsolation:
    def test_list_only_shows_own_portfolios(self, client, tenants):
        portfolios = client.get("/api/portfolios", headers=tenants["b"]["headers"]).json()["portfolios"]

        assert len(portfolios) == 1
        assert all(p["user_id"] == tenants["b"]["id"] for p in portfolios)
        assert tenants["portfolio_a"]["id"] not in [p["id"] for p in portfolios]

    def test_summary_of_foreign_portfolio_is_404(self, client, tenants):
        response = client.get(
            f"/api/portfolios/{tenants['portfolio_a']['id']}/summary",
            headers=tenants["b"]["headers"],
        )
        assert response.status_code == 404


class TestPropertyIsolation:
    def test_cannot_list_foreign_properties(self, client, tenants):
        response = client.get(
            "/api/properties",
            params={"portfolioId": tenants["portfolio_a"]["id"]},
            headers=tenants["b"]["headers"],
        )
        assert response.status_code == 403
        assert response.json() == {"error": "Access denied"}
        assert "properties" not in response.json()

    def test_cannot_read_foreign_property(self, client, tenants):
        response = client.get(f"/api/properties/{tenants['property_a']['id']}", headers=tenants["b"]["headers"])
        assert response.status_code == 404

    def test_cannot_patch_foreign_property(self, client, tenants):
        response = client.patch(
            f"/api/properties/{tenants['property_a']['id']}",
            json={"current_value": 1},
            headers=tenants["b"]["headers"],
        )
        assert response.status_code == 403

        # Unchanged for the owner
        prop = client.get(f"/api/properties/{tenants['property_a']['id']}", headers=tenants["a"]["headers"]).json()["property"]
        assert prop["current_value"] == 700000

    def test_cannot_replace_foreign_loan(self, client, tenants):
        response = client.put(
            f"/api/properties/{tenants['property_a']['id']}/loan",
            json=LOAN,
            headers=tenants["b"]["headers"],
        )
        assert response.status_code == 403

    def test_cannot_create_property_in_foreign_portfolio(self, client, tenants, count_rows):
        before = count_rows("properties")
        response = client.post(
            "/api/properties",
            json={"portfolioId": tenants["portfolio_a"]["id"], "propertyData": {"name": "TEST_B intruder"}},
            headers=tenants["b"]["headers"],
        )

        assert response.status_code == 403
        assert count_rows("properties") == before


class TestAdminAccess:
    def test_admin_reaches_any_portfolio(self, client, tenants, make_user):
        admin = make_user("test_admin@test.com", role="admin")
        portfolio_id = tenants["portfolio_a"]["id"]

        listed = client.get("/api/properties", params={"portfolioId": portfolio_id}, headers=admin["headers"])
        assert listed.status_code == 200
        assert [p["id"] for p in listed.json()["properties"]] == [tenants["property_a"]["id"]]

        summary = client.get(f"/api/portfolios/{portfolio_id}/summary", headers=admin["headers"])
        assert summary.status_code == 200
        assert summary.json()["summary"]["property_count"] == 1

        patched = client.patch(
            f"/api/properties/{tenants['property_a']['id']}",
            json={"status": "shortlisted"},
            headers=admin["headers"],
        )
        assert patched.status_code == 200
        assert patched.json()["property"]["status"] == "shortlisted"

    def test_admin_can_create_property_in_any_portfolio(self, client, tenants, make_user):
        admin = make_user("test_admin@test.com", role="admin")
        response = client.post(
            "/api/properties",
            json={"portfolioId": tenants["portfolio_a"]["id"], "propertyData": {"name": "TEST_ADMIN added"}},
            headers=admin["headers"],
        )
        assert response.status_code == 201


class TestTenantGuardrail:
    ROWS = [
        {"id": "p1", "user_id": "owner"},
        {"id": "p2", "user_id": "someone-else"},
    ]

    def test_dev_warns_only(self):
        with patch("backend.tenant.IS_DEV", True):
            assert_rows_owned(self.ROWS, "owner", "fetch portfolios")

    def test_prod_fails_fast(self):
        with patch("backend.tenant.IS_DEV", False):
            with pytest.raises(StorageError):
                assert_rows_owned(self.ROWS, "owner", "fetch portfolios")

    def test_owned_rows_pass(self):
        with patch("backend.tenant.IS_DEV", False):
            assert_rows_owned([self.ROWS[0]], "owner")
            assert_rows_owned([], "owner")

    def test_explicit_flag_overrides_environment(self):
        with patch("backend.tenant.IS_DEV", True):
            with pytest.raises(StorageError):
                assert_rows_owned(self.ROWS, "owner", fail_fast=True)
        with patch("backend.tenant.IS_DEV", False):
            assert_rows_owned(self.ROWS, "owner", fail_fast=False)

    @pytest.mark.parametrize("env, expected_status", [("dev", 200), ("prod", 500)])
    def test_route_follows_injected_settings(self, settings, make_client, make_user, env, expected_status):
        client = make_client(replace(settings, env=env))
        user = make_user()
        foreign = {"id": "p2", "user_id": "someone-else", "name": "x", "globals": {}, "start_year": 2024,
                   "is_primary": False, "created_at": "2024-01-01", "updated_at": "2024-01-01"}
        own = {**foreign, "id": "p1", "user_id": user["id"]}

        # ENV says dev in both cases; only the injected settings differ
        with patch("backend.tenant.IS_DEV", True), \
             patch("backend.repository.select_portfolios", return_value=[own, foreign]):
            response = client.get("/api/portfolios", headers=user["headers"])

        assert response.status_code == expected_status
        if expected_status == 500:
            assert response.json() == {"error": "Failed to fetch portfolios"}
