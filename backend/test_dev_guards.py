"""
Operator CLI tests.

Verifies that the DEV-only commands refuse to run outside dev (exit 3,
nothing written), and that the general commands behave.

Run: pytest backend/test_dev_guards.py -v
"""

import json
import uuid
from dataclasses import replace
from unittest.mock import MagicMock

import pytest

from backend.admin_cli import DEV_PORTFOLIO_ID, DEV_PROPERTY_ID, EXIT_FAILED, EXIT_NOT_DEV, EXIT_OK, main
from backend.config import DEV_USER_ID
from backend.provisioning import ensure_user_has_portfolio
from backend.repository import insert_property
from backend.users import ensure_user_profile, get_user_profile


def _json_output(capsys):
    """The JSON document printed last on stdout (log lines may precede it)."""
    lines = capsys.readouterr().out.splitlines()
    start = max(i for i, line in enumerate(lines) if line == "{")
    return json.loads("\n".join(lines[start:]))


@pytest.fixture
def prod_settings(settings):
    return replace(settings, env="prod")


class TestDevOnlyCommands:
    @pytest.mark.parametrize("argv", [
        ["dev-setup"],
        ["test-auth-flow", "--email", "someone@test.com"],
        ["test-portfolio", "--user-id", str(uuid.UUID(int=7))],
    ])
    def test_refused_outside_dev(self, prod_settings, store, count_rows, argv, capsys):
        identity = MagicMock()

        code = main(argv, settings=prod_settings, store=store, identity=identity)

        assert code == EXIT_NOT_DEV
        assert "only available in dev" in _json_output(capsys)["error"]
        assert count_rows("users") == 0
        assert count_rows("portfolios") == 0
        identity.find_user_by_email.assert_not_called()

    def test_dev_setup_seeds_fixed_records(self, settings, store, capsys):
        code = main(["dev-setup"], settings=settings, store=store)

        assert code == EXIT_OK
        result = _json_output(capsys)
        assert result["success"] is True
        assert result["user"]["id"] == DEV_USER_ID
        assert result["portfolio_id"] == DEV_PORTFOLIO_ID
        assert result["property_id"] == DEV_PROPERTY_ID

    def test_dev_setup_is_idempotent(self, settings, store, count_rows):
        assert main(["dev-setup"], settings=settings, store=store) == EXIT_OK
        assert main(["dev-setup"], settings=settings, store=store) == EXIT_OK

        assert count_rows("users") == 1
        assert count_rows("portfolios") == 1
        assert count_rows("properties") == 1

    def test_test_auth_flow(self, settings, store, capsys):
        user_id = str(uuid.uuid4())
        identity = MagicMock()
        identity.find_user_by_email.return_value = {
            "id": user_id,
            "email": "flow@test.com",
            "user_metadata": {"name": "Flow Tester"},
        }

        code = main(["test-auth-flow", "--email", "flow@test.com"], settings=settings, store=store, identity=identity)

        assert code == EXIT_OK
        result = _json_output(capsys)
        assert result["authUser"] == {"id": user_id, "email": "flow@test.com"}
        assert result["userProfile"]["name"] == "Flow Tester"
        assert result["portfolio"]["user_id"] == user_id
        assert result["portfolio"]["is_primary"] is True

    def test_test_auth_flow_unknown_user(self, settings, store, capsys):
        identity = MagicMock()
        identity.find_user_by_email.return_value = None

        code = main(["test-auth-flow", "--email", "ghost@test.com"], settings=settings, store=store, identity=identity)

        assert code == EXIT_FAILED
        assert _json_output(capsys)["success"] is False

    def test_test_portfolio_create_then_fetch(self, settings, store, capsys):
        user_id = str(uuid.uuid4())

        assert main(
            ["test-portfolio", "--user-id", user_id, "--email", "tp@test.com"],
            settings=settings, store=store,
        ) == EXIT_OK
        created = _json_output(capsys)["portfolio"]
        assert get_user_profile(store, user_id)["email"] == "tp@test.com"

        assert main(["test-portfolio", "--user-id", user_id, "--fetch"], settings=settings, store=store) == EXIT_OK
        assert _json_output(capsys)["portfolio"]["id"] == created["id"]

    def test_test_portfolio_fetch_missing(self, settings, store):
        code = main(["test-portfolio", "--user-id", str(uuid.uuid4()), "--fetch"], settings=settings, store=store)
        assert code == EXIT_FAILED


class TestGeneralCommands:
    def test_missing_argument_is_usage_error(self, settings, store):
        with pytest.raises(SystemExit) as exc_info:
            main(["test-portfolio"], settings=settings, store=store)
        assert exc_info.value.code == 2

    def test_unknown_role_is_usage_error(self, settings, store):
        with pytest.raises(SystemExit) as exc_info:
            main(["set-role", "--user-id", str(uuid.uuid4()), "--role", "owner"], settings=settings, store=store)
        assert exc_info.value.code == 2

    def test_set_role(self, settings, store, capsys):
        user_id = str(uuid.uuid4())
        ensure_user_profile(store, user_id, "promote@test.com")

        code = main(["set-role", "--user-id", user_id, "--role", "admin"], settings=settings, store=store)

        assert code == EXIT_OK
        assert _json_output(capsys) == {"status": "ok", "user_id": user_id, "role": "admin"}
        assert get_user_profile(store, user_id)["role"] == "admin"

    def test_set_role_unknown_user(self, settings, store):
        code = main(["set-role", "--user-id", str(uuid.uuid4()), "--role", "admin"], settings=settings, store=store)
        assert code == EXIT_FAILED

    def test_cleanup_user_cascades(self, prod_settings, store, count_rows, capsys):
        user_id = str(uuid.uuid4())
        ensure_user_profile(store, user_id, "orphan@test.com")
        portfolio = ensure_user_has_portfolio(store, user_id)
        insert_property(store, portfolio["id"], {"name": "Orphaned"})

        # Not dev-only: runs in prod too
        code = main(["cleanup-user", "--email", "orphan@test.com"], settings=prod_settings, store=store)

        assert code == EXIT_OK
        result = _json_output(capsys)
        assert result["deletedUsers"] == [{"id": user_id, "email": "orphan@test.com"}]
        assert count_rows("users") == 0
        assert count_rows("portfolios") == 0
        assert count_rows("properties") == 0

    def test_cleanup_unknown_email(self, settings, store, capsys):
        assert main(["cleanup-user", "--email", "nobody@test.com"], settings=settings, store=store) == EXIT_OK
        assert _json_output(capsys)["deletedUsers"] == []
