#!/usr/bin/env python3
"""
backend/admin_cli.py

Operator tooling. These tasks are deliberately not HTTP routes.

Run: python -m backend.admin_cli <command> [options]
     (installed as the `forecaster-admin` console script)

Commands:
    cleanup-user    --email E                          delete mirror users (and their portfolios)
    dev-setup                                          [DEV-only] seed the dev user, portfolio, property
    test-auth-flow  --email E                          [DEV-only] provider lookup -> mirror -> portfolio
    test-portfolio  --user-id U [--email E] [--fetch]  [DEV-only] create or fetch a default portfolio
    set-role        --user-id U --role client|admin    assign a role

Output is one JSON document on stdout. Exit codes:
    0 success, 1 failure, 2 usage error (argparse), 3 refused outside dev
"""

from __future__ import annotations

import argparse
import json
import sys
from typing import Any, Callable, Dict, List, Optional

from backend.config import DEV_USER_EMAIL, DEV_USER_ID, Settings
from backend.db import Store
from backend.errors import AppError
from backend.identity import IdentityProvider, IdentityProviderError
from backend.models import UserRole
from backend.provisioning import create_default_portfolio, ensure_user_has_portfolio, get_primary_portfolio
from backend.repository import insert_property, select_portfolio, select_property
from backend.users import delete_users_by_email, ensure_user_profile, set_user_role

DEV_PORTFOLIO_ID = "e20784fd-d716-431a-a857-bfba1c661b6c"
DEV_PROPERTY_ID = "324aa781-b1ce-4734-893d-ca63dc2a85db"

SAMPLE_PROPERTY_DATA: Dict[str, Any] = {
    "name": "Test Property",
    "type": "residential_house",
    "address": "123 Test Street, Sydney NSW 2000",
    "purchase_price": 800000,
    "current_value": 850000,
    "purchase_date": "2024-01-01",
    "strategy": "buy_hold",
    "cashflow_status": "not_modeled",
    "annual_rent": 52000,
    "annual_expenses": 15000,
    "description": "Test property for development",
}

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_NOT_DEV = 3


class DevOnlyError(Exception):
    pass


# ---------------------------------------------------------
# Commands
# ---------------------------------------------------------
def cmd_cleanup_user(args, settings: Settings, store: Store, identity: IdentityProvider) -> Dict[str, Any]:
    print(f"[ADMIN] Cleanup: starting for email={args.email!r}", file=sys.stderr)
    deleted = delete_users_by_email(store, args.email)
    return {
        "success": True,
        "message": f"Cleanup complete. Deleted {len(deleted)} orphaned users.",
        "deletedUsers": deleted,
    }


def cmd_dev_setup(args, settings: Settings, store: Store, identity: IdentityProvider) -> Dict[str, Any]:
    _require_dev(settings, "dev-setup")

    user = ensure_user_profile(store, DEV_USER_ID, DEV_USER_EMAIL, "Development User")

    portfolio = select_portfolio(store, DEV_PORTFOLIO_ID, None)
    if portfolio is None:
        portfolio = create_default_portfolio(store, DEV_USER_ID, portfolio_id=DEV_PORTFOLIO_ID)
        print(f"[ADMIN][DEV-ONLY] Created dev portfolio {DEV_PORTFOLIO_ID}", file=sys.stderr)

    prop = select_property(store, DEV_PROPERTY_ID, None)
    if prop is None:
        prop = insert_property(store, DEV_PORTFOLIO_ID, dict(SAMPLE_PROPERTY_DATA), property_id=DEV_PROPERTY_ID)
        print(f"[ADMIN][DEV-ONLY] Created dev property {DEV_PROPERTY_ID}", file=sys.stderr)

    return {
        "success": True,
        "message": "Development data setup complete",
        "user": {"id": user["id"], "email": user["email"]},
        "portfolio_id": portfolio["id"],
        "property_id": prop["id"],
    }


def cmd_test_auth_flow(args, settings: Settings, store: Store, identity: IdentityProvider) -> Dict[str, Any]:
    _require_dev(settings, "test-auth-flow")

    auth_user = identity.find_user_by_email(args.email)
    if not auth_user:
        return {"success": False, "error": "Auth user not found in identity provider"}

    user_id = str(auth_user["id"])
    email = auth_user.get("email") or args.email
    name = (auth_user.get("user_metadata") or {}).get("name")

    profile = ensure_user_profile(store, user_id, email, name)
    portfolio = ensure_user_has_portfolio(store, user_id)
    return {
        "success": True,
        "message": "Complete auth flow test successful",
        "authUser": {"id": user_id, "email": email},
        "userProfile": profile,
        "portfolio": portfolio,
    }


def cmd_test_portfolio(args, settings: Settings, store: Store, identity: IdentityProvider) -> Dict[str, Any]:
    _require_dev(settings, "test-portfolio")

    if args.fetch:
        portfolio = get_primary_portfolio(store, args.user_id)
        if portfolio is None:
            return {"success": False, "error": "No portfolio found"}
        return {"success": True, "portfolio": portfolio}

    if args.email:
        ensure_user_profile(store, args.user_id, args.email, args.email.split("@")[0])
    portfolio = create_default_portfolio(store, args.user_id)
    return {"success": True, "portfolio": portfolio}


def cmd_set_role(args, settings: Settings, store: Store, identity: IdentityProvider) -> Dict[str, Any]:
    user = set_user_role(store, args.user_id, args.role)
    return {"status": "ok", "user_id": user["id"], "role": user["role"]}


def _require_dev(settings: Settings, command: str) -> None:
    if not settings.is_dev:
        raise DevOnlyError(f"{command} is only available in dev")


# ---------------------------------------------------------
# Entry point
# ---------------------------------------------------------
def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="forecaster-admin",
        description="Operator tasks for the portfolio forecaster backend",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("cleanup-user", help="Delete mirror users with this email and their portfolios")
    p.add_argument("--email", required=True)
    p.set_defaults(handler=cmd_cleanup_user)

    p = sub.add_parser("dev-setup", help="[DEV-only] Seed the dev user, portfolio and sample property")
    p.set_defaults(handler=cmd_dev_setup)

    p = sub.add_parser("test-auth-flow", help="[DEV-only] Look up a provider user, mirror it, ensure its portfolio")
    p.add_argument("--email", required=True)
    p.set_defaults(handler=cmd_test_auth_flow)

    p = sub.add_parser("test-portfolio", help="[DEV-only] Create (or --fetch) a default portfolio")
    p.add_argument("--user-id", required=True)
    p.add_argument("--email")
    p.add_argument("--fetch", action="store_true", help="Read the primary portfolio instead of creating one")
    p.set_defaults(handler=cmd_test_portfolio)

    p = sub.add_parser("set-role", help="Assign a user role")
    p.add_argument("--user-id", required=True)
    p.add_argument("--role", required=True, choices=[r.value for r in UserRole])
    p.set_defaults(handler=cmd_set_role)

    return parser


def main(
    argv: Optional[List[str]] = None,
    settings: Optional[Settings] = None,
    store: Optional[Store] = None,
    identity: Optional[IdentityProvider] = None,
) -> int:
    args = build_parser().parse_args(argv)
    handler: Callable[..., Dict[str, Any]] = args.handler

    settings = settings or Settings.from_env()
    identity = identity or IdentityProvider(settings)
    owned_store = None
    if store is None:
        owned_store = store = Store.from_settings(settings)
        store.init_schema()

    try:
        result = handler(args, settings, store, identity)
        code = EXIT_OK if result.get("success", True) else EXIT_FAILED
    except DevOnlyError as e:
        result, code = {"error": str(e)}, EXIT_NOT_DEV
    except (AppError, IdentityProviderError) as e:
        result, code = {"success": False, "error": str(e)}, EXIT_FAILED
    finally:
        if owned_store is not None:
            owned_store.dispose()

    print(json.dumps(result, indent=2, default=str))
    return code


if __name__ == "__main__":
    sys.exit(main())
