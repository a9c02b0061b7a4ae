"""
backend/provisioning.py

Bootstrap of a user's primary portfolio.

Every user ends up with exactly one portfolio flagged is_primary, created
lazily the first time they list portfolios. There is no in-process lock:
concurrent callers race on the storage-level unique index
(one primary row per user), and losers re-read and return the winner's row.
"""

from __future__ import annotations

import uuid
from typing import Any, Dict, Optional

from sqlalchemy.exc import IntegrityError

from backend.config import IS_DEV
from backend.db import Store
from backend.errors import ProvisionError, StorageError
from backend.models import GlobalAssumptions
from backend.repository import insert_portfolio, select_primary_portfolio

DEFAULT_PORTFOLIO_NAME = "My Investment Portfolio"


def default_globals() -> Dict[str, Any]:
    """Default planning assumptions for a new portfolio."""
    return GlobalAssumptions().dict()


def _require_user_id(user_id: Optional[str]) -> str:
    if not user_id:
        raise ProvisionError(ProvisionError.INVALID_USER, "user id is required")
    try:
        uuid.UUID(str(user_id))
    except ValueError:
        raise ProvisionError(ProvisionError.INVALID_USER, f"not a UUID: {user_id!r}")
    return str(user_id)


def get_primary_portfolio(store: Store, user_id: str) -> Optional[Dict[str, Any]]:
    """The flagged primary portfolio, else the most recently created, else None."""
    return select_primary_portfolio(store, user_id)


def ensure_user_has_portfolio(store: Store, user_id: str) -> Dict[str, Any]:
    """
    Return the user's primary portfolio, creating it if the user has none.

    Idempotent and safe under concurrency: N simultaneous callers for the same
    user produce exactly one row and all return its id.

    Raises:
        ProvisionError(invalid_user): empty or non-UUID user id
        ProvisionError(storage_unavailable): storage failed or timed out
        ProvisionError(constraint_violation): insert conflicted but no row is visible
    """
    user_id = _require_user_id(user_id)

    try:
        existing = get_primary_portfolio(store, user_id)
        if existing:
            return existing

        globals_ = default_globals()
        try:
            portfolio = insert_portfolio(
                store,
                user_id=user_id,
                name=DEFAULT_PORTFOLIO_NAME,
                globals_=globals_,
                start_year=globals_["startYear"],
                is_primary=True,
                operation="provision portfolio",
            )
        except IntegrityError as e:
            # A concurrent caller created the primary portfolio first
            winner = get_primary_portfolio(store, user_id)
            if winner:
                if IS_DEV:
                    print(f"[PROVISION] Lost creation race, using existing portfolio: user_id={user_id}, portfolio_id={winner['id']}")
                return winner
            print(f"[PROVISION] Constraint violation without a visible portfolio: user_id={user_id}")
            raise ProvisionError(ProvisionError.CONSTRAINT_VIOLATION, str(e.orig or e).splitlines()[0]) from e
    except StorageError as e:
        print(f"[PROVISION] Storage failure for user_id={user_id}: {e.detail}")
        raise ProvisionError(ProvisionError.STORAGE_UNAVAILABLE, e.detail) from e

    print(f"[PROVISION] Created primary portfolio: user_id={user_id}, portfolio_id={portfolio['id']}")
    return portfolio


def create_default_portfolio(store: Store, user_id: str, portfolio_id: Optional[str] = None) -> Dict[str, Any]:
    """
    Unconditionally insert a default (non-primary) portfolio.
    Trusted callers only (operator tooling, tests).
    """
    user_id = _require_user_id(user_id)
    globals_ = default_globals()
    try:
        portfolio = insert_portfolio(
            store,
            user_id=user_id,
            name=DEFAULT_PORTFOLIO_NAME,
            globals_=globals_,
            start_year=globals_["startYear"],
            portfolio_id=portfolio_id,
        )
    except IntegrityError as e:
        raise ProvisionError(ProvisionError.CONSTRAINT_VIOLATION, str(e.orig or e).splitlines()[0]) from e
    except StorageError as e:
        raise ProvisionError(ProvisionError.STORAGE_UNAVAILABLE, e.detail) from e

    print(f"[PROVISION] Created default portfolio: user_id={user_id}, portfolio_id={portfolio['id']}")
    return portfolio
