"""
backend/repository.py

Raw SQL for portfolios and properties.

Every read takes `visible_to`: the caller's user id when the row policy
applies (only rows of portfolios owned by that user are visible), or None
for policy-free access (admins, elevated server writes). The policy lives in
the WHERE clause so that hidden rows look exactly like missing rows.
"""

from __future__ import annotations

import json
import uuid
from typing import Any, Dict, List, Optional

from backend.db import Store
from backend.users import now_iso

PORTFOLIO_COLUMNS = "p.id, p.user_id, p.name, p.globals, p.start_year, p.is_primary, p.created_at, p.updated_at"
PROPERTY_COLUMNS = "pr.id, pr.portfolio_id, pr.data, pr.created_at, pr.updated_at"


# ---------------------------------------------------------
# Row decoding
# ---------------------------------------------------------
def portfolio_from_row(row: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if row is None:
        return None
    out = dict(row)
    out["globals"] = json.loads(out["globals"]) if out.get("globals") else {}
    out["is_primary"] = bool(out.get("is_primary"))
    return out


def property_from_row(row: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if row is None:
        return None
    out = dict(row)
    out["data"] = json.loads(out["data"]) if out.get("data") else {}
    return out


def _policy(visible_to: Optional[str], params: Dict[str, Any]) -> str:
    if visible_to is None:
        return ""
    params["visible_to"] = visible_to
    return " AND p.user_id = :visible_to"


# ---------------------------------------------------------
# Portfolios
# ---------------------------------------------------------
def select_portfolios(store: Store, owner_id: str, visible_to: Optional[str]) -> List[Dict[str, Any]]:
    params: Dict[str, Any] = {"owner_id": owner_id}
    sql = (
        f"SELECT {PORTFOLIO_COLUMNS} FROM portfolios p WHERE p.user_id = :owner_id"
        f"{_policy(visible_to, params)} ORDER BY p.created_at DESC"
    )
    return [portfolio_from_row(r) for r in store.fetch_all("fetch portfolios", sql, params)]


def select_portfolio(store: Store, portfolio_id: str, visible_to: Optional[str]) -> Optional[Dict[str, Any]]:
    params: Dict[str, Any] = {"id": portfolio_id}
    sql = f"SELECT {PORTFOLIO_COLUMNS} FROM portfolios p WHERE p.id = :id{_policy(visible_to, params)}"
    return portfolio_from_row(store.fetch_one("fetch portfolio", sql, params))


def select_primary_portfolio(store: Store, user_id: str) -> Optional[Dict[str, Any]]:
    """Flagged primary first, then the most recently created."""
    sql = (
        f"SELECT {PORTFOLIO_COLUMNS} FROM portfolios p WHERE p.user_id = :user_id "
        "ORDER BY p.is_primary DESC, p.created_at DESC LIMIT 1"
    )
    return portfolio_from_row(store.fetch_one("fetch portfolio", sql, {"user_id": user_id}))


def insert_portfolio(
    store: Store,
    user_id: str,
    name: str,
    globals_: Dict[str, Any],
    start_year: int,
    is_primary: bool = False,
    portfolio_id: Optional[str] = None,
    operation: str = "create portfolio",
) -> Dict[str, Any]:
    """
    Insert a portfolio row and return it.
    Raises sqlalchemy IntegrityError untouched (primary-flag race, duplicate id).
    """
    now = now_iso()
    row = {
        "id": portfolio_id or str(uuid.uuid4()),
        "user_id": user_id,
        "name": name,
        "globals": json.dumps(globals_),
        "start_year": int(start_year),
        "is_primary": 1 if is_primary else 0,
        "created_at": now,
        "updated_at": now,
    }
    store.execute(
        operation,
        """
        INSERT INTO portfolios (id, user_id, name, globals, start_year, is_primary, created_at, updated_at)
        VALUES (:id, :user_id, :name, :globals, :start_year, :is_primary, :created_at, :updated_at)
        """,
        row,
    )
    return portfolio_from_row(row)


# ---------------------------------------------------------
# Properties
# ---------------------------------------------------------
def select_properties(store: Store, portfolio_id: str, visible_to: Optional[str]) -> List[Dict[str, Any]]:
    params: Dict[str, Any] = {"portfolio_id": portfolio_id}
    sql = (
        f"SELECT {PROPERTY_COLUMNS} FROM properties pr JOIN portfolios p ON p.id = pr.portfolio_id "
        f"WHERE pr.portfolio_id = :portfolio_id{_policy(visible_to, params)} ORDER BY pr.created_at DESC"
    )
    return [property_from_row(r) for r in store.fetch_all("fetch properties", sql, params)]


def select_property(store: Store, property_id: str, visible_to: Optional[str]) -> Optional[Dict[str, Any]]:
    params: Dict[str, Any] = {"id": property_id}
    sql = (
        f"SELECT {PROPERTY_COLUMNS}, p.user_id AS owner_id FROM properties pr "
        f"JOIN portfolios p ON p.id = pr.portfolio_id WHERE pr.id = :id{_policy(visible_to, params)}"
    )
    return property_from_row(store.fetch_one("fetch property", sql, params))


def insert_property(
    store: Store,
    portfolio_id: str,
    data: Dict[str, Any],
    property_id: Optional[str] = None,
) -> Dict[str, Any]:
    now = now_iso()
    row = {
        "id": property_id or str(uuid.uuid4()),
        "portfolio_id": portfolio_id,
        "data": json.dumps(data),
        "created_at": now,
        "updated_at": now,
    }
    store.execute(
        "create property",
        """
        INSERT INTO properties (id, portfolio_id, data, created_at, updated_at)
        VALUES (:id, :portfolio_id, :data, :created_at, :updated_at)
        """,
        row,
    )
    return property_from_row(row)


def update_property_row(store: Store, property_id: str, data: Dict[str, Any], visible_to: Optional[str]) -> int:
    params: Dict[str, Any] = {"id": property_id, "data": json.dumps(data), "now": now_iso()}
    policy = ""
    if visible_to is not None:
        params["visible_to"] = visible_to
        policy = " AND portfolio_id IN (SELECT id FROM portfolios WHERE user_id = :visible_to)"
    return store.execute(
        "update property",
        f"UPDATE properties SET data = :data, updated_at = :now WHERE id = :id{policy}",
        params,
    )
