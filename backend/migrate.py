# backend/migrate.py
# Database migration module for PostgreSQL and SQLite
# Run: python -m backend.migrate

from __future__ import annotations

from typing import List

from backend.config import Settings
from backend.db import Store

# JSON columns are TEXT and booleans INTEGER so one DDL serves both databases
SCHEMA: List[str] = [
    """
    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        email TEXT UNIQUE,  -- NULL when the provider has none
        name TEXT,
        role TEXT NOT NULL DEFAULT 'client',
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS portfolios (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        name TEXT NOT NULL,
        globals TEXT NOT NULL,
        start_year INTEGER NOT NULL,
        is_primary INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_portfolios_user_created ON portfolios(user_id, created_at)",
    # At most one primary portfolio per user; provisioning races resolve against this
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_portfolios_one_primary ON portfolios(user_id) WHERE is_primary = 1",
    """
    CREATE TABLE IF NOT EXISTS properties (
        id TEXT PRIMARY KEY,
        portfolio_id TEXT NOT NULL REFERENCES portfolios(id) ON DELETE CASCADE,
        data TEXT NOT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_properties_portfolio ON properties(portfolio_id)",
]


def run_migrations(store: Store) -> None:
    """
    Run all database migrations (idempotent).
    Creates tables and indexes if missing. Safe to run multiple times.
    """
    print(f"[MIGRATE] Running {'PostgreSQL' if store.is_postgres else 'SQLite'} migrations...")
    store.execute_many("run migrations", SCHEMA)
    print("[MIGRATE] All migrations complete!")


if __name__ == "__main__":
    settings = Settings.from_env()
    settings.describe()
    _store = Store.from_settings(settings)
    try:
        run_migrations(_store)
    finally:
        _store.dispose()
