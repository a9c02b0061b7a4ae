# backend/db.py
# Storage client supporting PostgreSQL (hosted) and SQLite (dev)

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Dict, Generator, Iterable, List, Optional
from urllib.parse import urlparse

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from backend.config import IS_DEV, Settings
from backend.errors import StorageError, StorageUnavailable


class Store:
    """
    Explicitly constructed storage client.

    One instance per process (created in the app lifespan, or injected by
    tests). Every call runs under the configured timeout; connection failures
    and timeouts surface as StorageUnavailable, other driver errors as
    StorageError. IntegrityError is re-raised untouched so callers can
    resolve unique-constraint races themselves.
    """

    def __init__(self, url: str, timeout_seconds: float = 5.0):
        self.url = url
        self.timeout_seconds = timeout_seconds
        self.is_postgres = url.startswith("postgresql")
        self.engine: Engine = self._create_engine()

    @classmethod
    def from_settings(cls, settings: Settings) -> "Store":
        return cls(settings.storage_url, settings.storage_timeout_seconds)

    def _create_engine(self) -> Engine:
        if self.is_postgres:
            parsed = urlparse(self.url)
            if not parsed.scheme or not parsed.netloc:
                raise ValueError(f"Invalid DATABASE_URL: {self.url[:20]}...")

            timeout_ms = int(self.timeout_seconds * 1000)
            engine = create_engine(
                self.url,
                pool_size=5,
                max_overflow=10,
                pool_pre_ping=True,  # Verify connections before use
                pool_timeout=self.timeout_seconds,
                connect_args={
                    "connect_timeout": max(1, int(self.timeout_seconds)),
                    "options": f"-c statement_timeout={timeout_ms}",
                },
            )
            print(f"[STORE] Using PostgreSQL ({parsed.hostname})")
            return engine

        engine = create_engine(
            self.url,
            connect_args={"timeout": self.timeout_seconds, "check_same_thread": False},
        )

        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_conn, _record):
            # SQLite ignores ON DELETE CASCADE unless this is on
            cur = dbapi_conn.cursor()
            cur.execute("PRAGMA foreign_keys=ON")
            cur.close()

        print(f"[STORE] Using SQLite ({self.url[len('sqlite:///'):] or 'memory'})")
        return engine

    @contextmanager
    def connect(self, operation: str) -> Generator[Connection, None, None]:
        """Read-only connection; storage failures are mapped for `operation`."""
        with self._mapped_errors(operation):
            with self.engine.connect() as conn:
                yield conn

    @contextmanager
    def transaction(self, operation: str) -> Generator[Connection, None, None]:
        """Connection inside BEGIN ... COMMIT (rolled back on any exception)."""
        with self._mapped_errors(operation):
            with self.engine.begin() as conn:
                yield conn

    @contextmanager
    def _mapped_errors(self, operation: str) -> Generator[None, None, None]:
        try:
            yield
        except IntegrityError:
            raise
        except (OperationalError, PoolTimeoutError) as e:
            detail = _short_detail(e)
            print(f"[STORE] Storage unavailable during '{operation}': {detail}")
            raise StorageUnavailable(operation, detail) from e
        except SQLAlchemyError as e:
            detail = _short_detail(e)
            print(f"[STORE] Storage error during '{operation}': {detail}")
            raise StorageError(operation, detail) from e

    def fetch_one(self, operation: str, sql: str, params: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
        with self.connect(operation) as conn:
            row = conn.execute(text(sql), params or {}).mappings().first()
            return dict(row) if row is not None else None

    def fetch_all(self, operation: str, sql: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        with self.connect(operation) as conn:
            return [dict(r) for r in conn.execute(text(sql), params or {}).mappings().all()]

    def execute(self, operation: str, sql: str, params: Optional[Dict[str, Any]] = None) -> int:
        """Run one write statement in its own transaction; returns rowcount."""
        with self.transaction(operation) as conn:
            return conn.execute(text(sql), params or {}).rowcount

    def execute_many(self, operation: str, statements: Iterable[str]) -> None:
        with self.transaction(operation) as conn:
            for sql in statements:
                conn.execute(text(sql))

    def init_schema(self) -> None:
        from backend.migrate import run_migrations
        run_migrations(self)

    def dispose(self) -> None:
        self.engine.dispose()
        if IS_DEV:
            print("[STORE] Engine disposed")


def _short_detail(exc: SQLAlchemyError) -> str:
    # Driver message without the SQL statement and parameters
    orig = getattr(exc, "orig", None)
    lines = str(orig if orig is not None else exc).strip().splitlines()
    return lines[0] if lines else type(exc).__name__
