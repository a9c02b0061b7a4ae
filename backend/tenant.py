"""
backend/tenant.py

Resource access modes (Defense in Depth)

All portfolio and property queries go through one of two access objects:

- ScopedAccess: bound to the calling user; every query carries the row
  policy (owner or admin). Used by all user-facing reads and writes.
- ElevatedAccess: policy-free, for trusted server writes. Routes only reach
  it after an explicit can_access_portfolio() check on the target portfolio.

Guardrails on returned rows:
- In DEV: emit warnings for unsafe access
- In STAGING/PROD: fail fast with a StorageError (HTTP 500)
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from backend.config import IS_DEV
from backend.db import Store
from backend.errors import AccessDeniedError, StorageError, ValidationError
from backend.models import AuthenticatedUser, GlobalAssumptions
from backend.provisioning import DEFAULT_PORTFOLIO_NAME, default_globals
from backend.rbac import is_admin
from backend import repository


def assert_rows_owned(
    rows: List[Dict[str, Any]],
    owner_id: str,
    label: str = "",
    fail_fast: Optional[bool] = None,
) -> None:
    """
    Guardrail: Assert that all returned rows belong to the specified owner.

    Args:
        rows: Decoded portfolio rows
        owner_id: Expected user_id for all rows
        label: Identifier for logging (e.g., operation name)
        fail_fast: Raise instead of warning; defaults to "not dev" from ENV

    Raises:
        StorageError: If any row has a mismatched user_id and fail_fast is set
    """
    if not rows:
        return

    mismatches = [
        {"index": i, "found": row.get("user_id")}
        for i, row in enumerate(rows)
        if row.get("user_id") != owner_id
    ]
    if not mismatches:
        return

    error_msg = f"[TENANT] Tenant isolation violation{f' in {label}' if label else ''}"
    detail_msg = f"Found {len(mismatches)} row(s) with mismatched user_id"
    if fail_fast is None:
        fail_fast = not IS_DEV
    if not fail_fast:
        print(f"{error_msg}: {detail_msg}")
        print(f"[TENANT][DEV] Expected user_id={owner_id}, found mismatches: {mismatches[:3]}")
    else:
        print(f"{error_msg}: {detail_msg} (PRODUCTION - failing fast)")
        raise StorageError(label or "fetch portfolios", "tenant isolation violation")


def merge_globals(partial: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Overlay caller-supplied assumptions on the defaults and validate the result.

    Raises:
        ValidationError: a value is out of range or not a number
    """
    merged = {**default_globals(), **(partial or {})}
    try:
        return GlobalAssumptions(**merged).dict()
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid globals: {_first_error(e)}")


def _first_error(exc: Exception) -> str:
    errors = getattr(exc, "errors", None)
    if callable(errors):
        details = errors()
        if details:
            loc = ".".join(str(p) for p in details[0].get("loc", ()))
            return f"{loc}: {details[0].get('msg')}"
    return str(exc)


class ScopedAccess:
    """
    Storage access bound to one user's row policy.
    Admins see every row; everyone else sees only portfolios they own.
    """

    def __init__(self, store: Store, user: AuthenticatedUser, fail_fast: Optional[bool] = None):
        self.store = store
        self.user = user
        self.fail_fast = (not IS_DEV) if fail_fast is None else fail_fast

    @property
    def _visible_to(self) -> Optional[str]:
        return None if is_admin(self.user) else self.user.id

    def list_portfolios(self, owner_id: str) -> List[Dict[str, Any]]:
        """Portfolios of owner_id visible to the caller, newest first."""
        rows = repository.select_portfolios(self.store, owner_id, self._visible_to)
        assert_rows_owned(rows, owner_id, "fetch portfolios", fail_fast=self.fail_fast)
        return rows

    def get_portfolio(self, portfolio_id: str) -> Optional[Dict[str, Any]]:
        return repository.select_portfolio(self.store, portfolio_id, self._visible_to)

    def create_portfolio(
        self,
        owner_id: Optional[str],
        name: Optional[str] = None,
        globals_: Optional[Dict[str, Any]] = None,
        start_year: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Insert a portfolio for owner_id.

        Defaults: name "My Investment Portfolio", globals merged over the
        defaults, start_year taken from globals.startYear.

        Raises:
            ValidationError: owner_id missing or globals invalid
            AccessDeniedError: inserting for another owner (non-admin)
        """
        if not owner_id:
            raise ValidationError("User ID is required")
        if owner_id != self.user.id and not is_admin(self.user):
            print(f"[TENANT] Insert for another owner denied: user_id={self.user.id}, owner_id={owner_id}")
            raise AccessDeniedError()

        merged = merge_globals(globals_)
        portfolio = repository.insert_portfolio(
            self.store,
            user_id=owner_id,
            name=name or DEFAULT_PORTFOLIO_NAME,
            globals_=merged,
            start_year=start_year if start_year is not None else merged["startYear"],
        )
        if IS_DEV:
            print(f"[TENANT] Portfolio created: portfolio_id={portfolio['id']}, owner_id={owner_id}")
        return portfolio

    def list_properties(self, portfolio_id: str) -> List[Dict[str, Any]]:
        return repository.select_properties(self.store, portfolio_id, self._visible_to)

    def get_property(self, property_id: str) -> Optional[Dict[str, Any]]:
        return repository.select_property(self.store, property_id, self._visible_to)

    def update_property_data(self, property_id: str, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Replace properties.data; None when the row is missing or not visible."""
        updated = repository.update_property_row(self.store, property_id, data, self._visible_to)
        if updated == 0:
            return None
        return self.get_property(property_id)


class ElevatedAccess:
    """
    Policy-free storage access for trusted server writes.
    Callers MUST have checked can_access_portfolio() on the target first.
    """

    def __init__(self, store: Store):
        self.store = store

    def get_portfolio(self, portfolio_id: str) -> Optional[Dict[str, Any]]:
        return repository.select_portfolio(self.store, portfolio_id, None)

    def get_property(self, property_id: str) -> Optional[Dict[str, Any]]:
        """Property row with its portfolio's owner_id, for ownership checks."""
        return repository.select_property(self.store, property_id, None)

    def create_property(self, portfolio_id: Optional[str], property_data: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        """
        Raises:
            ValidationError: portfolio_id or property_data missing
        """
        if not portfolio_id or not property_data:
            raise ValidationError("Portfolio ID and property data are required")
        prop = repository.insert_property(self.store, portfolio_id, property_data)
        print(f"[TENANT] Property created (elevated): property_id={prop['id']}, portfolio_id={portfolio_id}")
        return prop
