"""
backend/routes_portfolios.py

Portfolio endpoints.

Security guarantees:
- Reads require authentication (require_auth_context)
- Writes use the writer identity (authenticated caller, or the fixed dev
  identity when AUTH_MODE=bypass in dev)
- All queries go through ScopedAccess (owner or admin row policy)
- No client-provided user_id accepted
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends, Path

from backend.auth_context import require_auth_context
from backend.config import IS_DEV, Settings
from backend.dependencies import get_scoped_access, get_settings, get_store, require_writer_context
from backend.db import Store
from backend.errors import NotFoundError
from backend.models import AuthenticatedUser
from backend.provisioning import ensure_user_has_portfolio
from backend.rbac import require_portfolio_access
from backend.schemas_portfolios import (
    PortfolioCreateRequest,
    PortfolioListResponse,
    PortfolioResponse,
    PortfolioSummaryResponse,
    portfolio_summary,
)
from backend.tenant import ScopedAccess


router = APIRouter(
    prefix="/api/portfolios",
    tags=["portfolios"],
)


@router.get("", response_model=PortfolioListResponse)
def list_portfolios(
    user: AuthenticatedUser = Depends(require_auth_context),
    access: ScopedAccess = Depends(get_scoped_access),
    store: Store = Depends(get_store),
) -> Dict[str, Any]:
    """
    List the caller's portfolios, newest first.

    A caller with no portfolio yet gets their primary portfolio provisioned
    on the spot, so the list is never empty for an authenticated user.
    """
    portfolios = access.list_portfolios(user.id)

    if not portfolios:
        ensure_user_has_portfolio(store, user.id)
        portfolios = access.list_portfolios(user.id)

    if IS_DEV:
        print(f"[PORTFOLIOS] Portfolios found: user_id={user.id}, count={len(portfolios)}")
    return {"portfolios": portfolios}


@router.post("", status_code=201, response_model=PortfolioResponse)
def create_portfolio(
    request: PortfolioCreateRequest,
    writer: AuthenticatedUser = Depends(require_writer_context),
    store: Store = Depends(get_store),
    settings: Settings = Depends(get_settings),
) -> Dict[str, Any]:
    """
    Create a portfolio owned by the writer identity.

    Omitted fields take the defaults; partial globals are merged over the
    default assumptions.

    Raises:
        ValidationError(400): globals out of range
        AuthError(401): no session (enforced mode)
    """
    access = ScopedAccess(store, writer, fail_fast=not settings.is_dev)
    portfolio = access.create_portfolio(
        writer.id,
        name=request.name,
        globals_=request.globals,
        start_year=request.start_year,
    )
    print(f"[PORTFOLIOS] Portfolio created: portfolio_id={portfolio['id']}, user_id={writer.id}")
    return {"portfolio": portfolio}


@router.get("/{portfolio_id}/summary", response_model=PortfolioSummaryResponse)
def get_portfolio_summary(
    portfolio_id: str = Path(..., min_length=1),
    user: AuthenticatedUser = Depends(require_auth_context),
    access: ScopedAccess = Depends(get_scoped_access),
) -> Dict[str, Any]:
    """Totals across the portfolio's properties, with formatted display strings."""
    portfolio = access.get_portfolio(portfolio_id)
    if portfolio is None:
        raise NotFoundError("Portfolio not found")
    require_portfolio_access(user, portfolio["user_id"], "portfolio summary")

    properties = access.list_properties(portfolio_id)
    return {"portfolio": portfolio, "summary": portfolio_summary(portfolio, properties)}
