"""
backend/routes_properties.py

Property endpoints (properties live inside a portfolio; loans are embedded
in the property's data).

Security guarantees:
- Every endpoint resolves the caller before touching storage
- Ownership is checked with can_access_portfolio() against the target
  portfolio before any write, including the elevated insert on creation
- Missing portfolio/property -> 404, not owned -> 403
- Input validation via Pydantic schemas
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Path, Query, Request
from fastapi.security import HTTPAuthorizationCredentials
from pydantic import ValidationError as PydanticValidationError

from backend.auth_context import get_optional_user, require_auth_context, security
from backend.config import IS_DEV, Settings
from backend.db import Store
from backend.dependencies import get_elevated_access, get_scoped_access, get_settings, get_store, resolve_writer
from backend.errors import NotFoundError, ValidationError, describe_validation_errors
from backend.models import AuthenticatedUser
from backend.rbac import require_portfolio_access
from backend.schemas_portfolios import (
    PropertyCreatedResponse,
    PropertyCreateRequest,
    PropertyListResponse,
    PropertyResponse,
    new_embedded_loan,
    property_view,
)
from backend.tenant import ElevatedAccess, ScopedAccess
from backend.users import now_iso
from domains.property.models.loan_input import LoanData
from domains.property.models.property_input import PropertyData, clean_property_data


router = APIRouter(
    prefix="/api/properties",
    tags=["properties"],
)


def _load_owned_property(
    property_id: str,
    user: AuthenticatedUser,
    elevated: ElevatedAccess,
    label: str,
) -> Dict[str, Any]:
    """Fetch a property and verify the caller may access its portfolio."""
    prop = elevated.get_property(property_id)
    if prop is None:
        raise NotFoundError("Property not found")
    require_portfolio_access(user, prop.get("owner_id"), label)
    return prop


@router.post("", status_code=201, response_model=PropertyCreatedResponse)
def create_property(
    request: Request,
    payload: Dict[str, Any] = Body(...),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    settings: Settings = Depends(get_settings),
    store: Store = Depends(get_store),
) -> Dict[str, Any]:
    """
    Create a property in a portfolio, optionally with an embedded loan.

    Body: {portfolioId, propertyData, loanData?}

    Order of checks:
    1. Required fields present and valid (400), before any auth work
    2. Caller resolved (401; AUTH_MODE=bypass writes as the dev identity)
    3. Portfolio exists (404) and caller may access it (403)
    4. Elevated insert

    Returns:
        201 {"property": <stored row>}
    """
    if not payload.get("portfolioId") or not payload.get("propertyData"):
        raise ValidationError("Missing required fields: portfolioId and propertyData")

    try:
        body = PropertyCreateRequest(**payload)
    except PydanticValidationError as e:
        raise ValidationError(f"Validation failed: {describe_validation_errors(e.errors())}")

    writer = resolve_writer(get_optional_user(request, credentials), settings, store)

    elevated = ElevatedAccess(store)
    portfolio = elevated.get_portfolio(body.portfolioId)
    if portfolio is None:
        raise NotFoundError("Portfolio not found")
    require_portfolio_access(writer, portfolio["user_id"], "create property")

    data = clean_property_data(body.propertyData)
    if body.loanData is not None:
        loan = new_embedded_loan(body.loanData)
        data["loans"] = [loan]
        data["loan"] = loan

    prop = elevated.create_property(body.portfolioId, data)
    print(f"[PROPERTIES] Property created: property_id={prop['id']}, portfolio_id={body.portfolioId}, user_id={writer.id}")
    return {"property": prop}


@router.get("", response_model=PropertyListResponse)
def list_properties(
    portfolio_id: Optional[str] = Query(None, alias="portfolioId"),
    user: AuthenticatedUser = Depends(require_auth_context),
    access: ScopedAccess = Depends(get_scoped_access),
    elevated: ElevatedAccess = Depends(get_elevated_access),
) -> Dict[str, Any]:
    """List a portfolio's properties, newest first."""
    if not portfolio_id:
        raise ValidationError("Missing required parameter: portfolioId")

    portfolio = elevated.get_portfolio(portfolio_id)
    if portfolio is None:
        raise NotFoundError("Portfolio not found")
    require_portfolio_access(user, portfolio["user_id"], "list properties")

    properties = access.list_properties(portfolio_id)
    if IS_DEV:
        print(f"[PROPERTIES] Properties found: portfolio_id={portfolio_id}, count={len(properties)}")
    return {"properties": [property_view(p) for p in properties]}


@router.get("/{property_id}", response_model=PropertyResponse)
def get_property(
    property_id: str = Path(..., min_length=1),
    access: ScopedAccess = Depends(get_scoped_access),
) -> Dict[str, Any]:
    prop = access.get_property(property_id)
    if prop is None:
        raise NotFoundError("Property not found")
    return {"property": property_view(prop)}


@router.patch("/{property_id}", response_model=PropertyResponse)
def update_property(
    updates: Dict[str, Any] = Body(...),
    property_id: str = Path(..., min_length=1),
    user: AuthenticatedUser = Depends(require_auth_context),
    access: ScopedAccess = Depends(get_scoped_access),
    elevated: ElevatedAccess = Depends(get_elevated_access),
) -> Dict[str, Any]:
    """
    Merge a partial PropertyData into the stored data.
    Known keys are validated; unknown keys are kept.
    """
    try:
        validated = clean_property_data(PropertyData(**updates))
    except PydanticValidationError as e:
        raise ValidationError(f"Validation failed: {describe_validation_errors(e.errors())}")

    current = _load_owned_property(property_id, user, elevated, "update property")
    merged = {**(current.get("data") or {}), **validated}

    updated = access.update_property_data(property_id, merged)
    if updated is None:
        raise NotFoundError("Property not found")

    print(f"[PROPERTIES] Property updated: property_id={property_id}, user_id={user.id}")
    return {"property": property_view(updated)}


@router.put("/{property_id}/loan", response_model=PropertyResponse)
def put_property_loan(
    loan_data: LoanData,
    property_id: str = Path(..., min_length=1),
    user: AuthenticatedUser = Depends(require_auth_context),
    access: ScopedAccess = Depends(get_scoped_access),
    elevated: ElevatedAccess = Depends(get_elevated_access),
) -> Dict[str, Any]:
    """
    Store the property's primary loan.

    The loan replaces data.loan and the first entry of data.loans, keeping
    the existing loan id and created_at when there is one.
    """
    current = _load_owned_property(property_id, user, elevated, "store loan")
    data = dict(current.get("data") or {})
    loans = list(data.get("loans") or [])

    loan = new_embedded_loan(loan_data)
    previous = loans[0] if loans else data.get("loan")
    if previous:
        loan["id"] = previous.get("id") or loan["id"]
        loan["created_at"] = previous.get("created_at") or loan["created_at"]
    loan["updated_at"] = now_iso()

    if loans:
        loans[0] = loan
    else:
        loans = [loan]
    data["loans"] = loans
    data["loan"] = loan

    updated = access.update_property_data(property_id, data)
    if updated is None:
        raise NotFoundError("Property not found")

    print(f"[PROPERTIES] Loan stored: property_id={property_id}, loan_id={loan['id']}")
    return {"property": property_view(updated)}
