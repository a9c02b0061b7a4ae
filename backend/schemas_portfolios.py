"""
backend/schemas_portfolios.py

Pydantic schemas and response shaping for portfolio and property routes.
"""

from __future__ import annotations

import uuid
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from backend.formatters import format_compact_currency, format_currency, format_percent
from backend.models import Portfolio, Property
from backend.users import now_iso
from domains.property.models.loan_input import LoanData
from domains.property.models.property_input import PropertyData


# ========================================================================
# PORTFOLIO SCHEMAS
# ========================================================================

class PortfolioCreateRequest(BaseModel):
    """Request schema for creating a portfolio. Every field is optional."""
    name: Optional[str] = Field(None, max_length=200)
    globals: Optional[Dict[str, Any]] = Field(None, description="Partial assumptions, merged over the defaults")
    start_year: Optional[int] = Field(None, ge=2020, le=2050)


# ========================================================================
# PROPERTY SCHEMAS
# ========================================================================

class PropertyCreateRequest(BaseModel):
    """Body of POST /api/properties."""
    portfolioId: str = Field(..., min_length=1)
    propertyData: PropertyData
    loanData: Optional[LoanData] = None


# ========================================================================
# RESPONSE SCHEMAS
# ========================================================================

class PortfolioListResponse(BaseModel):
    portfolios: List[Portfolio] = Field(default_factory=list, description="Newest first")


class PortfolioResponse(BaseModel):
    portfolio: Portfolio


class PortfolioSummaryResponse(BaseModel):
    portfolio: Portfolio
    summary: Dict[str, Any] = Field(..., description="Totals plus formatted display strings")


class PropertyView(BaseModel):
    """A stored property flattened into the shape the client reads."""
    id: str
    portfolio_id: str
    name: Optional[str] = None
    type: Optional[str] = None
    address: Optional[str] = None
    purchase_price: Optional[float] = None
    current_value: Optional[float] = None
    purchase_date: Optional[str] = None
    strategy: Optional[str] = None
    cashflow_status: str = "not_modeled"
    status: str = "modelling"
    annual_rent: Optional[float] = None
    annual_expenses: Optional[float] = None
    description: Optional[str] = None
    loans: List[Dict[str, Any]] = Field(default_factory=list)
    loan: Optional[Dict[str, Any]] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class PropertyCreatedResponse(BaseModel):
    """The stored row, `data` exactly as persisted."""
    property: Property


class PropertyResponse(BaseModel):
    property: PropertyView


class PropertyListResponse(BaseModel):
    properties: List[PropertyView] = Field(default_factory=list)


# ========================================================================
# RESPONSE SHAPING
# ========================================================================

def new_embedded_loan(loan: LoanData) -> Dict[str, Any]:
    """Loan as embedded in properties.data, with generated id and timestamps."""
    now = now_iso()
    return {
        "id": f"loan_{uuid.uuid4().hex}",
        **loan.dict(exclude_none=True),
        "created_at": now,
        "updated_at": now,
    }


def _view_loan(property_id: str, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    loans = data.get("loans") or []
    if loans:
        return {"property_id": property_id, **loans[0]}

    embedded = data.get("loan")
    if embedded:
        return {**embedded, "id": f"embedded_{property_id}", "property_id": property_id}
    return None


def property_view(row: Dict[str, Any]) -> Dict[str, Any]:
    """Flatten a stored property row into the shape the client reads."""
    data = row.get("data") or {}
    return {
        "id": row["id"],
        "portfolio_id": row["portfolio_id"],
        "name": data.get("name"),
        "type": data.get("type"),
        "address": data.get("address"),
        "purchase_price": data.get("purchase_price"),
        "current_value": data.get("current_value"),
        "purchase_date": data.get("purchase_date"),
        "strategy": data.get("strategy"),
        "cashflow_status": data.get("cashflow_status") or "not_modeled",
        "status": data.get("status") or "modelling",
        "annual_rent": data.get("annual_rent"),
        "annual_expenses": data.get("annual_expenses"),
        "description": data.get("description"),
        "loans": data.get("loans") or [],
        "loan": _view_loan(row["id"], data),
        "created_at": row.get("created_at"),
        "updated_at": row.get("updated_at"),
    }


def _num(value: Any) -> float:
    try:
        return float(value) if value is not None else 0.0
    except (TypeError, ValueError):
        return 0.0


def portfolio_summary(portfolio: Dict[str, Any], properties: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Totals across a portfolio's properties plus display strings."""
    total_value = 0.0
    total_purchase = 0.0
    total_rent = 0.0
    total_expenses = 0.0
    total_debt = 0.0

    for prop in properties:
        data = prop.get("data") or {}
        total_value += _num(data.get("current_value"))
        total_purchase += _num(data.get("purchase_price"))
        total_rent += _num(data.get("annual_rent"))
        total_expenses += _num(data.get("annual_expenses"))
        loans = data.get("loans") or ([data["loan"]] if data.get("loan") else [])
        total_debt += sum(_num(loan.get("principal_amount")) for loan in loans)

    net_income = total_rent - total_expenses
    globals_ = portfolio.get("globals") or {}

    return {
        "property_count": len(properties),
        "total_value": total_value,
        "total_purchase_price": total_purchase,
        "total_debt": total_debt,
        "equity": total_value - total_debt,
        "annual_rent": total_rent,
        "annual_expenses": total_expenses,
        "net_annual_income": net_income,
        "display": {
            "total_value": format_compact_currency(total_value),
            "total_debt": format_compact_currency(total_debt),
            "equity": format_compact_currency(total_value - total_debt),
            "net_annual_income": format_currency(net_income),
            "target_income": format_currency(globals_.get("targetIncome")),
            "marginal_tax": format_percent(globals_.get("marginalTax")),
            "capital_growth": format_percent(globals_.get("capitalGrowth")),
        },
    }
