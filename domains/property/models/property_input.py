from pydantic import BaseModel, Field, validator
from typing import Any, Dict, List, Optional
from enum import Enum
import re


DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class PropertyType(str, Enum):
    residential_house = "residential_house"
    residential_unit = "residential_unit"
    commercial_office = "commercial_office"
    commercial_retail = "commercial_retail"
    commercial_industrial = "commercial_industrial"
    mixed_use = "mixed_use"


class InvestmentStrategy(str, Enum):
    buy_hold = "buy_hold"
    manufacture_equity = "manufacture_equity"
    value_add_commercial = "value_add_commercial"


class CashflowStatus(str, Enum):
    not_modeled = "not_modeled"
    modeling = "modeling"
    modeled = "modeled"
    in_progress = "in_progress"
    error = "error"


class PropertyStatus(str, Enum):
    modelling = "modelling"
    shortlisted = "shortlisted"
    bought = "bought"
    sold = "sold"


class PropertyData(BaseModel):
    """
    Property attributes as stored in properties.data.

    Every field is optional: known keys are checked when present,
    unknown keys are kept as-is.
    """

    # Identity & location
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    type: Optional[PropertyType] = None
    address: Optional[str] = Field(None, max_length=200)

    # Deal basics
    purchase_price: Optional[float] = Field(None, ge=0, le=100_000_000)
    current_value: Optional[float] = Field(None, ge=0, le=100_000_000)
    purchase_date: Optional[str] = None
    strategy: Optional[InvestmentStrategy] = None

    # Workflow
    cashflow_status: Optional[CashflowStatus] = None
    status: Optional[PropertyStatus] = None

    # Income & costs (annual)
    annual_rent: Optional[float] = Field(None, ge=0, le=10_000_000)
    annual_expenses: Optional[float] = Field(None, ge=0, le=1_000_000)

    description: Optional[str] = Field(None, max_length=1000)

    # Embedded finance
    loan: Optional[Dict[str, Any]] = None
    loans: Optional[List[Dict[str, Any]]] = None

    @validator("purchase_date")
    def validate_purchase_date(cls, v):
        if v is not None and not DATE_PATTERN.match(v):
            raise ValueError("Invalid date format")
        return v

    class Config:
        extra = "allow"
        use_enum_values = True


def clean_property_data(data: PropertyData) -> Dict[str, Any]:
    """Plain dict of the fields the caller actually sent (unknown keys included)."""
    return data.dict(exclude_unset=True)
