from pydantic import BaseModel, Field
from typing import Optional, Dict, Any
from enum import Enum

# Enums
class UserRole(str, Enum):
    client = "client"
    admin = "admin"

# Models
class AuthenticatedUser(BaseModel):
    id: str
    email: Optional[str] = None
    role: UserRole = UserRole.client

class GlobalAssumptions(BaseModel):
    # camelCase keys are the stored JSON shape
    startYear: int = Field(2024, ge=2020, le=2050)
    marginalTax: float = Field(0.37, ge=0, le=1)
    medicare: float = Field(0.02, ge=0, le=1)
    rentGrowth: float = Field(0.03, ge=-0.5, le=1)
    expenseInflation: float = Field(0.025, ge=-0.5, le=1)
    capitalGrowth: float = Field(0.04, ge=-0.5, le=1)
    targetIncome: float = Field(100000, ge=0, le=10_000_000)

class Portfolio(BaseModel):
    id: str
    user_id: str
    name: str
    globals: Dict[str, Any] = Field(default_factory=dict)
    start_year: int
    is_primary: bool = False
    created_at: str
    updated_at: str

class Property(BaseModel):
    id: str
    portfolio_id: str
    data: Dict[str, Any] = Field(default_factory=dict)  # PropertyData, loose bag
    created_at: str
    updated_at: str
