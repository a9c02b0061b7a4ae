from pydantic import BaseModel, Field, validator
from typing import List, Optional
from enum import Enum
import re


DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class LoanType(str, Enum):
    interest_only = "interest_only"
    principal_interest = "principal_interest"


class RateStepUp(BaseModel):
    """Scheduled rate change, e.g. when a fixed period ends."""
    year: int = Field(..., ge=1, le=50)
    new_rate: float = Field(..., ge=0, le=1)


class LoanData(BaseModel):
    """
    Loan attached to a property.
    Sent as loanData on property creation and as the body of PUT .../loan.
    """

    type: LoanType
    principal_amount: float = Field(..., ge=0, le=10_000_000)
    interest_rate: float = Field(..., ge=0, le=1, description="Annual rate as a decimal (0.065 for 6.5%)")
    term_years: int = Field(..., ge=1, le=50)
    start_date: str
    io_years: Optional[int] = Field(None, ge=0, le=30, description="Interest-only period in years")
    rate_step_ups: Optional[List[RateStepUp]] = None

    @validator("start_date")
    def validate_start_date(cls, v):
        if not DATE_PATTERN.match(v):
            raise ValueError("Invalid date format")
        return v

    class Config:
        use_enum_values = True
