"""Tax summary, per-year settings and standalone deduction schemas."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from expense_terminal.schemas.categorization import CamelModel


class TaxSummaryTransaction(BaseModel):
    id: str
    date: str
    amount: float
    transaction_type: str | None = None
    schedule_c_line: str | None = None
    category: str | None = None
    is_meal: bool | None = None
    is_travel: bool | None = None
    deduction_percent: int | None = None


class TaxSummaryResponse(CamelModel):
    gross_income: float
    total_expenses: float
    net_profit: float
    se_earnings: float
    social_security_tax: float
    medicare_tax: float
    self_employment_tax: float
    deductible_se_tax: float
    taxable_income: float
    income_tax: float
    total_tax_liability: float
    estimated_quarterly_payment: float
    effective_tax_rate: float
    line_breakdown: dict[str, float]
    category_breakdown: dict[str, float]
    tax_year: int
    quarter: int | None = None
    tax_rate: float
    filing_type: str | None = None
    transaction_count: int
    transactions: list[TaxSummaryTransaction]


class TaxYearSettingCreate(BaseModel):
    tax_year: int = Field(..., ge=2000, le=2100)
    tax_rate: float = Field(..., ge=0, le=1)


class TaxYearSettingResponse(BaseModel):
    id: str
    user_id: str
    tax_year: int
    tax_rate: float
    created_at: datetime

    model_config = {"from_attributes": True}


class DeductionCreate(BaseModel):
    type: str = Field(..., min_length=1, max_length=200)
    tax_year: int = Field(..., ge=2000, le=2100)
    amount: Decimal = Field(..., gt=-10_000_000, lt=10_000_000)
    tax_savings: Decimal = Field(..., gt=-10_000_000, lt=10_000_000)
    metadata: dict | None = None


class DeductionResponse(BaseModel):
    id: str
    user_id: str
    type: str
    tax_year: int
    amount: Decimal
    tax_savings: Decimal
    metadata: dict | None = None
    created_at: datetime


class DeductionListResponse(BaseModel):
    data: list[DeductionResponse]
    count: int
