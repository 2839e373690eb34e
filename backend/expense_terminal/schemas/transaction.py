"""Transaction schemas for request/response validation."""

from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Literal

from pydantic import AfterValidator, BaseModel, Field

from expense_terminal.schemas.categorization import CamelModel

MAX_AMOUNT = Decimal("10000000")

TransactionType = Literal["income", "expense"]
ReviewStatus = Literal["pending", "completed", "personal", "auto_sorted"]


def _check_amount(value: Decimal) -> Decimal:
    if abs(value) >= MAX_AMOUNT:
        raise ValueError("Amount must be between -10,000,000 and 10,000,000")
    return value


Amount = Annotated[Decimal, AfterValidator(_check_amount)]


class TransactionCreate(BaseModel):
    """Manual entry (typically income)."""

    date: date
    vendor: str = Field(..., min_length=1, max_length=500)
    amount: Amount
    description: str | None = Field(None, max_length=2000)
    transaction_type: TransactionType = "income"


class TransactionUpdate(BaseModel):
    """Review update from the inbox."""

    quick_label: str | None = Field(None, max_length=500)
    business_purpose: str | None = Field(None, max_length=2000)
    notes: str | None = Field(None, max_length=2000)
    status: ReviewStatus | None = None
    deduction_percent: int | None = Field(None, ge=0, le=100)


class TransactionResponse(BaseModel):
    id: str
    user_id: str
    date: date
    vendor: str
    description: str | None = None
    amount: Decimal
    transaction_type: str | None = None
    tax_year: int
    source: str | None = None
    category: str | None = None
    schedule_c_line: str | None = None
    ai_confidence: float | None = None
    ai_reasoning: str | None = None
    ai_suggestions: list[str] | None = None
    is_meal: bool | None = None
    is_travel: bool | None = None
    deduction_percent: int | None = None
    status: str
    quick_label: str | None = None
    business_purpose: str | None = None
    notes: str | None = None
    vendor_normalized: str | None = None
    auto_sort_rule_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


class TransactionListResponse(BaseModel):
    data: list[TransactionResponse]
    count: int


class TransactionCountResponse(BaseModel):
    count: int


# ── Import of already-parsed rows ─────────────────


class ImportRow(BaseModel):
    date: date
    vendor: str = Field(..., min_length=1, max_length=500)
    description: str | None = Field(None, max_length=2000)
    amount: Amount
    category: str | None = Field(None, max_length=200)
    notes: str | None = Field(None, max_length=2000)
    transaction_type: TransactionType | None = None


class ImportRequest(CamelModel):
    rows: list[ImportRow] = Field(..., min_length=1, max_length=5000)
    tax_year: int | None = Field(None, ge=2000, le=2100)


class ImportResult(CamelModel):
    imported: int
    transaction_ids: list[str]
    needs_review: int


# ── Auto-sort ─────────────────────────────────────


class AutoSortRequest(CamelModel):
    vendor_normalized: str = Field(..., max_length=500)
    quick_label: str = Field(..., max_length=500)
    business_purpose: str | None = Field(None, max_length=2000)
    category: str | None = Field(None, max_length=200)
    tax_year: int | None = Field(None, ge=2000, le=2100)


class AutoSortResponse(CamelModel):
    rule_id: str
    updated_count: int
