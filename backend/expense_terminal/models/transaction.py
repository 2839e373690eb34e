"""Transaction model."""

from datetime import date
from decimal import Decimal

from sqlalchemy import JSON, Boolean, Date, Float, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from expense_terminal.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin

TRANSACTION_STATUSES = ("pending", "completed", "personal", "auto_sorted")
TRANSACTION_TYPES = ("expense", "income")


class Transaction(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "transactions"

    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    vendor: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    transaction_type: Mapped[str | None] = mapped_column(String(10), default="expense", nullable=True)
    tax_year: Mapped[int] = mapped_column(Integer, nullable=False)
    source: Mapped[str | None] = mapped_column(String(20), nullable=True)  # manual, import

    # Categorization (written by the categorization pipeline or manual edit)
    category: Mapped[str | None] = mapped_column(String(200), nullable=True)
    schedule_c_line: Mapped[str | None] = mapped_column(String(10), nullable=True)
    ai_confidence: Mapped[float | None] = mapped_column(Float, nullable=True)
    ai_reasoning: Mapped[str | None] = mapped_column(Text, nullable=True)
    ai_suggestions: Mapped[list | None] = mapped_column(JSON, nullable=True)  # quick labels
    is_meal: Mapped[bool | None] = mapped_column(Boolean, default=False, nullable=True)
    is_travel: Mapped[bool | None] = mapped_column(Boolean, default=False, nullable=True)
    deduction_percent: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Review workflow
    status: Mapped[str] = mapped_column(String(20), default="pending", nullable=False)
    quick_label: Mapped[str | None] = mapped_column(String(500), nullable=True)
    business_purpose: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    vendor_normalized: Mapped[str | None] = mapped_column(String(500), nullable=True)
    auto_sort_rule_id: Mapped[str | None] = mapped_column(String(36), nullable=True)

    __table_args__ = (
        Index("idx_transactions_user_vendor_status", "user_id", "vendor_normalized", "status"),
        Index("idx_transactions_user_year_date", "user_id", "tax_year", "date"),
    )
