"""Standalone deductions, per-year tax settings and organization settings."""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import JSON, DateTime, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from expense_terminal.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin, utcnow


class Deduction(Base, UUIDPrimaryKeyMixin):
    """A deduction not tied to a transaction (home office, mileage, QBI, ...)."""

    __tablename__ = "deductions"

    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(200), nullable=False)
    tax_year: Mapped[int] = mapped_column(Integer, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    tax_savings: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    metadata_: Mapped[dict | None] = mapped_column("metadata", JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )


class TaxYearSetting(Base, UUIDPrimaryKeyMixin):
    __tablename__ = "tax_year_settings"

    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    tax_year: Mapped[int] = mapped_column(Integer, nullable=False)
    tax_rate: Mapped[Decimal] = mapped_column(Numeric(5, 4), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    __table_args__ = (
        UniqueConstraint("user_id", "tax_year", name="uq_tax_year_settings_user_year"),
    )


class OrgSettings(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "org_settings"

    user_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    business_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    filing_type: Mapped[str | None] = mapped_column(String(50), nullable=True)  # sole_proprietor, single_llc, ...
