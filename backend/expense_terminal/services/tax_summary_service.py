"""Loads a user's tax-year data and runs the tax calculator over it."""

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from expense_terminal.config import settings
from expense_terminal.models.tax import Deduction, OrgSettings, TaxYearSetting
from expense_terminal.models.transaction import Transaction
from expense_terminal.services.tax_calculator import calculate_tax_summary, filter_by_quarter

logger = structlog.get_logger()

# Only reviewed transactions count toward the summary
SUMMARY_STATUSES = ("completed", "auto_sorted")


class TaxSummaryService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_summary(self, user_id: str, tax_year: int, quarter: int | None = None) -> dict:
        result = await self.db.execute(
            select(Transaction)
            .where(
                Transaction.user_id == user_id,
                Transaction.tax_year == tax_year,
                Transaction.status.in_(SUMMARY_STATUSES),
            )
            .order_by(Transaction.date.desc())
        )
        rows = [
            {
                "id": t.id,
                "date": t.date.isoformat(),
                "amount": float(t.amount),
                "transaction_type": t.transaction_type,
                "schedule_c_line": t.schedule_c_line,
                "category": t.category,
                "is_meal": t.is_meal,
                "is_travel": t.is_travel,
                "deduction_percent": t.deduction_percent,
            }
            for t in result.scalars().all()
        ]

        result = await self.db.execute(
            select(Deduction.type, Deduction.amount).where(
                Deduction.user_id == user_id,
                Deduction.tax_year == tax_year,
            )
        )
        deductions = [{"type": d.type, "amount": float(d.amount)} for d in result.all()]

        tax_rate = await self.get_tax_rate(user_id, tax_year)
        filing_type = await self.get_filing_type(user_id)

        transactions = filter_by_quarter(rows, quarter)
        summary = calculate_tax_summary(transactions, deductions, tax_rate=tax_rate)

        logger.debug(
            "tax_summary_computed",
            user_id=user_id,
            tax_year=tax_year,
            quarter=quarter,
            transactions=len(transactions),
        )
        return {
            **summary.to_dict(),
            "tax_year": tax_year,
            "quarter": quarter,
            "tax_rate": tax_rate,
            "filing_type": filing_type,
            "transaction_count": len(transactions),
            "transactions": transactions,
        }

    async def get_tax_rate(self, user_id: str, tax_year: int) -> float:
        result = await self.db.execute(
            select(TaxYearSetting.tax_rate).where(
                TaxYearSetting.user_id == user_id,
                TaxYearSetting.tax_year == tax_year,
            )
        )
        rate = result.scalar_one_or_none()
        return float(rate) if rate is not None else settings.default_tax_rate

    async def get_filing_type(self, user_id: str) -> str | None:
        result = await self.db.execute(
            select(OrgSettings.filing_type).where(OrgSettings.user_id == user_id)
        )
        return result.scalar_one_or_none()
