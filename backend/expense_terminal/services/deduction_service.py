"""Standalone deductions and per-year tax rate settings."""

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from expense_terminal.models.tax import Deduction, TaxYearSetting
from expense_terminal.schemas.tax import DeductionCreate, TaxYearSettingCreate

logger = structlog.get_logger()


class DeductionService:
    def __init__(self, db: AsyncSession):
        self.db = db

    # ── Deductions ─────────────────────────────────────

    async def list_deductions(
        self,
        user_id: str,
        tax_year: int | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> dict:
        query = select(Deduction).where(Deduction.user_id == user_id)
        if tax_year is not None:
            query = query.where(Deduction.tax_year == tax_year)

        count = (await self.db.execute(select(func.count()).select_from(query.subquery()))).scalar() or 0
        result = await self.db.execute(
            query.order_by(Deduction.created_at.desc()).offset(offset).limit(limit)
        )
        return {
            "data": [self._to_dict(d) for d in result.scalars().all()],
            "count": count,
        }

    async def create_deduction(self, data: DeductionCreate, user_id: str) -> dict:
        deduction = Deduction(
            user_id=user_id,
            type=data.type,
            tax_year=data.tax_year,
            amount=data.amount,
            tax_savings=data.tax_savings,
            metadata_=data.metadata,
        )
        self.db.add(deduction)
        await self.db.flush()
        await self.db.refresh(deduction)
        logger.info("deduction_created", user_id=user_id, type=data.type, tax_year=data.tax_year)
        return self._to_dict(deduction)

    @staticmethod
    def _to_dict(deduction: Deduction) -> dict:
        return {
            "id": deduction.id,
            "user_id": deduction.user_id,
            "type": deduction.type,
            "tax_year": deduction.tax_year,
            "amount": deduction.amount,
            "tax_savings": deduction.tax_savings,
            "metadata": deduction.metadata_,
            "created_at": deduction.created_at,
        }

    # ── Tax year settings ──────────────────────────────

    async def list_tax_year_settings(self, user_id: str, tax_year: int | None = None) -> list[TaxYearSetting]:
        query = select(TaxYearSetting).where(TaxYearSetting.user_id == user_id)
        if tax_year is not None:
            query = query.where(TaxYearSetting.tax_year == tax_year)
        result = await self.db.execute(query.order_by(TaxYearSetting.tax_year.desc()))
        return list(result.scalars().all())

    async def upsert_tax_year_setting(self, data: TaxYearSettingCreate, user_id: str) -> TaxYearSetting:
        """Create or replace the tax rate for one (user, tax year)."""
        result = await self.db.execute(
            select(TaxYearSetting).where(
                TaxYearSetting.user_id == user_id,
                TaxYearSetting.tax_year == data.tax_year,
            )
        )
        setting = result.scalar_one_or_none()
        if setting is None:
            setting = TaxYearSetting(user_id=user_id, tax_year=data.tax_year, tax_rate=data.tax_rate)
            self.db.add(setting)
        else:
            setting.tax_rate = data.tax_rate

        await self.db.flush()
        await self.db.refresh(setting)
        return setting
