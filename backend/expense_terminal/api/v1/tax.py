"""Tax summary and per-year tax settings routes."""

from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from expense_terminal.api.deps import get_current_user_id, get_db
from expense_terminal.schemas.tax import TaxSummaryResponse, TaxYearSettingCreate, TaxYearSettingResponse
from expense_terminal.services.deduction_service import DeductionService
from expense_terminal.services.tax_summary_service import TaxSummaryService

router = APIRouter()


@router.get("/summary", response_model=TaxSummaryResponse)
async def get_tax_summary(
    tax_year: int | None = Query(None, ge=2000, le=2100),
    quarter: int | None = Query(None, ge=1, le=4),
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Schedule C / SE summary for a tax year, optionally one quarter."""
    service = TaxSummaryService(db)
    return await service.get_summary(user_id, tax_year or date.today().year, quarter)


@router.get("/year-settings")
async def list_tax_year_settings(
    tax_year: int | None = Query(None, ge=2000, le=2100),
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    service = DeductionService(db)
    rows = await service.list_tax_year_settings(user_id, tax_year)
    return {"data": [TaxYearSettingResponse.model_validate(s) for s in rows]}


@router.post("/year-settings", response_model=TaxYearSettingResponse)
async def save_tax_year_setting(
    data: TaxYearSettingCreate,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Create or replace the income tax rate used for a year."""
    service = DeductionService(db)
    return await service.upsert_tax_year_setting(data, user_id)
