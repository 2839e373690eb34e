"""Standalone deduction routes (home office, mileage, QBI, ...)."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from expense_terminal.api.deps import get_current_user_id, get_db
from expense_terminal.schemas.tax import DeductionCreate, DeductionListResponse, DeductionResponse
from expense_terminal.services.deduction_service import DeductionService

router = APIRouter()


@router.get("", response_model=DeductionListResponse)
async def list_deductions(
    tax_year: int | None = Query(None, ge=2000, le=2100),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0, le=10000),
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    service = DeductionService(db)
    return await service.list_deductions(user_id, tax_year=tax_year, limit=limit, offset=offset)


@router.post("", response_model=DeductionResponse, status_code=201)
async def create_deduction(
    data: DeductionCreate,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    service = DeductionService(db)
    return await service.create_deduction(data, user_id)
