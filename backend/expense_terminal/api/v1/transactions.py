"""Transaction API routes."""

import structlog
from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from expense_terminal.api.deps import get_categorization_service, get_current_user_id, get_db
from expense_terminal.schemas.categorization import UUID_PATTERN, AnalyzeRequest, encode_event
from expense_terminal.schemas.transaction import (
    AutoSortRequest,
    AutoSortResponse,
    ImportRequest,
    ImportResult,
    ReviewStatus,
    TransactionCountResponse,
    TransactionCreate,
    TransactionListResponse,
    TransactionResponse,
    TransactionType,
    TransactionUpdate,
)
from expense_terminal.services.auto_sort_service import AutoSortService
from expense_terminal.services.categorization_service import CategorizationService
from expense_terminal.services.transaction_service import TransactionService

logger = structlog.get_logger()

router = APIRouter()


@router.get("", response_model=TransactionListResponse | TransactionCountResponse)
async def list_transactions(
    tax_year: int | None = Query(None, ge=2000, le=2100),
    status: ReviewStatus | None = None,
    transaction_type: TransactionType | None = None,
    vendor_normalized: str | None = Query(None, max_length=500),
    exclude_id: str | None = Query(None, pattern=UUID_PATTERN),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0, le=10000),
    count_only: bool = False,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """List transactions with filters, or count them with ``count_only``."""
    service = TransactionService(db)
    return await service.list_transactions(
        user_id,
        tax_year=tax_year,
        status=status,
        transaction_type=transaction_type,
        vendor_normalized=vendor_normalized,
        exclude_id=exclude_id,
        limit=limit,
        offset=offset,
        count_only=count_only,
    )


@router.post("", response_model=TransactionResponse, status_code=201)
async def create_transaction(
    data: TransactionCreate,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Log a transaction manually (defaults to income)."""
    service = TransactionService(db)
    return await service.create_transaction(data, user_id)


@router.post("/import", response_model=ImportResult, response_model_by_alias=True, status_code=201)
async def import_transactions(
    data: ImportRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Store already-parsed statement rows as pending transactions."""
    service = TransactionService(db)
    return await service.import_rows(data, user_id)


@router.post("/analyze")
async def analyze_transactions(
    data: AnalyzeRequest,
    user_id: str = Depends(get_current_user_id),
    service: CategorizationService = Depends(get_categorization_service),
):
    """Categorize transactions, streaming progress as newline-delimited JSON.

    Returns 404 before streaming when none of the ids belong to the caller.
    """
    run = await service.prepare(user_id, data.transaction_ids)

    async def body():
        async for event in service.stream(run):
            yield encode_event(event)

    return StreamingResponse(
        body(),
        media_type="application/x-ndjson",
        headers={"Cache-Control": "no-cache"},
    )


@router.post("/auto-sort", response_model=AutoSortResponse, response_model_by_alias=True)
async def auto_sort(
    data: AutoSortRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Apply a quick label to every pending transaction from one vendor."""
    service = AutoSortService(db)
    result = await service.apply_rule(
        user_id,
        data.vendor_normalized,
        data.quick_label,
        business_purpose=data.business_purpose,
        category=data.category,
        tax_year=data.tax_year,
    )
    return AutoSortResponse(rule_id=result.rule_id, updated_count=result.updated_count)


@router.patch("/{transaction_id}", response_model=TransactionResponse)
async def update_transaction(
    transaction_id: str,
    data: TransactionUpdate,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Save a review decision (label, purpose, notes, status, deduction)."""
    service = TransactionService(db)
    return await service.update_transaction(transaction_id, data, user_id)
