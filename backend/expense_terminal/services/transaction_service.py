"""Transaction management service."""

from datetime import date

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from expense_terminal.core.exceptions import NotFoundError
from expense_terminal.models.transaction import Transaction
from expense_terminal.schemas.transaction import ImportRequest, TransactionCreate, TransactionUpdate
from expense_terminal.services.vendor_normalizer import normalize_vendor

logger = structlog.get_logger()


class TransactionService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_transactions(
        self,
        user_id: str,
        tax_year: int | None = None,
        status: str | None = None,
        transaction_type: str | None = None,
        vendor_normalized: str | None = None,
        exclude_id: str | None = None,
        limit: int = 100,
        offset: int = 0,
        count_only: bool = False,
    ) -> dict:
        """List transactions newest first, or just count them.

        ``vendor_normalized`` + ``exclude_id`` is the "similar transactions"
        lookup used before an auto-sort.
        """
        query = select(Transaction).where(Transaction.user_id == user_id)
        if tax_year is not None:
            query = query.where(Transaction.tax_year == tax_year)
        if status:
            query = query.where(Transaction.status == status)
        if transaction_type:
            query = query.where(Transaction.transaction_type == transaction_type)
        if vendor_normalized:
            query = query.where(Transaction.vendor_normalized == normalize_vendor(vendor_normalized))
        if exclude_id:
            query = query.where(Transaction.id != exclude_id)

        count_query = select(func.count()).select_from(query.subquery())
        count = (await self.db.execute(count_query)).scalar() or 0
        if count_only:
            return {"count": count}

        query = query.order_by(Transaction.date.desc(), Transaction.id.desc()).offset(offset).limit(limit)
        result = await self.db.execute(query)
        return {"data": list(result.scalars().all()), "count": count}

    async def create_transaction(self, data: TransactionCreate, user_id: str) -> Transaction:
        """Log a single transaction by hand; it needs no review."""
        txn = Transaction(
            user_id=user_id,
            date=data.date,
            vendor=data.vendor,
            description=data.description,
            amount=data.amount,
            transaction_type=data.transaction_type,
            tax_year=data.date.year,
            source="manual",
            status="completed",
            vendor_normalized=normalize_vendor(data.vendor),
        )
        self.db.add(txn)
        await self.db.flush()
        await self.db.refresh(txn)
        return txn

    async def import_rows(self, data: ImportRequest, user_id: str) -> dict:
        """Insert already-parsed statement rows as pending transactions.

        The returned ids are what the client sends to the analyze endpoint.
        """
        tax_year = data.tax_year or date.today().year
        transactions = [
            Transaction(
                user_id=user_id,
                date=row.date,
                vendor=row.vendor,
                description=row.description,
                amount=row.amount,
                category=row.category,
                notes=row.notes,
                transaction_type="income" if row.transaction_type == "income" else "expense",
                tax_year=tax_year,
                source="import",
                status="pending",
                vendor_normalized=normalize_vendor(row.vendor),
            )
            for row in data.rows
        ]
        self.db.add_all(transactions)
        await self.db.flush()

        ids = [t.id for t in transactions]
        logger.info("transactions_imported", user_id=user_id, count=len(ids), tax_year=tax_year)
        return {"imported": len(ids), "transaction_ids": ids, "needs_review": len(ids)}

    async def update_transaction(self, transaction_id: str, data: TransactionUpdate, user_id: str) -> Transaction:
        """Apply a review decision to one transaction.

        Marking a transaction personal zeroes its deduction.
        """
        txn = await self._get_user_transaction(transaction_id, user_id)
        update_data = data.model_dump(exclude_unset=True)

        for field, value in update_data.items():
            setattr(txn, field, value)
        if txn.status == "personal":
            txn.deduction_percent = 0

        await self.db.flush()
        await self.db.refresh(txn)
        return txn

    async def _get_user_transaction(self, transaction_id: str, user_id: str) -> Transaction:
        result = await self.db.execute(
            select(Transaction).where(
                Transaction.id == transaction_id,
                Transaction.user_id == user_id,
            )
        )
        txn = result.scalar_one_or_none()
        if not txn:
            raise NotFoundError("Transaction")
        return txn
