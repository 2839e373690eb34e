"""Transaction reads and categorization writes for the categorization pipeline.

Each call opens its own short session: a categorization run streams past the
end of the request and runs several batches at once.
"""

from collections.abc import Sequence

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from expense_terminal.config import settings
from expense_terminal.models.transaction import Transaction
from expense_terminal.schemas.categorization import CategorizationUpdate

logger = structlog.get_logger()


class PersistenceError(Exception):
    """Writing a categorization result failed."""


class TransactionStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession], chunk_size: int | None = None):
        self.session_factory = session_factory
        self.chunk_size = chunk_size or settings.db_fetch_chunk

    async def fetch_many(self, user_id: str, ids: Sequence[str]) -> list[Transaction]:
        """Load the caller's transactions among ``ids``, in input order.

        Ids that do not exist or belong to another user are silently left out.
        """
        by_id: dict[str, Transaction] = {}
        async with self.session_factory() as session:
            for start in range(0, len(ids), self.chunk_size):
                chunk = list(ids[start:start + self.chunk_size])
                result = await session.execute(
                    select(Transaction).where(
                        Transaction.user_id == user_id,
                        Transaction.id.in_(chunk),
                    )
                )
                for txn in result.scalars().all():
                    by_id[txn.id] = txn
        return [by_id[i] for i in ids if i in by_id]

    async def apply_categorization(
        self,
        user_id: str,
        transaction_id: str,
        result: CategorizationUpdate,
        vendor_normalized: str | None = None,
    ) -> None:
        """Write categorization fields onto one transaction.

        Raises:
            PersistenceError: the row is gone or the write failed.
        """
        values = {
            "category": result.category,
            "schedule_c_line": result.schedule_c_line,
            "ai_confidence": result.confidence,
            "ai_reasoning": result.reasoning,
            "ai_suggestions": list(result.quick_labels),
            "is_meal": result.is_meal,
            "is_travel": result.is_travel,
            "deduction_percent": result.deduction_percent,
        }
        if vendor_normalized:
            values["vendor_normalized"] = vendor_normalized

        try:
            async with self.session_factory() as session:
                outcome = await session.execute(
                    update(Transaction)
                    .where(Transaction.id == transaction_id, Transaction.user_id == user_id)
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
                await session.commit()
        except SQLAlchemyError as e:
            logger.error("categorization_write_failed", transaction_id=transaction_id, error=str(e)[:200])
            raise PersistenceError("Failed to save categorization") from e

        if outcome.rowcount == 0:
            raise PersistenceError("Transaction no longer exists")
