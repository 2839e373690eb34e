"""Per-user vendor pattern cache.

Maps a normalized vendor key to the last successful categorization for that
vendor so repeat merchants skip the classifier.
"""

from collections.abc import Iterable

import structlog
from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from expense_terminal.config import settings
from expense_terminal.models.base import new_id, utcnow
from expense_terminal.models.vendor_pattern import VendorPattern
from expense_terminal.schemas.categorization import CategorizationUpdate

logger = structlog.get_logger()

_DIALECT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class VendorPatternCache:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession], chunk_size: int | None = None):
        self.session_factory = session_factory
        self.chunk_size = chunk_size or settings.db_fetch_chunk

    async def lookup_many(self, user_id: str, vendor_keys: Iterable[str]) -> dict[str, VendorPattern]:
        """Return cached patterns for the given keys; absent keys are omitted.

        Raises:
            SQLAlchemyError: the lookup query failed.
        """
        keys = list(dict.fromkeys(k for k in vendor_keys if k))
        found: dict[str, VendorPattern] = {}
        if not keys:
            return found

        async with self.session_factory() as session:
            for start in range(0, len(keys), self.chunk_size):
                chunk = keys[start:start + self.chunk_size]
                result = await session.execute(
                    select(VendorPattern).where(
                        VendorPattern.user_id == user_id,
                        VendorPattern.vendor_normalized.in_(chunk),
                    )
                )
                for pattern in result.scalars().all():
                    found[pattern.vendor_normalized] = pattern

        logger.debug("vendor_cache_lookup", user_id=user_id, requested=len(keys), hits=len(found))
        return found

    async def upsert(self, user_id: str, vendor_key: str, update: CategorizationUpdate) -> bool:
        """Write the latest categorization for a vendor.

        A single ``INSERT ... ON CONFLICT (user_id, vendor_normalized) DO
        UPDATE`` so concurrent batches writing the same vendor all succeed.
        Returns False (after logging) when the write fails; callers treat the
        cache as best effort.
        """
        if not vendor_key:
            return False

        now = utcnow()
        values = {
            "category": update.category,
            "schedule_c_line": update.schedule_c_line,
            "deduction_percent": update.deduction_percent,
            "quick_labels": list(update.quick_labels),
            "confidence": update.confidence,
        }
        try:
            async with self.session_factory() as session:
                insert = _DIALECT_INSERTS.get(session.get_bind().dialect.name, postgresql.insert)
                stmt = insert(VendorPattern).values(
                    id=new_id(),
                    user_id=user_id,
                    vendor_normalized=vendor_key,
                    times_used=1,
                    created_at=now,
                    updated_at=now,
                    **values,
                )
                stmt = stmt.on_conflict_do_update(
                    index_elements=["user_id", "vendor_normalized"],
                    set_={
                        **values,
                        "times_used": VendorPattern.times_used + 1,
                        "updated_at": now,
                    },
                )
                await session.execute(stmt)
                await session.commit()
        except SQLAlchemyError as e:
            logger.warning("vendor_cache_write_failed", user_id=user_id, vendor=vendor_key, error=str(e)[:200])
            return False
        return True
