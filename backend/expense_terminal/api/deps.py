"""Shared API dependencies."""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from expense_terminal.core.database import get_db, get_session_factory
from expense_terminal.core.security import get_current_user_id
from expense_terminal.services.categorization_service import CategorizationService
from expense_terminal.services.classification_client import ClassificationClient
from expense_terminal.services.pattern_cache import VendorPatternCache
from expense_terminal.services.transaction_store import TransactionStore


def get_categorization_service(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> CategorizationService:
    """Categorization pipeline wired to the database and configured LLM provider."""
    return CategorizationService(
        store=TransactionStore(session_factory),
        cache=VendorPatternCache(session_factory),
        classifier=ClassificationClient(),
    )


__all__ = ["get_db", "get_session_factory", "get_current_user_id", "get_categorization_service"]
