"""Shared test fixtures."""

import os
import tempfile
from datetime import date
from decimal import Decimal

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///" + os.path.join(tempfile.gettempdir(), "expense_terminal_ready.db")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")
os.environ.setdefault("APP_ENV", "test")

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402

from expense_terminal.api.deps import get_current_user_id, get_db, get_session_factory  # noqa: E402
from expense_terminal.main import app  # noqa: E402
from expense_terminal.models import Base, Transaction  # noqa: E402
from expense_terminal.services.vendor_normalizer import normalize_vendor  # noqa: E402

USER_ID = "user-1"
OTHER_USER_ID = "user-2"


@pytest.fixture
async def session_factory(tmp_path):
    """Session factory bound to a fresh SQLite database file."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    await engine.dispose()


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def client(session_factory):
    """Async test client authenticated as ``USER_ID``."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_current_user_id] = lambda: USER_ID
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
async def anonymous_client():
    """Async test client without authentication overrides."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


def make_transaction(**overrides) -> Transaction:
    values = {
        "user_id": USER_ID,
        "date": date(2026, 3, 14),
        "vendor": "STARBUCKS #4821",
        "amount": Decimal("-12.50"),
        "transaction_type": "expense",
        "tax_year": 2026,
        "source": "import",
        "status": "pending",
    }
    values.update(overrides)
    if "vendor_normalized" not in overrides:
        values["vendor_normalized"] = normalize_vendor(values["vendor"])
    return Transaction(**values)


async def add_transactions(session_factory, *transactions: Transaction) -> list[str]:
    async with session_factory() as session:
        session.add_all(transactions)
        await session.commit()
    return [t.id for t in transactions]
