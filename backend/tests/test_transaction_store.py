"""Transaction store and vendor pattern cache tests (SQLite)."""

import asyncio

import pytest
from sqlalchemy import select

from expense_terminal.models import Transaction, VendorPattern
from expense_terminal.schemas.categorization import CategorizationUpdate
from expense_terminal.services.pattern_cache import VendorPatternCache
from expense_terminal.services.transaction_store import PersistenceError, TransactionStore

from conftest import OTHER_USER_ID, USER_ID, add_transactions, make_transaction


def meal_update(**overrides) -> CategorizationUpdate:
    values = {
        "category": "Meals",
        "schedule_c_line": "24b",
        "confidence": 0.92,
        "quick_labels": ["Client Dinner", "Business Meal"],
        "deduction_percent": 50,
        "is_meal": True,
        "reasoning": "Coffee shop",
    }
    values.update(overrides)
    return CategorizationUpdate(**values)


@pytest.mark.asyncio
async def test_fetch_many_keeps_input_order_and_owner(session_factory):
    ids = await add_transactions(
        session_factory,
        make_transaction(vendor="A"),
        make_transaction(vendor="B"),
        make_transaction(vendor="C", user_id=OTHER_USER_ID),
    )
    store = TransactionStore(session_factory, chunk_size=1)

    rows = await store.fetch_many(USER_ID, [ids[1], ids[2], "missing", ids[0]])

    assert [r.id for r in rows] == [ids[1], ids[0]]


@pytest.mark.asyncio
async def test_apply_categorization_is_idempotent(session_factory):
    [txn_id] = await add_transactions(session_factory, make_transaction(vendor_normalized=None))
    store = TransactionStore(session_factory)

    await store.apply_categorization(USER_ID, txn_id, meal_update(), vendor_normalized="starbucks")
    await store.apply_categorization(USER_ID, txn_id, meal_update())

    async with session_factory() as session:
        txn = await session.get(Transaction, txn_id)
    assert txn.category == "Meals"
    assert txn.schedule_c_line == "24b"
    assert txn.ai_confidence == pytest.approx(0.92)
    assert txn.ai_suggestions == ["Client Dinner", "Business Meal"]
    assert txn.deduction_percent == 50
    assert txn.is_meal is True
    assert txn.vendor_normalized == "starbucks"
    assert txn.status == "pending"


@pytest.mark.asyncio
async def test_apply_categorization_refuses_other_users_rows(session_factory):
    [txn_id] = await add_transactions(session_factory, make_transaction(user_id=OTHER_USER_ID))
    store = TransactionStore(session_factory)

    with pytest.raises(PersistenceError, match="no longer exists"):
        await store.apply_categorization(USER_ID, txn_id, meal_update())

    async with session_factory() as session:
        txn = await session.get(Transaction, txn_id)
    assert txn.category is None


@pytest.mark.asyncio
async def test_cache_lookup_is_scoped_and_chunked(session_factory):
    cache = VendorPatternCache(session_factory, chunk_size=2)
    assert await cache.upsert(USER_ID, "starbucks", meal_update())
    assert await cache.upsert(USER_ID, "uber", meal_update(category="Travel", schedule_c_line="24a"))
    assert await cache.upsert(OTHER_USER_ID, "staples", meal_update(category="Office expense"))

    found = await cache.lookup_many(USER_ID, ["starbucks", "", "uber", "staples", "starbucks"])

    assert set(found) == {"starbucks", "uber"}
    assert found["uber"].schedule_c_line == "24a"
    assert await cache.lookup_many(USER_ID, []) == {}


@pytest.mark.asyncio
async def test_cache_upsert_overwrites_and_counts(session_factory):
    cache = VendorPatternCache(session_factory)

    await cache.upsert(USER_ID, "starbucks", meal_update())
    await cache.upsert(USER_ID, "starbucks", meal_update(category="Travel", deduction_percent=100))

    async with session_factory() as session:
        patterns = (await session.execute(select(VendorPattern))).scalars().all()
    assert len(patterns) == 1
    assert patterns[0].category == "Travel"
    assert patterns[0].deduction_percent == 100
    assert patterns[0].times_used == 2


@pytest.mark.asyncio
async def test_cache_ignores_empty_vendor_key(session_factory):
    cache = VendorPatternCache(session_factory)
    assert await cache.upsert(USER_ID, "", meal_update()) is False


@pytest.mark.asyncio
async def test_concurrent_upserts_of_one_vendor_all_succeed(session_factory):
    cache = VendorPatternCache(session_factory)

    results = await asyncio.gather(*(cache.upsert(USER_ID, "starbucks", meal_update()) for _ in range(4)))

    assert results == [True, True, True, True]
    found = await cache.lookup_many(USER_ID, ["starbucks"])
    assert found["starbucks"].times_used == 4
    assert found["starbucks"].quick_labels == ["Client Dinner", "Business Meal"]
