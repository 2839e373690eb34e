"""Transaction API tests, including the streaming analyze endpoint."""

import json
from datetime import date

import pytest
from jose import jwt
from sqlalchemy import select

from expense_terminal.api.deps import get_categorization_service, get_db
from expense_terminal.config import settings
from expense_terminal.main import app
from expense_terminal.models import Transaction, VendorPattern
from expense_terminal.services.categorization_service import CategorizationService
from expense_terminal.services.classification_client import ClassificationClient
from expense_terminal.services.llm_provider import LLMCompletion, LLMProviderBase
from expense_terminal.services.pattern_cache import VendorPatternCache
from expense_terminal.services.transaction_store import TransactionStore

from conftest import OTHER_USER_ID, USER_ID, add_transactions, make_transaction


class OfficeProvider(LLMProviderBase):
    """Classifies every transaction in the prompt as an office expense."""

    model = "office"

    def __init__(self):
        self.calls = 0

    async def complete(self, system_prompt, prompt, max_tokens=4096, temperature=0.0):
        self.calls += 1
        lines = prompt.split("id|vendor|amount|date[|hint]\n", 1)[1].splitlines()
        results = [
            {
                "id": line.split("|")[0],
                "category": "Office expense",
                "scheduleCLine": "Line 18",
                "confidence": 0.88,
                "quickLabels": ["Office Supplies", "Printer/Ink"],
                "deductibility": "likely_deductible",
            }
            for line in lines
        ]
        return LLMCompletion(text=json.dumps(results), input_tokens=200, output_tokens=80)


@pytest.fixture
def provider(session_factory):
    office = OfficeProvider()
    app.dependency_overrides[get_categorization_service] = lambda: CategorizationService(
        store=TransactionStore(session_factory),
        cache=VendorPatternCache(session_factory),
        classifier=ClassificationClient(provider=office, initial_delay=0.0, max_delay=0.0),
    )
    return office


def read_events(response) -> list[dict]:
    return [json.loads(line) for line in response.text.splitlines() if line.strip()]


# ── Analyze ───────────────────────────────────────


@pytest.mark.asyncio
async def test_analyze_streams_ndjson_and_persists(client, session_factory, provider):
    ids = await add_transactions(
        session_factory,
        make_transaction(vendor="STAPLES #0042", vendor_normalized=None),
        make_transaction(vendor="Staples"),
    )

    response = await client.post("/api/v1/transactions/analyze", json={"transactionIds": ids})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/x-ndjson")
    events = read_events(response)
    assert events[-1] == {
        "type": "done",
        "successful": 2,
        "failed": 0,
        "total": 2,
        "totalInputTokens": 200,
        "totalOutputTokens": 80,
        "cachedCount": 0,
    }
    success = [e for e in events if e["type"] == "success"]
    assert {e["id"] for e in success} == set(ids)
    assert success[0]["line"] == "18"
    assert success[0]["quickLabels"] == ["Office Supplies", "Printer/Ink"]
    assert success[0]["deductionPct"] == 100
    assert provider.calls == 1

    async with session_factory() as session:
        rows = (await session.execute(select(Transaction))).scalars().all()
        patterns = (await session.execute(select(VendorPattern))).scalars().all()
    assert {t.category for t in rows} == {"Office expense"}
    assert {t.vendor_normalized for t in rows} == {"staples"}
    assert [p.vendor_normalized for p in patterns] == ["staples"]


@pytest.mark.asyncio
async def test_second_analyze_uses_the_vendor_cache(client, session_factory, provider):
    [first] = await add_transactions(session_factory, make_transaction(vendor="STAPLES"))
    await client.post("/api/v1/transactions/analyze", json={"transactionIds": [first]})
    [second] = await add_transactions(session_factory, make_transaction(vendor="STAPLES #9"))

    response = await client.post("/api/v1/transactions/analyze", json={"transactionIds": [second]})

    events = read_events(response)
    assert provider.calls == 1
    assert events[0] == {"type": "status", "message": "1 matched from cache, 0 need AI"}
    assert events[-1]["cachedCount"] == 1
    assert events[-1]["successful"] == 1


@pytest.mark.asyncio
async def test_analyze_foreign_ids_is_404(client, session_factory, provider):
    ids = await add_transactions(session_factory, make_transaction(user_id=OTHER_USER_ID))

    response = await client.post("/api/v1/transactions/analyze", json={"transactionIds": ids})

    assert response.status_code == 404
    assert provider.calls == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [
    {"transactionIds": []},
    {"transactionIds": ["not-a-uuid"]},
    {},
])
async def test_analyze_rejects_bad_requests(client, provider, payload):
    response = await client.post("/api/v1/transactions/analyze", json=payload)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_analyze_requires_authentication(anonymous_client):
    response = await anonymous_client.post(
        "/api/v1/transactions/analyze",
        json={"transactionIds": ["3f1c8a52-6a0e-4d55-9c1b-0d5a2f1e9b77"]},
    )
    assert response.status_code == 401


# ── CRUD ──────────────────────────────────────────


@pytest.mark.asyncio
async def test_list_filters_and_counts(client, session_factory):
    ids = await add_transactions(
        session_factory,
        make_transaction(vendor="UBER", date=date(2026, 1, 5)),
        make_transaction(vendor="UBER *TRIP", date=date(2026, 2, 5)),
        make_transaction(vendor="STAPLES", date=date(2026, 3, 5)),
        make_transaction(vendor="UBER", tax_year=2025, date=date(2025, 6, 1)),
        make_transaction(vendor="UBER", user_id=OTHER_USER_ID),
    )

    response = await client.get("/api/v1/transactions", params={"tax_year": 2026})
    data = response.json()
    assert data["count"] == 3
    assert [t["id"] for t in data["data"]] == [ids[2], ids[1], ids[0]]

    response = await client.get(
        "/api/v1/transactions",
        params={"vendor_normalized": "Uber", "exclude_id": ids[0], "count_only": "true"},
    )
    assert response.json() == {"count": 1}


@pytest.mark.asyncio
async def test_list_requires_authentication(anonymous_client):
    response = await anonymous_client.get("/api/v1/transactions")
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_list_accepts_a_signed_token(anonymous_client, session_factory):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    try:
        token = jwt.encode({"sub": USER_ID}, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)
        response = await anonymous_client.get(
            "/api/v1/transactions",
            headers={"Authorization": f"Bearer {token}"},
        )
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 200
    assert response.json() == {"data": [], "count": 0}


@pytest.mark.asyncio
async def test_invalid_token_is_rejected(anonymous_client):
    response = await anonymous_client.get(
        "/api/v1/transactions",
        headers={"Authorization": "Bearer not-a-jwt"},
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_manual_entry_defaults_to_income(client):
    response = await client.post(
        "/api/v1/transactions",
        json={"date": "2026-04-02", "vendor": "Acme Client LLC", "amount": "2500.00"},
    )

    assert response.status_code == 201
    data = response.json()
    assert data["transaction_type"] == "income"
    assert data["status"] == "completed"
    assert data["source"] == "manual"
    assert data["tax_year"] == 2026
    assert data["vendor_normalized"] == "acme client"


@pytest.mark.asyncio
async def test_amount_out_of_range_is_rejected(client):
    response = await client.post(
        "/api/v1/transactions",
        json={"date": "2026-04-02", "vendor": "Acme", "amount": "10000000"},
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_import_creates_pending_rows(client):
    response = await client.post(
        "/api/v1/transactions/import",
        json={
            "taxYear": 2026,
            "rows": [
                {"date": "2026-01-03", "vendor": "SQ *BLUE BOTTLE COFFEE", "amount": "-6.75"},
                {"date": "2026-01-04", "vendor": "Stripe payout", "amount": "900", "transaction_type": "income"},
            ],
        },
    )

    assert response.status_code == 201
    data = response.json()
    assert data["imported"] == 2
    assert data["needsReview"] == 2
    assert len(data["transactionIds"]) == 2

    listed = (await client.get("/api/v1/transactions", params={"status": "pending"})).json()
    by_vendor = {t["vendor"]: t for t in listed["data"]}
    assert by_vendor["SQ *BLUE BOTTLE COFFEE"]["vendor_normalized"] == "blue bottle"
    assert by_vendor["SQ *BLUE BOTTLE COFFEE"]["transaction_type"] == "expense"
    assert by_vendor["Stripe payout"]["transaction_type"] == "income"


@pytest.mark.asyncio
async def test_marking_personal_zeroes_deduction(client, session_factory):
    [txn_id] = await add_transactions(session_factory, make_transaction(deduction_percent=50))

    response = await client.patch(f"/api/v1/transactions/{txn_id}", json={"status": "personal"})

    assert response.status_code == 200
    assert response.json()["deduction_percent"] == 0


@pytest.mark.asyncio
async def test_review_update_keeps_unset_fields(client, session_factory):
    [txn_id] = await add_transactions(session_factory, make_transaction(notes="keep me"))

    response = await client.patch(
        f"/api/v1/transactions/{txn_id}",
        json={"quick_label": "Client Meeting", "status": "completed"},
    )

    data = response.json()
    assert data["quick_label"] == "Client Meeting"
    assert data["status"] == "completed"
    assert data["notes"] == "keep me"


@pytest.mark.asyncio
async def test_updating_another_users_transaction_is_404(client, session_factory):
    [txn_id] = await add_transactions(session_factory, make_transaction(user_id=OTHER_USER_ID))

    response = await client.patch(f"/api/v1/transactions/{txn_id}", json={"status": "completed"})

    assert response.status_code == 404
