"""Classification client tests (LLM provider faked)."""

import asyncio
import json

import pytest

from expense_terminal.schemas.categorization import ClassificationResult
from expense_terminal.services.classification_client import (
    ClassificationClient,
    RepresentativeTransaction,
    UpstreamFatalError,
    UpstreamMalformedResponseError,
    UpstreamTransientError,
    build_batch_prompt,
    parse_classification_payload,
)
from expense_terminal.services.llm_provider import LLMCompletion, LLMProviderBase, LLMProviderError


class FakeProvider(LLMProviderBase):
    model = "fake-model"

    def __init__(self, *outcomes, delay: float = 0.0):
        self.outcomes = list(outcomes)
        self.delay = delay
        self.calls: list[tuple[str, str]] = []

    async def complete(self, system_prompt, prompt, max_tokens=4096, temperature=0.0):
        self.calls.append((system_prompt, prompt))
        if self.delay:
            await asyncio.sleep(self.delay)
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        return LLMCompletion(text=outcome, input_tokens=120, output_tokens=45)


def make_client(provider, **kwargs):
    options = {"initial_delay": 0.0, "max_delay": 0.0, "timeout": 5.0}
    options.update(kwargs)
    return ClassificationClient(provider=provider, **options)


def rep(id_="t1", vendor="STARBUCKS #4821", amount=-12.5, category=None):
    return RepresentativeTransaction(id=id_, vendor=vendor, amount=amount, date="2026-03-14", category=category)


def test_prompt_lists_one_line_per_representative():
    prompt = build_batch_prompt([rep("a"), rep("b", vendor="UBER", amount=-30, category="Travel")])
    assert "Categorize these 2 transactions" in prompt
    assert "a|STARBUCKS #4821|$12.50|2026-03-14" in prompt
    assert "b|UBER|$30.00|2026-03-14|Travel" in prompt


@pytest.mark.asyncio
async def test_fenced_array_is_parsed():
    payload = [
        {
            "id": "t1",
            "category": "Meals",
            "scheduleCLine": "Line 24b",
            "confidence": 0.9,
            "quickLabels": ["Client Meeting", "Working Lunch"],
            "deductibility": "likely_deductible",
            "isMeal": True,
            "isTravel": False,
        }
    ]
    provider = FakeProvider("```json\n" + json.dumps(payload) + "\n```")
    batch = await make_client(provider).classify([rep()])

    result = batch.results["t1"]
    assert result.schedule_c_line == "24b"
    assert result.quick_labels == ["Client Meeting", "Working Lunch"]
    assert batch.input_tokens == 120
    assert batch.output_tokens == 45


@pytest.mark.asyncio
async def test_single_object_is_accepted_as_list():
    provider = FakeProvider(json.dumps({"id": "t1", "category": "Office expense", "scheduleCLine": "18"}))
    batch = await make_client(provider).classify([rep()])
    assert list(batch.results) == ["t1"]


@pytest.mark.asyncio
async def test_non_json_reply_is_malformed_with_preview():
    garbage = "Sure! Here are the categories you asked for, grouped by vendor and line number."
    provider = FakeProvider(garbage)

    with pytest.raises(UpstreamMalformedResponseError) as exc_info:
        await make_client(provider).classify([rep()])

    assert exc_info.value.preview == garbage[:60]
    assert garbage[:60] in str(exc_info.value)
    assert len(provider.calls) == 1


@pytest.mark.asyncio
async def test_items_missing_required_fields_are_dropped():
    payload = [
        {"id": "t1", "category": "Office expense", "scheduleCLine": "18"},
        {"id": "t2", "scheduleCLine": "18"},
        {"id": "t3", "category": "Meals"},
        "not an object",
    ]
    provider = FakeProvider(json.dumps(payload))
    batch = await make_client(provider).classify([rep("t1"), rep("t2", vendor="A"), rep("t3", vendor="B")])
    assert set(batch.results) == {"t1"}


@pytest.mark.asyncio
async def test_transient_failure_is_retried():
    provider = FakeProvider(
        LLMProviderError("rate limited", status_code=429),
        json.dumps([{"id": "t1", "category": "Office expense", "scheduleCLine": "18"}]),
    )
    batch = await make_client(provider).classify([rep()])
    assert "t1" in batch.results
    assert len(provider.calls) == 2


@pytest.mark.asyncio
async def test_exhausted_retries_raise_transient_error():
    provider = FakeProvider(LLMProviderError("unavailable", status_code=503))
    with pytest.raises(UpstreamTransientError):
        await make_client(provider, max_attempts=3).classify([rep()])
    assert len(provider.calls) == 3


@pytest.mark.asyncio
async def test_bad_request_fails_without_retry():
    provider = FakeProvider(LLMProviderError("invalid model", status_code=400))
    with pytest.raises(UpstreamFatalError) as exc_info:
        await make_client(provider).classify([rep()])
    assert "[400]" in str(exc_info.value)
    assert len(provider.calls) == 1


@pytest.mark.asyncio
async def test_hung_call_times_out_and_is_retried():
    provider = FakeProvider("[]", delay=1.0)
    with pytest.raises(UpstreamTransientError, match="timed out"):
        await make_client(provider, timeout=0.01, max_attempts=2).classify([rep()])
    assert len(provider.calls) == 2


@pytest.mark.asyncio
async def test_batch_size_is_bounded():
    provider = FakeProvider("[]")
    with pytest.raises(ValueError):
        await make_client(provider).classify([rep(str(i), vendor=f"V{i}") for i in range(26)])


def test_parse_rejects_empty_text():
    with pytest.raises(UpstreamMalformedResponseError):
        parse_classification_payload("   ")


# ── Result defaults ───────────────────────────────


def test_likely_personal_is_not_deductible():
    result = ClassificationResult.model_validate(
        {"id": "t1", "category": "Groceries", "scheduleCLine": "27a",
         "deductibility": "likely_personal", "suggestedDeductionPct": 100}
    )
    assert result.to_update().deduction_percent == 0


def test_meal_defaults_from_category_and_policy():
    update = ClassificationResult.model_validate(
        {"id": "t1", "category": "Business meals", "scheduleCLine": "24b"}
    ).to_update()
    assert update.is_meal is True
    assert update.is_travel is False
    assert update.deduction_percent == 50
    assert update.confidence == 0.5


def test_suggested_percentage_and_confidence_are_clamped():
    update = ClassificationResult.model_validate(
        {"id": 7, "category": "Office expense", "scheduleCLine": "18",
         "suggestedDeductionPct": 140, "confidence": 1.7, "deductibility": "maybe"}
    ).to_update()
    assert update.deduction_percent == 100
    assert update.confidence == 1.0
