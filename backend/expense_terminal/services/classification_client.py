"""Schedule C classification through an LLM.

Sends one representative transaction per vendor to the configured provider
and parses the JSON array it returns into ``ClassificationResult`` items.
"""

import asyncio
import json
import re
from dataclasses import dataclass, field
from decimal import Decimal

import structlog
from pydantic import ValidationError as PydanticValidationError

from expense_terminal.config import settings
from expense_terminal.schemas.categorization import ClassificationResult
from expense_terminal.services.llm_provider import LLMCompletion, LLMProviderBase, get_llm_provider
from expense_terminal.services.retry import is_transient_error, with_retry

logger = structlog.get_logger()

MAX_BATCH_SIZE = 25
PREVIEW_LENGTH = 60

SYSTEM_PROMPT = """You categorize business transactions for IRS Schedule C.

Categories (Line: Name):
8:Advertising, 9:Car/truck, 10:Commissions/fees, 11:Contract labor,
13:Depreciation, 15:Insurance, 16b:Other interest, 17:Legal/professional,
18:Office expense, 20b:Rent/lease, 21:Repairs, 22:Supplies, 24a:Travel,
24b:Meals, 25:Utilities, 26:Wages, 27a:Other expenses

Rules:
- SaaS/software/subscriptions → 27a
- Meals → 24b (50% deductible; 100% if overnight travel)
- Phone/internet → 25
- Coworking → 20b
- Equipment >$2500 → 13
- Personal expenses → mark "likely_personal"
- If ambiguous → "needs_review"

Quick labels: return 2-4 specific, IRS-defensible business reasons per
transaction that the user can pick to justify the deduction. Base them on the
category, for example:
- Meals (24b): "Business Meal", "Client Dinner", "Team Meal", "Working Lunch"
- Travel (24a): "Business Travel", "Client Visit", "Conference", "Site Visit"
- Office (18): "Office Supplies", "Printer/Ink", "Desk Equipment"
- Advertising (8): "Social Media Ads", "Google Ads", "Print Marketing"
- Car/truck (9): "Client Visit", "Business Errand", "Delivery"
- Utilities (25): "Phone/Internet", "Cloud Hosting", "Business Phone"
- Software/Other (27a): "Business Software", "SaaS Tool", "Subscription"
- Supplies (22): "Shipping Supplies", "Raw Materials", "Packaging"
- Rent/lease (20b): "Office Rent", "Coworking", "Storage", "Equipment Lease"
- Insurance (15): "Business Insurance", "Liability Insurance"
- Legal/professional (17): "Legal Fees", "Accounting", "Tax Prep", "Consulting"
- Contract labor (11): "Freelancer", "Contractor", "Consultant"
- Commissions (10): "Sales Commission", "Referral Fee", "Platform Fee"
- Repairs (21): "Equipment Repair", "Office Repair", "Maintenance"

Also estimate a suggested deduction percentage:
- 50 for meals (unless clearly travel-related, then 100)
- 0 for likely_personal
- 100 for most clear business expenses
- 25-75 for mixed-use items

Return ONLY a JSON array. No markdown fences."""

_FENCE_START_RE = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_FENCE_END_RE = re.compile(r"\s*```$")


# ── Errors ─────────────────────────────────────────


class ClassificationError(Exception):
    """A whole classification call failed; every transaction in it errors."""


class UpstreamTransientError(ClassificationError):
    """Rate limit, 5xx, timeout or network error that survived all retries."""


class UpstreamFatalError(ClassificationError):
    """Non-retryable provider failure (bad request, auth, configuration)."""


class UpstreamMalformedResponseError(ClassificationError):
    """The provider answered, but not with a parseable JSON payload."""

    def __init__(self, message: str, preview: str = ""):
        super().__init__(message)
        self.preview = preview


# ── Data ───────────────────────────────────────────


@dataclass
class RepresentativeTransaction:
    id: str
    vendor: str
    amount: Decimal | float
    date: str
    category: str | None = None


@dataclass
class ClassificationBatch:
    results: dict[str, ClassificationResult] = field(default_factory=dict)
    input_tokens: int = 0
    output_tokens: int = 0


# ── Client ─────────────────────────────────────────


class ClassificationClient:
    """Classify batches of vendor-unique transactions."""

    def __init__(
        self,
        provider: LLMProviderBase | None = None,
        max_attempts: int | None = None,
        initial_delay: float | None = None,
        max_delay: float | None = None,
        timeout: float | None = None,
    ) -> None:
        self.provider = provider or get_llm_provider()
        self.max_attempts = max_attempts or settings.retry_max_attempts
        self.initial_delay = settings.retry_initial_delay if initial_delay is None else initial_delay
        self.max_delay = settings.retry_max_delay if max_delay is None else max_delay
        self.timeout = timeout or settings.llm_timeout

    async def classify(self, batch: list[RepresentativeTransaction]) -> ClassificationBatch:
        """Classify up to 25 representatives (one per vendor).

        Raises:
            UpstreamTransientError: retries exhausted on a transient failure.
            UpstreamFatalError: the provider rejected the request.
            UpstreamMalformedResponseError: the reply is not a JSON payload.
        """
        if not batch:
            return ClassificationBatch()
        if len(batch) > MAX_BATCH_SIZE:
            raise ValueError(f"At most {MAX_BATCH_SIZE} transactions per classification call")

        prompt = build_batch_prompt(batch)
        completion = await self._complete_with_retry(prompt)

        items = parse_classification_payload(completion.text)
        results: dict[str, ClassificationResult] = {}
        for item in items:
            try:
                result = ClassificationResult.model_validate(item)
            except PydanticValidationError as e:
                logger.warning(
                    "classification_item_invalid",
                    item=str(item)[:200],
                    errors=e.error_count(),
                )
                continue
            results[result.id] = result

        logger.info(
            "classification_batch_complete",
            model=self.provider.get_model_name(),
            requested=len(batch),
            returned=len(results),
            input_tokens=completion.input_tokens,
            output_tokens=completion.output_tokens,
        )
        return ClassificationBatch(
            results=results,
            input_tokens=completion.input_tokens,
            output_tokens=completion.output_tokens,
        )

    async def _complete_with_retry(self, prompt: str) -> LLMCompletion:
        async def attempt() -> LLMCompletion:
            return await asyncio.wait_for(
                self.provider.complete(
                    SYSTEM_PROMPT,
                    prompt,
                    max_tokens=settings.llm_max_tokens,
                ),
                timeout=self.timeout,
            )

        try:
            return await with_retry(
                attempt,
                max_attempts=self.max_attempts,
                initial_delay=self.initial_delay,
                max_delay=self.max_delay,
            )
        except Exception as e:
            detail = describe_error(e)
            if is_transient_error(e):
                raise UpstreamTransientError(detail) from e
            raise UpstreamFatalError(detail) from e


# ── Prompt & parsing helpers ───────────────────────


def build_batch_prompt(batch: list[RepresentativeTransaction]) -> str:
    """User prompt: one ``id|vendor|amount|date[|hint]`` line per transaction."""
    lines = []
    for t in batch:
        line = f"{t.id}|{t.vendor}|${abs(float(t.amount)):.2f}|{t.date}"
        if t.category:
            line += f"|{t.category}"
        lines.append(line)
    body = "\n".join(lines)
    return (
        f"Categorize these {len(batch)} transactions. Return JSON array:\n"
        '[{"id":"...","category":"Category Name","scheduleCLine":"Line N","confidence":0.85,'
        '"quickLabels":["Specific Reason 1","Specific Reason 2","Specific Reason 3"],'
        '"suggestedDeductionPct":100,'
        '"deductibility":"likely_deductible|needs_review|likely_personal",'
        '"isMeal":false,"isTravel":false}]\n\n'
        f"id|vendor|amount|date[|hint]\n{body}"
    )


def parse_classification_payload(text: str) -> list[dict]:
    """Parse the model reply into a list of raw result dicts.

    Fenced code blocks are unwrapped and a single object is accepted as a
    one-element list.

    Raises:
        UpstreamMalformedResponseError: empty or non-JSON reply.
    """
    payload = (text or "").strip()
    if not payload:
        raise UpstreamMalformedResponseError("No text in response")

    if payload.startswith("```"):
        payload = _FENCE_END_RE.sub("", _FENCE_START_RE.sub("", payload))

    try:
        parsed = json.loads(payload)
    except (json.JSONDecodeError, ValueError) as e:
        preview = payload[:PREVIEW_LENGTH]
        raise UpstreamMalformedResponseError(f'Invalid JSON: "{preview}..."', preview=preview) from e

    if isinstance(parsed, dict):
        parsed = [parsed]
    if not isinstance(parsed, list):
        preview = payload[:PREVIEW_LENGTH]
        raise UpstreamMalformedResponseError(f'Unexpected JSON: "{preview}..."', preview=preview)
    return [item for item in parsed if isinstance(item, dict)]


def describe_error(exc: BaseException) -> str:
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return "Classification request timed out"
    message = str(exc) or exc.__class__.__name__
    return message[:200]
