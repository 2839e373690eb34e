"""Categorization schemas: classifier output, applied updates and stream events."""

from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from expense_terminal.services.deduction_policy import clamp_percent, default_deduction
from expense_terminal.services.schedule_c import normalize_line

UUID_PATTERN = r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"

FRESH_CONFIDENCE = 0.5
CACHED_CONFIDENCE = 0.8

Deductibility = Literal["likely_deductible", "needs_review", "likely_personal"]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ── Requests ───────────────────────────────────────


TransactionId = Annotated[str, Field(pattern=UUID_PATTERN)]


class AnalyzeRequest(CamelModel):
    transaction_ids: list[TransactionId] = Field(..., min_length=1, max_length=1000)


# ── Classifier output ──────────────────────────────


class CategorizationUpdate(BaseModel):
    """Categorization fields written onto a transaction (and the vendor cache)."""

    category: str
    schedule_c_line: str | None
    confidence: float
    quick_labels: list[str] = []
    deduction_percent: int
    is_meal: bool = False
    is_travel: bool = False
    reasoning: str | None = None

    @classmethod
    def from_pattern(cls, pattern, is_meal: bool, is_travel: bool) -> "CategorizationUpdate":
        """Build an update from a cached vendor pattern.

        The meal/travel flags come from the transaction itself; patterns saved
        without a percentage fall back to the default policy.
        """
        deduction = pattern.deduction_percent
        if deduction is None:
            deduction = default_deduction(pattern.schedule_c_line, is_meal, is_travel)
        confidence = pattern.confidence if pattern.confidence is not None else CACHED_CONFIDENCE
        return cls(
            category=pattern.category,
            schedule_c_line=pattern.schedule_c_line,
            confidence=confidence,
            quick_labels=list(pattern.quick_labels or []),
            deduction_percent=clamp_percent(deduction),
            is_meal=is_meal,
            is_travel=is_travel,
            reasoning="Matched from previous categorization",
        )


class ClassificationResult(CamelModel):
    """One item of the classifier's JSON array (camelCase keys)."""

    id: str
    category: str = Field(..., min_length=1)
    schedule_c_line: str = Field(..., min_length=1)
    confidence: float | None = None
    quick_labels: list[str] = []
    suggested_deduction_pct: float | None = None
    deductibility: Deductibility | None = None
    is_meal: bool | None = None
    is_travel: bool | None = None
    reasoning: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, value):
        return str(value) if value is not None else value

    @field_validator("schedule_c_line", mode="before")
    @classmethod
    def strip_line_prefix(cls, value):
        if value is None:
            return value
        return normalize_line(str(value)) or ""

    @field_validator("quick_labels", mode="before")
    @classmethod
    def coerce_labels(cls, value):
        if not isinstance(value, list):
            return []
        return [str(v) for v in value if v]

    @field_validator("deductibility", mode="before")
    @classmethod
    def drop_unknown_deductibility(cls, value):
        if value in ("likely_deductible", "needs_review", "likely_personal"):
            return value
        return None

    def to_update(self) -> CategorizationUpdate:
        is_meal = self.is_meal if self.is_meal is not None else "meal" in self.category.lower()
        is_travel = bool(self.is_travel)
        if self.deductibility == "likely_personal":
            deduction = 0
        elif self.suggested_deduction_pct is not None:
            deduction = clamp_percent(self.suggested_deduction_pct)
        else:
            deduction = default_deduction(self.schedule_c_line, is_meal, is_travel)
        confidence = FRESH_CONFIDENCE if self.confidence is None else self.confidence
        return CategorizationUpdate(
            category=self.category,
            schedule_c_line=self.schedule_c_line,
            confidence=max(0.0, min(1.0, float(confidence))),
            quick_labels=self.quick_labels,
            deduction_percent=deduction,
            is_meal=is_meal,
            is_travel=is_travel,
            reasoning=self.reasoning,
        )


# ── Stream events (newline-delimited JSON) ─────────


class StatusEvent(CamelModel):
    type: Literal["status"] = "status"
    message: str


class ProgressEvent(CamelModel):
    type: Literal["progress"] = "progress"
    completed: int
    total: int
    current: str | None = None


class SuccessEvent(CamelModel):
    type: Literal["success"] = "success"
    id: str
    vendor: str
    category: str
    line: str | None
    confidence: float
    quick_labels: list[str]
    deduction_pct: int
    is_meal: bool
    is_travel: bool
    reasoning: str | None = None

    @classmethod
    def from_update(cls, transaction_id: str, vendor: str, update: CategorizationUpdate) -> "SuccessEvent":
        return cls(
            id=transaction_id,
            vendor=vendor,
            category=update.category,
            line=update.schedule_c_line,
            confidence=update.confidence,
            quick_labels=update.quick_labels,
            deduction_pct=update.deduction_percent,
            is_meal=update.is_meal,
            is_travel=update.is_travel,
            reasoning=update.reasoning,
        )


class ErrorEvent(CamelModel):
    type: Literal["error"] = "error"
    id: str
    vendor: str
    message: str


class DoneEvent(CamelModel):
    type: Literal["done"] = "done"
    successful: int
    failed: int
    total: int
    total_input_tokens: int
    total_output_tokens: int
    cached_count: int


CategorizationEvent = StatusEvent | ProgressEvent | SuccessEvent | ErrorEvent | DoneEvent


def encode_event(event: CategorizationEvent) -> str:
    """Serialize an event as one NDJSON line."""
    return event.model_dump_json(by_alias=True, exclude_none=True) + "\n"
