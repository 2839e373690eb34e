"""Schedule C / Schedule SE tax summary calculation.

Pure functions over plain rows: every transaction and deduction argument is a
mapping (or an object with the same attributes) so ORM rows, API payloads and
test fixtures can be passed as-is.
"""

from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from typing import Any, Iterable

from expense_terminal.config import settings
from expense_terminal.services.schedule_c import (
    DEFAULT_LINE,
    MEDICARE_RATE,
    SE_EARNINGS_FACTOR,
    SOCIAL_SECURITY_RATE,
)

MEAL_LIMIT = 0.5


@dataclass
class TaxSummary:
    gross_income: float
    total_expenses: float
    net_profit: float
    se_earnings: float
    social_security_tax: float
    medicare_tax: float
    self_employment_tax: float
    deductible_se_tax: float
    taxable_income: float
    income_tax: float
    total_tax_liability: float
    estimated_quarterly_payment: float
    effective_tax_rate: float
    line_breakdown: dict[str, float] = field(default_factory=dict)
    category_breakdown: dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ScheduleSE:
    net_earnings: float
    social_security_tax: float
    medicare_tax: float
    total_se_tax: float
    deductible_half: float


def _get(row: Any, key: str, default: Any = None) -> Any:
    if isinstance(row, dict):
        return row.get(key, default)
    return getattr(row, key, default)


def _as_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def deductible_amount(transaction: Any) -> float:
    """Deductible portion of an expense.

    The meal limit and the deduction percentage compose: a $100 meal at 50%
    yields 100 * 0.5 * 0.5 = 25.
    """
    amount = abs(float(_get(transaction, "amount", 0) or 0))
    percent = _get(transaction, "deduction_percent")
    share = (100 if percent is None else float(percent)) / 100
    if _get(transaction, "is_meal"):
        return amount * MEAL_LIMIT * share
    return amount * share


def filter_by_quarter(transactions: Iterable[Any], quarter: int | None) -> list:
    """Keep transactions dated in ``quarter`` (1-4); ``None`` keeps everything."""
    rows = list(transactions)
    if not quarter:
        return rows
    start_month = (quarter - 1) * 3
    end_month = start_month + 3
    return [
        t for t in rows
        if start_month <= _as_date(_get(t, "date")).month - 1 < end_month
    ]


def schedule_se(net_profit: float, wage_base: float | None = None) -> ScheduleSE:
    """Schedule SE amounts for a given net profit."""
    base = settings.social_security_wage_base if wage_base is None else wage_base
    se_earnings = max(0.0, net_profit * SE_EARNINGS_FACTOR)
    ss_tax = min(se_earnings, base) * SOCIAL_SECURITY_RATE
    medicare_tax = se_earnings * MEDICARE_RATE
    total = ss_tax + medicare_tax
    return ScheduleSE(
        net_earnings=se_earnings,
        social_security_tax=ss_tax,
        medicare_tax=medicare_tax,
        total_se_tax=total,
        deductible_half=total / 2,
    )


def calculate_tax_summary(
    transactions: Iterable[Any],
    deductions: Iterable[Any],
    tax_rate: float | None = None,
    wage_base: float | None = None,
) -> TaxSummary:
    """Build a full tax summary from categorized transactions and deductions."""
    rate = settings.default_tax_rate if tax_rate is None else tax_rate
    rows = list(transactions)
    extra = list(deductions)

    expenses = [t for t in rows if _get(t, "transaction_type") in ("expense", None)]
    income = [t for t in rows if _get(t, "transaction_type") == "income"]

    gross_income = sum(abs(float(_get(t, "amount", 0) or 0)) for t in income)

    line_breakdown: dict[str, float] = {}
    category_breakdown: dict[str, float] = {}
    for t in expenses:
        amount = deductible_amount(t)
        line = _get(t, "schedule_c_line") or DEFAULT_LINE
        line_breakdown[line] = line_breakdown.get(line, 0.0) + amount
        category = _get(t, "category") or "Uncategorized"
        category_breakdown[category] = category_breakdown.get(category, 0.0) + amount

    extra_total = 0.0
    for d in extra:
        amount = abs(float(_get(d, "amount", 0) or 0))
        key = _get(d, "type")
        category_breakdown[key] = category_breakdown.get(key, 0.0) + amount
        extra_total += amount

    total_expenses = sum(line_breakdown.values()) + extra_total
    net_profit = gross_income - total_expenses

    se = schedule_se(net_profit, wage_base)
    taxable_income = max(0.0, net_profit - se.deductible_half)
    income_tax = taxable_income * rate
    total_tax_liability = income_tax + se.total_se_tax

    return TaxSummary(
        gross_income=gross_income,
        total_expenses=total_expenses,
        net_profit=net_profit,
        se_earnings=se.net_earnings,
        social_security_tax=se.social_security_tax,
        medicare_tax=se.medicare_tax,
        self_employment_tax=se.total_se_tax,
        deductible_se_tax=se.deductible_half,
        taxable_income=taxable_income,
        income_tax=income_tax,
        total_tax_liability=total_tax_liability,
        estimated_quarterly_payment=total_tax_liability / 4,
        effective_tax_rate=total_tax_liability / gross_income if gross_income > 0 else 0.0,
        line_breakdown=line_breakdown,
        category_breakdown=category_breakdown,
    )
