"""Schedule C (Form 1040) reference data.

Line catalogue used in classifier prompts and report labels, self-employment
tax constants and filing types.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class ScheduleCLine:
    line: str
    label: str
    description: str
    meal_rule: bool = False


SCHEDULE_C_LINES: list[ScheduleCLine] = [
    ScheduleCLine("8", "Advertising", "Marketing, ads, business cards, website costs"),
    ScheduleCLine("9", "Car & truck expenses", "Business miles, gas, repairs, lease payments"),
    ScheduleCLine("10", "Commissions & fees", "Sales commissions, platform fees, payment processing"),
    ScheduleCLine("11", "Contract labor", "Freelancers, subcontractors (1099 workers)"),
    ScheduleCLine("13", "Depreciation", "Section 179 deductions, asset depreciation"),
    ScheduleCLine("14", "Employee benefits", "Health insurance, retirement contributions for employees"),
    ScheduleCLine("15", "Insurance", "Business liability, E&O, professional insurance"),
    ScheduleCLine("16a", "Interest (mortgage)", "Mortgage interest on business property"),
    ScheduleCLine("16b", "Interest (other)", "Business loan interest, credit card interest"),
    ScheduleCLine("17", "Legal & professional", "Accounting, legal fees, tax preparation"),
    ScheduleCLine("18", "Office expense", "Office supplies, postage, software subscriptions"),
    ScheduleCLine("20a", "Rent (vehicles/equipment)", "Equipment leases, vehicle rentals"),
    ScheduleCLine("20b", "Rent (other)", "Office space, coworking, storage"),
    ScheduleCLine("21", "Repairs & maintenance", "Equipment repairs, maintenance costs"),
    ScheduleCLine("22", "Supplies", "Materials and supplies consumed in business"),
    ScheduleCLine("23", "Taxes & licenses", "Business licenses, state taxes, permits"),
    ScheduleCLine("24a", "Travel", "Flights, hotels, transportation for business"),
    ScheduleCLine("24b", "Meals", "Business meals (50% deductible)", meal_rule=True),
    ScheduleCLine("25", "Utilities", "Phone, internet, electricity for business"),
    ScheduleCLine("26", "Wages", "Employee wages (not contractors)"),
    ScheduleCLine("27", "Other expenses", "Education, memberships, bank fees, etc."),
]

SCHEDULE_C_LINE_MAP: dict[str, ScheduleCLine] = {line.line: line for line in SCHEDULE_C_LINES}

# Line used when an expense has no Schedule C line
DEFAULT_LINE = "27"

# ── Self-employment tax (2025-2026) ────────────────

SE_EARNINGS_FACTOR = 0.9235  # 92.35% of net profit is subject to SE tax
SOCIAL_SECURITY_RATE = 0.124
MEDICARE_RATE = 0.029
SE_COMBINED_RATE = SOCIAL_SECURITY_RATE + MEDICARE_RATE
SOCIAL_SECURITY_WAGE_BASE_2026 = 176100.0

# ── Filing types ───────────────────────────────────

FILING_TYPES: dict[str, dict] = {
    "sole_proprietor": {
        "label": "Sole Proprietor",
        "forms": ["Schedule C", "Schedule SE", "Form 1040-ES"],
    },
    "single_llc": {
        "label": "Single-member LLC",
        "forms": ["Schedule C", "Schedule SE", "Form 1040-ES"],
    },
    "s_corp": {
        "label": "S-Corporation",
        "forms": ["Form 1120-S", "Schedule K-1", "Form 1040-ES"],
    },
    "partnership": {
        "label": "Partnership",
        "forms": ["Form 1065", "Schedule K-1", "Form 1040-ES"],
    },
    "c_corp": {
        "label": "C-Corporation",
        "forms": ["Form 1120"],
    },
}


def normalize_line(value: str | None) -> str | None:
    """Strip a leading "Line" from a line code: "Line 24b" → "24b"."""
    if value is None:
        return None
    line = str(value).strip()
    if line[:4].lower() == "line":
        line = line[4:].strip(" :.")
    return line.lower() or None
