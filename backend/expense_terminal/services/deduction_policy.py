"""Default deduction percentage policy.

Used when the classifier omits a suggested percentage and when applying a
cached vendor pattern saved without one.
"""

from expense_terminal.services.schedule_c import normalize_line

# Default deductible share by Schedule C line
LINE_DEDUCTION_DEFAULTS: dict[str, int] = {
    "24b": 50,   # Meals
    "24a": 100,  # Travel
    "18": 100,   # Office expense
    "8": 100,    # Advertising
    "9": 100,    # Car/truck
    "25": 100,   # Utilities
    "27a": 100,  # Other expenses / software
    "27": 100,
    "22": 100,   # Supplies
    "23": 100,
    "21": 100,   # Rent/lease, repairs
    "20a": 100,
    "20b": 100,
    "15": 100,   # Insurance
    "17": 100,   # Legal/professional
    "11": 100,   # Contract labor
    "10": 100,   # Commissions
    "13": 100,   # Depreciation
    "16b": 100,  # Other interest
    "26": 100,   # Wages
}

FULL_DEDUCTION = 100
MEAL_DEDUCTION = 50


def default_deduction(schedule_c_line: str | None, is_meal: bool, is_travel: bool) -> int:
    """Return the default deduction percentage (0-100)."""
    if is_meal and not is_travel:
        return MEAL_DEDUCTION
    if is_meal and is_travel:
        return FULL_DEDUCTION
    line = normalize_line(schedule_c_line)
    if not line:
        return FULL_DEDUCTION
    return LINE_DEDUCTION_DEFAULTS.get(line, FULL_DEDUCTION)


def clamp_percent(value: float | int | None) -> int | None:
    """Clamp a percentage into [0, 100]; ``None`` passes through."""
    if value is None:
        return None
    return int(round(max(0.0, min(100.0, float(value)))))
