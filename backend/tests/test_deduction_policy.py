"""Deduction default policy tests."""

import pytest

from expense_terminal.services.deduction_policy import clamp_percent, default_deduction


@pytest.mark.parametrize("line", [None, "8", "18", "24a", "24b", "27a", "unknown"])
def test_meal_not_travel_is_always_fifty(line):
    assert default_deduction(line, is_meal=True, is_travel=False) == 50


@pytest.mark.parametrize("line", [None, "8", "24b", "unknown"])
def test_meal_while_travelling_is_fully_deductible(line):
    assert default_deduction(line, is_meal=True, is_travel=True) == 100


def test_missing_line_defaults_to_full():
    assert default_deduction(None, is_meal=False, is_travel=False) == 100


@pytest.mark.parametrize(
    "line, expected",
    [
        ("24b", 50),
        ("Line 24b", 50),
        ("line 24B", 50),
        ("18", 100),
        ("Line 9", 100),
        ("99z", 100),
    ],
)
def test_line_table(line, expected):
    assert default_deduction(line, is_meal=False, is_travel=False) == expected


@pytest.mark.parametrize(
    "value, expected",
    [(None, None), (-5, 0), (0, 0), (49.6, 50), (100, 100), (250, 100)],
)
def test_clamp_percent(value, expected):
    assert clamp_percent(value) == expected
