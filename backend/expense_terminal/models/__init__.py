"""SQLAlchemy models."""

from expense_terminal.models.auto_sort_rule import AutoSortRule
from expense_terminal.models.base import Base
from expense_terminal.models.tax import Deduction, OrgSettings, TaxYearSetting
from expense_terminal.models.transaction import Transaction
from expense_terminal.models.vendor_pattern import VendorPattern

__all__ = [
    "Base",
    "Transaction",
    "VendorPattern",
    "AutoSortRule",
    "Deduction",
    "TaxYearSetting",
    "OrgSettings",
]
