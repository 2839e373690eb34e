"""Auto-sort: apply one review decision to every pending transaction of a vendor."""

from dataclasses import dataclass

import structlog
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from expense_terminal.core.exceptions import ValidationError
from expense_terminal.models.auto_sort_rule import AutoSortRule
from expense_terminal.models.transaction import Transaction
from expense_terminal.services.vendor_normalizer import normalize_vendor

logger = structlog.get_logger()


@dataclass
class AutoSortResult:
    rule_id: str
    updated_count: int


class AutoSortService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def apply_rule(
        self,
        user_id: str,
        vendor_normalized: str,
        quick_label: str,
        business_purpose: str | None = None,
        category: str | None = None,
        tax_year: int | None = None,
    ) -> AutoSortResult:
        """Record an auto-sort rule and sort the vendor's pending transactions.

        The rule is created even when nothing matches; a repeated call creates
        a second rule and updates no rows.
        """
        vendor_key = normalize_vendor(vendor_normalized) if vendor_normalized else ""
        label = (quick_label or "").strip()
        if not vendor_key or not label:
            raise ValidationError("vendorNormalized and quickLabel required")

        rule = AutoSortRule(
            user_id=user_id,
            vendor_pattern=vendor_key,
            quick_label=label,
            business_purpose=business_purpose or None,
            category=category or None,
        )
        self.db.add(rule)
        await self.db.flush()

        values = {
            "status": "auto_sorted",
            "quick_label": label,
            "business_purpose": business_purpose or None,
            "auto_sort_rule_id": rule.id,
        }
        if category:
            values["category"] = category

        stmt = (
            update(Transaction)
            .where(
                Transaction.user_id == user_id,
                Transaction.vendor_normalized == vendor_key,
                Transaction.status == "pending",
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if tax_year is not None:
            stmt = stmt.where(Transaction.tax_year == tax_year)

        result = await self.db.execute(stmt)
        updated = result.rowcount or 0

        logger.info(
            "auto_sort_applied",
            user_id=user_id,
            vendor=vendor_key,
            rule_id=rule.id,
            updated=updated,
            tax_year=tax_year,
        )
        return AutoSortResult(rule_id=rule.id, updated_count=updated)
