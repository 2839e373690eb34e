"""Auto-sort rule model."""

from datetime import datetime

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from expense_terminal.models.base import Base, UUIDPrimaryKeyMixin, utcnow


class AutoSortRule(Base, UUIDPrimaryKeyMixin):
    """A user's "apply to all from this vendor" decision.

    Rows are append-only: a new decision for the same vendor creates a new
    rule, and transactions keep a back-reference to the rule that sorted them.
    """

    __tablename__ = "auto_sort_rules"

    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    vendor_pattern: Mapped[str] = mapped_column(String(500), nullable=False)
    quick_label: Mapped[str] = mapped_column(String(500), nullable=False)
    business_purpose: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[str | None] = mapped_column(String(200), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
