"""Vendor pattern cache model."""

from sqlalchemy import JSON, Float, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from expense_terminal.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class VendorPattern(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """Last known categorization for a (user, normalized vendor) pair.

    Rewritten every time the classifier succeeds for the vendor and read
    before each classifier call so repeat merchants skip the model.
    """

    __tablename__ = "vendor_patterns"

    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    vendor_normalized: Mapped[str] = mapped_column(String(500), nullable=False)
    category: Mapped[str | None] = mapped_column(String(200), nullable=True)
    schedule_c_line: Mapped[str | None] = mapped_column(String(10), nullable=True)
    deduction_percent: Mapped[int | None] = mapped_column(Integer, nullable=True)
    quick_labels: Mapped[list | None] = mapped_column(JSON, nullable=True)
    confidence: Mapped[float | None] = mapped_column(Float, nullable=True)
    times_used: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "vendor_normalized", name="uq_vendor_patterns_user_vendor"),
    )
