"""
Module: settlement_kernel.models.expense
Responsibility: Source expense records referenced by expense line items.

Line items point at an expense through ``item_id`` (the expense id as a
string), not through a foreign key: the line-item store is also fed by
visit and booking-fee sources that live elsewhere.
"""

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import Boolean, Date, DateTime, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from settlement_kernel.db.base import Base


class Expense(Base):
    """An expense incurred on behalf of a property owner."""

    __tablename__ = "expenses"

    amount: Mapped[Decimal] = mapped_column(nullable=False)
    purpose: Mapped[str | None] = mapped_column(String(500), nullable=True)
    items_detail: Mapped[str | None] = mapped_column(Text, nullable=True)
    expense_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    # Set once the expense has been billed on a reconciliation
    exported: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    @property
    def display_description(self) -> str:
        return self.items_detail or self.purpose or "Expense"

    def __repr__(self) -> str:
        return f"<Expense {self.id} {self.amount}>"
