"""
Module: settlement_kernel.models.reconciliation
Responsibility: ORM persistence for monthly reconciliations and their line
    items (the line-item store).
Architecture position: Kernel > Models.  May import from db/base.py and
    domain enums only.

Invariants enforced:
    - ``payout_status`` moves from NULL to 'completed' exactly once.  The
      transition is written by a conditional UPDATE in PayoutService and
      guarded afterwards by an ORM listener (db/immutability.py).
    - Line items keep the order they were supplied in via ``line_number``;
      de-duplication ("first occurrence wins") depends on it.

Failure modes:
    - IntegrityError on duplicate (reconciliation_id, line_number).
    - ImmutabilityViolationError when payout fields change after completion.

Audit relevance:
    Every review-flag change, approval, forced deletion and payout on these
    rows is mirrored by a ReconciliationAuditLog entry.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from settlement_kernel.db.base import Base, UUIDString
from settlement_kernel.domain.line_items import ItemType
from settlement_kernel.domain.reconciliation import ReconciliationStatus, ServiceType


class Reconciliation(Base):
    """
    Monthly settlement record for one property/owner/period.

    Contract:
        Holds the reconciliation-level scalars the settlement engine needs
        (``management_fee``, ``total_revenue``, ``service_type``) plus the
        persisted outcome of approval and payout.

    Non-goals:
        - Does NOT compute anything.  Derived columns (``visit_fees``,
          ``total_expenses``, ``net_to_owner``, ``payout_to_owner``) are
          written by services from a single calculator call.
    """

    __tablename__ = "monthly_reconciliations"

    __table_args__ = (
        Index("idx_reconciliation_status", "status"),
        Index("idx_reconciliation_month", "reconciliation_month"),
    )

    reconciliation_month: Mapped[date | None] = mapped_column(Date, nullable=True)

    service_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=ServiceType.COHOSTING.value,
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=ReconciliationStatus.DRAFT.value,
    )

    total_revenue: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    management_fee: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    visit_fees: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    total_expenses: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    net_to_owner: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    # Payout (full_service only); NULL payout_status means not yet paid
    payout_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    payout_to_owner: Mapped[Decimal | None] = mapped_column(nullable=True)
    payout_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    payout_reference: Mapped[str | None] = mapped_column(String(100), nullable=True)

    approved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    approved_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    statement_sent_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    line_items: Mapped[list["ReconciliationLineItem"]] = relationship(
        back_populates="reconciliation",
        order_by="ReconciliationLineItem.line_number",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Reconciliation {self.id} {self.service_type} {self.status}>"


class ReconciliationLineItem(Base):
    """
    One financial entry attributed to a reconciliation.

    ``item_type`` is one of ``visit | expense | pass_through_fee``; only
    pass-through fees use ``fee_type``.
    """

    __tablename__ = "reconciliation_line_items"

    __table_args__ = (
        UniqueConstraint(
            "reconciliation_id", "line_number", name="uq_line_item_position"
        ),
        Index("idx_line_item_source", "item_type", "item_id"),
    )

    reconciliation_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("monthly_reconciliations.id"),
        nullable=False,
    )

    line_number: Mapped[int] = mapped_column(Integer, nullable=False)

    item_type: Mapped[str] = mapped_column(String(30), nullable=False)

    # Source record reference (expense id, visit id, "<booking>_cleaning", ...)
    item_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    amount: Mapped[Decimal] = mapped_column(nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    fee_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    item_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    excluded: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    reconciliation: Mapped[Reconciliation] = relationship(back_populates="line_items")

    def to_record(self) -> dict:
        """Plain mapping understood by ``line_item_from_record``."""
        record = {
            "id": str(self.id),
            "item_type": self.item_type,
            "item_id": self.item_id,
            "amount": self.amount,
            "description": self.description,
            "verified": self.verified,
            "excluded": self.excluded,
        }
        if self.item_type == ItemType.PASS_THROUGH_FEE.value:
            record["fee_type"] = self.fee_type
        return record

    def __repr__(self) -> str:
        return f"<ReconciliationLineItem {self.item_type}:{self.item_id} {self.amount}>"
