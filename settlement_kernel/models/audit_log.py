"""
Module: settlement_kernel.models.audit_log
Responsibility: ORM persistence for the reconciliation audit trail.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Audit rows are append-only; UPDATE and DELETE are rejected by ORM
      listeners (db/immutability.py).
    - Hash chain: ``hash = H(reconciliation_id | action | payload_hash |
      prev_hash)``, validated by AuditLogService.validate_chain().
    - ``seq`` is monotonically increasing, allocated by SequenceService.

Audit relevance:
    This IS the audit trail.  Review decisions, approvals, forced expense
    deletions and payouts each produce one row per affected reconciliation.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, BigInteger, DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from settlement_kernel.db.base import Base, UUIDString


class AuditAction(str, Enum):
    """Auditable reconciliation actions."""

    # Review
    ITEM_APPROVED = "item_approved"
    ITEM_REJECTED = "item_rejected"
    ITEM_EXCLUDED = "item_excluded"
    ITEM_INCLUDED = "item_included"

    # Lifecycle
    CREATED = "created"
    APPROVED = "approved"
    STATEMENT_SENT = "statement_sent"

    # Destructive / monetary
    FORCE_DELETE_EXPENSE = "force_delete_expense"
    PAYOUT_RECORDED = "payout_recorded"


class ReconciliationAuditLog(Base):
    """
    Append-only audit entry attached to one reconciliation.

    Non-goals:
        - This model does NOT compute hashes; AuditLogService does.
    """

    __tablename__ = "reconciliation_audit_log"

    __table_args__ = (
        Index("idx_audit_reconciliation", "reconciliation_id"),
        Index("idx_audit_action", "action"),
    )

    seq: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)

    # Deliberately not a foreign key: entries must outlive what they describe.
    reconciliation_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    action: Mapped[str] = mapped_column(String(50), nullable=False)

    actor_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    # Line item or source record the action concerned, if any
    item_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    previous_values: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    new_values: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    occurred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    prev_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    hash: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return f"<ReconciliationAuditLog {self.seq} {self.action} on {self.reconciliation_id}>"

    @property
    def is_genesis(self) -> bool:
        """True for the first entry in the chain."""
        return self.prev_hash is None
