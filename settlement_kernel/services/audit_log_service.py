"""
AuditLogService -- append-only, hash-chained reconciliation audit trail.

Responsibility:
    Creates immutable ``ReconciliationAuditLog`` rows for every review
    decision, lifecycle transition, forced deletion and payout, and
    provides chain validation and per-reconciliation trace queries.

Architecture position:
    Kernel > Services -- imperative shell, called by the review, deletion
    and payout services in ``settlement_services``.

Invariants enforced:
    - Sequence monotonicity via SequenceService (never max+1).
    - Chain integrity: ``hash = H(reconciliation_id | action | payload_hash
      | prev_hash)``; every entry links to its predecessor.
    - Append-only: entries are protected by ORM listeners.

Failure modes:
    - AuditChainBrokenError from ``validate_chain()`` on any mismatch.
    - Any flush error propagates; the caller's transaction decides the
      fate of the surrounding change.

Audit relevance:
    Forced deletions rely on this service being called BEFORE the
    destructive write: an entry that fails to flush aborts the deletion.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from settlement_kernel.domain.clock import Clock, SystemClock
from settlement_kernel.exceptions import AuditChainBrokenError
from settlement_kernel.logging_config import get_logger
from settlement_kernel.models.audit_log import AuditAction, ReconciliationAuditLog
from settlement_kernel.services.sequence_service import SequenceService
from settlement_kernel.utils.hashing import hash_audit_entry, hash_payload

logger = get_logger("services.audit_log")


@dataclass(frozen=True)
class AuditTraceEntry:
    """A single entry in a reconciliation's audit trace."""

    seq: int
    action: str
    occurred_at: datetime
    actor_id: UUID | None
    item_id: str | None
    notes: str | None
    previous_values: dict[str, Any] | None
    new_values: dict[str, Any] | None


@dataclass(frozen=True)
class AuditTrace:
    """All audit entries for one reconciliation, oldest first."""

    reconciliation_id: UUID
    entries: tuple[AuditTraceEntry, ...]

    @property
    def is_empty(self) -> bool:
        return len(self.entries) == 0

    @property
    def actions(self) -> tuple[str, ...]:
        return tuple(e.action for e in self.entries)


def _money(value: Decimal | None) -> str | None:
    return None if value is None else str(value)


class AuditLogService:
    """
    Writer and verifier for the reconciliation audit trail.

    Guarantees:
        - Every entry's ``hash`` is a deterministic function of its
          reconciliation id, action, payload hash and predecessor hash.
        - Entries are flushed immediately, so a failing write surfaces at
          the call site and not at a later commit.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()
        self._sequence_service = SequenceService(session)

    def _get_last_hash(self) -> str | None:
        last = self._session.execute(
            select(ReconciliationAuditLog)
            .order_by(ReconciliationAuditLog.seq.desc())
            .limit(1)
        ).scalar_one_or_none()
        return last.hash if last else None

    def _append(
        self,
        reconciliation_id: UUID,
        action: AuditAction,
        actor_id: UUID | None,
        *,
        item_id: str | None = None,
        notes: str | None = None,
        previous_values: dict[str, Any] | None = None,
        new_values: dict[str, Any] | None = None,
    ) -> ReconciliationAuditLog:
        """Create, chain and flush one audit entry."""
        seq = self._sequence_service.next_value(SequenceService.AUDIT_LOG)
        prev_hash = self._get_last_hash()

        payload_hash = hash_payload({
            "item_id": item_id,
            "notes": notes,
            "previous_values": previous_values,
            "new_values": new_values,
            "actor_id": str(actor_id) if actor_id else None,
        })
        entry_hash = hash_audit_entry(
            reconciliation_id=str(reconciliation_id),
            action=action.value,
            payload_hash=payload_hash,
            prev_hash=prev_hash,
        )

        entry = ReconciliationAuditLog(
            seq=seq,
            reconciliation_id=reconciliation_id,
            action=action.value,
            actor_id=actor_id,
            item_id=item_id,
            notes=notes,
            previous_values=previous_values,
            new_values=new_values,
            occurred_at=self._clock.now(),
            payload_hash=payload_hash,
            prev_hash=prev_hash,
            hash=entry_hash,
        )
        self._session.add(entry)
        self._session.flush()

        logger.info(
            "audit_entry_created",
            extra={
                "reconciliation_id": str(reconciliation_id),
                "action": action.value,
                "seq": seq,
            },
        )
        return entry

    # Domain-specific recording methods

    def record_item_verification(
        self,
        reconciliation_id: UUID,
        line_item_id: UUID,
        verified: bool,
        actor_id: UUID | None,
    ) -> ReconciliationAuditLog:
        """Record a reviewer approving or un-approving a line item."""
        return self._append(
            reconciliation_id,
            AuditAction.ITEM_APPROVED if verified else AuditAction.ITEM_REJECTED,
            actor_id,
            item_id=str(line_item_id),
            previous_values={"verified": not verified},
            new_values={"verified": verified},
        )

    def record_item_exclusion(
        self,
        reconciliation_id: UUID,
        line_item_id: UUID,
        excluded: bool,
        actor_id: UUID | None,
        reason: str | None = None,
    ) -> ReconciliationAuditLog:
        """Record a reviewer excluding or re-including a line item."""
        return self._append(
            reconciliation_id,
            AuditAction.ITEM_EXCLUDED if excluded else AuditAction.ITEM_INCLUDED,
            actor_id,
            item_id=str(line_item_id),
            notes=reason,
            previous_values={"excluded": not excluded},
            new_values={"excluded": excluded},
        )

    def record_reconciliation_created(
        self,
        reconciliation_id: UUID,
        actor_id: UUID | None,
        summary: dict[str, Any],
    ) -> ReconciliationAuditLog:
        """Record a draft built from a billing period's source records."""
        return self._append(
            reconciliation_id,
            AuditAction.CREATED,
            actor_id,
            previous_values=None,
            new_values={"status": "draft", **summary},
        )

    def record_reconciliation_approved(
        self,
        reconciliation_id: UUID,
        actor_id: UUID | None,
        settlement: dict[str, Any],
        notes: str | None = None,
    ) -> ReconciliationAuditLog:
        """Record approval together with the figures that were approved."""
        return self._append(
            reconciliation_id,
            AuditAction.APPROVED,
            actor_id,
            notes=notes,
            previous_values={"status": "draft"},
            new_values={"status": "approved", **settlement},
        )

    def record_statement_sent(
        self,
        reconciliation_id: UUID,
        actor_id: UUID | None,
    ) -> ReconciliationAuditLog:
        return self._append(
            reconciliation_id,
            AuditAction.STATEMENT_SENT,
            actor_id,
            previous_values={"status": "approved"},
            new_values={"status": "statement_sent"},
        )

    def record_force_delete_expense(
        self,
        reconciliation_id: UUID,
        expense_id: UUID,
        reason: str,
        previous_description: str,
        previous_amount: Decimal | None,
        actor_id: UUID | None,
    ) -> ReconciliationAuditLog:
        """
        Record a forced expense deletion against one affected reconciliation.

        Preconditions:
            - Called BEFORE the expense or its line items are deleted.
        """
        return self._append(
            reconciliation_id,
            AuditAction.FORCE_DELETE_EXPENSE,
            actor_id,
            item_id=str(expense_id),
            notes=reason,
            previous_values={
                "description": previous_description,
                "amount": _money(previous_amount),
            },
            new_values={"deleted": True},
        )

    def record_payout(
        self,
        reconciliation_id: UUID,
        amount: Decimal,
        payout_reference: str,
        actor_id: UUID | None,
        formula: str,
    ) -> ReconciliationAuditLog:
        """Record a completed owner payout."""
        return self._append(
            reconciliation_id,
            AuditAction.PAYOUT_RECORDED,
            actor_id,
            notes=f"Payout of {amount} recorded with reference {payout_reference}",
            previous_values={"payout_status": None},
            new_values={
                "payout_status": "completed",
                "payout_to_owner": _money(amount),
                "payout_reference": payout_reference,
                "formula": formula,
            },
        )

    # Queries

    def trace(self, reconciliation_id: UUID) -> AuditTrace:
        """All entries for one reconciliation in sequence order."""
        rows = self._session.execute(
            select(ReconciliationAuditLog)
            .where(ReconciliationAuditLog.reconciliation_id == reconciliation_id)
            .order_by(ReconciliationAuditLog.seq)
        ).scalars().all()

        return AuditTrace(
            reconciliation_id=reconciliation_id,
            entries=tuple(
                AuditTraceEntry(
                    seq=row.seq,
                    action=row.action,
                    occurred_at=row.occurred_at,
                    actor_id=row.actor_id,
                    item_id=row.item_id,
                    notes=row.notes,
                    previous_values=row.previous_values,
                    new_values=row.new_values,
                )
                for row in rows
            ),
        )

    def validate_chain(self) -> bool:
        """
        Validate the entire audit chain.

        Raises:
            AuditChainBrokenError: On the first entry whose hash or
                predecessor link does not match.
        """
        entries = self._session.execute(
            select(ReconciliationAuditLog).order_by(ReconciliationAuditLog.seq)
        ).scalars().all()

        previous: ReconciliationAuditLog | None = None
        for entry in entries:
            expected_prev = previous.hash if previous else None
            if entry.prev_hash != expected_prev:
                logger.critical(
                    "audit_chain_broken",
                    extra={"entry_id": str(entry.id), "seq": entry.seq},
                )
                raise AuditChainBrokenError(
                    str(entry.id), expected_prev or "None", entry.prev_hash or "None"
                )

            expected_hash = hash_audit_entry(
                reconciliation_id=str(entry.reconciliation_id),
                action=entry.action,
                payload_hash=entry.payload_hash,
                prev_hash=entry.prev_hash,
            )
            if entry.hash != expected_hash:
                logger.critical(
                    "audit_chain_broken",
                    extra={"entry_id": str(entry.id), "seq": entry.seq},
                )
                raise AuditChainBrokenError(str(entry.id), expected_hash, entry.hash)
            previous = entry

        return True
