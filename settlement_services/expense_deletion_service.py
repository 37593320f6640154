"""
settlement_services.expense_deletion_service -- Audited force-delete of expenses.

Responsibility:
    Deletes an expense that already participates in one or more
    reconciliations, leaving one audit entry per affected reconciliation.

Architecture position:
    Services -- stateful orchestration over kernel selectors and
    AuditLogService.

Invariants enforced:
    - A non-blank reason is required before anything is read or written.
    - Audit-before-delete: every audit entry is flushed before the first
      DELETE is issued.
    - All-or-nothing: audit entries and deletions share one SAVEPOINT.
      Any failure rolls back both, so the trail never describes a deletion
      that did not happen and no deletion happens without its trail.

Failure modes:
    - MissingDeletionReasonError: blank or absent reason (no side effects).
    - ExpenseNotFoundError: unknown expense id (no side effects).
    - Any audit or delete failure propagates after the SAVEPOINT is
      rolled back.  Nothing is retried.
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.orm import Session

from settlement_kernel.domain.clock import Clock, SystemClock
from settlement_kernel.exceptions import ExpenseNotFoundError, MissingDeletionReasonError
from settlement_kernel.logging_config import LogContext, get_logger
from settlement_kernel.models.expense import Expense
from settlement_kernel.models.reconciliation import Reconciliation
from settlement_kernel.selectors import LineItemSelector
from settlement_kernel.services.audit_log_service import AuditLogService

logger = get_logger("services.expense_deletion")


@dataclass(frozen=True)
class ForceDeleteResult:
    """What a forced deletion touched."""

    expense_id: UUID
    affected_reconciliation_ids: tuple[UUID, ...]
    deleted_line_item_count: int
    audit_entry_ids: tuple[UUID, ...]


class ExpenseDeletionService:
    """Force-deletes expenses referenced by reconciliations, with an audit trail."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        audit_log: AuditLogService | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._audit = audit_log or AuditLogService(session, self._clock)
        self._line_items = LineItemSelector(session)

    def force_delete_expense(
        self,
        expense_id: UUID,
        reason: str | None,
        actor_id: UUID | None,
    ) -> ForceDeleteResult:
        """
        Delete an expense and every line item that references it.

        Preconditions:
            - ``reason`` is a non-blank, human-supplied explanation.

        Postconditions:
            - One ``force_delete_expense`` audit entry exists per distinct
              reconciliation that referenced the expense.
            - The expense and its line items are gone (pending commit).

        Raises:
            MissingDeletionReasonError: reason is None or blank.
            ExpenseNotFoundError: no such expense.
        """
        if reason is None or not reason.strip():
            raise MissingDeletionReasonError(str(expense_id))
        reason = reason.strip()

        with LogContext.bind(actor_id=actor_id):
            expense = self._session.get(Expense, expense_id)
            if expense is None:
                raise ExpenseNotFoundError(str(expense_id))

            with self._session.begin_nested():
                line_items = self._line_items.expense_line_items(expense_id)
                affected = self._line_items.reconciliation_ids_for_expense(expense_id)

                descriptions: dict[UUID, str] = {}
                for row in line_items:
                    descriptions.setdefault(row.reconciliation_id, row.description)

                audit_ids: list[UUID] = []
                for reconciliation_id in affected:
                    entry = self._audit.record_force_delete_expense(
                        reconciliation_id,
                        expense_id,
                        reason,
                        previous_description=(
                            descriptions.get(reconciliation_id)
                            or expense.display_description
                        ),
                        previous_amount=expense.amount,
                        actor_id=actor_id,
                    )
                    audit_ids.append(entry.id)

                logger.info(
                    "force_delete_audited",
                    extra={
                        "expense_id": str(expense_id),
                        "affected_reconciliations": [str(r) for r in affected],
                        "audit_entries": len(audit_ids),
                    },
                )

                for row in line_items:
                    self._session.delete(row)
                self._session.flush()

                self._session.delete(expense)
                self._session.flush()

            # Loaded reconciliations still list the deleted rows.
            for obj in list(self._session.identity_map.values()):
                if isinstance(obj, Reconciliation) and obj.id in affected:
                    self._session.expire(obj, ["line_items"])

            logger.info(
                "expense_force_deleted",
                extra={
                    "expense_id": str(expense_id),
                    "deleted_line_items": len(line_items),
                },
            )

        return ForceDeleteResult(
            expense_id=expense_id,
            affected_reconciliation_ids=tuple(affected),
            deleted_line_item_count=len(line_items),
            audit_entry_ids=tuple(audit_ids),
        )
