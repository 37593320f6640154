"""
settlement_services.review_service -- Human review and approval of a reconciliation.

Responsibility:
    Toggles per-item review flags (verified / excluded), produces the
    settlement preview shared by the summary card and the statement
    email, and drives the ``draft -> approved -> statement_sent``
    transitions.

Architecture position:
    Services -- stateful orchestration over engines + kernel.
    Composes the settlement and validation engines (pure) with the
    selectors and AuditLogService (kernel I/O).

Invariants enforced:
    - Review flags only change while the reconciliation is ``draft``.
    - Approval persists ``visit_fees``, ``total_expenses`` and
      ``net_to_owner`` from the SAME calculator call whose figures are
      recorded in the ``approved`` audit entry.
    - Every flag change and transition writes exactly one audit entry in
      the same SAVEPOINT as the change itself.

Failure modes:
    - LineItemNotFoundError / ReconciliationNotFoundError.
    - ReconciliationLockedError: flag change after approval.
    - InvalidReconciliationTransitionError: illegal status change.

Audit relevance:
    Validation issues never block approval.  Their counts are logged with
    the approval so a reviewer who approved over an ``error`` issue can
    be identified afterwards.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from settlement_engines.settlement import (
    SettlementSummary,
    build_settlement_summary,
    calculate_settlement_outcome,
    total_charges,
)
from settlement_engines.validation import group_issues_by_severity, validate_reconciliation
from settlement_kernel.domain.clock import Clock, SystemClock
from settlement_kernel.domain.line_items import LineItem, line_item_from_record
from settlement_kernel.domain.reconciliation import (
    REVIEW_TRANSITIONS,
    ReconciliationStatus,
)
from settlement_kernel.domain.results import (
    CalcError,
    CalculationResult,
    IssuesBySeverity,
    ValidationIssue,
)
from settlement_kernel.exceptions import (
    InvalidReconciliationTransitionError,
    ReconciliationLockedError,
)
from settlement_kernel.logging_config import LogContext, get_logger
from settlement_kernel.models.reconciliation import Reconciliation, ReconciliationLineItem
from settlement_kernel.selectors import LineItemSelector, ReconciliationSelector
from settlement_kernel.services.audit_log_service import AuditLogService

logger = get_logger("services.review")


@dataclass(frozen=True)
class SettlementPreview:
    """What a reviewer sees: the figure, how to label it, and what looks wrong."""

    reconciliation_id: UUID
    result: CalculationResult
    summary: SettlementSummary
    issues: tuple[ValidationIssue, ...]
    error: CalcError | None = None

    @property
    def grouped_issues(self) -> IssuesBySeverity:
        return group_issues_by_severity(self.issues)


class ReconciliationReviewService:
    """
    Review workflow for a single reconciliation at a time.

    Non-goals:
        - Does NOT commit.  Callers own the transaction boundary.
        - Does NOT send statements; ``mark_statement_sent`` records that
          an external mailer did.
    """

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
        self._reconciliations = ReconciliationSelector(session)

    # Item review

    def _editable_item(self, line_item_id: UUID) -> ReconciliationLineItem:
        row = self._line_items.get(line_item_id)
        reconciliation = self._reconciliations.get(row.reconciliation_id)
        if reconciliation.status != ReconciliationStatus.DRAFT.value:
            raise ReconciliationLockedError(str(reconciliation.id), reconciliation.status)
        return row

    def set_verified(
        self,
        line_item_id: UUID,
        verified: bool,
        actor_id: UUID | None,
    ) -> LineItem:
        """Mark a line item as verified (or not) by a reviewer."""
        row = self._editable_item(line_item_id)
        if row.verified == verified:
            return line_item_from_record(row.to_record())

        with LogContext.bind(reconciliation_id=row.reconciliation_id, actor_id=actor_id):
            with self._session.begin_nested():
                row.verified = verified
                self._session.flush()
                self._audit.record_item_verification(
                    row.reconciliation_id, row.id, verified, actor_id
                )
            logger.info(
                "line_item_verification_changed",
                extra={"line_item_id": str(row.id), "verified": verified},
            )
        return line_item_from_record(row.to_record())

    def set_excluded(
        self,
        line_item_id: UUID,
        excluded: bool,
        actor_id: UUID | None,
        reason: str | None = None,
    ) -> LineItem:
        """Exclude a line item from the settlement, or include it again."""
        row = self._editable_item(line_item_id)
        if row.excluded == excluded:
            return line_item_from_record(row.to_record())

        with LogContext.bind(reconciliation_id=row.reconciliation_id, actor_id=actor_id):
            with self._session.begin_nested():
                row.excluded = excluded
                self._session.flush()
                self._audit.record_item_exclusion(
                    row.reconciliation_id, row.id, excluded, actor_id, reason
                )
            logger.info(
                "line_item_exclusion_changed",
                extra={"line_item_id": str(row.id), "excluded": excluded},
            )
        return line_item_from_record(row.to_record())

    # Preview

    def _build_preview(self, reconciliation: Reconciliation) -> SettlementPreview:
        snapshot = self._reconciliations.snapshot(reconciliation.id)
        items = self._line_items.snapshot(reconciliation.id)

        outcome = calculate_settlement_outcome(
            items,
            snapshot.management_fee,
            snapshot.total_revenue,
            snapshot.service_type,
        )
        return SettlementPreview(
            reconciliation_id=reconciliation.id,
            result=outcome.result,
            summary=build_settlement_summary(outcome.result, snapshot.service_type),
            issues=tuple(validate_reconciliation(items)),
            error=outcome.error,
        )

    def preview(self, reconciliation_id: UUID) -> SettlementPreview:
        """The settlement as the summary card and the email preview show it."""
        return self._build_preview(self._reconciliations.get(reconciliation_id))

    # Lifecycle

    def _check_transition(
        self,
        reconciliation: Reconciliation,
        to_status: ReconciliationStatus,
    ) -> None:
        current = ReconciliationStatus(reconciliation.status)
        if to_status not in REVIEW_TRANSITIONS[current]:
            raise InvalidReconciliationTransitionError(
                str(reconciliation.id), current.value, to_status.value
            )

    def approve(
        self,
        reconciliation_id: UUID,
        actor_id: UUID | None,
        notes: str | None = None,
    ) -> SettlementPreview:
        """
        Approve a draft reconciliation and persist its settlement figures.

        Returns:
            The preview the approval was based on.
        """
        reconciliation = self._reconciliations.get(reconciliation_id)
        self._check_transition(reconciliation, ReconciliationStatus.APPROVED)

        with LogContext.bind(reconciliation_id=reconciliation_id, actor_id=actor_id):
            preview = self._build_preview(reconciliation)
            result = preview.result
            net_to_owner = reconciliation.total_revenue - total_charges(
                result, reconciliation.management_fee
            )
            grouped = preview.grouped_issues

            if preview.error is not None:
                logger.warning(
                    "approval_with_fallback_figures",
                    extra={"exception_type": preview.error.exception_type},
                )

            with self._session.begin_nested():
                reconciliation.visit_fees = result.visit_fees
                reconciliation.total_expenses = result.total_expenses
                reconciliation.net_to_owner = net_to_owner
                reconciliation.status = ReconciliationStatus.APPROVED.value
                reconciliation.approved_at = self._clock.now()
                reconciliation.approved_by_id = actor_id
                if notes is not None:
                    reconciliation.notes = notes
                self._session.flush()

                self._audit.record_reconciliation_approved(
                    reconciliation_id,
                    actor_id,
                    settlement={
                        **result.to_dict(),
                        "net_to_owner": str(net_to_owner),
                    },
                    notes=notes,
                )

            logger.info(
                "reconciliation_approved",
                extra={
                    "settlement_label": preview.summary.label,
                    "settlement_amount": str(preview.summary.amount),
                    "error_issues": len(grouped.errors),
                    "warning_issues": len(grouped.warnings),
                    "info_issues": len(grouped.info),
                },
            )
        return preview

    def mark_statement_sent(
        self,
        reconciliation_id: UUID,
        actor_id: UUID | None,
    ) -> Reconciliation:
        reconciliation = self._reconciliations.get(reconciliation_id)
        self._check_transition(reconciliation, ReconciliationStatus.STATEMENT_SENT)

        with LogContext.bind(reconciliation_id=reconciliation_id, actor_id=actor_id):
            with self._session.begin_nested():
                reconciliation.status = ReconciliationStatus.STATEMENT_SENT.value
                reconciliation.statement_sent_at = self._clock.now()
                self._session.flush()
                self._audit.record_statement_sent(reconciliation_id, actor_id)
            logger.info("statement_marked_sent")
        return reconciliation
