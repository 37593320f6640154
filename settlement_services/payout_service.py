"""
settlement_services.payout_service -- Owner payout for full-service reconciliations.

Responsibility:
    Computes the owner payout for an approved full-service reconciliation
    and records it exactly once, together with an audit entry.

Architecture position:
    Services -- stateful orchestration over engines + kernel.
    Uses the same ``calculate_settlement_outcome`` as the review preview,
    so the committed payout is the number the reviewer and the owner saw.

Invariants enforced:
    - Guards, in order: full-service only; not already paid; status is
      payable (``approved`` / ``statement_sent`` by default); the
      calculator did not fall back; amount strictly positive.
    - Exactly-once: the commit is a single conditional UPDATE
      (``WHERE payout_status IS NULL AND status IN payable``).  Two
      concurrent callers can both pass the read guards; only one UPDATE
      matches a row.  The loser gets PayoutAlreadyCompletedError.
    - Atomic group: ``payout_status``, ``payout_to_owner``, ``payout_at``,
      ``payout_reference`` and the terminal status are written by that one
      statement.  The audit entry shares its SAVEPOINT.

Failure modes:
    - NotFullServiceError, PayoutAlreadyCompletedError,
      ReconciliationNotPayableError, PayoutCalculationError,
      NonPositivePayoutError -- each a distinct, user-legible reason.
    - No automatic retry.

Audit relevance:
    ``payout_recorded`` carries amount, reference and the formula used.
    ``payout.formula: legacy`` reproduces the historical payout-path
    figure (no pass-through fees, no de-duplication) for migrations.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from uuid import UUID, uuid4

from sqlalchemy import update
from sqlalchemy.orm import Session

from settlement_config.schema import PayoutConfig, PayoutFormula
from settlement_engines.settlement import (
    PayoutFormulaComparison,
    calculate_legacy_payout,
    calculate_settlement_outcome,
    compare_payout_formulas,
)
from settlement_kernel.domain.clock import Clock, SystemClock
from settlement_kernel.domain.line_items import LineItem
from settlement_kernel.domain.reconciliation import (
    PayoutStatus,
    ReconciliationSnapshot,
    ServiceType,
)
from settlement_kernel.exceptions import (
    NonPositivePayoutError,
    NotFullServiceError,
    PayoutAlreadyCompletedError,
    PayoutCalculationError,
    ReconciliationNotPayableError,
)
from settlement_kernel.logging_config import LogContext, get_logger
from settlement_kernel.models.reconciliation import Reconciliation
from settlement_kernel.selectors import LineItemSelector, ReconciliationSelector
from settlement_kernel.services.audit_log_service import AuditLogService

logger = get_logger("services.payout")


@dataclass(frozen=True)
class PayoutResult:
    """A committed payout."""

    reconciliation_id: UUID
    amount: Decimal
    payout_reference: str
    payout_at: datetime
    status: str
    formula: str
    audit_entry_id: UUID


class PayoutService:
    """
    Idempotent payout processor.

    The already-paid guard runs before the status guard on purpose: a
    completed payout has moved the status to the terminal value, and a
    retry must still report PAYOUT_ALREADY_COMPLETED with its reference.

    Non-goals:
        - Does NOT move money.  It records that a payout is due and
          assigns its reference; the transfer happens elsewhere.
        - Does NOT commit.
    """

    def __init__(
        self,
        session: Session,
        config: PayoutConfig | None = None,
        clock: Clock | None = None,
        audit_log: AuditLogService | None = None,
    ):
        self._session = session
        self._config = config or PayoutConfig()
        self._clock = clock or SystemClock()
        self._audit = audit_log or AuditLogService(session, self._clock)
        self._line_items = LineItemSelector(session)
        self._reconciliations = ReconciliationSelector(session)

    def _check_guards(self, snapshot: ReconciliationSnapshot) -> None:
        if snapshot.service_type != ServiceType.FULL_SERVICE:
            raise NotFullServiceError(
                str(snapshot.id),
                str(getattr(snapshot.service_type, "value", snapshot.service_type)),
            )
        if snapshot.is_paid_out:
            raise PayoutAlreadyCompletedError(str(snapshot.id), snapshot.payout_reference)
        if snapshot.status.value not in self._config.payable_statuses:
            raise ReconciliationNotPayableError(
                str(snapshot.id), snapshot.status.value, self._config.payable_statuses
            )

    def _compute_amount(
        self,
        snapshot: ReconciliationSnapshot,
        items: tuple[LineItem, ...],
    ) -> Decimal:
        if self._config.formula is PayoutFormula.LEGACY:
            try:
                return calculate_legacy_payout(
                    items, snapshot.management_fee, snapshot.total_revenue
                )
            except (TypeError, ValueError, InvalidOperation) as exc:
                raise PayoutCalculationError(str(snapshot.id), str(exc)) from exc

        outcome = calculate_settlement_outcome(
            items,
            snapshot.management_fee,
            snapshot.total_revenue,
            ServiceType.FULL_SERVICE,
        )
        if not outcome.ok:
            raise PayoutCalculationError(str(snapshot.id), outcome.error.message)
        return outcome.result.payout_to_owner

    def _new_reference(self) -> str:
        return f"{self._config.reference_prefix}-{uuid4().hex[:12].upper()}"

    def process_payout(
        self,
        reconciliation_id: UUID,
        actor_id: UUID | None,
        payout_reference: str | None = None,
    ) -> PayoutResult:
        """
        Compute and record the owner payout.

        Args:
            reconciliation_id: Full-service reconciliation to pay out.
            actor_id: Who triggered the payout.
            payout_reference: External reference; generated if omitted.

        Returns:
            PayoutResult describing the committed payout.
        """
        with LogContext.bind(reconciliation_id=reconciliation_id, actor_id=actor_id):
            snapshot = self._reconciliations.snapshot(reconciliation_id)
            self._check_guards(snapshot)

            items = self._line_items.snapshot(reconciliation_id)
            amount = self._compute_amount(snapshot, items)
            if amount <= 0:
                logger.warning("payout_rejected_non_positive", extra={"amount": str(amount)})
                raise NonPositivePayoutError(str(reconciliation_id), amount)

            reference = payout_reference or self._new_reference()
            paid_at = self._clock.now()

            with self._session.begin_nested():
                outcome = self._session.execute(
                    update(Reconciliation)
                    .where(
                        Reconciliation.id == reconciliation_id,
                        Reconciliation.payout_status.is_(None),
                        Reconciliation.status.in_(self._config.payable_statuses),
                    )
                    .values(
                        payout_status=PayoutStatus.COMPLETED.value,
                        payout_to_owner=amount,
                        payout_at=paid_at,
                        payout_reference=reference,
                        status=self._config.terminal_status,
                    )
                    .execution_options(synchronize_session=False)
                )
                if outcome.rowcount != 1:
                    logger.warning("payout_lost_race")
                    raise PayoutAlreadyCompletedError(str(reconciliation_id))
                # Loaded copy still shows the pre-payout columns.
                self._session.expire(self._reconciliations.get(reconciliation_id))

                entry = self._audit.record_payout(
                    reconciliation_id,
                    amount,
                    reference,
                    actor_id,
                    formula=self._config.formula.value,
                )

            logger.info(
                "payout_completed",
                extra={
                    "amount": str(amount),
                    "payout_reference": reference,
                    "formula": self._config.formula.value,
                },
            )

        return PayoutResult(
            reconciliation_id=reconciliation_id,
            amount=amount,
            payout_reference=reference,
            payout_at=paid_at,
            status=self._config.terminal_status,
            formula=self._config.formula.value,
            audit_entry_id=entry.id,
        )

    def compare_formulas(self, reconciliation_id: UUID) -> PayoutFormulaComparison:
        """Unified vs legacy payout for a reconciliation, without recording anything."""
        snapshot = self._reconciliations.snapshot(reconciliation_id)
        items = self._line_items.snapshot(reconciliation_id)
        return compare_payout_formulas(
            items, snapshot.management_fee, snapshot.total_revenue
        )
