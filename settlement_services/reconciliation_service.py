"""
settlement_services.reconciliation_service -- Draft reconciliations from a billing period.

Responsibility:
    Collects a month's visits and unbilled expenses and stores them as a
    ``draft`` reconciliation with ordered line items, ready for review.

Architecture position:
    Services -- stateful orchestration over kernel models.
    Revenue and the management fee arrive as inputs; booking revenue and
    its proration are computed upstream.

Invariants enforced:
    - Line items are numbered in the order they are added: visits in the
      order supplied, then expenses by ``expense_date`` and id.
    - Visit descriptions follow ``"Property visit - <name>"``, with
      ``Staff`` when nobody is recorded, so the visit-name check can flag
      unattributed visits.
    - Expense amounts are stored negative (``-abs(amount)``).  The
      settlement engine sums magnitudes, so either sign settles the same.
    - New line items start unverified.
    - One ``created`` audit entry in the same SAVEPOINT as the rows.

Failure modes:
    - ValueError for an unknown service type.
    - Any flush error propagates and rolls the SAVEPOINT back.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from settlement_kernel.domain.clock import Clock, SystemClock
from settlement_kernel.domain.line_items import ItemType
from settlement_kernel.domain.reconciliation import ReconciliationStatus, ServiceType
from settlement_kernel.logging_config import LogContext, get_logger
from settlement_kernel.models.expense import Expense
from settlement_kernel.models.reconciliation import Reconciliation, ReconciliationLineItem
from settlement_kernel.services.audit_log_service import AuditLogService

logger = get_logger("services.reconciliation")

DEFAULT_VISITOR = "Staff"


@dataclass(frozen=True)
class VisitRecord:
    """A property visit as the scheduling source reports it."""

    id: str
    visit_date: date
    price: Decimal
    visited_by: str | None = None


@dataclass(frozen=True)
class BillingPeriod:
    """A calendar month, identified by its first day."""

    first_day: date
    last_day: date

    @classmethod
    def containing(cls, day: date) -> BillingPeriod:
        last = calendar.monthrange(day.year, day.month)[1]
        return cls(first_day=day.replace(day=1), last_day=day.replace(day=last))

    def __contains__(self, day: date) -> bool:
        return self.first_day <= day <= self.last_day


def visit_description(visited_by: str | None) -> str:
    name = (visited_by or "").strip()
    return f"Property visit - {name or DEFAULT_VISITOR}"


class ReconciliationCreationService:
    """
    Builds draft reconciliations.

    Non-goals:
        - Does NOT compute revenue or the management fee.
        - Does NOT mark expenses as exported; billing export owns that flag.
        - Does NOT commit.
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

    def unbilled_expenses(self, period: BillingPeriod) -> list[Expense]:
        """Expenses dated inside the period that have not been billed yet."""
        return list(
            self._session.execute(
                select(Expense)
                .where(
                    Expense.exported.is_(False),
                    Expense.expense_date >= period.first_day,
                    Expense.expense_date <= period.last_day,
                )
                .order_by(Expense.expense_date, Expense.id)
            ).scalars().all()
        )

    def create_draft(
        self,
        month: date,
        service_type: ServiceType | str,
        management_fee: Decimal,
        total_revenue: Decimal,
        visits: Iterable[VisitRecord] = (),
        actor_id: UUID | None = None,
    ) -> Reconciliation:
        """
        Create a ``draft`` reconciliation for the month containing ``month``.

        Visits dated outside the month are skipped.

        Returns:
            The flushed Reconciliation with its line items loaded.
        """
        service_type = ServiceType(service_type)
        period = BillingPeriod.containing(month)
        period_visits = [v for v in visits if v.visit_date in period]
        expenses = self.unbilled_expenses(period)

        reconciliation = Reconciliation(
            reconciliation_month=period.first_day,
            service_type=service_type.value,
            status=ReconciliationStatus.DRAFT.value,
            management_fee=management_fee,
            total_revenue=total_revenue,
        )

        rows: list[ReconciliationLineItem] = []
        for visit in period_visits:
            rows.append(
                ReconciliationLineItem(
                    item_type=ItemType.VISIT.value,
                    item_id=visit.id,
                    amount=visit.price,
                    description=visit_description(visit.visited_by),
                    item_date=visit.visit_date,
                )
            )
        for expense in expenses:
            rows.append(
                ReconciliationLineItem(
                    item_type=ItemType.EXPENSE.value,
                    item_id=str(expense.id),
                    amount=-abs(expense.amount),
                    description=expense.purpose or "Expense",
                    item_date=expense.expense_date,
                )
            )

        with self._session.begin_nested():
            self._session.add(reconciliation)
            self._session.flush()

            for number, row in enumerate(rows, start=1):
                row.reconciliation_id = reconciliation.id
                row.line_number = number
                row.verified = False
                row.excluded = False
                self._session.add(row)
            self._session.flush()

            self._audit.record_reconciliation_created(
                reconciliation.id,
                actor_id,
                summary={
                    "reconciliation_month": period.first_day.isoformat(),
                    "service_type": service_type.value,
                    "visit_count": len(period_visits),
                    "expense_count": len(expenses),
                },
            )

        self._session.refresh(reconciliation)

        with LogContext.bind(reconciliation_id=reconciliation.id, actor_id=actor_id):
            logger.info(
                "reconciliation_draft_created",
                extra={
                    "reconciliation_month": period.first_day.isoformat(),
                    "line_item_count": len(rows),
                    "visit_count": len(period_visits),
                    "expense_count": len(expenses),
                },
            )
        return reconciliation
