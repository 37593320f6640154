"""
Module: settlement_kernel.selectors.line_item_selector
Responsibility: The LineItem Store boundary.  Turns stored
    ReconciliationLineItem rows into the immutable line item union the
    settlement engines consume.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - A snapshot is read with a single SELECT, so the engines never see a
      reconciliation's items mid-mutation within one transaction.
    - Order is ``line_number`` then ``id``.  De-duplication keeps the first
      occurrence, so this order is part of the contract.

Failure modes:
    - LineItemNotFoundError from ``get()``.
    - ValueError from ``snapshot()`` if a stored row carries an unknown
      ``item_type`` (propagated from ``line_item_from_record``).
"""

from uuid import UUID

from sqlalchemy import select

from settlement_kernel.domain.line_items import ItemType, LineItem, line_item_from_record
from settlement_kernel.exceptions import LineItemNotFoundError
from settlement_kernel.models.reconciliation import ReconciliationLineItem
from settlement_kernel.selectors.base import BaseSelector


class LineItemSelector(BaseSelector):
    """Read-only access to reconciliation line items."""

    def get(self, line_item_id: UUID) -> ReconciliationLineItem:
        """Load one line item row (for services that toggle review flags)."""
        row = self.session.get(ReconciliationLineItem, line_item_id)
        if row is None:
            raise LineItemNotFoundError(str(line_item_id))
        return row

    def rows(self, reconciliation_id: UUID) -> list[ReconciliationLineItem]:
        return list(
            self.session.execute(
                select(ReconciliationLineItem)
                .where(ReconciliationLineItem.reconciliation_id == reconciliation_id)
                .order_by(ReconciliationLineItem.line_number, ReconciliationLineItem.id)
            ).scalars().all()
        )

    def snapshot(self, reconciliation_id: UUID) -> tuple[LineItem, ...]:
        """
        Immutable, ordered line items for one reconciliation.

        Returns:
            Tuple of VisitItem / ExpenseItem / PassThroughFeeItem in input
            order.  Unapproved items are included; gating is the engine's job.
        """
        return tuple(
            line_item_from_record(row.to_record())
            for row in self.rows(reconciliation_id)
        )

    def expense_line_items(self, expense_id: UUID) -> list[ReconciliationLineItem]:
        """All line items that reference the given expense record."""
        return list(
            self.session.execute(
                select(ReconciliationLineItem)
                .where(
                    ReconciliationLineItem.item_type == ItemType.EXPENSE.value,
                    ReconciliationLineItem.item_id == str(expense_id),
                )
                .order_by(ReconciliationLineItem.id)
            ).scalars().all()
        )

    def reconciliation_ids_for_expense(self, expense_id: UUID) -> tuple[UUID, ...]:
        """Distinct reconciliations whose line items reference the expense."""
        ids = self.session.execute(
            select(ReconciliationLineItem.reconciliation_id)
            .where(
                ReconciliationLineItem.item_type == ItemType.EXPENSE.value,
                ReconciliationLineItem.item_id == str(expense_id),
            )
            .distinct()
            .order_by(ReconciliationLineItem.reconciliation_id)
        ).scalars().all()
        return tuple(ids)
