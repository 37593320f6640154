"""
Module: settlement_kernel.selectors.reconciliation_selector
Responsibility: Read access to monthly reconciliations.
Architecture position: Kernel > Selectors.

Failure modes:
    - ReconciliationNotFoundError when the id does not exist.
"""

from uuid import UUID

from settlement_kernel.domain.reconciliation import (
    PayoutStatus,
    ReconciliationSnapshot,
    ReconciliationStatus,
    ServiceType,
)
from settlement_kernel.exceptions import ReconciliationNotFoundError
from settlement_kernel.models.reconciliation import Reconciliation
from settlement_kernel.selectors.base import BaseSelector


def _service_type(value: str) -> ServiceType | str:
    # Unknown stored values pass through; the calculator reports them.
    try:
        return ServiceType(value)
    except ValueError:
        return value


class ReconciliationSelector(BaseSelector):
    """Read-only access to reconciliations."""

    def get(self, reconciliation_id: UUID) -> Reconciliation:
        row = self.session.get(Reconciliation, reconciliation_id)
        if row is None:
            raise ReconciliationNotFoundError(str(reconciliation_id))
        return row

    def snapshot(self, reconciliation_id: UUID) -> ReconciliationSnapshot:
        """Immutable view of the scalars the engines and guards need."""
        row = self.get(reconciliation_id)
        return ReconciliationSnapshot(
            id=row.id,
            reconciliation_month=row.reconciliation_month,
            service_type=_service_type(row.service_type),
            status=ReconciliationStatus(row.status),
            management_fee=row.management_fee,
            total_revenue=row.total_revenue,
            payout_status=(
                PayoutStatus(row.payout_status) if row.payout_status else None
            ),
            payout_to_owner=row.payout_to_owner,
            payout_reference=row.payout_reference,
            payout_at=row.payout_at,
        )
