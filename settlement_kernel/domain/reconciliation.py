"""
Reconciliation lifecycle enums and the immutable reconciliation snapshot.

Lifecycle::

    draft --approve--> approved --send statement--> statement_sent
                          |                              |
                          +---------- payout ------------+--> charged

``payout_status`` moves from absent to ``completed`` exactly once and
never back.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID


class ServiceType(str, Enum):
    """Business model that decides which settlement figure is populated."""

    COHOSTING = "cohosting"
    FULL_SERVICE = "full_service"


class ReconciliationStatus(str, Enum):
    """Reconciliation lifecycle states."""

    DRAFT = "draft"
    APPROVED = "approved"
    STATEMENT_SENT = "statement_sent"
    CHARGED = "charged"


class PayoutStatus(str, Enum):
    """Terminal payout marker. Absence (None) means not yet paid."""

    COMPLETED = "completed"


# Legal status transitions driven by the review workflow.
REVIEW_TRANSITIONS: dict[ReconciliationStatus, frozenset[ReconciliationStatus]] = {
    ReconciliationStatus.DRAFT: frozenset({ReconciliationStatus.APPROVED}),
    ReconciliationStatus.APPROVED: frozenset({ReconciliationStatus.STATEMENT_SENT}),
    ReconciliationStatus.STATEMENT_SENT: frozenset(),
    ReconciliationStatus.CHARGED: frozenset(),
}


@dataclass(frozen=True)
class ReconciliationSnapshot:
    """Read-only view of the reconciliation scalars the engines consume."""

    id: UUID
    reconciliation_month: date | None
    service_type: ServiceType | str
    status: ReconciliationStatus
    management_fee: Decimal
    total_revenue: Decimal
    payout_status: PayoutStatus | None = None
    payout_to_owner: Decimal | None = None
    payout_reference: str | None = None
    payout_at: datetime | None = None

    @property
    def is_paid_out(self) -> bool:
        return self.payout_status is PayoutStatus.COMPLETED
