"""
Settlement services -- stateful orchestration over engines + kernel.

Services take a Session, flush, and never commit.  Wrap calls in
``settlement_kernel.db.session_scope()`` (or your own transaction).
"""

from settlement_services.expense_deletion_service import (
    ExpenseDeletionService,
    ForceDeleteResult,
)
from settlement_services.payout_service import PayoutResult, PayoutService
from settlement_services.reconciliation_service import (
    BillingPeriod,
    ReconciliationCreationService,
    VisitRecord,
)
from settlement_services.review_service import (
    ReconciliationReviewService,
    SettlementPreview,
)

__all__ = [
    "BillingPeriod",
    "ExpenseDeletionService",
    "ForceDeleteResult",
    "PayoutResult",
    "PayoutService",
    "ReconciliationCreationService",
    "ReconciliationReviewService",
    "SettlementPreview",
    "VisitRecord",
]
