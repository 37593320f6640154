"""Pure domain types for reconciliation settlement. Zero I/O."""

from settlement_kernel.domain.line_items import (
    ExpenseItem,
    FeeType,
    ItemType,
    LineItem,
    PassThroughFeeItem,
    VisitItem,
    dedup_key,
    is_approved,
    line_item_from_record,
)
from settlement_kernel.domain.reconciliation import (
    PayoutStatus,
    ReconciliationSnapshot,
    ReconciliationStatus,
    ServiceType,
)
from settlement_kernel.domain.results import (
    CalcError,
    CalculationOutcome,
    CalculationResult,
    IssuesBySeverity,
    Severity,
    ValidationIssue,
)

__all__ = [
    "CalcError",
    "CalculationOutcome",
    "CalculationResult",
    "ExpenseItem",
    "FeeType",
    "ItemType",
    "IssuesBySeverity",
    "LineItem",
    "PassThroughFeeItem",
    "PayoutStatus",
    "ReconciliationSnapshot",
    "ReconciliationStatus",
    "ServiceType",
    "Severity",
    "ValidationIssue",
    "VisitItem",
    "dedup_key",
    "is_approved",
    "line_item_from_record",
]
