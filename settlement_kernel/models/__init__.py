"""ORM models for reconciliations, line items, source expenses and audit."""

from settlement_kernel.models.audit_log import AuditAction, ReconciliationAuditLog
from settlement_kernel.models.expense import Expense
from settlement_kernel.models.reconciliation import (
    Reconciliation,
    ReconciliationLineItem,
)
from settlement_kernel.models.sequence import SequenceCounter

__all__ = [
    "AuditAction",
    "Expense",
    "Reconciliation",
    "ReconciliationAuditLog",
    "ReconciliationLineItem",
    "SequenceCounter",
]
