"""Kernel services: sequence allocation and the reconciliation audit log."""

from settlement_kernel.services.audit_log_service import (
    AuditLogService,
    AuditTrace,
    AuditTraceEntry,
)
from settlement_kernel.services.sequence_service import SequenceService

__all__ = [
    "AuditLogService",
    "AuditTrace",
    "AuditTraceEntry",
    "SequenceService",
]
