"""
ORM-level immutability enforcement.

Two kinds of record must not change once written:

  1. ReconciliationAuditLog rows -- always append-only.  No UPDATE, no DELETE.
  2. The payout fields of a Reconciliation whose persisted
     ``payout_status`` is 'completed'.  The payout is terminal; the amount,
     reference and timestamp it was committed with stay as committed.

These are mapper-level listeners, so they guard ORM unit-of-work flushes.
Bulk Core statements bypass them; the only bulk statement touching
payout columns is PayoutService's conditional UPDATE, which is itself
restricted to rows whose ``payout_status`` is still NULL.

Listeners are process-global.  Call ``register_immutability_listeners()``
once at application start (tests do it in conftest).
"""

from sqlalchemy import event, inspect, select

from settlement_kernel.domain.reconciliation import PayoutStatus
from settlement_kernel.exceptions import ImmutabilityViolationError
from settlement_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

PAYOUT_FIELDS = frozenset(
    {"payout_status", "payout_to_owner", "payout_reference", "payout_at"}
)


def _check_audit_log_update(mapper, connection, target):
    """Audit entries are never modified."""
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "ReconciliationAuditLog",
            "entity_id": str(target.id),
            "operation": "UPDATE",
        },
    )
    raise ImmutabilityViolationError(
        entity_type="ReconciliationAuditLog",
        entity_id=str(target.id),
        reason="Audit log entries are immutable and cannot be modified",
    )


def _check_audit_log_delete(mapper, connection, target):
    """Audit entries are never deleted."""
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "ReconciliationAuditLog",
            "entity_id": str(target.id),
            "operation": "DELETE",
        },
    )
    raise ImmutabilityViolationError(
        entity_type="ReconciliationAuditLog",
        entity_id=str(target.id),
        reason="Audit log entries cannot be deleted",
    )


def _check_completed_payout_update(mapper, connection, target):
    """Reject changes to payout fields once the payout is completed."""
    state = inspect(target)

    status_history = state.attrs.payout_status.history
    if status_history.deleted:
        persisted_status = status_history.deleted[0]
    elif status_history.unchanged:
        persisted_status = status_history.unchanged[0]
    elif "payout_status" in state.unloaded:
        table = mapper.local_table
        persisted_status = connection.execute(
            select(table.c.payout_status).where(table.c.id == target.id)
        ).scalar_one_or_none()
    else:
        persisted_status = None

    if persisted_status != PayoutStatus.COMPLETED.value:
        return

    changed = sorted(
        name for name in PAYOUT_FIELDS
        if state.attrs[name].history.has_changes()
    )
    if not changed:
        return

    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "Reconciliation",
            "entity_id": str(target.id),
            "operation": "UPDATE",
            "fields": changed,
        },
    )
    raise ImmutabilityViolationError(
        entity_type="Reconciliation",
        entity_id=str(target.id),
        reason=f"Payout already completed; cannot change {', '.join(changed)}",
    )


def register_immutability_listeners():
    """Register all immutability enforcement listeners."""
    from settlement_kernel.models.audit_log import ReconciliationAuditLog
    from settlement_kernel.models.reconciliation import Reconciliation

    event.listen(ReconciliationAuditLog, "before_update", _check_audit_log_update)
    event.listen(ReconciliationAuditLog, "before_delete", _check_audit_log_delete)
    event.listen(Reconciliation, "before_update", _check_completed_payout_update)


def _safe_remove_listener(target, event_name, listener_fn):
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """Remove all immutability listeners (test teardown)."""
    from settlement_kernel.models.audit_log import ReconciliationAuditLog
    from settlement_kernel.models.reconciliation import Reconciliation

    _safe_remove_listener(ReconciliationAuditLog, "before_update", _check_audit_log_update)
    _safe_remove_listener(ReconciliationAuditLog, "before_delete", _check_audit_log_delete)
    _safe_remove_listener(Reconciliation, "before_update", _check_completed_payout_update)
