"""
Typed Exception Hierarchy for the Settlement Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Reconciliation failures reach three very different audiences: a reviewer
who must fix data, an operator who must retry a payout, and an API client
that must render a reason.  Each of those needs to branch on the KIND of
failure, never on the wording of a message.

Every exception therefore:
  1. Has its own class (catch by type, not message)
  2. Carries a ``code`` class attribute (machine-readable, API-safe)
  3. Stores its context as attributes (not just a message string)

Example:
    try:
        payout_service.process_payout(reconciliation_id, actor_id)
    except PayoutAlreadyCompletedError as e:
        return {"code": e.code, "payout_reference": e.payout_reference}
    except PayoutError as e:
        return {"code": e.code, "reason": str(e)}

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    SettlementError (base)
    |
    +-- ReconciliationError
    |   +-- ReconciliationNotFoundError
    |   +-- LineItemNotFoundError
    |   +-- InvalidReconciliationTransitionError
    |   +-- ReconciliationLockedError
    |
    +-- DeletionError
    |   +-- MissingDeletionReasonError
    |   +-- ExpenseNotFoundError
    |
    +-- PayoutError
    |   +-- NotFullServiceError
    |   +-- ReconciliationNotPayableError
    |   +-- PayoutAlreadyCompletedError
    |   +-- PayoutCalculationError
    |   +-- NonPositivePayoutError
    |
    +-- AuditError
    |   +-- AuditChainBrokenError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- ConfigError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                          | When Raised
----------------|-------------------------------|---------------------------------------
Reconciliation  | RECONCILIATION_NOT_FOUND      | Reconciliation ID doesn't exist
                | LINE_ITEM_NOT_FOUND           | Line item ID doesn't exist
                | INVALID_RECONCILIATION_TRANSITION | Status change not allowed
                | RECONCILIATION_LOCKED         | Review flags changed after approval
----------------|-------------------------------|---------------------------------------
Deletion        | DELETION_REASON_REQUIRED      | Force delete without a reason
                | EXPENSE_NOT_FOUND             | Source expense doesn't exist
----------------|-------------------------------|---------------------------------------
Payout          | NOT_FULL_SERVICE              | Payout requested for co-hosting
                | RECONCILIATION_NOT_PAYABLE    | Status not approved/statement_sent
                | PAYOUT_ALREADY_COMPLETED      | Payout already recorded (idempotency)
                | PAYOUT_CALCULATION_FAILED     | Calculator returned its fallback
                | NON_POSITIVE_PAYOUT           | Nothing to pay out
----------------|-------------------------------|---------------------------------------
Audit           | AUDIT_CHAIN_BROKEN            | Hash chain validation failed
----------------|-------------------------------|---------------------------------------
Immutability    | IMMUTABILITY_VIOLATION        | Modifying an immutable record
----------------|-------------------------------|---------------------------------------
Config          | CONFIG_ERROR                  | Invalid configuration document

Calculation failures inside the settlement engine are NOT exceptions: the
engine always returns a usable result and reports the failure as data.
===============================================================================
"""

from decimal import Decimal


class SettlementError(Exception):
    """
    Base exception for all settlement kernel errors.

    All subclasses must define a ``code`` class attribute for
    machine-readable error identification.
    """

    code: str = "SETTLEMENT_ERROR"


# Reconciliation-related exceptions


class ReconciliationError(SettlementError):
    """Base exception for reconciliation lifecycle errors."""

    code: str = "RECONCILIATION_ERROR"


class ReconciliationNotFoundError(ReconciliationError):
    """Reconciliation with given ID was not found."""

    code: str = "RECONCILIATION_NOT_FOUND"

    def __init__(self, reconciliation_id: str):
        self.reconciliation_id = str(reconciliation_id)
        super().__init__(f"Reconciliation not found: {reconciliation_id}")


class LineItemNotFoundError(ReconciliationError):
    """Line item with given ID was not found."""

    code: str = "LINE_ITEM_NOT_FOUND"

    def __init__(self, line_item_id: str):
        self.line_item_id = str(line_item_id)
        super().__init__(f"Line item not found: {line_item_id}")


class InvalidReconciliationTransitionError(ReconciliationError):
    """Requested status change is not a legal lifecycle transition."""

    code: str = "INVALID_RECONCILIATION_TRANSITION"

    def __init__(self, reconciliation_id: str, from_status: str, to_status: str):
        self.reconciliation_id = str(reconciliation_id)
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Reconciliation {reconciliation_id} cannot move from "
            f"'{from_status}' to '{to_status}'"
        )


class ReconciliationLockedError(ReconciliationError):
    """Review flags can only change while the reconciliation is a draft."""

    code: str = "RECONCILIATION_LOCKED"

    def __init__(self, reconciliation_id: str, status: str):
        self.reconciliation_id = str(reconciliation_id)
        self.status = status
        super().__init__(
            f"Reconciliation {reconciliation_id} is '{status}'; "
            f"line items can no longer be reviewed"
        )


# Deletion-related exceptions


class DeletionError(SettlementError):
    """Base exception for audited deletion errors."""

    code: str = "DELETION_ERROR"


class MissingDeletionReasonError(DeletionError):
    """Force delete was requested without a human-supplied reason."""

    code: str = "DELETION_REASON_REQUIRED"

    def __init__(self, expense_id: str):
        self.expense_id = str(expense_id)
        super().__init__(
            f"A reason is required to force-delete expense {expense_id}"
        )


class ExpenseNotFoundError(DeletionError):
    """Source expense record does not exist."""

    code: str = "EXPENSE_NOT_FOUND"

    def __init__(self, expense_id: str):
        self.expense_id = str(expense_id)
        super().__init__(f"Expense not found: {expense_id}")


# Payout-related exceptions


class PayoutError(SettlementError):
    """Base exception for payout processing errors."""

    code: str = "PAYOUT_ERROR"


class NotFullServiceError(PayoutError):
    """Payouts only apply to full-service reconciliations."""

    code: str = "NOT_FULL_SERVICE"

    def __init__(self, reconciliation_id: str, service_type: str):
        self.reconciliation_id = str(reconciliation_id)
        self.service_type = service_type
        super().__init__(
            f"Cannot pay out reconciliation {reconciliation_id}: service type "
            f"is '{service_type}', payouts require 'full_service'"
        )


class ReconciliationNotPayableError(PayoutError):
    """Reconciliation status does not allow a payout."""

    code: str = "RECONCILIATION_NOT_PAYABLE"

    def __init__(
        self,
        reconciliation_id: str,
        status: str,
        payable_statuses: tuple[str, ...],
    ):
        self.reconciliation_id = str(reconciliation_id)
        self.status = status
        self.payable_statuses = payable_statuses
        super().__init__(
            f"Cannot pay out reconciliation with status: {status}. "
            f"Must be one of {', '.join(payable_statuses)}."
        )


class PayoutAlreadyCompletedError(PayoutError):
    """Payout has already been recorded for this reconciliation."""

    code: str = "PAYOUT_ALREADY_COMPLETED"

    def __init__(self, reconciliation_id: str, payout_reference: str | None = None):
        self.reconciliation_id = str(reconciliation_id)
        self.payout_reference = payout_reference
        super().__init__(
            f"Payout already completed for reconciliation {reconciliation_id}"
            + (f" (reference {payout_reference})" if payout_reference else "")
        )


class PayoutCalculationError(PayoutError):
    """Settlement engine could not compute a trustworthy payout figure."""

    code: str = "PAYOUT_CALCULATION_FAILED"

    def __init__(self, reconciliation_id: str, reason: str):
        self.reconciliation_id = str(reconciliation_id)
        self.reason = reason
        super().__init__(
            f"Payout for reconciliation {reconciliation_id} could not be "
            f"calculated: {reason}"
        )


class NonPositivePayoutError(PayoutError):
    """Computed payout is zero or negative; there is nothing to send."""

    code: str = "NON_POSITIVE_PAYOUT"

    def __init__(self, reconciliation_id: str, amount: Decimal):
        self.reconciliation_id = str(reconciliation_id)
        self.amount = str(amount)
        super().__init__(
            f"No payout to send for reconciliation {reconciliation_id}: "
            f"computed amount is {amount}"
        )


# Audit-related exceptions


class AuditError(SettlementError):
    """Base exception for audit trail errors."""

    code: str = "AUDIT_ERROR"


class AuditChainBrokenError(AuditError):
    """Audit log hash chain validation failed."""

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(self, entry_id: str, expected_hash: str, actual_hash: str):
        self.entry_id = str(entry_id)
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Audit chain broken at entry {entry_id}: "
            f"expected {expected_hash}, found {actual_hash}"
        )


# Immutability exceptions


class ImmutabilityError(SettlementError):
    """Base exception for immutability violations."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete a record that is immutable."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        self.reason = reason
        super().__init__(
            f"Cannot modify {entity_type} {entity_id}: {reason}"
        )


# Configuration exceptions


class ConfigError(SettlementError):
    """Configuration document is missing required values or is malformed."""

    code: str = "CONFIG_ERROR"

    def __init__(self, source: str, problems: list[str]):
        self.source = source
        self.problems = problems
        super().__init__(
            f"Invalid settlement configuration ({source}): " + "; ".join(problems)
        )
