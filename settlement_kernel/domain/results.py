"""
Result types shared by the settlement engines and their consumers.

``CalculationResult`` is the contract consumed identically by the UI
summary card, the email preview and the payout processor.  Changing the
meaning of any field means changing all three consumers together.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

_ZERO = Decimal("0")


@dataclass(frozen=True)
class CalculationResult:
    """
    Settlement components and the final figure.

    Guarantees:
        - ``due_from_owner`` and ``payout_to_owner`` are never both
          non-zero; the service type decides which one is populated.
        - ``payout_to_owner`` may be negative (owner owes money under the
          full-service model); it is never clamped.
    """

    visit_fees: Decimal = _ZERO
    total_expenses: Decimal = _ZERO
    cleaning_fees: Decimal = _ZERO
    pet_fees: Decimal = _ZERO
    due_from_owner: Decimal = _ZERO
    payout_to_owner: Decimal = _ZERO
    duplicates_detected: int = 0
    error: str | None = None

    def to_dict(self) -> dict[str, str | int | None]:
        """Serializable form with amounts as strings."""
        return {
            "visit_fees": str(self.visit_fees),
            "total_expenses": str(self.total_expenses),
            "cleaning_fees": str(self.cleaning_fees),
            "pet_fees": str(self.pet_fees),
            "due_from_owner": str(self.due_from_owner),
            "payout_to_owner": str(self.payout_to_owner),
            "duplicates_detected": self.duplicates_detected,
            "error": self.error,
        }


@dataclass(frozen=True)
class CalcError:
    """Why a calculation fell back to the degraded result."""

    message: str
    exception_type: str


@dataclass(frozen=True)
class CalculationOutcome:
    """
    Explicit result-or-error return from the settlement calculator.

    ``result`` is ALWAYS usable: on failure it holds the degraded fallback
    figures, so callers that only need a number can ignore ``error``.
    """

    result: CalculationResult
    error: CalcError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class Severity(str, Enum):
    """Validation issue severity. ``error`` means fix before trusting the number."""

    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


@dataclass(frozen=True)
class ValidationIssue:
    """Advisory data-quality finding. Never persisted."""

    severity: Severity
    type: str
    message: str
    item_id: str | None = None
    suggested_action: str | None = None


@dataclass(frozen=True)
class IssuesBySeverity:
    """Validation issues partitioned for display."""

    errors: tuple[ValidationIssue, ...] = ()
    warnings: tuple[ValidationIssue, ...] = ()
    info: tuple[ValidationIssue, ...] = ()

    @property
    def has_errors(self) -> bool:
        return len(self.errors) > 0
