"""
Module: settlement_engines.settlement
Responsibility:
    Turn a reconciliation's line items into a single settlement figure:
    the amount the owner owes (co-hosting) or the amount owed to the
    owner (full-service).  Also owns the label/amount selection and the
    currency formatting every consumer renders the figure with.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import settlement_kernel/domain and logging.

Invariants enforced:
    - Only approved items (``verified and not excluded``) contribute.
    - Duplicates (same ``item_type:item_id``) are counted, logged and
      collapsed to their first occurrence in input order.
    - Amount signs are insignificant; every component sums ``abs(amount)``.
    - Exactly one of ``due_from_owner`` / ``payout_to_owner`` is populated.
      A negative full-service payout is preserved, never clamped.
    - Total: internal failures become a fallback result carrying
      ``management_fee`` as the degraded due-from-owner figure.

Failure modes:
    - None raised from ``calculate_settlement_outcome``.  The error is
      returned as ``CalculationOutcome.error``.
    - ``calculate_legacy_payout`` is NOT total; it raises on malformed
      input the way the payout path always has.

Audit relevance:
    The UI summary card, the statement email preview and the payout
    processor all read ``calculate_settlement``.  There is one formula.

Usage:
    from settlement_engines.settlement import calculate_settlement

    result = calculate_settlement(
        items, management_fee=Decimal("200"), total_revenue=Decimal("3000"),
        service_type=ServiceType.FULL_SERVICE,
    )
    result.payout_to_owner  # Decimal("2645")
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from settlement_engines.heuristics import (
    is_visit_related,
    matches_cleaning_fee,
    matches_pet_fee,
)
from settlement_engines.tracer import traced_engine
from settlement_kernel.domain.line_items import (
    ItemType,
    LineItem,
    dedup_key,
    is_approved,
)
from settlement_kernel.domain.reconciliation import ServiceType
from settlement_kernel.domain.results import (
    CalcError,
    CalculationOutcome,
    CalculationResult,
)
from settlement_kernel.logging_config import get_logger

logger = get_logger("engines.settlement")

FALLBACK_ERROR_MESSAGE = "Calculation failed - using fallback values"

DUE_FROM_OWNER_LABEL = "Due from Owner"
PAYOUT_TO_OWNER_LABEL = "Payout to Owner"

_ZERO = Decimal("0")
_CENT = Decimal("0.01")


def _as_decimal(value: Any, name: str) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if value is None or isinstance(value, bool):
        raise TypeError(f"{name} must be a number, got {value!r}")
    return Decimal(str(value))


def _abs_sum(items: Iterable[LineItem]) -> Decimal:
    return sum((abs(item.amount) for item in items), _ZERO)


def approved_items(line_items: Iterable[LineItem]) -> list[LineItem]:
    """Items that pass the review gate, in input order."""
    return [item for item in line_items if is_approved(item)]


def count_duplicates(items: Sequence[LineItem]) -> dict[str, int]:
    """Occurrence counts for every dedup key seen more than once."""
    counts = Counter(key for key in map(dedup_key, items) if key is not None)
    return {key: n for key, n in counts.items() if n > 1}


def deduplicate(items: Sequence[LineItem]) -> list[LineItem]:
    """Keep the first occurrence of each dedup key; keyless items always stay."""
    seen: set[str] = set()
    kept: list[LineItem] = []
    for item in items:
        key = dedup_key(item)
        if key is not None:
            if key in seen:
                continue
            seen.add(key)
        kept.append(item)
    return kept


def _visit_fees(items: Sequence[LineItem]) -> Decimal:
    return _abs_sum(i for i in items if i.item_type is ItemType.VISIT)


def _expenses(items: Sequence[LineItem]) -> Decimal:
    return _abs_sum(
        i for i in items
        if i.item_type is ItemType.EXPENSE and not is_visit_related(i.description)
    )


def _calculate(
    line_items: Sequence[LineItem],
    management_fee: Any,
    total_revenue: Any,
    service_type: ServiceType | str,
) -> CalculationResult:
    approved = approved_items(line_items)

    duplicates = count_duplicates(approved)
    for key, occurrences in duplicates.items():
        logger.warning(
            "duplicate_line_item_detected",
            extra={"dedup_key": key, "occurrences": occurrences},
        )
    duplicates_detected = sum(n - 1 for n in duplicates.values())

    items = deduplicate(approved)

    visit_fees = _visit_fees(items)
    total_expenses = _expenses(items)
    pass_through = [i for i in items if i.item_type is ItemType.PASS_THROUGH_FEE]
    cleaning_fees = _abs_sum(i for i in pass_through if matches_cleaning_fee(i))
    pet_fees = _abs_sum(i for i in pass_through if matches_pet_fee(i))

    fee = _as_decimal(management_fee, "management_fee")
    total_charges = fee + visit_fees + total_expenses + cleaning_fees + pet_fees

    model = ServiceType(service_type)
    if model is ServiceType.FULL_SERVICE:
        revenue = _as_decimal(total_revenue, "total_revenue")
        due_from_owner, payout_to_owner = _ZERO, revenue - total_charges
    else:
        due_from_owner, payout_to_owner = total_charges, _ZERO

    return CalculationResult(
        visit_fees=visit_fees,
        total_expenses=total_expenses,
        cleaning_fees=cleaning_fees,
        pet_fees=pet_fees,
        due_from_owner=due_from_owner,
        payout_to_owner=payout_to_owner,
        duplicates_detected=duplicates_detected,
    )


def _fallback_fee(management_fee: Any) -> Decimal:
    if isinstance(management_fee, Decimal):
        return management_fee
    try:
        return _as_decimal(management_fee, "management_fee")
    except (TypeError, ValueError, InvalidOperation):
        # Nothing usable to degrade to.
        return _ZERO


@traced_engine(
    "settlement", "1.0",
    fingerprint_fields=("line_items", "management_fee", "total_revenue", "service_type"),
)
def calculate_settlement_outcome(
    line_items: Sequence[LineItem],
    management_fee: Decimal,
    total_revenue: Decimal | None = None,
    service_type: ServiceType | str = ServiceType.COHOSTING,
) -> CalculationOutcome:
    """
    Compute the settlement for one reconciliation.

    Args:
        line_items: All line items of the reconciliation, in input order.
            Unapproved items may be present; they are gated out here.
        management_fee: Flat fee charged for the period.
        total_revenue: Booking revenue collected; read for full-service only.
        service_type: ``ServiceType`` or its string value.

    Returns:
        CalculationOutcome whose ``result`` is always usable.  On failure
        ``error`` is set and ``result`` is the fallback: zero components,
        ``due_from_owner == management_fee``, ``payout_to_owner == 0``.
    """
    try:
        return CalculationOutcome(
            result=_calculate(line_items, management_fee, total_revenue, service_type)
        )
    except Exception as exc:
        logger.error(
            "settlement_calculation_failed",
            exc_info=True,
            extra={
                "service_type": str(getattr(service_type, "value", service_type)),
                "exception_type": type(exc).__name__,
            },
        )
        return CalculationOutcome(
            result=CalculationResult(
                due_from_owner=_fallback_fee(management_fee),
                payout_to_owner=_ZERO,
                error=FALLBACK_ERROR_MESSAGE,
            ),
            error=CalcError(message=str(exc), exception_type=type(exc).__name__),
        )


def calculate_settlement(
    line_items: Sequence[LineItem],
    management_fee: Decimal,
    total_revenue: Decimal | None = None,
    service_type: ServiceType | str = ServiceType.COHOSTING,
) -> CalculationResult:
    """Total form of the calculator: the result without the error channel."""
    return calculate_settlement_outcome(
        line_items, management_fee, total_revenue, service_type
    ).result


def total_charges(result: CalculationResult, management_fee: Decimal) -> Decimal:
    """Everything charged to the owner for the period."""
    return (
        management_fee
        + result.visit_fees
        + result.total_expenses
        + result.cleaning_fees
        + result.pet_fees
    )


# Legacy payout formula


def calculate_legacy_payout(
    line_items: Sequence[LineItem],
    management_fee: Decimal,
    total_revenue: Decimal,
) -> Decimal:
    """
    The payout figure as the payout path used to compute it.

    Same approval gate and visit/expense rules as the calculator, but no
    pass-through fees and no de-duplication, so it overstates the payout
    whenever pass-through fees or duplicates exist.  Kept only so a
    migration can compare against, or deliberately reproduce, old payouts.

    Raises:
        TypeError / InvalidOperation: malformed amounts or scalars.
    """
    items = approved_items(line_items)
    charges = (
        _as_decimal(management_fee, "management_fee")
        + _visit_fees(items)
        + _expenses(items)
    )
    return _as_decimal(total_revenue, "total_revenue") - charges


@dataclass(frozen=True)
class PayoutFormulaComparison:
    """Unified vs legacy payout for the same inputs."""

    unified: Decimal
    legacy: Decimal
    delta: Decimal
    fallback: bool = False

    @property
    def diverges(self) -> bool:
        return self.delta != _ZERO


def compare_payout_formulas(
    line_items: Sequence[LineItem],
    management_fee: Decimal,
    total_revenue: Decimal,
) -> PayoutFormulaComparison:
    """Compare the unified payout with the legacy payout formula."""
    outcome = calculate_settlement_outcome(
        line_items, management_fee, total_revenue, ServiceType.FULL_SERVICE
    )
    unified = outcome.result.payout_to_owner
    legacy = calculate_legacy_payout(line_items, management_fee, total_revenue)
    comparison = PayoutFormulaComparison(
        unified=unified,
        legacy=legacy,
        delta=unified - legacy,
        fallback=not outcome.ok,
    )
    if comparison.diverges:
        logger.info(
            "payout_formula_divergence",
            extra={
                "unified": str(unified),
                "legacy": str(legacy),
                "delta": str(comparison.delta),
            },
        )
    return comparison


# Presentation


def _is_full_service(service_type: ServiceType | str) -> bool:
    return str(getattr(service_type, "value", service_type)) == ServiceType.FULL_SERVICE.value


def settlement_label(service_type: ServiceType | str) -> str:
    """``"Payout to Owner"`` for full-service, ``"Due from Owner"`` otherwise."""
    return PAYOUT_TO_OWNER_LABEL if _is_full_service(service_type) else DUE_FROM_OWNER_LABEL


def settlement_amount(result: CalculationResult, service_type: ServiceType | str) -> Decimal:
    """The populated settlement figure for the service type."""
    return result.payout_to_owner if _is_full_service(service_type) else result.due_from_owner


def format_currency(amount: Decimal | int | float | str) -> str:
    """
    Fixed-locale USD rendering.

    >>> format_currency(Decimal("1234.5"))
    '$1,234.50'
    >>> format_currency(Decimal("-1234.5"))
    '-$1,234.50'
    """
    value = _as_decimal(amount, "amount").quantize(_CENT, rounding=ROUND_HALF_UP)
    sign = "-" if value < 0 else ""
    return f"{sign}${abs(value):,.2f}"


@dataclass(frozen=True)
class SettlementSummary:
    """The single shape every consumer of a settlement renders."""

    label: str
    amount: Decimal
    formatted_amount: str
    error: str | None = None

    def to_dict(self) -> dict[str, str | None]:
        return {
            "label": self.label,
            "amount": str(self.amount),
            "formatted_amount": self.formatted_amount,
            "error": self.error,
        }


def build_settlement_summary(
    result: CalculationResult,
    service_type: ServiceType | str,
) -> SettlementSummary:
    amount = settlement_amount(result, service_type)
    return SettlementSummary(
        label=settlement_label(service_type),
        amount=amount,
        formatted_amount=format_currency(amount),
        error=result.error,
    )
