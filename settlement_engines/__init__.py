"""
Settlement engines -- pure calculation layer.

Everything here is a function of its arguments: no sessions, no clocks,
no configuration reads.  Services snapshot the data and call in.
"""

from settlement_engines.heuristics import (
    VISIT_RELATED_KEYWORDS,
    is_visit_related,
    matches_cleaning_fee,
    matches_pet_fee,
)
from settlement_engines.settlement import (
    DUE_FROM_OWNER_LABEL,
    FALLBACK_ERROR_MESSAGE,
    PAYOUT_TO_OWNER_LABEL,
    PayoutFormulaComparison,
    SettlementSummary,
    build_settlement_summary,
    calculate_legacy_payout,
    calculate_settlement,
    calculate_settlement_outcome,
    compare_payout_formulas,
    format_currency,
    settlement_amount,
    settlement_label,
    total_charges,
)
from settlement_engines.validation import (
    GENERIC_VISITOR_NAME,
    MISSING_VISITOR_NAME,
    ORPHAN_CHECK_UNAVAILABLE,
    VISIT_DOUBLE_COUNT,
    detect_orphaned_items,
    detect_visit_related_expenses,
    group_issues_by_severity,
    validate_reconciliation,
    validate_visit_names,
)

__all__ = [
    "DUE_FROM_OWNER_LABEL",
    "FALLBACK_ERROR_MESSAGE",
    "GENERIC_VISITOR_NAME",
    "MISSING_VISITOR_NAME",
    "ORPHAN_CHECK_UNAVAILABLE",
    "PAYOUT_TO_OWNER_LABEL",
    "PayoutFormulaComparison",
    "SettlementSummary",
    "VISIT_DOUBLE_COUNT",
    "VISIT_RELATED_KEYWORDS",
    "build_settlement_summary",
    "calculate_legacy_payout",
    "calculate_settlement",
    "calculate_settlement_outcome",
    "compare_payout_formulas",
    "detect_orphaned_items",
    "detect_visit_related_expenses",
    "format_currency",
    "group_issues_by_severity",
    "is_visit_related",
    "matches_cleaning_fee",
    "matches_pet_fee",
    "settlement_amount",
    "settlement_label",
    "total_charges",
    "validate_reconciliation",
    "validate_visit_names",
]
