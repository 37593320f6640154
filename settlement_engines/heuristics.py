"""
Description heuristics shared by the settlement calculator and the
validation engine.

Both consumers import the keyword list from here so the calculator's
silent expense filter and the reviewer-facing ``visit_double_count``
check can never disagree about what a visit-related expense is.
"""

from __future__ import annotations

from settlement_kernel.domain.line_items import FeeType, LineItem

VISIT_RELATED_KEYWORDS: tuple[str, ...] = (
    "visit fee",
    "visit charge",
    "hourly charge",
    "property visit",
)

CLEANING_KEYWORD = "cleaning"
PET_KEYWORD = "pet"


def _lower(description: str | None) -> str:
    return (description or "").lower()


def is_visit_related(description: str | None) -> bool:
    """True if the description contains any visit-related keyword (case-insensitive)."""
    text = _lower(description)
    return any(keyword in text for keyword in VISIT_RELATED_KEYWORDS)


def matches_cleaning_fee(item: LineItem) -> bool:
    """Cleaning bucket: ``fee_type == cleaning_fee`` or "cleaning" in the description."""
    fee_type = getattr(item, "fee_type", None)
    return fee_type == FeeType.CLEANING_FEE.value or CLEANING_KEYWORD in _lower(item.description)


def matches_pet_fee(item: LineItem) -> bool:
    """Pet bucket: ``fee_type == pet_fee`` or "pet" in the description.

    Not exclusive with the cleaning bucket; an item matching both is
    counted in both.
    """
    fee_type = getattr(item, "fee_type", None)
    return fee_type == FeeType.PET_FEE.value or PET_KEYWORD in _lower(item.description)
