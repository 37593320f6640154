"""
Line items -- closed tagged union of reconciliation entries.

Responsibility:
    Defines the three kinds of financial entry that can be attached to a
    monthly reconciliation (property visits, expenses, pass-through fees)
    as frozen dataclasses, plus the single inclusion gate and the
    de-duplication key shared by every consumer.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Imported by engines (calculation, validation), selectors (conversion
    from storage rows) and services.

Invariants enforced:
    - A line item counts toward settlement iff ``verified and not excluded``.
      ``is_approved()`` is the only place that predicate is written down.
    - Only ``PassThroughFeeItem`` carries ``fee_type``; the other variants
      have no such attribute.
    - Amounts are ``Decimal``.  ``line_item_from_record`` converts through
      ``str()`` so float storage values never leak binary rounding noise.

Failure modes:
    - ``line_item_from_record`` raises ``ValueError`` for an unknown
      ``item_type`` or an amount that is not a number.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, ClassVar, Union


class ItemType(str, Enum):
    """Discriminator for the line item union."""

    VISIT = "visit"
    EXPENSE = "expense"
    PASS_THROUGH_FEE = "pass_through_fee"


class FeeType(str, Enum):
    """Known pass-through fee kinds. Storage may carry others."""

    CLEANING_FEE = "cleaning_fee"
    PET_FEE = "pet_fee"
    OTHER = "other"


@dataclass(frozen=True)
class _LineItemBase:
    """Fields shared by every line item variant."""

    id: str
    amount: Decimal
    item_id: str | None = None
    description: str = ""
    verified: bool = False
    excluded: bool = False

    item_type: ClassVar[ItemType]


@dataclass(frozen=True)
class VisitItem(_LineItemBase):
    """A billable property visit."""

    item_type: ClassVar[ItemType] = ItemType.VISIT


@dataclass(frozen=True)
class ExpenseItem(_LineItemBase):
    """An expense incurred on the owner's behalf."""

    item_type: ClassVar[ItemType] = ItemType.EXPENSE


@dataclass(frozen=True)
class PassThroughFeeItem(_LineItemBase):
    """A guest-paid fee (cleaning, pet, ...) remitted to a third party."""

    fee_type: str | None = None

    item_type: ClassVar[ItemType] = ItemType.PASS_THROUGH_FEE


LineItem = Union[VisitItem, ExpenseItem, PassThroughFeeItem]

_VARIANTS: dict[ItemType, type] = {
    ItemType.VISIT: VisitItem,
    ItemType.EXPENSE: ExpenseItem,
    ItemType.PASS_THROUGH_FEE: PassThroughFeeItem,
}


def is_approved(item: LineItem) -> bool:
    """The single inclusion gate: reviewed as verified and not excluded."""
    return item.verified is True and item.excluded is False


def dedup_key(item: LineItem) -> str | None:
    """Composite ``item_type:item_id`` key, or None when no source is referenced."""
    if not item.item_id:
        return None
    return f"{item.item_type.value}:{item.item_id}"


def _to_decimal(value: Any, field_name: str) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool) or value is None:
        raise ValueError(f"{field_name} must be a number, got {value!r}")
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"{field_name} must be a number, got {value!r}") from exc


def line_item_from_record(record: Mapping[str, Any]) -> LineItem:
    """Build the matching union variant from a storage record.

    Args:
        record: Mapping with ``id``, ``item_type``, ``amount`` and optionally
            ``item_id``, ``description``, ``verified``, ``excluded``,
            ``fee_type``.

    Returns:
        A ``VisitItem``, ``ExpenseItem`` or ``PassThroughFeeItem``.

    Raises:
        ValueError: Unknown ``item_type`` or non-numeric ``amount``.
    """
    try:
        item_type = ItemType(record["item_type"])
    except ValueError as exc:
        raise ValueError(f"Unknown line item type: {record['item_type']!r}") from exc

    item_id = record.get("item_id")
    fields: dict[str, Any] = {
        "id": str(record["id"]),
        "amount": _to_decimal(record.get("amount"), "amount"),
        "item_id": str(item_id) if item_id not in (None, "") else None,
        "description": record.get("description") or "",
        "verified": bool(record.get("verified", False)),
        "excluded": bool(record.get("excluded", False)),
    }
    if item_type is ItemType.PASS_THROUGH_FEE:
        fields["fee_type"] = record.get("fee_type")
    return _VARIANTS[item_type](**fields)
