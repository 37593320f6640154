"""Read-only query selectors (the LineItem Store boundary)."""

from settlement_kernel.selectors.base import BaseSelector
from settlement_kernel.selectors.line_item_selector import LineItemSelector
from settlement_kernel.selectors.reconciliation_selector import ReconciliationSelector

__all__ = [
    "BaseSelector",
    "LineItemSelector",
    "ReconciliationSelector",
]
