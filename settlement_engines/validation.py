"""
Module: settlement_engines.validation
Responsibility:
    Advisory data-quality checks over a reconciliation's line items,
    run before a human approves the settlement figure.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Runs beside the
    settlement calculator over the same snapshot; never feeds it.

Invariants enforced:
    - The visit-related keyword list is the calculator's own
      (settlement_engines.heuristics), so the silent expense filter and
      the ``visit_double_count`` issue cannot drift apart.
    - Issues are data, never exceptions.  ``error`` severity means "fix
      before trusting the number", not "the operation failed".
    - The orphan check does not verify anything.  Source-record
      existence is not visible at this layer, so it reports that once.

Failure modes:
    - None.  Every check returns a (possibly empty) list.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence

from settlement_engines.heuristics import is_visit_related
from settlement_engines.tracer import traced_engine
from settlement_kernel.domain.line_items import ItemType, LineItem
from settlement_kernel.domain.results import IssuesBySeverity, Severity, ValidationIssue
from settlement_kernel.logging_config import get_logger

logger = get_logger("engines.validation")

VISIT_DOUBLE_COUNT = "visit_double_count"
MISSING_VISITOR_NAME = "missing_visitor_name"
GENERIC_VISITOR_NAME = "generic_visitor_name"
ORPHAN_CHECK_UNAVAILABLE = "orphan_check_unavailable"

GENERIC_VISITOR_NAMES = frozenset({"staff", "unknown"})

_VISITOR_NAME_PATTERN = re.compile(r"^\s*property visit\s*-\s*(\S.*?)\s*$", re.IGNORECASE)


def detect_visit_related_expenses(line_items: Iterable[LineItem]) -> list[ValidationIssue]:
    """Expenses that look like visit fees and are not yet excluded."""
    issues: list[ValidationIssue] = []
    for item in line_items:
        if item.item_type is not ItemType.EXPENSE or item.excluded:
            continue
        if not is_visit_related(item.description):
            continue
        issues.append(
            ValidationIssue(
                severity=Severity.ERROR,
                type=VISIT_DOUBLE_COUNT,
                message=(
                    f'Expense "{item.description}" looks like a visit fee and '
                    "may be double-counted with the visit charges"
                ),
                item_id=item.id,
                suggested_action="exclude this item",
            )
        )
    return issues


def validate_visit_names(line_items: Iterable[LineItem]) -> list[ValidationIssue]:
    """Visits must name who went: ``"Property visit - <name>"``."""
    issues: list[ValidationIssue] = []
    for item in line_items:
        if item.item_type is not ItemType.VISIT:
            continue
        match = _VISITOR_NAME_PATTERN.match(item.description or "")
        if match is None:
            issues.append(
                ValidationIssue(
                    severity=Severity.WARNING,
                    type=MISSING_VISITOR_NAME,
                    message=f'Visit "{item.description}" does not name the visitor',
                    item_id=item.id,
                    suggested_action='use "Property visit - <name>"',
                )
            )
        elif match.group(1).lower() in GENERIC_VISITOR_NAMES:
            issues.append(
                ValidationIssue(
                    severity=Severity.WARNING,
                    type=GENERIC_VISITOR_NAME,
                    message=f'Visit is attributed to "{match.group(1)}"',
                    item_id=item.id,
                    suggested_action="replace with the specific staff member's name",
                )
            )
    return issues


def detect_orphaned_items(line_items: Iterable[LineItem]) -> list[ValidationIssue]:
    """
    Placeholder for source-record existence checks.

    Emits a single ``info`` issue when any visit or expense item is
    present, stating the check could not run.  Nothing is inferred.
    """
    if not any(i.item_type in (ItemType.VISIT, ItemType.EXPENSE) for i in line_items):
        return []
    return [
        ValidationIssue(
            severity=Severity.INFO,
            type=ORPHAN_CHECK_UNAVAILABLE,
            message=(
                "Orphaned item check not run: source record identifiers are "
                "not available to validation"
            ),
        )
    ]


@traced_engine("validation", "1.0", fingerprint_fields=("line_items",))
def validate_reconciliation(line_items: Sequence[LineItem]) -> list[ValidationIssue]:
    """Run every check and concatenate the issues (errors first by check order)."""
    items = tuple(line_items)
    issues = [
        *detect_visit_related_expenses(items),
        *validate_visit_names(items),
        *detect_orphaned_items(items),
    ]
    if issues:
        logger.info(
            "validation_issues_found",
            extra={
                "issue_count": len(issues),
                "issue_types": sorted({i.type for i in issues}),
            },
        )
    return issues


def group_issues_by_severity(issues: Iterable[ValidationIssue]) -> IssuesBySeverity:
    issues = tuple(issues)
    return IssuesBySeverity(
        errors=tuple(i for i in issues if i.severity is Severity.ERROR),
        warnings=tuple(i for i in issues if i.severity is Severity.WARNING),
        info=tuple(i for i in issues if i.severity is Severity.INFO),
    )
