"""
Tests for the reconciliation validation engine.

Covers:
- Visit-related expense flagged as visit_double_count
- Generic visitor names
- Orphan check placeholder
- Keyword list shared with the calculator
"""

from decimal import Decimal

import pytest

from settlement_engines import heuristics, settlement, validation
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
from settlement_kernel.domain.line_items import ExpenseItem, PassThroughFeeItem, VisitItem
from settlement_kernel.domain.results import Severity


def _expense(description, excluded=False, verified=True, id="e-1"):
    return ExpenseItem(id=id, amount=Decimal("40"), item_id="exp-1",
                       description=description, verified=verified, excluded=excluded)


def _visit(description, id="v-1"):
    return VisitItem(id=id, amount=Decimal("50"), item_id="visit-1",
                     description=description, verified=True)


class TestVisitRelatedExpenses:

    def test_visit_fee_expense_is_error(self):
        issues = validate_reconciliation([_expense("Visit Fee - June")])
        errors = [i for i in issues if i.severity is Severity.ERROR]
        assert len(errors) == 1
        assert errors[0].type == VISIT_DOUBLE_COUNT
        assert errors[0].item_id == "e-1"
        assert errors[0].suggested_action == "exclude this item"

    def test_excluded_expense_not_flagged(self):
        assert detect_visit_related_expenses([_expense("Visit Fee - June", excluded=True)]) == []

    def test_unverified_expense_still_flagged(self):
        issues = detect_visit_related_expenses([_expense("hourly charge", verified=False)])
        assert [i.type for i in issues] == [VISIT_DOUBLE_COUNT]

    def test_ordinary_expense_not_flagged(self):
        assert detect_visit_related_expenses([_expense("Plumbing repair")]) == []

    def test_visits_never_flagged_as_double_count(self):
        assert detect_visit_related_expenses([_visit("Property visit - Staff")]) == []


class TestVisitNames:

    def test_generic_visitor_name(self):
        issues = validate_reconciliation([_visit("Property visit - Staff")])
        warnings = [i for i in issues if i.severity is Severity.WARNING]
        assert len(warnings) == 1
        assert warnings[0].type == GENERIC_VISITOR_NAME

    @pytest.mark.parametrize("description", ["Property visit - unknown", "property visit - STAFF"])
    def test_generic_name_case_insensitive(self, description):
        issues = validate_visit_names([_visit(description)])
        assert [i.type for i in issues] == [GENERIC_VISITOR_NAME]

    @pytest.mark.parametrize(
        "description",
        ["Property visit", "Visit", "", "Property visit - ", "Property visit -   ", "Property visit - \t"],
    )
    def test_missing_name(self, description):
        issues = validate_visit_names([_visit(description)])
        assert [i.type for i in issues] == [MISSING_VISITOR_NAME]
        assert issues[0].severity is Severity.WARNING

    def test_named_visitor_passes(self):
        assert validate_visit_names([_visit("Property visit - Maria Lopez")]) == []


class TestOrphanCheck:

    def test_single_info_issue_when_sources_referenced(self):
        issues = detect_orphaned_items([_visit("Property visit - A"), _expense("Paint", id="e-2")])
        assert len(issues) == 1
        assert issues[0].severity is Severity.INFO
        assert issues[0].type == ORPHAN_CHECK_UNAVAILABLE

    def test_no_issue_for_pass_through_only(self):
        fee = PassThroughFeeItem(id="f", amount=Decimal("75"), fee_type="cleaning_fee")
        assert detect_orphaned_items([fee]) == []

    def test_no_issue_for_empty_snapshot(self):
        assert detect_orphaned_items([]) == []


class TestGrouping:

    def test_group_by_severity(self):
        issues = validate_reconciliation([
            _expense("Visit charge"),
            _visit("Property visit - Staff"),
        ])
        grouped = group_issues_by_severity(issues)
        assert [i.type for i in grouped.errors] == [VISIT_DOUBLE_COUNT]
        assert [i.type for i in grouped.warnings] == [GENERIC_VISITOR_NAME]
        assert [i.type for i in grouped.info] == [ORPHAN_CHECK_UNAVAILABLE]
        assert grouped.has_errors

    def test_empty_grouping(self):
        grouped = group_issues_by_severity([])
        assert not grouped.has_errors
        assert grouped.warnings == () and grouped.info == ()


class TestSharedKeywords:

    def test_calculator_and_validator_use_same_heuristic(self):
        assert settlement.is_visit_related is heuristics.is_visit_related
        assert validation.is_visit_related is heuristics.is_visit_related

    @pytest.mark.parametrize("keyword", heuristics.VISIT_RELATED_KEYWORDS)
    def test_every_keyword_filters_and_flags(self, keyword):
        item = _expense(f"June {keyword.upper()}")
        result = settlement.calculate_settlement([item], Decimal("0"))
        assert result.total_expenses == Decimal("0")
        assert [i.type for i in detect_visit_related_expenses([item])] == [VISIT_DOUBLE_COUNT]
