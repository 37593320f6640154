"""
Tests for the audited force-delete of expenses.

Covers:
- Reason is mandatory and checked before anything else
- One audit entry per affected reconciliation, written before deletion
- All-or-nothing: failures leave expense, line items and trail untouched
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from settlement_kernel.exceptions import ExpenseNotFoundError, MissingDeletionReasonError
from settlement_kernel.models.audit_log import ReconciliationAuditLog
from settlement_kernel.models.expense import Expense
from settlement_kernel.models.reconciliation import ReconciliationLineItem


def _expense_line(expense, description="AC repair - unit 2", amount="30"):
    return {
        "item_type": "expense",
        "item_id": str(expense.id),
        "amount": amount,
        "description": description,
    }


def _audit_count(session) -> int:
    return session.execute(select(func.count()).select_from(ReconciliationAuditLog)).scalar_one()


def _line_count(session, expense) -> int:
    return session.execute(
        select(func.count())
        .select_from(ReconciliationLineItem)
        .where(ReconciliationLineItem.item_id == str(expense.id))
    ).scalar_one()


class TestDeletionPreconditions:

    @pytest.mark.parametrize("reason", [None, "", "   "])
    def test_reason_required(self, session, create_expense, deletion_service, test_actor_id, reason):
        expense = create_expense()
        with pytest.raises(MissingDeletionReasonError) as exc_info:
            deletion_service.force_delete_expense(expense.id, reason, test_actor_id)
        assert exc_info.value.code == "DELETION_REASON_REQUIRED"
        assert session.get(Expense, expense.id) is not None
        assert _audit_count(session) == 0

    def test_unknown_expense(self, deletion_service, test_actor_id):
        with pytest.raises(ExpenseNotFoundError):
            deletion_service.force_delete_expense(uuid4(), "duplicate entry", test_actor_id)


class TestForceDelete:

    def test_each_reconciliation_audited(
        self, session, create_expense, create_reconciliation,
        deletion_service, audit_log_service, test_actor_id,
    ):
        expense = create_expense(amount="30")
        draft = create_reconciliation(items=[_expense_line(expense)])
        approved = create_reconciliation(status="approved", items=[_expense_line(expense)])
        untouched = create_reconciliation(items=[
            {"item_type": "expense", "item_id": "other", "amount": "5", "description": "Bulbs"},
        ])

        result = deletion_service.force_delete_expense(
            expense.id, "  Entered twice by mistake ", test_actor_id
        )

        assert set(result.affected_reconciliation_ids) == {draft.id, approved.id}
        assert result.deleted_line_item_count == 2
        assert len(result.audit_entry_ids) == 2

        for rec in (draft, approved):
            trace = audit_log_service.trace(rec.id)
            assert trace.actions == ("force_delete_expense",)
            entry = trace.entries[0]
            assert entry.item_id == str(expense.id)
            assert entry.notes == "Entered twice by mistake"
            assert entry.previous_values["description"] == "AC repair - unit 2"
            assert Decimal(entry.previous_values["amount"]) == Decimal("30")
            assert entry.new_values == {"deleted": True}
            assert entry.actor_id == test_actor_id
        assert audit_log_service.trace(untouched.id).is_empty

        assert session.get(Expense, expense.id) is None
        assert _line_count(session, expense) == 0
        assert draft.line_items == []
        assert len(untouched.line_items) == 1
        assert audit_log_service.validate_chain()

    def test_unreferenced_expense_deleted_without_entries(
        self, session, create_expense, deletion_service, test_actor_id,
    ):
        expense = create_expense()
        result = deletion_service.force_delete_expense(expense.id, "test data", test_actor_id)

        assert result.affected_reconciliation_ids == ()
        assert result.audit_entry_ids == ()
        assert session.get(Expense, expense.id) is None

    def test_description_falls_back_to_expense(
        self, create_expense, create_reconciliation, deletion_service,
        audit_log_service, test_actor_id,
    ):
        expense = create_expense(purpose="Gutter cleaning", items_detail="Front and back")
        rec = create_reconciliation(items=[_expense_line(expense, description="")])

        deletion_service.force_delete_expense(expense.id, "vendor refund", test_actor_id)

        entry = audit_log_service.trace(rec.id).entries[0]
        assert entry.previous_values["description"] == "Front and back"

    def test_audit_logged_before_delete(
        self, create_expense, create_reconciliation, deletion_service,
        test_actor_id, captured_logs,
    ):
        expense = create_expense()
        create_reconciliation(items=[_expense_line(expense)])

        deletion_service.force_delete_expense(expense.id, "duplicate", test_actor_id)

        messages = [r["message"] for r in captured_logs()]
        assert messages.index("force_delete_audited") < messages.index("expense_force_deleted")
        deleted = [r for r in captured_logs() if r["message"] == "expense_force_deleted"]
        assert deleted[0]["deleted_line_items"] == 1
        assert deleted[0]["actor_id"] == str(test_actor_id)


class TestAllOrNothing:

    def test_audit_failure_rolls_back(
        self, session, create_expense, create_reconciliation,
        deletion_service, audit_log_service, test_actor_id, monkeypatch,
    ):
        expense = create_expense()
        create_reconciliation(items=[_expense_line(expense)])
        create_reconciliation(items=[_expense_line(expense)])

        original = audit_log_service.record_force_delete_expense
        calls = []

        def failing_second_call(*args, **kwargs):
            calls.append(args)
            if len(calls) == 2:
                raise RuntimeError("audit store unavailable")
            return original(*args, **kwargs)

        monkeypatch.setattr(audit_log_service, "record_force_delete_expense", failing_second_call)

        with pytest.raises(RuntimeError):
            deletion_service.force_delete_expense(expense.id, "duplicate", test_actor_id)

        assert session.get(Expense, expense.id) is not None
        assert _line_count(session, expense) == 2
        assert _audit_count(session) == 0

    def test_delete_failure_rolls_back_audit(
        self, session, create_expense, create_reconciliation,
        deletion_service, test_actor_id, monkeypatch,
    ):
        expense = create_expense()
        create_reconciliation(items=[_expense_line(expense)])

        def failing_delete(obj):
            raise RuntimeError("delete refused")

        monkeypatch.setattr(session, "delete", failing_delete)

        with pytest.raises(RuntimeError):
            deletion_service.force_delete_expense(expense.id, "duplicate", test_actor_id)

        monkeypatch.undo()
        assert session.get(Expense, expense.id) is not None
        assert _line_count(session, expense) == 1
        assert _audit_count(session) == 0
