"""
Payout idempotency under concurrent requests.

Both payout requests may pass the read-side guards; only the conditional
UPDATE decides the winner.  The loser must raise PayoutAlreadyCompletedError
and must not write an audit entry or overwrite the winner's reference.

The first test forces the interleaving inside one session (runs on any
backend).  The threaded test needs row locks and only runs on PostgreSQL.
"""

from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal
from threading import Barrier

import pytest
from sqlalchemy import func, select, update

from settlement_kernel.exceptions import PayoutAlreadyCompletedError
from settlement_kernel.models.audit_log import ReconciliationAuditLog
from settlement_kernel.models.reconciliation import Reconciliation
from settlement_services.payout_service import PayoutService
from tests.conftest import add_reconciliation, scenario_items


class TestConditionalUpdate:

    def test_lost_race_is_rejected(
        self, session, create_reconciliation, payout_service, audit_log_service,
        test_actor_id, monkeypatch, captured_logs,
    ):
        rec = create_reconciliation(
            service_type="full_service", status="approved", items=scenario_items()
        )
        original = payout_service._compute_amount

        def compute_after_competitor(snapshot, items):
            # A competing request commits its payout after our guards passed.
            session.execute(
                update(Reconciliation)
                .where(Reconciliation.id == rec.id)
                .values(payout_status="completed", payout_reference="PAYOUT-WINNER")
                .execution_options(synchronize_session=False)
            )
            return original(snapshot, items)

        monkeypatch.setattr(payout_service, "_compute_amount", compute_after_competitor)

        with pytest.raises(PayoutAlreadyCompletedError):
            payout_service.process_payout(rec.id, test_actor_id)

        session.expire_all()
        assert rec.payout_reference == "PAYOUT-WINNER"
        assert rec.payout_to_owner is None
        assert audit_log_service.trace(rec.id).is_empty
        assert any(r["message"] == "payout_lost_race" for r in captured_logs())


@pytest.mark.postgres
@pytest.mark.slow_locks
class TestConcurrentPayout:

    def test_exactly_one_payout_wins(
        self, committing_session_factory, payout_config, test_actor_id, monkeypatch,
    ):
        setup = committing_session_factory()
        rec = add_reconciliation(
            setup, service_type="full_service", status="approved", items=scenario_items()
        )
        setup.commit()
        reconciliation_id = rec.id

        barrier = Barrier(2)
        original = PayoutService._compute_amount

        def synchronized_compute(self, snapshot, items):
            barrier.wait(timeout=10)
            return original(self, snapshot, items)

        monkeypatch.setattr(PayoutService, "_compute_amount", synchronized_compute)

        def attempt(reference):
            sess = committing_session_factory()
            service = PayoutService(sess, payout_config)
            try:
                result = service.process_payout(
                    reconciliation_id, test_actor_id, payout_reference=reference
                )
                sess.commit()
                return result
            except PayoutAlreadyCompletedError as exc:
                sess.rollback()
                return exc

        with ThreadPoolExecutor(max_workers=2) as pool:
            outcomes = list(pool.map(attempt, ["PAYOUT-A", "PAYOUT-B"]))

        winners = [o for o in outcomes if not isinstance(o, Exception)]
        losers = [o for o in outcomes if isinstance(o, PayoutAlreadyCompletedError)]
        assert len(winners) == 1
        assert len(losers) == 1

        check = committing_session_factory()
        stored = check.get(Reconciliation, reconciliation_id)
        assert stored.payout_status == "completed"
        assert stored.payout_reference == winners[0].payout_reference
        assert stored.payout_to_owner == Decimal("2645")
        payout_entries = check.execute(
            select(func.count())
            .select_from(ReconciliationAuditLog)
            .where(ReconciliationAuditLog.action == "payout_recorded")
        ).scalar_one()
        assert payout_entries == 1
