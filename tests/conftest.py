"""
Pytest fixtures for the settlement test suite.

Provides:
- Database sessions with per-test rollback isolation
- Record factories for reconciliations, line items and expenses
- Service fixtures wired to a deterministic clock
- Structured log capture

Environment Variables:
- DATABASE_URL: SQLAlchemy URL.  Defaults to an in-memory SQLite database;
  set a postgresql:// URL to run the same suite (plus the tests marked
  ``postgres``) against PostgreSQL.
"""

import json
import logging
import os
from datetime import date
from decimal import Decimal
from io import StringIO
from typing import Generator
from uuid import UUID, uuid4

import pytest
from sqlalchemy import delete
from sqlalchemy.orm import Session

from settlement_config.schema import PayoutConfig
from settlement_kernel.db.base import Base
from settlement_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from settlement_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from settlement_kernel.domain.clock import DeterministicClock
from settlement_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from settlement_kernel.models.expense import Expense
from settlement_kernel.models.reconciliation import Reconciliation, ReconciliationLineItem
from settlement_kernel.services.audit_log_service import AuditLogService
from settlement_services.expense_deletion_service import ExpenseDeletionService
from settlement_services.payout_service import PayoutService
from settlement_services.reconciliation_service import ReconciliationCreationService
from settlement_services.review_service import ReconciliationReviewService

# Test actor ID for all test operations
TEST_ACTOR_ID = uuid4()

DEFAULT_DATABASE_URL = "sqlite+pysqlite:///:memory:"


def get_database_url() -> str:
    """Get database URL from environment, or use in-memory SQLite."""
    return os.environ.get("DATABASE_URL", DEFAULT_DATABASE_URL)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "postgres: mark test as requiring PostgreSQL"
    )
    config.addinivalue_line(
        "markers", "slow_locks: mark test as potentially waiting for DB locks"
    )


def pytest_collection_modifyitems(config, items):
    """Skip ``postgres`` tests unless DATABASE_URL points at PostgreSQL."""
    if get_database_url().startswith("postgresql"):
        return
    skip_pg = pytest.mark.skip(reason="requires PostgreSQL (set DATABASE_URL)")
    for item in items:
        if "postgres" in item.keywords:
            item.add_marker(skip_pg)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture settlement logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, payout_service):
            payout_service.process_payout(...)
            logs = captured_logs()
            assert any(r["message"] == "payout_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("settlement")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Session-scoped DB infrastructure (engine + tables once per suite)
# =============================================================================


@pytest.fixture(scope="session")
def db_engine():
    """Single engine for the entire test session."""
    eng = init_engine_from_url(
        get_database_url(), echo=False,
        pool_size=10, max_overflow=10, pool_timeout=10,
    )
    yield eng
    reset_engine()


@pytest.fixture(scope="session")
def db_tables(db_engine):
    """Create all tables once per session; listeners stay registered."""
    drop_tables()
    create_tables()
    register_immutability_listeners()
    yield
    unregister_immutability_listeners()
    drop_tables()


def _delete_all_rows(engine):
    """Remove all data with Core DELETEs (bypasses ORM immutability listeners)."""
    with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(delete(table))


@pytest.fixture(scope="function")
def session(db_tables, db_engine) -> Generator[Session, None, None]:
    """Provide a database session for testing.

    Opens a dedicated connection with an outer transaction and a session
    that joins it with ``create_savepoint``.  Service SAVEPOINTs nest
    inside, and the outer rollback at teardown undoes everything.
    """
    conn = db_engine.connect()
    trans = conn.begin()
    sess = Session(bind=conn, join_transaction_mode="create_savepoint", expire_on_commit=False)
    yield sess
    try:
        sess.close()
    finally:
        try:
            trans.rollback()
        finally:
            conn.close()


@pytest.fixture(scope="function")
def committing_session_factory(db_engine, db_tables):
    """Session factory whose sessions really commit; rows are deleted at teardown."""
    created: list[Session] = []
    factory = get_session_factory()

    def _make() -> Session:
        sess = factory()
        created.append(sess)
        return sess

    yield _make

    for sess in created:
        sess.close()
    _delete_all_rows(db_engine)


# =============================================================================
# Common values
# =============================================================================


@pytest.fixture
def test_actor_id() -> UUID:
    """Provide a consistent test actor ID."""
    return TEST_ACTOR_ID


@pytest.fixture
def deterministic_clock():
    """Provide a deterministic clock for testing."""
    return DeterministicClock()


# =============================================================================
# Record factories
# =============================================================================


def add_reconciliation(
    session: Session,
    *,
    service_type: str = "cohosting",
    status: str = "draft",
    management_fee: str = "200",
    total_revenue: str = "3000",
    items: list[dict] | None = None,
) -> Reconciliation:
    """Insert a reconciliation and its line items (in the given order)."""
    reconciliation = Reconciliation(
        service_type=service_type,
        status=status,
        management_fee=Decimal(management_fee),
        total_revenue=Decimal(total_revenue),
    )
    session.add(reconciliation)
    session.flush()

    for number, row in enumerate(items or [], start=1):
        session.add(
            ReconciliationLineItem(
                reconciliation_id=reconciliation.id,
                line_number=number,
                item_type=row["item_type"],
                item_id=row.get("item_id"),
                amount=Decimal(str(row["amount"])),
                description=row.get("description", ""),
                fee_type=row.get("fee_type"),
                verified=row.get("verified", True),
                excluded=row.get("excluded", False),
            )
        )
    session.flush()
    session.refresh(reconciliation)
    return reconciliation


def scenario_items() -> list[dict]:
    """Visit $50, expense $30 "AC repair", cleaning fee $75 -- all verified."""
    return [
        {
            "item_type": "visit",
            "item_id": "visit-1",
            "amount": "50",
            "description": "Property visit - Jordan",
        },
        {
            "item_type": "expense",
            "item_id": "expense-1",
            "amount": "30",
            "description": "AC repair",
        },
        {
            "item_type": "pass_through_fee",
            "item_id": "booking-1_cleaning",
            "amount": "-75",
            "description": "Cleaning fee",
            "fee_type": "cleaning_fee",
        },
    ]


@pytest.fixture
def create_reconciliation(session: Session):
    """Factory fixture: ``create_reconciliation(service_type=..., items=[...])``."""

    def _create(**kwargs) -> Reconciliation:
        return add_reconciliation(session, **kwargs)

    return _create


@pytest.fixture
def create_expense(session: Session):
    """Factory fixture for expense source records."""

    def _create(amount: str = "30", purpose: str = "AC repair",
                items_detail: str | None = None, expense_date: date | None = None,
                exported: bool = False) -> Expense:
        expense = Expense(
            amount=Decimal(amount),
            purpose=purpose,
            items_detail=items_detail,
            expense_date=expense_date,
            exported=exported,
        )
        session.add(expense)
        session.flush()
        return expense

    return _create


# =============================================================================
# Service fixtures
# =============================================================================


@pytest.fixture
def audit_log_service(session: Session, deterministic_clock) -> AuditLogService:
    return AuditLogService(session, deterministic_clock)


@pytest.fixture
def review_service(session, deterministic_clock, audit_log_service):
    return ReconciliationReviewService(session, deterministic_clock, audit_log_service)


@pytest.fixture
def creation_service(session, deterministic_clock, audit_log_service):
    return ReconciliationCreationService(session, deterministic_clock, audit_log_service)


@pytest.fixture
def deletion_service(session, deterministic_clock, audit_log_service):
    return ExpenseDeletionService(session, deterministic_clock, audit_log_service)


@pytest.fixture
def payout_config() -> PayoutConfig:
    return PayoutConfig()


@pytest.fixture
def payout_service(session, payout_config, deterministic_clock, audit_log_service):
    return PayoutService(session, payout_config, deterministic_clock, audit_log_service)
