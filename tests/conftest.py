"""
Pytest fixtures for the reimbursement ledger test suite.

Provides:
- A fresh in-memory SQLite database per test (tables created from the models)
- A session, deterministic clock and ledger wired to it
- Seeded category and expense factories
- Structured log capture
"""

import json
import logging
from io import StringIO
from typing import Generator

import pytest
from sqlalchemy.orm import Session, sessionmaker

from reimbursement_ledger.config import LedgerSettings
from reimbursement_ledger.db import build_engine, create_tables
from reimbursement_ledger.db.base import new_id
from reimbursement_ledger.domain.clock import DeterministicClock
from reimbursement_ledger.domain.values import (
    CategoryKind,
    CategorySnapshot,
    CounterpartyType,
    ExpenseKind,
    ExpenseSnapshot,
    Money,
    ReimbursementMode,
    ReimbursementStatus,
)
from reimbursement_ledger.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from reimbursement_ledger.services import (
    ApprovalService,
    AuditorService,
    ReimbursementLedger,
)
from reimbursement_ledger.stores import (
    SqlCategoryRuleStore,
    SqlCategoryStore,
    SqlExpenseStore,
    SqlReimbursementLinkStore,
)

DEFAULT_OCCURRED_AT = "2025-01-10T12:00:00.000Z"


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
    Capture reimbursement_ledger logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, ledger):
            ledger.auto_match()
            logs = captured_logs()
            assert any(r["message"] == "reimbursement_auto_match_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("reimbursement_ledger")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def engine():
    """In-memory SQLite engine with every ledger table created."""
    eng = build_engine("sqlite://")
    create_tables(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session(engine) -> Generator[Session, None, None]:
    factory = sessionmaker(bind=engine, expire_on_commit=False)
    sess = factory()
    yield sess
    sess.rollback()
    sess.close()


@pytest.fixture
def deterministic_clock() -> DeterministicClock:
    return DeterministicClock()


@pytest.fixture
def test_settings() -> LedgerSettings:
    return LedgerSettings()


# =============================================================================
# Stores and services
# =============================================================================


@pytest.fixture
def expense_store(session, deterministic_clock) -> SqlExpenseStore:
    return SqlExpenseStore(session, deterministic_clock)


@pytest.fixture
def category_store(session, deterministic_clock) -> SqlCategoryStore:
    return SqlCategoryStore(session, deterministic_clock)


@pytest.fixture
def link_store(session, deterministic_clock) -> SqlReimbursementLinkStore:
    return SqlReimbursementLinkStore(session, deterministic_clock)


@pytest.fixture
def rule_store(session, deterministic_clock) -> SqlCategoryRuleStore:
    return SqlCategoryRuleStore(session, deterministic_clock)


@pytest.fixture
def approval_service(session, deterministic_clock) -> ApprovalService:
    return ApprovalService(session, deterministic_clock)


@pytest.fixture
def auditor_service(session, deterministic_clock) -> AuditorService:
    return AuditorService(session, deterministic_clock)


@pytest.fixture
def ledger(session, deterministic_clock, test_settings) -> ReimbursementLedger:
    return ReimbursementLedger.from_session(
        session, settings=test_settings, clock=deterministic_clock
    )


# =============================================================================
# Seed data factories
# =============================================================================


@pytest.fixture
def make_category(session, category_store):
    """
    Factory for committed categories.

    Usage::

        food = make_category("Food", kind=CategoryKind.EXPENSE)
    """

    def _make(
        name: str = "Category",
        kind: CategoryKind = CategoryKind.EXPENSE,
        reimbursement_mode: ReimbursementMode = ReimbursementMode.NONE,
        default_counterparty_type: CounterpartyType | None = None,
        default_recovery_window_days: int | None = None,
    ) -> CategorySnapshot:
        category = category_store.add(
            CategorySnapshot(
                id=new_id(),
                name=name,
                kind=kind,
                reimbursement_mode=reimbursement_mode,
                default_counterparty_type=default_counterparty_type,
                default_recovery_window_days=default_recovery_window_days,
            )
        )
        session.commit()
        return category

    return _make


@pytest.fixture
def expense_category(make_category) -> CategorySnapshot:
    return make_category(
        "Dining",
        kind=CategoryKind.EXPENSE,
        reimbursement_mode=ReimbursementMode.OPTIONAL,
    )


@pytest.fixture
def income_category(make_category) -> CategorySnapshot:
    return make_category("Repayments", kind=CategoryKind.INCOME)


@pytest.fixture
def make_expense(session, expense_store, expense_category, income_category):
    """
    Factory for committed expense rows.

    Outflows default to the expense category, everything else to the
    income category.  Pass ``status`` or ``my_share_minor`` to make an
    outflow reimbursable.
    """

    def _make(
        amount_minor: int = 10_000,
        kind: ExpenseKind = ExpenseKind.EXPENSE,
        *,
        currency: str = "GBP",
        category_id: str | None = None,
        occurred_at: str = DEFAULT_OCCURRED_AT,
        status: ReimbursementStatus = ReimbursementStatus.NONE,
        my_share_minor: int | None = None,
        closed_outstanding_minor: int | None = None,
        expense_id: str | None = None,
    ) -> ExpenseSnapshot:
        if category_id is None:
            category_id = (
                expense_category.id if kind is ExpenseKind.EXPENSE else income_category.id
            )
        expense = expense_store.add(
            ExpenseSnapshot(
                id=expense_id or new_id(),
                kind=kind,
                money=Money(amount_minor=amount_minor, currency=currency),
                category_id=category_id,
                occurred_at=occurred_at,
                reimbursement_status=status,
                my_share_minor=my_share_minor,
                closed_outstanding_minor=closed_outstanding_minor,
            )
        )
        session.commit()
        return expense

    return _make


@pytest.fixture
def make_outflow(make_expense):
    """Reimbursable outflow (status ``expected``)."""

    def _make(amount_minor: int = 10_000, **kwargs) -> ExpenseSnapshot:
        kwargs.setdefault("status", ReimbursementStatus.EXPECTED)
        return make_expense(amount_minor, ExpenseKind.EXPENSE, **kwargs)

    return _make


@pytest.fixture
def make_inflow(make_expense):
    """Income row usable as an inbound link target."""

    def _make(amount_minor: int = 10_000, **kwargs) -> ExpenseSnapshot:
        return make_expense(amount_minor, ExpenseKind.INCOME, **kwargs)

    return _make
