"""
Tests for ReimbursementLedger.link / unlink / links_for_expense.

Covers:
- link(): status progression, audit record, input normalisation
- link(): idempotent replay and key conflict
- link(): every rejection, with nothing written on failure
- unlink(): approval gate, status recomputation, rollback on failure
- unexpected errors surface as InternalLedgerError and roll back
- auto_commit=False leaves the transaction to the caller
"""

import pytest

from reimbursement_ledger.domain.values import (
    ActorChannel,
    ActorContext,
    ExpenseKind,
    ReimbursementStatus,
)
from reimbursement_ledger.exceptions import (
    AllocationExceedsInboundAvailableError,
    AllocationExceedsOutstandingError,
    ApprovalAlreadyUsedError,
    ApprovalPayloadMismatchError,
    CurrencyMismatchError,
    ExpenseNotFoundError,
    IdempotencyKeyConflictError,
    InternalLedgerError,
    InvalidLinkTargetError,
    NotReimbursableError,
    ReimbursementLinkNotFoundError,
    ValidationError,
)
from reimbursement_ledger.models.audit_event import AuditAction
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


class TestLink:
    def test_link_moves_status_to_partial_then_settled(
        self, ledger, make_outflow, make_inflow, expense_store
    ):
        out = make_outflow(10_000, my_share_minor=2_000)
        i1, i2 = make_inflow(3_000), make_inflow(5_000)

        ledger.link(out.id, i1.id, 3_000)
        assert expense_store.find_by_id(out.id).reimbursement_status is ReimbursementStatus.PARTIAL
        assert ledger.position(out.id).outstanding_minor == 5_000

        ledger.link(out.id, i2.id, 5_000)
        assert expense_store.find_by_id(out.id).reimbursement_status is ReimbursementStatus.SETTLED

    def test_link_is_committed_and_audited(
        self, ledger, make_outflow, make_inflow, session, auditor_service
    ):
        out, inbound = make_outflow(), make_inflow()
        actor = ActorContext(actor="alice", channel=ActorChannel.API)

        link = ledger.link(out.id, inbound.id, 2_500, idempotency_key="  k-1 ", actor=actor)
        session.rollback()

        assert ledger.links_for_expense(out.id) == [link]
        assert link.idempotency_key == "k-1"
        events = auditor_service.list_events(AuditAction.LINK)
        assert len(events) == 1
        assert events[0].actor == actor
        assert events[0].payload["link_id"] == link.id
        assert events[0].payload["amount_minor"] == 2_500

    def test_blank_key_stored_as_none(self, ledger, make_outflow, make_inflow):
        out, inbound = make_outflow(), make_inflow()
        link = ledger.link(out.id, inbound.id, 100, idempotency_key="   ")
        assert link.idempotency_key is None

    def test_links_for_expense_includes_both_sides(self, ledger, make_outflow, make_inflow):
        out, inbound = make_outflow(), make_inflow()
        link = ledger.link(out.id, inbound.id, 100)
        assert ledger.links_for_expense(inbound.id) == [link]
        with pytest.raises(ExpenseNotFoundError):
            ledger.links_for_expense("missing")


class TestIdempotency:
    def test_replay_returns_same_link(self, ledger, make_outflow, make_inflow, auditor_service):
        out, inbound = make_outflow(), make_inflow()

        first = ledger.link(out.id, inbound.id, 1_000, idempotency_key="k")
        second = ledger.link(out.id, inbound.id, 1_000, idempotency_key="k")

        assert second.id == first.id
        assert len(ledger.links_for_expense(out.id)) == 1
        assert len(auditor_service.list_events(AuditAction.LINK)) == 1

    def test_replay_succeeds_even_when_settled(self, ledger, make_outflow, make_inflow):
        out, inbound = make_outflow(1_000), make_inflow(1_000)
        first = ledger.link(out.id, inbound.id, 1_000, idempotency_key="k")
        assert ledger.link(out.id, inbound.id, 1_000, idempotency_key="k").id == first.id

    @pytest.mark.parametrize("field", ["amount", "inbound"])
    def test_key_reuse_with_different_payload(self, ledger, make_outflow, make_inflow, field):
        out, i1, i2 = make_outflow(), make_inflow(), make_inflow()
        ledger.link(out.id, i1.id, 1_000, idempotency_key="k")

        with pytest.raises(IdempotencyKeyConflictError):
            if field == "amount":
                ledger.link(out.id, i1.id, 2_000, idempotency_key="k")
            else:
                ledger.link(out.id, i2.id, 1_000, idempotency_key="k")


class TestLinkRejections:
    @pytest.mark.parametrize("amount", [0, -5, True, 1.5])
    def test_amount_must_be_positive_integer(self, ledger, make_outflow, make_inflow, amount):
        out, inbound = make_outflow(), make_inflow()
        with pytest.raises(ValidationError):
            ledger.link(out.id, inbound.id, amount)

    def test_missing_expenses(self, ledger, make_outflow, make_inflow):
        out, inbound = make_outflow(), make_inflow()
        with pytest.raises(ExpenseNotFoundError):
            ledger.link("missing", inbound.id, 100)
        with pytest.raises(ExpenseNotFoundError) as exc_info:
            ledger.link(out.id, "missing", 100)
        assert exc_info.value.expense_id == "missing"

    def test_self_link(self, ledger, make_outflow):
        out = make_outflow()
        with pytest.raises(InvalidLinkTargetError):
            ledger.link(out.id, out.id, 100)

    def test_outbound_must_be_expense(self, ledger, make_inflow):
        a, b = make_inflow(), make_inflow()
        with pytest.raises(InvalidLinkTargetError):
            ledger.link(a.id, b.id, 100)

    def test_outbound_must_be_reimbursable(self, ledger, make_expense, make_inflow):
        plain, inbound = make_expense(), make_inflow()
        with pytest.raises(NotReimbursableError):
            ledger.link(plain.id, inbound.id, 100)

    def test_internal_transfer_not_inbound(self, ledger, make_outflow, make_expense):
        out = make_outflow()
        transfer = make_expense(kind=ExpenseKind.TRANSFER_INTERNAL)
        with pytest.raises(InvalidLinkTargetError):
            ledger.link(out.id, transfer.id, 100)

    def test_external_transfer_is_inbound(self, ledger, make_outflow, make_expense):
        out = make_outflow()
        transfer = make_expense(kind=ExpenseKind.TRANSFER_EXTERNAL)
        assert ledger.link(out.id, transfer.id, 100).expense_in_id == transfer.id

    def test_currency_mismatch(self, ledger, make_outflow, make_inflow):
        out, inbound = make_outflow(), make_inflow(currency="EUR")
        with pytest.raises(CurrencyMismatchError):
            ledger.link(out.id, inbound.id, 100)

    def test_exceeds_outstanding(self, ledger, make_outflow, make_inflow):
        out, inbound = make_outflow(1_000, my_share_minor=400), make_inflow(5_000)
        with pytest.raises(AllocationExceedsOutstandingError) as exc_info:
            ledger.link(out.id, inbound.id, 601)
        assert exc_info.value.outstanding_minor == 600

    def test_exceeds_inbound_available(self, ledger, make_outflow, make_inflow):
        o1, o2, inbound = make_outflow(), make_outflow(), make_inflow(1_000)
        ledger.link(o1.id, inbound.id, 700)
        with pytest.raises(AllocationExceedsInboundAvailableError) as exc_info:
            ledger.link(o2.id, inbound.id, 301)
        assert exc_info.value.inbound_available_minor == 300

    def test_failure_writes_nothing(
        self, ledger, make_outflow, make_inflow, auditor_service, expense_store
    ):
        out, inbound = make_outflow(1_000), make_inflow(5_000)
        with pytest.raises(AllocationExceedsOutstandingError):
            ledger.link(out.id, inbound.id, 2_000)

        assert ledger.links_for_expense(out.id) == []
        assert auditor_service.list_events() == []
        assert expense_store.find_by_id(out.id).reimbursement_status is ReimbursementStatus.EXPECTED

    def test_failure_is_logged(self, ledger, make_outflow, make_inflow, captured_logs):
        out, inbound = make_outflow(1_000), make_inflow()
        with pytest.raises(AllocationExceedsOutstandingError):
            ledger.link(out.id, inbound.id, 2_000)

        failed = [r for r in captured_logs() if r["message"] == "reimbursement_link_failed"]
        assert failed[0]["error_code"] == "REIMBURSEMENT_ALLOCATION_EXCEEDS_OUTSTANDING"
        assert failed[0]["expense_id"] == out.id


class TestUnlink:
    def test_unlink_with_approval(
        self, ledger, make_outflow, make_inflow, expense_store, auditor_service
    ):
        out, inbound = make_outflow(1_000), make_inflow(1_000)
        link = ledger.link(out.id, inbound.id, 1_000)
        assert expense_store.find_by_id(out.id).reimbursement_status is ReimbursementStatus.SETTLED

        token = ledger.request_unlink_approval(link.id)
        ledger.unlink(link.id, token.operation_id)

        assert ledger.links_for_expense(out.id) == []
        assert expense_store.find_by_id(out.id).reimbursement_status is ReimbursementStatus.EXPECTED
        assert [e.payload for e in auditor_service.list_events(AuditAction.UNLINK)] == [
            {"id": link.id}
        ]

    def test_token_is_bound_to_link(self, ledger, make_outflow, make_inflow):
        out, inbound = make_outflow(), make_inflow()
        l1 = ledger.link(out.id, inbound.id, 100)
        l2 = ledger.link(out.id, inbound.id, 200)
        token = ledger.request_unlink_approval(l1.id)

        with pytest.raises(ApprovalPayloadMismatchError):
            ledger.unlink(l2.id, token.operation_id)
        assert len(ledger.links_for_expense(out.id)) == 2

    def test_token_single_use(self, ledger, make_outflow, make_inflow):
        out, inbound = make_outflow(), make_inflow()
        link = ledger.link(out.id, inbound.id, 100)
        token = ledger.request_unlink_approval(link.id)
        ledger.unlink(link.id, token.operation_id)

        with pytest.raises(ApprovalAlreadyUsedError):
            ledger.unlink(link.id, token.operation_id)

    def test_missing_link_keeps_token_unused(self, ledger, make_outflow, make_inflow):
        token = ledger.request_unlink_approval("missing")
        with pytest.raises(ReimbursementLinkNotFoundError):
            ledger.unlink("missing", token.operation_id)
        # The consumption rolled back with the failed operation.
        with pytest.raises(ReimbursementLinkNotFoundError):
            ledger.unlink("missing", token.operation_id)


class _FailingLinkStore(SqlReimbursementLinkStore):
    def create(self, link):
        raise RuntimeError("disk full")


def _ledger_with(session, clock, links, auto_commit=True):
    return ReimbursementLedger(
        unit_of_work=session,
        links=links,
        rules=SqlCategoryRuleStore(session, clock),
        approvals=ApprovalService(session, clock),
        audit=AuditorService(session, clock),
        expenses=SqlExpenseStore(session, clock),
        categories=SqlCategoryStore(session, clock),
        clock=clock,
        auto_commit=auto_commit,
    )


class TestTransactionBoundary:
    def test_unexpected_error_wrapped(
        self, session, deterministic_clock, make_outflow, make_inflow, captured_logs
    ):
        out, inbound = make_outflow(), make_inflow()
        ledger = _ledger_with(
            session, deterministic_clock, _FailingLinkStore(session, deterministic_clock)
        )

        with pytest.raises(InternalLedgerError) as exc_info:
            ledger.link(out.id, inbound.id, 100)

        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert exc_info.value.code == "INTERNAL_ERROR"
        failed = [r for r in captured_logs() if r["message"] == "reimbursement_link_failed"]
        assert failed[0]["exc_type"] == "RuntimeError"

    def test_caller_owns_commit_when_auto_commit_disabled(
        self, session, deterministic_clock, make_outflow, make_inflow, link_store
    ):
        out, inbound = make_outflow(), make_inflow()
        ledger = _ledger_with(
            session,
            deterministic_clock,
            SqlReimbursementLinkStore(session, deterministic_clock),
            auto_commit=False,
        )

        ledger.link(out.id, inbound.id, 100)
        session.rollback()

        assert link_store.list_by_expense_out_ids([out.id]) == []

    def test_lifecycle_logs(self, ledger, make_outflow, make_inflow, captured_logs):
        out, inbound = make_outflow(), make_inflow()
        link = ledger.link(out.id, inbound.id, 100, actor=ActorContext("carol", ActorChannel.CLI))

        records = captured_logs()
        started = next(r for r in records if r["message"] == "reimbursement_link_started")
        completed = next(r for r in records if r["message"] == "reimbursement_link_completed")
        assert started["actor"] == "carol"
        assert started["channel"] == "cli"
        assert completed["link_id"] == link.id
        assert "duration_ms" in completed
        assert completed["correlation_id"] == started["correlation_id"]
