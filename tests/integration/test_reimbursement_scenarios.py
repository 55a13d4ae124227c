"""
End-to-end reimbursement scenarios against a real (SQLite) database.

Each scenario drives the public ledger API only and checks the stored
state afterwards, including after a fresh session reload.
"""

import pytest
from sqlalchemy.orm import sessionmaker

from reimbursement_ledger.domain.values import ActorChannel, ActorContext, ReimbursementStatus
from reimbursement_ledger.envelope import error_response, ok
from reimbursement_ledger.exceptions import (
    AllocationExceedsOutstandingError,
    ApprovalAlreadyUsedError,
    ApprovalPayloadMismatchError,
)
from reimbursement_ledger.models.audit_event import AuditAction
from reimbursement_ledger.services import UNLINK_ACTION, ApprovalService, AuditorService
from reimbursement_ledger.stores import SqlExpenseStore


class TestSharedDinnerScenario:
    """Paid 100.00, own share 20.00, two friends pay back 30.00 and 50.00."""

    def test_recovery_sequence(self, ledger, make_outflow, make_inflow):
        e1 = make_outflow(10_000, my_share_minor=2_000)
        i1, i2 = make_inflow(3_000), make_inflow(5_000)

        start = ledger.position(e1.id)
        assert (start.recoverable_minor, start.outstanding_minor) == (8_000, 8_000)
        assert start.status is ReimbursementStatus.EXPECTED

        ledger.link(e1.id, i1.id, 3_000)
        after_first = ledger.position(e1.id)
        assert after_first.recovered_minor == 3_000
        assert after_first.outstanding_minor == 5_000
        assert after_first.status is ReimbursementStatus.PARTIAL

        ledger.link(e1.id, i2.id, 5_000)
        after_second = ledger.position(e1.id)
        assert after_second.outstanding_minor == 0
        assert after_second.status is ReimbursementStatus.SETTLED

        i3 = make_inflow(1_000)
        with pytest.raises(AllocationExceedsOutstandingError):
            ledger.link(e1.id, i3.id, 1)

    def test_close_after_settlement_is_noop(self, ledger, make_outflow, make_inflow):
        e1 = make_outflow(10_000, my_share_minor=2_000)
        ledger.link(e1.id, make_inflow(8_000).id, 8_000)

        assert ledger.close(e1.id, close_outstanding_minor=0).status is ReimbursementStatus.SETTLED

    def test_close_without_amount_writes_off_remainder(self, ledger, make_outflow, make_inflow):
        e1 = make_outflow(10_000, my_share_minor=2_000)
        ledger.link(e1.id, make_inflow(3_000).id, 3_000)

        position = ledger.close(e1.id)

        assert position.expense.closed_outstanding_minor == 5_000
        assert position.status is ReimbursementStatus.WRITTEN_OFF


class TestApprovalScenario:
    def test_payload_bound_and_single_use(self, session, deterministic_clock):
        gate = ApprovalService(session, deterministic_clock)
        token = gate.create_approval(UNLINK_ACTION, {"id": "L1"})

        with pytest.raises(ApprovalPayloadMismatchError):
            gate.consume_approval(UNLINK_ACTION, token.operation_id, {"id": "L2"})

        gate.consume_approval(UNLINK_ACTION, token.operation_id, {"id": "L1"})
        with pytest.raises(ApprovalAlreadyUsedError):
            gate.consume_approval(UNLINK_ACTION, token.operation_id, {"id": "L1"})


class TestPersistenceAcrossSessions:
    def test_committed_state_visible_to_new_session(
        self, engine, ledger, make_outflow, make_inflow, deterministic_clock
    ):
        e1 = make_outflow(10_000)
        i1 = make_inflow(10_000)
        actor = ActorContext(actor="ops", channel=ActorChannel.API)
        ledger.link(e1.id, i1.id, 4_000, idempotency_key="bank-tx-1", actor=actor)

        fresh = sessionmaker(bind=engine, expire_on_commit=False)()
        try:
            stored = SqlExpenseStore(fresh, deterministic_clock).find_by_id(e1.id)
            assert stored.reimbursement_status is ReimbursementStatus.PARTIAL
            [event] = AuditorService(fresh, deterministic_clock).list_events(AuditAction.LINK)
            assert event.actor == actor
        finally:
            fresh.close()


class TestWireEnvelope:
    def test_success_and_error_shapes(self, ledger, make_outflow, make_inflow):
        e1, i1 = make_outflow(1_000), make_inflow(5_000)

        body = ok(ledger.link(e1.id, i1.id, 1_000))
        assert body["ok"] is True
        assert body["data"]["expenseOutId"] == e1.id
        assert body["data"]["amountMinor"] == 1_000

        with pytest.raises(AllocationExceedsOutstandingError) as exc_info:
            ledger.link(e1.id, i1.id, 1)
        status, error_body = error_response(exc_info.value)
        assert status == 400
        assert error_body["ok"] is False
        assert error_body["error"]["code"] == "REIMBURSEMENT_ALLOCATION_EXCEEDS_OUTSTANDING"
