"""
Tests for SqlReimbursementLinkStore.

Covers:
- create(): persisted fields, idempotency-key collision inside a savepoint
- delete_by_id(): deleted vs missing
- list_by_expense_out_ids() / list_by_expense_in_ids(): filtering, ordering
- sum_*(): every requested id present, zero default
- in-place updates rejected by the immutability listener
- database constraints (positive amount, distinct sides)
"""

import pytest
from sqlalchemy.exc import IntegrityError

from reimbursement_ledger.domain.values import NewReimbursementLink
from reimbursement_ledger.exceptions import LinkImmutableError, UniqueViolationError
from reimbursement_ledger.models.reimbursement_link import (
    IDEMPOTENCY_KEY_CONSTRAINT,
    ReimbursementLinkModel,
)


@pytest.fixture
def pair(make_outflow, make_inflow):
    return make_outflow(10_000), make_inflow(10_000)


class TestCreate:
    def test_create_persists_fields(self, link_store, pair, deterministic_clock):
        out, inbound = pair
        link = link_store.create(NewReimbursementLink(out.id, inbound.id, 3_000, "key-1"))

        assert link.expense_out_id == out.id
        assert link.expense_in_id == inbound.id
        assert link.amount_minor == 3_000
        assert link.idempotency_key == "key-1"
        assert link.created_at == deterministic_clock.now_utc()
        assert link_store.find_by_id(link.id) == link
        assert link_store.find_by_idempotency_key("key-1") == link

    def test_duplicate_key_raises_and_keeps_transaction(self, link_store, pair, session):
        out, inbound = pair
        first = link_store.create(NewReimbursementLink(out.id, inbound.id, 1_000, "dup"))

        with pytest.raises(UniqueViolationError) as exc_info:
            link_store.create(NewReimbursementLink(out.id, inbound.id, 2_000, "dup"))

        assert exc_info.value.constraint == IDEMPOTENCY_KEY_CONSTRAINT
        # The savepoint rolled back only the failed insert.
        assert link_store.find_by_id(first.id) == first
        second = link_store.create(NewReimbursementLink(out.id, inbound.id, 500))
        assert link_store.find_by_id(second.id) is not None

    def test_keyless_links_do_not_collide(self, link_store, pair):
        out, inbound = pair
        link_store.create(NewReimbursementLink(out.id, inbound.id, 100))
        link_store.create(NewReimbursementLink(out.id, inbound.id, 100))
        assert len(link_store.list_by_expense_out_ids([out.id])) == 2


class TestDelete:
    def test_delete_existing(self, link_store, pair):
        out, inbound = pair
        link = link_store.create(NewReimbursementLink(out.id, inbound.id, 100))
        assert link_store.delete_by_id(link.id) is True
        assert link_store.find_by_id(link.id) is None

    def test_delete_missing(self, link_store):
        assert link_store.delete_by_id("missing") is False


class TestQueries:
    def test_lists_filter_by_side_and_order_by_creation(
        self, link_store, make_outflow, make_inflow, deterministic_clock
    ):
        o1, o2 = make_outflow(10_000), make_outflow(10_000)
        i1, i2 = make_inflow(10_000), make_inflow(10_000)

        first = link_store.create(NewReimbursementLink(o1.id, i1.id, 100))
        deterministic_clock.tick()
        second = link_store.create(NewReimbursementLink(o1.id, i2.id, 200))
        deterministic_clock.tick()
        other = link_store.create(NewReimbursementLink(o2.id, i1.id, 300))

        assert [link.id for link in link_store.list_by_expense_out_ids([o1.id])] == [
            first.id,
            second.id,
        ]
        assert [link.id for link in link_store.list_by_expense_in_ids([i1.id])] == [
            first.id,
            other.id,
        ]
        assert link_store.list_by_expense_out_ids([]) == []

    def test_sums_include_every_requested_id(self, link_store, make_outflow, make_inflow):
        o1, o2 = make_outflow(10_000), make_outflow(10_000)
        i1 = make_inflow(10_000)
        link_store.create(NewReimbursementLink(o1.id, i1.id, 100))
        link_store.create(NewReimbursementLink(o1.id, i1.id, 250))

        assert link_store.sum_recovered_by_expense_out_ids([o1.id, o2.id, o1.id]) == {
            o1.id: 350,
            o2.id: 0,
        }
        assert link_store.sum_allocated_by_expense_in_ids([i1.id]) == {i1.id: 350}
        assert link_store.sum_allocated_by_expense_in_ids([]) == {}


class TestIntegrity:
    def test_in_place_update_rejected(self, link_store, pair, session):
        out, inbound = pair
        link = link_store.create(NewReimbursementLink(out.id, inbound.id, 100))

        model = session.get(ReimbursementLinkModel, link.id)
        model.amount_minor = 200
        with pytest.raises(LinkImmutableError):
            session.flush()
        session.rollback()

    def test_amount_must_be_positive(self, link_store, pair, session):
        out, inbound = pair
        with pytest.raises(IntegrityError):
            link_store.create(NewReimbursementLink(out.id, inbound.id, 0))
        session.rollback()

    def test_sides_must_differ(self, link_store, pair, session):
        out, _ = pair
        with pytest.raises(IntegrityError):
            link_store.create(NewReimbursementLink(out.id, out.id, 100))
        session.rollback()
