"""
Tests for category rule management through ReimbursementLedger.
"""

import pytest

from reimbursement_ledger.domain.values import CategoryKind
from reimbursement_ledger.exceptions import (
    ApprovalActionMismatchError,
    CategoryNotFoundError,
    CategoryRuleNotFoundError,
    InvalidRuleExpenseCategoryError,
    InvalidRuleInboundCategoryError,
    ValidationError,
)
from reimbursement_ledger.models.audit_event import AuditAction


@pytest.fixture
def groceries(make_category):
    return make_category("Groceries", CategoryKind.EXPENSE)


@pytest.fixture
def salary(make_category):
    return make_category("Salary", CategoryKind.INCOME)


class TestCreateCategoryRule:
    def test_create_then_repeat_returns_same_rule(self, ledger, groceries, salary):
        first = ledger.create_category_rule(groceries.id, salary.id, enabled=True)
        second = ledger.create_category_rule(groceries.id, salary.id, enabled=True)

        assert second == first
        assert len(ledger.list_category_rules()) == 1

    def test_toggle_updates_in_place(self, ledger, groceries, salary, deterministic_clock):
        first = ledger.create_category_rule(groceries.id, salary.id)
        deterministic_clock.advance(5)

        toggled = ledger.create_category_rule(groceries.id, salary.id, enabled=False)

        assert toggled.id == first.id
        assert toggled.enabled is False
        assert [r.enabled for r in ledger.list_category_rules()] == [False]

    def test_ids_are_stripped(self, ledger, groceries, salary):
        rule = ledger.create_category_rule(f"  {groceries.id} ", f"{salary.id}\n")
        assert rule.expense_category_id == groceries.id
        assert rule.inbound_category_id == salary.id

    @pytest.mark.parametrize("blank", ["", "   ", None])
    def test_blank_ids_rejected(self, ledger, salary, blank):
        with pytest.raises(ValidationError):
            ledger.create_category_rule(blank, salary.id)

    def test_enabled_must_be_bool(self, ledger, groceries, salary):
        with pytest.raises(ValidationError):
            ledger.create_category_rule(groceries.id, salary.id, enabled="yes")

    def test_missing_category(self, ledger, groceries):
        with pytest.raises(CategoryNotFoundError):
            ledger.create_category_rule(groceries.id, "missing")

    def test_expense_side_kind(self, ledger, salary):
        with pytest.raises(InvalidRuleExpenseCategoryError):
            ledger.create_category_rule(salary.id, salary.id)

    def test_inbound_side_kind(self, ledger, groceries):
        with pytest.raises(InvalidRuleInboundCategoryError):
            ledger.create_category_rule(groceries.id, groceries.id)

    def test_transfer_category_allowed_inbound(self, ledger, groceries, make_category):
        moves = make_category("Moves", CategoryKind.TRANSFER)
        assert ledger.create_category_rule(groceries.id, moves.id).enabled is True

    def test_every_call_audited(self, ledger, groceries, salary, auditor_service):
        ledger.create_category_rule(groceries.id, salary.id)
        ledger.create_category_rule(groceries.id, salary.id)

        events = auditor_service.list_events(AuditAction.CATEGORY_RULE_CREATE)
        assert len(events) == 2
        assert events[0].payload == {
            "expense_category_id": groceries.id,
            "inbound_category_id": salary.id,
            "enabled": True,
        }


class TestDeleteCategoryRule:
    def test_delete_with_approval(self, ledger, groceries, salary, auditor_service):
        rule = ledger.create_category_rule(groceries.id, salary.id)
        token = ledger.request_delete_category_rule_approval(rule.id)

        ledger.delete_category_rule(rule.id, token.operation_id)

        assert ledger.list_category_rules() == []
        [event] = auditor_service.list_events(AuditAction.CATEGORY_RULE_DELETE)
        assert event.payload == {"id": rule.id}

    def test_unlink_token_cannot_delete_rule(self, ledger, groceries, salary):
        rule = ledger.create_category_rule(groceries.id, salary.id)
        token = ledger.request_unlink_approval(rule.id)

        with pytest.raises(ApprovalActionMismatchError):
            ledger.delete_category_rule(rule.id, token.operation_id)
        assert len(ledger.list_category_rules()) == 1

    def test_missing_rule(self, ledger):
        token = ledger.request_delete_category_rule_approval("missing")
        with pytest.raises(CategoryRuleNotFoundError):
            ledger.delete_category_rule("missing", token.operation_id)
