"""
Reimbursement -- Pure status calculator and ledger validation rules.

Responsibility:
    Derives recoverable / outstanding amounts and the reimbursement status of
    an outflow from its snapshot and the sum of its outbound links, and
    holds the pure validation rules the orchestrator applies before any
    write (link targets, currencies, amounts, close amounts, rule category
    kinds, caller input).

Architecture position:
    Domain -- pure functional core, zero I/O.  Every function here is total
    over valid snapshots; validators raise typed ledger errors and never
    touch a store.

Invariants enforced:
    - recoverable = 0 unless the expense is reimbursable; otherwise
      max(amount - my_share, 0).
    - outstanding = max(recoverable - recovered - max(closed_outstanding, 0), 0).
    - Status is a function of (snapshot, recovered) only.

Failure modes:
    - Calculator functions: none.
    - Validators: ValidationError and the ReimbursementError family.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from reimbursement_ledger.domain.values import (
    INBOUND_CATEGORY_KINDS,
    INBOUND_EXPENSE_KINDS,
    CategoryKind,
    CategorySnapshot,
    ExpenseKind,
    ExpenseSnapshot,
    ReimbursementPosition,
    ReimbursementStatus,
)
from reimbursement_ledger.exceptions import (
    AllocationExceedsInboundAvailableError,
    AllocationExceedsOutstandingError,
    CloseInvalidError,
    CurrencyMismatchError,
    InvalidLinkTargetError,
    InvalidRuleExpenseCategoryError,
    InvalidRuleInboundCategoryError,
    NotReimbursableError,
    ValidationError,
)
from reimbursement_ledger.utils.timestamps import format_iso_millis, parse_iso_datetime

# ---------------------------------------------------------------------------
# Status calculator
# ---------------------------------------------------------------------------


def is_reimbursable(expense: ExpenseSnapshot) -> bool:
    """An outflow is reimbursable iff it is an expense that either carries a
    non-``none`` status or declares the payer's own share."""
    match expense.kind:
        case ExpenseKind.EXPENSE:
            return (
                expense.reimbursement_status is not ReimbursementStatus.NONE
                or expense.my_share_minor is not None
            )
        case ExpenseKind.INCOME | ExpenseKind.TRANSFER_INTERNAL | ExpenseKind.TRANSFER_EXTERNAL:
            return False
        case _:
            raise ValueError(f"Unknown expense kind: {expense.kind}")


def recoverable_minor(expense: ExpenseSnapshot) -> int:
    if not is_reimbursable(expense):
        return 0
    return max(expense.money.amount_minor - (expense.my_share_minor or 0), 0)


def written_off_minor(expense: ExpenseSnapshot) -> int:
    return max(expense.closed_outstanding_minor or 0, 0)


def outstanding_minor(expense: ExpenseSnapshot, recovered: int) -> int:
    return max(recoverable_minor(expense) - recovered - written_off_minor(expense), 0)


def derive_status(expense: ExpenseSnapshot, recovered: int) -> ReimbursementStatus:
    """
    Derive the reimbursement status.

    Order matters: a write-off wins over settlement, and settlement wins
    over partial recovery.
    """
    if not is_reimbursable(expense):
        return ReimbursementStatus.NONE
    if written_off_minor(expense) > 0:
        return ReimbursementStatus.WRITTEN_OFF
    if recoverable_minor(expense) == 0 or outstanding_minor(expense, recovered) == 0:
        return ReimbursementStatus.SETTLED
    if recovered > 0:
        return ReimbursementStatus.PARTIAL
    return ReimbursementStatus.EXPECTED


def compute_position(expense: ExpenseSnapshot, recovered: int) -> ReimbursementPosition:
    return ReimbursementPosition(
        expense=expense,
        recoverable_minor=recoverable_minor(expense),
        recovered_minor=recovered,
        outstanding_minor=outstanding_minor(expense, recovered),
        status=derive_status(expense, recovered),
    )


# ---------------------------------------------------------------------------
# Input normalisation
# ---------------------------------------------------------------------------


def assert_positive_minor(value: Any, field: str) -> int:
    """Positive integer minor units. Booleans are rejected."""
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f"{field} must be a positive integer", field=field, value=value)
    return value


def normalize_optional_text(value: str | None) -> str | None:
    """Strip surrounding whitespace; blank becomes ``None``."""
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def require_text(value: str | None, field: str) -> str:
    normalized = normalize_optional_text(value)
    if normalized is None:
        raise ValidationError(f"{field} is required", field=field, value=value)
    return normalized


def normalize_range_bound(value: str | datetime | None, field: str) -> str | None:
    """Parse an auto-match bound and render it as UTC ISO-8601 (millis)."""
    if value is None:
        return None
    parsed = parse_iso_datetime(value)
    if parsed is None:
        raise ValidationError(f"{field} must be an ISO-8601 date-time", field=field, value=value)
    return format_iso_millis(parsed)


# ---------------------------------------------------------------------------
# Link validation
# ---------------------------------------------------------------------------


def assert_distinct_link_sides(expense_out_id: str, expense_in_id: str) -> None:
    if expense_out_id == expense_in_id:
        raise InvalidLinkTargetError(
            "Reimbursement link cannot reference the same expense on both sides",
            expense_out_id=expense_out_id,
            expense_in_id=expense_in_id,
        )


def assert_outbound_reimbursable(expense: ExpenseSnapshot) -> None:
    if expense.kind is not ExpenseKind.EXPENSE:
        raise InvalidLinkTargetError(
            "Outgoing reimbursement source must be an expense row",
            expense_out_id=expense.id,
            kind=expense.kind.value,
        )
    if not is_reimbursable(expense):
        raise NotReimbursableError(expense.id)


def assert_inbound_target(expense: ExpenseSnapshot) -> None:
    if expense.kind not in INBOUND_EXPENSE_KINDS:
        raise InvalidLinkTargetError(
            "Inbound reimbursement target must be income or external transfer",
            expense_in_id=expense.id,
            kind=expense.kind.value,
        )


def assert_same_currency(out_expense: ExpenseSnapshot, in_expense: ExpenseSnapshot) -> None:
    if out_expense.money.currency != in_expense.money.currency:
        raise CurrencyMismatchError(
            expense_out_id=out_expense.id,
            expense_in_id=in_expense.id,
            out_currency=out_expense.money.currency,
            in_currency=in_expense.money.currency,
        )


def assert_link_amounts(
    *,
    amount_minor: int,
    outstanding: int,
    inbound_available: int,
    expense_out_id: str,
    expense_in_id: str,
) -> None:
    if outstanding <= 0:
        raise AllocationExceedsOutstandingError(
            "No outstanding reimbursable amount remains on outbound expense",
            expense_out_id=expense_out_id,
        )
    if amount_minor > outstanding:
        raise AllocationExceedsOutstandingError(
            "Link amount exceeds outbound outstanding amount",
            expense_out_id=expense_out_id,
            amount_minor=amount_minor,
            outstanding_minor=outstanding,
        )
    if amount_minor > inbound_available:
        raise AllocationExceedsInboundAvailableError(
            expense_in_id=expense_in_id,
            amount_minor=amount_minor,
            inbound_available_minor=inbound_available,
        )


def inbound_available_minor(inbound: ExpenseSnapshot, allocated: int) -> int:
    return max(inbound.money.amount_minor - allocated, 0)


# ---------------------------------------------------------------------------
# Close validation
# ---------------------------------------------------------------------------


def assert_close_amount(close_outstanding_minor: Any, outstanding: int) -> int:
    if (
        isinstance(close_outstanding_minor, bool)
        or not isinstance(close_outstanding_minor, int)
        or close_outstanding_minor < 0
    ):
        raise CloseInvalidError(
            "closeOutstandingMinor must be a non-negative integer",
            close_outstanding_minor=close_outstanding_minor,
        )
    if close_outstanding_minor == 0:
        raise CloseInvalidError(
            "closeOutstandingMinor must be greater than zero when outstanding remains",
            outstanding_minor=outstanding,
        )
    if close_outstanding_minor > outstanding:
        raise CloseInvalidError(
            "closeOutstandingMinor exceeds outstanding amount",
            close_outstanding_minor=close_outstanding_minor,
            outstanding_minor=outstanding,
        )
    return close_outstanding_minor


# ---------------------------------------------------------------------------
# Category rule validation
# ---------------------------------------------------------------------------


def assert_expense_category(category: CategorySnapshot) -> None:
    if category.kind is not CategoryKind.EXPENSE:
        raise InvalidRuleExpenseCategoryError(category.id, category.kind.value)


def assert_inbound_category(category: CategorySnapshot) -> None:
    if category.kind not in INBOUND_CATEGORY_KINDS:
        raise InvalidRuleInboundCategoryError(category.id, category.kind.value)
