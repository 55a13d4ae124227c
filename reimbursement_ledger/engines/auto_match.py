"""
Module: reimbursement_ledger.engines.auto_match
Responsibility:
    Plan reimbursement allocations for a batch of expenses: pair each
    reimbursable outflow, oldest first, with eligible inflows allowed by the
    category rules and inside the outflow category's recovery window, and
    split amounts greedily.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import reimbursement_ledger.domain and utils.

Invariants enforced:
    - Conservation: planned allocations never push an outflow past its
      outstanding amount nor an inflow past its unallocated amount.  Running
      totals are seeded from already-stored links and updated as proposals
      are made, so one run never double-spends an inflow.
    - Determinism: outflows and inflows are visited in ascending
      ``occurred_at`` order (stable sort, unparseable timestamps last), so
      a fixed input always yields the same plan.
    - Unparseable timestamps on either side are treated as inside the
      recovery window.

Failure modes:
    - None.  Ineligible candidates are skipped, never rejected.

Usage:
    from reimbursement_ledger.engines.auto_match import AutoMatchEngine

    engine = AutoMatchEngine(default_recovery_window_days=14)
    outflows, inflows = engine.partition(expenses)
    plan = engine.plan(
        outflows=outflows,
        inflows=inflows,
        rules=rules,
        categories_by_id=categories_by_id,
        recovered_by_out_id=recovered,
        allocated_by_in_id=allocated,
    )
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta

from reimbursement_ledger.domain.reimbursement import (
    inbound_available_minor,
    is_reimbursable,
    outstanding_minor,
)
from reimbursement_ledger.domain.values import (
    INBOUND_EXPENSE_KINDS,
    CategoryRule,
    CategorySnapshot,
    ExpenseKind,
    ExpenseSnapshot,
)
from reimbursement_ledger.logging_config import get_logger
from reimbursement_ledger.utils.timestamps import parse_iso_datetime

logger = get_logger("engines.auto_match")

DEFAULT_RECOVERY_WINDOW_DAYS = 14


@dataclass(frozen=True)
class ProposedAllocation:
    """One link the engine wants created."""

    expense_out_id: str
    expense_in_id: str
    amount_minor: int


@dataclass(frozen=True)
class AutoMatchPlan:
    """
    Result of a planning pass.

    Guarantees:
        - ``allocations`` are in creation order.
        - ``matched_out_ids`` lists each outflow that received at least one
          allocation, once, in visiting order.
    """

    allocations: tuple[ProposedAllocation, ...]
    matched_out_ids: tuple[str, ...]
    scanned_outflows: int
    scanned_inflows: int


def _sort_key(expense: ExpenseSnapshot) -> tuple[bool, datetime]:
    parsed = parse_iso_datetime(expense.occurred_at)
    return (parsed is None, parsed or datetime.min)


def sort_by_occurred_at(expenses: Iterable[ExpenseSnapshot]) -> list[ExpenseSnapshot]:
    """Ascending by ``occurred_at``; stable; unparseable values last."""
    return sorted(expenses, key=_sort_key)


def is_in_recovery_window(
    out_occurred_at: str,
    in_occurred_at: str,
    recovery_window_days: int,
) -> bool:
    """
    True when the inflow falls in ``[out, out + window]``.

    If either timestamp cannot be parsed the candidate is allowed.
    """
    out_ts = parse_iso_datetime(out_occurred_at)
    in_ts = parse_iso_datetime(in_occurred_at)
    if out_ts is None or in_ts is None:
        return True
    window_end = out_ts + timedelta(days=recovery_window_days)
    return out_ts <= in_ts <= window_end


def compute_allocation(remaining_outstanding_minor: int, inbound_available: int) -> int:
    if inbound_available <= 0 or remaining_outstanding_minor <= 0:
        return 0
    return min(remaining_outstanding_minor, inbound_available)


def build_rule_map(rules: Iterable[CategoryRule]) -> dict[str, frozenset[str]]:
    """Map expense category id -> allowed inbound category ids (enabled rules)."""
    allowed: dict[str, set[str]] = {}
    for rule in rules:
        if rule.enabled:
            allowed.setdefault(rule.expense_category_id, set()).add(rule.inbound_category_id)
    return {key: frozenset(value) for key, value in allowed.items()}


class AutoMatchEngine:
    """
    Greedy allocation planner.

    Contract:
        Pure: takes snapshots and running totals, returns a plan.  The
        caller persists the plan and refreshes statuses.
    """

    def __init__(self, default_recovery_window_days: int = DEFAULT_RECOVERY_WINDOW_DAYS):
        self._default_window_days = default_recovery_window_days

    def partition(
        self, expenses: Iterable[ExpenseSnapshot]
    ) -> tuple[list[ExpenseSnapshot], list[ExpenseSnapshot]]:
        """Split into sorted (reimbursable outflows, inbound candidates)."""
        outflows: list[ExpenseSnapshot] = []
        inflows: list[ExpenseSnapshot] = []
        for expense in expenses:
            if expense.kind is ExpenseKind.EXPENSE and is_reimbursable(expense):
                outflows.append(expense)
            elif expense.kind in INBOUND_EXPENSE_KINDS:
                inflows.append(expense)
        return sort_by_occurred_at(outflows), sort_by_occurred_at(inflows)

    def recovery_window_days(self, category: CategorySnapshot | None) -> int:
        days = None if category is None else category.default_recovery_window_days
        if days is None:
            days = self._default_window_days
        return max(days, 0)

    def plan(
        self,
        *,
        outflows: Sequence[ExpenseSnapshot],
        inflows: Sequence[ExpenseSnapshot],
        rules: Iterable[CategoryRule],
        categories_by_id: Mapping[str, CategorySnapshot],
        recovered_by_out_id: Mapping[str, int],
        allocated_by_in_id: Mapping[str, int],
    ) -> AutoMatchPlan:
        rule_map = build_rule_map(rules)
        recovered = dict(recovered_by_out_id)
        allocated = dict(allocated_by_in_id)

        allocations: list[ProposedAllocation] = []
        matched: list[str] = []

        for out in outflows:
            allowed = rule_map.get(out.category_id)
            if not allowed:
                continue

            window_days = self.recovery_window_days(categories_by_id.get(out.category_id))
            remaining = outstanding_minor(out, recovered.get(out.id, 0))
            if remaining <= 0:
                continue

            matched_this_outflow = False
            for inbound in inflows:
                if remaining <= 0:
                    break
                if inbound.category_id not in allowed:
                    continue
                if inbound.money.currency != out.money.currency:
                    continue
                if not is_in_recovery_window(out.occurred_at, inbound.occurred_at, window_days):
                    continue

                available = inbound_available_minor(inbound, allocated.get(inbound.id, 0))
                amount = compute_allocation(remaining, available)
                if amount <= 0:
                    continue

                allocations.append(
                    ProposedAllocation(
                        expense_out_id=out.id,
                        expense_in_id=inbound.id,
                        amount_minor=amount,
                    )
                )
                recovered[out.id] = recovered.get(out.id, 0) + amount
                allocated[inbound.id] = allocated.get(inbound.id, 0) + amount
                remaining -= amount
                matched_this_outflow = True

            if matched_this_outflow:
                matched.append(out.id)

        logger.debug(
            "auto_match_planned",
            extra={
                "allocations": len(allocations),
                "matched_outflows": len(matched),
                "scanned_outflows": len(outflows),
                "scanned_inflows": len(inflows),
            },
        )

        return AutoMatchPlan(
            allocations=tuple(allocations),
            matched_out_ids=tuple(matched),
            scanned_outflows=len(outflows),
            scanned_inflows=len(inflows),
        )
