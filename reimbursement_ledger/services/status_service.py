"""
ReimbursementStatusService -- keeps stored statuses in step with the links.

Responsibility:
    Recomputes an outflow's reimbursement status from its snapshot and the
    sum of its outbound links, writes it back through the expense store,
    and builds the enriched position view.

Architecture position:
    Services.  Works only through the ``ExpenseStore`` and
    ``ReimbursementLinkStore`` ports plus the pure calculator.

Failure modes:
    - ExpenseNotFoundError if the expense disappears.
"""

from __future__ import annotations

from dataclasses import replace

from reimbursement_ledger.domain.clock import Clock
from reimbursement_ledger.domain.ports import ExpenseStore, ReimbursementLinkStore
from reimbursement_ledger.domain.reimbursement import compute_position, derive_status
from reimbursement_ledger.domain.values import (
    ExpenseSnapshot,
    ReimbursementPatch,
    ReimbursementPosition,
)
from reimbursement_ledger.exceptions import ExpenseNotFoundError


class ReimbursementStatusService:
    def __init__(
        self,
        expenses: ExpenseStore,
        links: ReimbursementLinkStore,
        clock: Clock,
    ):
        self._expenses = expenses
        self._links = links
        self._clock = clock

    def get_expense(self, expense_id: str) -> ExpenseSnapshot:
        expense = self._expenses.find_by_id(expense_id)
        if expense is None:
            raise ExpenseNotFoundError(expense_id)
        return expense

    def recovered_minor(self, expense_id: str) -> int:
        return self._links.sum_recovered_by_expense_out_ids([expense_id]).get(expense_id, 0)

    def allocated_minor(self, expense_id: str) -> int:
        return self._links.sum_allocated_by_expense_in_ids([expense_id]).get(expense_id, 0)

    def sync_stored_status(self, expense_id: str) -> ExpenseSnapshot:
        """Write the derived status back to the expense and return it.

        The write is skipped when the stored status already matches.
        """
        expense = self.get_expense(expense_id)
        status = derive_status(expense, self.recovered_minor(expense_id))
        if status is expense.reimbursement_status:
            return expense

        patch = replace(
            ReimbursementPatch.from_expense(expense, self._clock.now_utc()),
            reimbursement_status=status,
        )
        updated = self._expenses.update_reimbursement(expense_id, patch)
        if updated is None:
            raise ExpenseNotFoundError(expense_id)
        return updated

    def position(self, expense_id: str) -> ReimbursementPosition:
        expense = self.get_expense(expense_id)
        return compute_position(expense, self.recovered_minor(expense_id))
