"""
Expense and category store adapters.

Expenses and categories belong to an external CRUD collaborator.  These
adapters expose just the reads the ledger needs, the reimbursement-field
write-back, and an ``add`` used by seeding code and tests.
"""

from __future__ import annotations

from collections.abc import Sequence

from sqlalchemy import select

from reimbursement_ledger.domain.values import (
    CategorySnapshot,
    ExpenseSnapshot,
    ReimbursementPatch,
)
from reimbursement_ledger.logging_config import get_logger
from reimbursement_ledger.models.category import CategoryModel
from reimbursement_ledger.models.expense import ExpenseModel
from reimbursement_ledger.stores.base import BaseStore

logger = get_logger("stores.expense")


class SqlExpenseStore(BaseStore[ExpenseModel]):
    def add(self, expense: ExpenseSnapshot) -> ExpenseSnapshot:
        model = ExpenseModel.from_domain(expense, self._clock.now_utc())
        self.session.add(model)
        self.session.flush()
        return model.to_domain()

    def find_by_id(self, expense_id: str) -> ExpenseSnapshot | None:
        model = self.session.get(ExpenseModel, expense_id)
        return model.to_domain() if model is not None else None

    def list(
        self,
        from_: str | None = None,
        to: str | None = None,
        category_id: str | None = None,
        limit: int | None = None,
    ) -> Sequence[ExpenseSnapshot]:
        """
        Expenses with ``from_ <= occurred_at < to``, newest first.

        Rows store occurred_at in UTC millisecond form, so bounds already
        normalised the same way compare as instants.
        """
        stmt = select(ExpenseModel)
        if from_ is not None:
            stmt = stmt.where(ExpenseModel.occurred_at >= from_)
        if to is not None:
            stmt = stmt.where(ExpenseModel.occurred_at < to)
        if category_id is not None:
            stmt = stmt.where(ExpenseModel.category_id == category_id)
        stmt = stmt.order_by(ExpenseModel.occurred_at.desc(), ExpenseModel.id.desc())
        if limit is not None:
            stmt = stmt.limit(limit)
        return [model.to_domain() for model in self.session.scalars(stmt)]

    def update_reimbursement(
        self, expense_id: str, patch: ReimbursementPatch
    ) -> ExpenseSnapshot | None:
        model = self.session.get(ExpenseModel, expense_id)
        if model is None:
            return None
        model.apply_patch(patch)
        self.session.flush()
        logger.debug(
            "expense_reimbursement_updated",
            extra={
                "expense_id": expense_id,
                "reimbursement_status": patch.reimbursement_status.value,
            },
        )
        return model.to_domain()


class SqlCategoryStore(BaseStore[CategoryModel]):
    def add(self, category: CategorySnapshot) -> CategorySnapshot:
        model = CategoryModel.from_domain(category, self._clock.now_utc())
        self.session.add(model)
        self.session.flush()
        return model.to_domain()

    def find_by_id(self, category_id: str) -> CategorySnapshot | None:
        model = self.session.get(CategoryModel, category_id)
        return model.to_domain() if model is not None else None

    def list(self) -> Sequence[CategorySnapshot]:
        stmt = select(CategoryModel).order_by(CategoryModel.name, CategoryModel.id)
        return [model.to_domain() for model in self.session.scalars(stmt)]
