"""
SqlCategoryRuleStore -- persistence for reimbursement category rules.

Invariants enforced:
    - (expense_category_id, inbound_category_id) is unique; a duplicate
      create raises UniqueViolationError.
    - Listings are ordered by (expense_category_id, inbound_category_id).
"""

from __future__ import annotations

from collections.abc import Iterable

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError

from reimbursement_ledger.db.base import new_id
from reimbursement_ledger.domain.values import CategoryRule
from reimbursement_ledger.exceptions import UniqueViolationError
from reimbursement_ledger.logging_config import get_logger
from reimbursement_ledger.models.category_rule import RULE_PAIR_CONSTRAINT, CategoryRuleModel
from reimbursement_ledger.stores.base import BaseStore

logger = get_logger("stores.category_rule")

_ORDER = (CategoryRuleModel.expense_category_id, CategoryRuleModel.inbound_category_id)


class SqlCategoryRuleStore(BaseStore[CategoryRuleModel]):
    def list(
        self,
        expense_category_id: str | None = None,
        inbound_category_id: str | None = None,
        enabled_only: bool = False,
    ) -> list[CategoryRule]:
        stmt = select(CategoryRuleModel)
        if expense_category_id is not None:
            stmt = stmt.where(CategoryRuleModel.expense_category_id == expense_category_id)
        if inbound_category_id is not None:
            stmt = stmt.where(CategoryRuleModel.inbound_category_id == inbound_category_id)
        if enabled_only:
            stmt = stmt.where(CategoryRuleModel.enabled.is_(True))
        stmt = stmt.order_by(*_ORDER)
        return [model.to_domain() for model in self.session.scalars(stmt)]

    def find_by_id(self, rule_id: str) -> CategoryRule | None:
        model = self.session.get(CategoryRuleModel, rule_id)
        return model.to_domain() if model is not None else None

    def find_by_pair(
        self, expense_category_id: str, inbound_category_id: str
    ) -> CategoryRule | None:
        model = self.session.scalars(
            select(CategoryRuleModel).where(
                CategoryRuleModel.expense_category_id == expense_category_id,
                CategoryRuleModel.inbound_category_id == inbound_category_id,
            )
        ).first()
        return model.to_domain() if model is not None else None

    def create(
        self, expense_category_id: str, inbound_category_id: str, enabled: bool = True
    ) -> CategoryRule:
        now = self._clock.now_utc()
        model = CategoryRuleModel(
            id=new_id(),
            expense_category_id=expense_category_id,
            inbound_category_id=inbound_category_id,
            enabled=enabled,
            created_at=now,
            updated_at=now,
        )
        try:
            with self.session.begin_nested():
                self.session.add(model)
                self.session.flush()
        except IntegrityError:
            if self.find_by_pair(expense_category_id, inbound_category_id) is not None:
                raise UniqueViolationError(
                    CategoryRuleModel.__tablename__, RULE_PAIR_CONSTRAINT
                ) from None
            raise
        logger.debug(
            "category_rule_created",
            extra={
                "rule_id": model.id,
                "expense_category_id": expense_category_id,
                "inbound_category_id": inbound_category_id,
                "enabled": enabled,
            },
        )
        return model.to_domain()

    def update(self, rule_id: str, enabled: bool) -> CategoryRule | None:
        model = self.session.get(CategoryRuleModel, rule_id)
        if model is None:
            return None
        model.enabled = enabled
        model.updated_at = self._clock.now_utc()
        self.session.flush()
        return model.to_domain()

    def delete_by_id(self, rule_id: str) -> bool:
        result = self.session.execute(
            delete(CategoryRuleModel).where(CategoryRuleModel.id == rule_id)
        )
        self.session.flush()
        return result.rowcount > 0

    def list_by_expense_category_ids(
        self, ids: Iterable[str], enabled_only: bool = True
    ) -> list[CategoryRule]:
        wanted = list(dict.fromkeys(ids))
        if not wanted:
            return []
        stmt = select(CategoryRuleModel).where(
            CategoryRuleModel.expense_category_id.in_(wanted)
        )
        if enabled_only:
            stmt = stmt.where(CategoryRuleModel.enabled.is_(True))
        stmt = stmt.order_by(*_ORDER)
        return [model.to_domain() for model in self.session.scalars(stmt)]
