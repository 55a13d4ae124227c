"""
SqlReimbursementLinkStore -- persistence for reimbursement links.

Responsibility:
    Create, find, list and delete links, and aggregate allocated amounts per
    outbound and inbound expense.

Invariants enforced:
    - Sums return a mapping that contains every requested id; ids without
      links map to 0.
    - An idempotency-key collision surfaces as UniqueViolationError.  The
      insert runs in a SAVEPOINT so the caller's transaction stays usable.

Failure modes:
    - UniqueViolationError on a duplicate idempotency key.
    - IntegrityError for any other constraint (missing expense rows,
      non-positive amounts) propagates.
"""

from __future__ import annotations

from collections.abc import Iterable

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError

from reimbursement_ledger.db.base import new_id
from reimbursement_ledger.domain.values import NewReimbursementLink, ReimbursementLink
from reimbursement_ledger.exceptions import UniqueViolationError
from reimbursement_ledger.logging_config import get_logger
from reimbursement_ledger.models.reimbursement_link import (
    IDEMPOTENCY_KEY_CONSTRAINT,
    ReimbursementLinkModel,
)
from reimbursement_ledger.stores.base import BaseStore

logger = get_logger("stores.reimbursement_link")


def _unique_ids(ids: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(ids))


class SqlReimbursementLinkStore(BaseStore[ReimbursementLinkModel]):
    def create(self, link: NewReimbursementLink) -> ReimbursementLink:
        now = self._clock.now_utc()
        model = ReimbursementLinkModel(
            id=new_id(),
            expense_out_id=link.expense_out_id,
            expense_in_id=link.expense_in_id,
            amount_minor=link.amount_minor,
            idempotency_key=link.idempotency_key,
            created_at=now,
            updated_at=now,
        )
        try:
            with self.session.begin_nested():
                self.session.add(model)
                self.session.flush()
        except IntegrityError:
            if link.idempotency_key is not None and self.find_by_idempotency_key(
                link.idempotency_key
            ):
                logger.warning(
                    "reimbursement_link_idempotency_collision",
                    extra={"idempotency_key": link.idempotency_key},
                )
                raise UniqueViolationError(
                    ReimbursementLinkModel.__tablename__, IDEMPOTENCY_KEY_CONSTRAINT
                ) from None
            raise

        logger.debug(
            "reimbursement_link_created",
            extra={
                "link_id": model.id,
                "expense_out_id": link.expense_out_id,
                "expense_in_id": link.expense_in_id,
                "amount_minor": link.amount_minor,
            },
        )
        return model.to_domain()

    def delete_by_id(self, link_id: str) -> bool:
        result = self.session.execute(
            delete(ReimbursementLinkModel).where(ReimbursementLinkModel.id == link_id)
        )
        self.session.flush()
        return result.rowcount > 0

    def find_by_id(self, link_id: str) -> ReimbursementLink | None:
        model = self.session.get(ReimbursementLinkModel, link_id)
        return model.to_domain() if model is not None else None

    def find_by_idempotency_key(self, key: str) -> ReimbursementLink | None:
        model = self.session.scalars(
            select(ReimbursementLinkModel).where(ReimbursementLinkModel.idempotency_key == key)
        ).first()
        return model.to_domain() if model is not None else None

    def list_by_expense_out_ids(self, ids: Iterable[str]) -> list[ReimbursementLink]:
        wanted = _unique_ids(ids)
        if not wanted:
            return []
        stmt = (
            select(ReimbursementLinkModel)
            .where(ReimbursementLinkModel.expense_out_id.in_(wanted))
            .order_by(ReimbursementLinkModel.created_at, ReimbursementLinkModel.id)
        )
        return [model.to_domain() for model in self.session.scalars(stmt)]

    def list_by_expense_in_ids(self, ids: Iterable[str]) -> list[ReimbursementLink]:
        wanted = _unique_ids(ids)
        if not wanted:
            return []
        stmt = (
            select(ReimbursementLinkModel)
            .where(ReimbursementLinkModel.expense_in_id.in_(wanted))
            .order_by(ReimbursementLinkModel.created_at, ReimbursementLinkModel.id)
        )
        return [model.to_domain() for model in self.session.scalars(stmt)]

    def sum_recovered_by_expense_out_ids(self, ids: Iterable[str]) -> dict[str, int]:
        return self._sum_by(ReimbursementLinkModel.expense_out_id, ids)

    def sum_allocated_by_expense_in_ids(self, ids: Iterable[str]) -> dict[str, int]:
        return self._sum_by(ReimbursementLinkModel.expense_in_id, ids)

    def _sum_by(self, column, ids: Iterable[str]) -> dict[str, int]:
        wanted = _unique_ids(ids)
        totals = {expense_id: 0 for expense_id in wanted}
        if not wanted:
            return totals
        stmt = (
            select(column, func.coalesce(func.sum(ReimbursementLinkModel.amount_minor), 0))
            .where(column.in_(wanted))
            .group_by(column)
        )
        for expense_id, total in self.session.execute(stmt):
            totals[expense_id] = int(total)
        return totals
