"""
Module: reimbursement_ledger.models.expense
Responsibility: ORM persistence for expense records (outflows, income and
    transfers).  The expense CRUD path is an external collaborator; the
    ledger reads whole rows and writes back only the reimbursement fields.
Architecture position: Models.  May import from db/base.py and domain/values.py.

Invariants enforced:
    - kind, reimbursement_status and counterparty_type are closed sets
      (CHECK constraints mirror the domain enums).
    - my_share_minor and closed_outstanding_minor are NULL or >= 0.
    - occurred_at is stored as UTC ISO-8601 with milliseconds and a ``Z``
      suffix whenever it parses, so range filters compare instants.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from reimbursement_ledger.db.base import Base
from reimbursement_ledger.domain.values import (
    CounterpartyType,
    ExpenseKind,
    ExpenseSnapshot,
    Money,
    ReimbursementPatch,
    ReimbursementStatus,
)
from reimbursement_ledger.utils.timestamps import normalize_iso_text


class ExpenseModel(Base):
    """
    Persistent storage for a money movement.

    Non-goals:
        - Status derivation.  reimbursement_status is written by the ledger
          after recomputing it from the links.
    """

    __tablename__ = "expenses"

    __table_args__ = (
        CheckConstraint(
            "kind IN ('expense', 'income', 'transfer_internal', 'transfer_external')",
            name="ck_expense_kind",
        ),
        CheckConstraint(
            "reimbursement_status IN ('none', 'expected', 'partial', 'settled', 'written_off')",
            name="ck_expense_reimbursement_status",
        ),
        CheckConstraint(
            "my_share_minor IS NULL OR my_share_minor >= 0",
            name="ck_expense_my_share",
        ),
        CheckConstraint(
            "closed_outstanding_minor IS NULL OR closed_outstanding_minor >= 0",
            name="ck_expense_closed_outstanding",
        ),
        Index("idx_expense_occurred_at", "occurred_at"),
        Index("idx_expense_category", "category_id"),
    )

    kind: Mapped[str] = mapped_column(String(30), nullable=False)
    amount_minor: Mapped[int] = mapped_column(nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    category_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("categories.id", ondelete="RESTRICT"), nullable=False
    )
    occurred_at: Mapped[str] = mapped_column(String(40), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    reimbursement_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ReimbursementStatus.NONE.value
    )
    my_share_minor: Mapped[int | None] = mapped_column(nullable=True)
    closed_outstanding_minor: Mapped[int | None] = mapped_column(nullable=True)
    counterparty_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    reimbursement_group_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    reimbursement_closed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    reimbursement_closed_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False)
    updated_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return (
            f"<Expense {self.id} {self.kind} {self.amount_minor} {self.currency} "
            f"status={self.reimbursement_status}>"
        )

    @classmethod
    def from_domain(cls, expense: ExpenseSnapshot, now: datetime) -> ExpenseModel:
        return cls(
            id=expense.id,
            kind=expense.kind.value,
            amount_minor=expense.money.amount_minor,
            currency=expense.money.currency,
            category_id=expense.category_id,
            occurred_at=normalize_iso_text(expense.occurred_at),
            description=expense.description,
            reimbursement_status=expense.reimbursement_status.value,
            my_share_minor=expense.my_share_minor,
            closed_outstanding_minor=expense.closed_outstanding_minor,
            counterparty_type=(
                expense.counterparty_type.value if expense.counterparty_type else None
            ),
            reimbursement_group_id=expense.reimbursement_group_id,
            reimbursement_closed_at=expense.reimbursement_closed_at,
            reimbursement_closed_reason=expense.reimbursement_closed_reason,
            created_at=now,
            updated_at=expense.updated_at or now,
        )

    def apply_patch(self, patch: ReimbursementPatch) -> None:
        self.reimbursement_status = patch.reimbursement_status.value
        self.my_share_minor = patch.my_share_minor
        self.closed_outstanding_minor = patch.closed_outstanding_minor
        self.counterparty_type = (
            patch.counterparty_type.value if patch.counterparty_type else None
        )
        self.reimbursement_group_id = patch.reimbursement_group_id
        self.reimbursement_closed_at = patch.reimbursement_closed_at
        self.reimbursement_closed_reason = patch.reimbursement_closed_reason
        self.updated_at = patch.updated_at

    def to_domain(self) -> ExpenseSnapshot:
        return ExpenseSnapshot(
            id=self.id,
            kind=ExpenseKind(self.kind),
            money=Money(amount_minor=self.amount_minor, currency=self.currency),
            category_id=self.category_id,
            occurred_at=self.occurred_at,
            reimbursement_status=ReimbursementStatus(self.reimbursement_status),
            my_share_minor=self.my_share_minor,
            closed_outstanding_minor=self.closed_outstanding_minor,
            counterparty_type=(
                CounterpartyType(self.counterparty_type) if self.counterparty_type else None
            ),
            reimbursement_group_id=self.reimbursement_group_id,
            reimbursement_closed_at=self.reimbursement_closed_at,
            reimbursement_closed_reason=self.reimbursement_closed_reason,
            description=self.description,
            updated_at=self.updated_at,
        )
