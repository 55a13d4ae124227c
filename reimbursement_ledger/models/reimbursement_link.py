"""
Module: reimbursement_ledger.models.reimbursement_link
Responsibility: ORM persistence for reimbursement links -- allocations of an
    inbound money movement against a reimbursable outflow.
Architecture position: Models.  May import from db/base.py, domain/values.py
    and exceptions.py only.

Invariants enforced:
    - Links are never updated in place (ORM before_update listener).
      Removal is a plain delete, gated by an approval one layer up.
    - amount_minor > 0 and expense_out_id <> expense_in_id (CHECK).
    - idempotency_key is unique when present (NULLs do not collide).

Failure modes:
    - LinkImmutableError on any UPDATE flush.
    - IntegrityError on duplicate idempotency_key (translated to
      UniqueViolationError by the link store).
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, UniqueConstraint, event
from sqlalchemy.orm import Mapped, mapped_column

from reimbursement_ledger.db.base import Base
from reimbursement_ledger.domain.values import ReimbursementLink
from reimbursement_ledger.exceptions import LinkImmutableError

IDEMPOTENCY_KEY_CONSTRAINT = "uq_reimbursement_link_idempotency_key"


class ReimbursementLinkModel(Base):
    __tablename__ = "reimbursement_links"

    __table_args__ = (
        UniqueConstraint("idempotency_key", name=IDEMPOTENCY_KEY_CONSTRAINT),
        CheckConstraint("amount_minor > 0", name="ck_reimbursement_link_amount_positive"),
        CheckConstraint(
            "expense_out_id <> expense_in_id", name="ck_reimbursement_link_distinct_sides"
        ),
        Index("idx_reimbursement_link_out", "expense_out_id"),
        Index("idx_reimbursement_link_in", "expense_in_id"),
    )

    expense_out_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("expenses.id", ondelete="CASCADE"), nullable=False
    )
    expense_in_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("expenses.id", ondelete="CASCADE"), nullable=False
    )
    amount_minor: Mapped[int] = mapped_column(nullable=False)
    idempotency_key: Mapped[str | None] = mapped_column(String(200), nullable=True)
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    updated_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return (
            f"<ReimbursementLink {self.id}: {self.expense_out_id} <- "
            f"{self.expense_in_id} {self.amount_minor}>"
        )

    def to_domain(self) -> ReimbursementLink:
        return ReimbursementLink(
            id=self.id,
            expense_out_id=self.expense_out_id,
            expense_in_id=self.expense_in_id,
            amount_minor=self.amount_minor,
            idempotency_key=self.idempotency_key,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


@event.listens_for(ReimbursementLinkModel, "before_update")
def prevent_link_update(mapper, connection, target):
    """Links are immutable once created."""
    raise LinkImmutableError(str(target.id))
