"""
Module: reimbursement_ledger.models.category_rule
Responsibility: ORM persistence for reimbursement category rules, the
    allow-list of (expense category -> inbound category) pairs consulted by
    auto-match.
Architecture position: Models.

Invariants enforced:
    - (expense_category_id, inbound_category_id) is unique.
    - Category kinds are NOT checked here; the orchestrator validates them
      before calling the rule store.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from reimbursement_ledger.db.base import Base
from reimbursement_ledger.domain.values import CategoryRule

RULE_PAIR_CONSTRAINT = "uq_reimbursement_category_rule_pair"


class CategoryRuleModel(Base):
    __tablename__ = "reimbursement_category_rules"

    __table_args__ = (
        UniqueConstraint(
            "expense_category_id", "inbound_category_id", name=RULE_PAIR_CONSTRAINT
        ),
        Index("idx_reimbursement_rule_expense", "expense_category_id"),
        Index("idx_reimbursement_rule_inbound", "inbound_category_id"),
    )

    expense_category_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("categories.id", ondelete="CASCADE"), nullable=False
    )
    inbound_category_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("categories.id", ondelete="CASCADE"), nullable=False
    )
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    updated_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        state = "on" if self.enabled else "off"
        return (
            f"<CategoryRule {self.id}: {self.expense_category_id} -> "
            f"{self.inbound_category_id} ({state})>"
        )

    def to_domain(self) -> CategoryRule:
        return CategoryRule(
            id=self.id,
            expense_category_id=self.expense_category_id,
            inbound_category_id=self.inbound_category_id,
            enabled=self.enabled,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )
