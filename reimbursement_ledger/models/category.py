"""
Module: reimbursement_ledger.models.category
Responsibility: ORM persistence for categories.  Categories are owned by an
    external CRUD collaborator; the ledger only reads them (kind, recovery
    window) when validating rules and running auto-match.
Architecture position: Models.  May import from db/base.py and domain/values.py.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from reimbursement_ledger.db.base import Base
from reimbursement_ledger.domain.values import (
    CategoryKind,
    CategorySnapshot,
    CounterpartyType,
    ReimbursementMode,
)


class CategoryModel(Base):
    __tablename__ = "categories"

    __table_args__ = (
        CheckConstraint("kind IN ('expense', 'income', 'transfer')", name="ck_category_kind"),
        CheckConstraint(
            "reimbursement_mode IN ('none', 'optional', 'always')",
            name="ck_category_reimbursement_mode",
        ),
        CheckConstraint(
            "default_recovery_window_days IS NULL OR default_recovery_window_days >= 0",
            name="ck_category_recovery_window",
        ),
        Index("idx_category_kind", "kind"),
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    reimbursement_mode: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ReimbursementMode.NONE.value
    )
    default_counterparty_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    default_recovery_window_days: Mapped[int | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    updated_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<Category {self.id} {self.kind}: {self.name}>"

    @classmethod
    def from_domain(cls, category: CategorySnapshot, now: datetime) -> CategoryModel:
        return cls(
            id=category.id,
            name=category.name,
            kind=category.kind.value,
            reimbursement_mode=category.reimbursement_mode.value,
            default_counterparty_type=(
                category.default_counterparty_type.value
                if category.default_counterparty_type
                else None
            ),
            default_recovery_window_days=category.default_recovery_window_days,
            created_at=now,
            updated_at=now,
        )

    def to_domain(self) -> CategorySnapshot:
        return CategorySnapshot(
            id=self.id,
            name=self.name,
            kind=CategoryKind(self.kind),
            reimbursement_mode=ReimbursementMode(self.reimbursement_mode),
            default_counterparty_type=(
                CounterpartyType(self.default_counterparty_type)
                if self.default_counterparty_type
                else None
            ),
            default_recovery_window_days=self.default_recovery_window_days,
        )
