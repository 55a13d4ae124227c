"""
Module: reimbursement_ledger.models.approval
Responsibility: ORM persistence for operation approvals -- the single-use,
    payload-bound, time-limited tokens issued by a dry run and redeemed by
    the gated destructive call.
Architecture position: Models.  May import from db/base.py only.

Invariants enforced:
    - The row id IS the operation id handed to the caller.
    - payload_hash = sha256(action + ":" + canonical JSON of payload).
    - approved_at is NULL until redemption; once set the token is spent.
    - Expiry is not a stored state; it is computed against expires_at when
      the token is redeemed.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from reimbursement_ledger.db.base import Base


class OperationApprovalModel(Base):
    __tablename__ = "operation_approvals"

    __table_args__ = (Index("idx_operation_approval_action", "action"),)

    action: Mapped[str] = mapped_column(String(100), nullable=False)
    payload_json: Mapped[str] = mapped_column(Text, nullable=False)
    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(nullable=False)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(nullable=False)

    @property
    def is_used(self) -> bool:
        return self.approved_at is not None

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at

    def __repr__(self) -> str:
        state = "used" if self.is_used else "open"
        return f"<OperationApproval {self.id} {self.action} ({state})>"
