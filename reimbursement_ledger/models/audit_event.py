"""
Module: reimbursement_ledger.models.audit_event
Responsibility: ORM persistence for the ledger's audit trail.
Architecture position: Models.  May import from db/base.py only.

Invariants enforced:
    - One row per successful mutating ledger operation, written inside the
      same transaction as the mutation.
    - payload_hash = sha256(action + ":" + canonical JSON of payload).
"""

from datetime import datetime
from enum import Enum

from sqlalchemy import JSON, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from reimbursement_ledger.db.base import Base


class AuditAction(str, Enum):
    """Auditable ledger actions.

    Every mutating orchestrator operation records exactly one of these.
    """

    LINK = "reimbursement.link"
    UNLINK = "reimbursement.unlink"
    CLOSE = "reimbursement.close"
    REOPEN = "reimbursement.reopen"
    AUTO_MATCH = "reimbursement.auto_match"
    CATEGORY_RULE_CREATE = "reimbursement.category_rule.create"
    CATEGORY_RULE_DELETE = "reimbursement.category_rule.delete"


class AuditEventModel(Base):
    __tablename__ = "audit_events"

    __table_args__ = (
        Index("idx_audit_action", "action"),
        Index("idx_audit_created_at", "created_at"),
    )

    action: Mapped[str] = mapped_column(String(100), nullable=False)
    actor: Mapped[str] = mapped_column(String(200), nullable=False)
    channel: Mapped[str] = mapped_column(String(20), nullable=False)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)
    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<AuditEvent {self.action} by {self.actor}/{self.channel}>"
