"""
AuditorService -- SQL-backed audit sink for ledger mutations.

Responsibility:
    Records one audit event per successful mutating ledger operation,
    carrying the acting party, the channel, the exact payload and its
    operation hash.  Provides a read path for review.

Architecture position:
    Services.  Called by the ledger orchestrator inside the same
    transaction as the mutation it describes, so a rolled-back operation
    leaves no audit row behind.

Invariants enforced:
    - payload_hash = sha256(action + ":" + canonical JSON of payload).
    - Payloads are stored in their canonical JSON-safe form.

Failure modes:
    - TypeError if the payload holds values that cannot be serialized.
"""

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from reimbursement_ledger.db.base import new_id
from reimbursement_ledger.domain.clock import Clock, SystemClock
from reimbursement_ledger.domain.values import ActorChannel, ActorContext
from reimbursement_ledger.logging_config import get_logger
from reimbursement_ledger.models.audit_event import AuditAction, AuditEventModel
from reimbursement_ledger.utils.hashing import canonicalize_json, operation_hash

logger = get_logger("services.auditor")


@dataclass(frozen=True)
class AuditRecord:
    """A stored audit event."""

    id: str
    action: AuditAction
    actor: ActorContext
    payload: dict[str, Any]
    payload_hash: str
    created_at: datetime


class AuditorService:
    """
    Implementation of the ``AuditSink`` port.

    Non-goals:
        - Does NOT call ``session.commit()``; the caller controls boundaries.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    def write_audit(
        self, action: str, payload: dict[str, Any], actor: ActorContext
    ) -> None:
        action = AuditAction(action)
        safe_payload = json.loads(canonicalize_json(payload))
        model = AuditEventModel(
            id=new_id(),
            action=action.value,
            actor=actor.actor,
            channel=actor.channel.value,
            payload=safe_payload,
            payload_hash=operation_hash(action.value, safe_payload),
            created_at=self._clock.now_utc(),
        )
        self._session.add(model)
        self._session.flush()

        logger.info(
            "audit_recorded",
            extra={
                "audit_action": action.value,
                "audit_actor": actor.actor,
                "audit_channel": actor.channel.value,
                "payload_hash": model.payload_hash,
            },
        )

    def list_events(self, action: AuditAction | None = None) -> list[AuditRecord]:
        """Audit events in recording order, optionally filtered by action."""
        stmt = select(AuditEventModel)
        if action is not None:
            stmt = stmt.where(AuditEventModel.action == action.value)
        stmt = stmt.order_by(AuditEventModel.created_at, AuditEventModel.id)
        return [
            AuditRecord(
                id=model.id,
                action=AuditAction(model.action),
                actor=ActorContext(actor=model.actor, channel=ActorChannel(model.channel)),
                payload=model.payload,
                payload_hash=model.payload_hash,
                created_at=model.created_at,
            )
            for model in self._session.scalars(stmt)
        ]
