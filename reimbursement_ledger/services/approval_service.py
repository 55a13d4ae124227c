"""
reimbursement_ledger.services.approval_service -- Two-phase approval gate.

Responsibility:
    Issues single-use, payload-bound, time-limited capability tokens on a
    dry run and redeems them on the confirmed call.  Possession of a valid,
    unexpired, unused, payload-matching operation id is the only credential
    needed to execute the gated action exactly once.

Architecture position:
    Services.  May import from domain/, models/, utils/.  Flushes within the
    caller's transaction; the ledger orchestrator commits.

Invariants enforced:
    - payload_hash = sha256(action + ":" + canonical JSON of payload), so a
      token approved for one set of parameters cannot be replayed for
      another.
    - Redemption checks run in a fixed order: existence, action, payload,
      already used, expiry.  Only a fully valid token gets approved_at set.
    - Expiry is computed at redemption time (``now > expires_at``); there is
      no background sweep.

Failure modes:
    - ApprovalNotFoundError, ApprovalActionMismatchError,
      ApprovalPayloadMismatchError, ApprovalAlreadyUsedError,
      ApprovalExpiredError.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any

from sqlalchemy.orm import Session

from reimbursement_ledger.db.base import new_id
from reimbursement_ledger.domain.clock import Clock, SystemClock
from reimbursement_ledger.domain.values import ApprovalToken
from reimbursement_ledger.exceptions import (
    ApprovalActionMismatchError,
    ApprovalAlreadyUsedError,
    ApprovalExpiredError,
    ApprovalNotFoundError,
    ApprovalPayloadMismatchError,
)
from reimbursement_ledger.logging_config import get_logger
from reimbursement_ledger.models.approval import OperationApprovalModel
from reimbursement_ledger.utils.hashing import canonicalize_json, operation_hash
from reimbursement_ledger.utils.timestamps import format_iso_millis

logger = get_logger("services.approval")

DEFAULT_APPROVAL_TTL_MINUTES = 15


class ApprovalService:
    """SQL-backed implementation of the ``ApprovalGate`` port."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        ttl_minutes: int = DEFAULT_APPROVAL_TTL_MINUTES,
    ) -> None:
        self._session = session
        self._clock = clock or SystemClock()
        self._ttl = timedelta(minutes=ttl_minutes)

    def create_approval(self, action: str, payload: dict[str, Any]) -> ApprovalToken:
        """Persist a fresh token for ``(action, payload)`` and return it."""
        now = self._clock.now_utc()
        model = OperationApprovalModel(
            id=new_id(),
            action=action,
            payload_json=canonicalize_json(payload),
            payload_hash=operation_hash(action, payload),
            expires_at=now + self._ttl,
            approved_at=None,
            created_at=now,
        )
        self._session.add(model)
        self._session.flush()

        logger.info(
            "approval_created",
            extra={
                "operation_id": model.id,
                "action": action,
                "expires_at": format_iso_millis(model.expires_at),
            },
        )
        return ApprovalToken(
            operation_id=model.id,
            action=action,
            hash=model.payload_hash,
            expires_at=model.expires_at,
        )

    def consume_approval(
        self, action: str, operation_id: str, payload: dict[str, Any]
    ) -> None:
        """
        Redeem a token.

        Raises:
            ApprovalError subclass when the token cannot be redeemed.
        """
        existing = self._session.get(OperationApprovalModel, operation_id)
        if existing is None:
            raise ApprovalNotFoundError(operation_id)
        if existing.action != action:
            raise ApprovalActionMismatchError(expected_action=action, actual_action=existing.action)
        if existing.payload_hash != operation_hash(action, payload):
            raise ApprovalPayloadMismatchError(operation_id)
        if existing.is_used:
            raise ApprovalAlreadyUsedError(operation_id)

        now = self._clock.now_utc()
        if existing.is_expired(now):
            raise ApprovalExpiredError(operation_id, format_iso_millis(existing.expires_at))

        existing.approved_at = now
        self._session.flush()
        logger.info(
            "approval_consumed",
            extra={"operation_id": operation_id, "action": action},
        )
