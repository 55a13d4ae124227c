"""
BaseStore -- abstract base for all SQLAlchemy store adapters.

Responsibility:
    Provides the common constructor and session-handling contract for the
    store adapters that implement ``reimbursement_ledger.domain.ports``.

Invariants enforced:
    - Stores flush within the caller's transaction and never commit or
      rollback themselves.  The ledger orchestrator (or a test harness)
      owns commit/rollback.
    - Stores return frozen domain snapshots, never ORM instances.

Failure modes:
    - If a subclass calls ``session.commit()``, multi-step ledger
      operations stop being atomic.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from reimbursement_ledger.db.base import Base
from reimbursement_ledger.domain.clock import Clock, SystemClock

ModelType = TypeVar("ModelType", bound=Base)


class BaseStore(ABC, Generic[ModelType]):
    """
    Abstract base class for store adapters.

    Guarantees:
        - The store never calls ``session.commit()`` or
          ``session.rollback()``.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self._clock = clock or SystemClock()
