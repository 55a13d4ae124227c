"""
Pure domain layer.

Value objects, the reimbursement status calculator, validation rules and
collaborator ports, with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- I/O
"""

from reimbursement_ledger.domain.clock import Clock, DeterministicClock, SystemClock
from reimbursement_ledger.domain.reimbursement import (
    compute_position,
    derive_status,
    is_reimbursable,
    outstanding_minor,
    recoverable_minor,
)
from reimbursement_ledger.domain.values import (
    SYSTEM_ACTOR,
    ActorChannel,
    ActorContext,
    ApprovalToken,
    AutoMatchSummary,
    CategoryKind,
    CategoryRule,
    CategorySnapshot,
    CounterpartyType,
    ExpenseKind,
    ExpenseSnapshot,
    Money,
    NewReimbursementLink,
    ReimbursementLink,
    ReimbursementMode,
    ReimbursementPatch,
    ReimbursementPosition,
    ReimbursementStatus,
)

__all__ = [
    "SYSTEM_ACTOR",
    "ActorChannel",
    "ActorContext",
    "ApprovalToken",
    "AutoMatchSummary",
    "CategoryKind",
    "CategoryRule",
    "CategorySnapshot",
    "Clock",
    "CounterpartyType",
    "DeterministicClock",
    "ExpenseKind",
    "ExpenseSnapshot",
    "Money",
    "NewReimbursementLink",
    "ReimbursementLink",
    "ReimbursementMode",
    "ReimbursementPatch",
    "ReimbursementPosition",
    "ReimbursementStatus",
    "SystemClock",
    "compute_position",
    "derive_status",
    "is_reimbursable",
    "outstanding_minor",
    "recoverable_minor",
]
