"""
Ports -- Collaborator interfaces the ledger orchestrator depends on.

Responsibility:
    Declares, as structural Protocols, every store and gate the orchestrator
    is constructed with.  The SQLAlchemy adapters in
    ``reimbursement_ledger.stores`` and ``reimbursement_ledger.services``
    implement them; tests may substitute in-memory doubles.

Architecture position:
    Domain -- pure declarations, zero I/O.

Invariants enforced:
    - Store methods flush but never commit; the transaction belongs to the
      orchestrator's ``UnitOfWork``.
    - Sum methods return a mapping containing every requested id (0 when
      the id has no links).
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from typing import Any, Protocol, runtime_checkable

from reimbursement_ledger.domain.values import (
    ActorContext,
    ApprovalToken,
    CategoryRule,
    CategorySnapshot,
    ExpenseSnapshot,
    NewReimbursementLink,
    ReimbursementLink,
    ReimbursementPatch,
)


@runtime_checkable
class UnitOfWork(Protocol):
    """Transaction boundary. A SQLAlchemy ``Session`` satisfies it."""

    def commit(self) -> None: ...

    def rollback(self) -> None: ...


@runtime_checkable
class ExpenseStore(Protocol):
    def find_by_id(self, expense_id: str) -> ExpenseSnapshot | None: ...

    def list(
        self,
        from_: str | None = None,
        to: str | None = None,
        category_id: str | None = None,
        limit: int | None = None,
    ) -> Sequence[ExpenseSnapshot]:
        """Expenses with ``from_ <= occurred_at < to``, newest first."""
        ...

    def update_reimbursement(
        self, expense_id: str, patch: ReimbursementPatch
    ) -> ExpenseSnapshot | None: ...


@runtime_checkable
class CategoryStore(Protocol):
    def find_by_id(self, category_id: str) -> CategorySnapshot | None: ...

    def list(self) -> Sequence[CategorySnapshot]: ...


@runtime_checkable
class ReimbursementLinkStore(Protocol):
    def create(self, link: NewReimbursementLink) -> ReimbursementLink:
        """
        Raises:
            UniqueViolationError: idempotency key already stored.
        """
        ...

    def delete_by_id(self, link_id: str) -> bool: ...

    def find_by_id(self, link_id: str) -> ReimbursementLink | None: ...

    def find_by_idempotency_key(self, key: str) -> ReimbursementLink | None: ...

    def list_by_expense_out_ids(self, ids: Iterable[str]) -> list[ReimbursementLink]: ...

    def list_by_expense_in_ids(self, ids: Iterable[str]) -> list[ReimbursementLink]: ...

    def sum_recovered_by_expense_out_ids(self, ids: Iterable[str]) -> Mapping[str, int]: ...

    def sum_allocated_by_expense_in_ids(self, ids: Iterable[str]) -> Mapping[str, int]: ...


@runtime_checkable
class CategoryRuleStore(Protocol):
    def list(
        self,
        expense_category_id: str | None = None,
        inbound_category_id: str | None = None,
        enabled_only: bool = False,
    ) -> list[CategoryRule]: ...

    def find_by_id(self, rule_id: str) -> CategoryRule | None: ...

    def find_by_pair(
        self, expense_category_id: str, inbound_category_id: str
    ) -> CategoryRule | None: ...

    def create(
        self, expense_category_id: str, inbound_category_id: str, enabled: bool
    ) -> CategoryRule: ...

    def update(self, rule_id: str, enabled: bool) -> CategoryRule | None: ...

    def delete_by_id(self, rule_id: str) -> bool: ...

    def list_by_expense_category_ids(
        self, ids: Iterable[str], enabled_only: bool = True
    ) -> list[CategoryRule]: ...


@runtime_checkable
class ApprovalGate(Protocol):
    def create_approval(self, action: str, payload: dict[str, Any]) -> ApprovalToken: ...

    def consume_approval(
        self, action: str, operation_id: str, payload: dict[str, Any]
    ) -> None:
        """
        Raises:
            ApprovalError subclass on any redemption failure.
        """
        ...


@runtime_checkable
class AuditSink(Protocol):
    def write_audit(
        self, action: str, payload: dict[str, Any], actor: ActorContext
    ) -> None: ...
