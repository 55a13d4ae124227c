"""
Values -- Pure domain value objects for the reimbursement ledger.

Responsibility:
    Defines the closed enums (expense kind, reimbursement status,
    counterparty, category kind/mode, actor channel) and the immutable
    snapshots that flow between stores, the pure calculator, the auto-match
    planner and the orchestrator.

Architecture position:
    Domain -- pure core, zero I/O.  No ORM imports; models convert to and
    from these types at the persistence boundary.

Invariants enforced:
    - Money amounts are integer minor units, never floats.
    - ReimbursementLink.amount_minor is positive and its two sides differ.
    - Nullable numeric fields (my_share_minor, closed_outstanding_minor)
      stay ``None`` when absent; "is reimbursable" is a named predicate in
      ``domain.reimbursement``, never an inline null check.

Failure modes:
    - ValueError from Money / ReimbursementLink on invalid construction.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class ExpenseKind(str, Enum):
    """Direction of a money movement."""

    EXPENSE = "expense"
    INCOME = "income"
    TRANSFER_INTERNAL = "transfer_internal"
    TRANSFER_EXTERNAL = "transfer_external"


class ReimbursementStatus(str, Enum):
    """
    Derived reimbursement state of an outflow.

    Lifecycle under recovery: EXPECTED -> PARTIAL -> SETTLED.  WRITTEN_OFF
    is reached only via close; NONE means "not reimbursable".
    """

    NONE = "none"
    EXPECTED = "expected"
    PARTIAL = "partial"
    SETTLED = "settled"
    WRITTEN_OFF = "written_off"


class CounterpartyType(str, Enum):
    SELF = "self"
    PARTNER = "partner"
    TEAM = "team"
    OTHER = "other"


class CategoryKind(str, Enum):
    EXPENSE = "expense"
    INCOME = "income"
    TRANSFER = "transfer"


class ReimbursementMode(str, Enum):
    """Whether expenses in a category are reimbursable by default."""

    NONE = "none"
    OPTIONAL = "optional"
    ALWAYS = "always"


class ActorChannel(str, Enum):
    API = "api"
    CLI = "cli"
    SYSTEM = "system"


# Inflow kinds that can fund a reimbursement.
INBOUND_EXPENSE_KINDS = frozenset({ExpenseKind.INCOME, ExpenseKind.TRANSFER_EXTERNAL})

# Category kinds allowed on the inbound side of a rule.
INBOUND_CATEGORY_KINDS = frozenset({CategoryKind.INCOME, CategoryKind.TRANSFER})


@dataclass(frozen=True)
class Money:
    """Integer minor-unit amount in an ISO-4217 currency."""

    amount_minor: int
    currency: str

    def __post_init__(self) -> None:
        if isinstance(self.amount_minor, bool) or not isinstance(self.amount_minor, int):
            raise ValueError(f"amount_minor must be an integer, got {self.amount_minor!r}")
        if len(self.currency) != 3:
            raise ValueError(f"currency must be a 3-letter ISO-4217 code, got {self.currency!r}")


@dataclass(frozen=True)
class ExpenseSnapshot:
    """
    The subset of an expense record the ledger reads and writes.

    ``occurred_at`` is kept as the ISO-8601 text the expense store holds;
    the auto-match window check parses it and tolerates malformed values.
    """

    id: str
    kind: ExpenseKind
    money: Money
    category_id: str
    occurred_at: str
    reimbursement_status: ReimbursementStatus = ReimbursementStatus.NONE
    my_share_minor: int | None = None
    closed_outstanding_minor: int | None = None
    counterparty_type: CounterpartyType | None = None
    reimbursement_group_id: str | None = None
    reimbursement_closed_at: datetime | None = None
    reimbursement_closed_reason: str | None = None
    description: str | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True)
class CategorySnapshot:
    id: str
    name: str
    kind: CategoryKind
    reimbursement_mode: ReimbursementMode = ReimbursementMode.NONE
    default_counterparty_type: CounterpartyType | None = None
    default_recovery_window_days: int | None = None


@dataclass(frozen=True)
class ReimbursementLink:
    """
    One allocation of inbound money against a reimbursable outflow.

    Never mutated after creation; removal is a delete.
    """

    id: str
    expense_out_id: str
    expense_in_id: str
    amount_minor: int
    idempotency_key: str | None
    created_at: datetime
    updated_at: datetime

    def __post_init__(self) -> None:
        if self.amount_minor <= 0:
            raise ValueError(f"Link amount must be positive, got {self.amount_minor}")
        if self.expense_out_id == self.expense_in_id:
            raise ValueError("Link sides must reference different expenses")


@dataclass(frozen=True)
class NewReimbursementLink:
    """Link attributes supplied by the caller; the store assigns the rest."""

    expense_out_id: str
    expense_in_id: str
    amount_minor: int
    idempotency_key: str | None = None


@dataclass(frozen=True)
class CategoryRule:
    """Allow-list entry: outflows in ``expense_category_id`` may be
    recovered from inflows in ``inbound_category_id``."""

    id: str
    expense_category_id: str
    inbound_category_id: str
    enabled: bool
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class ActorContext:
    """Who is performing a mutation, and through which channel."""

    actor: str = "system"
    channel: ActorChannel = ActorChannel.SYSTEM

    def to_dict(self) -> dict[str, str]:
        return {"actor": self.actor, "channel": self.channel.value}


SYSTEM_ACTOR = ActorContext()


@dataclass(frozen=True)
class ApprovalToken:
    """Dry-run result handed back to the caller.

    ``hash`` is informational; redemption only needs ``operation_id`` and
    the original payload.
    """

    operation_id: str
    action: str
    hash: str
    expires_at: datetime


@dataclass(frozen=True)
class ReimbursementPatch:
    """Full set of reimbursement fields written back to an expense."""

    reimbursement_status: ReimbursementStatus
    my_share_minor: int | None
    closed_outstanding_minor: int | None
    counterparty_type: CounterpartyType | None
    reimbursement_group_id: str | None
    reimbursement_closed_at: datetime | None
    reimbursement_closed_reason: str | None
    updated_at: datetime

    @classmethod
    def from_expense(cls, expense: ExpenseSnapshot, updated_at: datetime) -> ReimbursementPatch:
        return cls(
            reimbursement_status=expense.reimbursement_status,
            my_share_minor=expense.my_share_minor,
            closed_outstanding_minor=expense.closed_outstanding_minor,
            counterparty_type=expense.counterparty_type,
            reimbursement_group_id=expense.reimbursement_group_id,
            reimbursement_closed_at=expense.reimbursement_closed_at,
            reimbursement_closed_reason=expense.reimbursement_closed_reason,
            updated_at=updated_at,
        )


@dataclass(frozen=True)
class ReimbursementPosition:
    """Expense enriched with its derived reimbursement figures."""

    expense: ExpenseSnapshot
    recoverable_minor: int
    recovered_minor: int
    outstanding_minor: int
    status: ReimbursementStatus


@dataclass(frozen=True)
class AutoMatchSummary:
    matched: int
    links_created: int
    scanned_outflows: int
    scanned_inflows: int
    from_: str | None
    to: str | None
