"""
ReimbursementLedger -- orchestrator for every reimbursement operation.

Responsibility:
    Coordinates the link store, rule store, approval gate, audit sink and
    expense/category stores to implement link, unlink, close, reopen,
    auto-match and category-rule management, recomputing and persisting
    the outflow status after every mutation.

Architecture position:
    Services -- the outermost layer of the package.  Collaborators are
    injected through the constructor as ``domain.ports`` Protocols;
    ``from_session`` wires the SQLAlchemy implementations.

Transaction flow (every mutating operation):
    1. Bind correlation id / actor / channel / operation into LogContext.
    2. Validate input (pure rules in ``domain.reimbursement``).
    3. Read, validate against stored state, then write through the stores.
       Approval consumption and the audit write happen in the same unit.
    4. Commit (auto_commit=True) or leave the commit to the caller.

Invariants enforced:
    - Conservation: per outflow, linked total <= recoverable; per inflow,
      linked total <= amount.  Every check happens before any write.
    - Atomicity: any error rolls the whole operation back (auto_commit=True),
      including a consumed approval token.
    - Idempotency: ``link`` with a known idempotency key returns the stored
      link when (out, in, amount) match, and fails otherwise.
    - Raw store errors never escape: anything that is not a ledger error is
      re-raised as InternalLedgerError chained to its cause.

Failure modes:
    - Every ReimbursementLedgerError subclass, raised as-is.
    - InternalLedgerError for unexpected failures.
"""

from __future__ import annotations

import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import replace
from typing import Any
from uuid import uuid4

from sqlalchemy.orm import Session

from reimbursement_ledger.config import LedgerSettings, get_active_settings
from reimbursement_ledger.domain.clock import Clock, SystemClock
from reimbursement_ledger.domain.ports import (
    ApprovalGate,
    AuditSink,
    CategoryRuleStore,
    CategoryStore,
    ExpenseStore,
    ReimbursementLinkStore,
    UnitOfWork,
)
from reimbursement_ledger.domain.reimbursement import (
    assert_close_amount,
    assert_distinct_link_sides,
    assert_expense_category,
    assert_inbound_category,
    assert_inbound_target,
    assert_link_amounts,
    assert_outbound_reimbursable,
    assert_positive_minor,
    assert_same_currency,
    compute_position,
    inbound_available_minor,
    normalize_optional_text,
    normalize_range_bound,
    outstanding_minor,
    require_text,
)
from reimbursement_ledger.domain.values import (
    SYSTEM_ACTOR,
    ActorContext,
    ApprovalToken,
    AutoMatchSummary,
    CategoryRule,
    CategorySnapshot,
    ExpenseSnapshot,
    NewReimbursementLink,
    ReimbursementLink,
    ReimbursementPatch,
    ReimbursementPosition,
)
from reimbursement_ledger.engines.auto_match import AutoMatchEngine
from reimbursement_ledger.exceptions import (
    CategoryNotFoundError,
    CategoryRuleNotFoundError,
    ExpenseNotFoundError,
    IdempotencyKeyConflictError,
    InternalLedgerError,
    ReimbursementLedgerError,
    ReimbursementLinkNotFoundError,
    UniqueViolationError,
    ValidationError,
)
from reimbursement_ledger.logging_config import LogContext, get_logger
from reimbursement_ledger.models.audit_event import AuditAction
from reimbursement_ledger.services.approval_service import ApprovalService
from reimbursement_ledger.services.auditor_service import AuditorService
from reimbursement_ledger.services.status_service import ReimbursementStatusService
from reimbursement_ledger.stores import (
    SqlCategoryRuleStore,
    SqlCategoryStore,
    SqlExpenseStore,
    SqlReimbursementLinkStore,
)

logger = get_logger("services.reimbursement_ledger")

UNLINK_ACTION = "reimbursement_link.delete"
DELETE_CATEGORY_RULE_ACTION = "reimbursement_category_rule.delete"


class ReimbursementLedger:
    """
    Reimbursement ledger orchestrator.

    Contract:
        Each public mutating method is one atomic unit of work.  With
        ``auto_commit=True`` (default) the ledger commits on success and
        rolls back on failure; with ``auto_commit=False`` the caller owns
        both.

    Non-goals:
        - Expense/category CRUD.  The expense-update path calls
          ``sync_reimbursement_status`` after changing amount, currency or
          kind.
        - HTTP routing; see ``reimbursement_ledger.envelope`` for the wire
          shape.
    """

    def __init__(
        self,
        *,
        unit_of_work: UnitOfWork,
        links: ReimbursementLinkStore,
        rules: CategoryRuleStore,
        approvals: ApprovalGate,
        audit: AuditSink,
        expenses: ExpenseStore,
        categories: CategoryStore,
        clock: Clock | None = None,
        settings: LedgerSettings | None = None,
        auto_commit: bool = True,
    ):
        self._uow = unit_of_work
        self._links = links
        self._rules = rules
        self._approvals = approvals
        self._audit = audit
        self._expenses = expenses
        self._categories = categories
        self._clock = clock or SystemClock()
        self._settings = settings or LedgerSettings()
        self._auto_commit = auto_commit
        self._status = ReimbursementStatusService(expenses, links, self._clock)
        self._engine = AutoMatchEngine(
            default_recovery_window_days=self._settings.auto_match.default_recovery_window_days,
        )

    @classmethod
    def from_session(
        cls,
        session: Session,
        *,
        settings: LedgerSettings | None = None,
        clock: Clock | None = None,
        auto_commit: bool = True,
    ) -> ReimbursementLedger:
        """Wire the SQLAlchemy stores, approval gate and audit sink."""
        settings = settings or get_active_settings()
        clock = clock or SystemClock()
        return cls(
            unit_of_work=session,
            links=SqlReimbursementLinkStore(session, clock),
            rules=SqlCategoryRuleStore(session, clock),
            approvals=ApprovalService(
                session, clock, ttl_minutes=settings.approvals.ttl_minutes
            ),
            audit=AuditorService(session, clock),
            expenses=SqlExpenseStore(session, clock),
            categories=SqlCategoryStore(session, clock),
            clock=clock,
            settings=settings,
            auto_commit=auto_commit,
        )

    # ------------------------------------------------------------------
    # Transaction / logging boundary
    # ------------------------------------------------------------------

    @contextmanager
    def _operation(
        self, name: str, actor: ActorContext, **context: str | None
    ) -> Iterator[dict[str, Any]]:
        """
        Run one unit of work.

        Yields a dict the body may fill with fields for the completion log.
        """
        outcome: dict[str, Any] = {}
        with LogContext.bind(
            correlation_id=str(uuid4()),
            actor=actor.actor,
            channel=actor.channel.value,
            operation=name,
            **context,
        ):
            logger.info(f"{name}_started")
            t0 = time.monotonic()
            try:
                yield outcome
                if self._auto_commit:
                    self._uow.commit()
            except ReimbursementLedgerError as exc:
                if self._auto_commit:
                    self._uow.rollback()
                logger.warning(
                    f"{name}_failed",
                    extra={
                        "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                        "error_code": exc.code,
                    },
                )
                raise
            except Exception as exc:
                if self._auto_commit:
                    self._uow.rollback()
                logger.error(
                    f"{name}_failed",
                    extra={
                        "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                        "error_code": InternalLedgerError.code,
                    },
                    exc_info=True,
                )
                raise InternalLedgerError(f"Failed to {name.replace('_', ' ')}") from exc

            logger.info(
                f"{name}_completed",
                extra={"duration_ms": round((time.monotonic() - t0) * 1000, 2), **outcome},
            )

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _get_expense(self, expense_id: str) -> ExpenseSnapshot:
        expense = self._expenses.find_by_id(expense_id)
        if expense is None:
            raise ExpenseNotFoundError(expense_id)
        return expense

    def _get_category(self, category_id: str) -> CategorySnapshot:
        category = self._categories.find_by_id(category_id)
        if category is None:
            raise CategoryNotFoundError(category_id)
        return category

    def _existing_for_key(
        self,
        idempotency_key: str,
        expense_out_id: str,
        expense_in_id: str,
        amount_minor: int,
    ) -> ReimbursementLink | None:
        existing = self._links.find_by_idempotency_key(idempotency_key)
        if existing is None:
            return None
        if (
            existing.expense_out_id == expense_out_id
            and existing.expense_in_id == expense_in_id
            and existing.amount_minor == amount_minor
        ):
            return existing
        raise IdempotencyKeyConflictError(idempotency_key)

    # ------------------------------------------------------------------
    # Links
    # ------------------------------------------------------------------

    def link(
        self,
        expense_out_id: str,
        expense_in_id: str,
        amount_minor: int,
        idempotency_key: str | None = None,
        actor: ActorContext = SYSTEM_ACTOR,
    ) -> ReimbursementLink:
        """
        Allocate ``amount_minor`` of an inflow against a reimbursable outflow.

        Raises:
            ValidationError: amount is not a positive integer.
            IdempotencyKeyConflictError: key reused for another payload.
            ExpenseNotFoundError: either side is missing.
            InvalidLinkTargetError, NotReimbursableError,
            CurrencyMismatchError, AllocationExceedsOutstandingError,
            AllocationExceedsInboundAvailableError.
        """
        with self._operation("reimbursement_link", actor, expense_id=expense_out_id) as outcome:
            amount_minor = assert_positive_minor(amount_minor, "amountMinor")
            idempotency_key = normalize_optional_text(idempotency_key)

            if idempotency_key is not None:
                existing = self._existing_for_key(
                    idempotency_key, expense_out_id, expense_in_id, amount_minor
                )
                if existing is not None:
                    outcome.update(link_id=existing.id, replayed=True)
                    return existing

            out_expense = self._get_expense(expense_out_id)
            in_expense = self._get_expense(expense_in_id)

            assert_distinct_link_sides(out_expense.id, in_expense.id)
            assert_outbound_reimbursable(out_expense)
            assert_inbound_target(in_expense)
            assert_same_currency(out_expense, in_expense)

            assert_link_amounts(
                amount_minor=amount_minor,
                outstanding=outstanding_minor(
                    out_expense, self._status.recovered_minor(out_expense.id)
                ),
                inbound_available=inbound_available_minor(
                    in_expense, self._status.allocated_minor(in_expense.id)
                ),
                expense_out_id=out_expense.id,
                expense_in_id=in_expense.id,
            )

            try:
                created = self._links.create(
                    NewReimbursementLink(
                        expense_out_id=out_expense.id,
                        expense_in_id=in_expense.id,
                        amount_minor=amount_minor,
                        idempotency_key=idempotency_key,
                    )
                )
            except UniqueViolationError:
                # Only reachable for a key stored after the check above.
                existing = self._existing_for_key(
                    idempotency_key, expense_out_id, expense_in_id, amount_minor
                )
                if existing is None:
                    raise
                outcome.update(link_id=existing.id, replayed=True)
                return existing

            self._status.sync_stored_status(out_expense.id)
            self._audit.write_audit(
                AuditAction.LINK.value,
                {
                    "link_id": created.id,
                    "expense_out_id": created.expense_out_id,
                    "expense_in_id": created.expense_in_id,
                    "amount_minor": created.amount_minor,
                    "idempotency_key": created.idempotency_key,
                },
                actor,
            )
            outcome.update(link_id=created.id, amount_minor=amount_minor)
            return created

    def request_unlink_approval(
        self, link_id: str, actor: ActorContext = SYSTEM_ACTOR
    ) -> ApprovalToken:
        """Dry run for ``unlink``: issue a token bound to ``{"id": link_id}``."""
        with self._operation("reimbursement_unlink_approval", actor) as outcome:
            token = self._approvals.create_approval(UNLINK_ACTION, {"id": link_id})
            outcome.update(operation_id=token.operation_id)
            return token

    def unlink(
        self,
        link_id: str,
        approve_operation_id: str,
        actor: ActorContext = SYSTEM_ACTOR,
    ) -> None:
        """
        Delete a link with a token from ``request_unlink_approval``.

        Raises:
            ApprovalError subclass, ReimbursementLinkNotFoundError.
        """
        with self._operation(
            "reimbursement_unlink", actor, operation_id=approve_operation_id
        ) as outcome:
            self._approvals.consume_approval(UNLINK_ACTION, approve_operation_id, {"id": link_id})

            link = self._links.find_by_id(link_id)
            if link is None:
                raise ReimbursementLinkNotFoundError(link_id)

            self._links.delete_by_id(link_id)
            self._status.sync_stored_status(link.expense_out_id)
            self._audit.write_audit(AuditAction.UNLINK.value, {"id": link_id}, actor)
            outcome.update(link_id=link_id, expense_out_id=link.expense_out_id)

    def links_for_expense(self, expense_id: str) -> list[ReimbursementLink]:
        """Links where the expense is on either side, oldest first."""
        self._get_expense(expense_id)
        links = self._links.list_by_expense_out_ids([expense_id])
        links += self._links.list_by_expense_in_ids([expense_id])
        return sorted(links, key=lambda link: (link.created_at, link.id))

    # ------------------------------------------------------------------
    # Close / reopen
    # ------------------------------------------------------------------

    def close(
        self,
        expense_out_id: str,
        close_outstanding_minor: int | None = None,
        reason: str | None = None,
        actor: ActorContext = SYSTEM_ACTOR,
    ) -> ReimbursementPosition:
        """
        Write off the remaining outstanding amount.

        A fully recovered outflow is left as is (status refresh only).
        Otherwise ``close_outstanding_minor`` defaults to the whole
        outstanding amount.

        Raises:
            ExpenseNotFoundError, InvalidLinkTargetError,
            NotReimbursableError, CloseInvalidError.
        """
        with self._operation("reimbursement_close", actor, expense_id=expense_out_id) as outcome:
            expense = self._get_expense(expense_out_id)
            assert_outbound_reimbursable(expense)

            recovered = self._status.recovered_minor(expense.id)
            outstanding = outstanding_minor(expense, recovered)

            if outstanding > 0:
                amount = assert_close_amount(
                    outstanding if close_outstanding_minor is None else close_outstanding_minor,
                    outstanding,
                )
                now = self._clock.now_utc()
                patch = replace(
                    ReimbursementPatch.from_expense(expense, now),
                    closed_outstanding_minor=amount,
                    reimbursement_closed_at=now,
                    reimbursement_closed_reason=normalize_optional_text(reason),
                )
                if self._expenses.update_reimbursement(expense.id, patch) is None:
                    raise ExpenseNotFoundError(expense.id)
                outcome.update(closed_outstanding_minor=amount)

            updated = self._status.sync_stored_status(expense.id)
            self._audit.write_audit(
                AuditAction.CLOSE.value,
                {
                    "expense_out_id": expense_out_id,
                    "close_outstanding_minor": close_outstanding_minor,
                    "reason": reason,
                },
                actor,
            )
            position = compute_position(updated, recovered)
            outcome.update(status=position.status.value)
            return position

    def reopen(
        self, expense_out_id: str, actor: ActorContext = SYSTEM_ACTOR
    ) -> ReimbursementPosition:
        """Clear a write-off and recompute the status."""
        with self._operation("reimbursement_reopen", actor, expense_id=expense_out_id) as outcome:
            expense = self._get_expense(expense_out_id)
            assert_outbound_reimbursable(expense)

            patch = replace(
                ReimbursementPatch.from_expense(expense, self._clock.now_utc()),
                closed_outstanding_minor=None,
                reimbursement_closed_at=None,
                reimbursement_closed_reason=None,
            )
            if self._expenses.update_reimbursement(expense.id, patch) is None:
                raise ExpenseNotFoundError(expense.id)

            updated = self._status.sync_stored_status(expense.id)
            self._audit.write_audit(
                AuditAction.REOPEN.value, {"expense_out_id": expense_out_id}, actor
            )
            position = compute_position(updated, self._status.recovered_minor(expense.id))
            outcome.update(status=position.status.value)
            return position

    def position(self, expense_id: str) -> ReimbursementPosition:
        """Expense with its recoverable / recovered / outstanding figures."""
        return self._status.position(expense_id)

    def sync_reimbursement_status(
        self, expense_id: str, actor: ActorContext = SYSTEM_ACTOR
    ) -> ExpenseSnapshot:
        """Re-derive and store the status after an external expense edit."""
        with self._operation("reimbursement_status_sync", actor, expense_id=expense_id) as outcome:
            updated = self._status.sync_stored_status(expense_id)
            outcome.update(status=updated.reimbursement_status.value)
            return updated

    # ------------------------------------------------------------------
    # Auto-match
    # ------------------------------------------------------------------

    def auto_match(
        self,
        from_: str | None = None,
        to: str | None = None,
        actor: ActorContext = SYSTEM_ACTOR,
    ) -> AutoMatchSummary:
        """
        Greedily link reimbursable outflows to eligible inflows in
        ``[from_, to)``.  The whole batch is one transaction.

        Raises:
            ValidationError: a bound is not an ISO-8601 date-time.
        """
        with self._operation("reimbursement_auto_match", actor) as outcome:
            from_ = normalize_range_bound(from_, "from")
            to = normalize_range_bound(to, "to")

            expenses = self._expenses.list(
                from_=from_, to=to, limit=self._settings.auto_match.scan_limit
            )
            outflows, inflows = self._engine.partition(expenses)

            categories_by_id = {category.id: category for category in self._categories.list()}
            rules = self._rules.list_by_expense_category_ids(
                {out.category_id for out in outflows}, enabled_only=True
            )

            plan = self._engine.plan(
                outflows=outflows,
                inflows=inflows,
                rules=rules,
                categories_by_id=categories_by_id,
                recovered_by_out_id=self._links.sum_recovered_by_expense_out_ids(
                    out.id for out in outflows
                ),
                allocated_by_in_id=self._links.sum_allocated_by_expense_in_ids(
                    inbound.id for inbound in inflows
                ),
            )

            for allocation in plan.allocations:
                self._links.create(
                    NewReimbursementLink(
                        expense_out_id=allocation.expense_out_id,
                        expense_in_id=allocation.expense_in_id,
                        amount_minor=allocation.amount_minor,
                    )
                )
            for expense_out_id in plan.matched_out_ids:
                self._status.sync_stored_status(expense_out_id)

            summary = AutoMatchSummary(
                matched=len(plan.matched_out_ids),
                links_created=len(plan.allocations),
                scanned_outflows=plan.scanned_outflows,
                scanned_inflows=plan.scanned_inflows,
                from_=from_,
                to=to,
            )
            self._audit.write_audit(
                AuditAction.AUTO_MATCH.value,
                {
                    "matched": summary.matched,
                    "links_created": summary.links_created,
                    "scanned_outflows": summary.scanned_outflows,
                    "scanned_inflows": summary.scanned_inflows,
                    "from": summary.from_,
                    "to": summary.to,
                },
                actor,
            )
            outcome.update(matched=summary.matched, links_created=summary.links_created)
            return summary

    # ------------------------------------------------------------------
    # Category rules
    # ------------------------------------------------------------------

    def list_category_rules(self) -> list[CategoryRule]:
        return self._rules.list()

    def create_category_rule(
        self,
        expense_category_id: str,
        inbound_category_id: str,
        enabled: bool = True,
        actor: ActorContext = SYSTEM_ACTOR,
    ) -> CategoryRule:
        """
        Create or update the rule for a category pair.

        Re-creating with the same ``enabled`` returns the stored rule
        unchanged; a different value updates it in place.

        Raises:
            ValidationError, CategoryNotFoundError,
            InvalidRuleExpenseCategoryError, InvalidRuleInboundCategoryError.
        """
        with self._operation("reimbursement_category_rule_create", actor) as outcome:
            expense_category_id = require_text(expense_category_id, "expenseCategoryId")
            inbound_category_id = require_text(inbound_category_id, "inboundCategoryId")
            if not isinstance(enabled, bool):
                raise ValidationError("enabled must be a boolean", field="enabled", value=enabled)

            assert_expense_category(self._get_category(expense_category_id))
            assert_inbound_category(self._get_category(inbound_category_id))

            existing = self._rules.find_by_pair(expense_category_id, inbound_category_id)
            if existing is None:
                rule = self._rules.create(expense_category_id, inbound_category_id, enabled)
            elif existing.enabled == enabled:
                rule = existing
            else:
                rule = self._rules.update(existing.id, enabled)
                if rule is None:
                    raise CategoryRuleNotFoundError(existing.id)

            self._audit.write_audit(
                AuditAction.CATEGORY_RULE_CREATE.value,
                {
                    "expense_category_id": expense_category_id,
                    "inbound_category_id": inbound_category_id,
                    "enabled": enabled,
                },
                actor,
            )
            outcome.update(rule_id=rule.id, enabled=rule.enabled)
            return rule

    def request_delete_category_rule_approval(
        self, rule_id: str, actor: ActorContext = SYSTEM_ACTOR
    ) -> ApprovalToken:
        """Dry run for ``delete_category_rule``."""
        with self._operation("reimbursement_category_rule_delete_approval", actor) as outcome:
            token = self._approvals.create_approval(DELETE_CATEGORY_RULE_ACTION, {"id": rule_id})
            outcome.update(operation_id=token.operation_id)
            return token

    def delete_category_rule(
        self,
        rule_id: str,
        approve_operation_id: str,
        actor: ActorContext = SYSTEM_ACTOR,
    ) -> None:
        """
        Raises:
            ApprovalError subclass, CategoryRuleNotFoundError.
        """
        with self._operation(
            "reimbursement_category_rule_delete", actor, operation_id=approve_operation_id
        ) as outcome:
            self._approvals.consume_approval(
                DELETE_CATEGORY_RULE_ACTION, approve_operation_id, {"id": rule_id}
            )
            if self._rules.find_by_id(rule_id) is None:
                raise CategoryRuleNotFoundError(rule_id)

            self._rules.delete_by_id(rule_id)
            self._audit.write_audit(
                AuditAction.CATEGORY_RULE_DELETE.value, {"id": rule_id}, actor
            )
            outcome.update(rule_id=rule_id)
