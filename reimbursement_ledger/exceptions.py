"""
Typed Exception Hierarchy for the Reimbursement Ledger.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Every failure the ledger can report is a class with:
  1. A machine-readable ``code`` class attribute (API-safe, stable).
  2. An ``http_status`` class attribute used by the wire envelope.
  3. Structured attributes carrying the context of the failure.

Callers catch by type, never by message:

    try:
        ledger.link("exp-1", "inc-1", 3000)
    except AllocationExceedsOutstandingError as e:
        notify(f"only {e.outstanding_minor} left on {e.expense_out_id}")

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ReimbursementLedgerError (base)
    |
    +-- ValidationError
    |
    +-- NotFoundError
    |   +-- ExpenseNotFoundError
    |   +-- CategoryNotFoundError
    |   +-- ReimbursementLinkNotFoundError
    |   +-- CategoryRuleNotFoundError
    |
    +-- ReimbursementError
    |   +-- InvalidLinkTargetError
    |   +-- NotReimbursableError
    |   +-- CurrencyMismatchError
    |   +-- AllocationExceedsOutstandingError
    |   +-- AllocationExceedsInboundAvailableError
    |   +-- CloseInvalidError
    |   +-- InvalidRuleExpenseCategoryError
    |   +-- InvalidRuleInboundCategoryError
    |
    +-- IdempotencyKeyConflictError
    |
    +-- ApprovalError
    |   +-- ApprovalNotFoundError
    |   +-- ApprovalActionMismatchError
    |   +-- ApprovalPayloadMismatchError
    |   +-- ApprovalAlreadyUsedError
    |   +-- ApprovalExpiredError
    |
    +-- UniqueViolationError
    +-- LinkImmutableError
    |
    +-- InternalLedgerError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                                                 | HTTP
-------------|------------------------------------------------------|-----
Validation   | VALIDATION_ERROR                                     | 400
Not found    | EXPENSE_NOT_FOUND                                    | 404
             | CATEGORY_NOT_FOUND                                   | 404
             | REIMBURSEMENT_LINK_NOT_FOUND                         | 404
             | REIMBURSEMENT_CATEGORY_RULE_NOT_FOUND                | 404
Ledger       | REIMBURSEMENT_INVALID_LINK_TARGET                    | 400
             | REIMBURSEMENT_NOT_REIMBURSABLE                       | 400
             | REIMBURSEMENT_CURRENCY_MISMATCH                      | 400
             | REIMBURSEMENT_ALLOCATION_EXCEEDS_OUTSTANDING         | 400
             | REIMBURSEMENT_ALLOCATION_EXCEEDS_INBOUND_AVAILABLE   | 400
             | REIMBURSEMENT_CLOSE_INVALID                          | 400
             | REIMBURSEMENT_CATEGORY_RULE_INVALID_EXPENSE_CATEGORY | 400
             | REIMBURSEMENT_CATEGORY_RULE_INVALID_INBOUND_CATEGORY | 400
Idempotency  | REIMBURSEMENT_IDEMPOTENCY_KEY_CONFLICT               | 409
Approval     | APPROVAL_NOT_FOUND                                   | 403
             | APPROVAL_ACTION_MISMATCH                             | 403
             | APPROVAL_PAYLOAD_MISMATCH                            | 403
             | APPROVAL_ALREADY_USED                                | 403
             | APPROVAL_EXPIRED                                     | 403
Store        | UNIQUE_VIOLATION                                     | 409
             | REIMBURSEMENT_LINK_IMMUTABLE                         | 409
Internal     | INTERNAL_ERROR                                       | 500

===============================================================================
"""

from __future__ import annotations

from typing import Any


class ReimbursementLedgerError(Exception):
    """
    Base exception for all reimbursement ledger errors.

    All subclasses must define ``code`` and ``http_status`` class attributes.
    Subclasses list the names of their structured attributes in
    ``_detail_fields`` so that ``details`` can be built without parsing
    the message.
    """

    code: str = "REIMBURSEMENT_LEDGER_ERROR"
    http_status: int = 400
    _detail_fields: tuple[str, ...] = ()

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    @property
    def details(self) -> dict[str, Any] | None:
        values = {
            name: getattr(self, name)
            for name in self._detail_fields
            if getattr(self, name, None) is not None
        }
        return values or None

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"code": self.code, "message": self.message}
        details = self.details
        if details:
            body["details"] = details
        return body


# Validation


class ValidationError(ReimbursementLedgerError):
    """Malformed caller input."""

    code: str = "VALIDATION_ERROR"
    http_status: int = 400
    _detail_fields = ("field", "value")

    def __init__(self, message: str, field: str | None = None, value: Any = None):
        self.field = field
        self.value = value
        super().__init__(message)


# Not found


class NotFoundError(ReimbursementLedgerError):
    """Base exception for missing records."""

    code: str = "NOT_FOUND"
    http_status: int = 404


class ExpenseNotFoundError(NotFoundError):
    code: str = "EXPENSE_NOT_FOUND"
    _detail_fields = ("expense_id",)

    def __init__(self, expense_id: str):
        self.expense_id = expense_id
        super().__init__(f"Expense {expense_id} does not exist")


class CategoryNotFoundError(NotFoundError):
    code: str = "CATEGORY_NOT_FOUND"
    _detail_fields = ("category_id",)

    def __init__(self, category_id: str):
        self.category_id = category_id
        super().__init__(f"Category {category_id} does not exist")


class ReimbursementLinkNotFoundError(NotFoundError):
    code: str = "REIMBURSEMENT_LINK_NOT_FOUND"
    _detail_fields = ("link_id",)

    def __init__(self, link_id: str):
        self.link_id = link_id
        super().__init__(f"Reimbursement link {link_id} does not exist")


class CategoryRuleNotFoundError(NotFoundError):
    code: str = "REIMBURSEMENT_CATEGORY_RULE_NOT_FOUND"
    _detail_fields = ("rule_id",)

    def __init__(self, rule_id: str):
        self.rule_id = rule_id
        super().__init__(f"Reimbursement category rule {rule_id} does not exist")


# Ledger rule violations


class ReimbursementError(ReimbursementLedgerError):
    """Base exception for reimbursement rule violations."""

    code: str = "REIMBURSEMENT_ERROR"
    http_status: int = 400


class InvalidLinkTargetError(ReimbursementError):
    """Outbound side is not an expense, inbound side is not income/external
    transfer, or both sides are the same record."""

    code: str = "REIMBURSEMENT_INVALID_LINK_TARGET"
    _detail_fields = ("expense_out_id", "expense_in_id", "kind")

    def __init__(
        self,
        message: str,
        expense_out_id: str | None = None,
        expense_in_id: str | None = None,
        kind: str | None = None,
    ):
        self.expense_out_id = expense_out_id
        self.expense_in_id = expense_in_id
        self.kind = kind
        super().__init__(message)


class NotReimbursableError(ReimbursementError):
    code: str = "REIMBURSEMENT_NOT_REIMBURSABLE"
    _detail_fields = ("expense_out_id",)

    def __init__(self, expense_out_id: str):
        self.expense_out_id = expense_out_id
        super().__init__("Expense is not configured as reimbursable")


class CurrencyMismatchError(ReimbursementError):
    code: str = "REIMBURSEMENT_CURRENCY_MISMATCH"
    _detail_fields = ("expense_out_id", "expense_in_id", "out_currency", "in_currency")

    def __init__(
        self,
        expense_out_id: str,
        expense_in_id: str,
        out_currency: str,
        in_currency: str,
    ):
        self.expense_out_id = expense_out_id
        self.expense_in_id = expense_in_id
        self.out_currency = out_currency
        self.in_currency = in_currency
        super().__init__("Currencies must match to create a reimbursement link")


class AllocationExceedsOutstandingError(ReimbursementError):
    code: str = "REIMBURSEMENT_ALLOCATION_EXCEEDS_OUTSTANDING"
    _detail_fields = ("expense_out_id", "amount_minor", "outstanding_minor")

    def __init__(
        self,
        message: str,
        expense_out_id: str,
        amount_minor: int | None = None,
        outstanding_minor: int | None = None,
    ):
        self.expense_out_id = expense_out_id
        self.amount_minor = amount_minor
        self.outstanding_minor = outstanding_minor
        super().__init__(message)


class AllocationExceedsInboundAvailableError(ReimbursementError):
    code: str = "REIMBURSEMENT_ALLOCATION_EXCEEDS_INBOUND_AVAILABLE"
    _detail_fields = ("expense_in_id", "amount_minor", "inbound_available_minor")

    def __init__(self, expense_in_id: str, amount_minor: int, inbound_available_minor: int):
        self.expense_in_id = expense_in_id
        self.amount_minor = amount_minor
        self.inbound_available_minor = inbound_available_minor
        super().__init__("Link amount exceeds inbound unallocated amount")


class CloseInvalidError(ReimbursementError):
    code: str = "REIMBURSEMENT_CLOSE_INVALID"
    _detail_fields = ("close_outstanding_minor", "outstanding_minor")

    def __init__(
        self,
        message: str,
        close_outstanding_minor: Any = None,
        outstanding_minor: int | None = None,
    ):
        self.close_outstanding_minor = close_outstanding_minor
        self.outstanding_minor = outstanding_minor
        super().__init__(message)


class InvalidRuleExpenseCategoryError(ReimbursementError):
    code: str = "REIMBURSEMENT_CATEGORY_RULE_INVALID_EXPENSE_CATEGORY"
    _detail_fields = ("expense_category_id", "kind")

    def __init__(self, expense_category_id: str, kind: str):
        self.expense_category_id = expense_category_id
        self.kind = kind
        super().__init__("Expense category rule source must be an expense category")


class InvalidRuleInboundCategoryError(ReimbursementError):
    code: str = "REIMBURSEMENT_CATEGORY_RULE_INVALID_INBOUND_CATEGORY"
    _detail_fields = ("inbound_category_id", "kind")

    def __init__(self, inbound_category_id: str, kind: str):
        self.inbound_category_id = inbound_category_id
        self.kind = kind
        super().__init__(
            "Inbound category rule target must be an income or transfer category"
        )


# Idempotency


class IdempotencyKeyConflictError(ReimbursementLedgerError):
    """Idempotency key already used for a different link payload."""

    code: str = "REIMBURSEMENT_IDEMPOTENCY_KEY_CONFLICT"
    http_status: int = 409
    _detail_fields = ("idempotency_key",)

    def __init__(self, idempotency_key: str):
        self.idempotency_key = idempotency_key
        super().__init__(
            "idempotencyKey is already used for a different reimbursement link payload"
        )


# Approval gate


class ApprovalError(ReimbursementLedgerError):
    """Base exception for approval token redemption failures."""

    code: str = "APPROVAL_ERROR"
    http_status: int = 403


class ApprovalNotFoundError(ApprovalError):
    code: str = "APPROVAL_NOT_FOUND"
    _detail_fields = ("operation_id",)

    def __init__(self, operation_id: str):
        self.operation_id = operation_id
        super().__init__("Approval token is invalid")


class ApprovalActionMismatchError(ApprovalError):
    code: str = "APPROVAL_ACTION_MISMATCH"
    _detail_fields = ("expected_action", "actual_action")

    def __init__(self, expected_action: str, actual_action: str):
        self.expected_action = expected_action
        self.actual_action = actual_action
        super().__init__("Approval token action mismatch")


class ApprovalPayloadMismatchError(ApprovalError):
    code: str = "APPROVAL_PAYLOAD_MISMATCH"

    def __init__(self, operation_id: str):
        self.operation_id = operation_id
        super().__init__("Approval token payload mismatch")


class ApprovalAlreadyUsedError(ApprovalError):
    code: str = "APPROVAL_ALREADY_USED"

    def __init__(self, operation_id: str):
        self.operation_id = operation_id
        super().__init__("Approval token already used")


class ApprovalExpiredError(ApprovalError):
    code: str = "APPROVAL_EXPIRED"
    _detail_fields = ("expires_at",)

    def __init__(self, operation_id: str, expires_at: str):
        self.operation_id = operation_id
        self.expires_at = expires_at
        super().__init__("Approval token has expired")


# Store level


class UniqueViolationError(ReimbursementLedgerError):
    """A store-level unique constraint rejected an insert."""

    code: str = "UNIQUE_VIOLATION"
    http_status: int = 409
    _detail_fields = ("table", "constraint")

    def __init__(self, table: str, constraint: str):
        self.table = table
        self.constraint = constraint
        super().__init__(f"Unique constraint {constraint} violated on {table}")


class LinkImmutableError(ReimbursementLedgerError):
    """An in-place update of a reimbursement link was attempted."""

    code: str = "REIMBURSEMENT_LINK_IMMUTABLE"
    http_status: int = 409
    _detail_fields = ("link_id",)

    def __init__(self, link_id: str):
        self.link_id = link_id
        super().__init__(
            f"Reimbursement link {link_id} is immutable; unlink and link again instead"
        )


# Internal


class InternalLedgerError(ReimbursementLedgerError):
    """Unexpected failure; the original exception is chained as __cause__."""

    code: str = "INTERNAL_ERROR"
    http_status: int = 500

    def __init__(self, message: str = "Internal ledger error"):
        super().__init__(message)
