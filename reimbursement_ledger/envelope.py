"""
Wire envelope for ledger results.

Responsibility:
    Renders ledger results and errors in the ``{ok, data, meta}`` /
    ``{ok, error}`` shape an HTTP or CLI adapter returns verbatim.

Architecture position:
    Outermost layer.  Routing itself lives outside this package; adapters
    call ``ok`` on a returned value and ``error_response`` in their
    exception handler.

Invariants enforced:
    - Dataclasses become dicts with camelCase keys (a trailing underscore,
      as in ``from_``, is dropped).
    - Datetimes render as UTC ISO-8601 with millisecond precision; enums
      render as their values.
    - Exceptions that are not ledger errors never leak their message.
"""

from __future__ import annotations

from dataclasses import fields, is_dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any

from reimbursement_ledger.exceptions import InternalLedgerError, ReimbursementLedgerError
from reimbursement_ledger.logging_config import get_logger
from reimbursement_ledger.utils.timestamps import format_iso_millis

logger = get_logger("envelope")


def camel_case(name: str) -> str:
    head, *rest = name.rstrip("_").split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def to_wire(value: Any) -> Any:
    """Convert a result value into JSON-safe wire form."""
    if is_dataclass(value) and not isinstance(value, type):
        return {camel_case(f.name): to_wire(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return format_iso_millis(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, dict):
        return {camel_case(str(key)): to_wire(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_wire(item) for item in value]
    return value


def ok(data: Any, meta: dict[str, Any] | None = None) -> dict[str, Any]:
    return {"ok": True, "data": to_wire(data), "meta": to_wire(meta or {})}


def error_response(exc: BaseException) -> tuple[int, dict[str, Any]]:
    """
    Map an exception to ``(http_status, body)``.

    Ledger errors keep their code, message and details.  Anything else is
    logged and reported as a generic INTERNAL_ERROR.
    """
    if not isinstance(exc, ReimbursementLedgerError):
        logger.error(
            "unhandled_exception",
            extra={"exc_class": type(exc).__name__},
            exc_info=(type(exc), exc, exc.__traceback__),
        )
        exc = InternalLedgerError()

    error = exc.to_dict()
    if "details" in error:
        error["details"] = to_wire(error["details"])
    return exc.http_status, {"ok": False, "error": error}
