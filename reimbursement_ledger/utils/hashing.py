"""
Payload hashing for approvals and audit events.

An approval token stores ``operation_hash(action, payload)`` when it is
issued and recomputes it on redemption; the audit sink stores the same
hash next to each event.  Both depend on ``canonicalize_json`` producing
identical text for equal payloads, whatever their key order.
"""

import hashlib
import json
from datetime import date, datetime
from enum import Enum
from typing import Any


def _encode_value(obj: Any) -> Any:
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    raise TypeError(f"Cannot hash value of type {type(obj).__name__}")


def canonicalize_json(data: Any) -> str:
    """Sorted keys, no whitespace."""
    return json.dumps(data, sort_keys=True, separators=(",", ":"), default=_encode_value)


def sha256_hex(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def operation_hash(action: str, payload: dict[str, Any]) -> str:
    """``sha256(action + ":" + canonical JSON of payload)``."""
    return sha256_hex(f"{action}:{canonicalize_json(payload)}")
