"""Utility modules for the reimbursement ledger."""

from reimbursement_ledger.utils.hashing import (
    canonicalize_json,
    operation_hash,
    sha256_hex,
)
from reimbursement_ledger.utils.timestamps import (
    format_iso_millis,
    normalize_iso_text,
    parse_iso_datetime,
)

__all__ = [
    "canonicalize_json",
    "format_iso_millis",
    "normalize_iso_text",
    "operation_hash",
    "parse_iso_datetime",
    "sha256_hex",
]
