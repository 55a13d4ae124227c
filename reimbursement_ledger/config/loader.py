"""
Settings loader (``reimbursement_ledger.config.loader``).

Responsibility
--------------
Loads a YAML settings document and parses it into the frozen dataclasses
of ``reimbursement_ledger.config.schema``.

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass from ``schema.py``.
* Invalid values raise ``ValueError`` with a descriptive message; unknown
  keys are ignored.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Out-of-range values  -> ``ValueError``.
"""

from __future__ import annotations

from dataclasses import asdict
from pathlib import Path
from typing import Any

import yaml

from reimbursement_ledger.config.schema import (
    ApprovalSettings,
    AutoMatchSettings,
    DatabaseSettings,
    LedgerSettings,
    LoggingSettings,
)
from reimbursement_ledger.utils.hashing import canonicalize_json, sha256_hex

_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Settings file {path} must contain a mapping")
    return data


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ValueError(f"Settings section '{name}' must be a mapping")
    return section


def _non_negative_int(value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"{name} must be a non-negative integer, got {value!r}")
    return value


def parse_log_level(value: Any) -> str:
    level = str(value).strip().upper()
    if level not in _LOG_LEVELS:
        raise ValueError(f"Unknown log level {value!r}")
    return level


def parse_settings(data: dict[str, Any]) -> LedgerSettings:
    """
    Parse a ``LedgerSettings`` from a dict.

    Postconditions:
        - Missing sections and keys take the schema defaults.
    Raises:
        ValueError: if any value is out of range.
    """
    db = _section(data, "database")
    approvals = _section(data, "approvals")
    auto_match = _section(data, "auto_match")
    log = _section(data, "logging")

    defaults = LedgerSettings()

    ttl = _non_negative_int(
        approvals.get("ttl_minutes", defaults.approvals.ttl_minutes),
        "approvals.ttl_minutes",
    )
    if ttl == 0:
        raise ValueError("approvals.ttl_minutes must be positive")

    window = _non_negative_int(
        auto_match.get(
            "default_recovery_window_days",
            defaults.auto_match.default_recovery_window_days,
        ),
        "auto_match.default_recovery_window_days",
    )
    scan_limit = _non_negative_int(
        auto_match.get("scan_limit", defaults.auto_match.scan_limit),
        "auto_match.scan_limit",
    )
    if scan_limit == 0:
        raise ValueError("auto_match.scan_limit must be positive")

    return LedgerSettings(
        database=DatabaseSettings(
            url=str(db.get("url", defaults.database.url)),
            echo=bool(db.get("echo", defaults.database.echo)),
        ),
        approvals=ApprovalSettings(ttl_minutes=ttl),
        auto_match=AutoMatchSettings(
            default_recovery_window_days=window,
            scan_limit=scan_limit,
        ),
        logging=LoggingSettings(
            level=parse_log_level(log.get("level", defaults.logging.level)),
        ),
    )


def load_settings(path: Path | str) -> LedgerSettings:
    """Load and parse a settings YAML file."""
    return parse_settings(load_yaml_file(Path(path)))


def compute_checksum(settings: LedgerSettings) -> str:
    """
    Compute SHA-256 checksum of the canonical JSON serialization.

    Identical settings always produce identical checksums.
    """
    return sha256_hex(canonicalize_json(asdict(settings)))
