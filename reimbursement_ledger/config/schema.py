"""
Ledger settings schema.

Typed, frozen view of the YAML configuration. The loader parses YAML into
these types; services receive a ``LedgerSettings`` instance and never read
files or environment variables themselves.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class DatabaseSettings:
    """Where the ledger tables live."""

    url: str = "sqlite:///:memory:"
    echo: bool = False


@dataclass(frozen=True)
class ApprovalSettings:
    """Approval gate token lifetime."""

    ttl_minutes: int = 15


@dataclass(frozen=True)
class AutoMatchSettings:
    """Auto-match engine knobs."""

    # Used when a category carries no recovery window of its own.
    default_recovery_window_days: int = 14
    # Upper bound on expenses loaded per auto-match run.
    scan_limit: int = 10000


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"


@dataclass(frozen=True)
class LedgerSettings:
    """Root settings object."""

    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    approvals: ApprovalSettings = field(default_factory=ApprovalSettings)
    auto_match: AutoMatchSettings = field(default_factory=AutoMatchSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
