"""
reimbursement_ledger.config -- single public entrypoint for settings.

Responsibility:
    Provides the ONLY way to obtain settings at runtime through
    ``get_active_settings()``.  No other component reads configuration
    files or environment variables directly.

Resolution order:
    1. The YAML file named by ``REIMBURSEMENT_LEDGER_CONFIG``, or the
       packaged ``defaults.yaml``.
    2. Environment overrides: ``DATABASE_URL``, ``LOG_LEVEL``.

Failure modes:
    - ``FileNotFoundError`` -- the configured file does not exist.
    - ``ValueError`` -- invalid setting values.
"""

from __future__ import annotations

import os
import threading
from dataclasses import replace
from pathlib import Path

from reimbursement_ledger.config.loader import (
    compute_checksum,
    load_settings,
    parse_log_level,
    parse_settings,
)
from reimbursement_ledger.config.schema import (
    ApprovalSettings,
    AutoMatchSettings,
    DatabaseSettings,
    LedgerSettings,
    LoggingSettings,
)
from reimbursement_ledger.logging_config import get_logger

__all__ = [
    "ApprovalSettings",
    "AutoMatchSettings",
    "DatabaseSettings",
    "LedgerSettings",
    "LoggingSettings",
    "compute_checksum",
    "get_active_settings",
    "load_settings",
    "parse_settings",
    "reset_active_settings",
]

_logger = get_logger("config")

CONFIG_ENV_VAR = "REIMBURSEMENT_LEDGER_CONFIG"
_DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"

_active: LedgerSettings | None = None
_lock = threading.Lock()


def _apply_env_overrides(settings: LedgerSettings) -> LedgerSettings:
    database_url = os.environ.get("DATABASE_URL")
    if database_url:
        settings = replace(
            settings, database=replace(settings.database, url=database_url)
        )
    log_level = os.environ.get("LOG_LEVEL")
    if log_level:
        settings = replace(
            settings, logging=LoggingSettings(level=parse_log_level(log_level))
        )
    return settings


def get_active_settings() -> LedgerSettings:
    """The ONLY public settings entrypoint. Cached after the first call."""
    global _active
    with _lock:
        if _active is not None:
            return _active

        path = Path(os.environ.get(CONFIG_ENV_VAR) or _DEFAULT_CONFIG_PATH)
        settings = _apply_env_overrides(load_settings(path))
        _logger.info(
            "settings_loaded",
            extra={
                "config_path": str(path),
                "checksum": compute_checksum(settings),
            },
        )
        _active = settings
        return settings


def reset_active_settings() -> None:
    """Drop the cached settings. FOR TESTING ONLY."""
    global _active
    with _lock:
        _active = None
