"""
Process start-up: settings -> logging -> engine -> schema.

Usage:
    settings = bootstrap()
    session = get_session()
    ledger = ReimbursementLedger.from_session(session, settings=settings)
"""

from __future__ import annotations

from reimbursement_ledger.config import LedgerSettings, get_active_settings
from reimbursement_ledger.db.engine import create_tables, init_engine_from_url
from reimbursement_ledger.logging_config import configure_logging, get_logger

logger = get_logger("bootstrap")


def bootstrap(settings: LedgerSettings | None = None, *, create_schema: bool = True) -> LedgerSettings:
    """Configure logging and the module engine from ``settings``."""
    settings = settings or get_active_settings()
    configure_logging(level=settings.logging.level)
    init_engine_from_url(settings.database.url, echo=settings.database.echo)
    if create_schema:
        create_tables()
    logger.info(
        "ledger_bootstrapped",
        extra={"log_level": settings.logging.level, "create_schema": create_schema},
    )
    return settings
