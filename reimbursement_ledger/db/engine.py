"""
Engine and session management for the ledger database.

Responsibility:
    Builds the SQLAlchemy engine for a configured URL, installs one
    process-wide engine plus session factory, and creates or drops the
    ledger schema.

Invariants enforced:
    - In-memory SQLite shares a single connection (StaticPool), so every
      session sees the same database.
    - SQLite runs with foreign keys on, and SQLAlchemy emits ``BEGIN``
      itself so nested savepoints roll back independently.
    - PostgreSQL uses a pre-pinged QueuePool at READ COMMITTED.

Failure modes:
    - RuntimeError from the accessors before ``init_engine_from_url()``.
"""

import atexit
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from reimbursement_ledger.logging_config import get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None


def _on_sqlite_connect(dbapi_connection, connection_record) -> None:
    # Hand transaction control to SQLAlchemy so SAVEPOINTs nest inside the
    # outer transaction instead of committing on RELEASE.
    dbapi_connection.isolation_level = None
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _on_sqlite_begin(conn) -> None:
    conn.exec_driver_sql("BEGIN")


def build_engine(
    database_url: str,
    echo: bool = False,
    pool_size: int = 10,
    max_overflow: int = 5,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
) -> Engine:
    """
    Create (but do not install) an engine for ``database_url``.

    SQLite gets a StaticPool for in-memory databases and foreign keys
    switched on; any other backend gets a QueuePool at READ COMMITTED.
    """
    url = make_url(database_url)

    if url.get_backend_name() == "sqlite":
        kwargs: dict = {
            "echo": echo,
            "connect_args": {"check_same_thread": False},
        }
        if url.database in (None, "", ":memory:"):
            kwargs["poolclass"] = StaticPool
        engine = create_engine(url, **kwargs)
        event.listen(engine, "connect", _on_sqlite_connect)
        event.listen(engine, "begin", _on_sqlite_begin)
        return engine

    return create_engine(
        url,
        echo=echo,
        poolclass=QueuePool,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=True,
        pool_timeout=pool_timeout,
        pool_recycle=pool_recycle,
        isolation_level="READ COMMITTED",
    )


def init_engine_from_url(database_url: str, echo: bool = False, **pool_kwargs) -> Engine:
    """
    Install the process-wide engine and session factory for ``database_url``.

    Calling it again disposes the previous engine first.  ``pool_kwargs``
    (pool_size, max_overflow, pool_timeout, pool_recycle) only apply to
    pooled backends.
    """
    global _engine, _session_factory

    if _engine is not None:
        _engine.dispose()

    _engine = build_engine(database_url, echo=echo, **pool_kwargs)
    _session_factory = sessionmaker(bind=_engine, expire_on_commit=False)

    logger.info(
        "engine_initialized",
        extra={"dialect": _engine.dialect.name, "echo": echo},
    )
    return _engine


def _require_initialized() -> tuple[Engine, sessionmaker[Session]]:
    if _engine is None or _session_factory is None:
        raise RuntimeError("No ledger database configured; call init_engine_from_url() first")
    return _engine, _session_factory


def get_engine() -> Engine:
    return _require_initialized()[0]


def get_session_factory() -> sessionmaker[Session]:
    return _require_initialized()[1]


def get_session() -> Session:
    """New session bound to the installed engine."""
    return get_session_factory()()


@contextmanager
def session_scope() -> Iterator[Session]:
    """
    Commit-or-rollback wrapper for callers outside the ledger orchestrator,
    such as seeding scripts::

        with session_scope() as session:
            SqlCategoryStore(session).add(category)
    """
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.warning("session_scope_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def _metadata():
    # Importing the models package registers every table on Base.metadata.
    import reimbursement_ledger.models  # noqa: F401
    from reimbursement_ledger.db.base import Base

    return Base.metadata


def create_tables(engine: Engine | None = None) -> None:
    _metadata().create_all(engine or get_engine())


def drop_tables(engine: Engine | None = None) -> None:
    _metadata().drop_all(engine or get_engine())


def reset_engine() -> None:
    """Dispose and forget the installed engine (test cleanup)."""
    global _engine, _session_factory

    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None


atexit.register(reset_engine)
