"""
Module: reimbursement_ledger.db.base
Responsibility: Declarative base class for all SQLAlchemy ORM models.  Provides
    the string primary key convention and the type annotation map for
    consistent column types.
Architecture position: DB layer.  This is the lowest-level import target;
    ALL model files import from here.  This module MUST NOT import from
    models/, stores/, services/, domain/, or engines/.

Invariants enforced:
    - Text primary keys: every model gets a uuid4 string id unless the
      caller supplies one (external expense/category ids are opaque text).
    - Integer minor units: int maps to BigInteger.  Money is never a float.
    - Timestamps: datetime maps to UTCDateTime, which always hands back an
      aware UTC datetime, even on SQLite where the driver drops tzinfo.
"""

from datetime import datetime, timezone
from typing import ClassVar
from uuid import uuid4

from sqlalchemy import BigInteger, DateTime, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


def new_id() -> str:
    return str(uuid4())


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware datetime that always round-trips as UTC.

    Guarantees:
        - process_bind_param: aware -> UTC; naive values are taken as UTC.
        - process_result_value: naive values from the driver are tagged UTC.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class Base(DeclarativeBase):
    """
    Declarative base for all SQLAlchemy models.

    Guarantees:
        - id is a String(64) primary key defaulting to a uuid4 string.
        - datetime maps to UTCDateTime.
        - int maps to BigInteger.
    """

    type_annotation_map: ClassVar[dict] = {
        datetime: UTCDateTime(),
        int: BigInteger,
        str: String(255),
    }

    id: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
        default=new_id,
    )
