"""
Declarative base for the advance tables.

Column types follow the Python annotations through ``type_annotation_map``:

    Decimal   -> Numeric(38, 9)       amounts are never floats
    datetime  -> DateTime(tz=True)    instants come from the service Clock
    date      -> Date                 spend, disbursement and payment dates
    UUID      -> String(36)           portable between SQLite and PostgreSQL

Every table gets a UUID primary key.  ``TrackedBase`` adds the
``created_at`` / ``updated_at`` pair used by ``AdvanceModel``; the service,
not the database, supplies both values, and ``updated_at`` doubles as the
compare-and-swap token for concurrent saves.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID, uuid4

from sqlalchemy import Date, DateTime, Numeric, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """``uuid.UUID`` in Python, 36-character text in the database."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else UUID(value)


class Base(DeclarativeBase):
    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(38, 9),
        datetime: DateTime(timezone=True),
        date: Date,
        UUID: UUIDString(),
    }

    id: Mapped[UUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TrackedBase(Base):
    """Base for rows with a lifecycle: written once, then updated in place."""

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
