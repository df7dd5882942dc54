"""
Module: leasing_kernel.db.base
Responsibility: Declarative base classes for all SQLAlchemy ORM models.  Provides
    the UUID primary key convention, the type annotation map that keeps column
    types consistent across modules, and the TrackedBase audit mixin.
Architecture position: Kernel > DB.  Lowest-level import target; every
    ``orm.py`` in leasing_modules imports from here.

Invariants enforced:
    - UUID primary keys stored as String(36) so the schema runs unchanged on
      PostgreSQL and SQLite.
    - Money precision: Python Decimal maps to Numeric(14, 2).  Amounts are
      rounded to cents before they reach the ORM; never use float.
    - Audit columns: TrackedBase records who created/last changed a row.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, Date, DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """UUID stored as its 36-character string form."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None:
            return str(value)
        return None

    def process_result_value(self, value, dialect):
        if value is not None:
            return PyUUID(value)
        return None


class Base(DeclarativeBase):
    """
    Declarative base for all leasing ORM models.

    Guarantees:
        - id is a uuid4-generated UUID stored as String(36).
        - Decimal maps to Numeric(14, 2); date to Date; datetime to a
          timezone-aware DateTime.
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(14, 2),
        date: Date,
        datetime: DateTime(timezone=True),
        PyUUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        primary_key=True,
        default=uuid4,
    )


class TrackedBase(Base):
    """
    Abstract base with audit timestamps and actor tracking.

    ``created_by_id`` is required: every row has a creator, including rows
    written by the sweeper (which acts as ``Actor.system()``).
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    created_by_id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    updated_by_id: Mapped[PyUUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )


UUID = PyUUID
