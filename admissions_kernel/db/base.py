"""
Module: admissions_kernel.db.base
Responsibility: Declarative base classes for all SQLAlchemy ORM models.
    Provides the UUID primary key convention, the type annotation map for
    consistent column types, and the TrackedBase mixin for audit metadata.
Architecture position: Kernel > DB.  Lowest-level import target within the
    kernel.  ALL model files import from here.  This module MUST NOT import
    from models/, services/, selectors/, domain/, or outer layers.

Invariants enforced:
    - UUID primary keys: every model inherits a uuid4-generated key.
    - Timestamps are timezone-aware columns, read back in UTC.
    - TrackedBase provides created_at, updated_at, created_by_id and
      updated_by_id on every mutable definition row.

Failure modes:
    - IntegrityError on a duplicate primary key (uuid4, so practically never).
"""

from datetime import UTC, datetime
from typing import Any, ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import JSON, BigInteger, DateTime, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """
    UUID type stored as String(36) for cross-database portability.

    Guarantees:
        - process_bind_param: UUID -> str on INSERT/UPDATE.
        - process_result_value: str -> UUID on SELECT.
    """

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


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware timestamp that always comes back in UTC.

    SQLite has no timezone storage and returns naive values; PostgreSQL
    returns them in the session time zone.  Both are normalized here.

    Guarantees:
        - process_bind_param: aware values are converted to UTC; naive
          values are taken to be UTC already.
        - process_result_value: always an aware UTC datetime.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


class Base(DeclarativeBase):
    """
    Declarative base for all SQLAlchemy models.

    Contract:
        Every ORM model inherits from Base (or TrackedBase) and receives a
        UUID primary key plus a shared type_annotation_map.

    Guarantees:
        - id is always a uuid4-generated UUID stored as String(36).
        - datetime maps to UTCDateTime (aware, UTC).
        - dict / list map to JSON.
        - int maps to BigInteger, safe for monotonic sequences.
    """

    type_annotation_map: ClassVar[dict] = {
        datetime: UTCDateTime(),
        PyUUID: UUIDString(),
        int: BigInteger,
        dict[str, Any]: JSON,
        list[Any]: JSON,
    }

    id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        primary_key=True,
        default=uuid4,
    )


class TrackedBase(Base):
    """
    Abstract base with audit timestamp and actor tracking.

    Contract:
        Records who created and last modified the row, and when.

    Guarantees:
        - created_at is set on INSERT and never changes.
        - updated_at auto-updates on every UPDATE.
        - created_by_id is required.
        - updated_by_id is nullable.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
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


# Re-export UUID for convenience
UUID = PyUUID
