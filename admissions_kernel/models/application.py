"""
Module: admissions_kernel.models.application
Responsibility: ORM persistence for applications, their documents and the
    append-only status ledger.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - ApplicationStatus rows are append-only (db/immutability.py).  They are
      deleted only together with their owning Application.
    - Application.version is an optimistic-lock counter
      (version_id_col); every pointer repoint bumps it.
    - ApplicationStatus.seq is unique and allocated by SequenceService, so
      (seq, created_at) totally orders each application's history.

Failure modes:
    - StaleDataError on a lost update (surfaced as OptimisticLockError).
    - ImmutabilityViolationError on any UPDATE/DELETE of a status row.

Audit relevance:
    ApplicationStatus IS the application's history.  The current status is
    a pointer into it, never a separate copy.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from admissions_kernel.db.base import Base, TrackedBase, UTCDateTime, UUIDString


class Application(TrackedBase):
    """
    A prospective student's application moving through a workflow.

    attributes carries the applicant/application fields that transition
    conditions read (e.g. is_submitted, application_fee_paid,
    completed_actions).
    """

    __tablename__ = "applications"
    __table_args__ = (Index("idx_application_type", "application_type"),)

    application_type: Mapped[str] = mapped_column(String(50), nullable=False)
    attributes: Mapped[dict[str, Any]] = mapped_column(
        JSON, nullable=False, default=dict
    )
    current_status_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey(
            "application_statuses.id",
            use_alter=True,
            name="fk_application_current_status",
        ),
        nullable=True,
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    statuses: Mapped[list["ApplicationStatus"]] = relationship(
        back_populates="application",
        foreign_keys="ApplicationStatus.application_id",
        cascade="all, delete-orphan",
        order_by="ApplicationStatus.seq",
    )
    documents: Mapped[list["ApplicationDocument"]] = relationship(
        back_populates="application",
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Application {self.id} ({self.application_type})>"


class ApplicationStatus(Base):
    """
    One immutable entry of an application's status history.

    status is the stage name denormalized at creation, so renaming a stage
    later does not rewrite history.
    """

    __tablename__ = "application_statuses"
    __table_args__ = (
        Index("idx_status_application_seq", "application_id", "seq"),
        Index("idx_status_stage", "stage_id"),
    )

    application_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("applications.id", ondelete="CASCADE"),
        nullable=False,
    )
    stage_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("workflow_stages.id"),
        nullable=False,
    )
    status: Mapped[str] = mapped_column(String(100), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    seq: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)

    application: Mapped[Application] = relationship(
        back_populates="statuses",
        foreign_keys=[application_id],
    )

    def __repr__(self) -> str:
        return f"<ApplicationStatus #{self.seq} {self.status}>"


class ApplicationDocument(TrackedBase):
    """A document submitted for an application."""

    __tablename__ = "application_documents"
    __table_args__ = (Index("idx_document_application", "application_id"),)

    application_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("applications.id", ondelete="CASCADE"),
        nullable=False,
    )
    document_type: Mapped[str] = mapped_column(String(100), nullable=False)
    verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    verified_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(), nullable=True
    )
    verified_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    application: Mapped[Application] = relationship(back_populates="documents")

    def __repr__(self) -> str:
        state = "verified" if self.verified else "unverified"
        return f"<ApplicationDocument {self.document_type} ({state})>"
