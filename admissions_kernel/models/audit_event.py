"""
Module: admissions_kernel.models.audit_event
Responsibility: ORM persistence for the tamper-evident audit hash chain.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Audit records are append-only; no UPDATE or DELETE (ORM listeners).
    - hash = H(entity_type | entity_id | action | payload_hash | prev_hash),
      validated by AuditorService.
    - seq is monotonically increasing, allocated by SequenceService.

Audit relevance:
    AuditEvent IS the audit trail.  Workflow initialization, every executed
    transition (manual or automatic), stage completion, document
    verification and every workflow definition change produce one.
"""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, BigInteger, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from admissions_kernel.db.base import Base, UTCDateTime, UUIDString


class AuditAction(str, Enum):
    """Types of auditable actions."""

    # Application lifecycle
    APPLICATION_CREATED = "application_created"
    APPLICATION_INITIALIZED = "application_initialized"
    TRANSITION_EXECUTED = "transition_executed"
    STAGE_COMPLETED = "stage_completed"
    DOCUMENT_ATTACHED = "document_attached"
    DOCUMENT_VERIFIED = "document_verified"
    APPLICATION_DELETED = "application_deleted"

    # Workflow definition lifecycle
    WORKFLOW_CREATED = "workflow_created"
    WORKFLOW_UPDATED = "workflow_updated"
    WORKFLOW_DELETED = "workflow_deleted"
    WORKFLOW_ACTIVATED = "workflow_activated"
    WORKFLOW_DEACTIVATED = "workflow_deactivated"
    WORKFLOW_DUPLICATED = "workflow_duplicated"
    STAGE_CREATED = "stage_created"
    STAGE_UPDATED = "stage_updated"
    STAGE_DELETED = "stage_deleted"
    STAGES_REORDERED = "stages_reordered"
    TRANSITION_CREATED = "transition_created"
    TRANSITION_UPDATED = "transition_updated"
    TRANSITION_DELETED = "transition_deleted"


class AuditEvent(Base):
    """
    Audit event with hash chain for tamper evidence.

    Contract:
        Append-only.  Each row's hash includes the previous row's hash.

    Guarantees:
        - seq is globally unique and monotonically increasing.
        - prev_hash is None only for the genesis event.

    Non-goals:
        - Does NOT verify hash correctness at INSERT time; that is the
          responsibility of AuditorService.
    """

    __tablename__ = "audit_events"
    __table_args__ = (
        Index("idx_audit_entity", "entity_type", "entity_id"),
        Index("idx_audit_action", "action"),
        Index("idx_audit_occurred", "occurred_at"),
    )

    seq: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    occurred_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    payload: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    prev_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    hash: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return f"<AuditEvent {self.action} on {self.entity_type}:{self.entity_id}>"

    @property
    def is_genesis(self) -> bool:
        """True iff this is the first event in the hash chain."""
        return self.prev_hash is None
