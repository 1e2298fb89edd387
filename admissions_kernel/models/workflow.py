"""
Module: admissions_kernel.models.workflow
Responsibility: ORM persistence for workflow definitions: the Workflow
    itself, its stages (nodes) and its transitions (directed edges).
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - At most one active workflow per application_type (partial unique
      index uq_workflow_active_type; WorkflowRegistry takes row locks and
      deactivates before activating).
    - Stage names are unique within a workflow.
    - Transition priority is allocated from a monotonic sequence, so the
      tie-break order between automatic transitions is creation order.

Failure modes:
    - IntegrityError if two workflows of one type are flagged active.
    - IntegrityError on a duplicate stage name within a workflow.

Audit relevance:
    Definition changes are audited by WorkflowService / WorkflowRegistry.
    These rows are mutable; history of *applications* lives in
    ApplicationStatus, which references stages by id.
"""

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
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from admissions_kernel.db.base import TrackedBase, UUIDString


class Workflow(TrackedBase):
    """
    A named, versionless directed graph of admissions stages.

    Contract:
        Workflows are created inactive.  Activation goes exclusively through
        WorkflowRegistry.activate(), which validates the graph first.

    Guarantees:
        - stages are ordered by sequence; transitions by priority.
        - Deleting a workflow deletes its stages and transitions.
    """

    __tablename__ = "workflows"
    __table_args__ = (
        Index("idx_workflow_type", "application_type"),
        Index(
            "uq_workflow_active_type",
            "application_type",
            unique=True,
            sqlite_where=text("is_active = 1"),
            postgresql_where=text("is_active"),
        ),
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    application_type: Mapped[str] = mapped_column(String(50), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    stages: Mapped[list["WorkflowStage"]] = relationship(
        back_populates="workflow",
        cascade="all, delete-orphan",
        order_by="WorkflowStage.sequence",
    )
    transitions: Mapped[list["WorkflowTransition"]] = relationship(
        back_populates="workflow",
        cascade="all, delete-orphan",
        order_by="WorkflowTransition.priority",
    )

    def __repr__(self) -> str:
        state = "active" if self.is_active else "inactive"
        return f"<Workflow {self.name} ({self.application_type}, {state})>"


class WorkflowStage(TrackedBase):
    """
    A node of a workflow graph.

    required_documents and required_actions are lists of identifiers;
    notification_triggers is a list of {event, template, recipients,
    channels} mappings consumed by the notification dispatcher.
    """

    __tablename__ = "workflow_stages"
    __table_args__ = (
        UniqueConstraint("workflow_id", "name", name="uq_stage_workflow_name"),
        Index("idx_stage_workflow_sequence", "workflow_id", "sequence"),
    )

    workflow_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("workflows.id", ondelete="CASCADE"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    required_documents: Mapped[list[Any]] = mapped_column(
        JSON, nullable=False, default=list
    )
    required_actions: Mapped[list[Any]] = mapped_column(
        JSON, nullable=False, default=list
    )
    notification_triggers: Mapped[list[Any]] = mapped_column(
        JSON, nullable=False, default=list
    )
    assigned_role: Mapped[str | None] = mapped_column(String(100), nullable=True)

    workflow: Mapped[Workflow] = relationship(back_populates="stages")

    def __repr__(self) -> str:
        return f"<WorkflowStage {self.sequence}:{self.name}>"


class WorkflowTransition(TrackedBase):
    """
    A directed edge between two stages of the same workflow.

    conditions holds a list of condition expressions (see
    admissions_kernel.domain.conditions); all must hold for the
    transition to be available.  An empty required_permissions list
    means anyone may execute it.
    """

    __tablename__ = "workflow_transitions"
    __table_args__ = (
        Index("idx_transition_source", "source_stage_id", "priority"),
        Index("idx_transition_workflow", "workflow_id"),
    )

    workflow_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("workflows.id", ondelete="CASCADE"),
        nullable=False,
    )
    source_stage_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("workflow_stages.id", ondelete="CASCADE"),
        nullable=False,
    )
    target_stage_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("workflow_stages.id", ondelete="CASCADE"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    conditions: Mapped[list[Any]] = mapped_column(JSON, nullable=False, default=list)
    required_permissions: Mapped[list[Any]] = mapped_column(
        JSON, nullable=False, default=list
    )
    is_automatic: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    priority: Mapped[int] = mapped_column(BigInteger, nullable=False)

    workflow: Mapped[Workflow] = relationship(back_populates="transitions")

    def __repr__(self) -> str:
        kind = "auto" if self.is_automatic else "manual"
        return f"<WorkflowTransition {self.name} ({kind}, p={self.priority})>"
