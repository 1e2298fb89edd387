"""
WorkflowRegistry -- which workflow is active for each application type.

Responsibility:
    Activation, deactivation and duplication of workflow definitions.
    Activation is the one place the graph validator blocks: an unsound
    graph never becomes active.

Architecture position:
    Kernel > Services -- imperative shell.  Flush-only; the caller commits
    (``session_scope()`` or an explicit ``session.commit()``).

Invariants enforced:
    - Single active workflow per application_type: every workflow row of
      the type is locked (SELECT ... FOR UPDATE, stable order), the prior
      active one is deactivated and flushed before the new one is flagged.
      The partial unique index uq_workflow_active_type backs this up.
    - Only a graph that passes validate_workflow_graph is activated.

Failure modes:
    - WorkflowNotFoundError.
    - InvalidWorkflowGraphError with the validator's full issue list.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from admissions_kernel.domain.clock import Clock, SystemClock
from admissions_kernel.domain.dtos import WorkflowSummary
from admissions_kernel.domain.events import AuditEntry, AuditSink
from admissions_kernel.domain.graph_validator import validate_workflow_graph
from admissions_kernel.exceptions import InvalidWorkflowGraphError, WorkflowNotFoundError
from admissions_kernel.logging_config import get_logger
from admissions_kernel.models.audit_event import AuditAction
from admissions_kernel.models.workflow import (
    Workflow,
    WorkflowStage,
    WorkflowTransition,
)
from admissions_kernel.selectors.workflow_selector import WorkflowSelector
from admissions_kernel.services.auditor_service import AuditorService
from admissions_kernel.services.base import BaseService
from admissions_kernel.services.sequence_service import SequenceService

logger = get_logger("services.workflow_registry")


class WorkflowRegistry(BaseService[Workflow]):
    """
    Selects and switches the active workflow per application type.

    Guarantees:
        - After ``activate`` returns, exactly one workflow of the type is
          active and it is the requested one.
        - Applications already on the previous workflow keep their
          history and stay on it.
    """

    def __init__(
        self,
        session: Session,
        audit_sink: AuditSink | None = None,
        clock: Clock | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._audit = audit_sink or AuditorService(session, self._clock)
        self._selector = WorkflowSelector(session)
        self._sequences = SequenceService(session)

    def get_active_workflow(self, application_type: str) -> WorkflowSummary | None:
        workflow_id = self._selector.active_workflow_id(application_type)
        if workflow_id is None:
            return None
        return self._selector.summary(workflow_id)

    def _lock_type(self, application_type: str) -> list[Workflow]:
        return list(
            self.session.execute(
                select(Workflow)
                .where(Workflow.application_type == application_type)
                .order_by(Workflow.id)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalars()
        )

    def activate(self, workflow_id: UUID, actor_id: UUID) -> WorkflowSummary:
        """
        Make ``workflow_id`` the active workflow of its type.

        Activating the already active workflow is a no-op.

        Raises:
            WorkflowNotFoundError: Unknown workflow.
            InvalidWorkflowGraphError: The graph failed validation.
        """
        graph = self._selector.load_graph(workflow_id)
        validation = validate_workflow_graph(graph)
        if not validation.valid:
            logger.warning(
                "workflow_activation_rejected",
                extra={
                    "workflow_id": str(workflow_id),
                    "issues": list(validation.issues),
                },
            )
            raise InvalidWorkflowGraphError(str(workflow_id), list(validation.issues))

        rows = self._lock_type(graph.application_type)
        target = next(row for row in rows if row.id == workflow_id)
        if target.is_active:
            return self._selector.summary(workflow_id)

        previous = [row for row in rows if row.is_active]
        for row in previous:
            row.is_active = False
            row.updated_by_id = actor_id
        # Deactivation must reach the database before the unique index sees
        # a second active row.
        self.session.flush()

        target.is_active = True
        target.updated_by_id = actor_id
        self.session.flush()

        definition_hash = self._selector.definition_hash(workflow_id)
        for row in previous:
            self._audit.record(
                AuditEntry(
                    action=AuditAction.WORKFLOW_DEACTIVATED,
                    resource_type="Workflow",
                    resource_id=row.id,
                    actor_id=actor_id,
                    before={"is_active": True},
                    after={"is_active": False},
                    details={"replaced_by": str(workflow_id)},
                )
            )
        self._audit.record(
            AuditEntry(
                action=AuditAction.WORKFLOW_ACTIVATED,
                resource_type="Workflow",
                resource_id=workflow_id,
                actor_id=actor_id,
                before={"is_active": False},
                after={"is_active": True},
                details={
                    "application_type": graph.application_type,
                    "definition_hash": definition_hash,
                    "previous_workflow_ids": [str(row.id) for row in previous],
                },
            )
        )

        logger.info(
            "workflow_activated",
            extra={
                "workflow_id": str(workflow_id),
                "application_type": graph.application_type,
                "definition_hash": definition_hash,
                "deactivated": [str(row.id) for row in previous],
            },
        )
        return self._selector.summary(workflow_id)

    def deactivate(self, workflow_id: UUID, actor_id: UUID) -> WorkflowSummary:
        """Deactivate a workflow.  New applications of its type then fail to
        initialize until another workflow is activated."""
        workflow = self.session.get(Workflow, workflow_id)
        if workflow is None:
            raise WorkflowNotFoundError(str(workflow_id))

        rows = self._lock_type(workflow.application_type)
        target = next(row for row in rows if row.id == workflow_id)
        if not target.is_active:
            return self._selector.summary(workflow_id)

        target.is_active = False
        target.updated_by_id = actor_id
        self.session.flush()

        self._audit.record(
            AuditEntry(
                action=AuditAction.WORKFLOW_DEACTIVATED,
                resource_type="Workflow",
                resource_id=workflow_id,
                actor_id=actor_id,
                before={"is_active": True},
                after={"is_active": False},
            )
        )
        logger.info(
            "workflow_deactivated",
            extra={
                "workflow_id": str(workflow_id),
                "application_type": target.application_type,
            },
        )
        return self._selector.summary(workflow_id)

    def duplicate(self, workflow_id: UUID, new_name: str, actor_id: UUID) -> WorkflowSummary:
        """
        Copy a workflow's stages and transitions into a new, inactive one.

        Stage ids are remapped; transitions get fresh priorities in the
        source's priority order, so automatic tie-breaks are preserved.
        """
        source = self.session.get(Workflow, workflow_id)
        if source is None:
            raise WorkflowNotFoundError(str(workflow_id))

        copy = Workflow(
            name=new_name,
            description=source.description,
            application_type=source.application_type,
            is_active=False,
            created_by_id=actor_id,
        )
        self.session.add(copy)
        self.session.flush()

        stages = self.session.execute(
            select(WorkflowStage)
            .where(WorkflowStage.workflow_id == workflow_id)
            .order_by(WorkflowStage.sequence)
        ).scalars().all()
        stage_map: dict[UUID, UUID] = {}
        for stage in stages:
            new_stage = WorkflowStage(
                workflow_id=copy.id,
                name=stage.name,
                description=stage.description,
                sequence=stage.sequence,
                required_documents=list(stage.required_documents or []),
                required_actions=list(stage.required_actions or []),
                notification_triggers=[dict(t) for t in stage.notification_triggers or []],
                assigned_role=stage.assigned_role,
                created_by_id=actor_id,
            )
            self.session.add(new_stage)
            self.session.flush()
            stage_map[stage.id] = new_stage.id

        transitions = self.session.execute(
            select(WorkflowTransition)
            .where(WorkflowTransition.workflow_id == workflow_id)
            .order_by(WorkflowTransition.priority)
        ).scalars().all()
        for transition in transitions:
            self.session.add(
                WorkflowTransition(
                    workflow_id=copy.id,
                    source_stage_id=stage_map[transition.source_stage_id],
                    target_stage_id=stage_map[transition.target_stage_id],
                    name=transition.name,
                    description=transition.description,
                    conditions=list(transition.conditions or []),
                    required_permissions=list(transition.required_permissions or []),
                    is_automatic=transition.is_automatic,
                    priority=self._sequences.next_value(
                        SequenceService.TRANSITION_PRIORITY
                    ),
                    created_by_id=actor_id,
                )
            )
        self.session.flush()

        self._audit.record(
            AuditEntry(
                action=AuditAction.WORKFLOW_DUPLICATED,
                resource_type="Workflow",
                resource_id=copy.id,
                actor_id=actor_id,
                after={"name": new_name, "is_active": False},
                details={
                    "source_workflow_id": str(workflow_id),
                    "stage_count": len(stages),
                    "transition_count": len(transitions),
                },
            )
        )
        logger.info(
            "workflow_duplicated",
            extra={
                "workflow_id": str(copy.id),
                "source_workflow_id": str(workflow_id),
            },
        )
        return self._selector.summary(copy.id)
