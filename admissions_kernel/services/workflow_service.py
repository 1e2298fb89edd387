"""
WorkflowService -- create and edit workflow definitions.

Responsibility:
    CRUD over workflows, stages and transitions, stage ordering, and the
    advisory graph check shown to editors.  Every mutation is audited.

Architecture position:
    Kernel > Services -- imperative shell.  Flush-only; the caller commits.
    Activation lives in WorkflowRegistry, not here.

Invariants enforced:
    - An active workflow is structurally frozen: stage and transition
      edits raise WorkflowActiveError.  Name and description may change.
    - A workflow or stage referenced by any ApplicationStatus cannot be
      deleted (WorkflowInUseError); history never points at nothing.
    - Stage sequences stay 1..n without gaps after delete and reorder.
    - Both endpoints of a transition belong to the transition's workflow.
    - Stored conditions always parse (InvalidConditionError on write).

Failure modes:
    - WorkflowNotFoundError, StageNotFoundError, TransitionNotFoundError.
    - WorkflowActiveError, WorkflowInUseError, DuplicateStageNameError,
      InvalidStageOrderError, CrossWorkflowTransitionError,
      InvalidConditionError.
"""

from collections.abc import Iterable, Mapping, Sequence
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from admissions_kernel.domain.clock import Clock, SystemClock
from admissions_kernel.domain.conditions import parse_conditions
from admissions_kernel.domain.dtos import WorkflowSummary
from admissions_kernel.domain.events import AuditEntry, AuditSink
from admissions_kernel.domain.graph import StageNode, TransitionEdge, WorkflowGraph
from admissions_kernel.domain.graph_validator import (
    GraphValidationResult,
    validate_workflow_graph,
)
from admissions_kernel.exceptions import (
    CrossWorkflowTransitionError,
    DuplicateStageNameError,
    InvalidStageOrderError,
    StageNotFoundError,
    TransitionNotFoundError,
    WorkflowActiveError,
    WorkflowInUseError,
    WorkflowNotFoundError,
)
from admissions_kernel.logging_config import get_logger
from admissions_kernel.models.audit_event import AuditAction
from admissions_kernel.models.workflow import (
    Workflow,
    WorkflowStage,
    WorkflowTransition,
)
from admissions_kernel.selectors.status_history_selector import StatusHistorySelector
from admissions_kernel.selectors.workflow_selector import (
    WorkflowSelector,
    stage_to_node,
    transition_to_edge,
)
from admissions_kernel.services.auditor_service import AuditorService
from admissions_kernel.services.base import BaseService
from admissions_kernel.services.sequence_service import SequenceService

logger = get_logger("services.workflow")

_STAGE_FIELDS = frozenset({
    "name",
    "description",
    "required_documents",
    "required_actions",
    "notification_triggers",
    "assigned_role",
})

_TRANSITION_FIELDS = frozenset({
    "name",
    "description",
    "source_stage_id",
    "target_stage_id",
    "conditions",
    "required_permissions",
    "is_automatic",
})


def _stage_snapshot(stage: WorkflowStage) -> dict[str, Any]:
    return {
        "name": stage.name,
        "description": stage.description,
        "sequence": stage.sequence,
        "required_documents": list(stage.required_documents or []),
        "required_actions": list(stage.required_actions or []),
        "notification_triggers": list(stage.notification_triggers or []),
        "assigned_role": stage.assigned_role,
    }


def _transition_snapshot(transition: WorkflowTransition) -> dict[str, Any]:
    return {
        "name": transition.name,
        "description": transition.description,
        "source_stage_id": str(transition.source_stage_id),
        "target_stage_id": str(transition.target_stage_id),
        "conditions": list(transition.conditions or []),
        "required_permissions": list(transition.required_permissions or []),
        "is_automatic": transition.is_automatic,
        "priority": transition.priority,
    }


def _check_fields(changes: Mapping[str, Any], allowed: frozenset[str]) -> None:
    unknown = set(changes) - allowed
    if unknown:
        raise ValueError(f"Unknown fields: {', '.join(sorted(unknown))}")


class WorkflowService(BaseService[Workflow]):
    """
    Editing surface for workflow definitions.

    Contract:
        Methods take ids and plain values and return DTOs (WorkflowSummary,
        StageNode, TransitionEdge).  ORM rows never leave the service.

    Non-goals:
        - Does NOT activate workflows (WorkflowRegistry).
        - Does NOT commit.
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
        self._history = StatusHistorySelector(session)
        self._sequences = SequenceService(session)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _record(
        self,
        action: AuditAction,
        resource_type: str,
        resource_id: UUID,
        actor_id: UUID,
        before: dict[str, Any] | None = None,
        after: dict[str, Any] | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self._audit.record(
            AuditEntry(
                action=action,
                resource_type=resource_type,
                resource_id=resource_id,
                actor_id=actor_id,
                before=before,
                after=after,
                details=details or {},
            )
        )

    def _workflow(self, workflow_id: UUID) -> Workflow:
        workflow = self.session.get(Workflow, workflow_id)
        if workflow is None:
            raise WorkflowNotFoundError(str(workflow_id))
        return workflow

    def _editable(self, workflow_id: UUID, operation: str) -> Workflow:
        workflow = self._workflow(workflow_id)
        if workflow.is_active:
            raise WorkflowActiveError(str(workflow_id), operation)
        return workflow

    def _stage(self, stage_id: UUID) -> WorkflowStage:
        stage = self.session.get(WorkflowStage, stage_id)
        if stage is None:
            raise StageNotFoundError(str(stage_id))
        return stage

    def _transition(self, transition_id: UUID) -> WorkflowTransition:
        transition = self.session.get(WorkflowTransition, transition_id)
        if transition is None:
            raise TransitionNotFoundError(str(transition_id))
        return transition

    def _stages_of(self, workflow_id: UUID) -> list[WorkflowStage]:
        return list(
            self.session.execute(
                select(WorkflowStage)
                .where(WorkflowStage.workflow_id == workflow_id)
                .order_by(WorkflowStage.sequence, WorkflowStage.name)
            ).scalars()
        )

    def _ensure_unique_name(
        self, workflow_id: UUID, name: str, exclude_id: UUID | None = None
    ) -> None:
        query = select(WorkflowStage.id).where(
            WorkflowStage.workflow_id == workflow_id,
            WorkflowStage.name == name,
        )
        if exclude_id is not None:
            query = query.where(WorkflowStage.id != exclude_id)
        if self.session.execute(query).first() is not None:
            raise DuplicateStageNameError(str(workflow_id), name)

    def _check_endpoints(
        self, workflow_id: UUID, source_stage_id: UUID, target_stage_id: UUID
    ) -> None:
        source = self._stage(source_stage_id)
        target = self._stage(target_stage_id)
        if source.workflow_id != workflow_id or target.workflow_id != workflow_id:
            raise CrossWorkflowTransitionError(str(source_stage_id), str(target_stage_id))

    def _resequence(self, stages: Iterable[WorkflowStage]) -> None:
        for position, stage in enumerate(stages, start=1):
            stage.sequence = position

    # ------------------------------------------------------------------
    # Workflows
    # ------------------------------------------------------------------

    def create_workflow(
        self,
        name: str,
        application_type: str,
        actor_id: UUID,
        description: str | None = None,
    ) -> WorkflowSummary:
        """Create an empty, inactive workflow."""
        workflow = Workflow(
            name=name,
            description=description,
            application_type=application_type,
            is_active=False,
            created_by_id=actor_id,
        )
        self.session.add(workflow)
        self.session.flush()

        self._record(
            AuditAction.WORKFLOW_CREATED,
            "Workflow",
            workflow.id,
            actor_id,
            after={
                "name": name,
                "application_type": application_type,
                "description": description,
            },
        )
        logger.info(
            "workflow_created",
            extra={"workflow_id": str(workflow.id), "application_type": application_type},
        )
        return self._selector.summary(workflow.id)

    def update_workflow(
        self,
        workflow_id: UUID,
        actor_id: UUID,
        name: str | None = None,
        description: str | None = None,
    ) -> WorkflowSummary:
        """Rename or re-describe a workflow (allowed while active)."""
        workflow = self._workflow(workflow_id)
        before = {"name": workflow.name, "description": workflow.description}
        if name is not None:
            workflow.name = name
        if description is not None:
            workflow.description = description
        workflow.updated_by_id = actor_id
        self.session.flush()

        self._record(
            AuditAction.WORKFLOW_UPDATED,
            "Workflow",
            workflow_id,
            actor_id,
            before=before,
            after={"name": workflow.name, "description": workflow.description},
        )
        return self._selector.summary(workflow_id)

    def delete_workflow(self, workflow_id: UUID, actor_id: UUID) -> None:
        """
        Delete an inactive workflow nobody is on.

        Raises:
            WorkflowActiveError: The workflow is active.
            WorkflowInUseError: Status history references its stages.
        """
        workflow = self._editable(workflow_id, "delete")
        in_use = self._history.count_for_workflow(workflow_id)
        if in_use:
            raise WorkflowInUseError(str(workflow_id), in_use)

        before = {"name": workflow.name, "application_type": workflow.application_type}

        # Transitions reference stages; remove them first.
        for transition in self.session.execute(
            select(WorkflowTransition).where(WorkflowTransition.workflow_id == workflow_id)
        ).scalars():
            self.session.delete(transition)
        self.session.flush()
        self.session.expire(workflow, ["stages", "transitions"])
        self.session.delete(workflow)
        self.session.flush()

        self._record(AuditAction.WORKFLOW_DELETED, "Workflow", workflow_id, actor_id, before=before)
        logger.info("workflow_deleted", extra={"workflow_id": str(workflow_id)})

    def list_workflows(self, application_type: str | None = None) -> list[WorkflowSummary]:
        return self._selector.list_workflows(application_type)

    def get_graph(self, workflow_id: UUID) -> WorkflowGraph:
        return self._selector.load_graph(workflow_id)

    def validate_workflow(self, workflow_id: UUID) -> GraphValidationResult:
        """Advisory check; only activation treats issues as blocking."""
        return validate_workflow_graph(self._selector.load_graph(workflow_id))

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def add_stage(
        self,
        workflow_id: UUID,
        name: str,
        actor_id: UUID,
        *,
        description: str | None = None,
        sequence: int | None = None,
        required_documents: Sequence[str] = (),
        required_actions: Sequence[str] = (),
        notification_triggers: Sequence[Mapping[str, Any]] = (),
        assigned_role: str | None = None,
    ) -> StageNode:
        """
        Add a stage.  Without ``sequence`` it goes last; with one, later
        siblings shift down by one.
        """
        self._editable(workflow_id, "add_stage")
        self._ensure_unique_name(workflow_id, name)

        siblings = self._stages_of(workflow_id)
        if sequence is None:
            sequence = len(siblings) + 1
        elif not 1 <= sequence <= len(siblings) + 1:
            raise InvalidStageOrderError(
                str(workflow_id),
                f"sequence {sequence} outside 1..{len(siblings) + 1}",
            )
        for sibling in siblings:
            if sibling.sequence >= sequence:
                sibling.sequence += 1

        stage = WorkflowStage(
            workflow_id=workflow_id,
            name=name,
            description=description,
            sequence=sequence,
            required_documents=list(required_documents),
            required_actions=list(required_actions),
            notification_triggers=[dict(t) for t in notification_triggers],
            assigned_role=assigned_role,
            created_by_id=actor_id,
        )
        self.session.add(stage)
        self.session.flush()

        self._record(
            AuditAction.STAGE_CREATED,
            "WorkflowStage",
            stage.id,
            actor_id,
            after=_stage_snapshot(stage),
            details={"workflow_id": str(workflow_id)},
        )
        return stage_to_node(stage)

    def update_stage(self, stage_id: UUID, actor_id: UUID, **changes: Any) -> StageNode:
        """Change stage fields other than ``sequence`` (see reorder_stages)."""
        _check_fields(changes, _STAGE_FIELDS)
        stage = self._stage(stage_id)
        self._editable(stage.workflow_id, "update_stage")
        if "name" in changes and changes["name"] != stage.name:
            self._ensure_unique_name(stage.workflow_id, changes["name"], exclude_id=stage_id)

        before = _stage_snapshot(stage)
        for key, value in changes.items():
            if key in ("required_documents", "required_actions"):
                value = list(value or [])
            elif key == "notification_triggers":
                value = [dict(t) for t in value or []]
            setattr(stage, key, value)
        stage.updated_by_id = actor_id
        self.session.flush()

        self._record(
            AuditAction.STAGE_UPDATED,
            "WorkflowStage",
            stage_id,
            actor_id,
            before=before,
            after=_stage_snapshot(stage),
            details={"workflow_id": str(stage.workflow_id)},
        )
        return stage_to_node(stage)

    def delete_stage(self, stage_id: UUID, actor_id: UUID) -> None:
        """
        Delete a stage and every transition touching it, then close the gap
        in the sibling sequence.
        """
        stage = self._stage(stage_id)
        workflow_id = stage.workflow_id
        self._editable(workflow_id, "delete_stage")
        in_use = self._history.count_for_stage(stage_id)
        if in_use:
            raise WorkflowInUseError(str(workflow_id), in_use)

        before = _stage_snapshot(stage)
        touching = self.session.execute(
            select(WorkflowTransition).where(
                (WorkflowTransition.source_stage_id == stage_id)
                | (WorkflowTransition.target_stage_id == stage_id)
            )
        ).scalars().all()
        for transition in touching:
            self.session.delete(transition)
        self.session.flush()

        self.session.delete(stage)
        self.session.flush()
        self._resequence(self._stages_of(workflow_id))
        self.session.flush()

        self._record(
            AuditAction.STAGE_DELETED,
            "WorkflowStage",
            stage_id,
            actor_id,
            before=before,
            details={
                "workflow_id": str(workflow_id),
                "deleted_transition_ids": [str(t.id) for t in touching],
            },
        )

    def reorder_stages(
        self, workflow_id: UUID, stage_ids: Sequence[UUID], actor_id: UUID
    ) -> list[StageNode]:
        """
        Set stage order to ``stage_ids`` (sequences become 1..n).

        Raises:
            InvalidStageOrderError: ``stage_ids`` is not exactly a
                permutation of the workflow's stages.
        """
        self._editable(workflow_id, "reorder_stages")
        stages = {s.id: s for s in self._stages_of(workflow_id)}
        if len(stage_ids) != len(set(stage_ids)):
            raise InvalidStageOrderError(str(workflow_id), "duplicate stage ids")
        if set(stage_ids) != set(stages):
            raise InvalidStageOrderError(
                str(workflow_id), "stage ids must list every stage of the workflow"
            )

        before = [str(s.id) for s in sorted(stages.values(), key=lambda s: s.sequence)]
        self._resequence(stages[stage_id] for stage_id in stage_ids)
        self.session.flush()

        self._record(
            AuditAction.STAGES_REORDERED,
            "Workflow",
            workflow_id,
            actor_id,
            before={"order": before},
            after={"order": [str(stage_id) for stage_id in stage_ids]},
        )
        return [stage_to_node(stages[stage_id]) for stage_id in stage_ids]

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def add_transition(
        self,
        workflow_id: UUID,
        source_stage_id: UUID,
        target_stage_id: UUID,
        name: str,
        actor_id: UUID,
        *,
        description: str | None = None,
        conditions: Sequence[Mapping[str, Any]] = (),
        required_permissions: Sequence[str] = (),
        is_automatic: bool = False,
    ) -> TransitionEdge:
        """Add a transition; its priority is the next value of the sequence."""
        self._editable(workflow_id, "add_transition")
        self._check_endpoints(workflow_id, source_stage_id, target_stage_id)
        stored_conditions = [dict(c) for c in conditions]
        parse_conditions(stored_conditions)

        transition = WorkflowTransition(
            workflow_id=workflow_id,
            source_stage_id=source_stage_id,
            target_stage_id=target_stage_id,
            name=name,
            description=description,
            conditions=stored_conditions,
            required_permissions=list(required_permissions),
            is_automatic=is_automatic,
            priority=self._sequences.next_value(SequenceService.TRANSITION_PRIORITY),
            created_by_id=actor_id,
        )
        self.session.add(transition)
        self.session.flush()

        self._record(
            AuditAction.TRANSITION_CREATED,
            "WorkflowTransition",
            transition.id,
            actor_id,
            after=_transition_snapshot(transition),
            details={"workflow_id": str(workflow_id)},
        )
        return transition_to_edge(transition)

    def update_transition(
        self, transition_id: UUID, actor_id: UUID, **changes: Any
    ) -> TransitionEdge:
        _check_fields(changes, _TRANSITION_FIELDS)
        transition = self._transition(transition_id)
        self._editable(transition.workflow_id, "update_transition")

        source = changes.get("source_stage_id", transition.source_stage_id)
        target = changes.get("target_stage_id", transition.target_stage_id)
        self._check_endpoints(transition.workflow_id, source, target)
        if "conditions" in changes:
            changes["conditions"] = [dict(c) for c in changes["conditions"] or []]
            parse_conditions(changes["conditions"])
        if "required_permissions" in changes:
            changes["required_permissions"] = list(changes["required_permissions"] or [])

        before = _transition_snapshot(transition)
        for key, value in changes.items():
            setattr(transition, key, value)
        transition.updated_by_id = actor_id
        self.session.flush()

        self._record(
            AuditAction.TRANSITION_UPDATED,
            "WorkflowTransition",
            transition_id,
            actor_id,
            before=before,
            after=_transition_snapshot(transition),
            details={"workflow_id": str(transition.workflow_id)},
        )
        return transition_to_edge(transition)

    def delete_transition(self, transition_id: UUID, actor_id: UUID) -> None:
        transition = self._transition(transition_id)
        self._editable(transition.workflow_id, "delete_transition")
        before = _transition_snapshot(transition)
        workflow_id = transition.workflow_id
        self.session.delete(transition)
        self.session.flush()

        self._record(
            AuditAction.TRANSITION_DELETED,
            "WorkflowTransition",
            transition_id,
            actor_id,
            before=before,
            details={"workflow_id": str(workflow_id)},
        )

