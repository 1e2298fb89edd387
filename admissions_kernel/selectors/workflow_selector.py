"""
Module: admissions_kernel.selectors.workflow_selector
Responsibility: Read access to workflow definitions.  Builds the immutable
    WorkflowGraph the engine and validator work on.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - load_graph issues exactly two batch queries (stages, transitions) and
      never lazy-loads relationships.
    - Stored conditions are parsed on load; a malformed condition surfaces
      as InvalidConditionError here, not mid-transition.
"""

from uuid import UUID

from sqlalchemy import func, select

from admissions_kernel.domain.conditions import condition_to_dict, parse_conditions
from admissions_kernel.domain.dtos import WorkflowSummary
from admissions_kernel.domain.graph import StageNode, TransitionEdge, WorkflowGraph
from admissions_kernel.exceptions import StageNotFoundError, WorkflowNotFoundError
from admissions_kernel.models.workflow import (
    Workflow,
    WorkflowStage,
    WorkflowTransition,
)
from admissions_kernel.selectors.base import BaseSelector
from admissions_kernel.utils.hashing import hash_workflow_definition


def stage_to_node(stage: WorkflowStage) -> StageNode:
    return StageNode(
        id=stage.id,
        workflow_id=stage.workflow_id,
        name=stage.name,
        sequence=stage.sequence,
        description=stage.description,
        required_documents=tuple(stage.required_documents or ()),
        required_actions=tuple(stage.required_actions or ()),
        notification_triggers=tuple(stage.notification_triggers or ()),
        assigned_role=stage.assigned_role,
    )


def transition_to_edge(transition: WorkflowTransition) -> TransitionEdge:
    return TransitionEdge(
        id=transition.id,
        workflow_id=transition.workflow_id,
        source_stage_id=transition.source_stage_id,
        target_stage_id=transition.target_stage_id,
        name=transition.name,
        priority=transition.priority,
        conditions=parse_conditions(transition.conditions),
        required_permissions=frozenset(transition.required_permissions or ()),
        is_automatic=transition.is_automatic,
        description=transition.description,
    )


class WorkflowSelector(BaseSelector[Workflow]):
    """Read-only queries over workflows, stages and transitions."""

    def load_graph(self, workflow_id: UUID) -> WorkflowGraph:
        """
        Build the graph for a workflow.

        Raises:
            WorkflowNotFoundError: If the workflow does not exist.
        """
        workflow = self.session.get(Workflow, workflow_id)
        if workflow is None:
            raise WorkflowNotFoundError(str(workflow_id))

        stages = self.session.execute(
            select(WorkflowStage)
            .where(WorkflowStage.workflow_id == workflow_id)
            .order_by(WorkflowStage.sequence)
        ).scalars().all()
        transitions = self.session.execute(
            select(WorkflowTransition)
            .where(WorkflowTransition.workflow_id == workflow_id)
            .order_by(WorkflowTransition.priority)
        ).scalars().all()

        return WorkflowGraph(
            workflow_id=workflow.id,
            application_type=workflow.application_type,
            name=workflow.name,
            is_active=workflow.is_active,
            stages=tuple(stage_to_node(s) for s in stages),
            transitions=tuple(transition_to_edge(t) for t in transitions),
        )

    def graph_for_stage(self, stage_id: UUID) -> WorkflowGraph:
        """Graph of the workflow that owns ``stage_id``."""
        workflow_id = self.session.execute(
            select(WorkflowStage.workflow_id).where(WorkflowStage.id == stage_id)
        ).scalar_one_or_none()
        if workflow_id is None:
            raise StageNotFoundError(str(stage_id))
        return self.load_graph(workflow_id)

    def active_workflow_id(self, application_type: str) -> UUID | None:
        return self.session.execute(
            select(Workflow.id).where(
                Workflow.application_type == application_type,
                Workflow.is_active.is_(True),
            )
        ).scalar_one_or_none()

    def active_graph(self, application_type: str) -> WorkflowGraph | None:
        workflow_id = self.active_workflow_id(application_type)
        if workflow_id is None:
            return None
        return self.load_graph(workflow_id)

    def _counts(self, model, workflow_ids: list[UUID]) -> dict[UUID, int]:
        if not workflow_ids:
            return {}
        rows = self.session.execute(
            select(model.workflow_id, func.count())
            .where(model.workflow_id.in_(workflow_ids))
            .group_by(model.workflow_id)
        ).all()
        return {workflow_id: count for workflow_id, count in rows}

    def list_workflows(self, application_type: str | None = None) -> list[WorkflowSummary]:
        query = select(Workflow).order_by(Workflow.application_type, Workflow.name)
        if application_type is not None:
            query = query.where(Workflow.application_type == application_type)
        workflows = self.session.execute(query).scalars().all()

        ids = [w.id for w in workflows]
        stage_counts = self._counts(WorkflowStage, ids)
        transition_counts = self._counts(WorkflowTransition, ids)

        return [
            WorkflowSummary(
                workflow_id=w.id,
                name=w.name,
                application_type=w.application_type,
                is_active=w.is_active,
                stage_count=stage_counts.get(w.id, 0),
                transition_count=transition_counts.get(w.id, 0),
                description=w.description,
            )
            for w in workflows
        ]

    def summary(self, workflow_id: UUID) -> WorkflowSummary:
        workflow = self.session.get(Workflow, workflow_id)
        if workflow is None:
            raise WorkflowNotFoundError(str(workflow_id))
        return WorkflowSummary(
            workflow_id=workflow.id,
            name=workflow.name,
            application_type=workflow.application_type,
            is_active=workflow.is_active,
            stage_count=self._counts(WorkflowStage, [workflow.id]).get(workflow.id, 0),
            transition_count=self._counts(WorkflowTransition, [workflow.id]).get(
                workflow.id, 0
            ),
            description=workflow.description,
        )

    def definition_hash(self, workflow_id: UUID) -> str:
        """Id-independent fingerprint of a workflow's stages and transitions."""
        graph = self.load_graph(workflow_id)
        names = {s.id: s.name for s in graph.stages}
        stages = [
            {
                "name": s.name,
                "sequence": s.sequence,
                "required_documents": list(s.required_documents),
                "required_actions": list(s.required_actions),
                "assigned_role": s.assigned_role,
            }
            for s in graph.stages
        ]
        transitions = [
            {
                "name": t.name,
                "source": names.get(t.source_stage_id, str(t.source_stage_id)),
                "target": names.get(t.target_stage_id, str(t.target_stage_id)),
                "conditions": [condition_to_dict(c) for c in t.conditions],
                "required_permissions": sorted(t.required_permissions),
                "is_automatic": t.is_automatic,
            }
            for t in graph.transitions
        ]
        return hash_workflow_definition(stages, transitions)
