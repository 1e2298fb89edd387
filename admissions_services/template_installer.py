"""
admissions_services.template_installer -- installs workflow templates.

Responsibility:
    Turns a configured ``WorkflowTemplate`` into a persisted Workflow with
    its stages and transitions, resolving stage names to ids, and
    optionally activates it.  This is how the default undergraduate and
    graduate workflows are seeded.

Architecture position:
    Services layer.  Writes only through the kernel's WorkflowService and
    WorkflowRegistry, so every row it creates is audited the usual way.

Failure modes:
    - InvalidWorkflowGraphError on activation of an unsound template.
    - DuplicateStageNameError / InvalidConditionError from the kernel.
    - Flush-only: the caller commits or rolls back.
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.orm import Session

from admissions_config.schema import AdmissionsConfigurationSet, WorkflowTemplate
from admissions_kernel.domain.clock import Clock
from admissions_kernel.domain.events import AuditSink
from admissions_kernel.domain.graph import StageNode, TransitionEdge
from admissions_kernel.logging_config import get_logger
from admissions_kernel.services.workflow_registry import WorkflowRegistry
from admissions_kernel.services.workflow_service import WorkflowService

logger = get_logger("services.template_installer")


@dataclass(frozen=True)
class InstalledWorkflow:
    """What ``install`` created."""

    template_key: str
    workflow_id: UUID
    stages: tuple[StageNode, ...]
    transitions: tuple[TransitionEdge, ...]
    activated: bool

    def stage_id(self, name: str) -> UUID:
        for stage in self.stages:
            if stage.name == name:
                return stage.id
        raise KeyError(name)

    def transition_id(self, name: str) -> UUID:
        for transition in self.transitions:
            if transition.name == name:
                return transition.id
        raise KeyError(name)


class TemplateInstaller:
    """Persists workflow templates through the kernel's services."""

    def __init__(
        self,
        session: Session,
        audit_sink: AuditSink | None = None,
        clock: Clock | None = None,
    ):
        self._workflows = WorkflowService(session, audit_sink, clock)
        self._registry = WorkflowRegistry(session, audit_sink, clock)

    def install(
        self,
        template: WorkflowTemplate,
        actor_id: UUID,
        activate: bool | None = None,
    ) -> InstalledWorkflow:
        """
        Install one template.  ``activate`` defaults to the template's own
        ``activate`` flag.
        """
        summary = self._workflows.create_workflow(
            template.name,
            template.application_type,
            actor_id,
            description=template.description,
        )

        stage_ids: dict[str, UUID] = {}
        stages = []
        for stage in sorted(template.stages, key=lambda s: s.sequence):
            node = self._workflows.add_stage(
                summary.workflow_id,
                stage.name,
                actor_id,
                description=stage.description,
                required_documents=stage.required_documents,
                required_actions=stage.required_actions,
                notification_triggers=[t.to_dict() for t in stage.notification_triggers],
                assigned_role=stage.assigned_role,
            )
            stage_ids[stage.name] = node.id
            stages.append(node)

        transitions = [
            self._workflows.add_transition(
                summary.workflow_id,
                stage_ids[t.source],
                stage_ids[t.target],
                t.name,
                actor_id,
                description=t.description,
                conditions=t.conditions,
                required_permissions=t.required_permissions,
                is_automatic=t.is_automatic,
            )
            for t in template.transitions
        ]

        should_activate = template.activate if activate is None else activate
        if should_activate:
            self._registry.activate(summary.workflow_id, actor_id)

        logger.info(
            "workflow_template_installed",
            extra={
                "template_key": template.key,
                "workflow_id": str(summary.workflow_id),
                "stage_count": len(stages),
                "transition_count": len(transitions),
                "activated": should_activate,
            },
        )
        return InstalledWorkflow(
            template_key=template.key,
            workflow_id=summary.workflow_id,
            stages=tuple(stages),
            transitions=tuple(transitions),
            activated=should_activate,
        )

    def install_all(
        self, config: AdmissionsConfigurationSet, actor_id: UUID
    ) -> dict[str, InstalledWorkflow]:
        """Install every template of a configuration set, keyed by template key."""
        return {
            template.key: self.install(template, actor_id)
            for template in config.workflows
        }
