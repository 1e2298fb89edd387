"""
admissions_services.orchestrator -- central wiring for admissions services.

Responsibility:
    Creates every kernel service exactly once for a session and wires them
    to the active configuration: the config-driven permission source, the
    engine's propagation cap and system actor, and the notification
    dispatcher.  Also gates the administrative operations (editing and
    activating workflows) behind the configured permissions.

Architecture position:
    Services -- the top of the service layer and the only place where
    kernel services are constructed from configuration.

Invariants enforced:
    - Single-instance lifecycle: one AuditorService per orchestrator, shared
      by every service so all audit rows land in one chain and session.
    - Admin operations check ``edit_workflow`` / ``activate_workflow``
      before touching a definition.

Failure modes:
    - ActionNotAuthorizedError when an actor lacks an admin permission.

Usage:
    config = get_active_config()
    orchestrator = AdmissionsOrchestrator(
        session, config, notification_sink=sink, session_factory=factory,
    )
    orchestrator.install_templates(admin.actor_id)
    app = orchestrator.applications.create_application("undergraduate", user_id)
    orchestrator.engine.initialize_workflow(app.application_id, applicant)
"""

from __future__ import annotations

from collections.abc import Callable
from uuid import UUID

from sqlalchemy.orm import Session

from admissions_config.bridges import engine_options
from admissions_config.schema import AdmissionsConfigurationSet
from admissions_kernel.domain.actors import Actor
from admissions_kernel.domain.clock import Clock, SystemClock
from admissions_kernel.domain.dtos import WorkflowSummary
from admissions_kernel.domain.events import DomainEvent, EventSink
from admissions_kernel.exceptions import ActionNotAuthorizedError
from admissions_kernel.logging_config import get_logger
from admissions_kernel.selectors.workflow_selector import WorkflowSelector
from admissions_kernel.services.application_service import ApplicationService
from admissions_kernel.services.auditor_service import AuditorService
from admissions_kernel.services.workflow_engine import WorkflowEngine
from admissions_kernel.services.workflow_registry import WorkflowRegistry
from admissions_kernel.services.workflow_service import WorkflowService
from admissions_services.notification_dispatcher import (
    GraphStageResolver,
    NotificationDispatcher,
    NotificationSink,
    SessionStageResolver,
    StageResolver,
)
from admissions_services.role_permissions import RolePermissionSource
from admissions_services.template_installer import InstalledWorkflow, TemplateInstaller

logger = get_logger("services.orchestrator")

EDIT_WORKFLOW = "edit_workflow"
ACTIVATE_WORKFLOW = "activate_workflow"


class FanOutEventSink:
    """Publishes each event to several sinks in order."""

    def __init__(self, *sinks: EventSink):
        self._sinks = sinks

    def publish(self, event: DomainEvent) -> None:
        for sink in self._sinks:
            sink.publish(event)


class AdmissionsOrchestrator:
    """Central factory for admissions services.

    Contract:
        Receives a Session and a validated configuration set.  Builds the
        kernel services in dependency order and exposes them as public
        attributes (``auditor``, ``applications``, ``workflows``,
        ``registry``, ``installer``, ``engine``).

    Non-goals:
        - Does NOT own the Session lifecycle.  The engine commits per
          operation when ``auto_commit`` is set; the definition services
          are flush-only.
    """

    def __init__(
        self,
        session: Session,
        config: AdmissionsConfigurationSet,
        *,
        notification_sink: NotificationSink | None = None,
        session_factory: Callable[[], Session] | None = None,
        event_sink: EventSink | None = None,
        clock: Clock | None = None,
        auto_commit: bool = True,
    ) -> None:
        self._session = session
        self._clock = clock or SystemClock()
        self.config = config
        self.permissions = RolePermissionSource(config.settings)

        self.auditor = AuditorService(session, self._clock)
        self.applications = ApplicationService(session, self.auditor, self._clock)
        self.workflows = WorkflowService(session, self.auditor, self._clock)
        self.registry = WorkflowRegistry(session, self.auditor, self._clock)
        self.installer = TemplateInstaller(session, self.auditor, self._clock)

        self.stage_resolver: StageResolver = (
            SessionStageResolver(session_factory)
            if session_factory is not None
            else GraphStageResolver()
        )
        self.dispatcher: NotificationDispatcher | None = None
        if notification_sink is not None:
            self.dispatcher = NotificationDispatcher(
                self.stage_resolver, notification_sink, config.settings
            )

        sinks = [s for s in (self.dispatcher, event_sink) if s is not None]
        self.engine = WorkflowEngine(
            session,
            self.permissions,
            audit_sink=self.auditor,
            event_sink=FanOutEventSink(*sinks) if sinks else None,
            clock=self._clock,
            auto_commit=auto_commit,
            **engine_options(config.settings),
        )

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    def authorize(self, actor: Actor, permission: str, action: str) -> None:
        """Raise ActionNotAuthorizedError unless ``actor`` may do ``action``."""
        if actor.is_system or actor.is_admin:
            return
        if not self.permissions.actor_has_permission(actor, permission):
            logger.warning(
                "admin_action_denied",
                extra={
                    "actor_id": str(actor.actor_id),
                    "permission": permission,
                    "action": action,
                },
            )
            raise ActionNotAuthorizedError(str(actor.actor_id), permission, action)

    def activate_workflow(self, workflow_id: UUID, actor: Actor) -> WorkflowSummary:
        self.authorize(actor, ACTIVATE_WORKFLOW, "activate_workflow")
        return self.registry.activate(workflow_id, actor.actor_id)

    def deactivate_workflow(self, workflow_id: UUID, actor: Actor) -> WorkflowSummary:
        self.authorize(actor, ACTIVATE_WORKFLOW, "deactivate_workflow")
        return self.registry.deactivate(workflow_id, actor.actor_id)

    def duplicate_workflow(
        self, workflow_id: UUID, new_name: str, actor: Actor
    ) -> WorkflowSummary:
        self.authorize(actor, EDIT_WORKFLOW, "duplicate_workflow")
        return self.registry.duplicate(workflow_id, new_name, actor.actor_id)

    def install_templates(self, actor_id: UUID) -> dict[str, InstalledWorkflow]:
        """Install every workflow template of the configuration set."""
        installed = self.installer.install_all(self.config, actor_id)
        if isinstance(self.stage_resolver, GraphStageResolver):
            selector = WorkflowSelector(self._session)
            for item in installed.values():
                self.stage_resolver.add_graph(selector.load_graph(item.workflow_id))
        return installed

