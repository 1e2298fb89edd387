"""
admissions_services.notification_dispatcher -- stage notification triggers.

Responsibility:
    Subscribes to the engine's committed domain events and turns the
    ``notification_triggers`` of workflow stages into
    ``NotificationRequest`` values for a delivery port:

    * ``StatusChanged``     -> ``stage_entry`` triggers of the new stage
    * ``StageCompleted``    -> ``stage_completed`` triggers of that stage
    * ``DocumentVerified``  -> ``document_verified`` triggers of the stage
      the application was on when the document was verified
      (carried on the event)

Architecture position:
    Services layer.  An ``EventSink``; the kernel's EventOutbox calls
    ``publish`` only after the outermost transaction commits, so no
    notification is ever requested for a rolled-back change.

Invariants:
    - Stage lookups never use the committing session; the resolver opens
      its own (``SessionStageResolver``) or is pure (``GraphStageResolver``).
    - Requests are emitted in trigger order, once per matching trigger.

Non-goals:
    - Rendering and delivery (email, SMS, in-app) belong to the sink.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Protocol
from uuid import UUID

from sqlalchemy.orm import Session

from admissions_config.schema import EngineSettings
from admissions_kernel.domain.events import (
    DocumentVerified,
    DomainEvent,
    StageCompleted,
    StatusChanged,
)
from admissions_kernel.domain.graph import StageNode, WorkflowGraph
from admissions_kernel.exceptions import StageNotFoundError
from admissions_kernel.logging_config import get_logger
from admissions_kernel.selectors.workflow_selector import WorkflowSelector

logger = get_logger("services.notifications")

STAGE_ENTRY = "stage_entry"
STAGE_COMPLETED = "stage_completed"
DOCUMENT_VERIFIED = "document_verified"


@dataclass(frozen=True)
class NotificationRequest:
    """One notification to deliver."""

    template: str
    subject: str
    channels: tuple[str, ...]
    recipients: tuple[str, ...]
    application_id: UUID
    stage_id: UUID
    stage_name: str
    event: str
    context: Mapping[str, Any]


class NotificationSink(Protocol):
    def send(self, request: NotificationRequest) -> None: ...


class InMemoryNotificationSink:
    """Collects requests; used in tests and local runs."""

    def __init__(self) -> None:
        self.requests: list[NotificationRequest] = []

    def send(self, request: NotificationRequest) -> None:
        self.requests.append(request)

    def templates(self) -> list[str]:
        return [r.template for r in self.requests]


class StageResolver(Protocol):
    def stage(self, stage_id: UUID) -> StageNode | None: ...


class GraphStageResolver:
    """Resolves stages from graphs already in memory."""

    def __init__(self, graphs: Iterable[WorkflowGraph] = ()):
        self._stages: dict[UUID, StageNode] = {}
        for graph in graphs:
            self.add_graph(graph)

    def add_graph(self, graph: WorkflowGraph) -> None:
        for stage in graph.stages:
            self._stages[stage.id] = stage

    def stage(self, stage_id: UUID) -> StageNode | None:
        return self._stages.get(stage_id)


class SessionStageResolver:
    """
    Resolves stages through a short-lived session of its own.

    Graphs are cached per stage id for the resolver's lifetime; build a
    new resolver after editing inactive workflows.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory
        self._stages: dict[UUID, StageNode] = {}

    def stage(self, stage_id: UUID) -> StageNode | None:
        if stage_id not in self._stages:
            with self._session_factory() as session:
                try:
                    graph = WorkflowSelector(session).graph_for_stage(stage_id)
                except StageNotFoundError:
                    return None
            for node in graph.stages:
                self._stages[node.id] = node
        return self._stages.get(stage_id)


class NotificationDispatcher:
    """EventSink that fires stage notification triggers."""

    def __init__(
        self,
        resolver: StageResolver,
        sink: NotificationSink,
        settings: EngineSettings | None = None,
    ):
        self._resolver = resolver
        self._sink = sink
        self._settings = settings

    def publish(self, event: DomainEvent) -> None:
        match event:
            case StatusChanged():
                stage = self._resolver.stage(event.new_stage_id)
                self._fire(stage, STAGE_ENTRY, event.application_id, {
                    "previous_stage_id": event.previous_stage_id,
                    "automatic": event.automatic,
                })
            case StageCompleted():
                stage = self._resolver.stage(event.stage_id)
                self._fire(stage, STAGE_COMPLETED, event.application_id, {
                    "completion_data": dict(event.completion_data),
                })
            case DocumentVerified():
                if event.stage_id is None:
                    # Verified before the application entered a workflow.
                    return
                stage = self._resolver.stage(event.stage_id)
                self._fire(stage, DOCUMENT_VERIFIED, event.application_id, {
                    "document_id": event.document_id,
                    "document_type": event.document_type,
                })

    def _subject(self, template: str) -> str:
        if self._settings is not None:
            definition = self._settings.notification_templates.get(template)
            if definition is not None:
                return definition.subject
        return template

    def _channels(self, trigger: Mapping[str, Any]) -> tuple[str, ...]:
        channels = tuple(trigger.get("channels") or ())
        if not channels and self._settings is not None:
            return self._settings.notification_default_channels
        return channels

    def _fire(
        self,
        stage: StageNode | None,
        event_name: str,
        application_id: UUID,
        context: Mapping[str, Any],
    ) -> None:
        if stage is None:
            logger.warning(
                "notification_stage_unresolved",
                extra={"application_id": str(application_id), "event": event_name},
            )
            return
        for trigger in stage.notification_triggers:
            if trigger.get("event") != event_name:
                continue
            request = NotificationRequest(
                template=trigger["template"],
                subject=self._subject(trigger["template"]),
                channels=self._channels(trigger),
                recipients=tuple(trigger.get("recipients") or ("applicant",)),
                application_id=application_id,
                stage_id=stage.id,
                stage_name=stage.name,
                event=event_name,
                context=dict(context),
            )
            self._sink.send(request)
            logger.info(
                "notification_requested",
                extra={
                    "application_id": str(application_id),
                    "stage": stage.name,
                    "event": event_name,
                    "template": request.template,
                    "channels": list(request.channels),
                },
            )
