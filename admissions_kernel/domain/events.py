"""
Domain events and sink ports (``admissions_kernel.domain.events``).

Responsibility
--------------
Value objects the engine emits (``StatusChanged``, ``StageCompleted``,
``DocumentVerified``) and writes to the audit port (``AuditEntry``), plus
the ``EventSink`` / ``AuditSink`` protocols.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  Delivery is the
job of ``services.event_outbox.EventOutbox`` (after commit only); audit
persistence is ``services.auditor_service.AuditorService``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ClassVar, Protocol
from uuid import UUID


@dataclass(frozen=True)
class StatusChanged:
    """An application moved to a new stage (or entered its first one)."""

    event_type: ClassVar[str] = "status_changed"

    application_id: UUID
    workflow_id: UUID
    new_status_id: UUID
    new_stage_id: UUID
    new_stage_name: str
    actor_id: UUID
    occurred_at: datetime
    previous_status_id: UUID | None = None
    previous_stage_id: UUID | None = None
    transition_id: UUID | None = None
    automatic: bool = False


@dataclass(frozen=True)
class StageCompleted:
    """The work of a stage was reported complete."""

    event_type: ClassVar[str] = "stage_completed"

    application_id: UUID
    stage_id: UUID
    stage_name: str
    actor_id: UUID
    occurred_at: datetime
    completion_data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class DocumentVerified:
    """
    A document of an application was verified.

    ``stage_id`` is the stage the application was on at verification,
    before any propagation it caused; None if it was not yet on a workflow.
    """

    event_type: ClassVar[str] = "document_verified"

    application_id: UUID
    document_id: UUID
    document_type: str
    actor_id: UUID
    occurred_at: datetime
    stage_id: UUID | None = None


DomainEvent = StatusChanged | StageCompleted | DocumentVerified


class EventSink(Protocol):
    """Receives committed domain events."""

    def publish(self, event: DomainEvent) -> None: ...


class InMemoryEventSink:
    """Collects published events; handy for tests and local runs."""

    def __init__(self) -> None:
        self.events: list[DomainEvent] = []

    def publish(self, event: DomainEvent) -> None:
        self.events.append(event)

    def of_type(self, event_cls: type) -> list[DomainEvent]:
        return [e for e in self.events if isinstance(e, event_cls)]

    def clear(self) -> None:
        self.events.clear()


@dataclass(frozen=True)
class AuditEntry:
    """One auditable action, as handed to an AuditSink."""

    action: str
    resource_type: str
    resource_id: UUID
    actor_id: UUID
    before: dict[str, Any] | None = None
    after: dict[str, Any] | None = None
    details: dict[str, Any] = field(default_factory=dict)


class AuditSink(Protocol):
    """Persists audit entries inside the caller's transaction."""

    def record(self, entry: AuditEntry) -> Any: ...
