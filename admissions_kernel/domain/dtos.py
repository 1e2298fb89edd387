"""
Data transfer objects returned by kernel services and selectors.

All DTOs are frozen so that callers cannot mutate what they were handed,
and none hold ORM instances.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from admissions_kernel.domain.graph import StageNode


@dataclass(frozen=True)
class StatusRecord:
    """One ApplicationStatus row."""

    status_id: UUID
    application_id: UUID
    stage_id: UUID
    status: str
    seq: int
    actor_id: UUID
    created_at: datetime
    notes: str | None = None


@dataclass(frozen=True)
class StatusHistoryEntry:
    """A status row joined with its stage, as shown on a timeline."""

    record: StatusRecord
    stage: StageNode | None

    @property
    def stage_name(self) -> str:
        return self.stage.name if self.stage is not None else self.record.status


@dataclass(frozen=True)
class WorkflowSummary:
    """Header of a workflow definition."""

    workflow_id: UUID
    name: str
    application_type: str
    is_active: bool
    stage_count: int
    transition_count: int
    description: str | None = None


@dataclass(frozen=True)
class ApplicationInfo:
    """Header of an application."""

    application_id: UUID
    application_type: str
    current_status_id: UUID | None
    version: int
