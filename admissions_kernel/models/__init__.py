"""ORM models for the admissions kernel."""

from admissions_kernel.models.application import (
    Application,
    ApplicationDocument,
    ApplicationStatus,
)
from admissions_kernel.models.audit_event import AuditAction, AuditEvent
from admissions_kernel.models.sequence_counter import SequenceCounter
from admissions_kernel.models.workflow import (
    Workflow,
    WorkflowStage,
    WorkflowTransition,
)

__all__ = [
    "Application",
    "ApplicationDocument",
    "ApplicationStatus",
    "AuditAction",
    "AuditEvent",
    "SequenceCounter",
    "Workflow",
    "WorkflowStage",
    "WorkflowTransition",
]
