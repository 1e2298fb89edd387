"""Services for the admissions kernel (write side)."""

from admissions_kernel.services.application_service import ApplicationService
from admissions_kernel.services.auditor_service import AuditorService, AuditTrace
from admissions_kernel.services.event_outbox import EventOutbox
from admissions_kernel.services.sequence_service import SequenceService
from admissions_kernel.services.status_ledger import StatusLedgerService
from admissions_kernel.services.workflow_engine import WorkflowEngine
from admissions_kernel.services.workflow_registry import WorkflowRegistry
from admissions_kernel.services.workflow_service import WorkflowService

__all__ = [
    "ApplicationService",
    "AuditTrace",
    "AuditorService",
    "EventOutbox",
    "SequenceService",
    "StatusLedgerService",
    "WorkflowEngine",
    "WorkflowRegistry",
    "WorkflowService",
]
