"""Read-only query selectors returning DTOs."""

from admissions_kernel.selectors.document_selector import OrmDocumentSource
from admissions_kernel.selectors.status_history_selector import StatusHistorySelector
from admissions_kernel.selectors.workflow_selector import WorkflowSelector

__all__ = [
    "OrmDocumentSource",
    "StatusHistorySelector",
    "WorkflowSelector",
]
