"""
admissions_services -- Package init and public API.

Responsibility:
    Configuration-aware services composed over the kernel: role-based
    permission resolution, workflow template installation, stage
    notification dispatch and the orchestrator that wires them.

Architecture position:
    Services -- above admissions_kernel and admissions_config.

    Dependency direction (enforced by tests/architecture/test_kernel_boundary.py):
        admissions_services/ -> admissions_config/  (allowed)
        admissions_services/ -> admissions_kernel/  (allowed)
        admissions_kernel/   -> admissions_services/ (FORBIDDEN)
        admissions_config/   -> admissions_services/ (FORBIDDEN)
"""

from admissions_services.notification_dispatcher import (
    GraphStageResolver,
    InMemoryNotificationSink,
    NotificationDispatcher,
    NotificationRequest,
    SessionStageResolver,
)
from admissions_services.orchestrator import AdmissionsOrchestrator, FanOutEventSink
from admissions_services.role_permissions import RolePermissionSource
from admissions_services.template_installer import InstalledWorkflow, TemplateInstaller

__all__ = [
    "AdmissionsOrchestrator",
    "FanOutEventSink",
    "GraphStageResolver",
    "InMemoryNotificationSink",
    "InstalledWorkflow",
    "NotificationDispatcher",
    "NotificationRequest",
    "RolePermissionSource",
    "SessionStageResolver",
    "TemplateInstaller",
]
