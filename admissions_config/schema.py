"""
AdmissionsConfigurationSet schema.

Defines the human-authored, reviewable source artifact for admissions
configuration.  YAML files are parsed into these types by the loader and
checked by the validator; ``bridges`` turns them into kernel inputs.

Workflow templates name stages by *name*, not id: ids only exist once a
template is installed as a Workflow.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

NOTIFICATION_EVENTS = frozenset({"stage_entry", "stage_completed", "document_verified"})
NOTIFICATION_CHANNELS = frozenset({"email", "in_app", "sms"})

# ---------------------------------------------------------------------------
# Workflow templates
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class NotificationTriggerDef:
    """When a stage fires which notification template."""

    event: str  # stage_entry, stage_completed, document_verified
    template: str
    channels: tuple[str, ...] = ()
    recipients: tuple[str, ...] = ("applicant",)

    def to_dict(self) -> dict[str, Any]:
        return {
            "event": self.event,
            "template": self.template,
            "channels": list(self.channels),
            "recipients": list(self.recipients),
        }


@dataclass(frozen=True)
class StageTemplate:
    name: str
    sequence: int
    description: str | None = None
    required_documents: tuple[str, ...] = ()
    required_actions: tuple[str, ...] = ()
    notification_triggers: tuple[NotificationTriggerDef, ...] = ()
    assigned_role: str | None = None


@dataclass(frozen=True)
class TransitionTemplate:
    """A transition between two stages of the same template, by name."""

    name: str
    source: str
    target: str
    description: str | None = None
    conditions: tuple[dict[str, Any], ...] = ()
    required_permissions: tuple[str, ...] = ()
    is_automatic: bool = False


@dataclass(frozen=True)
class WorkflowTemplate:
    key: str
    name: str
    application_type: str
    stages: tuple[StageTemplate, ...]
    transitions: tuple[TransitionTemplate, ...]
    description: str | None = None
    activate: bool = False

    def stage_names(self) -> tuple[str, ...]:
        return tuple(s.name for s in self.stages)


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class NotificationTemplateDef:
    template_id: str
    subject: str
    description: str | None = None


@dataclass(frozen=True)
class EngineSettings:
    """Runtime knobs of the workflow engine and its outer services."""

    system_actor_id: UUID
    max_propagation_steps: int | None = None
    auto_process_transitions: bool = True
    notification_default_channels: tuple[str, ...] = ("email", "in_app")
    notification_templates: dict[str, NotificationTemplateDef] = field(default_factory=dict)
    # permission -> roles holding it
    role_permissions: dict[str, tuple[str, ...]] = field(default_factory=dict)

    def permissions_for_roles(self, roles: tuple[str, ...] | list[str]) -> frozenset[str]:
        """Every permission granted to at least one of ``roles``."""
        held = set(roles)
        return frozenset(
            permission
            for permission, granted in self.role_permissions.items()
            if held.intersection(granted)
        )


# ---------------------------------------------------------------------------
# Configuration set
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AdmissionsConfigurationSet:
    """One complete, versioned configuration set (a ``sets/<name>`` dir)."""

    config_id: str
    version: int
    settings: EngineSettings
    workflows: tuple[WorkflowTemplate, ...] = ()
    checksum: str = ""

    def workflow(self, key: str) -> WorkflowTemplate | None:
        for template in self.workflows:
            if template.key == key:
                return template
        return None
