"""
Configuration Loader (``admissions_config.loader``).

Responsibility
--------------
Loads the YAML files of one configuration set directory and parses them
into the frozen dataclasses of ``admissions_config.schema``.  This is
build/test tooling; runtime callers use
``admissions_config.get_active_config()``.

Layout of a set directory::

    <set>/settings.yaml          config_id, version, engine, notifications, permissions
    <set>/workflows/*.yaml       one WorkflowTemplate per file

Architecture position
---------------------
**Config layer**.  No dependency on the kernel's database or services.

Failure modes
-------------
* Missing file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Wrong value shapes  -> ``ValueError`` with the offending key.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any
from uuid import UUID

import yaml

from admissions_config.schema import (
    AdmissionsConfigurationSet,
    EngineSettings,
    NotificationTemplateDef,
    NotificationTriggerDef,
    StageTemplate,
    TransitionTemplate,
    WorkflowTemplate,
)

SETTINGS_FILE = "settings.yaml"
WORKFLOWS_DIR = "workflows"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a single YAML file; an empty file yields ``{}``."""
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _str_tuple(value: Any, key: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str) or not isinstance(value, list):
        raise ValueError(f"'{key}' must be a list of strings, got {value!r}")
    return tuple(str(item) for item in value)


def parse_trigger(data: dict[str, Any]) -> NotificationTriggerDef:
    return NotificationTriggerDef(
        event=data["event"],
        template=data["template"],
        channels=_str_tuple(data.get("channels"), "channels"),
        recipients=_str_tuple(data.get("recipients"), "recipients") or ("applicant",),
    )


def parse_stage(data: dict[str, Any]) -> StageTemplate:
    return StageTemplate(
        name=data["name"],
        sequence=int(data["sequence"]),
        description=data.get("description"),
        required_documents=_str_tuple(data.get("required_documents"), "required_documents"),
        required_actions=_str_tuple(data.get("required_actions"), "required_actions"),
        notification_triggers=tuple(
            parse_trigger(t) for t in data.get("notification_triggers") or []
        ),
        assigned_role=data.get("assigned_role"),
    )


def parse_transition(data: dict[str, Any]) -> TransitionTemplate:
    conditions = data.get("conditions") or []
    if not isinstance(conditions, list):
        raise ValueError(f"'conditions' of transition {data.get('name')!r} must be a list")
    return TransitionTemplate(
        name=data["name"],
        source=data["source"],
        target=data["target"],
        description=data.get("description"),
        conditions=tuple(dict(c) for c in conditions),
        required_permissions=_str_tuple(
            data.get("required_permissions"), "required_permissions"
        ),
        is_automatic=bool(data.get("is_automatic", False)),
    )


def parse_workflow(data: dict[str, Any]) -> WorkflowTemplate:
    return WorkflowTemplate(
        key=data.get("key") or data["application_type"],
        name=data["name"],
        application_type=data["application_type"],
        description=data.get("description"),
        activate=bool(data.get("activate", False)),
        stages=tuple(parse_stage(s) for s in data.get("stages") or []),
        transitions=tuple(parse_transition(t) for t in data.get("transitions") or []),
    )


def parse_settings(data: dict[str, Any]) -> EngineSettings:
    engine = data.get("engine") or {}
    notifications = data.get("notifications") or {}
    max_steps = engine.get("max_propagation_steps")

    templates = {
        template_id: NotificationTemplateDef(
            template_id=template_id,
            subject=spec["subject"],
            description=spec.get("description"),
        )
        for template_id, spec in (notifications.get("templates") or {}).items()
    }
    permissions = {
        permission: _str_tuple(roles, f"permissions.{permission}")
        for permission, roles in (data.get("permissions") or {}).items()
    }

    return EngineSettings(
        system_actor_id=UUID(str(engine["system_actor_id"])),
        max_propagation_steps=int(max_steps) if max_steps is not None else None,
        auto_process_transitions=bool(engine.get("auto_process_transitions", True)),
        notification_default_channels=_str_tuple(
            notifications.get("default_channels"), "default_channels"
        ) or ("email", "in_app"),
        notification_templates=templates,
        role_permissions=permissions,
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def load_config_set(directory: Path) -> AdmissionsConfigurationSet:
    """
    Load and parse one configuration set directory.

    Workflow files are read in file-name order so the checksum is stable.
    """
    settings_data = load_yaml_file(directory / SETTINGS_FILE)
    workflow_files = sorted((directory / WORKFLOWS_DIR).glob("*.yaml"))
    workflow_data = [load_yaml_file(path) for path in workflow_files]

    return AdmissionsConfigurationSet(
        config_id=settings_data["config_id"],
        version=int(settings_data.get("version", 1)),
        settings=parse_settings(settings_data),
        workflows=tuple(parse_workflow(w) for w in workflow_data),
        checksum=compute_checksum({"settings": settings_data, "workflows": workflow_data}),
    )
