"""
Configuration Validator (``admissions_config.validator``).

Responsibility
--------------
Validates an ``AdmissionsConfigurationSet`` at build time so that a
template which could never be activated is caught before it is installed.

Architecture position
---------------------
**Config layer** -- build-time validation.  Reuses the kernel's condition
parser and graph validator so config and runtime agree on what is sound.

Invariants enforced
-------------------
* Workflow keys are unique; at most one template per application type
  asks to be activated.
* Stage names and sequences are unique within a template.
* Transition endpoints name stages of the same template.
* Every condition parses.
* The template's graph passes ``validate_workflow_graph``.
* Trigger events and channels come from the known sets.

Warnings (not blocking): a required permission no role holds, a
notification template that is not defined.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field

from admissions_config.bridges import template_to_graph
from admissions_config.schema import (
    NOTIFICATION_CHANNELS,
    NOTIFICATION_EVENTS,
    AdmissionsConfigurationSet,
    WorkflowTemplate,
)
from admissions_kernel.domain.graph_validator import validate_workflow_graph
from admissions_kernel.exceptions import InvalidConditionError


class ConfigValidationError(ValueError):
    """A configuration set failed validation."""

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__(
            "Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
        )


@dataclass
class ConfigValidationResult:
    """
    Result of configuration validation.

    ``is_valid`` is True only when ``errors`` is empty.  Warnings do not
    block installation but should be reviewed.
    """

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)


def validate_configuration(config: AdmissionsConfigurationSet) -> ConfigValidationResult:
    """Validate a configuration set and return every error and warning."""
    result = ConfigValidationResult()

    _validate_workflow_keys(config, result)
    for template in config.workflows:
        _validate_stages(template, result)
        _validate_transition_endpoints(template, result)
        _validate_triggers(config, template, result)
        _validate_permissions(config, template, result)
        _validate_graph(template, result)

    return result


def _duplicates(values) -> list:
    return sorted(v for v, n in Counter(values).items() if n > 1)


def _validate_workflow_keys(
    config: AdmissionsConfigurationSet, result: ConfigValidationResult
) -> None:
    for key in _duplicates(t.key for t in config.workflows):
        result.add_error(f"Duplicate workflow key '{key}'")
    for app_type in _duplicates(t.application_type for t in config.workflows if t.activate):
        result.add_error(
            f"More than one workflow for application type '{app_type}' is marked activate"
        )


def _validate_stages(template: WorkflowTemplate, result: ConfigValidationResult) -> None:
    for name in _duplicates(s.name for s in template.stages):
        result.add_error(f"{template.key}: duplicate stage name '{name}'")
    for seq in _duplicates(s.sequence for s in template.stages):
        result.add_error(f"{template.key}: duplicate stage sequence {seq}")
    for stage in template.stages:
        if stage.sequence < 1:
            result.add_error(f"{template.key}: stage '{stage.name}' has sequence < 1")


def _validate_transition_endpoints(
    template: WorkflowTemplate, result: ConfigValidationResult
) -> None:
    names = set(template.stage_names())
    for transition in template.transitions:
        for end in (transition.source, transition.target):
            if end not in names:
                result.add_error(
                    f"{template.key}: transition '{transition.name}' references "
                    f"unknown stage '{end}'"
                )


def _validate_triggers(
    config: AdmissionsConfigurationSet,
    template: WorkflowTemplate,
    result: ConfigValidationResult,
) -> None:
    known_templates = config.settings.notification_templates
    for stage in template.stages:
        for trigger in stage.notification_triggers:
            if trigger.event not in NOTIFICATION_EVENTS:
                result.add_error(
                    f"{template.key}: stage '{stage.name}' has unknown trigger "
                    f"event '{trigger.event}'"
                )
            for channel in trigger.channels:
                if channel not in NOTIFICATION_CHANNELS:
                    result.add_error(
                        f"{template.key}: stage '{stage.name}' has unknown channel "
                        f"'{channel}'"
                    )
            if trigger.template not in known_templates:
                result.add_warning(
                    f"{template.key}: stage '{stage.name}' uses undefined "
                    f"notification template '{trigger.template}'"
                )


def _validate_permissions(
    config: AdmissionsConfigurationSet,
    template: WorkflowTemplate,
    result: ConfigValidationResult,
) -> None:
    granted = {p for p, roles in config.settings.role_permissions.items() if roles}
    for transition in template.transitions:
        for permission in transition.required_permissions:
            if permission not in granted:
                result.add_warning(
                    f"{template.key}: transition '{transition.name}' requires "
                    f"'{permission}', which no role holds"
                )


def _validate_graph(template: WorkflowTemplate, result: ConfigValidationResult) -> None:
    try:
        graph = template_to_graph(template)
    except InvalidConditionError as exc:
        result.add_error(f"{template.key}: {exc}")
        return
    validation = validate_workflow_graph(graph)
    for issue in validation.issues:
        result.add_error(f"{template.key}: {issue}")
