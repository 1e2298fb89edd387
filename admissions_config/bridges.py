"""
Config -> Kernel Bridges.

Functions that turn configuration artifacts into kernel inputs.  They live
in admissions_config (the producer) because the kernel must NEVER import
admissions_config.

Usage:
    from admissions_config.bridges import engine_options, template_to_graph

    config = get_active_config()
    engine = WorkflowEngine(session, permissions, **engine_options(config.settings))
"""

from __future__ import annotations

from typing import Any
from uuid import UUID, uuid5

from admissions_config.schema import EngineSettings, WorkflowTemplate
from admissions_kernel.domain.actors import system_actor
from admissions_kernel.domain.conditions import parse_conditions
from admissions_kernel.domain.graph import StageNode, TransitionEdge, WorkflowGraph

# Fixed namespace for deterministic ids of not-yet-installed templates.
_TEMPLATE_UUID_NAMESPACE = UUID("6f1c2b9e-3d4a-4e8b-9c7f-1a2b3c4d5e6f")


def _template_id(*parts: str) -> UUID:
    return uuid5(_TEMPLATE_UUID_NAMESPACE, "/".join(parts))


def template_to_graph(template: WorkflowTemplate) -> WorkflowGraph:
    """
    Build the graph a template would have once installed.

    Ids are derived from names, so the graph is deterministic.  Transitions
    whose endpoints name no stage get a fresh id and are reported by the
    graph validator.  Raises InvalidConditionError on bad conditions.
    """
    workflow_id = _template_id(template.key)
    stage_ids = {s.name: _template_id(template.key, "stage", s.name) for s in template.stages}

    stages = tuple(
        StageNode(
            id=stage_ids[s.name],
            workflow_id=workflow_id,
            name=s.name,
            sequence=s.sequence,
            description=s.description,
            required_documents=s.required_documents,
            required_actions=s.required_actions,
            notification_triggers=tuple(t.to_dict() for t in s.notification_triggers),
            assigned_role=s.assigned_role,
        )
        for s in template.stages
    )
    transitions = tuple(
        TransitionEdge(
            id=_template_id(template.key, "transition", str(index), t.name),
            workflow_id=workflow_id,
            source_stage_id=stage_ids.get(t.source)
            or _template_id(template.key, "missing", t.source),
            target_stage_id=stage_ids.get(t.target)
            or _template_id(template.key, "missing", t.target),
            name=t.name,
            priority=index,
            conditions=parse_conditions(list(t.conditions)),
            required_permissions=frozenset(t.required_permissions),
            is_automatic=t.is_automatic,
            description=t.description,
        )
        for index, t in enumerate(template.transitions, start=1)
    )
    return WorkflowGraph(
        workflow_id=workflow_id,
        application_type=template.application_type,
        name=template.name,
        stages=stages,
        transitions=transitions,
    )


def engine_options(settings: EngineSettings) -> dict[str, Any]:
    """Keyword arguments for WorkflowEngine derived from settings."""
    return {
        "max_propagation_steps": settings.max_propagation_steps,
        "system_actor": system_actor(settings.system_actor_id),
        "auto_process_transitions": settings.auto_process_transitions,
    }
