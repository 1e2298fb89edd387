"""Pure domain layer of the admissions kernel: graph, conditions,
requirements, authorization, events and DTOs.  No I/O."""

from admissions_kernel.domain.actors import SYSTEM_ACTOR, SYSTEM_ACTOR_ID, Actor, system_actor
from admissions_kernel.domain.authorization import (
    PermissionSource,
    StaticPermissionSource,
    TransitionAuthorizer,
)
from admissions_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from admissions_kernel.domain.conditions import (
    Condition,
    condition_to_dict,
    parse_condition,
    parse_conditions,
)
from admissions_kernel.domain.dtos import (
    ApplicationInfo,
    StatusHistoryEntry,
    StatusRecord,
    WorkflowSummary,
)
from admissions_kernel.domain.events import (
    AuditEntry,
    AuditSink,
    DocumentVerified,
    EventSink,
    InMemoryEventSink,
    StageCompleted,
    StatusChanged,
)
from admissions_kernel.domain.graph import StageNode, TransitionEdge, WorkflowGraph
from admissions_kernel.domain.graph_validator import (
    GraphValidationResult,
    validate_workflow_graph,
)
from admissions_kernel.domain.requirements import (
    DocumentRecord,
    DocumentSource,
    EvaluationContext,
    PredicateRegistry,
    RequirementCheck,
    RequirementEvaluator,
    default_predicate_registry,
)
from admissions_kernel.domain.results import (
    InitializationResult,
    PropagationResult,
    StageCompletionResult,
    TransitionOutcome,
    TransitionResult,
)

__all__ = [
    "Actor",
    "ApplicationInfo",
    "AuditEntry",
    "AuditSink",
    "Clock",
    "Condition",
    "DeterministicClock",
    "DocumentRecord",
    "DocumentSource",
    "DocumentVerified",
    "EvaluationContext",
    "EventSink",
    "GraphValidationResult",
    "InMemoryEventSink",
    "InitializationResult",
    "PermissionSource",
    "PredicateRegistry",
    "PropagationResult",
    "RequirementCheck",
    "RequirementEvaluator",
    "SYSTEM_ACTOR",
    "SYSTEM_ACTOR_ID",
    "StageCompleted",
    "StageCompletionResult",
    "StageNode",
    "StaticPermissionSource",
    "StatusChanged",
    "StatusHistoryEntry",
    "StatusRecord",
    "SystemClock",
    "TransitionAuthorizer",
    "TransitionEdge",
    "TransitionOutcome",
    "TransitionResult",
    "WorkflowGraph",
    "WorkflowSummary",
    "condition_to_dict",
    "default_predicate_registry",
    "parse_condition",
    "parse_conditions",
    "system_actor",
    "validate_workflow_graph",
]
