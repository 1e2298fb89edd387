"""
Workflow graph validation (``admissions_kernel.domain.graph_validator``).

Responsibility
--------------
Decides whether a workflow graph is structurally sound enough to be
activated.  Advisory while a workflow is being edited; blocking only at
activation (``WorkflowRegistry.activate``).

Architecture position
---------------------
**Kernel domain layer** -- pure function over ``WorkflowGraph``.  ZERO I/O.

Rules
-----
1. At least one stage.
2. Exactly one initial stage (no incoming transitions).  Zero is "no
   initial stage"; more than one is ambiguous and every candidate is
   listed, so the engine never has to pick one silently.
3. At least one final stage (no outgoing transitions).
4. No isolated stages.  In a workflow with more than one stage, a stage
   with neither incoming nor outgoing transitions is isolated, and so is
   any stage the unique initial stage cannot reach.
5. Every transition connects two stages of this workflow.

All violations are collected; the result never short-circuits.
"""

from __future__ import annotations

from dataclasses import dataclass

from admissions_kernel.domain.graph import WorkflowGraph


@dataclass(frozen=True)
class GraphValidationResult:
    """Outcome of validate_workflow_graph.

    ``valid`` is True iff ``issues`` is empty.
    """

    valid: bool
    issues: tuple[str, ...] = ()

    @classmethod
    def ok(cls) -> GraphValidationResult:
        return cls(valid=True)

    @classmethod
    def failed(cls, issues: list[str]) -> GraphValidationResult:
        return cls(valid=False, issues=tuple(issues))


def _names(stages) -> str:
    return ", ".join(s.name for s in stages)


def validate_workflow_graph(graph: WorkflowGraph) -> GraphValidationResult:
    """Validate ``graph`` and return every issue found."""
    issues: list[str] = []

    if not graph.stages:
        return GraphValidationResult.failed(["Workflow must have at least one stage"])

    for edge in graph.transitions:
        if not graph.has_stage(edge.source_stage_id) or not graph.has_stage(
            edge.target_stage_id
        ):
            issues.append(
                f"Transition '{edge.name}' references a stage outside this workflow"
            )

    initial = graph.initial_stages()
    if not initial:
        issues.append("Workflow has no initial stage (every stage has incoming transitions)")
    elif len(initial) > 1:
        issues.append(f"Workflow has multiple initial stages: {_names(initial)}")

    if not graph.final_stages():
        issues.append("Workflow has no final stage (every stage has outgoing transitions)")

    if len(graph.stages) > 1:
        isolated = [
            s for s in graph.stages
            if not graph.incoming(s.id) and not graph.outgoing(s.id)
        ]
        if isolated:
            issues.append(f"Workflow has isolated stages: {_names(isolated)}")

        if len(initial) == 1:
            reachable = graph.reachable_from(initial[0].id)
            isolated_ids = {s.id for s in isolated}
            unreachable = [
                s for s in graph.stages
                if s.id not in reachable and s.id not in isolated_ids
            ]
            if unreachable:
                issues.append(
                    f"Stages unreachable from initial stage '{initial[0].name}': "
                    f"{_names(unreachable)}"
                )

    if issues:
        return GraphValidationResult.failed(issues)
    return GraphValidationResult.ok()
