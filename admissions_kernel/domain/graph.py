"""
Workflow graph model (``admissions_kernel.domain.graph``).

Responsibility
--------------
Immutable, in-memory view of one workflow definition: stages are nodes,
transitions are directed edges, both referenced by id.  Adjacency indexes
are built once at construction so that every query the engine makes on
the hot path (outgoing edges of the current stage, automatic edges in
priority order) is a dictionary lookup.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  Built by
``WorkflowSelector.load_graph`` from two batch queries; consumed by the
graph validator, the authorizer and the engine.

Invariants enforced
-------------------
* ``stages`` are ordered by ``sequence``; ``transitions`` by ``priority``
  (creation order), so ``outgoing()`` and ``automatic_outgoing()`` return
  edges in the engine's tie-break order.
* A stage with no incoming edge is *initial*; a stage with no outgoing edge
  is *final*.  Both are derived, never stored.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from uuid import UUID

from admissions_kernel.domain.conditions import Condition


@dataclass(frozen=True)
class StageNode:
    """A stage of a workflow graph.

    Contract: frozen snapshot of a WorkflowStage row.
    """

    id: UUID
    workflow_id: UUID
    name: str
    sequence: int
    description: str | None = None
    required_documents: tuple[str, ...] = ()
    required_actions: tuple[str, ...] = ()
    notification_triggers: tuple[Mapping, ...] = ()
    assigned_role: str | None = None


@dataclass(frozen=True)
class TransitionEdge:
    """A directed, possibly automatic, edge between two stages.

    Contract: frozen snapshot of a WorkflowTransition row with its
    conditions already parsed.
    """

    id: UUID
    workflow_id: UUID
    source_stage_id: UUID
    target_stage_id: UUID
    name: str
    priority: int
    conditions: tuple[Condition, ...] = ()
    required_permissions: frozenset[str] = frozenset()
    is_automatic: bool = False
    description: str | None = None


@dataclass(frozen=True)
class WorkflowGraph:
    """
    A workflow as an indexed directed graph.

    Contract:
        Constructed from stage and transition snapshots of ONE workflow.
        Edges whose endpoints are not stages of this graph are kept in
        ``transitions`` (the validator reports them) but excluded from the
        adjacency indexes.

    Guarantees:
        - ``outgoing(stage_id)`` / ``incoming(stage_id)`` are O(1) lookups.
        - ``automatic_outgoing(stage_id)`` is ordered by ascending priority.
        - No method has side effects.
    """

    workflow_id: UUID
    application_type: str
    stages: tuple[StageNode, ...]
    transitions: tuple[TransitionEdge, ...]
    name: str = ""
    is_active: bool = False

    _stage_index: Mapping[UUID, StageNode] = field(init=False, repr=False, compare=False)
    _transition_index: Mapping[UUID, TransitionEdge] = field(
        init=False, repr=False, compare=False
    )
    _outgoing: Mapping[UUID, tuple[TransitionEdge, ...]] = field(
        init=False, repr=False, compare=False
    )
    _incoming: Mapping[UUID, tuple[TransitionEdge, ...]] = field(
        init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        stages = tuple(sorted(self.stages, key=lambda s: (s.sequence, s.name)))
        transitions = tuple(sorted(self.transitions, key=lambda t: t.priority))
        stage_index = {s.id: s for s in stages}

        outgoing: dict[UUID, list[TransitionEdge]] = {s.id: [] for s in stages}
        incoming: dict[UUID, list[TransitionEdge]] = {s.id: [] for s in stages}
        for edge in transitions:
            if edge.source_stage_id in stage_index and edge.target_stage_id in stage_index:
                outgoing[edge.source_stage_id].append(edge)
                incoming[edge.target_stage_id].append(edge)

        object.__setattr__(self, "stages", stages)
        object.__setattr__(self, "transitions", transitions)
        object.__setattr__(self, "_stage_index", MappingProxyType(stage_index))
        object.__setattr__(
            self,
            "_transition_index",
            MappingProxyType({t.id: t for t in transitions}),
        )
        object.__setattr__(
            self,
            "_outgoing",
            MappingProxyType({k: tuple(v) for k, v in outgoing.items()}),
        )
        object.__setattr__(
            self,
            "_incoming",
            MappingProxyType({k: tuple(v) for k, v in incoming.items()}),
        )

    # -- lookups ------------------------------------------------------------

    def stage(self, stage_id: UUID) -> StageNode | None:
        return self._stage_index.get(stage_id)

    def stage_by_name(self, name: str) -> StageNode | None:
        for stage in self.stages:
            if stage.name == name:
                return stage
        return None

    def transition(self, transition_id: UUID) -> TransitionEdge | None:
        return self._transition_index.get(transition_id)

    def has_stage(self, stage_id: UUID) -> bool:
        return stage_id in self._stage_index

    # -- adjacency ----------------------------------------------------------

    def outgoing(self, stage_id: UUID) -> tuple[TransitionEdge, ...]:
        """Edges leaving ``stage_id`` in priority order."""
        return self._outgoing.get(stage_id, ())

    def incoming(self, stage_id: UUID) -> tuple[TransitionEdge, ...]:
        """Edges entering ``stage_id`` in priority order."""
        return self._incoming.get(stage_id, ())

    def automatic_outgoing(self, stage_id: UUID) -> tuple[TransitionEdge, ...]:
        """Automatic edges leaving ``stage_id`` in priority order."""
        return tuple(t for t in self.outgoing(stage_id) if t.is_automatic)

    def is_initial(self, stage_id: UUID) -> bool:
        return stage_id in self._stage_index and not self._incoming[stage_id]

    def is_final(self, stage_id: UUID) -> bool:
        return stage_id in self._stage_index and not self._outgoing[stage_id]

    def initial_stages(self) -> tuple[StageNode, ...]:
        return tuple(s for s in self.stages if not self._incoming[s.id])

    def final_stages(self) -> tuple[StageNode, ...]:
        return tuple(s for s in self.stages if not self._outgoing[s.id])

    def successors(self, stage_id: UUID) -> tuple[StageNode, ...]:
        """Distinct target stages reachable in one step, first edge first."""
        seen: dict[UUID, StageNode] = {}
        for edge in self.outgoing(stage_id):
            if edge.target_stage_id not in seen:
                seen[edge.target_stage_id] = self._stage_index[edge.target_stage_id]
        return tuple(seen.values())

    def reachable_from(self, stage_id: UUID) -> frozenset[UUID]:
        """Ids of every stage reachable from ``stage_id`` (inclusive)."""
        if stage_id not in self._stage_index:
            return frozenset()
        seen = {stage_id}
        frontier = [stage_id]
        while frontier:
            current = frontier.pop()
            for edge in self._outgoing[current]:
                if edge.target_stage_id not in seen:
                    seen.add(edge.target_stage_id)
                    frontier.append(edge.target_stage_id)
        return frozenset(seen)
