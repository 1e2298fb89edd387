"""
Workflow graph model and activation-time validation.

Covers:
- Adjacency indexes, priority ordering and derived initial/final stages
- Edges pointing outside the graph are kept but not indexed
- Every validation rule, with all issues collected in one pass
"""

from uuid import uuid4

from admissions_kernel.domain.graph import StageNode, TransitionEdge, WorkflowGraph
from admissions_kernel.domain.graph_validator import validate_workflow_graph

WORKFLOW_ID = uuid4()


def _stages(*names):
    return {
        name: StageNode(id=uuid4(), workflow_id=WORKFLOW_ID, name=name, sequence=i)
        for i, name in enumerate(names, start=1)
    }


def _edge(stages, source, target, priority, automatic=False, name=None):
    return TransitionEdge(
        id=uuid4(),
        workflow_id=WORKFLOW_ID,
        source_stage_id=stages[source].id,
        target_stage_id=stages[target].id,
        name=name or f"{source}->{target}",
        priority=priority,
        is_automatic=automatic,
    )


def _graph(stages, edges):
    return WorkflowGraph(
        workflow_id=WORKFLOW_ID,
        application_type="undergraduate",
        stages=tuple(stages.values()),
        transitions=tuple(edges),
    )


class TestWorkflowGraph:

    def test_initial_and_final_are_derived(self):
        s = _stages("Draft", "Submitted", "Accepted", "Rejected")
        graph = _graph(
            s,
            [
                _edge(s, "Draft", "Submitted", 1),
                _edge(s, "Submitted", "Accepted", 2),
                _edge(s, "Submitted", "Rejected", 3),
            ],
        )
        assert [n.name for n in graph.initial_stages()] == ["Draft"]
        assert [n.name for n in graph.final_stages()] == ["Accepted", "Rejected"]
        assert graph.is_initial(s["Draft"].id)
        assert graph.is_final(s["Rejected"].id)
        assert not graph.is_final(s["Submitted"].id)

    def test_outgoing_is_priority_ordered(self):
        s = _stages("A", "B", "C")
        late = _edge(s, "A", "C", 9, automatic=True)
        early = _edge(s, "A", "B", 2, automatic=True)
        manual = _edge(s, "A", "B", 5, name="manual")
        graph = _graph(s, [late, manual, early])

        assert graph.outgoing(s["A"].id) == (early, manual, late)
        assert graph.automatic_outgoing(s["A"].id) == (early, late)
        assert graph.incoming(s["B"].id) == (early, manual)

    def test_stages_sorted_by_sequence(self):
        s = _stages("A", "B", "C")
        graph = WorkflowGraph(
            workflow_id=WORKFLOW_ID,
            application_type="x",
            stages=(s["C"], s["A"], s["B"]),
            transitions=(),
        )
        assert [n.name for n in graph.stages] == ["A", "B", "C"]

    def test_successors_are_distinct(self):
        s = _stages("A", "B", "C")
        graph = _graph(
            s,
            [_edge(s, "A", "B", 1), _edge(s, "A", "B", 2, name="again"), _edge(s, "A", "C", 3)],
        )
        assert [n.name for n in graph.successors(s["A"].id)] == ["B", "C"]

    def test_reachable_from(self):
        s = _stages("A", "B", "C", "D")
        graph = _graph(s, [_edge(s, "A", "B", 1), _edge(s, "B", "A", 2), _edge(s, "C", "D", 3)])
        assert graph.reachable_from(s["A"].id) == {s["A"].id, s["B"].id}
        assert graph.reachable_from(uuid4()) == frozenset()

    def test_foreign_edges_not_indexed(self):
        s = _stages("A", "B")
        foreign = TransitionEdge(
            id=uuid4(),
            workflow_id=WORKFLOW_ID,
            source_stage_id=s["A"].id,
            target_stage_id=uuid4(),
            name="elsewhere",
            priority=1,
        )
        graph = _graph(s, [foreign])
        assert graph.transition(foreign.id) is foreign
        assert graph.outgoing(s["A"].id) == ()

    def test_lookups(self):
        s = _stages("Draft")
        graph = _graph(s, [])
        assert graph.stage(s["Draft"].id) is s["Draft"]
        assert graph.stage_by_name("Draft") is s["Draft"]
        assert graph.stage_by_name("Nope") is None
        assert graph.stage(uuid4()) is None


class TestGraphValidation:

    def test_linear_workflow_is_valid(self):
        s = _stages("Draft", "Submitted", "Accepted")
        graph = _graph(s, [_edge(s, "Draft", "Submitted", 1), _edge(s, "Submitted", "Accepted", 2)])
        result = validate_workflow_graph(graph)
        assert result.valid
        assert result.issues == ()

    def test_single_stage_workflow_is_valid(self):
        assert validate_workflow_graph(_graph(_stages("Only"), [])).valid

    def test_empty_workflow(self):
        result = validate_workflow_graph(_graph({}, []))
        assert not result.valid
        assert result.issues == ("Workflow must have at least one stage",)

    def test_cycle_without_entry_has_no_initial_stage(self):
        s = _stages("A", "B")
        result = validate_workflow_graph(_graph(s, [_edge(s, "A", "B", 1), _edge(s, "B", "A", 2)]))
        assert not result.valid
        assert any("no initial stage" in issue for issue in result.issues)
        assert any("no final stage" in issue for issue in result.issues)

    def test_multiple_initial_stages_are_listed(self):
        s = _stages("Draft", "Transfer Intake", "Review")
        result = validate_workflow_graph(
            _graph(s, [_edge(s, "Draft", "Review", 1), _edge(s, "Transfer Intake", "Review", 2)])
        )
        assert not result.valid
        assert "Workflow has multiple initial stages: Draft, Transfer Intake" in result.issues

    def test_isolated_stage(self):
        s = _stages("Draft", "Accepted", "Orphan")
        result = validate_workflow_graph(_graph(s, [_edge(s, "Draft", "Accepted", 1)]))
        assert not result.valid
        assert "Workflow has isolated stages: Orphan" in result.issues

    def test_unreachable_stage(self):
        s = _stages("Draft", "Accepted", "Limbo", "Rejected")
        result = validate_workflow_graph(
            _graph(
                s,
                [
                    _edge(s, "Draft", "Accepted", 1),
                    _edge(s, "Limbo", "Rejected", 2),
                    _edge(s, "Rejected", "Limbo", 3),
                ],
            )
        )
        assert not result.valid
        assert "Stages unreachable from initial stage 'Draft': Limbo, Rejected" in result.issues

    def test_edge_outside_workflow(self):
        s = _stages("A", "B")
        stray = TransitionEdge(
            id=uuid4(),
            workflow_id=WORKFLOW_ID,
            source_stage_id=s["A"].id,
            target_stage_id=uuid4(),
            name="stray",
            priority=2,
        )
        result = validate_workflow_graph(_graph(s, [_edge(s, "A", "B", 1), stray]))
        assert "Transition 'stray' references a stage outside this workflow" in result.issues

    def test_all_issues_collected(self):
        s = _stages("A", "B", "C")
        result = validate_workflow_graph(_graph(s, [_edge(s, "A", "B", 1), _edge(s, "B", "A", 2)]))
        # C is isolated (and so the only initial and final stage); A and B
        # are then unreachable from it.
        assert len(result.issues) >= 2
