"""
Workflow definition editing and activation.

WorkflowService owns structure; WorkflowRegistry owns which workflow is
active per application type.  An active workflow is structurally frozen.
"""

from uuid import uuid4

import pytest

from admissions_kernel.exceptions import (
    CrossWorkflowTransitionError,
    DuplicateStageNameError,
    InvalidConditionError,
    InvalidStageOrderError,
    InvalidWorkflowGraphError,
    StageNotFoundError,
    TransitionNotFoundError,
    WorkflowActiveError,
    WorkflowInUseError,
    WorkflowNotFoundError,
)

ACTOR = uuid4()


@pytest.fixture
def draft(workflow_service):
    """An inactive workflow with three stages and no transitions."""
    summary = workflow_service.create_workflow("Draft Flow", "undergraduate", ACTOR)
    stages = [
        workflow_service.add_stage(summary.workflow_id, name, ACTOR)
        for name in ("Start", "Middle", "End")
    ]
    return summary.workflow_id, stages


class TestWorkflows:

    def test_create_is_inactive_and_empty(self, workflow_service):
        summary = workflow_service.create_workflow(
            "Undergraduate", "undergraduate", ACTOR, description="Fall intake"
        )
        assert not summary.is_active
        assert summary.stage_count == 0
        assert summary.transition_count == 0
        assert summary.description == "Fall intake"

    def test_update_name_while_active(self, workflow_service, simple_workflow):
        summary = workflow_service.update_workflow(
            simple_workflow.workflow_id, ACTOR, name="Renamed"
        )
        assert summary.name == "Renamed"
        assert summary.is_active

    def test_list_by_type(self, workflow_service, build_workflow):
        build_workflow(["Only"], application_type="graduate", name="Grad")
        build_workflow(["Only"], name="Undergrad")
        names = [w.name for w in workflow_service.list_workflows("graduate")]
        assert names == ["Grad"]
        assert len(workflow_service.list_workflows()) == 2

    def test_delete_unused(self, workflow_service, draft):
        workflow_id, stages = draft
        workflow_service.add_transition(
            workflow_id, stages[0].id, stages[1].id, "Go", ACTOR
        )
        workflow_service.delete_workflow(workflow_id, ACTOR)
        with pytest.raises(WorkflowNotFoundError):
            workflow_service.get_graph(workflow_id)

    def test_delete_active_is_rejected(self, workflow_service, simple_workflow):
        with pytest.raises(WorkflowActiveError):
            workflow_service.delete_workflow(simple_workflow.workflow_id, ACTOR)

    def test_delete_in_use_is_rejected(
        self, workflow_service, workflow_registry, engine, simple_workflow,
        create_application, applicant,
    ):
        engine.initialize_workflow(create_application(), applicant)
        workflow_registry.deactivate(simple_workflow.workflow_id, ACTOR)

        with pytest.raises(WorkflowInUseError) as exc_info:
            workflow_service.delete_workflow(simple_workflow.workflow_id, ACTOR)
        assert exc_info.value.status_count == 1


class TestStages:

    def test_sequences_follow_insertion(self, draft):
        _, stages = draft
        assert [(s.name, s.sequence) for s in stages] == [
            ("Start", 1),
            ("Middle", 2),
            ("End", 3),
        ]

    def test_insert_shifts_later_siblings(self, workflow_service, draft):
        workflow_id, _ = draft
        workflow_service.add_stage(workflow_id, "Interview", ACTOR, sequence=2)
        graph = workflow_service.get_graph(workflow_id)
        assert [s.name for s in sorted(graph.stages, key=lambda s: s.sequence)] == [
            "Start",
            "Interview",
            "Middle",
            "End",
        ]

    def test_sequence_out_of_range(self, workflow_service, draft):
        workflow_id, _ = draft
        with pytest.raises(InvalidStageOrderError):
            workflow_service.add_stage(workflow_id, "Far", ACTOR, sequence=9)

    def test_duplicate_name(self, workflow_service, draft):
        workflow_id, stages = draft
        with pytest.raises(DuplicateStageNameError):
            workflow_service.add_stage(workflow_id, "Start", ACTOR)
        with pytest.raises(DuplicateStageNameError):
            workflow_service.update_stage(stages[1].id, ACTOR, name="End")

    def test_update_fields(self, workflow_service, draft):
        _, stages = draft
        node = workflow_service.update_stage(
            stages[1].id,
            ACTOR,
            required_documents=["transcript"],
            assigned_role="admissions_committee",
        )
        assert node.required_documents == ("transcript",)
        assert node.assigned_role == "admissions_committee"

    def test_update_rejects_unknown_fields(self, workflow_service, draft):
        _, stages = draft
        with pytest.raises(ValueError, match="sequence"):
            workflow_service.update_stage(stages[0].id, ACTOR, sequence=3)

    def test_delete_removes_touching_transitions_and_closes_gap(
        self, workflow_service, draft
    ):
        workflow_id, (start, middle, end) = draft
        workflow_service.add_transition(workflow_id, start.id, middle.id, "In", ACTOR)
        workflow_service.add_transition(workflow_id, middle.id, end.id, "Out", ACTOR)
        workflow_service.add_transition(workflow_id, start.id, end.id, "Skip", ACTOR)

        workflow_service.delete_stage(middle.id, ACTOR)

        graph = workflow_service.get_graph(workflow_id)
        assert [(s.name, s.sequence) for s in sorted(graph.stages, key=lambda s: s.sequence)] == [
            ("Start", 1),
            ("End", 2),
        ]
        assert [t.name for t in graph.transitions] == ["Skip"]

    def test_delete_unknown(self, workflow_service):
        with pytest.raises(StageNotFoundError):
            workflow_service.delete_stage(uuid4(), ACTOR)

    def test_reorder(self, workflow_service, draft):
        workflow_id, (start, middle, end) = draft
        nodes = workflow_service.reorder_stages(workflow_id, [end.id, start.id, middle.id], ACTOR)
        assert [(n.name, n.sequence) for n in nodes] == [("End", 1), ("Start", 2), ("Middle", 3)]

    @pytest.mark.parametrize("bad_order", ["missing", "duplicate"])
    def test_reorder_requires_permutation(self, workflow_service, draft, bad_order):
        workflow_id, (start, middle, end) = draft
        ids = [start.id, middle.id] if bad_order == "missing" else [start.id, start.id, end.id]
        with pytest.raises(InvalidStageOrderError):
            workflow_service.reorder_stages(workflow_id, ids, ACTOR)


class TestTransitions:

    def test_priorities_increase(self, workflow_service, draft):
        workflow_id, (start, middle, end) = draft
        first = workflow_service.add_transition(workflow_id, start.id, middle.id, "A", ACTOR)
        second = workflow_service.add_transition(workflow_id, middle.id, end.id, "B", ACTOR)
        assert second.priority > first.priority

    def test_conditions_are_parsed_on_write(self, workflow_service, draft):
        workflow_id, (start, middle, _) = draft
        with pytest.raises(InvalidConditionError):
            workflow_service.add_transition(
                workflow_id,
                start.id,
                middle.id,
                "Broken",
                ACTOR,
                conditions=[{"field": "gpa", "operator": "~=", "value": 3}],
            )

    def test_cross_workflow_endpoints(self, workflow_service, draft):
        workflow_id, (start, _, _) = draft
        other = workflow_service.create_workflow("Other", "graduate", ACTOR)
        foreign = workflow_service.add_stage(other.workflow_id, "Elsewhere", ACTOR)
        with pytest.raises(CrossWorkflowTransitionError):
            workflow_service.add_transition(workflow_id, start.id, foreign.id, "Leak", ACTOR)

    def test_update_and_delete(self, workflow_service, draft):
        workflow_id, (start, middle, end) = draft
        edge = workflow_service.add_transition(workflow_id, start.id, middle.id, "Go", ACTOR)

        updated = workflow_service.update_transition(
            edge.id,
            ACTOR,
            target_stage_id=end.id,
            required_permissions=["complete_review"],
            is_automatic=True,
        )
        assert updated.target_stage_id == end.id
        assert updated.required_permissions == frozenset({"complete_review"})
        assert updated.is_automatic

        workflow_service.delete_transition(edge.id, ACTOR)
        with pytest.raises(TransitionNotFoundError):
            workflow_service.delete_transition(edge.id, ACTOR)

    def test_active_workflow_is_frozen(self, workflow_service, simple_workflow):
        with pytest.raises(WorkflowActiveError) as exc_info:
            workflow_service.add_stage(simple_workflow.workflow_id, "Interview", ACTOR)
        assert exc_info.value.operation == "add_stage"

        with pytest.raises(WorkflowActiveError):
            workflow_service.update_transition(
                simple_workflow.transition_id("Submit"), ACTOR, is_automatic=True
            )
        with pytest.raises(WorkflowActiveError):
            workflow_service.delete_stage(simple_workflow.stage_id("Rejected"), ACTOR)


class TestValidation:

    def test_advisory_validation(self, workflow_service, draft):
        workflow_id, (start, middle, _) = draft
        workflow_service.add_transition(workflow_id, start.id, middle.id, "Go", ACTOR)
        result = workflow_service.validate_workflow(workflow_id)
        assert not result.valid
        assert "Workflow has isolated stages: End" in result.issues


class TestRegistry:

    def test_activate(self, workflow_registry, build_workflow):
        wf = build_workflow(["Start", "End"], [{"name": "Go", "source": "Start", "target": "End"}],
                            activate=False)
        assert workflow_registry.get_active_workflow("undergraduate") is None

        summary = workflow_registry.activate(wf.workflow_id, ACTOR)
        assert summary.is_active
        assert workflow_registry.get_active_workflow("undergraduate").workflow_id == wf.workflow_id

    def test_activation_replaces_previous(self, workflow_registry, build_workflow, simple_workflow):
        replacement = build_workflow(
            ["Start", "End"], [{"name": "Go", "source": "Start", "target": "End"}], name="V2"
        )
        active = workflow_registry.get_active_workflow("undergraduate")
        assert active.workflow_id == replacement.workflow_id
        graduate = build_workflow(["Only"], application_type="graduate")
        assert workflow_registry.get_active_workflow("graduate").workflow_id == graduate.workflow_id
        assert workflow_registry.get_active_workflow("undergraduate").workflow_id == replacement.workflow_id

    def test_activating_active_is_a_no_op(self, workflow_registry, simple_workflow, auditor_service):
        workflow_registry.activate(simple_workflow.workflow_id, ACTOR)
        actions = auditor_service.get_trace("Workflow", simple_workflow.workflow_id).actions
        assert actions.count("workflow_activated") == 1

    def test_invalid_graph_is_not_activated(self, workflow_registry, build_workflow, captured_logs):
        wf = build_workflow(
            ["Start", "End", "Orphan"],
            [{"name": "Go", "source": "Start", "target": "End"}],
            activate=False,
        )
        with pytest.raises(InvalidWorkflowGraphError) as exc_info:
            workflow_registry.activate(wf.workflow_id, ACTOR)
        assert "Workflow has isolated stages: Orphan" in exc_info.value.issues
        assert workflow_registry.get_active_workflow("undergraduate") is None
        assert any(r["message"] == "workflow_activation_rejected" for r in captured_logs())

    def test_deactivate(self, workflow_registry, simple_workflow):
        summary = workflow_registry.deactivate(simple_workflow.workflow_id, ACTOR)
        assert not summary.is_active
        assert workflow_registry.get_active_workflow("undergraduate") is None

    def test_unknown_workflow(self, workflow_registry):
        with pytest.raises(WorkflowNotFoundError):
            workflow_registry.deactivate(uuid4(), ACTOR)
        with pytest.raises(WorkflowNotFoundError):
            workflow_registry.duplicate(uuid4(), "Copy", ACTOR)

    def test_duplicate_copies_structure(
        self, workflow_registry, workflow_service, simple_workflow
    ):
        copy = workflow_registry.duplicate(simple_workflow.workflow_id, "Copy", ACTOR)
        assert not copy.is_active
        assert copy.workflow_id != simple_workflow.workflow_id

        original = workflow_service.get_graph(simple_workflow.workflow_id)
        duplicate = workflow_service.get_graph(copy.workflow_id)
        assert [s.name for s in duplicate.stages] == [s.name for s in original.stages]
        assert [t.name for t in duplicate.transitions] == [t.name for t in original.transitions]
        assert {s.id for s in duplicate.stages}.isdisjoint({s.id for s in original.stages})
        review = duplicate.stage_by_name("Review")
        assert review.required_documents == ("transcript",)

        # The copy is editable while the original stays frozen.
        workflow_service.add_stage(copy.workflow_id, "Interview", ACTOR)
