"""
WorkflowEngine behaviour on a persisted workflow.

Covers:
- Initialization on the active workflow's unique initial stage
- Manual transitions: executed, not available, not authorized
- Automatic propagation after every state change, with loop detection
- Stage completion and document verification
- Read-side queries (current stage, available transitions, history)
- Applications stay on the workflow they were initialized with
"""

from uuid import uuid4

import pytest
from sqlalchemy.exc import OperationalError

from admissions_kernel.domain.actors import SYSTEM_ACTOR_ID
from admissions_kernel.domain.events import DocumentVerified, StageCompleted, StatusChanged
from admissions_kernel.domain.results import TransitionOutcome
from admissions_kernel.exceptions import (
    ApplicationNotFoundError,
    DocumentNotFoundError,
    NoActiveWorkflowError,
    PersistenceError,
    TransitionNotAuthorizedError,
    TransitionNotFoundError,
    WorkflowAlreadyInitializedError,
    WorkflowNotInitializedError,
)
from admissions_kernel.services.auditor_service import AuditorService
from admissions_kernel.services.workflow_engine import WorkflowEngine


def _stage_names(history):
    return [entry.stage_name for entry in history]


class TestInitialization:

    def test_initializes_on_initial_stage(
        self, engine, simple_workflow, create_application, applicant, event_sink
    ):
        app_id = create_application()
        result = engine.initialize_workflow(app_id, applicant)

        assert result.workflow_id == simple_workflow.workflow_id
        assert result.status.status == "Draft"
        assert result.status.notes == "Application workflow initialized"
        assert result.status.actor_id == applicant.actor_id
        assert result.automatic_steps == ()
        assert engine.current_stage(app_id).name == "Draft"

        changed = event_sink.of_type(StatusChanged)
        assert len(changed) == 1
        assert changed[0].previous_status_id is None
        assert changed[0].new_stage_name == "Draft"

    def test_custom_notes(self, engine, simple_workflow, create_application, applicant):
        app_id = create_application()
        result = engine.initialize_workflow(app_id, applicant, notes="Imported from fair")
        assert result.status.notes == "Imported from fair"

    def test_twice_is_rejected(self, engine, simple_workflow, create_application, applicant):
        app_id = create_application()
        engine.initialize_workflow(app_id, applicant)
        with pytest.raises(WorkflowAlreadyInitializedError):
            engine.initialize_workflow(app_id, applicant)
        assert len(engine.status_history(app_id)) == 1

    def test_no_active_workflow(self, engine, simple_workflow, create_application, applicant):
        app_id = create_application(application_type="graduate")
        with pytest.raises(NoActiveWorkflowError):
            engine.initialize_workflow(app_id, applicant)

    def test_unknown_application(self, engine, simple_workflow, applicant):
        with pytest.raises(ApplicationNotFoundError):
            engine.initialize_workflow(uuid4(), applicant)

    def test_propagates_from_initial_stage(self, engine, build_workflow, create_application, applicant):
        build_workflow(
            ["Draft", "Submitted"],
            [
                {
                    "name": "Auto Submit",
                    "source": "Draft",
                    "target": "Submitted",
                    "is_automatic": True,
                    "conditions": [{"field": "is_submitted", "value": True}],
                }
            ],
        )
        app_id = create_application({"is_submitted": True})
        result = engine.initialize_workflow(app_id, applicant)

        assert result.status.status == "Draft"
        assert [s.status for s in result.automatic_steps] == ["Submitted"]
        assert result.final_status.status == "Submitted"


class TestManualTransitions:

    @pytest.fixture
    def app_id(self, engine, simple_workflow, create_application, applicant):
        app_id = create_application()
        engine.initialize_workflow(app_id, applicant)
        return app_id

    def test_conditions_unmet(self, engine, simple_workflow, app_id, applicant):
        result = engine.execute_transition(
            app_id, simple_workflow.transition_id("Submit"), applicant
        )
        assert result.outcome == TransitionOutcome.NOT_AVAILABLE
        assert result.reason == "Transition conditions not met"
        assert result.status is None
        assert len(engine.status_history(app_id)) == 1

    def test_executes_and_propagates(
        self, engine, simple_workflow, app_id, applicant, application_service, session
    ):
        application_service.update_attributes(
            app_id, {"is_submitted": True, "application_fee_paid": True}, applicant.actor_id
        )
        session.commit()

        result = engine.execute_transition(
            app_id, simple_workflow.transition_id("Submit"), applicant, notes="Submitted online"
        )

        assert result.is_success
        assert result.status.status == "Submitted"
        assert result.status.notes == "Submitted online"
        assert [s.status for s in result.automatic_steps] == ["Review"]
        assert result.final_status.status == "Review"

        auto = result.automatic_steps[0]
        assert auto.actor_id == SYSTEM_ACTOR_ID
        assert auto.notes == "Automatic transition: Screening Passed"
        assert _stage_names(engine.status_history(app_id)) == ["Draft", "Submitted", "Review"]

    def test_automatic_waits_for_condition(
        self, engine, simple_workflow, app_id, applicant, application_service, session
    ):
        application_service.update_attributes(app_id, {"is_submitted": True}, applicant.actor_id)
        session.commit()

        result = engine.execute_transition(
            app_id, simple_workflow.transition_id("Submit"), applicant
        )
        assert result.automatic_steps == ()
        assert engine.current_stage(app_id).name == "Submitted"

        application_service.update_attributes(
            app_id, {"application_fee_paid": True}, applicant.actor_id
        )
        session.commit()
        propagation = engine.process_automatic_transitions(app_id)
        assert propagation.moved
        assert engine.current_stage(app_id).name == "Review"

    def test_wrong_source_stage(self, engine, simple_workflow, app_id, director):
        result = engine.execute_transition(
            app_id, simple_workflow.transition_id("Accept"), director
        )
        assert result.outcome == TransitionOutcome.NOT_AVAILABLE
        assert "current stage 'Draft'" in result.reason

    def test_not_authorized(
        self, engine, simple_workflow, app_id, applicant, director, application_service, session
    ):
        application_service.update_attributes(
            app_id, {"is_submitted": True, "application_fee_paid": True}, applicant.actor_id
        )
        session.commit()
        engine.execute_transition(app_id, simple_workflow.transition_id("Submit"), applicant)

        denied = engine.execute_transition(
            app_id, simple_workflow.transition_id("Accept"), applicant
        )
        assert denied.outcome == TransitionOutcome.NOT_AUTHORIZED
        with pytest.raises(TransitionNotAuthorizedError):
            denied.raise_for_outcome()

        accepted = engine.execute_transition(
            app_id, simple_workflow.transition_id("Accept"), director
        )
        assert accepted.is_success
        assert accepted.raise_for_outcome() is accepted
        assert engine.current_stage(app_id).name == "Accepted"

    def test_admin_bypasses_permissions(
        self, engine, simple_workflow, app_id, applicant, admin, application_service, session
    ):
        application_service.update_attributes(
            app_id, {"is_submitted": True, "application_fee_paid": True}, applicant.actor_id
        )
        session.commit()
        engine.execute_transition(app_id, simple_workflow.transition_id("Submit"), applicant)
        result = engine.execute_transition(app_id, simple_workflow.transition_id("Reject"), admin)
        assert result.is_success

    def test_unknown_transition(self, engine, simple_workflow, app_id, applicant):
        with pytest.raises(TransitionNotFoundError):
            engine.execute_transition(app_id, uuid4(), applicant)

    def test_transition_of_another_workflow(
        self, engine, simple_workflow, build_workflow, app_id, applicant
    ):
        other = build_workflow(
            ["Start", "End"],
            [{"name": "Go", "source": "Start", "target": "End"}],
            application_type="graduate",
        )
        result = engine.execute_transition(app_id, other.transition_id("Go"), applicant)
        assert result.outcome == TransitionOutcome.NOT_AVAILABLE

    def test_uninitialized_application(
        self, engine, simple_workflow, create_application, applicant
    ):
        app_id = create_application()
        with pytest.raises(WorkflowNotInitializedError):
            engine.execute_transition(app_id, simple_workflow.transition_id("Submit"), applicant)


class TestPropagationLoops:

    LOOP_STAGES = ["Start", "A", "B", "End"]
    LOOP_TRANSITIONS = [
        {"name": "Begin", "source": "Start", "target": "A"},
        {"name": "A to B", "source": "A", "target": "B", "is_automatic": True},
        {"name": "B to A", "source": "B", "target": "A", "is_automatic": True},
        {"name": "Finish", "source": "A", "target": "End"},
    ]

    def test_loop_is_capped_at_stage_count(
        self, engine, build_workflow, create_application, applicant, captured_logs
    ):
        wf = build_workflow(self.LOOP_STAGES, self.LOOP_TRANSITIONS)
        app_id = create_application()
        engine.initialize_workflow(app_id, applicant)

        result = engine.execute_transition(app_id, wf.transition_id("Begin"), applicant)

        assert result.is_success
        assert result.loop_detected
        assert len(result.automatic_steps) == 4
        assert any(
            r["message"] == "automatic_transition_loop_detected" for r in captured_logs()
        )
        # The moves made before the cap stand.
        assert len(engine.status_history(app_id)) == 6

    def test_configured_cap(
        self, session, permission_source, deterministic_clock, build_workflow,
        create_application, applicant,
    ):
        wf = build_workflow(self.LOOP_STAGES, self.LOOP_TRANSITIONS)
        capped = WorkflowEngine(
            session, permission_source, clock=deterministic_clock, max_propagation_steps=2
        )
        app_id = create_application()
        capped.initialize_workflow(app_id, applicant)
        result = capped.execute_transition(app_id, wf.transition_id("Begin"), applicant)
        assert len(result.automatic_steps) == 2
        assert result.loop_detected

    def test_auto_processing_can_be_switched_off(
        self, session, permission_source, deterministic_clock, simple_workflow,
        create_application, applicant,
    ):
        manual_only = WorkflowEngine(
            session,
            permission_source,
            clock=deterministic_clock,
            auto_process_transitions=False,
        )
        app_id = create_application({"is_submitted": True, "application_fee_paid": True})
        manual_only.initialize_workflow(app_id, applicant)

        result = manual_only.execute_transition(
            app_id, simple_workflow.transition_id("Submit"), applicant
        )
        assert result.automatic_steps == ()
        assert manual_only.current_stage(app_id).name == "Submitted"

        processed = manual_only.process_automatic_transitions(app_id)
        assert processed.moved
        assert manual_only.current_stage(app_id).name == "Review"

    def test_priority_breaks_ties(self, engine, build_workflow, create_application, applicant):
        wf = build_workflow(
            ["Start", "First", "Second"],
            [
                {"name": "to First", "source": "Start", "target": "First", "is_automatic": True},
                {"name": "to Second", "source": "Start", "target": "Second", "is_automatic": True},
            ],
            application_type="transfer",
        )
        app_id = create_application(application_type="transfer")
        result = engine.initialize_workflow(app_id, applicant)
        assert result.final_status.stage_id == wf.stage_id("First")


class TestStageCompletion:

    def test_merges_data_and_propagates(
        self, engine, simple_workflow, create_application, applicant, event_sink, auditor_service
    ):
        app_id = create_application({"is_submitted": True})
        engine.initialize_workflow(app_id, applicant)
        engine.execute_transition(app_id, simple_workflow.transition_id("Submit"), applicant)

        result = engine.complete_stage(
            app_id,
            applicant,
            {"attributes": {"application_fee_paid": True}, "completed_actions": ["pay_application_fee"]},
        )

        assert result.stage_id == simple_workflow.stage_id("Submitted")
        assert result.requirements.met
        assert result.advanced
        assert engine.current_stage(app_id).name == "Review"

        completed = event_sink.of_type(StageCompleted)
        assert [e.stage_name for e in completed] == ["Submitted"]
        trace = auditor_service.get_trace("Application", app_id)
        assert "stage_completed" in trace.actions

    def test_completed_actions_are_deduplicated(
        self, engine, simple_workflow, create_application, applicant, application_service
    ):
        app_id = create_application({"completed_actions": ["submit_application"]})
        engine.initialize_workflow(app_id, applicant)
        engine.complete_stage(
            app_id, applicant, {"completed_actions": ["submit_application", "attend_fair"]}
        )
        assert application_service.get_attributes(app_id)["completed_actions"] == [
            "submit_application",
            "attend_fair",
        ]

    def test_reports_unmet_requirements(self, engine, build_workflow, create_application, applicant):
        build_workflow(
            [{"name": "Docs", "required_documents": ["transcript"]}, "Done"],
            [{"name": "Finish", "source": "Docs", "target": "Done"}],
        )
        app_id = create_application()
        engine.initialize_workflow(app_id, applicant)
        result = engine.complete_stage(app_id, applicant)
        assert not result.requirements.met
        assert result.requirements.missing_documents == ("transcript",)
        assert not result.advanced


class TestDocumentVerification:

    @pytest.fixture
    def docs_workflow(self, build_workflow):
        return build_workflow(
            [
                "Submitted",
                {
                    "name": "Document Verification",
                    "required_documents": ["transcript", "personal_statement"],
                },
                "Under Review",
            ],
            [
                {"name": "Screen", "source": "Submitted", "target": "Document Verification"},
                {
                    "name": "Documents Verified",
                    "source": "Document Verification",
                    "target": "Under Review",
                    "is_automatic": True,
                    "conditions": [{"field": "all_documents_verified", "value": True}],
                },
            ],
        )

    def test_last_verification_moves_application(
        self, engine, docs_workflow, create_application, applicant, admin,
        application_service, session, event_sink,
    ):
        app_id = create_application()
        transcript = application_service.attach_document(app_id, "transcript", applicant.actor_id)
        statement = application_service.attach_document(
            app_id, "personal_statement", applicant.actor_id
        )
        engine.initialize_workflow(app_id, applicant)
        engine.execute_transition(app_id, docs_workflow.transition_id("Screen"), applicant)
        assert engine.current_stage(app_id).name == "Document Verification"

        first = engine.verify_document(transcript.document_id, admin)
        assert not first.moved
        second = engine.verify_document(statement.document_id, admin)
        assert [s.status for s in second.steps] == ["Under Review"]

        verified = event_sink.of_type(DocumentVerified)
        assert [e.document_type for e in verified] == ["transcript", "personal_statement"]
        # Both carry the stage they were verified on, not the one propagation reached.
        verification = docs_workflow.stage_id("Document Verification")
        assert [e.stage_id for e in verified] == [verification, verification]

    def test_verifying_twice_is_a_no_op(
        self, engine, docs_workflow, create_application, applicant, admin,
        application_service, event_sink, auditor_service,
    ):
        app_id = create_application()
        doc = application_service.attach_document(app_id, "transcript", applicant.actor_id)
        engine.initialize_workflow(app_id, applicant)

        engine.verify_document(doc.document_id, admin)
        again = engine.verify_document(doc.document_id, admin)

        assert not again.moved
        assert len(event_sink.of_type(DocumentVerified)) == 1
        actions = auditor_service.get_trace("Application", app_id).actions
        assert actions.count("document_verified") == 1

    def test_before_initialization(
        self, engine, docs_workflow, create_application, applicant, admin, application_service
    ):
        app_id = create_application()
        doc = application_service.attach_document(app_id, "transcript", applicant.actor_id)
        result = engine.verify_document(doc.document_id, admin)
        assert not result.moved
        assert engine.current_stage(app_id) is None

    def test_unknown_document(self, engine, admin):
        with pytest.raises(DocumentNotFoundError):
            engine.verify_document(uuid4(), admin)


class TestQueries:

    @pytest.fixture
    def in_review(self, engine, simple_workflow, create_application, applicant):
        app_id = create_application({"is_submitted": True, "application_fee_paid": True})
        engine.initialize_workflow(app_id, applicant)
        engine.execute_transition(app_id, simple_workflow.transition_id("Submit"), applicant)
        return app_id

    def test_available_transitions_respect_permissions(
        self, engine, simple_workflow, in_review, applicant, director
    ):
        names = [t.name for t in engine.available_transitions(in_review, director)]
        assert names == ["Accept", "Reject"]
        assert engine.available_transitions(in_review, applicant) == []

    def test_automatic_transitions_hidden_by_default(
        self, engine, simple_workflow, create_application, applicant, application_service, session
    ):
        app_id = create_application({"is_submitted": True})
        engine.initialize_workflow(app_id, applicant)
        engine.execute_transition(app_id, simple_workflow.transition_id("Submit"), applicant)
        application_service.update_attributes(
            app_id, {"application_fee_paid": True}, applicant.actor_id
        )
        session.flush()

        assert engine.available_transitions(app_id, applicant) == []
        auto = engine.available_transitions(app_id, applicant, include_automatic=True)
        assert [t.name for t in auto] == ["Screening Passed"]

    def test_next_stages(self, engine, simple_workflow, in_review, director):
        assert [s.name for s in engine.next_stages(in_review, director)] == [
            "Accepted",
            "Rejected",
        ]

    def test_uninitialized_queries(self, engine, simple_workflow, create_application, applicant):
        app_id = create_application()
        assert engine.current_stage(app_id) is None
        assert engine.available_transitions(app_id, applicant) == []
        assert engine.next_stages(app_id, applicant) == []
        assert engine.status_history(app_id) == []
        with pytest.raises(WorkflowNotInitializedError):
            engine.evaluate_stage_requirements(app_id)

    def test_status_history_order(self, engine, in_review):
        assert _stage_names(engine.status_history(in_review)) == ["Draft", "Submitted", "Review"]
        assert _stage_names(engine.status_history(in_review, descending=True)) == [
            "Review",
            "Submitted",
            "Draft",
        ]

    def test_evaluate_stage_requirements(self, engine, simple_workflow, in_review):
        check = engine.evaluate_stage_requirements(in_review)
        assert check.missing_documents == ("transcript",)
        other = engine.evaluate_stage_requirements(
            in_review, simple_workflow.stage_id("Accepted")
        )
        assert other.met


class TestWorkflowPinning:

    def test_application_stays_on_its_workflow(
        self, engine, simple_workflow, build_workflow, create_application, applicant
    ):
        old_app = create_application({"is_submitted": True})
        engine.initialize_workflow(old_app, applicant)

        replacement = build_workflow(
            ["Intake", "Decided"],
            [{"name": "Decide", "source": "Intake", "target": "Decided"}],
            name="Replacement",
        )

        result = engine.execute_transition(
            old_app, simple_workflow.transition_id("Submit"), applicant
        )
        assert result.is_success
        assert engine.current_stage(old_app).workflow_id == simple_workflow.workflow_id

        new_app = create_application()
        init = engine.initialize_workflow(new_app, applicant)
        assert init.workflow_id == replacement.workflow_id


class TestAtomicity:

    class FailingAuditSink:
        """Delegates to the real auditor but fails on transition_executed."""

        def __init__(self, inner: AuditorService):
            self.inner = inner

        def record(self, entry):
            if entry.action == "transition_executed":
                raise RuntimeError("audit store unavailable")
            return self.inner.record(entry)

    def test_failure_rolls_back_everything(
        self, session, permission_source, deterministic_clock, event_sink,
        simple_workflow, create_application, applicant, captured_logs,
    ):
        auditor = AuditorService(session, deterministic_clock)
        engine = WorkflowEngine(
            session,
            permission_source,
            audit_sink=self.FailingAuditSink(auditor),
            event_sink=event_sink,
            clock=deterministic_clock,
        )
        app_id = create_application({"is_submitted": True})
        engine.initialize_workflow(app_id, applicant)
        published_before = len(event_sink.events)

        with pytest.raises(RuntimeError):
            engine.execute_transition(app_id, simple_workflow.transition_id("Submit"), applicant)

        assert engine.current_stage(app_id).name == "Draft"
        assert len(engine.status_history(app_id)) == 1
        assert len(event_sink.events) == published_before
        assert any(r["message"] == "transition_failed" for r in captured_logs())

    def test_database_failure_is_wrapped(
        self, session, permission_source, deterministic_clock,
        simple_workflow, create_application, applicant,
    ):
        class BrokenAuditStore:
            def record(self, entry):
                raise OperationalError("INSERT INTO audit_events", {}, Exception("disk I/O error"))

        engine = WorkflowEngine(
            session,
            permission_source,
            audit_sink=BrokenAuditStore(),
            clock=deterministic_clock,
        )
        app_id = create_application()
        session.commit()

        with pytest.raises(PersistenceError) as exc_info:
            engine.initialize_workflow(app_id, applicant)

        assert exc_info.value.operation == "workflow_initialization"
        assert exc_info.value.code == "PERSISTENCE_FAILURE"
        assert engine.current_stage(app_id) is None

    def test_domain_error_keeps_pending_caller_work(
        self, session, engine, simple_workflow, create_application, application_service, applicant,
    ):
        app_id = create_application(application_type="graduate")

        with pytest.raises(NoActiveWorkflowError):
            engine.initialize_workflow(app_id, applicant)

        session.commit()
        session.expire_all()
        assert application_service.get_application(app_id).current_status_id is None

    def test_failing_event_sink_keeps_committed_work(
        self, session, permission_source, deterministic_clock,
        simple_workflow, create_application, applicant, captured_logs,
    ):
        class UnreachableBroker:
            def publish(self, event):
                raise ConnectionError("broker unavailable")

        engine = WorkflowEngine(
            session,
            permission_source,
            event_sink=UnreachableBroker(),
            clock=deterministic_clock,
        )
        app_id = create_application({"is_submitted": True})

        result = engine.initialize_workflow(app_id, applicant)
        submitted = engine.execute_transition(
            app_id, simple_workflow.transition_id("Submit"), applicant
        )

        assert result.status.stage_id == simple_workflow.stage_id("Draft")
        assert submitted.outcome == TransitionOutcome.EXECUTED
        session.expire_all()
        assert _stage_names(engine.status_history(app_id))[:2] == ["Draft", "Submitted"]
        messages = [r["message"] for r in captured_logs()]
        assert "event_delivery_failed" in messages
        assert "workflow_initialization_failed" not in messages
        assert "transition_failed" not in messages

    def test_caller_owned_transaction(
        self, session, permission_source, deterministic_clock, event_sink,
        simple_workflow, create_application, applicant,
    ):
        engine = WorkflowEngine(
            session,
            permission_source,
            event_sink=event_sink,
            clock=deterministic_clock,
            auto_commit=False,
        )
        app_id = create_application()
        engine.initialize_workflow(app_id, applicant)
        assert event_sink.events == []

        session.commit()
        assert len(event_sink.of_type(StatusChanged)) == 1

    def test_caller_rollback_discards_events(
        self, session, permission_source, deterministic_clock, event_sink,
        simple_workflow, create_application, applicant,
    ):
        engine = WorkflowEngine(
            session,
            permission_source,
            event_sink=event_sink,
            clock=deterministic_clock,
            auto_commit=False,
        )
        app_id = create_application()
        engine.initialize_workflow(app_id, applicant)
        session.rollback()
        session.commit()
        assert event_sink.events == []


class TestEngineLogging:

    def test_transition_logs_carry_context(
        self, engine, simple_workflow, create_application, applicant, captured_logs
    ):
        app_id = create_application({"is_submitted": True})
        engine.initialize_workflow(app_id, applicant)
        engine.execute_transition(app_id, simple_workflow.transition_id("Submit"), applicant)

        records = captured_logs()
        executed = [r for r in records if r["message"] == "transition_executed"]
        assert len(executed) == 1
        assert executed[0]["application_id"] == str(app_id)
        assert executed[0]["stage"] == "Submitted"
        assert "correlation_id" in executed[0]
        assert "duration_ms" in executed[0]
        assert any(r["message"] == "workflow_initialized" for r in records)
