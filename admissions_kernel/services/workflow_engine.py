"""
WorkflowEngine -- drives applications through their workflow graph.

Responsibility:
    Initializes an application on the active workflow of its type,
    executes manual transitions after checking availability and
    permission, records stage completion and document verification, and
    runs automatic propagation after every state change.  Also answers
    read-side questions about an application's position in its workflow.

Architecture position:
    Kernel > Services -- imperative shell.  Owns the transaction boundary
    of each operation (``auto_commit``).  Depends on pure domain objects
    (graph, conditions, requirements, authorizer) and on the write
    services it coordinates (StatusLedgerService, ApplicationService, the
    AuditSink and the EventOutbox).

    Per operation:
      1. Lock the application row (SELECT ... FOR UPDATE, fresh read)
      2. Resolve the graph of the workflow the application is on
      3. Gate: source stage, availability, permission
      4. Append status, repoint current status
      5. Queue StatusChanged, record audit
      6. Automatic propagation (steps 4-5 per automatic edge)
      7. Commit; on failure undo the savepoint (the session too on
         database errors)

Invariants enforced:
    - Atomic transition: steps 4-6 run inside a SAVEPOINT; on any
      exception the savepoint is rolled back and queued events are
      discarded.  With auto_commit, database and unexpected errors also
      roll back the session transaction; domain errors leave the caller's
      earlier pending work in place.
    - Current-status consistency: only StatusLedgerService writes status.
    - Bounded propagation: at most ``max_propagation_steps`` automatic
      moves per operation (default: the workflow's stage count).
    - An application stays on the workflow it was initialized with, even
      after another workflow of its type is activated.

Failure modes:
    - ApplicationNotFoundError, WorkflowNotInitializedError,
      WorkflowAlreadyInitializedError, NoActiveWorkflowError,
      InvalidWorkflowGraphError, TransitionNotFoundError: raised, nothing
      written.
    - OptimisticLockError: the application row changed underneath us.
    - PersistenceError: any other database failure during the operation.
    - Rejections (not available / not authorized) are results, not errors.
"""

import time
from collections.abc import Callable, Mapping
from typing import Any, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from admissions_kernel.domain.actors import SYSTEM_ACTOR, Actor
from admissions_kernel.domain.authorization import PermissionSource, TransitionAuthorizer
from admissions_kernel.domain.clock import Clock, SystemClock
from admissions_kernel.domain.dtos import StatusHistoryEntry, StatusRecord
from admissions_kernel.domain.events import (
    AuditEntry,
    AuditSink,
    DocumentVerified,
    EventSink,
    StageCompleted,
    StatusChanged,
)
from admissions_kernel.domain.graph import StageNode, TransitionEdge, WorkflowGraph
from admissions_kernel.domain.requirements import (
    COMPLETED_ACTIONS_FIELD,
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
from admissions_kernel.exceptions import (
    AdmissionsKernelError,
    ApplicationNotFoundError,
    DocumentNotFoundError,
    InvalidWorkflowGraphError,
    NoActiveWorkflowError,
    OptimisticLockError,
    PersistenceError,
    StageNotFoundError,
    TransitionNotFoundError,
    WorkflowAlreadyInitializedError,
    WorkflowNotInitializedError,
)
from admissions_kernel.logging_config import LogContext, get_logger
from admissions_kernel.models.application import (
    Application,
    ApplicationDocument,
    ApplicationStatus,
)
from admissions_kernel.models.audit_event import AuditAction
from admissions_kernel.models.workflow import WorkflowTransition
from admissions_kernel.selectors.document_selector import OrmDocumentSource
from admissions_kernel.selectors.status_history_selector import (
    StatusHistorySelector,
    status_to_record,
)
from admissions_kernel.selectors.workflow_selector import WorkflowSelector
from admissions_kernel.services.application_service import ApplicationService
from admissions_kernel.services.auditor_service import AuditorService
from admissions_kernel.services.event_outbox import EventOutbox
from admissions_kernel.services.status_ledger import StatusLedgerService

logger = get_logger("services.workflow_engine")

T = TypeVar("T")

INITIALIZATION_NOTES = "Application workflow initialized"


def _status_snapshot(record: StatusRecord | None) -> dict[str, Any] | None:
    if record is None:
        return None
    return {
        "status_id": str(record.status_id),
        "stage_id": str(record.stage_id),
        "status": record.status,
        "seq": record.seq,
    }


class WorkflowEngine:
    """
    State machine over admissions workflows.

    Contract:
        Every mutating method is one atomic unit of work.  With
        ``auto_commit=True`` (default) the engine commits on success and
        rolls back the session on database failures (domain errors undo
        only the operation's savepoint); with ``auto_commit=False`` it leaves the
        outer transaction to the caller but still undoes its own work via a
        savepoint when it fails.

    Guarantees:
        - Events reach ``event_sink`` only after the outermost transaction
          commits, in the order they were raised.
        - Automatic transitions are executed by the system actor, which
          bypasses permission checks; its id is recorded in history.
        - A rejected request writes nothing.

    Non-goals:
        - Does NOT send notifications; subscribe an EventSink for that.
        - Does NOT edit workflow definitions (WorkflowService/Registry).
    """

    def __init__(
        self,
        session: Session,
        permission_source: PermissionSource,
        *,
        document_source: DocumentSource | None = None,
        audit_sink: AuditSink | None = None,
        event_sink: EventSink | None = None,
        predicates: PredicateRegistry | None = None,
        clock: Clock | None = None,
        auto_commit: bool = True,
        max_propagation_steps: int | None = None,
        system_actor: Actor = SYSTEM_ACTOR,
        auto_process_transitions: bool = True,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._authorizer = TransitionAuthorizer(permission_source)
        self._documents = document_source or OrmDocumentSource(session)
        self._audit = audit_sink or AuditorService(session, self._clock)
        self._event_sink = event_sink
        self._predicates = predicates or default_predicate_registry()
        self._auto_commit = auto_commit
        self._max_propagation_steps = max_propagation_steps
        self._system_actor = system_actor
        self._auto_process = auto_process_transitions

        self._requirements = RequirementEvaluator()
        self._ledger = StatusLedgerService(session, self._clock)
        self._applications = ApplicationService(session, self._audit, self._clock)
        self._workflows = WorkflowSelector(session)
        self._history = StatusHistorySelector(session)
        self._outbox = EventOutbox.for_session(session)

    # ------------------------------------------------------------------
    # Unit of work
    # ------------------------------------------------------------------

    def _run(self, operation: str, application_id: UUID, work: Callable[[], T]) -> T:
        """
        Run ``work`` in a savepoint and, with ``auto_commit``, commit it.

        A domain error rolls back the savepoint only, so earlier pending
        work of the caller stays in the session.  Database errors roll back
        the whole session transaction when the engine owns commits.  The
        commit runs after the error handling: once it succeeds nothing can
        roll the operation back.
        """
        mark = self._outbox.mark()
        t0 = time.monotonic()
        try:
            with self._session.begin_nested():
                result = work()
        except StaleDataError as exc:
            self._abort(operation, mark, t0, full=True)
            raise OptimisticLockError("Application", str(application_id)) from exc
        except AdmissionsKernelError:
            self._abort(operation, mark, t0)
            raise
        except SQLAlchemyError as exc:
            self._abort(operation, mark, t0, full=True)
            raise PersistenceError(operation, str(exc)) from exc
        except Exception:
            self._abort(operation, mark, t0, full=True)
            raise

        if self._auto_commit:
            try:
                self._session.commit()
            except SQLAlchemyError as exc:
                self._abort(operation, mark, t0, full=True)
                raise PersistenceError(operation, str(exc)) from exc
        return result

    def _abort(self, operation: str, mark: int, t0: float, full: bool = False) -> None:
        self._outbox.truncate(mark)
        if full and self._auto_commit:
            self._session.rollback()
        logger.error(
            f"{operation}_failed",
            extra={"duration_ms": round((time.monotonic() - t0) * 1000, 2)},
            exc_info=True,
        )

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def _lock_application(self, application_id: UUID) -> Application:
        """Row-lock the application and refresh it from the database."""
        application = self._session.execute(
            select(Application)
            .where(Application.id == application_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if application is None:
            raise ApplicationNotFoundError(str(application_id))
        return application

    def _get_application(self, application_id: UUID) -> Application:
        application = self._session.get(Application, application_id)
        if application is None:
            raise ApplicationNotFoundError(str(application_id))
        return application

    def _current_status(self, application: Application) -> StatusRecord:
        if application.current_status_id is None:
            raise WorkflowNotInitializedError(str(application.id))
        row = self._session.get(ApplicationStatus, application.current_status_id)
        return status_to_record(row)

    def _context(self, application: Application) -> EvaluationContext:
        return EvaluationContext(
            application_id=application.id,
            attributes=dict(application.attributes or {}),
            documents=tuple(self._documents.documents_for(application.id)),
            predicates=self._predicates,
        )

    def _position(
        self, application: Application
    ) -> tuple[StatusRecord, WorkflowGraph, StageNode]:
        current = self._current_status(application)
        graph = self._workflows.graph_for_stage(current.stage_id)
        return current, graph, graph.stage(current.stage_id)

    # ------------------------------------------------------------------
    # Mutation primitives
    # ------------------------------------------------------------------

    def _enter_stage(
        self,
        application: Application,
        graph: WorkflowGraph,
        stage: StageNode,
        actor: Actor,
        notes: str | None,
        previous: StatusRecord | None,
        transition: TransitionEdge | None = None,
    ) -> StatusRecord:
        record = self._ledger.append(application, stage, actor.actor_id, notes)

        self._outbox.add(
            self._event_sink,
            StatusChanged(
                application_id=application.id,
                workflow_id=graph.workflow_id,
                new_status_id=record.status_id,
                new_stage_id=stage.id,
                new_stage_name=stage.name,
                actor_id=actor.actor_id,
                occurred_at=record.created_at,
                previous_status_id=previous.status_id if previous else None,
                previous_stage_id=previous.stage_id if previous else None,
                transition_id=transition.id if transition else None,
                automatic=bool(transition and actor.is_system),
            ),
        )

        if transition is None:
            action = AuditAction.APPLICATION_INITIALIZED
            details: dict[str, Any] = {"workflow_id": str(graph.workflow_id)}
        else:
            action = AuditAction.TRANSITION_EXECUTED
            details = {
                "workflow_id": str(graph.workflow_id),
                "transition_id": str(transition.id),
                "transition": transition.name,
                "source_stage_id": str(transition.source_stage_id),
                "target_stage_id": str(transition.target_stage_id),
                "automatic": actor.is_system,
            }
        self._audit.record(
            AuditEntry(
                action=action,
                resource_type="Application",
                resource_id=application.id,
                actor_id=actor.actor_id,
                before=_status_snapshot(previous),
                after=_status_snapshot(record),
                details=details,
            )
        )
        return record

    def _first_available_automatic(
        self,
        graph: WorkflowGraph,
        stage_id: UUID,
        context: EvaluationContext,
    ) -> TransitionEdge | None:
        stage_context = context.for_stage(graph.stage(stage_id))
        for edge in graph.automatic_outgoing(stage_id):
            if self._authorizer.is_available(edge, stage_context):
                return edge
        return None

    def _propagate(
        self,
        application: Application,
        graph: WorkflowGraph,
        current: StatusRecord,
        explicit: bool = False,
    ) -> PropagationResult:
        """
        Follow available automatic transitions from the current stage.

        With ``auto_process_transitions`` off only an explicit
        ``process_automatic_transitions`` call propagates.

        Stops when no automatic edge is available or after ``cap`` moves.
        Hitting the cap with an edge still available is a loop: it is
        logged and reported, but the moves made so far stand.
        """
        if not (explicit or self._auto_process):
            return PropagationResult()
        cap = self._max_propagation_steps or len(graph.stages)
        context = self._context(application)
        steps: list[StatusRecord] = []

        for _ in range(cap):
            edge = self._first_available_automatic(graph, current.stage_id, context)
            if edge is None:
                return PropagationResult(steps=tuple(steps))
            current = self._enter_stage(
                application,
                graph,
                graph.stage(edge.target_stage_id),
                self._system_actor,
                f"Automatic transition: {edge.name}",
                previous=current,
                transition=edge,
            )
            steps.append(current)

        if self._first_available_automatic(graph, current.stage_id, context) is None:
            return PropagationResult(steps=tuple(steps))

        logger.warning(
            "automatic_transition_loop_detected",
            extra={
                "application_id": str(application.id),
                "workflow_id": str(graph.workflow_id),
                "steps": len(steps),
                "cap": cap,
                "stage": graph.stage(current.stage_id).name,
            },
        )
        return PropagationResult(steps=tuple(steps), loop_detected=True)

    # ------------------------------------------------------------------
    # Initialization
    # ------------------------------------------------------------------

    def initialize_workflow(
        self,
        application_id: UUID,
        actor: Actor,
        notes: str | None = None,
    ) -> InitializationResult:
        """
        Put an application on the first stage of its type's active workflow.

        Raises:
            WorkflowAlreadyInitializedError: The application has a status.
            NoActiveWorkflowError: No workflow is active for its type.
            InvalidWorkflowGraphError: The active workflow has no unique
                initial stage.
        """

        def work() -> InitializationResult:
            application = self._lock_application(application_id)
            if application.current_status_id is not None:
                raise WorkflowAlreadyInitializedError(
                    str(application_id), str(application.current_status_id)
                )

            graph = self._workflows.active_graph(application.application_type)
            if graph is None:
                raise NoActiveWorkflowError(application.application_type)

            initial = graph.initial_stages()
            if len(initial) != 1:
                names = ", ".join(s.name for s in initial) or "none"
                raise InvalidWorkflowGraphError(
                    str(graph.workflow_id),
                    [f"Workflow must have exactly one initial stage (found: {names})"],
                )

            record = self._enter_stage(
                application,
                graph,
                initial[0],
                actor,
                notes or INITIALIZATION_NOTES,
                previous=None,
            )
            propagation = self._propagate(application, graph, record)
            return InitializationResult(
                application_id=application_id,
                workflow_id=graph.workflow_id,
                status=record,
                automatic_steps=propagation.steps,
                loop_detected=propagation.loop_detected,
            )

        with LogContext.operation(application_id, actor.actor_id):
            result = self._run("workflow_initialization", application_id, work)
            logger.info(
                "workflow_initialized",
                extra={
                    "workflow_id": str(result.workflow_id),
                    "stage": result.status.status,
                    "final_stage": result.final_status.status,
                    "automatic_steps": len(result.automatic_steps),
                },
            )
            return result

    # ------------------------------------------------------------------
    # Manual transitions
    # ------------------------------------------------------------------

    def _resolve_edge(
        self, graph: WorkflowGraph, transition_id: UUID
    ) -> TransitionEdge | None:
        edge = graph.transition(transition_id)
        if edge is not None:
            return edge
        exists = self._session.execute(
            select(WorkflowTransition.id).where(WorkflowTransition.id == transition_id)
        ).scalar_one_or_none()
        if exists is None:
            raise TransitionNotFoundError(str(transition_id))
        return None

    def execute_transition(
        self,
        application_id: UUID,
        transition_id: UUID,
        actor: Actor,
        notes: str | None = None,
    ) -> TransitionResult:
        """
        Execute a transition out of the application's current stage.

        Returns:
            TransitionResult with outcome EXECUTED, NOT_AVAILABLE (wrong
            source stage, or conditions unmet) or NOT_AUTHORIZED.

        Raises:
            TransitionNotFoundError: The transition does not exist.
            WorkflowNotInitializedError: The application has no status.
        """

        def rejected(outcome: TransitionOutcome, reason: str) -> TransitionResult:
            return TransitionResult(
                outcome=outcome,
                application_id=application_id,
                transition_id=transition_id,
                actor_id=actor.actor_id,
                reason=reason,
            )

        def work() -> TransitionResult:
            application = self._lock_application(application_id)
            current, graph, stage = self._position(application)

            edge = self._resolve_edge(graph, transition_id)
            if edge is None:
                return rejected(
                    TransitionOutcome.NOT_AVAILABLE,
                    "Transition does not belong to the application's workflow",
                )
            if edge.source_stage_id != current.stage_id:
                return rejected(
                    TransitionOutcome.NOT_AVAILABLE,
                    f"Transition does not leave the current stage '{stage.name}'",
                )

            context = self._context(application)
            if not self._authorizer.is_available(edge, context.for_stage(stage)):
                return rejected(
                    TransitionOutcome.NOT_AVAILABLE, "Transition conditions not met"
                )
            if not self._authorizer.user_has_permission(edge, actor):
                return rejected(
                    TransitionOutcome.NOT_AUTHORIZED,
                    "Actor lacks the required permissions",
                )

            record = self._enter_stage(
                application,
                graph,
                graph.stage(edge.target_stage_id),
                actor,
                notes,
                previous=current,
                transition=edge,
            )
            propagation = self._propagate(application, graph, record)
            return TransitionResult(
                outcome=TransitionOutcome.EXECUTED,
                application_id=application_id,
                transition_id=transition_id,
                actor_id=actor.actor_id,
                status=record,
                automatic_steps=propagation.steps,
                loop_detected=propagation.loop_detected,
            )

        with LogContext.operation(
            application_id, actor.actor_id, transition_id=transition_id
        ):
            logger.info("transition_requested")
            t0 = time.monotonic()
            result = self._run("transition", application_id, work)
            duration_ms = round((time.monotonic() - t0) * 1000, 2)
            if result.is_success:
                logger.info(
                    "transition_executed",
                    extra={
                        "stage": result.status.status,
                        "final_stage": result.final_status.status,
                        "automatic_steps": len(result.automatic_steps),
                        "duration_ms": duration_ms,
                    },
                )
            else:
                logger.info(
                    "transition_rejected",
                    extra={
                        "outcome": result.outcome.value,
                        "reason": result.reason,
                        "duration_ms": duration_ms,
                    },
                )
            return result

    # ------------------------------------------------------------------
    # Out-of-band events
    # ------------------------------------------------------------------

    def process_automatic_transitions(self, application_id: UUID) -> PropagationResult:
        """Run automatic propagation for an application now."""

        def work() -> PropagationResult:
            application = self._lock_application(application_id)
            current, graph, _ = self._position(application)
            return self._propagate(application, graph, current, explicit=True)

        with LogContext.operation(application_id):
            result = self._run("automatic_processing", application_id, work)
            if result.moved:
                logger.info(
                    "automatic_transitions_processed",
                    extra={"steps": len(result.steps)},
                )
            return result

    def complete_stage(
        self,
        application_id: UUID,
        actor: Actor,
        completion_data: Mapping[str, Any] | None = None,
    ) -> StageCompletionResult:
        """
        Record that the work of the current stage is done.

        ``completion_data["attributes"]`` is merged into the application's
        attributes and ``completion_data["completed_actions"]`` appended to
        its completed actions, then propagation runs.
        """
        data = dict(completion_data or {})

        def work() -> StageCompletionResult:
            application = self._lock_application(application_id)
            current, graph, stage = self._position(application)

            attributes = dict(application.attributes or {})
            attributes.update(data.get("attributes") or {})
            done = list(attributes.get(COMPLETED_ACTIONS_FIELD) or [])
            for action in data.get("completed_actions") or ():
                if action not in done:
                    done.append(action)
            if done:
                attributes[COMPLETED_ACTIONS_FIELD] = done
            application.attributes = attributes
            application.updated_by_id = actor.actor_id
            self._session.flush()

            check = self._requirements.requirements_met(stage, self._context(application))

            self._outbox.add(
                self._event_sink,
                StageCompleted(
                    application_id=application_id,
                    stage_id=stage.id,
                    stage_name=stage.name,
                    actor_id=actor.actor_id,
                    occurred_at=self._clock.now(),
                    completion_data=data,
                ),
            )
            self._audit.record(
                AuditEntry(
                    action=AuditAction.STAGE_COMPLETED,
                    resource_type="Application",
                    resource_id=application_id,
                    actor_id=actor.actor_id,
                    before=_status_snapshot(current),
                    details={
                        "stage_id": str(stage.id),
                        "stage": stage.name,
                        "completion_data": data,
                        "requirements": check.to_dict(),
                    },
                )
            )

            propagation = self._propagate(application, graph, current)
            return StageCompletionResult(
                application_id=application_id,
                stage_id=stage.id,
                requirements=check,
                automatic_steps=propagation.steps,
                loop_detected=propagation.loop_detected,
                completion_data=data,
            )

        with LogContext.operation(application_id, actor.actor_id):
            result = self._run("stage_completion", application_id, work)
            logger.info(
                "stage_completed",
                extra={
                    "stage_id": str(result.stage_id),
                    "requirements_met": result.requirements.met,
                    "automatic_steps": len(result.automatic_steps),
                },
            )
            return result

    def verify_document(self, document_id: UUID, actor: Actor) -> PropagationResult:
        """
        Verify a document and let the application move on if it now can.

        Verifying an already verified document emits nothing and moves
        nothing.  Documents of applications not yet on a workflow are
        verified without propagation.
        """
        document = self._session.get(ApplicationDocument, document_id)
        if document is None:
            raise DocumentNotFoundError(str(document_id))
        application_id = document.application_id

        def work() -> PropagationResult:
            application = self._lock_application(application_id)
            row = self._session.get(
                ApplicationDocument, document_id, populate_existing=True
            )
            if row.verified:
                return PropagationResult()

            stage_id = (
                self._current_status(application).stage_id
                if application.current_status_id is not None
                else None
            )
            record = self._applications.verify_document(document_id, actor.actor_id)
            self._outbox.add(
                self._event_sink,
                DocumentVerified(
                    application_id=application_id,
                    document_id=document_id,
                    document_type=record.document_type,
                    actor_id=actor.actor_id,
                    occurred_at=record.verified_at or self._clock.now(),
                    stage_id=stage_id,
                ),
            )

            if application.current_status_id is None:
                return PropagationResult()
            current, graph, _ = self._position(application)
            return self._propagate(application, graph, current)

        with LogContext.operation(application_id, actor.actor_id):
            return self._run("document_verification", application_id, work)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def current_stage(self, application_id: UUID) -> StageNode | None:
        """The application's current stage, or None if not initialized."""
        application = self._get_application(application_id)
        if application.current_status_id is None:
            return None
        _, _, stage = self._position(application)
        return stage

    def available_transitions(
        self,
        application_id: UUID,
        actor: Actor,
        include_automatic: bool = False,
    ) -> list[TransitionEdge]:
        """
        Transitions the actor could execute now, in priority order.

        Automatic transitions are excluded unless ``include_automatic``;
        they are normally taken by propagation, not by people.
        """
        application = self._get_application(application_id)
        if application.current_status_id is None:
            return []
        _, graph, stage = self._position(application)
        context = self._context(application).for_stage(stage)
        return [
            edge
            for edge in graph.outgoing(stage.id)
            if (include_automatic or not edge.is_automatic)
            and self._authorizer.is_available(edge, context)
            and self._authorizer.user_has_permission(edge, actor)
        ]

    def next_stages(self, application_id: UUID, actor: Actor) -> list[StageNode]:
        """Distinct target stages of every available transition."""
        application = self._get_application(application_id)
        if application.current_status_id is None:
            return []
        _, graph, _ = self._position(application)
        seen: dict[UUID, StageNode] = {}
        for edge in self.available_transitions(
            application_id, actor, include_automatic=True
        ):
            seen.setdefault(edge.target_stage_id, graph.stage(edge.target_stage_id))
        return list(seen.values())

    def status_history(
        self, application_id: UUID, descending: bool = False
    ) -> list[StatusHistoryEntry]:
        self._get_application(application_id)
        return self._history.timeline(application_id, descending=descending)

    def evaluate_stage_requirements(
        self, application_id: UUID, stage_id: UUID | None = None
    ) -> RequirementCheck:
        """
        Requirement check of ``stage_id`` (default: the current stage).

        Raises:
            WorkflowNotInitializedError: No stage given and none current.
            StageNotFoundError: ``stage_id`` does not exist.
        """
        application = self._get_application(application_id)
        if stage_id is None:
            _, _, stage = self._position(application)
        else:
            stage = self._workflows.graph_for_stage(stage_id).stage(stage_id)
            if stage is None:
                raise StageNotFoundError(str(stage_id))
        return self._requirements.requirements_met(stage, self._context(application))
