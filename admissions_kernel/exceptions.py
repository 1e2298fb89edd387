"""
Typed Exception Hierarchy for the Admissions Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the workflow engine (an API layer, a batch job, an admissions
officer's console) must react to failures precisely. Matching on message
text is fragile, so every error here has:
  1. A TYPED exception class (catch by type, not message)
  2. A CODE class attribute (machine-readable, API-safe)
  3. Structured DATA attributes (ids, names, issue lists)

Rejected transitions are NOT exceptions. The engine returns a
TransitionResult with outcome NOT_AVAILABLE / NOT_AUTHORIZED so that
"the applicant has not paid yet" is never confused with a database outage.
TransitionResult.raise_for_outcome() converts a rejection into a
TransitionError for callers that prefer exceptions.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    AdmissionsKernelError (base)
    |
    +-- WorkflowError
    |   +-- WorkflowNotFoundError
    |   +-- NoActiveWorkflowError
    |   +-- InvalidWorkflowGraphError
    |   +-- WorkflowActiveError
    |   +-- WorkflowInUseError
    |   +-- StageNotFoundError
    |   +-- DuplicateStageNameError
    |   +-- InvalidStageOrderError
    |   +-- TransitionNotFoundError
    |   +-- CrossWorkflowTransitionError
    |
    +-- ApplicationError
    |   +-- ApplicationNotFoundError
    |   +-- WorkflowAlreadyInitializedError
    |   +-- WorkflowNotInitializedError
    |   +-- DocumentNotFoundError
    |
    +-- TransitionError
    |   +-- TransitionNotAvailableError
    |   +-- TransitionNotAuthorizedError
    |   +-- ActionNotAuthorizedError
    |
    +-- ConditionError
    |   +-- InvalidConditionError
    |
    +-- AuditError
    |   +-- AuditChainBrokenError
    |
    +-- ConcurrencyError
    |   +-- OptimisticLockError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- PersistenceError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category      | Code                          | When Raised
--------------|-------------------------------|-----------------------------------------
Workflow      | WORKFLOW_NOT_FOUND            | Workflow ID doesn't exist
              | NO_ACTIVE_WORKFLOW            | No active workflow for application type
              | INVALID_WORKFLOW_GRAPH        | Activation of a structurally unsound graph
              | WORKFLOW_ACTIVE               | Structural edit of an active workflow
              | WORKFLOW_IN_USE               | Delete while statuses reference it
              | STAGE_NOT_FOUND               | Stage ID doesn't exist in the workflow
              | DUPLICATE_STAGE_NAME          | Stage name already used in the workflow
              | INVALID_STAGE_ORDER           | Reorder list doesn't match the stages
              | TRANSITION_NOT_FOUND          | Transition ID doesn't exist
              | CROSS_WORKFLOW_TRANSITION     | Endpoints belong to different workflows
--------------|-------------------------------|-----------------------------------------
Application   | APPLICATION_NOT_FOUND         | Application ID doesn't exist
              | WORKFLOW_ALREADY_INITIALIZED  | initialize_workflow called twice
              | WORKFLOW_NOT_INITIALIZED      | Transition on an uninitialized app
              | DOCUMENT_NOT_FOUND            | Document ID doesn't exist
--------------|-------------------------------|-----------------------------------------
Transition    | TRANSITION_NOT_AVAILABLE      | Conditions unmet / wrong source stage
              | TRANSITION_NOT_AUTHORIZED     | Actor lacks every required permission
              | ACTION_NOT_AUTHORIZED         | Actor lacks an administrative permission
--------------|-------------------------------|-----------------------------------------
Condition     | INVALID_CONDITION             | Unknown condition variant or operator
--------------|-------------------------------|-----------------------------------------
Audit         | AUDIT_CHAIN_BROKEN            | Hash chain validation failed
Concurrency   | OPTIMISTIC_LOCK_CONFLICT      | Concurrent modification detected
Immutability  | IMMUTABILITY_VIOLATION        | Update/delete of a status or audit row
Persistence   | PERSISTENCE_FAILURE           | Database failure during an atomic write

===============================================================================
"""

from collections.abc import Sequence


class AdmissionsKernelError(Exception):
    """
    Base exception for all admissions kernel errors.

    All subclasses have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "ADMISSIONS_KERNEL_ERROR"


# Workflow definition exceptions


class WorkflowError(AdmissionsKernelError):
    """Base exception for workflow definition errors."""

    code: str = "WORKFLOW_ERROR"


class WorkflowNotFoundError(WorkflowError):
    """Workflow with given ID was not found."""

    code: str = "WORKFLOW_NOT_FOUND"

    def __init__(self, workflow_id: str):
        self.workflow_id = workflow_id
        super().__init__(f"Workflow not found: {workflow_id}")


class NoActiveWorkflowError(WorkflowError):
    """No workflow is active for the application type."""

    code: str = "NO_ACTIVE_WORKFLOW"

    def __init__(self, application_type: str):
        self.application_type = application_type
        super().__init__(
            f"No active workflow for application type: {application_type}"
        )


class InvalidWorkflowGraphError(WorkflowError):
    """Workflow graph failed structural validation."""

    code: str = "INVALID_WORKFLOW_GRAPH"

    def __init__(self, workflow_id: str, issues: Sequence[str]):
        self.workflow_id = workflow_id
        self.issues = list(issues)
        super().__init__(
            f"Workflow {workflow_id} is not a valid graph: "
            + "; ".join(self.issues)
        )


class WorkflowActiveError(WorkflowError):
    """Structural change attempted on an active workflow."""

    code: str = "WORKFLOW_ACTIVE"

    def __init__(self, workflow_id: str, operation: str):
        self.workflow_id = workflow_id
        self.operation = operation
        super().__init__(
            f"Cannot {operation} on active workflow {workflow_id}; "
            "deactivate it or edit a duplicate"
        )


class WorkflowInUseError(WorkflowError):
    """Workflow is referenced by application status history."""

    code: str = "WORKFLOW_IN_USE"

    def __init__(self, workflow_id: str, status_count: int):
        self.workflow_id = workflow_id
        self.status_count = status_count
        super().__init__(
            f"Workflow {workflow_id} is referenced by {status_count} "
            "application status record(s)"
        )


class StageNotFoundError(WorkflowError):
    """Stage with given ID was not found."""

    code: str = "STAGE_NOT_FOUND"

    def __init__(self, stage_id: str):
        self.stage_id = stage_id
        super().__init__(f"Stage not found: {stage_id}")


class DuplicateStageNameError(WorkflowError):
    """Stage name is already used within the workflow."""

    code: str = "DUPLICATE_STAGE_NAME"

    def __init__(self, workflow_id: str, name: str):
        self.workflow_id = workflow_id
        self.name = name
        super().__init__(f"Stage '{name}' already exists in workflow {workflow_id}")


class InvalidStageOrderError(WorkflowError):
    """Reorder request does not list exactly the workflow's stages."""

    code: str = "INVALID_STAGE_ORDER"

    def __init__(self, workflow_id: str, reason: str):
        self.workflow_id = workflow_id
        self.reason = reason
        super().__init__(f"Invalid stage order for workflow {workflow_id}: {reason}")


class TransitionNotFoundError(WorkflowError):
    """Transition with given ID was not found."""

    code: str = "TRANSITION_NOT_FOUND"

    def __init__(self, transition_id: str):
        self.transition_id = transition_id
        super().__init__(f"Transition not found: {transition_id}")


class CrossWorkflowTransitionError(WorkflowError):
    """Transition endpoints belong to different workflows."""

    code: str = "CROSS_WORKFLOW_TRANSITION"

    def __init__(self, source_stage_id: str, target_stage_id: str):
        self.source_stage_id = source_stage_id
        self.target_stage_id = target_stage_id
        super().__init__(
            f"Stages {source_stage_id} and {target_stage_id} "
            "belong to different workflows"
        )


# Application exceptions


class ApplicationError(AdmissionsKernelError):
    """Base exception for application errors."""

    code: str = "APPLICATION_ERROR"


class ApplicationNotFoundError(ApplicationError):
    """Application with given ID was not found."""

    code: str = "APPLICATION_NOT_FOUND"

    def __init__(self, application_id: str):
        self.application_id = application_id
        super().__init__(f"Application not found: {application_id}")


class WorkflowAlreadyInitializedError(ApplicationError):
    """Application already has a current status."""

    code: str = "WORKFLOW_ALREADY_INITIALIZED"

    def __init__(self, application_id: str, current_status_id: str):
        self.application_id = application_id
        self.current_status_id = current_status_id
        super().__init__(
            f"Application {application_id} already has workflow status "
            f"{current_status_id}"
        )


class WorkflowNotInitializedError(ApplicationError):
    """Application has no current status yet."""

    code: str = "WORKFLOW_NOT_INITIALIZED"

    def __init__(self, application_id: str):
        self.application_id = application_id
        super().__init__(f"Application {application_id} has no workflow status")


class DocumentNotFoundError(ApplicationError):
    """Document with given ID was not found."""

    code: str = "DOCUMENT_NOT_FOUND"

    def __init__(self, document_id: str):
        self.document_id = document_id
        super().__init__(f"Document not found: {document_id}")


# Transition exceptions


class TransitionError(AdmissionsKernelError):
    """Base exception for rejected transitions."""

    code: str = "TRANSITION_ERROR"


class TransitionNotAvailableError(TransitionError):
    """Transition conditions are unmet or it does not leave the current stage."""

    code: str = "TRANSITION_NOT_AVAILABLE"

    def __init__(self, application_id: str, transition_id: str, reason: str):
        self.application_id = application_id
        self.transition_id = transition_id
        self.reason = reason
        super().__init__(
            f"Transition {transition_id} not available for application "
            f"{application_id}: {reason}"
        )


class TransitionNotAuthorizedError(TransitionError):
    """Actor holds none of the transition's required permissions."""

    code: str = "TRANSITION_NOT_AUTHORIZED"

    def __init__(self, application_id: str, transition_id: str, actor_id: str):
        self.application_id = application_id
        self.transition_id = transition_id
        self.actor_id = actor_id
        super().__init__(
            f"Actor {actor_id} is not authorized for transition "
            f"{transition_id} on application {application_id}"
        )


class ActionNotAuthorizedError(TransitionError):
    """Actor lacks the permission an administrative action requires."""

    code: str = "ACTION_NOT_AUTHORIZED"

    def __init__(self, actor_id: str, permission: str, action: str):
        self.actor_id = actor_id
        self.permission = permission
        self.action = action
        super().__init__(
            f"Actor {actor_id} lacks permission '{permission}' required for {action}"
        )


# Condition exceptions


class ConditionError(AdmissionsKernelError):
    """Base exception for condition expression errors."""

    code: str = "CONDITION_ERROR"


class InvalidConditionError(ConditionError):
    """Condition expression could not be parsed."""

    code: str = "INVALID_CONDITION"

    def __init__(self, reason: str, expression: object = None):
        self.reason = reason
        self.expression = expression
        super().__init__(f"Invalid condition: {reason}")


# Audit exceptions


class AuditError(AdmissionsKernelError):
    """Base exception for audit errors."""

    code: str = "AUDIT_ERROR"


class AuditChainBrokenError(AuditError):
    """Audit hash chain validation failed."""

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(self, audit_event_id: str, expected_hash: str, actual_hash: str):
        self.audit_event_id = audit_event_id
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Audit chain broken at {audit_event_id}: "
            f"expected {expected_hash}, got {actual_hash}"
        )


# Concurrency exceptions


class ConcurrencyError(AdmissionsKernelError):
    """Base exception for concurrency errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Optimistic locking conflict detected."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )


# Immutability exceptions


class ImmutabilityError(AdmissionsKernelError):
    """Base exception for immutability errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted modification of an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify {entity_type} {entity_id}: {reason}"
        )


# Persistence exceptions


class PersistenceError(AdmissionsKernelError):
    """Database failure during an atomic workflow write."""

    code: str = "PERSISTENCE_FAILURE"

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(f"Persistence failure during {operation}: {reason}")
