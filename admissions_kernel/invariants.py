"""
Kernel Invariants Contract.

These invariants are structural law for the workflow engine. No workflow
template, engine setting or permission mapping may override them.

This module exists solely to declare these invariants explicitly. The
enforcement is distributed across WorkflowRegistry, WorkflowEngine,
StatusLedgerService, the immutability listeners and SequenceService.
"""

from enum import Enum, unique


@unique
class KernelInvariant(str, Enum):
    """Non-configurable invariants enforced by the kernel.

    Configuration decides *which* stages and transitions exist, never
    *whether* these rules apply.
    """

    SINGLE_ACTIVE_WORKFLOW = "single_active_workflow"
    """At most one active workflow per application type. Enforced by
    WorkflowRegistry row locks and a partial unique index."""

    VALID_ACTIVE_GRAPH = "valid_active_graph"
    """Only graphs with one initial stage, at least one final stage and no
    isolated stages may be activated. Enforced by WorkflowRegistry.activate
    through validate_workflow_graph."""

    APPEND_ONLY_HISTORY = "append_only_history"
    """ApplicationStatus rows are never updated or deleted (except by
    application cascade). Enforced by ORM listeners
    (admissions_kernel.db.immutability)."""

    CURRENT_STATUS_CONSISTENCY = "current_status_consistency"
    """An application's current status is the newest row of its ledger.
    Enforced by StatusLedgerService, the only writer."""

    SEQUENCE_MONOTONICITY = "sequence_monotonicity"
    """Status and audit sequence numbers are strictly monotonic. Enforced by
    SequenceService with row locks."""

    BOUNDED_PROPAGATION = "bounded_propagation"
    """Automatic propagation terminates within the step cap. Enforced by
    WorkflowEngine."""

    ATOMIC_TRANSITION = "atomic_transition"
    """Status row, pointer, audit entries and events commit together or not
    at all. Enforced by WorkflowEngine savepoints and the EventOutbox."""


# All invariants as a frozenset for programmatic checks.
ALL_KERNEL_INVARIANTS: frozenset[KernelInvariant] = frozenset(KernelInvariant)

# The kernel package may not import from these packages.
# This is enforced by tests/architecture/test_kernel_boundary.py.
FORBIDDEN_KERNEL_IMPORTS: tuple[str, ...] = (
    "admissions_services",
    "admissions_config",
)
