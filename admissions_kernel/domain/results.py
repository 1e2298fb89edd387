"""
Transition outcomes (``admissions_kernel.domain.results``).

A rejected transition is an expected business answer, not a failure, so
``WorkflowEngine.execute_transition`` returns a ``TransitionResult`` for
both cases.  Infrastructure failures still raise.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from uuid import UUID

from admissions_kernel.domain.dtos import StatusRecord
from admissions_kernel.domain.requirements import RequirementCheck
from admissions_kernel.exceptions import (
    TransitionNotAuthorizedError,
    TransitionNotAvailableError,
)


class TransitionOutcome(str, Enum):
    """Outcome of a transition request."""

    EXECUTED = "executed"
    NOT_AVAILABLE = "not_available"
    NOT_AUTHORIZED = "not_authorized"


@dataclass(frozen=True)
class TransitionResult:
    """
    Result of ``execute_transition``.

    Guarantees:
        - ``status`` is set iff ``outcome`` is EXECUTED.
        - ``automatic_steps`` lists the statuses appended by automatic
          propagation after the requested transition, in order.
        - ``loop_detected`` is True iff propagation stopped at its step cap.
    """

    outcome: TransitionOutcome
    application_id: UUID
    transition_id: UUID
    actor_id: UUID
    status: StatusRecord | None = None
    automatic_steps: tuple[StatusRecord, ...] = ()
    loop_detected: bool = False
    reason: str = ""

    @property
    def is_success(self) -> bool:
        return self.outcome == TransitionOutcome.EXECUTED

    @property
    def final_status(self) -> StatusRecord | None:
        """The application's status after the whole operation."""
        if self.automatic_steps:
            return self.automatic_steps[-1]
        return self.status

    def raise_for_outcome(self) -> TransitionResult:
        """Raise the matching TransitionError if rejected, else return self."""
        if self.outcome == TransitionOutcome.NOT_AVAILABLE:
            raise TransitionNotAvailableError(
                str(self.application_id), str(self.transition_id), self.reason
            )
        if self.outcome == TransitionOutcome.NOT_AUTHORIZED:
            raise TransitionNotAuthorizedError(
                str(self.application_id), str(self.transition_id), str(self.actor_id)
            )
        return self


@dataclass(frozen=True)
class PropagationResult:
    """Statuses appended by one run of automatic propagation."""

    steps: tuple[StatusRecord, ...] = ()
    loop_detected: bool = False

    @property
    def moved(self) -> bool:
        return bool(self.steps)


@dataclass(frozen=True)
class InitializationResult:
    """Result of ``initialize_workflow``."""

    application_id: UUID
    workflow_id: UUID
    status: StatusRecord
    automatic_steps: tuple[StatusRecord, ...] = ()
    loop_detected: bool = False

    @property
    def final_status(self) -> StatusRecord:
        if self.automatic_steps:
            return self.automatic_steps[-1]
        return self.status


@dataclass(frozen=True)
class StageCompletionResult:
    """
    Result of ``complete_stage``.

    ``requirements`` is the check of the completed stage taken after the
    completion data was merged and before propagation moved on.
    """

    application_id: UUID
    stage_id: UUID
    requirements: RequirementCheck
    automatic_steps: tuple[StatusRecord, ...] = ()
    loop_detected: bool = False
    completion_data: dict[str, Any] = field(default_factory=dict)

    @property
    def advanced(self) -> bool:
        return bool(self.automatic_steps)
