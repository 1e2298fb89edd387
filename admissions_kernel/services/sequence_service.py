"""
SequenceService -- monotonic sequence allocation via locked counter rows.

Responsibility:
    Provides strictly increasing sequence numbers for status history rows,
    audit events and transition priorities.  Uses a dedicated counter table
    with row-level locking (``SELECT ... FOR UPDATE``).

Architecture position:
    Kernel > Services -- imperative shell infrastructure.  Called by
    StatusLedgerService, AuditorService, WorkflowService and
    WorkflowRegistry.

Invariants enforced:
    - Sequence monotonicity: the locked counter row is the sole source of
      truth for the next value.  MAX(seq)+1 is never used.
    - Transactional: an increment becomes visible only when the caller's
      transaction commits.  Rollback returns the value.

Failure modes:
    - IntegrityError on a concurrent counter-creation race (handled via
      savepoint rollback and re-read).
"""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from admissions_kernel.logging_config import get_logger
from admissions_kernel.models.sequence_counter import SequenceCounter

logger = get_logger("services.sequence")


class SequenceService:
    """
    Service for generating transactional sequence numbers.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
    """

    APPLICATION_STATUS = "application_status"
    AUDIT_EVENT = "audit_event"
    TRANSITION_PRIORITY = "transition_priority"

    def __init__(self, session: Session):
        self._session = session

    def _locked_counter(self, sequence_name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def next_value(self, sequence_name: str) -> int:
        """
        Get the next value for a named sequence.

        Locks the counter row (creating it on first use), increments it and
        returns the new value.  The row stays locked until the caller's
        transaction ends.

        Returns:
            The next sequence value (always > 0).
        """
        counter = self._locked_counter(sequence_name)

        if counter is None:
            savepoint = self._session.begin_nested()
            try:
                counter = SequenceCounter(name=sequence_name, current_value=1)
                self._session.add(counter)
                self._session.flush()
                savepoint.commit()
                logger.debug(
                    "sequence_allocated",
                    extra={"sequence_name": sequence_name, "value": 1},
                )
                return 1
            except IntegrityError:
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"sequence_name": sequence_name},
                )
                savepoint.rollback()
                counter = self._locked_counter(sequence_name)
                if counter is None:
                    raise

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, sequence_name: str) -> int | None:
        """Current value of a sequence without incrementing (None if unused)."""
        return self._session.execute(
            select(SequenceCounter.current_value).where(
                SequenceCounter.name == sequence_name
            )
        ).scalar_one_or_none()
