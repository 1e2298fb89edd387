"""
StatusLedgerService -- the only writer of application status history.

Responsibility:
    Appends ApplicationStatus rows and repoints ``Application.current_status_id``
    at the new row, in that order, within the caller's transaction.

Architecture position:
    Kernel > Services.  Called only by WorkflowEngine.  Reads of the ledger
    go through ``selectors.status_history_selector.StatusHistorySelector``.

Invariants enforced:
    - Append-only: this service has no update or delete method, and the ORM
      immutability listeners reject both.
    - Current-status consistency: after ``append`` the application's
      current status is the row just written, which has the highest seq of
      its history.
    - Monotonic seq from SequenceService.

Failure modes:
    - StaleDataError if another transaction bumped Application.version
      since the row was loaded.
"""

from uuid import UUID

from sqlalchemy.orm import Session

from admissions_kernel.domain.clock import Clock, SystemClock
from admissions_kernel.domain.dtos import StatusRecord
from admissions_kernel.domain.graph import StageNode
from admissions_kernel.logging_config import get_logger
from admissions_kernel.models.application import Application, ApplicationStatus
from admissions_kernel.selectors.status_history_selector import status_to_record
from admissions_kernel.services.base import BaseService
from admissions_kernel.services.sequence_service import SequenceService

logger = get_logger("services.status_ledger")


class StatusLedgerService(BaseService[ApplicationStatus]):
    """Appends status history rows and maintains the current-status pointer."""

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._sequences = SequenceService(session)

    def append(
        self,
        application: Application,
        stage: StageNode,
        actor_id: UUID,
        notes: str | None = None,
    ) -> StatusRecord:
        seq = self._sequences.next_value(SequenceService.APPLICATION_STATUS)
        row = ApplicationStatus(
            application_id=application.id,
            stage_id=stage.id,
            status=stage.name,
            notes=notes,
            actor_id=actor_id,
            created_at=self._clock.now(),
            seq=seq,
        )
        self.session.add(row)
        self.session.flush()

        # Pointer after the row: the FK must see the status first.
        application.current_status_id = row.id
        application.updated_by_id = actor_id
        self.session.flush()

        logger.debug(
            "status_appended",
            extra={
                "application_id": str(application.id),
                "status_id": str(row.id),
                "stage": stage.name,
                "seq": seq,
            },
        )
        return status_to_record(row)
