"""
Module: admissions_kernel.selectors.status_history_selector
Responsibility: Read side of the status history ledger.
Architecture position: Kernel > Selectors.  The write side is
    services.status_ledger.StatusLedgerService.

Invariants enforced:
    - History is ordered by (seq, created_at); descending order is the exact
      reverse.
    - Each entry carries the StageNode of its stage as it is now; the
      ``status`` label is the stage name as it was when the row was written.
"""

from uuid import UUID

from sqlalchemy import func, select

from admissions_kernel.domain.dtos import StatusHistoryEntry, StatusRecord
from admissions_kernel.models.application import ApplicationStatus
from admissions_kernel.models.workflow import WorkflowStage
from admissions_kernel.selectors.base import BaseSelector
from admissions_kernel.selectors.workflow_selector import stage_to_node


def status_to_record(row: ApplicationStatus) -> StatusRecord:
    return StatusRecord(
        status_id=row.id,
        application_id=row.application_id,
        stage_id=row.stage_id,
        status=row.status,
        seq=row.seq,
        actor_id=row.actor_id,
        created_at=row.created_at,
        notes=row.notes,
    )


class StatusHistorySelector(BaseSelector[ApplicationStatus]):
    """Timeline queries over ApplicationStatus."""

    def timeline(
        self, application_id: UUID, descending: bool = False
    ) -> list[StatusHistoryEntry]:
        """Full history of an application, oldest first unless ``descending``."""
        order = (
            (ApplicationStatus.seq.desc(), ApplicationStatus.created_at.desc())
            if descending
            else (ApplicationStatus.seq, ApplicationStatus.created_at)
        )
        rows = self.session.execute(
            select(ApplicationStatus, WorkflowStage)
            .outerjoin(WorkflowStage, WorkflowStage.id == ApplicationStatus.stage_id)
            .where(ApplicationStatus.application_id == application_id)
            .order_by(*order)
        ).all()

        return [
            StatusHistoryEntry(
                record=status_to_record(status),
                stage=stage_to_node(stage) if stage is not None else None,
            )
            for status, stage in rows
        ]

    def latest(self, application_id: UUID) -> StatusRecord | None:
        row = self.session.execute(
            select(ApplicationStatus)
            .where(ApplicationStatus.application_id == application_id)
            .order_by(ApplicationStatus.seq.desc())
            .limit(1)
        ).scalar_one_or_none()
        return status_to_record(row) if row is not None else None

    def count(self, application_id: UUID) -> int:
        return self.session.execute(
            select(func.count())
            .select_from(ApplicationStatus)
            .where(ApplicationStatus.application_id == application_id)
        ).scalar_one()

    def status_record(self, status_id: UUID) -> StatusRecord | None:
        row = self.session.get(ApplicationStatus, status_id)
        return status_to_record(row) if row is not None else None

    def count_for_workflow(self, workflow_id: UUID) -> int:
        """Number of status rows pointing at any stage of ``workflow_id``."""
        return self.session.execute(
            select(func.count())
            .select_from(ApplicationStatus)
            .join(WorkflowStage, WorkflowStage.id == ApplicationStatus.stage_id)
            .where(WorkflowStage.workflow_id == workflow_id)
        ).scalar_one()

    def count_for_stage(self, stage_id: UUID) -> int:
        return self.session.execute(
            select(func.count())
            .select_from(ApplicationStatus)
            .where(ApplicationStatus.stage_id == stage_id)
        ).scalar_one()
