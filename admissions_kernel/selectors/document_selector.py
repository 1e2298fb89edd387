"""
Module: admissions_kernel.selectors.document_selector
Responsibility: Default DocumentSource backed by the application_documents
    table.
Architecture position: Kernel > Selectors.  Deployments with their own
    document system pass a different DocumentSource to WorkflowEngine.
"""

from uuid import UUID

from sqlalchemy import select

from admissions_kernel.domain.requirements import DocumentRecord
from admissions_kernel.models.application import ApplicationDocument
from admissions_kernel.selectors.base import BaseSelector


def document_to_record(row: ApplicationDocument) -> DocumentRecord:
    return DocumentRecord(
        document_type=row.document_type,
        verified=row.verified,
        document_id=row.id,
        verified_at=row.verified_at,
    )


class OrmDocumentSource(BaseSelector[ApplicationDocument]):
    """Reads documents through the caller's session."""

    def documents_for(self, application_id: UUID) -> tuple[DocumentRecord, ...]:
        rows = self.session.execute(
            select(ApplicationDocument)
            .where(ApplicationDocument.application_id == application_id)
            .order_by(ApplicationDocument.created_at, ApplicationDocument.document_type)
        ).scalars().all()
        return tuple(document_to_record(row) for row in rows)
