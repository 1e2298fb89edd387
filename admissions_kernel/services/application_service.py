"""
ApplicationService -- applications and their documents.

Responsibility:
    Creates applications, merges attribute updates under optimistic
    locking, attaches and verifies documents, and deletes applications
    together with their status history.  Every mutation is audited.

Architecture position:
    Kernel > Services -- imperative shell.  Workflow movement is NOT done
    here: the engine owns the status ledger.  ``WorkflowEngine.verify_document``
    calls ``verify_document`` below and then runs automatic propagation.

Invariants enforced:
    - Attribute updates go through ``Application.version``; a lost update
      raises OptimisticLockError instead of silently overwriting.
    - Deleting an application clears its current-status pointer first, so
      the status rows can be removed by cascade (the only permitted delete
      of status history).

Failure modes:
    - ApplicationNotFoundError / DocumentNotFoundError.
    - OptimisticLockError on a concurrent attribute update.
"""

from collections.abc import Mapping
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from admissions_kernel.domain.clock import Clock, SystemClock
from admissions_kernel.domain.dtos import ApplicationInfo
from admissions_kernel.domain.events import AuditEntry, AuditSink
from admissions_kernel.domain.requirements import DocumentRecord
from admissions_kernel.exceptions import (
    ApplicationNotFoundError,
    DocumentNotFoundError,
    OptimisticLockError,
)
from admissions_kernel.logging_config import get_logger
from admissions_kernel.models.application import Application, ApplicationDocument
from admissions_kernel.models.audit_event import AuditAction
from admissions_kernel.selectors.document_selector import document_to_record
from admissions_kernel.services.auditor_service import AuditorService
from admissions_kernel.services.base import BaseService

logger = get_logger("services.application")


def _to_info(application: Application) -> ApplicationInfo:
    return ApplicationInfo(
        application_id=application.id,
        application_type=application.application_type,
        current_status_id=application.current_status_id,
        version=application.version,
    )


class ApplicationService(BaseService[Application]):
    """
    Write surface for applications and documents.

    Non-goals:
        - Does NOT commit; the caller owns the transaction.
        - Does NOT store document content (file storage is external).
    """

    def __init__(
        self,
        session: Session,
        audit_sink: AuditSink | None = None,
        clock: Clock | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._audit = audit_sink or AuditorService(session, self._clock)

    def _get(self, application_id: UUID) -> Application:
        application = self.session.get(Application, application_id)
        if application is None:
            raise ApplicationNotFoundError(str(application_id))
        return application

    def _get_document(self, document_id: UUID) -> ApplicationDocument:
        document = self.session.get(ApplicationDocument, document_id)
        if document is None:
            raise DocumentNotFoundError(str(document_id))
        return document

    def create_application(
        self,
        application_type: str,
        actor_id: UUID,
        attributes: Mapping[str, Any] | None = None,
    ) -> ApplicationInfo:
        """Create an application with no status (not yet initialized)."""
        application = Application(
            application_type=application_type,
            attributes=dict(attributes or {}),
            created_by_id=actor_id,
        )
        self.session.add(application)
        self.session.flush()

        self._audit.record(
            AuditEntry(
                action=AuditAction.APPLICATION_CREATED,
                resource_type="Application",
                resource_id=application.id,
                actor_id=actor_id,
                after={"application_type": application_type},
            )
        )
        logger.info(
            "application_created",
            extra={
                "application_id": str(application.id),
                "application_type": application_type,
            },
        )
        return _to_info(application)

    def get_application(self, application_id: UUID) -> ApplicationInfo:
        return _to_info(self._get(application_id))

    def get_attributes(self, application_id: UUID) -> dict[str, Any]:
        return dict(self._get(application_id).attributes or {})

    def update_attributes(
        self,
        application_id: UUID,
        attributes: Mapping[str, Any],
        actor_id: UUID,
        replace: bool = False,
    ) -> ApplicationInfo:
        """
        Merge (or with ``replace`` overwrite) the application's attributes.

        Raises:
            OptimisticLockError: If another transaction updated the
                application since it was loaded into this session.
        """
        application = self._get(application_id)
        merged = {} if replace else dict(application.attributes or {})
        merged.update(attributes)
        # New dict so the JSON column registers the change.
        application.attributes = merged
        application.updated_by_id = actor_id
        try:
            self.session.flush()
        except StaleDataError as exc:
            logger.warning(
                "optimistic_lock_conflict",
                extra={"application_id": str(application_id)},
            )
            raise OptimisticLockError("Application", str(application_id)) from exc
        return _to_info(application)

    def attach_document(
        self,
        application_id: UUID,
        document_type: str,
        actor_id: UUID,
        verified: bool = False,
    ) -> DocumentRecord:
        application = self._get(application_id)
        document = ApplicationDocument(
            application_id=application.id,
            document_type=document_type,
            verified=verified,
            verified_at=self._clock.now() if verified else None,
            verified_by_id=actor_id if verified else None,
            created_by_id=actor_id,
        )
        self.session.add(document)
        self.session.flush()

        self._audit.record(
            AuditEntry(
                action=AuditAction.DOCUMENT_ATTACHED,
                resource_type="Application",
                resource_id=application.id,
                actor_id=actor_id,
                details={
                    "document_id": str(document.id),
                    "document_type": document_type,
                    "verified": verified,
                },
            )
        )
        return document_to_record(document)

    def verify_document(self, document_id: UUID, actor_id: UUID) -> DocumentRecord:
        """
        Mark a document verified.  Verifying twice is a no-op.

        Postconditions:
            - verified, verified_at and verified_by_id are set and a
              document_verified audit event exists (first call only).
        """
        document = self._get_document(document_id)
        if document.verified:
            return document_to_record(document)

        document.verified = True
        document.verified_at = self._clock.now()
        document.verified_by_id = actor_id
        document.updated_by_id = actor_id
        self.session.flush()

        self._audit.record(
            AuditEntry(
                action=AuditAction.DOCUMENT_VERIFIED,
                resource_type="Application",
                resource_id=document.application_id,
                actor_id=actor_id,
                before={"verified": False},
                after={"verified": True},
                details={
                    "document_id": str(document.id),
                    "document_type": document.document_type,
                },
            )
        )
        logger.info(
            "document_verified",
            extra={
                "application_id": str(document.application_id),
                "document_id": str(document.id),
                "document_type": document.document_type,
            },
        )
        return document_to_record(document)

    def delete_application(self, application_id: UUID, actor_id: UUID) -> None:
        """Delete an application, its documents and its status history."""
        application = self._get(application_id)
        last_status_id = application.current_status_id

        # Break the circular reference before the cascade removes statuses.
        application.current_status_id = None
        self.session.flush()
        self.session.delete(application)
        self.session.flush()

        self._audit.record(
            AuditEntry(
                action=AuditAction.APPLICATION_DELETED,
                resource_type="Application",
                resource_id=application_id,
                actor_id=actor_id,
                before={
                    "application_type": application.application_type,
                    "current_status_id": str(last_status_id) if last_status_id else None,
                },
            )
        )
        logger.info("application_deleted", extra={"application_id": str(application_id)})
