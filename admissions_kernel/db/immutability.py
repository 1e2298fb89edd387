"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

An application's status history and the audit chain are evidence: an
admissions decision must be explainable after the fact.  Neither may be
edited in place.  Corrections are new rows.

SQLAlchemy fires events before UPDATE/DELETE operations reach the database.
The listeners below intercept them:

    session.flush()
         |
         v
    [before_flush]  --> _check_status_deletion_before_flush()
         |
         v
    [before_update] --> _check_*_immutability() --> ImmutabilityViolationError
         |
         v
    [before_delete] --> _check_audit_event_delete()
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity              | When Immutable         | Deletion
--------------------|------------------------|--------------------------------------
ApplicationStatus   | ALWAYS (from creation) | Only with its owning Application
AuditEvent          | ALWAYS (from creation) | Never

===============================================================================
USAGE
===============================================================================

Called once at startup (create_tables() does it for you):

    from admissions_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()

===============================================================================
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm import Session

from admissions_kernel.exceptions import ImmutabilityViolationError
from admissions_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _blocked(entity_type: str, entity_id: str, operation: str, reason: str) -> None:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": entity_id,
            "operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=entity_id,
        reason=reason,
    )


def _check_status_deletion_before_flush(session, flush_context, instances):
    """
    Reject deletion of ApplicationStatus rows unless the owning Application
    is deleted in the same flush.

    Runs in SessionEvents.before_flush, before the flush plan is fixed.
    """
    from admissions_kernel.models.application import Application, ApplicationStatus

    deleted = list(session.deleted)
    deleted_app_ids = {obj.id for obj in deleted if isinstance(obj, Application)}

    for obj in deleted:
        if not isinstance(obj, ApplicationStatus):
            continue
        if obj.application_id in deleted_app_ids:
            continue
        _blocked(
            "ApplicationStatus",
            str(obj.id),
            "DELETE",
            "Status history is append-only",
        )


def _check_status_immutability(mapper, connection, target):
    """Prevent any column change on ApplicationStatus."""
    from admissions_kernel.models.application import ApplicationStatus

    if not isinstance(target, ApplicationStatus):
        return

    insp = inspect(target)
    for attr in insp.mapper.column_attrs:
        if insp.attrs[attr.key].history.has_changes():
            _blocked(
                "ApplicationStatus",
                str(target.id),
                "UPDATE",
                f"Cannot modify field '{attr.key}' on a status history record",
            )


def _check_audit_event_immutability(mapper, connection, target):
    """Prevent any updates to AuditEvent records."""
    from admissions_kernel.models.audit_event import AuditEvent

    if not isinstance(target, AuditEvent):
        return

    _blocked(
        "AuditEvent",
        str(target.id),
        "UPDATE",
        "Audit events are immutable",
    )


def _check_audit_event_delete(mapper, connection, target):
    """Prevent deletion of AuditEvent records."""
    from admissions_kernel.models.audit_event import AuditEvent

    if not isinstance(target, AuditEvent):
        return

    _blocked(
        "AuditEvent",
        str(target.id),
        "DELETE",
        "Audit events cannot be deleted",
    )


def _listeners():
    from admissions_kernel.models.application import ApplicationStatus
    from admissions_kernel.models.audit_event import AuditEvent

    return (
        (Session, "before_flush", _check_status_deletion_before_flush),
        (ApplicationStatus, "before_update", _check_status_immutability),
        (AuditEvent, "before_update", _check_audit_event_immutability),
        (AuditEvent, "before_delete", _check_audit_event_delete),
    )


def register_immutability_listeners() -> None:
    """
    Register all immutability enforcement event listeners (idempotent).

    Call after models are imported and before any database work begins.
    """
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners() -> None:
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that must violate immutability on
    purpose to verify detection elsewhere.
    """
    for target, event_name, listener_fn in _listeners():
        _safe_remove_listener(target, event_name, listener_fn)
