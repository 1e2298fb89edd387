"""
AuditorService -- tamper-evident audit trail and hash chain maintenance.

Responsibility:
    Creates immutable, hash-chained audit events for every workflow
    operation (initialization, transitions, stage completion, document
    verification, definition changes).  Provides chain validation for
    tamper detection and per-entity traces for review.

Architecture position:
    Kernel > Services -- imperative shell.  The default ``AuditSink`` of
    WorkflowEngine, WorkflowRegistry, WorkflowService and
    ApplicationService.  Writes through the caller's session, so audit rows
    commit or roll back together with the change they describe.

Invariants enforced:
    - Sequence monotonicity via SequenceService.
    - Chain integrity: ``hash = H(entity_type | entity_id | action |
      payload_hash | prev_hash)``.
    - Append-only: AuditEvent rows are protected by ORM listeners.

Failure modes:
    - AuditChainBrokenError: a recomputed hash does not match, or a
      prev_hash does not match its predecessor.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from admissions_kernel.domain.clock import Clock, SystemClock
from admissions_kernel.domain.events import AuditEntry
from admissions_kernel.exceptions import AuditChainBrokenError
from admissions_kernel.logging_config import get_logger
from admissions_kernel.models.audit_event import AuditAction, AuditEvent
from admissions_kernel.services.sequence_service import SequenceService
from admissions_kernel.utils.hashing import hash_audit_event, hash_payload, to_json_safe

logger = get_logger("services.auditor")


@dataclass(frozen=True)
class AuditTraceEntry:
    """A single entry in an audit trace."""

    seq: int
    action: str
    occurred_at: datetime
    actor_id: UUID
    payload: dict[str, Any]
    hash: str


@dataclass(frozen=True)
class AuditTrace:
    """All audit events for one entity, oldest first."""

    entity_type: str
    entity_id: UUID
    entries: tuple[AuditTraceEntry, ...]

    @property
    def is_empty(self) -> bool:
        return len(self.entries) == 0

    @property
    def actions(self) -> tuple[str, ...]:
        return tuple(entry.action for entry in self.entries)

    @property
    def last_action(self) -> str | None:
        return self.entries[-1].action if self.entries else None


class AuditorService:
    """
    Service for creating and validating tamper-evident audit events.

    Contract:
        Implements the AuditSink port: ``record(AuditEntry)`` appends one
        AuditEvent whose payload carries the entry's before/after snapshots
        and details.

    Guarantees:
        - Every event's ``hash`` is a deterministic function of
          ``(entity_type, entity_id, action, payload_hash, prev_hash)``.
        - Sequence numbers come from SequenceService.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()
        self._sequence_service = SequenceService(session)

    def _get_last_hash(self) -> str | None:
        """Hash of the most recent audit event."""
        return self._session.execute(
            select(AuditEvent.hash).order_by(AuditEvent.seq.desc()).limit(1)
        ).scalar_one_or_none()

    def _create_audit_event(
        self,
        entity_type: str,
        entity_id: UUID,
        action: str,
        actor_id: UUID,
        payload: dict[str, Any] | None = None,
    ) -> AuditEvent:
        """
        Create a new audit event with hash chain linkage.

        Postconditions:
            - A new AuditEvent is flushed with a monotonically increasing
              seq and ``prev_hash`` equal to the previous event's hash.
        """
        seq = self._sequence_service.next_value(SequenceService.AUDIT_EVENT)
        prev_hash = self._get_last_hash()

        payload_data = to_json_safe(payload or {})
        computed_payload_hash = hash_payload(payload_data)

        event_hash = hash_audit_event(
            entity_type=entity_type,
            entity_id=str(entity_id),
            action=action,
            payload_hash=computed_payload_hash,
            prev_hash=prev_hash,
        )

        audit_event = AuditEvent(
            seq=seq,
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            actor_id=actor_id,
            occurred_at=self._clock.now(),
            payload=payload_data,
            payload_hash=computed_payload_hash,
            prev_hash=prev_hash,
            hash=event_hash,
        )

        self._session.add(audit_event)
        self._session.flush()

        logger.info(
            "audit_event_created",
            extra={
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "action": action,
                "seq": seq,
            },
        )

        return audit_event

    # AuditSink

    def record(self, entry: AuditEntry) -> AuditEvent:
        """Append one AuditEntry to the chain."""
        action = entry.action.value if isinstance(entry.action, AuditAction) else entry.action
        return self._create_audit_event(
            entity_type=entry.resource_type,
            entity_id=entry.resource_id,
            action=action,
            actor_id=entry.actor_id,
            payload={
                "before": entry.before,
                "after": entry.after,
                "details": entry.details,
            },
        )

    # Validation

    def validate_chain(self) -> bool:
        """
        Validate the entire audit chain.

        Raises:
            AuditChainBrokenError: If validation fails at any point.
        """
        events = self._session.execute(
            select(AuditEvent).order_by(AuditEvent.seq)
        ).scalars().all()

        if not events:
            return True

        if events[0].prev_hash is not None:
            logger.critical("audit_chain_broken", extra={"seq": events[0].seq})
            raise AuditChainBrokenError(str(events[0].id), "None", events[0].prev_hash)

        for i, event in enumerate(events):
            expected_payload_hash = hash_payload(event.payload or {})
            if expected_payload_hash != event.payload_hash:
                logger.critical("audit_chain_broken", extra={"seq": event.seq})
                raise AuditChainBrokenError(
                    str(event.id), expected_payload_hash, event.payload_hash
                )

            expected_hash = hash_audit_event(
                entity_type=event.entity_type,
                entity_id=str(event.entity_id),
                action=event.action,
                payload_hash=event.payload_hash,
                prev_hash=event.prev_hash,
            )
            if event.hash != expected_hash:
                logger.critical("audit_chain_broken", extra={"seq": event.seq})
                raise AuditChainBrokenError(str(event.id), expected_hash, event.hash)

            if i > 0 and event.prev_hash != events[i - 1].hash:
                logger.critical("audit_chain_broken", extra={"seq": event.seq})
                raise AuditChainBrokenError(
                    str(event.id), events[i - 1].hash, event.prev_hash or "None"
                )

        logger.info("audit_chain_valid", extra={"event_count": len(events)})
        return True

    # Trace queries

    def get_trace(self, entity_type: str, entity_id: UUID) -> AuditTrace:
        """All audit events for an entity in chronological order."""
        events = self._session.execute(
            select(AuditEvent)
            .where(
                AuditEvent.entity_type == entity_type,
                AuditEvent.entity_id == entity_id,
            )
            .order_by(AuditEvent.seq)
        ).scalars().all()

        return AuditTrace(
            entity_type=entity_type,
            entity_id=entity_id,
            entries=tuple(
                AuditTraceEntry(
                    seq=event.seq,
                    action=event.action,
                    occurred_at=event.occurred_at,
                    actor_id=event.actor_id,
                    payload=event.payload or {},
                    hash=event.hash,
                )
                for event in events
            ),
        )
