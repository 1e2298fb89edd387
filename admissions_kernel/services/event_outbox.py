"""
EventOutbox -- deliver domain events only after the transaction commits.

Responsibility:
    Buffers (sink, event) pairs raised during a unit of work and hands them
    to their sinks after the session's outermost transaction commits.  On
    rollback the buffer is discarded, so subscribers never observe a status
    change that did not persist.

Architecture position:
    Kernel > Services -- imperative shell.  One outbox per Session, stored
    in ``session.info``; shared by every engine/service on that session.

Invariants enforced:
    - Events are delivered in the order they were added.
    - Nothing is delivered for a rolled-back transaction.  Savepoint-level
      rollbacks are handled by the caller via ``mark()`` / ``truncate()``.

Failure modes:
    - A sink raising during delivery: the failure is logged and the
      remaining events are still delivered.  Nothing is raised out of
      ``commit()``; the transaction has already committed and sinks own
      their retries.
"""

from __future__ import annotations

from sqlalchemy import event
from sqlalchemy.orm import Session, SessionTransaction

from admissions_kernel.domain.events import DomainEvent, EventSink
from admissions_kernel.logging_config import get_logger

logger = get_logger("services.event_outbox")

_SESSION_INFO_KEY = "admissions_event_outbox"


class EventOutbox:
    """Per-session buffer of pending domain events."""

    def __init__(self, session: Session):
        self._session = session
        self._pending: list[tuple[EventSink, DomainEvent]] = []
        event.listen(session, "after_commit", self._on_commit)
        event.listen(session, "after_transaction_end", self._on_transaction_end)

    @classmethod
    def for_session(cls, session: Session) -> EventOutbox:
        """Return the session's outbox, creating it on first use."""
        outbox = session.info.get(_SESSION_INFO_KEY)
        if outbox is None:
            outbox = cls(session)
            session.info[_SESSION_INFO_KEY] = outbox
        return outbox

    @property
    def pending(self) -> tuple[DomainEvent, ...]:
        return tuple(evt for _, evt in self._pending)

    def add(self, sink: EventSink | None, domain_event: DomainEvent) -> None:
        """Queue an event for ``sink``.  A None sink drops the event."""
        if sink is None:
            return
        self._pending.append((sink, domain_event))

    def mark(self) -> int:
        return len(self._pending)

    def truncate(self, mark: int) -> None:
        """Drop events queued after ``mark`` (savepoint rolled back)."""
        dropped = len(self._pending) - mark
        if dropped > 0:
            del self._pending[mark:]
            logger.debug("outbox_events_discarded", extra={"count": dropped})

    def _on_commit(self, session: Session) -> None:
        # Fires for SAVEPOINT release too; only the root commit delivers.
        if session.in_nested_transaction() or not self._pending:
            return
        batch, self._pending = self._pending, []
        failed = 0
        for sink, domain_event in batch:
            try:
                sink.publish(domain_event)
            except Exception:  # noqa: BLE001
                failed += 1
                logger.error(
                    "event_delivery_failed",
                    extra={
                        "event_type": domain_event.event_type,
                        "application_id": str(domain_event.application_id),
                    },
                    exc_info=True,
                )
        logger.debug(
            "outbox_events_delivered",
            extra={"count": len(batch) - failed, "failed": failed},
        )

    def _on_transaction_end(
        self, session: Session, transaction: SessionTransaction
    ) -> None:
        # Root transaction ended without after_commit having drained: rollback.
        if transaction.parent is None and self._pending:
            logger.debug(
                "outbox_events_discarded",
                extra={"count": len(self._pending), "reason": "rollback"},
            )
            self._pending.clear()
