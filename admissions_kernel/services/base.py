"""
BaseService -- abstract base for kernel services that write.

Responsibility:
    Provides the common constructor and session-handling contract.  All
    concrete write services receive a SQLAlchemy ``Session`` and persist
    through ``session.flush()`` -- never ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    Transaction boundaries belong to the caller (WorkflowEngine with
    auto_commit, ``session_scope()``, or a test).  Services flush within
    that transaction so that multi-step operations stay atomic.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from admissions_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for kernel write services.

    Guarantees:
        - The service never calls ``session.commit()`` or
          ``session.rollback()``.

    Non-goals:
        - Read-only queries belong in ``admissions_kernel/selectors/``.
    """

    def __init__(self, session: Session):
        self.session = session
