"""Named monotonic counters backing SequenceService."""

from sqlalchemy import BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from admissions_kernel.db.base import Base


class SequenceCounter(Base):
    """
    Sequence counter table.

    Each row represents a named sequence with its current value.
    Row-level locking ensures monotonicity under concurrency.
    """

    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
