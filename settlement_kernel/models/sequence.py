"""Named monotonic counters, one row per sequence."""

from sqlalchemy import BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from settlement_kernel.db.base import Base


class SequenceCounter(Base):
    """
    Sequence counter table.

    Row-level locking on a counter row keeps allocations monotonic under
    concurrency (see SequenceService).
    """

    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
