"""
SequenceService -- sequential human-readable identifiers.

Responsibility:
    Allocates plot numbers (``PLOT-NNNN``, one sequence per colony),
    booking numbers (``BK######``, one global sequence) and user codes
    (``<PREFIX>-NNNNN``, one sequence per role prefix).

Architecture position:
    Kernel > Services.  Called by PlotService, BookingService and
    UserService before inserting the row that carries the identifier.

Algorithm:
    Read existing identifiers in the partition that start with the prefix,
    ordered descending by identifier string.  The first one that fully
    matches the fixed-width pattern holds the highest number; the next
    value is that number plus one, zero-padded.  Identifiers entered by
    hand in another shape (``PLOT-12A``) are ignored.

Invariants enforced:
    - No identifier is ever left unset: a missing partition key, an
      exhausted width, or exhausted retries raise ``SequencingError`` and
      the create fails.
    - Two concurrent allocations may compute the same value.  The unique
      constraint on the identifier column rejects the second insert; the
      insert runs in a savepoint, so only that savepoint is rolled back and
      the allocation is retried against fresh data, up to
      ``sequence_max_attempts`` times.

Failure modes:
    - SequencingError: missing partition key, width overflow, or every
      attempt lost the uniqueness race.
    - IntegrityError from any other constraint propagates unchanged.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import InstrumentedAttribute, Session

from colony_config import get_active_config
from colony_kernel.db.integrity import is_unique_violation
from colony_kernel.exceptions import SequencingError
from colony_kernel.logging_config import get_logger
from colony_kernel.models.booking import Booking
from colony_kernel.models.plot import Plot
from colony_kernel.models.user import User
from colony_kernel.services.base import BaseService

logger = get_logger("services.sequence")

T = TypeVar("T")


@dataclass(frozen=True)
class SequenceFormat:
    """
    Shape of one family of identifiers.

    ``constraint`` and ``column`` identify the unique guard that rejects a
    duplicate, so that only that violation is retried.
    """

    name: str
    prefix: str
    width: int
    constraint: str
    column: str

    @property
    def pattern(self) -> re.Pattern[str]:
        return re.compile(rf"^{re.escape(self.prefix)}\d{{{self.width}}}$")

    @property
    def capacity(self) -> int:
        return 10 ** self.width - 1

    def matches(self, identifier: str | None) -> bool:
        return identifier is not None and self.pattern.match(identifier) is not None

    def parse(self, identifier: str) -> int:
        return int(identifier[len(self.prefix):])

    def format(self, value: int) -> str:
        if value > self.capacity:
            raise SequencingError(
                self.name,
                f"{self.prefix}{'9' * self.width} is the last available value",
            )
        return f"{self.prefix}{value:0{self.width}d}"


PLOT_NUMBER = SequenceFormat(
    name="plot_number",
    prefix="PLOT-",
    width=4,
    constraint="uq_plot_colony_number",
    column="plots.plot_number",
)

BOOKING_NUMBER = SequenceFormat(
    name="booking_number",
    prefix="BK",
    width=6,
    constraint="uq_booking_number",
    column="bookings.booking_number",
)


def user_code_format(prefix: str) -> SequenceFormat:
    """Format for user codes under one role prefix (``AG-00001``)."""
    return SequenceFormat(
        name="user_code",
        prefix=f"{prefix}-",
        width=5,
        constraint="uq_user_code",
        column="users.user_code",
    )


class SequenceService(BaseService):
    """
    Service for allocating sequential identifiers.

    Contract:
        ``next_*`` methods compute the next value from the store; they do
        not reserve it.  Callers that insert the row use
        ``allocate_with_retry`` so a lost race is retried.

    Non-goals:
        - No in-process caching of the last value: every allocation reads
          the store.
        - No gap filling: deleting PLOT-0003 of five does not make 0003
          available again while 0005 exists.
    """

    def __init__(self, session: Session, max_attempts: int | None = None):
        super().__init__(session)
        self.max_attempts = (
            max_attempts
            if max_attempts is not None
            else get_active_config().sequence_max_attempts
        )

    def _next_in(
        self,
        fmt: SequenceFormat,
        column: InstrumentedAttribute,
        *criteria,
    ) -> str:
        # LIKE narrows the scan; the regex decides what counts as ours
        stmt = (
            select(column)
            .where(column.like(f"{fmt.prefix}%"), *criteria)
            .order_by(column.desc())
        )
        last = 0
        for identifier in self.session.execute(stmt).scalars():
            if fmt.matches(identifier):
                last = fmt.parse(identifier)
                break

        value = fmt.format(last + 1)
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": fmt.name, "value": value},
        )
        return value

    def next_plot_number(self, colony_id: UUID | None) -> str:
        """
        Next ``PLOT-NNNN`` for a colony.

        Raises:
            SequencingError: colony_id is missing or the colony has used
                all 9999 numbers.
        """
        if colony_id is None:
            raise SequencingError(PLOT_NUMBER.name, "a colony is required")
        return self._next_in(PLOT_NUMBER, Plot.plot_number, Plot.colony_id == colony_id)

    def next_booking_number(self) -> str:
        """Next global ``BK######``."""
        return self._next_in(BOOKING_NUMBER, Booking.booking_number)

    def next_user_code(self, prefix: str | None) -> str:
        """
        Next ``<PREFIX>-NNNNN`` for a role prefix.

        Raises:
            SequencingError: prefix is missing (user without a role).
        """
        if not prefix:
            raise SequencingError("user_code", "a role prefix is required")
        return self._next_in(user_code_format(prefix), User.user_code)

    def allocate_with_retry(
        self,
        fmt: SequenceFormat,
        allocate: Callable[[], str],
        persist: Callable[[str], T],
    ) -> T:
        """
        Allocate an identifier and insert the row that carries it.

        ``persist`` must build and ``session.add()`` a fresh row for the
        given identifier; it is called inside a savepoint and flushed.  A
        rolled-back savepoint expunges the row, so each attempt starts
        clean.

        Args:
            fmt: Identifier family, naming the unique guard to watch.
            allocate: Returns the candidate identifier.
            persist: Inserts the row; its return value is passed through.

        Returns:
            Whatever ``persist`` returned for the winning attempt.

        Raises:
            SequencingError: every attempt hit the unique guard.
        """
        for attempt in range(1, self.max_attempts + 1):
            value = allocate()
            savepoint = self.session.begin_nested()
            try:
                result = persist(value)
                self.session.flush()
            except IntegrityError as exc:
                savepoint.rollback()
                if not is_unique_violation(exc, fmt.constraint, fmt.column):
                    raise
                logger.warning(
                    "sequence_conflict_retry",
                    extra={
                        "sequence_name": fmt.name,
                        "value": value,
                        "attempt": attempt,
                        "max_attempts": self.max_attempts,
                    },
                )
                continue
            savepoint.commit()
            return result

        raise SequencingError(
            fmt.name,
            f"still conflicting after {self.max_attempts} attempts",
            attempts=self.max_attempts,
        )
