"""
Module: colony_kernel.models.booking
Responsibility: ORM persistence for bookings, the reservation/sale ledger
    recorded against plots.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - booking_number is globally unique (uq_booking_number).
    - At most one open booking per plot: partial unique index
      uq_booking_open_plot on plot_id WHERE status is in the open set.
      Cancelled bookings fall outside the index and stay queryable.
    - remaining_amount == total_amount - advance_amount (BookingService).

Failure modes:
    - IntegrityError on duplicate booking_number (sequence race, retried).
    - IntegrityError on a second open booking for a plot (reconciler race,
      treated as a no-op by BookingService.ensure_booking).
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, ForeignKey, Index, String, Text, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column

from colony_kernel.db.base import TrackedBase, UUIDString


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class InstallmentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"


# "approved" only exists on legacy rows; it is read, never written.
OPEN_BOOKING_STATUSES: tuple[str, ...] = (
    BookingStatus.PENDING.value,
    BookingStatus.CONFIRMED.value,
    BookingStatus.COMPLETED.value,
    "approved",
)

_OPEN_BOOKING_PREDICATE = text(
    "status IN ('pending', 'confirmed', 'completed', 'approved')"
)


class Booking(TrackedBase):
    """
    A reservation or sale recorded against one plot.

    Guarantees:
        - booking_number matches BK followed by six digits when allocated by
          the kernel.
        - plot_number is copied at creation so the ledger stays readable
          after the plot row is deleted (plot_id is then set to NULL).
        - payment_schedule is a list of installments:
          {due_date, amount, description, status, paid_date, paid_amount,
          transaction_id}.
    """

    __tablename__ = "bookings"

    __table_args__ = (
        UniqueConstraint("booking_number", name="uq_booking_number"),
        Index(
            "uq_booking_open_plot",
            "plot_id",
            unique=True,
            postgresql_where=_OPEN_BOOKING_PREDICATE,
            sqlite_where=_OPEN_BOOKING_PREDICATE,
        ),
        Index("idx_booking_status", "status"),
        Index("idx_booking_buyer", "buyer_id"),
    )

    booking_number: Mapped[str] = mapped_column(String(20), nullable=False)

    plot_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("plots.id", ondelete="SET NULL"),
        nullable=True,
    )

    plot_number: Mapped[str | None] = mapped_column(String(30), nullable=True)

    buyer_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("users.id"),
        nullable=True,
    )

    agent_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("users.id"),
        nullable=True,
    )

    customer_details: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    total_amount: Mapped[Decimal] = mapped_column(nullable=False)
    advance_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    remaining_amount: Mapped[Decimal] = mapped_column(nullable=False)

    payment_schedule: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
    )

    status: Mapped[BookingStatus] = mapped_column(
        String(20),
        nullable=False,
        default=BookingStatus.PENDING,
    )

    booking_date: Mapped[datetime] = mapped_column(nullable=False)
    completion_date: Mapped[datetime | None] = mapped_column(nullable=True)
    cancellation_date: Mapped[datetime | None] = mapped_column(nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_BOOKING_STATUSES

    def __repr__(self) -> str:
        return f"<Booking {self.booking_number} ({self.status})>"
