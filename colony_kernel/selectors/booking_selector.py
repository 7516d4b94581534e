"""
Module: colony_kernel.selectors.booking_selector
Responsibility: Paged booking listings (newest first) and the open-booking
    lookup for a plot.
Architecture position: Kernel > Selectors.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from math import ceil
from uuid import UUID

from sqlalchemy import func, select

from colony_kernel.exceptions import ValidationError
from colony_kernel.models.booking import OPEN_BOOKING_STATUSES, Booking, BookingStatus
from colony_kernel.selectors.base import BaseSelector

MAX_PAGE_SIZE = 100


@dataclass(frozen=True)
class BookingSummary:
    """One booking in a listing."""

    id: UUID
    booking_number: str
    plot_id: UUID | None
    plot_number: str | None
    buyer_id: UUID | None
    status: str
    total_amount: Decimal
    advance_amount: Decimal
    remaining_amount: Decimal
    booking_date: datetime


@dataclass(frozen=True)
class BookingPage:
    items: tuple[BookingSummary, ...]
    total: int
    page: int
    pages: int


class BookingSelector(BaseSelector[Booking]):
    """Read-only booking queries."""

    def list(
        self,
        status: str | None = None,
        plot_id: UUID | None = None,
        buyer_id: UUID | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> BookingPage:
        """
        One page of bookings, newest booking_date first.

        Raises:
            ValidationError: page < 1, limit outside 1..100, or an unknown
                status.
        """
        if page < 1:
            raise ValidationError("page", "must be at least 1")
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise ValidationError("limit", f"must be between 1 and {MAX_PAGE_SIZE}")

        criteria = []
        if status is not None:
            if status not in {s.value for s in BookingStatus} | set(OPEN_BOOKING_STATUSES):
                raise ValidationError("status", f"unknown booking status '{status}'")
            criteria.append(Booking.status == status)
        if plot_id is not None:
            criteria.append(Booking.plot_id == plot_id)
        if buyer_id is not None:
            criteria.append(Booking.buyer_id == buyer_id)

        total = self.session.execute(
            select(func.count(Booking.id)).where(*criteria)
        ).scalar_one()

        bookings = self.session.execute(
            select(Booking)
            .where(*criteria)
            .order_by(Booking.booking_date.desc(), Booking.booking_number.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        ).scalars().all()

        return BookingPage(
            items=tuple(self._to_summary(b) for b in bookings),
            total=total,
            page=page,
            pages=ceil(total / limit) if total else 0,
        )

    def open_booking_for_plot(self, plot_id: UUID) -> BookingSummary | None:
        booking = self.session.execute(
            select(Booking)
            .where(
                Booking.plot_id == plot_id,
                Booking.status.in_(OPEN_BOOKING_STATUSES),
            )
        ).scalars().first()
        return self._to_summary(booking) if booking is not None else None

    def count_open_for_plot(self, plot_id: UUID) -> int:
        return self.session.execute(
            select(func.count(Booking.id)).where(
                Booking.plot_id == plot_id,
                Booking.status.in_(OPEN_BOOKING_STATUSES),
            )
        ).scalar_one()

    @staticmethod
    def _to_summary(booking: Booking) -> BookingSummary:
        return BookingSummary(
            id=booking.id,
            booking_number=booking.booking_number,
            plot_id=booking.plot_id,
            plot_number=booking.plot_number,
            buyer_id=booking.buyer_id,
            status=str(getattr(booking.status, "value", booking.status)),
            total_amount=booking.total_amount,
            advance_amount=booking.advance_amount,
            remaining_amount=booking.remaining_amount,
            booking_date=booking.booking_date,
        )
