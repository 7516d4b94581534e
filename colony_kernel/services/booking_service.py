"""
BookingService -- booking ledger and plot/booking reconciliation.

Responsibility:
    Explicit booking flow (create, update, cancel, installment payments)
    and ``ensure_booking``, the reconciler that guarantees a plot whose
    status is booked or sold is backed by an open booking.

Architecture position:
    Kernel > Services.  ``ensure_booking`` is called by PlotService in the
    same transaction as the plot status write.  The explicit flow is
    called by the routing layer.

Invariants enforced:
    - At most one open booking (pending, confirmed, completed, legacy
      approved) per plot.  Checked before insert and backed by the partial
      unique index ``uq_booking_open_plot``; a reconciler that loses the
      race rolls back its savepoint and returns the winner's booking.
    - remaining_amount == total_amount - advance_amount after every write,
      and advance_amount never exceeds total_amount.
    - create_booking moves the plot to blocked; cancel_booking moves it
      back to available.  Both recount the plot's colony.

Failure modes:
    - PlotNotFoundError / BookingNotFoundError / UserNotFoundError.
    - PlotNotAvailableError: explicit booking of a plot that is not
      available or already carries an open booking.
    - BookingAlreadyCancelledError: cancelling or editing a cancelled
      booking.
    - ValidationError: missing reason, bad amounts, bad schedule.
    - SequencingError: booking number could not be allocated.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Mapping, Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from colony_kernel.db.integrity import is_unique_violation
from colony_kernel.domain.clock import Clock, SystemClock, parse_datetime
from colony_kernel.domain.permissions import Identity, Permission, require_permission
from colony_kernel.domain.plot_status import PlotStatus, StatusChange, plan_transition
from colony_kernel.domain.pricing import (
    remaining_amount,
    require_non_negative,
    require_positive,
)
from colony_kernel.exceptions import (
    BookingAlreadyCancelledError,
    BookingNotFoundError,
    PlotNotAvailableError,
    PlotNotFoundError,
    UserNotFoundError,
    ValidationError,
)
from colony_kernel.logging_config import LogContext, get_logger
from colony_kernel.models.booking import (
    OPEN_BOOKING_STATUSES,
    Booking,
    BookingStatus,
    InstallmentStatus,
)
from colony_kernel.models.plot import Plot
from colony_kernel.models.user import User
from colony_kernel.services.base import BaseService
from colony_kernel.services.colony_service import ColonyService
from colony_kernel.services.sequence_service import BOOKING_NUMBER, SequenceService

logger = get_logger("services.booking")

OPEN_PLOT_INDEX = "uq_booking_open_plot"
OPEN_PLOT_COLUMN = "bookings.plot_id"

# Statuses a client may set through update_booking
_EDITABLE_STATUSES = frozenset({
    BookingStatus.PENDING,
    BookingStatus.CONFIRMED,
    BookingStatus.COMPLETED,
})

_CUSTOMER_DETAIL_KEYS = ("name", "phone", "address", "aadhar_number", "pan_number")

_CREATE_FIELDS = frozenset({
    "total_amount",
    "advance_amount",
    "buyer_id",
    "agent_id",
    "customer_details",
    "payment_schedule",
    "booking_date",
})

_UPDATE_FIELDS = frozenset({
    "total_amount",
    "advance_amount",
    "agent_id",
    "customer_details",
    "payment_schedule",
    "status",
})


@dataclass(frozen=True)
class BookingInfo:
    """Immutable booking snapshot returned by the service."""

    id: UUID
    booking_number: str
    plot_id: UUID | None
    plot_number: str | None
    buyer_id: UUID | None
    agent_id: UUID | None
    customer_details: dict[str, Any]
    total_amount: Decimal
    advance_amount: Decimal
    remaining_amount: Decimal
    payment_schedule: tuple[dict[str, Any], ...]
    status: str
    booking_date: datetime
    completion_date: datetime | None
    cancellation_date: datetime | None
    cancellation_reason: str | None


class BookingService(BaseService[Booking]):
    """
    Service for bookings.

    Contract:
        All mutations flush; none commit.  Dates come from the injected
        clock.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        sequences: SequenceService | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._sequences = sequences or SequenceService(session)
        self._colonies = ColonyService(session)

    # -----------------------------------------------------------------
    # Reconciler
    # -----------------------------------------------------------------

    def ensure_booking(self, plot: Plot, actor_id: UUID) -> BookingInfo:
        """
        Guarantee that a booked or sold plot has an open booking.

        If one exists it is returned untouched.  Otherwise a booking is
        synthesized from the plot's buyer and sale fields: completed for a
        sold plot, pending otherwise, dated at registry_date or now.
        A paid_amount above the total is capped at the total and logged.

        Args:
            plot: Flushed plot whose status is booked or sold.
            actor_id: Recorded as the booking's creator.

        Returns:
            The open booking for the plot.
        """
        with LogContext.bind(actor_id=actor_id, colony_id=plot.colony_id, plot_id=plot.id):
            return self._do_ensure_booking(plot, actor_id)

    def _do_ensure_booking(self, plot: Plot, actor_id: UUID) -> BookingInfo:
        existing = self._open_booking_for(plot.id)
        if existing is not None:
            return self._to_dto(existing)

        total = plot.final_price if plot.final_price is not None else plot.total_price
        advance = plot.paid_amount if plot.paid_amount is not None else Decimal("0")
        if advance > total:
            logger.warning(
                "booking_advance_exceeds_total",
                extra={
                    "plot_id": str(plot.id),
                    "paid_amount": advance,
                    "total_amount": total,
                },
            )
            advance = total
        status = (
            BookingStatus.COMPLETED
            if plot.status == PlotStatus.SOLD
            else BookingStatus.PENDING
        )
        booking_date = plot.registry_date or self._clock.now()

        def persist(number: str) -> Booking:
            booking = Booking(
                booking_number=number,
                plot_id=plot.id,
                plot_number=plot.plot_number,
                customer_details=_customer_details_from_plot(plot),
                total_amount=total,
                advance_amount=advance,
                remaining_amount=remaining_amount(total, advance),
                payment_schedule=[],
                status=status,
                booking_date=booking_date,
                completion_date=booking_date if status == BookingStatus.COMPLETED else None,
                created_by_id=actor_id,
            )
            self.session.add(booking)
            return booking

        try:
            booking = self._sequences.allocate_with_retry(
                BOOKING_NUMBER,
                self._sequences.next_booking_number,
                persist,
            )
        except IntegrityError as exc:
            if not is_unique_violation(exc, OPEN_PLOT_INDEX, OPEN_PLOT_COLUMN):
                raise
            winner = self._open_booking_for(plot.id)
            if winner is None:
                raise
            logger.info(
                "booking_reconcile_race_lost",
                extra={
                    "plot_id": str(plot.id),
                    "booking_id": str(winner.id),
                    "booking_number": winner.booking_number,
                },
            )
            return self._to_dto(winner)

        logger.info(
            "booking_auto_created",
            extra={
                "plot_id": str(plot.id),
                "plot_number": plot.plot_number,
                "booking_id": str(booking.id),
                "booking_number": booking.booking_number,
                "booking_status": BookingStatus(booking.status).value,
                "total_amount": booking.total_amount,
            },
        )
        return self._to_dto(booking)

    # -----------------------------------------------------------------
    # Explicit flow
    # -----------------------------------------------------------------

    def create_booking(
        self,
        plot_id: UUID,
        fields: Mapping[str, Any],
        identity: Identity,
    ) -> BookingInfo:
        """
        Book an available plot and block it.

        Args:
            plot_id: Plot to book.
            fields: total_amount (required), advance_amount, buyer_id,
                agent_id, customer_details, payment_schedule, booking_date.
            identity: Acting user; needs booking_create.

        Raises:
            ForbiddenError, PlotNotFoundError, PlotNotAvailableError,
            UserNotFoundError, ValidationError, SequencingError.
        """
        with LogContext.bind(actor_id=identity.user_id, plot_id=plot_id):
            return self._do_create_booking(plot_id, fields, identity)

    def _do_create_booking(
        self,
        plot_id: UUID,
        fields: Mapping[str, Any],
        identity: Identity,
    ) -> BookingInfo:
        require_permission(identity, Permission.BOOKING_CREATE)
        _reject_unknown(fields, _CREATE_FIELDS)

        plot = self.session.get(Plot, plot_id)
        if plot is None:
            raise PlotNotFoundError(str(plot_id))

        change = plan_transition(plot.status, PlotStatus.BLOCKED)
        if not isinstance(change, StatusChange) or plot.status != PlotStatus.AVAILABLE:
            raise PlotNotAvailableError(str(plot.id), PlotStatus(plot.status).value)
        if self._open_booking_for(plot.id) is not None:
            raise PlotNotAvailableError(str(plot.id), "open booking exists")

        if fields.get("total_amount") is None:
            raise ValidationError("total_amount", "total amount is required")
        total = require_non_negative(fields["total_amount"], "total_amount")
        advance = _validated_advance(fields.get("advance_amount"), total)

        buyer_id = self._user_ref(fields.get("buyer_id"))
        agent_id = self._user_ref(fields.get("agent_id"))
        schedule = _normalize_schedule(fields.get("payment_schedule") or [])
        customer_details = _normalize_customer_details(fields.get("customer_details") or {})
        booking_date = (
            parse_datetime(fields.get("booking_date"), "booking_date") or self._clock.now()
        )

        def persist(number: str) -> Booking:
            booking = Booking(
                booking_number=number,
                plot_id=plot.id,
                plot_number=plot.plot_number,
                buyer_id=buyer_id,
                agent_id=agent_id,
                customer_details=customer_details,
                total_amount=total,
                advance_amount=advance,
                remaining_amount=remaining_amount(total, advance),
                payment_schedule=schedule,
                status=BookingStatus.PENDING,
                booking_date=booking_date,
                created_by_id=identity.user_id,
            )
            self.session.add(booking)
            return booking

        try:
            booking = self._sequences.allocate_with_retry(
                BOOKING_NUMBER,
                self._sequences.next_booking_number,
                persist,
            )
        except IntegrityError as exc:
            if not is_unique_violation(exc, OPEN_PLOT_INDEX, OPEN_PLOT_COLUMN):
                raise
            raise PlotNotAvailableError(str(plot.id), "open booking exists") from exc

        plot.status = change.to_status
        plot.updated_by_id = identity.user_id
        self.session.flush()

        logger.info(
            "booking_created",
            extra={
                "booking_id": str(booking.id),
                "booking_number": booking.booking_number,
                "plot_id": str(plot.id),
                "total_amount": total,
                "advance_amount": advance,
            },
        )
        logger.info(
            "plot_status_changed",
            extra={
                "plot_id": str(plot.id),
                "from_status": change.from_status.value,
                "to_status": change.to_status.value,
                "booking_id": str(booking.id),
            },
        )

        self._colonies.recount(plot.colony_id)
        return self._to_dto(booking)

    def cancel_booking(
        self,
        booking_id: UUID,
        reason: str,
        identity: Identity,
    ) -> BookingInfo:
        """
        Cancel a booking and release its plot.

        The plot goes back to available from whatever status it holds; a
        move from sold is logged as off-path.

        Raises:
            ForbiddenError, ValidationError (empty reason),
            BookingNotFoundError, BookingAlreadyCancelledError.
        """
        with LogContext.bind(actor_id=identity.user_id, booking_id=booking_id):
            return self._do_cancel_booking(booking_id, reason, identity)

    def _do_cancel_booking(
        self,
        booking_id: UUID,
        reason: str,
        identity: Identity,
    ) -> BookingInfo:
        require_permission(identity, Permission.BOOKING_UPDATE)

        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("reason", "cancellation reason is required")

        booking = self._get_by_id(booking_id)
        if booking.status == BookingStatus.CANCELLED:
            raise BookingAlreadyCancelledError(str(booking.id))

        booking.status = BookingStatus.CANCELLED
        booking.cancellation_date = self._clock.now()
        booking.cancellation_reason = reason
        booking.updated_by_id = identity.user_id
        self.session.flush()

        logger.info(
            "booking_cancelled",
            extra={
                "booking_id": str(booking.id),
                "booking_number": booking.booking_number,
                "plot_id": str(booking.plot_id) if booking.plot_id else None,
                "reason": reason,
            },
        )

        plot = self.session.get(Plot, booking.plot_id) if booking.plot_id else None
        if plot is not None:
            self._release_plot(plot, booking, identity)

        return self._to_dto(booking)

    def update_booking(
        self,
        booking_id: UUID,
        patch: Mapping[str, Any],
        identity: Identity,
    ) -> BookingInfo:
        """
        Partially update a booking that is not cancelled.

        Accepted keys: total_amount, advance_amount, payment_schedule,
        agent_id, customer_details, status (pending, confirmed,
        completed).  Cancellation goes through cancel_booking.

        Raises:
            ForbiddenError, BookingNotFoundError,
            BookingAlreadyCancelledError, ValidationError.
        """
        with LogContext.bind(actor_id=identity.user_id, booking_id=booking_id):
            return self._do_update_booking(booking_id, patch, identity)

    def _do_update_booking(
        self,
        booking_id: UUID,
        patch: Mapping[str, Any],
        identity: Identity,
    ) -> BookingInfo:
        require_permission(identity, Permission.BOOKING_UPDATE)
        _reject_unknown(patch, _UPDATE_FIELDS)
        booking = self._get_by_id(booking_id)
        if booking.status == BookingStatus.CANCELLED:
            raise BookingAlreadyCancelledError(str(booking.id))

        total = booking.total_amount
        if "total_amount" in patch:
            total = require_non_negative(patch["total_amount"], "total_amount")
        advance = booking.advance_amount
        if "advance_amount" in patch:
            advance = patch["advance_amount"]
        advance = _validated_advance(advance, total)

        if "status" in patch:
            status = _parse_editable_status(patch["status"])
            if status == BookingStatus.COMPLETED and booking.completion_date is None:
                booking.completion_date = self._clock.now()
            booking.status = status

        if "agent_id" in patch:
            booking.agent_id = self._user_ref(patch["agent_id"])
        if "customer_details" in patch:
            booking.customer_details = _normalize_customer_details(
                patch["customer_details"] or {}
            )
        if "payment_schedule" in patch:
            booking.payment_schedule = _normalize_schedule(patch["payment_schedule"] or [])

        booking.total_amount = total
        booking.advance_amount = advance
        booking.remaining_amount = remaining_amount(total, advance)
        booking.updated_by_id = identity.user_id
        self.session.flush()

        logger.info(
            "booking_updated",
            extra={"booking_id": str(booking.id), "fields": sorted(patch)},
        )
        return self._to_dto(booking)

    def record_installment_payment(
        self,
        booking_id: UUID,
        index: int,
        paid_amount: Any,
        transaction_id: str | None,
        identity: Identity,
    ) -> BookingInfo:
        """
        Mark one payment-schedule installment as paid.

        Raises:
            ForbiddenError, BookingNotFoundError,
            BookingAlreadyCancelledError, ValidationError (bad index,
            already paid, non-positive amount).
        """
        with LogContext.bind(actor_id=identity.user_id, booking_id=booking_id):
            return self._do_record_installment_payment(
                booking_id, index, paid_amount, transaction_id, identity
            )

    def _do_record_installment_payment(
        self,
        booking_id: UUID,
        index: int,
        paid_amount: Any,
        transaction_id: str | None,
        identity: Identity,
    ) -> BookingInfo:
        require_permission(identity, Permission.BOOKING_UPDATE)
        booking = self._get_by_id(booking_id)
        if booking.status == BookingStatus.CANCELLED:
            raise BookingAlreadyCancelledError(str(booking.id))

        schedule = [dict(item) for item in booking.payment_schedule or []]
        if not 0 <= index < len(schedule):
            raise ValidationError("index", f"no installment at position {index}")
        if schedule[index].get("status") == InstallmentStatus.PAID.value:
            raise ValidationError("index", f"installment {index} is already paid")

        amount = require_positive(paid_amount, "paid_amount")
        schedule[index].update(
            status=InstallmentStatus.PAID.value,
            paid_date=self._clock.now().isoformat(),
            paid_amount=str(amount),
            transaction_id=transaction_id,
        )
        booking.payment_schedule = schedule
        booking.updated_by_id = identity.user_id
        self.session.flush()

        logger.info(
            "installment_paid",
            extra={
                "booking_id": str(booking.id),
                "installment": index,
                "paid_amount": amount,
                "transaction_id": transaction_id,
            },
        )
        return self._to_dto(booking)

    def get_booking(self, booking_id: UUID) -> BookingInfo:
        return self._to_dto(self._get_by_id(booking_id))

    # -----------------------------------------------------------------
    # Internals
    # -----------------------------------------------------------------

    def _release_plot(self, plot: Plot, booking: Booking, identity: Identity) -> None:
        change = plan_transition(plot.status, PlotStatus.AVAILABLE, manual=True)
        if change.off_path:
            logger.warning(
                "plot_status_off_path",
                extra={
                    "plot_id": str(plot.id),
                    "from_status": change.from_status.value,
                    "to_status": change.to_status.value,
                    "booking_id": str(booking.id),
                },
            )
        if change.changed:
            plot.status = change.to_status
            plot.updated_by_id = identity.user_id
            self.session.flush()
            logger.info(
                "plot_status_changed",
                extra={
                    "plot_id": str(plot.id),
                    "from_status": change.from_status.value,
                    "to_status": change.to_status.value,
                    "booking_id": str(booking.id),
                },
            )
        self._colonies.recount(plot.colony_id)

    def _open_booking_for(self, plot_id: UUID) -> Booking | None:
        return self.session.execute(
            select(Booking)
            .where(
                Booking.plot_id == plot_id,
                Booking.status.in_(OPEN_BOOKING_STATUSES),
            )
            .order_by(Booking.booking_date.desc())
        ).scalars().first()

    def _get_by_id(self, booking_id: UUID) -> Booking:
        booking = self.session.get(Booking, booking_id)
        if booking is None:
            raise BookingNotFoundError(str(booking_id))
        return booking

    def _user_ref(self, user_id: UUID | None) -> UUID | None:
        if user_id is None:
            return None
        if self.session.get(User, user_id) is None:
            raise UserNotFoundError(str(user_id))
        return user_id

    def _to_dto(self, booking: Booking) -> BookingInfo:
        return BookingInfo(
            id=booking.id,
            booking_number=booking.booking_number,
            plot_id=booking.plot_id,
            plot_number=booking.plot_number,
            buyer_id=booking.buyer_id,
            agent_id=booking.agent_id,
            customer_details=dict(booking.customer_details or {}),
            total_amount=booking.total_amount,
            advance_amount=booking.advance_amount,
            remaining_amount=booking.remaining_amount,
            payment_schedule=tuple(booking.payment_schedule or ()),
            status=str(getattr(booking.status, "value", booking.status)),
            booking_date=booking.booking_date,
            completion_date=booking.completion_date,
            cancellation_date=booking.cancellation_date,
            cancellation_reason=booking.cancellation_reason,
        )


def _customer_details_from_plot(plot: Plot) -> dict[str, Any]:
    return {
        "name": plot.customer_name,
        "phone": plot.customer_number,
        "address": plot.customer_short_address or plot.customer_full_address,
        "aadhar_number": plot.customer_aadhar_number,
        "pan_number": plot.customer_pan_number,
    }


def _normalize_customer_details(details: Mapping[str, Any]) -> dict[str, Any]:
    unknown = set(details) - set(_CUSTOMER_DETAIL_KEYS)
    if unknown:
        raise ValidationError(
            "customer_details",
            f"unknown keys: {', '.join(sorted(unknown))}",
        )
    return {key: details.get(key) for key in _CUSTOMER_DETAIL_KEYS}


def _reject_unknown(fields: Mapping[str, Any], allowed: frozenset[str]) -> None:
    if "remaining_amount" in fields:
        raise ValidationError("remaining_amount", "derived from total_amount and advance_amount")
    unknown = set(fields) - allowed
    if unknown:
        raise ValidationError(sorted(unknown)[0], "unknown booking field")


def _validated_advance(value: Any, total: Decimal) -> Decimal:
    advance = Decimal("0") if value is None else require_non_negative(value, "advance_amount")
    if advance > total:
        raise ValidationError("advance_amount", "advance cannot exceed the total amount")
    return advance


def _parse_editable_status(value: Any) -> BookingStatus:
    try:
        status = BookingStatus(value)
    except ValueError:
        raise ValidationError("status", f"unknown booking status '{value}'") from None
    if status not in _EDITABLE_STATUSES:
        raise ValidationError("status", "use cancel_booking to cancel a booking")
    return status


def _normalize_schedule(items: Sequence[Mapping[str, Any]]) -> list[dict[str, Any]]:
    """Validate installments and store them JSON-ready."""
    schedule = []
    for index, item in enumerate(items):
        prefix = f"payment_schedule[{index}]"
        due_date = parse_datetime(item.get("due_date"), f"{prefix}.due_date")
        if due_date is None:
            raise ValidationError(f"{prefix}.due_date", "due date is required")
        paid_date = parse_datetime(item.get("paid_date"), f"{prefix}.paid_date")
        amount = require_positive(item.get("amount"), f"{prefix}.amount")
        status = item.get("status", InstallmentStatus.PENDING.value)
        try:
            status = InstallmentStatus(status).value
        except ValueError:
            raise ValidationError(
                f"{prefix}.status",
                f"unknown installment status '{status}'",
            ) from None
        schedule.append({
            "due_date": due_date.date().isoformat(),
            "amount": str(amount),
            "description": item.get("description"),
            "status": status,
            "paid_date": paid_date.isoformat() if paid_date else None,
            "paid_amount": None if item.get("paid_amount") is None else str(item["paid_amount"]),
            "transaction_id": item.get("transaction_id"),
        })
    return schedule
