"""
Plot status state machine (``colony_kernel.domain.plot_status``).

Responsibility
--------------
Pure transition function for the plot lifecycle.  Services never assign
``plot.status`` directly; they ask ``plan_transition`` for a
``StatusChange`` (or a ``TransitionRejected``) and act on its flags.

Business path
-------------
::

    available -> blocked | reserved | booked
    blocked | reserved | booked -> sold
    blocked | reserved | booked -> available      (booking cancelled)

``manual=True`` (admin edits, booking cancellation) may reach any state;
moves outside the business path are flagged ``off_path`` so the caller
can log them.  ``sold`` is delete-protected but not terminal.  ``reserved``
is only ever set by an admin.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from colony_kernel.exceptions import ValidationError


class PlotStatus(str, Enum):
    """Plot lifecycle state."""

    AVAILABLE = "available"
    BLOCKED = "blocked"
    RESERVED = "reserved"
    BOOKED = "booked"
    SOLD = "sold"


INITIAL_STATUS = PlotStatus.AVAILABLE

# Resulting states that require a booking record to exist
BOOKING_STATUSES: frozenset[PlotStatus] = frozenset({
    PlotStatus.BOOKED,
    PlotStatus.SOLD,
})

BUSINESS_TRANSITIONS: dict[PlotStatus, frozenset[PlotStatus]] = {
    PlotStatus.AVAILABLE: frozenset({
        PlotStatus.BLOCKED, PlotStatus.RESERVED, PlotStatus.BOOKED,
    }),
    PlotStatus.BLOCKED: frozenset({PlotStatus.SOLD, PlotStatus.AVAILABLE}),
    PlotStatus.RESERVED: frozenset({PlotStatus.SOLD, PlotStatus.AVAILABLE}),
    PlotStatus.BOOKED: frozenset({PlotStatus.SOLD, PlotStatus.AVAILABLE}),
    PlotStatus.SOLD: frozenset(),
}


@dataclass(frozen=True)
class StatusChange:
    """An accepted status move (possibly a no-op)."""

    from_status: PlotStatus
    to_status: PlotStatus
    off_path: bool = False

    @property
    def changed(self) -> bool:
        return self.from_status != self.to_status

    @property
    def opens_booking(self) -> bool:
        """Resulting status must be backed by an open booking."""
        return self.to_status in BOOKING_STATUSES

    @property
    def marks_sold(self) -> bool:
        return self.changed and self.to_status == PlotStatus.SOLD


@dataclass(frozen=True)
class TransitionRejected:
    """A refused status move."""

    from_status: PlotStatus
    to_status: PlotStatus
    reason: str


def parse_status(value: PlotStatus | str) -> PlotStatus:
    """Coerce a client-supplied status string, rejecting unknown values."""
    if isinstance(value, PlotStatus):
        return value
    try:
        return PlotStatus(str(value).strip().lower())
    except ValueError:
        allowed = ", ".join(s.value for s in PlotStatus)
        raise ValidationError("status", f"'{value}' is not one of: {allowed}") from None


def is_business_transition(current: PlotStatus, target: PlotStatus) -> bool:
    return target in BUSINESS_TRANSITIONS[current]


def plan_transition(
    current: PlotStatus | str,
    target: PlotStatus | str,
    *,
    manual: bool = False,
) -> StatusChange | TransitionRejected:
    """
    Decide a status move.

    Args:
        current: Status the plot holds now.
        target: Requested status.
        manual: True for admin edits and cancellation reverts; any state
            is reachable but off-path moves are flagged.

    Returns:
        StatusChange when accepted, TransitionRejected otherwise.
    """
    current = parse_status(current)
    target = parse_status(target)

    if current == target:
        return StatusChange(current, target)

    if is_business_transition(current, target):
        return StatusChange(current, target)

    if manual:
        return StatusChange(current, target, off_path=True)

    if current == PlotStatus.SOLD:
        reason = "sold plots only change through an admin edit"
    else:
        reason = f"{current.value} does not lead to {target.value}"
    return TransitionRejected(current, target, reason)
