"""
Recognizing which uniqueness guard an ``IntegrityError`` came from.

PostgreSQL names the violated constraint or index in the message
(``duplicate key value violates unique constraint "uq_booking_number"``).
SQLite names the table columns instead
(``UNIQUE constraint failed: bookings.booking_number``).  Services match on
both so that only the race they expect is retried or absorbed; any other
integrity failure propagates.
"""

from sqlalchemy.exc import IntegrityError


def is_unique_violation(exc: IntegrityError, constraint: str, column: str) -> bool:
    """
    True when ``exc`` was raised by the named unique constraint.

    Args:
        exc: The error raised by flush.
        constraint: Constraint or index name (PostgreSQL).
        column: ``table.column`` reported by SQLite.
    """
    message = str(exc.orig) if exc.orig is not None else str(exc)
    if constraint in message:
        return True
    return "UNIQUE constraint failed" in message and column in message
