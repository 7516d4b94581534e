"""
Typed Exception Hierarchy for the Colony Kernel.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from ColonyKernelError:

    ColonyKernelError (base)
    |
    +-- ValidationError
    |
    +-- NotFoundError
    |   +-- CityNotFoundError
    |   +-- ColonyNotFoundError
    |   +-- PropertyNotFoundError
    |   +-- PlotNotFoundError
    |   +-- BookingNotFoundError
    |   +-- OwnerNotFoundError
    |   +-- RoleNotFoundError
    |   +-- UserNotFoundError
    |
    +-- ConflictError
    |   +-- DuplicatePlotNumberError
    |   +-- SoldPlotDeletionError
    |   +-- PlotNotAvailableError
    |   +-- BookingAlreadyCancelledError
    |   +-- DuplicateEmailError
    |   +-- DuplicateRoleError
    |   +-- InvalidStatusTransitionError
    |   +-- ColonyHasPlotsError
    |
    +-- ForbiddenError
    |
    +-- SequencingError
    |
    +-- PersistenceUnavailableError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Code                        | HTTP | When Raised
----------------------------|------|------------------------------------------
VALIDATION_ERROR            | 400  | Missing/malformed field (area, price...)
NOT_FOUND                   | 404  | Referenced colony/property/plot absent
DUPLICATE_PLOT_NUMBER       | 409  | Manual plot number already in colony
SOLD_PLOT_DELETION          | 409  | Deleting a plot whose status is sold
PLOT_NOT_AVAILABLE          | 409  | Booking a plot that is not available
BOOKING_ALREADY_CANCELLED   | 409  | Cancelling a cancelled booking
DUPLICATE_EMAIL             | 409  | User email already registered
DUPLICATE_ROLE              | 409  | Role name already exists
INVALID_STATUS_TRANSITION   | 409  | Status move outside the business path
COLONY_HAS_PLOTS            | 409  | Deleting a colony that still has plots
FORBIDDEN                   | 403  | Identity lacks the required permission
SEQUENCING_ERROR            | 409  | Identifier allocation failed/exhausted
PERSISTENCE_UNAVAILABLE     | 503  | Store unreachable; not retried here

===============================================================================
HANDLING PATTERNS
===============================================================================

Catch by type, read structured attributes:

    try:
        plots.delete_plot(plot_id, identity)
    except SoldPlotDeletionError as e:
        return {"error": e.code, "plot_number": e.plot_number}

Every class carries ``code`` (machine-readable) and ``http_status`` so the
routing layer can translate without parsing messages; see
``colony_kernel.error_mapping``.
"""


class ColonyKernelError(Exception):
    """
    Base exception for all colony kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "COLONY_KERNEL_ERROR"
    http_status: int = 500


class ValidationError(ColonyKernelError):
    """Malformed or missing required input."""

    code: str = "VALIDATION_ERROR"
    http_status: int = 400

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


# Not-found exceptions


class NotFoundError(ColonyKernelError):
    """Referenced entity does not exist."""

    code: str = "NOT_FOUND"
    http_status: int = 404
    entity: str = "entity"

    def __init__(self, entity_id: str):
        self.entity_id = entity_id
        super().__init__(f"{self.entity.capitalize()} not found: {entity_id}")


class CityNotFoundError(NotFoundError):
    entity = "city"


class ColonyNotFoundError(NotFoundError):
    entity = "colony"


class PropertyNotFoundError(NotFoundError):
    entity = "property"


class PlotNotFoundError(NotFoundError):
    entity = "plot"


class BookingNotFoundError(NotFoundError):
    entity = "booking"


class OwnerNotFoundError(NotFoundError):
    entity = "owner"


class RoleNotFoundError(NotFoundError):
    entity = "role"


class UserNotFoundError(NotFoundError):
    entity = "user"


# Business-rule conflicts


class ConflictError(ColonyKernelError):
    """Base exception for business-rule violations."""

    code: str = "CONFLICT"
    http_status: int = 409


class DuplicatePlotNumberError(ConflictError):
    """Plot number already used within the colony."""

    code: str = "DUPLICATE_PLOT_NUMBER"

    def __init__(self, colony_id: str, plot_number: str):
        self.colony_id = colony_id
        self.plot_number = plot_number
        super().__init__(
            f"Plot number {plot_number} already exists in colony {colony_id}"
        )


class SoldPlotDeletionError(ConflictError):
    """Sold plots are delete-protected."""

    code: str = "SOLD_PLOT_DELETION"

    def __init__(self, plot_id: str, plot_number: str | None):
        self.plot_id = plot_id
        self.plot_number = plot_number
        super().__init__(f"Cannot delete sold plot {plot_number or plot_id}")


class PlotNotAvailableError(ConflictError):
    """Explicit booking requires an available plot."""

    code: str = "PLOT_NOT_AVAILABLE"

    def __init__(self, plot_id: str, status: str):
        self.plot_id = plot_id
        self.status = status
        super().__init__(
            f"Plot {plot_id} is not available for booking (status: {status})"
        )


class BookingAlreadyCancelledError(ConflictError):
    """Booking has already been cancelled."""

    code: str = "BOOKING_ALREADY_CANCELLED"

    def __init__(self, booking_id: str):
        self.booking_id = booking_id
        super().__init__(f"Booking {booking_id} is already cancelled")


class DuplicateEmailError(ConflictError):
    """User email already registered."""

    code: str = "DUPLICATE_EMAIL"

    def __init__(self, email: str):
        self.email = email
        super().__init__(f"Email already registered: {email}")


class DuplicateRoleError(ConflictError):
    """Role name already exists."""

    code: str = "DUPLICATE_ROLE"

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Role already exists: {name}")


class InvalidStatusTransitionError(ConflictError):
    """Plot status move rejected by the transition function."""

    code: str = "INVALID_STATUS_TRANSITION"

    def __init__(self, plot_id: str, from_status: str, to_status: str, reason: str):
        self.plot_id = plot_id
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        super().__init__(
            f"Plot {plot_id} cannot move {from_status} -> {to_status}: {reason}"
        )


class ColonyHasPlotsError(ConflictError):
    """Colonies with plots are delete-protected."""

    code: str = "COLONY_HAS_PLOTS"

    def __init__(self, colony_id: str, plot_count: int):
        self.colony_id = colony_id
        self.plot_count = plot_count
        super().__init__(
            f"Cannot delete colony {colony_id}: it still has {plot_count} plot(s)"
        )


# Authorization


class ForbiddenError(ColonyKernelError):
    """Identity is not authorized for the requested mutation."""

    code: str = "FORBIDDEN"
    http_status: int = 403

    def __init__(self, permission: str, user_id: str | None = None):
        self.permission = permission
        self.user_id = user_id
        super().__init__(f"Not authorized: requires permission '{permission}'")


# Sequencing


class SequencingError(ColonyKernelError):
    """
    Identifier generation failed.

    Raised when the partition key is missing, the fixed width is exhausted,
    or the uniqueness-conflict retries ran out.  The create is rejected; the
    record is never persisted without its identifier.
    """

    code: str = "SEQUENCING_ERROR"
    http_status: int = 409

    def __init__(self, sequence: str, reason: str, attempts: int = 0):
        self.sequence = sequence
        self.reason = reason
        self.attempts = attempts
        super().__init__(f"Cannot allocate {sequence}: {reason}")


# Persistence


class PersistenceUnavailableError(ColonyKernelError):
    """The document store is unreachable. Fatal to the request."""

    code: str = "PERSISTENCE_UNAVAILABLE"
    http_status: int = 503

    def __init__(self, detail: str = "database unavailable"):
        self.detail = detail
        super().__init__(detail)
