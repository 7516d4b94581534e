"""ORM models for the colony kernel."""

from colony_kernel.models.booking import (
    OPEN_BOOKING_STATUSES,
    Booking,
    BookingStatus,
    InstallmentStatus,
)
from colony_kernel.models.city import City
from colony_kernel.models.colony import PLOT_COUNT_FIELDS, Colony, ColonyStatus
from colony_kernel.models.plot import Facing, Plot, PlotType, RegistryStatus
from colony_kernel.models.property import Property, PropertyCategory, PropertyStatus
from colony_kernel.models.settings import Settings
from colony_kernel.models.user import Role, User

__all__ = [
    "Booking",
    "BookingStatus",
    "City",
    "Colony",
    "ColonyStatus",
    "Facing",
    "InstallmentStatus",
    "OPEN_BOOKING_STATUSES",
    "PLOT_COUNT_FIELDS",
    "Plot",
    "PlotType",
    "Property",
    "PropertyCategory",
    "PropertyStatus",
    "RegistryStatus",
    "Role",
    "Settings",
    "User",
]
