"""
Kernel services: every write path of the colony kernel.

Services take a caller-owned Session, flush, and never commit.
"""

from colony_kernel.services.booking_service import BookingInfo, BookingService
from colony_kernel.services.colony_service import ColonyInfo, ColonyPlotCounts, ColonyService
from colony_kernel.services.identity_service import IdentityService
from colony_kernel.services.plot_service import PlotInfo, PlotService
from colony_kernel.services.property_service import PropertyInfo, PropertyService
from colony_kernel.services.sequence_service import SequenceService
from colony_kernel.services.settings_service import ResyncReport, SettingsService
from colony_kernel.services.user_service import RoleInfo, UserInfo, UserService

__all__ = [
    "BookingInfo",
    "BookingService",
    "ColonyInfo",
    "ColonyPlotCounts",
    "ColonyService",
    "IdentityService",
    "PlotInfo",
    "PlotService",
    "PropertyInfo",
    "PropertyService",
    "ResyncReport",
    "RoleInfo",
    "SequenceService",
    "SettingsService",
    "UserInfo",
    "UserService",
]
