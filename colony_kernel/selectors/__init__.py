"""Read-only selectors over plots, bookings and colonies."""

from colony_kernel.selectors.booking_selector import BookingPage, BookingSelector, BookingSummary
from colony_kernel.selectors.colony_selector import ColonySelector, CountDrift
from colony_kernel.selectors.plot_selector import PlotSelector, PlotSummary

__all__ = [
    "BookingPage",
    "BookingSelector",
    "BookingSummary",
    "ColonySelector",
    "CountDrift",
    "PlotSelector",
    "PlotSummary",
]
