"""
Colony Kernel

Plot lifecycle and booking-consistency core for colony/plot management:
- Sequential plot, booking and user-code numbering
- Colony plot-count aggregates derived from plot status
- Explicit plot status transitions
- Booking ledger reconciliation for directly edited plots
"""

__version__ = "0.1.0"
