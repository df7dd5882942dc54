"""
Reservation Module (``leasing_modules.reservation``).

Reservation Lifecycle Manager: create, cancel and expire reservations
while keeping unit occupancy, installments and the non-overlap invariant
consistent.
"""

from leasing_modules.reservation.models import (
    OutstandingBalance,
    Reservation,
    ReservationCreated,
    ReservationStatus,
)

__all__ = [
    "OutstandingBalance",
    "Reservation",
    "ReservationCreated",
    "ReservationStatus",
]
