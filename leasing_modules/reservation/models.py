"""
Reservation Domain Models (``leasing_modules.reservation.models``).

Frozen value objects for the reservation aggregate: lifecycle status, the
reservation DTO (deposit fields included), the create result and the
outstanding-balance report.  ZERO I/O.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from leasing_modules.deposit.models import DepositState, PaymentMethod
from leasing_modules.installment.models import Installment, PaymentFrequency


class ReservationStatus(Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class Reservation:
    id: UUID
    unit_id: UUID
    tenant_id: UUID
    start_date: date
    end_date: date
    status: ReservationStatus
    payment_frequency: PaymentFrequency
    monthly_rate: Decimal
    includes_deposit: bool = False
    deposit_amount: Decimal | None = None
    deposit_payment_method: PaymentMethod | None = None
    deposit: DepositState | None = None
    expired_on: date | None = None
    cancelled_on: date | None = None

    def overlaps(self, start_date: date, end_date: date) -> bool:
        """Inclusive-bounds interval intersection."""
        return self.start_date <= end_date and self.end_date >= start_date


@dataclass(frozen=True)
class ReservationCreated:
    reservation: Reservation
    installments: tuple[Installment, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class OutstandingBalance:
    """What the tenant still owes on a reservation."""
    reservation_id: UUID
    installments_total: Decimal
    expenses_total: Decimal

    @property
    def total(self) -> Decimal:
        return self.installments_total + self.expenses_total

    @property
    def has_outstanding(self) -> bool:
        return self.total > 0
