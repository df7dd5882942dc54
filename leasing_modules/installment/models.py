"""
Installment Domain Models (``leasing_modules.installment.models``).

Frozen value objects for a reservation's billing plan: the payment
frequency, installment status, the pure scheduler output and the
persisted installment DTO.  ZERO I/O.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID


class PaymentFrequency(Enum):
    """How often the tenant is billed."""
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    TRIANNUAL = "triannual"
    BIANNUAL = "biannual"
    ANNUAL = "annual"


class InstallmentStatus(Enum):
    PENDING = "pending"
    PAID = "paid"
    DELAYED = "delayed"
    CANCELLED = "cancelled"


OPEN_INSTALLMENT_STATUSES = (InstallmentStatus.PENDING, InstallmentStatus.DELAYED)


@dataclass(frozen=True)
class ScheduledInstallment:
    """One line of a generated schedule, before it is persisted."""
    sequence: int
    due_date: date
    amount: Decimal
    notes: str


@dataclass(frozen=True)
class InstallmentSchedule:
    """Scheduler output plus the figures it was derived from."""
    duration_months: int
    interval_months: int
    total_amount: Decimal
    installments: tuple[ScheduledInstallment, ...]

    @property
    def count(self) -> int:
        return len(self.installments)


@dataclass(frozen=True)
class Installment:
    """A persisted installment."""
    id: UUID
    reservation_id: UUID
    sequence: int
    amount: Decimal
    due_date: date
    status: InstallmentStatus = InstallmentStatus.PENDING
    paid_date: date | None = None
    notes: str | None = None
