"""Deposit Domain Models (``leasing_modules.deposit.models``)."""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID


class DepositStatus(Enum):
    UNPAID = "unpaid"
    PAID = "paid"
    RETURNED = "returned"


class PaymentMethod(Enum):
    CASH = "cash"
    CHECK = "check"
    BANK_TRANSFER = "bank_transfer"


@dataclass(frozen=True)
class DepositInfo:
    """Deposit terms supplied when a reservation is created."""
    amount: Decimal
    payment_method: PaymentMethod | str
    status: DepositStatus | str = DepositStatus.UNPAID
    paid_date: date | None = None


@dataclass(frozen=True)
class DepositState:
    """Lifecycle state of a reservation's deposit."""
    status: DepositStatus | str = DepositStatus.UNPAID
    paid_date: date | None = None
    returned_date: date | None = None


@dataclass(frozen=True)
class DepositStatusSummary:
    count: int
    total_amount: Decimal


@dataclass(frozen=True)
class DepositStatistics:
    """Counts and totals per deposit status across reservations with a deposit."""
    by_status: dict[DepositStatus, DepositStatusSummary]

    @property
    def total_count(self) -> int:
        return sum(s.count for s in self.by_status.values())

    @property
    def total_amount(self) -> Decimal:
        return sum((s.total_amount for s in self.by_status.values()), Decimal("0"))


@dataclass(frozen=True)
class DepositToReturn:
    """A collected deposit whose reservation has ended."""
    reservation_id: UUID
    tenant_id: UUID
    unit_id: UUID
    amount: Decimal
    paid_date: date | None
    reservation_status: str
