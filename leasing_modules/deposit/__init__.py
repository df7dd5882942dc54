"""
Deposit Module (``leasing_modules.deposit``).

Deposit Ledger state machine (``ledger``) and the reservation-bound
deposit service.
"""

from leasing_modules.deposit.models import (
    DepositInfo,
    DepositState,
    DepositStatistics,
    DepositStatus,
    DepositToReturn,
    PaymentMethod,
)

__all__ = [
    "DepositInfo",
    "DepositState",
    "DepositStatistics",
    "DepositStatus",
    "DepositToReturn",
    "PaymentMethod",
]
