"""
Installment Module (``leasing_modules.installment``).

Installment Scheduler (pure ``generate_schedule``) plus persistence and
the installment status workflow.
"""

from leasing_modules.installment.calculations import generate_schedule, interval_months
from leasing_modules.installment.models import (
    Installment,
    InstallmentSchedule,
    InstallmentStatus,
    PaymentFrequency,
    ScheduledInstallment,
)

__all__ = [
    "Installment",
    "InstallmentSchedule",
    "InstallmentStatus",
    "PaymentFrequency",
    "ScheduledInstallment",
    "generate_schedule",
    "interval_months",
]
