"""
Installment Scheduler -- pure calculation functions.

Turns a lease interval, a monthly rate and a payment frequency into the
list of due installments:

- duration is counted in calendar months (year/month difference; the day
  of month is ignored), with a floor of one billable month;
- installment count is ``ceil(months / interval)``;
- each installment is the total divided by the count, rounded to cents,
  and the last installment absorbs the rounding residue so the schedule
  sums exactly to ``monthly_rate * months``.
"""

import calendar
import math
from datetime import date
from decimal import ROUND_DOWN, Decimal

from leasing_kernel.domain.values import CENT, round_money
from leasing_kernel.exceptions import InvalidAmountError, InvalidDateRangeError
from leasing_modules.installment.models import (
    InstallmentSchedule,
    PaymentFrequency,
    ScheduledInstallment,
)

INTERVAL_MONTHS: dict[PaymentFrequency, int] = {
    PaymentFrequency.MONTHLY: 1,
    PaymentFrequency.QUARTERLY: 3,
    PaymentFrequency.TRIANNUAL: 4,
    PaymentFrequency.BIANNUAL: 6,
    PaymentFrequency.ANNUAL: 12,
}


def interval_months(frequency: PaymentFrequency) -> int:
    return INTERVAL_MONTHS[frequency]


def whole_months_between(start_date: date, end_date: date) -> int:
    """Calendar-month difference between two dates (days ignored)."""
    return (end_date.year - start_date.year) * 12 + (end_date.month - start_date.month)


def add_months(start: date, months: int) -> date:
    """``start`` shifted by ``months``, clamping the day to the month's end."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def split_amount(total: Decimal, count: int) -> list[Decimal]:
    """Split ``total`` into ``count`` cent amounts; the last takes the residue."""
    if count < 1:
        raise ValueError("count must be at least 1")
    per = round_money(total / count)
    if per * (count - 1) > total:
        per = (total / count).quantize(CENT, rounding=ROUND_DOWN)
    last = total - per * (count - 1)
    return [per] * (count - 1) + [last]


def generate_schedule(
    start_date: date,
    end_date: date,
    monthly_rate: Decimal,
    frequency: PaymentFrequency,
) -> InstallmentSchedule:
    """
    Build the billing plan for a lease.

    Raises:
        InvalidDateRangeError: ``start_date`` is not before ``end_date``.
        InvalidAmountError: ``monthly_rate`` is not positive.
    """
    if start_date >= end_date:
        raise InvalidDateRangeError(start_date, end_date)
    if monthly_rate is None or Decimal(monthly_rate) <= 0:
        raise InvalidAmountError("monthly_rate", monthly_rate)

    months = max(1, whole_months_between(start_date, end_date))
    step = interval_months(frequency)
    count = max(1, math.ceil(months / step))
    total = round_money(Decimal(monthly_rate) * months)

    amounts = split_amount(total, count)
    installments = tuple(
        ScheduledInstallment(
            sequence=i + 1,
            # Offsets are taken from the start date, not chained, so a
            # 31st start does not drift to the 28th after February.
            due_date=add_months(start_date, i * step),
            amount=amount,
            notes=f"Installment {i + 1} of {count}",
        )
        for i, amount in enumerate(amounts)
    )

    return InstallmentSchedule(
        duration_months=months,
        interval_months=step,
        total_amount=total,
        installments=installments,
    )
