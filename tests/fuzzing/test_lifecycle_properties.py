"""
Property-based tests for the leasing lifecycle.

Properties checked:
- An installment schedule always sums to rate x billable months, has
  ceil(months / interval) lines, strictly increasing due dates, and no
  negative line.
- Ticket status never loses priority and never leaves a closed status,
  whatever sequence of requests is applied.
- However bookings are attempted on one unit, no two active reservations
  on it overlap.
"""

from datetime import date, timedelta
from decimal import Decimal
from itertools import combinations

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st
from sqlalchemy import select

from leasing_kernel.exceptions import ConflictError, TicketTransitionError
from leasing_modules.installment.calculations import (
    generate_schedule,
    interval_months,
    whole_months_between,
)
from leasing_modules.installment.models import PaymentFrequency
from leasing_modules.reservation.models import ReservationStatus
from leasing_modules.reservation.orm import ReservationModel
from leasing_modules.ticket.models import TicketStatus
from leasing_modules.ticket.workflows import TICKET_PRIORITY, is_terminal, validate_transition
from leasing_modules.unit.models import OccupancyStatus
from leasing_modules.unit.orm import UnitModel

leases = st.tuples(
    st.dates(min_value=date(2020, 1, 1), max_value=date(2030, 12, 31)),
    st.integers(min_value=1, max_value=3650),
)
rates = st.decimals(
    min_value=Decimal("0.01"),
    max_value=Decimal("100000"),
    places=2,
    allow_nan=False,
    allow_infinity=False,
)


class TestScheduleProperties:

    @given(lease=leases, rate=rates, frequency=st.sampled_from(PaymentFrequency))
    @settings(max_examples=300)
    def test_schedule_sums_to_total(self, lease, rate, frequency):
        start, days = lease
        end = start + timedelta(days=days)
        schedule = generate_schedule(start, end, rate, frequency)

        months = max(1, whole_months_between(start, end))
        step = interval_months(frequency)
        amounts = [line.amount for line in schedule.installments]

        assert sum(amounts) == schedule.total_amount == (rate * months).quantize(Decimal("0.01"))
        assert schedule.count == -(-months // step)
        assert all(a >= 0 for a in amounts)
        assert all(a == a.quantize(Decimal("0.01")) for a in amounts)
        dues = [line.due_date for line in schedule.installments]
        assert dues[0] == start
        assert all(a < b for a, b in zip(dues, dues[1:]))
        assert [line.sequence for line in schedule.installments] == list(range(1, schedule.count + 1))


class TestTicketProperties:

    @given(requests=st.lists(st.sampled_from(TicketStatus), max_size=12))
    @settings(max_examples=300)
    def test_priority_never_drops(self, requests):
        status = TicketStatus.PENDING
        for target in requests:
            try:
                validate_transition("t", status, target)
            except TicketTransitionError:
                continue
            assert not is_terminal(status)
            assert TICKET_PRIORITY[target] >= TICKET_PRIORITY[status]
            status = target


booking_requests = st.lists(
    st.tuples(st.integers(min_value=0, max_value=365), st.integers(min_value=1, max_value=120)),
    min_size=2,
    max_size=6,
)


class TestReservationProperties:

    @given(requests=booking_requests)
    @settings(
        max_examples=20,
        deadline=None,
        suppress_health_check=[HealthCheck.too_slow, HealthCheck.function_scoped_fixture],
    )
    def test_active_reservations_never_overlap(self, session_factory, leasing, make_unit, tenant, manager, requests):
        unit = make_unit()
        base = date(2024, 1, 1)
        for offset, length in requests:
            # Free the unit so only the overlap check stands between requests.
            with session_factory() as s:
                s.get(UnitModel, unit.id).occupancy_status = OccupancyStatus.AVAILABLE.value
                s.commit()
            start = base + timedelta(days=offset)
            try:
                leasing.create_reservation(
                    unit.id, tenant.id, start, start + timedelta(days=length), "monthly", manager
                )
            except ConflictError:
                pass

        with session_factory() as s:
            active = [
                r.to_dto()
                for r in s.scalars(
                    select(ReservationModel).where(
                        ReservationModel.unit_id == unit.id,
                        ReservationModel.status == ReservationStatus.ACTIVE.value,
                    )
                )
            ]
            s.rollback()
        assert active
        for a, b in combinations(active, 2):
            assert not a.overlaps(b.start_date, b.end_date)
