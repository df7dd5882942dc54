"""
Concurrent writers on one unit and on one reservation's installments.

SQLite runs serialize on BEGIN IMMEDIATE; PostgreSQL runs (DATABASE_URL set)
serialize on row locks.  Either way exactly one booking wins, a unit sent
to maintenance by several callers gets one ticket, and a cancellation
never overwrites an installment paid at the same time.
"""

import os
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from threading import Barrier
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from leasing_kernel.exceptions import ConflictError
from leasing_modules.installment.models import InstallmentStatus
from leasing_modules.reservation.models import ReservationStatus
from leasing_modules.reservation.orm import ReservationModel
from leasing_modules.ticket.orm import ServiceTicketModel
from leasing_modules.unit.models import OccupancyStatus

pytestmark = pytest.mark.slow_locks

WORKERS = 6


def _race(fn, workers: int = WORKERS) -> list:
    """Run ``fn(i)`` on ``workers`` threads released together; return results or exceptions."""
    barrier = Barrier(workers)

    def _run(i):
        barrier.wait()
        try:
            return fn(i)
        except Exception as exc:
            return exc

    with ThreadPoolExecutor(max_workers=workers) as pool:
        return list(pool.map(_run, range(workers)))


class TestConcurrentBooking:

    def test_exactly_one_booking_wins(self, session_factory, leasing, unit, manager):
        outcomes = _race(
            lambda i: leasing.create_reservation(
                unit.id, uuid4(), date(2024, 2, 1), date(2024, 8, 1), "monthly", manager
            )
        )

        winners = [o for o in outcomes if not isinstance(o, Exception)]
        losers = [o for o in outcomes if isinstance(o, Exception)]
        assert len(winners) == 1
        assert all(isinstance(e, ConflictError) for e in losers), losers

        with session_factory() as s:
            active = s.scalar(
                select(func.count()).select_from(ReservationModel).where(
                    ReservationModel.unit_id == unit.id,
                    ReservationModel.status == ReservationStatus.ACTIVE.value,
                )
            )
            s.rollback()
        assert active == 1
        assert leasing.get_unit(unit.id).occupancy_status == OccupancyStatus.RENTED
        assert len(leasing.reservation_installments(winners[0].reservation.id)) == 6

    def test_separate_units_do_not_block(self, leasing, make_unit, manager):
        units = [make_unit() for _ in range(WORKERS)]
        outcomes = _race(
            lambda i: leasing.create_reservation(
                units[i].id, uuid4(), date(2024, 2, 1), date(2024, 8, 1), "quarterly", manager
            )
        )
        assert not [o for o in outcomes if isinstance(o, Exception)]


class TestConcurrentMaintenance:

    def test_single_ticket(self, session_factory, leasing, unit, manager, reserve):
        created = reserve()
        outcomes = _race(lambda i: leasing.transition_unit_status(unit.id, "maintenance", manager))

        assert not [o for o in outcomes if isinstance(o, Exception)]
        assert len({o.ticket_id for o in outcomes}) == 1
        assert sum(o.ticket_created for o in outcomes) == 1

        with session_factory() as s:
            tickets = s.scalar(
                select(func.count()).select_from(ServiceTicketModel).where(
                    ServiceTicketModel.reservation_id == created.reservation.id
                )
            )
            s.rollback()
        assert tickets == 1


class TestSweepAgainstCancel:

    def test_each_reservation_ends_once(self, leasing, clock, manager, make_unit, reserve):
        created = [
            reserve(date(2024, 1, 1), date(2024, 2, 1), unit_id=make_unit().id) for _ in range(4)
        ]
        clock.set_today(date(2024, 3, 1))

        def _work(i):
            if i == 0:
                return leasing.run_expiration_sweep()
            return leasing.cancel_reservation(created[i - 1].reservation.id, manager)

        outcomes = _race(_work, workers=5)
        report = outcomes[0]
        assert not isinstance(report, Exception)

        cancelled = {
            created[i - 1].reservation.id for i in range(1, 5) if not isinstance(outcomes[i], Exception)
        }
        assert cancelled.isdisjoint(report.expired_ids)
        assert len(cancelled) + report.processed == 4
        for c in created:
            assert leasing.get_reservation(c.reservation.id).status != ReservationStatus.ACTIVE


def _cancel_while_paying(leasing, created, manager) -> None:
    """Cancel a reservation while its installments are being paid; no payment may be lost."""
    installments = created.installments

    def _act(i):
        if i == 0:
            return leasing.cancel_reservation(created.reservation.id, manager)
        return leasing.mark_installment_paid(installments[i - 1].id, manager)

    outcomes = _race(_act, workers=len(installments) + 1)

    assert not isinstance(outcomes[0], Exception), outcomes[0]
    final = {i.id: i for i in leasing.reservation_installments(created.reservation.id)}
    for installment, outcome in zip(installments, outcomes[1:]):
        if isinstance(outcome, Exception):
            assert isinstance(outcome, ConflictError), outcome
            assert final[installment.id].status == InstallmentStatus.CANCELLED
        else:
            assert final[installment.id].status == InstallmentStatus.PAID


class TestInstallmentContention:

    def test_cancel_never_overwrites_a_payment(self, leasing, reserve, manager):
        _cancel_while_paying(leasing, reserve(), manager)


@pytest.mark.postgres
@pytest.mark.skipif(
    not os.environ.get("DATABASE_URL", "").startswith("postgresql"),
    reason="requires DATABASE_URL pointing at PostgreSQL",
)
class TestRowLocking:

    def test_many_bookings_one_winner(self, leasing, make_unit, manager):
        unit = make_unit()
        outcomes = _race(
            lambda i: leasing.create_reservation(
                unit.id, uuid4(), date(2024, 3, 1), date(2024, 4, 1), "monthly", manager
            ),
            workers=12,
        )
        assert sum(1 for o in outcomes if not isinstance(o, Exception)) == 1

    def test_cancel_and_payments_on_many_units(self, leasing, make_unit, reserve, manager):
        for _ in range(5):
            _cancel_while_paying(leasing, reserve(unit_id=make_unit().id), manager)
