"""Expiration sweep and maintenance-ticket reconciliation end to end."""

from datetime import date
from uuid import UUID, uuid4

import pytest

from leasing_batch.domain.types import BatchItemStatus, BatchJobStatus
from leasing_batch.services.executor import BatchExecutor
from leasing_batch.services.sweeper import ExpirationSweeper
from leasing_batch.tasks.base import BatchItemInput, BatchTaskResult, TaskRegistry
from leasing_batch.tasks.leasing_tasks import EXPIRE_RESERVATIONS
from leasing_kernel.domain.values import Actor
from leasing_kernel.exceptions import UnitNotFoundError
from leasing_modules.reservation.models import ReservationStatus
from leasing_modules.ticket.models import TicketStatus, TicketType
from leasing_modules.unit.hooks import MaintenanceTicketHook
from leasing_modules.unit.models import OccupancyStatus
from leasing_services.lifecycle_engine import LeasingEngine
from leasing_services.ticket_reconciliation_service import (
    ReconcileStatus,
    TicketReconciliationService,
)


class TestExpirationSweep:

    def test_sweep_after_end_date(self, leasing, clock, unit, reserve):
        created = reserve(date(2024, 1, 1), date(2024, 6, 30))
        clock.set_today(date(2024, 7, 1))

        report = leasing.run_expiration_sweep()

        assert report.processed == 1
        assert report.expired_ids == (created.reservation.id,)
        assert report.failed == ()
        expired = leasing.get_reservation(created.reservation.id)
        assert expired.status == ReservationStatus.EXPIRED
        assert expired.expired_on == date(2024, 7, 1)
        assert leasing.get_unit(unit.id).occupancy_status == OccupancyStatus.RENTED

    def test_end_date_is_inclusive(self, leasing, clock, reserve):
        reserve(date(2024, 1, 1), date(2024, 6, 30))
        clock.set_today(date(2024, 6, 30))
        assert leasing.run_expiration_sweep().processed == 0

    def test_only_active_reservations(self, leasing, clock, manager, make_unit, reserve):
        running = reserve(date(2024, 1, 1), date(2024, 3, 31), unit_id=make_unit().id)
        cancelled = reserve(date(2024, 1, 1), date(2024, 3, 31), unit_id=make_unit().id)
        future = reserve(date(2024, 1, 1), date(2024, 12, 31), unit_id=make_unit().id)
        leasing.cancel_reservation(cancelled.reservation.id, manager)
        clock.set_today(date(2024, 4, 15))

        report = leasing.run_expiration_sweep()

        assert report.expired_ids == (running.reservation.id,)
        assert leasing.get_reservation(cancelled.reservation.id).status == ReservationStatus.CANCELLED
        assert leasing.get_reservation(future.reservation.id).status == ReservationStatus.ACTIVE

    def test_second_run_is_noop(self, leasing, clock, reserve):
        reserve(date(2024, 1, 1), date(2024, 2, 1))
        clock.set_today(date(2024, 3, 1))
        assert leasing.run_expiration_sweep().processed == 1

        again = leasing.run_expiration_sweep()
        assert again.processed == 0
        assert again.run.total_items == 0
        assert again.run.status == BatchJobStatus.COMPLETED

    def test_limit(self, leasing, clock, make_unit, reserve):
        for _ in range(3):
            reserve(date(2024, 1, 1), date(2024, 2, 1), unit_id=make_unit().id)
        clock.set_today(date(2024, 3, 1))

        assert leasing.run_expiration_sweep(limit=2).processed == 2
        assert leasing.run_expiration_sweep(limit=2).processed == 1

    def test_many_reservations_in_parallel(self, leasing, clock, make_unit, reserve):
        ids = {
            reserve(date(2024, 1, 1), date(2024, 2, 1), unit_id=make_unit().id).reservation.id
            for _ in range(6)
        }
        clock.set_today(date(2024, 3, 1))

        report = leasing.run_expiration_sweep()
        assert set(report.expired_ids) == ids
        assert report.run.status == BatchJobStatus.COMPLETED

    def test_logs_summary(self, leasing, clock, reserve, captured_logs):
        reserve(date(2024, 1, 1), date(2024, 2, 1))
        clock.set_today(date(2024, 3, 1))
        report = leasing.run_expiration_sweep()

        summary = [r for r in captured_logs() if r["message"] == "expiration_sweep_completed"]
        assert summary[0]["processed"] == 1
        assert summary[0]["job_id"] == str(report.run.job_id)
        expired = [r for r in captured_logs() if r["message"] == "reservation_expired"]
        assert expired[0]["actor_id"] == str(Actor.system().id)


class _FlakyExpiry:
    """Stands in for the expiry task: fails the first item, expires nothing."""

    task_type = EXPIRE_RESERVATIONS
    description = "flaky"

    def __init__(self, keys):
        self._keys = keys

    def prepare_items(self, parameters, session, as_of):
        return tuple(BatchItemInput(i, str(k)) for i, k in enumerate(self._keys))

    def execute_item(self, item, parameters, session, as_of):
        if item.item_index == 0:
            raise RuntimeError("row locked")
        return BatchTaskResult(status=BatchItemStatus.SUCCEEDED)


class TestSweepReport:

    def test_failures_reported_per_reservation(self, session_factory, clock):
        keys = [uuid4(), uuid4()]
        registry = TaskRegistry()
        registry.register(_FlakyExpiry(keys))
        executor = BatchExecutor(session_factory, registry, clock=clock, max_workers=1)

        report = ExpirationSweeper(executor).run()

        assert report.processed == 1
        assert report.expired_ids == (keys[1],)
        assert len(report.failed) == 1
        failure = report.failed[0]
        assert failure.reservation_id == keys[0]
        assert isinstance(failure.reservation_id, UUID)
        assert failure.error == "row locked"
        assert failure.error_code == "UNHANDLED_EXCEPTION"
        assert report.run.status == BatchJobStatus.PARTIALLY_COMPLETED


class _BrokenTicketService:
    def ensure_maintenance_ticket(self, reservation_id, actor):
        raise RuntimeError("ticket store unavailable")


@pytest.fixture
def broken_leasing(session_factory, clock, settings):
    hook = MaintenanceTicketHook(clock, ticket_service_factory=lambda session: _BrokenTicketService())
    return LeasingEngine(session_factory, clock=clock, settings=settings, hooks=[hook])


class TestTicketReconciliation:

    def test_missing_ticket_created(self, leasing, broken_leasing, unit, manager, reserve):
        created = reserve()
        broken_leasing.transition_unit_status(unit.id, "maintenance", manager)

        result = leasing.reconcile_maintenance_tickets()

        assert result.succeeded == 1
        assert result.status == BatchJobStatus.COMPLETED
        data = result.item_results[0].result_data
        assert data["outcome"] == ReconcileStatus.CREATED.value
        assert data["reservation_id"] == str(created.reservation.id)
        ticket = leasing.get_ticket(UUID(data["ticket_id"]))
        assert ticket.ticket_type == TicketType.MAINTENANCE
        assert ticket.status == TicketStatus.PENDING

    def test_nothing_missing_after_reconcile(self, leasing, broken_leasing, unit, manager, reserve):
        reserve()
        broken_leasing.transition_unit_status(unit.id, "maintenance", manager)
        leasing.reconcile_maintenance_tickets()
        assert leasing.reconcile_maintenance_tickets().total_items == 0

    def test_present_ticket_not_duplicated(self, leasing, unit, manager, reserve):
        reserve()
        leasing.transition_unit_status(unit.id, "maintenance", manager)
        assert leasing.reconcile_maintenance_tickets().total_items == 0

    def test_still_failing_hook(self, session_factory, clock, broken_leasing, unit, manager, reserve):
        reserve()
        broken_leasing.transition_unit_status(unit.id, "maintenance", manager)

        with session_factory() as session:
            service = TicketReconciliationService(
                session,
                clock,
                hook=MaintenanceTicketHook(
                    clock, ticket_service_factory=lambda s: _BrokenTicketService()
                ),
            )
            assert [m.unit_id for m in service.find_missing()] == [unit.id]
            result = service.reconcile_unit(unit.id, Actor.system())
            session.rollback()
        assert result.status == ReconcileStatus.FAILED

    def test_not_applicable(self, session_factory, clock, unit):
        with session_factory() as session:
            result = TicketReconciliationService(session, clock).reconcile_unit(unit.id, Actor.system())
            session.rollback()
        assert result.status == ReconcileStatus.NOT_APPLICABLE

    def test_already_present(self, session_factory, clock, leasing, unit, manager, reserve):
        reserve()
        opened = leasing.transition_unit_status(unit.id, "maintenance", manager)
        with session_factory() as session:
            result = TicketReconciliationService(session, clock).reconcile_unit(unit.id, Actor.system())
            session.rollback()
        assert result.status == ReconcileStatus.ALREADY_PRESENT
        assert result.ticket_id == opened.ticket_id

    def test_unknown_unit(self, session_factory, clock):
        with session_factory() as session:
            with pytest.raises(UnitNotFoundError):
                TicketReconciliationService(session, clock).reconcile_unit(uuid4(), Actor.system())
            session.rollback()
