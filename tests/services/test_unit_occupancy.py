"""Unit occupancy transitions and the maintenance-ticket hook."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from leasing_kernel.exceptions import (
    BuildingNotFoundError,
    InvalidAmountError,
    OccupancyTransitionError,
    UnitNotFoundError,
    UnknownEnumValueError,
)
from leasing_modules.ticket.models import TicketStatus, TicketType
from leasing_modules.unit.hooks import MaintenanceTicketHook
from leasing_modules.unit.models import OccupancyStatus
from leasing_services.lifecycle_engine import LeasingEngine


class _BrokenTicketService:
    def ensure_maintenance_ticket(self, reservation_id, actor):
        raise RuntimeError("ticket store unavailable")


@pytest.fixture
def broken_leasing(session_factory, clock, settings):
    hook = MaintenanceTicketHook(clock, ticket_service_factory=lambda session: _BrokenTicketService())
    return LeasingEngine(session_factory, clock=clock, settings=settings, hooks=[hook])


class TestProvisioning:

    def test_new_unit_available(self, unit):
        assert unit.occupancy_status == OccupancyStatus.AVAILABLE
        assert unit.monthly_rate == Decimal("1000.00")

    def test_unknown_building(self, leasing, manager):
        with pytest.raises(BuildingNotFoundError):
            leasing.create_unit(uuid4(), "1", Decimal("100"), manager)

    def test_rate_must_be_positive(self, leasing, building, manager):
        with pytest.raises(InvalidAmountError):
            leasing.create_unit(building.id, "1", Decimal("0"), manager)

    def test_rate_rounding_to_zero_rejected(self, leasing, building, manager):
        with pytest.raises(InvalidAmountError):
            leasing.create_unit(building.id, "tiny", Decimal("0.001"), manager)
        unit = leasing.create_unit(building.id, "cheap", Decimal("0.005"), manager)
        assert unit.monthly_rate == Decimal("0.01")

    def test_get_unknown_unit(self, leasing):
        with pytest.raises(UnitNotFoundError):
            leasing.get_unit(uuid4())


class TestMaintenanceTransition:

    def test_rented_unit_gets_maintenance_ticket(self, leasing, unit, manager, reserve):
        created = reserve()
        result = leasing.transition_unit_status(unit.id, "maintenance", manager)

        assert result.unit.occupancy_status == OccupancyStatus.MAINTENANCE
        assert result.previous_status == OccupancyStatus.RENTED
        assert result.ticket_created
        ticket = leasing.get_ticket(result.ticket_id)
        assert ticket.ticket_type == TicketType.MAINTENANCE
        assert ticket.status == TicketStatus.PENDING
        assert ticket.reservation_id == created.reservation.id
        assert ticket.unit_id == unit.id

    def test_repeat_request_reuses_open_ticket(self, leasing, unit, manager, reserve):
        reserve()
        first = leasing.transition_unit_status(unit.id, OccupancyStatus.MAINTENANCE, manager)
        second = leasing.transition_unit_status(unit.id, OccupancyStatus.MAINTENANCE, manager)

        assert not second.changed
        assert not second.ticket_created
        assert second.ticket_id == first.ticket_id

    def test_new_ticket_after_previous_closed(self, leasing, unit, manager, reserve):
        reserve()
        first = leasing.transition_unit_status(unit.id, "maintenance", manager)
        leasing.transition_ticket_status(first.ticket_id, "rejected", manager)

        again = leasing.transition_unit_status(unit.id, "maintenance", manager)
        assert again.ticket_created
        assert again.ticket_id != first.ticket_id

    def test_vacant_unit_gets_no_ticket(self, leasing, unit, manager):
        result = leasing.transition_unit_status(unit.id, "maintenance", manager)
        assert result.unit.occupancy_status == OccupancyStatus.MAINTENANCE
        assert result.ticket_id is None

    def test_hook_failure_keeps_transition(self, broken_leasing, leasing, unit, manager, reserve, captured_logs):
        reserve()
        result = broken_leasing.transition_unit_status(unit.id, "maintenance", manager)

        assert result.ticket_id is None
        assert leasing.get_unit(unit.id).occupancy_status == OccupancyStatus.MAINTENANCE
        failures = [r for r in captured_logs() if r["message"] == "maintenance_ticket_creation_failed"]
        assert len(failures) == 1
        assert failures[0]["exc_code"] == "MAINTENANCE_TICKET_CREATION_FAILED"

    def test_unknown_status(self, leasing, unit, manager):
        with pytest.raises(UnknownEnumValueError):
            leasing.transition_unit_status(unit.id, "demolished", manager)


class TestLeavingMaintenance:

    def test_back_to_available_blocked_by_current_reservation(self, leasing, unit, manager, reserve):
        reserve()
        leasing.transition_unit_status(unit.id, "maintenance", manager)
        with pytest.raises(OccupancyTransitionError) as exc_info:
            leasing.transition_unit_status(unit.id, "available", manager)
        assert exc_info.value.from_state == "maintenance"
        assert leasing.get_unit(unit.id).occupancy_status == OccupancyStatus.MAINTENANCE

    def test_back_to_rented(self, leasing, unit, manager, reserve):
        reserve()
        leasing.transition_unit_status(unit.id, "maintenance", manager)
        result = leasing.transition_unit_status(unit.id, "rented", manager)
        assert result.unit.occupancy_status == OccupancyStatus.RENTED

    def test_back_to_available_after_lease_ended(self, leasing, clock, unit, manager, reserve):
        reserve(date(2024, 1, 1), date(2024, 3, 31))
        leasing.transition_unit_status(unit.id, "maintenance", manager)
        clock.set_today(date(2024, 4, 2))
        result = leasing.transition_unit_status(unit.id, "available", manager)
        assert result.unit.occupancy_status == OccupancyStatus.AVAILABLE

    def test_vacant_unit_returns_to_available(self, leasing, unit, manager):
        leasing.transition_unit_status(unit.id, "maintenance", manager)
        result = leasing.transition_unit_status(unit.id, "available", manager)
        assert result.unit.occupancy_status == OccupancyStatus.AVAILABLE


class TestRelease:

    def test_release_blocked_while_reservation_active(self, leasing, unit, manager, reserve):
        reserve()
        with pytest.raises(OccupancyTransitionError):
            leasing.release_unit(unit.id, manager)

    def test_release_after_expiry(self, leasing, unit, manager, reserve):
        created = reserve()
        leasing.expire_reservation(created.reservation.id, manager)
        released = leasing.release_unit(unit.id, manager)
        assert released.occupancy_status == OccupancyStatus.AVAILABLE

    def test_release_requires_rented(self, leasing, unit, manager):
        with pytest.raises(OccupancyTransitionError, match="only a rented unit"):
            leasing.release_unit(unit.id, manager)

    def test_transition_to_available_same_as_release(self, leasing, unit, manager, reserve):
        created = reserve()
        leasing.expire_reservation(created.reservation.id, manager)
        result = leasing.transition_unit_status(unit.id, "available", manager)
        assert result.unit.occupancy_status == OccupancyStatus.AVAILABLE
