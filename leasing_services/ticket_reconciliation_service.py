"""
Maintenance-ticket reconciliation.

Ticket auto-creation is a side effect of moving a unit into
``maintenance``; when it fails the occupancy change stands and the ticket
is missing.  This service finds units in ``maintenance`` whose active
reservation has no open maintenance ticket and replays
``MaintenanceTicketHook`` for them.

Runs per unit under the unit row lock, in the caller's transaction.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from leasing_kernel.domain.clock import Clock, SystemClock
from leasing_kernel.domain.values import Actor
from leasing_kernel.logging_config import get_logger
from leasing_modules.ticket.service import TicketService
from leasing_modules.unit.hooks import (
    MaintenanceTicketHook,
    OccupancyChanged,
    OccupancyHook,
    find_active_reservation,
)
from leasing_modules.unit.models import OccupancyStatus
from leasing_modules.unit.orm import UnitModel
from leasing_modules.unit.service import UnitOccupancyService

logger = get_logger("services.ticket_reconciliation")


class ReconcileStatus(str, Enum):
    CREATED = "created"
    ALREADY_PRESENT = "already_present"
    NOT_APPLICABLE = "not_applicable"  # unit left maintenance or lost its reservation
    FAILED = "failed"


@dataclass(frozen=True)
class MissingTicket:
    unit_id: UUID
    reservation_id: UUID


@dataclass(frozen=True)
class ReconcileResult:
    unit_id: UUID
    status: ReconcileStatus
    reservation_id: UUID | None = None
    ticket_id: UUID | None = None


class TicketReconciliationService:

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        hook: OccupancyHook | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._hook = hook or MaintenanceTicketHook(self._clock)
        self._tickets = TicketService(session, self._clock)

    def find_missing(self) -> list[MissingTicket]:
        """Units in maintenance with an active reservation but no open maintenance ticket."""
        unit_ids = self._session.scalars(
            select(UnitModel.id)
            .where(UnitModel.occupancy_status == OccupancyStatus.MAINTENANCE.value)
            .order_by(UnitModel.id)
        ).all()

        missing = []
        for unit_id in unit_ids:
            reservation = find_active_reservation(self._session, unit_id)
            if reservation is None:
                continue
            if self._tickets.find_open_maintenance(reservation.id) is None:
                missing.append(MissingTicket(unit_id=unit_id, reservation_id=reservation.id))
        return missing

    def reconcile_unit(self, unit_id: UUID, actor: Actor) -> ReconcileResult:
        """
        Replay the maintenance hook for one unit.

        Raises:
            UnitNotFoundError: no such unit.
        """
        unit = UnitOccupancyService(self._session, self._clock, hooks=()).lock_unit(unit_id)
        if unit.occupancy_status != OccupancyStatus.MAINTENANCE.value:
            return ReconcileResult(unit_id=unit_id, status=ReconcileStatus.NOT_APPLICABLE)

        reservation = find_active_reservation(self._session, unit_id)
        if reservation is None:
            return ReconcileResult(unit_id=unit_id, status=ReconcileStatus.NOT_APPLICABLE)
        reservation_id = reservation.id

        existing = self._tickets.find_open_maintenance(reservation_id)
        if existing is not None:
            return ReconcileResult(
                unit_id=unit_id,
                status=ReconcileStatus.ALREADY_PRESENT,
                reservation_id=reservation_id,
                ticket_id=existing.id,
            )

        outcome = self._hook(
            OccupancyChanged(
                unit_id=unit_id,
                previous_status=OccupancyStatus.MAINTENANCE,
                new_status=OccupancyStatus.MAINTENANCE,
                actor=actor,
                occurred_at=self._clock.now(),
            ),
            self._session,
        )
        if outcome is None or outcome.ticket_id is None:
            return ReconcileResult(
                unit_id=unit_id,
                status=ReconcileStatus.FAILED,
                reservation_id=reservation_id,
            )

        logger.info(
            "maintenance_ticket_reconciled",
            extra={
                "unit_id": str(unit_id),
                "reservation_id": str(reservation_id),
                "ticket_id": str(outcome.ticket_id),
            },
        )
        return ReconcileResult(
            unit_id=unit_id,
            status=ReconcileStatus.CREATED if outcome.ticket_created else ReconcileStatus.ALREADY_PRESENT,
            reservation_id=reservation_id,
            ticket_id=outcome.ticket_id,
        )
