"""
Post-transition hooks for unit occupancy changes.

The occupancy change is the authoritative fact.  Hooks run after it has
been flushed, inside the same transaction, each under its own SAVEPOINT:
a hook failure rolls back only the hook's writes, is logged as a
``SideEffectFailure`` and never reaches the caller.  The reconciliation
job replays ``MaintenanceTicketHook`` for units whose ticket is missing.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Protocol
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from leasing_kernel.domain.clock import Clock, SystemClock
from leasing_kernel.domain.values import Actor
from leasing_kernel.exceptions import MaintenanceTicketCreationError
from leasing_kernel.logging_config import get_logger
from leasing_modules.reservation.orm import ReservationModel
from leasing_modules.ticket.service import TicketService
from leasing_modules.unit.models import OccupancyStatus

logger = get_logger("modules.unit.hooks")


@dataclass(frozen=True)
class OccupancyChanged:
    """Emitted after a unit transition (including a same-status request)."""
    unit_id: UUID
    previous_status: OccupancyStatus
    new_status: OccupancyStatus
    actor: Actor
    occurred_at: datetime


@dataclass(frozen=True)
class HookOutcome:
    ticket_id: UUID | None = None
    ticket_created: bool = False


class OccupancyHook(Protocol):
    name: str

    def __call__(self, event: OccupancyChanged, session: Session) -> HookOutcome | None:
        ...


def find_active_reservation(session: Session, unit_id: UUID) -> ReservationModel | None:
    """The unit's active reservation; the latest-ending one if several exist."""
    return session.scalars(
        select(ReservationModel)
        .where(
            ReservationModel.unit_id == unit_id,
            ReservationModel.status == "active",
        )
        .order_by(ReservationModel.end_date.desc())
        .limit(1)
    ).first()


class MaintenanceTicketHook:
    """
    Open (or reuse) a maintenance ticket when a unit with an active
    reservation enters ``maintenance``.
    """

    name = "maintenance_ticket"

    def __init__(
        self,
        clock: Clock | None = None,
        ticket_service_factory: Callable[[Session], TicketService] | None = None,
    ):
        self._clock = clock or SystemClock()
        self._ticket_service_factory = ticket_service_factory or (
            lambda session: TicketService(session, self._clock)
        )

    def __call__(self, event: OccupancyChanged, session: Session) -> HookOutcome | None:
        if event.new_status != OccupancyStatus.MAINTENANCE:
            return None

        reservation = find_active_reservation(session, event.unit_id)
        if reservation is None:
            return None
        reservation_id = reservation.id

        try:
            with session.begin_nested():
                tickets = self._ticket_service_factory(session)
                ticket, created = tickets.ensure_maintenance_ticket(reservation_id, event.actor)
        except Exception as exc:
            failure = MaintenanceTicketCreationError(
                unit_id=str(event.unit_id),
                reservation_id=str(reservation_id),
                cause=f"{type(exc).__name__}: {exc}",
            )
            logger.error(
                "maintenance_ticket_creation_failed",
                exc_info=(type(failure), failure, exc.__traceback__),
                extra={
                    "unit_id": str(event.unit_id),
                    "reservation_id": str(reservation_id),
                },
            )
            return None

        if created:
            logger.info(
                "maintenance_ticket_created",
                extra={
                    "unit_id": str(event.unit_id),
                    "reservation_id": str(reservation_id),
                    "ticket_id": str(ticket.id),
                },
            )
        return HookOutcome(ticket_id=ticket.id, ticket_created=created)
