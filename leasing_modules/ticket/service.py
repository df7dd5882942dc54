"""
Service Ticket Service (``leasing_modules.ticket.service``).

Opens tickets, applies validated status transitions and appends the
history record for each.  Also provides the idempotent
``ensure_maintenance_ticket`` used by the occupancy hook and the
reconciliation job.  Flushes only; the caller owns the transaction.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from leasing_kernel.domain.clock import Clock, SystemClock
from leasing_kernel.domain.values import Actor, parse_enum
from leasing_kernel.exceptions import (
    PermissionDeniedError,
    ReservationNotFoundError,
    TicketNotFoundError,
)
from leasing_kernel.logging_config import get_logger
from leasing_modules.reservation.orm import ReservationModel
from leasing_modules.ticket.models import (
    OPEN_TICKET_STATUSES,
    ServiceTicket,
    TicketHistoryEntry,
    TicketStatus,
    TicketType,
)
from leasing_modules.ticket.orm import ServiceTicketModel, TicketHistoryModel
from leasing_modules.ticket.workflows import edit_permission, validate_transition

logger = get_logger("modules.ticket.service")

DEFAULT_MAINTENANCE_DESCRIPTION = "Unit placed under maintenance"


class TicketService:
    """Ticket creation, transitions and history."""

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    def open_ticket(
        self,
        reservation_id: UUID,
        ticket_type: TicketType | str,
        description: str,
        actor: Actor,
        subtype: str | None = None,
    ) -> ServiceTicket:
        """
        Open a ticket against a reservation.

        Raises:
            UnknownEnumValueError: unknown ticket type.
            ReservationNotFoundError: no such reservation.
            PermissionDeniedError: a tenant opening a ticket on someone
                else's reservation.
        """
        kind = parse_enum(TicketType, ticket_type, "ticket_type")
        reservation = self._session.get(ReservationModel, reservation_id)
        if reservation is None:
            raise ReservationNotFoundError(str(reservation_id))
        if actor.is_tenant and reservation.tenant_id != actor.id:
            raise PermissionDeniedError(
                str(actor.id), actor.role.value, "open a ticket on another tenant's reservation"
            )

        model = self._create(reservation, kind, description, actor, subtype)
        return model.to_dto()

    def get(self, ticket_id: UUID) -> ServiceTicket:
        return self._get(ticket_id).to_dto()

    def transition(
        self,
        ticket_id: UUID,
        new_status: TicketStatus | str,
        actor: Actor,
    ) -> ServiceTicket:
        """
        Move a ticket to ``new_status`` and append a history entry.

        Raises:
            UnknownEnumValueError: unknown status.
            TicketNotFoundError: no such ticket.
            PermissionDeniedError: the actor may not change ticket status.
            TicketTransitionError: closed ticket, backward move, or an
                undeclared pair.
        """
        target = parse_enum(TicketStatus, new_status, "ticket_status")
        model = self._get(ticket_id, for_update=True)
        current = TicketStatus(model.status)

        if not edit_permission(current, actor).can_change_status and actor.is_tenant:
            raise PermissionDeniedError(
                str(actor.id), actor.role.value, "change ticket status"
            )
        validate_transition(str(ticket_id), current, target)

        model.status = target.value
        model.updated_by_id = actor.id
        self._append_history(model, target, actor)
        self._session.flush()

        logger.info(
            "ticket_transitioned",
            extra={
                "ticket_id": str(ticket_id),
                "from_status": current.value,
                "to_status": target.value,
                "actor_id": str(actor.id),
            },
        )
        return model.to_dto()

    def find_open_maintenance(self, reservation_id: UUID) -> ServiceTicketModel | None:
        return self._session.scalars(
            select(ServiceTicketModel)
            .where(
                ServiceTicketModel.reservation_id == reservation_id,
                ServiceTicketModel.ticket_type == TicketType.MAINTENANCE.value,
                ServiceTicketModel.status.in_([s.value for s in OPEN_TICKET_STATUSES]),
            )
            .order_by(ServiceTicketModel.created_at)
            .limit(1)
        ).first()

    def ensure_maintenance_ticket(
        self,
        reservation_id: UUID,
        actor: Actor,
        description: str = DEFAULT_MAINTENANCE_DESCRIPTION,
    ) -> tuple[ServiceTicket, bool]:
        """
        Return the open maintenance ticket for a reservation, creating one if
        none exists.  The second element is True when a ticket was created.

        Callers serialize on the unit row, so two concurrent callers for the
        same reservation cannot both miss the existing ticket.
        """
        existing = self.find_open_maintenance(reservation_id)
        if existing is not None:
            logger.info(
                "maintenance_ticket_reused",
                extra={"ticket_id": str(existing.id), "reservation_id": str(reservation_id)},
            )
            return existing.to_dto(), False

        reservation = self._session.get(ReservationModel, reservation_id)
        if reservation is None:
            raise ReservationNotFoundError(str(reservation_id))
        model = self._create(reservation, TicketType.MAINTENANCE, description, actor, None)
        return model.to_dto(), True

    def history(self, ticket_id: UUID) -> tuple[TicketHistoryEntry, ...]:
        return self._get(ticket_id).to_dto().history

    def mark_expense_created(self, ticket_id: UUID, actor: Actor) -> ServiceTicket:
        model = self._get(ticket_id, for_update=True)
        model.is_expense_created = True
        model.updated_by_id = actor.id
        self._session.flush()
        return model.to_dto()

    def _create(
        self,
        reservation: ReservationModel,
        kind: TicketType,
        description: str,
        actor: Actor,
        subtype: str | None,
    ) -> ServiceTicketModel:
        model = ServiceTicketModel(
            reservation_id=reservation.id,
            unit_id=reservation.unit_id,
            ticket_type=kind.value,
            subtype=subtype,
            description=description,
            status=TicketStatus.PENDING.value,
            is_expense_created=False,
            created_by_id=actor.id,
        )
        self._session.add(model)
        self._session.flush()
        self._append_history(model, TicketStatus.PENDING, actor)
        self._session.flush()

        logger.info(
            "ticket_opened",
            extra={
                "ticket_id": str(model.id),
                "reservation_id": str(reservation.id),
                "ticket_type": kind.value,
                "actor_id": str(actor.id),
            },
        )
        return model

    def _append_history(self, model: ServiceTicketModel, status: TicketStatus, actor: Actor) -> None:
        last = self._session.scalar(
            select(func.max(TicketHistoryModel.sequence)).where(
                TicketHistoryModel.ticket_id == model.id
            )
        )
        entry = TicketHistoryModel(
            ticket_id=model.id,
            sequence=(last or 0) + 1,
            status=status.value,
            recorded_at=self._clock.now(),
            actor_id=actor.id,
            actor_role=actor.role.value,
        )
        model.history.append(entry)

    def _get(self, ticket_id: UUID, for_update: bool = False) -> ServiceTicketModel:
        stmt = select(ServiceTicketModel).where(ServiceTicketModel.id == ticket_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        model = self._session.scalars(stmt).one_or_none()
        if model is None:
            raise TicketNotFoundError(str(ticket_id))
        return model
