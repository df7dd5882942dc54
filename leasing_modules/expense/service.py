"""
Expense Service (``leasing_modules.expense.service``).

Consumer boundary of the lifecycle core: records an expense against a
building (and optionally a unit and a service ticket), checks that the
references belong together, and flags the ticket ``is_expense_created``.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import and_, func, or_, select
from sqlalchemy.orm import Session

from leasing_kernel.domain.clock import Clock, SystemClock
from leasing_kernel.domain.values import Actor, parse_enum, require_positive_money, round_money
from leasing_kernel.exceptions import (
    BuildingNotFoundError,
    ExpenseAttributionError,
    TicketNotFoundError,
    UnitNotFoundError,
)
from leasing_kernel.logging_config import get_logger
from leasing_modules.expense.models import Expense, ResponsibleParty
from leasing_modules.expense.orm import ExpenseModel
from leasing_modules.reservation.orm import ReservationModel
from leasing_modules.ticket.orm import ServiceTicketModel
from leasing_modules.ticket.service import TicketService
from leasing_modules.unit.orm import BuildingModel, UnitModel

logger = get_logger("modules.expense.service")


class ExpenseService:

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    def record_expense(
        self,
        building_id: UUID,
        amount: Decimal,
        expense_type: str,
        responsible_party: ResponsibleParty | str,
        actor: Actor,
        expense_date: date | None = None,
        unit_id: UUID | None = None,
        ticket_id: UUID | None = None,
        description: str | None = None,
    ) -> Expense:
        """
        Raises:
            InvalidAmountError: amount is not positive.
            UnknownEnumValueError: responsible party is not owner/tenant.
            BuildingNotFoundError, UnitNotFoundError, TicketNotFoundError
            ExpenseAttributionError: the unit is in another building, the
                ticket belongs to another unit, or the ticket already has
                an expense.
        """
        value = require_positive_money("amount", amount)
        party = parse_enum(ResponsibleParty, responsible_party, "responsible_party")

        if self._session.get(BuildingModel, building_id) is None:
            raise BuildingNotFoundError(str(building_id))

        if unit_id is not None:
            unit = self._session.get(UnitModel, unit_id)
            if unit is None:
                raise UnitNotFoundError(str(unit_id))
            if unit.building_id != building_id:
                raise ExpenseAttributionError(
                    f"unit {unit_id} does not belong to building {building_id}"
                )

        if ticket_id is not None:
            self._check_ticket(ticket_id, building_id, unit_id)

        model = ExpenseModel(
            building_id=building_id,
            unit_id=unit_id,
            ticket_id=ticket_id,
            amount=value,
            expense_type=expense_type,
            expense_date=expense_date or self._clock.today(),
            responsible_party=party.value,
            description=description,
            created_by_id=actor.id,
        )
        self._session.add(model)
        self._session.flush()

        if ticket_id is not None:
            TicketService(self._session, self._clock).mark_expense_created(ticket_id, actor)

        logger.info(
            "expense_recorded",
            extra={
                "expense_id": str(model.id),
                "building_id": str(building_id),
                "unit_id": str(unit_id) if unit_id else None,
                "ticket_id": str(ticket_id) if ticket_id else None,
                "amount": str(value),
                "responsible_party": party.value,
            },
        )
        return model.to_dto()

    def tenant_charges(self, unit_id: UUID, building_id: UUID) -> Decimal:
        """Tenant-responsible expenses on the unit or on the building as a whole."""
        total = self._session.scalar(
            select(func.coalesce(func.sum(ExpenseModel.amount), 0)).where(
                ExpenseModel.responsible_party == ResponsibleParty.TENANT.value,
                or_(
                    ExpenseModel.unit_id == unit_id,
                    and_(
                        ExpenseModel.building_id == building_id,
                        ExpenseModel.unit_id.is_(None),
                    ),
                ),
            )
        )
        return round_money(Decimal(str(total)))

    def _check_ticket(self, ticket_id: UUID, building_id: UUID, unit_id: UUID | None) -> None:
        ticket = self._session.get(ServiceTicketModel, ticket_id)
        if ticket is None:
            raise TicketNotFoundError(str(ticket_id))
        if ticket.is_expense_created:
            raise ExpenseAttributionError(f"ticket {ticket_id} already has an expense")

        reservation = self._session.get(ReservationModel, ticket.reservation_id)
        ticket_unit_id = reservation.unit_id
        if unit_id is not None and ticket_unit_id != unit_id:
            raise ExpenseAttributionError(
                f"ticket {ticket_id} belongs to unit {ticket_unit_id}, not {unit_id}"
            )
        ticket_unit = self._session.get(UnitModel, ticket_unit_id)
        if ticket_unit.building_id != building_id:
            raise ExpenseAttributionError(
                f"ticket {ticket_id} belongs to building {ticket_unit.building_id}"
            )
