"""
Deposit Service (``leasing_modules.deposit.service``).

Applies Deposit Ledger transitions to the deposit fields of a persisted
reservation and answers the deposit reporting queries.  Flushes only.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from leasing_kernel.domain.clock import Clock, SystemClock
from leasing_kernel.domain.values import Actor, parse_enum, round_money
from leasing_kernel.exceptions import DepositNotIncludedError, ReservationNotFoundError
from leasing_kernel.logging_config import get_logger
from leasing_modules.deposit import ledger
from leasing_modules.deposit.models import (
    DepositStatistics,
    DepositStatus,
    DepositStatusSummary,
    DepositToReturn,
)
from leasing_modules.reservation.orm import ReservationModel

logger = get_logger("modules.deposit.service")

_ENDED_RESERVATION_STATUSES = ("expired", "cancelled")


class DepositService:
    """Deposit state changes and reporting."""

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    def update_status(
        self,
        reservation_id: UUID,
        new_status: DepositStatus | str,
        actor: Actor,
        on_date: date | None = None,
    ):
        """
        Move a reservation's deposit to ``new_status``.

        ``on_date`` is the paid or returned date and defaults to today.

        Raises:
            ReservationNotFoundError: no such reservation.
            DepositNotIncludedError: the reservation carries no deposit.
            UnknownEnumValueError: ``new_status`` is not a deposit status.
            DepositTransitionError: the ledger refuses the transition.
        """
        target = parse_enum(DepositStatus, new_status, "deposit_status")
        model = self._session.scalars(
            select(ReservationModel)
            .where(ReservationModel.id == reservation_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).one_or_none()
        if model is None:
            raise ReservationNotFoundError(str(reservation_id))
        if not model.includes_deposit:
            raise DepositNotIncludedError(str(reservation_id))

        current = model.deposit_state()
        updated = ledger.apply(
            current,
            target,
            on_date or self._clock.today(),
            entity_id=str(reservation_id),
        )
        model.apply_deposit_state(updated)
        model.updated_by_id = actor.id
        self._session.flush()

        logger.info(
            "deposit_status_updated",
            extra={
                "reservation_id": str(reservation_id),
                "from_status": current.status.value,
                "to_status": updated.status.value,
                "actor_id": str(actor.id),
            },
        )
        return model.to_dto()

    def statistics(self) -> DepositStatistics:
        rows = self._session.execute(
            select(
                ReservationModel.deposit_status,
                func.count(ReservationModel.id),
                func.coalesce(func.sum(ReservationModel.deposit_amount), 0),
            )
            .where(ReservationModel.includes_deposit.is_(True))
            .group_by(ReservationModel.deposit_status)
        ).all()

        by_status = {
            status: DepositStatusSummary(count=0, total_amount=Decimal("0.00"))
            for status in DepositStatus
        }
        for raw_status, count, total in rows:
            status = DepositStatus(raw_status or "unpaid")
            previous = by_status[status]
            by_status[status] = DepositStatusSummary(
                count=previous.count + count,
                total_amount=round_money(previous.total_amount + Decimal(str(total))),
            )
        return DepositStatistics(by_status=by_status)

    def to_return(self) -> list[DepositToReturn]:
        """Collected deposits on reservations that have expired or been cancelled."""
        rows = self._session.scalars(
            select(ReservationModel)
            .where(
                ReservationModel.includes_deposit.is_(True),
                ReservationModel.deposit_status == DepositStatus.PAID.value,
                ReservationModel.status.in_(_ENDED_RESERVATION_STATUSES),
            )
            .order_by(ReservationModel.end_date)
        ).all()
        return [
            DepositToReturn(
                reservation_id=r.id,
                tenant_id=r.tenant_id,
                unit_id=r.unit_id,
                amount=r.deposit_amount,
                paid_date=r.deposit_paid_date,
                reservation_status=r.status,
            )
            for r in rows
        ]
