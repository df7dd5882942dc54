"""
Installment Service (``leasing_modules.installment.service``).

Persists a generated schedule and applies status changes to individual
installments through ``INSTALLMENT_WORKFLOW``.  The schedule itself is
never regenerated.  Flushes only; the caller owns the transaction.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from leasing_kernel.domain.clock import Clock, SystemClock
from leasing_kernel.domain.values import Actor, round_money
from leasing_kernel.exceptions import (
    InstallmentNotFoundError,
    InstallmentTransitionError,
)
from leasing_kernel.logging_config import get_logger
from leasing_modules.installment.models import (
    OPEN_INSTALLMENT_STATUSES,
    Installment,
    InstallmentSchedule,
    InstallmentStatus,
)
from leasing_modules.installment.orm import InstallmentModel
from leasing_modules.installment.workflows import INSTALLMENT_WORKFLOW

logger = get_logger("modules.installment.service")

_OPEN = tuple(s.value for s in OPEN_INSTALLMENT_STATUSES)


class InstallmentService:
    """Installment persistence and status transitions."""

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    def persist_schedule(
        self,
        reservation_id: UUID,
        schedule: InstallmentSchedule,
        actor: Actor,
    ) -> list[Installment]:
        models = [
            InstallmentModel.from_scheduled(line, reservation_id, actor.id)
            for line in schedule.installments
        ]
        self._session.add_all(models)
        self._session.flush()

        logger.info(
            "installments_generated",
            extra={
                "reservation_id": str(reservation_id),
                "count": len(models),
                "total_amount": str(schedule.total_amount),
                "duration_months": schedule.duration_months,
            },
        )
        return [m.to_dto() for m in models]

    def list_for_reservation(self, reservation_id: UUID) -> list[Installment]:
        rows = self._session.scalars(
            select(InstallmentModel)
            .where(InstallmentModel.reservation_id == reservation_id)
            .order_by(InstallmentModel.sequence)
        ).all()
        return [r.to_dto() for r in rows]

    def mark_paid(
        self,
        installment_id: UUID,
        actor: Actor,
        paid_date: date | None = None,
    ) -> Installment:
        model = self._get(installment_id)
        self._apply(model, InstallmentStatus.PAID, actor)
        model.paid_date = paid_date or self._clock.today()
        self._session.flush()
        return model.to_dto()

    def mark_delayed(self, installment_id: UUID, actor: Actor) -> Installment:
        model = self._get(installment_id)
        self._apply(model, InstallmentStatus.DELAYED, actor)
        self._session.flush()
        return model.to_dto()

    def cancel_open(self, reservation_id: UUID, actor: Actor) -> int:
        """
        Cancel every pending/delayed installment of a reservation.

        The open rows are locked; an installment paid by a concurrent
        transaction drops out of the set instead of being overwritten.
        """
        rows = self._session.scalars(
            select(InstallmentModel)
            .where(
                InstallmentModel.reservation_id == reservation_id,
                InstallmentModel.status.in_(_OPEN),
            )
            .order_by(InstallmentModel.sequence)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).all()
        for model in rows:
            self._apply(model, InstallmentStatus.CANCELLED, actor)
        self._session.flush()

        logger.info(
            "installments_cancelled",
            extra={"reservation_id": str(reservation_id), "count": len(rows)},
        )
        return len(rows)

    def open_total(self, reservation_id: UUID) -> Decimal:
        """Sum of pending and delayed installment amounts."""
        total = self._session.scalar(
            select(func.coalesce(func.sum(InstallmentModel.amount), 0)).where(
                InstallmentModel.reservation_id == reservation_id,
                InstallmentModel.status.in_(_OPEN),
            )
        )
        return round_money(Decimal(str(total)))

    def _get(self, installment_id: UUID) -> InstallmentModel:
        model = self._session.scalars(
            select(InstallmentModel)
            .where(InstallmentModel.id == installment_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).one_or_none()
        if model is None:
            raise InstallmentNotFoundError(str(installment_id))
        return model

    def _apply(self, model: InstallmentModel, target: InstallmentStatus, actor: Actor) -> None:
        if INSTALLMENT_WORKFLOW.find(model.status, target.value) is None:
            raise InstallmentTransitionError(
                str(model.id),
                model.status,
                target.value,
                "installment is settled" if INSTALLMENT_WORKFLOW.is_terminal(model.status) else "",
            )
        previous = model.status
        model.status = target.value
        model.updated_by_id = actor.id
        logger.debug(
            "installment_transitioned",
            extra={
                "installment_id": str(model.id),
                "from_status": previous,
                "to_status": target.value,
            },
        )
