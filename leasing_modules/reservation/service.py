"""
Reservation Lifecycle Service (``leasing_modules.reservation.service``).

Responsibility
--------------
Creates, cancels and expires reservations.  ``create`` and ``cancel``
touch three things that must change together (reservation row, unit
occupancy, installment batch); this service makes all of the writes in
the caller's transaction and flushes, and the caller commits or rolls
back the whole unit of work.

Invariants enforced
-------------------
* No two ``active`` reservations on a unit overlap (inclusive bounds).
  The overlap check and the insert run under the unit row lock taken by
  ``UnitOccupancyService.lock_unit``.
* Lock order is always unit row, then reservation row.
* ``expire`` never changes unit occupancy; the unit stays ``rented`` until
  it is released explicitly.
"""

from __future__ import annotations

from datetime import date, timedelta
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from leasing_kernel.domain.clock import Clock, SystemClock
from leasing_kernel.domain.values import Actor, parse_enum
from leasing_kernel.exceptions import (
    InvalidDateRangeError,
    OverlappingReservationError,
    ReservationNotFoundError,
    ReservationTransitionError,
    UnitNotAvailableError,
)
from leasing_kernel.logging_config import LogContext, get_logger
from leasing_modules.deposit import ledger
from leasing_modules.deposit.models import DepositInfo
from leasing_modules.expense.service import ExpenseService
from leasing_modules.installment.calculations import generate_schedule
from leasing_modules.installment.models import Installment, PaymentFrequency
from leasing_modules.installment.service import InstallmentService
from leasing_modules.reservation.models import (
    OutstandingBalance,
    Reservation,
    ReservationCreated,
    ReservationStatus,
)
from leasing_modules.reservation.orm import ReservationModel
from leasing_modules.reservation.workflows import RESERVATION_WORKFLOW
from leasing_modules.unit.models import OccupancyStatus
from leasing_modules.unit.orm import UnitModel
from leasing_modules.unit.service import UnitOccupancyService

logger = get_logger("modules.reservation.service")

_ACTIVE = ReservationStatus.ACTIVE.value


class ReservationLifecycleService:
    """
    Reservation Lifecycle Manager.

    Contract
    --------
    * Services are constructed per session; every method flushes and never
      commits.
    * Clock is injectable; "today" comes only from it.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        units: UnitOccupancyService | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._units = units or UnitOccupancyService(session, self._clock)
        self._installments = InstallmentService(session, self._clock)

    # =========================================================================
    # Commands
    # =========================================================================

    def create(
        self,
        unit_id: UUID,
        tenant_id: UUID,
        start_date: date,
        end_date: date,
        payment_frequency: PaymentFrequency | str,
        actor: Actor,
        deposit: DepositInfo | None = None,
    ) -> ReservationCreated:
        """
        Book ``unit_id`` for ``tenant_id`` over ``[start_date, end_date]``.

        Raises:
            InvalidDateRangeError: start is not before end.
            UnknownEnumValueError: unknown payment frequency, deposit method or deposit status.
            InvalidAmountError, InvalidDepositError: bad deposit terms.
            UnitNotFoundError: no such unit.
            UnitNotAvailableError: unit is rented or under maintenance.
            OverlappingReservationError: an active reservation overlaps.
        """
        frequency = parse_enum(PaymentFrequency, payment_frequency, "payment_frequency")
        if start_date >= end_date:
            raise InvalidDateRangeError(start_date, end_date)
        deposit_state = None
        if deposit is not None:
            deposit = ledger.parse_terms(deposit)
            deposit_state = ledger.initial_state(deposit)

        unit = self._units.lock_unit(unit_id)
        if unit.occupancy_status != OccupancyStatus.AVAILABLE.value:
            raise UnitNotAvailableError(str(unit_id), unit.occupancy_status)

        clash = self._find_overlap(unit_id, start_date, end_date)
        if clash is not None:
            logger.warning(
                "reservation_overlap_rejected",
                extra={
                    "unit_id": str(unit_id),
                    "existing_reservation_id": str(clash.id),
                    "start_date": start_date,
                    "end_date": end_date,
                },
            )
            raise OverlappingReservationError(str(unit_id), str(clash.id), start_date, end_date)

        schedule = generate_schedule(start_date, end_date, unit.monthly_rate, frequency)

        model = ReservationModel(
            unit_id=unit_id,
            tenant_id=tenant_id,
            start_date=start_date,
            end_date=end_date,
            status=_ACTIVE,
            payment_frequency=frequency.value,
            monthly_rate=unit.monthly_rate,
            includes_deposit=deposit is not None,
            deposit_amount=ledger.deposit_amount(deposit) if deposit is not None else None,
            deposit_payment_method=deposit.payment_method.value if deposit is not None else None,
            created_by_id=actor.id,
        )
        if deposit_state is not None:
            model.apply_deposit_state(deposit_state)
        self._session.add(model)
        self._session.flush()

        self._units.apply_status(unit, OccupancyStatus.RENTED, actor)
        installments = self._installments.persist_schedule(model.id, schedule, actor)

        with LogContext.bind(reservation_id=model.id, unit_id=unit_id):
            logger.info(
                "reservation_created",
                extra={
                    "tenant_id": str(tenant_id),
                    "start_date": start_date,
                    "end_date": end_date,
                    "payment_frequency": frequency.value,
                    "installment_count": len(installments),
                    "total_amount": str(schedule.total_amount),
                },
            )
        return ReservationCreated(reservation=model.to_dto(), installments=tuple(installments))

    def cancel(self, reservation_id: UUID, actor: Actor) -> Reservation:
        """
        Cancel an active reservation: open installments are cancelled and,
        when this was the unit's only active reservation and the unit is
        ``rented``, the unit goes back to ``available``.

        Raises:
            ReservationNotFoundError: no such reservation.
            ReservationTransitionError: reservation is not active.
        """
        unit_id = self._unit_id_of(reservation_id)
        unit = self._units.lock_unit(unit_id)
        model = self._lock(reservation_id)
        self._check_transition(model, ReservationStatus.CANCELLED)

        model.status = ReservationStatus.CANCELLED.value
        model.cancelled_on = self._clock.today()
        model.updated_by_id = actor.id
        self._session.flush()

        cancelled = self._installments.cancel_open(model.id, actor)

        unit_released = False
        _, other_active = self._units.reservation_flags(unit_id)
        if unit.occupancy_status == OccupancyStatus.RENTED.value and not other_active:
            self._units.apply_status(unit, OccupancyStatus.AVAILABLE, actor)
            unit_released = True

        with LogContext.bind(reservation_id=reservation_id, unit_id=unit_id):
            logger.info(
                "reservation_cancelled",
                extra={
                    "installments_cancelled": cancelled,
                    "unit_released": unit_released,
                    "actor_id": str(actor.id),
                },
            )
        return model.to_dto()

    def expire(self, reservation_id: UUID, actor: Actor) -> Reservation:
        """
        Mark an active reservation expired.  Unit occupancy is untouched.

        Raises:
            ReservationNotFoundError: no such reservation.
            ReservationTransitionError: reservation is not active.
        """
        model = self._lock(reservation_id)
        self._check_transition(model, ReservationStatus.EXPIRED)

        model.status = ReservationStatus.EXPIRED.value
        model.expired_on = self._clock.today()
        model.updated_by_id = actor.id
        self._session.flush()

        with LogContext.bind(reservation_id=reservation_id, unit_id=model.unit_id):
            logger.info(
                "reservation_expired",
                extra={"end_date": model.end_date, "actor_id": str(actor.id)},
            )
        return model.to_dto()

    # =========================================================================
    # Queries
    # =========================================================================

    def get(self, reservation_id: UUID) -> Reservation:
        model = self._session.get(ReservationModel, reservation_id)
        if model is None:
            raise ReservationNotFoundError(str(reservation_id))
        return model.to_dto()

    def installments(self, reservation_id: UUID) -> list[Installment]:
        self.get(reservation_id)
        return self._installments.list_for_reservation(reservation_id)

    def due_for_expiry(self, limit: int | None = None) -> list[UUID]:
        """Ids of active reservations whose end date is before today."""
        stmt = (
            select(ReservationModel.id)
            .where(
                ReservationModel.status == _ACTIVE,
                ReservationModel.end_date < self._clock.today(),
            )
            .order_by(ReservationModel.end_date, ReservationModel.id)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(self._session.scalars(stmt).all())

    def expiring_within(self, days: int) -> list[Reservation]:
        """Active reservations ending in ``[today, today + days]``."""
        today = self._clock.today()
        rows = self._session.scalars(
            select(ReservationModel)
            .where(
                ReservationModel.status == _ACTIVE,
                ReservationModel.end_date >= today,
                ReservationModel.end_date <= today + timedelta(days=days),
            )
            .order_by(ReservationModel.end_date)
        ).all()
        return [r.to_dto() for r in rows]

    def outstanding_balance(self, reservation_id: UUID) -> OutstandingBalance:
        """Pending/delayed installments plus tenant-responsible expenses."""
        model = self._session.get(ReservationModel, reservation_id)
        if model is None:
            raise ReservationNotFoundError(str(reservation_id))
        unit = self._session.get(UnitModel, model.unit_id)
        expenses = ExpenseService(self._session, self._clock)
        return OutstandingBalance(
            reservation_id=reservation_id,
            installments_total=self._installments.open_total(reservation_id),
            expenses_total=expenses.tenant_charges(unit.id, unit.building_id),
        )

    # =========================================================================
    # Internals
    # =========================================================================

    def _find_overlap(
        self, unit_id: UUID, start_date: date, end_date: date
    ) -> ReservationModel | None:
        return self._session.scalars(
            select(ReservationModel)
            .where(
                ReservationModel.unit_id == unit_id,
                ReservationModel.status == _ACTIVE,
                ReservationModel.start_date <= end_date,
                ReservationModel.end_date >= start_date,
            )
            .limit(1)
        ).first()

    def _unit_id_of(self, reservation_id: UUID) -> UUID:
        unit_id = self._session.scalar(
            select(ReservationModel.unit_id).where(ReservationModel.id == reservation_id)
        )
        if unit_id is None:
            raise ReservationNotFoundError(str(reservation_id))
        return unit_id

    def _lock(self, reservation_id: UUID) -> ReservationModel:
        model = self._session.scalars(
            select(ReservationModel)
            .where(ReservationModel.id == reservation_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).one_or_none()
        if model is None:
            raise ReservationNotFoundError(str(reservation_id))
        return model

    @staticmethod
    def _check_transition(model: ReservationModel, target: ReservationStatus) -> None:
        if RESERVATION_WORKFLOW.find(model.status, target.value) is None:
            raise ReservationTransitionError(
                str(model.id),
                model.status,
                target.value,
                f"reservation is {model.status}",
            )
