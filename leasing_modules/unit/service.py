"""
Unit Occupancy Service (``leasing_modules.unit.service``).

Responsibility
--------------
Owns ``UnitModel.occupancy_status``.  Every change goes through the pure
``transition`` in ``workflows.py`` with the reservation facts it needs,
then the post-transition hooks run.

Concurrency
-----------
``lock_unit`` takes ``SELECT ... FOR UPDATE`` on the unit row (PostgreSQL;
SQLite serializes writers with BEGIN IMMEDIATE).  The reservation service
takes the same lock before its overlap check, so occupancy changes and
reservation creates/cancels for one unit are serialized.  The unit's
``version`` column catches any writer that skipped the lock.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from leasing_kernel.domain.clock import Clock, SystemClock
from leasing_kernel.domain.values import Actor, parse_enum, require_positive_money
from leasing_kernel.exceptions import (
    BuildingNotFoundError,
    OccupancyTransitionError,
    UnitNotFoundError,
)
from leasing_kernel.logging_config import get_logger
from leasing_modules.reservation.orm import ReservationModel
from leasing_modules.unit import workflows
from leasing_modules.unit.hooks import (
    HookOutcome,
    MaintenanceTicketHook,
    OccupancyChanged,
    OccupancyHook,
)
from leasing_modules.unit.models import (
    Building,
    OccupancyStatus,
    Unit,
    UnitTransitionResult,
)
from leasing_modules.unit.orm import BuildingModel, UnitModel

logger = get_logger("modules.unit.service")


class UnitOccupancyService:
    """Unit provisioning and occupancy transitions."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        hooks: Sequence[OccupancyHook] | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._hooks = tuple(hooks) if hooks is not None else (MaintenanceTicketHook(self._clock),)

    # =========================================================================
    # Provisioning
    # =========================================================================

    def create_building(
        self,
        name: str,
        actor: Actor,
        company_id: UUID | None = None,
        address: str | None = None,
    ) -> Building:
        model = BuildingModel(
            name=name,
            company_id=company_id,
            address=address,
            created_by_id=actor.id,
        )
        self._session.add(model)
        self._session.flush()
        logger.info("building_created", extra={"building_id": str(model.id)})
        return model.to_dto()

    def create_unit(
        self,
        building_id: UUID,
        unit_number: str,
        monthly_rate: Decimal,
        actor: Actor,
    ) -> Unit:
        """A new unit starts ``available``."""
        rate = require_positive_money("monthly_rate", monthly_rate)
        if self._session.get(BuildingModel, building_id) is None:
            raise BuildingNotFoundError(str(building_id))
        model = UnitModel(
            building_id=building_id,
            unit_number=unit_number,
            monthly_rate=rate,
            occupancy_status=OccupancyStatus.AVAILABLE.value,
            created_by_id=actor.id,
        )
        self._session.add(model)
        self._session.flush()
        logger.info(
            "unit_created",
            extra={"unit_id": str(model.id), "building_id": str(building_id)},
        )
        return model.to_dto()

    # =========================================================================
    # Queries
    # =========================================================================

    def get_unit(self, unit_id: UUID) -> Unit:
        model = self._session.get(UnitModel, unit_id)
        if model is None:
            raise UnitNotFoundError(str(unit_id))
        return model.to_dto()

    def lock_unit(self, unit_id: UUID) -> UnitModel:
        model = self._session.scalars(
            select(UnitModel)
            .where(UnitModel.id == unit_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).one_or_none()
        if model is None:
            raise UnitNotFoundError(str(unit_id))
        return model

    def reservation_flags(self, unit_id: UUID) -> tuple[bool, bool]:
        """(active reservation ending today or later, any active reservation)."""
        end_dates = self._session.scalars(
            select(ReservationModel.end_date).where(
                ReservationModel.unit_id == unit_id,
                ReservationModel.status == "active",
            )
        ).all()
        today = self._clock.today()
        return any(end >= today for end in end_dates), bool(end_dates)

    # =========================================================================
    # Transitions
    # =========================================================================

    def transition(
        self,
        unit_id: UUID,
        target: OccupancyStatus | str,
        actor: Actor,
    ) -> UnitTransitionResult:
        """
        Move a unit to ``target`` and run the post-transition hooks.

        Raises:
            UnknownEnumValueError: unknown occupancy status.
            UnitNotFoundError: no such unit.
            OccupancyTransitionError: the transition table refuses the move.
        """
        status = parse_enum(OccupancyStatus, target, "occupancy_status")
        model = self.lock_unit(unit_id)
        previous = self.apply_status(model, status, actor)

        outcome = self._run_hooks(
            OccupancyChanged(
                unit_id=model.id,
                previous_status=previous,
                new_status=status,
                actor=actor,
                occurred_at=self._clock.now(),
            )
        )
        return UnitTransitionResult(
            unit=model.to_dto(),
            previous_status=previous,
            ticket_id=outcome.ticket_id,
            ticket_created=outcome.ticket_created,
        )

    def release(self, unit_id: UUID, actor: Actor) -> Unit:
        """
        Manual release: ``rented -> available`` once no reservation on the
        unit is active any more (move-out confirmed).
        """
        model = self.lock_unit(unit_id)
        current = OccupancyStatus(model.occupancy_status)
        if current != OccupancyStatus.RENTED:
            raise OccupancyTransitionError(
                str(unit_id),
                current.value,
                OccupancyStatus.AVAILABLE.value,
                "only a rented unit can be released",
            )
        self.apply_status(model, OccupancyStatus.AVAILABLE, actor)
        logger.info("unit_released", extra={"unit_id": str(unit_id)})
        return model.to_dto()

    def apply_status(
        self,
        model: UnitModel,
        target: OccupancyStatus,
        actor: Actor,
    ) -> OccupancyStatus:
        """
        Validate and write an occupancy change on a locked unit row.

        Returns the previous status.  Hooks are not run here; callers
        outside this service (reservation create/cancel) never move a unit
        into maintenance.
        """
        has_current, has_any = self.reservation_flags(model.id)
        unit = model.to_dto()
        updated = workflows.transition(
            unit,
            target,
            has_active_reservation=has_current,
            has_any_active_reservation=has_any,
        )
        if updated.occupancy_status != unit.occupancy_status:
            model.occupancy_status = updated.occupancy_status.value
            model.updated_by_id = actor.id
            self._session.flush()
            logger.info(
                "unit_transitioned",
                extra={
                    "unit_id": str(model.id),
                    "from_status": unit.occupancy_status.value,
                    "to_status": updated.occupancy_status.value,
                    "actor_id": str(actor.id),
                },
            )
        return unit.occupancy_status

    def _run_hooks(self, event: OccupancyChanged) -> HookOutcome:
        result = HookOutcome()
        for hook in self._hooks:
            outcome = hook(event, self._session)
            if outcome is not None and outcome.ticket_id is not None:
                result = outcome
        return result
