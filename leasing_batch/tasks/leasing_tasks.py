"""
Batch tasks: reservation expiry and maintenance-ticket reconciliation.

Both tasks call the same services the foreground API uses, as the system
actor, with the clock they were built with.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from leasing_batch.domain.types import BatchItemStatus
from leasing_batch.tasks.base import BatchItemInput, BatchTaskResult
from leasing_kernel.domain.clock import Clock, SystemClock
from leasing_kernel.domain.values import Actor
from leasing_kernel.exceptions import MaintenanceTicketCreationError, ReservationTransitionError
from leasing_kernel.logging_config import get_logger

logger = get_logger("batch.tasks.leasing")

EXPIRE_RESERVATIONS = "reservation.expire"
RECONCILE_MAINTENANCE_TICKETS = "ticket.reconcile_maintenance"


class ExpireReservationsTask:
    """Expire every active reservation whose end date has passed."""

    def __init__(self, clock: Clock | None = None):
        self._clock = clock or SystemClock()

    @property
    def task_type(self) -> str:
        return EXPIRE_RESERVATIONS

    @property
    def description(self) -> str:
        return "Expire active reservations past their end date"

    def prepare_items(
        self,
        parameters: dict[str, Any],
        session: Session,
        as_of: datetime,
    ) -> tuple[BatchItemInput, ...]:
        from leasing_modules.reservation.service import ReservationLifecycleService

        ids = ReservationLifecycleService(session, self._clock).due_for_expiry(
            limit=parameters.get("limit"),
        )
        return tuple(
            BatchItemInput(item_index=i, item_key=str(rid), payload={"reservation_id": str(rid)})
            for i, rid in enumerate(ids)
        )

    def execute_item(
        self,
        item: BatchItemInput,
        parameters: dict[str, Any],
        session: Session,
        as_of: datetime,
    ) -> BatchTaskResult:
        from leasing_modules.reservation.models import ReservationStatus
        from leasing_modules.reservation.service import ReservationLifecycleService

        service = ReservationLifecycleService(session, self._clock)
        reservation_id = UUID(item.item_key)

        current = service.get(reservation_id)
        if current.status != ReservationStatus.ACTIVE:
            return BatchTaskResult(
                status=BatchItemStatus.SKIPPED,
                result_data={"reason": f"reservation is {current.status.value}"},
            )
        if current.end_date >= self._clock.today():
            return BatchTaskResult(
                status=BatchItemStatus.SKIPPED,
                result_data={"reason": "end date not passed"},
            )

        try:
            expired = service.expire(reservation_id, Actor.system())
        except ReservationTransitionError as exc:
            # Cancelled or expired by another caller after the read above.
            return BatchTaskResult(
                status=BatchItemStatus.SKIPPED,
                result_data={"reason": f"reservation is {exc.from_state}"},
            )
        return BatchTaskResult(
            status=BatchItemStatus.SUCCEEDED,
            result_data={
                "reservation_id": str(expired.id),
                "unit_id": str(expired.unit_id),
                "expired_on": expired.expired_on.isoformat(),
            },
        )


class ReconcileMaintenanceTicketsTask:
    """Open the maintenance ticket a unit should have but does not."""

    def __init__(self, clock: Clock | None = None):
        self._clock = clock or SystemClock()

    @property
    def task_type(self) -> str:
        return RECONCILE_MAINTENANCE_TICKETS

    @property
    def description(self) -> str:
        return "Create missing maintenance tickets for units under maintenance"

    def prepare_items(
        self,
        parameters: dict[str, Any],
        session: Session,
        as_of: datetime,
    ) -> tuple[BatchItemInput, ...]:
        from leasing_services.ticket_reconciliation_service import TicketReconciliationService

        missing = TicketReconciliationService(session, self._clock).find_missing()
        return tuple(
            BatchItemInput(
                item_index=i,
                item_key=str(m.unit_id),
                payload={"reservation_id": str(m.reservation_id)},
            )
            for i, m in enumerate(missing)
        )

    def execute_item(
        self,
        item: BatchItemInput,
        parameters: dict[str, Any],
        session: Session,
        as_of: datetime,
    ) -> BatchTaskResult:
        from leasing_services.ticket_reconciliation_service import (
            ReconcileStatus,
            TicketReconciliationService,
        )

        result = TicketReconciliationService(session, self._clock).reconcile_unit(
            UUID(item.item_key), Actor.system(),
        )
        data = {
            "unit_id": item.item_key,
            "reservation_id": str(result.reservation_id) if result.reservation_id else None,
            "ticket_id": str(result.ticket_id) if result.ticket_id else None,
            "outcome": result.status.value,
        }
        if result.status == ReconcileStatus.CREATED:
            return BatchTaskResult(status=BatchItemStatus.SUCCEEDED, result_data=data)
        if result.status == ReconcileStatus.FAILED:
            return BatchTaskResult(
                status=BatchItemStatus.FAILED,
                result_data=data,
                error_code=MaintenanceTicketCreationError.code,
                error_message="maintenance ticket could not be created",
            )
        return BatchTaskResult(status=BatchItemStatus.SKIPPED, result_data=data)


def leasing_tasks(clock: Clock | None = None) -> tuple:
    """The tasks the leasing engine registers."""
    return (ExpireReservationsTask(clock), ReconcileMaintenanceTicketsTask(clock))
