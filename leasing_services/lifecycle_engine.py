"""
LeasingEngine -- the in-process API of the leasing lifecycle core.

Responsibility
--------------
One method per operation a request handler needs.  Each call opens a
session from the factory, runs the module services in one transaction
and commits; any exception rolls the whole unit of work back.  Module
services only flush, so ``create_reservation`` (reservation row, unit
occupancy, installment batch) is all-or-nothing.

Failure modes
-------------
* Domain errors (``LeasingError`` subclasses) propagate unchanged after
  rollback.
* A version-column conflict on flush (``StaleDataError``) surfaces as
  ``OptimisticLockError``; the caller may retry.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import date
from decimal import Decimal
from typing import Callable, Generator, Sequence
from uuid import UUID

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from leasing_batch.domain.types import BatchRunResult
from leasing_batch.services.executor import BatchExecutor
from leasing_batch.services.scheduler import LeasingScheduler, default_schedules
from leasing_batch.services.sweeper import ExpirationSweeper, SweepReport
from leasing_batch.tasks.base import TaskRegistry
from leasing_batch.tasks.leasing_tasks import RECONCILE_MAINTENANCE_TICKETS, leasing_tasks
from leasing_config.schema import LeasingSettings
from leasing_kernel.domain.clock import Clock, SystemClock
from leasing_kernel.domain.values import Actor, parse_enum
from leasing_kernel.exceptions import OptimisticLockError
from leasing_kernel.logging_config import LogContext, get_logger
from leasing_modules.deposit.models import (
    DepositInfo,
    DepositStatistics,
    DepositStatus,
    DepositToReturn,
)
from leasing_modules.deposit.service import DepositService
from leasing_modules.expense.models import Expense, ResponsibleParty
from leasing_modules.expense.service import ExpenseService
from leasing_modules.installment.models import Installment, PaymentFrequency
from leasing_modules.installment.service import InstallmentService
from leasing_modules.reservation.models import (
    OutstandingBalance,
    Reservation,
    ReservationCreated,
)
from leasing_modules.reservation.service import ReservationLifecycleService
from leasing_modules.ticket.models import ServiceTicket, TicketHistoryEntry, TicketStatus, TicketType
from leasing_modules.ticket.service import TicketService
from leasing_modules.ticket.workflows import allowed_next_statuses
from leasing_modules.unit.hooks import OccupancyHook
from leasing_modules.unit.models import Building, OccupancyStatus, Unit, UnitTransitionResult
from leasing_modules.unit.service import UnitOccupancyService

logger = get_logger("services.lifecycle_engine")


class LeasingEngine:
    """
    Contract:
        - Every public method is one transaction.
        - ``clock`` is the only source of "today".
        - ``hooks`` replaces the default post-transition hooks
          (``MaintenanceTicketHook``) when given.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        clock: Clock | None = None,
        settings: LeasingSettings | None = None,
        hooks: Sequence[OccupancyHook] | None = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._settings = settings or LeasingSettings()
        self._hooks = tuple(hooks) if hooks is not None else None
        self._executor: BatchExecutor | None = None

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def executor(self) -> BatchExecutor:
        if self._executor is None:
            registry = TaskRegistry()
            for task in leasing_tasks(self._clock):
                registry.register(task)
            self._executor = BatchExecutor(
                self._session_factory,
                registry,
                clock=self._clock,
                max_workers=self._settings.sweep.max_workers,
                item_timeout_ms=self._settings.sweep.item_timeout_ms,
            )
        return self._executor

    # =========================================================================
    # Transaction boundary
    # =========================================================================

    @contextmanager
    def _transaction(
        self,
        operation: str,
        actor: Actor | None = None,
        entity_type: str = "unit",
        entity_id: UUID | None = None,
    ) -> Generator[Session, None, None]:
        session = self._session_factory()
        with LogContext.bind(actor_id=actor.id if actor else None):
            try:
                yield session
                session.commit()
            except StaleDataError as exc:
                session.rollback()
                logger.warning(
                    "optimistic_lock_conflict",
                    extra={"operation": operation, "entity_id": str(entity_id)},
                )
                raise OptimisticLockError(entity_type, str(entity_id)) from exc
            except Exception:
                session.rollback()
                raise
            finally:
                session.close()

    def _units(self, session: Session) -> UnitOccupancyService:
        return UnitOccupancyService(session, self._clock, hooks=self._hooks)

    def _reservations(self, session: Session) -> ReservationLifecycleService:
        return ReservationLifecycleService(session, self._clock, units=self._units(session))

    # =========================================================================
    # Units
    # =========================================================================

    def create_building(
        self,
        name: str,
        actor: Actor,
        company_id: UUID | None = None,
        address: str | None = None,
    ) -> Building:
        with self._transaction("create_building", actor) as session:
            return self._units(session).create_building(name, actor, company_id, address)

    def create_unit(
        self, building_id: UUID, unit_number: str, monthly_rate: Decimal, actor: Actor
    ) -> Unit:
        with self._transaction("create_unit", actor) as session:
            return self._units(session).create_unit(building_id, unit_number, monthly_rate, actor)

    def get_unit(self, unit_id: UUID) -> Unit:
        with self._transaction("get_unit") as session:
            return self._units(session).get_unit(unit_id)

    def transition_unit_status(
        self, unit_id: UUID, target: OccupancyStatus | str, actor: Actor
    ) -> UnitTransitionResult:
        """Returns the unit and, for ``maintenance``, the maintenance ticket id."""
        with self._transaction("transition_unit_status", actor, "unit", unit_id) as session:
            with LogContext.bind(unit_id=unit_id):
                return self._units(session).transition(unit_id, target, actor)

    def release_unit(self, unit_id: UUID, actor: Actor) -> Unit:
        """Manual ``rented -> available`` once no reservation is active."""
        with self._transaction("release_unit", actor, "unit", unit_id) as session:
            with LogContext.bind(unit_id=unit_id):
                return self._units(session).release(unit_id, actor)

    # =========================================================================
    # Reservations
    # =========================================================================

    def create_reservation(
        self,
        unit_id: UUID,
        tenant_id: UUID,
        start_date: date,
        end_date: date,
        payment_frequency: PaymentFrequency | str,
        actor: Actor,
        deposit: DepositInfo | None = None,
    ) -> ReservationCreated:
        with self._transaction("create_reservation", actor, "unit", unit_id) as session:
            return self._reservations(session).create(
                unit_id, tenant_id, start_date, end_date, payment_frequency, actor, deposit
            )

    def cancel_reservation(self, reservation_id: UUID, actor: Actor) -> Reservation:
        with self._transaction("cancel_reservation", actor, "reservation", reservation_id) as session:
            return self._reservations(session).cancel(reservation_id, actor)

    def expire_reservation(self, reservation_id: UUID, actor: Actor) -> Reservation:
        with self._transaction("expire_reservation", actor, "reservation", reservation_id) as session:
            return self._reservations(session).expire(reservation_id, actor)

    def get_reservation(self, reservation_id: UUID) -> Reservation:
        with self._transaction("get_reservation") as session:
            return self._reservations(session).get(reservation_id)

    def reservation_installments(self, reservation_id: UUID) -> list[Installment]:
        with self._transaction("reservation_installments") as session:
            return self._reservations(session).installments(reservation_id)

    def expiring_soon(self, days: int | None = None) -> list[Reservation]:
        window = self._settings.reservations.expiring_soon_days if days is None else days
        with self._transaction("expiring_soon") as session:
            return self._reservations(session).expiring_within(window)

    def outstanding_balance(self, reservation_id: UUID) -> OutstandingBalance:
        with self._transaction("outstanding_balance") as session:
            return self._reservations(session).outstanding_balance(reservation_id)

    # =========================================================================
    # Installments and deposits
    # =========================================================================

    def mark_installment_paid(
        self, installment_id: UUID, actor: Actor, paid_date: date | None = None
    ) -> Installment:
        with self._transaction("mark_installment_paid", actor, "installment", installment_id) as session:
            return InstallmentService(session, self._clock).mark_paid(installment_id, actor, paid_date)

    def mark_installment_delayed(self, installment_id: UUID, actor: Actor) -> Installment:
        with self._transaction("mark_installment_delayed", actor, "installment", installment_id) as session:
            return InstallmentService(session, self._clock).mark_delayed(installment_id, actor)

    def update_deposit_status(
        self,
        reservation_id: UUID,
        new_status: DepositStatus | str,
        actor: Actor,
        on_date: date | None = None,
    ) -> Reservation:
        with self._transaction("update_deposit_status", actor, "reservation", reservation_id) as session:
            return DepositService(session, self._clock).update_status(
                reservation_id, new_status, actor, on_date
            )

    def deposit_statistics(self) -> DepositStatistics:
        with self._transaction("deposit_statistics") as session:
            return DepositService(session, self._clock).statistics()

    def deposits_to_return(self) -> list[DepositToReturn]:
        with self._transaction("deposits_to_return") as session:
            return DepositService(session, self._clock).to_return()

    # =========================================================================
    # Tickets and expenses
    # =========================================================================

    def open_ticket(
        self,
        reservation_id: UUID,
        ticket_type: TicketType | str,
        description: str,
        actor: Actor,
        subtype: str | None = None,
    ) -> ServiceTicket:
        with self._transaction("open_ticket", actor) as session:
            return TicketService(session, self._clock).open_ticket(
                reservation_id, ticket_type, description, actor, subtype
            )

    def transition_ticket_status(
        self, ticket_id: UUID, new_status: TicketStatus | str, actor: Actor
    ) -> ServiceTicket:
        with self._transaction("transition_ticket_status", actor, "ticket", ticket_id) as session:
            return TicketService(session, self._clock).transition(ticket_id, new_status, actor)

    def get_ticket(self, ticket_id: UUID) -> ServiceTicket:
        with self._transaction("get_ticket") as session:
            return TicketService(session, self._clock).get(ticket_id)

    def ticket_history(self, ticket_id: UUID) -> tuple[TicketHistoryEntry, ...]:
        with self._transaction("ticket_history") as session:
            return TicketService(session, self._clock).history(ticket_id)

    @staticmethod
    def allowed_next_statuses(status: TicketStatus | str) -> tuple[TicketStatus, ...]:
        return allowed_next_statuses(parse_enum(TicketStatus, status, "ticket_status"))

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
        with self._transaction("record_expense", actor, "ticket", ticket_id) as session:
            return ExpenseService(session, self._clock).record_expense(
                building_id,
                amount,
                expense_type,
                responsible_party,
                actor,
                expense_date=expense_date,
                unit_id=unit_id,
                ticket_id=ticket_id,
                description=description,
            )

    # =========================================================================
    # Background work
    # =========================================================================

    def run_expiration_sweep(self, limit: int | None = None) -> SweepReport:
        """Expire every active reservation past its end date; see ``ExpirationSweeper``."""
        return ExpirationSweeper(self.executor).run(limit=limit)

    def reconcile_maintenance_tickets(self) -> BatchRunResult:
        return self.executor.run(RECONCILE_MAINTENANCE_TICKETS)

    def scheduler(
        self,
        tick_interval_seconds: float = 60,
        run_on_start: bool | None = None,
    ) -> LeasingScheduler:
        """
        A scheduler armed with the nightly sweep and reconciliation.

        ``run_on_start`` defaults to ``settings.sweep.run_on_start``.
        """
        sweep = self._settings.sweep
        return LeasingScheduler(
            self.executor,
            clock=self._clock,
            schedules=default_schedules(sweep.cron_expression, sweep.reconcile_tickets),
            tick_interval_seconds=tick_interval_seconds,
            run_on_start=sweep.run_on_start if run_on_start is None else run_on_start,
        )
