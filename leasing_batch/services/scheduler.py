"""
LeasingScheduler -- in-process polling scheduler.

Contract:
    Holds ``JobSchedule`` snapshots in memory, polls them on an interval,
    evaluates ``should_fire()`` (pure) and runs due tasks through the
    ``BatchExecutor``.  Schedules are evaluated in registration order, so
    a schedule registered after another with the same timing runs after it.

Non-goals:
    - Not a distributed scheduler; run one instance per database.
    - Schedules do not survive a restart; they are re-armed from settings.
"""

from __future__ import annotations

import threading
from dataclasses import replace
from typing import Any, Iterable
from uuid import UUID, uuid4

from leasing_batch.domain.schedule import compute_next_run, should_fire
from leasing_batch.domain.types import JobSchedule, ScheduleFrequency
from leasing_batch.services.executor import BatchExecutor
from leasing_batch.tasks.leasing_tasks import EXPIRE_RESERVATIONS, RECONCILE_MAINTENANCE_TICKETS
from leasing_kernel.domain.clock import Clock, SystemClock
from leasing_kernel.logging_config import get_logger

logger = get_logger("batch.scheduler")


class LeasingScheduler:

    def __init__(
        self,
        executor: BatchExecutor,
        clock: Clock | None = None,
        schedules: Iterable[JobSchedule] = (),
        tick_interval_seconds: float = 60,
        run_on_start: bool = False,
    ):
        self._executor = executor
        self._clock = clock or SystemClock()
        self._tick_interval = tick_interval_seconds
        self._run_on_start = run_on_start
        self._schedules: dict[UUID, JobSchedule] = {}
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        for schedule in schedules:
            self.add(schedule)

    # -------------------------------------------------------------------------
    # Schedules
    # -------------------------------------------------------------------------

    def add(self, schedule: JobSchedule) -> JobSchedule:
        """
        Register a schedule, arming ``next_run_at`` from the clock when unset.

        Raises:
            TaskNotRegisteredError: the executor has no such task.
            ValueError: malformed cron expression.
        """
        self._executor.registry.get(schedule.task_type)
        if schedule.next_run_at is None and schedule.frequency != ScheduleFrequency.ONCE:
            schedule = replace(
                schedule,
                next_run_at=compute_next_run(
                    schedule.frequency, self._clock.now(), schedule.cron_expression
                ),
            )
        with self._lock:
            self._schedules[schedule.schedule_id] = schedule
        logger.info(
            "schedule_registered",
            extra={
                "schedule_id": str(schedule.schedule_id),
                "job_name": schedule.job_name,
                "task_type": schedule.task_type,
                "next_run_at": schedule.next_run_at,
            },
        )
        return schedule

    def schedules(self) -> tuple[JobSchedule, ...]:
        with self._lock:
            return tuple(self._schedules.values())

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def tick(self) -> int:
        """Fire every due schedule once.  Returns the number fired."""
        now = self._clock.now()
        fired = 0
        for schedule in self.schedules():
            if self._stop_event.is_set():
                break
            if not should_fire(schedule, now):
                continue
            try:
                result = self._executor.run(schedule.task_type, schedule.parameters)
            except Exception:
                logger.exception(
                    "schedule_fire_failed",
                    extra={"schedule_id": str(schedule.schedule_id), "job_name": schedule.job_name},
                )
                # Re-armed from now, same as a successful run.
                self._update(schedule, now, None)
                continue

            updated = self._update(schedule, now, result.status)
            fired += 1
            logger.info(
                "schedule_fired",
                extra={
                    "schedule_id": str(schedule.schedule_id),
                    "job_name": schedule.job_name,
                    "job_id": str(result.job_id),
                    "status": result.status.value,
                    "next_run_at": updated.next_run_at,
                },
            )
        return fired

    def start(self) -> None:
        """
        Run ticks on a daemon thread.

        With ``run_on_start`` every recurring schedule is due on the first
        tick, so a process started after the nightly slot still sweeps today.
        """
        if self._thread is not None and self._thread.is_alive():
            return
        if self._run_on_start:
            self._arm_now()
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run_loop, name="leasing-scheduler", daemon=True)
        self._thread.start()
        logger.info("scheduler_started", extra={"tick_interval": self._tick_interval})

    def stop(self, timeout: float = 30.0) -> None:
        """Signal stop and wait for the running tick to finish."""
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        logger.info("scheduler_stopped")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.tick()
            except Exception:
                logger.exception("scheduler_tick_failed")
            self._stop_event.wait(timeout=self._tick_interval)

    def _update(self, schedule: JobSchedule, now, status) -> JobSchedule:
        updated = replace(
            schedule,
            last_run_at=now,
            last_run_status=status,
            next_run_at=compute_next_run(schedule.frequency, now, schedule.cron_expression),
        )
        with self._lock:
            self._schedules[schedule.schedule_id] = updated
        return updated

    def _arm_now(self) -> None:
        now = self._clock.now()
        with self._lock:
            for schedule_id, schedule in self._schedules.items():
                if schedule.frequency in (ScheduleFrequency.ON_DEMAND, ScheduleFrequency.ONCE):
                    continue
                self._schedules[schedule_id] = replace(schedule, next_run_at=now)
        logger.info("schedules_armed_on_start", extra={"next_run_at": now})


def default_schedules(
    cron_expression: str,
    reconcile_tickets: bool = True,
    parameters: dict[str, Any] | None = None,
) -> tuple[JobSchedule, ...]:
    """The nightly expiration sweep, followed by ticket reconciliation."""
    schedules = [
        JobSchedule(
            schedule_id=uuid4(),
            job_name="nightly-expiration-sweep",
            task_type=EXPIRE_RESERVATIONS,
            frequency=ScheduleFrequency.CRON,
            parameters=dict(parameters or {}),
            cron_expression=cron_expression,
        )
    ]
    if reconcile_tickets:
        schedules.append(
            JobSchedule(
                schedule_id=uuid4(),
                job_name="maintenance-ticket-reconciliation",
                task_type=RECONCILE_MAINTENANCE_TICKETS,
                frequency=ScheduleFrequency.CRON,
                cron_expression=cron_expression,
            )
        )
    return tuple(schedules)
