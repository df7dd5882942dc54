"""
leasing_batch.domain.types -- Frozen dataclasses for batch runs and schedules.

ZERO I/O.  Status fields are enums, collections are tuples.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID


# =============================================================================
# Status enums
# =============================================================================


class BatchJobStatus(str, Enum):
    """Outcome of one run of a task."""

    COMPLETED = "completed"  # No item failed
    FAILED = "failed"  # Every item failed
    PARTIALLY_COMPLETED = "partially_completed"


class BatchItemStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"  # Nothing to do (already handled by another caller)


class ScheduleFrequency(str, Enum):
    """Recurrence of a scheduled task."""

    ONCE = "once"
    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"
    CRON = "cron"  # Timing taken from ``cron_expression``
    ON_DEMAND = "on_demand"  # Never fired by the scheduler


# =============================================================================
# Run results
# =============================================================================


@dataclass(frozen=True)
class BatchItemResult:
    """Result of one item, committed or rolled back in its own transaction."""

    item_index: int
    item_key: str  # e.g. the reservation id
    status: BatchItemStatus
    error_code: str | None = None
    error_message: str | None = None
    result_data: dict[str, Any] | None = None
    duration_ms: int = 0


@dataclass(frozen=True)
class BatchRunResult:
    """Returned by ``BatchExecutor.run()``."""

    job_id: UUID
    task_type: str
    status: BatchJobStatus
    total_items: int
    succeeded: int
    failed: int
    skipped: int
    item_results: tuple[BatchItemResult, ...] = ()
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_ms: int = 0

    def failures(self) -> tuple[BatchItemResult, ...]:
        return tuple(r for r in self.item_results if r.status == BatchItemStatus.FAILED)


# =============================================================================
# Schedules
# =============================================================================


@dataclass(frozen=True)
class JobSchedule:
    """
    A recurring task.  The scheduler replaces the snapshot after every
    fire; ``should_fire`` only reads it.
    """

    schedule_id: UUID
    job_name: str
    task_type: str
    frequency: ScheduleFrequency
    parameters: dict[str, Any] = field(default_factory=dict)
    cron_expression: str | None = None
    next_run_at: datetime | None = None
    last_run_at: datetime | None = None
    last_run_status: BatchJobStatus | None = None
    is_active: bool = True
