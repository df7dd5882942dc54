"""Pure types and schedule evaluation.  ZERO I/O."""

from leasing_batch.domain.types import (
    BatchItemResult,
    BatchItemStatus,
    BatchJobStatus,
    BatchRunResult,
    JobSchedule,
    ScheduleFrequency,
)

__all__ = [
    "BatchItemResult",
    "BatchItemStatus",
    "BatchJobStatus",
    "BatchRunResult",
    "JobSchedule",
    "ScheduleFrequency",
]
