"""Task protocol, registry and the leasing tasks."""

from leasing_batch.tasks.base import (
    BatchItemInput,
    BatchTask,
    BatchTaskResult,
    TaskRegistry,
)

__all__ = [
    "BatchItemInput",
    "BatchTask",
    "BatchTaskResult",
    "TaskRegistry",
]
