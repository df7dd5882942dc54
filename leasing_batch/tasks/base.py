"""
BatchTask protocol, item DTOs and TaskRegistry.

A task splits a run into items (``prepare_items``) and processes one item
at a time (``execute_item``).  The executor gives every item its own
session and transaction; tasks never commit or roll back.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from sqlalchemy.orm import Session

from leasing_batch.domain.types import BatchItemStatus
from leasing_kernel.exceptions import TaskNotRegisteredError


@dataclass(frozen=True)
class BatchItemInput:
    item_index: int
    item_key: str
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class BatchTaskResult:
    """What ``execute_item`` reports back; the executor commits only on SUCCEEDED."""

    status: BatchItemStatus
    result_data: dict[str, Any] | None = None
    error_code: str | None = None
    error_message: str | None = None


@runtime_checkable
class BatchTask(Protocol):
    """
    Contract:
        - ``task_type`` is the registry key (e.g. "reservation.expire").
        - ``prepare_items()`` reads the eligible records and returns a tuple.
        - ``execute_item()`` handles ONE item; it re-reads its record since
          the world may have moved on since ``prepare_items``.
        - Domain errors may be raised; the executor records them as FAILED.
    """

    @property
    def task_type(self) -> str: ...

    @property
    def description(self) -> str: ...

    def prepare_items(
        self,
        parameters: dict[str, Any],
        session: Session,
        as_of: datetime,
    ) -> tuple[BatchItemInput, ...]: ...

    def execute_item(
        self,
        item: BatchItemInput,
        parameters: dict[str, Any],
        session: Session,
        as_of: datetime,
    ) -> BatchTaskResult: ...


class TaskRegistry:
    """task_type -> BatchTask.  One task per key."""

    def __init__(self) -> None:
        self._tasks: dict[str, BatchTask] = {}

    def register(self, task: BatchTask) -> None:
        """
        Raises:
            ValueError: a task with the same task_type is already registered.
        """
        if task.task_type in self._tasks:
            raise ValueError(f"Task type '{task.task_type}' is already registered")
        self._tasks[task.task_type] = task

    def get(self, task_type: str) -> BatchTask:
        """
        Raises:
            TaskNotRegisteredError: nothing is registered under ``task_type``.
        """
        task = self._tasks.get(task_type)
        if task is None:
            raise TaskNotRegisteredError(task_type)
        return task

    def list_tasks(self) -> tuple[str, ...]:
        return tuple(sorted(self._tasks))

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, task_type: str) -> bool:
        return task_type in self._tasks
