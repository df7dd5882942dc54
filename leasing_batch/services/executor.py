"""
BatchExecutor -- transaction-per-item batch execution.

Contract:
    ``run(task_type, parameters)`` prepares the items in a read session,
    then processes each item in its own session and transaction: commit
    on SUCCEEDED, rollback otherwise.  One item failing never affects
    another.  Items run on a bounded thread pool; every item transaction
    carries a statement timeout so one stuck row cannot stall the run.

    Failures are collected into the ``BatchRunResult``; nothing is retried
    within a run.
"""

from __future__ import annotations

import contextvars
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Any, Callable
from uuid import uuid4

from sqlalchemy.orm import Session

from leasing_batch.domain.types import (
    BatchItemResult,
    BatchItemStatus,
    BatchJobStatus,
    BatchRunResult,
)
from leasing_batch.tasks.base import BatchItemInput, BatchTask, TaskRegistry
from leasing_kernel.db.engine import apply_statement_timeout
from leasing_kernel.domain.clock import Clock, SystemClock
from leasing_kernel.exceptions import LeasingError
from leasing_kernel.logging_config import LogContext, get_logger

logger = get_logger("batch.executor")


class BatchExecutor:
    """
    Non-goals:
        - Does not persist job history; the run result and the log are
          the record.
        - Does not schedule; see ``LeasingScheduler``.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        registry: TaskRegistry,
        clock: Clock | None = None,
        max_workers: int = 4,
        item_timeout_ms: int = 5000,
    ):
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self._session_factory = session_factory
        self._registry = registry
        self._clock = clock or SystemClock()
        self._max_workers = max_workers
        self._item_timeout_ms = item_timeout_ms

    @property
    def registry(self) -> TaskRegistry:
        return self._registry

    def run(self, task_type: str, parameters: dict[str, Any] | None = None) -> BatchRunResult:
        """
        Run every eligible item of ``task_type``.

        Raises:
            TaskNotRegisteredError: unknown task type.
            Exceptions from ``prepare_items`` propagate; nothing was written.
        """
        task = self._registry.get(task_type)
        params = dict(parameters or {})
        job_id = uuid4()
        started_at = self._clock.now()
        start = time.monotonic()

        with LogContext.bind(job_id=job_id):
            logger.info("batch_run_started", extra={"task_type": task_type})
            items = self._prepare(task, params, started_at)

            if self._max_workers == 1 or len(items) <= 1:
                results = [self._run_item(job_id, task, item, params, started_at) for item in items]
            else:
                with ThreadPoolExecutor(
                    max_workers=self._max_workers,
                    thread_name_prefix=f"batch-{task_type}",
                ) as pool:
                    futures = [
                        pool.submit(
                            contextvars.copy_context().run,
                            self._run_item, job_id, task, item, params, started_at,
                        )
                        for item in items
                    ]
                    results = [f.result() for f in futures]

            results.sort(key=lambda r: r.item_index)
            succeeded = sum(1 for r in results if r.status == BatchItemStatus.SUCCEEDED)
            failed = sum(1 for r in results if r.status == BatchItemStatus.FAILED)
            skipped = len(results) - succeeded - failed

            if failed == 0:
                status = BatchJobStatus.COMPLETED
            elif succeeded == 0 and skipped == 0:
                status = BatchJobStatus.FAILED
            else:
                status = BatchJobStatus.PARTIALLY_COMPLETED

            duration_ms = int((time.monotonic() - start) * 1000)
            logger.info(
                "batch_run_completed",
                extra={
                    "task_type": task_type,
                    "status": status.value,
                    "total_items": len(items),
                    "succeeded": succeeded,
                    "failed": failed,
                    "skipped": skipped,
                    "duration_ms": duration_ms,
                },
            )

        return BatchRunResult(
            job_id=job_id,
            task_type=task_type,
            status=status,
            total_items=len(items),
            succeeded=succeeded,
            failed=failed,
            skipped=skipped,
            item_results=tuple(results),
            started_at=started_at,
            completed_at=self._clock.now(),
            duration_ms=duration_ms,
        )

    def _prepare(
        self, task: BatchTask, params: dict[str, Any], as_of: datetime
    ) -> tuple[BatchItemInput, ...]:
        session = self._session_factory()
        try:
            items = task.prepare_items(parameters=params, session=session, as_of=as_of)
            session.rollback()
            return items
        finally:
            session.close()

    def _run_item(
        self,
        job_id,
        task: BatchTask,
        item: BatchItemInput,
        params: dict[str, Any],
        as_of: datetime,
    ) -> BatchItemResult:
        start = time.monotonic()
        session = self._session_factory()
        with LogContext.bind(job_id=job_id):
            try:
                apply_statement_timeout(session, self._item_timeout_ms)
                outcome = task.execute_item(item=item, parameters=params, session=session, as_of=as_of)
                if outcome.status == BatchItemStatus.SUCCEEDED:
                    session.commit()
                else:
                    session.rollback()
                if outcome.status == BatchItemStatus.FAILED:
                    logger.warning(
                        "sweep_item_failed",
                        extra={
                            "task_type": task.task_type,
                            "item_key": item.item_key,
                            "error_code": outcome.error_code,
                            "error_message": outcome.error_message,
                        },
                    )
                return BatchItemResult(
                    item_index=item.item_index,
                    item_key=item.item_key,
                    status=outcome.status,
                    error_code=outcome.error_code,
                    error_message=outcome.error_message,
                    result_data=outcome.result_data,
                    duration_ms=int((time.monotonic() - start) * 1000),
                )
            except Exception as exc:
                session.rollback()
                code = exc.code if isinstance(exc, LeasingError) else "UNHANDLED_EXCEPTION"
                logger.error(
                    "sweep_item_failed",
                    exc_info=True,
                    extra={
                        "task_type": task.task_type,
                        "item_key": item.item_key,
                        "error_code": code,
                    },
                )
                return BatchItemResult(
                    item_index=item.item_index,
                    item_key=item.item_key,
                    status=BatchItemStatus.FAILED,
                    error_code=code,
                    error_message=str(exc),
                    duration_ms=int((time.monotonic() - start) * 1000),
                )
            finally:
                session.close()
