"""
Expiration Sweeper.

Expires every ``active`` reservation whose end date is before today, one
transaction per reservation.  A reservation whose expiry fails keeps its
``active`` status and is selected again by the next run, so the sweep is
idempotent and heals itself across runs.  Unit occupancy is never touched.
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from leasing_batch.domain.types import BatchItemStatus, BatchRunResult
from leasing_batch.services.executor import BatchExecutor
from leasing_batch.tasks.leasing_tasks import EXPIRE_RESERVATIONS
from leasing_kernel.logging_config import get_logger

logger = get_logger("batch.sweeper")


@dataclass(frozen=True)
class SweepFailure:
    reservation_id: UUID
    error: str
    error_code: str | None = None


@dataclass(frozen=True)
class SweepReport:
    """``processed`` counts reservations expired by this run."""

    processed: int
    failed: tuple[SweepFailure, ...] = ()
    skipped: int = 0
    expired_ids: tuple[UUID, ...] = ()
    run: BatchRunResult | None = None


class ExpirationSweeper:

    def __init__(self, executor: BatchExecutor):
        self._executor = executor

    def run(self, limit: int | None = None) -> SweepReport:
        params = {"limit": limit} if limit is not None else {}
        result = self._executor.run(EXPIRE_RESERVATIONS, params)

        failures = tuple(
            SweepFailure(
                reservation_id=UUID(r.item_key),
                error=r.error_message or "",
                error_code=r.error_code,
            )
            for r in result.failures()
        )
        expired = tuple(
            UUID(r.item_key)
            for r in result.item_results
            if r.status == BatchItemStatus.SUCCEEDED
        )
        report = SweepReport(
            processed=len(expired),
            failed=failures,
            skipped=result.skipped,
            expired_ids=expired,
            run=result,
        )
        logger.info(
            "expiration_sweep_completed",
            extra={
                "job_id": str(result.job_id),
                "processed": report.processed,
                "failed": len(failures),
                "skipped": report.skipped,
            },
        )
        return report
