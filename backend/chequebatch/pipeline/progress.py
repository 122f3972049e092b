"""
ProgressAggregator — sole owner of a BatchJob's counters and status.

Responsibilities:
    - QUEUED → PROCESSING on start
    - Count item outcomes (processed == success + failed, always)
    - Publish counters to the registry (best-effort, never raised)
    - Compute the terminal status exactly once
    - Force FAILED on cancellation or a fatal orchestration error
    - Notice a batch terminated elsewhere (another worker's cancel)
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Iterable

from chequebatch.core.constants import TERMINAL_BATCH_STATUSES, BatchStatus
from chequebatch.core.logging import get_logger
from chequebatch.pipeline.cancellation import CancellationToken
from chequebatch.pipeline.context import BatchJob, BatchReport, ItemOutcome
from chequebatch.pipeline.errors import InvalidBatchStateError
from chequebatch.registry.base import BatchRegistry


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProgressAggregator:
    """
    Tracks one batch.  The scheduler is the only caller of record(); the
    orchestrator drives start/finalize/cancel.
    """

    def __init__(
        self,
        job: BatchJob,
        registry: BatchRegistry,
        *,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.job = job
        self.registry = registry
        self._now = now
        self.logger = get_logger("pipeline.progress").bind(batch_id=job.id)

    @property
    def is_terminal(self) -> bool:
        return self.job.status in TERMINAL_BATCH_STATUSES

    # ─── Lifecycle ────────────────────────────────

    async def start(self) -> None:
        if self.job.status != BatchStatus.QUEUED:
            raise InvalidBatchStateError(
                f"Cannot start batch in status {self.job.status}",
                batch_id=self.job.id,
            )
        self.job.status = BatchStatus.PROCESSING
        self.logger.info("Batch processing started", total_items=self.job.total_items)
        await self._safe_write(
            "update_status",
            self.registry.update_status(self.job.id, BatchStatus.PROCESSING),
        )

    def record(self, outcomes: Iterable[ItemOutcome]) -> None:
        """Add resolved outcomes to the counters."""
        outcomes = list(outcomes)
        if self.is_terminal:
            raise InvalidBatchStateError(
                f"Cannot record outcomes on a {self.job.status} batch",
                batch_id=self.job.id,
            )
        if self.job.processed_items + len(outcomes) > self.job.total_items:
            raise InvalidBatchStateError(
                f"Recording {len(outcomes)} outcomes would exceed "
                f"{self.job.total_items} total items",
                batch_id=self.job.id,
            )

        for outcome in outcomes:
            if outcome.succeeded:
                self.job.success_count += 1
            else:
                self.job.failed_count += 1
        self.job.processed_items = self.job.success_count + self.job.failed_count

    async def publish(self) -> None:
        """Push the current counters to the registry."""
        self.logger.debug("Progress", **self.counters())
        await self._safe_write(
            "update_progress",
            self.registry.update_progress(
                self.job.id,
                self.job.processed_items,
                self.job.success_count,
                self.job.failed_count,
            ),
        )

    async def finalize(self, report: BatchReport | None) -> BatchStatus:
        """
        Decide the terminal status from the counters and persist it with
        the report.  Callable exactly once.
        """
        if self.is_terminal:
            raise InvalidBatchStateError(
                f"Batch already finalized as {self.job.status}",
                batch_id=self.job.id,
            )

        if self.job.success_count == 0:
            status = BatchStatus.FAILED
        elif self.job.failed_count == 0:
            status = BatchStatus.COMPLETED
        else:
            status = BatchStatus.PARTIALLY_COMPLETED

        self.job.status = status
        self.job.completed_at = self._now()
        if report is not None:
            self.job.risk_summary = report.risk_summary()

        self.logger.info("Batch finalized", status=status, **self.counters())
        await self._safe_write(
            "finalize",
            self.registry.finalize(self.job.id, status, report),
        )
        return status

    async def cancel(self, reason: str) -> None:
        await self._fail(f"Cancelled: {reason}")

    async def force_fail(self, reason: str) -> None:
        await self._fail(reason)

    async def _fail(self, error_summary: str) -> None:
        if self.is_terminal:
            raise InvalidBatchStateError(
                f"Batch already finalized as {self.job.status}",
                batch_id=self.job.id,
            )
        self.job.status = BatchStatus.FAILED
        self.job.completed_at = self._now()
        self.job.error_summary = error_summary

        self.logger.warning("Batch set to FAILED", reason=error_summary, **self.counters())
        await self._safe_write(
            "finalize",
            self.registry.finalize(
                self.job.id, BatchStatus.FAILED, None, error_summary=error_summary,
            ),
        )

    async def check_stored_status(self, token: CancellationToken) -> bool:
        """
        Re-read the stored batch.  If another process already moved it to a
        terminal status, adopt that status and trip ``token``.  Returns
        whether the run is cancelled.
        """
        if token.cancelled:
            return True
        try:
            stored = await self.registry.get(self.job.id)
        except Exception as exc:
            self.logger.warning("Registry get failed (non-fatal)", error=str(exc))
            return False
        if self.is_terminal or stored.status not in TERMINAL_BATCH_STATUSES:
            return False

        reason = stored.error_summary or f"Batch set to {stored.status} by another process"
        self.job.status = stored.status
        self.job.completed_at = stored.completed_at or self._now()
        self.job.error_summary = stored.error_summary
        token.cancel(reason)
        self.logger.warning("Batch terminated outside this run", status=stored.status, reason=reason)
        return True

    # ─── Helpers ──────────────────────────────────

    def counters(self) -> dict[str, int]:
        return {
            "processed_items": self.job.processed_items,
            "success_count": self.job.success_count,
            "failed_count": self.job.failed_count,
            "total_items": self.job.total_items,
        }

    async def _safe_write(self, operation: str, write) -> None:
        try:
            await write
        except Exception as exc:
            self.logger.warning(
                f"Registry {operation} failed (non-fatal)",
                error=str(exc),
            )
