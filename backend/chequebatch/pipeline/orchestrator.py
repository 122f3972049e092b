"""
BatchOrchestrator — wires validation, scheduling, progress, reporting
and the registry into one batch run.

Responsibilities:
    - Reject a submission before any BatchJob exists (guard, empty batch)
    - Register the batch (the only registry write that may fail the call)
    - Drive the items through the scheduler and record each one
    - Build the report and finalize the batch exactly once
    - Force FAILED and re-raise on an unexpected orchestration error
    - Cancel a running or queued batch
"""

from __future__ import annotations

import asyncio
import time
import uuid
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Sequence

from chequebatch.core.constants import BatchStatus, RiskLevel
from chequebatch.core.logging import get_logger
from chequebatch.pipeline.cancellation import CancellationToken
from chequebatch.pipeline.context import (
    BatchJob,
    BatchRunResult,
    Item,
    OrchestrationOptions,
)
from chequebatch.pipeline.errors import (
    BatchNotFoundError,
    BatchValidationError,
    InvalidBatchStateError,
    RegistryError,
    SchedulerFatalError,
)
from chequebatch.pipeline.progress import ProgressAggregator
from chequebatch.pipeline.report import build_report
from chequebatch.pipeline.runner import PipelineRunner
from chequebatch.pipeline.scheduler import ConcurrencyScheduler
from chequebatch.registry.base import BatchRegistry
from chequebatch.security.rate_limit import RequestGuard

Sleep = Callable[[float], Awaitable[None]]

BATCH_ENDPOINT = "process-batch"

CANCELLABLE_STATUSES = (BatchStatus.QUEUED, BatchStatus.PROCESSING)


def new_batch_id() -> str:
    return f"batch_{uuid.uuid4().hex[:16]}"


@dataclass
class _ActiveRun:
    token: CancellationToken
    progress: ProgressAggregator


class BatchOrchestrator:
    """
    Usage::

        orchestrator = BatchOrchestrator(PipelineRunner(cheque_flow(client)), registry)
        result = await orchestrator.process(items, OrchestrationOptions(parallel=True))
    """

    def __init__(
        self,
        runner: PipelineRunner,
        registry: BatchRegistry,
        *,
        guard: RequestGuard | None = None,
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.runner = runner
        self.registry = registry
        self.guard = guard
        self._sleep = sleep
        self._clock = clock
        self._active: dict[str, _ActiveRun] = {}
        self.logger = get_logger("pipeline.orchestrator")

    # ─── Submission ───────────────────────────────

    async def submit(
        self,
        items: Sequence[Item],
        *,
        batch_id: str | None = None,
        requester: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> BatchJob:
        """Validate and register a batch.  Nothing is scheduled yet."""
        batch_id = batch_id or new_batch_id()
        log = self.logger.bind(batch_id=batch_id, requester=requester)

        if requester and self.guard is not None:
            self.guard.enforce(requester, BATCH_ENDPOINT)

        if not items:
            log.warning("Batch rejected, no items")
            raise BatchValidationError(
                "No valid files found in batch",
                code="EMPTY_BATCH",
                batch_id=batch_id,
            )

        try:
            job = await self.registry.create(batch_id, len(items), metadata=metadata)
        except Exception as exc:
            log.error("Batch registration failed", error=str(exc))
            raise RegistryError(
                f"Failed to create batch job: {exc}",
                batch_id=batch_id,
            ) from exc

        log.info("Batch submitted", total_items=job.total_items)
        return job

    # ─── Execution ────────────────────────────────

    async def run(
        self,
        job: BatchJob,
        items: Sequence[Item],
        options: OrchestrationOptions | None = None,
    ) -> BatchRunResult:
        """Drive a submitted batch to its terminal status."""
        options = options or OrchestrationOptions()
        started = self._clock()
        log = self.logger.bind(batch_id=job.id, total_items=job.total_items)

        token = CancellationToken()
        progress = ProgressAggregator(job, self.registry)
        scheduler = ConcurrencyScheduler(self.runner, progress, sleep=self._sleep)

        await progress.start()
        self._active[job.id] = _ActiveRun(token=token, progress=progress)

        try:
            scheduled = await scheduler.run(items, options, token)

            if not token.cancelled:
                for item in items:
                    await self._record_item(job.id, item, log)

            if await progress.check_stored_status(token):
                log.info("Batch run stopped after cancellation", reason=token.reason)
                return BatchRunResult(
                    batch_id=job.id,
                    status=job.status,
                    total_items=job.total_items,
                    success_count=job.success_count,
                    failed_count=job.failed_count,
                    outcomes=tuple(scheduled.outcomes),
                    duration_ms=self._elapsed_ms(started),
                    cancelled=True,
                )

            report = build_report(items, job.total_items)
            status = await progress.finalize(report)

        except Exception as exc:
            log.error(
                "Batch orchestration failed",
                risk_level=RiskLevel.HIGH,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            if not progress.is_terminal:
                await progress.force_fail(f"Batch processing failed: {exc}")
            if isinstance(exc, SchedulerFatalError):
                raise
            raise SchedulerFatalError(str(exc), batch_id=job.id) from exc

        finally:
            self._active.pop(job.id, None)

        log.info(
            "Batch run complete",
            status=status,
            success_count=job.success_count,
            failed_count=job.failed_count,
            total_amount=str(report.total_amount),
        )
        return BatchRunResult(
            batch_id=job.id,
            status=status,
            total_items=job.total_items,
            success_count=job.success_count,
            failed_count=job.failed_count,
            outcomes=tuple(scheduled.outcomes),
            report=report,
            duration_ms=self._elapsed_ms(started),
        )

    async def process(
        self,
        items: Sequence[Item],
        options: OrchestrationOptions | None = None,
        *,
        batch_id: str | None = None,
        requester: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> BatchRunResult:
        """submit() then run()."""
        job = await self.submit(items, batch_id=batch_id, requester=requester, metadata=metadata)
        return await self.run(job, items, options)

    # ─── Cancellation ─────────────────────────────

    async def cancel(self, batch_id: str, reason: str = "cancelled by user") -> BatchJob:
        """
        Cancel a QUEUED or PROCESSING batch.  The batch is FAILED as soon
        as this returns; in-flight items stop at their next stage boundary.
        """
        active = self._active.get(batch_id)
        if active is not None:
            if active.progress.is_terminal:
                raise InvalidBatchStateError(
                    f"Batch {batch_id} is already {active.progress.job.status}",
                    batch_id=batch_id,
                )
            active.token.cancel(reason)
            await active.progress.cancel(reason)
            self.logger.info("Batch cancelled", batch_id=batch_id, reason=reason)
            return active.progress.job

        # Not running in this process: fail it through the registry.
        try:
            job = await self.registry.get(batch_id)
        except BatchNotFoundError:
            raise
        except Exception as exc:
            raise BatchNotFoundError(f"Batch {batch_id} not found: {exc}", batch_id=batch_id) from exc

        if job.status not in CANCELLABLE_STATUSES:
            raise InvalidBatchStateError(
                f"Cannot cancel batch {batch_id} in status {job.status}",
                batch_id=batch_id,
            )

        previous_status = job.status
        progress = ProgressAggregator(job, self.registry)
        await progress.cancel(reason)
        self.logger.info("Batch cancelled", batch_id=batch_id, reason=reason, previous_status=previous_status)
        return job

    # ─── Helpers ──────────────────────────────────

    async def _record_item(self, batch_id: str, item: Item, log) -> None:
        try:
            await self.registry.record_item(batch_id, item)
        except Exception as exc:
            log.warning("Registry record_item failed (non-fatal)", item_id=item.id, error=str(exc))

    def _elapsed_ms(self, started: float) -> int:
        return int((self._clock() - started) * 1000)
