"""
Celery tasks — cheque batch processing.

Wires the BatchOrchestrator into the Celery task system.  Each task runs
its async work with ``asyncio.run`` on a fresh database engine, so no
connection pool outlives the event loop that created it.
"""

from __future__ import annotations

import asyncio
from typing import Any

from chequebatch.clients.stage_client import StageClient
from chequebatch.core.config import settings
from chequebatch.core.constants import BatchStatus
from chequebatch.core.logging import get_logger, setup_logging
from chequebatch.db.session import make_engine, make_session_factory
from chequebatch.pipeline.context import BatchRunResult
from chequebatch.pipeline.errors import BatchValidationError, RegistryError, SecurityCheckError
from chequebatch.pipeline.flow import cheque_flow
from chequebatch.pipeline.orchestrator import BatchOrchestrator
from chequebatch.pipeline.runner import PipelineRunner
from chequebatch.registry.sql import SqlBatchRegistry
from chequebatch.schemas.batch import BatchSubmission
from chequebatch.security.rate_limit import RequestGuard
from chequebatch.sources.payload import PayloadItemSource
from chequebatch.tasks import celery_app

setup_logging(settings.LOG_LEVEL)
logger = get_logger("tasks.batch")

# One guard per worker process
_guard = RequestGuard()

# Raised before the batch is registered or while registering it; there is
# no batch of ours to mark FAILED.
_PRE_SCHEDULING_ERRORS = (BatchValidationError, SecurityCheckError, RegistryError)


async def _process(submission: BatchSubmission) -> BatchRunResult:
    items = PayloadItemSource().extract(submission)

    engine = make_engine()
    try:
        registry = SqlBatchRegistry(make_session_factory(engine))
        async with StageClient() as client:
            orchestrator = BatchOrchestrator(
                PipelineRunner(cheque_flow(client)),
                registry,
                guard=_guard,
            )
            return await orchestrator.process(
                items,
                submission.processing_options.to_options(),
                batch_id=submission.batch_id,
                requester=submission.user_id,
                metadata=submission.registry_metadata(),
            )
    finally:
        await engine.dispose()


async def _mark_failed(batch_id: str, reason: str) -> None:
    engine = make_engine()
    try:
        registry = SqlBatchRegistry(make_session_factory(engine))
        await registry.finalize(batch_id, BatchStatus.FAILED, None, error_summary=reason)
    finally:
        await engine.dispose()


async def _cancel(batch_id: str, reason: str) -> dict[str, Any]:
    engine = make_engine()
    try:
        registry = SqlBatchRegistry(make_session_factory(engine))
        async with StageClient() as client:
            orchestrator = BatchOrchestrator(PipelineRunner(cheque_flow(client)), registry)
            job = await orchestrator.cancel(batch_id, reason)
            return job.to_dict()
    finally:
        await engine.dispose()


@celery_app.task(bind=True, name="chequebatch.tasks.batch_tasks.process_batch")
def process_batch(self, submission: dict[str, Any]) -> dict[str, Any]:
    """
    Validate a submission and drive the batch to its terminal status.

    The batch ID must be assigned by the caller (``batchId``) so that a
    crash of the task itself can still be recorded against the batch.
    """
    parsed = BatchSubmission.model_validate(submission)
    task_log = logger.bind(task_id=self.request.id, batch_id=parsed.batch_id)
    task_log.info("Batch task started", files=len(parsed.files))

    try:
        result = asyncio.run(_process(parsed))
    except Exception as exc:
        task_log.exception("Batch task failed", error=str(exc))
        if parsed.batch_id and not isinstance(exc, _PRE_SCHEDULING_ERRORS):
            try:
                asyncio.run(_mark_failed(parsed.batch_id, f"Batch task failed: {exc}"))
            except Exception as mark_exc:
                task_log.warning("Failed to mark batch FAILED (non-fatal)", error=str(mark_exc))
        raise

    task_log.info(
        "Batch task finished",
        status=result.status,
        success_count=result.success_count,
        failed_count=result.failed_count,
        duration_ms=result.duration_ms,
    )
    return {
        "batch_id": result.batch_id,
        "status": result.status,
        "total_items": result.total_items,
        "success_count": result.success_count,
        "failed_count": result.failed_count,
        "duration_ms": result.duration_ms,
        "report": result.report.to_dict() if result.report else None,
    }


@celery_app.task(bind=True, name="chequebatch.tasks.batch_tasks.cancel_batch")
def cancel_batch(self, batch_id: str, reason: str = "cancelled by user") -> dict[str, Any]:
    """Mark a queued or running batch FAILED with ``Cancelled: <reason>``."""
    logger.info("Cancel task started", task_id=self.request.id, batch_id=batch_id)
    return asyncio.run(_cancel(batch_id, reason))
