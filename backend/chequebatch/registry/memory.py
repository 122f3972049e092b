"""
InMemoryBatchRegistry — process-local registry for tests, demos and
single-worker deployments without a database.
"""

from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any

from chequebatch.core.constants import TERMINAL_BATCH_STATUSES, BatchStatus, ItemStatus
from chequebatch.core.logging import get_logger
from chequebatch.pipeline.context import BatchJob, BatchReport, Item
from chequebatch.pipeline.errors import BatchNotFoundError, RegistryError
from chequebatch.registry.base import BatchSummary, ItemRecord, summarize

logger = get_logger(__name__)


class InMemoryBatchRegistry:
    """Keeps BatchJob copies and per-item records in dicts."""

    def __init__(self) -> None:
        self._jobs: dict[str, BatchJob] = {}
        self._items: dict[str, dict[str, ItemRecord]] = {}
        self._metadata: dict[str, dict[str, Any]] = {}
        self._lock = asyncio.Lock()

    def _job(self, batch_id: str) -> BatchJob:
        try:
            return self._jobs[batch_id]
        except KeyError:
            raise BatchNotFoundError(f"Batch {batch_id} not found", batch_id=batch_id) from None

    def _open_job(self, batch_id: str, operation: str) -> BatchJob | None:
        """The job, or None once it has reached a terminal status."""
        job = self._job(batch_id)
        if job.status in TERMINAL_BATCH_STATUSES:
            logger.debug(f"Ignored {operation} on terminal batch", batch_id=batch_id, status=job.status)
            return None
        return job

    async def create(
        self,
        batch_id: str,
        total_items: int,
        *,
        metadata: dict[str, Any] | None = None,
    ) -> BatchJob:
        async with self._lock:
            if batch_id in self._jobs:
                raise RegistryError(f"Batch {batch_id} already exists", batch_id=batch_id)
            job = BatchJob(
                id=batch_id,
                total_items=total_items,
                created_at=datetime.now(timezone.utc),
            )
            self._jobs[batch_id] = job
            self._items[batch_id] = {}
            self._metadata[batch_id] = dict(metadata or {})

        logger.info("Batch registered", batch_id=batch_id, total_items=total_items)
        return replace(job)

    async def update_status(self, batch_id: str, status: BatchStatus) -> None:
        async with self._lock:
            job = self._open_job(batch_id, "update_status")
            if job is not None:
                job.status = status

    async def update_progress(
        self,
        batch_id: str,
        processed: int,
        success: int,
        failed: int,
    ) -> None:
        async with self._lock:
            job = self._open_job(batch_id, "update_progress")
            if job is None:
                return
            job.processed_items = processed
            job.success_count = success
            job.failed_count = failed

    async def record_item(self, batch_id: str, item: Item) -> None:
        async with self._lock:
            self._job(batch_id)
            self._items[batch_id][item.id] = ItemRecord.from_item(item)

    async def finalize(
        self,
        batch_id: str,
        status: BatchStatus,
        report: BatchReport | None,
        *,
        error_summary: str | None = None,
    ) -> None:
        async with self._lock:
            job = self._open_job(batch_id, "finalize")
            if job is None:
                return
            job.status = status
            job.completed_at = datetime.now(timezone.utc)
            if report is not None:
                job.risk_summary = report.risk_summary()
            if error_summary is not None:
                job.error_summary = error_summary

    async def get(self, batch_id: str) -> BatchJob:
        async with self._lock:
            return replace(self._job(batch_id))

    async def list_items(
        self,
        batch_id: str,
        *,
        status: ItemStatus | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[ItemRecord]:
        async with self._lock:
            self._job(batch_id)
            records = list(self._items[batch_id].values())
        if status is not None:
            records = [r for r in records if r.status == status]
        end = None if limit is None else offset + limit
        return records[offset:end]

    async def summary(self, batch_id: str) -> BatchSummary:
        async with self._lock:
            job = replace(self._job(batch_id))
            records = list(self._items[batch_id].values())
        return summarize(job, records)

    def metadata(self, batch_id: str) -> dict[str, Any]:
        return dict(self._metadata.get(batch_id, {}))
