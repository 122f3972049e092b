"""
SqlBatchRegistry — BatchRegistry backed by PostgreSQL (async SQLAlchemy).

Every method opens its own session and transaction, so each write is
independent and can be retried by the caller without side effects.
``record_item`` upserts on (batch_id, item_id) and, for COMPLETED items,
appends a decision_audit_trail row.
"""

from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from chequebatch.core.constants import TERMINAL_BATCH_STATUSES, BatchStatus, ItemStatus
from chequebatch.core.logging import get_logger
from chequebatch.db.models import BatchItemRow, BatchJobRow, DecisionAuditRow
from chequebatch.db.models.base import utcnow
from chequebatch.pipeline.context import BatchJob, BatchReport, Item, dig
from chequebatch.pipeline.errors import BatchNotFoundError
from chequebatch.registry.base import BatchSummary, ItemRecord, summarize

logger = get_logger(__name__)

OSFI_REPORTABLE_FLAG = "OSFI_REPORTABLE"

_TERMINAL = sorted(TERMINAL_BATCH_STATUSES)


def _to_job(row: BatchJobRow) -> BatchJob:
    return BatchJob(
        id=row.id,
        total_items=row.total_items,
        status=BatchStatus(row.status),
        processed_items=row.processed_items or 0,
        success_count=row.successful_items or 0,
        failed_count=row.failed_items or 0,
        created_at=row.created_at,
        completed_at=row.completed_at,
        risk_summary=row.risk_summary or {},
        error_summary=row.error_summary,
    )


def _to_record(row: BatchItemRow) -> ItemRecord:
    return ItemRecord(
        item_id=row.item_id,
        name=row.name,
        status=ItemStatus(row.status),
        retries=row.retries or 0,
        processing_time_ms=row.processing_time_ms,
        transit_number=row.transit_number,
        amount=row.amount,
        institution_name=row.institution_name,
        final_decision=row.final_decision,
        risk_score=row.risk_score,
        osfi_reportable=bool(row.osfi_reportable),
        error=row.error_message,
    )


def _audit_row(batch_id: str, item: Item) -> DecisionAuditRow:
    decision = item.result.decision
    return DecisionAuditRow(
        decision_id=decision.decision_id or f"DEC-{uuid.uuid4().hex[:12]}",
        decision_type=decision.final_decision or "UNKNOWN",
        risk_score=decision.risk_score,
        confidence_score=decision.confidence,
        key_factors=dig(decision.payload, "decision", "keyFactors") or [],
        regulatory_flags=[OSFI_REPORTABLE_FLAG] if decision.osfi_reportable else [],
        ai_reasoning={"decisionReasoning": dig(decision.payload, "decision", "decisionReasoning")},
        processing_time_ms=item.processing_time_ms or 0,
        batch_id=batch_id,
        item_id=item.id,
    )


class SqlBatchRegistry:
    """
    Usage::

        engine = make_engine()
        registry = SqlBatchRegistry(make_session_factory(engine))
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def _update_open_job(self, batch_id: str, operation: str, **values: Any) -> None:
        """UPDATE batch_jobs unless the batch has already reached a terminal status."""
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    update(BatchJobRow)
                    .where(
                        BatchJobRow.id == batch_id,
                        BatchJobRow.status.not_in(_TERMINAL),
                    )
                    .values(**values)
                )
        if result.rowcount == 0:
            logger.debug(f"Ignored {operation} on terminal or missing batch", batch_id=batch_id)

    async def _get_row(self, session: AsyncSession, batch_id: str) -> BatchJobRow:
        row = await session.get(BatchJobRow, batch_id)
        if row is None:
            raise BatchNotFoundError(f"Batch {batch_id} not found", batch_id=batch_id)
        return row

    # ─── Writes ───────────────────────────────────

    async def create(
        self,
        batch_id: str,
        total_items: int,
        *,
        metadata: dict[str, Any] | None = None,
    ) -> BatchJob:
        async with self._session_factory() as session:
            async with session.begin():
                row = BatchJobRow(
                    id=batch_id,
                    status=BatchStatus.QUEUED,
                    total_items=total_items,
                    processed_items=0,
                    successful_items=0,
                    failed_items=0,
                    metadata_=metadata or {},
                    created_at=utcnow(),
                )
                session.add(row)
                await session.flush()
                job = _to_job(row)

        logger.info("Batch registered", batch_id=batch_id, total_items=total_items)
        return job

    async def update_status(self, batch_id: str, status: BatchStatus) -> None:
        await self._update_open_job(batch_id, "update_status", status=status)

    async def update_progress(
        self,
        batch_id: str,
        processed: int,
        success: int,
        failed: int,
    ) -> None:
        await self._update_open_job(
            batch_id,
            "update_progress",
            processed_items=processed,
            successful_items=success,
            failed_items=failed,
        )

    async def record_item(self, batch_id: str, item: Item) -> None:
        record = ItemRecord.from_item(item)
        values = {
            "name": record.name,
            "status": record.status,
            "retries": record.retries,
            "processing_time_ms": record.processing_time_ms,
            "error_message": record.error,
            "transit_number": record.transit_number,
            "amount": record.amount,
            "institution_name": record.institution_name,
            "final_decision": record.final_decision,
            "risk_score": record.risk_score,
            "osfi_reportable": record.osfi_reportable,
            "result": item.result.to_dict() if item.result else None,
        }

        async with self._session_factory() as session:
            async with session.begin():
                existing = (await session.execute(
                    select(BatchItemRow).where(
                        BatchItemRow.batch_id == batch_id,
                        BatchItemRow.item_id == item.id,
                    )
                )).scalar_one_or_none()

                already_audited = existing is not None and existing.status == ItemStatus.COMPLETED
                if existing is None:
                    session.add(BatchItemRow(batch_id=batch_id, item_id=item.id, **values))
                else:
                    for key, value in values.items():
                        setattr(existing, key, value)

                if item.status == ItemStatus.COMPLETED and item.result is not None and not already_audited:
                    session.add(_audit_row(batch_id, item))

    async def finalize(
        self,
        batch_id: str,
        status: BatchStatus,
        report: BatchReport | None,
        *,
        error_summary: str | None = None,
    ) -> None:
        values: dict[str, Any] = {"status": status, "completed_at": utcnow()}
        if report is not None:
            values["risk_summary"] = report.risk_summary()
        if error_summary is not None:
            values["error_summary"] = error_summary

        await self._update_open_job(batch_id, "finalize", **values)
        logger.info("Batch finalized in database", batch_id=batch_id, status=status)

    # ─── Reads ────────────────────────────────────

    async def get(self, batch_id: str) -> BatchJob:
        async with self._session_factory() as session:
            return _to_job(await self._get_row(session, batch_id))

    async def list_items(
        self,
        batch_id: str,
        *,
        status: ItemStatus | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[ItemRecord]:
        async with self._session_factory() as session:
            await self._get_row(session, batch_id)
            query = (
                select(BatchItemRow)
                .where(BatchItemRow.batch_id == batch_id)
                .order_by(BatchItemRow.id)
                .offset(offset)
            )
            if status is not None:
                query = query.where(BatchItemRow.status == status)
            if limit is not None:
                query = query.limit(limit)
            rows = (await session.execute(query)).scalars().all()
            return [_to_record(row) for row in rows]

    async def summary(self, batch_id: str) -> BatchSummary:
        async with self._session_factory() as session:
            job = _to_job(await self._get_row(session, batch_id))
            rows = (await session.execute(
                select(BatchItemRow).where(BatchItemRow.batch_id == batch_id)
            )).scalars().all()
            return summarize(job, [_to_record(row) for row in rows])
