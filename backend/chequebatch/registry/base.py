"""
BatchRegistry — interface to the persistence collaborator.

The orchestrator only ever writes through this protocol.  Every write is
assumed idempotent and independently retryable by the implementation;
the core never retries a registry write itself.

ItemRecord / BatchSummary are the storage-side views shared by every
implementation so summaries are computed identically everywhere.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable, Protocol

from chequebatch.core.constants import (
    COMPLIANCE_HIGH_RISK_THRESHOLD,
    COMPLIANCE_MEDIUM_RISK_THRESHOLD,
    BatchStatus,
    ItemStatus,
)
from chequebatch.pipeline.context import BatchJob, BatchReport, Item
from chequebatch.pipeline.report import parse_amount


@dataclass(frozen=True)
class ItemRecord:
    """Flattened, storable view of one processed item."""

    item_id: str
    name: str
    status: ItemStatus
    retries: int = 0
    processing_time_ms: int | None = None
    transit_number: str | None = None
    amount: Decimal | None = None
    institution_name: str | None = None
    final_decision: str | None = None
    risk_score: float | None = None
    osfi_reportable: bool = False
    error: str | None = None

    @classmethod
    def from_item(cls, item: Item) -> ItemRecord:
        result = item.result
        if result is None:
            return cls(
                item_id=item.id,
                name=item.name,
                status=item.status,
                retries=item.retries,
                processing_time_ms=item.processing_time_ms,
                error=item.error,
            )
        return cls(
            item_id=item.id,
            name=item.name,
            status=item.status,
            retries=item.retries,
            processing_time_ms=item.processing_time_ms,
            transit_number=result.analysis.transit_number,
            amount=parse_amount(result.analysis.amount_numerals),
            institution_name=result.institution.institution_name,
            final_decision=result.decision.final_decision,
            risk_score=result.decision.risk_score,
            osfi_reportable=result.decision.osfi_reportable,
            error=item.error,
        )


@dataclass(frozen=True)
class BatchSummary:
    """
    Stored-state summary for polling clients.

    Risk counts use the compliance bands (>=70 high, 40-69 medium) that
    decide OSFI reportability, NOT the report's decision buckets.
    """

    batch_id: str
    status: BatchStatus
    total_items: int
    processed_items: int
    successful_items: int
    failed_items: int
    high_risk_count: int
    medium_risk_count: int
    low_risk_count: int
    osfi_reportable_count: int
    total_amount: Decimal
    average_processing_time_ms: float | None


def summarize(job: BatchJob, records: Iterable[ItemRecord]) -> BatchSummary:
    """Build a BatchSummary from a job and its stored item records."""
    high = medium = low = osfi = completed = failed = 0
    total_amount = Decimal("0")
    times: list[int] = []

    for record in records:
        if record.status == ItemStatus.FAILED:
            failed += 1
            continue
        if record.status != ItemStatus.COMPLETED:
            continue
        completed += 1
        score = record.risk_score or 0
        if score >= COMPLIANCE_HIGH_RISK_THRESHOLD:
            high += 1
        elif score >= COMPLIANCE_MEDIUM_RISK_THRESHOLD:
            medium += 1
        else:
            low += 1
        if record.osfi_reportable:
            osfi += 1
        if record.amount is not None:
            total_amount += record.amount
        if record.processing_time_ms is not None:
            times.append(record.processing_time_ms)

    return BatchSummary(
        batch_id=job.id,
        status=job.status,
        total_items=job.total_items,
        processed_items=job.processed_items,
        successful_items=completed,
        failed_items=failed,
        high_risk_count=high,
        medium_risk_count=medium,
        low_risk_count=low,
        osfi_reportable_count=osfi,
        total_amount=total_amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP),
        average_processing_time_ms=sum(times) / len(times) if times else None,
    )


class BatchRegistry(Protocol):
    """Persistence collaborator for batch and item state."""

    async def create(
        self,
        batch_id: str,
        total_items: int,
        *,
        metadata: dict[str, Any] | None = None,
    ) -> BatchJob:
        ...

    async def update_status(self, batch_id: str, status: BatchStatus) -> None:
        ...

    async def update_progress(
        self,
        batch_id: str,
        processed: int,
        success: int,
        failed: int,
    ) -> None:
        ...

    async def record_item(self, batch_id: str, item: Item) -> None:
        ...

    async def finalize(
        self,
        batch_id: str,
        status: BatchStatus,
        report: BatchReport | None,
        *,
        error_summary: str | None = None,
    ) -> None:
        ...

    async def get(self, batch_id: str) -> BatchJob:
        ...

    async def list_items(
        self,
        batch_id: str,
        *,
        status: ItemStatus | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[ItemRecord]:
        ...

    async def summary(self, batch_id: str) -> BatchSummary:
        ...
