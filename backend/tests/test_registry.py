"""Tests for the in-memory registry and the SQL row mapping."""

import asyncio
from decimal import Decimal
from types import SimpleNamespace

import pytest
from sqlalchemy.dialects import postgresql

from chequebatch.core.constants import BatchStatus, ItemStatus
from chequebatch.db.models import BatchItemRow, BatchJobRow
from chequebatch.pipeline.context import (
    BatchReport,
    ChequeAnalysis,
    ComplianceAssessment,
    Decision,
    InstitutionDetection,
    Item,
    PipelineResult,
)
from chequebatch.pipeline.errors import BatchNotFoundError, RegistryError
from chequebatch.registry.base import ItemRecord
from chequebatch.registry.memory import InMemoryBatchRegistry
from chequebatch.registry.sql import (
    OSFI_REPORTABLE_FLAG,
    SqlBatchRegistry,
    _audit_row,
    _to_job,
    _to_record,
)


def _item(item_id: str, status: ItemStatus, *, score: float = 0, osfi: bool = False) -> Item:
    item = Item(id=item_id, name=f"{item_id}.jpg", payload_ref="x", status=status, processing_time_ms=250)
    if status == ItemStatus.COMPLETED:
        item.result = PipelineResult(
            analysis=ChequeAnalysis.from_payload({"amountNumerals": "$20.50", "transitNumber": "12345"}),
            institution=InstitutionDetection.from_payload({"overallAssessment": {"finalInstitutionName": "BMO"}}),
            compliance=ComplianceAssessment.from_payload({}),
            decision=Decision.from_payload({
                "decisionId": f"DEC-{item_id}",
                "decision": {
                    "riskScore": score,
                    "finalDecision": "INVESTIGATE",
                    "confidence": 0.8,
                    "keyFactors": ["amount mismatch"],
                    "decisionReasoning": "words and numerals differ",
                },
                "regulatoryCompliance": {"osfiReporting": {"required": osfi}},
            }),
        )
    else:
        item.error = "detect-institution failed with status 500"
        item.retries = 2
    return item


def test_create_and_get_returns_copies() -> None:
    registry = InMemoryBatchRegistry()

    job = asyncio.run(registry.create("b1", 2, metadata={"batchName": "morning"}))
    job.status = BatchStatus.FAILED

    assert asyncio.run(registry.get("b1")).status == BatchStatus.QUEUED
    assert registry.metadata("b1") == {"batchName": "morning"}


def test_duplicate_create_is_rejected() -> None:
    registry = InMemoryBatchRegistry()
    asyncio.run(registry.create("b1", 1))

    with pytest.raises(RegistryError):
        asyncio.run(registry.create("b1", 1))


def test_unknown_batch_raises_not_found() -> None:
    registry = InMemoryBatchRegistry()

    with pytest.raises(BatchNotFoundError):
        asyncio.run(registry.get("nope"))
    with pytest.raises(BatchNotFoundError):
        asyncio.run(registry.update_progress("nope", 1, 1, 0))


def test_list_items_filters_and_pages() -> None:
    registry = InMemoryBatchRegistry()

    async def run():
        await registry.create("b1", 4)
        await registry.record_item("b1", _item("i1", ItemStatus.COMPLETED))
        await registry.record_item("b1", _item("i2", ItemStatus.FAILED))
        await registry.record_item("b1", _item("i3", ItemStatus.COMPLETED))
        await registry.record_item("b1", _item("i4", ItemStatus.COMPLETED))
        completed = await registry.list_items("b1", status=ItemStatus.COMPLETED)
        page = await registry.list_items("b1", limit=2, offset=1)
        return completed, page

    completed, page = asyncio.run(run())

    assert [r.item_id for r in completed] == ["i1", "i3", "i4"]
    assert [r.item_id for r in page] == ["i2", "i3"]


def test_record_item_is_idempotent() -> None:
    registry = InMemoryBatchRegistry()

    async def run():
        await registry.create("b1", 1)
        item = _item("i1", ItemStatus.COMPLETED)
        await registry.record_item("b1", item)
        await registry.record_item("b1", item)
        return await registry.list_items("b1")

    assert len(asyncio.run(run())) == 1


def test_summary_uses_compliance_bands() -> None:
    registry = InMemoryBatchRegistry()

    async def run():
        await registry.create("b1", 5)
        await registry.record_item("b1", _item("i1", ItemStatus.COMPLETED, score=72, osfi=True))
        await registry.record_item("b1", _item("i2", ItemStatus.COMPLETED, score=45))
        await registry.record_item("b1", _item("i3", ItemStatus.COMPLETED, score=39))
        await registry.record_item("b1", _item("i4", ItemStatus.FAILED))
        await registry.update_progress("b1", 4, 3, 1)
        return await registry.summary("b1")

    summary = asyncio.run(run())

    assert (summary.high_risk_count, summary.medium_risk_count, summary.low_risk_count) == (1, 1, 1)
    assert summary.osfi_reportable_count == 1
    assert summary.successful_items == 3
    assert summary.failed_items == 1
    assert summary.processed_items == 4
    assert summary.total_amount == Decimal("61.50")
    assert summary.average_processing_time_ms == 250


def test_finalize_records_report_and_error() -> None:
    registry = InMemoryBatchRegistry()

    async def run():
        await registry.create("b1", 2)
        await registry.finalize("b1", BatchStatus.PARTIALLY_COMPLETED, BatchReport(total_items=2, completed_items=1))
        return await registry.get("b1")

    job = asyncio.run(run())

    assert job.status == BatchStatus.PARTIALLY_COMPLETED
    assert job.risk_summary["successRate"] == 50.0
    assert job.completed_at is not None


def test_item_record_from_failed_item() -> None:
    record = ItemRecord.from_item(_item("i2", ItemStatus.FAILED))

    assert record.status == ItemStatus.FAILED
    assert record.retries == 2
    assert record.amount is None
    assert "status 500" in record.error


def test_audit_row_for_completed_item() -> None:
    row = _audit_row("b1", _item("i1", ItemStatus.COMPLETED, score=88, osfi=True))

    assert row.decision_id == "DEC-i1"
    assert row.decision_type == "INVESTIGATE"
    assert row.risk_score == 88
    assert row.confidence_score == 0.8
    assert row.key_factors == ["amount mismatch"]
    assert row.regulatory_flags == [OSFI_REPORTABLE_FLAG]
    assert row.ai_reasoning == {"decisionReasoning": "words and numerals differ"}
    assert row.processing_time_ms == 250
    assert row.batch_id == "b1"


def test_row_mapping_round_trips_job_and_item_fields() -> None:
    job_row = BatchJobRow(
        id="b1",
        status="PROCESSING",
        total_items=3,
        processed_items=2,
        successful_items=1,
        failed_items=1,
        risk_summary=None,
    )
    item_row = BatchItemRow(
        batch_id="b1",
        item_id="i1",
        name="i1.jpg",
        status="COMPLETED",
        retries=1,
        amount=Decimal("20.50"),
        osfi_reportable=None,
    )

    job = _to_job(job_row)
    record = _to_record(item_row)

    assert job.status == BatchStatus.PROCESSING
    assert (job.processed_items, job.success_count, job.failed_count) == (2, 1, 1)
    assert job.risk_summary == {}
    assert record.status == ItemStatus.COMPLETED
    assert record.amount == Decimal("20.50")
    assert record.osfi_reportable is False


def test_terminal_batch_ignores_later_writes() -> None:
    registry = InMemoryBatchRegistry()

    async def run():
        await registry.create("b1", 3)
        await registry.update_status("b1", BatchStatus.PROCESSING)
        await registry.update_progress("b1", 1, 1, 0)
        await registry.finalize("b1", BatchStatus.FAILED, None, error_summary="Cancelled: operator")
        await registry.update_progress("b1", 3, 3, 0)
        await registry.update_status("b1", BatchStatus.PROCESSING)
        await registry.finalize("b1", BatchStatus.COMPLETED, BatchReport(total_items=3, completed_items=3))
        return await registry.get("b1")

    job = asyncio.run(run())

    assert job.status == BatchStatus.FAILED
    assert job.error_summary == "Cancelled: operator"
    assert job.processed_items == 1
    assert job.risk_summary == {}


class RecordingSession:
    def __init__(self, rowcount: int = 1) -> None:
        self.statements = []
        self.rowcount = rowcount

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False

    def begin(self):
        return self

    async def execute(self, statement):
        self.statements.append(statement)
        return SimpleNamespace(rowcount=self.rowcount)


@pytest.mark.parametrize("write", [
    lambda r: r.update_status("b1", BatchStatus.PROCESSING),
    lambda r: r.update_progress("b1", 2, 1, 1),
    lambda r: r.finalize("b1", BatchStatus.COMPLETED, None),
])
def test_sql_writes_skip_terminal_batches(write) -> None:
    session = RecordingSession(rowcount=0)
    registry = SqlBatchRegistry(lambda: session)

    asyncio.run(write(registry))

    [statement] = session.statements
    compiled = statement.compile(dialect=postgresql.dialect())
    assert "NOT IN" in str(compiled)
    guarded = [v for v in compiled.params.values() if isinstance(v, (list, tuple))]
    assert [set(v) for v in guarded] == [{"COMPLETED", "PARTIALLY_COMPLETED", "FAILED"}]
