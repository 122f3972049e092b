"""Tests for the Celery batch task wrapper (no broker needed)."""

import pytest

from chequebatch.core.constants import BatchStatus
from chequebatch.pipeline.context import BatchReport, BatchRunResult
from chequebatch.pipeline.errors import BatchValidationError
from chequebatch.tasks import batch_tasks

SUBMISSION = {
    "batchId": "batch-task-1",
    "batchType": "images",
    "files": [{"id": "f1", "name": "a.jpg", "data": "AAA"}],
}


def test_task_returns_run_summary(monkeypatch) -> None:
    async def fake_process(submission):
        assert submission.batch_id == "batch-task-1"
        return BatchRunResult(
            batch_id=submission.batch_id,
            status=BatchStatus.COMPLETED,
            total_items=1,
            success_count=1,
            failed_count=0,
            report=BatchReport(total_items=1, completed_items=1),
            duration_ms=42,
        )

    monkeypatch.setattr(batch_tasks, "_process", fake_process)

    result = batch_tasks.process_batch(SUBMISSION)

    assert result["status"] == BatchStatus.COMPLETED
    assert result["success_count"] == 1
    assert result["report"]["completedItems"] == 1


def test_task_crash_marks_batch_failed(monkeypatch) -> None:
    marked = []

    async def crashing_process(submission):
        raise RuntimeError("worker lost database")

    async def fake_mark_failed(batch_id, reason):
        marked.append((batch_id, reason))

    monkeypatch.setattr(batch_tasks, "_process", crashing_process)
    monkeypatch.setattr(batch_tasks, "_mark_failed", fake_mark_failed)

    with pytest.raises(RuntimeError):
        batch_tasks.process_batch(SUBMISSION)

    assert marked == [("batch-task-1", "Batch task failed: worker lost database")]


def test_rejected_submission_is_not_marked_failed(monkeypatch) -> None:
    marked = []

    async def rejecting_process(submission):
        raise BatchValidationError("No valid files found in batch", code="EMPTY_BATCH")

    async def fake_mark_failed(batch_id, reason):
        marked.append(batch_id)

    monkeypatch.setattr(batch_tasks, "_process", rejecting_process)
    monkeypatch.setattr(batch_tasks, "_mark_failed", fake_mark_failed)

    with pytest.raises(BatchValidationError):
        batch_tasks.process_batch(SUBMISSION)

    assert marked == []
