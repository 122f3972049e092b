"""
Batch orchestration engine — drives cheque images through the four-stage
analysis pipeline with bounded concurrency, per-item retry and batch-level
progress tracking.

The orchestrator lives in ``chequebatch.pipeline.orchestrator``; it is not
re-exported here because it depends on the registry package, which in turn
depends on the data model below.
"""

from chequebatch.pipeline.cancellation import CancellationToken
from chequebatch.pipeline.context import (
    BatchJob,
    BatchReport,
    Item,
    ItemOutcome,
    OrchestrationOptions,
    PipelineResult,
)
from chequebatch.pipeline.runner import PipelineRunner
from chequebatch.pipeline.stage import PipelineStage

__all__ = [
    "BatchJob",
    "BatchReport",
    "CancellationToken",
    "Item",
    "ItemOutcome",
    "OrchestrationOptions",
    "PipelineResult",
    "PipelineRunner",
    "PipelineStage",
]
