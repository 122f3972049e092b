"""Batch submission schemas."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from chequebatch.core.constants import DEFAULT_ITEMS_PER_SECOND, BatchType
from chequebatch.pipeline.context import OrchestrationOptions


class _CamelModel(BaseModel):
    """Accepts both the camelCase wire names and the Python field names."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class BatchFile(_CamelModel):
    """One directly supplied cheque image."""

    id: str | None = Field(default=None, max_length=64)
    name: str = Field(..., min_length=1, max_length=500)
    data: str = Field(..., min_length=1, description="Base64 image data or a storage reference")
    file_type: str = Field(default="image/jpeg", alias="fileType")


class ProcessingOptions(_CamelModel):
    """Submission options.  Only these two affect orchestration."""

    parallel_processing: bool = Field(default=False, alias="parallelProcessing")
    items_per_second: float = Field(default=DEFAULT_ITEMS_PER_SECOND, gt=0, alias="itemsPerSecond")

    def to_options(self) -> OrchestrationOptions:
        return OrchestrationOptions(
            parallel=self.parallel_processing,
            items_per_second=self.items_per_second,
        )


class BatchSubmission(_CamelModel):
    """Request payload for a new cheque batch."""

    batch_id: str | None = Field(default=None, alias="batchId", max_length=64)
    batch_name: str | None = Field(default=None, alias="batchName", max_length=255)
    batch_type: BatchType = Field(..., alias="batchType")
    files: list[BatchFile] = Field(default_factory=list)
    processing_options: ProcessingOptions = Field(default_factory=ProcessingOptions, alias="processingOptions")
    metadata: dict[str, Any] = Field(default_factory=dict)
    user_id: str | None = Field(default=None, alias="userId", max_length=100)

    def registry_metadata(self) -> dict[str, Any]:
        """What gets stored alongside the BatchJob."""
        return {
            **self.metadata,
            "batchName": self.batch_name,
            "batchType": str(self.batch_type),
            "userId": self.user_id,
            "processingOptions": self.processing_options.model_dump(by_alias=True),
        }
