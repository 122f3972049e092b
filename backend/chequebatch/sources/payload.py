"""
Item sources — turn a BatchSubmission into the batch's Items.

Only directly supplied files are handled here.  Container formats (ZIP,
multi-page PDF/TIFF) must be expanded into files by an extraction
service before submission.
"""

from __future__ import annotations

from typing import Protocol

from chequebatch.core.constants import BatchType
from chequebatch.core.logging import get_logger
from chequebatch.pipeline.context import Item
from chequebatch.pipeline.errors import BatchValidationError
from chequebatch.schemas.batch import BatchSubmission

logger = get_logger(__name__)


class ItemSource(Protocol):
    def extract(self, submission: BatchSubmission) -> list[Item]:
        ...


class PayloadItemSource:
    """Builds one PENDING Item per supplied file, in submission order."""

    def extract(self, submission: BatchSubmission) -> list[Item]:
        if not submission.files:
            if submission.batch_type != BatchType.IMAGES:
                raise BatchValidationError(
                    f"{submission.batch_type} batches must be extracted to files before submission",
                    code="UNSUPPORTED_BATCH_TYPE",
                    batch_id=submission.batch_id,
                )
            return []

        items = [
            Item(
                id=file.id or Item.new_id(),
                name=file.name,
                payload_ref=file.data,
                mime_type=file.file_type,
            )
            for file in submission.files
        ]

        seen: set[str] = set()
        for item in items:
            if item.id in seen:
                raise BatchValidationError(
                    f"Duplicate item id {item.id}",
                    code="DUPLICATE_ITEM_ID",
                    batch_id=submission.batch_id,
                    item_id=item.id,
                )
            seen.add(item.id)

        logger.debug("Items extracted", batch_type=str(submission.batch_type), count=len(items))
        return items
