"""
BatchJobRow — one row per submitted cheque batch.
"""

from __future__ import annotations

from sqlalchemy import Column, DateTime, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship

from chequebatch.db.models.base import Base, utcnow


class BatchJobRow(Base):
    """Batch lifecycle status and counters."""

    __tablename__ = "batch_jobs"

    id = Column(String(64), primary_key=True)

    # ── Status / Progress ────────────────────
    status = Column(String(50), nullable=False, default="QUEUED", index=True)
    total_items = Column(Integer, nullable=False)
    processed_items = Column(Integer, nullable=False, default=0)
    successful_items = Column(Integer, nullable=False, default=0)
    failed_items = Column(Integer, nullable=False, default=0)

    # ── Summary (set at finalization) ────────
    risk_summary = Column(JSONB, default=dict)
    error_summary = Column(Text, nullable=True)

    # ── Submission metadata ──────────────────
    metadata_ = Column("metadata", JSONB, default=dict)

    # ── Timing (UTC) ─────────────────────────
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    items = relationship("BatchItemRow", back_populates="batch", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"<BatchJobRow {self.id} status={self.status} processed={self.processed_items}/{self.total_items}>"
