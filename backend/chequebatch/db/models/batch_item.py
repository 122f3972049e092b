"""
BatchItemRow — one row per cheque image in a batch.

Holds the flattened fields queried by operations plus the full stage
output under ``result``.
"""

from __future__ import annotations

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship

from chequebatch.db.models.base import Base, utcnow


class BatchItemRow(Base):
    """Outcome of one item."""

    __tablename__ = "batch_items"
    __table_args__ = (UniqueConstraint("batch_id", "item_id", name="uq_batch_items_batch_item"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    batch_id = Column(String(64), ForeignKey("batch_jobs.id", ondelete="CASCADE"), nullable=False, index=True)
    item_id = Column(String(64), nullable=False)
    name = Column(String(500), nullable=False)

    # ── Status ────────────────────────────────
    status = Column(String(50), nullable=False, index=True)
    retries = Column(Integer, default=0)
    processing_time_ms = Column(Integer, nullable=True)
    error_message = Column(Text, nullable=True)

    # ── Extracted fields ─────────────────────
    transit_number = Column(String(32), nullable=True)
    amount = Column(Numeric(14, 2), nullable=True)
    institution_name = Column(String(255), nullable=True, index=True)
    final_decision = Column(String(50), nullable=True)
    risk_score = Column(Float, nullable=True)
    osfi_reportable = Column(Boolean, default=False)

    # ── Full stage output ────────────────────
    result = Column(JSONB, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    batch = relationship("BatchJobRow", back_populates="items")

    def __repr__(self) -> str:
        return f"<BatchItemRow {self.batch_id}/{self.item_id} status={self.status}>"
