"""
DecisionAuditRow — audit trail of every automated cheque decision.
"""

from __future__ import annotations

from sqlalchemy import Column, DateTime, Float, Integer, String
from sqlalchemy.dialects.postgresql import JSONB, UUID

from chequebatch.db.models.base import Base, generate_uuid, utcnow


class DecisionAuditRow(Base):
    """One row per completed item's decision."""

    __tablename__ = "decision_audit_trail"

    id = Column(UUID(as_uuid=True), primary_key=True, default=generate_uuid)
    decision_id = Column(String(100), nullable=False, index=True)
    decision_type = Column(String(50), nullable=True)
    risk_score = Column(Float, nullable=True)
    confidence_score = Column(Float, nullable=True)
    key_factors = Column(JSONB, default=list)
    regulatory_flags = Column(JSONB, default=list)
    ai_reasoning = Column(JSONB, default=dict)
    processing_time_ms = Column(Integer, nullable=True)
    batch_id = Column(String(64), nullable=True, index=True)
    item_id = Column(String(64), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<DecisionAuditRow {self.decision_id} type={self.decision_type} risk={self.risk_score}>"
