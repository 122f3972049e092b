"""
Data model carried through the orchestration engine.

Item          — one cheque image in a batch; mutated only by the runner
                and the scheduler.
Stage outputs — typed records for the four stage responses.  Each one
                declares the few fields the report reads and keeps the
                full response as an opaque ``payload`` passed through
                unmodified.
StageContext  — accumulated stage outputs for one pipeline attempt.
ItemOutcome   — immutable snapshot returned by the runner.
BatchJob      — batch-level counters and lifecycle status.
BatchReport   — aggregated statistics over completed items.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any

from chequebatch.core.constants import (
    DEFAULT_ITEMS_PER_SECOND,
    BatchStatus,
    ItemStatus,
    StageName,
)


def dig(payload: dict[str, Any] | None, *path: str) -> Any:
    """Walk nested dict keys, returning None as soon as a level is missing."""
    current: Any = payload
    for key in path:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current


def _as_score(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


# ═══════════════════════════════════════════════════════════
#  Item
# ═══════════════════════════════════════════════════════════

@dataclass
class Item:
    """
    One unit of work within a batch.

    Args:
        id: Item identifier, unique within the batch.
        name: Original file name.
        payload_ref: Image data reference handed to the stage services
            (inline base64 or a storage reference they can resolve).
        mime_type: Image MIME type.
    """

    id: str
    name: str
    payload_ref: str
    mime_type: str = "image/jpeg"
    status: ItemStatus = ItemStatus.PENDING
    retries: int = 0
    result: PipelineResult | None = None
    error: str | None = None
    processing_time_ms: int | None = None

    @staticmethod
    def new_id() -> str:
        return f"item_{uuid.uuid4().hex[:12]}"


# ═══════════════════════════════════════════════════════════
#  Stage outputs
# ═══════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ChequeAnalysis:
    """analyze-cheque output."""

    payload: dict[str, Any]
    amount_numerals: str | None = None
    transit_number: str | None = None
    security_assessment: dict[str, Any] | None = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> ChequeAnalysis:
        amount = payload.get("amountNumerals")
        return cls(
            payload=payload,
            amount_numerals=None if amount is None else str(amount),
            transit_number=payload.get("transitNumber"),
            security_assessment=payload.get("securityAssessment"),
        )


@dataclass(frozen=True)
class InstitutionDetection:
    """detect-institution output."""

    payload: dict[str, Any]
    institution_name: str | None = None
    overall_assessment: dict[str, Any] | None = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> InstitutionDetection:
        return cls(
            payload=payload,
            institution_name=dig(payload, "overallAssessment", "finalInstitutionName"),
            overall_assessment=payload.get("overallAssessment"),
        )


@dataclass(frozen=True)
class ComplianceAssessment:
    """analyze-compliance output, consumed only by the decision stage."""

    payload: dict[str, Any]

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> ComplianceAssessment:
        return cls(payload=payload)


@dataclass(frozen=True)
class Decision:
    """generate-decision output."""

    payload: dict[str, Any]
    risk_score: float = 0.0
    osfi_reportable: bool = False
    final_decision: str | None = None
    decision_id: str | None = None
    confidence: float = 0.0

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> Decision:
        return cls(
            payload=payload,
            risk_score=_as_score(dig(payload, "decision", "riskScore")),
            osfi_reportable=bool(dig(payload, "regulatoryCompliance", "osfiReporting", "required")),
            final_decision=dig(payload, "decision", "finalDecision"),
            decision_id=payload.get("decisionId"),
            confidence=_as_score(dig(payload, "decision", "confidence")),
        )


@dataclass(frozen=True)
class PipelineResult:
    """Composite of the four stage outputs for one completed item."""

    analysis: ChequeAnalysis
    institution: InstitutionDetection
    compliance: ComplianceAssessment
    decision: Decision

    def to_dict(self) -> dict[str, Any]:
        return {
            "chequeAnalysis": self.analysis.payload,
            "institutionDetection": self.institution.payload,
            "complianceAnalysis": self.compliance.payload,
            "decision": self.decision.payload,
        }


# ═══════════════════════════════════════════════════════════
#  StageContext
# ═══════════════════════════════════════════════════════════

@dataclass
class StageContext:
    """
    State carried between the stages of ONE pipeline attempt.

    Rebuilt from scratch on every attempt: a retry never reuses output
    from a failed attempt.
    """

    batch_id: str
    item: Item
    attempt: int = 1
    analysis: ChequeAnalysis | None = None
    institution: InstitutionDetection | None = None
    compliance: ComplianceAssessment | None = None
    decision: Decision | None = None

    def store(self, stage: StageName, output: Any) -> None:
        """Record a stage output under its slot."""
        slot = {
            StageName.ANALYZE_CHEQUE: "analysis",
            StageName.DETECT_INSTITUTION: "institution",
            StageName.ANALYZE_COMPLIANCE: "compliance",
            StageName.GENERATE_DECISION: "decision",
        }[stage]
        setattr(self, slot, output)

    def to_result(self) -> PipelineResult:
        """Assemble the final result; only valid once all four stages ran."""
        if None in (self.analysis, self.institution, self.compliance, self.decision):
            raise ValueError(f"Pipeline for item {self.item.id} is incomplete")
        return PipelineResult(
            analysis=self.analysis,
            institution=self.institution,
            compliance=self.compliance,
            decision=self.decision,
        )


# ═══════════════════════════════════════════════════════════
#  Outcomes and batch state
# ═══════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ItemOutcome:
    """Final outcome of running one item through the pipeline."""

    item_id: str
    status: ItemStatus
    attempts: int
    retries: int
    processing_time_ms: int
    result: PipelineResult | None = None
    error: str | None = None
    cancelled: bool = False

    @property
    def succeeded(self) -> bool:
        return self.status == ItemStatus.COMPLETED


@dataclass(frozen=True)
class OrchestrationOptions:
    """The only runtime knobs that affect orchestration."""

    parallel: bool = False
    items_per_second: float = DEFAULT_ITEMS_PER_SECOND

    def __post_init__(self) -> None:
        if self.items_per_second <= 0:
            raise ValueError("items_per_second must be positive")


@dataclass
class BatchJob:
    """Batch-level state.  processed_items == success_count + failed_count."""

    id: str
    total_items: int
    status: BatchStatus = BatchStatus.QUEUED
    processed_items: int = 0
    success_count: int = 0
    failed_count: int = 0
    created_at: datetime | None = None
    completed_at: datetime | None = None
    risk_summary: dict[str, Any] = field(default_factory=dict)
    error_summary: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "status": self.status,
            "total_items": self.total_items,
            "processed_items": self.processed_items,
            "success_count": self.success_count,
            "failed_count": self.failed_count,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "risk_summary": self.risk_summary,
            "error_summary": self.error_summary,
        }


@dataclass(frozen=True)
class BatchReport:
    """Summary statistics over the COMPLETED items of a batch."""

    total_items: int = 0
    completed_items: int = 0
    high_risk_count: int = 0
    medium_risk_count: int = 0
    low_risk_count: int = 0
    osfi_reportable_count: int = 0
    institution_breakdown: dict[str, int] = field(default_factory=dict)
    total_amount: Decimal = Decimal("0.00")
    average_processing_time_ms: float | None = None

    def _pct(self, count: int) -> float:
        return (count / self.total_items) * 100 if self.total_items else 0.0

    def risk_summary(self) -> dict[str, Any]:
        """Percentages over ALL items in the batch, stored on the BatchJob."""
        return {
            "highRiskPercentage": self._pct(self.high_risk_count),
            "mediumRiskPercentage": self._pct(self.medium_risk_count),
            "lowRiskPercentage": self._pct(self.low_risk_count),
            "successRate": self._pct(self.completed_items),
            "osfiReportableCount": self.osfi_reportable_count,
            "totalAmount": float(self.total_amount),
            "averageProcessingTimeMs": self.average_processing_time_ms,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalItems": self.total_items,
            "completedItems": self.completed_items,
            "highRiskCount": self.high_risk_count,
            "mediumRiskCount": self.medium_risk_count,
            "lowRiskCount": self.low_risk_count,
            "osfiReportableCount": self.osfi_reportable_count,
            "institutionBreakdown": dict(self.institution_breakdown),
            "totalAmount": float(self.total_amount),
            "averageProcessingTimeMs": self.average_processing_time_ms,
        }


@dataclass(frozen=True)
class BatchRunResult:
    """Returned by BatchOrchestrator once a batch has been driven to the end."""

    batch_id: str
    status: BatchStatus
    total_items: int
    success_count: int
    failed_count: int
    outcomes: tuple[ItemOutcome, ...] = ()
    report: BatchReport | None = None
    duration_ms: int = 0
    cancelled: bool = False
