"""
Report aggregation over the COMPLETED items of a batch.

Failed items contribute nothing except to the denominator of the
risk-summary percentages (see BatchReport.risk_summary).
"""

from __future__ import annotations

import re
from collections import Counter
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from chequebatch.core.constants import (
    REPORT_HIGH_RISK_THRESHOLD,
    REPORT_MEDIUM_RISK_THRESHOLD,
    UNKNOWN_INSTITUTION,
    ItemStatus,
    RiskLevel,
)
from chequebatch.pipeline.context import BatchReport, Item

_NON_NUMERIC = re.compile(r"[^0-9.]")
_LEADING_NUMBER = re.compile(r"\d*\.?\d+")
_CENTS = Decimal("0.01")


def parse_amount(text: str | None) -> Decimal:
    """
    Parse a cheque's numeric amount ("$1,234.50" → Decimal("1234.50")).

    Anything that is not a digit or a dot is stripped first, then the
    leading number is taken ("1,000.00." → 1000.00, "1.2.3" → 1.2).
    No leading number counts as zero.
    """
    if not text:
        return Decimal("0")
    cleaned = _NON_NUMERIC.sub("", str(text))
    match = _LEADING_NUMBER.match(cleaned)
    if match is None:
        return Decimal("0")
    return Decimal(match.group())


def risk_bucket(score: float) -> RiskLevel:
    if score >= REPORT_HIGH_RISK_THRESHOLD:
        return RiskLevel.HIGH
    if score >= REPORT_MEDIUM_RISK_THRESHOLD:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def build_report(items: Iterable[Item], total_items: int) -> BatchReport:
    """Aggregate completed items into a BatchReport."""
    buckets: Counter[RiskLevel] = Counter()
    institutions: Counter[str] = Counter()
    osfi_reportable = 0
    completed = 0
    total_amount = Decimal("0")
    times: list[int] = []

    for item in items:
        if item.status != ItemStatus.COMPLETED or item.result is None:
            continue
        result = item.result
        completed += 1

        buckets[risk_bucket(result.decision.risk_score)] += 1
        if result.decision.osfi_reportable:
            osfi_reportable += 1
        institutions[result.institution.institution_name or UNKNOWN_INSTITUTION] += 1
        total_amount += parse_amount(result.analysis.amount_numerals)
        if item.processing_time_ms is not None:
            times.append(item.processing_time_ms)

    return BatchReport(
        total_items=total_items,
        completed_items=completed,
        high_risk_count=buckets[RiskLevel.HIGH],
        medium_risk_count=buckets[RiskLevel.MEDIUM],
        low_risk_count=buckets[RiskLevel.LOW],
        osfi_reportable_count=osfi_reportable,
        institution_breakdown=dict(institutions),
        # Rounded once, after summing
        total_amount=total_amount.quantize(_CENTS, rounding=ROUND_HALF_UP),
        average_processing_time_ms=sum(times) / len(times) if times else None,
    )
