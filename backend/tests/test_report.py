"""Tests for batch report aggregation."""

from decimal import Decimal

import pytest

from chequebatch.core.constants import ItemStatus
from chequebatch.pipeline.context import (
    ChequeAnalysis,
    ComplianceAssessment,
    Decision,
    InstitutionDetection,
    Item,
    PipelineResult,
)
from chequebatch.pipeline.report import build_report, parse_amount


def _completed(
    item_id: str,
    *,
    score: float,
    amount: str | None = "$10.00",
    institution: str | None = "TD Canada Trust",
    osfi: bool = False,
    time_ms: int = 100,
) -> Item:
    item = Item(id=item_id, name=f"{item_id}.jpg", payload_ref="x")
    item.status = ItemStatus.COMPLETED
    item.processing_time_ms = time_ms
    item.result = PipelineResult(
        analysis=ChequeAnalysis.from_payload({"amountNumerals": amount}),
        institution=InstitutionDetection.from_payload(
            {"overallAssessment": {"finalInstitutionName": institution}} if institution else {}
        ),
        compliance=ComplianceAssessment.from_payload({}),
        decision=Decision.from_payload({
            "decision": {"riskScore": score},
            "regulatoryCompliance": {"osfiReporting": {"required": osfi}},
        }),
    )
    return item


def _failed(item_id: str) -> Item:
    item = Item(id=item_id, name=f"{item_id}.jpg", payload_ref="x")
    item.status = ItemStatus.FAILED
    item.error = "analyze-cheque failed with status 500"
    item.processing_time_ms = 12000
    return item


@pytest.mark.parametrize(
    "text, expected",
    [
        ("$1,234.56", Decimal("1234.56")),
        ("CAD 99", Decimal("99")),
        ("abc", Decimal("0")),
        ("", Decimal("0")),
        (None, Decimal("0")),
        ("1.2.3", Decimal("1.2")),
        ("$1,000.00.", Decimal("1000.00")),
        ("1.", Decimal("1")),
        (".75", Decimal("0.75")),
        ("..5", Decimal("0")),
    ],
)
def test_parse_amount(text, expected) -> None:
    assert parse_amount(text) == expected


def test_risk_buckets_at_boundaries() -> None:
    items = [
        _completed("a", score=80),
        _completed("b", score=79.9),
        _completed("c", score=50),
        _completed("d", score=49),
        _completed("e", score=100),
    ]

    report = build_report(items, total_items=5)

    assert report.high_risk_count == 2
    assert report.medium_risk_count == 2
    assert report.low_risk_count == 1
    assert report.completed_items == 5


def test_failed_items_contribute_nothing() -> None:
    items = [_completed("a", score=90, amount="$50.00"), _failed("b")]

    report = build_report(items, total_items=2)

    assert report.completed_items == 1
    assert report.high_risk_count == 1
    assert report.total_amount == Decimal("50.00")
    assert report.institution_breakdown == {"TD Canada Trust": 1}
    assert report.average_processing_time_ms == 100
    assert report.risk_summary()["successRate"] == 50.0


def test_missing_institution_is_unknown() -> None:
    items = [
        _completed("a", score=1, institution=None),
        _completed("b", score=1, institution="Scotiabank"),
        _completed("c", score=1, institution=None),
    ]

    report = build_report(items, total_items=3)

    assert report.institution_breakdown == {"Unknown": 2, "Scotiabank": 1}


def test_osfi_reportable_count() -> None:
    items = [_completed("a", score=1, osfi=True), _completed("b", score=1)]

    assert build_report(items, total_items=2).osfi_reportable_count == 1


def test_total_amount_rounded_once_after_summing() -> None:
    items = [
        _completed("a", score=1, amount="0.005"),
        _completed("b", score=1, amount="0.005"),
        _completed("c", score=1, amount="0.004"),
    ]

    report = build_report(items, total_items=3)

    # Rounding each amount first would give 0.01 + 0.01 + 0.00 = 0.02
    assert report.total_amount == Decimal("0.01")


def test_unparseable_amount_counts_as_zero() -> None:
    items = [_completed("a", score=1, amount="illegible"), _completed("b", score=1, amount="$12.34")]

    assert build_report(items, total_items=2).total_amount == Decimal("12.34")


def test_empty_report() -> None:
    report = build_report([], total_items=0)

    assert report.completed_items == 0
    assert report.total_amount == Decimal("0.00")
    assert report.average_processing_time_ms is None
    assert report.risk_summary()["highRiskPercentage"] == 0.0
