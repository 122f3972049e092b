#!/usr/bin/env python3
"""
Demo script — run a cheque batch locally without Docker/Celery/Postgres.

Uses an in-process stand-in for the four stage services and the
in-memory registry.  Pacing and retry backoff are skipped so the demo
finishes immediately.

Usage:
    cd backend
    python -m scripts.demo_batch
"""

import asyncio
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


INSTITUTIONS = ["Royal Bank of Canada", "TD Canada Trust", "Scotiabank", None]


class LocalStageService:
    """Answers stage calls with canned outputs derived from the item ID."""

    def __init__(self, flaky_items=()):
        self.flaky_items = set(flaky_items)
        self.calls = 0

    async def invoke(self, stage, payload, *, batch_id=None, item_id=None):
        from chequebatch.core.constants import StageName
        from chequebatch.pipeline.errors import StageError

        self.calls += 1
        seed = sum(ord(c) for c in item_id or "")

        if item_id in self.flaky_items and stage == StageName.ANALYZE_COMPLIANCE:
            self.flaky_items.discard(item_id)
            raise StageError("analyze-compliance failed with status 503", status_code=503, stage=stage)

        if stage == StageName.ANALYZE_CHEQUE:
            return {
                "amountNumerals": f"${seed * 13 % 5000}.{seed % 100:02d}",
                "transitNumber": f"{seed % 99999:05d}",
            }
        if stage == StageName.DETECT_INSTITUTION:
            name = INSTITUTIONS[seed % len(INSTITUTIONS)]
            return {"overallAssessment": {"finalInstitutionName": name} if name else {}}
        if stage == StageName.ANALYZE_COMPLIANCE:
            return {"complianceScore": seed % 100}
        return {
            "decisionId": f"DEC-{item_id}",
            "decision": {"riskScore": seed * 7 % 100, "finalDecision": "APPROVE"},
            "regulatoryCompliance": {"osfiReporting": {"required": seed % 5 == 0}},
        }


async def _no_wait(_seconds):
    return None


async def run_batch(parallel: bool):
    from chequebatch.pipeline.context import Item, OrchestrationOptions
    from chequebatch.pipeline.flow import cheque_flow
    from chequebatch.pipeline.orchestrator import BatchOrchestrator
    from chequebatch.pipeline.runner import PipelineRunner
    from chequebatch.registry.memory import InMemoryBatchRegistry

    mode = "parallel chunks of 3" if parallel else "sequential, 1 item/s"
    print("\n" + "=" * 70)
    print(f"  Batch of 7 cheques ({mode})")
    print("=" * 70)

    items = [Item(id=f"item_{n:03d}", name=f"cheque_{n:03d}.jpg", payload_ref="aGVsbG8=") for n in range(7)]
    service = LocalStageService(flaky_items=["item_002"])
    registry = InMemoryBatchRegistry()
    orchestrator = BatchOrchestrator(
        PipelineRunner(cheque_flow(service), sleep=_no_wait),
        registry,
        sleep=_no_wait,
    )

    result = await orchestrator.process(items, OrchestrationOptions(parallel=parallel))
    _print_result(result)

    summary = await registry.summary(result.batch_id)
    print(f"  Stored summary   : {summary.high_risk_count} high / "
          f"{summary.medium_risk_count} medium / {summary.low_risk_count} low (compliance bands)")
    print(f"  Stage calls      : {service.calls}")
    print(f"{'─' * 50}\n")


def _print_result(result):
    print(f"\n  Batch   : {result.batch_id}")
    print(f"  Status  : {result.status}")
    print(f"  Items   : {result.success_count} ok / {result.failed_count} failed of {result.total_items}")

    for outcome in result.outcomes:
        ok = "✓" if outcome.succeeded else "✗"
        retries = f" (retries: {outcome.retries})" if outcome.retries else ""
        print(f"    {ok} {outcome.item_id}{retries}")

    report = result.report
    if report:
        print(f"\n  Report:")
        print(f"    Risk (80/50)   : {report.high_risk_count} high / "
              f"{report.medium_risk_count} medium / {report.low_risk_count} low")
        print(f"    OSFI reportable: {report.osfi_reportable_count}")
        print(f"    Total amount   : ${report.total_amount}")
        print(f"    Institutions   :")
        for name, count in report.institution_breakdown.items():
            print(f"      - {name}: {count}")


async def main():
    from chequebatch.core.logging import setup_logging
    setup_logging("WARNING")

    print("\n╔" + "═" * 68 + "╗")
    print("║             CHEQUE BATCH — ORCHESTRATION ENGINE DEMO               ║")
    print("╚" + "═" * 68 + "╝")

    await run_batch(parallel=False)
    await run_batch(parallel=True)

    print("\n✅ Demo completed.\n")


if __name__ == "__main__":
    asyncio.run(main())
