"""Shared fakes for the orchestration tests."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from chequebatch.core.constants import StageName
from chequebatch.pipeline.context import Item
from chequebatch.pipeline.errors import StageError
from chequebatch.pipeline.flow import cheque_flow
from chequebatch.pipeline.runner import PipelineRunner


class FakeClock:
    """Monotonic clock whose sleep() advances time instead of waiting."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


class ScriptedStageService:
    """
    In-process stand-in for the four stage services.

    failures       item_id -> number of pipeline attempts that fail at
                   ``fail_stage`` before the item starts succeeding
    always_fail    item_ids whose ``fail_stage`` call never succeeds
    crash          item_ids whose ``fail_stage`` call raises RuntimeError
    scores / amounts / institutions / osfi
                   per-item values returned by the stages
    """

    def __init__(
        self,
        *,
        failures: dict[str, int] | None = None,
        always_fail: set[str] | None = None,
        crash: set[str] | None = None,
        fail_stage: StageName = StageName.DETECT_INSTITUTION,
        scores: dict[str, float] | None = None,
        amounts: dict[str, str] | None = None,
        institutions: dict[str, str | None] | None = None,
        osfi: set[str] | None = None,
        on_call=None,
    ) -> None:
        self.failures = dict(failures or {})
        self.always_fail = set(always_fail or ())
        self.crash = set(crash or ())
        self.fail_stage = fail_stage
        self.scores = scores or {}
        self.amounts = amounts or {}
        self.institutions = institutions or {}
        self.osfi = osfi or set()
        self.on_call = on_call

        self.calls: list[tuple[str, StageName, dict[str, Any]]] = []
        self.active: set[str] = set()
        self.max_active = 0

    def calls_for(self, item_id: str) -> list[StageName]:
        return [stage for called_id, stage, _ in self.calls if called_id == item_id]

    async def invoke(
        self,
        stage: StageName,
        payload: dict[str, Any],
        *,
        batch_id: str | None = None,
        item_id: str | None = None,
    ) -> dict[str, Any]:
        self.calls.append((item_id, stage, payload))
        self.active.add(item_id)
        self.max_active = max(self.max_active, len(self.active))
        try:
            # Yield so items scheduled together genuinely overlap
            await asyncio.sleep(0)
            if self.on_call is not None:
                self.on_call(item_id, stage)

            if stage == self.fail_stage:
                if item_id in self.crash:
                    raise RuntimeError(f"parser bug for {item_id}")
                if item_id in self.always_fail:
                    raise StageError(f"{stage} failed with status 500", status_code=500, stage=stage)
                if self.failures.get(item_id, 0) > 0:
                    self.failures[item_id] -= 1
                    raise StageError(f"{stage} failed with status 503", status_code=503, stage=stage)
        except Exception:
            self.active.discard(item_id)
            raise

        if stage == StageName.GENERATE_DECISION:
            self.active.discard(item_id)
        return self._respond(stage, item_id)

    def _respond(self, stage: StageName, item_id: str) -> dict[str, Any]:
        if stage == StageName.ANALYZE_CHEQUE:
            return {
                "amountNumerals": self.amounts.get(item_id, "$100.00"),
                "transitNumber": "00011",
                "securityAssessment": {"overallRisk": "low"},
            }
        if stage == StageName.DETECT_INSTITUTION:
            name = self.institutions.get(item_id, "Royal Bank of Canada")
            return {"overallAssessment": {"finalInstitutionName": name} if name else {}}
        if stage == StageName.ANALYZE_COMPLIANCE:
            return {"fintracReporting": {"required": False}}
        return {
            "decisionId": f"DEC-{item_id}",
            "decision": {
                "riskScore": self.scores.get(item_id, 10),
                "finalDecision": "APPROVE",
                "confidence": 0.9,
                "keyFactors": ["clean image"],
            },
            "regulatoryCompliance": {"osfiReporting": {"required": item_id in self.osfi}},
        }


def make_items(count: int, prefix: str = "item") -> list[Item]:
    return [
        Item(id=f"{prefix}_{n}", name=f"cheque_{n}.jpg", payload_ref=f"img-{n}")
        for n in range(1, count + 1)
    ]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_runner(clock):
    def _make(service: ScriptedStageService, **kwargs) -> PipelineRunner:
        return PipelineRunner(cheque_flow(service), sleep=clock.sleep, clock=clock, **kwargs)
    return _make
