"""
DetectInstitutionStep — stage 2: identify the drawee institution.

Uses the transit number from stage 1 when one was read.
"""

from __future__ import annotations

from typing import Any

from chequebatch.core.constants import StageName
from chequebatch.pipeline.context import InstitutionDetection, StageContext
from chequebatch.pipeline.stage import PipelineStage


class DetectInstitutionStep(PipelineStage):
    name = StageName.DETECT_INSTITUTION
    description = "Detect issuing institution"

    def build_payload(self, ctx: StageContext) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "imageBase64": ctx.item.payload_ref,
            "includeDatabaseLookup": True,
            "chequeData": ctx.analysis.payload if ctx.analysis else None,
        }
        if ctx.analysis and ctx.analysis.transit_number:
            payload["transitNumber"] = ctx.analysis.transit_number
        return payload

    def parse(self, response: dict[str, Any]) -> InstitutionDetection:
        return InstitutionDetection.from_payload(response)
