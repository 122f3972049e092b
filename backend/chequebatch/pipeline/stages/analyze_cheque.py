"""
AnalyzeChequeStep — stage 1: extract cheque fields from the image.
"""

from __future__ import annotations

from typing import Any

from chequebatch.core.constants import StageName
from chequebatch.pipeline.context import ChequeAnalysis, StageContext
from chequebatch.pipeline.stage import PipelineStage


class AnalyzeChequeStep(PipelineStage):
    name = StageName.ANALYZE_CHEQUE
    description = "Analyze cheque image and extract fields"

    def build_payload(self, ctx: StageContext) -> dict[str, Any]:
        return {"imageBase64": ctx.item.payload_ref}

    def parse(self, response: dict[str, Any]) -> ChequeAnalysis:
        return ChequeAnalysis.from_payload(response)
