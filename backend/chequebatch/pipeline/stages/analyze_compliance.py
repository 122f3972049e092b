"""
AnalyzeComplianceStep — stage 3: compliance scoring.
"""

from __future__ import annotations

from typing import Any

from chequebatch.core.constants import StageName
from chequebatch.pipeline.context import ComplianceAssessment, StageContext
from chequebatch.pipeline.stage import PipelineStage


class AnalyzeComplianceStep(PipelineStage):
    name = StageName.ANALYZE_COMPLIANCE
    description = "Score regulatory compliance"

    def build_payload(self, ctx: StageContext) -> dict[str, Any]:
        return {
            "imageBase64": ctx.item.payload_ref,
            "chequeData": ctx.analysis.payload if ctx.analysis else None,
            "institutionData": ctx.institution.payload if ctx.institution else None,
        }

    def parse(self, response: dict[str, Any]) -> ComplianceAssessment:
        return ComplianceAssessment.from_payload(response)
