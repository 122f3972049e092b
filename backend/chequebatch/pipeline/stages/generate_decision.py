"""
GenerateDecisionStep — stage 4: synthesize the final decision.

Receives everything the first three stages produced for this attempt.
The decision service does not need the image itself.
"""

from __future__ import annotations

from typing import Any

from chequebatch.core.constants import StageName
from chequebatch.pipeline.context import Decision, StageContext
from chequebatch.pipeline.stage import PipelineStage


class GenerateDecisionStep(PipelineStage):
    name = StageName.GENERATE_DECISION
    description = "Generate verification decision"

    def build_payload(self, ctx: StageContext) -> dict[str, Any]:
        return {
            "chequeAnalysis": ctx.analysis.payload if ctx.analysis else None,
            "securityAssessment": ctx.analysis.security_assessment if ctx.analysis else None,
            "complianceAssessment": ctx.compliance.payload if ctx.compliance else None,
            "institutionData": ctx.institution.overall_assessment if ctx.institution else None,
            "batchId": ctx.batch_id,
        }

    def parse(self, response: dict[str, Any]) -> Decision:
        return Decision.from_payload(response)
