"""
Cheque flow — the fixed, ordered stage sequence every item runs through.

    analyze-cheque → detect-institution → analyze-compliance → generate-decision
"""

from __future__ import annotations

from chequebatch.pipeline.stage import PipelineStage, StageInvoker
from chequebatch.pipeline.stages.analyze_cheque import AnalyzeChequeStep
from chequebatch.pipeline.stages.analyze_compliance import AnalyzeComplianceStep
from chequebatch.pipeline.stages.detect_institution import DetectInstitutionStep
from chequebatch.pipeline.stages.generate_decision import GenerateDecisionStep


def cheque_flow(client: StageInvoker) -> list[PipelineStage]:
    """Build the four stages bound to one stage client."""
    return [
        AnalyzeChequeStep(client),
        DetectInstitutionStep(client),
        AnalyzeComplianceStep(client),
        GenerateDecisionStep(client),
    ]
