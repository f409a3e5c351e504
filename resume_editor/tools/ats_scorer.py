"""ATS match scoring tool (read-only)."""

from __future__ import annotations

from typing import Any, Dict

from ..domain.scoring import format_score_report, score_resume
from .base import BaseTool, ToolContext, ToolResult


class ATSScorerTool(BaseTool):
    """Score the current document against the run's job description."""

    name = "ats_scorer"
    description = """Score the resume against the job description. Returns an overall score (0-100),
eight subscores, a confidence value, and ranked improvement suggestions."""
    parameters = {
        "job_text": {
            "type": "string",
            "description": "Optional job description overriding the run's job text",
        },
    }
    read_only = True

    def __init__(self, scoring_config=None):
        self.scoring_config = scoring_config

    async def execute(self, document: Dict[str, Any], args: Dict[str, Any], context: ToolContext) -> ToolResult:
        job_text = args.get("job_text") or context.job_text
        job = context.job if not args.get("job_text") else None
        report = score_resume(document, job_text=job_text, job=job, config=self.scoring_config, design=context.design)

        warnings = []
        if report.low_confidence:
            warnings.append(f"Low confidence score ({report.confidence:.0%}); job or resume data is incomplete")
        return ToolResult(
            success=True,
            rationale=format_score_report(report),
            warnings=warnings,
            data={"report": report.to_dict(), "score_report": report},
        )
