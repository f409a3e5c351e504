"""Template recommendation: heuristic, optionally refined by the LLM."""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from ..domain.design import (
    TEMPLATES,
    DesignRecommendation,
    build_recommendation_prompt,
    parse_recommendation_response,
    recommend_design,
)
from ..errors import ExternalServiceError, ValidationError
from .base import BaseTool, ToolContext, ToolResult

logger = logging.getLogger(__name__)

RECOMMENDER_SYSTEM_PROMPT = (
    "You are a professional resume design consultant. Recommend the most appropriate template "
    "considering industry norms, career level, role type, and ATS compatibility."
)


class DesignRecommenderTool(BaseTool):
    name = "design_recommender"
    description = """Recommend (or switch to) a resume template. Uses industry, seniority, and the
current format_parseability score; pass template_id to choose a template explicitly."""
    parameters = {
        "template_id": {
            "type": "string",
            "description": f"Explicit template: {', '.join(TEMPLATES)}",
        },
        "request": {
            "type": "string",
            "description": "The user's design request",
        },
    }
    external = True

    def validate(self, args: Dict[str, Any]) -> bool:
        super().validate(args)
        template_id = args.get("template_id")
        if template_id and template_id not in TEMPLATES:
            raise ValidationError(f"Unknown template: {template_id}", details={"available": list(TEMPLATES)})
        return True

    async def execute(self, document: Dict[str, Any], args: Dict[str, Any], context: ToolContext) -> ToolResult:
        warnings: List[str] = []
        if args.get("template_id"):
            template = TEMPLATES[args["template_id"]]
            recommendation = DesignRecommendation(
                template.id, f"Switched to the {template.name} template as requested.", 1.0, source="user"
            )
        else:
            subscores = context.score_report.subscores if context.score_report else None
            recommendation = recommend_design(document, context.job_text, subscores)
            if context.completion is not None and recommendation.confidence < 0.9:
                recommendation = await self._refine(document, context, recommendation, warnings)

        template = TEMPLATES[recommendation.template_id]
        if template.ats_score < 95:
            warnings.append(f"{template.name} has ATS compatibility {template.ats_score}; minimal-ssr scores highest")
        return ToolResult(
            success=True,
            rationale=recommendation.reasoning,
            warnings=warnings,
            design={"template_id": recommendation.template_id},
            data={"recommendation": recommendation.to_dict()},
        )

    async def _refine(
        self,
        document: Dict[str, Any],
        context: ToolContext,
        heuristic: DesignRecommendation,
        warnings: List[str],
    ) -> DesignRecommendation:
        try:
            reply = await context.completion(
                build_recommendation_prompt(document, context.job_text),
                system_prompt=RECOMMENDER_SYSTEM_PROMPT,
                max_tokens=300,
                temperature=0.3,
            )
        except ExternalServiceError as e:
            logger.warning(f"Design recommendation LLM call failed, keeping heuristic: {e}")
            warnings.append("LLM refinement unavailable; using heuristic recommendation")
            return heuristic

        refined = parse_recommendation_response(reply)
        if refined is None:
            warnings.append("LLM returned an unusable recommendation; using heuristic recommendation")
            return heuristic
        return refined
