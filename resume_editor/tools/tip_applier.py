"""Apply numbered ATS tips (suggestions from the last score) to the document."""

from __future__ import annotations

from typing import Any, Dict, List

from ..domain.suggestions import aggregate_gain, apply_suggestion_edits
from ..errors import ValidationError
from .base import BaseTool, FieldChange, ToolContext, ToolResult


class TipApplierTool(BaseTool):
    name = "tip_applier"
    description = "Apply ATS tips by their 1-based number, e.g. tips 1, 2 and 4."
    parameters = {
        "tips": {
            "type": "array",
            "description": "1-based tip numbers",
            "required": True,
        },
    }

    def __init__(self, scoring_config=None):
        self.scoring_config = scoring_config

    def validate(self, args: Dict[str, Any]) -> bool:
        super().validate(args)
        if not all(isinstance(n, int) and not isinstance(n, bool) for n in args["tips"]):
            raise ValidationError("Tip numbers must be integers")
        return True

    async def execute(self, document: Dict[str, Any], args: Dict[str, Any], context: ToolContext) -> ToolResult:
        available = context.suggestions
        if not available:
            raise ValidationError("No tips available. Score the resume first to get tips.")

        numbers: List[int] = list(dict.fromkeys(args["tips"]))
        invalid = [n for n in numbers if n < 1 or n > len(available)]
        if invalid:
            raise ValidationError(
                f"Tips {', '.join(str(n) for n in invalid)} do not exist. Available tips: 1-{len(available)}",
                details={"invalid": invalid, "available": len(available)},
            )

        selected = [available[n - 1] for n in numbers]
        updated, log = apply_suggestion_edits(document, selected)

        before = (document.get("skills") or {}).get("technical") or []
        after = (updated.get("skills") or {}).get("technical") or []
        added = list(after[len(before):])
        patch = [FieldChange("skills.technical", "append", added)] if added else []

        old_score = context.score_report.score if context.score_report else 0
        aggregation = aggregate_gain([s.estimated_gain for s in selected], old_score, self.scoring_config)
        manual = [entry for entry in log if not entry["changed"]]
        warnings = [f"Tip {numbers[i]} requires manual edit: {selected[i].text}"
                    for i, entry in enumerate(log) if entry["description"] == "Requires manual edit"]

        return ToolResult(
            success=True,
            patch=patch,
            rationale=f"Applied {len(selected) - len(manual)} of {len(selected)} tip(s); "
                      f"estimated score {aggregation.old_score} -> {aggregation.new_score}.",
            warnings=warnings,
            data={
                "applied_ids": [s.id for s in selected],
                "aggregation": aggregation.to_dict(),
                "log": log,
            },
        )
