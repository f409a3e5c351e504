"""Add skills to the resume with case-insensitive de-duplication."""

from __future__ import annotations

from typing import Any, Dict, List

from ..domain.document import get_field_value
from ..domain.text import dedupe_preserve_order
from ..errors import ValidationError
from .base import BaseTool, FieldChange, ToolContext, ToolResult

SKILL_CATEGORIES = ("technical", "soft")


class SkillAdderTool(BaseTool):
    name = "skill_adder"
    description = "Append skills to skills.technical or skills.soft, skipping ones already listed."
    parameters = {
        "skills": {
            "type": "array",
            "description": "Skills to add",
            "required": True,
        },
        "category": {
            "type": "string",
            "description": "technical (default) or soft",
        },
    }

    def validate(self, args: Dict[str, Any]) -> bool:
        super().validate(args)
        if args.get("category", "technical") not in SKILL_CATEGORIES:
            raise ValidationError(
                f"Unknown skill category: {args.get('category')}",
                details={"allowed": list(SKILL_CATEGORIES)},
            )
        if not all(isinstance(s, str) and s.strip() for s in args["skills"]):
            raise ValidationError("Skills must be non-empty strings")
        return True

    async def execute(self, document: Dict[str, Any], args: Dict[str, Any], context: ToolContext) -> ToolResult:
        category = args.get("category") or "technical"
        path = f"skills.{category}"
        existing = get_field_value(document, path, []) or []
        present = {str(s).strip().lower() for s in existing}

        requested = dedupe_preserve_order(args["skills"])
        new_skills: List[str] = [s for s in requested if s.lower() not in present]
        skipped = [s for s in requested if s.lower() in present]

        warnings = [f"Already listed: {', '.join(skipped)}"] if skipped else []
        if not new_skills:
            return ToolResult(success=True, rationale="All requested skills are already listed.", warnings=warnings)

        return ToolResult(
            success=True,
            patch=[FieldChange(path, "append", new_skills)],
            rationale=f"Added {', '.join(new_skills)} to {category} skills.",
            warnings=warnings,
            data={"added": new_skills, "skipped": skipped},
        )
