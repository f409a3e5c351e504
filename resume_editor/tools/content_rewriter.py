"""Rewrite resume text fields, with the LLM when available."""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional

from ..domain.document import expand_selector, format_field_path, get_field_value, parse_field_path
from ..errors import ValidationError
from .base import BaseTool, FieldChange, ToolContext, ToolResult

logger = logging.getLogger(__name__)

MAX_FIELDS = 10

REWRITE_SYSTEM_PROMPT = """You are an expert resume writer. Rewrite the given resume text so it is
concise, achievement-oriented, and starts with a strong action verb. Never invent employers, titles,
dates, or numbers that are not in the original. Reply with the rewritten text only."""

_WEAK_OPENERS = [
    (re.compile(r"^\s*responsible for\s+", re.IGNORECASE), "Led "),
    (re.compile(r"^\s*worked on\s+", re.IGNORECASE), "Delivered "),
    (re.compile(r"^\s*helped (?:with|to)?\s*", re.IGNORECASE), "Contributed to "),
    (re.compile(r"^\s*was involved in\s+", re.IGNORECASE), "Drove "),
    (re.compile(r"^\s*tasked with\s+", re.IGNORECASE), "Executed "),
    (re.compile(r"^\s*duties included\s+", re.IGNORECASE), "Managed "),
]


def _strengthen(text: str) -> str:
    for pattern, replacement in _WEAK_OPENERS:
        if pattern.match(text):
            return pattern.sub(replacement, text, count=1)
    return text


class ContentRewriterTool(BaseTool):
    """Rewrite one field path or every field a JSONPath selector matches."""

    name = "content_rewriter"
    description = """Rewrite resume text. Target a field path (e.g. "summary",
"experience[0].achievements[1]") or a selector (e.g. "$.experience[*].achievements[*]")."""
    parameters = {
        "path": {
            "type": "string",
            "description": "Field path or $-selector to rewrite (default: summary)",
        },
        "instruction": {
            "type": "string",
            "description": "What to change, in the user's words",
        },
        "value": {
            "type": "string",
            "description": "Explicit replacement text; skips the LLM",
        },
    }
    external = True

    def validate(self, args: Dict[str, Any]) -> bool:
        super().validate(args)
        path = args.get("path") or "summary"
        if not path.startswith("$"):
            parse_field_path(path)
        return True

    async def execute(self, document: Dict[str, Any], args: Dict[str, Any], context: ToolContext) -> ToolResult:
        selector = args.get("path") or "summary"
        paths = self._resolve_paths(document, selector)
        if not paths:
            raise ValidationError(f"No fields match '{selector}'", details={"path": selector})

        if args.get("value") is not None:
            if len(paths) != 1:
                raise ValidationError("An explicit value can only replace a single field", details={"matches": len(paths)})
            return ToolResult(
                success=True,
                patch=[FieldChange(paths[0], "replace", args["value"])],
                rationale=f"Replaced {paths[0]}.",
            )

        patch: List[FieldChange] = []
        warnings: List[str] = []
        if len(paths) > MAX_FIELDS:
            warnings.append(f"Only the first {MAX_FIELDS} of {len(paths)} matching fields were rewritten")
        for path in paths[:MAX_FIELDS]:
            current = get_field_value(document, path)
            if not isinstance(current, str) or not current.strip():
                warnings.append(f"Skipped {path}: not a text field")
                continue
            if context.completion is not None:
                rewritten = await self._rewrite_with_llm(current, path, args.get("instruction", ""), context)
            else:
                rewritten = self._fallback_rewrite(current, path, context)
            if rewritten and rewritten != current:
                patch.append(FieldChange(path, "replace", rewritten))

        if not patch:
            if context.completion is None:
                warnings.append("No LLM configured; only deterministic rewrites are available")
            return ToolResult(success=True, rationale="No rewrite was needed.", warnings=warnings)
        return ToolResult(
            success=True,
            patch=patch,
            rationale=f"Rewrote {len(patch)} field(s): {', '.join(c.path for c in patch)}.",
            warnings=warnings,
        )

    @staticmethod
    def _resolve_paths(document: Dict[str, Any], selector: str) -> List[str]:
        if selector.startswith("$"):
            return expand_selector(document, selector)
        path = format_field_path(parse_field_path(selector))
        return [path] if get_field_value(document, path) is not None else []

    async def _rewrite_with_llm(self, text: str, path: str, instruction: str, context: ToolContext) -> str:
        job_hint = ""
        if context.job and context.job.must_have:
            job_hint = f"\nTarget role keywords (use only if truthful): {', '.join(context.job.must_have[:10])}"
        prompt = (
            f"Field: {path}\n"
            f"Instruction: {instruction or 'Strengthen this text'}\n"
            f"Language: {context.language}{job_hint}\n\n"
            f"Original:\n{text}"
        )
        # ExternalServiceError propagates; the executor records it as a nonfatal skip.
        result = await context.completion(prompt, system_prompt=REWRITE_SYSTEM_PROMPT, max_tokens=400, temperature=0.3)
        return (result or "").strip().strip('"')

    @staticmethod
    def _fallback_rewrite(text: str, path: str, context: ToolContext) -> str:
        rewritten = _strengthen(text)
        if path == "summary" and context.job:
            missing = [t for t in context.job.must_have[:3] if t.lower() not in rewritten.lower() and len(t.split()) <= 3]
            if context.job.title and context.job.title.lower() not in rewritten.lower():
                rewritten = f"{context.job.title} candidate. {rewritten}"
            if missing:
                rewritten = f"{rewritten.rstrip('. ')}. Skilled in {', '.join(missing)}."
        return rewritten
