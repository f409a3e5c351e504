"""Color and font customization from natural-language requests."""

from __future__ import annotations

from typing import Any, Dict, List

from ..domain.colors import ColorRequest, apply_color_requests, normalize_color, parse_color_request
from ..errors import ValidationError
from .base import BaseTool, ToolContext, ToolResult

_TARGETS = ("background", "header", "text", "primary", "accent", "font")


class ColorCustomizerTool(BaseTool):
    """Produce a new design customization. Never touches the document content."""

    name = "color_customizer"
    description = """Change resume colors or fonts, e.g. "make the background navy" or
"change font to Georgia". Unknown colors are rejected, never guessed."""
    parameters = {
        "text": {
            "type": "string",
            "description": "Natural-language color/font request",
        },
        "requests": {
            "type": "array",
            "description": "Explicit requests: [{target, value}]",
        },
    }

    def validate(self, args: Dict[str, Any]) -> bool:
        super().validate(args)
        if not args.get("text") and not args.get("requests"):
            raise ValidationError("Provide a color request text or explicit requests")
        self._requests(args)
        return True

    def _requests(self, args: Dict[str, Any]) -> List[ColorRequest]:
        requests: List[ColorRequest] = []
        for item in args.get("requests") or []:
            target = str(item.get("target", ""))
            if target not in _TARGETS:
                raise ValidationError(f"Unknown color target: {target}", details={"allowed": list(_TARGETS)})
            raw = str(item.get("value", ""))
            value = raw if target == "font" else normalize_color(raw)
            requests.append(ColorRequest(target=target, value=value, original=raw))
        if args.get("text"):
            requests.extend(parse_color_request(args["text"]))
        if not requests:
            raise ValidationError("No color or font changes found in request")
        return requests

    async def execute(self, document: Dict[str, Any], args: Dict[str, Any], context: ToolContext) -> ToolResult:
        requests = self._requests(args)
        scheme, fonts, warnings = apply_color_requests(
            requests,
            color_scheme=context.design.get("color_scheme"),
            font_family=context.design.get("font_family"),
        )
        changes = ", ".join(
            f"font to {r.value}" if r.target == "font" else f"{r.target} color to {r.original}" for r in requests
        )
        return ToolResult(
            success=True,
            rationale=f"Updated design: {changes}.",
            warnings=warnings,
            design={"color_scheme": scheme, "font_family": fonts},
            data={"requests": [r.to_dict() for r in requests]},
        )
