"""Base tool class and the patch-based result every tool returns."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from ..domain.document import apply_operation
from ..domain.job_extraction import JobExtraction
from ..errors import ValidationError

if TYPE_CHECKING:
    from ..domain.scoring import ScoreReport
    from ..domain.suggestions import Suggestion
    from ..providers import CompletionFn


@dataclass(frozen=True)
class FieldChange:
    """One field operation: ``op`` is replace | prefix | suffix | append | insert | remove."""

    path: str
    op: str
    value: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return {"path": self.path, "op": self.op, "value": self.value}


@dataclass
class ToolResult:
    """Result from a tool execution: a description of a mutation, not yet applied."""

    success: bool
    patch: List[FieldChange] = field(default_factory=list)
    rationale: str = ""
    warnings: List[str] = field(default_factory=list)
    data: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    design: Optional[Dict[str, Any]] = None

    @property
    def changes_document(self) -> bool:
        return self.success and bool(self.patch)

    def apply(self, document: Dict[str, Any]) -> Dict[str, Any]:
        """Return a new document with every patch entry applied in order."""
        updated = document
        for change in self.patch:
            updated = apply_operation(updated, change.path, change.op, change.value)
        return updated

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "success": self.success,
            "patch": [c.to_dict() for c in self.patch],
            "rationale": self.rationale,
            "warnings": list(self.warnings),
        }
        if self.design is not None:
            data["design"] = self.design
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class ToolContext:
    """Inputs shared by every tool in one run.

    Tools treat it as read-only. Between intents the orchestrator updates
    ``design``, ``score_report`` and ``suggestions`` so later tools see
    earlier results.
    """

    job: Optional[JobExtraction] = None
    job_text: str = ""
    score_report: Optional["ScoreReport"] = None
    completion: Optional["CompletionFn"] = None
    deadline_seconds: float = 10.0
    suggestions: List["Suggestion"] = field(default_factory=list)
    design: Dict[str, Any] = field(default_factory=dict)
    language: str = "en"


class BaseTool(ABC):
    """Base class for all tools.

    ``execute`` must not mutate *document*; it describes the change as a patch
    and the orchestrator decides whether to apply it.
    """

    name: str
    description: str
    parameters: Dict[str, Any]
    read_only: bool = False
    external: bool = False

    def validate(self, args: Dict[str, Any]) -> bool:
        """Check required parameters and simple types. Raises ValidationError."""
        for key, spec in self.parameters.items():
            value = args.get(key)
            if spec.get("required", False) and (value is None or value == "" or value == []):
                raise ValidationError(f"Missing required argument '{key}' for {self.name}", details={"tool": self.name})
            if value is None:
                continue
            expected = spec.get("type")
            if expected == "string" and not isinstance(value, str):
                raise ValidationError(f"Argument '{key}' must be a string", details={"tool": self.name})
            if expected == "array" and not isinstance(value, list):
                raise ValidationError(f"Argument '{key}' must be a list", details={"tool": self.name})
            if expected == "integer" and not isinstance(value, int):
                raise ValidationError(f"Argument '{key}' must be an integer", details={"tool": self.name})
        return True

    @abstractmethod
    async def execute(self, document: Dict[str, Any], args: Dict[str, Any], context: ToolContext) -> ToolResult:
        """Execute the tool against *document*."""

    def to_schema(self) -> Dict[str, Any]:
        """Convert tool to an OpenAI-style function schema."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": {
                    "type": "object",
                    "properties": {k: {kk: vv for kk, vv in v.items() if kk != "required"} for k, v in self.parameters.items()},
                    "required": [k for k, v in self.parameters.items() if v.get("required", False)],
                },
            },
        }
