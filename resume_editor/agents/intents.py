"""Intent variants produced by the command interpreter.

An intent is either resolved (a tool plus args) or a request for
clarification. Clarification is a normal result, not an exception.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

HISTORY_UNDO = "history.undo"
HISTORY_REDO = "history.redo"

INTENT_KINDS = (
    "rewrite",
    "add_skills",
    "design",
    "color",
    "layout",
    "ats_optimize",
    "apply_tips",
    "export",
    "undo",
    "redo",
    "compare",
    "save_history",
)

# Kinds mapped to None are recognised but cannot run as edit commands.
INTENT_TOOLS: Dict[str, Optional[str]] = {
    "rewrite": "content_rewriter",
    "add_skills": "skill_adder",
    "design": "design_recommender",
    "layout": "design_recommender",
    "color": "color_customizer",
    "ats_optimize": "ats_scorer",
    "apply_tips": "tip_applier",
    "undo": HISTORY_UNDO,
    "redo": HISTORY_REDO,
    "export": None,
    "compare": None,
    "save_history": None,
}

INTENT_DESCRIPTIONS: Dict[str, str] = {
    "rewrite": "Rewrite or strengthen resume content for clarity and impact.",
    "add_skills": "Include additional skills or keywords in the resume.",
    "design": "Choose or change the resume template.",
    "color": "Change colors or fonts.",
    "layout": "Change resume layout, spacing, or density preferences.",
    "ats_optimize": "Score and optimize the resume for applicant tracking systems.",
    "apply_tips": "Apply numbered ATS tips from the last score.",
    "export": "Generate downloadable resume files like PDF or DOCX.",
    "undo": "Revert the most recent resume change.",
    "redo": "Reapply the most recently undone change.",
    "compare": "Compare resume versions to review differences.",
    "save_history": "Store the current resume progress in history.",
}


@dataclass(frozen=True)
class ResolvedIntent:
    kind: str
    tool: str
    args: Dict[str, Any] = field(default_factory=dict)
    confidence: float = 1.0
    source: str = "rule"  # "rule" | "llm"
    text: str = ""

    needs_clarification = False

    @property
    def is_history(self) -> bool:
        return self.tool in (HISTORY_UNDO, HISTORY_REDO)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "tool": self.tool,
            "args": dict(self.args),
            "confidence": self.confidence,
            "source": self.source,
            "text": self.text,
            "needs_clarification": False,
        }


@dataclass(frozen=True)
class ClarificationNeeded:
    prompt: str
    candidates: List[str] = field(default_factory=list)
    confidence: float = 0.0
    text: str = ""

    needs_clarification = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "prompt": self.prompt,
            "candidates": list(self.candidates),
            "confidence": self.confidence,
            "text": self.text,
            "needs_clarification": True,
        }


Intent = Union[ResolvedIntent, ClarificationNeeded]
