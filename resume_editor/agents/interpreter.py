"""
CommandInterpreter - turns free-text edit commands into an ordered list of intents.

Resolution order for each command segment:
1. Deterministic pattern rules (tip numbers, color phrases, "add X to skills", ...)
2. LLM label classification when no rule matches
3. ClarificationNeeded when neither produces a confident, runnable intent
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..domain.colors import parse_color_request
from ..domain.design import TEMPLATES
from ..errors import ValidationError
from ..providers import CompletionFn
from .intents import (
    INTENT_DESCRIPTIONS,
    INTENT_KINDS,
    INTENT_TOOLS,
    ClarificationNeeded,
    Intent,
    ResolvedIntent,
)

logger = logging.getLogger(__name__)

DEFAULT_CLARIFICATION_THRESHOLD = 0.5
LLM_CONFIDENCE = 0.6

CLASSIFIER_SYSTEM_PROMPT = "You return only one word from the provided labels."

# Labels the classifier may answer with, and the intent kind each one means.
_LLM_LABELS: Dict[str, str] = {kind: kind for kind in INTENT_KINDS}
_LLM_LABELS["optimize"] = "ats_optimize"

_COMMAND_SPLIT = re.compile(r"[;\n]+")

RuleMatch = Tuple[str, Dict[str, Any], float]


def split_commands(text: str) -> List[str]:
    """Split a multi-action command on ';' and newlines."""
    return [part.strip() for part in _COMMAND_SPLIT.split(text or "") if part.strip()]


# ---------------------------------------------------------------------------
# Pattern rules
# ---------------------------------------------------------------------------

_HISTORY = re.compile(r"^\s*(?:please\s+)?(undo|redo)\b", re.IGNORECASE)
_TIPS = re.compile(
    r"\btips?\s*(?:number\s+|no\.?\s*|#\s*)?(\d+(?:\s*(?:,|&|and)\s*(?:#\s*)?\d+)*)",
    re.IGNORECASE,
)
_COLOR_PHRASE = re.compile(
    r"\b(?:change|make|set|update|turn)\s+(?:the\s+)?(?:background|headers?|headings?|text|primary|accent)\s+"
    r"(?:colou?r\s+)?(?:to\s+)?",
    re.IGNORECASE,
)
_ADD = re.compile(r"^\s*(?:please\s+)?(?:add|include)\s+(.+?)\s*[.!]?\s*$", re.IGNORECASE)
_SKILL_PREFIX = re.compile(r"^(?:the\s+|these\s+)?(?:(technical|soft)\s+)?skills?\s*:?\s*", re.IGNORECASE)
_SKILL_SUFFIX = re.compile(
    r"\s+(?:to|in|into|under)\s+(?:my\s+|the\s+)?(?:(technical|soft)\s+)?skills?(?:\s+(?:section|list))?$",
    re.IGNORECASE,
)
_ITEM_SPLIT = re.compile(r"\s*(?:,|;|&|\band\b)\s*", re.IGNORECASE)
_REWRITE = re.compile(r"\b(rewrite|strengthen|improve|rephrase|polish|reword)\b", re.IGNORECASE)
_FIELD_PATH = re.compile(r"(\$[^\s]+|\b[a-z_]+\[\d+\](?:\.[a-z_]+(?:\[\d+\])?)*)")
_DESIGN = re.compile(r"\b(template|design|layout|theme|style|spacing|density|font)\b", re.IGNORECASE)
_LAYOUT_WORDS = re.compile(r"\b(layout|spacing|density)\b", re.IGNORECASE)
_ATS = re.compile(r"\bats\b|\bscore\b|\boptimi[sz]e\b", re.IGNORECASE)
_UNSUPPORTED: List[Tuple[str, re.Pattern]] = [
    ("export", re.compile(r"\b(export|download|pdf|docx)\b", re.IGNORECASE)),
    ("compare", re.compile(r"\b(compare|diff)\b", re.IGNORECASE)),
    ("save_history", re.compile(r"\bsave(\s+to)?\s+history\b", re.IGNORECASE)),
]


def _history_rule(text: str) -> Optional[RuleMatch]:
    match = _HISTORY.match(text)
    if not match:
        return None
    return match.group(1).lower(), {}, 0.95


def _tips_rule(text: str) -> Optional[RuleMatch]:
    match = _TIPS.search(text)
    if not match:
        return None
    numbers = [int(n) for n in re.findall(r"\d+", match.group(1))]
    return "apply_tips", {"tips": list(dict.fromkeys(numbers))}, 0.95


def _color_rule(text: str) -> Optional[RuleMatch]:
    try:
        requests = parse_color_request(text)
    except ValidationError:
        # Route anyway so the tool reports the bad color instead of a guess.
        return "color", {"text": text}, 0.9
    if requests or _COLOR_PHRASE.search(text):
        return "color", {"text": text}, 0.9
    return None


def parse_skill_items(body: str) -> Tuple[List[str], Optional[str]]:
    """Split "python, Docker and AWS to my skills" into items and an optional category."""
    category = None
    prefix = _SKILL_PREFIX.match(body)
    suffix = _SKILL_SUFFIX.search(body)
    if prefix and prefix.group(0).strip():
        category = prefix.group(1)
        body = body[prefix.end():]
    if suffix:
        category = category or suffix.group(1)
        body = body[: suffix.start()]
    items = [item.strip(" '\"") for item in _ITEM_SPLIT.split(body)]
    return [item for item in items if item], (category.lower() if category else None)


def _add_skills_rule(text: str) -> Optional[RuleMatch]:
    match = _ADD.match(text)
    if not match:
        return None
    body = match.group(1)
    if not (_SKILL_SUFFIX.search(body) or re.match(r"^(?:the\s+|these\s+)?(?:(?:technical|soft)\s+)?skills?\b", body, re.IGNORECASE)):
        return None
    skills, category = parse_skill_items(body)
    if not skills:
        return None
    args: Dict[str, Any] = {"skills": skills}
    if category:
        args["category"] = category
    return "add_skills", args, 0.9


def detect_rewrite_path(text: str) -> str:
    """Pick the field a rewrite command targets, defaulting to the summary."""
    explicit = _FIELD_PATH.search(text)
    if explicit:
        return explicit.group(1).rstrip(".,")
    lowered = text.lower()
    if "summary" in lowered or "profile" in lowered:
        return "summary"
    if "achievement" in lowered or "bullet" in lowered:
        return "$.experience[*].achievements[*]"
    if "experience" in lowered or "latest role" in lowered or "current role" in lowered:
        return "$.experience[0].achievements[*]"
    return "summary"


def _rewrite_rule(text: str) -> Optional[RuleMatch]:
    if not _REWRITE.search(text):
        return None
    return "rewrite", {"path": detect_rewrite_path(text), "instruction": text}, 0.85


def detect_template(text: str) -> Optional[str]:
    lowered = text.lower()
    for template_id in TEMPLATES:
        if template_id in lowered or re.search(rf"\b{template_id.split('-')[0]}\b", lowered):
            return template_id
    return None


def _design_rule(text: str) -> Optional[RuleMatch]:
    if not _DESIGN.search(text):
        return None
    kind = "layout" if _LAYOUT_WORDS.search(text) else "design"
    args: Dict[str, Any] = {"request": text}
    template_id = detect_template(text)
    if template_id:
        args["template_id"] = template_id
    return kind, args, 0.8


def _ats_rule(text: str) -> Optional[RuleMatch]:
    if not _ATS.search(text):
        return None
    return "ats_optimize", {}, 0.85


def _unsupported_rule(text: str) -> Optional[RuleMatch]:
    for kind, pattern in _UNSUPPORTED:
        if pattern.search(text):
            return kind, {}, 0.8
    return None


RULES: List[Callable[[str], Optional[RuleMatch]]] = [
    _history_rule,
    _tips_rule,
    _color_rule,
    _add_skills_rule,
    _rewrite_rule,
    _design_rule,
    _ats_rule,
    _unsupported_rule,
]


def match_rules(text: str) -> Optional[RuleMatch]:
    """Return the first matching rule's (kind, args, confidence)."""
    for rule in RULES:
        result = rule(text)
        if result is not None:
            return result
    return None


# ---------------------------------------------------------------------------
# Interpreter
# ---------------------------------------------------------------------------


class CommandInterpreter:
    """
    Resolves commands into intents.

    Example:
        interpreter = CommandInterpreter(completion=llm)
        intents = await interpreter.interpret("add Docker to skills; make the header navy")
    """

    def __init__(
        self,
        completion: Optional[CompletionFn] = None,
        threshold: float = DEFAULT_CLARIFICATION_THRESHOLD,
        timeout_seconds: float = 5.0,
    ):
        self.completion = completion
        self.threshold = threshold
        self.timeout_seconds = timeout_seconds

    async def interpret(self, command: str, language: Optional[str] = None) -> List[Intent]:
        segments = split_commands(command)
        if not segments:
            return [self._clarify("Please tell me what to change in your resume.", command)]

        intents: List[Intent] = []
        for segment in segments:
            intents.append(await self.resolve(segment, language))
        return intents

    async def resolve(self, text: str, language: Optional[str] = None) -> Intent:
        matched = match_rules(text)
        if matched is not None:
            kind, args, confidence = matched
            return self._finalize(kind, args, confidence, "rule", text)

        kind = await self.classify(text, language)
        if kind is None:
            return self._clarify(
                "I couldn't tell what you want to change. Try rewriting a section, adding skills, "
                "changing colors, or picking a template.",
                text,
            )
        return self._finalize(kind, self._llm_args(kind, text), LLM_CONFIDENCE, "llm", text)

    async def classify(self, text: str, language: Optional[str] = None) -> Optional[str]:
        """Ask the LLM for a single intent label. Returns None on any failure."""
        if self.completion is None:
            return None

        labels = " | ".join(k for k in INTENT_KINDS if k != "color")
        prompt = (
            f"Classify this resume-edit command into one intent: {labels}. "
            f"Reply with just the label.\n\nCommand: {text}"
        )
        if language and language != "en":
            prompt += f"\n(The command is written in language code '{language}'.)"

        try:
            reply = await asyncio.wait_for(
                self.completion(prompt, system_prompt=CLASSIFIER_SYSTEM_PROMPT, max_tokens=5, temperature=0.0),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Intent classification timed out after {self.timeout_seconds}s")
            return None
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Intent classification failed: {e}")
            return None

        label = (reply or "").strip().strip(".\"'`").lower()
        kind = _LLM_LABELS.get(label)
        if kind is None:
            logger.info(f"Classifier returned unknown label '{label}'")
        return kind

    def _llm_args(self, kind: str, text: str) -> Optional[Dict[str, Any]]:
        """Build tool args for an LLM-classified kind; None when the text lacks them."""
        if kind == "rewrite":
            return {"path": detect_rewrite_path(text), "instruction": text}
        if kind == "add_skills":
            match = _ADD.match(text)
            skills, category = parse_skill_items(match.group(1)) if match else ([], None)
            if not skills:
                return None
            return {"skills": skills, "category": category} if category else {"skills": skills}
        if kind in ("design", "layout"):
            template_id = detect_template(text)
            return {"request": text, "template_id": template_id} if template_id else {"request": text}
        if kind == "color":
            return {"text": text}
        if kind == "apply_tips":
            numbers = [int(n) for n in re.findall(r"\d+", text)]
            return {"tips": numbers} if numbers else None
        return {}

    def _finalize(
        self,
        kind: str,
        args: Optional[Dict[str, Any]],
        confidence: float,
        source: str,
        text: str,
    ) -> Intent:
        tool = INTENT_TOOLS.get(kind)
        if tool is None:
            return self._clarify(
                f"'{kind}' is not available as an edit command. {INTENT_DESCRIPTIONS.get(kind, '')}".strip(),
                text,
                candidates=[kind],
                confidence=confidence,
            )
        if args is None:
            return self._clarify(
                f"I think you want to {INTENT_DESCRIPTIONS[kind].lower().rstrip('.')}, but I need more detail.",
                text,
                candidates=[kind],
                confidence=confidence,
            )
        if confidence < self.threshold:
            return self._clarify(
                f"Did you mean: {INTENT_DESCRIPTIONS[kind]}",
                text,
                candidates=[kind],
                confidence=confidence,
            )
        return ResolvedIntent(kind=kind, tool=tool, args=args, confidence=confidence, source=source, text=text)

    @staticmethod
    def _clarify(
        prompt: str,
        text: str,
        candidates: Optional[List[str]] = None,
        confidence: float = 0.0,
    ) -> ClarificationNeeded:
        if candidates is None:
            candidates = [k for k, tool in INTENT_TOOLS.items() if tool is not None]
        return ClarificationNeeded(prompt=prompt, candidates=candidates, confidence=confidence, text=text)


def needs_clarification(intents: List[Intent]) -> bool:
    return any(intent.needs_clarification for intent in intents)
