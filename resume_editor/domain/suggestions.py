"""Improvement suggestions derived from weak subscores, and gain aggregation.

Applying several suggestions at once never adds their estimated gains
naively: the combined gain is damped by ``base + decay / sqrt(n)`` and
capped, so a batch of tips cannot promise an unrealistic jump.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..config import ScoringConfig
from .document import append_unique
from .job_extraction import JobExtraction
from .text import dedupe_preserve_order

logger = logging.getLogger(__name__)

MIN_GAIN = 1
MAX_GAIN = 15

CATEGORIES = ("keywords", "content", "metrics", "structure", "formatting")


# ---------------------------------------------------------------------------
# Data types
# ---------------------------------------------------------------------------


@dataclass
class Suggestion:
    id: str
    text: str
    estimated_gain: int
    quick_win: bool
    category: str
    targets: List[str] = field(default_factory=list)
    action: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "text": self.text,
            "estimated_gain": self.estimated_gain,
            "quick_win": self.quick_win,
            "category": self.category,
            "targets": list(self.targets),
        }
        if self.action:
            data["action"] = dict(self.action)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Suggestion":
        return cls(
            id=str(data["id"]),
            text=str(data.get("text") or ""),
            estimated_gain=int(data.get("estimated_gain") or 0),
            quick_win=bool(data.get("quick_win")),
            category=str(data.get("category") or "content"),
            targets=list(data.get("targets") or []),
            action=data.get("action"),
        )


@dataclass(frozen=True)
class SuggestionTemplate:
    text: str
    estimated_gain: int
    quick_win: bool
    category: str
    condition: Optional[Callable[[Dict[str, Any], int], bool]] = None


@dataclass
class GainAggregation:
    raw_gain: int
    n: int
    factor: float
    adjusted_gain: int
    final_gain: int
    old_score: int
    new_score: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "raw_gain": self.raw_gain,
            "n": self.n,
            "factor": round(self.factor, 4),
            "adjusted_gain": self.adjusted_gain,
            "final_gain": self.final_gain,
            "old_score": self.old_score,
            "new_score": self.new_score,
        }


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------

_T = SuggestionTemplate

SUGGESTION_TEMPLATES: Dict[str, List[SuggestionTemplate]] = {
    "keyword_exact": [
        _T("Add exact term '{keyword}' to Skills section and latest role achievements", 8, True, "keywords"),
        _T("Include {count} missing must-have keywords: {keywords}", 12, False, "keywords",
           lambda ev, _: ev.get("must_have_total", 0) - ev.get("must_have_matched", 0) >= 3),
        _T("Add nice-to-have skills to strengthen match: {nice_keywords}", 5, True, "keywords"),
    ],
    "keyword_phrase": [
        _T("Mirror job phrase '{phrase}' in your experience bullets", 6, True, "content"),
        _T("Use exact phrases from job responsibilities: {phrases}", 8, False, "content"),
    ],
    "semantic_relevance": [
        _T("Expand summary to better describe relevant experience", 7, False, "content"),
        _T("Add context to achievements showing how skills were applied", 6, False, "content"),
    ],
    "title_alignment": [
        _T("Include '{target_title}' in your professional summary or headline", 8, True, "content"),
        _T("Adjust latest role title to match seniority level ({seniority})", 5, False, "content"),
    ],
    "metrics_presence": [
        _T("Quantify {count} achievements with percentages, dollar amounts, or numbers", 10, False, "metrics"),
        _T("Add metrics to latest role (e.g., '% improvement', '$ saved', '# users')", 7, True, "metrics"),
        _T("Include timeframes showing speed of delivery (e.g., 'in 3 months')", 4, True, "metrics"),
    ],
    "section_completeness": [
        _T("Add missing section: {section}", 12, False, "structure"),
        _T("Expand professional summary to 50-150 words", 5, True, "structure",
           lambda ev, _: not 50 <= ev.get("summary_words", 0) <= 150),
        _T("Ensure all experience roles have achievement bullets", 6, False, "structure"),
    ],
    "format_parseability": [
        _T("Switch to ATS-safe template (single column, no graphics)", 15, True, "formatting",
           lambda _, score: score < 50),
        _T("Remove tables and use simple text formatting instead", 12, False, "formatting",
           lambda ev, _: bool(ev.get("has_tables"))),
        _T("Remove images, logos, and graphics - ATS cannot read them", 8, True, "formatting",
           lambda ev, _: bool(ev.get("has_images"))),
        _T("Convert multi-column layout to single column", 10, False, "formatting",
           lambda ev, _: bool(ev.get("has_multi_column"))),
    ],
    "recency_fit": [
        _T("Move recent relevant projects to latest role", 6, True, "content"),
        _T("Highlight continuous skill development in recent roles", 5, False, "content"),
        _T("Add recent certifications or training to show current expertise", 4, True, "content"),
    ],
}

_PLACEHOLDER = re.compile(r"\{[a-z_]+\}")


def fill_template(template: SuggestionTemplate, data: Dict[str, Any]) -> str:
    """Substitute ``{name}`` placeholders. Lists show three items then ``and N more``."""
    text = template.text
    for key, value in data.items():
        placeholder = "{" + key + "}"
        if placeholder not in text:
            continue
        if isinstance(value, list):
            formatted = ", ".join(str(v) for v in value[:3])
            if len(value) > 3:
                formatted += f", and {len(value) - 3} more"
        else:
            formatted = str(value)
        text = text.replace(placeholder, formatted)
    return text


def suggestion_id(subscore: str, text: str) -> str:
    """Stable id: ``{subscore}_{base36(abs(hash))}`` with a 32-bit rolling hash."""
    acc = 0
    for char in text:
        acc = ((acc << 5) - acc + ord(char)) & 0xFFFFFFFF
    if acc >= 0x80000000:
        acc -= 0x100000000
    return f"{subscore}_{_base36(abs(acc))}"


def _base36(value: int) -> str:
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    if value == 0:
        return "0"
    out = []
    while value:
        value, rem = divmod(value, 36)
        out.append(digits[rem])
    return "".join(reversed(out))


def estimate_impact(current_score: int, base_gain: int) -> int:
    """Scale a template's gain by how much headroom the subscore has, clamped to [1, 15]."""
    headroom = max(0.5, min(1.5, (100 - current_score) / 50))
    return max(MIN_GAIN, min(MAX_GAIN, _round_half_up(base_gain * headroom)))


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------


def generate_suggestions(
    subscores: Dict[str, int],
    evidence: Dict[str, Dict[str, Any]],
    job: Optional[JobExtraction] = None,
    resume_text: str = "",
    config: Optional[ScoringConfig] = None,
) -> List[Suggestion]:
    """Suggestions for every subscore below the weak threshold, weakest first."""
    config = config or ScoringConfig()
    gaps = sorted(
        ((key, score) for key, score in subscores.items() if score < config.weak_threshold),
        key=lambda item: (item[1], -config.weights.get(item[0], 0.0)),
    )

    suggestions: List[Suggestion] = []
    seen_ids = set()
    for subscore, score in gaps:
        candidates = _suggestions_for_gap(subscore, score, evidence.get(subscore) or {}, job, resume_text, config)
        candidates.sort(key=lambda s: (not s.quick_win, -s.estimated_gain))
        for suggestion in candidates[:config.suggestions_per_subscore]:
            if suggestion.id not in seen_ids:
                seen_ids.add(suggestion.id)
                suggestions.append(suggestion)
    return suggestions[:config.max_suggestions]


def missing_must_have(job: Optional[JobExtraction], resume_text: str) -> List[str]:
    """Must-have terms that do not appear in the resume text (case-insensitive substring)."""
    if job is None:
        return []
    lowered = (resume_text or "").lower()
    return dedupe_preserve_order(term for term in job.must_have if term.strip() and term.strip().lower() not in lowered)


def _suggestions_for_gap(
    subscore: str,
    score: int,
    evidence: Dict[str, Any],
    job: Optional[JobExtraction],
    resume_text: str,
    config: ScoringConfig,
) -> List[Suggestion]:
    templates = SUGGESTION_TEMPLATES.get(subscore, [])
    data = _template_data(subscore, evidence, job, resume_text)
    built: List[Suggestion] = []

    def _build(template: SuggestionTemplate, values: Dict[str, Any], action: Optional[Dict[str, Any]]) -> None:
        text = fill_template(template, values)
        if _PLACEHOLDER.search(text):
            return
        gain = estimate_impact(score, template.estimated_gain)
        if gain < config.min_gain:
            return
        built.append(Suggestion(
            id=suggestion_id(subscore, text),
            text=text,
            estimated_gain=gain,
            quick_win=template.quick_win,
            category=template.category,
            targets=[subscore],
            action=action,
        ))

    for position, template in enumerate(templates):
        if template.condition and not template.condition(evidence, score):
            continue
        if subscore == "keyword_exact" and position == 0:
            for keyword in data.get("keywords", [])[:config.suggestions_per_subscore]:
                _build(template, {"keyword": keyword}, _keyword_action([keyword], "must_have"))
            continue
        action = None
        if subscore == "keyword_exact":
            terms = data.get("nice_keywords", []) if "{nice_keywords}" in template.text else data.get("keywords", [])
            action = _keyword_action(terms, "nice_to_have" if "{nice_keywords}" in template.text else "must_have")
        elif subscore == "metrics_presence":
            action = {"type": "add_metric", "target_role_index": 0, "target_count": data.get("count", 3)}
        _build(template, data, action)
    return built


def _keyword_action(keywords: List[str], source: str) -> Optional[Dict[str, Any]]:
    if not keywords:
        return None
    return {"type": "add_keyword", "keywords": list(keywords), "target": "skills.technical", "source": source}


def _template_data(
    subscore: str,
    evidence: Dict[str, Any],
    job: Optional[JobExtraction],
    resume_text: str,
) -> Dict[str, Any]:
    data: Dict[str, Any] = {}
    if subscore == "keyword_exact":
        keywords = [k for k in missing_must_have(job, resume_text) if not _is_generic_keyword(k)]
        if keywords:
            data.update(keyword=keywords[0], keywords=keywords, count=len(keywords))
        lowered = (resume_text or "").lower()
        nice = [k for k in (job.nice_to_have if job else []) if k.strip() and k.strip().lower() not in lowered]
        if nice:
            data["nice_keywords"] = dedupe_preserve_order(nice)
    elif subscore == "keyword_phrase":
        phrases = _phrase_candidates(evidence.get("missing") or (job.responsibilities if job else []))
        if phrases:
            data.update(phrase=phrases[0], phrases=phrases)
    elif subscore == "title_alignment":
        if evidence.get("target_title"):
            data.update(target_title=evidence["target_title"], seniority=evidence.get("target_seniority") or "mid")
    elif subscore == "metrics_presence":
        ideal = int(evidence.get("ideal_metrics") or 0)
        data["count"] = min(3, ideal) if ideal > 0 else 3
    elif subscore == "section_completeness":
        if evidence.get("missing"):
            data["section"] = evidence["missing"][0]
    return data


_GENERIC_KEYWORDS = re.compile(
    r"^(job\s*title|title|company(\s*name)?|about(\s+this\s+job)?|responsibilit(y|ies)|requirements?"
    r"|qualifications?|location|role|position)$",
    re.IGNORECASE,
)
_BOILERPLATE = re.compile(
    r"\b(job description|responsibilit(y|ies)|qualifications|requirements|must\s+have|nice\s+to\s+have"
    r"|you will|we are|apply|equal opportunity|benefits?)\b",
    re.IGNORECASE,
)
_PHRASE_LEAD = re.compile(r"^(responsible for|experience with|experience in|knowledge of|ability to)\s+", re.IGNORECASE)


def _is_generic_keyword(keyword: str) -> bool:
    cleaned = keyword.strip().lower()
    return len(cleaned) < 3 or bool(_GENERIC_KEYWORDS.match(cleaned))


def _phrase_candidates(raw: List[str]) -> List[str]:
    cleaned = []
    for phrase in raw:
        phrase = re.sub(r"^[\W_]+|[\W_]+$", "", str(phrase))
        phrase = _PHRASE_LEAD.sub("", re.sub(r"\s+", " ", phrase)).strip()
        if phrase and not _BOILERPLATE.search(phrase) and 2 <= len(phrase.split(" ")) <= 8:
            cleaned.append(phrase)
    return dedupe_preserve_order(cleaned)[:3]


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def aggregate_gain(gains: List[int], old_score: int, config: Optional[ScoringConfig] = None) -> GainAggregation:
    """Combine the estimated gains of suggestions applied together.

    ``factor = base + decay / sqrt(n)``; the adjusted gain is capped at
    ``max_total_gain`` and the new score at 100.
    """
    config = config or ScoringConfig()
    n = len(gains)
    raw_gain = sum(gains)
    if n == 0:
        return GainAggregation(0, 0, 1.0, 0, 0, old_score, old_score)

    factor = config.base_factor + config.decay_factor / math.sqrt(n)
    adjusted = _round_half_up(raw_gain * factor)
    final = min(config.max_total_gain, adjusted)
    new_score = min(100, old_score + final)
    return GainAggregation(raw_gain, n, factor, adjusted, final, old_score, new_score)


# ---------------------------------------------------------------------------
# Applying suggestions to a document
# ---------------------------------------------------------------------------

NON_SKILL_WORDS = {
    "and", "or", "the", "a", "an", "to", "in", "at", "of", "for", "with", "by",
    "from", "as", "on", "is", "are", "was", "were", "be", "been", "being",
    "add", "include", "use", "apply", "implement", "create", "develop",
    "job", "title", "position", "role", "work", "company", "skills", "skill",
    "section", "resume", "more", "other", "also", "plus",
    "responsibility", "responsibilities", "requirement", "requirements",
    "qualification", "qualifications", "candidate", "applicant", "posted",
    "description", "preferred", "benefit", "benefits", "salary", "location",
    "remote", "hybrid",
}

_GENERIC_ACRONYMS = {"api", "apis", "qa", "sql"}

_VALID_SKILL_PATTERNS = [
    re.compile(r"^[A-Z][a-z]+(?:[A-Z][a-z]+)*$"),
    re.compile(r"^[A-Z]{2,}$"),
    re.compile(r"^[A-Za-z]+[+#]+$"),
    re.compile(r"^\.[A-Z]+$"),
    re.compile(r"^[A-Za-z][\w.+#/-]*(?:\s+[A-Za-z][\w.+#/-]*){1,2}$"),
]


def is_valid_skill(term: str) -> bool:
    """Heuristic filter that keeps real skills and drops structural words."""
    lowered = term.strip().lower()
    if lowered in _GENERIC_ACRONYMS:
        return False
    if len(lowered) < 3 and not re.match(r"^[a-z][+#]+$", lowered):
        return False
    if lowered in NON_SKILL_WORDS or lowered.isdigit():
        return False
    if any(pattern.match(term.strip()) for pattern in _VALID_SKILL_PATTERNS):
        return True
    return bool(re.match(r"^[a-z][a-z0-9.+#-]{3,}$", lowered))


def keywords_from_text(text: str) -> List[str]:
    """Pull explicit quoted terms out of a suggestion's text."""
    quoted = re.findall(r"'([^']+)'", text) + re.findall(r'"([^"]+)"', text)
    return dedupe_preserve_order(t.strip() for t in quoted if is_valid_skill(t.strip()))


def apply_suggestion_edits(
    document: Dict[str, Any],
    suggestions: List[Suggestion],
) -> Tuple[Dict[str, Any], List[Dict[str, Any]]]:
    """Perform the document edits that suggestions can make mechanically.

    Keyword suggestions append their terms to ``skills.technical``. All other
    categories need prose and are reported as requiring a manual edit.
    Returns ``(new_document, change_log)``.
    """
    updated = document
    log: List[Dict[str, Any]] = []
    for suggestion in suggestions:
        if suggestion.category != "keywords":
            log.append({"id": suggestion.id, "changed": False, "description": "Requires manual edit"})
            continue

        candidates = (suggestion.action or {}).get("keywords") or keywords_from_text(suggestion.text)
        keywords = dedupe_preserve_order(k for k in candidates if is_valid_skill(str(k)))
        if not keywords:
            log.append({"id": suggestion.id, "changed": False, "description": "No valid keywords found"})
            continue

        before = list((updated.get("skills") or {}).get("technical") or [])
        updated = append_unique(updated, "skills.technical", keywords)
        after = (updated.get("skills") or {}).get("technical") or []
        added = after[len(before):]
        if added:
            log.append({"id": suggestion.id, "changed": True, "description": f"Added keywords: {', '.join(added)}"})
        else:
            log.append({"id": suggestion.id, "changed": False, "description": f"Keywords already present: {', '.join(keywords)}"})
    logger.debug(f"Applied {sum(1 for e in log if e['changed'])}/{len(suggestions)} suggestions")
    return updated, log
