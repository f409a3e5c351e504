"""Template catalog and heuristic design recommendation."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional

# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TemplateInfo:
    id: str
    name: str
    ats_score: int
    best_for: str
    industries: tuple


TEMPLATES: Dict[str, TemplateInfo] = {
    "minimal-ssr": TemplateInfo(
        "minimal-ssr", "Minimal", 98,
        "Clean, text-focused layout for technical roles, academia, or conservative industries (law, finance).",
        ("technical", "finance"),
    ),
    "card-ssr": TemplateInfo(
        "card-ssr", "Card", 92,
        "Modern card-based layout for creative professionals, marketing, UX/UI roles.",
        ("creative",),
    ),
    "sidebar-ssr": TemplateInfo(
        "sidebar-ssr", "Sidebar", 94,
        "Professional sidebar layout for managers, consultants, executives.",
        ("business",),
    ),
    "timeline-ssr": TemplateInfo(
        "timeline-ssr", "Timeline", 90,
        "Timeline layout emphasizing career progression for PM, sales, leadership roles.",
        ("sales",),
    ),
}

DEFAULT_TEMPLATE = "minimal-ssr"

INDUSTRY_PATTERNS: Dict[str, re.Pattern] = {
    "technical": re.compile(r"software|engineer|developer|programming|technical|code", re.IGNORECASE),
    "creative": re.compile(r"design|creative|marketing|brand|visual|\bux\b|\bui\b", re.IGNORECASE),
    "business": re.compile(r"business|management|consulting|strategy|operations", re.IGNORECASE),
    "finance": re.compile(r"finance|accounting|banking|investment|financial", re.IGNORECASE),
    "sales": re.compile(r"sales|account|revenue|business development", re.IGNORECASE),
}

# Below this format_parseability subscore only the most ATS-safe template is offered.
FORMAT_RISK_THRESHOLD = 60


@dataclass
class DesignRecommendation:
    template_id: str
    reasoning: str
    confidence: float
    alternatives: List[str] = field(default_factory=list)
    source: str = "heuristic"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "template_id": self.template_id,
            "reasoning": self.reasoning,
            "confidence": round(self.confidence, 2),
            "alternatives": list(self.alternatives),
            "source": self.source,
        }


def extract_industry_keywords(job_text: str) -> List[str]:
    return [industry for industry, pattern in INDUSTRY_PATTERNS.items() if pattern.search(job_text or "")]


def _parse_date(value: Any, today: date) -> Optional[date]:
    if not value:
        return None
    text = str(value).strip()
    if text.lower() == "present":
        return today
    match = re.match(r"^(\d{4})(?:-(\d{1,2}))?", text)
    if not match:
        return None
    return date(int(match.group(1)), int(match.group(2) or 1), 1)


def calculate_experience_years(experience: List[Dict[str, Any]], today: Optional[date] = None) -> int:
    """Sum of role durations in whole years. Missing start dates default to 2020-01, missing end to today."""
    today = today or date.today()
    total_months = 0
    for exp in experience or []:
        if not isinstance(exp, dict):
            continue
        start = _parse_date(exp.get("startDate"), today) or date(2020, 1, 1)
        end = _parse_date(exp.get("endDate"), today) or today
        total_months += max(0, (end.year - start.year) * 12 + (end.month - start.month))
    return round(total_months / 12)


def recommend_design(
    document: Dict[str, Any],
    job_text: str = "",
    subscores: Optional[Dict[str, int]] = None,
    today: Optional[date] = None,
) -> DesignRecommendation:
    """Pick a template from industry signals, seniority, and the current format score."""
    industries = extract_industry_keywords(job_text)
    years = calculate_experience_years(document.get("experience") or [], today)
    format_score = (subscores or {}).get("format_parseability")

    if format_score is not None and format_score < FORMAT_RISK_THRESHOLD:
        return DesignRecommendation(
            DEFAULT_TEMPLATE,
            f"Format parseability is {format_score}/100; a single-column minimal layout maximizes ATS compatibility.",
            0.9,
            [],
        )

    votes: Dict[str, float] = {template_id: 0.0 for template_id in TEMPLATES}
    for industry in industries:
        for template in TEMPLATES.values():
            if industry in template.industries:
                votes[template.id] += 1.0
    if years >= 10:
        votes["sidebar-ssr"] += 0.75
        votes["timeline-ssr"] += 0.5
    elif years >= 5:
        votes["timeline-ssr"] += 0.5
    elif years <= 2:
        votes["minimal-ssr"] += 0.5

    ranked = sorted(votes.items(), key=lambda item: (item[1], TEMPLATES[item[0]].ats_score), reverse=True)
    best_id, best_votes = ranked[0]
    if best_votes <= 0:
        return DesignRecommendation(
            DEFAULT_TEMPLATE,
            "No strong industry signal; recommending the minimal template for maximum ATS compatibility.",
            0.6,
            [t for t, _ in ranked[1:3]],
        )

    template = TEMPLATES[best_id]
    signals = ", ".join(industries) if industries else "general"
    reasoning = (
        f"{template.name} suits this profile ({years} years of experience, {signals} role): "
        f"{template.best_for} ATS score {template.ats_score}."
    )
    confidence = round(min(0.9, 0.55 + 0.15 * best_votes), 2)
    return DesignRecommendation(best_id, reasoning, confidence, [t for t, _ in ranked[1:3]])


def build_recommendation_prompt(document: Dict[str, Any], job_text: str) -> str:
    experience = document.get("experience") or []
    skills = document.get("skills") or {}
    skill_list = skills.get("technical", []) if isinstance(skills, dict) else list(skills)
    catalog = "\n".join(
        f"{i}. {t.id}: {t.best_for} ATS score: {t.ats_score}" for i, t in enumerate(TEMPLATES.values(), 1)
    )
    return (
        "Recommend the most appropriate resume template.\n\n"
        f"Available templates:\n{catalog}\n\n"
        "RESUME SUMMARY:\n"
        f"- Years of experience: {calculate_experience_years(experience)}\n"
        f"- Key skills: {', '.join(str(s) for s in skill_list[:10])}\n"
        f"- Professional summary: {str(document.get('summary') or '')[:200]}\n"
        f"- Number of positions: {len(experience)}\n\n"
        f"JOB DESCRIPTION:\n{(job_text or '')[:500]}\n\n"
        f"INDUSTRY INDICATORS:\n{', '.join(extract_industry_keywords(job_text))}\n\n"
        'Respond in JSON: {"template_id": "template-slug", "reasoning": "2-3 sentences", "confidence": 0.85}'
    )


def parse_recommendation_response(text: str) -> Optional[DesignRecommendation]:
    """Parse an LLM JSON reply. Returns None for malformed replies or unknown templates."""
    match = re.search(r"\{.*\}", text or "", re.DOTALL)
    if not match:
        return None
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError:
        return None
    template_id = data.get("template_id") or data.get("templateId")
    if template_id not in TEMPLATES or not data.get("reasoning"):
        return None
    try:
        confidence = float(data.get("confidence", 0.7))
    except (TypeError, ValueError):
        confidence = 0.7
    return DesignRecommendation(
        template_id=template_id,
        reasoning=str(data["reasoning"]),
        confidence=max(0.0, min(1.0, confidence)),
        alternatives=[t for t in TEMPLATES if t != template_id][:2],
        source="llm",
    )
