"""ATS-style match scoring of a resume against a job description.

The overall score is a fixed weighted sum of eight subscores, each 0-100.
Weights and the scoring version live in :class:`~resume_editor.config.ScoringConfig`
so before/after reports are only compared when produced by the same version.

All functions operate on dicts and strings -- no I/O.
"""

from __future__ import annotations

import logging
import math
import re
from abc import ABC, abstractmethod
from collections import Counter
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional, Set, Tuple, Union

from ..config import SUBSCORE_KEYS, ScoringConfig
from .job_extraction import JobExtraction, extract_job_data, extraction_completeness
from .suggestions import Suggestion, generate_suggestions
from .text import (
    STOP_WORDS,
    edit_similarity,
    extract_job_titles,
    extract_ngrams,
    extract_resume_text,
    get_latest_role,
    jaccard_similarity,
    lerp,
    normalize_text,
    safe_divide,
    tokenize,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Thresholds
# ---------------------------------------------------------------------------

MIN_KEYWORD_LENGTH = 3
MUST_HAVE_WEIGHT = 2.0
NICE_TO_HAVE_WEIGHT = 1.0
PHRASE_NGRAM_SIZES = (3, 4)
PHRASE_SIMILARITY = 0.7

SEMANTIC_TOP_K = 5
SEMANTIC_KEYWORD_CAP_THRESHOLD = 40
SEMANTIC_CAPPED_MAX = 70

METRIC_PATTERNS = [
    re.compile(r"\d+%"),
    re.compile(r"\$[\d,]+"),
    re.compile(r"#\d+"),
    re.compile(r"\d+x\b"),
    re.compile(r"\d+[KMB]\b"),
]
MIN_TOTAL_METRICS = 3
IDEAL_METRICS_PER_ROLE = 2

DECAY_START_YEARS = 3
MAX_DECAY = 0.5
LATEST_ROLE_BOOST = 10
LATEST_ROLE_KEYWORD_RATIO = 0.6

FORMAT_PENALTIES = {
    "multi_column": 15,
    "tables": 20,
    "images": 10,
    "headers_footers": 5,
    "nonstandard_fonts": 5,
    "odd_glyphs": 5,
}
ATS_SAFE_TEMPLATE_MARKERS = ("ats", "minimal", "simple")
MULTI_COLUMN_TEMPLATE_MARKERS = ("sidebar", "card", "two-column", "two_column")
STANDARD_FONTS = {
    "arial", "calibri", "helvetica", "times new roman", "georgia", "garamond",
    "cambria", "verdana", "tahoma", "inter", "roboto", "open sans",
}
_ODD_GLYPHS = re.compile(r"[^\x00-\x7F\u00A0-\u024F\u0370-\u06FF\u0750-\u077F\u08A0-\u08FF\u2010-\u2027\u20AC]")

CONFIDENCE_MIN_ANALYZER = 0.5
CONFIDENCE_JD_PENALTY = 0.2
CONFIDENCE_RESUME_PENALTY = 0.15
CONFIDENCE_FORMAT_PENALTY = 0.1
CONFIDENCE_AGREEMENT_BOOST = 0.1

_COMMON_PHRASE_WORDS = {
    "the", "and", "for", "with", "this", "that", "from", "have", "will", "are", "been", "has",
    "had", "was", "were", "can", "may", "could", "would", "should", "must", "being", "about",
    "into", "through", "during", "you", "our", "your", "a", "an", "to", "of", "in", "on", "or",
}

_SENIORITY_LEVELS = {
    "entry": 1, "junior": 1, "mid": 2, "senior": 3, "lead": 4, "staff": 4, "principal": 5, "executive": 6,
}


# ---------------------------------------------------------------------------
# Data types
# ---------------------------------------------------------------------------


@dataclass
class AnalyzerInput:
    resume_text: str
    resume_json: Optional[Dict[str, Any]]
    job: JobExtraction
    job_text: str
    today: date
    design: Dict[str, Any] = field(default_factory=dict)


@dataclass
class AnalyzerResult:
    score: int
    evidence: Dict[str, Any] = field(default_factory=dict)
    confidence: float = 1.0
    warnings: List[str] = field(default_factory=list)
    failed: bool = False


@dataclass
class ScoreReport:
    """Structured result from scoring one resume against one job."""

    score: int
    subscores: Dict[str, int]
    suggestions: List[Suggestion]
    confidence: float
    scoring_version: str
    evidence: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    risks: List[str] = field(default_factory=list)
    confidence_factors: List[Dict[str, Any]] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    failed_analyzers: List[str] = field(default_factory=list)
    low_confidence_threshold: float = 0.5

    @property
    def low_confidence(self) -> bool:
        return self.confidence < self.low_confidence_threshold

    def get_suggestion(self, suggestion_id: str) -> Optional[Suggestion]:
        for suggestion in self.suggestions:
            if suggestion.id == suggestion_id:
                return suggestion
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": self.score,
            "subscores": dict(self.subscores),
            "suggestions": [s.to_dict() for s in self.suggestions],
            "confidence": round(self.confidence, 3),
            "low_confidence": self.low_confidence,
            "scoring_version": self.scoring_version,
            "risks": list(self.risks),
            "confidence_factors": list(self.confidence_factors),
            "warnings": list(self.warnings),
            "failed_analyzers": list(self.failed_analyzers),
        }


# ---------------------------------------------------------------------------
# Analyzers
# ---------------------------------------------------------------------------


class BaseAnalyzer(ABC):
    """One subscore. ``analyze`` must be read-only over its input."""

    name: str

    @abstractmethod
    def analyze(self, data: AnalyzerInput) -> AnalyzerResult:
        """Compute the subscore."""

    @staticmethod
    def result(score: float, evidence: Dict[str, Any], confidence: float = 1.0,
               warnings: Optional[List[str]] = None) -> AnalyzerResult:
        return AnalyzerResult(
            score=max(0, min(100, int(round(score)))),
            evidence=evidence,
            confidence=max(0.0, min(1.0, confidence)),
            warnings=list(warnings or []),
        )

    @staticmethod
    def calculate_confidence(has_required_data: bool, completeness: float, parsing_errors: int = 0) -> float:
        if not has_required_data:
            return 0.0
        confidence = completeness
        if parsing_errors > 0:
            confidence *= max(0.3, 1 - parsing_errors * 0.1)
        return max(0.0, min(1.0, confidence))


def _keyword_tokens(values: List[str]) -> List[str]:
    tokens: List[str] = []
    for value in values:
        for token in tokenize(value):
            if len(token) >= MIN_KEYWORD_LENGTH and token not in STOP_WORDS and token not in tokens:
                tokens.append(token)
    return tokens


class KeywordExactAnalyzer(BaseAnalyzer):
    """Exact keyword coverage; must-have terms count double."""

    name = "keyword_exact"

    def analyze(self, data: AnalyzerInput) -> AnalyzerResult:
        must_have = _keyword_tokens(data.job.must_have)
        nice_to_have = [t for t in _keyword_tokens(data.job.nice_to_have) if t not in must_have]
        missing_terms = [term for term in data.job.must_have if term.strip().lower() not in data.resume_text.lower()]

        if not data.resume_text.strip():
            return self.result(0, {
                "matched": [], "missing": must_have + nice_to_have, "missing_terms": list(data.job.must_have),
                "must_have_matched": 0, "must_have_total": len(must_have),
            }, confidence=0.0)

        resume_tokens = {t for t in tokenize(data.resume_text) if len(t) >= MIN_KEYWORD_LENGTH}
        must_missing = [t for t in must_have if t not in resume_tokens]
        nice_missing = [t for t in nice_to_have if t not in resume_tokens]
        must_matched = len(must_have) - len(must_missing)
        nice_matched = len(nice_to_have) - len(nice_missing)

        possible = len(must_have) * MUST_HAVE_WEIGHT + len(nice_to_have) * NICE_TO_HAVE_WEIGHT
        earned = must_matched * MUST_HAVE_WEIGHT + nice_matched * NICE_TO_HAVE_WEIGHT
        score = safe_divide(earned, possible) * 100

        confidence = self.calculate_confidence(
            has_required_data=bool(must_have or nice_to_have),
            completeness=1.0 if must_have else 0.7,
        )
        return self.result(score, {
            "matched": [t for t in must_have + nice_to_have if t in resume_tokens],
            "missing": must_missing + nice_missing,
            "missing_terms": missing_terms,
            "nice_missing": nice_missing,
            "must_have_matched": must_matched,
            "must_have_total": len(must_have),
            "nice_to_have_matched": nice_matched,
            "nice_to_have_total": len(nice_to_have),
        }, confidence)


def _extract_phrases(text: str) -> List[str]:
    phrases: List[str] = []
    seen: Set[str] = set()
    for n in PHRASE_NGRAM_SIZES:
        for ngram in extract_ngrams(text, n):
            words = ngram.split(" ")
            if ngram in seen or all(w in _COMMON_PHRASE_WORDS for w in words):
                continue
            seen.add(ngram)
            phrases.append(ngram)
    return phrases


class KeywordPhraseAnalyzer(BaseAnalyzer):
    """Coverage of multi-word job phrases, tolerant to word order."""

    name = "keyword_phrase"

    def analyze(self, data: AnalyzerInput) -> AnalyzerResult:
        jd_phrases: List[str] = []
        for source in [data.job_text] + list(data.job.responsibilities):
            for phrase in _extract_phrases(source):
                if phrase not in jd_phrases:
                    jd_phrases.append(phrase)

        if not data.resume_text.strip():
            return self.result(0, {"matched": [], "missing": jd_phrases[:10], "total_jd_phrases": len(jd_phrases)}, 0.0)
        if not jd_phrases:
            return self.result(50, {"matched": [], "missing": [], "total_jd_phrases": 0}, 0.0)

        resume_phrases = _extract_phrases(data.resume_text)
        exact = set(resume_phrases)
        index: Dict[str, List[Set[str]]] = {}
        for phrase in resume_phrases:
            words = set(phrase.split(" "))
            for word in words:
                index.setdefault(word, []).append(words)

        matched: List[str] = []
        missing: List[str] = []
        for phrase in jd_phrases:
            if phrase in exact or self._has_similar(phrase, index):
                matched.append(phrase)
            else:
                missing.append(phrase)

        score = len(matched) / len(jd_phrases) * 100
        confidence = self.calculate_confidence(True, 1.0 if len(jd_phrases) > 3 else 0.7)
        return self.result(score, {
            "matched": matched[:20],
            "missing": missing[:10],
            "total_jd_phrases": len(jd_phrases),
            "matched_count": len(matched),
        }, confidence)

    @staticmethod
    def _has_similar(phrase: str, index: Dict[str, List[Set[str]]]) -> bool:
        target = set(phrase.split(" "))
        for word in target:
            for candidate in index.get(word, []):
                if jaccard_similarity(target, candidate) > PHRASE_SIMILARITY:
                    return True
        return False


def _resume_sections(data: AnalyzerInput) -> List[Tuple[str, str]]:
    resume = data.resume_json
    if not resume:
        paragraphs = [p for p in re.split(r"\n\s*\n", data.resume_text) if len(p.strip()) > 50]
        return [(f"section_{i}", p) for i, p in enumerate(paragraphs)]

    sections: List[Tuple[str, str]] = []
    if resume.get("summary"):
        sections.append(("summary", str(resume["summary"])))
    skills = resume.get("skills") or {}
    if isinstance(skills, dict):
        skill_text = ", ".join(str(s) for s in (skills.get("technical") or []) + (skills.get("soft") or []))
        if skill_text:
            sections.append(("skills", skill_text))
    for i, exp in enumerate(resume.get("experience") or []):
        if isinstance(exp, dict):
            text = " ".join([str(exp.get("title") or "")] + [str(a) for a in exp.get("achievements") or []])
            if text.strip():
                sections.append((f"experience_{i}", text))
    for i, project in enumerate(resume.get("projects") or []):
        if isinstance(project, dict) and project.get("description"):
            sections.append((f"project_{i}", str(project["description"])))
    return sections


def _term_vector(text: str) -> Counter:
    return Counter(t for t in tokenize(text) if len(t) >= MIN_KEYWORD_LENGTH and t not in STOP_WORDS)


def _cosine(a: Counter, b: Counter) -> float:
    if not a or not b:
        return 0.0
    dot = sum(count * b.get(term, 0) for term, count in a.items())
    norm = math.sqrt(sum(v * v for v in a.values())) * math.sqrt(sum(v * v for v in b.values()))
    return safe_divide(dot, norm)


class SemanticRelevanceAnalyzer(BaseAnalyzer):
    """Term-vector cosine between the job text and the closest resume sections."""

    name = "semantic_relevance"

    def analyze(self, data: AnalyzerInput) -> AnalyzerResult:
        sections = _resume_sections(data)
        job_vector = _term_vector(" ".join([data.job_text, data.job.title] + list(data.job.must_have)))
        if not sections or not job_vector:
            return self.result(0, {"error": "No resume sections or job text to compare"}, 0.0)

        similarities = sorted(
            ((name, _cosine(job_vector, _term_vector(text))) for name, text in sections),
            key=lambda item: item[1],
            reverse=True,
        )
        top = similarities[:SEMANTIC_TOP_K]
        average = sum(sim for _, sim in top) / len(top)
        # Raw term cosine between a short section and a full posting rarely exceeds 0.5.
        score = math.sqrt(average) * 100

        confidence = self.calculate_confidence(True, 1.0 if len(sections) >= 3 else 0.8)
        return self.result(score, {
            "top_sections": [{"section": name, "similarity": round(sim * 100)} for name, sim in top],
            "average_similarity": round(average * 100),
        }, confidence)


class TitleAlignmentAnalyzer(BaseAnalyzer):
    name = "title_alignment"

    def analyze(self, data: AnalyzerInput) -> AnalyzerResult:
        target = data.job.title
        target_seniority = data.job.seniority or "mid"
        if not target:
            return self.result(50, {"error": "No target title available"}, 0.5)

        titles = extract_job_titles(data.resume_json) if data.resume_json else self._titles_from_text(data.resume_text)
        if not titles:
            return self.result(20, {"error": "No job titles found in resume", "target_title": target,
                                    "target_seniority": target_seniority}, 0.6)

        matches = [
            (title, self._title_similarity(title, target), self._seniority_match(title, target_seniority))
            for title in titles
        ]
        best_title, best_similarity, seniority_ok = max(matches, key=lambda m: m[1])

        score = best_similarity * 100
        if titles[0] == best_title:
            score = min(100, score + 10)
        if not seniority_ok:
            score = max(0, score - 15)

        return self.result(score, {
            "target_title": target,
            "target_seniority": target_seniority,
            "best_match": {"title": best_title, "similarity": round(best_similarity * 100), "seniority_match": seniority_ok},
            "all_titles": titles,
        }, self.calculate_confidence(True, 1.0 if len(titles) >= 2 else 0.8))

    @staticmethod
    def _normalize_title(title: str) -> str:
        title = re.sub(r"\b(jr|sr|senior|junior|lead|staff|principal)\b", "", title.lower())
        title = re.sub(r"\b(i|ii|iii|iv|v|1|2|3|4|5)\b", "", title)
        return normalize_text(title)

    def _title_similarity(self, a: str, b: str) -> float:
        norm_a, norm_b = self._normalize_title(a), self._normalize_title(b)
        if norm_a == norm_b:
            return 1.0
        return edit_similarity(norm_a, norm_b) * 0.5 + jaccard_similarity(norm_a.split(), norm_b.split()) * 0.5

    @staticmethod
    def _detect_seniority(title: str) -> str:
        lowered = title.lower()
        if "principal" in lowered or "director" in lowered:
            return "principal"
        if "staff" in lowered:
            return "staff"
        if re.search(r"\b(lead|senior|sr)\b", lowered):
            return "senior"
        if re.search(r"\b(junior|jr|entry)\b", lowered):
            return "entry"
        return "mid"

    def _seniority_match(self, title: str, target: str) -> bool:
        resume_level = _SENIORITY_LEVELS.get(self._detect_seniority(title), 2)
        target_level = _SENIORITY_LEVELS.get(target, 2)
        return abs(resume_level - target_level) <= 1

    @staticmethod
    def _titles_from_text(text: str) -> List[str]:
        titles: List[str] = []
        for pattern in (
            re.compile(r"(?:^|\n)([A-Z][a-z]+(?:\s+[A-Z][a-z]+){1,4})\s*(?:at|@|\||,|—|-)", re.MULTILINE),
            re.compile(r"(?:position|role|title):\s*([^\n]+)", re.IGNORECASE),
        ):
            titles.extend(m.strip() for m in pattern.findall(text))
        return titles[:10]


def find_metrics(text: str) -> List[str]:
    found: List[str] = []
    for pattern in METRIC_PATTERNS:
        found.extend(pattern.findall(text or ""))
    return found


class MetricsPresenceAnalyzer(BaseAnalyzer):
    """Quantified achievements and how evenly they spread across roles."""

    name = "metrics_presence"

    def analyze(self, data: AnalyzerInput) -> AnalyzerResult:
        metrics = find_metrics(data.resume_text)
        per_role: List[Dict[str, Any]] = []
        experience = (data.resume_json or {}).get("experience") or []
        for exp in experience:
            if not isinstance(exp, dict):
                continue
            role_text = " ".join([str(exp.get("title") or ""), str(exp.get("company") or "")]
                                 + [str(a) for a in exp.get("achievements") or []])
            per_role.append({"role": f"{exp.get('title') or ''} at {exp.get('company') or ''}",
                             "count": len(find_metrics(role_text))})

        ideal = len(experience) * IDEAL_METRICS_PER_ROLE if data.resume_json else MIN_TOTAL_METRICS
        coverage = lerp(len(metrics), 0, max(ideal, MIN_TOTAL_METRICS))
        distribution_bonus = 0.0
        if per_role:
            distribution_bonus = sum(1 for r in per_role if r["count"] > 0) / len(per_role) * 20

        score = 0 if not metrics else min(100, coverage + distribution_bonus)
        unquantified = sum(
            1 for exp in experience if isinstance(exp, dict)
            for a in exp.get("achievements") or [] if not find_metrics(str(a))
        )
        return self.result(score, {
            "total_metrics": len(metrics),
            "examples": metrics[:10],
            "metrics_per_role": per_role,
            "ideal_metrics": ideal,
            "unquantified_achievements": unquantified,
        }, self.calculate_confidence(bool(data.resume_text.strip()), 1.0))


REQUIRED_SECTIONS = ("summary", "skills", "experience", "education")


def _section_present(resume: Dict[str, Any], name: str) -> bool:
    value = resume.get(name)
    if name == "skills" and isinstance(value, dict):
        return bool(value.get("technical") or value.get("soft"))
    return bool(value)


class SectionCompletenessAnalyzer(BaseAnalyzer):
    name = "section_completeness"

    _TEXT_HEADERS = {
        "summary": ("summary", "profile", "objective"),
        "skills": ("skills", "technical skills", "competencies"),
        "experience": ("experience", "work experience", "employment"),
        "education": ("education", "academic background"),
    }

    def analyze(self, data: AnalyzerInput) -> AnalyzerResult:
        if not data.resume_json:
            found = [
                name for name, headers in self._TEXT_HEADERS.items()
                if any(re.search(rf"\b{h}\b", data.resume_text, re.IGNORECASE) for h in headers)
            ]
            return self.result(len(found) / 4 * 100, {
                "present": found,
                "missing": [n for n in REQUIRED_SECTIONS if n not in found],
            }, 0.7 if data.resume_text.strip() else 0.0)

        resume = data.resume_json
        present = [name for name in REQUIRED_SECTIONS if _section_present(resume, name)]
        missing = [name for name in REQUIRED_SECTIONS if name not in present]
        bonus = self._quality_bonus(resume)
        return self.result(min(100, len(present) / len(REQUIRED_SECTIONS) * 100 + bonus), {
            "present": present,
            "missing": missing,
            "quality_bonus": bonus,
            "summary_words": len(str(resume.get("summary") or "").split()),
        }, 1.0)

    @staticmethod
    def _quality_bonus(resume: Dict[str, Any]) -> int:
        bonus = 0
        if 50 <= len(str(resume.get("summary") or "").split()) <= 150:
            bonus += 5
        skills = resume.get("skills") or {}
        if isinstance(skills, dict) and len(skills.get("technical") or []) + len(skills.get("soft") or []) >= 5:
            bonus += 5
        experience = [e for e in resume.get("experience") or [] if isinstance(e, dict)]
        if experience and all(e.get("achievements") for e in experience):
            bonus += 5
        education = [e for e in resume.get("education") or [] if isinstance(e, dict)]
        if education and all(e.get("degree") and e.get("institution") for e in education):
            bonus += 5
        return bonus


def analyze_format(
    resume: Optional[Dict[str, Any]],
    resume_text: str,
    design: Optional[Dict[str, Any]] = None,
) -> Optional[Dict[str, Any]]:
    """Estimate ATS format safety from design metadata and content.

    *design* is the user's assignment (template, fonts); it overrides any
    ``design`` block embedded in the document.
    """
    if resume is None and not resume_text:
        return None

    design = {**((resume or {}).get("design") or {}), **(design or {})}
    template_id = str(design.get("template_id") or "").lower()
    if template_id and any(marker in template_id for marker in ATS_SAFE_TEMPLATE_MARKERS):
        return {"format_safety_score": 100, "issues": [], "template_id": template_id}

    contact = (resume or {}).get("contact") or {}
    if not isinstance(contact, dict):
        contact = {}
    fonts = design.get("font_family") or {}
    if not isinstance(fonts, dict):
        fonts = {"body": fonts}
    font_names = [str(name).lower() for name in fonts.values() if name]
    flags = {
        "multi_column": any(m in template_id for m in MULTI_COLUMN_TEMPLATE_MARKERS)
        or "column" in str(design.get("layout") or "").lower(),
        "tables": bool(re.search(r"^\s*\|.+\|\s*$", resume_text, re.MULTILINE)) or "\t" in resume_text,
        "images": bool(contact.get("photo") or design.get("photo")),
        "headers_footers": bool(design.get("header_text") or design.get("footer_text")),
        "nonstandard_fonts": any(name not in STANDARD_FONTS for name in font_names),
        "odd_glyphs": bool(_ODD_GLYPHS.search(resume_text)),
    }
    messages = {
        "multi_column": "Multi-column layout detected - may cause parsing issues",
        "tables": "Tables detected - ATS may not parse correctly",
        "images": "Images detected - will be ignored by ATS",
        "headers_footers": "Headers/footers detected - content may be lost",
        "nonstandard_fonts": "Non-standard fonts detected - may not render correctly",
        "odd_glyphs": "Unusual characters detected - may cause encoding issues",
    }
    score = 100
    issues: List[str] = []
    for key, present in flags.items():
        if present:
            score -= FORMAT_PENALTIES[key]
            issues.append(messages[key])
    report: Dict[str, Any] = {f"has_{k}": v for k, v in flags.items()}
    report.update({"format_safety_score": max(0, score), "issues": issues, "template_id": template_id})
    return report


class FormatParseabilityAnalyzer(BaseAnalyzer):
    name = "format_parseability"

    def analyze(self, data: AnalyzerInput) -> AnalyzerResult:
        report = analyze_format(data.resume_json, data.resume_text, data.design)
        if report is None:
            return self.result(70, {"error": "No format data available"}, 0.6)
        warnings = [issue for issue in report["issues"] if "Tables" in issue or "Images" in issue or "Multi-column" in issue]
        return self.result(report["format_safety_score"], report, 1.0, warnings)


def _extract_year(value: Any) -> Optional[int]:
    match = re.search(r"\b(19|20)\d{2}\b", str(value or ""))
    return int(match.group(0)) if match else None


class RecencyFitAnalyzer(BaseAnalyzer):
    """Rewards recent relevant experience; older roles decay 10% a year past three years."""

    name = "recency_fit"

    def analyze(self, data: AnalyzerInput) -> AnalyzerResult:
        resume = data.resume_json or {}
        experience = [e for e in resume.get("experience") or [] if isinstance(e, dict)]
        if not experience:
            return self.result(50, {"error": "No experience data available"}, 0.6)

        latest = get_latest_role(resume)
        if latest is None:
            return self.result(40, {"error": "Could not extract latest role"}, 0.5)

        role_tokens = set(tokenize(" ".join([latest["title"], latest["company"]] + [str(a) for a in latest["achievements"]])))
        must_tokens = [t for skill in data.job.must_have for t in tokenize(skill)]
        ratio = safe_divide(sum(1 for t in must_tokens if t in role_tokens), len(must_tokens))
        relevance = ratio * 100
        if ratio >= LATEST_ROLE_KEYWORD_RATIO:
            relevance = min(100, relevance + LATEST_ROLE_BOOST)

        decays = []
        for index, exp in enumerate(experience):
            years_ago = self._years_ago(exp, index, data.today)
            decays.append({
                "role": f"{exp.get('title') or ''} at {exp.get('company') or ''}",
                "years_ago": years_ago,
                "decay_factor": round(self._decay(years_ago), 2),
            })
        average_decay = sum(self._decay(d["years_ago"]) for d in decays) / len(decays)

        return self.result(min(100, relevance * average_decay), {
            "latest_role": {"title": latest["title"], "company": latest["company"], "keyword_match": relevance > 70},
            "experience_decay": decays,
            "avg_recency": round(average_decay * 100),
        }, self.calculate_confidence(True, 1.0 if len(decays) >= 2 else 0.8))

    @staticmethod
    def _years_ago(exp: Dict[str, Any], index: int, today: date) -> int:
        end = exp.get("endDate")
        if end and str(end).strip().lower() != "present":
            year = _extract_year(end)
            if year:
                return max(0, today.year - year)
        if index == 0:
            return 0
        return index * 2

    @staticmethod
    def _decay(years_ago: int) -> float:
        if years_ago <= DECAY_START_YEARS:
            return 1.0
        return 1.0 - min(MAX_DECAY, (years_ago - DECAY_START_YEARS) * 0.1)


ANALYZERS: List[BaseAnalyzer] = [
    KeywordExactAnalyzer(),
    KeywordPhraseAnalyzer(),
    SemanticRelevanceAnalyzer(),
    TitleAlignmentAnalyzer(),
    MetricsPresenceAnalyzer(),
    SectionCompletenessAnalyzer(),
    FormatParseabilityAnalyzer(),
    RecencyFitAnalyzer(),
]


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def score_resume(
    resume: Union[Dict[str, Any], str, None],
    job_text: str = "",
    job: Optional[Union[JobExtraction, Dict[str, Any]]] = None,
    config: Optional[ScoringConfig] = None,
    today: Optional[date] = None,
    analyzers: Optional[List[BaseAnalyzer]] = None,
    design: Optional[Dict[str, Any]] = None,
) -> ScoreReport:
    """Score *resume* (document or raw text) against a job description.

    *design* is the applied template and customization; only format
    parseability reads it.

    Never raises for empty or malformed input: an analyzer that fails is
    recorded in ``failed_analyzers`` and its weight is spread over the rest.
    """
    config = config or ScoringConfig()
    if isinstance(job, dict):
        job = JobExtraction.from_dict(job)
    job = job or extract_job_data(job_text or "")

    resume_json = resume if isinstance(resume, dict) else None
    data = AnalyzerInput(
        resume_text=extract_resume_text(resume),
        resume_json=resume_json,
        job=job,
        job_text=job_text or "",
        today=today or date.today(),
        design=dict(design or {}),
    )

    results: Dict[str, AnalyzerResult] = {}
    for analyzer in analyzers or ANALYZERS:
        try:
            results[analyzer.name] = analyzer.analyze(data)
        except Exception as e:
            logger.warning(f"Analyzer {analyzer.name} failed: {e}")
            results[analyzer.name] = AnalyzerResult(
                score=0, evidence={"error": str(e)}, confidence=0.0, warnings=[f"{analyzer.name} failed: {e}"], failed=True
            )

    keyword = results.get("keyword_exact")
    semantic = results.get("semantic_relevance")
    if keyword and semantic and not semantic.failed and keyword.score < SEMANTIC_KEYWORD_CAP_THRESHOLD:
        if semantic.score > SEMANTIC_CAPPED_MAX:
            semantic.score = SEMANTIC_CAPPED_MAX
            semantic.evidence["capped"] = True

    subscores = {key: results[key].score if key in results else 0 for key in SUBSCORE_KEYS}
    failed = [key for key, r in results.items() if r.failed]
    score = weighted_score(subscores, config.weights, exclude=failed)

    completeness = extraction_completeness(job)["completeness"]
    confidence, factors = estimate_confidence(
        results,
        jd_completeness=completeness,
        resume_quality=_resume_parse_quality(data),
        format_available=not results.get("format_parseability", AnalyzerResult(0, failed=True)).failed,
    )
    if not data.resume_text.strip():
        confidence = min(confidence, 0.2)
        factors.append({"factor": "Empty resume text", "impact": -1.0})

    suggestions = generate_suggestions(
        subscores=subscores,
        evidence={key: r.evidence for key, r in results.items()},
        job=job,
        resume_text=data.resume_text,
        config=config,
    )

    return ScoreReport(
        score=score,
        subscores=subscores,
        suggestions=suggestions,
        confidence=confidence,
        scoring_version=config.version,
        evidence={key: r.evidence for key, r in results.items()},
        risks=penalty_risks(subscores),
        confidence_factors=factors,
        warnings=[w for r in results.values() for w in r.warnings],
        failed_analyzers=failed,
        low_confidence_threshold=config.low_confidence_threshold,
    )


def weighted_score(subscores: Dict[str, int], weights: Dict[str, float], exclude: Optional[List[str]] = None) -> int:
    """Weighted sum of subscores; excluded keys have their weight redistributed proportionally."""
    excluded = set(exclude or [])
    active = {k: w for k, w in weights.items() if k not in excluded and k in subscores}
    total_weight = sum(active.values())
    if total_weight <= 0:
        return 0
    raw = sum(subscores[k] * w for k, w in active.items()) / total_weight
    return max(0, min(100, int(round(raw))))


def estimate_confidence(
    results: Dict[str, AnalyzerResult],
    jd_completeness: float,
    resume_quality: float,
    format_available: bool,
) -> Tuple[float, List[Dict[str, Any]]]:
    confidence = 1.0
    factors: List[Dict[str, Any]] = []

    confidences = [r.confidence for r in results.values()]
    average = sum(confidences) / len(confidences) if confidences else 0.0
    if average < CONFIDENCE_MIN_ANALYZER:
        penalty = (CONFIDENCE_MIN_ANALYZER - average) * 0.5
        confidence -= penalty
        factors.append({"factor": "Low analyzer confidence", "impact": -round(penalty, 3)})

    if jd_completeness < 0.8:
        confidence -= CONFIDENCE_JD_PENALTY
        factors.append({"factor": "Incomplete job description extraction", "impact": -CONFIDENCE_JD_PENALTY})

    if resume_quality < 0.8:
        confidence -= CONFIDENCE_RESUME_PENALTY
        factors.append({"factor": "Resume parsing issues", "impact": -CONFIDENCE_RESUME_PENALTY})

    if not format_available:
        confidence -= CONFIDENCE_FORMAT_PENALTY
        factors.append({"factor": "Format analysis unavailable", "impact": -CONFIDENCE_FORMAT_PENALTY})

    scores = [r.score for r in results.values()]
    if scores:
        mean = sum(scores) / len(scores)
        variance = sum((s - mean) ** 2 for s in scores) / len(scores)
        if variance / 100 < 0.2:
            confidence += CONFIDENCE_AGREEMENT_BOOST
            factors.append({"factor": "Strong analyzer agreement", "impact": CONFIDENCE_AGREEMENT_BOOST})

    return max(0.0, min(1.0, confidence)), factors


def confidence_level(confidence: float) -> str:
    if confidence >= 0.8:
        return "high"
    if confidence >= 0.5:
        return "medium"
    return "low"


def penalty_risks(subscores: Dict[str, int]) -> List[str]:
    """Weak spots that an ATS is likely to penalize. Reported only; never applied to the score."""
    risks: List[str] = []
    if subscores.get("metrics_presence", 0) < 10:
        risks.append("Missing quantified metrics will reduce score")
    if subscores.get("title_alignment", 0) < 40:
        risks.append("Job title mismatch will reduce score")
    if subscores.get("format_parseability", 0) < 50:
        risks.append("ATS-unfriendly format will significantly reduce score")
    if subscores.get("semantic_relevance", 0) - subscores.get("keyword_exact", 0) > 30:
        risks.append("Keyword coverage needs improvement")
    return risks


def _resume_parse_quality(data: AnalyzerInput) -> float:
    if not data.resume_text.strip():
        return 0.0
    if data.resume_json is None:
        return 0.7
    present = sum(1 for name in REQUIRED_SECTIONS if _section_present(data.resume_json, name))
    return present / len(REQUIRED_SECTIONS)


def format_score_report(report: ScoreReport) -> str:
    """Render a ScoreReport as a human-readable markdown report."""
    lines = [
        f"## Match Score: {report.score}/100",
        f"Confidence: {confidence_level(report.confidence)} ({report.confidence:.0%})"
        + (" - low confidence, treat this score as approximate" if report.low_confidence else ""),
        "",
        "### Subscores",
    ]
    for key in SUBSCORE_KEYS:
        value = report.subscores.get(key, 0)
        lines.append(f"- {key.replace('_', ' ').title()}: {value}/100 {_score_bar(value)}")
    if report.risks:
        lines += ["", "### Risks"] + [f"- {risk}" for risk in report.risks]
    if report.suggestions:
        lines += ["", "### Suggestions"]
        for i, s in enumerate(report.suggestions, 1):
            marker = " (quick win)" if s.quick_win else ""
            lines.append(f"{i}. {s.text} [+{s.estimated_gain}]{marker}")
    return "\n".join(lines)


def _score_bar(score: int, width: int = 20) -> str:
    filled = round(score / 100 * width)
    return "[" + "#" * filled + "-" * (width - filled) + "]"
