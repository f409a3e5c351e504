"""Text helpers shared by the scoring analyzers and tools.

All functions operate on strings and plain dicts -- no I/O.
"""

from __future__ import annotations

import re
from typing import Any, Dict, Iterable, List, Optional, Set


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------


STOP_WORDS: Set[str] = {
    "the", "and", "for", "are", "but", "not", "you", "all", "can", "had", "her", "was", "one",
    "our", "out", "has", "have", "been", "will", "with", "this", "that", "from", "they", "were",
    "which", "their", "about", "would", "there", "what", "also", "into", "more", "other", "than",
    "then", "them", "these", "some", "such", "only", "over", "very", "just", "being", "through",
    "during", "before", "after", "above", "below", "between", "under", "again", "further", "once",
    "here", "when", "where", "both", "each", "most", "same", "should", "could", "does", "doing",
    "while", "must", "work", "working", "looking", "seeking", "ability", "able", "including",
    "using", "strong", "excellent", "good", "great", "well", "team", "role", "position", "company",
    "join", "ideal", "candidate", "required", "preferred", "minimum", "years", "year", "experience",
    "may", "who", "your", "per", "any", "its", "how", "why", "plus",
}

_MULTI_WORD_TERMS = re.compile(
    r"\b(?:machine learning|deep learning|data science|project management|"
    r"full stack|front end|back end|cloud computing|"
    r"continuous integration|continuous delivery|"
    r"natural language processing|computer vision)\b"
)


# ---------------------------------------------------------------------------
# Tokenization
# ---------------------------------------------------------------------------


def normalize_text(text: str) -> str:
    """Lowercase, replace punctuation with spaces, and collapse whitespace."""
    text = re.sub(r"[^\w\s]", " ", (text or "").lower())
    return re.sub(r"\s+", " ", text).strip()


def tokenize(text: str) -> List[str]:
    normalized = normalize_text(text)
    return normalized.split(" ") if normalized else []


def extract_ngrams(text: str, n: int) -> List[str]:
    tokens = tokenize(text)
    if len(tokens) < n:
        return []
    return [" ".join(tokens[i:i + n]) for i in range(len(tokens) - n + 1)]


def extract_keywords(text: str) -> List[str]:
    """Extract meaningful keywords from *text* in first-seen order, filtering stop words."""
    lowered = (text or "").lower()
    found: List[str] = []
    seen: Set[str] = set()
    for term in _MULTI_WORD_TERMS.findall(lowered) + re.findall(r"\b[a-z][a-z\+\#\.]{2,}\b", lowered):
        term = term.rstrip(".")
        if len(term) < 3 or term in STOP_WORDS or term in seen:
            continue
        seen.add(term)
        found.append(term)
    return found


# ---------------------------------------------------------------------------
# Similarity
# ---------------------------------------------------------------------------


def jaccard_similarity(a: Iterable[str], b: Iterable[str]) -> float:
    set_a, set_b = set(a), set(b)
    union = set_a | set_b
    if not union:
        return 0.0
    return len(set_a & set_b) / len(union)


def edit_similarity(a: str, b: str) -> float:
    """1 - normalized Levenshtein distance."""
    if a == b:
        return 1.0
    if not a or not b:
        return 0.0
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, 1):
        current = [i]
        for j, cb in enumerate(b, 1):
            current.append(min(
                previous[j] + 1,
                current[j - 1] + 1,
                previous[j - 1] + (ca != cb),
            ))
        previous = current
    return 1.0 - previous[-1] / max(len(a), len(b))


def lerp(value: float, low: float, high: float) -> float:
    """Map *value* in [low, high] linearly onto [0, 100]."""
    if value <= low:
        return 0.0
    if value >= high:
        return 100.0
    return (value - low) / (high - low) * 100.0


def safe_divide(numerator: float, denominator: float) -> float:
    return 0.0 if denominator == 0 else numerator / denominator


def dedupe_preserve_order(values: Iterable[str]) -> List[str]:
    """Drop blanks and case-insensitive duplicates, keeping the first spelling."""
    seen: Set[str] = set()
    result: List[str] = []
    for value in values:
        cleaned = str(value).strip()
        key = cleaned.lower()
        if not cleaned or key in seen:
            continue
        seen.add(key)
        result.append(cleaned)
    return result


# ---------------------------------------------------------------------------
# Resume documents
# ---------------------------------------------------------------------------


def extract_resume_text(resume: Any) -> str:
    """Flatten a resume document (or pass through raw text) into plain text."""
    if resume is None:
        return ""
    if isinstance(resume, str):
        return resume

    sections: List[str] = []
    contact = resume.get("contact") or {}
    if isinstance(contact, dict) and contact.get("name"):
        sections.append(str(contact["name"]))
    if resume.get("title"):
        sections.append(str(resume["title"]))
    if resume.get("summary"):
        sections.append(str(resume["summary"]))

    skills = resume.get("skills") or {}
    if isinstance(skills, dict):
        for bucket in ("technical", "soft"):
            values = skills.get(bucket) or []
            if values:
                sections.append(", ".join(str(v) for v in values))
    elif isinstance(skills, list) and skills:
        sections.append(", ".join(str(v) for v in skills))

    for exp in resume.get("experience") or []:
        if not isinstance(exp, dict):
            continue
        sections.extend(str(exp.get(key) or "") for key in ("title", "company", "location"))
        sections.extend(str(a) for a in exp.get("achievements") or [])

    for edu in resume.get("education") or []:
        if isinstance(edu, dict):
            sections.extend(str(edu.get(key) or "") for key in ("degree", "institution", "location"))

    sections.extend(str(c) for c in resume.get("certifications") or [])

    for project in resume.get("projects") or []:
        if not isinstance(project, dict):
            continue
        sections.append(str(project.get("name") or ""))
        sections.append(str(project.get("description") or ""))
        technologies = project.get("technologies") or []
        if technologies:
            sections.append(", ".join(str(t) for t in technologies))

    return "\n".join(s for s in sections if s and s.strip())


def get_latest_role(resume: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    experience = resume.get("experience") or []
    if not experience or not isinstance(experience[0], dict):
        return None
    latest = experience[0]
    return {
        "title": latest.get("title") or "",
        "company": latest.get("company") or "",
        "achievements": list(latest.get("achievements") or []),
    }


def extract_job_titles(resume: Dict[str, Any]) -> List[str]:
    return [
        str(exp["title"])
        for exp in resume.get("experience") or []
        if isinstance(exp, dict) and exp.get("title")
    ]
