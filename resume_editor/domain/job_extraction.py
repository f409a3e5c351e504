"""Job description extraction: title, must-have skills, responsibilities, seniority."""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from .text import extract_keywords

_TITLE_PATTERNS = [
    re.compile(r"(?:position|role|title|job)\s*:\s*([^\n]+)", re.IGNORECASE),
    re.compile(r"we are (?:looking for|hiring|seeking) (?:a|an)\s+([^\n.,]+)", re.IGNORECASE),
    re.compile(r"^([A-Z][a-z]+(?:\s+[A-Z][a-z]+){1,4})\s*$", re.MULTILINE),
]

_MUST_HAVE_HEADERS = [
    "required qualifications",
    "required skills",
    "must have",
    "must-have",
    "essential skills",
    "minimum qualifications",
    "requirements",
]
_NICE_TO_HAVE_HEADERS = [
    "preferred qualifications",
    "preferred skills",
    "nice to have",
    "nice-to-have",
    "bonus skills",
    "desirable",
]
_RESPONSIBILITY_HEADERS = [
    "responsibilities",
    "duties",
    "what you will do",
    "what you'll do",
    "your role",
    "day to day",
]

_BULLET = re.compile(r"^\s*(?:[•\-\*]|\d+[.)])\s*(.+)$", re.MULTILINE)
_INLINE_REQUIRED = re.compile(r"(?:required|must have|essential)\s*:\s*([^.\n]+)", re.IGNORECASE)
_INLINE_PREFERRED = re.compile(r"(?:preferred|nice to have|bonus)\s*:\s*([^.\n]+)", re.IGNORECASE)


@dataclass
class JobExtraction:
    """Structured view of a job description."""

    title: str = ""
    must_have: List[str] = field(default_factory=list)
    nice_to_have: List[str] = field(default_factory=list)
    responsibilities: List[str] = field(default_factory=list)
    seniority: str = "mid"
    company: str = ""
    industry: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "JobExtraction":
        return cls(
            title=str(data.get("title") or ""),
            must_have=[str(s) for s in data.get("must_have") or []],
            nice_to_have=[str(s) for s in data.get("nice_to_have") or []],
            responsibilities=[str(s) for s in data.get("responsibilities") or []],
            seniority=str(data.get("seniority") or "mid"),
            company=str(data.get("company") or ""),
            industry=str(data.get("industry") or ""),
        )


def extract_job_data(job_text: str, existing: Optional[Dict[str, Any]] = None) -> JobExtraction:
    """Build a JobExtraction from raw text, keeping any fields already supplied in *existing*."""
    existing = existing or {}
    text = job_text or ""
    extraction = JobExtraction(
        title=existing.get("title") or _extract_title(text),
        must_have=list(existing.get("must_have") or _extract_skills(text, _MUST_HAVE_HEADERS, _INLINE_REQUIRED, 20)),
        nice_to_have=list(
            existing.get("nice_to_have") or _extract_skills(text, _NICE_TO_HAVE_HEADERS, _INLINE_PREFERRED, 15)
        ),
        responsibilities=list(existing.get("responsibilities") or _extract_list_section(text, _RESPONSIBILITY_HEADERS)[:10]),
        seniority=existing.get("seniority") or detect_seniority(text),
        company=existing.get("company") or "",
        industry=existing.get("industry") or "",
    )

    if not extraction.must_have:
        extraction.must_have = extract_keywords(text)[:20]
    return extraction


def extraction_completeness(extraction: JobExtraction) -> Dict[str, Any]:
    """Score how much of title / must_have / responsibilities was recovered."""
    required = ("title", "must_have", "responsibilities")
    missing = [name for name in required if not getattr(extraction, name)]
    return {
        "is_complete": not missing,
        "completeness": (len(required) - len(missing)) / len(required),
        "missing_fields": missing,
    }


def detect_seniority(text: str) -> str:
    lowered = (text or "").lower()
    if any(word in lowered for word in ("director", "vice president", "chief", "head of")) or re.search(r"\bvp\b", lowered):
        return "executive"
    if any(word in lowered for word in ("senior", "lead", "principal", "staff")):
        return "senior"
    if any(word in lowered for word in ("entry level", "junior", "intern", "associate", "0-2 years")):
        return "entry"
    return "mid"


# ---------------------------------------------------------------------------
# Private helpers
# ---------------------------------------------------------------------------


def _extract_title(text: str) -> str:
    for pattern in _TITLE_PATTERNS:
        match = pattern.search(text)
        if match and match.group(1).strip():
            return match.group(1).strip()
    return ""


def _extract_section(text: str, headers: List[str]) -> Optional[str]:
    lines = text.splitlines()
    for header in headers:
        for position, line in enumerate(lines):
            stripped = line.strip().lower().rstrip(":").strip()
            if stripped != header and not stripped.startswith(header + ":"):
                continue
            inline = line.split(":", 1)[1].strip() if ":" in line else ""
            body: List[str] = [inline] if inline else []
            for following in lines[position + 1:]:
                if not following.strip():
                    if body:
                        break
                    continue
                if re.match(r"^\s*[A-Z][A-Za-z' ]{2,40}:\s*$", following):
                    break
                body.append(following)
            if body:
                return "\n".join(body)
    return None


def _extract_list_items(section: str) -> List[str]:
    items = [m.strip() for m in _BULLET.findall(section)]
    if not items:
        items = [part.strip() for line in section.splitlines() for part in line.split(",") if part.strip()]
    return [item for item in items if 2 <= len(item) < 300][:20]


def _extract_list_section(text: str, headers: List[str]) -> List[str]:
    section = _extract_section(text, headers)
    return _extract_list_items(section) if section else []


def _extract_skills(text: str, headers: List[str], inline: re.Pattern, limit: int) -> List[str]:
    skills: List[str] = []
    seen = set()

    def _add(value: str) -> None:
        cleaned = value.strip().rstrip(".;,")
        if cleaned and cleaned.lower() not in seen:
            seen.add(cleaned.lower())
            skills.append(cleaned)

    for item in _extract_list_section(text, headers):
        _add(item)
    for match in inline.finditer(text):
        for part in re.split(r",|;|\band\b", match.group(1)):
            _add(part)
    return skills[:limit]
