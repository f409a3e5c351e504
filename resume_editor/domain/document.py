"""Resume document model and copy-on-write field mutation.

Documents are plain JSON-compatible dicts. Every mutator here returns a new
document and leaves its input untouched, so a snapshot held by a Version can
never change after the fact.
"""

from __future__ import annotations

import copy
import re
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

import pydantic
from jsonpath_ng import parse as jsonpath_parse
from jsonpath_ng.exceptions import JsonPathLexerError, JsonPathParserError
from jsonpath_ng.jsonpath import Child, Fields, Index
from pydantic import BaseModel, ConfigDict, Field

from ..errors import ValidationError

PathSegment = Union[str, int]
FieldPath = Tuple[PathSegment, ...]

OPERATIONS = ("replace", "prefix", "suffix", "append", "insert", "remove")

_MISSING = object()

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------


class Contact(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str = ""
    email: str = ""
    phone: str = ""
    location: str = ""


class Skills(BaseModel):
    model_config = ConfigDict(extra="allow")

    technical: List[str] = Field(default_factory=list)
    soft: List[str] = Field(default_factory=list)


class ExperienceItem(BaseModel):
    model_config = ConfigDict(extra="allow")

    title: str = ""
    company: str = ""
    location: str = ""
    startDate: Optional[str] = None
    endDate: Optional[str] = None
    achievements: List[str] = Field(default_factory=list)


class EducationItem(BaseModel):
    model_config = ConfigDict(extra="allow")

    degree: str = ""
    institution: str = ""
    location: str = ""


class ResumeSchema(BaseModel):
    """Shape every committed document must satisfy. Unknown keys are preserved."""

    model_config = ConfigDict(extra="allow")

    contact: Contact = Field(default_factory=Contact)
    summary: str = ""
    skills: Skills = Field(default_factory=Skills)
    experience: List[ExperienceItem] = Field(default_factory=list)
    education: List[EducationItem] = Field(default_factory=list)
    certifications: List[str] = Field(default_factory=list)
    projects: List[Dict[str, Any]] = Field(default_factory=list)


def ensure_document(document: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Return a deep copy of *document* with the minimal default structure filled in."""
    base: Dict[str, Any] = {
        "contact": {"name": "", "email": "", "phone": "", "location": ""},
        "summary": "",
        "skills": {"technical": [], "soft": []},
        "experience": [],
        "education": [],
    }
    if not document:
        return base
    result = copy.deepcopy(document)
    for key, default in base.items():
        if result.get(key) is None:
            result[key] = default
    if isinstance(result.get("skills"), dict):
        result["skills"].setdefault("technical", [])
        result["skills"].setdefault("soft", [])
    return result


def validate_document(document: Dict[str, Any]) -> None:
    """Raise ValidationError if *document* does not satisfy ResumeSchema."""
    try:
        ResumeSchema.model_validate(document)
    except pydantic.ValidationError as e:
        raise ValidationError(
            "Document does not match the resume schema",
            details={"errors": [
                {"loc": ".".join(str(p) for p in err["loc"]), "msg": err["msg"]} for err in e.errors()
            ]},
        ) from e


# ---------------------------------------------------------------------------
# Field paths
# ---------------------------------------------------------------------------

_SEGMENT_SPLIT = re.compile(r"\.(?![^\[]*\])")
_SEGMENT = re.compile(r"^([a-zA-Z_][a-zA-Z0-9_]*)((?:\[[^\]]+\])*)$")
_INDEX = re.compile(r"\[([^\]]+)\]")


def parse_field_path(path: Union[str, FieldPath]) -> FieldPath:
    """Parse ``experience[0].achievements[2]`` into ``("experience", 0, "achievements", 2)``.

    ``latest`` is accepted as an alias for index 0 (the most recent role).
    """
    if isinstance(path, tuple):
        if not path:
            raise ValidationError("Field path cannot be empty")
        return path
    if not path or not path.strip():
        raise ValidationError("Field path cannot be empty")

    segments: List[PathSegment] = []
    for raw in _SEGMENT_SPLIT.split(path.strip()):
        if raw.isdigit():
            segments.append(int(raw))
            continue
        match = _SEGMENT.match(raw)
        if not match:
            raise ValidationError(f"Invalid field path segment: {raw!r}", details={"path": path})
        segments.append(match.group(1))
        for index in _INDEX.findall(match.group(2) or ""):
            segments.append(_parse_index(index, path))
    return tuple(segments)


def _parse_index(raw: str, path: str) -> int:
    raw = raw.strip()
    if raw == "latest":
        return 0
    if not raw.isdigit():
        raise ValidationError(f"Invalid array index: {raw}", details={"path": path})
    return int(raw)


def format_field_path(path: FieldPath) -> str:
    parts: List[str] = []
    for segment in path:
        if isinstance(segment, int):
            parts.append(f"[{segment}]")
        else:
            parts.append(f".{segment}" if parts else segment)
    return "".join(parts)


def get_field_value(document: Dict[str, Any], path: Union[str, FieldPath], default: Any = None) -> Any:
    current: Any = document
    for segment in parse_field_path(path):
        if isinstance(segment, int):
            if not isinstance(current, list) or segment >= len(current):
                return default
            current = current[segment]
        else:
            if not isinstance(current, dict) or segment not in current:
                return default
            current = current[segment]
    return current


def _walk_to_parent(root: Dict[str, Any], segments: FieldPath) -> Any:
    """Walk to the container holding the last segment, creating missing containers."""
    current: Any = root
    for position, segment in enumerate(segments[:-1]):
        following = segments[position + 1]
        if isinstance(segment, int):
            if not isinstance(current, list):
                raise ValidationError(f"Cannot index non-array field at {format_field_path(segments[:position])}")
            if segment >= len(current):
                raise ValidationError(f"Invalid array index: {segment}")
            current = current[segment]
        else:
            if not isinstance(current, dict):
                raise ValidationError(f"Cannot read field {segment!r} of non-object value")
            if current.get(segment) is None:
                current[segment] = [] if isinstance(following, int) else {}
            current = current[segment]
    return current


def set_field_value(document: Dict[str, Any], path: Union[str, FieldPath], value: Any) -> Dict[str, Any]:
    """Return a copy of *document* with *path* set to *value*."""
    segments = parse_field_path(path)
    updated = copy.deepcopy(document)
    parent = _walk_to_parent(updated, segments)
    last = segments[-1]
    if isinstance(last, int):
        if not isinstance(parent, list):
            raise ValidationError(f"Cannot index non-array field at {format_field_path(segments[:-1])}")
        if last > len(parent):
            raise ValidationError(f"Invalid array index: {last}")
        if last == len(parent):
            parent.append(copy.deepcopy(value))
        else:
            parent[last] = copy.deepcopy(value)
    else:
        if not isinstance(parent, dict):
            raise ValidationError(f"Cannot set field {last!r} on non-object value")
        parent[last] = copy.deepcopy(value)
    return updated


def remove_field_value(document: Dict[str, Any], path: Union[str, FieldPath]) -> Dict[str, Any]:
    """Return a copy of *document* without *path*. Missing paths are a no-op."""
    segments = parse_field_path(path)
    if get_field_value(document, segments, _MISSING) is _MISSING:
        return copy.deepcopy(document)
    updated = copy.deepcopy(document)
    parent = _walk_to_parent(updated, segments)
    del parent[segments[-1]]
    return updated


def append_unique(document: Dict[str, Any], path: Union[str, FieldPath], values: Iterable[Any]) -> Dict[str, Any]:
    """Append *values* to the list at *path*, skipping case-insensitive duplicates."""
    current = get_field_value(document, path, None)
    if current is None:
        current = []
    if not isinstance(current, list):
        raise ValidationError("Cannot append to non-array field", details={"path": _path_str(path)})

    existing = {str(v).strip().lower() for v in current if isinstance(v, str)}
    additions: List[Any] = []
    for value in values:
        if isinstance(value, str):
            cleaned = value.strip()
            if not cleaned or cleaned.lower() in existing:
                continue
            existing.add(cleaned.lower())
            additions.append(cleaned)
        else:
            additions.append(value)
    if not additions:
        return copy.deepcopy(document)
    return set_field_value(document, path, list(current) + additions)


def apply_operation(
    document: Dict[str, Any],
    path: Union[str, FieldPath],
    op: str,
    value: Any = None,
) -> Dict[str, Any]:
    """Apply one field operation and return the new document.

    ``replace`` is idempotent. ``prefix``/``suffix`` skip text that is already
    present at that end, and ``append`` de-duplicates, so replaying a patch
    yields the same document.
    """
    if op not in OPERATIONS:
        raise ValidationError(f"Unknown operation: {op}", details={"allowed": list(OPERATIONS)})

    segments = parse_field_path(path)
    if op == "replace":
        return set_field_value(document, segments, value)
    if op == "remove":
        return remove_field_value(document, segments)
    if op == "append":
        items = value if isinstance(value, list) else [value]
        return append_unique(document, segments, items)
    if op == "insert":
        last = segments[-1]
        if not isinstance(last, int):
            raise ValidationError("Insert requires an array index", details={"path": _path_str(path)})
        target = get_field_value(document, segments[:-1], None)
        if target is None:
            target = []
        if not isinstance(target, list):
            raise ValidationError("Cannot append to non-array field", details={"path": _path_str(path)})
        if last > len(target):
            raise ValidationError(f"Invalid array index: {last}")
        if any(isinstance(v, str) and isinstance(value, str) and v.strip().lower() == value.strip().lower() for v in target):
            return copy.deepcopy(document)
        items = list(target)
        items.insert(last, value)
        return set_field_value(document, segments[:-1], items)

    current = get_field_value(document, segments, "")
    if current is None:
        current = ""
    if not isinstance(current, str) or not isinstance(value, str):
        raise ValidationError(f"{op} requires text values", details={"path": _path_str(path)})
    if op == "prefix":
        if current.startswith(value):
            return copy.deepcopy(document)
        return set_field_value(document, segments, f"{value}{current}")
    if current.endswith(value):
        return copy.deepcopy(document)
    return set_field_value(document, segments, f"{current}{value}")


def _path_str(path: Union[str, FieldPath]) -> str:
    return path if isinstance(path, str) else format_field_path(path)


# ---------------------------------------------------------------------------
# Selectors
# ---------------------------------------------------------------------------


def expand_selector(document: Dict[str, Any], selector: str) -> List[str]:
    """Resolve a JSONPath selector (``$.experience[*].achievements[*]``) to concrete field paths.

    Plain field paths are returned unchanged when they exist in the document.
    """
    if not selector.startswith("$"):
        path = parse_field_path(selector)
        return [format_field_path(path)] if get_field_value(document, path, _MISSING) is not _MISSING else []

    try:
        expression = jsonpath_parse(selector)
    except (JsonPathLexerError, JsonPathParserError) as e:
        raise ValidationError(f"Invalid selector: {selector}", details={"reason": str(e)}) from e

    return [format_field_path(_jsonpath_segments(match.full_path)) for match in expression.find(document)]


def _jsonpath_segments(node: Any) -> FieldPath:
    if isinstance(node, Child):
        return _jsonpath_segments(node.left) + _jsonpath_segments(node.right)
    if isinstance(node, Fields):
        return tuple(node.fields)
    if isinstance(node, Index):
        indices = getattr(node, "indices", None)
        return (indices[0],) if indices else (node.index,)
    raise ValidationError(f"Unsupported selector component: {node}")
