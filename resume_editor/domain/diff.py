"""Structural diff between two resume documents.

The diff works on leaves, not text. A changed leaf is reported as a
``removed``/``added`` pair at the same path. There is no ``moved`` entry:
reordering a list shows up as per-index changes.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List

from .document import FieldPath, format_field_path

ADDED = "added"
REMOVED = "removed"
UNCHANGED = "unchanged"


@dataclass(frozen=True)
class DiffEntry:
    type: str  # "added" | "removed" | "unchanged"
    path: str
    value: Any

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "path": self.path, "value": self.value}


def _flatten(value: Any, prefix: FieldPath, out: Dict[str, Any], containers: Dict[str, Any]) -> None:
    if isinstance(value, dict) and value:
        for key, child in value.items():
            _flatten(child, prefix + (str(key),), out, containers)
    elif isinstance(value, list) and value:
        for index, child in enumerate(value):
            _flatten(child, prefix + (index,), out, containers)
    elif isinstance(value, (dict, list)):
        if prefix:
            containers[format_field_path(prefix)] = value
    elif prefix:
        out[format_field_path(prefix)] = value


def _has_descendant(path: str, leaves: Dict[str, Any]) -> bool:
    return any(key.startswith(path + ".") or key.startswith(path + "[") for key in leaves)


def flatten_document(document: Dict[str, Any]) -> Dict[str, Any]:
    """Map every leaf path to its value; empty containers appear as leaves too."""
    leaves: Dict[str, Any] = {}
    containers: Dict[str, Any] = {}
    _flatten(document or {}, (), leaves, containers)
    for path, value in containers.items():
        leaves.setdefault(path, value)
    return leaves


def compute_diff(
    old: Dict[str, Any],
    new: Dict[str, Any],
    include_unchanged: bool = False,
) -> List[DiffEntry]:
    """Return the leaf-level diff from *old* to *new*.

    Empty containers only produce entries when the other side has nothing
    at or below that path, so filling an empty list is a pure addition.
    """
    old_leaves = flatten_document(old)
    new_leaves = flatten_document(new)

    entries: List[DiffEntry] = []
    for path, old_value in old_leaves.items():
        if path in new_leaves:
            new_value = new_leaves[path]
            if new_value == old_value and type(new_value) is type(old_value):
                if include_unchanged:
                    entries.append(DiffEntry(UNCHANGED, path, old_value))
                continue
            if _is_empty_container(old_value) and _has_descendant(path, new_leaves):
                continue
            entries.append(DiffEntry(REMOVED, path, old_value))
            entries.append(DiffEntry(ADDED, path, new_value))
        else:
            if _is_empty_container(old_value) and _has_descendant(path, new_leaves):
                continue
            entries.append(DiffEntry(REMOVED, path, old_value))

    for path, new_value in new_leaves.items():
        if path in old_leaves:
            continue
        if _is_empty_container(new_value) and _has_descendant(path, old_leaves):
            continue
        entries.append(DiffEntry(ADDED, path, new_value))
    return entries


def _is_empty_container(value: Any) -> bool:
    return isinstance(value, (dict, list)) and not value


def summarize_diff(entries: List[DiffEntry]) -> Dict[str, int]:
    summary = {ADDED: 0, REMOVED: 0, UNCHANGED: 0}
    for entry in entries:
        summary[entry.type] = summary.get(entry.type, 0) + 1
    return summary
