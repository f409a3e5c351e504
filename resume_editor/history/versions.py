"""Immutable document versions and the stores that keep them."""

from __future__ import annotations

import copy
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from typing_extensions import Protocol, runtime_checkable


def utc_now_iso() -> str:
    """Return current UTC time in ISO-8601 format."""
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def make_id(prefix: str) -> str:
    """Create an opaque id with a readable prefix, e.g. ``ver_1a2b3c4d5e``."""
    return f"{prefix}_{uuid.uuid4().hex[:10]}"


@dataclass(frozen=True)
class Version:
    """
    One committed resume snapshot.

    Attributes:
        id: Version id
        user_id: Owner of the version chain
        previous_version_id: The version this one was derived from (None for the first)
        document_snapshot: Full document at this version; never mutated after creation
        change_summary: Human-readable description of the change
        created_at: ISO-8601 creation time
        scoring_version: Scoring configuration version used for the run's before/after reports
    """

    id: str
    user_id: str
    previous_version_id: Optional[str]
    document_snapshot: Dict[str, Any] = field(default_factory=dict)
    change_summary: str = ""
    created_at: str = field(default_factory=utc_now_iso)
    scoring_version: str = ""

    @classmethod
    def create(
        cls,
        user_id: str,
        document: Dict[str, Any],
        previous_version_id: Optional[str] = None,
        change_summary: str = "",
        scoring_version: str = "",
    ) -> "Version":
        return cls(
            id=make_id("ver"),
            user_id=user_id,
            previous_version_id=previous_version_id,
            document_snapshot=copy.deepcopy(document),
            change_summary=change_summary,
            scoring_version=scoring_version,
        )

    def document(self) -> Dict[str, Any]:
        """A private copy of the snapshot that callers may modify freely."""
        return copy.deepcopy(self.document_snapshot)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "previous_version_id": self.previous_version_id,
            "document_snapshot": self.document(),
            "change_summary": self.change_summary,
            "created_at": self.created_at,
            "scoring_version": self.scoring_version,
        }


@runtime_checkable
class VersionStore(Protocol):
    """Append-only store of versions. Appended versions are never updated or deleted."""

    async def append(self, version: Version) -> None: ...

    async def get(self, version_id: str) -> Optional[Version]: ...

    async def latest(self, user_id: str) -> Optional[Version]: ...

    async def list_for_user(self, user_id: str) -> List[Version]: ...


class InMemoryVersionStore:
    """Process-local version store. Suitable for tests and single-instance use only."""

    def __init__(self) -> None:
        self._versions: Dict[str, Version] = {}
        self._by_user: Dict[str, List[str]] = {}

    async def append(self, version: Version) -> None:
        if version.id in self._versions:
            raise ValueError(f"Version '{version.id}' already exists")
        self._versions[version.id] = _frozen_copy(version)
        self._by_user.setdefault(version.user_id, []).append(version.id)

    async def get(self, version_id: str) -> Optional[Version]:
        version = self._versions.get(version_id)
        return _frozen_copy(version) if version else None

    async def latest(self, user_id: str) -> Optional[Version]:
        ids = self._by_user.get(user_id) or []
        return await self.get(ids[-1]) if ids else None

    async def list_for_user(self, user_id: str) -> List[Version]:
        return [_frozen_copy(self._versions[v]) for v in self._by_user.get(user_id, [])]

    def __len__(self) -> int:
        return len(self._versions)


def _frozen_copy(version: Version) -> Version:
    return Version(
        id=version.id,
        user_id=version.user_id,
        previous_version_id=version.previous_version_id,
        document_snapshot=copy.deepcopy(version.document_snapshot),
        change_summary=version.change_summary,
        created_at=version.created_at,
        scoring_version=version.scoring_version,
    )
