"""Multi-level undo/redo for content edits."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from typing_extensions import Protocol, runtime_checkable

from ..errors import NoFutureVersion, NoPreviousVersion
from .versions import make_id, utc_now_iso


@dataclass(frozen=True)
class HistoryEntry:
    """A point in a user's edit history, pointing at the version it made current."""

    id: str
    user_id: str
    version_id: str
    ats_score: Optional[int] = None
    artifacts: Dict[str, Any] = field(default_factory=dict)
    created_at: str = field(default_factory=utc_now_iso)

    @classmethod
    def create(
        cls,
        user_id: str,
        version_id: str,
        ats_score: Optional[int] = None,
        artifacts: Optional[Dict[str, Any]] = None,
    ) -> "HistoryEntry":
        return cls(
            id=make_id("hist"),
            user_id=user_id,
            version_id=version_id,
            ats_score=ats_score,
            artifacts=copy.deepcopy(artifacts or {}),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "version_id": self.version_id,
            "ats_score": self.ats_score,
            "artifacts": copy.deepcopy(self.artifacts),
            "created_at": self.created_at,
        }


@dataclass(frozen=True)
class HistoryStack:
    """
    past/current/future triple. Every operation returns a new stack.

    ``past`` is ordered oldest first, so its top is the last element.
    ``future`` is ordered nearest first.
    """

    past: Tuple[HistoryEntry, ...] = ()
    current: Optional[HistoryEntry] = None
    future: Tuple[HistoryEntry, ...] = ()

    @property
    def can_undo(self) -> bool:
        return bool(self.past)

    @property
    def can_redo(self) -> bool:
        return bool(self.future)

    def push(self, entry: HistoryEntry) -> "HistoryStack":
        """Make ``entry`` current. Clears the redo branch."""
        past = self.past + ((self.current,) if self.current is not None else ())
        return HistoryStack(past=past, current=entry, future=())

    def undo(self) -> "HistoryStack":
        if not self.past:
            raise NoPreviousVersion()
        future = ((self.current,) if self.current is not None else ()) + self.future
        return HistoryStack(past=self.past[:-1], current=self.past[-1], future=future)

    def redo(self) -> "HistoryStack":
        if not self.future:
            raise NoFutureVersion()
        past = self.past + ((self.current,) if self.current is not None else ())
        return HistoryStack(past=past, current=self.future[0], future=self.future[1:])

    def timeline(self) -> Dict[str, Any]:
        return {
            "past": [e.id for e in self.past],
            "current": self.current.id if self.current else None,
            "future": [e.id for e in self.future],
        }

    def entries(self) -> List[HistoryEntry]:
        current = [self.current] if self.current is not None else []
        return list(self.past) + current + list(self.future)


@runtime_checkable
class HistoryStore(Protocol):
    """Per-user history stacks plus the entries they reference."""

    async def load_stack(self, user_id: str) -> HistoryStack: ...

    async def save_stack(self, user_id: str, stack: HistoryStack) -> None: ...

    async def append_entry(self, entry: HistoryEntry) -> None: ...

    async def get_entry(self, entry_id: str) -> Optional[HistoryEntry]: ...


class InMemoryHistoryStore:
    """Process-local history store. Suitable for tests and single-instance use only."""

    def __init__(self) -> None:
        self._stacks: Dict[str, HistoryStack] = {}
        self._entries: Dict[str, HistoryEntry] = {}

    async def load_stack(self, user_id: str) -> HistoryStack:
        return self._stacks.get(user_id, HistoryStack())

    async def save_stack(self, user_id: str, stack: HistoryStack) -> None:
        missing = [e.id for e in stack.entries() if e.id not in self._entries]
        if missing:
            raise ValueError(f"Stack references unknown history entries: {', '.join(missing)}")
        self._stacks[user_id] = stack

    async def append_entry(self, entry: HistoryEntry) -> None:
        if entry.id in self._entries:
            raise ValueError(f"History entry '{entry.id}' already exists")
        self._entries[entry.id] = entry

    async def get_entry(self, entry_id: str) -> Optional[HistoryEntry]:
        return self._entries.get(entry_id)
