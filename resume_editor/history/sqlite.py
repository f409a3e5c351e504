"""SQLite-backed version and history stores, durable across restarts."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, List, Optional, Union

import aiosqlite

from ..errors import PersistenceError
from .stack import HistoryEntry, HistoryStack
from .versions import Version, utc_now_iso

logger = logging.getLogger(__name__)

_SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS versions (
    version_id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    previous_version_id TEXT,
    snapshot_json TEXT NOT NULL,
    change_summary TEXT NOT NULL DEFAULT '',
    scoring_version TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL,
    seq INTEGER NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_versions_user ON versions(user_id, seq);

CREATE TABLE IF NOT EXISTS history_entries (
    entry_id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    version_id TEXT NOT NULL REFERENCES versions(version_id),
    ats_score INTEGER,
    artifacts_json TEXT NOT NULL DEFAULT '{}',
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_history_entries_user ON history_entries(user_id);

CREATE TABLE IF NOT EXISTS history_stacks (
    user_id TEXT PRIMARY KEY,
    past_json TEXT NOT NULL DEFAULT '[]',
    current_entry_id TEXT,
    future_json TEXT NOT NULL DEFAULT '[]',
    updated_at TEXT NOT NULL
);
"""

# ---------------------------------------------------------------------------
# Helper: row → record
# ---------------------------------------------------------------------------


def _row_to_version(row: aiosqlite.Row) -> Version:
    return Version(
        id=row["version_id"],
        user_id=row["user_id"],
        previous_version_id=row["previous_version_id"],
        document_snapshot=json.loads(row["snapshot_json"]),
        change_summary=row["change_summary"] or "",
        created_at=row["created_at"],
        scoring_version=row["scoring_version"] or "",
    )


def _row_to_entry(row: aiosqlite.Row) -> HistoryEntry:
    artifacts = json.loads(row["artifacts_json"]) if row["artifacts_json"] else {}
    return HistoryEntry(
        id=row["entry_id"],
        user_id=row["user_id"],
        version_id=row["version_id"],
        ats_score=row["ats_score"],
        artifacts=artifacts,
        created_at=row["created_at"],
    )


class _SQLiteStore:
    """Connection lifecycle shared by the SQLite stores."""

    def __init__(self, db_path: Union[str, Path]) -> None:
        self._db_path = Path(db_path)
        self._db: Optional[aiosqlite.Connection] = None

    async def start(self) -> None:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._db = await aiosqlite.connect(str(self._db_path))
        self._db.row_factory = aiosqlite.Row
        await self._db.execute("PRAGMA journal_mode=WAL")
        await self._db.executescript(_SCHEMA_SQL)
        await self._db.commit()

    async def stop(self) -> None:
        if self._db is not None:
            await self._db.close()
            self._db = None

    @property
    def db(self) -> aiosqlite.Connection:
        if self._db is None:
            raise RuntimeError(f"{self.__class__.__name__} is not started")
        return self._db

    async def _write(self, sql: str, params: tuple) -> None:
        try:
            await self.db.execute(sql, params)
            await self.db.commit()
        except aiosqlite.Error as e:
            logger.error(f"SQLite write failed: {e}")
            raise PersistenceError(f"Failed to persist history: {e}") from e


class SQLiteVersionStore(_SQLiteStore):
    """Append-only versions table. Snapshots are stored as JSON."""

    async def append(self, version: Version) -> None:
        async with self.db.execute(
            "SELECT COALESCE(MAX(seq), 0) FROM versions WHERE user_id = ?", (version.user_id,)
        ) as cursor:
            row = await cursor.fetchone()
            seq = (row[0] if row else 0) + 1
        await self._write(
            "INSERT INTO versions (version_id, user_id, previous_version_id, snapshot_json, change_summary, "
            "scoring_version, created_at, seq) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (
                version.id,
                version.user_id,
                version.previous_version_id,
                json.dumps(version.document_snapshot, ensure_ascii=False),
                version.change_summary,
                version.scoring_version,
                version.created_at,
                seq,
            ),
        )

    async def get(self, version_id: str) -> Optional[Version]:
        async with self.db.execute("SELECT * FROM versions WHERE version_id = ?", (version_id,)) as cursor:
            row = await cursor.fetchone()
        return _row_to_version(row) if row else None

    async def latest(self, user_id: str) -> Optional[Version]:
        async with self.db.execute(
            "SELECT * FROM versions WHERE user_id = ? ORDER BY seq DESC LIMIT 1", (user_id,)
        ) as cursor:
            row = await cursor.fetchone()
        return _row_to_version(row) if row else None

    async def list_for_user(self, user_id: str) -> List[Version]:
        async with self.db.execute("SELECT * FROM versions WHERE user_id = ? ORDER BY seq", (user_id,)) as cursor:
            rows = await cursor.fetchall()
        return [_row_to_version(row) for row in rows]


class SQLiteHistoryStore(_SQLiteStore):
    """History entries plus one stack row per user holding entry ids."""

    async def append_entry(self, entry: HistoryEntry) -> None:
        await self._write(
            "INSERT INTO history_entries (entry_id, user_id, version_id, ats_score, artifacts_json, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (
                entry.id,
                entry.user_id,
                entry.version_id,
                entry.ats_score,
                json.dumps(entry.artifacts, ensure_ascii=False),
                entry.created_at,
            ),
        )

    async def get_entry(self, entry_id: str) -> Optional[HistoryEntry]:
        async with self.db.execute("SELECT * FROM history_entries WHERE entry_id = ?", (entry_id,)) as cursor:
            row = await cursor.fetchone()
        return _row_to_entry(row) if row else None

    async def load_stack(self, user_id: str) -> HistoryStack:
        async with self.db.execute("SELECT * FROM history_stacks WHERE user_id = ?", (user_id,)) as cursor:
            row = await cursor.fetchone()
        if not row:
            return HistoryStack()

        async def _resolve(entry_id: Any) -> HistoryEntry:
            entry = await self.get_entry(entry_id)
            if entry is None:
                raise PersistenceError(f"History entry '{entry_id}' referenced by stack is missing")
            return entry

        past = [await _resolve(i) for i in json.loads(row["past_json"] or "[]")]
        future = [await _resolve(i) for i in json.loads(row["future_json"] or "[]")]
        current = await _resolve(row["current_entry_id"]) if row["current_entry_id"] else None
        return HistoryStack(past=tuple(past), current=current, future=tuple(future))

    async def save_stack(self, user_id: str, stack: HistoryStack) -> None:
        timeline = stack.timeline()
        await self._write(
            "INSERT INTO history_stacks (user_id, past_json, current_entry_id, future_json, updated_at) "
            "VALUES (?, ?, ?, ?, ?) "
            "ON CONFLICT(user_id) DO UPDATE SET past_json = excluded.past_json, "
            "current_entry_id = excluded.current_entry_id, future_json = excluded.future_json, "
            "updated_at = excluded.updated_at",
            (
                user_id,
                json.dumps(timeline["past"]),
                timeline["current"],
                json.dumps(timeline["future"]),
                utc_now_iso(),
            ),
        )
