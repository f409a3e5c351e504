"""Version snapshots, undo/redo stacks, and design assignments."""

from .design import DesignAssignment, DesignCustomization, DesignStore, InMemoryDesignStore
from .sqlite import SQLiteHistoryStore, SQLiteVersionStore
from .stack import HistoryEntry, HistoryStack, HistoryStore, InMemoryHistoryStore
from .versions import InMemoryVersionStore, Version, VersionStore, make_id, utc_now_iso

__all__ = [
    "DesignAssignment",
    "DesignCustomization",
    "DesignStore",
    "HistoryEntry",
    "HistoryStack",
    "HistoryStore",
    "InMemoryDesignStore",
    "InMemoryHistoryStore",
    "InMemoryVersionStore",
    "SQLiteHistoryStore",
    "SQLiteVersionStore",
    "Version",
    "VersionStore",
    "make_id",
    "utc_now_iso",
]
