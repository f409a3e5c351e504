"""Tests for the undo/redo stack and the in-memory stores."""

import pytest

from resume_editor.errors import NoFutureVersion, NoHistoryError, NoPreviousVersion
from resume_editor.history import (
    HistoryEntry,
    HistoryStack,
    InMemoryHistoryStore,
    InMemoryVersionStore,
    Version,
)


def _entry(version_id, score=None):
    return HistoryEntry.create("user_1", version_id, ats_score=score)


class TestHistoryStack:
    def test_push_makes_entry_current(self):
        first, second = _entry("v1"), _entry("v2")
        stack = HistoryStack().push(first).push(second)
        assert stack.current is second
        assert stack.past == (first,)
        assert stack.future == ()

    def test_undo_then_redo_round_trip(self):
        first, second = _entry("v1"), _entry("v2")
        stack = HistoryStack().push(first).push(second)
        assert stack.undo().redo() == stack

    def test_multi_level_undo(self):
        a, b, c = _entry("v1"), _entry("v2"), _entry("v3")
        stack = HistoryStack().push(a).push(b).push(c).undo().undo()
        assert stack.current is a
        assert stack.future == (b, c)
        assert stack.timeline() == {"past": [], "current": a.id, "future": [b.id, c.id]}

    def test_push_after_undo_clears_future(self):
        a, b, c = _entry("v1"), _entry("v2"), _entry("v3")
        stack = HistoryStack().push(a).push(b).undo().push(c)
        assert stack.current is c
        assert stack.future == ()
        assert not stack.can_redo
        assert [e.id for e in stack.entries()] == [a.id, c.id]

    def test_operations_do_not_mutate(self):
        stack = HistoryStack().push(_entry("v1")).push(_entry("v2"))
        stack.undo()
        assert stack.can_undo and not stack.can_redo

    def test_empty_stack_errors(self):
        with pytest.raises(NoPreviousVersion):
            HistoryStack().undo()
        with pytest.raises(NoFutureVersion):
            HistoryStack().push(_entry("v1")).redo()

    def test_errors_share_a_base(self):
        assert issubclass(NoPreviousVersion, NoHistoryError)
        assert NoPreviousVersion().code == "NO_PREVIOUS_VERSION"


class TestHistoryEntry:
    def test_create(self):
        artifacts = {"score_delta": 5}
        entry = HistoryEntry.create("user_1", "v1", ats_score=70, artifacts=artifacts)
        artifacts["score_delta"] = 0
        assert entry.id.startswith("hist_")
        assert entry.to_dict()["artifacts"] == {"score_delta": 5}


class TestInMemoryVersionStore:
    @pytest.mark.asyncio
    async def test_append_and_latest(self, sample_resume):
        store = InMemoryVersionStore()
        first = Version.create("user_1", sample_resume, change_summary="Initial version")
        second = Version.create("user_1", {**sample_resume, "summary": "New"}, previous_version_id=first.id)
        await store.append(first)
        await store.append(second)
        assert (await store.latest("user_1")).id == second.id
        assert [v.id for v in await store.list_for_user("user_1")] == [first.id, second.id]
        assert await store.latest("someone_else") is None
        assert len(store) == 2

    @pytest.mark.asyncio
    async def test_snapshots_are_immutable(self, sample_resume):
        store = InMemoryVersionStore()
        version = Version.create("user_1", sample_resume)
        sample_resume["summary"] = "changed after the fact"
        await store.append(version)

        loaded = await store.get(version.id)
        loaded.document_snapshot["summary"] = "tampered"
        assert (await store.get(version.id)).document_snapshot["summary"].startswith("Backend engineer")

    @pytest.mark.asyncio
    async def test_duplicate_id_rejected(self, sample_resume):
        store = InMemoryVersionStore()
        version = Version.create("user_1", sample_resume)
        await store.append(version)
        with pytest.raises(ValueError):
            await store.append(version)


class TestInMemoryHistoryStore:
    @pytest.mark.asyncio
    async def test_stack_round_trip(self):
        store = InMemoryHistoryStore()
        entry = _entry("v1")
        await store.append_entry(entry)
        stack = HistoryStack().push(entry)
        await store.save_stack("user_1", stack)
        assert await store.load_stack("user_1") == stack
        assert await store.load_stack("user_2") == HistoryStack()

    @pytest.mark.asyncio
    async def test_stack_must_reference_known_entries(self):
        store = InMemoryHistoryStore()
        with pytest.raises(ValueError, match="unknown history entries"):
            await store.save_stack("user_1", HistoryStack().push(_entry("v1")))
