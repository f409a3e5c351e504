"""Tests for the SQLite-backed version and history stores."""

import pytest
import pytest_asyncio

from resume_editor.errors import PersistenceError
from resume_editor.history import HistoryEntry, HistoryStack, SQLiteHistoryStore, SQLiteVersionStore, Version


@pytest_asyncio.fixture
async def version_store(tmp_path):
    store = SQLiteVersionStore(tmp_path / "history.db")
    await store.start()
    yield store
    await store.stop()


@pytest_asyncio.fixture
async def history_store(tmp_path):
    store = SQLiteHistoryStore(tmp_path / "history.db")
    await store.start()
    yield store
    await store.stop()


class TestSQLiteVersionStore:
    @pytest.mark.asyncio
    async def test_append_get_latest(self, version_store, sample_resume):
        first = Version.create("user_1", sample_resume, change_summary="Initial version", scoring_version="1.0")
        second = Version.create("user_1", {**sample_resume, "summary": "Updated"}, previous_version_id=first.id)
        await version_store.append(first)
        await version_store.append(second)

        loaded = await version_store.get(first.id)
        assert loaded == first
        assert (await version_store.latest("user_1")).id == second.id
        assert [v.id for v in await version_store.list_for_user("user_1")] == [first.id, second.id]
        assert await version_store.get("ver_missing") is None

    @pytest.mark.asyncio
    async def test_duplicate_is_persistence_error(self, version_store, sample_resume):
        version = Version.create("user_1", sample_resume)
        await version_store.append(version)
        with pytest.raises(PersistenceError):
            await version_store.append(version)

    @pytest.mark.asyncio
    async def test_survives_restart(self, tmp_path, sample_resume):
        path = tmp_path / "restart.db"
        store = SQLiteVersionStore(path)
        await store.start()
        version = Version.create("user_1", sample_resume)
        await store.append(version)
        await store.stop()

        reopened = SQLiteVersionStore(path)
        await reopened.start()
        try:
            assert (await reopened.latest("user_1")).document_snapshot == sample_resume
        finally:
            await reopened.stop()

    def test_not_started(self, tmp_path):
        with pytest.raises(RuntimeError, match="not started"):
            SQLiteVersionStore(tmp_path / "x.db").db


class TestSQLiteHistoryStore:
    @pytest.mark.asyncio
    async def test_stack_round_trip(self, history_store):
        a = HistoryEntry.create("user_1", "ver_a", ats_score=60)
        b = HistoryEntry.create("user_1", "ver_b", ats_score=72, artifacts={"score_delta": 12})
        for entry in (a, b):
            await history_store.append_entry(entry)

        stack = HistoryStack().push(a).push(b).undo()
        await history_store.save_stack("user_1", stack)
        loaded = await history_store.load_stack("user_1")
        assert loaded.timeline() == stack.timeline()
        assert loaded.future[0].artifacts == {"score_delta": 12}

        await history_store.save_stack("user_1", loaded.redo())
        assert (await history_store.load_stack("user_1")).current.id == b.id

    @pytest.mark.asyncio
    async def test_empty_stack(self, history_store):
        assert await history_store.load_stack("nobody") == HistoryStack()

    @pytest.mark.asyncio
    async def test_dangling_reference(self, history_store):
        await history_store.save_stack("user_1", HistoryStack().push(HistoryEntry.create("user_1", "ver_a")))
        with pytest.raises(PersistenceError, match="missing"):
            await history_store.load_stack("user_1")
