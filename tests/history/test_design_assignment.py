"""Tests for single-level design customization history."""

import pytest

from resume_editor.errors import DesignHistoryError
from resume_editor.history import DesignAssignment, DesignCustomization, InMemoryDesignStore


class TestDesignAssignment:
    def test_customize_remembers_one_previous(self):
        assignment = DesignAssignment("user_1").customize("cust_a").customize("cust_b", template_id="card-ssr")
        assert assignment.customization_id == "cust_b"
        assert assignment.previous_customization_id == "cust_a"
        assert assignment.template_id == "card-ssr"

    def test_undo_restores_previous(self):
        assignment = DesignAssignment("user_1").customize("cust_a").customize("cust_b").undo()
        assert assignment.customization_id == "cust_a"
        assert assignment.previous_customization_id == "cust_b"

    def test_undo_twice_toggles(self):
        assignment = DesignAssignment("user_1").customize("cust_a").customize("cust_b")
        assert assignment.undo().undo() == assignment

    def test_undo_without_previous(self):
        with pytest.raises(DesignHistoryError):
            DesignAssignment("user_1").customize("cust_a").undo()

    def test_revert_clears_customization(self):
        assignment = DesignAssignment("user_1", template_id="minimal-ssr").customize("cust_a").customize("cust_b")
        reverted = assignment.revert()
        assert reverted.customization_id is None
        assert reverted.previous_customization_id is None
        assert reverted.template_id == "minimal-ssr"
        assert not reverted.can_undo


class TestInMemoryDesignStore:
    @pytest.mark.asyncio
    async def test_default_assignment(self):
        assignment = await InMemoryDesignStore().get_assignment("user_1")
        assert assignment == DesignAssignment("user_1")

    @pytest.mark.asyncio
    async def test_customization_round_trip(self):
        store = InMemoryDesignStore()
        customization = DesignCustomization.create(color_scheme={"primary": "#1e3a8a"}, template_id="minimal-ssr")
        await store.save_customization(customization)
        loaded = await store.get_customization(customization.id)
        assert loaded == customization
        assert loaded.id.startswith("cust_")
        assert await store.get_customization("cust_missing") is None

        await store.save_assignment(DesignAssignment("user_1").customize(customization.id))
        assert (await store.get_assignment("user_1")).customization_id == customization.id
