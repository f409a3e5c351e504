"""Tests for RunOrchestrator: run cycle, commit ordering, history, and design."""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List

import pytest

from resume_editor.domain.colors import normalize_color
from resume_editor.errors import DesignHistoryError, NoFutureVersion, NoPreviousVersion, ValidationError
from resume_editor.history.design import InMemoryDesignStore
from resume_editor.history.stack import InMemoryHistoryStore
from resume_editor.history.versions import InMemoryVersionStore
from resume_editor.observability import TelemetryEvent, drain_telemetry
from resume_editor.orchestrator import RunOptions, RunOrchestrator
from resume_editor.tools import create_registry
from resume_editor.tools.base import BaseTool, FieldChange, ToolContext, ToolResult


NAVY = normalize_color("navy")


class RecordingSink:
    def __init__(self) -> None:
        self.events: List[TelemetryEvent] = []

    async def record(self, event: TelemetryEvent) -> None:
        self.events.append(event)

    @property
    def names(self) -> List[str]:
        return [e.name for e in self.events]


class BrokenSkillTool(BaseTool):
    """Returns a patch that cannot be applied (append onto a string)."""

    name = "skill_adder"
    description = "broken"
    parameters = {"skills": {"type": "array", "description": "Skills", "required": True}}

    async def execute(self, document: Dict[str, Any], args: Dict[str, Any], context: ToolContext) -> ToolResult:
        return ToolResult(success=True, patch=[FieldChange("summary", "append", ["oops"])], rationale="broken")


class FailingVersionStore(InMemoryVersionStore):
    async def append(self, version):
        raise OSError("disk full")


class FailingAssignmentStore(InMemoryDesignStore):
    async def save_assignment(self, assignment):
        raise OSError("design table locked")


class FailingStackStore(InMemoryHistoryStore):
    async def save_stack(self, user_id, stack):
        raise OSError("disk full")


@pytest.fixture
def orchestrator():
    return RunOrchestrator.in_memory()


def technical_skills(document: Dict[str, Any]) -> List[str]:
    return document["skills"]["technical"]


class TestRun:
    @pytest.mark.asyncio
    async def test_first_edit_commits_base_and_edit(self, orchestrator, sample_resume, job_text):
        result = await orchestrator.run("u1", "add Kubernetes to skills", sample_resume, job_text)

        assert result.committed
        assert not result.fatal
        assert technical_skills(result.document) == ["Python", "PostgreSQL", "Docker", "Kubernetes"]
        assert result.diffs and all(d.path.startswith("skills.technical") for d in result.diffs)
        assert result.score_delta > 0
        assert result.artifacts["tools"] == ["skill_adder"]

        versions = await orchestrator.versions.list_for_user("u1")
        assert [v.change_summary for v in versions] == ["Initial version", "Added Kubernetes to technical skills."]
        assert versions[1].previous_version_id == versions[0].id
        assert result.version_id == versions[1].id

        timeline = await orchestrator.timeline("u1")
        assert len(timeline["entries"]) == 2
        assert timeline["current"] == result.history_entry_id
        assert timeline["can_undo"] and not timeline["can_redo"]

    @pytest.mark.asyncio
    async def test_input_document_is_not_mutated(self, orchestrator, sample_resume, job_text):
        await orchestrator.run("u1", "add Kubernetes to skills", sample_resume, job_text)
        assert technical_skills(sample_resume) == ["Python", "PostgreSQL", "Docker"]

    @pytest.mark.asyncio
    async def test_second_edit_chains_versions(self, orchestrator, sample_resume, job_text):
        first = await orchestrator.run("u1", "add Kubernetes to skills", sample_resume, job_text)
        second = await orchestrator.run("u1", "add Terraform to skills", first.document, job_text)

        assert second.committed
        version = await orchestrator.versions.get(second.version_id)
        assert version.previous_version_id == first.version_id
        assert len(orchestrator.versions) == 3

    @pytest.mark.asyncio
    async def test_none_document_loads_current_version(self, orchestrator, sample_resume, job_text):
        await orchestrator.run("u1", "add Kubernetes to skills", sample_resume, job_text)
        result = await orchestrator.run("u1", "add Terraform to skills", None, job_text)
        assert technical_skills(result.document)[-2:] == ["Kubernetes", "Terraform"]

    @pytest.mark.asyncio
    async def test_multi_intent_runs_in_order(self, orchestrator, sample_resume, job_text):
        result = await orchestrator.run(
            "u1",
            "add Kubernetes to skills; strengthen experience[0].achievements[0]",
            sample_resume,
            job_text,
        )
        assert [a.tool for a in result.actions] == ["skill_adder", "content_rewriter"]
        assert result.document["experience"][0]["achievements"][0] == "Led the billing API used by 2M customers"
        version = await orchestrator.versions.get(result.version_id)
        assert ";" in version.change_summary

    @pytest.mark.asyncio
    async def test_no_op_edit_commits_nothing(self, orchestrator, sample_resume, job_text):
        result = await orchestrator.run("u1", "add python to skills", sample_resume, job_text)

        assert not result.diffs
        assert not result.committed
        assert result.actions[0].warnings == ["Already listed: python"]
        assert len(orchestrator.versions) == 0

    @pytest.mark.asyncio
    async def test_persist_false_computes_but_does_not_commit(self, orchestrator, sample_resume, job_text):
        result = await orchestrator.run(
            "u1", "add Kubernetes to skills", sample_resume, job_text, RunOptions(persist=False)
        )
        assert result.diffs
        assert not result.committed
        assert result.version_id is None
        assert len(orchestrator.versions) == 0

    @pytest.mark.asyncio
    async def test_constraints_are_echoed_into_artifacts(self, orchestrator, sample_resume, job_text):
        options = RunOptions(constraints={"max_pages": 1})
        result = await orchestrator.run("u1", "add Kubernetes to skills", sample_resume, job_text, options)
        assert result.artifacts["constraints"] == {"max_pages": 1}

    @pytest.mark.asyncio
    async def test_language_metadata(self, orchestrator, sample_resume, job_text):
        result = await orchestrator.run("u1", "add Kubernetes to skills", sample_resume, job_text)
        assert result.language["document"]["lang"] == "en"
        assert result.language["job"]["lang"] == "en"

        hinted = await orchestrator.run(
            "u2", "add Kubernetes to skills", sample_resume, job_text, RunOptions(language_hint="he")
        )
        assert hinted.language["document"] == {"lang": "he", "confidence": 1.0, "rtl": True, "source": "hint"}

    @pytest.mark.asyncio
    async def test_to_dict(self, orchestrator, sample_resume, job_text):
        data = (await orchestrator.run("u1", "add Kubernetes to skills", sample_resume, job_text)).to_dict()

        assert data["intent"]["tool"] == "skill_adder"
        assert data["ats_report"]["delta"] == data["ats_report"]["after"]["score"] - data["ats_report"]["before"]["score"]
        assert data["errors"] == {"fatal": [], "nonfatal": []}
        assert data["committed"] is True

    @pytest.mark.asyncio
    async def test_telemetry_run_completed(self, sample_resume, job_text):
        sink = RecordingSink()
        orchestrator = RunOrchestrator.in_memory(telemetry=sink)

        await orchestrator.run("u1", "add Kubernetes to skills", sample_resume, job_text)
        await drain_telemetry()

        assert sink.names == ["run_completed"]
        assert sink.events[0].payload["committed"] is True
        assert sink.events[0].payload["tool_calls"] == 1


class TestClarifications:
    @pytest.mark.asyncio
    async def test_unsupported_command_only_clarifies(self, orchestrator, sample_resume, job_text):
        result = await orchestrator.run("u1", "export to pdf", sample_resume, job_text)

        assert len(result.clarifications) == 1
        assert result.clarifications[0].candidates == ["export"]
        assert not result.actions
        assert not result.committed
        assert len(orchestrator.versions) == 0

    @pytest.mark.asyncio
    async def test_clarification_does_not_block_other_intents(self, orchestrator, sample_resume, job_text):
        result = await orchestrator.run("u1", "export to pdf; add Kubernetes to skills", sample_resume, job_text)

        assert len(result.clarifications) == 1
        assert result.committed
        assert "Kubernetes" in technical_skills(result.document)

    @pytest.mark.asyncio
    async def test_unrecognized_command_without_llm(self, orchestrator, sample_resume, job_text):
        result = await orchestrator.run("u1", "make it pop", sample_resume, job_text)
        assert result.clarifications and not result.committed

    @pytest.mark.asyncio
    async def test_classifier_crash_becomes_clarification(self, sample_resume, job_text, fake_completion):
        orchestrator = RunOrchestrator.in_memory(completion=fake_completion([RuntimeError("connection reset")]))

        result = await orchestrator.run("u1", "make it pop more", sample_resume, job_text)

        assert len(result.clarifications) == 1
        assert not result.fatal
        assert not result.committed


class TestErrors:
    @pytest.mark.asyncio
    async def test_nonfatal_error_keeps_other_changes(self, orchestrator, sample_resume, job_text):
        result = await orchestrator.run(
            "u1", "make the background sparkly; add Kubernetes to skills", sample_resume, job_text
        )

        assert not result.fatal
        assert [e.code for e in result.nonfatal_errors] == ["VALIDATION_ERROR"]
        assert result.nonfatal_errors[0].tool == "color_customizer"
        assert result.nonfatal_errors[0].intent_index == 0
        assert result.committed
        assert "Kubernetes" in technical_skills(result.document)

    @pytest.mark.asyncio
    async def test_patch_failure_is_fatal_and_returns_original(self, sample_resume, job_text):
        registry = create_registry()
        registry.unregister("skill_adder")
        registry.register(BrokenSkillTool())
        orchestrator = RunOrchestrator.in_memory(registry=registry)

        result = await orchestrator.run(
            "u1", "add Kubernetes to skills; make the header navy", sample_resume, job_text
        )

        assert result.fatal
        assert result.fatal_errors[0].code == "TOOL_EXECUTION_ERROR"
        assert len(result.actions) == 1
        assert result.document["summary"] == sample_resume["summary"]
        assert result.diffs == []
        assert result.ats_after is result.ats_before
        assert not result.committed
        assert len(orchestrator.versions) == 0

    @pytest.mark.asyncio
    async def test_persistence_failure_is_fatal(self, sample_resume, job_text):
        orchestrator = RunOrchestrator(
            versions=FailingVersionStore(),
            history=InMemoryHistoryStore(),
            designs=InMemoryDesignStore(),
        )

        result = await orchestrator.run("u1", "add Kubernetes to skills", sample_resume, job_text)

        assert result.fatal
        assert result.fatal_errors[0].code == "PERSISTENCE_ERROR"
        assert "disk full" in result.fatal_errors[0].message
        assert not result.committed
        stack = await orchestrator.history.load_stack("u1")
        assert stack.current is None

    @pytest.mark.asyncio
    async def test_design_write_failure_leaves_history_untouched(self, sample_resume, job_text):
        orchestrator = RunOrchestrator(
            versions=InMemoryVersionStore(),
            history=InMemoryHistoryStore(),
            designs=FailingAssignmentStore(),
        )

        result = await orchestrator.run(
            "u1", "add Kubernetes to skills; make the header navy", sample_resume, job_text
        )

        assert [e.code for e in result.fatal_errors] == ["PERSISTENCE_ERROR"]
        assert not result.committed
        assert result.version_id is None
        assert (await orchestrator.history.load_stack("u1")).current is None
        assert (await orchestrator.designs.get_assignment("u1")).customization_id is None

    @pytest.mark.asyncio
    async def test_stack_write_failure_restores_design(self, sample_resume, job_text):
        orchestrator = RunOrchestrator(
            versions=InMemoryVersionStore(),
            history=FailingStackStore(),
            designs=InMemoryDesignStore(),
        )

        result = await orchestrator.run(
            "u1", "add Kubernetes to skills; make the header navy", sample_resume, job_text
        )

        assert result.fatal
        assert "customization_id" not in result.artifacts
        assignment = await orchestrator.designs.get_assignment("u1")
        assert assignment.customization_id is None
        assert assignment.previous_customization_id is None


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_stale_base_version_conflicts(self, orchestrator, sample_resume, job_text):
        first = await orchestrator.run("u1", "add Kubernetes to skills", sample_resume, job_text)
        base = RunOptions(base_version_id=first.version_id)

        results = await asyncio.gather(
            orchestrator.run("u1", "add Terraform to skills", first.document, job_text, base),
            orchestrator.run("u1", "add Go to skills", first.document, job_text, base),
        )

        committed = [r for r in results if r.committed]
        conflicted = [r for r in results if r.fatal]
        assert len(committed) == 1
        assert len(conflicted) == 1
        assert conflicted[0].fatal_errors[0].code == "VERSION_CONFLICT"
        assert conflicted[0].fatal_errors[0].details["current_version_id"] == committed[0].version_id
        assert len(orchestrator.versions) == 3

    @pytest.mark.asyncio
    async def test_matching_base_version_on_empty_history(self, orchestrator, sample_resume, job_text):
        result = await orchestrator.run(
            "u1", "add Kubernetes to skills", sample_resume, job_text, RunOptions(base_version_id="ver_missing")
        )
        assert result.fatal_errors[0].code == "VERSION_CONFLICT"
        assert result.fatal_errors[0].details["current_version_id"] is None

    @pytest.mark.asyncio
    async def test_concurrent_runs_from_same_document_conflict(self, orchestrator, sample_resume, job_text):
        results = await asyncio.gather(
            orchestrator.run("u1", "add Kubernetes to skills", sample_resume, job_text),
            orchestrator.run("u1", "add Terraform to skills", sample_resume, job_text),
        )

        committed = [r for r in results if r.committed]
        conflicted = [r for r in results if r.fatal]
        assert len(committed) == 1 and len(conflicted) == 1
        assert conflicted[0].fatal_errors[0].code == "VERSION_CONFLICT"
        assert conflicted[0].fatal_errors[0].details["current_version_id"] == committed[0].version_id

        current = await orchestrator.versions.get(committed[0].version_id)
        assert current.document() == committed[0].document
        assert len(orchestrator.versions) == 2

    @pytest.mark.asyncio
    async def test_stale_document_without_base_version_conflicts(self, orchestrator, sample_resume, job_text):
        first = await orchestrator.run("u1", "add Kubernetes to skills", sample_resume, job_text)
        stale = await orchestrator.run("u1", "add Terraform to skills", sample_resume, job_text)

        assert stale.fatal_errors[0].code == "VERSION_CONFLICT"
        assert stale.fatal_errors[0].details == {"base_version_id": None, "current_version_id": first.version_id}
        assert not stale.committed
        assert len(orchestrator.versions) == 2

    @pytest.mark.asyncio
    async def test_matching_base_version_accepts_caller_document(self, orchestrator, sample_resume, job_text):
        first = await orchestrator.run("u1", "add Kubernetes to skills", sample_resume, job_text)
        edited = first.document
        edited["summary"] = "Backend engineer focused on payments."

        result = await orchestrator.run(
            "u1", "add Terraform to skills", edited, job_text, RunOptions(base_version_id=first.version_id)
        )

        assert result.committed
        assert result.document["summary"] == "Backend engineer focused on payments."
        assert technical_skills(result.document)[-2:] == ["Kubernetes", "Terraform"]

    @pytest.mark.asyncio
    async def test_user_locks_are_released(self, orchestrator, sample_resume, job_text):
        await asyncio.gather(
            orchestrator.run("u1", "add Kubernetes to skills", sample_resume, job_text),
            orchestrator.run("u2", "make the header navy", sample_resume, job_text),
        )
        await orchestrator.undo("u1")

        assert orchestrator._locks == {}
        assert orchestrator._lock_holders == {}

    @pytest.mark.asyncio
    async def test_users_do_not_share_history(self, orchestrator, sample_resume, job_text):
        await asyncio.gather(
            orchestrator.run("u1", "add Kubernetes to skills", sample_resume, job_text),
            orchestrator.run("u2", "add Terraform to skills", sample_resume, job_text),
        )
        assert len((await orchestrator.timeline("u1"))["entries"]) == 2
        assert len((await orchestrator.timeline("u2"))["entries"]) == 2

    @pytest.mark.asyncio
    async def test_cancellation_persists_nothing(self, sample_resume, job_text, fake_completion):
        orchestrator = RunOrchestrator.in_memory(completion=fake_completion(["rewrite"], delay=1.0))

        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(
                orchestrator.run("u1", "add Kubernetes to skills; make it pop", sample_resume, job_text),
                timeout=0.05,
            )

        assert len(orchestrator.versions) == 0
        assert (await orchestrator.history.load_stack("u1")).current is None

        # The per-user lock was released.
        result = await orchestrator.run("u1", "add Kubernetes to skills", sample_resume, job_text)
        assert result.committed


class TestHistory:
    @pytest.mark.asyncio
    async def test_undo_then_redo(self, orchestrator, sample_resume, job_text):
        result = await orchestrator.run("u1", "add Kubernetes to skills", sample_resume, job_text)

        restored = await orchestrator.undo("u1")
        assert technical_skills(restored.document) == ["Python", "PostgreSQL", "Docker"]
        assert restored.version.change_summary == "Initial version"
        assert restored.timeline["future"] == [result.history_entry_id]

        redone = await orchestrator.redo("u1")
        assert redone.entry.id == result.history_entry_id
        assert "Kubernetes" in technical_skills(redone.document)

    @pytest.mark.asyncio
    async def test_undo_past_initial_version_raises(self, orchestrator, sample_resume, job_text):
        await orchestrator.run("u1", "add Kubernetes to skills", sample_resume, job_text)
        await orchestrator.undo("u1")
        with pytest.raises(NoPreviousVersion):
            await orchestrator.undo("u1")

    @pytest.mark.asyncio
    async def test_redo_without_future_raises(self, orchestrator):
        with pytest.raises(NoFutureVersion):
            await orchestrator.redo("u1")

    @pytest.mark.asyncio
    async def test_new_edit_after_undo_discards_future(self, orchestrator, sample_resume, job_text):
        first = await orchestrator.run("u1", "add Kubernetes to skills", sample_resume, job_text)
        restored = await orchestrator.undo("u1")
        second = await orchestrator.run("u1", "add Terraform to skills", restored.document, job_text)

        timeline = await orchestrator.timeline("u1")
        assert timeline["future"] == []
        assert first.history_entry_id not in [e["id"] for e in timeline["entries"]]
        assert timeline["current"] == second.history_entry_id
        # Pruned versions stay in the append-only store.
        assert await orchestrator.versions.get(first.version_id) is not None

    @pytest.mark.asyncio
    async def test_undo_command_through_run(self, orchestrator, sample_resume, job_text):
        edited = await orchestrator.run("u1", "add Kubernetes to skills", sample_resume, job_text)
        result = await orchestrator.run("u1", "undo", edited.document, job_text)

        assert result.committed
        assert technical_skills(result.document) == ["Python", "PostgreSQL", "Docker"]
        assert result.ats_after.score < result.ats_before.score
        assert result.artifacts["history"]["future"] == [edited.history_entry_id]

    @pytest.mark.asyncio
    async def test_undo_command_with_empty_history(self, orchestrator, sample_resume, job_text):
        result = await orchestrator.run("u1", "undo", sample_resume, job_text)

        assert not result.committed
        assert not result.fatal
        assert [e.code for e in result.nonfatal_errors] == ["NO_PREVIOUS_VERSION"]

    @pytest.mark.asyncio
    async def test_undo_mixed_with_edits_is_rejected(self, orchestrator, sample_resume, job_text):
        result = await orchestrator.run("u1", "add Kubernetes to skills; undo", sample_resume, job_text)

        assert result.committed
        assert "Kubernetes" in technical_skills(result.document)
        assert [e.code for e in result.nonfatal_errors] == [ValidationError.code]
        assert result.nonfatal_errors[0].intent_index == 1

    @pytest.mark.asyncio
    async def test_undo_emits_usage_telemetry(self, sample_resume, job_text):
        sink = RecordingSink()
        orchestrator = RunOrchestrator.in_memory(telemetry=sink)
        await orchestrator.run("u1", "add Kubernetes to skills", sample_resume, job_text)
        await orchestrator.undo("u1")
        await orchestrator.redo("u1")
        await drain_telemetry()

        assert sink.names == ["run_completed", "undo_usage", "redo_usage"]


class TestDesign:
    @pytest.mark.asyncio
    async def test_color_change_commits_design_only(self, orchestrator, sample_resume, job_text):
        result = await orchestrator.run("u1", "make the header navy", sample_resume, job_text)

        assert result.committed
        assert result.diffs == []
        assert result.version_id is None
        assert len(orchestrator.versions) == 0
        assert result.artifacts["design"]["color_scheme"]["primary"] == NAVY

        assignment = await orchestrator.designs.get_assignment("u1")
        assert assignment.customization_id == result.artifacts["customization_id"]
        customization = await orchestrator.designs.get_customization(assignment.customization_id)
        assert customization.color_scheme["primary"] == NAVY

    @pytest.mark.asyncio
    async def test_template_switch_changes_format_score(self, orchestrator, sample_resume, job_text):
        switched = await orchestrator.run("u1", "switch to the sidebar template", sample_resume, job_text)

        assert switched.committed
        assert switched.artifacts["design"]["template_id"] == "sidebar-ssr"
        assert switched.ats_before.subscores["format_parseability"] == 100
        assert switched.ats_after.subscores["format_parseability"] == 85
        assert switched.score_delta < 0

        later = await orchestrator.run("u1", "add Kubernetes to skills", sample_resume, job_text)
        assert later.ats_before.subscores["format_parseability"] == 85
        assert later.ats_after.subscores["format_parseability"] == 85

    @pytest.mark.asyncio
    async def test_design_changes_accumulate_and_undo(self, orchestrator, sample_resume, job_text):
        first = await orchestrator.run("u1", "make the header navy", sample_resume, job_text)
        second = await orchestrator.run("u1", "set the background to white", sample_resume, job_text)

        latest = await orchestrator.designs.get_customization(second.artifacts["customization_id"])
        assert latest.color_scheme["primary"] == NAVY
        assert latest.color_scheme["background"] == normalize_color("white")

        assignment = await orchestrator.undo_design("u1")
        assert assignment.customization_id == first.artifacts["customization_id"]

        reverted = await orchestrator.revert_design("u1")
        assert reverted.customization_id is None
        with pytest.raises(DesignHistoryError):
            await orchestrator.undo_design("u1")

    @pytest.mark.asyncio
    async def test_undo_design_without_previous(self, orchestrator):
        with pytest.raises(DesignHistoryError):
            await orchestrator.undo_design("u1")


class TestScoring:
    def test_score_is_read_only(self, orchestrator, sample_resume, job_text):
        report = orchestrator.score(sample_resume, job_text)
        assert 0 <= report.score <= 100
        assert len(orchestrator.versions) == 0

    def test_apply_suggestions(self, orchestrator, sample_resume, job_text):
        report = orchestrator.score(sample_resume, job_text)
        chosen = report.suggestions[0].id

        applied = orchestrator.apply_suggestions(sample_resume, [chosen, chosen, "bogus_1x"], job_text)

        assert applied.applied == [chosen]
        assert applied.unknown_ids == ["bogus_1x"]
        assert applied.aggregation.old_score == report.score
        assert applied.score_delta == applied.aggregation.new_score - report.score
        assert 0 <= applied.score_delta <= 25

    def test_apply_suggestions_uses_given_old_score(self, orchestrator, sample_resume, job_text):
        report = orchestrator.score(sample_resume, job_text)
        applied = orchestrator.apply_suggestions(
            sample_resume, [s.id for s in report.suggestions], job_text, old_score=98
        )
        assert applied.aggregation.new_score == 100
        assert applied.score_delta == 2

    def test_apply_suggestions_delivers_telemetry_without_a_loop(self, sample_resume, job_text):
        sink = RecordingSink()
        orchestrator = RunOrchestrator.in_memory(telemetry=sink)
        report = orchestrator.score(sample_resume, job_text)

        orchestrator.apply_suggestions(sample_resume, [report.suggestions[0].id], job_text)

        assert sink.names == ["suggestions_applied"]
        assert sink.events[0].payload["count"] == 1
