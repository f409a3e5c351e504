"""Tests for ToolRegistry and ToolExecutor."""

import asyncio

import pytest

from resume_editor.errors import ExternalServiceError, ToolExecutionError, ValidationError
from resume_editor.observability import RunObserver
from resume_editor.tools import BaseTool, SkillAdderTool, ToolContext, ToolExecutor, ToolRegistry, ToolResult, create_registry


class SlowTool(BaseTool):
    name = "slow_tool"
    description = "Sleeps longer than any deadline"
    parameters = {}
    external = True

    async def execute(self, document, args, context):
        await asyncio.sleep(5)
        return ToolResult(success=True)


class FlakyTool(BaseTool):
    name = "flaky_tool"
    description = "Raises whatever it is given"
    parameters = {}
    external = True

    def __init__(self, error):
        self.error = error

    async def execute(self, document, args, context):
        raise self.error


class FailingTool(BaseTool):
    name = "failing_tool"
    description = "Reports failure without raising"
    parameters = {}

    async def execute(self, document, args, context):
        return ToolResult(success=False, error="nothing to do")


class TestToolRegistry:
    def test_default_registry(self):
        registry = create_registry()
        assert registry.list_tools() == [
            "ats_scorer",
            "content_rewriter",
            "color_customizer",
            "skill_adder",
            "design_recommender",
            "tip_applier",
        ]
        assert "skill_adder" in registry
        assert len(registry.schemas()) == 6

    def test_duplicate_registration(self):
        registry = ToolRegistry([SkillAdderTool()])
        with pytest.raises(ValueError, match="already registered"):
            registry.register(SkillAdderTool())

    def test_unregister(self):
        registry = ToolRegistry([SkillAdderTool()])
        assert registry.unregister("skill_adder") is not None
        assert registry.get("skill_adder") is None


class TestToolExecutor:
    @pytest.mark.asyncio
    async def test_success(self, sample_resume):
        observer = RunObserver("run_1", "user_1")
        executor = ToolExecutor(ToolRegistry([SkillAdderTool()]), observer)
        outcome = await executor.execute("skill_adder", sample_resume, {"skills": ["Go"]}, ToolContext())
        assert outcome.ok
        assert outcome.result.patch
        assert observer.events[-1].event_type == "tool_call"
        assert observer.summary()["tool_calls"] == 1

    @pytest.mark.asyncio
    async def test_unknown_tool(self, sample_resume):
        outcome = await ToolExecutor(ToolRegistry()).execute("nope", sample_resume, {}, ToolContext())
        assert isinstance(outcome.error, ValidationError)
        assert "Unknown tool: nope" in outcome.error.message
        assert not outcome.skipped

    @pytest.mark.asyncio
    async def test_timeout_skips_external_tool(self, sample_resume):
        executor = ToolExecutor(ToolRegistry([SlowTool()]))
        outcome = await executor.execute("slow_tool", sample_resume, {}, ToolContext(deadline_seconds=0.05))
        assert outcome.skipped
        assert isinstance(outcome.error, ExternalServiceError)
        assert outcome.error.timed_out
        assert outcome.duration_ms < 5000

    @pytest.mark.asyncio
    async def test_external_failure_is_skipped(self, sample_resume):
        executor = ToolExecutor(ToolRegistry([FlakyTool(ExternalServiceError("rate limited"))]))
        outcome = await executor.execute("flaky_tool", sample_resume, {}, ToolContext())
        assert outcome.skipped
        assert outcome.error.message == "rate limited"

    @pytest.mark.asyncio
    async def test_validation_error_is_not_skipped(self, sample_resume):
        executor = ToolExecutor(ToolRegistry([SkillAdderTool()]))
        outcome = await executor.execute("skill_adder", sample_resume, {}, ToolContext())
        assert isinstance(outcome.error, ValidationError)
        assert not outcome.skipped

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_wrapped(self, sample_resume):
        executor = ToolExecutor(ToolRegistry([FlakyTool(KeyError("boom"))]))
        outcome = await executor.execute("flaky_tool", sample_resume, {}, ToolContext())
        assert isinstance(outcome.error, ToolExecutionError)
        assert outcome.error.tool == "flaky_tool"

    @pytest.mark.asyncio
    async def test_reported_failure(self, sample_resume):
        executor = ToolExecutor(ToolRegistry([FailingTool()]))
        outcome = await executor.execute("failing_tool", sample_resume, {}, ToolContext())
        assert not outcome.ok
        assert outcome.error.message == "nothing to do"

    @pytest.mark.asyncio
    async def test_document_is_not_mutated(self, sample_resume):
        before = repr(sample_resume)
        await ToolExecutor(create_registry()).execute(
            "content_rewriter", sample_resume, {"path": "$.experience[*].achievements[*]"}, ToolContext()
        )
        assert repr(sample_resume) == before
