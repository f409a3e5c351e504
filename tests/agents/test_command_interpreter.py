"""Tests for rule-based and LLM-assisted command interpretation."""

import asyncio

import pytest

from resume_editor.agents import ClarificationNeeded, CommandInterpreter, ResolvedIntent
from resume_editor.agents.intents import HISTORY_UNDO
from resume_editor.agents.interpreter import (
    CLASSIFIER_SYSTEM_PROMPT,
    detect_rewrite_path,
    detect_template,
    match_rules,
    needs_clarification,
    parse_skill_items,
    split_commands,
)
from resume_editor.errors import ExternalServiceError


class TestSplitCommands:
    def test_semicolons_and_newlines(self):
        assert split_commands("add Docker to skills; make the header navy\nundo") == [
            "add Docker to skills",
            "make the header navy",
            "undo",
        ]

    def test_blank_segments_dropped(self):
        assert split_commands(" ; \n ") == []


class TestRules:
    def test_add_skills_suffix(self):
        kind, args, confidence = match_rules("add Docker, Kubernetes and AWS to my skills")
        assert kind == "add_skills"
        assert args == {"skills": ["Docker", "Kubernetes", "AWS"]}
        assert confidence == 0.9

    def test_add_skills_prefix_with_category(self):
        assert parse_skill_items("soft skills: mentoring, public speaking") == (["mentoring", "public speaking"], "soft")
        kind, args, _ = match_rules("add soft skills: mentoring")
        assert (kind, args) == ("add_skills", {"skills": ["mentoring"], "category": "soft"})

    def test_add_without_skills_target_is_not_a_rule(self):
        assert match_rules("add Docker") is None

    def test_tips(self):
        assert match_rules("apply tips 1, 3 and 5") == ("apply_tips", {"tips": [1, 3, 5]}, 0.95)

    def test_color(self):
        kind, args, _ = match_rules("make the header navy")
        assert (kind, args) == ("color", {"text": "make the header navy"})

    def test_unknown_color_still_routes_to_color(self):
        assert match_rules("make the background sparkly")[0] == "color"

    def test_rewrite_paths(self):
        assert detect_rewrite_path("strengthen experience[0].achievements[1]") == "experience[0].achievements[1]"
        assert detect_rewrite_path("rewrite my summary") == "summary"
        assert detect_rewrite_path("improve my achievements") == "$.experience[*].achievements[*]"
        assert detect_rewrite_path("polish my latest role") == "$.experience[0].achievements[*]"
        assert detect_rewrite_path("polish it") == "summary"

    def test_design_and_layout(self):
        kind, args, _ = match_rules("switch to the sidebar template")
        assert (kind, args) == ("design", {"request": "switch to the sidebar template", "template_id": "sidebar-ssr"})
        assert match_rules("tighten the spacing")[0] == "layout"
        assert detect_template("something modern") is None

    def test_ats(self):
        assert match_rules("what's my ats score")[0] == "ats_optimize"

    def test_history_is_anchored_and_first(self):
        assert match_rules("undo the template change")[0] == "undo"
        assert match_rules("please redo")[0] == "redo"


class TestCommandInterpreter:
    @pytest.mark.asyncio
    async def test_multi_intent_order(self):
        intents = await CommandInterpreter().interpret("add Go to skills; make the header navy; apply tip 2")
        assert [i.tool for i in intents] == ["skill_adder", "color_customizer", "tip_applier"]
        assert all(isinstance(i, ResolvedIntent) and i.source == "rule" for i in intents)

    @pytest.mark.asyncio
    async def test_undo_intent(self):
        (intent,) = await CommandInterpreter().interpret("undo")
        assert intent.tool == HISTORY_UNDO
        assert intent.is_history

    @pytest.mark.asyncio
    async def test_unsupported_kind_asks_for_clarification(self):
        (intent,) = await CommandInterpreter().interpret("export to pdf")
        assert isinstance(intent, ClarificationNeeded)
        assert intent.candidates == ["export"]
        assert intent.prompt.startswith("'export' is not available as an edit command.")

    @pytest.mark.asyncio
    async def test_empty_command(self):
        intents = await CommandInterpreter().interpret("  ")
        assert len(intents) == 1
        assert needs_clarification(intents)

    @pytest.mark.asyncio
    async def test_no_rule_and_no_llm(self):
        (intent,) = await CommandInterpreter().interpret("make it better somehow")
        assert isinstance(intent, ClarificationNeeded)
        assert "rewrite" in intent.candidates
        assert "export" not in intent.candidates

    @pytest.mark.asyncio
    async def test_llm_fallback(self, fake_completion):
        completion = fake_completion(["rewrite"])
        (intent,) = await CommandInterpreter(completion).interpret("make it better somehow")
        assert isinstance(intent, ResolvedIntent)
        assert (intent.kind, intent.source, intent.confidence) == ("rewrite", "llm", 0.6)
        assert intent.args == {"path": "summary", "instruction": "make it better somehow"}
        call = completion.calls[0]
        assert call["system_prompt"] == CLASSIFIER_SYSTEM_PROMPT
        assert (call["max_tokens"], call["temperature"]) == (5, 0.0)

    @pytest.mark.asyncio
    async def test_optimize_label(self, fake_completion):
        (intent,) = await CommandInterpreter(fake_completion(["Optimize."])).interpret("make it better somehow")
        assert intent.kind == "ats_optimize"

    @pytest.mark.asyncio
    async def test_unknown_label(self, fake_completion):
        (intent,) = await CommandInterpreter(fake_completion(["banana"])).interpret("make it better somehow")
        assert isinstance(intent, ClarificationNeeded)

    @pytest.mark.asyncio
    async def test_below_threshold(self, fake_completion):
        interpreter = CommandInterpreter(fake_completion(["rewrite"]), threshold=0.7)
        (intent,) = await interpreter.interpret("make it better somehow")
        assert isinstance(intent, ClarificationNeeded)
        assert intent.prompt.startswith("Did you mean:")
        assert (intent.candidates, intent.confidence) == (["rewrite"], 0.6)

    @pytest.mark.asyncio
    async def test_llm_kind_without_args(self, fake_completion):
        (intent,) = await CommandInterpreter(fake_completion(["add_skills"])).interpret("make it better somehow")
        assert isinstance(intent, ClarificationNeeded)
        assert intent.prompt.endswith("but I need more detail.")

    @pytest.mark.asyncio
    async def test_classifier_timeout(self, fake_completion):
        interpreter = CommandInterpreter(fake_completion(["rewrite"], delay=0.5), timeout_seconds=0.05)
        (intent,) = await interpreter.interpret("make it better somehow")
        assert isinstance(intent, ClarificationNeeded)

    @pytest.mark.asyncio
    async def test_classifier_failure(self, fake_completion):
        interpreter = CommandInterpreter(fake_completion([ExternalServiceError("down")]))
        (intent,) = await interpreter.interpret("make it better somehow")
        assert isinstance(intent, ClarificationNeeded)

    @pytest.mark.asyncio
    async def test_unexpected_completion_error_asks_for_clarification(self, fake_completion):
        interpreter = CommandInterpreter(fake_completion([RuntimeError("connection reset")]))
        (intent,) = await interpreter.interpret("make it better somehow")
        assert isinstance(intent, ClarificationNeeded)

    @pytest.mark.asyncio
    async def test_cancellation_is_not_swallowed(self, fake_completion):
        interpreter = CommandInterpreter(fake_completion([asyncio.CancelledError()]))
        with pytest.raises(asyncio.CancelledError):
            await interpreter.interpret("make it better somehow")

    @pytest.mark.asyncio
    async def test_language_hint_in_prompt(self, fake_completion):
        completion = fake_completion(["rewrite"])
        await CommandInterpreter(completion).interpret("make it better somehow", language="he")
        assert "language code 'he'" in completion.calls[0]["prompt"]

    @pytest.mark.asyncio
    async def test_rules_skip_llm(self, fake_completion):
        completion = fake_completion(["design"])
        await CommandInterpreter(completion).interpret("add Go to skills")
        assert completion.calls == []

    def test_to_dict(self):
        intent = ResolvedIntent(kind="color", tool="color_customizer", args={"text": "x"})
        assert intent.to_dict()["needs_clarification"] is False
        assert ClarificationNeeded(prompt="?").to_dict()["needs_clarification"] is True
