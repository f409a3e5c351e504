"""
RunOrchestrator - one command in, one committed version out.

Sequence for ``run``:
1. Resolve the base document: the user's current version, or the caller's
   copy when it matches (or names) that version
2. Detect document/job language (metadata only)
3. Score the base document with the applied design ("before")
4. Interpret the command into intents
5. Execute intents in order; nonfatal errors are recorded, a fatal error stops the batch
6. Score the result ("after") and diff it against the base document
7. Commit: versions and history entries, the design assignment, then the history stack last

Nothing is written before step 7, so a cancelled or failed run leaves the
stores untouched.
"""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

from .agents.interpreter import CommandInterpreter
from .agents.intents import ClarificationNeeded, Intent, ResolvedIntent
from .config import EditorConfig
from .domain.diff import DiffEntry, compute_diff, summarize_diff
from .domain.document import ensure_document
from .domain.job_extraction import extract_job_data
from .domain.language import LanguageDetection, is_rtl, resolve_language
from .domain.scoring import ScoreReport, score_resume
from .domain.suggestions import GainAggregation, aggregate_gain, apply_suggestion_edits
from .domain.text import extract_resume_text
from .errors import (
    ConflictError,
    EditorError,
    PersistenceError,
    RunError,
    ToolExecutionError,
    ValidationError,
)
from .history.design import DesignAssignment, DesignCustomization, DesignStore, InMemoryDesignStore
from .history.stack import HistoryEntry, HistoryStack, HistoryStore, InMemoryHistoryStore
from .history.versions import InMemoryVersionStore, Version, VersionStore, make_id
from .observability import NullTelemetrySink, RunObserver, TelemetryEvent, TelemetrySink, emit_telemetry
from .providers import CompletionFn
from .tools import create_registry
from .tools.base import ToolContext
from .tools.registry import ToolExecutor, ToolRegistry

logger = logging.getLogger(__name__)


@dataclass
class RunOptions:
    """Per-run options.

    Attributes:
        base_version_id: Version the caller edited from; a mismatch with the user's
            current version fails the run with ConflictError. Without it, a supplied
            document must equal the current version
        language_hint: Overrides language detection for the document
        constraints: Free-form caller constraints, echoed into artifacts
        deadline_seconds: Per-tool deadline for external calls
        persist: When False the run is computed but nothing is committed
    """

    base_version_id: Optional[str] = None
    language_hint: Optional[str] = None
    constraints: Dict[str, Any] = field(default_factory=dict)
    deadline_seconds: Optional[float] = None
    persist: bool = True


@dataclass
class ActionRecord:
    """What one intent did."""

    index: int
    tool: str
    args: Dict[str, Any]
    success: bool
    rationale: str = ""
    warnings: List[str] = field(default_factory=list)
    patch: List[Dict[str, Any]] = field(default_factory=list)
    diff: List[DiffEntry] = field(default_factory=list)
    skipped: bool = False
    duration_ms: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "tool": self.tool,
            "args": self.args,
            "success": self.success,
            "rationale": self.rationale,
            "warnings": list(self.warnings),
            "patch": list(self.patch),
            "diff": [d.to_dict() for d in self.diff],
            "skipped": self.skipped,
            "duration_ms": round(self.duration_ms, 2),
        }


@dataclass
class AgentResult:
    """Everything one ``run`` produced."""

    run_id: str
    user_id: str
    document: Dict[str, Any]
    intents: List[Intent] = field(default_factory=list)
    actions: List[ActionRecord] = field(default_factory=list)
    diffs: List[DiffEntry] = field(default_factory=list)
    ats_before: Optional[ScoreReport] = None
    ats_after: Optional[ScoreReport] = None
    artifacts: Dict[str, Any] = field(default_factory=dict)
    language: Dict[str, Any] = field(default_factory=dict)
    fatal_errors: List[RunError] = field(default_factory=list)
    nonfatal_errors: List[RunError] = field(default_factory=list)
    clarifications: List[ClarificationNeeded] = field(default_factory=list)
    version_id: Optional[str] = None
    history_entry_id: Optional[str] = None
    committed: bool = False

    @property
    def fatal(self) -> bool:
        return bool(self.fatal_errors)

    @property
    def intent(self) -> Optional[Intent]:
        return self.intents[0] if self.intents else None

    @property
    def score_delta(self) -> int:
        if self.ats_before is None or self.ats_after is None:
            return 0
        return self.ats_after.score - self.ats_before.score

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "intent": self.intent.to_dict() if self.intent else None,
            "intents": [i.to_dict() for i in self.intents],
            "actions": [a.to_dict() for a in self.actions],
            "diffs": [d.to_dict() for d in self.diffs],
            "ats_report": {
                "before": self.ats_before.to_dict() if self.ats_before else None,
                "after": self.ats_after.to_dict() if self.ats_after else None,
                "delta": self.score_delta,
            },
            "artifacts": self.artifacts,
            "language": self.language,
            "errors": {
                "fatal": [e.to_dict() for e in self.fatal_errors],
                "nonfatal": [e.to_dict() for e in self.nonfatal_errors],
            },
            "clarifications": [c.to_dict() for c in self.clarifications],
            "version_id": self.version_id,
            "history_entry_id": self.history_entry_id,
            "committed": self.committed,
        }


@dataclass
class RestoredVersion:
    """The history entry an undo/redo made current, and its version."""

    entry: HistoryEntry
    version: Optional[Version]
    timeline: Dict[str, Any] = field(default_factory=dict)

    @property
    def document(self) -> Optional[Dict[str, Any]]:
        return self.version.document() if self.version else None


@dataclass
class SuggestionApplication:
    document: Dict[str, Any]
    score_delta: int
    aggregation: GainAggregation
    applied: List[str] = field(default_factory=list)
    unknown_ids: List[str] = field(default_factory=list)
    log: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "document": self.document,
            "score_delta": self.score_delta,
            "aggregation": self.aggregation.to_dict(),
            "applied": list(self.applied),
            "unknown_ids": list(self.unknown_ids),
            "log": list(self.log),
        }


class RunOrchestrator:
    """Composes interpreter, tools, scoring, and history into one request cycle.

    Example:
        orchestrator = RunOrchestrator.in_memory()
        result = await orchestrator.run("u1", "add Docker to skills", resume, job_text)
        restored = await orchestrator.undo("u1")
    """

    def __init__(
        self,
        versions: VersionStore,
        history: HistoryStore,
        designs: DesignStore,
        registry: Optional[ToolRegistry] = None,
        interpreter: Optional[CommandInterpreter] = None,
        completion: Optional[CompletionFn] = None,
        telemetry: Optional[TelemetrySink] = None,
        config: Optional[EditorConfig] = None,
    ):
        self.config = config or EditorConfig()
        self.versions = versions
        self.history = history
        self.designs = designs
        self.completion = completion
        self.registry = registry or create_registry(self.config.scoring)
        self.executor = ToolExecutor(self.registry)
        self.interpreter = interpreter or CommandInterpreter(
            completion=completion,
            threshold=self.config.clarification_threshold,
            timeout_seconds=self.config.interpreter_timeout_seconds,
        )
        self.telemetry = telemetry or NullTelemetrySink()
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_holders: Dict[str, int] = {}

    @classmethod
    def in_memory(
        cls,
        config: Optional[EditorConfig] = None,
        completion: Optional[CompletionFn] = None,
        telemetry: Optional[TelemetrySink] = None,
        registry: Optional[ToolRegistry] = None,
    ) -> "RunOrchestrator":
        return cls(
            versions=InMemoryVersionStore(),
            history=InMemoryHistoryStore(),
            designs=InMemoryDesignStore(),
            registry=registry,
            completion=completion,
            telemetry=telemetry,
            config=config,
        )

    @asynccontextmanager
    async def _user_lock(self, user_id: str) -> AsyncIterator[None]:
        """Serialize work for *user_id*; the lock is dropped once nobody holds or waits on it."""
        lock = self._locks.setdefault(user_id, asyncio.Lock())
        self._lock_holders[user_id] = self._lock_holders.get(user_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_holders[user_id] -= 1
            if not self._lock_holders[user_id]:
                del self._lock_holders[user_id]
                del self._locks[user_id]

    def _emit(self, name: str, user_id: str, payload: Dict[str, Any]) -> None:
        emit_telemetry(self.telemetry, TelemetryEvent(name=name, user_id=user_id, payload=payload))

    # ------------------------------------------------------------------
    # run
    # ------------------------------------------------------------------

    async def run(
        self,
        user_id: str,
        command: str,
        document: Optional[Dict[str, Any]] = None,
        job_text: str = "",
        options: Optional[RunOptions] = None,
    ) -> AgentResult:
        options = options or RunOptions()
        run_id = make_id("run")
        observer = RunObserver(run_id, user_id)
        start_time = time.time()

        async with self._user_lock(user_id):
            try:
                result = await self._run_locked(run_id, user_id, command, document, job_text, options, observer)
            except asyncio.CancelledError:
                logger.warning(f"[{run_id}] cancelled before commit; nothing persisted")
                raise

        duration_ms = (time.time() - start_time) * 1000
        self._emit(
            "run_completed",
            user_id,
            {
                "run_id": run_id,
                "committed": result.committed,
                "fatal": result.fatal,
                "nonfatal": len(result.nonfatal_errors),
                "score_delta": result.score_delta,
                "duration_ms": round(duration_ms, 2),
                **observer.summary(),
            },
        )
        return result

    async def _run_locked(
        self,
        run_id: str,
        user_id: str,
        command: str,
        document: Optional[Dict[str, Any]],
        job_text: str,
        options: RunOptions,
        observer: RunObserver,
    ) -> AgentResult:
        stack = await self.history.load_stack(user_id)
        current_version_id = stack.current.version_id if stack.current else None

        if options.base_version_id is not None and options.base_version_id != current_version_id:
            error = ConflictError(
                f"Base version {options.base_version_id} is not the current version",
                details={"base_version_id": options.base_version_id, "current_version_id": current_version_id},
            )
            return self._conflict(run_id, user_id, document, error, observer)

        current = await self.versions.get(current_version_id) if current_version_id else None
        if current is None:
            original = ensure_document(document)
        elif document is None:
            original = ensure_document(current.document())
        else:
            original = ensure_document(document)
            # Without a base version the caller must be editing the current snapshot.
            if options.base_version_id is None and original != ensure_document(current.document()):
                error = ConflictError(
                    "Document does not match the current version; reload it or pass base_version_id",
                    details={"base_version_id": None, "current_version_id": current_version_id},
                )
                return self._conflict(run_id, user_id, document, error, observer)

        language = await self._detect_language(original, job_text, options.language_hint)
        job = extract_job_data(job_text or "")
        design = await self._current_design(user_id)
        before = score_resume(original, job_text, job, self.config.scoring, design=design)

        result = AgentResult(
            run_id=run_id,
            user_id=user_id,
            document=original,
            ats_before=before,
            ats_after=before,
            language=language,
        )

        intents = await self.interpreter.interpret(command, language["document"]["lang"])
        result.intents = intents
        resolved: List[Tuple[int, ResolvedIntent]] = []
        for index, intent in enumerate(intents):
            if isinstance(intent, ClarificationNeeded):
                result.clarifications.append(intent)
                continue
            observer.log_intent(index, intent.tool, intent.confidence, intent.source)
            resolved.append((index, intent))

        history_intents = [(index, i) for index, i in resolved if i.is_history]
        if history_intents:
            if len(resolved) == 1:
                return await self._run_history_intent(result, stack, history_intents[0][1], job_text, design, observer)
            for index, intent in history_intents:
                error = ValidationError("Undo and redo must be sent as a separate command")
                result.nonfatal_errors.append(RunError.from_exception(error, tool=intent.tool, intent_index=index))
                observer.log_error(error.code, error.message, fatal=False)
            resolved = [(index, i) for index, i in resolved if not i.is_history]

        context = ToolContext(
            job=job,
            job_text=job_text or "",
            score_report=before,
            completion=self.completion,
            deadline_seconds=options.deadline_seconds or self.config.tool_timeout_seconds,
            suggestions=list(before.suggestions),
            design=dict(design),
            language=language["document"]["lang"],
        )

        working = original
        design_changes: Dict[str, Any] = {}
        for index, intent in resolved:
            outcome = await self.executor.execute(intent.tool, working, intent.args, context, observer)
            action = ActionRecord(
                index=index,
                tool=intent.tool,
                args=dict(intent.args),
                success=outcome.ok,
                skipped=outcome.skipped,
                duration_ms=outcome.duration_ms,
            )
            result.actions.append(action)

            if outcome.error is not None:
                result.nonfatal_errors.append(RunError.from_exception(outcome.error, tool=intent.tool, intent_index=index))
                observer.log_error(outcome.error.code, outcome.error.message, fatal=False, context={"tool": intent.tool})
                continue

            tool_result = outcome.result
            action.rationale = tool_result.rationale
            action.warnings = list(tool_result.warnings)
            action.patch = [c.to_dict() for c in tool_result.patch]

            try:
                updated = tool_result.apply(working)
            except Exception as e:
                error = ToolExecutionError(f"Failed to apply {intent.tool} patch: {e}", tool=intent.tool, fatal=True)
                action.success = False
                observer.log_error(error.code, error.message, fatal=True, context={"tool": intent.tool})
                return self._abort(result, original, error, index)

            action.diff = compute_diff(working, updated)
            working = updated

            if tool_result.design:
                design_changes.update(tool_result.design)
                context.design.update(tool_result.design)
            report = tool_result.data.get("score_report")
            if isinstance(report, ScoreReport):
                context.score_report = report
                context.suggestions = list(report.suggestions)

        result.document = working
        result.diffs = compute_diff(original, working)
        if result.diffs or design_changes:
            result.ats_after = score_resume(
                working, job_text, job, self.config.scoring, design={**design, **design_changes}
            )

        result.artifacts = {
            "run_id": run_id,
            "tools": [a.tool for a in result.actions if a.success],
            "diff_summary": summarize_diff(result.diffs),
        }
        if options.constraints:
            result.artifacts["constraints"] = dict(options.constraints)
        if design_changes:
            result.artifacts["design"] = design_changes

        if not options.persist or (not result.diffs and not design_changes):
            return result

        await self._commit(result, stack, original, design_changes, observer)
        return result

    def _abort(self, result: AgentResult, original: Dict[str, Any], error: EditorError, index: int) -> AgentResult:
        result.document = original
        result.diffs = []
        result.ats_after = result.ats_before
        result.fatal_errors.append(RunError.from_exception(error, intent_index=index))
        return result

    def _conflict(
        self,
        run_id: str,
        user_id: str,
        document: Optional[Dict[str, Any]],
        error: ConflictError,
        observer: RunObserver,
    ) -> AgentResult:
        observer.log_error(error.code, error.message, fatal=True)
        return AgentResult(
            run_id=run_id,
            user_id=user_id,
            document=ensure_document(document) if document is not None else {},
            fatal_errors=[RunError.from_exception(error)],
        )

    async def _commit(
        self,
        result: AgentResult,
        stack: HistoryStack,
        original: Dict[str, Any],
        design_changes: Dict[str, Any],
        observer: RunObserver,
    ) -> None:
        """Write the run's versions, entries, and design, then publish the stack.

        New records stay unreachable until the stack or the assignment points
        at them. The assignment is written before the stack and put back if
        the stack write fails, so a failed commit leaves both as they were.
        """
        scoring_version = self.config.scoring.version
        pending_versions: List[Version] = []
        pending_entries: List[HistoryEntry] = []
        new_stack = stack

        if result.diffs:
            previous_id = stack.current.version_id if stack.current else None
            if stack.current is None:
                base = Version.create(result.user_id, original, None, "Initial version", scoring_version)
                base_entry = HistoryEntry.create(result.user_id, base.id, result.ats_before.score)
                pending_versions.append(base)
                pending_entries.append(base_entry)
                new_stack = new_stack.push(base_entry)
                previous_id = base.id

            summary = "; ".join(a.rationale for a in result.actions if a.success and a.rationale) or "Edited resume"
            version = Version.create(result.user_id, result.document, previous_id, summary, scoring_version)
            entry = HistoryEntry.create(result.user_id, version.id, result.ats_after.score, result.artifacts)
            pending_versions.append(version)
            pending_entries.append(entry)
            new_stack = new_stack.push(entry)

        previous_assignment: Optional[DesignAssignment] = None
        customization_id: Optional[str] = None
        try:
            for version in pending_versions:
                await self.versions.append(version)
            for entry in pending_entries:
                await self.history.append_entry(entry)
            if design_changes:
                previous_assignment = await self.designs.get_assignment(result.user_id)
                customization_id = await self._commit_design(previous_assignment, design_changes)
            if pending_entries:
                await self.history.save_stack(result.user_id, new_stack)
        except asyncio.CancelledError:
            await self._restore_assignment(previous_assignment)
            raise
        except Exception as e:
            await self._restore_assignment(previous_assignment)
            error = e if isinstance(e, PersistenceError) else PersistenceError(f"Failed to commit run: {e}")
            observer.log_error(error.code, error.message, fatal=True)
            result.fatal_errors.append(RunError.from_exception(error))
            return

        if customization_id:
            result.artifacts["customization_id"] = customization_id
        if pending_entries:
            result.version_id = pending_versions[-1].id
            result.history_entry_id = pending_entries[-1].id
            observer.log_commit(result.version_id, result.history_entry_id)
        result.committed = True

    async def _commit_design(self, assignment: DesignAssignment, design_changes: Dict[str, Any]) -> str:
        current = await self._current_design(assignment.user_id)
        merged = {**current, **design_changes}
        customization = DesignCustomization.create(
            color_scheme=merged.get("color_scheme"),
            font_family=merged.get("font_family"),
            template_id=merged.get("template_id"),
        )
        await self.designs.save_customization(customization)
        await self.designs.save_assignment(assignment.customize(customization.id, customization.template_id))
        return customization.id

    async def _restore_assignment(self, assignment: Optional[DesignAssignment]) -> None:
        if assignment is None:
            return
        try:
            await self.designs.save_assignment(assignment)
        except Exception as e:
            logger.error(f"Could not restore design assignment for {assignment.user_id}: {e}")

    async def _run_history_intent(
        self,
        result: AgentResult,
        stack: HistoryStack,
        intent: ResolvedIntent,
        job_text: str,
        design: Dict[str, Any],
        observer: RunObserver,
    ) -> AgentResult:
        direction = "undo" if intent.kind == "undo" else "redo"
        try:
            restored = await self._move(result.user_id, stack, direction)
        except EditorError as e:
            result.nonfatal_errors.append(RunError.from_exception(e, tool=intent.tool, intent_index=0))
            observer.log_error(e.code, e.message, fatal=False)
            return result

        if restored.version is not None:
            restored_document = restored.document
            result.diffs = compute_diff(result.document, restored_document)
            result.document = restored_document
            result.ats_after = self.score(restored_document, job_text, design)
        result.history_entry_id = restored.entry.id
        result.version_id = restored.entry.version_id
        result.committed = True
        result.artifacts = {"run_id": result.run_id, "history": restored.timeline}
        return result
        return result

    # ------------------------------------------------------------------
    # history
    # ------------------------------------------------------------------

    async def undo(self, user_id: str) -> RestoredVersion:
        """Make the previous history entry current. Raises NoPreviousVersion."""
        async with self._user_lock(user_id):
            stack = await self.history.load_stack(user_id)
            return await self._move(user_id, stack, "undo")

    async def redo(self, user_id: str) -> RestoredVersion:
        """Make the next history entry current. Raises NoFutureVersion."""
        async with self._user_lock(user_id):
            stack = await self.history.load_stack(user_id)
            return await self._move(user_id, stack, "redo")

    async def _move(self, user_id: str, stack: HistoryStack, direction: str) -> RestoredVersion:
        new_stack = stack.undo() if direction == "undo" else stack.redo()
        await self.history.save_stack(user_id, new_stack)
        entry = new_stack.current
        version = await self.versions.get(entry.version_id)
        if version is None:
            logger.warning(f"History entry {entry.id} points at missing version {entry.version_id}")
        self._emit(
            f"{direction}_usage",
            user_id,
            {"history_entry_id": entry.id, "version_id": entry.version_id, "ats_score": entry.ats_score},
        )
        return RestoredVersion(entry=entry, version=version, timeline=new_stack.timeline())

    async def timeline(self, user_id: str) -> Dict[str, Any]:
        stack = await self.history.load_stack(user_id)
        timeline = stack.timeline()
        timeline["entries"] = [
            {"id": e.id, "version_id": e.version_id, "ats_score": e.ats_score, "created_at": e.created_at}
            for e in stack.entries()
        ]
        timeline["can_undo"] = stack.can_undo
        timeline["can_redo"] = stack.can_redo
        return timeline

    # ------------------------------------------------------------------
    # design
    # ------------------------------------------------------------------

    async def _current_design(self, user_id: str) -> Dict[str, Any]:
        assignment = await self.designs.get_assignment(user_id)
        design: Dict[str, Any] = {}
        if assignment.template_id:
            design["template_id"] = assignment.template_id
        if assignment.customization_id:
            customization = await self.designs.get_customization(assignment.customization_id)
            if customization is not None:
                design.update({
                    "color_scheme": dict(customization.color_scheme),
                    "font_family": dict(customization.font_family),
                })
                if customization.template_id:
                    design["template_id"] = customization.template_id
        return design

    async def undo_design(self, user_id: str) -> DesignAssignment:
        """Swap back to the previous customization. Raises DesignHistoryError."""
        async with self._user_lock(user_id):
            assignment = await self.designs.get_assignment(user_id)
            updated = assignment.undo()
            await self.designs.save_assignment(updated)
        self._emit(
            "design_undo",
            user_id,
            {"customization_id": updated.customization_id, "previous_customization_id": updated.previous_customization_id},
        )
        return updated

    async def revert_design(self, user_id: str) -> DesignAssignment:
        async with self._user_lock(user_id):
            assignment = await self.designs.get_assignment(user_id)
            updated = assignment.revert()
            await self.designs.save_assignment(updated)
        return updated

    # ------------------------------------------------------------------
    # scoring
    # ------------------------------------------------------------------

    def score(self, document: Any, job_text: str = "", design: Optional[Dict[str, Any]] = None) -> ScoreReport:
        """Standalone, read-only scoring."""
        return score_resume(document, job_text, config=self.config.scoring, design=design)

    def apply_suggestions(
        self,
        document: Dict[str, Any],
        suggestion_ids: List[str],
        job_text: str = "",
        old_score: Optional[int] = None,
        user_id: str = "anonymous",
    ) -> SuggestionApplication:
        """Apply suggestions by id and estimate the score with diminishing returns."""
        report = self.score(document, job_text)
        selected = []
        unknown: List[str] = []
        for suggestion_id in dict.fromkeys(suggestion_ids):
            suggestion = report.get_suggestion(suggestion_id)
            if suggestion is None:
                unknown.append(suggestion_id)
            else:
                selected.append(suggestion)
        if unknown:
            logger.warning(f"Unknown suggestion ids: {', '.join(unknown)}")

        updated, log = apply_suggestion_edits(ensure_document(document), selected)
        baseline = report.score if old_score is None else old_score
        aggregation = aggregate_gain([s.estimated_gain for s in selected], baseline, self.config.scoring)
        self._emit(
            "suggestions_applied",
            user_id,
            {"count": len(selected), "raw_gain": aggregation.raw_gain, "final_gain": aggregation.final_gain},
        )
        return SuggestionApplication(
            document=updated,
            score_delta=aggregation.new_score - aggregation.old_score,
            aggregation=aggregation,
            applied=[s.id for s in selected],
            unknown_ids=unknown,
            log=log,
        )

    # ------------------------------------------------------------------
    # language
    # ------------------------------------------------------------------

    async def _detect_language(self, document: Dict[str, Any], job_text: str, hint: Optional[str]) -> Dict[str, Any]:
        timeout = self.config.interpreter_timeout_seconds
        if hint:
            doc_lang = LanguageDetection(lang=hint, confidence=1.0, rtl=is_rtl(hint), source="hint")
        else:
            doc_lang = await resolve_language(extract_resume_text(document), self.completion, timeout_seconds=timeout)
        job_lang = await resolve_language(job_text or "", self.completion, timeout_seconds=timeout)
        return {"document": doc_lang.to_dict(), "job": job_lang.to_dict()}
