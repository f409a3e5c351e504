"""Resume Editor - command-driven resume editing, ATS scoring, and undo/redo history."""

from .agents import ClarificationNeeded, CommandInterpreter, ResolvedIntent
from .config import EditorConfig, ScoringConfig, load_editor_config
from .errors import (
    ConflictError,
    EditorError,
    ExternalServiceError,
    HistoryError,
    NoFutureVersion,
    NoHistoryError,
    NoPreviousVersion,
    PersistenceError,
    ToolExecutionError,
    ValidationError,
)
from .orchestrator import AgentResult, RunOptions, RunOrchestrator, SuggestionApplication

__version__ = "0.1.0"

__all__ = [
    "AgentResult",
    "ClarificationNeeded",
    "CommandInterpreter",
    "ConflictError",
    "EditorConfig",
    "EditorError",
    "ExternalServiceError",
    "HistoryError",
    "NoFutureVersion",
    "NoHistoryError",
    "NoPreviousVersion",
    "PersistenceError",
    "ResolvedIntent",
    "RunOptions",
    "RunOrchestrator",
    "ScoringConfig",
    "SuggestionApplication",
    "ToolExecutionError",
    "ValidationError",
    "load_editor_config",
]
