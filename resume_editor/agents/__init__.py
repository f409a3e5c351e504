"""Command interpretation: free text to ordered intents."""

from .intents import (
    HISTORY_REDO,
    HISTORY_UNDO,
    INTENT_KINDS,
    INTENT_TOOLS,
    ClarificationNeeded,
    Intent,
    ResolvedIntent,
)
from .interpreter import CommandInterpreter, match_rules, needs_clarification, split_commands

__all__ = [
    "HISTORY_REDO",
    "HISTORY_UNDO",
    "INTENT_KINDS",
    "INTENT_TOOLS",
    "ClarificationNeeded",
    "CommandInterpreter",
    "Intent",
    "ResolvedIntent",
    "match_rules",
    "needs_clarification",
    "split_commands",
]
