"""Error taxonomy for the resume editing core."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional


class EditorError(Exception):
    """Base class for all editor errors with a stable code."""

    code = "EDITOR_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
            }
        }


class ValidationError(EditorError):
    """Bad arguments. Always surfaced to the caller, never retried."""

    code = "VALIDATION_ERROR"


class ToolExecutionError(EditorError):
    """A tool failed while executing. Nonfatal unless raised by the mutation step."""

    code = "TOOL_EXECUTION_ERROR"

    def __init__(
        self,
        message: str,
        tool: str = "",
        fatal: bool = False,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, details)
        self.tool = tool
        self.fatal = fatal


class ExternalServiceError(EditorError):
    """LLM or other external call failed or timed out."""

    code = "EXTERNAL_SERVICE_ERROR"

    def __init__(
        self,
        message: str,
        service: str = "llm",
        timed_out: bool = False,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, details)
        self.service = service
        self.timed_out = timed_out


class HistoryError(EditorError):
    """The history cannot move in the requested direction."""

    code = "HISTORY_ERROR"


# Callers that do not care about direction catch this name.
NoHistoryError = HistoryError


class NoPreviousVersion(HistoryError):
    code = "NO_PREVIOUS_VERSION"

    def __init__(self, message: str = "No previous history entry to restore", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)


class NoFutureVersion(HistoryError):
    code = "NO_FUTURE_VERSION"

    def __init__(self, message: str = "No future history entry to restore", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)


class DesignHistoryError(HistoryError):
    code = "NO_PREVIOUS_CUSTOMIZATION"

    def __init__(self, message: str = "No previous customization to undo to", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)


class PersistenceError(EditorError):
    """Appending a version or history entry failed. Always fatal."""

    code = "PERSISTENCE_ERROR"


class ConflictError(EditorError):
    """The run's base version is no longer the user's current version."""

    code = "VERSION_CONFLICT"


@dataclass
class RunError:
    """Serializable error record attached to an AgentResult."""

    code: str
    message: str
    tool: Optional[str] = None
    intent_index: Optional[int] = None
    details: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_exception(
        cls,
        error: Exception,
        tool: Optional[str] = None,
        intent_index: Optional[int] = None,
    ) -> "RunError":
        if isinstance(error, EditorError):
            return cls(
                code=error.code,
                message=error.message,
                tool=tool or getattr(error, "tool", None) or None,
                intent_index=intent_index,
                details=dict(error.details),
            )
        return cls(
            code="INTERNAL_ERROR",
            message=str(error) or error.__class__.__name__,
            tool=tool,
            intent_index=intent_index,
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.tool:
            data["tool"] = self.tool
        if self.intent_index is not None:
            data["intent_index"] = self.intent_index
        if self.details:
            data["details"] = self.details
        return data
