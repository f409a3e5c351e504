"""Run logging, event collection, and fire-and-forget telemetry."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set

from typing_extensions import Protocol, runtime_checkable

logger = logging.getLogger(__name__)

LOGGER_NAME = "resume_editor"


def setup_logging(verbose: bool = False) -> logging.Logger:
    """Configure the package logger once and return it."""
    root = logging.getLogger(LOGGER_NAME)
    if not root.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s", datefmt="%Y-%m-%d %H:%M:%S"
        )
        handler.setFormatter(formatter)
        root.addHandler(handler)
    root.setLevel(logging.INFO if verbose else logging.WARNING)
    return root


# ---------------------------------------------------------------------------
# Run events
# ---------------------------------------------------------------------------


@dataclass
class RunEvent:
    """A single event in one orchestrated run."""

    timestamp: datetime
    event_type: str  # "intent", "tool_call", "error", "commit"
    data: Dict[str, Any]
    duration_ms: Optional[float] = None


class RunObserver:
    """
    Collects events for a single run and mirrors them to the log.

    The observer is per-run; it holds no state shared between users.
    """

    def __init__(self, run_id: str, user_id: str):
        self.run_id = run_id
        self.user_id = user_id
        self.events: List[RunEvent] = []
        self.logger = logging.getLogger(f"{LOGGER_NAME}.run")

    def _record(self, event_type: str, data: Dict[str, Any], duration_ms: Optional[float] = None) -> RunEvent:
        event = RunEvent(
            timestamp=datetime.now(timezone.utc),
            event_type=event_type,
            data=data,
            duration_ms=duration_ms,
        )
        self.events.append(event)
        return event

    def log_intent(self, index: int, tool: str, confidence: float, source: str) -> None:
        self._record("intent", {"index": index, "tool": tool, "confidence": confidence, "source": source})
        self.logger.info(f"[{self.run_id}] intent #{index}: {tool} ({source}, confidence={confidence:.2f})")

    def log_tool_call(
        self,
        tool_name: str,
        args: Dict[str, Any],
        duration_ms: float,
        success: bool = True,
        skipped: bool = False,
    ) -> None:
        """
        Log a tool execution.

        Args:
            tool_name: Name of the tool executed
            args: Arguments passed to the tool
            duration_ms: Execution time in milliseconds
            success: Whether execution succeeded
            skipped: Whether the tool was skipped after a timeout
        """
        self._record(
            "tool_call",
            {"tool": tool_name, "args": args, "success": success, "skipped": skipped},
            duration_ms=duration_ms,
        )
        status = "ok" if success else ("skipped" if skipped else "failed")
        self.logger.info(f"[{self.run_id}] tool {tool_name} {status} ({duration_ms:.2f}ms)")

    def log_error(self, code: str, message: str, fatal: bool, context: Optional[Dict[str, Any]] = None) -> None:
        self._record("error", {"code": code, "message": message, "fatal": fatal, "context": context or {}})
        if fatal:
            self.logger.error(f"[{self.run_id}] fatal {code}: {message}")
        else:
            self.logger.warning(f"[{self.run_id}] nonfatal {code}: {message}")

    def log_commit(self, version_id: str, entry_id: str) -> None:
        self._record("commit", {"version_id": version_id, "history_entry_id": entry_id})
        self.logger.info(f"[{self.run_id}] committed version {version_id} (history {entry_id})")

    def summary(self) -> Dict[str, Any]:
        tool_calls = [e for e in self.events if e.event_type == "tool_call"]
        errors = [e for e in self.events if e.event_type == "error"]
        return {
            "run_id": self.run_id,
            "event_count": len(self.events),
            "tool_calls": len(tool_calls),
            "errors": len(errors),
            "total_tool_ms": sum(e.duration_ms or 0 for e in tool_calls),
        }


# ---------------------------------------------------------------------------
# Telemetry
# ---------------------------------------------------------------------------


@dataclass
class TelemetryEvent:
    name: str
    user_id: str
    payload: Dict[str, Any] = field(default_factory=dict)
    context: Dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class TelemetrySink(Protocol):
    """Destination for telemetry events. Failures must never reach the caller."""

    async def record(self, event: TelemetryEvent) -> None: ...


class NullTelemetrySink:
    """Drops every event."""

    async def record(self, event: TelemetryEvent) -> None:
        return None


class LoggingTelemetrySink:
    """Writes events to the telemetry logger."""

    def __init__(self, namespace: str = "resume_editor") -> None:
        self.namespace = namespace
        self.logger = logging.getLogger(f"{LOGGER_NAME}.telemetry")

    async def record(self, event: TelemetryEvent) -> None:
        self.logger.info(
            f"{self.namespace}.{event.name} user={event.user_id} payload={event.payload} context={event.context}"
        )


# Strong references so pending telemetry tasks are not garbage collected mid-flight.
_pending: Set[asyncio.Task] = set()


def emit_telemetry(sink: Optional[TelemetrySink], event: TelemetryEvent) -> Optional[asyncio.Task]:
    """Schedule ``sink.record(event)`` without awaiting it.

    Called outside an event loop (the synchronous scoring helpers), the event
    is delivered inline and None is returned.
    """
    if sink is None:
        return None

    async def _send() -> None:
        try:
            await sink.record(event)
        except Exception as e:
            logger.warning(f"Telemetry sink failed for {event.name}: {e}")

    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        asyncio.run(_send())
        return None
    task = loop.create_task(_send())
    _pending.add(task)
    task.add_done_callback(_pending.discard)
    return task


async def drain_telemetry() -> None:
    """Wait for in-flight telemetry tasks. Used at shutdown and in tests."""
    if _pending:
        await asyncio.gather(*list(_pending), return_exceptions=True)
