"""Tool registry and the executor that enforces validation and deadlines."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..errors import EditorError, ExternalServiceError, ToolExecutionError, ValidationError
from ..observability import RunObserver
from .base import BaseTool, ToolContext, ToolResult

logger = logging.getLogger(__name__)


class ToolRegistry:
    """Central registry of the tools a run may invoke.

    Example:
        registry = ToolRegistry()
        registry.register(SkillAdderTool())
        tool = registry.get("skill_adder")
    """

    def __init__(self, tools: Optional[List[BaseTool]] = None):
        self._tools: Dict[str, BaseTool] = {}
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: BaseTool) -> None:
        """Register a tool.

        Raises:
            ValueError: If a tool with the same name is already registered
        """
        if tool.name in self._tools:
            raise ValueError(f"Tool '{tool.name}' is already registered")
        self._tools[tool.name] = tool
        logger.debug(f"Registered tool '{tool.name}'")

    def unregister(self, name: str) -> Optional[BaseTool]:
        return self._tools.pop(name, None)

    def get(self, name: str) -> Optional[BaseTool]:
        return self._tools.get(name)

    def list_tools(self) -> List[str]:
        return list(self._tools)

    def schemas(self) -> List[Dict[str, Any]]:
        return [tool.to_schema() for tool in self._tools.values()]

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)


@dataclass
class ToolOutcome:
    """What happened when one tool ran. ``skipped`` marks a nonfatal external failure."""

    tool: str
    result: Optional[ToolResult] = None
    error: Optional[EditorError] = None
    duration_ms: float = 0.0
    skipped: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None and self.result is not None and self.result.success


class ToolExecutor:
    """Runs tools one at a time.

    External tools are bounded by the context deadline. A timeout or an
    ExternalServiceError skips the tool; nothing is retried, since the call
    may not be idempotent.
    """

    def __init__(self, registry: ToolRegistry, observer: Optional[RunObserver] = None):
        self.registry = registry
        self.observer = observer

    async def execute(
        self,
        tool_name: str,
        document: Dict[str, Any],
        args: Dict[str, Any],
        context: ToolContext,
        observer: Optional[RunObserver] = None,
    ) -> ToolOutcome:
        observer = observer or self.observer
        start_time = time.time()
        outcome = await self._run(tool_name, document, args, context)
        outcome.duration_ms = (time.time() - start_time) * 1000

        if outcome.error is not None:
            logger.warning(f"Tool {tool_name} failed ({outcome.error.code}): {outcome.error.message}")
        if observer:
            observer.log_tool_call(tool_name, args, outcome.duration_ms, outcome.ok, outcome.skipped)
        return outcome

    async def _run(
        self,
        tool_name: str,
        document: Dict[str, Any],
        args: Dict[str, Any],
        context: ToolContext,
    ) -> ToolOutcome:
        tool = self.registry.get(tool_name)
        if tool is None:
            return ToolOutcome(
                tool_name,
                error=ValidationError(f"Unknown tool: {tool_name}", details={"available": self.registry.list_tools()}),
            )

        try:
            tool.validate(args)
            if tool.external:
                result = await asyncio.wait_for(tool.execute(document, args, context), timeout=context.deadline_seconds)
            else:
                result = await tool.execute(document, args, context)
        except asyncio.TimeoutError:
            error = ExternalServiceError(
                f"{tool_name} timed out after {context.deadline_seconds}s",
                timed_out=True,
                details={"tool": tool_name},
            )
            return ToolOutcome(tool_name, error=error, skipped=True)
        except ExternalServiceError as e:
            return ToolOutcome(tool_name, error=e, skipped=True)
        except EditorError as e:
            return ToolOutcome(tool_name, error=e)
        except Exception as e:
            logger.exception(f"Unexpected error in tool {tool_name}")
            return ToolOutcome(tool_name, error=ToolExecutionError(str(e) or e.__class__.__name__, tool=tool_name))

        if not result.success:
            return ToolOutcome(
                tool_name,
                result=result,
                error=ToolExecutionError(result.error or f"{tool_name} reported failure", tool=tool_name),
            )
        return ToolOutcome(tool_name, result=result)
