"""Resume editing tools: each validates its args and returns a patch, never mutating shared state."""

from typing import List, Optional

from ..config import ScoringConfig
from .ats_scorer import ATSScorerTool
from .base import BaseTool, FieldChange, ToolContext, ToolResult
from .color_customizer import ColorCustomizerTool
from .content_rewriter import ContentRewriterTool
from .design_recommender import DesignRecommenderTool
from .registry import ToolExecutor, ToolOutcome, ToolRegistry
from .skill_adder import SkillAdderTool
from .tip_applier import TipApplierTool


def default_tools(scoring_config: Optional[ScoringConfig] = None) -> List[BaseTool]:
    return [
        ATSScorerTool(scoring_config),
        ContentRewriterTool(),
        ColorCustomizerTool(),
        SkillAdderTool(),
        DesignRecommenderTool(),
        TipApplierTool(scoring_config),
    ]


def create_registry(scoring_config: Optional[ScoringConfig] = None) -> ToolRegistry:
    return ToolRegistry(default_tools(scoring_config))


__all__ = [
    "BaseTool",
    "FieldChange",
    "ToolContext",
    "ToolResult",
    "ATSScorerTool",
    "ColorCustomizerTool",
    "ContentRewriterTool",
    "DesignRecommenderTool",
    "SkillAdderTool",
    "TipApplierTool",
    "ToolExecutor",
    "ToolOutcome",
    "ToolRegistry",
    "default_tools",
    "create_registry",
]
