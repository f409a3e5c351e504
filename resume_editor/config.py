"""Configuration loading and validation for the resume editor."""

from __future__ import annotations

import math
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

# ---------------------------------------------------------------------------
# Scoring defaults
# ---------------------------------------------------------------------------

SUBSCORE_KEYS = (
    "keyword_exact",
    "keyword_phrase",
    "semantic_relevance",
    "title_alignment",
    "metrics_presence",
    "section_completeness",
    "format_parseability",
    "recency_fit",
)

DEFAULT_WEIGHTS: Dict[str, float] = {
    "keyword_exact": 0.22,
    "keyword_phrase": 0.12,
    "semantic_relevance": 0.16,
    "title_alignment": 0.10,
    "metrics_presence": 0.10,
    "section_completeness": 0.08,
    "format_parseability": 0.14,
    "recency_fit": 0.08,
}

# Bump whenever weights or analyzer logic change so before/after deltas stay comparable.
SCORING_VERSION = "ats-v2.1"


@dataclass
class ScoringConfig:
    """Weights and thresholds for the scoring engine."""

    weights: Dict[str, float] = field(default_factory=lambda: dict(DEFAULT_WEIGHTS))
    version: str = SCORING_VERSION
    urgent_threshold: int = 50
    weak_threshold: int = 70
    min_gain: int = 3
    max_suggestions: int = 10
    suggestions_per_subscore: int = 3
    # Diminishing returns: factor = base_factor + decay_factor / sqrt(n)
    base_factor: float = 0.6
    decay_factor: float = 0.4
    max_total_gain: int = 25
    low_confidence_threshold: float = 0.5


@dataclass
class LLMConfig:
    """Configuration for the injected completion service."""

    api_key: str = ""
    provider: str = "gemini"
    model: str = "gemini-2.0-flash"
    max_tokens: int = 256
    temperature: float = 0.0
    api_base: str = ""
    timeout_seconds: float = 10.0


@dataclass
class EditorConfig:
    """Top-level runtime configuration."""

    llm: Optional[LLMConfig] = None
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    tool_timeout_seconds: float = 10.0
    interpreter_timeout_seconds: float = 5.0
    clarification_threshold: float = 0.5
    telemetry_enabled: bool = False
    history_db_path: Optional[str] = None


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def load_raw_config(config_path: str = "config/config.local.yaml") -> dict:
    """Load raw configuration dictionary from YAML file.

    Priority order:
    1. config.local.yaml (user's local config with secrets)
    2. config.yaml (template/defaults)
    """
    import yaml

    repo_root = Path(__file__).resolve().parents[1]

    def _resolve(candidate: str) -> Path:
        path = Path(candidate)
        if path.exists():
            return path
        alt = repo_root / candidate
        if alt.exists():
            return alt
        return path

    def _load_yaml(path: Path) -> dict:
        if not path.exists():
            return {}
        with open(path) as f:
            data = yaml.safe_load(f) or {}
            if not isinstance(data, dict):
                raise ValueError(f"Config file must be a mapping: {path}")
            return data

    target = _resolve(config_path)

    if Path(config_path).name == "config.local.yaml":
        base = _load_yaml(_resolve("config/config.yaml"))
        local = _load_yaml(target)
        merged = _deep_merge(base, local)
        if not merged:
            raise FileNotFoundError(f"Config file not found: {config_path} (also missing fallback config/config.yaml)")
        return merged

    data = _load_yaml(target)
    if not data:
        raise FileNotFoundError(f"Config file not found: {config_path}")
    return data


def _deep_merge(base: dict, override: dict) -> dict:
    merged = dict(base)
    for key, value in override.items():
        base_value = merged.get(key)
        if isinstance(base_value, dict) and isinstance(value, dict):
            merged[key] = _deep_merge(base_value, value)
        else:
            merged[key] = value
    return merged


def build_editor_config(data: Dict[str, Any]) -> EditorConfig:
    """Build an EditorConfig from an already-loaded mapping."""
    llm_data = data.get("llm") or {}
    llm: Optional[LLMConfig] = None
    if llm_data.get("enabled", True) and llm_data:
        llm = LLMConfig(
            api_key=llm_data.get("api_key", ""),
            provider=llm_data.get("provider", "gemini"),
            model=llm_data.get("model", "gemini-2.0-flash"),
            max_tokens=llm_data.get("max_tokens", 256),
            temperature=llm_data.get("temperature", 0.0),
            api_base=llm_data.get("api_base", ""),
            timeout_seconds=llm_data.get("timeout_seconds", 10.0),
        )

    scoring_data = data.get("scoring") or {}
    weights = dict(DEFAULT_WEIGHTS)
    weights.update(scoring_data.get("weights") or {})
    suggestions = scoring_data.get("suggestions") or {}
    aggregation = scoring_data.get("aggregation") or {}
    scoring = ScoringConfig(
        weights=weights,
        version=scoring_data.get("version", SCORING_VERSION),
        urgent_threshold=suggestions.get("urgent_threshold", 50),
        weak_threshold=suggestions.get("weak_threshold", 70),
        min_gain=suggestions.get("min_gain", 3),
        max_suggestions=suggestions.get("max_suggestions", 10),
        suggestions_per_subscore=suggestions.get("per_subscore", 3),
        base_factor=aggregation.get("base_factor", 0.6),
        decay_factor=aggregation.get("decay_factor", 0.4),
        max_total_gain=aggregation.get("max_total_gain", 25),
        low_confidence_threshold=scoring_data.get("low_confidence_threshold", 0.5),
    )

    timeouts = data.get("timeouts") or {}
    telemetry = data.get("telemetry") or {}
    history = data.get("history") or {}
    return EditorConfig(
        llm=llm,
        scoring=scoring,
        tool_timeout_seconds=timeouts.get("tool_seconds", 10.0),
        interpreter_timeout_seconds=timeouts.get("interpreter_seconds", 5.0),
        clarification_threshold=data.get("clarification_threshold", 0.5),
        telemetry_enabled=bool(telemetry.get("enabled", False)),
        history_db_path=history.get("db_path"),
    )


def load_editor_config(config_path: str = "config/config.local.yaml") -> EditorConfig:
    """Load editor configuration from YAML file."""
    return build_editor_config(load_raw_config(config_path))


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class Severity(Enum):
    ERROR = "error"
    WARNING = "warning"


@dataclass
class ConfigIssue:
    """A single configuration issue."""
    field: str
    message: str
    severity: Severity


def validate_config(raw_config: Dict[str, Any]) -> List[ConfigIssue]:
    """Validate raw configuration and return a list of issues.

    Args:
        raw_config: Raw config dict from YAML

    Returns:
        List of ConfigIssue (empty = valid)
    """
    issues: List[ConfigIssue] = []

    # --- Scoring weights ---
    scoring = raw_config.get("scoring") or {}
    weights = dict(DEFAULT_WEIGHTS)
    weights.update(scoring.get("weights") or {})
    unknown = sorted(set(weights) - set(SUBSCORE_KEYS))
    if unknown:
        issues.append(ConfigIssue(
            field="scoring.weights",
            message=f"Unknown subscore weights: {', '.join(unknown)}",
            severity=Severity.ERROR,
        ))
    bad_values = [k for k, v in weights.items() if not isinstance(v, (int, float)) or v < 0]
    if bad_values:
        issues.append(ConfigIssue(
            field="scoring.weights",
            message=f"Weights must be non-negative numbers: {', '.join(sorted(bad_values))}",
            severity=Severity.ERROR,
        ))
    elif not math.isclose(sum(weights[k] for k in SUBSCORE_KEYS if k in weights), 1.0, abs_tol=1e-6):
        issues.append(ConfigIssue(
            field="scoring.weights",
            message=f"Weights must sum to 1.0, got {sum(weights.values()):.4f}",
            severity=Severity.ERROR,
        ))

    aggregation = scoring.get("aggregation") or {}
    base_factor = aggregation.get("base_factor", 0.6)
    decay_factor = aggregation.get("decay_factor", 0.4)
    if isinstance(base_factor, (int, float)) and isinstance(decay_factor, (int, float)):
        if not math.isclose(base_factor + decay_factor, 1.0, abs_tol=1e-6):
            issues.append(ConfigIssue(
                field="scoring.aggregation",
                message="base_factor + decay_factor should equal 1.0 so a single suggestion keeps its full gain",
                severity=Severity.WARNING,
            ))
    else:
        issues.append(ConfigIssue(
            field="scoring.aggregation",
            message="base_factor and decay_factor must be numbers",
            severity=Severity.ERROR,
        ))

    # --- Clarification threshold ---
    threshold = raw_config.get("clarification_threshold", 0.5)
    if not isinstance(threshold, (int, float)) or threshold < 0 or threshold > 1:
        issues.append(ConfigIssue(
            field="clarification_threshold",
            message=f"clarification_threshold must be between 0 and 1, got {threshold}",
            severity=Severity.ERROR,
        ))

    # --- Timeouts ---
    for key, value in (raw_config.get("timeouts") or {}).items():
        if not isinstance(value, (int, float)) or value <= 0:
            issues.append(ConfigIssue(
                field=f"timeouts.{key}",
                message=f"timeout must be a positive number, got {value}",
                severity=Severity.ERROR,
            ))

    # --- LLM ---
    llm = raw_config.get("llm") or {}
    if llm and llm.get("enabled", True):
        temperature = llm.get("temperature", 0.0)
        if not isinstance(temperature, (int, float)) or temperature < 0 or temperature > 2:
            issues.append(ConfigIssue(
                field="llm.temperature",
                message=f"temperature must be a number between 0 and 2, got {temperature}",
                severity=Severity.ERROR,
            ))
        if not _resolve_api_key_value(llm.get("api_key", "")):
            issues.append(ConfigIssue(
                field="llm.api_key",
                message="LLM api_key not set; commands that need classification will ask for clarification",
                severity=Severity.WARNING,
            ))

    # --- History DB ---
    db_path = (raw_config.get("history") or {}).get("db_path")
    if db_path and not Path(db_path).parent.exists():
        issues.append(ConfigIssue(
            field="history.db_path",
            message=f"History database directory does not exist: {Path(db_path).parent}",
            severity=Severity.WARNING,
        ))

    return issues


def _resolve_api_key_value(config_api_key: str) -> str:
    """Resolve API key from a literal or ${VAR} placeholder without side effects."""
    if not config_api_key:
        return ""
    if not config_api_key.startswith("${"):
        return config_api_key
    if config_api_key.endswith("}"):
        return os.environ.get(config_api_key[2:-1], "")
    return ""


def has_errors(issues: List[ConfigIssue]) -> bool:
    """Check if any issues are errors (not just warnings)."""
    return any(e.severity == Severity.ERROR for e in issues)
