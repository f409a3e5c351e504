"""Pure document, scoring, and design logic. Nothing in this package performs I/O."""

from .diff import DiffEntry, compute_diff, summarize_diff
from .document import (
    ResumeSchema,
    append_unique,
    apply_operation,
    ensure_document,
    expand_selector,
    get_field_value,
    parse_field_path,
    remove_field_value,
    set_field_value,
    validate_document,
)
from .job_extraction import JobExtraction, extract_job_data, extraction_completeness
from .language import LanguageDetection, detect_language
from .scoring import ScoreReport, score_resume
from .suggestions import GainAggregation, Suggestion, aggregate_gain, apply_suggestion_edits

__all__ = [
    "DiffEntry",
    "compute_diff",
    "summarize_diff",
    "ResumeSchema",
    "append_unique",
    "apply_operation",
    "ensure_document",
    "expand_selector",
    "get_field_value",
    "parse_field_path",
    "remove_field_value",
    "set_field_value",
    "validate_document",
    "JobExtraction",
    "extract_job_data",
    "extraction_completeness",
    "LanguageDetection",
    "detect_language",
    "ScoreReport",
    "score_resume",
    "GainAggregation",
    "Suggestion",
    "aggregate_gain",
    "apply_suggestion_edits",
]
