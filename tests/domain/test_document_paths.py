"""Tests for field paths and copy-on-write document mutation."""

import pytest

from resume_editor.domain.document import (
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
from resume_editor.errors import ValidationError


class TestParseFieldPath:
    def test_dotted_and_indexed(self):
        assert parse_field_path("experience[0].achievements[2]") == ("experience", 0, "achievements", 2)

    def test_latest_alias(self):
        assert parse_field_path("experience[latest].title") == ("experience", 0, "title")

    def test_empty_path_rejected(self):
        with pytest.raises(ValidationError, match="Field path cannot be empty"):
            parse_field_path("  ")

    def test_negative_index_rejected(self):
        with pytest.raises(ValidationError, match="Invalid array index"):
            parse_field_path("experience[-1].title")


class TestMutation:
    def test_set_does_not_mutate_original(self, sample_resume):
        updated = set_field_value(sample_resume, "summary", "New summary")
        assert updated["summary"] == "New summary"
        assert sample_resume["summary"] != "New summary"

    def test_set_nested_index(self, sample_resume):
        updated = set_field_value(sample_resume, "experience[1].achievements[0]", "Shipped X")
        assert get_field_value(updated, "experience[1].achievements[0]") == "Shipped X"
        assert get_field_value(sample_resume, "experience[1].achievements[0]").startswith("Built")

    def test_set_out_of_range_index(self, sample_resume):
        with pytest.raises(ValidationError, match="Invalid array index"):
            set_field_value(sample_resume, "experience[5].title", "CTO")

    def test_remove_missing_path_is_noop(self, sample_resume):
        assert remove_field_value(sample_resume, "certifications[0]") == sample_resume

    def test_append_unique_is_case_insensitive(self, sample_resume):
        updated = append_unique(sample_resume, "skills.technical", ["python", "Go", "go", "DOCKER"])
        assert updated["skills"]["technical"] == ["Python", "PostgreSQL", "Docker", "Go"]

    def test_append_to_non_array(self, sample_resume):
        with pytest.raises(ValidationError, match="Cannot append to non-array field"):
            append_unique(sample_resume, "summary", ["x"])

    def test_replace_is_idempotent(self, sample_resume):
        once = apply_operation(sample_resume, "summary", "replace", "Same text")
        twice = apply_operation(once, "summary", "replace", "Same text")
        assert once == twice

    def test_prefix_and_suffix_are_idempotent(self, sample_resume):
        once = apply_operation(sample_resume, "summary", "prefix", "Senior ")
        assert apply_operation(once, "summary", "prefix", "Senior ") == once
        once = apply_operation(sample_resume, "summary", "suffix", " Open to relocation.")
        assert apply_operation(once, "summary", "suffix", " Open to relocation.") == once

    def test_insert_skips_duplicates(self, sample_resume):
        updated = apply_operation(sample_resume, "skills.technical[0]", "insert", "Go")
        assert updated["skills"]["technical"][0] == "Go"
        assert apply_operation(updated, "skills.technical[0]", "insert", "go") == updated

    def test_unknown_operation(self, sample_resume):
        with pytest.raises(ValidationError, match="Unknown operation"):
            apply_operation(sample_resume, "summary", "rotate", "x")


class TestDocumentShape:
    def test_ensure_document_fills_defaults(self):
        document = ensure_document({"summary": "Hi"})
        assert document["skills"] == {"technical": [], "soft": []}
        assert document["experience"] == []
        assert document["summary"] == "Hi"

    def test_validate_document_accepts_sample(self, sample_resume):
        validate_document(sample_resume)

    def test_validate_document_rejects_bad_skills(self, sample_resume):
        sample_resume["skills"] = "Python, Go"
        with pytest.raises(ValidationError):
            validate_document(sample_resume)


class TestSelectors:
    def test_expand_wildcards(self, sample_resume):
        paths = expand_selector(sample_resume, "$.experience[*].achievements[*]")
        assert paths == [
            "experience[0].achievements[0]",
            "experience[0].achievements[1]",
            "experience[1].achievements[0]",
            "experience[1].achievements[1]",
        ]

    def test_plain_path_must_exist(self, sample_resume):
        assert expand_selector(sample_resume, "summary") == ["summary"]
        assert expand_selector(sample_resume, "experience[9].title") == []

    def test_invalid_selector(self, sample_resume):
        with pytest.raises(ValidationError, match="Invalid selector"):
            expand_selector(sample_resume, "$.experience[")
