"""Tests for job description extraction."""

from resume_editor.domain.job_extraction import (
    JobExtraction,
    detect_seniority,
    extract_job_data,
    extraction_completeness,
)


class TestExtractJobData:
    def test_sectioned_description(self, job_text):
        job = extract_job_data(job_text)
        assert job.title == "Senior Backend Engineer"
        assert job.must_have == ["Python", "Kubernetes", "PostgreSQL", "Terraform"]
        assert job.responsibilities == ["Design and build scalable APIs", "Mentor engineers on the team"]
        assert job.seniority == "senior"
        assert job.nice_to_have == []

    def test_inline_requirements(self):
        job = extract_job_data("Data Analyst\n\nRequired: SQL, Tableau and Excel.\nNice to have: dbt")
        assert job.title == "Data Analyst"
        assert job.must_have == ["SQL", "Tableau", "Excel"]
        assert job.nice_to_have == ["dbt"]

    def test_existing_fields_win(self, job_text):
        job = extract_job_data(job_text, existing={"title": "Platform Engineer", "must_have": ["Go"]})
        assert job.title == "Platform Engineer"
        assert job.must_have == ["Go"]

    def test_unstructured_text_falls_back_to_keywords(self):
        job = extract_job_data("We need someone comfortable with kafka streaming pipelines")
        assert "kafka" in [k.lower() for k in job.must_have]

    def test_round_trip_dict(self, job_text):
        job = extract_job_data(job_text)
        assert JobExtraction.from_dict(job.to_dict()) == job


class TestCompleteness:
    def test_complete(self, job_text):
        assert extraction_completeness(extract_job_data(job_text)) == {
            "is_complete": True,
            "completeness": 1.0,
            "missing_fields": [],
        }

    def test_partial(self):
        result = extraction_completeness(JobExtraction(must_have=["Go"]))
        assert result["missing_fields"] == ["title", "responsibilities"]


class TestSeniority:
    def test_levels(self):
        assert detect_seniority("Director of Engineering") == "executive"
        assert detect_seniority("Staff Engineer") == "senior"
        assert detect_seniority("Junior developer") == "entry"
        assert detect_seniority("Backend developer") == "mid"
