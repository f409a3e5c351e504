"""Tests for the heuristic template recommender."""

from datetime import date

from resume_editor.domain.design import (
    DEFAULT_TEMPLATE,
    TEMPLATES,
    build_recommendation_prompt,
    calculate_experience_years,
    extract_industry_keywords,
    parse_recommendation_response,
    recommend_design,
)

TODAY = date(2024, 6, 1)


class TestRecommendDesign:
    def test_technical_role(self, sample_resume, job_text):
        recommendation = recommend_design(sample_resume, job_text, today=TODAY)
        assert recommendation.template_id == "minimal-ssr"
        assert recommendation.confidence == 0.7
        assert "7 years" in recommendation.reasoning
        assert "timeline-ssr" in recommendation.alternatives

    def test_creative_junior_role(self):
        recommendation = recommend_design({"experience": []}, "Marketing designer for our brand team", today=TODAY)
        assert recommendation.template_id == "card-ssr"

    def test_format_risk_forces_minimal(self, sample_resume):
        recommendation = recommend_design(sample_resume, "Creative brand designer", {"format_parseability": 40})
        assert recommendation.template_id == DEFAULT_TEMPLATE
        assert recommendation.confidence == 0.9
        assert recommendation.alternatives == []

    def test_recommendation_is_a_known_template(self, sample_resume):
        assert recommend_design(sample_resume, "", today=TODAY).template_id in TEMPLATES


class TestHelpers:
    def test_experience_years(self):
        experience = [{"startDate": "2015-01", "endDate": "2020-01"}, {"startDate": "2020-01", "endDate": "Present"}]
        assert calculate_experience_years(experience, today=date(2022, 1, 1)) == 7

    def test_industry_keywords(self):
        assert extract_industry_keywords("Software engineer in investment banking") == ["technical", "finance"]

    def test_prompt_mentions_catalog(self, sample_resume, job_text):
        prompt = build_recommendation_prompt(sample_resume, job_text)
        assert all(template_id in prompt for template_id in TEMPLATES)
        assert "Python" in prompt


class TestParseRecommendationResponse:
    def test_json_inside_prose(self):
        reply = 'Here you go: {"template_id": "sidebar-ssr", "reasoning": "Senior leader.", "confidence": 0.8}'
        recommendation = parse_recommendation_response(reply)
        assert recommendation.template_id == "sidebar-ssr"
        assert recommendation.source == "llm"
        assert recommendation.confidence == 0.8

    def test_unknown_template(self):
        assert parse_recommendation_response('{"template_id": "neon", "reasoning": "x"}') is None

    def test_not_json(self):
        assert parse_recommendation_response("I recommend the minimal one") is None
