"""Global pytest fixtures for deterministic test environment."""

from __future__ import annotations

import asyncio
import copy
from typing import Any, Dict, List, Optional

import pytest


@pytest.fixture(autouse=True)
def _isolate_runtime_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Clear provider keys that can leak into tests on developer machines."""
    for key in (
        "GEMINI_API_KEY",
        "OPENAI_API_KEY",
        "GLM_API_KEY",
        "KIMI_API_KEY",
        "DEEPSEEK_API_KEY",
        "MINIMAX_API_KEY",
    ):
        monkeypatch.delenv(key, raising=False)


SAMPLE_RESUME: Dict[str, Any] = {
    "contact": {
        "name": "Jane Smith",
        "email": "jane.smith@example.com",
        "phone": "(555) 123-4567",
        "location": "Austin, TX",
    },
    "summary": "Backend engineer with 7 years of experience building Python services and data platforms.",
    "skills": {
        "technical": ["Python", "PostgreSQL", "Docker"],
        "soft": ["Mentoring"],
    },
    "experience": [
        {
            "title": "Senior Software Engineer",
            "company": "Acme Corp",
            "startDate": "2021-01",
            "endDate": "Present",
            "achievements": [
                "Responsible for the billing API used by 2M customers",
                "Reduced p95 latency by 40% by redesigning PostgreSQL indexes",
            ],
        },
        {
            "title": "Software Engineer",
            "company": "StartupCo",
            "startDate": "2017-06",
            "endDate": "2020-12",
            "achievements": [
                "Built data pipelines processing $3M in monthly transactions",
                "Worked on the internal deployment tooling",
            ],
        },
    ],
    "education": [
        {"degree": "B.S. Computer Science", "institution": "State University", "graduationDate": "2017"},
    ],
}

SAMPLE_JOB = """Position: Senior Backend Engineer

We are looking for a senior backend engineer to scale our payments platform.

Requirements:
- Python
- Kubernetes
- PostgreSQL
- Terraform

Responsibilities:
- Design and build scalable APIs
- Mentor engineers on the team
"""


@pytest.fixture
def sample_resume() -> Dict[str, Any]:
    return copy.deepcopy(SAMPLE_RESUME)


@pytest.fixture
def job_text() -> str:
    return SAMPLE_JOB


class FakeCompletion:
    """Stands in for the LLM completion callable.

    Replies are returned in order (the last one repeats). An exception reply is
    raised instead of returned; ``delay`` makes every call sleep first.
    """

    def __init__(self, replies: Optional[List[Any]] = None, delay: float = 0.0):
        self.replies = list(replies or ["rewrite"])
        self.delay = delay
        self.calls: List[Dict[str, Any]] = []

    async def __call__(self, prompt: str, *, system_prompt: str = "", max_tokens: int = 256, temperature: float = 0.0) -> str:
        self.calls.append({
            "prompt": prompt,
            "system_prompt": system_prompt,
            "max_tokens": max_tokens,
            "temperature": temperature,
        })
        if self.delay:
            await asyncio.sleep(self.delay)
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, BaseException):
            raise reply
        return reply


@pytest.fixture
def fake_completion():
    """Factory: ``fake_completion(["design"], delay=0.1)``."""
    return FakeCompletion
