"""Completions through the google-genai SDK."""

from __future__ import annotations

import asyncio
from typing import List

from google import genai
from google.genai import types

from .types import GenerationConfig, LLMResponse, Message, read_usage

_USAGE_FIELDS = (
    ("prompt_tokens", "prompt_token_count"),
    ("completion_tokens", "candidates_token_count"),
    ("total_tokens", "total_token_count"),
)


class GeminiProvider:
    def __init__(self, api_key: str, model: str, api_base: str = "") -> None:
        # google-genai has no stable base-url option; api_base is accepted for a uniform signature.
        self.model = model
        self.client = genai.Client(api_key=api_key)

    async def generate(self, messages: List[Message], config: GenerationConfig) -> LLMResponse:
        contents = [
            types.Content(
                role="model" if m.role == "assistant" else "user",
                parts=[types.Part.from_text(text=m.text)],
            )
            for m in messages
        ]
        # Sync client, run off the event loop.
        response = await asyncio.to_thread(
            self.client.models.generate_content,
            model=self.model,
            contents=contents,
            config=types.GenerateContentConfig(
                system_instruction=config.system_prompt or None,
                max_output_tokens=config.max_tokens,
                temperature=config.temperature,
            ),
        )
        if not response.candidates:
            raise RuntimeError("Empty LLM response: no candidates")

        content = response.candidates[0].content
        texts = [part.text for part in (content.parts if content else None) or [] if part.text]
        return LLMResponse(
            text=" ".join(texts).strip(),
            usage=read_usage(getattr(response, "usage_metadata", None), _USAGE_FIELDS),
            raw=response,
        )
