"""Completions over any OpenAI-compatible chat endpoint (OpenAI, GLM, Kimi, DeepSeek, MiniMax)."""

from __future__ import annotations

import re
from typing import Any, Dict, List, Optional

from openai import AsyncOpenAI

from .types import GenerationConfig, LLMResponse, Message, read_usage

_USAGE_FIELDS = (
    ("prompt_tokens", "prompt_tokens"),
    ("completion_tokens", "completion_tokens"),
    ("total_tokens", "total_tokens"),
)

# e.g. "invalid temperature: only 0.6 is allowed for this model"
_FIXED_TEMPERATURE = re.compile(r"invalid temperature.*?only\s+([0-9]+(?:\.[0-9]+)?)\s+is allowed")


def fixed_temperature(error: Exception) -> Optional[float]:
    """The single temperature a model accepts, parsed from its rejection message."""
    match = _FIXED_TEMPERATURE.search(str(error).lower())
    return float(match.group(1)) if match else None


def _message_text(message: Any) -> str:
    content = getattr(message, "content", "") or ""
    if isinstance(content, list):
        content = "".join(
            part.get("text", "") if isinstance(part, dict) else str(getattr(part, "text", "") or "")
            for part in content
        )
    return str(content).strip()


class OpenAICompatibleProvider:
    def __init__(self, api_key: str, model: str, api_base: str = "") -> None:
        self.model = model
        self.api_base = api_base or ""
        self.client = AsyncOpenAI(api_key=api_key, base_url=api_base or None)
        # Set once a model has told us it only accepts one temperature.
        self.pinned_temperature: Optional[float] = None

    def _request(self, messages: List[Message], config: GenerationConfig) -> Dict[str, Any]:
        chat: List[Dict[str, str]] = []
        if config.system_prompt:
            chat.append({"role": "system", "content": config.system_prompt})
        chat.extend({"role": m.role if m.role == "assistant" else "user", "content": m.text} for m in messages)

        request: Dict[str, Any] = {"model": self.model, "messages": chat}
        if config.max_tokens and config.max_tokens > 0:
            request["max_tokens"] = config.max_tokens
        temperature = config.temperature if self.pinned_temperature is None else self.pinned_temperature
        if temperature is not None:
            request["temperature"] = temperature
        return request

    async def generate(self, messages: List[Message], config: GenerationConfig) -> LLMResponse:
        request = self._request(messages, config)
        try:
            completion = await self.client.chat.completions.create(**request)
        except Exception as e:
            allowed = fixed_temperature(e)
            if allowed is None or request.get("temperature") == allowed:
                raise
            self.pinned_temperature = allowed
            completion = await self.client.chat.completions.create(**{**request, "temperature": allowed})

        if not completion.choices:
            raise RuntimeError("Empty LLM response: no choices")
        return LLMResponse(
            text=_message_text(completion.choices[0].message),
            usage=read_usage(getattr(completion, "usage", None), _USAGE_FIELDS),
            raw=completion,
        )
