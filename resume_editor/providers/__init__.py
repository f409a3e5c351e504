"""Provider factory and the completion callable used by the editor core."""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Awaitable, Dict, Optional, Protocol

from ..config import LLMConfig
from ..errors import ExternalServiceError
from .types import ChatProvider, GenerationConfig, LLMResponse, Message

logger = logging.getLogger(__name__)

PROVIDER_DEFAULTS: Dict[str, Dict[str, str]] = {
    "gemini": {"api_base": "", "env_key": "GEMINI_API_KEY"},
    "openai": {"api_base": "", "env_key": "OPENAI_API_KEY"},
    "glm": {"api_base": "https://open.bigmodel.cn/api/paas/v4", "env_key": "GLM_API_KEY"},
    "kimi": {"api_base": "https://api.moonshot.cn/v1", "env_key": "KIMI_API_KEY"},
    "deepseek": {"api_base": "https://api.deepseek.com", "env_key": "DEEPSEEK_API_KEY"},
    "minimax": {"api_base": "https://api.minimax.chat/v1", "env_key": "MINIMAX_API_KEY"},
}


class CompletionFn(Protocol):
    """Injected language-model completion. May be slow; may fail."""

    def __call__(
        self,
        prompt: str,
        *,
        system_prompt: str = "",
        max_tokens: int = 256,
        temperature: float = 0.0,
    ) -> Awaitable[str]: ...


def create_provider(provider: str, api_key: str, model: str, api_base: str = "") -> ChatProvider:
    provider_name = (provider or "gemini").lower()
    api_key = _resolve_api_key(provider_name, api_key)

    if provider_name == "gemini":
        from .gemini import GeminiProvider

        return GeminiProvider(api_key=api_key, model=model, api_base=api_base)

    from .openai_compat import OpenAICompatibleProvider

    defaults = PROVIDER_DEFAULTS.get(provider_name, {})
    base = api_base or defaults.get("api_base", "")
    return OpenAICompatibleProvider(api_key=api_key, model=model, api_base=base)


def _resolve_api_key(provider: str, api_key: str) -> str:
    defaults = PROVIDER_DEFAULTS.get(provider, {})
    env_key = defaults.get("env_key", "")

    if env_key:
        env_value = os.environ.get(env_key, "")
        if env_value:
            return env_value

    if api_key and not api_key.startswith("${"):
        return api_key

    if api_key.startswith("${") and api_key.endswith("}"):
        resolved = os.environ.get(api_key[2:-1], "")
        if resolved:
            return resolved

    if env_key:
        raise ValueError(f"{env_key} not set. Please set the env var or add llm.api_key to config/config.local.yaml")

    raise ValueError("API key not set. Please set the env var or add llm.api_key to config/config.local.yaml")


class LLMCompletion:
    """Adapts a ChatProvider to the CompletionFn callable with a hard timeout.

    Timeouts and provider failures surface as ExternalServiceError. Calls are
    never retried here; the caller decides whether a failure is fatal.
    """

    def __init__(self, provider: ChatProvider, timeout_seconds: float = 10.0, name: str = "llm") -> None:
        self.provider = provider
        self.timeout_seconds = timeout_seconds
        self.name = name
        self.last_usage: Optional[Dict[str, int]] = None

    @classmethod
    def from_config(cls, config: LLMConfig) -> "LLMCompletion":
        provider = create_provider(
            provider=config.provider,
            api_key=config.api_key,
            model=config.model,
            api_base=config.api_base,
        )
        return cls(provider, timeout_seconds=config.timeout_seconds, name=f"{config.provider}:{config.model}")

    async def __call__(
        self,
        prompt: str,
        *,
        system_prompt: str = "",
        max_tokens: int = 256,
        temperature: float = 0.0,
    ) -> str:
        config = GenerationConfig(system_prompt=system_prompt, max_tokens=max_tokens, temperature=temperature)
        try:
            response: LLMResponse = await asyncio.wait_for(
                self.provider.generate([Message.user(prompt)], config),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            logger.warning(f"{self.name} timed out after {self.timeout_seconds}s")
            raise ExternalServiceError(
                f"LLM call timed out after {self.timeout_seconds}s", service=self.name, timed_out=True
            ) from e
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"{self.name} failed: {e}")
            raise ExternalServiceError(f"LLM call failed: {e}", service=self.name) from e

        self.last_usage = response.usage
        return response.text


__all__ = [
    "ChatProvider",
    "CompletionFn",
    "GenerationConfig",
    "LLMCompletion",
    "LLMResponse",
    "Message",
    "PROVIDER_DEFAULTS",
    "create_provider",
]
