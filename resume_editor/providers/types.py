"""Provider-agnostic message and response types, and the provider protocol."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple


@dataclass
class Message:
    role: str  # "user" | "assistant"
    text: str

    @classmethod
    def user(cls, text: str) -> "Message":
        return cls(role="user", text=text)

    @classmethod
    def assistant(cls, text: str) -> "Message":
        return cls(role="assistant", text=text)


@dataclass
class GenerationConfig:
    """Settings for a single text completion."""

    system_prompt: str = ""
    max_tokens: int = 256
    temperature: Optional[float] = 0.0


@dataclass
class LLMResponse:
    """Normalized completion result. ``raw`` keeps the SDK object for debugging."""

    text: str = ""
    usage: Optional[Dict[str, int]] = None
    raw: Any = None


class ChatProvider(Protocol):
    """A chat backend that turns messages into one text completion."""

    async def generate(self, messages: List[Message], config: GenerationConfig) -> LLMResponse: ...


def read_usage(source: Any, fields: Sequence[Tuple[str, str]]) -> Optional[Dict[str, int]]:
    """Map SDK usage attributes onto ``{prompt,completion,total}_tokens``.

    *fields* pairs our key with the SDK attribute name, e.g.
    ``("prompt_tokens", "prompt_token_count")``.
    """
    if not source:
        return None
    return {key: int(getattr(source, attr, 0) or 0) for key, attr in fields}
