from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Protocol

from openai import AsyncOpenAI

from mftgateway.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class GenerationParams:
    """Fixed sampling parameters sent with every completion call."""

    max_tokens: int = 1000
    temperature: float = 0.7
    presence_penalty: float = 0.1
    frequency_penalty: float = 0.1


DEFAULT_GENERATION_PARAMS = GenerationParams()


class CompletionBackend(Protocol):
    """Interface for pluggable completion providers.

    ``complete`` returns ``{"content": str | None, "usage": dict}`` and lets
    provider exceptions propagate; the orchestrator classifies them.
    """

    mode: str

    async def complete(self, messages: List[dict]) -> dict: ...

    async def close(self) -> None: ...


class OpenAIChatBackend:
    """Chat completions against the OpenAI API (or a compatible base URL)."""

    mode = "openai"

    def __init__(
        self,
        model: str,
        *,
        api_key: str,
        base_url: Optional[str] = None,
        timeout_seconds: float = 30.0,
        params: GenerationParams = DEFAULT_GENERATION_PARAMS,
        client: Optional[AsyncOpenAI] = None,
    ) -> None:
        self.model = model
        self.params = params
        # Retries stay off: a provider failure goes straight back to the caller.
        self.client = client or AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout_seconds,
            max_retries=0,
        )

    async def complete(self, messages: List[dict]) -> dict:
        completion = await self.client.chat.completions.create(
            model=self.model,
            messages=messages,
            max_tokens=self.params.max_tokens,
            temperature=self.params.temperature,
            presence_penalty=self.params.presence_penalty,
            frequency_penalty=self.params.frequency_penalty,
        )
        choices = getattr(completion, "choices", None) or []
        first_choice = next(iter(choices), None)
        if not first_choice:
            logger.warning("completion_no_choices", model=self.model)
            content = None
        else:
            content = first_choice.message.content
        usage = getattr(completion, "usage", None)
        return {
            "content": content,
            "usage": {
                "prompt_tokens": getattr(usage, "prompt_tokens", 0),
                "completion_tokens": getattr(usage, "completion_tokens", 0),
                "total_tokens": getattr(usage, "total_tokens", 0),
            },
        }

    async def close(self) -> None:
        await self.client.close()


class StubBackend:
    """Deterministic backend for local runs and tests; never calls out."""

    mode = "stub"
    STUB_RESPONSE = "This is a stub response from the teaching assistant."

    def __init__(self, response: Optional[str] = None) -> None:
        self.response = self.STUB_RESPONSE if response is None else response
        self.calls: List[List[dict]] = []

    async def complete(self, messages: List[dict]) -> dict:
        self.calls.append(messages)
        return {
            "content": self.response,
            "usage": {"prompt_tokens": 10, "completion_tokens": 10, "total_tokens": 20},
        }

    async def close(self) -> None:
        return None
