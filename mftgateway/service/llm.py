from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Optional

import openai

from mftgateway.api.schemas import ChatRequest
from mftgateway.config import ModelBackend, Settings
from mftgateway.logging import get_logger
from mftgateway.service.errors import (
    ConfigurationError,
    UpstreamErrorKind,
)
from mftgateway.service.model_backend import (
    CompletionBackend,
    OpenAIChatBackend,
    StubBackend,
)
from mftgateway.service.prompts import build_system_prompt, shape_history

logger = get_logger(__name__)

# Provider HTTP status -> failure kind. Anything unlisted is GENERATION_FAILED.
PROVIDER_STATUS_TO_KIND: dict[int, UpstreamErrorKind] = {
    401: UpstreamErrorKind.UPSTREAM_AUTH_FAILURE,
    402: UpstreamErrorKind.QUOTA_EXHAUSTED,
    429: UpstreamErrorKind.RATE_LIMITED,
}

# OpenAI reports exhausted credit as a 429 with this error code
_QUOTA_ERROR_CODES = frozenset({"insufficient_quota", "billing_hard_limit_reached"})


@dataclass(frozen=True)
class CompletionResult:
    message: str = ""
    error: Optional[UpstreamErrorKind] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def classify_provider_error(exc: Exception) -> UpstreamErrorKind:
    status = getattr(exc, "status_code", None)
    if status == 429 and getattr(exc, "code", None) in _QUOTA_ERROR_CODES:
        return UpstreamErrorKind.QUOTA_EXHAUSTED
    if isinstance(status, int):
        return PROVIDER_STATUS_TO_KIND.get(status, UpstreamErrorKind.GENERATION_FAILED)
    return UpstreamErrorKind.GENERATION_FAILED


class CompletionOrchestrator:
    """Turns a validated chat request into one completion call.

    Builds the language/personality system prompt, trims history, calls the
    backend, and reports every provider failure as a ``CompletionResult``
    error kind instead of raising.
    """

    def __init__(self, backend: CompletionBackend) -> None:
        self.backend = backend

    @classmethod
    def from_settings(cls, settings: Settings) -> "CompletionOrchestrator":
        if settings.model_backend == ModelBackend.STUB:
            logger.warning("completion_backend_stub", message="Using canned completions")
            return cls(StubBackend())
        if not settings.openai_api_key:
            raise ConfigurationError("OPENAI_API_KEY environment variable is required")
        return cls(
            OpenAIChatBackend(
                settings.model_name,
                api_key=settings.openai_api_key,
                base_url=settings.openai_base_url,
                timeout_seconds=settings.provider_timeout_seconds,
            )
        )

    def build_messages(self, request: ChatRequest) -> list[dict]:
        system_prompt = build_system_prompt(request.language, request.personality)
        return shape_history(request.messages, system_prompt)

    async def generate(self, request: ChatRequest) -> CompletionResult:
        messages = self.build_messages(request)
        try:
            result = await self.backend.complete(messages)
        except asyncio.CancelledError:
            logger.info("completion_abandoned", backend=self.backend.mode)
            raise
        except openai.OpenAIError as exc:
            kind = classify_provider_error(exc)
            logger.error(
                "completion_failed",
                backend=self.backend.mode,
                kind=kind.value,
                status_code=getattr(exc, "status_code", None),
                error_type=type(exc).__name__,
                error=str(exc),
            )
            return CompletionResult(error=kind)
        except Exception as exc:
            logger.exception(
                "completion_unexpected_error",
                backend=self.backend.mode,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            return CompletionResult(error=UpstreamErrorKind.GENERATION_FAILED)

        content = result.get("content")
        if not content:
            logger.warning("completion_empty", backend=self.backend.mode)
            return CompletionResult(error=UpstreamErrorKind.EMPTY_COMPLETION)
        logger.info(
            "completion_succeeded",
            backend=self.backend.mode,
            forwarded_messages=len(messages) - 1,
            usage=result.get("usage"),
        )
        return CompletionResult(message=content)

    async def close(self) -> None:
        await self.backend.close()
