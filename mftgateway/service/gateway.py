from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from mftgateway.api.schemas import ChatReply, ErrorResponse
from mftgateway.logging import get_logger
from mftgateway.service.auth import CredentialValidator, validate_identity
from mftgateway.service.errors import (
    AuthenticationError,
    RateLimitedError,
    ServerError,
    ServiceError,
    UpstreamError,
)
from mftgateway.service.llm import CompletionOrchestrator
from mftgateway.service.rate_limit import FixedWindowRateLimiter, RateLimitDecision
from mftgateway.service.validation import validate_chat_payload

logger = get_logger(__name__)


class Stage(str, Enum):
    START = "start"
    AUTHENTICATED = "authenticated"
    RATE_CHECKED = "rate_checked"
    VALIDATED = "validated"
    COMPLETED = "completed"
    REJECTED = "rejected"


MISSING_HEADERS = AuthenticationError(
    "x-api-key and x-user-id headers are required",
    title="Missing authentication headers",
)
INVALID_API_KEY = AuthenticationError(
    "The provided API key is not valid", title="Invalid API key"
)
INVALID_USER_ID = AuthenticationError(
    "The provided user ID is not valid", title="Invalid user ID"
)
RATE_LIMIT_EXCEEDED = RateLimitedError("Too many requests. Please try again later.")
UNEXPECTED_FAILURE = ServerError("An unexpected error occurred")


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def error_body(exc: ServiceError) -> Dict[str, Any]:
    return ErrorResponse(error=exc.title, message=exc.message, code=exc.error_code).model_dump()


def rate_limit_headers(decision: RateLimitDecision) -> Dict[str, str]:
    return {
        "X-RateLimit-Limit": str(decision.limit),
        "X-RateLimit-Remaining": str(max(0, decision.remaining)),
        "X-RateLimit-Reset": str(decision.reset_seconds),
    }


@dataclass
class GatewayResult:
    """HTTP-level outcome of one pipeline run."""

    status_code: int
    body: Dict[str, Any]
    headers: Dict[str, str] = field(default_factory=dict)
    stage: Stage = Stage.COMPLETED

    @classmethod
    def rejected(
        cls, exc: ServiceError, headers: Optional[Dict[str, str]] = None
    ) -> "GatewayResult":
        return cls(exc.status_code, error_body(exc), dict(headers or {}), Stage.REJECTED)


class GatewayHandler:
    """Runs the admission pipeline for one chat request.

    start -> authenticated -> rate_checked -> validated -> completed, with any
    failure going straight to rejected. Always returns a ``GatewayResult``.
    """

    def __init__(
        self,
        credentials: CredentialValidator,
        limiter: FixedWindowRateLimiter,
        orchestrator: CompletionOrchestrator,
    ) -> None:
        self.credentials = credentials
        self.limiter = limiter
        self.orchestrator = orchestrator

    async def handle_chat(
        self, api_key: Optional[str], user_id: Optional[str], body: Any
    ) -> GatewayResult:
        try:
            return await self._run(api_key, user_id, body)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.exception(
                "chat_pipeline_failed",
                error_type=type(exc).__name__,
                error=str(exc),
            )
            return GatewayResult.rejected(UNEXPECTED_FAILURE)

    async def _run(
        self, api_key: Optional[str], user_id: Optional[str], body: Any
    ) -> GatewayResult:
        stage = Stage.START
        if not api_key or not user_id:
            return self._reject(stage, MISSING_HEADERS)
        if not self.credentials.validate(api_key):
            return self._reject(stage, INVALID_API_KEY)
        if not validate_identity(user_id):
            return self._reject(stage, INVALID_USER_ID)
        stage = Stage.AUTHENTICATED

        decision = self.limiter.check(user_id)
        headers = rate_limit_headers(decision)
        if not decision.allowed:
            return self._reject(stage, RATE_LIMIT_EXCEEDED, user_id=user_id, headers=headers)
        stage = Stage.RATE_CHECKED

        outcome = validate_chat_payload(body)
        if not outcome.ok:
            return self._reject(stage, outcome.error, user_id=user_id, headers=headers)
        stage = Stage.VALIDATED

        completion = await self.orchestrator.generate(outcome.request)
        if not completion.ok:
            return self._reject(
                stage, UpstreamError(completion.error), user_id=user_id, headers=headers
            )

        reply = ChatReply(message=completion.message, timestamp=utc_timestamp(), user_id=user_id)
        logger.info("chat_completed", user_id=user_id, language=outcome.request.language)
        return GatewayResult(200, reply.model_dump(by_alias=True), headers, Stage.COMPLETED)

    def _reject(
        self,
        stage: Stage,
        exc: ServiceError,
        *,
        user_id: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> GatewayResult:
        log_fn = logger.error if exc.status_code >= 500 else logger.warning
        log_fn(
            "chat_rejected",
            stage=stage.value,
            status_code=exc.status_code,
            error_code=exc.error_code,
            message=exc.message,
            user_id=user_id,
        )
        return GatewayResult.rejected(exc, headers)
