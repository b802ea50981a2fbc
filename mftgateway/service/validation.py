"""Structural checks on the POST /api/chat body.

Validation never raises: the outcome carries either the parsed request or the
client error describing the first problem found.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from pydantic import ValidationError as PydanticValidationError

from mftgateway.api.schemas import SUPPORTED_LANGUAGES, ChatRequest
from mftgateway.logging import get_logger
from mftgateway.service.errors import ValidationError

logger = get_logger(__name__)

MESSAGES_REQUIRED = ValidationError(
    "Messages array is required and cannot be empty", title="Invalid request"
)
LANGUAGE_INVALID = ValidationError(
    'Language must be either "english" or "hebrew"', title="Invalid language"
)
PERSONALITY_REQUIRED = ValidationError(
    "Personality object is required", title="Invalid personality"
)
MESSAGE_MALFORMED = ValidationError(
    "Each message must include text content and an isUser flag", title="Invalid message"
)
PERSONALITY_MALFORMED = ValidationError(
    "Personality traits must be numeric", title="Invalid personality"
)
BODY_NOT_OBJECT = ValidationError("Request body must be a JSON object", title="Invalid request")
BODY_MALFORMED = ValidationError("Request body could not be read as a chat request", title="Invalid request")


@dataclass(frozen=True)
class ValidationOutcome:
    request: Optional[ChatRequest] = None
    error: Optional[ValidationError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _reject(error: ValidationError) -> ValidationOutcome:
    return ValidationOutcome(error=error)


def validate_chat_payload(body: Any) -> ValidationOutcome:
    if not isinstance(body, dict):
        return _reject(BODY_NOT_OBJECT)

    messages = body.get("messages")
    if not isinstance(messages, list) or not messages:
        return _reject(MESSAGES_REQUIRED)

    language = body.get("language")
    if not isinstance(language, str) or language not in SUPPORTED_LANGUAGES:
        return _reject(LANGUAGE_INVALID)

    if not isinstance(body.get("personality"), dict):
        return _reject(PERSONALITY_REQUIRED)

    try:
        request = ChatRequest.model_validate(body)
    except PydanticValidationError as exc:
        first = exc.errors()[0]
        field = first["loc"][0] if first.get("loc") else None
        if field == "personality":
            return _reject(PERSONALITY_MALFORMED)
        if field == "messages":
            return _reject(MESSAGE_MALFORMED)
        logger.warning("chat_payload_unparsed", loc=first.get("loc"), error=first.get("msg"))
        return _reject(BODY_MALFORMED)
    return ValidationOutcome(request=request)
