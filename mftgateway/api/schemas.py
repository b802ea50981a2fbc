from __future__ import annotations

from typing import List, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

Language = Literal["english", "hebrew"]
SUPPORTED_LANGUAGES: tuple[str, ...] = ("english", "hebrew")

_VALID_ERROR_CODES = frozenset({
    "unauthorized",
    "not_found",
    "rate_limited",
    "validation_error",
    "upstream_error",
    "server_error",
})


class ChatMessage(BaseModel):
    """One turn of the caller-held conversation."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: Union[str, int, None] = None
    content: str
    is_user: bool = Field(..., alias="isUser")
    timestamp: Union[str, int, float, None] = None


class PersonalityTraits(BaseModel):
    """Four independent dials; any missing dial reads as 0."""

    model_config = ConfigDict(extra="ignore")

    humor: float = 0
    # Accepted for compatibility with existing clients; no prompt fragment reads it.
    mockery: float = 0
    seriousness: float = 0
    professionalism: float = 0


class ChatRequest(BaseModel):
    """Chat body; a body `userId` is tolerated and ignored, the header identity wins."""

    model_config = ConfigDict(extra="ignore")

    messages: List[ChatMessage] = Field(..., min_length=1)
    language: Language
    personality: PersonalityTraits


class ChatReply(BaseModel):
    """Success envelope for POST /api/chat."""

    model_config = ConfigDict(populate_by_name=True)

    message: str
    timestamp: str
    user_id: str = Field(..., alias="userId")


class ErrorResponse(BaseModel):
    """Failure envelope shared by every non-2xx response."""

    error: str
    message: str
    code: str = "server_error"

    @field_validator("code")
    @classmethod
    def _validate_error_code(cls, value: str) -> str:
        if value not in _VALID_ERROR_CODES:
            raise ValueError(
                f"Invalid error code '{value}'. Must be one of: {', '.join(sorted(_VALID_ERROR_CODES))}"
            )
        return value


class HealthResponse(BaseModel):
    status: Literal["ok"] = "ok"
    timestamp: str
    service: str
