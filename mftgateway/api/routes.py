from __future__ import annotations

import json
from typing import Any, Optional

from fastapi import APIRouter, Header, Request
from fastapi.responses import JSONResponse

from mftgateway.api.schemas import HealthResponse
from mftgateway.logging import get_logger
from mftgateway.service.gateway import utc_timestamp
from mftgateway.service.runtime import get_runtime

logger = get_logger(__name__)

router = APIRouter()


async def _read_json_body(request: Request) -> Any:
    """Parse the body without failing; the gateway reports malformed input."""
    raw = await request.body()
    if not raw:
        return None
    try:
        return json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        logger.warning("chat_body_not_json", error=str(exc), size=len(raw))
        return None


@router.get("/health", response_model=HealthResponse, tags=["health"])
async def health() -> HealthResponse:
    """Liveness probe; bypasses authentication and rate limiting."""
    runtime = get_runtime()
    return HealthResponse(timestamp=utc_timestamp(), service=runtime.settings.service_name)


@router.post("/api/chat", tags=["chat"])
async def chat(
    request: Request,
    x_api_key: Optional[str] = Header(None, alias="x-api-key"),
    x_user_id: Optional[str] = Header(None, alias="x-user-id"),
) -> JSONResponse:
    """Authenticate, rate-limit, validate and answer one chat turn.

    Raises nothing: every outcome, including provider failures, is rendered
    from the gateway result (200, 400, 401, 429 or 500).
    """
    runtime = get_runtime()
    body = await _read_json_body(request)
    result = await runtime.gateway.handle_chat(x_api_key, x_user_id, body)
    return JSONResponse(
        status_code=result.status_code, content=result.body, headers=result.headers
    )
