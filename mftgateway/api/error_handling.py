from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from mftgateway.api.schemas import ErrorResponse
from mftgateway.logging import get_logger
from mftgateway.service.errors import NotFoundError, ServerError, ServiceError

logger = get_logger(__name__)

ENDPOINT_NOT_FOUND = NotFoundError("The requested endpoint was not found")
UNHANDLED_FAILURE = ServerError("An unexpected error occurred")


def _error_response(exc: ServiceError) -> JSONResponse:
    body = ErrorResponse(error=exc.title, message=exc.message, code=exc.error_code)
    return JSONResponse(status_code=exc.status_code, content=body.model_dump())


def register_exception_handlers(app: FastAPI) -> None:
    """Render every framework-level failure with the gateway error body.

    Call before adding any other middleware: the catch-all below has to sit
    innermost so CORS and request-id middleware still decorate its 500s.
    """

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        # Unknown paths and unsupported methods are both reported as 404
        if exc.status_code in (404, 405):
            logger.info("route_not_found", path=request.url.path, method=request.method)
            return _error_response(ENDPOINT_NOT_FOUND)
        logger.warning(
            "http_error",
            path=request.url.path,
            method=request.method,
            status_code=exc.status_code,
            detail=str(exc.detail),
        )
        code = "validation_error" if exc.status_code < 500 else "server_error"
        return _error_response(
            ServiceError(str(exc.detail), title="Request failed", status_code=exc.status_code, error_code=code)
        )

    @app.middleware("http")
    async def render_unhandled_errors(request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as exc:
            logger.exception(
                "unhandled_exception",
                path=request.url.path,
                method=request.method,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            return _error_response(UNHANDLED_FAILURE)
