from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from mftgateway.api.error_handling import register_exception_handlers
from mftgateway.api.routes import router
from mftgateway.config import Settings
from mftgateway.logging import get_logger, set_correlation_id

logger = get_logger(__name__)

_settings = Settings.from_env()

__version__ = "1.0.0"

CORS_ALLOW_METHODS = ["GET", "POST", "OPTIONS"]
CORS_ALLOW_HEADERS = ["Content-Type", "x-api-key", "x-user-id", "X-Request-ID"]
CORS_EXPOSE_HEADERS = [
    "X-Request-ID",
    "X-RateLimit-Limit",
    "X-RateLimit-Remaining",
    "X-RateLimit-Reset",
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the runtime on startup and tear it down on shutdown."""
    from mftgateway.service.runtime import get_runtime

    try:
        runtime = get_runtime()
        await runtime.start()
    except Exception as exc:
        # Missing provider credentials must stop the process
        logger.error("startup_failed", error_type=type(exc).__name__, error=str(exc))
        raise
    logger.info("gateway_started", service=runtime.settings.service_name, version=__version__)

    yield

    try:
        await runtime.close()
        logger.info("runtime_cleanup_complete")
    except Exception as exc:
        logger.error("shutdown_failed", error=str(exc))


app = FastAPI(title=_settings.service_name, version=__version__, lifespan=lifespan)

# Registered first so the catch-all middleware is innermost
register_exception_handlers(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[_settings.cors_allow_origin],
    allow_methods=CORS_ALLOW_METHODS,
    allow_headers=CORS_ALLOW_HEADERS,
    expose_headers=CORS_EXPOSE_HEADERS,
    max_age=3600,
)


def _fallback_cors_headers() -> dict[str, str]:
    return {
        "Access-Control-Allow-Origin": _settings.cors_allow_origin,
        "Access-Control-Allow-Methods": ", ".join(CORS_ALLOW_METHODS),
        "Access-Control-Allow-Headers": ", ".join(CORS_ALLOW_HEADERS),
        "Access-Control-Expose-Headers": ", ".join(CORS_EXPOSE_HEADERS),
    }


def _is_preflight(request: Request) -> bool:
    return "origin" in request.headers and "access-control-request-method" in request.headers


@app.middleware("http")
async def complete_cors_headers(request: Request, call_next):
    """Cover what CORSMiddleware leaves out.

    CORSMiddleware ignores requests without an Origin header and answers a
    preflight it cannot satisfy with 400. Every OPTIONS here gets a 200 and
    every response carries the full header set.
    """
    response = None
    if request.method == "OPTIONS":
        if _is_preflight(request):
            response = await call_next(request)
            if response.status_code != 200:
                logger.info(
                    "cors_preflight_refused",
                    origin=request.headers.get("origin"),
                    status_code=response.status_code,
                )
                response = None
        if response is None:
            response = Response(status_code=200)
    else:
        response = await call_next(request)
    for name, value in _fallback_cors_headers().items():
        if name not in response.headers:
            response.headers[name] = value
    return response


@app.middleware("http")
async def add_correlation_id(request: Request, call_next):
    """Bind a correlation ID for logging and return it as X-Request-ID."""
    client_request_id = request.headers.get("X-Request-ID")
    correlation_id = set_correlation_id(client_request_id)
    response = await call_next(request)
    response.headers["X-Request-ID"] = correlation_id
    return response


app.include_router(router)


def create_app() -> FastAPI:
    return app
