"""Main FastAPI application for the Microsteps backend."""
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from microsteps.api.routes.breakdown import router as breakdown_router
from microsteps.api.schemas.breakdown import RateLimitErrorBody
from microsteps.core.config import settings
from microsteps.core.logging import configure_logging
from microsteps.core.middleware import RequestContextMiddleware
from microsteps.observability.client import ObservabilitySink
from microsteps.observability.tracing import trace
from microsteps.services.breakdown_client import BreakdownClient
from microsteps.services.errors import RateLimitExceeded
from microsteps.services.rate_limiter import build_rate_limiter

configure_logging(log_level=settings.log_level)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Own the observability sink, rate limiter and breakdown client for the app's lifetime."""
    sink = ObservabilitySink.from_settings(settings)
    limiter = build_rate_limiter(settings)
    client = BreakdownClient.from_settings(settings, sink)
    app.state.observability = sink
    app.state.rate_limiter = limiter
    app.state.breakdown_client = client
    logger.info(
        "Breakdown client ready (model=%s, llm=%s, rate_limit=%s/%ss)",
        settings.openrouter_model,
        "enabled" if client.configured else "fallback-only",
        settings.rate_limit_points,
        settings.rate_limit_window_seconds,
    )

    try:
        yield
    finally:
        await client.aclose()
        limiter.close()
        sink.flush()
        logger.info("Breakdown services shut down")


app = FastAPI(title=settings.app_name, version="0.1.0", lifespan=lifespan)
app.add_middleware(RequestContextMiddleware)
app.include_router(breakdown_router)


@app.exception_handler(RateLimitExceeded)
async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    body = RateLimitErrorBody(retryAfter=exc.retry_after)
    return JSONResponse(
        status_code=429,
        content=body.model_dump(),
        headers={"Retry-After": str(exc.retry_after)},
    )


@app.get("/health", tags=["health"], summary="Readiness probe")
async def health_check(request: Request) -> dict[str, str]:
    """Return a simple status payload so automation can probe the API."""
    with trace(
        request.app.state.observability,
        "http.health_check",
        metadata={"route": "/health"},
        request_id=request.state.request_id,
    ):
        return {"status": "ok"}
