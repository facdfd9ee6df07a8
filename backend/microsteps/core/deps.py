"""FastAPI dependencies resolving objects owned by the composition root."""
from __future__ import annotations

from fastapi import HTTPException, Request, status

from microsteps.core.config import Settings, get_settings
from microsteps.observability.client import ObservabilitySink
from microsteps.services.breakdown_client import BreakdownClient
from microsteps.services.rate_limiter import RateLimiter


def get_app_settings() -> Settings:
    return get_settings()


def get_observability(request: Request) -> ObservabilitySink:
    return request.app.state.observability


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


def get_breakdown_client(request: Request) -> BreakdownClient:
    return request.app.state.breakdown_client


def get_current_user_id(request: Request) -> str:
    """Return the user id forwarded by the auth layer, or answer 401."""
    user_id = getattr(request.state, "user_id", None)
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return user_id
