"""Task breakdown endpoints."""
from __future__ import annotations

import logging
from time import perf_counter
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Request, status

from microsteps.api.schemas.breakdown import (
    BreakdownRequest,
    BreakdownResponse,
    CompleteStepRequest,
    CompleteStepResponse,
    RateLimitErrorBody,
)
from microsteps.core.config import Settings
from microsteps.core.deps import (
    get_app_settings,
    get_breakdown_client,
    get_current_user_id,
    get_observability,
    get_rate_limiter,
)
from microsteps.observability.client import ObservabilitySink
from microsteps.observability.metrics import log_metric
from microsteps.services.breakdown_client import MAX_DURATION_DAYS, BreakdownClient, GenerationRequest
from microsteps.services.breakdown_progress import (
    InvalidStepError,
    breakdown_status,
    complete_step,
    normalize_breakdown,
    task_type_for_duration,
)
from microsteps.services.errors import RateLimitExceeded
from microsteps.services.rate_limiter import RateLimiter, acheck_rate_limit

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/tasks/breakdown",
    response_model=BreakdownResponse,
    status_code=status.HTTP_201_CREATED,
    responses={status.HTTP_429_TOO_MANY_REQUESTS: {"model": RateLimitErrorBody}},
    tags=["tasks"],
)
async def create_breakdown(
    payload: BreakdownRequest,
    http_request: Request,
    user_id: str = Depends(get_current_user_id),
    settings: Settings = Depends(get_app_settings),
    limiter: RateLimiter = Depends(get_rate_limiter),
    client: BreakdownClient = Depends(get_breakdown_client),
    sink: ObservabilitySink = Depends(get_observability),
) -> BreakdownResponse:
    """Break a task into steps (single-day) or a per-day plan (multi-day)."""
    request_id = getattr(http_request.state, "request_id", None)
    title = payload.title.strip()
    if not title:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Task title is required")
    if len(title) > settings.title_max_length:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Task must not exceed {settings.title_max_length} characters",
        )
    if not 1 <= payload.duration_days <= MAX_DURATION_DAYS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Duration must be a positive integer between 1 and {MAX_DURATION_DAYS} days",
        )

    decision = await acheck_rate_limit(limiter, user_id)
    if not decision.allowed:
        log_metric(sink, "breakdown.rate_limited", 1, {"user_id": user_id})
        raise RateLimitExceeded(decision.retry_after or 1)

    task_type = task_type_for_duration(payload.duration_days)
    metadata: Dict[str, Any] = {
        "route": "/tasks/breakdown",
        "task_type": task_type,
        "duration_days": payload.duration_days,
    }
    start_time = perf_counter()
    # The client records the "task-breakdown" trace for this request.
    breakdown = await client.generate_breakdown(
        GenerationRequest(title=title, duration_days=payload.duration_days, user_id=user_id)
    )
    latency_ms = (perf_counter() - start_time) * 1000
    log_metric(sink, "breakdown.latency_ms", latency_ms, {**metadata, "user_id": user_id})

    return BreakdownResponse(
        title=title,
        duration_days=payload.duration_days,
        task_type=task_type,
        ai_breakdown=normalize_breakdown(breakdown, task_type),
        request_id=request_id or "",
    )


@router.post(
    "/tasks/breakdown/complete-step",
    response_model=CompleteStepResponse,
    tags=["tasks"],
)
def complete_breakdown_step(
    payload: CompleteStepRequest,
    http_request: Request,
    user_id: str = Depends(get_current_user_id),
) -> CompleteStepResponse:
    """Mark one step as done and report the resulting task status."""
    request_id = getattr(http_request.state, "request_id", None)
    if payload.day is not None and payload.day < 1:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid day")

    try:
        breakdown = normalize_breakdown(payload.ai_breakdown, payload.task_type)
    except (TypeError, ValueError) as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid ai_breakdown") from exc

    try:
        updated = complete_step(breakdown, payload.task_type, payload.step_index, payload.day)
    except InvalidStepError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    new_status = breakdown_status(updated, payload.task_type)
    logger.info("Step %s completed (day=%s); task is now %s", payload.step_index, payload.day, new_status)
    return CompleteStepResponse(
        task_type=payload.task_type,
        ai_breakdown=updated,
        status=new_status,
        request_id=request_id or "",
    )
