"""Schemas for task breakdown endpoints."""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field

from microsteps.services.breakdown_progress import BreakdownStep, TaskStatus, TaskType


class BreakdownRequest(BaseModel):
    title: str
    duration_days: int = 1


class BreakdownResponse(BaseModel):
    title: str
    duration_days: int
    task_type: TaskType
    ai_breakdown: Union[List[BreakdownStep], Dict[str, List[BreakdownStep]]]
    request_id: str


class CompleteStepRequest(BaseModel):
    task_type: TaskType
    ai_breakdown: Any = Field(..., description="Stored breakdown; legacy string steps are accepted.")
    step_index: int
    day: Optional[int] = None


class CompleteStepResponse(BaseModel):
    task_type: TaskType
    ai_breakdown: Union[List[BreakdownStep], Dict[str, List[BreakdownStep]]]
    status: TaskStatus
    request_id: str


class RateLimitErrorBody(BaseModel):
    error: str = "Rate limit exceeded"
    retryAfter: int
