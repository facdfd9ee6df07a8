"""Normalization and completion tracking for stored breakdowns.

Breakdowns arrive in two shapes: legacy plain strings and ``{text, completed}``
objects. ``normalize_breakdown`` is the single place that accepts both;
everything downstream works with ``BreakdownStep``.
"""
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from microsteps.services.breakdown_fallback import day_key
from microsteps.services.breakdown_validator import DAY_KEY_PATTERN

TaskType = Literal["single-day", "multi-day"]
TaskStatus = Literal["pending", "in_progress", "completed"]


class BreakdownStep(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str = Field(..., min_length=1)
    completed: bool = False


StepList = List[BreakdownStep]
NormalizedBreakdown = Union[StepList, Dict[str, StepList]]


class InvalidStepError(ValueError):
    """Step index or day does not exist in the breakdown."""


def task_type_for_duration(duration_days: int) -> TaskType:
    return "single-day" if duration_days == 1 else "multi-day"


def normalize_step(raw: Any) -> BreakdownStep:
    if isinstance(raw, BreakdownStep):
        return raw
    if isinstance(raw, str):
        return BreakdownStep(text=raw)
    if isinstance(raw, Mapping):
        completed = raw.get("completed", False)
        if not isinstance(completed, bool):
            raise TypeError(f"Step 'completed' must be a boolean, got {completed!r}")
        return BreakdownStep(text=str(raw.get("text", "")), completed=completed)
    raise TypeError(f"Unsupported breakdown step: {raw!r}")


def normalize_steps(raw_steps: Optional[Iterable[Any]]) -> StepList:
    return [normalize_step(step) for step in raw_steps or []]


def normalize_breakdown(raw: Any, task_type: TaskType) -> NormalizedBreakdown:
    """Convert either stored shape into canonical ``BreakdownStep`` lists."""
    if task_type == "single-day":
        return normalize_steps(raw if isinstance(raw, list) else [])
    if not isinstance(raw, Mapping):
        return {}
    days = {key: value for key, value in raw.items() if DAY_KEY_PATTERN.match(str(key))}
    return {key: normalize_steps(days[key] if isinstance(days[key], list) else []) for key in _ordered_day_keys(days)}


def complete_step(
    breakdown: NormalizedBreakdown,
    task_type: TaskType,
    step_index: int,
    day: Optional[int] = None,
) -> NormalizedBreakdown:
    """Return a copy of ``breakdown`` with one step marked completed."""
    if step_index < 0:
        raise InvalidStepError("Invalid stepIndex")

    if task_type == "single-day":
        steps = list(breakdown) if isinstance(breakdown, list) else []
        if step_index >= len(steps):
            raise InvalidStepError("Invalid stepIndex")
        steps[step_index] = steps[step_index].model_copy(update={"completed": True})
        return steps

    if day is not None and day < 1:
        raise InvalidStepError("Invalid day")
    days = dict(breakdown) if isinstance(breakdown, dict) else {}
    key = day_key(day or 1)
    day_steps = list(days.get(key) or [])
    if step_index >= len(day_steps):
        raise InvalidStepError("Invalid stepIndex or day")
    day_steps[step_index] = day_steps[step_index].model_copy(update={"completed": True})
    days[key] = day_steps
    return days


def breakdown_status(breakdown: NormalizedBreakdown, task_type: TaskType) -> TaskStatus:
    if task_type == "single-day":
        groups = [breakdown] if isinstance(breakdown, list) else []
    else:
        groups = list(breakdown.values()) if isinstance(breakdown, dict) else []

    if groups and all(group and all(step.completed for step in group) for group in groups):
        return "completed"
    if any(step.completed for group in groups for step in group):
        return "in_progress"
    return "pending"


def _ordered_day_keys(days: Mapping[str, Any]) -> List[str]:
    return sorted(days, key=lambda key: int(DAY_KEY_PATTERN.match(key).group(1)))
