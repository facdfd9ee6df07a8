"""Deterministic breakdowns used when the LLM output cannot be trusted."""
from __future__ import annotations

from typing import Dict, List

SINGLE_DAY_TEMPLATE = [
    "Gather any materials or tools you'll need",
    "Start working on: {title}",
    "Complete the main task",
    "Review your work",
    "Mark the task as complete",
]

MULTI_DAY_TEMPLATE = [
    "Prepare for: {title}",
    "Practice day {day} of {total}",
    "Reflect on progress",
]


def day_key(day: int) -> str:
    return f"day_{day}"


def single_day_fallback(title: str) -> List[str]:
    """Return the fixed five-step plan for a single-day task."""
    return [template.format(title=title) for template in SINGLE_DAY_TEMPLATE]


def multi_day_fallback(title: str, duration_days: int) -> Dict[str, List[str]]:
    """Return ``day_1..day_n`` with three template steps per day."""
    return {
        day_key(day): [template.format(title=title, day=day, total=duration_days) for template in MULTI_DAY_TEMPLATE]
        for day in range(1, duration_days + 1)
    }
