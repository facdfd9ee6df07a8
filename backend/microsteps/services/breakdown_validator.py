"""Structural checks for untrusted breakdown payloads returned by the model."""
from __future__ import annotations

import json
import math
import re
from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, StrictStr, TypeAdapter, ValidationError

from microsteps.services.breakdown_fallback import day_key
from microsteps.services.errors import BreakdownValidationError

# Share of requested days the model must return for a multi-day plan.
MULTI_DAY_COVERAGE = 0.8

DAY_KEY_PATTERN = re.compile(r"^day_(\d+)$")


class SingleDayPayload(BaseModel):
    """Expected ``{"steps": [...]}`` document."""

    model_config = ConfigDict(extra="ignore")

    steps: List[StrictStr]


_STEP_LIST = TypeAdapter(List[StrictStr])


def required_day_count(duration_days: int) -> int:
    """Minimum number of day entries accepted for ``duration_days``."""
    # round() absorbs float noise such as 5 * 0.8 == 4.000000000000001
    return math.ceil(round(duration_days * MULTI_DAY_COVERAGE, 6))


def validate_single_day(content: Any) -> List[str]:
    """Return the cleaned step list or raise BreakdownValidationError."""
    document = _parse_document(content)
    try:
        payload = SingleDayPayload.model_validate(document)
    except ValidationError as exc:
        raise BreakdownValidationError(f"Invalid response format: {_describe(exc)}") from exc

    if not payload.steps:
        raise BreakdownValidationError("Model returned an empty steps array")
    return _clean_steps(payload.steps, "steps")


def validate_multi_day(content: Any, duration_days: int) -> Dict[str, List[str]]:
    """Return ``day_<n>`` lists ordered by day, or raise BreakdownValidationError.

    Only keys for days 1..duration_days are kept. Every kept day must hold at
    least one step, and at least 80% of the requested days must be present.
    """
    document = _parse_document(content)

    days: Dict[int, List[str]] = {}
    for key, value in document.items():
        match = DAY_KEY_PATTERN.match(str(key))
        if not match:
            continue
        day = int(match.group(1))
        if day < 1 or day > duration_days:
            continue
        try:
            steps = _STEP_LIST.validate_python(value)
        except ValidationError as exc:
            raise BreakdownValidationError(f"Invalid response format for {key}: {_describe(exc)}") from exc
        if not steps:
            raise BreakdownValidationError(f"Model returned no steps for {key}")
        days[day] = _clean_steps(steps, key)

    required = required_day_count(duration_days)
    if len(days) < required:
        raise BreakdownValidationError(
            f"Model returned {len(days)} of {duration_days} days; at least {required} are required"
        )
    return {day_key(day): days[day] for day in sorted(days)}


def _parse_document(content: Any) -> Dict[str, Any]:
    if isinstance(content, (str, bytes, bytearray)):
        try:
            content = json.loads(content)
        except json.JSONDecodeError as exc:
            raise BreakdownValidationError(f"Invalid response format: content is not valid JSON ({exc.msg})") from exc
    if not isinstance(content, dict):
        raise BreakdownValidationError(
            f"Invalid response format: expected a JSON object, got {type(content).__name__}"
        )
    return content


def _clean_steps(steps: List[str], label: str) -> List[str]:
    cleaned = [step.strip() for step in steps]
    if any(not step for step in cleaned):
        raise BreakdownValidationError(f"Model returned a blank step in {label}")
    return cleaned


def _describe(exc: ValidationError) -> str:
    first = exc.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ())) or "payload"
    return f"{location}: {first.get('msg', 'invalid value')}"
