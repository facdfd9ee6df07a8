"""Lightweight metrics helpers."""
from __future__ import annotations

from typing import Any, Dict, Optional

from microsteps.observability.client import ObservabilitySink
from microsteps.observability.tracing import trace


def log_metric(
    sink: ObservabilitySink,
    name: str,
    value: float | int,
    metadata: Optional[Dict[str, Any]] = None,
) -> None:
    """Log a metric to Opik if it is enabled."""
    if not sink.enabled:
        return

    payload: Dict[str, Any] = {"value": value}
    if metadata:
        payload.update(metadata)

    with trace(sink, f"metric:{name}", metadata=payload):
        pass
