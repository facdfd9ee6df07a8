"""Tracing utilities wrapping Opik."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

from microsteps.observability.client import ObservabilitySink

logger = logging.getLogger(__name__)


class TraceHandle:
    """Fire-and-forget facade over an Opik trace.

    With no underlying trace every call is a no-op; otherwise backend errors
    are logged at debug level and discarded.
    """

    def __init__(self, name: str, opik_trace: Optional[Any] = None) -> None:
        self.name = name
        self._trace = opik_trace

    def span(
        self,
        name: str,
        *,
        input: Optional[Dict[str, Any]] = None,
        output: Optional[Dict[str, Any]] = None,
        metadata: Optional[Dict[str, Any]] = None,
        usage: Optional[Dict[str, int]] = None,
        model: Optional[str] = None,
        provider: Optional[str] = None,
        error: Optional[BaseException] = None,
    ) -> None:
        """Record a finished LLM span, optionally carrying token usage or an error."""
        if self._trace is None:
            return
        kwargs: Dict[str, Any] = {
            "name": name,
            "type": "llm",
            "input": input,
            "output": output,
            "metadata": metadata,
        }
        if usage:
            kwargs["usage"] = usage
        if model:
            kwargs["model"] = model
        if provider:
            kwargs["provider"] = provider
        if error is not None:
            kwargs["error_info"] = _error_info(error)
        try:
            span = self._trace.span(**kwargs)
            span.end()
        except Exception:
            logger.debug("Failed to record span %s on trace %s", name, self.name, exc_info=True)

    def event(self, name: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        """Record a point-in-time event as a general span."""
        if self._trace is None:
            return
        try:
            span = self._trace.span(name=name, type="general", metadata=metadata)
            span.end()
        except Exception:
            logger.debug("Failed to record event %s on trace %s", name, self.name, exc_info=True)

    def update(self, **kwargs: Any) -> None:
        if self._trace is None:
            return
        try:
            self._trace.update(**kwargs)
        except Exception:
            logger.debug("Failed to update trace %s", self.name, exc_info=True)

    def end(self) -> None:
        if self._trace is None:
            return
        try:
            self._trace.end()
        except Exception:
            logger.debug("Failed to close Opik trace %s cleanly", self.name, exc_info=True)


def _error_info(error: BaseException) -> Dict[str, str]:
    return {
        "exception_type": type(error).__name__,
        "message": str(error),
        "traceback": "",
    }


@contextmanager
def trace(
    sink: ObservabilitySink,
    name: str,
    metadata: Optional[Dict[str, Any]] = None,
    user_id: Optional[str] = None,
    request_id: Optional[str] = None,
) -> Iterator[TraceHandle]:
    """
    Create a trace context manager.

    When the sink is disabled the yielded handle is a no-op.
    """
    trace_metadata = dict(metadata or {})
    if user_id:
        trace_metadata.setdefault("user_id", str(user_id))
    if request_id:
        trace_metadata.setdefault("request_id", request_id)
    handle = TraceHandle(name, sink.start_trace(name, trace_metadata))

    try:
        yield handle
    except Exception as exc:
        handle.update(error_info=_error_info(exc))
        raise
    finally:
        handle.end()
