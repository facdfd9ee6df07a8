"""Opik-backed observability sink owned by the composition root."""
from __future__ import annotations

import logging
from threading import Lock
from typing import Any, Dict, Optional

from opik import Opik

from microsteps.core.config import Settings

logger = logging.getLogger(__name__)


class ObservabilitySink:
    """Best-effort event sink.

    Wraps an optional Opik client. Every method is safe to call when the sink
    is disabled, and no emission failure ever reaches the caller.
    """

    def __init__(self, client: Optional[Any] = None) -> None:
        self._client = client
        self._lock = Lock()
        self._closed = False

    @classmethod
    def disabled(cls) -> "ObservabilitySink":
        return cls(None)

    @classmethod
    def from_settings(cls, settings: Settings) -> "ObservabilitySink":
        """Build the sink from configuration, falling back to a disabled sink."""
        if not settings.opik_enabled:
            return cls.disabled()

        if not settings.opik_api_key:
            logger.warning("OPIK_ENABLED is true but OPIK_API_KEY is missing; skipping Opik init.")
            return cls.disabled()

        try:
            client = Opik(
                project_name=settings.opik_project,
                workspace=settings.opik_workspace,
                api_key=settings.opik_api_key,
            )
        except Exception as exc:  # pragma: no cover - depends on the remote backend
            logger.warning("Failed to initialize Opik, tracing will be disabled: %s", exc)
            return cls.disabled()

        logger.info("Opik enabled (project=%s).", settings.opik_project)
        return cls(client)

    @property
    def enabled(self) -> bool:
        return self._client is not None and not self._closed

    def start_trace(self, name: str, metadata: Optional[Dict[str, Any]] = None) -> Optional[Any]:
        """Open a trace on the backend, or return None when disabled or on failure."""
        if not self.enabled:
            return None
        try:
            return self._client.trace(name=name, metadata=metadata or None)
        except Exception as exc:
            logger.debug("Unable to start Opik trace %s: %s", name, exc)
            return None

    def flush(self) -> None:
        """Push pending events to the backend; called on shutdown."""
        if self._client is None:
            return
        with self._lock:
            if self._closed:
                return
            try:
                self._client.flush()
            except Exception:
                logger.debug("Failed to flush Opik client", exc_info=True)
            self._closed = True
