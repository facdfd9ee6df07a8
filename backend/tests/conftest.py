from __future__ import annotations

import os

import pytest

# Keep the app in fallback/in-memory mode regardless of the developer's .env.
os.environ.setdefault("OPENROUTER_API_KEY", "")
os.environ.setdefault("OPIK_ENABLED", "false")
os.environ.setdefault("RATE_LIMIT_BACKEND", "memory")

from microsteps.services.errors import BreakdownTimeoutError, BreakdownTransportError  # noqa: E402
from tests.doubles import RecordingSleep  # noqa: E402


@pytest.fixture()
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture()
def transient_error() -> BreakdownTransportError:
    return BreakdownTransportError("Transient error")


@pytest.fixture()
def timeout_error() -> BreakdownTimeoutError:
    return BreakdownTimeoutError("OpenRouter API request timed out")
