"""Tests for the breakdown client's retry and fallback behaviour."""
from __future__ import annotations

import asyncio
import json

import pytest

from microsteps.observability.client import ObservabilitySink
from microsteps.services.breakdown_client import BreakdownClient, GenerationRequest
from microsteps.services.breakdown_fallback import multi_day_fallback, single_day_fallback
from microsteps.services.openrouter_transport import ChatCompletionRequest, ChatCompletionResponse
from tests.doubles import DummyOpik, ExplodingOpik, ScriptedTransport


def _client(transport, sleep, sink=None, **kwargs) -> BreakdownClient:
    return BreakdownClient(transport, sink, model="test-model", sleep=sleep, **kwargs)


def _days(count: int) -> str:
    return json.dumps({f"day_{day}": [f"Task 1 for day {day}", f"Task 2 for day {day}"] for day in range(1, count + 1)})


@pytest.mark.asyncio
async def test_single_day_returns_model_steps_in_order(recording_sleep) -> None:
    transport = ScriptedTransport(
        json.dumps({"steps": ["Open email client", "Click compose", "Write email", "Send email"]})
    )

    steps = await _client(transport, recording_sleep).generate_single_day_breakdown("Clean my room", "user-123")

    assert steps == ["Open email client", "Click compose", "Write email", "Send email"]
    assert transport.calls == 1
    assert recording_sleep.delays == []


@pytest.mark.asyncio
async def test_request_payload_shape(recording_sleep) -> None:
    transport = ScriptedTransport(json.dumps({"steps": ["a"]}))

    await _client(transport, recording_sleep, temperature=0.3).generate_single_day_breakdown("Clean my room", "u1")

    request = transport.requests[0]
    assert request.model == "test-model"
    assert request.temperature == 0.3
    assert request.response_format == {"type": "json_object"}
    assert request.stream is False
    assert [message.role for message in request.messages] == ["system", "user"]
    assert '"Clean my room"' in request.messages[1].content


@pytest.mark.asyncio
async def test_timeout_is_terminal(recording_sleep, timeout_error) -> None:
    transport = ScriptedTransport(timeout_error)

    steps = await _client(transport, recording_sleep).generate_single_day_breakdown("Test task", "user-123")

    assert steps == single_day_fallback("Test task")
    assert transport.calls == 1
    assert recording_sleep.delays == []


@pytest.mark.asyncio
async def test_hung_call_is_aborted_by_timeout(recording_sleep) -> None:
    class HangingTransport:
        calls = 0

        async def complete(self, request: ChatCompletionRequest) -> ChatCompletionResponse:
            HangingTransport.calls += 1
            await asyncio.sleep(10)
            raise AssertionError("unreachable")

    steps = await _client(HangingTransport(), recording_sleep, timeout_seconds=0.01).generate_single_day_breakdown(
        "Test task", "user-123"
    )

    assert steps == single_day_fallback("Test task")
    assert HangingTransport.calls == 1


@pytest.mark.asyncio
async def test_retries_transient_failure_then_succeeds(recording_sleep, transient_error) -> None:
    transport = ScriptedTransport(transient_error, json.dumps({"steps": ["a", "b", "c"]}))

    steps = await _client(transport, recording_sleep).generate_single_day_breakdown("Test task", "user-123")

    assert steps == ["a", "b", "c"]
    assert transport.calls == 2
    assert recording_sleep.delays == [1.0]


@pytest.mark.asyncio
async def test_retry_exhaustion_falls_back(recording_sleep, transient_error) -> None:
    transport = ScriptedTransport(transient_error)

    steps = await _client(transport, recording_sleep).generate_single_day_breakdown(
        "Test task", "user-123", max_retries=2
    )

    assert steps == single_day_fallback("Test task")
    assert transport.calls == 3
    assert recording_sleep.delays == [1.0, 2.0]


@pytest.mark.asyncio
async def test_zero_retries_makes_single_attempt(recording_sleep) -> None:
    transport = ScriptedTransport(RuntimeError("API Error"))

    steps = await _client(transport, recording_sleep).generate_single_day_breakdown("Test task", "u", max_retries=0)

    assert len(steps) == 5
    assert transport.calls == 1


@pytest.mark.asyncio
async def test_empty_steps_fall_back_without_retry(recording_sleep) -> None:
    transport = ScriptedTransport(json.dumps({"steps": []}))

    steps = await _client(transport, recording_sleep).generate_single_day_breakdown("Test task", "user-123")

    assert steps == single_day_fallback("Test task")
    assert transport.calls == 1


@pytest.mark.asyncio
async def test_invalid_json_falls_back_without_retry(recording_sleep) -> None:
    transport = ScriptedTransport("Invalid JSON")

    steps = await _client(transport, recording_sleep).generate_single_day_breakdown("Test task", "user-123")

    assert len(steps) == 5
    assert transport.calls == 1


@pytest.mark.asyncio
async def test_missing_transport_uses_fallback(recording_sleep) -> None:
    steps = await _client(None, recording_sleep).generate_single_day_breakdown("Test task", "user-123")

    assert steps == single_day_fallback("Test task")


@pytest.mark.asyncio
async def test_multi_day_returns_model_plan(recording_sleep) -> None:
    transport = ScriptedTransport(_days(7))

    breakdown = await _client(transport, recording_sleep).generate_multi_day_breakdown(
        "Build running habit", 7, "user-123"
    )

    assert list(breakdown) == [f"day_{day}" for day in range(1, 8)]
    assert breakdown["day_1"][0] == "Task 1 for day 1"
    assert "7-day plan" in transport.requests[0].messages[1].content


@pytest.mark.asyncio
async def test_multi_day_tolerates_missing_day(recording_sleep) -> None:
    transport = ScriptedTransport(_days(6))

    breakdown = await _client(transport, recording_sleep).generate_multi_day_breakdown("Test habit", 7, "u")

    assert len(breakdown) == 6
    assert transport.calls == 1


@pytest.mark.asyncio
async def test_multi_day_below_threshold_falls_back(recording_sleep) -> None:
    transport = ScriptedTransport(_days(5))

    breakdown = await _client(transport, recording_sleep).generate_multi_day_breakdown("Test habit", 7, "u")

    assert breakdown == multi_day_fallback("Test habit", 7)
    assert transport.calls == 1


@pytest.mark.asyncio
async def test_multi_day_empty_day_falls_back(recording_sleep) -> None:
    transport = ScriptedTransport(json.dumps({"day_1": []}))

    breakdown = await _client(transport, recording_sleep).generate_multi_day_breakdown(
        "Test habit", 7, "user-123", max_retries=0
    )

    assert len(breakdown) == 7
    assert breakdown["day_1"] == ["Prepare for: Test habit", "Practice day 1 of 7", "Reflect on progress"]


@pytest.mark.asyncio
async def test_multi_day_retries_transient_failure(recording_sleep, transient_error) -> None:
    transport = ScriptedTransport(transient_error, _days(3))

    breakdown = await _client(transport, recording_sleep).generate_multi_day_breakdown("Test habit", 3, "user-123")

    assert transport.calls == 2
    assert len(breakdown) == 3


@pytest.mark.asyncio
async def test_generate_breakdown_dispatches_on_duration(recording_sleep) -> None:
    transport = ScriptedTransport(json.dumps({"steps": ["a"]}), _days(2))
    client = _client(transport, recording_sleep)

    single = await client.generate_breakdown(GenerationRequest(title="  Read  ", duration_days=1, user_id="u"))
    multi = await client.generate_breakdown(GenerationRequest(title="Read", duration_days=2, user_id="u"))

    assert single == ["a"]
    assert list(multi) == ["day_1", "day_2"]


def test_generation_request_rejects_blank_title_and_bad_duration() -> None:
    with pytest.raises(ValueError):
        GenerationRequest(title="   ", duration_days=1, user_id="u")
    with pytest.raises(ValueError):
        GenerationRequest(title="Read", duration_days=366, user_id="u")


@pytest.mark.asyncio
async def test_emits_attempt_and_fallback_events(recording_sleep, transient_error) -> None:
    opik = DummyOpik()
    transport = ScriptedTransport(transient_error)

    await _client(transport, recording_sleep, sink=ObservabilitySink(opik)).generate_single_day_breakdown(
        "Test task", "user-123", max_retries=1
    )

    trace = opik.traces[0]
    assert trace.name == "task-breakdown"
    assert trace.metadata["user_id"] == "user-123"
    names = [span.kwargs["name"] for span in trace.spans]
    assert names == [
        "openrouter-single-day-error",
        "openrouter-single-day-error",
        "fallback-breakdown-used",
    ]
    assert trace.spans[0].kwargs["error_info"]["exception_type"] == "BreakdownTransportError"
    assert trace.spans[-1].kwargs["metadata"]["reason"] == "Transient error"
    assert trace.ended is True


@pytest.mark.asyncio
async def test_success_span_carries_usage(recording_sleep) -> None:
    opik = DummyOpik()
    transport = ScriptedTransport(json.dumps({"steps": ["a", "b"]}))

    await _client(transport, recording_sleep, sink=ObservabilitySink(opik)).generate_single_day_breakdown("Task", "u")

    span = opik.traces[0].spans[0]
    assert span.kwargs["name"] == "openrouter-single-day"
    assert span.kwargs["usage"] == {"prompt_tokens": 100, "completion_tokens": 50, "total_tokens": 150}
    assert span.ended is True


@pytest.mark.asyncio
async def test_observability_failures_do_not_change_result(recording_sleep) -> None:
    transport = ScriptedTransport(json.dumps({"steps": ["a", "b", "c"]}))

    steps = await _client(transport, recording_sleep, sink=ObservabilitySink(ExplodingOpik())).generate_single_day_breakdown(
        "Task", "u"
    )

    assert steps == ["a", "b", "c"]
