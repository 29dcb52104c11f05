"""
Tests for the retry / timeout supervisor
"""
import asyncio
import logging

import httpx
import pytest

from assistant.agent.supervisor import CallSupervisor, RequestDeadline
from assistant.errors import (
    RequestTimeoutError,
    ToolTimeoutError,
    UpstreamTimeoutError,
    UpstreamUnavailableError,
)


class FlakyCall:
    """Raises the scripted exceptions, then returns "ok" """

    def __init__(self, *failures):
        self.failures = list(failures)
        self.attempts = 0

    async def __call__(self):
        self.attempts += 1
        if self.failures:
            raise self.failures.pop(0)
        return "ok"


async def _hang():
    await asyncio.sleep(3600)


@pytest.fixture
def supervisor():
    return CallSupervisor(llm_timeout=0.2, tool_timeout=0.2)


# ============================================================================
# Model calls
# ============================================================================

@pytest.mark.asyncio
async def test_transient_failure_retried_once(supervisor):
    """One transient failure then success: the call succeeds after exactly two attempts"""
    call = FlakyCall(httpx.ConnectError("connection reset"))
    assert await supervisor.call_model(call) == "ok"
    assert call.attempts == 2


@pytest.mark.asyncio
async def test_two_transient_failures_fail(supervisor):
    call = FlakyCall(ConnectionError("down"), ConnectionError("still down"))
    with pytest.raises(UpstreamUnavailableError) as exc_info:
        await supervisor.call_model(call)
    assert call.attempts == 2
    assert exc_info.value.details["attempts"] == 2


@pytest.mark.asyncio
async def test_application_error_not_retried(supervisor):
    call = FlakyCall(ValueError("bad request"))
    with pytest.raises(UpstreamUnavailableError):
        await supervisor.call_model(call)
    assert call.attempts == 1


@pytest.mark.asyncio
async def test_retries_disabled():
    supervisor = CallSupervisor(llm_timeout=0.2, tool_timeout=0.2, max_llm_retries=0)
    call = FlakyCall(ConnectionError("down"))
    with pytest.raises(UpstreamUnavailableError):
        await supervisor.call_model(call)
    assert call.attempts == 1


def test_retries_clamped_to_one():
    assert CallSupervisor(llm_timeout=1, tool_timeout=1, max_llm_retries=5).max_llm_retries == 1


@pytest.mark.asyncio
async def test_retry_is_logged(supervisor, caplog):
    call = FlakyCall(httpx.ReadError("reset"))
    with caplog.at_level(logging.WARNING, logger="assistant.agent.supervisor"):
        assert await supervisor.call_model(call) == "ok"
    assert "retrying once" in caplog.text
    assert "ReadError" in caplog.text


@pytest.mark.asyncio
async def test_provider_error_reports_status(supervisor):
    class RateLimited(Exception):
        status_code = 429

    call = FlakyCall(RateLimited("slow down"))
    with pytest.raises(UpstreamUnavailableError) as exc_info:
        await supervisor.call_model(call)
    assert exc_info.value.details["status"] == 429
    assert exc_info.value.details["attempts"] == 1


@pytest.mark.asyncio
async def test_hanging_model_times_out(supervisor):
    with pytest.raises(UpstreamTimeoutError):
        await supervisor.call_model(_hang)


@pytest.mark.asyncio
async def test_timeout_not_retried(supervisor):
    attempts = []

    async def hang_counted():
        attempts.append(1)
        await asyncio.sleep(3600)

    with pytest.raises(UpstreamTimeoutError):
        await supervisor.call_model(hang_counted)
    assert len(attempts) == 1


# ============================================================================
# Tool calls
# ============================================================================

@pytest.mark.asyncio
async def test_hanging_tool_times_out(supervisor):
    with pytest.raises(ToolTimeoutError) as exc_info:
        await supervisor.run_tool(_hang, tool_name="send_email")
    assert exc_info.value.details["tool"] == "send_email"


@pytest.mark.asyncio
async def test_tool_failure_not_retried(supervisor):
    call = FlakyCall(ConnectionError("down"))
    with pytest.raises(ConnectionError):
        await supervisor.run_tool(call, tool_name="mark_invoice_paid")
    assert call.attempts == 1


@pytest.mark.asyncio
async def test_abandoned_tool_is_cancelled(supervisor):
    cancelled = asyncio.Event()

    async def slow_tool():
        try:
            await asyncio.sleep(3600)
        except asyncio.CancelledError:
            cancelled.set()
            raise

    with pytest.raises(ToolTimeoutError):
        await supervisor.run_tool(slow_tool, tool_name="send_brief")
    await asyncio.wait_for(cancelled.wait(), timeout=1)


# ============================================================================
# Request deadline
# ============================================================================

@pytest.mark.asyncio
async def test_budget_caps_call_timeout():
    supervisor = CallSupervisor(llm_timeout=30, tool_timeout=30)
    deadline = RequestDeadline(budget_seconds=0.2)
    with pytest.raises(RequestTimeoutError):
        await supervisor.call_model(_hang, deadline)


@pytest.mark.asyncio
async def test_exhausted_budget_fails_before_calling(supervisor):
    deadline = RequestDeadline(budget_seconds=0)
    call = FlakyCall()
    with pytest.raises(RequestTimeoutError):
        await supervisor.run_tool(call, tool_name="list_clients", deadline=deadline)
    assert call.attempts == 0


def test_deadline_bound():
    ticks = iter([0.0, 5.0])
    deadline = RequestDeadline(budget_seconds=10, clock=lambda: next(ticks))
    assert deadline.bound(30) == 5.0
