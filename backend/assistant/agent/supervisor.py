"""
Retry-Timeout Supervisor

Wraps the two external calls of a request, the language model and tool
execution, with a hard timeout. The model call additionally gets at most one
retry on a transient (network-level) failure. Tool calls are never retried:
mutating operations are not assumed idempotent.

A call that outlives its timeout is abandoned: the caller gets a timeout
error immediately while the underlying task is cancelled. If the caller
itself goes away (client disconnect), the task is left to finish or time
out on its own and its result is discarded.
"""
import asyncio
import time
from typing import Awaitable, Callable, Optional, TypeVar

import httpx
import litellm
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type, stop_after_attempt

from ..errors import (
    AssistantError,
    RequestTimeoutError,
    ToolTimeoutError,
    UpstreamTimeoutError,
    UpstreamUnavailableError,
)
from utils.logger import get_logger
from utils.tracing import add_span_event

logger = get_logger(__name__)

T = TypeVar("T")

# Network-level failures worth one more attempt. Provider error responses
# (bad request, auth, content policy...) are application-level and are not.
TRANSIENT_ERRORS = (
    ConnectionError,
    httpx.TransportError,
    litellm.exceptions.APIConnectionError,
    litellm.exceptions.Timeout,
    litellm.exceptions.ServiceUnavailableError,
)


class RequestDeadline:
    """Overall time budget of one request"""

    def __init__(self, budget_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.budget_seconds = budget_seconds
        self._clock = clock
        self._started = clock()

    def remaining(self) -> float:
        return self.budget_seconds - (self._clock() - self._started)

    def bound(self, timeout: float) -> float:
        """
        Effective timeout for the next external call.

        Raises:
            RequestTimeoutError: the budget is already spent
        """
        remaining = self.remaining()
        if remaining <= 0:
            raise RequestTimeoutError(
                "Request time budget exhausted",
                budget_seconds=self.budget_seconds,
            )
        return min(timeout, remaining)


class _CallExpired(Exception):
    """Internal: the watchdog fired before the call resolved"""


async def run_bounded(coro: Awaitable[T], timeout: float) -> T:
    """
    Await `coro` for at most `timeout` seconds.

    Unlike asyncio.wait_for, cancellation of the *caller* does not cancel the
    call: the task is shielded and keeps its own watchdog, so an in-flight
    tool execution runs to completion or to its timeout.

    Raises:
        _CallExpired: the timeout fired (the task has been cancelled)
    """
    loop = asyncio.get_running_loop()
    task = asyncio.ensure_future(coro)
    state = {"expired": False}

    def _expire():
        if not task.done():
            state["expired"] = True
            task.cancel()

    watchdog = loop.call_later(timeout, _expire)

    def _finished(t: asyncio.Future):
        watchdog.cancel()
        # Retrieve the outcome so orphaned tasks never log "exception was never retrieved"
        if not t.cancelled() and t.exception() is not None and not state.get("awaited"):
            logger.debug(f"Abandoned call finished with {type(t.exception()).__name__}")

    task.add_done_callback(_finished)

    try:
        result = await asyncio.shield(task)
        state["awaited"] = True
        return result
    except asyncio.CancelledError:
        if state["expired"]:
            state["awaited"] = True
            raise _CallExpired() from None
        # Caller went away; the task keeps running under its watchdog
        logger.info("Caller cancelled while a supervised call was in flight; letting it finish")
        raise
    except BaseException:
        state["awaited"] = True
        raise


class CallSupervisor:
    """
    Applies timeouts (and the single model retry) to external calls.

    Args:
        llm_timeout: Hard timeout of one model call, in seconds
        tool_timeout: Hard timeout of one tool execution, in seconds
        max_llm_retries: Retries on transient model failures, clamped to [0, 1]
    """

    def __init__(self, llm_timeout: float, tool_timeout: float, max_llm_retries: int = 1):
        self.llm_timeout = llm_timeout
        self.tool_timeout = tool_timeout
        self.max_llm_retries = max(0, min(max_llm_retries, 1))

    async def call_model(
        self,
        make_call: Callable[[], Awaitable[T]],
        deadline: Optional[RequestDeadline] = None,
    ) -> T:
        """
        Run a model call with timeout and at most one retry.

        Args:
            make_call: Factory returning a fresh awaitable per attempt
            deadline: Request budget; caps every attempt's timeout

        Raises:
            UpstreamTimeoutError: an attempt timed out (not retried)
            UpstreamUnavailableError: second transient failure, or a provider error
            RequestTimeoutError: the request budget ran out
        """
        attempt_number = 0
        try:
            async for attempt in self._retrying():
                attempt_number = attempt.retry_state.attempt_number
                with attempt:
                    timeout, budget_limited = self._timeout_for(self.llm_timeout, deadline)
                    try:
                        return await run_bounded(make_call(), timeout)
                    except _CallExpired:
                        if budget_limited:
                            raise RequestTimeoutError(
                                "Request time budget exhausted while waiting for the model",
                                budget_seconds=deadline.budget_seconds,
                            ) from None
                        logger.error(f"Model call timed out after {timeout:.1f}s")
                        raise UpstreamTimeoutError(
                            f"Language model did not answer within {timeout:.0f}s",
                            timeout_seconds=timeout,
                        ) from None
        except AssistantError:
            raise
        except TRANSIENT_ERRORS as e:
            logger.error(f"Model unavailable after {attempt_number} attempts: {type(e).__name__}")
            raise UpstreamUnavailableError(
                "Language model unavailable",
                attempts=attempt_number,
                reason=type(e).__name__,
            ) from e
        except Exception as e:
            logger.error(f"Model call failed: {type(e).__name__}: {e}")
            raise UpstreamUnavailableError(
                "Language model returned an error",
                attempts=attempt_number,
                reason=type(e).__name__,
                status=getattr(e, "status_code", None),
            ) from e

        raise UpstreamUnavailableError("Language model unavailable", attempts=attempt_number)

    def _retrying(self) -> AsyncRetrying:
        # Timeouts and provider error responses are not retried, only transport failures
        return AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(1 + self.max_llm_retries),
            retry=retry_if_exception_type(TRANSIENT_ERRORS),
            before_sleep=_log_retry,
        )

    async def run_tool(
        self,
        make_call: Callable[[], Awaitable[T]],
        tool_name: str,
        deadline: Optional[RequestDeadline] = None,
    ) -> T:
        """
        Run one tool execution with a hard timeout. Never retried.

        Raises:
            ToolTimeoutError: the tool did not finish in time
            RequestTimeoutError: the request budget ran out
        """
        timeout, budget_limited = self._timeout_for(self.tool_timeout, deadline)
        try:
            return await run_bounded(make_call(), timeout)
        except _CallExpired:
            if budget_limited:
                raise RequestTimeoutError(
                    f"Request time budget exhausted while running {tool_name}",
                    tool=tool_name,
                    budget_seconds=deadline.budget_seconds,
                ) from None
            logger.error(f"Tool {tool_name} timed out after {timeout:.1f}s")
            raise ToolTimeoutError(
                f"Tool {tool_name} did not finish within {timeout:.0f}s",
                tool=tool_name,
                timeout_seconds=timeout,
            ) from None

    @staticmethod
    def _timeout_for(timeout: float, deadline: Optional[RequestDeadline]):
        if deadline is None:
            return timeout, False
        bounded = deadline.bound(timeout)
        return bounded, bounded < timeout


def _log_retry(retry_state: RetryCallState) -> None:
    error = retry_state.outcome.exception() if retry_state.outcome else None
    name = type(error).__name__ if error is not None else "unknown"
    logger.warning(f"Transient model failure ({name}), retrying once")
    add_span_event("llm.retry", {"error": name})
