"""
Tracing helpers that keep spans out of the orchestration logic
"""
import time
from contextlib import asynccontextmanager, contextmanager
from typing import Any, Dict, Optional

from utils.tracing import add_span_attributes, add_span_event, get_tracer, record_exception, set_span_status

tracer = get_tracer(__name__)


class BaseTracer:
    """Common attributes for every span of one request"""

    def __init__(self, request_id: str, mode: str, context: Optional[str] = None):
        self.request_id = request_id
        self.mode = mode
        self.context = context

    def _get_base_attributes(self) -> Dict[str, Any]:
        return {
            "request.id": self.request_id,
            "chat.mode": self.mode,
            "chat.context": self.context or "none",
        }


class ChatTracer(BaseTracer):
    """
    Spans for one chat request and its model rounds.

    Usage:
        chat_tracer = ChatTracer(request_id, mode="auto", context="client:abc")

        async with chat_tracer.interaction(max_rounds=3):
            with chat_tracer.round(1, message_count=len(messages)):
                ...
    """

    @asynccontextmanager
    async def interaction(self, max_rounds: int):
        with tracer.start_as_current_span("chat.request"):
            attributes = self._get_base_attributes()
            attributes["chat.max_rounds"] = max_rounds
            add_span_attributes(attributes)
            try:
                yield self
                add_span_attributes({"chat.completed": True})
            except Exception as e:
                add_span_attributes({"chat.error": type(e).__name__})
                record_exception(e)
                raise

    @contextmanager
    def round(self, number: int, message_count: int):
        with tracer.start_as_current_span(f"chat.round.{number}"):
            start = time.time()
            add_span_attributes({"chat.round": number, "chat.message_count": message_count})
            try:
                yield
            finally:
                add_span_attributes({"chat.round_duration_ms": (time.time() - start) * 1000})

    def record_outcome(self, kind: str, tool_calls: int):
        add_span_attributes({"chat.outcome": kind, "chat.tool_calls": tool_calls})


class ToolTracer(BaseTracer):
    """
    Span around a single tool dispatch.

    Usage:
        tool_tracer = ToolTracer(request_id, mode="auto")

        with tool_tracer.execution("list_clients", category="clients", mutates=False):
            result = await handler(arguments)
            tool_tracer.record_result(result.success, result.message)
    """

    def __init__(self, request_id: str, mode: str, context: Optional[str] = None):
        super().__init__(request_id, mode, context)
        self._start_time: Optional[float] = None

    @contextmanager
    def execution(self, tool_name: str, category: Optional[str], mutates: bool):
        with tracer.start_as_current_span(f"tool.{tool_name}"):
            self._start_time = time.time()
            attributes = self._get_base_attributes()
            attributes.update({
                "tool.name": tool_name,
                "tool.category": category or "general",
                "tool.mutates": mutates,
            })
            add_span_attributes(attributes)
            try:
                yield
            except Exception as e:
                record_exception(e)
                add_span_attributes({
                    "tool.duration_ms": self.elapsed_ms(),
                    "tool.success": False,
                    "error.type": type(e).__name__,
                })
                raise

    def elapsed_ms(self) -> float:
        return (time.time() - self._start_time) * 1000 if self._start_time else 0.0

    def record_result(self, success: bool, message: Optional[str] = None):
        duration_ms = self.elapsed_ms()
        add_span_attributes({"tool.duration_ms": duration_ms, "tool.success": success})
        if success:
            add_span_event("Tool completed", {"duration_ms": duration_ms})
            set_span_status(True)
        else:
            add_span_event("Tool completed with failure", {"duration_ms": duration_ms})
            set_span_status(False, message or "Tool returned success=False")
