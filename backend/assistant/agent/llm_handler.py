"""
LLM Handler - language model calls via litellm, plus reply parsing

Calls are non-streaming: the supervisor needs the whole reply to decide
retries and timeouts, and tool calls must be fully resolved before any
dependent content is emitted.
"""
import time
import uuid
from typing import Any, Dict, List, Optional

from litellm import acompletion

from ..errors import UpstreamUnavailableError
from ..tools.models import ToolCall
from utils.logger import get_logger, log_llm_call
from utils.tracing import add_span_attributes, get_tracer, record_exception

logger = get_logger(__name__)
tracer = get_tracer(__name__)


class LLMHandler:
    """
    Thin wrapper around litellm.acompletion adding tracing and call logs.

    An instance is the default `model_client` of ChatService; tests replace it
    with any async callable accepting the same keyword arguments.
    """

    def __init__(self, request_label: Optional[str] = None):
        self.request_label = request_label or "unknown"

    async def acompletion(self, **kwargs) -> Any:
        """
        Call LiteLLM's acompletion with tracing and logging.

        Args:
            **kwargs: All arguments passed to litellm.acompletion

        Returns:
            LiteLLM ModelResponse
        """
        model = kwargs.get("model", "unknown")
        message_count = len(kwargs.get("messages", []))

        with tracer.start_as_current_span("llm.call"):
            add_span_attributes({
                "llm.model": model,
                "llm.message_count": message_count,
                "llm.tool_count": len(kwargs.get("tools") or []),
                "llm.tool_choice": str(kwargs.get("tool_choice", "")),
            })
            start = time.time()
            try:
                response = await acompletion(**kwargs)
            except Exception as e:
                record_exception(e)
                logger.warning(f"LLM call failed: {type(e).__name__}: {e}")
                raise

            duration_ms = (time.time() - start) * 1000
            usage = _get(response, "usage")
            tokens = _get(usage, "total_tokens") if usage is not None else None
            add_span_attributes({"llm.duration_ms": duration_ms, "llm.total_tokens": tokens})
            log_llm_call(logger, model, tokens, duration_ms)
            return response

    __call__ = acompletion


class ModelReply:
    """Normalized assistant message: text and proposed tool calls"""

    def __init__(self, content: Optional[str], tool_calls: List[ToolCall]):
        self.content = content or ""
        self.tool_calls = tool_calls

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)

    def to_message(self) -> Dict[str, Any]:
        """The assistant message to append to the conversation"""
        message: Dict[str, Any] = {"role": "assistant", "content": self.content or None}
        if self.tool_calls:
            message["tool_calls"] = [tc.to_openai_message_part() for tc in self.tool_calls]
        return message


def parse_model_reply(response: Any) -> ModelReply:
    """
    Extract the first choice of an OpenAI-shaped response (object or dict).

    Raises:
        UpstreamUnavailableError: the response has no choices
    """
    choices = _get(response, "choices") or []
    if not choices:
        raise UpstreamUnavailableError("Language model returned no choices", reason="empty_choices")

    message = _get(choices[0], "message")
    if message is None:
        raise UpstreamUnavailableError("Language model returned no message", reason="empty_message")

    tool_calls = []
    for raw in _get(message, "tool_calls") or []:
        function = _get(raw, "function")
        name = _get(function, "name") if function is not None else None
        tool_calls.append(ToolCall(
            id=_get(raw, "id") or f"call_{uuid.uuid4().hex[:12]}",
            name=name or "",
            arguments=_get(function, "arguments") if function is not None else None,
        ))

    return ModelReply(_get(message, "content"), tool_calls)


def _get(obj: Any, key: str) -> Any:
    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj.get(key)
    return getattr(obj, key, None)
