"""
Pydantic models for the assistant API
"""
from .chat import (
    ChatMode,
    ConversationTurn,
    ChatRequest,
    ChatResponse,
    ToolOutcome,
    CreatedEntity,
    PendingConfirmation,
    ErrorBody,
    ErrorResponse,
)
from .sse import (
    SSEEvent,
    ContextEvent,
    ToolCallStartEvent,
    ToolCallCompleteEvent,
    DoneEvent,
    make_event,
)

__all__ = [
    "ChatMode",
    "ConversationTurn",
    "ChatRequest",
    "ChatResponse",
    "ToolOutcome",
    "CreatedEntity",
    "PendingConfirmation",
    "ErrorBody",
    "ErrorResponse",
    "SSEEvent",
    "ContextEvent",
    "ToolCallStartEvent",
    "ToolCallCompleteEvent",
    "DoneEvent",
    "make_event",
]
