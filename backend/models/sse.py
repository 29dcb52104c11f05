"""
Pydantic models for Server-Sent Events (SSE)

Event order on POST /chat with stream=true:
    context -> (tool_call_start -> tool_call_complete)* ->
    one of assistant_message | pending_confirmation | error -> done
"""
import json
from datetime import datetime
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field


def _now() -> str:
    return datetime.now().isoformat()


class SSEEvent(BaseModel):
    """Base SSE event model"""
    event: str  # Event type
    data: Dict[str, Any]  # Event data

    def to_sse_format(self) -> str:
        """Convert to SSE format: event: <type>\\ndata: <json>\\n\\n"""
        return f"event: {self.event}\ndata: {json.dumps(self.data, ensure_ascii=False, default=str)}\n\n"


class ContextEvent(BaseModel):
    """Event sent once the scope and mode have been validated"""
    mode: str
    context_id: Optional[str] = None
    tools_offered: int
    timestamp: str = Field(default_factory=_now)


class ToolCallStartEvent(BaseModel):
    """Event sent when a tool call starts"""
    tool_call_id: str
    tool_name: str
    arguments: Dict[str, Any]
    step_label: Optional[str] = None  # French label for the "working" panel
    timestamp: str = Field(default_factory=_now)


class ToolCallCompleteEvent(BaseModel):
    """Event sent when a tool call completes"""
    tool_call_id: str
    tool_name: str
    status: Literal["completed", "error", "planned"]
    message: Optional[str] = None
    timestamp: str = Field(default_factory=_now)


class DoneEvent(BaseModel):
    """Event sent when streaming is complete"""
    message: str = "Stream complete"
    timestamp: str = Field(default_factory=_now)


def make_event(event: str, payload: BaseModel) -> SSEEvent:
    return SSEEvent(event=event, data=payload.model_dump(mode="json"))
