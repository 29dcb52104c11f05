"""
Chat request/response models (wire format of POST /chat)

Incoming and outgoing JSON uses camelCase (contextId, confirmedToolCallId,
toolResults...); Python attributes are snake_case.
"""
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

MAX_MESSAGE_LENGTH = 8000


class ChatMode(str, Enum):
    """Per-request execution policy for mutating tools"""
    PLAN = "plan"
    AUTO = "auto"
    DEMANDER = "demander"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ConversationTurn(BaseModel):
    """One prior turn, carried by the caller (no server-side history)"""
    role: Literal["user", "assistant"]
    content: str = Field(max_length=MAX_MESSAGE_LENGTH * 4)


class ChatRequest(CamelModel):
    """Request model for POST /chat"""
    message: str = Field(min_length=1, max_length=MAX_MESSAGE_LENGTH)
    history: List[ConversationTurn] = Field(default_factory=list)
    mode: ChatMode = ChatMode.AUTO
    context_id: Optional[Union[str, Dict[str, Any]]] = None

    # Confirmation handshake (see assistant.confirmation)
    confirmed_action: bool = False
    confirmed_tool_call_id: Optional[str] = None
    confirmed_tool_name: Optional[str] = None
    confirmed_arguments: Optional[Dict[str, Any]] = None

    stream: bool = False

    @field_validator("message")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("message must not be blank")
        return value


class ToolOutcome(CamelModel):
    """A tool call that was dispatched (or described in plan mode) and its result"""
    tool_call_id: str
    name: str
    arguments: Dict[str, Any]
    result: Dict[str, Any]
    step_label: Optional[str] = None


class CreatedEntity(CamelModel):
    """Entity returned by a successful creating call (used to open a tab in the UI)"""
    kind: str
    id: str
    title: str


class PendingConfirmation(CamelModel):
    """
    A mutating call held for explicit user approval.

    tool_call_id is the signed confirmation token: resubmit it as
    confirmedToolCallId with confirmedAction=true to execute the call.
    """
    tool_call_id: str
    name: str
    arguments: Dict[str, Any]
    mode: ChatMode
    critical: bool = False
    message: str
    expires_at: float


class ChatResponse(CamelModel):
    """
    Response model for POST /chat.

    type tells which shape this is:
    - message: the model answered without tools
    - tool_results: tools ran; message holds the follow-up text
    - pending_confirmation: nothing ran from the gated batch; see pending_confirmation
    """
    type: Literal["message", "tool_results", "pending_confirmation"]
    mode: ChatMode
    context_id: Optional[str] = None
    message: Optional[str] = None
    tool_results: List[ToolOutcome] = Field(default_factory=list)
    planned_actions: List[ToolOutcome] = Field(default_factory=list)
    working_steps: List[str] = Field(default_factory=list)
    entities_created: List[CreatedEntity] = Field(default_factory=list)
    pending_confirmation: Optional[PendingConfirmation] = None


class ErrorBody(BaseModel):
    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class ErrorResponse(BaseModel):
    """Body of every non-2xx response"""
    error: ErrorBody
