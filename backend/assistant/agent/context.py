"""
Agent Context - request-scoped state of one chat turn
"""
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from models.chat import ChatMode
from ..context_resolver import ContextId
from ..tools.safety import KnownEntityIds
from .supervisor import RequestDeadline


class AgentContext(BaseModel):
    """
    Everything the orchestration loop carries for one request.

    Built once per request and dropped at its end; nothing here is shared
    between requests:
    - request_id: correlation id for logs and spans
    - mode: execution policy chosen by the caller
    - context: resolved screen scope (None on a global screen)
    - known_entities: identifiers observed so far (read-before-write)
    - deadline: overall time budget
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    request_id: str
    mode: ChatMode
    context: Optional[ContextId] = None
    known_entities: KnownEntityIds = Field(default_factory=KnownEntityIds)
    deadline: RequestDeadline
    nudged: bool = False

    @property
    def context_label(self) -> Optional[str]:
        return str(self.context) if self.context else None
