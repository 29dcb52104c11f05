"""
Response Assembler

Collects what happened during a request and produces exactly one of:
a plain message, tool results with follow-up text, or a pending confirmation.
Errors are raised, never mixed into a success payload.
"""
from typing import Any, Dict, List, Optional

from models.chat import ChatMode, ChatResponse, CreatedEntity, PendingConfirmation, ToolOutcome
from ..tools.models import ExecutableCall
from ..tools.responses import ToolResult

PLAN_MODE_NOTICE = "Action non exécutée (mode plan): décris-la dans le plan proposé."

# Result fields tried, in order, to title a created entity
_TITLE_KEYS = ("title", "nom", "numero", "name", "label")


class ResponseBuilder:
    """
    Accumulates outcomes for one request.

    Usage:
        builder = ResponseBuilder(mode=ChatMode.AUTO, context_id="client:abc")
        builder.add_result(call, result)
        response = builder.build(message="3 clients trouvés.")
    """

    def __init__(self, mode: ChatMode, context_id: Optional[str] = None):
        self.mode = mode
        self.context_id = context_id
        self.tool_results: List[ToolOutcome] = []
        self.planned_actions: List[ToolOutcome] = []
        self.working_steps: List[str] = []
        self.entities_created: List[CreatedEntity] = []

    @property
    def has_results(self) -> bool:
        return bool(self.tool_results or self.planned_actions)

    def add_result(self, call: ExecutableCall, result: ToolResult) -> ToolOutcome:
        definition = call.definition
        outcome = ToolOutcome(
            tool_call_id=call.id,
            name=call.name,
            arguments=call.payload(),
            result=result.model_dump(mode="json"),
            step_label=definition.step_label,
        )
        self.tool_results.append(outcome)
        self.working_steps.append(definition.step_label)

        entity = created_entity(call, result)
        if entity is not None:
            self.entities_created.append(entity)
        return outcome

    def add_planned(self, call: ExecutableCall) -> ToolResult:
        """Record a mutating call described in plan mode; returns the synthetic result for the model"""
        result = ToolResult(success=False, message=PLAN_MODE_NOTICE, data={"planned": True})
        self.planned_actions.append(ToolOutcome(
            tool_call_id=call.id,
            name=call.name,
            arguments=call.payload(),
            result=result.model_dump(mode="json"),
            step_label=call.definition.step_label,
        ))
        return result

    def build(self, message: str) -> ChatResponse:
        """Final response once the model has answered"""
        return ChatResponse(
            type="tool_results" if self.has_results else "message",
            mode=self.mode,
            context_id=self.context_id,
            message=message,
            tool_results=self.tool_results,
            planned_actions=self.planned_actions,
            working_steps=self.working_steps,
            entities_created=self.entities_created,
        )

    def pending(self, call: ExecutableCall, token: str, expires_at: float) -> ChatResponse:
        """
        Response for a held call. Nothing from the gated batch ran, but tools
        executed in earlier rounds did; their outcomes are reported here since
        the resubmission cannot see them.
        """
        definition = call.definition
        confirmation = PendingConfirmation(
            tool_call_id=token,
            name=call.name,
            arguments=call.payload(),
            mode=self.mode,
            critical=definition.critical,
            message=confirmation_message(call),
            expires_at=expires_at,
        )
        return ChatResponse(
            type="pending_confirmation",
            mode=self.mode,
            context_id=self.context_id,
            message=confirmation.message,
            tool_results=self.tool_results,
            planned_actions=self.planned_actions,
            working_steps=self.working_steps,
            entities_created=self.entities_created,
            pending_confirmation=confirmation,
        )


def confirmation_message(call: ExecutableCall) -> str:
    label = call.definition.step_label
    details = ", ".join(f"{k}: {v}" for k, v in call.payload().items() if not isinstance(v, (list, dict)))
    suffix = f" ({details})" if details else ""
    return f"Confirmer l'action « {label} »{suffix} ?"


def created_entity(call: ExecutableCall, result: ToolResult) -> Optional[CreatedEntity]:
    """Entity created by a successful creating call, if its result names one"""
    definition = call.definition
    if not (definition.creates_entity and result.success and isinstance(result.data, dict)):
        return None

    data: Dict[str, Any] = result.data
    entity_id = data.get("id")
    if entity_id is None or not definition.entity_kind:
        return None

    title = next((str(data[k]) for k in _TITLE_KEYS if data.get(k)), "Sans titre")
    return CreatedEntity(kind=definition.entity_kind, id=str(entity_id), title=title)
