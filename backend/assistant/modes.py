"""
Mode / confirmation state machine

Per call decision, from the caller's mode and the tool's permission class:

    mode      | read-only | safe write | critical
    plan      | execute   | describe   | describe
    auto      | execute   | execute    | confirm
    demander  | execute   | confirm    | confirm

"describe" means the call is not executed and the model is told so.
"confirm" means the call is returned to the caller as a PendingConfirmation;
a valid confirmation token turns it into "execute". Nothing is kept between
requests: the token round-trips through the caller.
"""
from enum import Enum
from typing import Dict, Iterable, List

from models.chat import ChatMode
from .tools.models import ToolDefinition


class ToolPermission(str, Enum):
    ALLOWED = "allowed"
    CONFIRM = "confirm"
    FORBIDDEN = "forbidden"


class CallAction(str, Enum):
    EXECUTE = "execute"
    HOLD = "hold"
    DESCRIBE = "describe"


def permission_class(definition: ToolDefinition) -> str:
    if not definition.mutates:
        return "read"
    return "critical" if definition.critical else "safe_write"


def get_tool_permission(definition: ToolDefinition, mode: ChatMode) -> ToolPermission:
    """Permission of a tool in a mode"""
    if not definition.mutates:
        return ToolPermission.ALLOWED
    if mode == ChatMode.PLAN:
        return ToolPermission.FORBIDDEN
    if mode == ChatMode.AUTO and not definition.critical:
        return ToolPermission.ALLOWED
    return ToolPermission.CONFIRM


def decide(definition: ToolDefinition, mode: ChatMode, confirmed: bool = False) -> CallAction:
    """
    What to do with one validated call.

    Args:
        definition: Tool being called
        mode: Caller's mode
        confirmed: The call is the subject of a verified confirmation token.
            It lifts the "confirm" gate only; plan mode still describes.
    """
    permission = get_tool_permission(definition, mode)
    if permission == ToolPermission.ALLOWED:
        return CallAction.EXECUTE
    if permission == ToolPermission.FORBIDDEN:
        return CallAction.DESCRIBE
    return CallAction.EXECUTE if confirmed else CallAction.HOLD


def tools_for_mode(definitions: Iterable[ToolDefinition], mode: ChatMode) -> List[ToolDefinition]:
    """Tools offered to the model: plan mode only sees read-only tools"""
    return [d for d in definitions if get_tool_permission(d, mode) != ToolPermission.FORBIDDEN]


def permission_matrix(definition: ToolDefinition) -> Dict[str, str]:
    """Permission per mode, for GET /chat/tools"""
    return {mode.value: get_tool_permission(definition, mode).value for mode in ChatMode}
