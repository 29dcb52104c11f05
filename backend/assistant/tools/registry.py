"""
Tool registry (catalogue) and call validator

The registry maps each tool name to exactly one ToolDefinition. validate_call
is the single generic validation step every proposed call goes through before
any tool-specific code runs: name lookup, argument parsing, schema check.
It never touches persistence or the network.
"""
import json
from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError

from ..errors import InvalidArgumentsError, MalformedArgumentsError, UnknownToolError
from .models import ExecutableCall, ToolCall, ToolDefinition
from utils.logger import get_logger

logger = get_logger(__name__)


class ToolRegistry:
    """
    Central catalogue of tools.
    Definitions are registered at import time and never change afterwards.
    """

    def __init__(self):
        self._tools: Dict[str, ToolDefinition] = {}

    def register(self, definition: ToolDefinition) -> None:
        """Register a tool definition"""
        if definition.name in self._tools:
            raise ValueError(f"Tool '{definition.name}' is already registered")

        self._tools[definition.name] = definition
        logger.debug(f"Registered tool: {definition.name} (category: {definition.category})")

    def get_tool(self, name: str) -> Optional[ToolDefinition]:
        """Get a tool by name"""
        return self._tools.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def list_tools(
        self,
        category: Optional[str] = None,
        mutates: Optional[bool] = None,
        names: Optional[Iterable[str]] = None,
    ) -> List[ToolDefinition]:
        """
        List tools, optionally filtered

        Args:
            category: Filter by category
            mutates: Filter by read/write
            names: Restrict to these names (unknown names are skipped)
        """
        tools = list(self._tools.values())

        if names is not None:
            allowed = set(names)
            tools = [t for t in tools if t.name in allowed]

        if category is not None:
            tools = [t for t in tools if t.category == category]

        if mutates is not None:
            tools = [t for t in tools if t.mutates == mutates]

        return tools

    def get_openai_tools(self, names: Optional[Iterable[str]] = None) -> List[Dict[str, Any]]:
        """OpenAI tool schemas for the given names (all tools when None)"""
        return [t.to_openai_schema() for t in self.list_tools(names=names)]

    def validate_call(self, call: ToolCall, available: Optional[Iterable[str]] = None) -> ExecutableCall:
        """
        Promote a proposed ToolCall to an ExecutableCall.

        Args:
            call: Call as proposed by the model (arguments untrusted)
            available: Names that may be called in this request (tools bound to a
                collaborator). None means every registered tool.

        Returns:
            ExecutableCall carrying the validated argument model

        Raises:
            UnknownToolError: name not registered or not available
            MalformedArgumentsError: arguments are not a JSON object
            InvalidArgumentsError: arguments do not match the tool's schema
        """
        definition = self._tools.get(call.name)
        if definition is None or (available is not None and call.name not in set(available)):
            raise UnknownToolError(f"Unknown tool: {call.name}", tool=call.name)

        parsed = parse_arguments(call)

        try:
            # JSON mode: strict typing still lets an integer fill a float field
            arguments = definition.arguments_model.model_validate_json(json.dumps(parsed))
        except ValidationError as e:
            errors = [_describe_error(err) for err in e.errors()]
            first = errors[0]
            raise InvalidArgumentsError(
                f"Invalid arguments for {call.name}: {first['field']}: {first['message']}",
                tool=call.name,
                field=first["field"],
                errors=errors,
            ) from None

        return ExecutableCall(call.id, definition, arguments)


def parse_arguments(call: ToolCall) -> Dict[str, Any]:
    """
    Decode the transport payload of a call into a dict.

    Models send a JSON string; an empty string or null means no arguments.
    """
    raw = call.arguments
    if raw is None:
        return {}

    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8", errors="replace")

    if isinstance(raw, str):
        if not raw.strip():
            return {}
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            raise MalformedArgumentsError(
                f"Arguments for {call.name} are not valid JSON (position {e.pos})",
                tool=call.name,
            ) from None

    if not isinstance(raw, dict):
        raise MalformedArgumentsError(
            f"Arguments for {call.name} must be a JSON object, got {type(raw).__name__}",
            tool=call.name,
        )
    return raw


def _describe_error(error: Dict[str, Any]) -> Dict[str, Any]:
    loc = error.get("loc", ())
    return {
        "field": ".".join(str(p) for p in loc) or "__root__",
        "message": error.get("msg", "invalid value"),
        "type": error.get("type"),
    }


# Global catalogue, filled by assistant.tools.definitions at import
tool_catalogue = ToolRegistry()
