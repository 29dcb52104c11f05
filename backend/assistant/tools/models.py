"""
Models for the tool system
"""
import json
from typing import Any, Dict, Optional, Type

from pydantic import BaseModel, ConfigDict, Field

# JSON-schema key marking an argument field as an entity identifier
ENTITY_REF_KEY = "x-entity-kind"

# entity_ref kind for polymorphic id fields (the id may belong to any kind)
ANY_KIND = "any"


class ToolArguments(BaseModel):
    """
    Base class for tool argument models.

    Unknown fields are rejected and types are strict: "3" is not a number and
    "yes" is not a boolean.
    """
    model_config = ConfigDict(extra="forbid", strict=True)


def entity_ref(kind: str, default: Any = None, description: Optional[str] = None, required: bool = False) -> Any:
    """
    Declare an argument field that carries an entity identifier.

    The Safety Guard checks every such field of a mutating call against the
    identifiers already observed in the request.

    Usage:
        class UpdateClientArgs(ToolArguments):
            id: str = entity_ref("client", required=True)
    """
    return Field(
        default=... if required else default,
        description=description or f"Identifiant ({kind})",
        json_schema_extra={ENTITY_REF_KEY: kind},
    )


class ToolDefinition:
    """
    A tool the model can call.

    Holds the argument model (the single source of the schema), the
    permission flags used by the mode gate, and the metadata used by the
    safety guard and the response assembler. Immutable after registration.
    """

    def __init__(
        self,
        name: str,
        description: str,
        arguments_model: Type[BaseModel],
        parameters_schema: Dict[str, Any],
        category: Optional[str] = None,
        mutates: bool = False,
        critical: bool = False,
        reads_entity_ids: bool = False,
        entity_kind: Optional[str] = None,
        creates_entity: bool = False,
        step_label: Optional[str] = None,
    ):
        self.name = name
        self.description = description
        self.arguments_model = arguments_model
        self.parameters_schema = parameters_schema
        self.category = category
        self.mutates = mutates
        self.critical = critical
        self.reads_entity_ids = reads_entity_ids
        self.entity_kind = entity_kind
        self.creates_entity = creates_entity
        self.step_label = step_label or name.replace("_", " ")
        self.entity_fields = _collect_entity_fields(arguments_model)

    def to_openai_schema(self) -> Dict[str, Any]:
        """Convert to OpenAI tool calling schema"""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters_schema
            }
        }

    def __repr__(self) -> str:
        return f"ToolDefinition({self.name!r}, mutates={self.mutates}, critical={self.critical})"


def _collect_entity_fields(model: Type[BaseModel]) -> Dict[str, str]:
    fields = {}
    for field_name, info in model.model_fields.items():
        extra = info.json_schema_extra
        if isinstance(extra, dict) and ENTITY_REF_KEY in extra:
            fields[field_name] = extra[ENTITY_REF_KEY]
    return fields


class ToolCall(BaseModel):
    """A tool call as proposed by the model: arguments are untrusted"""
    id: str
    name: str
    arguments: Any = None

    def arguments_json(self) -> str:
        if isinstance(self.arguments, str):
            return self.arguments
        return json.dumps(self.arguments if self.arguments is not None else {}, ensure_ascii=False)

    def to_openai_message_part(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments_json()},
        }


class ExecutableCall:
    """A ToolCall whose name resolved and whose arguments passed schema validation"""

    def __init__(self, call_id: str, definition: ToolDefinition, arguments: BaseModel):
        self.id = call_id
        self.definition = definition
        self.arguments = arguments

    @property
    def name(self) -> str:
        return self.definition.name

    def payload(self) -> Dict[str, Any]:
        """Canonical argument dict (what was validated, unset optionals left out)"""
        return self.arguments.model_dump(mode="json", exclude_unset=True)

    def to_tool_call(self) -> ToolCall:
        return ToolCall(id=self.id, name=self.name, arguments=self.payload())

    def __repr__(self) -> str:
        return f"ExecutableCall({self.id!r}, {self.name!r})"
