"""
Tool decorator: turns a pydantic argument model into a registered tool

The argument model is the only place a tool's schema is declared. The same
model validates the model's proposed arguments and produces the OpenAI
function-calling schema, so the two can never drift apart.
"""
from typing import Any, Callable, Dict, Optional, Type

from pydantic import BaseModel

from .models import ENTITY_REF_KEY, ToolDefinition
from utils.logger import get_logger

logger = get_logger(__name__)


def tool(
    name: str,
    description: str,
    category: Optional[str] = None,
    mutates: bool = False,
    critical: bool = False,
    reads_entity_ids: Optional[bool] = None,
    entity_kind: Optional[str] = None,
    creates_entity: bool = False,
    step_label: Optional[str] = None,
    registry=None,
) -> Callable[[Type[BaseModel]], Type[BaseModel]]:
    """
    Decorator registering a tool whose arguments are the decorated model.

    Usage:
        @tool(
            name="update_client",
            description="Modifie un client existant",
            category="clients",
            mutates=True,
            entity_kind="client",
        )
        class UpdateClientArgs(ToolArguments):
            id: str = entity_ref("client", required=True)
            nom: Optional[str] = None

    Args:
        name: Unique tool name exposed to the model
        description: What the tool does (sent to the model)
        category: Grouping used by GET /chat/tools
        mutates: True for any tool that writes, sends or converts
        critical: Mutating tool that always needs confirmation outside plan mode
            (sends, payments, conversions, customer-visible status changes)
        reads_entity_ids: Whether identifiers in successful results count as
            observed. Defaults to True for read tools and creating tools.
        entity_kind: Kind of entity the tool's result describes
        creates_entity: Successful results describe a newly created entity
        step_label: French label shown in the "working" panel
        registry: ToolRegistry to register into (defaults to the global catalogue)
    """
    if critical and not mutates:
        raise ValueError(f"Tool '{name}' cannot be critical without mutating")

    def decorator(model_cls: Type[BaseModel]) -> Type[BaseModel]:
        if not (isinstance(model_cls, type) and issubclass(model_cls, BaseModel)):
            raise TypeError(f"@tool('{name}') must decorate a pydantic model, got {model_cls!r}")

        reads = reads_entity_ids
        if reads is None:
            reads = (not mutates) or creates_entity

        definition = ToolDefinition(
            name=name,
            description=description,
            arguments_model=model_cls,
            parameters_schema=build_parameters_schema(model_cls),
            category=category,
            mutates=mutates,
            critical=critical,
            reads_entity_ids=reads,
            entity_kind=entity_kind,
            creates_entity=creates_entity,
            step_label=step_label,
        )

        # Registration happens at import time
        if registry is None:
            from .registry import tool_catalogue
            tool_catalogue.register(definition)
        else:
            registry.register(definition)

        model_cls._tool = definition
        return model_cls

    return decorator


def build_parameters_schema(model_cls: Type[BaseModel]) -> Dict[str, Any]:
    """
    Build the "parameters" object of an OpenAI function schema.

    Nested models are inlined ($ref resolved) and pydantic-only keys are
    stripped so every provider accepts the schema.
    """
    schema = model_cls.model_json_schema()
    defs = schema.get("$defs", {})
    if defs:
        schema = _resolve_refs(schema, defs)
    cleaned = _clean_schema(schema)

    result = {
        "type": "object",
        "properties": cleaned.get("properties", {}),
        "required": cleaned.get("required", []),
        "additionalProperties": False,
    }
    logger.debug(f"Generated schema for {model_cls.__name__}: {list(result['properties'])}")
    return result


def _clean_schema(schema: Any) -> Any:
    """
    Remove keys providers reject ($defs, title, internal x- markers) and
    collapse Optional[X] (anyOf [X, null]) into X; optionality is carried by
    the parent's "required" list.
    """
    if not isinstance(schema, dict):
        return schema

    any_of = schema.get("anyOf")
    if isinstance(any_of, list):
        non_null = [s for s in any_of if not (isinstance(s, dict) and s.get("type") == "null")]
        if len(non_null) == 1 and len(non_null) != len(any_of):
            merged = {k: v for k, v in schema.items() if k not in ("anyOf", "default")}
            merged.update(non_null[0])
            return _clean_schema(merged)

    cleaned = {}
    for key, value in schema.items():
        if key in ("$schema", "title", "$defs", "additionalProperties") or key == ENTITY_REF_KEY:
            continue
        if key == "default" and value is None:
            continue
        if key == "properties" and isinstance(value, dict):
            cleaned[key] = {prop: _clean_schema(sub) for prop, sub in value.items()}
        elif isinstance(value, dict):
            cleaned[key] = _clean_schema(value)
        elif isinstance(value, list):
            cleaned[key] = [_clean_schema(item) for item in value]
        else:
            cleaned[key] = value
    return cleaned


def _resolve_refs(schema: Any, defs: Dict[str, Any]) -> Any:
    """Recursively inline "#/$defs/<Name>" references"""
    if isinstance(schema, dict):
        ref_path = schema.get("$ref")
        if isinstance(ref_path, str) and ref_path.startswith("#/$defs/"):
            def_name = ref_path[len("#/$defs/"):]
            if def_name in defs:
                resolved = _resolve_refs(dict(defs[def_name]), defs)
                # Sibling keys (description) next to a $ref survive
                siblings = {k: v for k, v in schema.items() if k != "$ref"}
                return {**resolved, **siblings}
            return schema
        return {key: _resolve_refs(value, defs) for key, value in schema.items()}
    if isinstance(schema, list):
        return [_resolve_refs(item, defs) for item in schema]
    return schema
