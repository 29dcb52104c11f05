"""
Context Resolver - parses the caller's screen scope ("kind" or "kind:id")

The resolved ContextId is immutable for the request. It must be validated
before anything reaches the language model or a tool.
"""
from enum import Enum
from typing import Any, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, model_validator

from .errors import InvalidContextError


class ContextKind(str, Enum):
    """Closed set of screens the assistant can be opened from"""
    DASHBOARD = "dashboard"
    CLIENT = "client"
    CONTACT = "contact"
    DEAL = "deal"
    MISSION = "mission"
    QUOTE = "quote"
    INVOICE = "invoice"
    PROPOSAL = "proposal"
    BRIEF = "brief"
    REVIEW = "review"
    SETTINGS = "settings"


# Kinds that do not designate a single entity
GLOBAL_KINDS = frozenset({ContextKind.DASHBOARD, ContextKind.SETTINGS})

ENTITY_KIND_NAMES = frozenset(k.value for k in ContextKind if k not in GLOBAL_KINDS)


class ContextId(BaseModel):
    """
    Validated scope of the conversation.

    `id` is mandatory and non-blank for every entity kind; the global kinds
    (dashboard, settings) accept no id or an informational one.
    Structured input may use either "kind" or "type" for the kind.
    """
    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    kind: ContextKind = Field(validation_alias=AliasChoices("kind", "type"))
    id: Optional[str] = None

    @model_validator(mode="after")
    def _check_id(self) -> "ContextId":
        if self.id is not None and not self.id.strip():
            raise ValueError("id must not be empty")
        if self.kind not in GLOBAL_KINDS and self.id is None:
            raise ValueError(f"context kind '{self.kind.value}' requires an id")
        return self

    @property
    def is_global(self) -> bool:
        return self.kind in GLOBAL_KINDS

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.id}" if self.id else self.kind.value


def parse_context_string(raw: str) -> ContextId:
    """
    Parse "kind" or "kind:id".

    Exactly zero or one separator is allowed and no segment may be empty, so
    "client:", ":abc" and "client:abc:def" are all rejected.
    """
    parts = raw.split(":")
    if len(parts) > 2:
        raise InvalidContextError(
            "Context must be 'kind' or 'kind:id'",
            contextId=raw,
            reason="separator_count",
        )
    if any(not part.strip() for part in parts):
        raise InvalidContextError(
            "Context segments must not be empty",
            contextId=raw,
            reason="empty_segment",
        )

    payload = {"kind": parts[0], "id": parts[1] if len(parts) == 2 else None}
    return _validate(payload, raw)


def resolve_context(raw: Union[None, str, dict, ContextId, Any]) -> Optional[ContextId]:
    """
    Resolve the caller-supplied contextId.

    Args:
        raw: None (no scope), a "kind[:id]" string, a {"kind"/"type", "id"} object,
            or an already-built ContextId

    Returns:
        The ContextId, or None when the caller supplied no scope

    Raises:
        InvalidContextError: unknown kind, missing id, malformed string
    """
    if raw is None:
        return None
    if isinstance(raw, ContextId):
        return raw
    if isinstance(raw, str):
        return parse_context_string(raw)
    if isinstance(raw, dict):
        return _validate(raw, raw)
    raise InvalidContextError(
        "Context must be a string or an object",
        contextId=repr(raw)[:100],
        reason="type",
    )


def _validate(payload: dict, original: Any) -> ContextId:
    try:
        return ContextId.model_validate(payload)
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(p) for p in first.get("loc", ())) or None
        raise InvalidContextError(
            f"Invalid context: {first.get('msg', 'validation failed')}",
            contextId=original if isinstance(original, str) else None,
            field=field,
        ) from None
