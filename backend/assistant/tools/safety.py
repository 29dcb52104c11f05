"""
Safety Guard - read-before-write

A mutating call may only reference identifiers the model has actually seen in
this request: the active context id, ids returned by successful reading
calls, or ids attested by a confirmation token. Anything else is treated as
a fabricated identifier and rejected before dispatch.
"""
from typing import Any, Iterable, List, Optional, Set, Tuple

from ..context_resolver import ENTITY_KIND_NAMES, ContextId
from ..errors import UnverifiedReferenceError
from .models import ANY_KIND, ExecutableCall, ToolDefinition
from .responses import ToolResult
from utils.logger import get_logger

logger = get_logger(__name__)

EntityRef = Tuple[Optional[str], str]

# Kinds an identifier can carry: the context kinds plus document templates
REF_KINDS = ENTITY_KIND_NAMES | {"template"}

# Plural / alternate result keys pointing at a kind
_KEY_KINDS = {kind: kind for kind in REF_KINDS}
_KEY_KINDS.update({f"{kind}s": kind for kind in REF_KINDS})
_KEY_KINDS.update({"linked_quote": "quote", "recipients": "contact"})


class KnownEntityIds:
    """
    Request-scoped set of observed (kind, id) pairs.

    A pair with kind None was observed without a reliable kind (for instance
    an "id" nested under an unrecognised key); it matches any kind. Looking
    up kind None (a polymorphic field such as send_email.entity_id) matches
    an id observed under any kind.
    """

    def __init__(self, pairs: Optional[Iterable[EntityRef]] = None):
        self._pairs: Set[EntityRef] = set()
        self._ids: Set[str] = set()
        for kind, entity_id in pairs or ():
            self.add(kind, entity_id)

    def add(self, kind: Optional[str], entity_id: Any) -> None:
        if entity_id is None or isinstance(entity_id, bool):
            return
        if isinstance(entity_id, (int, float)) or isinstance(entity_id, str):
            value = str(entity_id).strip()
            if value:
                self._pairs.add((kind, value))
                self._ids.add(value)

    def contains(self, kind: Optional[str], entity_id: str) -> bool:
        if kind is None:
            return entity_id in self._ids
        return (kind, entity_id) in self._pairs or (None, entity_id) in self._pairs

    def __contains__(self, ref: EntityRef) -> bool:
        return self.contains(*ref)

    def __len__(self) -> int:
        return len(self._pairs)

    def snapshot(self) -> List[EntityRef]:
        return sorted(self._pairs, key=lambda p: (p[0] or "", p[1]))

    def add_context(self, context: Optional[ContextId]) -> None:
        if context is not None and context.id:
            self.add(context.kind.value, context.id)

    def harvest(self, data: Any, kind: Optional[str]) -> int:
        """
        Record every identifier found in a tool's result data.

        Rules:
        - "id" belongs to the kind of the enclosing object (the tool's
          entity_kind at top level, the parent key's kind when nested)
        - "<kind>_id" / "<kind>_ids" keys belong to that kind
        - anything nested under an unrecognised key is kind-agnostic

        Returns:
            Number of new pairs
        """
        before = len(self._pairs)
        self._walk(data, kind)
        return len(self._pairs) - before

    def _walk(self, value: Any, kind: Optional[str]) -> None:
        if isinstance(value, list):
            for item in value:
                self._walk(item, kind)
            return
        if not isinstance(value, dict):
            return

        for key, item in value.items():
            if key == "id":
                self.add(kind, item)
            elif key.endswith("_ids") and key[:-4] in REF_KINDS and isinstance(item, list):
                for entity_id in item:
                    self.add(key[:-4], entity_id)
            elif key.endswith("_id") and key[:-3] in REF_KINDS:
                self.add(key[:-3], item)
            elif isinstance(item, (dict, list)):
                self._walk(item, _KEY_KINDS.get(key))


class SafetyGuard:
    """Enforces read-before-write on mutating calls and records what reads surfaced"""

    def check(
        self,
        call: ExecutableCall,
        known: KnownEntityIds,
        context: Optional[ContextId] = None,
    ) -> List[EntityRef]:
        """
        Verify every entity identifier of a mutating call.

        Read calls are exempt. An identifier passes when it is the active
        context (same kind) or was observed earlier in the request.

        Returns:
            The verified (kind, id) references (attested into confirmation tokens)

        Raises:
            UnverifiedReferenceError: first identifier that was never observed
        """
        if not call.definition.mutates:
            return []

        verified = []
        for field_name, kind in call.definition.entity_fields.items():
            for ref_kind, entity_id in _field_refs(call, field_name, kind):
                if _is_context(context, ref_kind, entity_id):
                    verified.append((ref_kind, entity_id))
                    continue
                if known.contains(ref_kind, entity_id):
                    verified.append((ref_kind, entity_id))
                    continue
                raise UnverifiedReferenceError(
                    f"{call.name}: {field_name}='{entity_id}' was never returned by a read "
                    f"or the active context; look it up first",
                    tool=call.name,
                    field=field_name,
                    id=entity_id,
                    kind=ref_kind,
                )
        return verified

    def observe(self, definition: ToolDefinition, result: ToolResult, known: KnownEntityIds) -> int:
        """Add identifiers from a successful result to the known set"""
        if not result.success or not definition.reads_entity_ids or result.data is None:
            return 0
        added = known.harvest(result.data, definition.entity_kind)
        if added:
            logger.debug(f"{definition.name} surfaced {added} new identifiers")
        return added


def _field_refs(call: ExecutableCall, field_name: str, kind: str) -> List[EntityRef]:
    value = getattr(call.arguments, field_name, None)
    if value is None:
        return []
    values = value if isinstance(value, (list, tuple, set)) else [value]
    ref_kind = None if kind == ANY_KIND else kind
    return [(ref_kind, str(v)) for v in values if v is not None]


def _is_context(context: Optional[ContextId], kind: Optional[str], entity_id: str) -> bool:
    if context is None or context.id != entity_id:
        return False
    return kind is None or kind == context.kind.value
