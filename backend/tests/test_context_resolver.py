"""
Tests for context resolution (contextId -> ContextId)
"""
import pytest

from assistant.context_resolver import ContextId, ContextKind, parse_context_string, resolve_context
from assistant.errors import InvalidContextError


def test_entity_context_string():
    ctx = resolve_context("client:abc")
    assert ctx.kind == ContextKind.CLIENT
    assert ctx.id == "abc"
    assert str(ctx) == "client:abc"
    assert not ctx.is_global


def test_global_context_without_id():
    ctx = resolve_context("dashboard")
    assert ctx.kind == ContextKind.DASHBOARD
    assert ctx.id is None
    assert ctx.is_global
    assert str(ctx) == "dashboard"


def test_missing_context_is_none():
    assert resolve_context(None) is None


def test_structured_context_accepts_type_alias():
    """The frontend sends {type, id}; {kind, id} is accepted too"""
    assert resolve_context({"type": "invoice", "id": "inv1"}) == ContextId(kind="invoice", id="inv1")
    assert resolve_context({"kind": "deal", "id": "d1"}).kind == ContextKind.DEAL


def test_existing_context_passes_through():
    ctx = ContextId(kind="quote", id="q1")
    assert resolve_context(ctx) is ctx


@pytest.mark.parametrize("raw", ["client", "mission", "client:", ":abc", "client:abc:def", "", "   "])
def test_malformed_entity_contexts_rejected(raw):
    """Entity kinds need an id; exactly one separator; no blank segment"""
    with pytest.raises(InvalidContextError) as exc_info:
        resolve_context(raw)
    assert exc_info.value.code == "InvalidContext"
    assert exc_info.value.status_code == 400


def test_unknown_kind_rejected():
    with pytest.raises(InvalidContextError) as exc_info:
        resolve_context("spaceship:1")
    assert exc_info.value.details.get("field") == "kind"


def test_separator_count_reason():
    with pytest.raises(InvalidContextError) as exc_info:
        parse_context_string("client:a:b")
    assert exc_info.value.details["reason"] == "separator_count"


def test_structured_context_rejects_unknown_fields():
    with pytest.raises(InvalidContextError):
        resolve_context({"kind": "client", "id": "abc", "extra": 1})


def test_structured_context_blank_id_rejected():
    with pytest.raises(InvalidContextError):
        resolve_context({"kind": "client", "id": "  "})


def test_non_string_context_rejected():
    with pytest.raises(InvalidContextError) as exc_info:
        resolve_context(42)
    assert exc_info.value.details["reason"] == "type"
