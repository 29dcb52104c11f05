"""
Tests for the read-before-write safety guard
"""
import pytest

from assistant.context_resolver import ContextId
from assistant.errors import UnverifiedReferenceError
from assistant.tools import definitions  # noqa: F401 - registers the catalogue
from assistant.tools.models import ToolCall
from assistant.tools.registry import tool_catalogue
from assistant.tools.responses import ToolError, ToolSuccess
from assistant.tools.safety import KnownEntityIds, SafetyGuard


def _call(name, **arguments):
    return tool_catalogue.validate_call(ToolCall(id="call_1", name=name, arguments=arguments))


@pytest.fixture
def guard():
    return SafetyGuard()


# ============================================================================
# check
# ============================================================================

def test_fabricated_id_rejected(guard):
    """A write naming an id nobody has seen is refused before dispatch"""
    with pytest.raises(UnverifiedReferenceError) as exc_info:
        guard.check(_call("update_client", id="zzz", nom="X"), KnownEntityIds())

    details = exc_info.value.details
    assert details["tool"] == "update_client"
    assert details["field"] == "id"
    assert details["id"] == "zzz"
    assert exc_info.value.status_code == 422


def test_context_id_is_verified(guard):
    context = ContextId(kind="client", id="abc")
    refs = guard.check(_call("update_client", id="abc", nom="X"), KnownEntityIds(), context)
    assert refs == [("client", "abc")]


def test_context_of_another_kind_not_accepted(guard):
    """A client context does not vouch for an invoice with the same id"""
    context = ContextId(kind="client", id="abc")
    with pytest.raises(UnverifiedReferenceError) as exc_info:
        guard.check(_call("update_invoice", id="abc"), KnownEntityIds(), context)
    assert exc_info.value.details["kind"] == "invoice"


def test_context_matches_polymorphic_reference(guard):
    context = ContextId(kind="invoice", id="inv1")
    refs = guard.check(
        _call("send_email", entity_type="invoice", entity_id="inv1", to_email="a@b.fr"),
        KnownEntityIds(),
        context,
    )
    assert refs == [(None, "inv1")]


def test_made_up_template_rejected(guard):
    context = ContextId(kind="deal", id="d1")
    with pytest.raises(UnverifiedReferenceError) as exc_info:
        guard.check(
            _call("create_brief", deal_id="d1", title="Brief vidéo", template_id="tpl-unknown"),
            KnownEntityIds(),
            context,
        )
    assert exc_info.value.details["field"] == "template_id"


def test_listed_template_accepted(guard):
    known = KnownEntityIds()
    guard.observe(
        tool_catalogue.get_tool("list_proposal_templates"),
        ToolSuccess("1 modèle", data={"templates": [{"id": "tpl1", "name": "Vidéo corporate"}]}),
        known,
    )
    refs = guard.check(_call("create_proposal", deal_id="d1", template_id="tpl1"), known, ContextId(kind="deal", id="d1"))
    assert ("template", "tpl1") in refs


def test_id_from_prior_read_is_verified(guard):
    known = KnownEntityIds()
    guard.observe(
        tool_catalogue.get_tool("list_clients"),
        ToolSuccess("2 clients", data=[{"id": "c1"}, {"id": "c2"}]),
        known,
    )
    assert guard.check(_call("update_client", id="c2"), known) == [("client", "c2")]


def test_id_of_another_kind_not_accepted(guard):
    """An invoice id does not authorize a client update"""
    known = KnownEntityIds([("invoice", "x1")])
    with pytest.raises(UnverifiedReferenceError):
        guard.check(_call("update_client", id="x1"), known)


def test_every_reference_field_checked(guard):
    known = KnownEntityIds([("contact", "ct1")])
    with pytest.raises(UnverifiedReferenceError) as exc_info:
        guard.check(_call("link_contact_to_client", contact_id="ct1", client_id="ghost"), known)
    assert exc_info.value.details["field"] == "client_id"


def test_polymorphic_reference_matches_any_kind(guard):
    known = KnownEntityIds([("invoice", "inv1")])
    refs = guard.check(
        _call("send_email", entity_type="invoice", entity_id="inv1", to_email="a@b.fr"),
        known,
    )
    assert refs == [(None, "inv1")]


def test_read_calls_are_exempt(guard):
    assert guard.check(_call("get_client", id="anything"), KnownEntityIds()) == []


def test_optional_reference_left_out_is_fine(guard):
    assert guard.check(_call("create_deal", title="Refonte site"), KnownEntityIds()) == []


# ============================================================================
# observe / harvest
# ============================================================================

def test_failed_results_are_not_observed(guard):
    known = KnownEntityIds()
    added = guard.observe(tool_catalogue.get_tool("list_clients"), ToolError("boom", data=[{"id": "c1"}]), known)
    assert added == 0
    assert len(known) == 0


def test_plain_writes_are_not_observed(guard):
    """Ids echoed back by an update are not new evidence"""
    known = KnownEntityIds()
    guard.observe(tool_catalogue.get_tool("update_client"), ToolSuccess("ok", data={"id": "c9"}), known)
    assert not known.contains("client", "c9")


def test_created_entity_is_observed(guard):
    known = KnownEntityIds()
    guard.observe(tool_catalogue.get_tool("create_client"), ToolSuccess("ok", data={"id": "new1"}), known)
    assert known.contains("client", "new1")


def test_harvest_follows_keys():
    known = KnownEntityIds()
    known.harvest({
        "invoices": [{"id": "inv1", "client_id": "c1", "mission_ids": ["m1", "m2"]}],
        "linked_quote": {"id": "q1"},
        "misc": {"id": "x"},
    }, kind=None)

    assert known.contains("invoice", "inv1")
    assert known.contains("client", "c1")
    assert known.contains("mission", "m2")
    assert known.contains("quote", "q1")
    # kind-agnostic id matches any kind
    assert known.contains("deal", "x")
    assert not known.contains("client", "inv1")


def test_numeric_ids_normalized():
    known = KnownEntityIds()
    known.harvest([{"id": 42}], kind="deal")
    assert known.contains("deal", "42")
