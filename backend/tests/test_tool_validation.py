"""
Tests for the tool catalogue and call validation
"""
from typing import Optional

import pytest
from pydantic import Field

from assistant.errors import InvalidArgumentsError, MalformedArgumentsError, UnknownToolError
from assistant.tools import definitions  # noqa: F401 - registers the catalogue
from assistant.tools.decorator import tool
from assistant.tools.models import ToolArguments, ToolCall, entity_ref
from assistant.tools.registry import ToolRegistry, tool_catalogue


EXPECTED_TOOLS = {
    "list_clients", "get_client", "create_client", "update_client",
    "list_contacts", "create_contact", "update_contact", "link_contact_to_client",
    "list_deals", "get_deal", "create_deal", "update_deal_status",
    "list_quotes", "create_quote", "update_quote_status", "convert_quote_to_invoice",
    "list_invoices", "create_invoice", "update_invoice", "mark_invoice_paid", "send_email",
    "list_missions", "get_mission", "create_mission", "update_mission_status",
    "list_proposals", "list_proposal_templates", "create_proposal", "set_proposal_status",
    "list_briefs", "list_brief_templates", "create_brief", "send_brief",
    "list_reviews", "create_review_request",
    "get_company_settings", "get_financial_summary",
}


# ============================================================================
# Catalogue
# ============================================================================

def test_catalogue_is_complete():
    names = {t.name for t in tool_catalogue.list_tools()}
    assert EXPECTED_TOOLS <= names


def test_critical_tools_are_mutating():
    for definition in tool_catalogue.list_tools():
        if definition.critical:
            assert definition.mutates, definition.name


def test_sends_and_payments_are_critical():
    for name in ("send_email", "mark_invoice_paid", "convert_quote_to_invoice", "send_brief"):
        assert tool_catalogue.get_tool(name).critical


def test_entity_fields_discovered_from_schema():
    assert tool_catalogue.get_tool("update_client").entity_fields == {"id": "client"}
    assert tool_catalogue.get_tool("link_contact_to_client").entity_fields == {
        "contact_id": "contact",
        "client_id": "client",
    }
    assert tool_catalogue.get_tool("list_clients").entity_fields == {}


def test_mutating_tools_guard_every_identifier():
    """No identifier reaches a write without going through the safety guard"""
    for definition in tool_catalogue.list_tools():
        if not definition.mutates:
            continue
        for field_name in definition.arguments_model.model_fields:
            if field_name == "id" or field_name.endswith(("_id", "_ids")):
                assert field_name in definition.entity_fields, f"{definition.name}.{field_name}"


def test_template_references_are_guarded():
    assert tool_catalogue.get_tool("create_proposal").entity_fields["template_id"] == "template"
    assert tool_catalogue.get_tool("create_brief").entity_fields["template_id"] == "template"
    assert tool_catalogue.get_tool("list_brief_templates").reads_entity_ids


def test_openai_schema_is_clean():
    """Exported schemas carry no pydantic titles, $defs or internal markers"""
    schema = tool_catalogue.get_tool("create_quote").to_openai_schema()
    assert schema["type"] == "function"
    params = schema["function"]["parameters"]
    dumped = repr(params)
    assert "title" not in params
    assert "$defs" not in dumped
    assert "$ref" not in dumped
    assert "x-entity-kind" not in dumped
    assert params["additionalProperties"] is False
    assert "items" in params["required"]
    assert params["properties"]["items"]["type"] == "array"
    assert params["properties"]["items"]["items"]["type"] == "object"


def test_optional_fields_collapse_to_plain_type():
    params = tool_catalogue.get_tool("update_client").parameters_schema
    assert params["properties"]["nom"]["type"] == "string"
    assert params["required"] == ["id"]


def test_duplicate_registration_rejected():
    registry = ToolRegistry()

    @tool(name="dup", description="first", registry=registry)
    class FirstArgs(ToolArguments):
        pass

    with pytest.raises(ValueError):
        @tool(name="dup", description="second", registry=registry)
        class SecondArgs(ToolArguments):
            pass


def test_critical_requires_mutates():
    with pytest.raises(ValueError):
        tool(name="bad", description="bad", critical=True)


def test_decorator_requires_pydantic_model():
    with pytest.raises(TypeError):
        @tool(name="not_a_model", description="x", registry=ToolRegistry())
        class Plain:
            pass


# ============================================================================
# validate_call
# ============================================================================

def test_valid_call_promoted():
    call = tool_catalogue.validate_call(ToolCall(id="c1", name="update_client", arguments='{"id": "abc", "nom": "Acme"}'))
    assert call.name == "update_client"
    assert call.arguments.id == "abc"
    assert call.payload() == {"id": "abc", "nom": "Acme"}


def test_empty_arguments_mean_no_arguments():
    call = tool_catalogue.validate_call(ToolCall(id="c1", name="list_clients", arguments=""))
    assert call.payload() == {}


def test_unknown_tool():
    with pytest.raises(UnknownToolError) as exc_info:
        tool_catalogue.validate_call(ToolCall(id="c1", name="delete_everything", arguments="{}"))
    assert exc_info.value.details["tool"] == "delete_everything"
    assert exc_info.value.status_code == 422


def test_unavailable_tool_is_unknown():
    """A registered tool without a collaborator cannot be called"""
    with pytest.raises(UnknownToolError):
        tool_catalogue.validate_call(
            ToolCall(id="c1", name="send_email", arguments="{}"),
            available={"list_clients"},
        )


def test_malformed_json():
    with pytest.raises(MalformedArgumentsError) as exc_info:
        tool_catalogue.validate_call(ToolCall(id="c1", name="list_clients", arguments='{"search": '))
    assert exc_info.value.details["tool"] == "list_clients"


def test_non_object_arguments():
    with pytest.raises(MalformedArgumentsError):
        tool_catalogue.validate_call(ToolCall(id="c1", name="list_clients", arguments="[1, 2]"))


def test_type_mismatch_names_field():
    with pytest.raises(InvalidArgumentsError) as exc_info:
        tool_catalogue.validate_call(ToolCall(id="c1", name="update_client", arguments={"id": "abc", "nom": 42}))
    assert exc_info.value.details["tool"] == "update_client"
    assert exc_info.value.details["field"] == "nom"


def test_missing_required_field():
    with pytest.raises(InvalidArgumentsError) as exc_info:
        tool_catalogue.validate_call(ToolCall(id="c1", name="update_client", arguments={"nom": "Acme"}))
    assert exc_info.value.details["field"] == "id"


def test_unexpected_field_rejected():
    with pytest.raises(InvalidArgumentsError) as exc_info:
        tool_catalogue.validate_call(
            ToolCall(id="c1", name="list_clients", arguments={"search": "a", "drop_table": True})
        )
    assert exc_info.value.details["field"] == "drop_table"


def test_invalid_email_rejected():
    with pytest.raises(InvalidArgumentsError):
        tool_catalogue.validate_call(ToolCall(
            id="c1",
            name="send_email",
            arguments={"entity_type": "invoice", "entity_id": "inv1", "to_email": "not-an-email"},
        ))


def test_custom_registry_schema():
    registry = ToolRegistry()

    @tool(name="archive_note", description="Archive a note", mutates=True, registry=registry)
    class ArchiveNoteArgs(ToolArguments):
        note_id: str = entity_ref("brief", required=True)
        reason: Optional[str] = Field(default=None, max_length=200)

    definition = registry.get_tool("archive_note")
    assert definition.entity_fields == {"note_id": "brief"}
    assert definition.parameters_schema["required"] == ["note_id"]
    assert len(registry) == 1
    assert "archive_note" in registry


# ============================================================================
# Strict typing
# ============================================================================

def test_number_as_string_rejected():
    with pytest.raises(InvalidArgumentsError) as exc_info:
        tool_catalogue.validate_call(ToolCall(
            id="c1",
            name="create_quote",
            arguments={"items": [{"description": "Montage", "quantite": "3", "prix_unitaire": 10}]},
        ))
    assert exc_info.value.details["field"] == "items.0.quantite"


def test_bool_as_string_rejected():
    with pytest.raises(InvalidArgumentsError) as exc_info:
        tool_catalogue.validate_call(ToolCall(id="c1", name="send_brief", arguments={"id": "b1", "send_email": "yes"}))
    assert exc_info.value.details["field"] == "send_email"


def test_bool_as_number_rejected():
    with pytest.raises(InvalidArgumentsError):
        tool_catalogue.validate_call(ToolCall(
            id="c1",
            name="link_contact_to_client",
            arguments={"contact_id": "ct1", "client_id": "c1", "is_primary": 1},
        ))


def test_integer_fills_float_field():
    call = tool_catalogue.validate_call(ToolCall(
        id="c1",
        name="create_quote",
        arguments='{"items": [{"description": "Montage", "quantite": 3, "prix_unitaire": 10.5}]}',
    ))
    item = call.arguments.items[0]
    assert item.quantite == 3.0
    assert isinstance(item.quantite, float)
