"""
Tests for the mode permission matrix
"""
import pytest

from assistant.modes import (
    CallAction,
    ToolPermission,
    decide,
    get_tool_permission,
    permission_class,
    permission_matrix,
    tools_for_mode,
)
from assistant.tools import definitions  # noqa: F401 - registers the catalogue
from assistant.tools.registry import tool_catalogue
from models.chat import ChatMode

READ = tool_catalogue.get_tool("list_clients")
SAFE_WRITE = tool_catalogue.get_tool("update_client")
CRITICAL = tool_catalogue.get_tool("mark_invoice_paid")


@pytest.mark.parametrize("definition,mode,expected", [
    (READ, ChatMode.PLAN, CallAction.EXECUTE),
    (READ, ChatMode.AUTO, CallAction.EXECUTE),
    (READ, ChatMode.DEMANDER, CallAction.EXECUTE),
    (SAFE_WRITE, ChatMode.PLAN, CallAction.DESCRIBE),
    (SAFE_WRITE, ChatMode.AUTO, CallAction.EXECUTE),
    (SAFE_WRITE, ChatMode.DEMANDER, CallAction.HOLD),
    (CRITICAL, ChatMode.PLAN, CallAction.DESCRIBE),
    (CRITICAL, ChatMode.AUTO, CallAction.HOLD),
    (CRITICAL, ChatMode.DEMANDER, CallAction.HOLD),
])
def test_decision_matrix(definition, mode, expected):
    assert decide(definition, mode) == expected


def test_confirmation_lifts_the_gate():
    assert decide(CRITICAL, ChatMode.AUTO, confirmed=True) == CallAction.EXECUTE
    assert decide(SAFE_WRITE, ChatMode.DEMANDER, confirmed=True) == CallAction.EXECUTE


def test_confirmation_never_executes_in_plan_mode():
    assert decide(SAFE_WRITE, ChatMode.PLAN, confirmed=True) == CallAction.DESCRIBE
    assert decide(CRITICAL, ChatMode.PLAN, confirmed=True) == CallAction.DESCRIBE


def test_plan_mode_offers_read_tools_only():
    offered = tools_for_mode(tool_catalogue.list_tools(), ChatMode.PLAN)
    assert offered
    assert all(not d.mutates for d in offered)


def test_auto_mode_offers_everything():
    assert len(tools_for_mode(tool_catalogue.list_tools(), ChatMode.AUTO)) == len(tool_catalogue)


def test_permission_classes():
    assert permission_class(READ) == "read"
    assert permission_class(SAFE_WRITE) == "safe_write"
    assert permission_class(CRITICAL) == "critical"


def test_permission_matrix_export():
    assert permission_matrix(SAFE_WRITE) == {
        "plan": "forbidden",
        "auto": "allowed",
        "demander": "confirm",
    }
    assert get_tool_permission(READ, ChatMode.PLAN) == ToolPermission.ALLOWED
