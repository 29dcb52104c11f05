"""
Shared fixtures: a scripted model, recording collaborators, a service factory
"""
import asyncio
import copy
import json
from typing import Any, Dict, List, Optional

import pytest

from assistant.agent.llm_config import LLMConfig
from assistant.agent.supervisor import CallSupervisor
from assistant.chat_service import ChatService
from assistant.confirmation import ConfirmationSigner, InMemoryConfirmationLedger
from assistant.tools.responses import ToolResult, ToolSuccess
from assistant.tools.runner import ToolRunner


# ============================================================================
# OpenAI-shaped replies
# ============================================================================

def text_reply(content: str) -> Dict[str, Any]:
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


def tool_reply(*calls) -> Dict[str, Any]:
    """tool_reply(("call_1", "list_clients", {}), ...)"""
    tool_calls = []
    for call_id, name, arguments in calls:
        if not isinstance(arguments, str):
            arguments = json.dumps(arguments)
        tool_calls.append({
            "id": call_id,
            "type": "function",
            "function": {"name": name, "arguments": arguments},
        })
    return {"choices": [{"message": {"role": "assistant", "content": None, "tool_calls": tool_calls}}]}


HANG = object()


class ScriptedModel:
    """
    Async stand-in for litellm.acompletion.

    Each call pops the next scripted item: a response dict is returned, an
    exception instance is raised, HANG never resolves.
    """

    def __init__(self, *script):
        self.script = list(script)
        self.calls: List[Dict[str, Any]] = []

    async def __call__(self, **kwargs):
        self.calls.append(copy.deepcopy(kwargs))
        if not self.script:
            raise AssertionError("ScriptedModel ran out of replies")
        item = self.script.pop(0)
        if item is HANG:
            await asyncio.sleep(3600)
        if isinstance(item, BaseException):
            raise item
        return item

    @property
    def call_count(self) -> int:
        return len(self.calls)


class RecordingTool:
    """Async collaborator recording the validated arguments it receives"""

    def __init__(self, result: Any = None):
        self.result = result if result is not None else ToolSuccess("ok")
        self.received: List[Any] = []

    async def __call__(self, arguments):
        self.received.append(arguments)
        return self.result

    @property
    def call_count(self) -> int:
        return len(self.received)


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def collaborators():
    """One recording collaborator for each tool used across the tests"""
    return {
        "list_clients": RecordingTool(ToolSuccess(
            "2 clients trouvés",
            data=[{"id": "c1", "nom": "Acme"}, {"id": "c2", "nom": "Globex"}],
        )),
        "get_client": RecordingTool(ToolSuccess("Client trouvé", data={"id": "abc", "nom": "Acme"})),
        "create_client": RecordingTool(ToolSuccess("Client créé", data={"id": "new1", "nom": "Initech"})),
        "update_client": RecordingTool(ToolSuccess("Client mis à jour", data={"id": "abc"})),
        "mark_invoice_paid": RecordingTool(ToolSuccess("Facture payée")),
        "list_invoices": RecordingTool(ToolResult(
            success=True,
            message="1 facture",
            data={"invoices": [{"id": "inv1", "numero": "FAC-2025-001", "client_id": "c1"}]},
        )),
    }


@pytest.fixture
def signer():
    return ConfirmationSigner(secret="test-secret", ttl_seconds=900)


@pytest.fixture
def make_service(collaborators, signer):
    """Factory: make_service(model, **overrides) -> ChatService with short timeouts"""

    def _make(model: ScriptedModel, runner_collaborators: Optional[dict] = None, **overrides) -> ChatService:
        supervisor = overrides.pop("supervisor", None) or CallSupervisor(llm_timeout=1, tool_timeout=1)
        runner = ToolRunner(
            collaborators=collaborators if runner_collaborators is None else runner_collaborators,
            supervisor=supervisor,
        )
        options = {
            "signer": signer,
            "ledger": InMemoryConfirmationLedger(),
            "llm_config": LLMConfig(model="test-model"),
            "max_tool_rounds": 3,
            "request_budget_seconds": 10,
            "nudge_tool_use": True,
        }
        options.update(overrides)
        return ChatService(runner=runner, model_client=model, supervisor=supervisor, **options)

    return _make
