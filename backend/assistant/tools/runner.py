"""
Tool Runner - the dispatcher

Executes an ExecutableCall against the collaborator bound to its tool name,
through the supervisor, and enforces the ToolResult contract on whatever the
collaborator returns.

Collaborators are plain callables `(arguments_model) -> ToolResult | dict`,
sync or async. Sync collaborators run in a worker thread so a blocking one
still honours the tool timeout.
"""
import asyncio
import inspect
import time
from typing import Any, Callable, Dict, Mapping, Optional, Set

from pydantic import BaseModel, ValidationError

from ..agent.supervisor import CallSupervisor, RequestDeadline
from ..agent.tracing_utils import ToolTracer
from ..errors import AssistantError, ToolContractViolationError, UnknownToolError
from .models import ExecutableCall
from .registry import ToolRegistry, tool_catalogue
from .responses import ToolError, ToolResult
from utils.logger import get_logger, log_tool_execution

logger = get_logger(__name__)

Collaborator = Callable[[BaseModel], Any]


class ToolRunner:
    """
    Executes validated tool calls.

    Responsibilities:
    - Map tool names to collaborators (only registered names can be bound)
    - Run each call under the supervisor's tool timeout
    - Turn collaborator exceptions into a failed ToolResult (no internals leak)
    - Reject structurally invalid results as ToolContractViolation
    """

    def __init__(
        self,
        collaborators: Optional[Mapping[str, Collaborator]] = None,
        supervisor: Optional[CallSupervisor] = None,
        registry: Optional[ToolRegistry] = None,
    ):
        """
        Args:
            collaborators: tool name -> callable
            supervisor: CallSupervisor applying the tool timeout
            registry: ToolRegistry (defaults to the global catalogue)
        """
        self.registry = registry if registry is not None else tool_catalogue
        self.supervisor = supervisor or CallSupervisor(llm_timeout=60, tool_timeout=30)
        self._collaborators: Dict[str, Collaborator] = {}
        for name, handler in (collaborators or {}).items():
            self.bind(name, handler)

    def bind(self, name: str, handler: Collaborator) -> None:
        """Bind a collaborator to a registered tool name"""
        if name not in self.registry:
            raise ValueError(f"Cannot bind collaborator to unregistered tool '{name}'")
        if not callable(handler):
            raise TypeError(f"Collaborator for '{name}' is not callable")
        self._collaborators[name] = handler

    def available_tools(self) -> Set[str]:
        """Names of tools that have a collaborator and can be offered to the model"""
        return set(self._collaborators)

    async def execute(
        self,
        call: ExecutableCall,
        deadline: Optional[RequestDeadline] = None,
        tracer: Optional[ToolTracer] = None,
    ) -> ToolResult:
        """
        Execute a validated, safety-checked, authorized call.

        Args:
            call: ExecutableCall from ToolRegistry.validate_call
            deadline: Request budget bounding the tool timeout
            tracer: ToolTracer carrying request attributes

        Returns:
            ToolResult (success or failure) as produced by the collaborator

        Raises:
            UnknownToolError: no collaborator bound to the name
            ToolTimeoutError / RequestTimeoutError: the collaborator did not finish in time
            ToolContractViolationError: the collaborator returned an invalid shape
        """
        handler = self._collaborators.get(call.name)
        if handler is None:
            raise UnknownToolError(f"Unknown tool: {call.name}", tool=call.name)

        tool_tracer = tracer or ToolTracer(request_id="unknown", mode="unknown")
        definition = call.definition

        with tool_tracer.execution(call.name, definition.category, definition.mutates):
            logger.info(f"Executing tool: {call.name}")
            logger.debug(f"Tool arguments: {call.payload()}")
            start = time.time()

            try:
                raw = await self.supervisor.run_tool(
                    lambda: self._invoke(handler, call.arguments),
                    tool_name=call.name,
                    deadline=deadline,
                )
            except AssistantError:
                log_tool_execution(logger, call.name, False, (time.time() - start) * 1000, error="timeout")
                raise
            except Exception as e:
                # Collaborator bug or business failure raised as exception
                logger.error(f"Error executing tool {call.name}: {type(e).__name__}: {e}", exc_info=True)
                result = ToolError(f"L'outil {call.name} a échoué. Aucune modification n'a été confirmée.")
                log_tool_execution(logger, call.name, False, (time.time() - start) * 1000, error=type(e).__name__)
                tool_tracer.record_result(False, type(e).__name__)
                return result

            result = enforce_tool_result(raw, call.name)
            log_tool_execution(
                logger, call.name, result.success, (time.time() - start) * 1000,
                error=None if result.success else result.message,
            )
            tool_tracer.record_result(result.success, result.message)
            return result

    @staticmethod
    async def _invoke(handler: Collaborator, arguments: BaseModel) -> Any:
        if inspect.iscoroutinefunction(handler) or inspect.iscoroutinefunction(getattr(handler, "__call__", None)):
            return await handler(arguments)
        result = await asyncio.to_thread(handler, arguments)
        if inspect.isawaitable(result):
            result = await result
        return result


def enforce_tool_result(raw: Any, tool_name: str) -> ToolResult:
    """
    Coerce a collaborator's return value into a ToolResult or reject it.

    Accepted: a ToolResult, another pydantic model or a dict with a boolean
    `success` and a string `message`.

    Raises:
        ToolContractViolationError: anything else
    """
    if isinstance(raw, ToolResult):
        return raw
    if isinstance(raw, BaseModel):
        raw = raw.model_dump()
    if not isinstance(raw, dict):
        logger.error(f"Tool '{tool_name}' returned {type(raw).__name__}, expected a ToolResult")
        raise ToolContractViolationError(
            f"Tool {tool_name} returned an invalid result",
            tool=tool_name,
            returned=type(raw).__name__,
        )

    try:
        return ToolResult.model_validate(raw)
    except ValidationError as e:
        fields = sorted({str(err["loc"][0]) for err in e.errors() if err.get("loc")})
        missing = [f for f in ("success", "message") if f not in raw]
        logger.error(f"Tool '{tool_name}' broke the result contract: fields {fields}")
        raise ToolContractViolationError(
            f"Tool {tool_name} returned an invalid result",
            tool=tool_name,
            fields=fields,
            missing=missing or None,
        ) from None
