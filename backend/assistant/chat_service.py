"""
Chat service: the per-request orchestration loop

inbound request -> context resolved -> (confirmed call re-validated and run)
-> model call -> proposed calls validated -> safety guard -> mode gate ->
dispatch -> results fed back to the model -> response assembled.

Everything request-scoped lives in an AgentContext built here; the service
itself holds only immutable configuration and injected components, so one
instance serves concurrent requests.
"""
import re
import uuid
from typing import Any, AsyncGenerator, Awaitable, Callable, Dict, List, Optional, Union

from config import Config
from models.chat import ChatRequest, ChatResponse, ErrorResponse
from models.sse import ContextEvent, DoneEvent, SSEEvent, ToolCallCompleteEvent, ToolCallStartEvent, make_event
from .agent.context import AgentContext
from .agent.llm_config import LLMConfig
from .agent.llm_handler import LLMHandler, ModelReply, parse_model_reply
from .agent.prompts import TOOL_NUDGE_PATTERNS, build_system_prompt
from .agent.response_builder import ResponseBuilder
from .agent.supervisor import CallSupervisor, RequestDeadline
from .agent.tracing_utils import ChatTracer, ToolTracer
from .confirmation import ConfirmationLedger, ConfirmationSigner, InMemoryConfirmationLedger, canonical_json
from .context_resolver import ContextId, resolve_context
from .errors import AssistantError, ConfirmationMismatchError, UpstreamTimeoutError, UpstreamUnavailableError
from .modes import CallAction, decide, tools_for_mode
from .tools import definitions  # noqa: F401 - imported for side effects (tool registration)
from .tools.models import ExecutableCall, ToolCall, ToolDefinition
from .tools.registry import ToolRegistry
from .tools.responses import ToolResult
from .tools.runner import ToolRunner
from .tools.safety import SafetyGuard
from utils.logger import get_logger, log_rejection

logger = get_logger(__name__)

ModelClient = Callable[..., Awaitable[Any]]

_NUDGE_RE = re.compile("|".join(TOOL_NUDGE_PATTERNS), re.IGNORECASE)


class ChatService:
    """
    Orchestrates one chat request end to end.

    Args:
        runner: ToolRunner holding the collaborators
        model_client: async callable taking litellm.acompletion kwargs
            (defaults to LLMHandler)
        registry: Tool catalogue (defaults to the global one)
        supervisor: Timeouts / retry policy for model and tool calls
        guard: Read-before-write guard
        signer: Confirmation token signer
        ledger: Single-use ledger for confirmation tokens
        llm_config: Model name and sampling settings
        max_tool_rounds: Model rounds allowed to propose tools
        request_budget_seconds: Overall deadline of one request
        nudge_tool_use: Re-ask with tool_choice="required" on "I can't" answers
    """

    def __init__(
        self,
        runner: ToolRunner,
        model_client: Optional[ModelClient] = None,
        registry: Optional[ToolRegistry] = None,
        supervisor: Optional[CallSupervisor] = None,
        guard: Optional[SafetyGuard] = None,
        signer: Optional[ConfirmationSigner] = None,
        ledger: Optional[ConfirmationLedger] = None,
        llm_config: Optional[LLMConfig] = None,
        max_tool_rounds: Optional[int] = None,
        request_budget_seconds: Optional[float] = None,
        nudge_tool_use: Optional[bool] = None,
    ):
        self.runner = runner
        self.model_client = model_client or LLMHandler()
        self.registry = registry if registry is not None else runner.registry
        self.supervisor = supervisor or runner.supervisor
        self.guard = guard or SafetyGuard()
        self.signer = signer or ConfirmationSigner(Config.CONFIRMATION_SECRET, Config.CONFIRMATION_TTL_SECONDS)
        self.ledger = ledger or InMemoryConfirmationLedger()
        self.llm_config = llm_config or LLMConfig.from_config()
        self.max_tool_rounds = max(1, max_tool_rounds if max_tool_rounds is not None else Config.MAX_TOOL_ROUNDS)
        self.request_budget_seconds = (
            request_budget_seconds if request_budget_seconds is not None else Config.REQUEST_BUDGET_SECONDS
        )
        self.nudge_tool_use = Config.NUDGE_TOOL_USE if nudge_tool_use is None else nudge_tool_use

    # ------------------------------------------------------------------
    # Public entry points
    # ------------------------------------------------------------------

    async def handle(self, request: ChatRequest) -> ChatResponse:
        """
        Buffered variant: run the request and return the single response.

        Raises:
            AssistantError: any rejection or upstream failure
        """
        response = None
        try:
            async for item in self._run(request):
                if isinstance(item, ChatResponse):
                    response = item
        except AssistantError as e:
            _log_failure(e)
            raise
        return response

    async def stream(self, request: ChatRequest) -> AsyncGenerator[str, None]:
        """
        Streaming variant: yields SSE strings.

        Progress events come first; exactly one terminal event
        (assistant_message, pending_confirmation or error) precedes done.
        """
        try:
            async for item in self._run(request):
                if isinstance(item, ChatResponse):
                    event = "pending_confirmation" if item.type == "pending_confirmation" else "assistant_message"
                    yield SSEEvent(
                        event=event,
                        data=item.model_dump(mode="json", by_alias=True, exclude_none=True),
                    ).to_sse_format()
                else:
                    yield item.to_sse_format()
        except AssistantError as e:
            _log_failure(e)
            yield SSEEvent(
                event="error",
                data=ErrorResponse(error=e.to_dict()).model_dump(mode="json"),
            ).to_sse_format()
        yield make_event("done", DoneEvent()).to_sse_format()

    # ------------------------------------------------------------------
    # Request loop
    # ------------------------------------------------------------------

    def preflight(self, request: ChatRequest) -> Optional[ContextId]:
        """
        Checks that need no external call: context scope and confirmation
        fields. The streaming route runs them before opening the stream so
        these rejections keep their HTTP status.
        """
        context = resolve_context(request.context_id)
        _check_confirmation_fields(request)
        return context

    async def _run(self, request: ChatRequest) -> AsyncGenerator[Union[SSEEvent, ChatResponse], None]:
        context = self.preflight(request)

        ctx = AgentContext(
            request_id=uuid.uuid4().hex[:12],
            mode=request.mode,
            context=context,
            deadline=RequestDeadline(self.request_budget_seconds),
        )
        ctx.known_entities.add_context(context)

        available = self.runner.available_tools()
        offered = tools_for_mode(self.registry.list_tools(names=available), ctx.mode)
        builder = ResponseBuilder(ctx.mode, ctx.context_label)
        messages = self._build_messages(request, ctx)
        chat_tracer = ChatTracer(ctx.request_id, ctx.mode.value, ctx.context_label)
        tool_tracer = ToolTracer(ctx.request_id, ctx.mode.value, ctx.context_label)

        logger.info(
            f"Chat request {ctx.request_id}: mode={ctx.mode.value} context={ctx.context_label} "
            f"tools={len(offered)} confirmed={request.confirmed_action}"
        )
        yield make_event("context", ContextEvent(
            mode=ctx.mode.value,
            context_id=ctx.context_label,
            tools_offered=len(offered),
        ))

        async with chat_tracer.interaction(self.max_tool_rounds):
            if request.confirmed_action:
                async for event in self._run_confirmed(request, ctx, available, builder, messages, tool_tracer):
                    yield event

            content = None
            for round_number in range(1, self.max_tool_rounds + 1):
                with chat_tracer.round(round_number, len(messages)):
                    reply = await self._call_model(ctx, messages, offered, "auto")
                    if not reply.has_tool_calls and self._should_nudge(ctx, reply, offered):
                        reply = await self._nudge(ctx, messages, offered) or reply

                if not reply.has_tool_calls:
                    content = reply.content
                    break

                messages.append(reply.to_message())
                pending = None
                async for item in self._run_batch(reply.tool_calls, ctx, available, builder, messages, tool_tracer):
                    if isinstance(item, ChatResponse):
                        pending = item
                    else:
                        yield item
                if pending is not None:
                    chat_tracer.record_outcome("pending_confirmation", len(builder.tool_results))
                    yield pending
                    return
            else:
                # Rounds exhausted: ask for the final answer without tools
                reply = await self._call_model(ctx, messages, offered, "none")
                content = reply.content

            response = builder.build(content or "")
            chat_tracer.record_outcome(response.type, len(builder.tool_results))
            yield response

    async def _run_batch(
        self,
        tool_calls: List[ToolCall],
        ctx: AgentContext,
        available,
        builder: ResponseBuilder,
        messages: List[Dict[str, Any]],
        tool_tracer: ToolTracer,
    ) -> AsyncGenerator[Union[SSEEvent, ChatResponse], None]:
        """
        Handle the calls of one model message.

        Every call is validated before anything runs. If any call needs
        confirmation, nothing from this message is executed and the first
        gated call is returned as pending. Otherwise calls run one at a time,
        in order, so a read can surface ids a later write in the batch uses.
        """
        calls = [self.registry.validate_call(tc, available) for tc in tool_calls]
        actions = [decide(call.definition, ctx.mode) for call in calls]

        for call, action in zip(calls, actions):
            if action == CallAction.HOLD:
                yield self._hold(call, ctx, builder)
                return

        for call, action in zip(calls, actions):
            if action == CallAction.DESCRIBE:
                result = builder.add_planned(call)
                logger.info(f"Plan mode: described {call.name} without executing")
                yield make_event("tool_call_complete", ToolCallCompleteEvent(
                    tool_call_id=call.id, tool_name=call.name, status="planned", message=result.message,
                ))
            else:
                result = None
                async for event in self._dispatch(call, ctx, builder, tool_tracer):
                    if isinstance(event, ToolResult):
                        result = event
                    else:
                        yield event
            messages.append(_tool_message(call.id, result))

    async def _run_confirmed(
        self,
        request: ChatRequest,
        ctx: AgentContext,
        available,
        builder: ResponseBuilder,
        messages: List[Dict[str, Any]],
        tool_tracer: ToolTracer,
    ) -> AsyncGenerator[SSEEvent, None]:
        """
        Execute the call a confirmation token stands for.

        The call is re-validated from scratch (schema, then safety guard with
        the token's attested references), then dispatched without asking the
        model to propose it again.
        """
        claims = self.signer.verify(request.confirmed_tool_call_id)

        if claims.mode != ctx.mode:
            raise ConfirmationMismatchError(
                f"Confirmation was issued in {claims.mode.value} mode, request is in {ctx.mode.value} mode",
                tool=claims.name,
                reason="mode",
            )
        if claims.context != ctx.context_label:
            raise ConfirmationMismatchError(
                "Confirmation was issued for a different context",
                tool=claims.name,
                reason="context",
            )
        if request.confirmed_tool_name is not None and request.confirmed_tool_name != claims.name:
            raise ConfirmationMismatchError(
                "Confirmed tool does not match the pending action",
                tool=request.confirmed_tool_name,
                reason="tool",
            )

        call = self.registry.validate_call(
            ToolCall(id=claims.call_id, name=claims.name, arguments=claims.arguments),
            available,
        )
        if request.confirmed_arguments is not None:
            echoed = self.registry.validate_call(
                ToolCall(id=claims.call_id, name=claims.name, arguments=request.confirmed_arguments),
                available,
            )
            if canonical_json(echoed.payload()) != canonical_json(call.payload()):
                raise ConfirmationMismatchError(
                    "Confirmed arguments differ from the pending action",
                    tool=claims.name,
                    reason="arguments",
                )

        if decide(call.definition, ctx.mode, confirmed=True) != CallAction.EXECUTE:
            raise ConfirmationMismatchError(
                f"{claims.name} cannot be executed in {ctx.mode.value} mode",
                tool=claims.name,
                reason="mode",
            )

        for kind, entity_id in claims.references:
            ctx.known_entities.add(kind, entity_id)
        self.guard.check(call, ctx.known_entities, ctx.context)

        if not self.ledger.consume(claims.jti, claims.exp):
            raise ConfirmationMismatchError(
                "Confirmation token was already used",
                tool=claims.name,
                reason="replayed",
            )

        logger.info(f"Executing confirmed action {claims.name} ({ctx.request_id})")
        messages.append({"role": "assistant", "content": None, "tool_calls": [call.to_tool_call().to_openai_message_part()]})
        result = None
        async for event in self._dispatch(call, ctx, builder, tool_tracer):
            if isinstance(event, ToolResult):
                result = event
            else:
                yield event
        messages.append(_tool_message(call.id, result))

    async def _dispatch(
        self,
        call: ExecutableCall,
        ctx: AgentContext,
        builder: ResponseBuilder,
        tool_tracer: ToolTracer,
    ) -> AsyncGenerator[Union[SSEEvent, ToolResult], None]:
        """Guard, run and record one call; the last item yielded is its ToolResult"""
        self.guard.check(call, ctx.known_entities, ctx.context)

        yield make_event("tool_call_start", ToolCallStartEvent(
            tool_call_id=call.id,
            tool_name=call.name,
            arguments=call.payload(),
            step_label=call.definition.step_label,
        ))
        result = await self.runner.execute(call, ctx.deadline, tool_tracer)
        self.guard.observe(call.definition, result, ctx.known_entities)
        builder.add_result(call, result)
        yield make_event("tool_call_complete", ToolCallCompleteEvent(
            tool_call_id=call.id,
            tool_name=call.name,
            status="completed" if result.success else "error",
            message=result.message,
        ))
        yield result

    def _hold(self, call: ExecutableCall, ctx: AgentContext, builder: ResponseBuilder) -> ChatResponse:
        """Turn a gated call into a PendingConfirmation (after validating its references)"""
        references = self.guard.check(call, ctx.known_entities, ctx.context)
        token, claims = self.signer.issue(
            call_id=call.id,
            name=call.name,
            arguments=call.payload(),
            context=ctx.context_label,
            mode=ctx.mode,
            references=references,
        )
        logger.info(f"Holding {call.name} for confirmation ({ctx.mode.value} mode, {ctx.request_id})")
        return builder.pending(call, token, claims.exp)

    # ------------------------------------------------------------------
    # Model calls
    # ------------------------------------------------------------------

    async def _call_model(
        self,
        ctx: AgentContext,
        messages: List[Dict[str, Any]],
        offered: List[ToolDefinition],
        tool_choice: str,
    ) -> ModelReply:
        kwargs = self.llm_config.to_litellm_kwargs()
        kwargs["messages"] = list(messages)
        if offered:
            kwargs["tools"] = [d.to_openai_schema() for d in offered]
            kwargs["tool_choice"] = tool_choice

        response = await self.supervisor.call_model(lambda: self.model_client(**kwargs), ctx.deadline)
        return parse_model_reply(response)

    def _should_nudge(self, ctx: AgentContext, reply: ModelReply, offered: List[ToolDefinition]) -> bool:
        return bool(
            self.nudge_tool_use
            and not ctx.nudged
            and offered
            and reply.content
            and _NUDGE_RE.search(reply.content)
        )

    async def _nudge(
        self,
        ctx: AgentContext,
        messages: List[Dict[str, Any]],
        offered: List[ToolDefinition],
    ) -> Optional[ModelReply]:
        """
        One extra call forcing tool use. The original answer stands when the
        extra call fails or still proposes nothing.
        """
        ctx.nudged = True
        logger.info("Answer suggests missing data, retrying with tool_choice=required")
        try:
            reply = await self._call_model(ctx, messages, offered, "required")
        except (UpstreamTimeoutError, UpstreamUnavailableError) as e:
            logger.warning(f"Tool-use nudge failed ({e.code}); keeping the original answer")
            return None
        return reply if reply.has_tool_calls else None

    @staticmethod
    def _build_messages(request: ChatRequest, ctx: AgentContext) -> List[Dict[str, Any]]:
        messages: List[Dict[str, Any]] = [
            {"role": "system", "content": build_system_prompt(ctx.mode, ctx.context)}
        ]
        messages.extend({"role": turn.role, "content": turn.content} for turn in request.history)
        messages.append({"role": "user", "content": request.message})
        return messages


def _check_confirmation_fields(request: ChatRequest) -> None:
    if request.confirmed_action and not request.confirmed_tool_call_id:
        raise ConfirmationMismatchError(
            "confirmedAction requires confirmedToolCallId",
            field="confirmedToolCallId",
        )
    if request.confirmed_tool_call_id and not request.confirmed_action:
        raise ConfirmationMismatchError(
            "confirmedToolCallId requires confirmedAction=true",
            field="confirmedAction",
        )


def _tool_message(call_id: str, result: ToolResult) -> Dict[str, Any]:
    return {"role": "tool", "tool_call_id": call_id, "content": result.to_llm_content()}


def _log_failure(error: AssistantError) -> None:
    if error.upstream:
        logger.error(f"{error.code}: {error.message}", extra={"code": error.code, "details": error.details})
    else:
        log_rejection(logger, error.code, error.message, error.details)
