"""
Chat API routes
"""
import asyncio
from contextlib import aclosing

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, StreamingResponse

from assistant.chat_service import ChatService
from assistant.errors import RateLimitedError
from assistant.modes import permission_class, permission_matrix
from assistant.rate_limit import RateLimiter
from models import ChatRequest, DoneEvent, ErrorResponse, SSEEvent, make_event
from utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/chat", tags=["chat"])


def get_chat_service(request: Request) -> ChatService:
    return request.app.state.chat_service


def enforce_rate_limit(request: Request) -> None:
    """Dependency: one hit per chat request, keyed by client address"""
    limiter: RateLimiter = request.app.state.rate_limiter
    key = request.client.host if request.client else "anonymous"
    if not limiter.hit(key):
        retry_after = getattr(limiter, "retry_after", None)
        raise RateLimitedError(
            "Too many requests, slow down",
            retry_after_seconds=round(retry_after(key), 1) if retry_after else None,
        )


@router.post("", dependencies=[Depends(enforce_rate_limit)])
async def send_chat_message(
    chat_request: ChatRequest,
    request: Request,
    chat_service: ChatService = Depends(get_chat_service),
):
    """
    Send a chat message.

    With `stream=false` (default) returns one JSON ChatResponse. With
    `stream=true` returns Server-Sent Events:
    - context: scope and mode accepted
    - tool_call_start / tool_call_complete: per executed or planned call
    - assistant_message | pending_confirmation | error: the single outcome
    - done: stream is complete

    Errors are rendered as {"error": {"code", "message", "details"}} by the
    AssistantError handler registered in main.py.
    """
    if not chat_request.stream:
        response = await chat_service.handle(chat_request)
        return JSONResponse(response.model_dump(mode="json", by_alias=True, exclude_none=True))

    # Scope / confirmation-field rejections keep their status code
    chat_service.preflight(chat_request)

    async def event_generator():
        try:
            async with aclosing(chat_service.stream(chat_request)) as events:
                async for sse_data in events:
                    if await request.is_disconnected():
                        logger.info("Client disconnected, dropping remaining events")
                        break
                    yield sse_data
                    await asyncio.sleep(0)  # Give control back to event loop
        except Exception as e:
            logger.error(f"ERROR in stream: {type(e).__name__}: {e}", exc_info=True)
            error = ErrorResponse(error={"code": "InternalError", "message": "Unexpected server error", "details": {}})
            yield SSEEvent(event="error", data=error.model_dump(mode="json")).to_sse_format()
            yield make_event("done", DoneEvent()).to_sse_format()

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable buffering in nginx
        }
    )


@router.get("/tools")
async def list_tools(chat_service: ChatService = Depends(get_chat_service)):
    """Tools the assistant can call, with their permission per mode"""
    available = chat_service.runner.available_tools()
    tools = []
    for definition in chat_service.registry.list_tools(names=available):
        tools.append({
            "name": definition.name,
            "description": definition.description,
            "category": definition.category,
            "mutates": definition.mutates,
            "critical": definition.critical,
            "permissionClass": permission_class(definition),
            "permissions": permission_matrix(definition),
            "stepLabel": definition.step_label,
            "parameters": definition.parameters_schema,
        })
    return {"tools": tools, "count": len(tools)}
