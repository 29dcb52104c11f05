from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import importlib
import time
from typing import Any, Callable, Dict, Mapping, Optional

from config import Config
from utils.logger import configure_logging, get_logger, log_rejection
from utils.tracing import setup_tracing

# Configure logging for the entire application
configure_logging()
logger = get_logger(__name__)

# Import tool definitions to register all tools
from assistant.tools import definitions  # noqa: F401 - imported for side effects (tool registration)
from assistant.agent.supervisor import CallSupervisor
from assistant.chat_service import ChatService
from assistant.errors import AssistantError, InvalidRequestError
from assistant.rate_limit import RateLimiter, SlidingWindowRateLimiter
from assistant.tools.runner import ToolRunner
from models import ErrorResponse
from routes import chat_router


def load_collaborators(module_path: Optional[str] = None) -> Dict[str, Callable[..., Any]]:
    """
    Import the application's tool implementations.

    The module named by COLLABORATORS_MODULE exposes
    COLLABORATORS = {tool_name: callable(arguments) -> ToolResult}.
    """
    module_path = module_path if module_path is not None else Config.COLLABORATORS_MODULE
    if not module_path:
        logger.warning("COLLABORATORS_MODULE not set - no tools will be offered to the model")
        return {}

    module = importlib.import_module(module_path)
    collaborators = getattr(module, "COLLABORATORS", None)
    if not isinstance(collaborators, Mapping):
        raise RuntimeError(f"{module_path} must define a COLLABORATORS mapping")
    logger.info(f"Loaded {len(collaborators)} collaborators from {module_path}")
    return dict(collaborators)


def build_chat_service(collaborators: Optional[Mapping[str, Callable[..., Any]]] = None) -> ChatService:
    supervisor = CallSupervisor(
        llm_timeout=Config.LLM_TIMEOUT_SECONDS,
        tool_timeout=Config.TOOL_TIMEOUT_SECONDS,
        max_llm_retries=Config.LLM_MAX_RETRIES,
    )
    runner = ToolRunner(
        collaborators=load_collaborators() if collaborators is None else collaborators,
        supervisor=supervisor,
    )
    return ChatService(runner=runner, supervisor=supervisor)


def create_app(
    collaborators: Optional[Mapping[str, Callable[..., Any]]] = None,
    chat_service: Optional[ChatService] = None,
    rate_limiter: Optional[RateLimiter] = None,
) -> FastAPI:
    """
    Build the API.

    Args:
        collaborators: tool name -> implementation (defaults to COLLABORATORS_MODULE)
        chat_service: Prebuilt service (tests inject one with a fake model)
        rate_limiter: Limiter for POST /chat (defaults to a sliding window from Config)
    """
    app = FastAPI(
        title="Verifolio Assistant API",
        description="AI assistant orchestrating business tools for freelancers",
        version="1.0.0"
    )

    # Setup OpenTelemetry tracing (auto-instruments FastAPI, HTTP)
    setup_tracing(app)

    # Add simple timing middleware for request duration logging
    @app.middleware("http")
    async def log_requests(request, call_next):
        start_time = time.time()
        response = await call_next(request)
        duration = (time.time() - start_time) * 1000

        if Config.ENABLE_TIMING_LOGS:
            logger.info(
                f"{request.method} {request.url.path} - {response.status_code} ({duration:.0f}ms)",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "status": response.status_code,
                    "duration_ms": round(duration, 2),
                    "type": "http_request"
                }
            )
        return response

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=Config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(AssistantError)
    async def assistant_error_handler(request: Request, exc: AssistantError):
        if exc.upstream:
            logger.error(f"{request.url.path}: {exc.code}: {exc.message}", extra={"code": exc.code})
        else:
            log_rejection(logger, exc.code, exc.message, exc.details)
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(error=exc.to_dict()).model_dump(mode="json"),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        fields = [".".join(str(part) for part in err["loc"] if part != "body") for err in exc.errors()]
        error = InvalidRequestError(
            "Invalid request body",
            fields=[f for f in fields if f] or None,
            errors=[err.get("msg") for err in exc.errors()],
        )
        log_rejection(logger, error.code, error.message, error.details)
        return JSONResponse(
            status_code=error.status_code,
            content=ErrorResponse(error=error.to_dict()).model_dump(mode="json"),
        )

    app.state.chat_service = chat_service or build_chat_service(collaborators)
    app.state.rate_limiter = rate_limiter or SlidingWindowRateLimiter(
        Config.RATE_LIMIT_REQUESTS,
        Config.RATE_LIMIT_WINDOW_SECONDS,
    )

    # Include routers
    app.include_router(chat_router)

    @app.get("/")
    async def root():
        """Root endpoint"""
        return {"message": "Verifolio Assistant API", "status": "running"}

    @app.get("/health")
    async def health():
        """Health check endpoint"""
        tools = len(app.state.chat_service.runner.available_tools())
        return {"status": "healthy", "tools": tools}

    logger.info("Verifolio assistant API initialized")
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    logger.info(f"🚀 Verifolio assistant starting on {Config.API_HOST}:{Config.API_PORT}")
    logger.info(f"📝 API Documentation: http://localhost:{Config.API_PORT}/docs")
    uvicorn.run(
        app,
        host=Config.API_HOST,
        port=Config.API_PORT,
        timeout_keep_alive=5,
        log_level="info"
    )
